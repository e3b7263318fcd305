"""Exception hierarchy for mixwell."""


class MixwellError(Exception):
    """Base class for all mixwell errors."""


class ConfigurationError(MixwellError, ValueError):
    """An option passed to a policy or propagation call is not recognized."""


class PrecisionError(ConfigurationError):
    """A precision descriptor could not be resolved."""


class CompilationError(MixwellError):
    """The graph could not be compiled into executable functions."""


class UnsupportedModuleError(MixwellError, TypeError):
    """A torch module has no node kind it can be captured as."""
