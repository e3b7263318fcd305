"""
Mixwell - mixed precision policies for layered torch models.

Attach storage/compute/output precisions to every node of a model graph,
keep precision-sensitive layers at full precision, and train with
parameters that stay at their storage precision across updates.
"""

__version__ = "0.1.0"

# Graph construction
from .graph import Node, inputs, dense, batch_norm, layer_norm, activation, dropout, iter_chain
from .capture import capture, ModelTracer

# Precision management
from .precision.policy import (
    DEFAULT_PRECISION,
    Policy,
    Precision,
    create_policy,
)
from .precision.propagate import apply_policy

# Compilation and training
from .compile import compile, Compiler, CompilerConfig, ExecutionEngine
from .training import train_step, TrainingStep
from . import losses, optimizers, schedules

from .errors import (
    MixwellError,
    ConfigurationError,
    PrecisionError,
    CompilationError,
    UnsupportedModuleError,
)


def mixed_precision(root: Node,
                    params=None,
                    compute=None,
                    output=None,
                    exceptions=("batch_norm", "layer_norm"),
                    default=DEFAULT_PRECISION) -> Node:
    """
    One-shot policy creation and propagation.

    Normalization layers are excepted by default so they keep running at
    the ambient precision.

    Args:
        root: Terminal node of a model graph
        params: Storage precision for trainable values
        compute: Precision arithmetic runs at
        output: Precision of each node's result
        exceptions: Node kinds kept at the ambient precision
        default: Ambient precision

    Returns:
        Terminal node of the annotated graph
    """
    policy = create_policy(params=params, compute=compute, output=output, default=default)
    return apply_policy(root, policy, exceptions, default=default)


__all__ = [
    # Graph
    'Node',
    'inputs',
    'dense',
    'batch_norm',
    'layer_norm',
    'activation',
    'dropout',
    'iter_chain',
    'capture',
    'ModelTracer',

    # Precision
    'DEFAULT_PRECISION',
    'Policy',
    'Precision',
    'create_policy',
    'apply_policy',
    'mixed_precision',

    # Compilation / training
    'compile',
    'Compiler',
    'CompilerConfig',
    'ExecutionEngine',
    'train_step',
    'TrainingStep',
    'losses',
    'optimizers',
    'schedules',

    # Errors
    'MixwellError',
    'ConfigurationError',
    'PrecisionError',
    'CompilationError',
    'UnsupportedModuleError',

    # Version
    '__version__',
]
