"""Precision descriptors and the per-node mixed precision policy."""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union
from enum import Enum

import torch

from ..errors import ConfigurationError, PrecisionError


class Precision(Enum):
    """Supported precision formats."""
    FP64 = "f64"
    FP32 = "f32"
    FP16 = "f16"
    BF16 = "bf16"  # 8-bit exponent, 7-bit mantissa

    @property
    def bits(self) -> int:
        """Number of bits for this precision."""
        mapping = {
            Precision.FP64: 64,
            Precision.FP32: 32,
            Precision.FP16: 16,
            Precision.BF16: 16,
        }
        return mapping[self]

    @property
    def dtype(self) -> torch.dtype:
        """Torch dtype that realizes this precision."""
        mapping = {
            Precision.FP64: torch.float64,
            Precision.FP32: torch.float32,
            Precision.FP16: torch.float16,
            Precision.BF16: torch.bfloat16,
        }
        return mapping[self]

    @property
    def is_reduced(self) -> bool:
        """Check if this precision is narrower than single precision."""
        return self.bits < 32

    @classmethod
    def coerce(cls, value: Any) -> "Precision":
        """
        Resolve a precision descriptor.

        Accepts a Precision, a string tag or alias ("f32", "bfloat16", ...),
        a (family, bits) tuple such as ("bf", 16), or a torch.dtype.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, torch.dtype):
            for member in cls:
                if member.dtype == value:
                    return member
        elif isinstance(value, tuple) and len(value) == 2:
            family, bits = value
            key = f"{family}{bits}"
            if key in _ALIASES:
                return _ALIASES[key]
        elif isinstance(value, str) and value.lower() in _ALIASES:
            return _ALIASES[value.lower()]
        raise PrecisionError(f"Unrecognized precision {value!r}")


_ALIASES: Dict[str, Precision] = {
    "f64": Precision.FP64, "fp64": Precision.FP64, "float64": Precision.FP64, "double": Precision.FP64,
    "f32": Precision.FP32, "fp32": Precision.FP32, "float32": Precision.FP32, "float": Precision.FP32,
    "f16": Precision.FP16, "fp16": Precision.FP16, "float16": Precision.FP16, "half": Precision.FP16,
    "bf16": Precision.BF16, "bfloat16": Precision.BF16,
}

# Ambient default for every field that is not set explicitly
DEFAULT_PRECISION = Precision.FP32

PrecisionLike = Union[Precision, str, Tuple[str, int], torch.dtype]


@dataclass(frozen=True)
class Policy:
    """
    Mixed precision policy for a single graph node.

    params  -- precision trainable values are stored at between steps
    compute -- precision the node's arithmetic runs at
    output  -- precision of the value handed to the next node
    """
    params: Precision
    compute: Precision
    output: Precision

    def __post_init__(self):
        # Frozen: resolve descriptors through object.__setattr__
        for role in ('params', 'compute', 'output'):
            object.__setattr__(self, role, Precision.coerce(getattr(self, role)))

    @classmethod
    def uniform(cls, precision: PrecisionLike = DEFAULT_PRECISION) -> "Policy":
        """Policy with every role at the same precision."""
        precision = Precision.coerce(precision)
        return cls(params=precision, compute=precision, output=precision)

    @property
    def is_uniform(self) -> bool:
        return self.params == self.compute == self.output

    def cast_to_compute(self, tensor: torch.Tensor) -> torch.Tensor:
        return _cast(tensor, self.compute)

    def cast_to_param(self, tensor: torch.Tensor) -> torch.Tensor:
        return _cast(tensor, self.params)

    def cast_to_output(self, tensor: torch.Tensor) -> torch.Tensor:
        return _cast(tensor, self.output)

    def describe(self) -> Dict[str, str]:
        """Export the policy as string tags."""
        return {
            'params': self.params.value,
            'compute': self.compute.value,
            'output': self.output.value,
        }

    def __repr__(self) -> str:
        return (f"Policy(params={self.params.value}, compute={self.compute.value}, "
                f"output={self.output.value})")


def _cast(tensor: torch.Tensor, precision: Precision) -> torch.Tensor:
    # Integer tensors (labels, indices) pass through untouched
    if not tensor.is_floating_point() or tensor.dtype == precision.dtype:
        return tensor
    return tensor.to(precision.dtype)


def create_policy(params: Optional[PrecisionLike] = None,
                  compute: Optional[PrecisionLike] = None,
                  output: Optional[PrecisionLike] = None,
                  *,
                  default: PrecisionLike = DEFAULT_PRECISION,
                  **unknown: Any) -> Policy:
    """
    Create a mixed precision policy.

    Every role that is not given falls back to `default` on its own; no
    role inherits from another.

    Args:
        params: Storage precision for trainable values
        compute: Precision arithmetic runs at
        output: Precision of the node's result
        default: Ambient precision for unset roles

    Returns:
        Fully resolved Policy

    Raises:
        ConfigurationError: If an unknown option is passed or a precision
            cannot be resolved
    """
    if unknown:
        names = ", ".join(sorted(unknown))
        raise ConfigurationError(
            f"Unknown policy option(s): {names}. Valid options are params, compute, output"
        )

    default = Precision.coerce(default)

    return Policy(
        params=default if params is None else Precision.coerce(params),
        compute=default if compute is None else Precision.coerce(compute),
        output=default if output is None else Precision.coerce(output),
    )
