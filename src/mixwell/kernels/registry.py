"""Kernel registry mapping node kinds to their torch implementations."""

from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional

from ..precision.policy import Precision

ALL_PRECISIONS: FrozenSet[Precision] = frozenset(Precision)


@dataclass
class KernelSpec:
    """
    Implementation of one node kind.

    init(attrs, in_shape, generator) -> (params, state, out_shape)
        Builds single precision initial values; the engine casts them to the
        node's storage precision.
    forward(x, params, state, attrs, training) -> (y, new_state)
        Runs at whatever precision its operands arrive in.
    """
    kind: str
    init: Callable
    forward: Callable
    # Precisions the kernel can run at, per device type; missing devices accept all
    precision_support: Dict[str, FrozenSet[Precision]] = field(default_factory=dict)

    def supports_precision(self, precision: Precision, device: str = "cpu") -> bool:
        """Check if kernel supports given compute precision on a device type."""
        supported = self.precision_support.get(device, ALL_PRECISIONS)
        return precision in supported


class KernelRegistry:
    """Registry for kernel implementations, keyed by node kind."""

    def __init__(self):
        self.kernels: Dict[str, KernelSpec] = {}

    def register(self, kernel: KernelSpec):
        """
        Register a kernel implementation.

        Registering a kind twice replaces the earlier kernel.
        """
        self.kernels[kernel.kind] = kernel

    def find_kernel(self, kind: str) -> Optional[KernelSpec]:
        return self.kernels.get(kind)

    def list_kernels(self) -> List[KernelSpec]:
        return list(self.kernels.values())

    def validate_for_device(self, kind: str, precision: Precision, device: str) -> List[str]:
        """
        Check that a kind can run at `precision` on a device type.

        Returns:
            List of issues, empty if supported
        """
        kernel = self.find_kernel(kind)
        if kernel is None:
            return [f"No kernel registered for kind {kind!r}"]
        if not kernel.supports_precision(precision, device):
            return [f"Kernel {kind!r} does not support {precision.value} compute on {device}"]
        return []


# Global registry instance
_global_registry = KernelRegistry()


def get_registry() -> KernelRegistry:
    """Get the global kernel registry."""
    return _global_registry


def register_kernel(kernel: KernelSpec):
    """Register a kernel in the global registry."""
    _global_registry.register(kernel)
