"""
Kernel implementations for mixwell node kinds.
"""

from .registry import KernelRegistry, KernelSpec, get_registry, register_kernel
from .torch_kernels import ACTIVATIONS, register_default_kernels

register_default_kernels()

__all__ = [
    'KernelRegistry',
    'KernelSpec',
    'get_registry',
    'register_kernel',
    'register_default_kernels',
    'ACTIVATIONS',
]
