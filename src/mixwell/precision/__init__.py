"""Mixed precision policies and their propagation through model graphs."""

from .policy import DEFAULT_PRECISION, Policy, Precision, create_policy
from .propagate import apply_policy

__all__ = ['DEFAULT_PRECISION', 'Policy', 'Precision', 'create_policy', 'apply_policy']
