"""
Gradient-based optimizers as (init, update) function pairs.

Optimizer state and updates are always kept in single precision; the
training step applies the update to a single precision copy of each
parameter and casts the result back to that parameter's storage precision.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Tuple, Union

import torch

from .errors import ConfigurationError

Params = Dict[str, torch.Tensor]
OptState = Dict[str, Params]
LearningRate = Union[float, Callable[[int], float]]


@dataclass(frozen=True)
class Optimizer:
    """
    init(params) -> state
    update(grads, state, params, step) -> (updates, state)

    Updates are added to the parameters.
    """
    init: Callable[[Params], OptState]
    update: Callable[[Params, OptState, Params, int], Tuple[Params, OptState]]


def _learning_rate(learning_rate: LearningRate, step: int) -> float:
    if callable(learning_rate):
        return float(learning_rate(step))
    return float(learning_rate)


def _zeros_like(params: Params) -> Params:
    return {name: torch.zeros_like(value, dtype=torch.float32) for name, value in params.items()}


def sgd(learning_rate: LearningRate = 1e-2,
        momentum: float = 0.0,
        nesterov: bool = False) -> Optimizer:
    """
    Stochastic gradient descent.

    Args:
        learning_rate: Step size, or a schedule mapping step to step size
        momentum: Momentum coefficient; 0 disables the velocity buffer
        nesterov: Use Nesterov momentum

    Returns:
        Optimizer
    """
    if momentum < 0:
        raise ConfigurationError(f"momentum must be non-negative, got {momentum}")

    def init(params: Params) -> OptState:
        if momentum == 0.0:
            return {}
        return {'velocity': _zeros_like(params)}

    def update(grads: Params, state: OptState, params: Params, step: int) -> Tuple[Params, OptState]:
        lr = _learning_rate(learning_rate, step)
        if momentum == 0.0:
            return {name: -lr * grad.float() for name, grad in grads.items()}, state

        velocity = {}
        updates = {}
        for name, grad in grads.items():
            grad = grad.float()
            v = momentum * state['velocity'][name] + grad
            velocity[name] = v
            direction = grad + momentum * v if nesterov else v
            updates[name] = -lr * direction
        return updates, {'velocity': velocity}

    return Optimizer(init=init, update=update)


def adam(learning_rate: LearningRate = 1e-3,
         b1: float = 0.9,
         b2: float = 0.999,
         eps: float = 1e-8) -> Optimizer:
    """
    Adam optimizer.

    Args:
        learning_rate: Step size, or a schedule mapping step to step size
        b1: Decay rate of the first moment
        b2: Decay rate of the second moment
        eps: Numerical stability term

    Returns:
        Optimizer
    """
    def init(params: Params) -> OptState:
        return {'mu': _zeros_like(params), 'nu': _zeros_like(params)}

    def update(grads: Params, state: OptState, params: Params, step: int) -> Tuple[Params, OptState]:
        lr = _learning_rate(learning_rate, step)
        count = step + 1
        mu, nu, updates = {}, {}, {}
        for name, grad in grads.items():
            grad = grad.float()
            mu[name] = b1 * state['mu'][name] + (1 - b1) * grad
            nu[name] = b2 * state['nu'][name] + (1 - b2) * grad * grad
            mu_hat = mu[name] / (1 - b1 ** count)
            nu_hat = nu[name] / (1 - b2 ** count)
            updates[name] = -lr * mu_hat / (torch.sqrt(nu_hat) + eps)
        return updates, {'mu': mu, 'nu': nu}

    return Optimizer(init=init, update=update)
