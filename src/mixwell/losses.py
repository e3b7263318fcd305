"""Loss functions used by the training step.

All losses take ``(y_true, y_pred)`` and return a scalar mean over the batch.
They are evaluated in single precision regardless of the model's output
precision.
"""

from typing import Callable, Union

import torch
import torch.nn.functional as F

from .errors import ConfigurationError

_EPS = 1e-7


def binary_cross_entropy(y_true: torch.Tensor, y_pred: torch.Tensor) -> torch.Tensor:
    """Binary cross entropy on probabilities in [0, 1]."""
    y_pred = y_pred.float().clamp(_EPS, 1 - _EPS)
    return F.binary_cross_entropy(y_pred, y_true.float())


def categorical_cross_entropy(y_true: torch.Tensor, y_pred: torch.Tensor) -> torch.Tensor:
    """
    Categorical cross entropy on class probabilities.

    `y_true` may be one-hot/soft targets with the same shape as `y_pred`,
    or integer class indices.
    """
    y_pred = y_pred.float()
    if not y_true.is_floating_point():
        y_true = F.one_hot(y_true.long(), num_classes=y_pred.shape[-1])
    log_probs = torch.log(y_pred.clamp(min=_EPS))
    return -(y_true.float() * log_probs).sum(dim=-1).mean()


def mean_squared_error(y_true: torch.Tensor, y_pred: torch.Tensor) -> torch.Tensor:
    return F.mse_loss(y_pred.float(), y_true.float())


def mean_absolute_error(y_true: torch.Tensor, y_pred: torch.Tensor) -> torch.Tensor:
    return F.l1_loss(y_pred.float(), y_true.float())


LOSSES = {
    'binary_cross_entropy': binary_cross_entropy,
    'categorical_cross_entropy': categorical_cross_entropy,
    'mean_squared_error': mean_squared_error,
    'mean_absolute_error': mean_absolute_error,
}

LossFn = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]


def get(loss: Union[str, LossFn]) -> LossFn:
    """Resolve a loss by name, or pass a callable through."""
    if callable(loss):
        return loss
    if loss not in LOSSES:
        raise ConfigurationError(f"Unknown loss {loss!r}. Available: {sorted(LOSSES)}")
    return LOSSES[loss]
