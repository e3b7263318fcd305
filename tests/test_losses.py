import pytest
import torch

from mixwell import ConfigurationError, losses


def test_losses_run_in_single_precision():
    y_true = torch.tensor([[1.0], [0.0]])
    y_pred = torch.tensor([[0.9], [0.2]], dtype=torch.bfloat16)
    value = losses.binary_cross_entropy(y_true, y_pred)
    assert value.dtype == torch.float32
    assert value.item() > 0


def test_categorical_cross_entropy_accepts_indices():
    probs = torch.tensor([[0.7, 0.2, 0.1], [0.1, 0.8, 0.1]])
    one_hot = torch.tensor([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
    by_index = losses.categorical_cross_entropy(torch.tensor([0, 1]), probs)
    by_one_hot = losses.categorical_cross_entropy(one_hot, probs)
    assert by_index.item() == pytest.approx(by_one_hot.item())


def test_regression_losses():
    y_true = torch.zeros(4)
    y_pred = torch.full((4,), 2.0)
    assert losses.mean_squared_error(y_true, y_pred).item() == pytest.approx(4.0)
    assert losses.mean_absolute_error(y_true, y_pred).item() == pytest.approx(2.0)


def test_get_resolves_names_and_callables():
    assert losses.get("mean_squared_error") is losses.mean_squared_error
    custom = lambda y_true, y_pred: (y_pred - y_true).sum()
    assert losses.get(custom) is custom
    with pytest.raises(ConfigurationError):
        losses.get("hinge")
