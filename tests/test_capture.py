import pytest
import torch
import torch.nn as nn

import mixwell as mw
from mixwell import UnsupportedModuleError, capture
from mixwell.graph import kinds


def test_capture_sequential():
    model = nn.Sequential(
        nn.Linear(32, 16),
        nn.ReLU(),
        nn.BatchNorm1d(16, eps=1e-3),
        nn.Dropout(0.2),
        nn.Identity(),
        nn.Linear(16, 1, bias=False),
        nn.Sigmoid(),
    )
    root = capture(model)

    assert kinds(root) == ["input", "dense", "activation", "batch_norm", "dropout", "dense", "activation"]
    nodes = list(mw.iter_chain(root))
    assert nodes[0].attrs['shape'] == (None, 32)
    assert nodes[1].attrs['units'] == 16
    assert nodes[3].attrs['epsilon'] == 1e-3
    assert nodes[5].attrs['use_bias'] is False
    assert all(node.policy is None for node in nodes)


def test_capture_with_example_inputs():
    model = nn.Sequential(nn.LayerNorm(8), nn.Linear(8, 2))
    root = capture(model, torch.randn(4, 8))
    assert list(mw.iter_chain(root))[0].attrs['shape'] == (None, 8)


def test_captured_graph_trains_with_policy():
    model = nn.Sequential(nn.Linear(4, 4), nn.BatchNorm1d(4), nn.Linear(4, 1))
    annotated = mw.apply_policy(capture(model), mw.create_policy(params="bf16"), ["batch_norm"])
    step = mw.train_step(annotated, "mean_squared_error", mw.optimizers.sgd(0.1), seed=0)
    state = step.step(step.init(), torch.randn(3, 4), torch.randn(3, 1))
    assert state["params"]["dense_0_kernel"].dtype == torch.bfloat16
    assert state["params"]["batch_norm_0_gamma"].dtype == torch.float32


def test_capture_rejects_unsupported_modules():
    with pytest.raises(UnsupportedModuleError, match="Conv1d"):
        capture(nn.Sequential(nn.Linear(2, 2), nn.Conv1d(1, 1, 1)))
    with pytest.raises(UnsupportedModuleError):
        capture(nn.Linear(2, 2))


def test_capture_softmax_over_last_dim():
    for module in (nn.Softmax(dim=-1), nn.Softmax(dim=1), nn.Softmax()):
        root = capture(nn.Sequential(nn.Linear(3, 3), module))
        assert root.attrs['fn'] == 'softmax'


@pytest.mark.parametrize("module", [
    nn.LayerNorm((4, 8)),
    nn.LayerNorm(8, elementwise_affine=False),
    nn.BatchNorm1d(3, affine=False),
])
def test_capture_rejects_inexpressible_norms(module):
    with pytest.raises(UnsupportedModuleError):
        capture(nn.Sequential(module))


def test_capture_rejects_softmax_over_batch_dim():
    with pytest.raises(UnsupportedModuleError, match="dim 0"):
        capture(nn.Sequential(nn.Linear(3, 3), nn.Softmax(dim=0)))
    with pytest.raises(UnsupportedModuleError):
        capture(nn.Sequential(nn.Softmax()), torch.randn(2, 4, 3))


def test_captured_layer_norm_matches_torch():
    model = nn.Sequential(nn.Linear(8, 8), nn.LayerNorm(8), nn.Softmax(dim=-1)).eval()
    engine = mw.compile(mw.mixed_precision(capture(model)))
    params = {
        "dense_0_kernel": model[0].weight.detach().t(),
        "dense_0_bias": model[0].bias.detach(),
        "layer_norm_0_gamma": model[1].weight.detach(),
        "layer_norm_0_beta": model[1].bias.detach(),
    }
    x = torch.randn(5, 8)
    torch.testing.assert_close(engine(params, x), model(x))
