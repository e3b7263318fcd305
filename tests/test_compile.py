import warnings

import pytest
import torch

import mixwell as mw
from mixwell import CompilationError, Compiler, CompilerConfig, Precision
from mixwell.kernels import KernelRegistry


def _annotated(**policy):
    root = mw.inputs((None, 6)).dense(4, name="dense1").batch_norm(name="batch_norm").dense(2, name="dense2")
    return mw.apply_policy(root, mw.create_policy(**policy), ["batch_norm"])


def test_params_materialized_at_storage_precision():
    engine = mw.compile(_annotated(params="bf16"))
    params = engine.init_params(seed=0)

    assert set(params) == {
        "dense1_kernel", "dense1_bias", "batch_norm_gamma", "batch_norm_beta",
        "dense2_kernel", "dense2_bias",
    }
    assert params["dense1_kernel"].shape == (6, 4)
    assert params["dense1_kernel"].dtype == torch.bfloat16
    assert params["batch_norm_gamma"].dtype == torch.float32

    state = engine.init_state()
    assert set(state) == {"batch_norm_mean", "batch_norm_var"}
    assert state["batch_norm_mean"].dtype == torch.float32


def test_seeded_init_is_deterministic():
    engine = mw.compile(_annotated())
    a = engine.init_params(seed=3)
    b = engine.init_params(seed=3)
    assert all(torch.equal(a[k], b[k]) for k in a)


def test_forward_casts_output_per_node():
    engine = mw.compile(_annotated(compute="bf16", output="bf16"))
    params = engine.init_params(seed=0)
    y, state = engine.forward(params, engine.init_state(), torch.randn(5, 6), training=True)

    assert y.shape == (5, 2)
    assert y.dtype == torch.bfloat16
    assert state["batch_norm_mean"].dtype == torch.float32


def test_forward_computes_at_compute_precision():
    seen = []
    registry = KernelRegistry()
    for kernel in mw.kernels.get_registry().list_kernels():
        registry.register(kernel)
    dense = registry.find_kernel("dense")

    def spy(x, params, state, attrs, training):
        seen.append((x.dtype, params['kernel'].dtype))
        return dense.forward(x, params, state, attrs, training)

    registry.register(mw.kernels.KernelSpec(kind="dense", init=dense.init, forward=spy))
    root = mw.apply_policy(mw.inputs((None, 3)).dense(2), mw.create_policy(params="bf16", compute="f64"))
    engine = Compiler(registry=registry).compile(root)
    y = engine(engine.init_params(seed=1), torch.randn(2, 3))

    assert seen == [(torch.float64, torch.float64)]
    assert y.dtype == torch.float32


def test_state_is_whatever_init_returns():
    registry = KernelRegistry()
    for kernel in mw.kernels.get_registry().list_kernels():
        registry.register(kernel)

    def counter_init(attrs, in_shape, generator):
        return {}, {'seen': torch.zeros(())}, tuple(in_shape)

    def counter_forward(x, params, state, attrs, training):
        return x, {'seen': state['seen'] + x.shape[0]}

    registry.register(mw.kernels.KernelSpec(kind="counter", init=counter_init, forward=counter_forward))
    root = mw.Node(kind="counter", parent=mw.inputs((None, 3)))
    root = mw.apply_policy(root, mw.create_policy(params="bf16"))
    engine = Compiler(registry=registry).compile(root)

    assert engine.compiled_nodes[1].state_names == ["seen"]
    _, state = engine.forward({}, engine.init_state(), torch.randn(4, 3))
    assert state["counter_0_seen"].item() == 4
    assert state["counter_0_seen"].dtype == torch.bfloat16


def test_auto_names_are_counted_per_kind():
    root = mw.mixed_precision(mw.inputs((None, 3)).dense(3).dense(3).activation("relu"))
    engine = mw.compile(root)
    assert [c.name for c in engine.compiled_nodes] == ["input_0", "dense_0", "dense_1", "activation_0"]
    assert list(engine.precision_summary()) == ["input_0", "dense_0", "dense_1", "activation_0"]


def test_duplicate_names_rejected():
    root = mw.mixed_precision(mw.inputs((None, 3)).dense(3, name="d").dense(3, name="d"))
    with pytest.raises(CompilationError):
        mw.compile(root)


def test_unknown_kind_rejected():
    root = mw.Node(kind="conv", parent=mw.inputs((None, 3)), policy=mw.create_policy())
    with pytest.raises(CompilationError, match="conv"):
        mw.compile(root)


def test_missing_policy_warns_and_falls_back():
    root = mw.inputs((None, 3)).dense(2)
    with pytest.warns(UserWarning, match="no policy"):
        engine = mw.compile(root)
    assert all(c.policy == mw.Policy.uniform(Precision.FP32) for c in engine.compiled_nodes)
    assert any("no policy" in issue for issue in engine.validate())


def test_missing_policy_silent_when_warnings_disabled():
    root = mw.inputs((None, 3)).dense(2)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        engine = Compiler(CompilerConfig(warn_on_issues=False)).compile(root)
    assert any("no policy" in issue for issue in engine.validate())


def test_validate_reports_unsupported_norm_precision():
    root = mw.inputs((None, 3)).batch_norm()
    root = mw.apply_policy(root, mw.create_policy(compute="f16"))
    engine = Compiler(CompilerConfig(warn_on_issues=False)).compile(root)
    issues = engine.validate()
    assert len(issues) == 1
    assert "batch_norm" in issues[0] and "f16" in issues[0]


def test_fully_annotated_graph_compiles_without_warnings():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        engine = mw.compile(_annotated(compute="bf16"))
    assert engine.validate() == []
