import pytest

import mixwell as mw
from mixwell.graph import graph_size, kinds, summarize


def test_fluent_and_functional_builders_agree():
    fluent = mw.inputs((None, 8)).dense(4, activation="relu").batch_norm()
    functional = mw.batch_norm(mw.dense(mw.inputs((None, 8)), 4, activation="relu"))
    assert kinds(fluent) == kinds(functional) == ["input", "dense", "batch_norm"]
    assert dict(fluent.parent.attrs) == dict(functional.parent.attrs)


def test_iter_chain_runs_input_to_output():
    root = mw.inputs((None, 2), name="x").dense(3, name="hidden").dense(1, name="out")
    assert [n.name for n in mw.iter_chain(root)] == ["x", "hidden", "out"]
    assert graph_size(root) == 3


def test_attrs_are_read_only():
    node = mw.inputs((None, 2)).dense(3)
    with pytest.raises(TypeError):
        node.attrs['units'] = 5


def test_builder_validation():
    with pytest.raises(ValueError):
        mw.inputs((None, 2)).dense(0)
    with pytest.raises(ValueError):
        mw.inputs((None, 2)).dropout(1.0)


def test_summarize_includes_policy_tags():
    root = mw.mixed_precision(mw.inputs((None, 2)).dense(1), compute="bf16")
    rows = summarize(root)
    assert rows[-1]['kind'] == "dense"
    assert rows[-1]['policy'] == {'params': 'f32', 'compute': 'bf16', 'output': 'f32'}
    assert summarize(mw.inputs((None, 2)))[0]['policy'] is None


def test_repr_does_not_walk_whole_chain():
    root = mw.inputs((None, 2), name="x").dense(1)
    assert "parent='x'" in repr(root)
