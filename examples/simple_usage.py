#!/usr/bin/env python3
"""
Simple usage example for the Mixwell library
Shows how to train a bf16-stored model while keeping batch norm at fp32
"""

from functools import partial

import torch

import mixwell as mw


def example_policy_propagation():
    """Attach a policy to every node except batch norm"""
    print("Example 1: Policy propagation")
    print("-" * 40)

    model = mw.inputs((None, 784)).dense(128, activation="relu").batch_norm().dense(10, activation="softmax")
    policy = mw.create_policy(compute="bf16")
    mp_model = mw.apply_policy(model, policy, exceptions=["batch_norm"])

    for row in mw.graph.summarize(mp_model):
        print(f"  {row['kind']:<12} {row['policy']}")
    print()
    return mp_model


def example_training():
    """Train with bf16 parameter storage and a decaying learning rate"""
    print("Example 2: Training with bf16 parameters")
    print("-" * 40)

    model = (
        mw.inputs((None, 32))
        .dense(16, name="dense1")
        .batch_norm(name="batch_norm")
        .dense(1, activation="sigmoid", name="dense2")
    )
    mp_model = mw.apply_policy(model, mw.create_policy(params="bf16"), exceptions=["batch_norm"])

    lr = partial(mw.schedules.cosine_decay, init_value=0.1, decay_steps=50)
    step = mw.train_step(mp_model, "binary_cross_entropy", mw.optimizers.sgd(lr), seed=0)

    x = torch.rand(64, 32)
    y = (x.mean(dim=1, keepdim=True) > 0.5).float()

    state = step.init()
    for i in range(50):
        state = step.step(state, x, y)
        if i % 10 == 0:
            print(f"  step {i:3d}  loss {state['loss'].item():.4f}")

    for name, value in state["params"].items():
        print(f"  {name:<20} {value.dtype}")
    print()


if __name__ == "__main__":
    example_policy_propagation()
    example_training()
