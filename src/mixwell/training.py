"""Training step construction for policy-annotated graphs."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

import torch

from . import losses
from .compile import Compiler, CompilerConfig, ExecutionEngine
from .graph import Node
from .optimizers import Optimizer

TrainState = Dict[str, Any]


@dataclass(frozen=True)
class TrainingStep:
    """
    init() -> train state
    step(train_state, x, y) -> train state

    The train state holds "params", "state", "optimizer_state", "step" and,
    after the first step, "loss".
    """
    init: Callable[[], TrainState]
    step: Callable[[TrainState, torch.Tensor, torch.Tensor], TrainState]
    engine: ExecutionEngine


def train_step(root: Node,
               loss: Union[str, losses.LossFn],
               optimizer: Optimizer,
               *,
               seed: Optional[int] = None,
               config: Optional[CompilerConfig] = None) -> TrainingStep:
    """
    Build an init/step pair for a policy-annotated graph.

    Gradients are taken with torch autograd through the per-node casts.
    Each update is applied to a single precision copy of the parameter and
    the result is cast back to the node's params precision, so storage
    precision never drifts across steps.

    Args:
        root: Terminal node of a policy-annotated graph
        loss: Loss name or callable taking (y_true, y_pred)
        optimizer: Optimizer pair from mixwell.optimizers
        seed: Seed for parameter initialization
        config: Compiler options

    Returns:
        TrainingStep
    """
    engine = Compiler(config).compile(root)
    loss_fn = losses.get(loss)

    def init() -> TrainState:
        params = engine.init_params(seed)
        return {
            'params': params,
            'state': engine.init_state(),
            'optimizer_state': optimizer.init(params),
            'step': 0,
        }

    def step(train_state: TrainState, x: torch.Tensor, y: torch.Tensor) -> TrainState:
        names = list(train_state['params'])
        params = {
            name: value.detach().requires_grad_(True)
            for name, value in train_state['params'].items()
        }

        y_pred, new_state = engine.forward(params, train_state['state'], x, training=True)
        loss_value = loss_fn(y, y_pred)

        grads = ()
        if names:
            grads = torch.autograd.grad(loss_value, [params[n] for n in names], allow_unused=True)
        grads = {
            name: torch.zeros_like(params[name]) if grad is None else grad
            for name, grad in zip(names, grads)
        }

        updates, optimizer_state = optimizer.update(
            grads, train_state['optimizer_state'], params, train_state['step']
        )

        with torch.no_grad():
            master = {name: params[name].float() + updates[name] for name in names}

        return {
            'params': engine.cast_params(master),
            'state': new_state,
            'optimizer_state': optimizer_state,
            'step': train_state['step'] + 1,
            'loss': loss_value.detach(),
        }

    return TrainingStep(init=init, step=step, engine=engine)
