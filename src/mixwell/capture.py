"""Model capture: turn a flat torch.nn.Sequential into a node chain."""

from typing import Optional, Tuple

import torch
import torch.nn as nn

from . import graph
from .errors import UnsupportedModuleError
from .graph import Node

_ACTIVATION_MODULES = {
    nn.ReLU: 'relu',
    nn.Sigmoid: 'sigmoid',
    nn.Tanh: 'tanh',
    nn.GELU: 'gelu',
    nn.SiLU: 'silu',
    nn.Softplus: 'softplus',
}


class ModelTracer:
    """Walks the children of a Sequential model and builds graph nodes."""

    def __init__(self):
        self.input_rank = 2

    def _infer_input_shape(self, model: nn.Sequential) -> Tuple[Optional[int], ...]:
        """Infer the graph input shape from the first layer that knows its width."""
        for module in model:
            if isinstance(module, nn.Linear):
                return (None, module.in_features)
            if isinstance(module, nn.BatchNorm1d):
                return (None, module.num_features)
            if isinstance(module, nn.LayerNorm):
                return (None,) + tuple(module.normalized_shape)
        raise UnsupportedModuleError("Cannot infer input shape: model has no Linear or normalization layer")

    def _unsupported(self, name: str, module: nn.Module, reason: str) -> UnsupportedModuleError:
        return UnsupportedModuleError(f"Module {name} ({type(module).__name__}): {reason}")

    def _softmax_dim(self, module: nn.Softmax) -> Optional[int]:
        # Implicit dim follows torch's legacy rule: 0 for 1D/3D inputs, 1 otherwise
        dim = module.dim
        if dim is None:
            dim = 0 if self.input_rank in (0, 1, 3) else 1
        return dim if dim < 0 else dim - self.input_rank

    def _convert(self, parent: Node, module: nn.Module, name: str) -> Optional[Node]:
        """Convert a single module, or return None for modules that are skipped."""
        if isinstance(module, nn.Identity):
            return None
        if isinstance(module, nn.Linear):
            return graph.dense(parent, module.out_features, use_bias=module.bias is not None)
        if isinstance(module, nn.BatchNorm1d):
            if not module.affine:
                raise self._unsupported(name, module, "batch norm without affine parameters")
            # torch leaves momentum unset for cumulative averaging; fall back to its default
            momentum = module.momentum if module.momentum is not None else 0.1
            return graph.batch_norm(parent, epsilon=module.eps, momentum=momentum)
        if isinstance(module, nn.LayerNorm):
            if len(module.normalized_shape) > 1:
                raise self._unsupported(
                    name, module, f"layer norm over {tuple(module.normalized_shape)}, only the last dimension is supported"
                )
            if not module.elementwise_affine:
                raise self._unsupported(name, module, "layer norm without affine parameters")
            return graph.layer_norm(parent, epsilon=module.eps)
        if isinstance(module, nn.Dropout):
            return graph.dropout(parent, rate=module.p)
        if isinstance(module, nn.Softmax):
            if self._softmax_dim(module) != -1:
                raise self._unsupported(name, module, f"softmax over dim {module.dim}, only the last dimension is supported")
            return graph.activation(parent, 'softmax')
        for module_type, fn in _ACTIVATION_MODULES.items():
            if isinstance(module, module_type):
                return graph.activation(parent, fn)

        raise UnsupportedModuleError(
            f"Module {name} ({type(module).__name__}) has no corresponding node kind"
        )

    def trace_module(self, model: nn.Module,
                     example_inputs: Optional[torch.Tensor] = None) -> Node:
        """
        Trace a Sequential model into a node chain.

        Modules whose settings the node kinds cannot express are rejected
        rather than approximated.

        Args:
            model: Flat nn.Sequential to trace
            example_inputs: Optional example input; its trailing dimensions
                give the input shape

        Returns:
            Terminal node of the captured graph
        """
        if not isinstance(model, nn.Sequential):
            raise UnsupportedModuleError(
                f"Only nn.Sequential models can be captured, got {type(model).__name__}"
            )

        if example_inputs is not None:
            shape = (None,) + tuple(example_inputs.shape[1:])
        else:
            shape = self._infer_input_shape(model)
        self.input_rank = len(shape)

        node = graph.inputs(shape)
        for name, module in model.named_children():
            converted = self._convert(node, module, name)
            if converted is not None:
                node = converted

        return node


def capture(model: nn.Module, example_inputs: Optional[torch.Tensor] = None) -> Node:
    """
    Capture a torch Sequential model as a mixwell graph.

    Args:
        model: nn.Sequential of supported layers
        example_inputs: Optional example input for shape inference

    Returns:
        Terminal node of the captured graph, without policies
    """
    tracer = ModelTracer()
    return tracer.trace_module(model, example_inputs)
