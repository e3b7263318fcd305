"""Torch implementations of the built-in node kinds."""

import math
from typing import Optional, Tuple

import torch
import torch.nn.functional as F

from ..precision.policy import Precision
from .registry import KernelSpec, register_kernel

Shape = Tuple[Optional[int], ...]

_NORM_CPU_PRECISIONS = frozenset([Precision.FP64, Precision.FP32, Precision.BF16])

ACTIVATIONS = {
    'linear': lambda x: x,
    'relu': torch.relu,
    'sigmoid': torch.sigmoid,
    'tanh': torch.tanh,
    'gelu': F.gelu,
    'silu': F.silu,
    'softplus': F.softplus,
    'softmax': lambda x: torch.softmax(x, dim=-1),
    'log_softmax': lambda x: torch.log_softmax(x, dim=-1),
}


def activation_fn(name: Optional[str]):
    if name is None:
        return ACTIVATIONS['linear']
    if name not in ACTIVATIONS:
        raise ValueError(f"Unknown activation {name!r}. Available: {sorted(ACTIVATIONS)}")
    return ACTIVATIONS[name]


def _features(in_shape: Shape, kind: str) -> int:
    features = in_shape[-1] if in_shape else None
    if features is None:
        raise ValueError(f"{kind} needs a known feature dimension, got input shape {in_shape}")
    return features


# Input

def _input_init(attrs, in_shape, generator):
    return {}, {}, tuple(attrs['shape'])


def _passthrough_init(attrs, in_shape, generator):
    return {}, {}, tuple(in_shape)


def _identity_forward(x, params, state, attrs, training):
    return x, {}


# Dense

def _dense_init(attrs, in_shape, generator):
    fan_in = _features(in_shape, "dense")
    fan_out = attrs['units']

    # Glorot uniform
    limit = math.sqrt(6.0 / (fan_in + fan_out))
    params = {'kernel': torch.rand((fan_in, fan_out), generator=generator) * (2 * limit) - limit}
    if attrs['use_bias']:
        params['bias'] = torch.zeros(fan_out)

    return params, {}, tuple(in_shape[:-1]) + (fan_out,)


def _dense_forward(x, params, state, attrs, training):
    y = x @ params['kernel']
    if 'bias' in params:
        y = y + params['bias']
    return activation_fn(attrs['activation'])(y), {}


# Normalization

def _norm_init(kind):
    def init(attrs, in_shape, generator):
        features = _features(in_shape, kind)
        params = {'gamma': torch.ones(features), 'beta': torch.zeros(features)}
        state = {}
        if kind == "batch_norm":
            state = {'mean': torch.zeros(features), 'var': torch.ones(features)}
        return params, state, tuple(in_shape)
    return init


def _batch_norm_forward(x, params, state, attrs, training):
    eps = attrs['epsilon']
    reduce_dims = tuple(range(x.dim() - 1))

    if training:
        mean = x.mean(dim=reduce_dims)
        var = x.var(dim=reduce_dims, correction=0)
        momentum = attrs['momentum']
        new_state = {
            'mean': ((1 - momentum) * state['mean'] + momentum * mean).detach(),
            'var': ((1 - momentum) * state['var'] + momentum * var).detach(),
        }
    else:
        mean, var = state['mean'], state['var']
        new_state = state

    y = (x - mean) * torch.rsqrt(var + eps)
    return y * params['gamma'] + params['beta'], new_state


def _layer_norm_forward(x, params, state, attrs, training):
    features = x.shape[-1]
    y = F.layer_norm(x, (features,), params['gamma'], params['beta'], attrs['epsilon'])
    return y, {}


# Activation / dropout

def _activation_forward(x, params, state, attrs, training):
    return activation_fn(attrs['fn'])(x), {}


def _dropout_forward(x, params, state, attrs, training):
    return F.dropout(x, p=attrs['rate'], training=training), {}


def register_default_kernels():
    """Register the built-in kinds in the global registry."""
    register_kernel(KernelSpec(kind="input", init=_input_init, forward=_identity_forward))
    register_kernel(KernelSpec(kind="dense", init=_dense_init, forward=_dense_forward))
    register_kernel(KernelSpec(
        kind="batch_norm",
        init=_norm_init("batch_norm"),
        forward=_batch_norm_forward,
        precision_support={'cpu': _NORM_CPU_PRECISIONS},
    ))
    register_kernel(KernelSpec(
        kind="layer_norm",
        init=_norm_init("layer_norm"),
        forward=_layer_norm_forward,
        precision_support={'cpu': _NORM_CPU_PRECISIONS},
    ))
    register_kernel(KernelSpec(kind="activation", init=_passthrough_init, forward=_activation_forward))
    register_kernel(KernelSpec(kind="dropout", init=_passthrough_init, forward=_dropout_forward))
