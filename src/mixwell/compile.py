"""Compilation of policy-annotated graphs into executable torch functions."""

from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field
import warnings

import torch

from .errors import CompilationError
from .graph import Node, iter_chain
from .precision.policy import DEFAULT_PRECISION, Policy, Precision, PrecisionLike
from .kernels import KernelRegistry, KernelSpec, get_registry

Params = Dict[str, torch.Tensor]


@dataclass
class CompilerConfig:
    """Compiler options."""
    device: str = "cpu"
    default: PrecisionLike = DEFAULT_PRECISION  # Policy for nodes that carry none
    warn_on_issues: bool = True


@dataclass
class CompiledNode:
    """A graph node with its kernel and resolved policy bound."""
    node: Node
    name: str
    kernel: KernelSpec
    policy: Policy
    in_shape: Tuple[Optional[int], ...] = ()
    out_shape: Tuple[Optional[int], ...] = ()
    param_names: List[str] = field(default_factory=list)
    state_names: List[str] = field(default_factory=list)

    def key(self, local: str) -> str:
        """Flat parameter name, e.g. dense1_kernel."""
        return f"{self.name}_{local}"


@dataclass
class ExecutionEngine:
    """
    Executable form of an annotated graph.

    Every trainable value is stored at its node's params precision, every
    node computes at its compute precision and hands its result on at its
    output precision.
    """
    root: Node
    compiled_nodes: List[CompiledNode]
    kernel_registry: KernelRegistry
    device: str = "cpu"
    param_policies: Dict[str, Policy] = field(default_factory=dict)
    issues: List[str] = field(default_factory=list)

    def __call__(self, params: Params, x: torch.Tensor, state: Optional[Params] = None) -> torch.Tensor:
        """Inference forward pass."""
        y, _ = self.forward(params, state if state is not None else self.init_state(), x)
        return y

    def init_params(self, seed: Optional[int] = None) -> Params:
        """Materialize trainable parameters at each node's params precision."""
        params, _ = self._materialize(seed)
        return params

    def init_state(self) -> Params:
        """Materialize non-trainable state (e.g. running statistics)."""
        _, state = self._materialize(None)
        return state

    def _materialize(self, seed: Optional[int]) -> Tuple[Params, Params]:
        generator = torch.Generator()
        if seed is not None:
            generator.manual_seed(seed)
        else:
            generator.seed()

        params: Params = {}
        state: Params = {}
        for cnode in self.compiled_nodes:
            local_params, local_state, _ = cnode.kernel.init(cnode.node.attrs, cnode.in_shape, generator)
            for local, value in local_params.items():
                params[cnode.key(local)] = cnode.policy.cast_to_param(value).to(self.device)
            for local, value in local_state.items():
                state[cnode.key(local)] = cnode.policy.cast_to_param(value).to(self.device)
        return params, state

    def forward(self,
                params: Params,
                state: Params,
                x: torch.Tensor,
                training: bool = False) -> Tuple[torch.Tensor, Params]:
        """
        Run the graph.

        Args:
            params: Trainable values keyed by flat name
            state: Non-trainable values keyed by flat name
            x: Graph input
            training: Enable batch statistics and dropout

        Returns:
            Graph output and updated state, stored at params precision
        """
        new_state: Params = {}
        for cnode in self.compiled_nodes:
            policy = cnode.policy

            # Operands go to compute precision before the kernel runs
            x = policy.cast_to_compute(x)
            local_params = {p: policy.cast_to_compute(params[cnode.key(p)]) for p in cnode.param_names}
            local_state = {s: policy.cast_to_compute(state[cnode.key(s)]) for s in cnode.state_names}

            x, updated = cnode.kernel.forward(x, local_params, local_state, cnode.node.attrs, training)
            x = policy.cast_to_output(x)

            for local in cnode.state_names:
                value = updated.get(local, local_state[local])
                new_state[cnode.key(local)] = policy.cast_to_param(value.detach())

        return x, new_state

    def cast_params(self, params: Params) -> Params:
        """Cast every value back down (or up) to its node's params precision."""
        return {
            name: self.param_policies[name].cast_to_param(value)
            for name, value in params.items()
        }

    def validate(self) -> List[str]:
        """Validate the compiled engine."""
        issues = list(self.issues)

        for cnode in self.compiled_nodes:
            issues.extend(self.kernel_registry.validate_for_device(
                cnode.node.kind, cnode.policy.compute, self.device
            ))

        return issues

    def precision_summary(self) -> Dict[str, Dict[str, str]]:
        """Per-node policy tags."""
        return {cnode.name: cnode.policy.describe() for cnode in self.compiled_nodes}


class Compiler:
    """
    Compiles an annotated graph to an executable engine.
    """

    def __init__(self, config: Optional[CompilerConfig] = None, registry: Optional[KernelRegistry] = None):
        self.config = config or CompilerConfig()
        self.kernel_registry = registry or get_registry()

    def compile(self, root: Node) -> ExecutionEngine:
        """
        Compile graph to executable engine.

        Args:
            root: Terminal node of a policy-annotated graph

        Returns:
            Compiled execution engine

        Raises:
            CompilationError: If a node kind has no kernel or names collide
        """
        fallback = Policy.uniform(Precision.coerce(self.config.default))
        compiled_nodes = []
        issues = []
        names = self._assign_names(root)
        in_shape: Tuple[Optional[int], ...] = ()

        for node, name in zip(iter_chain(root), names):
            kernel = self.kernel_registry.find_kernel(node.kind)
            if kernel is None:
                raise CompilationError(f"No kernel registered for node kind {node.kind!r} ({name})")

            policy = node.policy
            if policy is None:
                issues.append(f"Node {name} has no policy; using {fallback!r}")
                if self.config.warn_on_issues:
                    warnings.warn(f"Node {name} has no policy, compiling at {fallback.compute.value}")
                policy = fallback

            # Shape inference with a throwaway generator; values are discarded
            local_params, local_state, out_shape = kernel.init(node.attrs, in_shape, torch.Generator())

            compiled_nodes.append(CompiledNode(
                node=node,
                name=name,
                kernel=kernel,
                policy=policy,
                in_shape=in_shape,
                out_shape=out_shape,
                param_names=list(local_params),
                state_names=list(local_state),
            ))
            in_shape = out_shape

        engine = ExecutionEngine(
            root=root,
            compiled_nodes=compiled_nodes,
            kernel_registry=self.kernel_registry,
            device=self.config.device,
            issues=issues,
        )
        for cnode in compiled_nodes:
            for local in cnode.param_names + cnode.state_names:
                engine.param_policies[cnode.key(local)] = cnode.policy

        if self.config.warn_on_issues:
            for issue in engine.validate():
                if issue not in issues:
                    warnings.warn(f"Compilation issue: {issue}")

        return engine

    def _assign_names(self, root: Node) -> List[str]:
        """Explicit names are kept; others become <kind>_<index>, counted per kind."""
        counters: Dict[str, int] = {}
        names = []
        for node in iter_chain(root):
            if node.name is not None:
                name = node.name
            else:
                index = counters.get(node.kind, 0)
                counters[node.kind] = index + 1
                name = f"{node.kind}_{index}"
            if name in names:
                raise CompilationError(f"Duplicate node name {name!r}")
            names.append(name)
        return names


def compile(root: Node,
           device: str = "cpu",
           default: PrecisionLike = DEFAULT_PRECISION) -> ExecutionEngine:
    """
    Main compilation interface.

    Args:
        root: Terminal node of a policy-annotated graph
        device: Torch device type to materialize parameters on
        default: Policy precision for nodes that carry no policy

    Returns:
        Compiled execution engine
    """
    compiler = Compiler(CompilerConfig(device=device, default=default))
    return compiler.compile(root)
