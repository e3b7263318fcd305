"""Model graph: a chain of unary nodes, each pointing at its parent.

A graph is referred to by its terminal node. Following ``parent`` links
from any node must reach a single input node; cyclic chains are a
precondition violation and are not detected.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Iterator, List, Mapping, Optional, Tuple, Union

if TYPE_CHECKING:
    from .precision.policy import Policy

Kind = str
AttrV = Union[int, float, str, bool, None, Tuple[Union[int, None], ...]]


@dataclass(frozen=True, eq=False)
class Node:
    """One operation in a model graph."""
    kind: Kind
    parent: Optional["Node"] = None
    name: Optional[str] = None
    attrs: Mapping[str, AttrV] = field(default_factory=dict)
    policy: Optional["Policy"] = None

    def __post_init__(self):
        # Freeze configuration so rebuilt nodes can share it safely
        if not isinstance(self.attrs, MappingProxyType):
            object.__setattr__(self, 'attrs', MappingProxyType(dict(self.attrs)))

    def with_policy(self, policy: "Policy", parent: Optional["Node"] = None) -> "Node":
        """Copy of this node carrying `policy` and chained to `parent`."""
        return replace(self, parent=parent, policy=policy)

    def __repr__(self) -> str:
        parent = None
        if self.parent is not None:
            parent = self.parent.name or self.parent.kind
        return f"Node(kind={self.kind!r}, name={self.name!r}, parent={parent!r}, policy={self.policy!r})"

    # Fluent builders
    def dense(self, units: int, **opts) -> "Node":
        return dense(self, units, **opts)

    def batch_norm(self, **opts) -> "Node":
        return batch_norm(self, **opts)

    def layer_norm(self, **opts) -> "Node":
        return layer_norm(self, **opts)

    def activation(self, fn: str, **opts) -> "Node":
        return activation(self, fn, **opts)

    def dropout(self, rate: float = 0.5, **opts) -> "Node":
        return dropout(self, rate, **opts)


def inputs(shape: Tuple[Optional[int], ...], name: Optional[str] = None) -> Node:
    """Graph input. A leading None in `shape` is the batch dimension."""
    return Node(kind="input", name=name, attrs={'shape': tuple(shape)})


def dense(parent: Node,
          units: int,
          activation: Optional[str] = None,
          use_bias: bool = True,
          name: Optional[str] = None) -> Node:
    """Fully connected layer."""
    if units <= 0:
        raise ValueError(f"dense units must be positive, got {units}")
    return Node(kind="dense", parent=parent, name=name,
                attrs={'units': units, 'activation': activation, 'use_bias': use_bias})


def batch_norm(parent: Node,
               epsilon: float = 1e-5,
               momentum: float = 0.1,
               name: Optional[str] = None) -> Node:
    """Batch normalization over the batch axis."""
    return Node(kind="batch_norm", parent=parent, name=name,
                attrs={'epsilon': epsilon, 'momentum': momentum})


def layer_norm(parent: Node, epsilon: float = 1e-5, name: Optional[str] = None) -> Node:
    """Layer normalization over the feature axis."""
    return Node(kind="layer_norm", parent=parent, name=name, attrs={'epsilon': epsilon})


def activation(parent: Node, fn: str, name: Optional[str] = None) -> Node:
    """Elementwise activation."""
    return Node(kind="activation", parent=parent, name=name, attrs={'fn': fn})


def dropout(parent: Node, rate: float = 0.5, name: Optional[str] = None) -> Node:
    """Inverted dropout, active only while training."""
    if not 0.0 <= rate < 1.0:
        raise ValueError(f"dropout rate must be in [0, 1), got {rate}")
    return Node(kind="dropout", parent=parent, name=name, attrs={'rate': rate})


def iter_chain(root: Node) -> Iterator[Node]:
    """Yield nodes from the graph input down to `root`."""
    chain: List[Node] = []
    node: Optional[Node] = root
    while node is not None:
        chain.append(node)
        node = node.parent
    return reversed(chain)


def graph_size(root: Node) -> int:
    return sum(1 for _ in iter_chain(root))


def kinds(root: Node) -> List[Kind]:
    """Node kinds in input-to-output order."""
    return [node.kind for node in iter_chain(root)]


def summarize(root: Node) -> List[Dict[str, object]]:
    """Flat, printable view of the graph."""
    rows = []
    for node in iter_chain(root):
        rows.append({
            'kind': node.kind,
            'name': node.name,
            'attrs': dict(node.attrs),
            'policy': node.policy.describe() if node.policy else None,
        })
    return rows
