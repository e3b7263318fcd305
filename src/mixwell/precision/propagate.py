"""Attach mixed precision policies to every node of a model graph."""

from typing import FrozenSet, Iterable, List, Optional

from ..errors import ConfigurationError
from ..graph import Node
from .policy import DEFAULT_PRECISION, Policy, PrecisionLike, Precision


def _normalize_exceptions(exceptions: Iterable[str]) -> FrozenSet[str]:
    if isinstance(exceptions, str):
        # A bare string would otherwise be split into characters
        raise ConfigurationError(
            f"exceptions must be a collection of node kinds, got the string {exceptions!r}"
        )
    try:
        kinds = frozenset(exceptions)
    except TypeError:
        raise ConfigurationError(
            f"exceptions must be an iterable of node kinds, got {type(exceptions).__name__}"
        ) from None
    bad = [k for k in kinds if not isinstance(k, str)]
    if bad:
        raise ConfigurationError(f"Node kinds in exceptions must be strings, got {bad!r}")
    return kinds


def apply_policy(root: Node,
                 policy: Policy,
                 exceptions: Iterable[str] = (),
                 *,
                 default: PrecisionLike = DEFAULT_PRECISION) -> Node:
    """
    Rebuild a graph with a policy attached to every node.

    Nodes whose kind is listed in `exceptions` receive a policy with every
    role at `default` instead of `policy`, so precision-sensitive layers
    such as normalization keep running at full precision. The input graph
    is left untouched; the returned chain is made of fresh nodes.

    Args:
        root: Terminal node of the graph
        policy: Policy for every non-excepted node
        exceptions: Node kinds to skip
        default: Ambient precision used for excepted nodes

    Returns:
        Terminal node of the annotated graph

    Raises:
        ConfigurationError: If the options are malformed. Raised before
            any node is rebuilt.
    """
    if not isinstance(policy, Policy):
        raise ConfigurationError(f"policy must be a Policy, got {type(policy).__name__}")
    if not isinstance(root, Node):
        raise ConfigurationError(f"root must be a Node, got {type(root).__name__}")

    skipped = _normalize_exceptions(exceptions)
    fallback = Policy.uniform(Precision.coerce(default))

    chain: List[Node] = []
    node: Optional[Node] = root
    while node is not None:
        chain.append(node)
        node = node.parent

    rebuilt: Optional[Node] = None
    for node in reversed(chain):
        resolved = fallback if node.kind in skipped else policy
        rebuilt = node.with_policy(resolved, parent=rebuilt)

    return rebuilt
