"""
Dependency graph over a registry and its deployment order.
"""

import heapq
import logging
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .artifacts import AddressRef, ArtifactRegistry
from .errors import CyclicDependency, UnresolvedDependency

logger = logging.getLogger(__name__)

WHITE, GREY, BLACK = 0, 1, 2


class DependencyGraph:
    """Read-only view: edges point from a dependent to what it needs.

    Built by :func:`build`; rebuild it instead of changing it when the
    registry changes.
    """

    def __init__(self, nodes: Sequence[str], edges: Mapping[str, Tuple[str, ...]],
                 order: Sequence[str], external: Iterable[str] = ()):
        self._nodes = tuple(nodes)
        self._edges = MappingProxyType(dict(edges))
        self._order = tuple(order)
        self._external = frozenset(external)

    @property
    def nodes(self) -> Tuple[str, ...]:
        return self._nodes

    @property
    def edges(self) -> Mapping[str, Tuple[str, ...]]:
        return self._edges

    @property
    def order(self) -> Tuple[str, ...]:
        """Deployment order: every dependency precedes its dependents."""
        return self._order

    @property
    def external(self) -> frozenset:
        """Dependencies satisfied by addresses from outside the registry."""
        return self._external

    def dependencies_of(self, name: str) -> Tuple[str, ...]:
        return self._edges.get(name, ())

    def dependents_of(self, name: str) -> Tuple[str, ...]:
        return tuple(node for node in self._order if name in self._edges.get(node, ()))

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"DependencyGraph(order={list(self._order)!r})"


def _declared_dependencies(registry: ArtifactRegistry,
                           constructor_args: Mapping[str, Sequence[object]]) -> Dict[str, List[str]]:
    """Slot dependencies followed by AddressRef constructor arguments, no repeats."""
    declared: Dict[str, List[str]] = {}
    for artifact in registry:
        deps = list(artifact.dependencies)
        for arg in constructor_args.get(artifact.name, ()):
            if isinstance(arg, AddressRef) and arg.name not in deps:
                deps.append(arg.name)
        declared[artifact.name] = deps
    return declared


def _find_cycle(nodes: Sequence[str], edges: Mapping[str, Sequence[str]]) -> Optional[List[str]]:
    """Three-colour depth-first search; returns the first cycle found."""
    colour = {node: WHITE for node in nodes}
    path: List[str] = []

    def visit(node: str) -> Optional[List[str]]:
        colour[node] = GREY
        path.append(node)
        for dep in edges.get(node, ()):
            if colour[dep] == GREY:
                return path[path.index(dep):] + [dep]
            if colour[dep] == WHITE:
                cycle = visit(dep)
                if cycle:
                    return cycle
        path.pop()
        colour[node] = BLACK
        return None

    for node in nodes:
        if colour[node] == WHITE:
            cycle = visit(node)
            if cycle:
                return cycle
    return None


def build(registry: ArtifactRegistry, external: Iterable[str] = (),
          constructor_args: Optional[Mapping[str, Sequence[object]]] = None) -> DependencyGraph:
    """Build the dependency graph of a registry.

    Args:
        registry: Artifacts to deploy
        external: Names already deployed elsewhere (a seeded address table);
            they satisfy dependencies without being part of the graph
        constructor_args: Per-artifact constructor arguments; AddressRef
            values add dependency edges

    Returns:
        DependencyGraph with a deterministic topological order. Ties are
        broken by registration order.

    Raises:
        UnresolvedDependency: a dependency is neither registered nor external
        CyclicDependency: an artifact transitively depends on itself
    """
    external_names = set(external)
    declared = _declared_dependencies(registry, constructor_args or {})

    nodes = registry.names()
    edges: Dict[str, Tuple[str, ...]] = {}
    outside = set()
    for name in nodes:
        internal = []
        for dep in declared[name]:
            if dep in registry:
                internal.append(dep)
            elif dep in external_names:
                outside.add(dep)
            else:
                raise UnresolvedDependency(name, dep)
        edges[name] = tuple(internal)

    cycle = _find_cycle(nodes, edges)
    if cycle:
        raise CyclicDependency(cycle)

    # Kahn's algorithm; the heap holds (registration index, name) of ready nodes
    position = {name: index for index, name in enumerate(nodes)}
    remaining = {name: len(edges[name]) for name in nodes}
    dependents: Dict[str, List[str]] = {name: [] for name in nodes}
    for name in nodes:
        for dep in edges[name]:
            dependents[dep].append(name)

    ready = [(position[name], name) for name in nodes if remaining[name] == 0]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        _, current = heapq.heappop(ready)
        order.append(current)
        for dependent in dependents[current]:
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                heapq.heappush(ready, (position[dependent], dependent))

    logger.debug(f"Deployment order: {order}")
    return DependencyGraph(nodes, edges, order, outside)
