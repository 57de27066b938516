"""
move_api.bundle — dependency ordering for modules published together.

Given the raw blobs of a bundle, `sort_bundle` decodes every blob, builds the
intra-bundle dependency graph and returns the modules in an order where each
module follows every bundle member it depends on.

Rules
-----
- Every blob is decoded first; the first failure aborts the call, annotated
  with the offending `blob_index`.
- Two blobs with the same (address, name) → DuplicateModuleInBundle.
- Dependencies on modules outside the bundle are ignored (assumed published).
  Friend declarations are not dependencies.
- Ordering is Kahn's algorithm with a min-heap of ready nodes keyed by input
  index, so modules with no relative constraint keep their input order and
  re-submitting the same bundle always yields the same order.
- A cycle → CyclicModuleDependency naming the modules of one concrete cycle;
  no partial order is ever returned.

The graph lives only for the duration of one call.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .binary import CompiledModule
from .config import DEFAULT_PROFILE, DeserializationProfile
from .decoder import decode_module
from .errors import CyclicModuleDependency, DuplicateModuleInBundle, MoveApiError
from .identifiers import ModuleId

log = logging.getLogger(__name__)


# ------------------------------ Data model ----------------------------------


@dataclass
class DepGraph:
    """
    Precedence graph over bundle indices [0..n-1].

    `edges[u]` holds the nodes that must come *after* u (the dependents of u);
    `indeg[v]` counts the in-bundle dependencies of v.
    """

    n: int
    edges: Dict[int, Set[int]] = field(default_factory=dict)
    indeg: List[int] = field(default_factory=list)

    @classmethod
    def from_dependencies(cls, deps: Sequence[Sequence[int]]) -> "DepGraph":
        """`deps[i]` lists the indices module i depends on."""
        n = len(deps)
        edges: Dict[int, Set[int]] = {i: set() for i in range(n)}
        for dependent, targets in enumerate(deps):
            for dependency in targets:
                edges[dependency].add(dependent)
        indeg = [0] * n
        for vs in edges.values():
            for v in vs:
                indeg[v] += 1
        return cls(n=n, edges=edges, indeg=indeg)

    def successors(self, u: int) -> Set[int]:
        return self.edges.get(u, set())

    def dependencies(self, v: int) -> List[int]:
        return sorted(u for u, vs in self.edges.items() if v in vs)


@dataclass(frozen=True)
class BundleEntry:
    index: int
    module: CompiledModule
    code: bytes

    @property
    def module_id(self) -> ModuleId:
        return self.module.self_id()


@dataclass(frozen=True)
class SortedBundle:
    entries: Tuple[BundleEntry, ...]

    @property
    def codes(self) -> List[bytes]:
        return [e.code for e in self.entries]

    @property
    def modules(self) -> List[CompiledModule]:
        return [e.module for e in self.entries]

    @property
    def module_ids(self) -> List[ModuleId]:
        return [e.module_id for e in self.entries]

    @property
    def order(self) -> List[int]:
        """Original bundle index of each output position."""
        return [e.index for e in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


# ------------------------------ Sorting -------------------------------------


def stable_topo_order(graph: DepGraph) -> Tuple[List[int], List[int]]:
    """
    Kahn's algorithm; ties broken by smallest index.

    Returns (order, remaining). `remaining` is non-empty iff the graph has a
    cycle, and then holds every node that could not be placed.
    """
    indeg = list(graph.indeg)
    ready = [i for i in range(graph.n) if indeg[i] == 0]
    heapq.heapify(ready)
    order: List[int] = []
    while ready:
        u = heapq.heappop(ready)
        order.append(u)
        for v in graph.successors(u):
            indeg[v] -= 1
            if indeg[v] == 0:
                heapq.heappush(ready, v)
    placed = set(order)
    remaining = [i for i in range(graph.n) if i not in placed]
    return order, remaining


def find_cycle(graph: DepGraph, remaining: Sequence[int]) -> List[int]:
    """
    One concrete cycle among the unplaced nodes, in dependent → dependency order.

    Every unplaced node has at least one unplaced dependency, so walking
    dependencies from any unplaced node must revisit a node.
    """
    pending = set(remaining)
    node = min(pending)
    path: List[int] = []
    position: Dict[int, int] = {}
    while node not in position:
        position[node] = len(path)
        path.append(node)
        node = min(d for d in graph.dependencies(node) if d in pending)
    return path[position[node] :]


def _decode_all(bundle: Sequence[bytes], profile: DeserializationProfile) -> List[CompiledModule]:
    modules: List[CompiledModule] = []
    for i, code in enumerate(bundle):
        try:
            modules.append(decode_module(code, profile))
        except MoveApiError as e:
            log.info("bundle rejected: blob %d failed to decode", i, extra={"blob_index": i, "code": e.code})
            raise e.with_context(blob_index=i) from None
    return modules


def _index_by_id(modules: Sequence[CompiledModule]) -> Dict[ModuleId, int]:
    by_id: Dict[ModuleId, int] = {}
    for i, module in enumerate(modules):
        mid = module.self_id()
        first = by_id.get(mid)
        if first is not None:
            log.info("bundle rejected: duplicate module %s", mid, extra={"indices": [first, i]})
            raise DuplicateModuleInBundle(str(mid), (first, i))
        by_id[mid] = i
    return by_id


def build_graph(modules: Sequence[CompiledModule]) -> DepGraph:
    by_id = _index_by_id(modules)
    deps: List[List[int]] = []
    for module in modules:
        targets = [by_id[d] for d in module.immediate_dependencies() if d in by_id]
        deps.append(targets)
    return DepGraph.from_dependencies(deps)


def sort_bundle(
    bundle: Sequence[bytes], profile: Optional[DeserializationProfile] = None
) -> SortedBundle:
    profile = profile or DEFAULT_PROFILE
    codes = [bytes(c) for c in bundle]
    modules = _decode_all(codes, profile)
    graph = build_graph(modules)
    order, remaining = stable_topo_order(graph)
    if remaining:
        cycle = [str(modules[i].self_id()) for i in find_cycle(graph, remaining)]
        log.info("bundle rejected: dependency cycle", extra={"cycle": cycle})
        raise CyclicModuleDependency(cycle)
    log.debug("bundle sorted", extra={"size": len(codes), "order": order})
    return SortedBundle(tuple(BundleEntry(i, modules[i], codes[i]) for i in order))


__all__ = [
    "DepGraph",
    "BundleEntry",
    "SortedBundle",
    "stable_topo_order",
    "find_cycle",
    "build_graph",
    "sort_bundle",
]
