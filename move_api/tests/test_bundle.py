"""
Bundle ordering: dependencies first, input order otherwise, and no partial
result on duplicates, cycles or undecodable blobs.
"""

from __future__ import annotations

import logging
import random

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from move_api.bundle import DepGraph, find_cycle, sort_bundle, stable_topo_order
from move_api.errors import (
    CyclicModuleDependency,
    DuplicateModuleInBundle,
    MoveApiError,
    StructuralViolation,
    TruncatedInput,
)
from move_api.identifiers import ModuleId

from .builders import ADDR_1, ADDR_CAFE, EMPTY_MODULE_V6, module_blob


def _names(result):
    return [mid.name for mid in result.module_ids]


def test_chain_is_reordered(chain_bundle):
    a, b, c = chain_bundle["A"], chain_bundle["B"], chain_bundle["C"]
    result = sort_bundle([c, a, b])
    assert _names(result) == ["A", "B", "C"]
    assert result.codes == [a, b, c]
    assert result.order == [1, 2, 0]
    assert [m.self_id() for m in result.modules] == result.module_ids
    assert result.modules[0].immediate_dependencies() == []
    assert len(result) == 3


def test_sorted_input_is_unchanged(chain_bundle):
    blobs = [chain_bundle["A"], chain_bundle["B"], chain_bundle["C"]]
    assert sort_bundle(blobs).codes == blobs


def test_independent_modules_keep_input_order():
    blobs = [module_blob(ADDR_CAFE, n) for n in ("Z", "X", "Y")]
    assert _names(sort_bundle(blobs)) == ["Z", "X", "Y"]


def test_ready_modules_are_taken_by_input_index():
    b = module_blob(ADDR_CAFE, "B", deps=[(ADDR_CAFE, "A")])
    x = module_blob(ADDR_CAFE, "X")
    a = module_blob(ADDR_CAFE, "A")
    assert _names(sort_bundle([b, x, a])) == ["X", "A", "B"]


def test_dependencies_outside_the_bundle_are_ignored():
    pool = module_blob(ADDR_CAFE, "Pool", deps=[(ADDR_1, "coin"), (ADDR_1, "vector")])
    math = module_blob(ADDR_CAFE, "Math", deps=[(ADDR_1, "vector")])
    assert _names(sort_bundle([pool, math])) == ["Pool", "Math"]


def test_same_name_at_different_addresses_is_not_a_duplicate():
    a1 = module_blob(ADDR_1, "A")
    a2 = module_blob(ADDR_CAFE, "A", deps=[(ADDR_1, "A")])
    result = sort_bundle([a2, a1])
    assert result.module_ids == [ModuleId(ADDR_1, "A"), ModuleId(ADDR_CAFE, "A")]


def test_empty_bundle():
    result = sort_bundle([])
    assert result.codes == [] and len(result) == 0


def test_resubmission_is_deterministic(chain_bundle):
    blobs = [chain_bundle["C"], module_blob(ADDR_CAFE, "Q"), chain_bundle["A"], chain_bundle["B"]]
    first = sort_bundle(blobs).codes
    for _ in range(3):
        assert sort_bundle(list(blobs)).codes == first


# -- rejections ---------------------------------------------------------------


def test_two_module_cycle():
    a = module_blob(ADDR_CAFE, "A", deps=[(ADDR_CAFE, "B")])
    b = module_blob(ADDR_CAFE, "B", deps=[(ADDR_CAFE, "A")])
    with pytest.raises(CyclicModuleDependency) as ei:
        sort_bundle([a, b])
    assert ei.value.cycle == ["0xcafe::A", "0xcafe::B"]
    assert ei.value.to_dict()["code"] == "MOVE/CYCLIC_MODULE_DEPENDENCY"
    assert "0xcafe::A -> 0xcafe::B -> 0xcafe::A" in ei.value.message


def test_cycle_report_names_only_cycle_members():
    a = module_blob(ADDR_CAFE, "A", deps=[(ADDR_CAFE, "C")])
    b = module_blob(ADDR_CAFE, "B", deps=[(ADDR_CAFE, "A")])
    c = module_blob(ADDR_CAFE, "C", deps=[(ADDR_CAFE, "B")])
    d = module_blob(ADDR_CAFE, "D", deps=[(ADDR_CAFE, "A")])
    e = module_blob(ADDR_CAFE, "E")
    with pytest.raises(CyclicModuleDependency) as ei:
        sort_bundle([d, e, a, b, c])
    assert sorted(ei.value.cycle) == ["0xcafe::A", "0xcafe::B", "0xcafe::C"]


def test_duplicate_module():
    a = module_blob(ADDR_CAFE, "A")
    a_again = module_blob(ADDR_CAFE, "A", deps=[(ADDR_1, "coin")])
    b = module_blob(ADDR_CAFE, "B")
    with pytest.raises(DuplicateModuleInBundle) as ei:
        sort_bundle([a, b, a_again])
    assert ei.value.data == {"module": "0xcafe::A", "indices": [0, 2]}


def test_undecodable_blob_reports_its_index(chain_bundle):
    with pytest.raises(MoveApiError) as ei:
        sort_bundle([chain_bundle["A"], b"\x00\x01", chain_bundle["B"]])
    assert isinstance(ei.value, StructuralViolation)
    assert ei.value.data["blob_index"] == 1
    assert ei.value.data["status"] == "BAD_MAGIC"


def test_truncated_blob_keeps_its_class():
    with pytest.raises(TruncatedInput) as ei:
        sort_bundle([EMPTY_MODULE_V6, EMPTY_MODULE_V6[:20]])
    assert ei.value.data["blob_index"] == 1


def test_rejections_are_logged(caplog):
    caplog.set_level(logging.INFO, logger="move_api")
    a = module_blob(ADDR_CAFE, "A")
    with pytest.raises(DuplicateModuleInBundle):
        sort_bundle([a, a])
    assert any("duplicate module" in r.getMessage() for r in caplog.records)


# -- graph helpers ------------------------------------------------------------


def test_stable_topo_order_on_raw_graph():
    # 0 depends on 2, 1 depends on 0
    g = DepGraph.from_dependencies([[2], [0], []])
    order, remaining = stable_topo_order(g)
    assert order == [2, 0, 1] and remaining == []
    assert g.dependencies(0) == [2]


def test_find_cycle_walks_smallest_dependency():
    g = DepGraph.from_dependencies([[1], [2, 3], [1], [0]])
    order, remaining = stable_topo_order(g)
    assert order == []
    # 0 -> 1 -> min(2, 3) = 2 -> 1 closes the loop
    cycle = find_cycle(g, remaining)
    assert cycle == [1, 2]
    for u, v in zip(cycle, cycle[1:] + cycle[:1]):
        assert v in g.dependencies(u)


# -- properties ---------------------------------------------------------------


@st.composite
def random_dags(draw):
    n = draw(st.integers(min_value=1, max_value=8))
    rank = draw(st.permutations(list(range(n))))
    deps = []
    for i in range(n):
        lower = [j for j in range(n) if rank[j] < rank[i]]
        deps.append(draw(st.lists(st.sampled_from(lower), unique=True)) if lower else [])
    return deps


@settings(max_examples=40, deadline=None)
@given(random_dags(), st.randoms(use_true_random=False))
def test_random_dags_sort_dependencies_first(deps, rnd: random.Random):
    blobs = [
        module_blob(ADDR_CAFE, f"M{i}", deps=[(ADDR_CAFE, f"M{j}") for j in targets])
        for i, targets in enumerate(deps)
    ]
    result = sort_bundle(blobs)
    position = {mid.name: pos for pos, mid in enumerate(result.module_ids)}
    assert sorted(position) == sorted(f"M{i}" for i in range(len(deps)))
    for i, targets in enumerate(deps):
        for j in targets:
            assert position[f"M{j}"] < position[f"M{i}"]
    assert sort_bundle(blobs).codes == result.codes
    # Sorting the sorted output is a no-op.
    assert sort_bundle(result.codes).codes == result.codes
    shuffled = list(blobs)
    rnd.shuffle(shuffled)
    reordered = {mid.name: pos for pos, mid in enumerate(sort_bundle(shuffled).module_ids)}
    for i, targets in enumerate(deps):
        for j in targets:
            assert reordered[f"M{j}"] < reordered[f"M{i}"]
