import pytest

from jsdeob.exceptions import AmbiguousMatch
from jsdeob.flow_graph import EXIT, StateGraph, structure


def _graph(entry, edges):
    graph = StateGraph(entry=entry)
    for state, targets in edges.items():
        graph.add(state, targets)
    return graph


def _states(items):
    return [item.state for item in items]


def test_linear_chain_is_emitted_in_order():
    graph = _graph(1, {1: [2], 2: [3], 3: [EXIT]})

    plan = structure(graph)

    assert _states(plan) == [1, 2, 3]
    assert not any(item.is_branch for item in plan)


def test_diamond_merges_at_post_dominator():
    graph = _graph("a", {"a": ["b", "c"], "b": ["d"], "c": ["d"], "d": [EXIT]})

    plan = structure(graph)

    assert _states(plan) == ["a", "d"]
    branch = plan[0]
    assert branch.is_branch
    assert _states(branch.then_items) == ["b"]
    assert _states(branch.else_items) == ["c"]


def test_branch_arm_may_be_empty():
    graph = _graph("a", {"a": ["b", "c"], "b": ["c"], "c": []})

    plan = structure(graph)

    assert _states(plan) == ["a", "c"]
    assert _states(plan[0].then_items) == ["b"]
    assert plan[0].else_items == []


def test_terminal_states_end_their_path():
    graph = _graph("a", {"a": ["b", "c"], "b": [], "c": [EXIT]})

    plan = structure(graph)

    assert _states(plan) == ["a"]
    assert _states(plan[0].then_items) == ["b"]
    assert _states(plan[0].else_items) == ["c"]


def test_unreachable_states_are_ignored():
    graph = _graph(1, {1: [EXIT], 2: [1]})

    assert graph.reachable() == [1]
    assert _states(structure(graph)) == [1]


def test_cycles_are_rejected():
    graph = _graph(1, {1: [2], 2: [1]})

    assert graph.find_cycle() == [1, 2, 1]
    with pytest.raises(AmbiguousMatch, match="cycle"):
        structure(graph)


def test_unknown_targets_are_rejected():
    graph = _graph(1, {1: [9]})

    with pytest.raises(AmbiguousMatch, match="unknown state"):
        structure(graph)
