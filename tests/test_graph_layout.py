import math

import pytest
from pydantic import ValidationError

from wayfinder.models.graph import MapEdge, MapNode
from wayfinder.models.layout import LayoutConfig
from wayfinder.services.graph_layout import compute_layout, count_skipped_edges


def _nodes(*ids):
    return [MapNode(id=node_id, concept=f"concept {node_id}") for node_id in ids]


def _edge(edge_id, source, target, relation="analogy"):
    return MapEdge(id=edge_id, from_node=source, to_node=target, relation=relation)


def _distance(positions, first, second):
    a, b = positions[first], positions[second]
    return math.hypot(a.x - b.x, a.y - b.y)


def _all_finite(positions):
    return all(math.isfinite(pos.x) and math.isfinite(pos.y) for pos in positions.values())


def test_empty_graph_returns_empty_mapping():
    assert compute_layout([], []) == {}


def test_single_node_sits_on_initial_circle():
    positions = compute_layout(_nodes("solo"), [])

    assert list(positions) == ["solo"]
    assert positions["solo"].x == pytest.approx(200.0)
    assert positions["solo"].y == pytest.approx(0.0)


def test_one_entry_per_node():
    nodes = _nodes("a", "b", "c", "d", "e")
    edges = [_edge("e1", "a", "b"), _edge("e2", "c", "d", "contrast")]

    positions = compute_layout(nodes, edges)

    assert set(positions) == {"a", "b", "c", "d", "e"}
    assert _all_finite(positions)


def test_layout_is_deterministic():
    nodes = _nodes("a", "b", "c", "d")
    edges = [_edge("e1", "a", "b"), _edge("e2", "b", "c", "pattern"), _edge("e3", "d", "a", "association")]

    first = compute_layout(nodes, edges)
    second = compute_layout(nodes, edges)

    assert first == second


def test_self_loop_is_harmless():
    positions = compute_layout(_nodes("solo"), [_edge("loop", "solo", "solo")])

    assert positions["solo"].x == pytest.approx(200.0)
    assert positions["solo"].y == pytest.approx(0.0)


def test_self_loop_in_larger_graph_stays_finite():
    nodes = _nodes("a", "b", "c")
    edges = [_edge("loop", "b", "b"), _edge("e1", "a", "c")]

    positions = compute_layout(nodes, edges)

    assert _all_finite(positions)


def test_dangling_edge_is_skipped():
    nodes = _nodes("n1", "n2")
    clean = compute_layout(nodes, [_edge("e1", "n1", "n2")])
    with_dangling = compute_layout(nodes, [_edge("e1", "n1", "n2"), _edge("e2", "n1", "ghost")])

    assert _all_finite(with_dangling)
    assert with_dangling == clean


def test_distinct_nodes_never_share_a_coordinate():
    nodes = _nodes(*[f"n{i}" for i in range(8)])
    edges = [_edge(f"e{i}", f"n{i}", f"n{i + 1}") for i in range(7)]

    positions = compute_layout(nodes, edges)

    coordinates = [(pos.x, pos.y) for pos in positions.values()]
    assert len(set(coordinates)) == len(coordinates)


def test_connected_pair_ends_closer_than_unconnected_pair():
    nodes = _nodes("A", "B")

    connected = compute_layout(nodes, [_edge("e1", "A", "B")])
    unconnected = compute_layout(nodes, [])

    assert _distance(connected, "A", "B") < _distance(unconnected, "A", "B")


def test_edge_pulls_its_endpoints_together():
    positions = compute_layout(_nodes("A", "B", "C"), [_edge("e1", "A", "B")])

    assert _distance(positions, "A", "B") < _distance(positions, "A", "C")
    assert _distance(positions, "A", "B") < _distance(positions, "B", "C")


def test_reference_scenario_with_fifty_iterations():
    nodes = _nodes("n1", "n2", "n3")
    edges = [_edge("e1", "n1", "n2", "analogy")]

    positions = compute_layout(nodes, edges, LayoutConfig(iterations=50))

    assert len(positions) == 3
    assert _all_finite(positions)
    assert _distance(positions, "n1", "n2") < _distance(positions, "n1", "n3")


def test_hub_with_many_long_edges_stays_finite():
    leaves = [f"leaf{i}" for i in range(40)]
    nodes = _nodes("hub", *leaves)
    edges = [_edge(f"e{i}", "hub", leaf) for i, leaf in enumerate(leaves)]

    positions = compute_layout(nodes, edges, LayoutConfig(iterations=100))

    assert _all_finite(positions)


def test_more_iterations_change_the_result():
    nodes = _nodes("a", "b", "c")
    edges = [_edge("e1", "a", "b")]

    short = compute_layout(nodes, edges, LayoutConfig(iterations=1))
    long = compute_layout(nodes, edges, LayoutConfig(iterations=60))

    assert short != long


@pytest.mark.parametrize(
    "overrides",
    [
        {"iterations": 0},
        {"canvas_area": 0},
        {"min_radius": -1},
        {"repulsion_strength": 0},
        {"attraction_strength": -0.1},
        {"max_pull_fraction": 0.5},
    ],
)
def test_invalid_config_is_rejected(overrides):
    with pytest.raises(ValidationError):
        LayoutConfig(**overrides)


def test_count_skipped_edges():
    nodes = _nodes("a", "b")
    edges = [_edge("e1", "a", "b"), _edge("e2", "a", "zz"), _edge("e3", "yy", "b"), _edge("e4", "a", "a")]

    assert count_skipped_edges(nodes, edges) == 2
