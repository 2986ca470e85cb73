"""Unit tests for navgraph.validation."""

from __future__ import annotations

from navgraph.models import Edge, EdgeKind, Layer, NavGraph, Node, NodeSource, Obstacle, VerticalEdge
from navgraph.validation import validate_layer, validate_navgraph


def _layer(obstacles: list[Obstacle]) -> Layer:
    layer = Layer(index=0, obstacles=obstacles)
    layer.add_node(Node("a", 10.0, 50.0, 0, NodeSource.CENTROID))
    layer.add_node(Node("b", 90.0, 50.0, 0, NodeSource.CENTROID))
    layer.add_edge(0, 1)
    return layer


def test_clean_layer_has_no_issues() -> None:
    issues, counters = validate_layer(_layer([Obstacle(0, 40.0, 0.0, 20.0, 20.0)]), clearance=1.5)
    assert issues == []
    assert counters == {"node_checks": 2, "edge_checks": 1, "components": 1}


def test_edge_crossing_obstacle_is_an_error() -> None:
    """Edges through an obstacle are reported with the offending obstacle id."""
    issues, _ = validate_layer(_layer([Obstacle(7, 40.0, 40.0, 20.0, 20.0)]))

    assert [i["kind"] for i in issues] == ["edge_crosses_obstacle"]
    assert issues[0]["severity"] == "error"
    assert issues[0]["obstacle_id"] == 7
    assert issues[0]["edge_kind"] == "network"


def test_node_within_clearance_is_an_error() -> None:
    issues, _ = validate_layer(_layer([Obstacle(0, 0.0, 0.0, 9.0, 20.0)]), clearance=0.0)
    assert issues == []
    issues, _ = validate_layer(_layer([Obstacle(0, 0.0, 0.0, 9.0, 49.0)]), clearance=1.5)
    assert "node_in_obstacle" in [i["kind"] for i in issues]


def test_dangling_edge_and_components() -> None:
    """Bad handles are errors; extra components and unlinked connectors are warnings."""
    layer = _layer([])
    layer.add_node(Node("L0-0-access", 50.0, 90.0, 0, NodeSource.CONNECTOR_ACCESS))
    layer.add_node(Node("L0-C0", 50.0, 95.0, 0, NodeSource.CONNECTOR))
    layer.add_edge(2, 3, EdgeKind.CONNECTOR_INTERNAL)
    layer.edges.append(Edge(0, 42, 1.0))

    issues, _ = validate_layer(layer)
    kinds = {i["kind"]: i["severity"] for i in issues}

    assert kinds == {
        "dangling_edge": "error",
        "disconnected_component": "warning",
        "connector_unlinked": "warning",
    }


def test_navgraph_report_counts_vertical_edges() -> None:
    """Cross-floor edges are checked for missing endpoints."""
    floors = [_layer([]), _layer([])]
    floors[1].index = 1
    graph = NavGraph(100, 100, layers=floors, vertical_edges=[VerticalEdge(0, 0, 1, 5, 120.0, "stairs")])

    report = validate_navgraph(graph)

    assert report["ok"] is False
    assert report["summary"]["errors"] == 1
    assert report["summary"]["layers"] == 2
    assert report["summary"]["edge_checks"] == 3
