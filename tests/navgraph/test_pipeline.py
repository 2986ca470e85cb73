"""Unit tests for navgraph.pipeline."""

from __future__ import annotations

import pytest

from navgraph.models import NavGraph
from navgraph.pipeline import (
    CancelToken,
    GenerationCancelled,
    GenerationRequest,
    generate_navgraph,
    perform_warmup,
)
from navgraph.spatial_index import SpatialIndexCache
from navgraph.validation import validate_navgraph

PAYLOAD = {"width": 300, "height": 200, "layerCount": 2, "obstacleCount": 30, "seed": 42}


def _fingerprint(graph: NavGraph) -> list:
    return [
        (
            [ob.to_dict() for ob in layer.obstacles],
            [n.to_dict() for n in layer.nodes],
            [(e.u, e.v, round(e.cost, 9), e.kind.value) for e in layer.edges],
        )
        for layer in graph.layers
    ]


def test_request_from_payload_defaults() -> None:
    """Missing optional fields fall back to defaults."""
    request = GenerationRequest.from_payload({"width": 100, "height": 50, "layerCount": 1})
    assert request.obstacle_count == 0
    assert request.mode.value == "centroid"
    assert request.seed >= 0
    assert request.to_payload()["layerCount"] == 1


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"width": 0, "height": 10, "layerCount": 1}, "width and height"),
        ({"width": 10, "height": 10, "layerCount": 0}, "layerCount"),
        ({"width": 10, "height": 10, "layerCount": 1, "obstacleCount": -1}, "obstacleCount"),
        ({"width": 10.5, "height": 10, "layerCount": 1}, "must be an integer"),
        ({"width": 10, "height": 10}, "layerCount is required"),
        ({"width": 10, "height": 10, "layerCount": 1, "mode": "grid"}, "mode must be one of"),
        ({"width": 10, "height": 10, "layerCount": 1, "seed": -3}, "seed"),
    ],
)
def test_invalid_parameters_raise(payload: dict, message: str) -> None:
    """Every validation failure is a ValueError prefixed with 'Invalid parameters'."""
    with pytest.raises(ValueError, match=f"Invalid parameters: .*{message}"):
        GenerationRequest.from_payload(payload)


def test_same_seed_same_graph() -> None:
    """Generation is deterministic for a fixed seed."""
    first = generate_navgraph(GenerationRequest.from_payload(PAYLOAD))
    second = generate_navgraph(GenerationRequest.from_payload(PAYLOAD))

    assert _fingerprint(first) == _fingerprint(second)
    assert [c.to_dict() for c in first.connections] == [c.to_dict() for c in second.connections]


def test_generated_graph_passes_quality_gate() -> None:
    """No node or edge of any floor violates the clearance."""
    graph = generate_navgraph(GenerationRequest.from_payload({**PAYLOAD, "layerCount": 3}))

    report = graph.metadata["validation"]
    assert report["summary"]["errors"] == 0
    assert validate_navgraph(graph, clearance=1.5)["ok"] is True


def test_metadata_and_connections() -> None:
    """Multi-floor graphs carry one connection per connector per floor pair."""
    graph = generate_navgraph(GenerationRequest.from_payload(PAYLOAD))
    meta = graph.metadata

    assert meta["layerCount"] == 2
    assert meta["seed"] == 42
    assert len(graph.connectors) == 4
    assert len(graph.connections) == 4
    assert meta["crossFloorEdges"] == 8
    assert meta["totalNodes"] == sum(len(layer.nodes) for layer in graph.layers)
    assert meta["transfer"]["bufferCount"] > 0
    for layer in graph.layers:
        assert layer.nodes_packed.size == 2 * len(layer.nodes)
        assert layer.edges_packed.size == 4 * len(layer.edges)
        assert layer.metadata["nodeCount"] == len(layer.nodes)
    assert graph.obstacles_packed.size == 4 * meta["obstacleCount"]


@pytest.mark.parametrize("mode", ["portal", "voronoi"])
def test_other_modes_build(mode: str) -> None:
    graph = generate_navgraph(GenerationRequest.from_payload({**PAYLOAD, "mode": mode}))
    assert graph.metadata["mode"] == mode
    assert all(layer.metadata["mode"] == mode for layer in graph.layers)
    assert graph.metadata["validation"]["summary"]["errors"] == 0


def test_single_floor_has_no_connectors() -> None:
    graph = generate_navgraph(GenerationRequest.from_payload({**PAYLOAD, "layerCount": 1}))
    assert graph.connectors == []
    assert graph.vertical_edges == []


def test_events_are_emitted_in_order() -> None:
    """Obstacles are announced first, then one progress event per floor."""
    events: list[tuple[str, dict]] = []
    generate_navgraph(GenerationRequest.from_payload(PAYLOAD), emit=lambda t, p: events.append((t, p)))

    assert [t for t, _ in events] == ["OBSTACLE_READY", "PROGRESS", "PROGRESS"]
    assert events[-1][1]["progress"] == pytest.approx(1.0)
    assert events[1][1]["currentLayer"] == 0


def test_cancelled_token_stops_generation() -> None:
    token = CancelToken()
    token.cancel()
    with pytest.raises(GenerationCancelled, match="before floor 0"):
        generate_navgraph(GenerationRequest.from_payload(PAYLOAD), cancel=token)


def test_cache_is_reused_between_runs() -> None:
    """A second identical run hits the spatial index cache."""
    cache = SpatialIndexCache()
    generate_navgraph(GenerationRequest.from_payload(PAYLOAD), cache=cache)
    misses = cache.misses
    generate_navgraph(GenerationRequest.from_payload(PAYLOAD), cache=cache)

    assert cache.misses == misses
    assert cache.hits > 0


def test_run_populates_the_given_cache() -> None:
    """An empty caller-owned cache is used, and the connect step reuses each floor grid."""
    cache = SpatialIndexCache()
    graph = generate_navgraph(GenerationRequest.from_payload(PAYLOAD), cache=cache)

    assert len(cache) == 2
    assert cache.misses == 2
    assert cache.hits == 2
    assert graph.metadata["indexCache"]["hits"] == 2


def test_warmup_reports_duration() -> None:
    assert perform_warmup() >= 0.0
