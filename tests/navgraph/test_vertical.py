"""Unit tests for navgraph.vertical."""

from __future__ import annotations

import math

import pytest

from navgraph.config import BuildOptions
from navgraph.layer_builder import build_layer
from navgraph.models import Connector, ConnectorType, EdgeKind, NodeSource, Obstacle
from navgraph.pipeline import GenerationRequest, generate_navgraph
from navgraph.vertical import connect_floors, connector_avoid_zones, place_connectors


def _connector(kind: ConnectorType = ConnectorType.STAIRS) -> Connector:
    return Connector(0, 100.0, 100.0, kind, 15.0, 0.0)


def _layers(count: int, opts: BuildOptions):
    return [build_layer(i, 200, 200, [], "portal", opts) for i in range(count)]


def test_single_floor_has_no_connectors() -> None:
    assert place_connectors(300, 200, 1, 42) == []


def test_connectors_are_seeded_and_padded() -> None:
    """Placement is deterministic and keeps the padding from the world edge."""
    first = place_connectors(300, 200, 3, [42, 1])
    second = place_connectors(300, 200, 3, [42, 1])

    assert [c.to_dict() for c in first] == [c.to_dict() for c in second]
    assert len(first) == 4
    for c in first:
        assert 20 <= c.x <= 280 and 20 <= c.y <= 180
        assert 0 <= c.entrance_angle < 2 * math.pi
        assert c.radius == 15.0


def test_access_point_on_entrance_circle() -> None:
    c = Connector(0, 50.0, 50.0, ConnectorType.ELEVATOR, 15.0, math.pi / 2)
    assert c.access_x == pytest.approx(50.0)
    assert c.access_y == pytest.approx(65.0)


def test_avoid_zones_cover_shaft_access_and_corridor() -> None:
    """Each connector protects its shaft, its access point and three corridor circles."""
    zones = connector_avoid_zones([_connector()])
    assert len(zones) == 5
    assert (zones[0].x, zones[0].y, zones[0].radius) == (100.0, 100.0, 17.0)
    assert zones[1].x == pytest.approx(115.0)
    assert [z.x for z in zones[2:]] == pytest.approx([135.0, 155.0, 175.0])


def test_two_floors_one_connector() -> None:
    """One connector between two floors yields one connection and two vertical edges."""
    opts = BuildOptions(overlay_mode="none")
    layers = _layers(2, opts)

    connections, vertical = connect_floors(layers, [_connector()], 200, 200, opts)

    assert len(connections) == 1
    conn = connections[0]
    assert conn.cost == pytest.approx(120.0)
    assert conn.direct_cost == pytest.approx(100.0)
    assert (conn.lower_node_id, conn.upper_node_id) == ("L0-C0", "L1-C0")
    assert sorted(ve.entrance_type for ve in vertical) == ["stairs", "stairs-direct"]


def test_connector_nodes_are_wired_into_floor() -> None:
    """Access nodes link to the floor network and to their centre node."""
    opts = BuildOptions(overlay_mode="none")
    layers = _layers(2, opts)
    connect_floors(layers, [_connector()], 200, 200, opts)

    for i, layer in enumerate(layers):
        access = layer.index_of(f"L{i}-0-access")
        center = layer.index_of(f"L{i}-C0")
        assert layer.nodes[access].source is NodeSource.CONNECTOR_ACCESS
        assert layer.nodes[center].connector_type is ConnectorType.STAIRS
        kinds = [e.kind for _, e in layer.incident(access)]
        assert EdgeKind.CONNECTOR_INTERNAL in kinds
        assert EdgeKind.CONNECTOR_LINK in kinds


def test_upper_floor_links_are_capped() -> None:
    """Exit gateways keep at most ``max_exit_connections`` links."""
    opts = BuildOptions(overlay_mode="none", max_exit_connections=2, gateway_search_radius=500.0)
    layers = _layers(2, opts)
    connect_floors(layers, [_connector()], 200, 200, opts)

    upper = layers[1]
    access = upper.index_of("L1-0-access")
    links = [e for _, e in upper.incident(access) if e.kind is not EdgeKind.CONNECTOR_INTERNAL]
    assert len(links) <= 2


def test_middle_floor_nodes_are_shared() -> None:
    """A middle floor reuses its access and centre nodes for both floor pairs."""
    opts = BuildOptions(overlay_mode="none")
    layers = _layers(3, opts)

    connections, vertical = connect_floors(layers, [_connector(ConnectorType.ELEVATOR)], 200, 200, opts)

    assert len(connections) == 2
    assert len(vertical) == 4
    middle_ids = [n.id for n in layers[1].nodes]
    assert middle_ids.count("L1-C0") == 1
    assert middle_ids.count("L1-0-access") == 1


def test_single_floor_connect_is_noop() -> None:
    opts = BuildOptions()
    assert connect_floors(_layers(1, opts), [_connector()], 200, 200, opts) == ([], [])


def test_large_radius_access_points_stay_in_world() -> None:
    """Entrance angles are redrawn or turned inwards so access points stay on the map."""
    connectors = place_connectors(120, 120, 2, [3, 1], count=12, radius=60.0)

    assert len(connectors) == 12
    for c in connectors:
        assert 0.0 <= c.access_x <= 120.0
        assert 0.0 <= c.access_y <= 120.0


def test_radius_larger_than_half_world_raises() -> None:
    with pytest.raises(ValueError, match="does not fit"):
        place_connectors(100, 80, 2, 1, radius=41.0)


def test_shaft_zone_grows_with_radius() -> None:
    """The shaft circle covers the whole access segment plus clearance."""
    wide = Connector(0, 200.0, 200.0, ConnectorType.ELEVATOR, 60.0, 0.0)
    zones = connector_avoid_zones([wide], clearance=1.5)

    assert zones[0].radius == pytest.approx(60.0 + 1.5 * math.sqrt(2.0) + 0.5)
    assert connector_avoid_zones([_connector()], clearance=1.5)[0].radius == pytest.approx(17.6213, abs=1e-4)


def test_blocked_internal_edge_is_not_added() -> None:
    """An obstacle between access point and shaft centre suppresses the internal edge."""
    opts = BuildOptions(overlay_mode="none")
    wall = [Obstacle(0, 104.0, 95.0, 6.0, 10.0)]
    layers = [build_layer(i, 200, 200, wall, "portal", opts) for i in range(2)]

    connections, _ = connect_floors(layers, [_connector()], 200, 200, opts)

    assert len(connections) == 1
    for layer in layers:
        assert all(e.kind is not EdgeKind.CONNECTOR_INTERNAL for e in layer.edges)


def test_wide_connectors_keep_edges_clear_of_obstacles() -> None:
    """Dense maps with wide connectors still publish no edge through an obstacle."""
    request = GenerationRequest.from_payload(
        {
            "width": 400,
            "height": 400,
            "layerCount": 2,
            "obstacleCount": 150,
            "seed": 7,
            "options": {"connectorRadius": 60},
        }
    )

    graph = generate_navgraph(request)

    report = graph.metadata["validation"]
    crossing = [i for i in report["issues"] if i["kind"] in ("edge_crosses_obstacle", "node_in_obstacle")]
    assert crossing == []
    for c in graph.connectors:
        assert 0.0 <= c.access_x <= 400.0
        assert 0.0 <= c.access_y <= 400.0
