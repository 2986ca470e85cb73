"""Unit tests for navgraph.routing and navgraph.payload."""

from __future__ import annotations

import pytest

from navgraph.config import BuildOptions
from navgraph.layer_builder import build_layer
from navgraph.models import Connector, ConnectorType, NavGraph
from navgraph.payload import navgraph_to_payload
from navgraph.routing import build_unified_layer, find_route, resolve_endpoint
from navgraph.vertical import connect_floors


@pytest.fixture()
def two_floors() -> NavGraph:
    """Two empty floors joined by one elevator."""
    opts = BuildOptions(overlay_mode="none")
    layers = [build_layer(i, 200, 200, [], "portal", opts) for i in range(2)]
    connectors = [Connector(0, 100.0, 100.0, ConnectorType.ELEVATOR, 15.0, 0.0)]
    connections, vertical = connect_floors(layers, connectors, 200, 200, opts)
    return NavGraph(200, 200, layers, connectors, connections, vertical)


def test_unified_layer_offsets(two_floors: NavGraph) -> None:
    """Every floor is appended to one arena; cross-floor edges join them."""
    unified = build_unified_layer(two_floors)

    assert unified.offsets == [0, len(two_floors.layers[0].nodes)]
    assert len(unified.layer.nodes) == sum(len(layer.nodes) for layer in two_floors.layers)
    assert len(unified.entrance_types) == 4


def test_resolve_endpoint_forms(two_floors: NavGraph) -> None:
    """Ids, mappings and tuples resolve to arena handles."""
    unified = build_unified_layer(two_floors)
    upper_center = unified.layer.index_of("L1-C0")

    assert resolve_endpoint(two_floors, unified, "L1-C0") == upper_center
    assert resolve_endpoint(two_floors, unified, {"id": "L1-C0"}) == upper_center
    snapped = resolve_endpoint(two_floors, unified, (100.0, 100.0, 1))
    assert unified.layer.nodes[snapped].layer == 1
    with pytest.raises(ValueError, match="Unknown node id"):
        resolve_endpoint(two_floors, unified, "L9-C0")
    with pytest.raises(ValueError, match="out of range"):
        resolve_endpoint(two_floors, unified, {"x": 1, "y": 1, "layer": 5})


def test_route_records_transition(two_floors: NavGraph) -> None:
    """Centre to centre uses the shaft edge and records its entrance type."""
    route = find_route(two_floors, "L0-C0", "L1-C0")

    assert route is not None
    assert [n.id for n in route.path] == ["L0-C0", "L1-C0"]
    assert route.length == pytest.approx(120.0)
    assert route.floors == [0, 1]
    assert route.transitions == [
        {"from": "L0-C0", "to": "L1-C0", "fromLayer": 0, "toLayer": 1, "entranceType": "elevator"}
    ]


def test_route_from_floor_node_climbs(two_floors: NavGraph) -> None:
    """A floor node on level 0 reaches a floor node on level 1."""
    start = two_floors.layers[0].nodes[0].id
    goal = two_floors.layers[1].nodes[0].id

    route = find_route(two_floors, start, goal)

    assert route is not None
    assert route.floors == [0, 1]
    assert route.to_dict()["transitions"][0]["entranceType"] in {"elevator", "elevator-direct"}


def test_payload_lists_cross_floor_edges_on_lower_floor(two_floors: NavGraph) -> None:
    payload = navgraph_to_payload(two_floors)
    lower_cross = [e for e in payload["layers"][0]["edges"] if e.get("crossFloor")]
    upper_cross = [e for e in payload["layers"][1]["edges"] if e.get("crossFloor")]

    assert len(lower_cross) == 2
    assert upper_cross == []
    assert payload["connections"][0]["type"] == "elevator"
