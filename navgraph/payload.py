"""Serialize NavGraphs into the JSON-friendly payload sent to clients.

Packed buffers stay numpy arrays here; ``utils.to_serializable`` turns
them into lists at the HTTP boundary.
"""

from __future__ import annotations

from typing import Any

from navgraph.models import Layer, NavGraph, Obstacle


def obstacle_to_dict(obstacle: Obstacle) -> dict[str, float]:
    return obstacle.to_dict()


def layer_to_dict(layer: Layer, cross_floor: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    """Nodes, string-id edges, packed buffers and metadata of one floor."""
    nodes = layer.nodes
    edges: list[dict[str, Any]] = [
        {"from": nodes[e.u].id, "to": nodes[e.v].id, "cost": float(e.cost), "type": e.kind.value}
        for e in layer.edges
    ]
    if cross_floor:
        edges.extend(cross_floor)
    return {
        "index": layer.index,
        "nodes": [n.to_dict() for n in nodes],
        "edges": edges,
        "nodesPacked": layer.nodes_packed,
        "edgesPacked": layer.edges_packed,
        "metadata": layer.metadata,
    }


def navgraph_to_payload(graph: NavGraph) -> dict[str, Any]:
    """Shape of the ``COMPLETE`` message's ``data`` field.

    Cross-floor edges are listed on the lower floor with ``crossFloor`` set.
    """
    cross: dict[int, list[dict[str, Any]]] = {}
    for ve in graph.vertical_edges:
        lower = graph.layers[ve.lower_layer].nodes[ve.lower_node]
        upper = graph.layers[ve.upper_layer].nodes[ve.upper_node]
        cross.setdefault(ve.lower_layer, []).append(
            {
                "from": lower.id,
                "to": upper.id,
                "cost": float(ve.cost),
                "crossFloor": True,
                "entranceType": ve.entrance_type,
            }
        )

    return {
        "layers": [layer_to_dict(layer, cross.get(layer.index)) for layer in graph.layers],
        "obstacles": [[obstacle_to_dict(ob) for ob in floor] for floor in graph.obstacles],
        "obstaclesPacked": graph.obstacles_packed,
        "connectors": [c.to_dict() for c in graph.connectors],
        "connections": [c.to_dict() for c in graph.connections],
        "metadata": graph.metadata,
    }
