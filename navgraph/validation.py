"""Geometry validation checks for generated navigation graphs.

Audits every layer with shapely, independently of the clipping test the
builders use, so a regression in either shows up as a disagreement.
"""

from __future__ import annotations

from typing import Any

from shapely.geometry import LineString, Point, box
from shapely.strtree import STRtree

from navgraph.models import EdgeKind, Layer, NavGraph, NodeSource
from navgraph.sanitizer import connected_components

_EPS = 1e-6


def _issue(kind: str, severity: str, floor: int, message: str, **extra: Any) -> dict[str, Any]:
    return {"kind": kind, "severity": severity, "floor": floor, "message": message, **extra}


def validate_layer(layer: Layer, clearance: float = 0.0) -> tuple[list[dict[str, Any]], dict[str, int]]:
    """Return ``(issues, counters)`` for one floor."""
    issues: list[dict[str, Any]] = []
    floor = layer.index
    pad = clearance - _EPS
    zones = [box(ob.x - pad, ob.y - pad, ob.x2 + pad, ob.y2 + pad) for ob in layer.obstacles]
    tree = STRtree(zones) if zones else None

    node_checks = 0
    for node in layer.nodes:
        node_checks += 1
        if tree is None:
            continue
        hits = tree.query(Point(node.x, node.y), predicate="intersects")
        if len(hits):
            issues.append(
                _issue(
                    "node_in_obstacle",
                    "error",
                    floor,
                    f"Node lies within {clearance:.2f} of an obstacle",
                    node_id=node.id,
                    obstacle_id=layer.obstacles[int(hits[0])].id,
                )
            )

    edge_checks = 0
    node_count = len(layer.nodes)
    valid_edges = []
    for pos, edge in enumerate(layer.edges):
        edge_checks += 1
        if not (0 <= edge.u < node_count and 0 <= edge.v < node_count):
            issues.append(_issue("dangling_edge", "error", floor, "Edge references a missing node", edge=pos))
            continue
        valid_edges.append(edge)
        if tree is None:
            continue
        a, b = layer.nodes[edge.u], layer.nodes[edge.v]
        geom = LineString([(a.x, a.y), (b.x, b.y)]) if (a.x, a.y) != (b.x, b.y) else Point(a.x, a.y)
        hits = tree.query(geom, predicate="intersects")
        if len(hits):
            issues.append(
                _issue(
                    "edge_crosses_obstacle",
                    "error",
                    floor,
                    f"Edge passes within {clearance:.2f} of an obstacle",
                    edge=[a.id, b.id],
                    edge_kind=edge.kind.value,
                    obstacle_id=layer.obstacles[int(hits[0])].id,
                )
            )

    components = connected_components(node_count, valid_edges)
    if len(components) > 1:
        sizes = sorted((len(c) for c in components), reverse=True)
        issues.append(
            _issue(
                "disconnected_component",
                "warning",
                floor,
                f"Layer has {len(components)} connected components",
                sizes=sizes,
            )
        )

    degree = [0] * node_count
    for edge in valid_edges:
        if edge.kind is EdgeKind.CONNECTOR_INTERNAL:
            continue
        degree[edge.u] += 1
        degree[edge.v] += 1
    for i, node in enumerate(layer.nodes):
        if node.source is NodeSource.CONNECTOR_ACCESS and degree[i] == 0:
            issues.append(
                _issue(
                    "connector_unlinked",
                    "warning",
                    floor,
                    "Connector access node has no link into the floor network",
                    node_id=node.id,
                )
            )

    return issues, {"node_checks": node_checks, "edge_checks": edge_checks, "components": len(components)}


def validate_navgraph(graph: NavGraph, clearance: float = 0.0) -> dict[str, Any]:
    """Validate every layer and the cross-floor edges of ``graph``."""
    issues: list[dict[str, Any]] = []
    node_checks = 0
    edge_checks = 0

    for layer in graph.layers:
        layer_issues, counters = validate_layer(layer, clearance)
        issues.extend(layer_issues)
        node_checks += counters["node_checks"]
        edge_checks += counters["edge_checks"]

    for pos, ve in enumerate(graph.vertical_edges):
        edge_checks += 1
        ok = (
            0 <= ve.lower_layer < len(graph.layers)
            and 0 <= ve.upper_layer < len(graph.layers)
            and 0 <= ve.lower_node < len(graph.layers[ve.lower_layer].nodes)
            and 0 <= ve.upper_node < len(graph.layers[ve.upper_layer].nodes)
        )
        if not ok:
            issues.append(
                _issue("dangling_edge", "error", ve.lower_layer, "Cross-floor edge references a missing node", vertical_edge=pos)
            )

    error_count = sum(1 for issue in issues if issue["severity"] == "error")
    warning_count = sum(1 for issue in issues if issue["severity"] == "warning")

    return {
        "ok": error_count == 0,
        "summary": {
            "layers": len(graph.layers),
            "node_checks": node_checks,
            "edge_checks": edge_checks,
            "errors": error_count,
            "warnings": warning_count,
        },
        "issues": issues,
    }
