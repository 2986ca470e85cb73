"""Multi-floor routing over a complete NavGraph.

All floors are merged into one node arena (per-floor handle offsets) and
cross-floor edges are added, so the same A* serves single and multi-floor
queries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from navgraph.models import Edge, EdgeKind, Layer, NavGraph, Node
from navgraph.pathfinding import astar_indices, build_adjacency, nearest_node, path_stats

logger = logging.getLogger(__name__)

RouteEndpoint = str | Node | Sequence[float] | Mapping[str, Any]


@dataclass(slots=True)
class UnifiedLayer:
    """All floors in one arena plus lookup tables back to floor handles."""

    layer: Layer
    offsets: list[int]
    entrance_types: dict[tuple[int, int], str] = field(default_factory=dict)
    adjacency: list[list[tuple[int, float]]] = field(default_factory=list)


@dataclass(slots=True)
class RouteResult:
    path: list[Node]
    length: float
    floors: list[int]
    transitions: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": [n.to_dict() for n in self.path],
            "length": self.length,
            "floors": self.floors,
            "transitions": self.transitions,
        }


def build_unified_layer(graph: NavGraph) -> UnifiedLayer:
    """Merge every floor of ``graph`` and its cross-floor edges into one layer."""
    merged = Layer(index=-1)
    offsets: list[int] = []
    for layer in graph.layers:
        offset = len(merged.nodes)
        offsets.append(offset)
        merged.nodes.extend(layer.nodes)
        merged.edges.extend(Edge(e.u + offset, e.v + offset, e.cost, e.kind) for e in layer.edges)

    entrance_types: dict[tuple[int, int], str] = {}
    for ve in graph.vertical_edges:
        u = offsets[ve.lower_layer] + ve.lower_node
        v = offsets[ve.upper_layer] + ve.upper_node
        merged.edges.append(Edge(u, v, ve.cost, EdgeKind.CROSS_FLOOR))
        entrance_types[(u, v)] = ve.entrance_type
        entrance_types[(v, u)] = ve.entrance_type

    return UnifiedLayer(
        layer=merged,
        offsets=offsets,
        entrance_types=entrance_types,
        adjacency=build_adjacency(len(merged.nodes), merged.edges),
    )


def resolve_endpoint(graph: NavGraph, unified: UnifiedLayer, ref: RouteEndpoint) -> int:
    """Arena handle in ``unified`` for a node id, node, mapping or point tuple.

    Points snap to the nearest node of their floor.
    """
    if isinstance(ref, Node):
        ref = ref.id
    if isinstance(ref, str):
        try:
            return unified.layer.index_of(ref)
        except KeyError as exc:
            raise ValueError(f"Unknown node id: {ref}") from exc
    if isinstance(ref, Mapping):
        if "id" in ref and ref["id"] is not None:
            return resolve_endpoint(graph, unified, str(ref["id"]))
        try:
            x, y, floor = float(ref["x"]), float(ref["y"]), int(ref.get("layer", 0))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError("Point endpoints need numeric x, y and layer") from exc
    else:
        try:
            x, y, *rest = ref
            floor = int(rest[0]) if rest else 0
            x, y = float(x), float(y)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Unsupported route endpoint: {ref!r}") from exc

    layer = graph.layer(floor)
    idx = nearest_node(layer, x, y)
    if idx is None:
        raise ValueError(f"Layer {floor} has no nodes")
    return unified.offsets[floor] + idx


def find_route(
    graph: NavGraph,
    start: RouteEndpoint,
    goal: RouteEndpoint,
    unified: UnifiedLayer | None = None,
) -> RouteResult | None:
    """Cheapest route between two endpoints, possibly across floors.

    Endpoints are node ids, nodes, ``(x, y, layer)`` tuples or
    ``{"x", "y", "layer"}`` mappings snapped to the nearest node.

    Returns:
        RouteResult, or None when the goal is unreachable.

    Raises:
        ValueError: If an endpoint cannot be resolved.
    """
    merged = unified or build_unified_layer(graph)
    s = resolve_endpoint(graph, merged, start)
    g = resolve_endpoint(graph, merged, goal)

    indices = astar_indices(merged.layer.nodes, merged.adjacency, s, g)
    if indices is None:
        logger.info("No route between %s and %s", merged.layer.nodes[s].id, merged.layer.nodes[g].id)
        return None

    nodes = merged.layer.nodes
    costs: dict[tuple[int, int], float] = {}
    for e in merged.layer.edges:
        for key in ((e.u, e.v), (e.v, e.u)):
            costs[key] = min(e.cost, costs.get(key, e.cost))
    length = 0.0
    transitions: list[dict[str, Any]] = []
    for u, v in zip(indices, indices[1:]):
        length += costs.get((u, v), 0.0)
        if nodes[u].layer != nodes[v].layer:
            transitions.append(
                {
                    "from": nodes[u].id,
                    "to": nodes[v].id,
                    "fromLayer": nodes[u].layer,
                    "toLayer": nodes[v].layer,
                    "entranceType": merged.entrance_types.get((u, v)),
                }
            )

    path = [nodes[i] for i in indices]
    return RouteResult(path=path, length=length, floors=path_stats(path)["floors"], transitions=transitions)
