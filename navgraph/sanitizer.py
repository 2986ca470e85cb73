"""Layer sanitization: enforce clearance and repair connectivity.

Purpose:
- Drop nodes within ``clearance`` of any obstacle.
- Drop edges that lost an endpoint or pass within ``clearance`` of an obstacle.
- Drop nodes no surviving edge references.
- Bridge disconnected components to the largest one with the shortest
  collision-free edge inside a distance bound.

``sanitize_layer`` is pure: inputs are left untouched and a new node/edge
pair is returned with dense, remapped indices.

Usage example:
    >>> result = sanitize_layer(nodes, edges, 512, 512, obstacles, clearance=1.5)
    >>> result.report.components_after
    1
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

import numpy as np
from scipy.spatial import cKDTree

from navgraph.geometry import points_in_obstacles_mask, segment_blocked
from navgraph.models import Edge, EdgeKind, Node, Obstacle
from navgraph.spatial_index import SpatialIndex, build_spatial_index, segment_candidates

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SanitizeReport:
    """Counters describing what each pass removed or added."""

    clearance: float
    nodes_before: int = 0
    edges_before: int = 0
    nodes_in_obstacles: int = 0
    edges_blocked: int = 0
    orphans_removed: int = 0
    nodes_after: int = 0
    edges_after: int = 0
    components_before: int = 0
    components_after: int = 0
    bridges_added: int = 0
    unbridged_components: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class SanitizeResult:
    nodes: list[Node]
    edges: list[Edge]
    report: SanitizeReport = field(default_factory=lambda: SanitizeReport(clearance=0.0))


def connected_components(node_count: int, edges: Sequence[Edge]) -> list[list[int]]:
    """Flood-fill components; each list is sorted, components by first node."""
    adjacency: list[list[int]] = [[] for _ in range(node_count)]
    for e in edges:
        adjacency[e.u].append(e.v)
        adjacency[e.v].append(e.u)

    seen = np.zeros(node_count, dtype=bool)
    components: list[list[int]] = []
    for start in range(node_count):
        if seen[start]:
            continue
        seen[start] = True
        stack = [start]
        comp: list[int] = []
        while stack:
            cur = stack.pop()
            comp.append(cur)
            for nb in adjacency[cur]:
                if not seen[nb]:
                    seen[nb] = True
                    stack.append(nb)
        comp.sort()
        components.append(comp)
    return components


def _segment_clear(
    index: SpatialIndex,
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    clearance: float,
) -> bool:
    pool = segment_candidates(index, x1, y1, x2, y2, pad=clearance)
    return not segment_blocked(x1, y1, x2, y2, pool, clearance)


def sanitize_layer(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    width: float,
    height: float,
    obstacles: Sequence[Obstacle],
    *,
    clearance: float = 1.5,
    repair_connectivity: bool = True,
    index: SpatialIndex | None = None,
) -> SanitizeResult:
    """Return a filtered, reconnected copy of ``(nodes, edges)``.

    Args:
        nodes: Builder nodes (indexed by position).
        edges: Builder edges referencing ``nodes`` by index.
        width: World width, used for the bridge distance fallback.
        height: World height.
        obstacles: Floor obstacles.
        clearance: Minimum distance kept from every obstacle.
        repair_connectivity: Bridge disconnected components when True.
        index: Optional prebuilt spatial index for ``obstacles``.

    Returns:
        SanitizeResult with new node/edge lists and a report.
    """
    report = SanitizeReport(clearance=float(clearance), nodes_before=len(nodes), edges_before=len(edges))
    sindex = index or build_spatial_index(width, height, obstacles)

    coords = np.array([[n.x, n.y] for n in nodes], dtype=np.float64).reshape(-1, 2)
    node_ok = ~points_in_obstacles_mask(coords, obstacles, clearance)
    report.nodes_in_obstacles = int((~node_ok).sum())

    kept_edges: list[Edge] = []
    for e in edges:
        if not (node_ok[e.u] and node_ok[e.v]):
            continue
        a, b = nodes[e.u], nodes[e.v]
        if not _segment_clear(sindex, a.x, a.y, b.x, b.y, clearance):
            continue
        kept_edges.append(e)
    report.edges_blocked = len(edges) - len(kept_edges)

    referenced = np.zeros(len(nodes), dtype=bool)
    for e in kept_edges:
        referenced[e.u] = True
        referenced[e.v] = True
    keep = node_ok & referenced
    report.orphans_removed = int((node_ok & ~referenced).sum())

    remap = np.full(len(nodes), -1, dtype=np.int64)
    new_nodes: list[Node] = []
    for old, ok in enumerate(keep):
        if ok:
            remap[old] = len(new_nodes)
            src = nodes[old]
            new_nodes.append(Node(src.id, src.x, src.y, src.layer, src.source, src.connector_type))
    new_edges = [Edge(int(remap[e.u]), int(remap[e.v]), e.cost, e.kind) for e in kept_edges]

    components = connected_components(len(new_nodes), new_edges)
    report.components_before = len(components)
    if repair_connectivity and len(components) > 1:
        try:
            _bridge_components(new_nodes, new_edges, components, width, height, sindex, clearance, report)
        except Exception:
            logger.exception("Connectivity repair failed; keeping the partially repaired graph")
            report.error = "connectivity repair failed"
        components = connected_components(len(new_nodes), new_edges)

    report.components_after = len(components)
    report.nodes_after = len(new_nodes)
    report.edges_after = len(new_edges)
    logger.debug(
        "Sanitized: nodes %d -> %d, edges %d -> %d, components %d -> %d (clearance=%.2f)",
        report.nodes_before,
        report.nodes_after,
        report.edges_before,
        report.edges_after,
        report.components_before,
        report.components_after,
        clearance,
    )
    return SanitizeResult(new_nodes, new_edges, report)


def _bridge_components(
    nodes: list[Node],
    edges: list[Edge],
    components: list[list[int]],
    width: float,
    height: float,
    index: SpatialIndex,
    clearance: float,
    report: SanitizeReport,
) -> None:
    """Merge smaller components into the largest one, largest first.

    Mutates the freshly built ``nodes``/``edges`` owned by the caller.
    """
    if edges:
        max_bridge = 4.0 * float(np.mean([e.cost for e in edges]))
    else:
        max_bridge = 0.5 * math.hypot(width, height)

    ordered = sorted(components, key=len, reverse=True)
    main: list[int] = list(ordered[0])
    pending = ordered[1:]
    coords = np.array([[n.x, n.y] for n in nodes], dtype=np.float64)

    progress = True
    while pending and progress:
        progress = False
        tree = cKDTree(coords[main])
        still_pending: list[list[int]] = []
        for comp in pending:
            bridge = _shortest_bridge(comp, main, tree, coords, max_bridge, index, clearance)
            if bridge is None:
                still_pending.append(comp)
                continue
            u, v = bridge
            a, b = nodes[u], nodes[v]
            edges.append(Edge(u, v, float(math.hypot(a.x - b.x, a.y - b.y)), EdgeKind.BRIDGE))
            report.bridges_added += 1
            main.extend(comp)
            tree = cKDTree(coords[main])
            progress = True
        pending = still_pending

    report.unbridged_components = len(pending)
    if pending:
        logger.warning(
            "%d component(s) could not be bridged within %.1f units; left disconnected",
            len(pending),
            max_bridge,
        )


def _shortest_bridge(
    comp: list[int],
    main: list[int],
    tree: cKDTree,
    coords: np.ndarray,
    max_bridge: float,
    index: SpatialIndex,
    clearance: float,
) -> tuple[int, int] | None:
    best: tuple[int, int] | None = None
    best_len = math.inf
    for u in comp:
        hits = tree.query_ball_point(coords[u], r=max_bridge)
        if not hits:
            continue
        dists = np.hypot(*(coords[[main[h] for h in hits]] - coords[u]).T)
        for order in np.argsort(dists, kind="stable"):
            d = float(dists[order])
            if d >= best_len:
                break
            v = main[hits[int(order)]]
            (x1, y1), (x2, y2) = coords[u], coords[v]
            if _segment_clear(index, x1, y1, x2, y2, clearance):
                best = (u, v)
                best_len = d
                break
    return best
