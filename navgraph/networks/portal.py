"""Portal network: nodes at midpoints of Delaunay edges bordering free space.

An interior portal (shared by two free triangles) links to every other portal
of both triangles; a hull portal links within its single free triangle.
"""

from __future__ import annotations

import logging
from itertools import combinations
from typing import Sequence

from navgraph.config import BuildOptions
from navgraph.geometry import point_in_obstacles, points_in_obstacles_mask
from navgraph.models import Edge, FixedPoint, Node, NodeSource, Obstacle
from navgraph.networks.common import (
    BuildProfile,
    EdgeChecker,
    NetworkResult,
    add_edge,
    resolve_index,
    triangulate,
)
from navgraph.spatial_index import SpatialIndex
from navgraph.utils import elapsed_ms, now

logger = logging.getLogger(__name__)


def build_portal_network(
    width: float,
    height: float,
    obstacles: Sequence[Obstacle],
    options: BuildOptions,
    fixed_points: Sequence[FixedPoint] = (),
    *,
    layer: int = 0,
    index: SpatialIndex | None = None,
) -> NetworkResult:
    """Build the portal graph. Fixed points are ignored in this mode."""
    profile = BuildProfile(algorithm="portal", obstacles_total=len(obstacles))
    result = NetworkResult(profile=profile)
    if fixed_points:
        logger.debug("Portal mode ignores %d fixed points", len(fixed_points))

    tri = triangulate(width, height, obstacles, (), profile)
    if tri is None:
        return result
    result.triangle_count = tri.count

    sindex = resolve_index(
        width, height, obstacles, options.use_spatial_index, options.cell_size, index, profile
    )
    checker = EdgeChecker(obstacles, sindex, options.safety_margin, profile)

    t_nodes = now()
    free = ~points_in_obstacles_mask(tri.centroids(), obstacles)
    nodes: list[Node] = []
    portal_of: dict[tuple[int, int], int] = {}
    tri_portals: dict[int, list[int]] = {}

    for t in range(tri.count):
        for k in range(3):
            nb = int(tri.neighbors[t, k])
            a, b = tri.shared_edge(t, k)
            if nb < 0:
                if not free[t]:
                    continue
            elif nb < t or not (free[t] and free[nb]):
                continue
            if (a, b) in portal_of:
                continue
            pa, pb = tri.points[a], tri.points[b]
            mx, my = float((pa[0] + pb[0]) / 2.0), float((pa[1] + pb[1]) / 2.0)
            if point_in_obstacles(mx, my, obstacles):
                continue
            idx = len(nodes)
            nodes.append(Node(f"L{layer}-P{idx}", mx, my, layer, NodeSource.PORTAL))
            portal_of[(a, b)] = idx
            tri_portals.setdefault(t, []).append(idx)
            if nb >= 0:
                tri_portals.setdefault(nb, []).append(idx)
    profile.node_build_ms = elapsed_ms(t_nodes)

    t_edges = now()
    edges: list[Edge] = []
    linked: set[tuple[int, int]] = set()
    for t in sorted(tri_portals):
        for u, v in combinations(tri_portals[t], 2):
            key = (min(u, v), max(u, v))
            if key in linked:
                continue
            linked.add(key)
            a, b = nodes[u], nodes[v]
            if checker.clear(a.x, a.y, b.x, b.y):
                add_edge(nodes, edges, u, v)
    profile.edge_iter_ms = max(
        0.0, elapsed_ms(t_edges) - profile.candidate_query_ms - profile.intersection_ms
    )

    result.nodes = nodes
    result.edges = edges
    logger.debug("Portal network L%d: %d portals, %d edges", layer, len(nodes), len(edges))
    return result
