"""Voronoi skeleton: circumcenters of adjacent free triangles, clipped to the world.

The dual of the Delaunay triangulation restricted to free space gives a
medial-axis-like skeleton. Coincident circumcenters are merged.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

from navgraph.config import BuildOptions
from navgraph.geometry import circumcenter, clip_segment_to_box, point_in_obstacles, points_in_obstacles_mask
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

_MERGE_SCALE = 1000.0


def build_voronoi_skeleton(
    width: float,
    height: float,
    obstacles: Sequence[Obstacle],
    options: BuildOptions,
    fixed_points: Sequence[FixedPoint] = (),
    *,
    layer: int = 0,
    index: SpatialIndex | None = None,
) -> NetworkResult:
    """Build the clipped Voronoi skeleton. Fixed points are ignored in this mode."""
    profile = BuildProfile(algorithm="voronoi", obstacles_total=len(obstacles))
    result = NetworkResult(profile=profile)

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
    centers: list[tuple[float, float]] = []
    for t in range(tri.count):
        (ax, ay), (bx, by), (cx, cy) = tri.points[tri.simplices[t]]
        centers.append(circumcenter(float(ax), float(ay), float(bx), float(by), float(cx), float(cy)))
    profile.node_build_ms = elapsed_ms(t_nodes)

    nodes: list[Node] = []
    merged: dict[tuple[int, int], int] = {}

    def node_at(x: float, y: float) -> int:
        key = (round(x * _MERGE_SCALE), round(y * _MERGE_SCALE))
        idx = merged.get(key)
        if idx is None:
            idx = len(nodes)
            nodes.append(Node(f"L{layer}-V{idx}", x, y, layer, NodeSource.VORONOI))
            merged[key] = idx
        return idx

    t_edges = now()
    edges: list[Edge] = []
    linked: set[tuple[int, int]] = set()
    for t in range(tri.count):
        if not free[t]:
            continue
        for k in range(3):
            nb = int(tri.neighbors[t, k])
            if nb < 0 or nb < t or not free[nb]:
                continue
            (px, py), (qx, qy) = centers[t], centers[nb]
            if not all(math.isfinite(c) for c in (px, py, qx, qy)):
                continue
            if point_in_obstacles(px, py, obstacles) or point_in_obstacles(qx, qy, obstacles):
                continue
            clipped = clip_segment_to_box(px, py, qx, qy, 0.0, 0.0, float(width), float(height))
            if clipped is None:
                continue
            sx, sy, ex, ey = clipped
            if round(sx * _MERGE_SCALE) == round(ex * _MERGE_SCALE) and round(sy * _MERGE_SCALE) == round(
                ey * _MERGE_SCALE
            ):
                continue
            if not checker.clear(sx, sy, ex, ey):
                continue
            u = node_at(sx, sy)
            v = node_at(ex, ey)
            key = (min(u, v), max(u, v))
            if u == v or key in linked:
                continue
            linked.add(key)
            add_edge(nodes, edges, u, v)
    profile.edge_iter_ms = max(
        0.0, elapsed_ms(t_edges) - profile.candidate_query_ms - profile.intersection_ms
    )

    result.nodes = nodes
    result.edges = edges
    logger.debug("Voronoi skeleton L%d: %d nodes, %d edges", layer, len(nodes), len(edges))
    return result
