"""Centroid free-space network.

Every Delaunay triangle whose centroid keeps ``safety_margin`` from all
obstacles becomes a node; nodes of triangles sharing a Delaunay edge are
linked when the straight segment between centroids is collision-free.
Fixed points (connector access points) are triangulation vertices and link
to the centroids of the triangles around them.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy.spatial import cKDTree

from navgraph.config import BuildOptions
from navgraph.geometry import points_in_obstacles_mask, point_in_obstacles
from navgraph.models import Edge, EdgeKind, FixedPoint, Node, NodeSource, Obstacle
from navgraph.networks.common import (
    BuildProfile,
    EdgeChecker,
    NetworkResult,
    Triangulation,
    add_edge,
    resolve_index,
    triangulate,
)
from navgraph.spatial_index import SpatialIndex
from navgraph.utils import elapsed_ms, now

logger = logging.getLogger(__name__)


def build_centroid_network(
    width: float,
    height: float,
    obstacles: Sequence[Obstacle],
    options: BuildOptions,
    fixed_points: Sequence[FixedPoint] = (),
    *,
    layer: int = 0,
    index: SpatialIndex | None = None,
) -> NetworkResult:
    """Build the centroid dual graph of the obstacle-vertex triangulation."""
    profile = BuildProfile(algorithm="centroid", obstacles_total=len(obstacles))
    result = NetworkResult(profile=profile)

    tri = triangulate(width, height, obstacles, fixed_points, profile)
    if tri is None:
        return result
    result.triangle_count = tri.count

    sindex = resolve_index(
        width, height, obstacles, options.use_spatial_index, options.cell_size, index, profile
    )
    checker = EdgeChecker(obstacles, sindex, options.safety_margin, profile)

    t_nodes = now()
    centroids = tri.centroids()
    blocked = points_in_obstacles_mask(centroids, obstacles, options.safety_margin)
    tri_to_node = np.full(tri.count, -1, dtype=np.int64)
    nodes: list[Node] = []
    for t in range(tri.count):
        if blocked[t]:
            continue
        tri_to_node[t] = len(nodes)
        cx, cy = centroids[t]
        nodes.append(Node(f"L{layer}-N{len(nodes)}", float(cx), float(cy), layer, NodeSource.CENTROID))
    profile.node_build_ms = elapsed_ms(t_nodes)

    t_edges = now()
    edges: list[Edge] = []
    for t in range(tri.count):
        u = int(tri_to_node[t])
        if u < 0:
            continue
        for k in range(3):
            nb = int(tri.neighbors[t, k])
            if nb < 0 or nb < t:
                continue
            v = int(tri_to_node[nb])
            if v < 0:
                continue
            a, b = nodes[u], nodes[v]
            if checker.clear(a.x, a.y, b.x, b.y):
                add_edge(nodes, edges, u, v)

    _link_fixed_points(tri, tri_to_node, fixed_points, obstacles, options, checker, nodes, edges, layer)
    profile.edge_iter_ms = max(
        0.0, elapsed_ms(t_edges) - profile.candidate_query_ms - profile.intersection_ms
    )

    if options.extra_edges and len(nodes) > 1:
        profile.extra_edges_added = add_extra_edges(nodes, edges, checker, options)

    result.nodes = nodes
    result.edges = edges
    logger.debug(
        "Centroid network L%d: %d triangles, %d nodes, %d edges (%d rejected)",
        layer,
        tri.count,
        len(nodes),
        len(edges),
        profile.edges_rejected,
    )
    return result


def _link_fixed_points(
    tri: Triangulation,
    tri_to_node: np.ndarray,
    fixed_points: Sequence[FixedPoint],
    obstacles: Sequence[Obstacle],
    options: BuildOptions,
    checker: EdgeChecker,
    nodes: list[Node],
    edges: list[Edge],
    layer: int,
) -> None:
    for j, fp in enumerate(fixed_points):
        if point_in_obstacles(fp.x, fp.y, obstacles, options.safety_margin):
            logger.debug("Fixed point %s lies inside an obstacle; skipped", fp.key)
            continue
        vertex = tri.fixed_start + j
        touching = np.nonzero((tri.simplices == vertex).any(axis=1))[0]
        fp_idx = len(nodes)
        nodes.append(Node(f"L{layer}-{fp.key}", float(fp.x), float(fp.y), layer, fp.source))
        for t in touching:
            v = int(tri_to_node[int(t)])
            if v < 0:
                continue
            target = nodes[v]
            if checker.clear(fp.x, fp.y, target.x, target.y):
                add_edge(nodes, edges, fp_idx, v, kind=EdgeKind.FIXED_LINK)


def add_extra_edges(
    nodes: list[Node],
    edges: list[Edge],
    checker: EdgeChecker,
    options: BuildOptions,
) -> int:
    """Add short collision-free edges to under-connected nodes.

    Candidates lie within ``max_length_factor`` times the average edge length;
    neither endpoint may exceed ``max_degree_per_node``.
    """
    if not edges:
        return 0
    avg_len = float(np.mean([e.cost for e in edges]))
    max_len = avg_len * options.max_length_factor
    if max_len <= 0:
        return 0

    degree = np.zeros(len(nodes), dtype=np.int64)
    existing: set[tuple[int, int]] = set()
    for e in edges:
        degree[e.u] += 1
        degree[e.v] += 1
        existing.add((min(e.u, e.v), max(e.u, e.v)))

    coords = np.array([[n.x, n.y] for n in nodes], dtype=np.float64)
    tree = cKDTree(coords)
    added = 0
    for u in range(len(nodes)):
        if degree[u] >= options.min_degree_per_node:
            continue
        candidates = tree.query_ball_point(coords[u], r=max_len)
        candidates.sort(key=lambda v: float(np.hypot(*(coords[v] - coords[u]))))
        for v in candidates:
            if degree[u] >= options.min_degree_per_node:
                break
            if v == u or degree[v] >= options.max_degree_per_node:
                continue
            key = (min(u, v), max(u, v))
            if key in existing:
                continue
            a, b = nodes[u], nodes[v]
            if not checker.clear(a.x, a.y, b.x, b.y):
                continue
            add_edge(nodes, edges, u, v, kind=EdgeKind.EXTRA)
            existing.add(key)
            degree[u] += 1
            degree[v] += 1
            added += 1
    return added
