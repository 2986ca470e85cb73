"""Shared pieces for the free-space network builders.

Purpose:
- Delaunay triangulation of obstacle corners, world corners and fixed points.
- Result and profile containers returned by every builder.
- The collision test every builder applies to candidate edges.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Sequence

import numpy as np
from scipy.spatial import Delaunay, QhullError

from navgraph.geometry import boundary_vertices, obstacle_vertices, segment_blocked
from navgraph.models import Edge, FixedPoint, Node, Obstacle
from navgraph.spatial_index import SpatialIndex, build_spatial_index, segment_candidates
from navgraph.utils import elapsed_ms, now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BuildProfile:
    """Diagnostic timings and counters; never correctness-bearing."""

    algorithm: str
    use_spatial_index: bool = True
    obstacles_total: int = 0
    triangle_count: int = 0
    index_build_ms: float = 0.0
    extract_ms: float = 0.0
    triangulate_ms: float = 0.0
    node_build_ms: float = 0.0
    edge_iter_ms: float = 0.0
    candidate_query_ms: float = 0.0
    intersection_ms: float = 0.0
    edges_checked: int = 0
    edges_rejected: int = 0
    candidates_accum: int = 0
    los_checks: int = 0
    extra_edges_added: int = 0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            head, *rest = f.name.split("_")
            key = head + "".join(part.title() for part in rest)
            out[key] = round(value, 3) if isinstance(value, float) else value
        return out


@dataclass(slots=True)
class NetworkResult:
    """Raw builder output, before sanitization."""

    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    profile: BuildProfile = field(default_factory=lambda: BuildProfile(algorithm="unknown"))
    triangle_count: int = 0


@dataclass(slots=True)
class Triangulation:
    """Delaunay triangulation plus bookkeeping about point provenance."""

    points: np.ndarray
    simplices: np.ndarray
    neighbors: np.ndarray
    obstacle_vertex_count: int
    fixed_start: int

    @property
    def count(self) -> int:
        return int(self.simplices.shape[0])

    def centroids(self) -> np.ndarray:
        return self.points[self.simplices].mean(axis=1)

    def shared_edge(self, t: int, k: int) -> tuple[int, int]:
        """Vertex pair of triangle ``t`` opposite its ``k``-th vertex."""
        s = self.simplices[t]
        a, b = int(s[(k + 1) % 3]), int(s[(k + 2) % 3])
        return (a, b) if a < b else (b, a)


def triangulate(
    width: float,
    height: float,
    obstacles: Sequence[Obstacle],
    fixed_points: Sequence[FixedPoint] = (),
    profile: BuildProfile | None = None,
) -> Triangulation | None:
    """Triangulate obstacle corners, world corners and fixed points.

    Returns None for degenerate input (fewer than three points or a
    collinear set) instead of raising.
    """
    t0 = now()
    obs_pts = obstacle_vertices(obstacles)
    parts = [obs_pts, boundary_vertices(width, height)]
    if fixed_points:
        parts.append(np.array([[fp.x, fp.y] for fp in fixed_points], dtype=np.float64))
    points = np.vstack(parts)
    if profile is not None:
        profile.extract_ms = elapsed_ms(t0)

    if points.shape[0] < 3:
        return None

    t1 = now()
    try:
        tri = Delaunay(points)
    except (QhullError, ValueError) as exc:
        logger.warning("Delaunay triangulation failed (%d points): %s", points.shape[0], exc)
        return None
    if profile is not None:
        profile.triangulate_ms = elapsed_ms(t1)
        profile.triangle_count = int(tri.simplices.shape[0])

    return Triangulation(
        points=points,
        simplices=np.asarray(tri.simplices, dtype=np.int64),
        neighbors=np.asarray(tri.neighbors, dtype=np.int64),
        obstacle_vertex_count=int(obs_pts.shape[0]),
        fixed_start=int(obs_pts.shape[0]) + 4,
    )


class EdgeChecker:
    """Collision test for candidate edges, recording profile counters."""

    def __init__(
        self,
        obstacles: Sequence[Obstacle],
        index: SpatialIndex | None,
        margin: float,
        profile: BuildProfile,
    ) -> None:
        self.obstacles = list(obstacles)
        self.index = index
        self.margin = margin
        self.profile = profile

    def clear(self, x1: float, y1: float, x2: float, y2: float) -> bool:
        """True when the segment keeps ``margin`` from every obstacle."""
        p = self.profile
        t0 = now()
        if self.index is not None:
            pool = segment_candidates(self.index, x1, y1, x2, y2, pad=self.margin)
        else:
            pool = self.obstacles
        p.candidate_query_ms += elapsed_ms(t0)
        p.edges_checked += 1
        p.candidates_accum += len(pool)
        p.los_checks += len(pool)

        t1 = now()
        blocked = segment_blocked(x1, y1, x2, y2, pool, self.margin)
        p.intersection_ms += elapsed_ms(t1)
        if blocked:
            p.edges_rejected += 1
        return not blocked


def resolve_index(
    width: float,
    height: float,
    obstacles: Sequence[Obstacle],
    use_spatial_index: bool,
    cell_size: float | None,
    index: SpatialIndex | None,
    profile: BuildProfile,
) -> SpatialIndex | None:
    """Return the caller's index, build one, or None when indexing is off."""
    profile.use_spatial_index = use_spatial_index
    if not use_spatial_index:
        return None
    if index is not None:
        return index
    t0 = now()
    built = build_spatial_index(width, height, obstacles, cell_size)
    profile.index_build_ms = elapsed_ms(t0)
    return built


def add_edge(nodes: list[Node], edges: list[Edge], u: int, v: int, **kwargs: Any) -> Edge:
    a, b = nodes[u], nodes[v]
    edge = Edge(u, v, float(np.hypot(a.x - b.x, a.y - b.y)), **kwargs)
    edges.append(edge)
    return edge
