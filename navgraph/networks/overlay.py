"""Obstacle-vertex overlay: visualization-only triangulation edges.

Nodes are obstacle and world corners; a Delaunay edge is kept unless it
crosses an obstacle it does not start or end on. The result is packed
straight into a float32 buffer and never used for pathfinding.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

from navgraph.geometry import segment_intersects_rect
from navgraph.models import Obstacle
from navgraph.networks.common import triangulate
from navgraph.spatial_index import SpatialIndex, build_spatial_index, segment_candidates
from navgraph.utils import elapsed_ms, now

logger = logging.getLogger(__name__)

_VERTEX_TOLERANCE = 0.5


@dataclass(slots=True)
class OverlayResult:
    """Packed overlay edges (``x1, y1, x2, y2`` per edge)."""

    mode: str
    edge_count: int = 0
    edges_packed: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    build_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "edgeCount": self.edge_count,
            "edgesPacked": self.edges_packed,
            "buildMs": round(self.build_ms, 3),
        }


def _near_corner(x: float, y: float, ob: Obstacle) -> bool:
    for cx, cy in ((ob.x, ob.y), (ob.x + ob.w, ob.y), (ob.x + ob.w, ob.y + ob.h), (ob.x, ob.y + ob.h)):
        if math.hypot(x - cx, y - cy) < _VERTEX_TOLERANCE:
            return True
    return False


def build_overlay(
    width: float,
    height: float,
    obstacles: Sequence[Obstacle],
    overlay_mode: str = "auto",
    index: SpatialIndex | None = None,
) -> OverlayResult:
    """Build the overlay edge buffer, or an empty result when mode is ``none``."""
    if overlay_mode == "none":
        return OverlayResult(mode="skipped")

    t0 = now()
    tri = triangulate(width, height, obstacles)
    if tri is None:
        return OverlayResult(mode="delaunay", build_ms=elapsed_ms(t0))

    sindex = index or build_spatial_index(width, height, obstacles)
    owner = np.full(tri.points.shape[0], -1, dtype=np.int64)
    owner[: tri.obstacle_vertex_count] = np.repeat(
        np.array([ob.id for ob in obstacles], dtype=np.int64), 4
    )

    seen: set[tuple[int, int]] = set()
    coords: list[float] = []
    for t in range(tri.count):
        s = tri.simplices[t]
        for a, b in ((s[0], s[1]), (s[1], s[2]), (s[2], s[0])):
            key = (int(min(a, b)), int(max(a, b)))
            if key in seen:
                continue
            seen.add(key)
            (x1, y1), (x2, y2) = tri.points[key[0]], tri.points[key[1]]
            blocked = False
            for ob in segment_candidates(sindex, x1, y1, x2, y2):
                if owner[key[0]] == ob.id and owner[key[1]] == ob.id:
                    continue
                if _near_corner(x1, y1, ob) or _near_corner(x2, y2, ob):
                    continue
                if segment_intersects_rect(x1, y1, x2, y2, ob):
                    blocked = True
                    break
            if not blocked:
                coords.extend((x1, y1, x2, y2))

    packed = np.asarray(coords, dtype=np.float32)
    result = OverlayResult(
        mode="delaunay",
        edge_count=len(coords) // 4,
        edges_packed=packed,
        build_ms=elapsed_ms(t0),
    )
    logger.debug("Overlay: %d of %d Delaunay edges kept", result.edge_count, len(seen))
    return result
