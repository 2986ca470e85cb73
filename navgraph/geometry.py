"""Planar geometry primitives shared by builders, sanitizer and smoothing.

Purpose:
- Segment versus axis-aligned rectangle test with clearance (Liang-Barsky).
- Point-in-rectangle checks, scalar and vectorized.
- Vertex extraction for triangulation and small helpers (circumcenter,
  segment clipping, polyline length).

Usage example:
    >>> from navgraph.geometry import segment_intersects_rect
    >>> segment_intersects_rect(0, 5, 10, 5, Obstacle(0, 4, 0, 2, 10), margin=0.5)
    True
"""

from __future__ import annotations

import math
from typing import Iterable, Protocol, Sequence

import numpy as np

from navgraph.models import Obstacle

_PARALLEL_EPS = 1e-10


class PointLike(Protocol):
    x: float
    y: float


def segment_intersects_rect(
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    rect: Obstacle,
    margin: float = 0.0,
) -> bool:
    """Return True when segment touches ``rect`` expanded by ``margin``.

    Boundaries are inclusive: grazing the expanded rectangle counts as a hit.
    """
    left = rect.x - margin
    right = rect.x + rect.w + margin
    top = rect.y - margin
    bottom = rect.y + rect.h + margin

    if left <= x1 <= right and top <= y1 <= bottom:
        return True
    if left <= x2 <= right and top <= y2 <= bottom:
        return True

    t0, t1 = 0.0, 1.0
    dx = x2 - x1
    dy = y2 - y1
    for p, q in ((-dx, x1 - left), (dx, right - x1), (-dy, y1 - top), (dy, bottom - y1)):
        if abs(p) < _PARALLEL_EPS:
            if q < 0:
                return False
            continue
        r = q / p
        if p < 0:
            if r > t1:
                return False
            if r > t0:
                t0 = r
        else:
            if r < t0:
                return False
            if r < t1:
                t1 = r
    return t0 <= t1


def segment_blocked(
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    candidates: Iterable[Obstacle],
    margin: float = 0.0,
) -> bool:
    """Return True when any candidate obstacle blocks the segment."""
    for ob in candidates:
        if segment_intersects_rect(x1, y1, x2, y2, ob, margin):
            return True
    return False


def point_in_rect(px: float, py: float, rect: Obstacle, margin: float = 0.0) -> bool:
    return (
        rect.x - margin <= px <= rect.x + rect.w + margin
        and rect.y - margin <= py <= rect.y + rect.h + margin
    )


def point_in_obstacles(px: float, py: float, obstacles: Iterable[Obstacle], margin: float = 0.0) -> bool:
    return any(point_in_rect(px, py, ob, margin) for ob in obstacles)


def obstacles_array(obstacles: Sequence[Obstacle]) -> np.ndarray:
    """Return an ``(N, 4)`` float64 array of ``x, y, w, h``."""
    if not obstacles:
        return np.zeros((0, 4), dtype=np.float64)
    return np.array([[ob.x, ob.y, ob.w, ob.h] for ob in obstacles], dtype=np.float64)


def points_in_obstacles_mask(points: np.ndarray, obstacles: Sequence[Obstacle], margin: float = 0.0) -> np.ndarray:
    """Vectorized inclusive point-in-any-rectangle test.

    Args:
        points: Array of shape ``(P, 2)``.
        obstacles: Rectangles to test against.
        margin: Expansion applied to every rectangle.

    Returns:
        Boolean mask of shape ``(P,)``.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if pts.shape[0] == 0 or not obstacles:
        return np.zeros(pts.shape[0], dtype=bool)

    rects = obstacles_array(obstacles)
    left = rects[:, 0] - margin
    top = rects[:, 1] - margin
    right = rects[:, 0] + rects[:, 2] + margin
    bottom = rects[:, 1] + rects[:, 3] + margin

    mask = np.zeros(pts.shape[0], dtype=bool)
    # Chunk over points to bound the (P, N) temporary.
    chunk = max(1, 2_000_000 // max(1, len(obstacles)))
    for start in range(0, pts.shape[0], chunk):
        px = pts[start : start + chunk, 0:1]
        py = pts[start : start + chunk, 1:2]
        inside = (px >= left) & (px <= right) & (py >= top) & (py <= bottom)
        mask[start : start + chunk] = inside.any(axis=1)
    return mask


def obstacle_vertices(obstacles: Sequence[Obstacle]) -> np.ndarray:
    """Return the four corners of each obstacle as an ``(4N, 2)`` array."""
    if not obstacles:
        return np.zeros((0, 2), dtype=np.float64)
    rects = obstacles_array(obstacles)
    x0, y0 = rects[:, 0], rects[:, 1]
    x1, y1 = x0 + rects[:, 2], y0 + rects[:, 3]
    corners = np.stack(
        [
            np.stack([x0, y0], axis=1),
            np.stack([x1, y0], axis=1),
            np.stack([x1, y1], axis=1),
            np.stack([x0, y1], axis=1),
        ],
        axis=1,
    )
    return corners.reshape(-1, 2)


def boundary_vertices(width: float, height: float) -> np.ndarray:
    return np.array([[0.0, 0.0], [width, 0.0], [width, height], [0.0, height]], dtype=np.float64)


def circumcenter(ax: float, ay: float, bx: float, by: float, cx: float, cy: float) -> tuple[float, float]:
    """Circumcenter of a triangle; falls back to the centroid when degenerate."""
    d = 2.0 * (ax * (by - cy) + bx * (cy - ay) + cx * (ay - by))
    if abs(d) < 1e-6:
        return (ax + bx + cx) / 3.0, (ay + by + cy) / 3.0
    a2 = ax * ax + ay * ay
    b2 = bx * bx + by * by
    c2 = cx * cx + cy * cy
    ux = (a2 * (by - cy) + b2 * (cy - ay) + c2 * (ay - by)) / d
    uy = (a2 * (cx - bx) + b2 * (ax - cx) + c2 * (bx - ax)) / d
    return ux, uy


def clip_segment_to_box(
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    xmin: float,
    ymin: float,
    xmax: float,
    ymax: float,
) -> tuple[float, float, float, float] | None:
    """Clip a segment to an axis-aligned box; None when fully outside."""
    t0, t1 = 0.0, 1.0
    dx = x2 - x1
    dy = y2 - y1
    for p, q in ((-dx, x1 - xmin), (dx, xmax - x1), (-dy, y1 - ymin), (dy, ymax - y1)):
        if p == 0:
            if q < 0:
                return None
            continue
        r = q / p
        if p < 0:
            if r > t1:
                return None
            t0 = max(t0, r)
        else:
            if r < t0:
                return None
            t1 = min(t1, r)
    return x1 + t0 * dx, y1 + t0 * dy, x1 + t1 * dx, y1 + t1 * dy


def distance(a: PointLike, b: PointLike) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def path_total_length(path: Sequence[PointLike]) -> float:
    """Sum of planar segment lengths along ``path``."""
    total = 0.0
    for i in range(len(path) - 1):
        total += distance(path[i], path[i + 1])
    return total
