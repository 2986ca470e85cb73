"""Uniform-grid spatial index over obstacle bounding boxes.

Purpose:
- Narrow "which obstacles can this segment hit" to the cells it touches.
- Share one grid across a generation run through an explicit cache keyed by
  obstacle content, never by object identity.

Usage example:
    >>> index = build_spatial_index(512, 512, obstacles)
    >>> candidates = segment_candidates(index, 10, 10, 300, 40)
"""

from __future__ import annotations

import hashlib
import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from navgraph.geometry import obstacles_array
from navgraph.models import Obstacle

logger = logging.getLogger(__name__)

MIN_CELL_SIZE = 8.0
MAX_CELL_SIZE = 96.0
EMPTY_CELL_SIZE = 32.0

CellKey = tuple[int, int]


@dataclass(slots=True)
class SpatialIndex:
    """Read-only grid of obstacle buckets."""

    width: float
    height: float
    cell_size: float
    cells: dict[CellKey, list[Obstacle]] = field(default_factory=dict)
    obstacle_count: int = 0

    def cell_of(self, x: float, y: float) -> CellKey:
        return int(math.floor(x / self.cell_size)), int(math.floor(y / self.cell_size))


def default_cell_size(width: float, height: float, obstacles: Sequence[Obstacle]) -> float:
    """Pick a cell size from obstacle extents and density, clamped to [8, 96]."""
    if not obstacles:
        return EMPTY_CELL_SIZE
    extents = obstacles_array(obstacles)[:, 2:4].max(axis=1)
    avg_extent = float(extents.mean())
    density_size = 0.8 * math.sqrt(max(1.0, float(width) * float(height)) / len(obstacles))
    size = min(avg_extent, density_size)
    return float(min(MAX_CELL_SIZE, max(MIN_CELL_SIZE, size)))


def build_spatial_index(
    width: float,
    height: float,
    obstacles: Sequence[Obstacle],
    cell_size: float | None = None,
) -> SpatialIndex:
    """Register every obstacle in each cell its bounding box overlaps."""
    size = float(cell_size) if cell_size else default_cell_size(width, height, obstacles)
    index = SpatialIndex(width=float(width), height=float(height), cell_size=size, obstacle_count=len(obstacles))

    for ob in obstacles:
        x0 = int(math.floor(ob.x / size))
        x1 = int(math.floor((ob.x + ob.w) / size))
        y0 = int(math.floor(ob.y / size))
        y1 = int(math.floor((ob.y + ob.h) / size))
        for ix in range(x0, x1 + 1):
            for iy in range(y0, y1 + 1):
                index.cells.setdefault((ix, iy), []).append(ob)

    return index


def _collect(index: SpatialIndex, keys: list[CellKey]) -> list[Obstacle]:
    seen: set[int] = set()
    out: list[Obstacle] = []
    for key in keys:
        for ob in index.cells.get(key, ()):
            if ob.id in seen:
                continue
            seen.add(ob.id)
            out.append(ob)
    return out


def query_bbox(index: SpatialIndex, x1: float, y1: float, x2: float, y2: float) -> list[Obstacle]:
    """Obstacles in cells overlapping the segment bbox padded by one cell."""
    if not index.cells:
        return []
    size = index.cell_size
    min_x, max_x = min(x1, x2), max(x1, x2)
    min_y, max_y = min(y1, y2), max(y1, y2)
    cx0 = int(math.floor((min_x - size) / size))
    cx1 = int(math.floor((max_x + size) / size))
    cy0 = int(math.floor((min_y - size) / size))
    cy1 = int(math.floor((max_y + size) / size))
    keys = [(ix, iy) for ix in range(cx0, cx1 + 1) for iy in range(cy0, cy1 + 1)]
    return _collect(index, keys)


def query_point(index: SpatialIndex, x: float, y: float, radius_cells: int = 1) -> list[Obstacle]:
    """Obstacles registered within ``radius_cells`` cells of the point's cell."""
    if not index.cells:
        return []
    cx, cy = index.cell_of(x, y)
    r = max(0, int(radius_cells))
    keys = [(ix, iy) for ix in range(cx - r, cx + r + 1) for iy in range(cy - r, cy + r + 1)]
    return _collect(index, keys)


def _walk_cells(index: SpatialIndex, x1: float, y1: float, x2: float, y2: float) -> list[CellKey]:
    """Amanatides-Woo traversal of the cells the segment passes through."""
    size = index.cell_size
    cx, cy = index.cell_of(x1, y1)
    end_x, end_y = index.cell_of(x2, y2)
    dx = x2 - x1
    dy = y2 - y1

    step_x = 1 if dx > 0 else -1 if dx < 0 else 0
    step_y = 1 if dy > 0 else -1 if dy < 0 else 0

    if step_x != 0:
        next_x = (cx + (1 if step_x > 0 else 0)) * size
        t_max_x = (next_x - x1) / dx
        t_delta_x = size / abs(dx)
    else:
        t_max_x = math.inf
        t_delta_x = math.inf
    if step_y != 0:
        next_y = (cy + (1 if step_y > 0 else 0)) * size
        t_max_y = (next_y - y1) / dy
        t_delta_y = size / abs(dy)
    else:
        t_max_y = math.inf
        t_delta_y = math.inf

    cells = [(cx, cy)]
    max_steps = abs(end_x - cx) + abs(end_y - cy) + 2
    for _ in range(max_steps):
        if (cx, cy) == (end_x, end_y):
            break
        if t_max_x < t_max_y:
            if t_max_x > 1.0:
                break
            cx += step_x
            t_max_x += t_delta_x
        else:
            if t_max_y > 1.0:
                break
            cy += step_y
            t_max_y += t_delta_y
        cells.append((cx, cy))
    return cells


def query_along_line(
    index: SpatialIndex,
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    pad: float = 0.0,
) -> list[Obstacle]:
    """Obstacles in cells the segment crosses, pre-filtered by bbox overlap.

    With ``pad > 0`` every visited cell is grown by ``ceil(pad / cell_size)``
    rings and the bbox filter is padded, so obstacles within ``pad`` of the
    segment are never missed.
    """
    if not index.cells:
        return []
    visited = _walk_cells(index, x1, y1, x2, y2)
    if pad > 0:
        rings = int(math.ceil(pad / index.cell_size))
        expanded: list[CellKey] = []
        seen: set[CellKey] = set()
        for cx, cy in visited:
            for ix in range(cx - rings, cx + rings + 1):
                for iy in range(cy - rings, cy + rings + 1):
                    if (ix, iy) not in seen:
                        seen.add((ix, iy))
                        expanded.append((ix, iy))
        visited = expanded

    min_x, max_x = min(x1, x2) - pad, max(x1, x2) + pad
    min_y, max_y = min(y1, y2) - pad, max(y1, y2) + pad
    return [
        ob
        for ob in _collect(index, visited)
        if not (ob.x + ob.w < min_x or ob.x > max_x or ob.y + ob.h < min_y or ob.y > max_y)
    ]


def segment_candidates(
    index: SpatialIndex,
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    pad: float = 0.0,
) -> list[Obstacle]:
    """DDA candidates, falling back to the bbox query when the walk finds none."""
    pool = query_along_line(index, x1, y1, x2, y2, pad=pad)
    if pool:
        return pool
    return query_bbox(index, x1, y1, x2, y2)


def obstacles_signature(obstacles: Sequence[Obstacle]) -> str:
    """Content hash over ``x, y, w, h`` of every obstacle, in order."""
    digest = hashlib.blake2b(digest_size=16)
    digest.update(len(obstacles).to_bytes(8, "little"))
    digest.update(np.ascontiguousarray(obstacles_array(obstacles)).tobytes())
    return digest.hexdigest()


class SpatialIndexCache:
    """LRU cache of spatial indices keyed by obstacle content.

    Owned by the orchestrator; a changed obstacle list produces a different
    signature, so stale grids are never served.
    """

    def __init__(self, max_entries: int = 16) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._entries: OrderedDict[tuple[str, float, float, float | None], SpatialIndex] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(
        self,
        width: float,
        height: float,
        obstacles: Sequence[Obstacle],
        cell_size: float | None = None,
        signature: str | None = None,
    ) -> SpatialIndex:
        """Return a cached index for this obstacle set or build one."""
        sig = signature or obstacles_signature(obstacles)
        key = (sig, float(width), float(height), None if cell_size is None else float(cell_size))
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            self._entries.move_to_end(key)
            return cached

        self.misses += 1
        index = build_spatial_index(width, height, obstacles, cell_size)
        self._entries[key] = index
        while len(self._entries) > self.max_entries:
            self.evict()
        return index

    def invalidate(self, signature: str | None = None) -> int:
        """Drop entries for ``signature`` (or everything); returns count dropped."""
        if signature is None:
            dropped = len(self._entries)
            self._entries.clear()
            return dropped
        keys = [k for k in self._entries if k[0] == signature]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def evict(self) -> bool:
        """Evict the least recently used entry; False when empty."""
        if not self._entries:
            return False
        key, _ = self._entries.popitem(last=False)
        logger.debug("Evicted spatial index %s", key[0][:8])
        return True

    def stats(self) -> dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}
