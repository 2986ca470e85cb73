"""Seeded random obstacle generation.

Rectangles are sampled with integer sizes and positions from a numpy
Generator, so identical seeds reproduce identical layouts.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

from navgraph.models import AvoidZone, Obstacle

logger = logging.getLogger(__name__)

RngLike = np.random.Generator | int | Sequence[int] | None


def make_rng(rng: RngLike = None) -> np.random.Generator:
    """Normalize a seed, seed sequence or Generator into a Generator."""
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def _rect_hits_circle(x: float, y: float, w: float, h: float, zone: AvoidZone) -> bool:
    nearest_x = min(max(zone.x, x), x + w)
    nearest_y = min(max(zone.y, y), y + h)
    return math.hypot(zone.x - nearest_x, zone.y - nearest_y) <= zone.radius


class _PlacementGrid:
    """Local bucket grid used only for overlap rejection during generation."""

    def __init__(self, cell: float) -> None:
        self.cell = max(1.0, float(cell))
        self.buckets: dict[tuple[int, int], list[Obstacle]] = {}

    def _keys(self, x0: float, y0: float, x1: float, y1: float) -> list[tuple[int, int]]:
        c = self.cell
        return [
            (ix, iy)
            for ix in range(int(math.floor(x0 / c)), int(math.floor(x1 / c)) + 1)
            for iy in range(int(math.floor(y0 / c)), int(math.floor(y1 / c)) + 1)
        ]

    def add(self, ob: Obstacle) -> None:
        for key in self._keys(ob.x, ob.y, ob.x + ob.w, ob.y + ob.h):
            self.buckets.setdefault(key, []).append(ob)

    def overlaps(self, x0: float, y0: float, x1: float, y1: float) -> bool:
        for key in self._keys(x0, y0, x1, y1):
            for ob in self.buckets.get(key, ()):
                if not (x1 < ob.x or ob.x + ob.w < x0 or y1 < ob.y or ob.y + ob.h < y0):
                    return True
        return False


def generate_obstacles(
    width: int,
    height: int,
    count: int,
    rng: RngLike = None,
    *,
    min_size_ratio: float = 0.01,
    max_size_ratio: float = 0.05,
    avoid_overlap: bool = True,
    padding: float = 2.0,
    avoid_zones: Sequence[AvoidZone] = (),
    max_attempts_per_obstacle: int = 30,
) -> list[Obstacle]:
    """Place up to ``count`` non-overlapping rectangles.

    Args:
        width: World width.
        height: World height.
        count: Requested obstacle count.
        rng: Generator or seed.
        min_size_ratio: Minimum side as a fraction of ``min(width, height)``.
        max_size_ratio: Maximum side as a fraction of ``min(width, height)``.
        avoid_overlap: Reject candidates overlapping a placed obstacle.
        padding: Extra separation used by the overlap test.
        avoid_zones: Circles that must stay free of obstacles.
        max_attempts_per_obstacle: Consecutive failures that end placement.

    Returns:
        Placed obstacles. May be fewer than ``count`` when the attempt cap is
        hit; this is not an error.

    Raises:
        ValueError: If world size or count are invalid.
    """
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be > 0")
    if count < 0:
        raise ValueError("count must be >= 0")

    gen = make_rng(rng)
    width_i = int(width)
    height_i = int(height)
    min_wh = max(1, min(width_i, height_i))
    min_size = max(2, int(math.floor(min_wh * min_size_ratio)))
    max_size = max(min_size + 1, int(math.floor(min_wh * max_size_ratio)))
    attempts = max(1, int(max_attempts_per_obstacle))

    grid = _PlacementGrid(max_size * 2)
    obstacles: list[Obstacle] = []

    while len(obstacles) < count:
        placed = False
        for _ in range(attempts):
            w = int(gen.integers(min_size, max(min_size, min(max_size, width_i)) + 1))
            h = int(gen.integers(min_size, max(min_size, min(max_size, height_i)) + 1))
            x = int(gen.integers(0, max(0, width_i - w) + 1))
            y = int(gen.integers(0, max(0, height_i - h) + 1))

            if avoid_overlap and grid.overlaps(x - padding, y - padding, x + w + padding, y + h + padding):
                continue
            if any(_rect_hits_circle(x, y, w, h, zone) for zone in avoid_zones):
                continue

            ob = Obstacle(id=len(obstacles), x=float(x), y=float(y), w=float(w), h=float(h))
            obstacles.append(ob)
            grid.add(ob)
            placed = True
            break

        if not placed:
            logger.debug(
                "Obstacle placement stopped early: %d/%d after %d failed attempts",
                len(obstacles),
                count,
                attempts,
            )
            break

    return obstacles
