"""Equal arc-length resampling of a path with heading and curvature."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from navgraph.geometry import PointLike


@dataclass(slots=True)
class TrajectoryPoint:
    x: float
    y: float
    heading: float
    curvature: float
    s: float
    layer: int = 0

    def to_dict(self) -> dict[str, float | int]:
        return {
            "x": self.x,
            "y": self.y,
            "heading": self.heading,
            "curvature": self.curvature,
            "s": self.s,
            "layer": self.layer,
        }


def _wrap(angle: float) -> float:
    while angle > math.pi:
        angle -= 2 * math.pi
    while angle < -math.pi:
        angle += 2 * math.pi
    return angle


def _layer(point: PointLike) -> int:
    return int(getattr(point, "layer", 0))


def _segment_headings(segments: Sequence[tuple[PointLike, PointLike, float]]) -> list[float]:
    """Heading per segment; zero-length segments carry the last real heading."""
    headings: list[float | None] = []
    current: float | None = None
    for a, b, length in segments:
        if length > 0:
            current = math.atan2(b.y - a.y, b.x - a.x)
        headings.append(current)
    first = next(h for h in headings if h is not None)
    return [first if h is None else h for h in headings]


def sample_trajectory(path: Sequence[PointLike], step: float = 1.0) -> list[TrajectoryPoint]:
    """Sample ``path`` every ``step`` units of arc length.

    The first and last path points are always included. Heading follows the
    segment being sampled; zero-length segments such as floor transitions
    keep the previous heading. Curvature is the central difference of
    heading over arc length, copied from the neighbour at both ends. Each
    sample carries the floor of the segment it lies on.
    """
    if not path or step <= 0:
        return []

    segments = [(a, b, math.hypot(b.x - a.x, b.y - a.y)) for a, b in zip(path, path[1:])]
    total = sum(length for _, _, length in segments)
    if total == 0:
        return [TrajectoryPoint(path[0].x, path[0].y, 0.0, 0.0, 0.0, _layer(path[0]))]

    headings = _segment_headings(segments)
    out = [TrajectoryPoint(path[0].x, path[0].y, headings[0], 0.0, 0.0, _layer(path[0]))]
    s = 0.0
    seg_idx = 0
    seg_start = 0.0
    while s + step < total - 1e-9:
        target = s + step
        while seg_idx < len(segments) and seg_start + segments[seg_idx][2] < target:
            seg_start += segments[seg_idx][2]
            seg_idx += 1
        if seg_idx >= len(segments):
            break
        a, b, length = segments[seg_idx]
        t = (target - seg_start) / length if length > 0 else 0.0
        out.append(
            TrajectoryPoint(a.x + (b.x - a.x) * t, a.y + (b.y - a.y) * t, headings[seg_idx], 0.0, target, _layer(a))
        )
        s = target

    last = path[-1]
    out.append(TrajectoryPoint(last.x, last.y, headings[-1], 0.0, total, _layer(last)))

    for i in range(1, len(out) - 1):
        ds = max(1e-6, out[i + 1].s - out[i - 1].s)
        out[i].curvature = _wrap(out[i + 1].heading - out[i - 1].heading) / ds
    if len(out) >= 2:
        out[0].curvature = out[1].curvature
        out[-1].curvature = out[-2].curvature
    return out
