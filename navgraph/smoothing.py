"""Path post-processing: visibility shortcuts and right-angle detours.

Purpose:
- Shorten A* node paths by skipping intermediate nodes that have a clear
  line of sight past them.
- Replace diagonal segments with axis-aligned L-shaped detours.

Both routines accept a time budget. When it runs out, the remaining part
of the input path is appended unchanged.

Usage example:
    >>> smoothed = smooth_visibility(path, obstacles, clearance=1.5)
    >>> len(smoothed) <= len(path)
    True
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Mapping, Sequence

from navgraph.geometry import PointLike, segment_blocked
from navgraph.models import Node, NodeSource, Obstacle
from navgraph.spatial_index import SpatialIndex, build_spatial_index, segment_candidates
from navgraph.utils import elapsed_ms, now

logger = logging.getLogger(__name__)

ObstacleSource = Sequence[Obstacle] | Mapping[int, Sequence[Obstacle]]


def has_line_of_sight(
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    obstacles: Sequence[Obstacle],
    index: SpatialIndex | None = None,
    clearance: float = 0.0,
) -> bool:
    """True when the segment keeps ``clearance`` from every obstacle."""
    pool = segment_candidates(index, x1, y1, x2, y2, pad=clearance) if index is not None else obstacles
    return not segment_blocked(x1, y1, x2, y2, pool, clearance)


class _FloorObstacles:
    """Per-floor obstacle lookup with lazily built spatial indices."""

    def __init__(self, obstacles: ObstacleSource, use_spatial_index: bool, cell_size: float | None) -> None:
        if isinstance(obstacles, Mapping):
            self.per_floor: Mapping[int, Sequence[Obstacle]] | None = obstacles
            self.base: Sequence[Obstacle] = ()
        else:
            self.per_floor = None
            self.base = obstacles
        self.use_spatial_index = use_spatial_index
        self.cell_size = cell_size
        self._indices: dict[int, SpatialIndex] = {}

    def for_floor(self, floor: int) -> Sequence[Obstacle]:
        if self.per_floor is None:
            return self.base
        return self.per_floor.get(floor, ())

    def index_for(self, floor: int) -> SpatialIndex | None:
        if not self.use_spatial_index:
            return None
        key = floor if self.per_floor is not None else 0
        index = self._indices.get(key)
        if index is None:
            obstacles = self.for_floor(floor)
            width = max((ob.x2 for ob in obstacles), default=1.0)
            height = max((ob.y2 for ob in obstacles), default=1.0)
            index = build_spatial_index(width, height, obstacles, self.cell_size)
            self._indices[key] = index
        return index

    def clear(self, a: PointLike, b: PointLike, floor: int, clearance: float) -> bool:
        return has_line_of_sight(a.x, a.y, b.x, b.y, self.for_floor(floor), self.index_for(floor), clearance)


def _mandatory_indices(path: Sequence[Node], mandatory_waypoints: Iterable[int] | None) -> set[int]:
    keep = {0, len(path) - 1}
    if mandatory_waypoints is not None:
        keep.update(i for i in mandatory_waypoints if 0 <= i < len(path))
    for i in range(len(path) - 1):
        if path[i].layer != path[i + 1].layer:
            keep.add(i)
            keep.add(i + 1)
    return keep


def smooth_visibility(
    path: Sequence[Node],
    obstacles: ObstacleSource,
    *,
    clearance: float = 0.0,
    max_lookahead: int = 24,
    use_spatial_index: bool = True,
    cell_size: float | None = None,
    mandatory_waypoints: Iterable[int] | None = None,
    time_budget_ms: float = 0.0,
) -> list[Node]:
    """Greedy visibility shortcutting.

    From each kept node, scan up to ``max_lookahead`` nodes ahead and jump to
    the farthest one with a clear line of sight. Mandatory waypoints and
    floor transitions are never skipped.

    Args:
        path: Node path, usually from A*.
        obstacles: Obstacles for a single floor, or a mapping floor -> obstacles.
        clearance: Extra distance kept from obstacles by shortcuts.
        max_lookahead: Maximum number of nodes skipped per step.
        use_spatial_index: Narrow candidate obstacles through a grid index.
        cell_size: Optional grid cell size.
        mandatory_waypoints: Path indices that must survive.
        time_budget_ms: Soft time limit; 0 disables it.

    Returns:
        New node list; never longer than ``path``.
    """
    if len(path) <= 2:
        return list(path)

    floors = _FloorObstacles(obstacles, use_spatial_index, cell_size)
    keep = _mandatory_indices(path, mandatory_waypoints)
    lookahead = max(1, int(max_lookahead))
    t0 = now()

    out = [path[0]]
    i = 0
    last = len(path) - 1
    while i < last:
        if time_budget_ms > 0 and elapsed_ms(t0) >= time_budget_ms:
            logger.warning("Smoothing exceeded %.0f ms; keeping %d original nodes", time_budget_ms, last - i)
            out.extend(path[i + 1 :])
            return out

        limit = min(last, i + lookahead)
        for j in range(i + 1, limit + 1):
            if j in keep:
                limit = j
                break
        target = i + 1
        a = path[i]
        if a.layer == path[i + 1].layer:
            for j in range(limit, i + 1, -1):
                b = path[j]
                if b.layer != a.layer:
                    continue
                if floors.clear(a, b, a.layer, clearance):
                    target = j
                    break
        out.append(path[target])
        i = target

    logger.debug("Smoothed path %d -> %d nodes", len(path), len(out))
    return out


def orthogonalize(
    path: Sequence[Node],
    obstacles: ObstacleSource,
    *,
    clearance: float = 0.0,
    only_near_obstacles: bool = True,
    use_spatial_index: bool = True,
    cell_size: float | None = None,
    time_budget_ms: float = 0.0,
) -> list[Node]:
    """Replace diagonal segments with clear L-shaped detours.

    A diagonal with a clear line of sight is kept when ``only_near_obstacles``
    is set. Otherwise the shorter clear detour through ``(a.x, b.y)`` or
    ``(b.x, a.y)`` is used, or the diagonal when neither is clear.
    Cross-floor segments are left alone. Already axis-aligned paths come back
    unchanged.
    """
    if len(path) < 2:
        return list(path)

    floors = _FloorObstacles(obstacles, use_spatial_index, cell_size)
    t0 = now()
    corners = 0
    out: list[Node] = [path[0]]
    for i in range(len(path) - 1):
        if time_budget_ms > 0 and elapsed_ms(t0) >= time_budget_ms:
            logger.warning("Orthogonalize exceeded %.0f ms; keeping the rest unchanged", time_budget_ms)
            out.extend(path[i + 1 :])
            break
        a, b = path[i], path[i + 1]
        if a.layer != b.layer or a.x == b.x or a.y == b.y:
            out.append(b)
            continue
        floor = a.layer
        if only_near_obstacles and floors.clear(a, b, floor, clearance):
            out.append(b)
            continue

        options: list[tuple[float, Node]] = []
        for mx, my in ((a.x, b.y), (b.x, a.y)):
            corner = Node(f"{a.id}~{b.id}@{mx:.3f},{my:.3f}", mx, my, floor, NodeSource.WAYPOINT)
            if floors.clear(a, corner, floor, clearance) and floors.clear(corner, b, floor, clearance):
                length = math.hypot(mx - a.x, my - a.y) + math.hypot(b.x - mx, b.y - my)
                options.append((length, corner))
        if options:
            # first option wins ties
            best = min(options, key=lambda item: item[0])
            out.append(best[1])
            corners += 1
        out.append(b)

    deduped: list[Node] = []
    for node in out:
        prev = deduped[-1] if deduped else None
        if prev is None or prev.x != node.x or prev.y != node.y or prev.layer != node.layer:
            deduped.append(node)
    if corners:
        logger.debug("Orthogonalize inserted %d corner(s)", corners)
    return deduped
