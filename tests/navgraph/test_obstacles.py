"""Unit tests for navgraph.obstacles."""

from __future__ import annotations

import math

import pytest

from navgraph.models import AvoidZone
from navgraph.obstacles import generate_obstacles


def _overlap(a, b) -> bool:
    return not (a.x2 <= b.x or b.x2 <= a.x or a.y2 <= b.y or b.y2 <= a.y)


def test_same_seed_same_obstacles() -> None:
    """Generation is a pure function of its inputs and seed."""
    first = generate_obstacles(400, 300, 40, 42)
    second = generate_obstacles(400, 300, 40, 42)
    other = generate_obstacles(400, 300, 40, 43)

    assert [ob.to_dict() for ob in first] == [ob.to_dict() for ob in second]
    assert [ob.to_dict() for ob in first] != [ob.to_dict() for ob in other]


def test_obstacles_stay_in_bounds_and_do_not_overlap() -> None:
    """Placed rectangles lie inside the world and never overlap."""
    obstacles = generate_obstacles(400, 300, 60, 7)

    assert obstacles
    for ob in obstacles:
        assert ob.x >= 0 and ob.y >= 0
        assert ob.x2 <= 400 and ob.y2 <= 300
        assert ob.w >= 3 and ob.h >= 3
    for i, a in enumerate(obstacles):
        for b in obstacles[i + 1 :]:
            assert not _overlap(a, b)


def test_ids_are_sequential() -> None:
    """Obstacle ids follow placement order."""
    obstacles = generate_obstacles(200, 200, 10, 1)
    assert [ob.id for ob in obstacles] == list(range(len(obstacles)))


def test_avoid_zones_are_respected() -> None:
    """No rectangle may touch an avoid circle."""
    zone = AvoidZone(200.0, 150.0, 40.0)
    obstacles = generate_obstacles(400, 300, 80, 3, avoid_zones=[zone])

    for ob in obstacles:
        nx = min(max(zone.x, ob.x), ob.x2)
        ny = min(max(zone.y, ob.y), ob.y2)
        assert math.hypot(zone.x - nx, zone.y - ny) > zone.radius


def test_attempt_cap_returns_fewer_obstacles() -> None:
    """An impossible request stops early instead of failing."""
    obstacles = generate_obstacles(50, 50, 500, 5)
    assert 0 < len(obstacles) < 500


def test_zero_count_returns_empty() -> None:
    assert generate_obstacles(100, 100, 0, 1) == []


def test_invalid_world_raises() -> None:
    """World size and count are validated."""
    with pytest.raises(ValueError, match="width and height"):
        generate_obstacles(0, 100, 5, 1)
    with pytest.raises(ValueError, match="count"):
        generate_obstacles(100, 100, -1, 1)
