"""Unit tests for navgraph.smoothing."""

from __future__ import annotations

import pytest

from navgraph.geometry import path_total_length, segment_intersects_rect
from navgraph.models import Node, NodeSource, Obstacle
from navgraph.smoothing import has_line_of_sight, orthogonalize, smooth_visibility


def _path(points, layer: int = 0) -> list[Node]:
    return [Node(f"p{i}", float(x), float(y), layer, NodeSource.CENTROID) for i, (x, y) in enumerate(points)]


def test_line_of_sight() -> None:
    ob = [Obstacle(0, 40.0, 40.0, 20.0, 20.0)]
    assert not has_line_of_sight(0, 50, 100, 50, ob)
    assert has_line_of_sight(0, 10, 100, 10, ob)
    assert not has_line_of_sight(0, 38, 100, 38, ob, clearance=3.0)


def test_open_field_collapses_to_endpoints() -> None:
    """Without obstacles every interior node is shortcut away."""
    path = _path([(0, 0), (10, 5), (20, 0), (30, 5), (40, 0)])
    out = smooth_visibility(path, [])
    assert [n.id for n in out] == ["p0", "p4"]


def test_smoothing_never_cuts_through_obstacles() -> None:
    """Shortcuts keep line of sight and never lengthen the path."""
    obstacles = [Obstacle(0, 40.0, 0.0, 20.0, 60.0)]
    path = _path([(0, 10), (20, 70), (40, 70), (60, 70), (80, 70), (100, 10)])

    out = smooth_visibility(path, obstacles)

    assert out[0] is path[0] and out[-1] is path[-1]
    assert len(out) < len(path)
    assert path_total_length(out) <= path_total_length(path)
    for a, b in zip(out, out[1:]):
        assert not segment_intersects_rect(a.x, a.y, b.x, b.y, obstacles[0])


def test_mandatory_waypoints_survive() -> None:
    path = _path([(0, 0), (10, 0), (20, 0), (30, 0)])
    out = smooth_visibility(path, [], mandatory_waypoints=[2])
    assert [n.id for n in out] == ["p0", "p2", "p3"]


def test_floor_transitions_are_kept() -> None:
    """Both sides of a floor change stay in the smoothed path."""
    path = _path([(0, 0), (10, 0), (20, 0)]) + _path([(20, 0), (30, 0), (40, 0)], layer=1)
    for i, node in enumerate(path):
        node.id = f"q{i}"

    out = smooth_visibility(path, {0: [], 1: []})

    assert [n.id for n in out] == ["q0", "q2", "q3", "q5"]


def test_orthogonalize_axis_aligned_path_is_unchanged() -> None:
    """Paths without diagonals come back as-is."""
    path = _path([(0, 0), (10, 0), (10, 10), (30, 10)])
    assert orthogonalize(path, [], only_near_obstacles=False) == path


def test_orthogonalize_detours_around_blocked_diagonal() -> None:
    """A blocked diagonal becomes an L through a clear corner."""
    obstacles = [Obstacle(0, 8.0, 8.0, 4.0, 4.0)]
    path = _path([(0, 0), (20, 20)])

    out = orthogonalize(path, obstacles)

    assert len(out) == 3
    corner = out[1]
    assert (corner.x, corner.y) == (0.0, 20.0)
    assert corner.source is NodeSource.WAYPOINT
    assert orthogonalize(out, obstacles) == out


def test_orthogonalize_keeps_clear_diagonal_by_default() -> None:
    path = _path([(0, 0), (20, 20)])
    assert orthogonalize(path, []) == path
    assert len(orthogonalize(path, [], only_near_obstacles=False)) == 3


def _budget_after(monkeypatch: pytest.MonkeyPatch, steps: int) -> None:
    """Make the smoothing clock report an exhausted budget after ``steps`` checks."""
    ticks = iter([0.0] * steps)
    monkeypatch.setattr("navgraph.smoothing.elapsed_ms", lambda start: next(ticks, 1e9))


def test_smoothing_budget_appends_original_remainder(monkeypatch: pytest.MonkeyPatch) -> None:
    """Once the time budget runs out the rest of the path is kept as is."""
    _budget_after(monkeypatch, 1)
    path = _path([(0, 0), (10, 5), (20, 0), (30, 5), (40, 0)])

    out = smooth_visibility(path, [], max_lookahead=2, time_budget_ms=5.0)

    assert [n.id for n in out] == ["p0", "p2", "p3", "p4"]


def test_smoothing_without_budget_ignores_clock(monkeypatch: pytest.MonkeyPatch) -> None:
    _budget_after(monkeypatch, 0)
    path = _path([(0, 0), (10, 5), (20, 0), (30, 5), (40, 0)])
    assert [n.id for n in smooth_visibility(path, [], max_lookahead=2)] == ["p0", "p2", "p4"]


def test_orthogonalize_budget_appends_original_remainder(monkeypatch: pytest.MonkeyPatch) -> None:
    """Only segments handled before the budget runs out get a corner."""
    _budget_after(monkeypatch, 1)
    path = _path([(0, 0), (10, 10), (20, 20)])

    out = orthogonalize(path, [], only_near_obstacles=False, time_budget_ms=5.0)

    assert [(n.x, n.y) for n in out] == [(0, 0), (0, 10), (10, 10), (20, 20)]
    assert out[2] is path[1] and out[3] is path[2]
