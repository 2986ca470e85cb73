"""Unit tests for navgraph.trajectory."""

from __future__ import annotations

import math

import pytest

from navgraph.models import Node, NodeSource
from navgraph.trajectory import sample_trajectory


def _path(points) -> list[Node]:
    return [Node(f"t{i}", float(x), float(y), 0, NodeSource.WAYPOINT) for i, (x, y) in enumerate(points)]


def test_straight_line_sampling() -> None:
    """Samples are evenly spaced with constant heading and zero curvature."""
    samples = sample_trajectory(_path([(0, 0), (10, 0)]), step=2.5)

    assert [p.s for p in samples] == pytest.approx([0.0, 2.5, 5.0, 7.5, 10.0])
    assert all(p.heading == pytest.approx(0.0) for p in samples)
    assert all(p.curvature == pytest.approx(0.0) for p in samples)


def test_endpoints_always_included() -> None:
    samples = sample_trajectory(_path([(0, 0), (0, 7)]), step=3.0)
    assert (samples[0].x, samples[0].y) == (0.0, 0.0)
    assert (samples[-1].x, samples[-1].y) == (0.0, 7.0)
    assert samples[-1].s == pytest.approx(7.0)


def test_corner_has_curvature() -> None:
    """Turning left produces positive curvature near the corner."""
    samples = sample_trajectory(_path([(0, 0), (10, 0), (10, 10)]), step=1.0)

    assert samples[-1].heading == pytest.approx(math.pi / 2)
    assert max(p.curvature for p in samples) > 0


def test_degenerate_inputs() -> None:
    assert sample_trajectory([], step=1.0) == []
    assert sample_trajectory(_path([(0, 0), (5, 5)]), step=0) == []
    single = sample_trajectory(_path([(3, 4)]))
    assert len(single) == 1 and single[0].to_dict()["x"] == 3.0


def test_floor_transition_keeps_heading_and_layer() -> None:
    """A zero-length hop between floors keeps the heading and tags samples by floor."""
    path = [
        Node("a", 0.0, 0.0, 0, NodeSource.WAYPOINT),
        Node("b", 0.0, 10.0, 0, NodeSource.CONNECTOR),
        Node("c", 0.0, 10.0, 1, NodeSource.CONNECTOR),
    ]

    samples = sample_trajectory(path, step=4.0)

    assert samples[-1].heading == pytest.approx(math.pi / 2)
    assert samples[-1].layer == 1
    assert {p.layer for p in samples[:-1]} == {0}
    assert samples[-1].to_dict()["layer"] == 1


def test_zero_length_start_takes_first_real_heading() -> None:
    path = _path([(0, 0), (0, 0), (0, 5)])
    samples = sample_trajectory(path, step=2.0)
    assert samples[0].heading == pytest.approx(math.pi / 2)
