"""Pytest global fixtures and test isolation hooks."""

from __future__ import annotations

from typing import Iterator

import pytest

from navgraph.api import STATE
from navgraph.models import Layer, Node, NodeSource


@pytest.fixture(autouse=True)
def reset_processing_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset in-memory API state and skip worker warmup for each test."""
    monkeypatch.setenv("NAVGRAPH_WARMUP", "false")
    STATE.reset()
    yield
    STATE.reset()


@pytest.fixture()
def grid_layer() -> Layer:
    """3x3 lattice with spacing 10 and the centre node removed.

    Only horizontal and vertical neighbours are linked.
    """
    layer = Layer(index=0)
    coords = [(x, y) for y in (0, 10, 20) for x in (0, 10, 20) if (x, y) != (10, 10)]
    for x, y in coords:
        layer.add_node(Node(f"n{x}_{y}", float(x), float(y), 0, NodeSource.CENTROID))
    for i, a in enumerate(layer.nodes):
        for j in range(i + 1, len(layer.nodes)):
            b = layer.nodes[j]
            if abs(a.x - b.x) + abs(a.y - b.y) == 10:
                layer.add_edge(i, j)
    return layer
