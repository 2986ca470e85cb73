"""A* shortest paths over navigation graph layers.

Purpose:
- Compute cost-optimal node paths on one layer (or a unified multi-floor layer).
- Resolve endpoints given as nodes, node handles or node ids.

Usage example:
    >>> from navgraph.pathfinding import find_path
    >>> path = find_path(layer, "L0-N0", "L0-N42")
    >>> path is None or path[0].id == "L0-N0"
    True
"""

from __future__ import annotations

import heapq
import itertools
import math
from typing import Any, Sequence

import numpy as np

from navgraph.models import Edge, Layer, Node

Adjacency = list[list[tuple[int, float]]]
NodeRef = Node | int | str


def build_adjacency(node_count: int, edges: Sequence[Edge]) -> Adjacency:
    """Adjacency list where every undirected edge contributes both directions."""
    adjacency: Adjacency = [[] for _ in range(node_count)]
    for e in edges:
        adjacency[e.u].append((e.v, e.cost))
        adjacency[e.v].append((e.u, e.cost))
    return adjacency


def heuristic(a: Node, b: Node) -> float:
    """Planar Euclidean distance; admissible for every edge cost used here."""
    return math.hypot(a.x - b.x, a.y - b.y)


def astar_indices(
    nodes: Sequence[Node],
    adjacency: Adjacency,
    start: int,
    goal: int,
) -> list[int] | None:
    """Run A* between two node handles.

    Ties on ``f`` pop in insertion order. Entries whose ``g`` no longer
    matches the best known value are skipped when popped.

    Returns:
        Node handles from ``start`` to ``goal``, or None when unreachable.
    """
    if start == goal:
        return [start]

    target = nodes[goal]
    counter = itertools.count()
    open_heap: list[tuple[float, int, float, int]] = []
    heapq.heappush(open_heap, (heuristic(nodes[start], target), next(counter), 0.0, start))

    came_from: dict[int, int] = {}
    g_score: dict[int, float] = {start: 0.0}
    closed: set[int] = set()

    while open_heap:
        _, _, g, current = heapq.heappop(open_heap)

        if current in closed or g > g_score.get(current, math.inf):
            continue

        if current == goal:
            path = [current]
            while current in came_from:
                current = came_from[current]
                path.append(current)
            path.reverse()
            return path

        closed.add(current)

        for neighbor, step_cost in adjacency[current]:
            if neighbor in closed:
                continue
            tentative_g = g + step_cost
            if tentative_g < g_score.get(neighbor, math.inf):
                came_from[neighbor] = current
                g_score[neighbor] = tentative_g
                f = tentative_g + heuristic(nodes[neighbor], target)
                heapq.heappush(open_heap, (f, next(counter), tentative_g, neighbor))

    return None


def resolve_node(layer: Layer, ref: NodeRef) -> int:
    """Map a Node, handle or id to a handle on ``layer``.

    Raises:
        ValueError: If the reference does not name a node of this layer.
    """
    if isinstance(ref, Node):
        ref = ref.id
    if isinstance(ref, (int, np.integer)) and not isinstance(ref, bool):
        idx = int(ref)
        if not 0 <= idx < len(layer.nodes):
            raise ValueError(f"Node index {idx} is out of range")
        return idx
    if isinstance(ref, str):
        try:
            return layer.index_of(ref)
        except KeyError as exc:
            raise ValueError(f"Unknown node id: {ref}") from exc
    raise ValueError(f"Unsupported node reference: {ref!r}")


def find_path(
    layer: Layer,
    start: NodeRef,
    goal: NodeRef,
    adjacency: Adjacency | None = None,
) -> list[Node] | None:
    """Compute the cheapest node path between two nodes of ``layer``.

    Args:
        layer: Layer whose edges are treated as bidirectional.
        start: Start node, handle or id.
        goal: Goal node, handle or id.
        adjacency: Optional prebuilt adjacency for repeated queries.

    Returns:
        List of nodes from start to goal, or None if no path exists.

    Raises:
        ValueError: If either endpoint is unknown.
    """
    s = resolve_node(layer, start)
    g = resolve_node(layer, goal)
    adj = adjacency if adjacency is not None else build_adjacency(len(layer.nodes), layer.edges)
    indices = astar_indices(layer.nodes, adj, s, g)
    if indices is None:
        return None
    return [layer.nodes[i] for i in indices]


def nearest_node(layer: Layer, x: float, y: float) -> int | None:
    """Handle of the node closest to ``(x, y)``, or None for an empty layer."""
    if not layer.nodes:
        return None
    coords = np.array([[n.x, n.y] for n in layer.nodes], dtype=np.float64)
    return int(np.argmin(np.hypot(coords[:, 0] - x, coords[:, 1] - y)))


def path_stats(path: Sequence[Node], turn_threshold: float = 0.1) -> dict[str, Any]:
    """Length, node count, turn count and floors visited along ``path``."""
    length = 0.0
    turns = 0
    prev_heading: float | None = None
    for a, b in zip(path, path[1:]):
        dx, dy = b.x - a.x, b.y - a.y
        length += math.hypot(dx, dy)
        if dx == 0 and dy == 0:
            continue
        heading = math.atan2(dy, dx)
        if prev_heading is not None:
            delta = abs((heading - prev_heading + math.pi) % (2 * math.pi) - math.pi)
            if delta > turn_threshold:
                turns += 1
        prev_heading = heading

    floors: list[int] = []
    for n in path:
        if not floors or floors[-1] != n.layer:
            floors.append(n.layer)
    return {"length": length, "nodes": len(path), "turns": turns, "floors": floors}
