"""Two-level pathfinding for large layers.

Purpose:
- Partition a layer into a ``grid_size x grid_size`` zone grid.
- Search an abstract graph of zone portals, then stitch the result with
  local A* segments.

Portals of one zone are joined as a clique weighted by straight-line
distance without checking that they reach each other inside the zone. In
zones split by obstacles the abstract search can pick a route that the
stitching step then fails to realise; that query returns None. Results
are fast but not guaranteed optimal.

Usage example:
    >>> finder = HierarchicalPathfinder(layer, 2000, 2000, grid_size=4)
    >>> path = finder.find_path("L0-N10", "L0-N9000")
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
from dataclasses import dataclass, field

from navgraph.models import Layer, Node
from navgraph.pathfinding import (
    Adjacency,
    NodeRef,
    astar_indices,
    build_adjacency,
    find_path,
    heuristic,
    resolve_node,
)

logger = logging.getLogger(__name__)

DEFAULT_NODE_THRESHOLD = 2000
NODES_PER_ZONE = 250


@dataclass(slots=True)
class Zone:
    """One grid cell of the partition."""

    id: int
    nodes: list[int] = field(default_factory=list)
    portals: dict[int, None] = field(default_factory=dict)

    def to_dict(self, layer: Layer) -> dict[str, object]:
        return {
            "id": self.id,
            "nodeCount": len(self.nodes),
            "portals": [layer.nodes[p].id for p in self.portals],
        }


def choose_grid_size(node_count: int) -> int:
    """Zone grid size targeting roughly 250 nodes per zone, at least 2."""
    return max(2, int(round(math.sqrt(max(0, node_count) / NODES_PER_ZONE))))


class HierarchicalPathfinder:
    """Zone/portal abstraction over a single layer.

    Args:
        layer: Layer to search.
        width: World width.
        height: World height.
        grid_size: Zones per axis.
    """

    def __init__(self, layer: Layer, width: float, height: float, grid_size: int = 4) -> None:
        self.layer = layer
        self.width = float(width)
        self.height = float(height)
        self.grid_size = max(1, int(grid_size))
        self.zone_width = self.width / self.grid_size
        self.zone_height = self.height / self.grid_size

        self.zones = [Zone(i) for i in range(self.grid_size * self.grid_size)]
        self.node_zone: list[int] = []
        self.abstract_graph: dict[int, list[tuple[int, float]]] = {}
        self.adjacency: Adjacency = build_adjacency(len(layer.nodes), layer.edges)
        self.last_abstract_path: list[Node] | None = None
        self._build()

    def zone_of(self, x: float, y: float) -> int:
        col = min(self.grid_size - 1, max(0, int(math.floor(x / self.zone_width)))) if self.zone_width > 0 else 0
        row = min(self.grid_size - 1, max(0, int(math.floor(y / self.zone_height)))) if self.zone_height > 0 else 0
        return row * self.grid_size + col

    def _link(self, u: int, v: int, cost: float) -> None:
        self.abstract_graph.setdefault(u, []).append((v, cost))

    def _build(self) -> None:
        nodes = self.layer.nodes
        for idx, node in enumerate(nodes):
            zone = self.zone_of(node.x, node.y)
            self.node_zone.append(zone)
            self.zones[zone].nodes.append(idx)

        inter_zone = 0
        for edge in self.layer.edges:
            z1, z2 = self.node_zone[edge.u], self.node_zone[edge.v]
            if z1 == z2:
                continue
            self.zones[z1].portals[edge.u] = None
            self.zones[z2].portals[edge.v] = None
            self._link(edge.u, edge.v, edge.cost)
            self._link(edge.v, edge.u, edge.cost)
            inter_zone += 1

        clique = 0
        for zone in self.zones:
            portals = list(zone.portals)
            for a, b in itertools.combinations(portals, 2):
                d = heuristic(nodes[a], nodes[b])
                self._link(a, b, d)
                self._link(b, a, d)
                clique += 1

        logger.debug(
            "Hierarchy %dx%d: %d inter-zone edges, %d intra-zone portal links",
            self.grid_size,
            self.grid_size,
            inter_zone,
            clique,
        )

    def get_zones(self) -> list[dict[str, object]]:
        return [zone.to_dict(self.layer) for zone in self.zones]

    def _abstract_search(self, start: int, goal: int) -> list[int] | None:
        nodes = self.layer.nodes
        target = nodes[goal]
        start_zone = self.node_zone[start]
        goal_zone = self.node_zone[goal]
        start_links = [(p, heuristic(nodes[start], nodes[p])) for p in self.zones[start_zone].portals if p != start]

        def neighbors(current: int) -> list[tuple[int, float]]:
            out = list(self.abstract_graph.get(current, ()))
            if current == start:
                out.extend(start_links)
            if current != goal and self.node_zone[current] == goal_zone:
                out.append((goal, heuristic(nodes[current], target)))
            return out

        counter = itertools.count()
        open_heap: list[tuple[float, int, float, int]] = [(heuristic(nodes[start], target), next(counter), 0.0, start)]
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
            for nb, cost in neighbors(current):
                if nb in closed:
                    continue
                tentative = g + cost
                if tentative < g_score.get(nb, math.inf):
                    g_score[nb] = tentative
                    came_from[nb] = current
                    heapq.heappush(open_heap, (tentative + heuristic(nodes[nb], target), next(counter), tentative, nb))
        return None

    def find_path(self, start: NodeRef, goal: NodeRef) -> list[Node] | None:
        """Return a stitched node path, or None when abstraction or stitching fails.

        Raises:
            ValueError: If either endpoint is unknown.
        """
        s = resolve_node(self.layer, start)
        g = resolve_node(self.layer, goal)
        nodes = self.layer.nodes

        if self.node_zone[s] == self.node_zone[g]:
            self.last_abstract_path = None
            return find_path(self.layer, s, g, self.adjacency)

        abstract = self._abstract_search(s, g)
        if abstract is None:
            self.last_abstract_path = None
            return None
        self.last_abstract_path = [nodes[i] for i in abstract]

        full: list[int] = []
        for u, v in zip(abstract, abstract[1:]):
            segment = astar_indices(nodes, self.adjacency, u, v)
            if segment is None:
                logger.warning("Failed to refine path segment %s -> %s", nodes[u].id, nodes[v].id)
                return None
            if full:
                full.pop()
            full.extend(segment)
        return [nodes[i] for i in full]


def find_path_auto(
    layer: Layer,
    start: NodeRef,
    goal: NodeRef,
    width: float,
    height: float,
    *,
    node_threshold: int = DEFAULT_NODE_THRESHOLD,
    pathfinder: HierarchicalPathfinder | None = None,
) -> list[Node] | None:
    """Plain A* on small layers, hierarchical search on large ones."""
    if len(layer.nodes) < node_threshold:
        return find_path(layer, start, goal)
    finder = pathfinder or HierarchicalPathfinder(layer, width, height, choose_grid_size(len(layer.nodes)))
    return finder.find_path(start, goal)
