"""Vertical connectors (stairs and elevators) linking adjacent floors.

Connector convention:
- Every connector is a shaft at ``(x, y)`` present on all floors.
- Its access point sits ``radius`` away from the centre along ``entrance_angle``.
- Per floor, the access node joins the walkable network and links to a
  connector centre node; centres and access nodes of adjacent floors are
  joined by cross-floor edges.

Access nodes on the lower floor of a pair act as hubs (wide search, many
links); on the upper floor they act as gateways (narrow search, few links).
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

from navgraph.config import BuildOptions
from navgraph.geometry import segment_blocked
from navgraph.models import (
    AvoidZone,
    Connection,
    Connector,
    ConnectorType,
    EdgeKind,
    Layer,
    Node,
    NodeSource,
    VerticalEdge,
)
from navgraph.obstacles import RngLike, make_rng
from navgraph.spatial_index import SpatialIndex, build_spatial_index, segment_candidates

logger = logging.getLogger(__name__)

CENTER_COST_FACTOR = 1.2
SHAFT_AVOID_RADIUS = 17.0
SHAFT_AVOID_SLACK = 0.5
ACCESS_AVOID_RADIUS = 25.0
CORRIDOR_AVOID_RADIUS = 25.0
CORRIDOR_STEP = 20.0
CORRIDOR_LENGTH = 60.0
PLACEMENT_PADDING = 20
ANGLE_DRAWS = 8


def place_connectors(
    width: float,
    height: float,
    layer_count: int,
    rng: RngLike = None,
    count: int = 4,
    radius: float = 15.0,
    padding: int = PLACEMENT_PADDING,
) -> list[Connector]:
    """Place ``count`` connectors at seeded random positions.

    Access points always land inside the world: an entrance angle that puts
    one outside is redrawn a few times, then turned towards the world centre.
    Returns an empty list for single-floor buildings.

    Raises:
        ValueError: When ``radius`` exceeds half the smaller world side.
    """
    if layer_count <= 1 or count <= 0:
        return []
    if radius > min(width, height) / 2:
        raise ValueError(f"connector radius {radius} does not fit a {width}x{height} world")
    gen = make_rng(rng)
    lo_x = min(padding, int(width) // 2)
    lo_y = min(padding, int(height) // 2)
    hi_x = max(lo_x, int(width) - padding)
    hi_y = max(lo_y, int(height) - padding)

    connectors: list[Connector] = []
    for i in range(count):
        x = int(gen.integers(lo_x, hi_x + 1))
        y = int(gen.integers(lo_y, hi_y + 1))
        kind = ConnectorType.STAIRS if gen.random() < 0.5 else ConnectorType.ELEVATOR
        angle = _entrance_angle(gen, x, y, radius, width, height)
        connectors.append(Connector(i, float(x), float(y), kind, float(radius), angle))
    return connectors


def _inside(x: float, y: float, width: float, height: float) -> bool:
    return 0.0 <= x <= width and 0.0 <= y <= height


def _entrance_angle(gen: np.random.Generator, x: float, y: float, radius: float, width: float, height: float) -> float:
    angle = 0.0
    for _ in range(ANGLE_DRAWS):
        angle = float(gen.random() * 2.0 * math.pi)
        if _inside(x + math.cos(angle) * radius, y + math.sin(angle) * radius, width, height):
            return angle
    # radius <= min(width, height) / 2 keeps this inside
    return math.atan2(height / 2 - y, width / 2 - x)


def connector_avoid_zones(connectors: Sequence[Connector], clearance: float = 0.0) -> list[AvoidZone]:
    """Circles around each shaft, its access point and the corridor beyond it.

    The shaft circle grows with the connector radius so that no obstacle
    comes within ``clearance`` of the access-to-centre segment.
    """
    zones: list[AvoidZone] = []
    for c in connectors:
        cos_a = math.cos(c.entrance_angle)
        sin_a = math.sin(c.entrance_angle)
        ax, ay = c.access_x, c.access_y
        shaft = max(SHAFT_AVOID_RADIUS, c.radius + clearance * math.sqrt(2.0) + SHAFT_AVOID_SLACK)
        zones.append(AvoidZone(c.x, c.y, shaft))
        zones.append(AvoidZone(ax, ay, ACCESS_AVOID_RADIUS))
        d = CORRIDOR_STEP
        while d <= CORRIDOR_LENGTH:
            zones.append(AvoidZone(ax + cos_a * d, ay + sin_a * d, CORRIDOR_AVOID_RADIUS))
            d += CORRIDOR_STEP
    return zones


def _access_id(layer: int, connector: Connector) -> str:
    return f"L{layer}-{connector.index}-access"


def _center_id(layer: int, connector: Connector) -> str:
    return f"L{layer}-C{connector.index}"


class _FloorWiring:
    """Collision-checked radius search against one floor's obstacles."""

    def __init__(self, layer: Layer, width: float, height: float, clearance: float, index: SpatialIndex | None) -> None:
        self.layer = layer
        self.clearance = clearance
        self.index = index or build_spatial_index(width, height, layer.obstacles)

    def clear(self, a: Node, b: Node) -> bool:
        pool = segment_candidates(self.index, a.x, a.y, b.x, b.y, pad=self.clearance)
        return not segment_blocked(a.x, a.y, b.x, b.y, pool, self.clearance)

    def wire(self, idx: int, radius: float, max_links: int) -> int:
        """Link node ``idx`` to up to ``max_links`` clear nodes within ``radius``."""
        nodes = self.layer.nodes
        me = nodes[idx]
        candidates = [
            i
            for i, n in enumerate(nodes)
            if i != idx and n.source is not NodeSource.CONNECTOR
        ]
        if not candidates:
            return 0
        coords = np.array([[nodes[i].x, nodes[i].y] for i in candidates], dtype=np.float64)
        dists = np.hypot(coords[:, 0] - me.x, coords[:, 1] - me.y)
        order = np.argsort(dists, kind="stable")

        linked = 0
        in_radius = 0
        for o in order:
            if dists[o] > radius:
                break
            in_radius += 1
            target = candidates[int(o)]
            if self.clear(me, nodes[target]):
                self.layer.add_edge(idx, target, EdgeKind.CONNECTOR_LINK)
                linked += 1
                if linked >= max_links:
                    break
        if linked:
            logger.debug("Connector %s linked to %d node(s) within %.0f", me.id, linked, radius)
            return linked

        # Nothing reachable inside the radius: fall back to the nearest clear node.
        for o in order:
            target = candidates[int(o)]
            if self.clear(me, nodes[target]):
                self.layer.add_edge(idx, target, EdgeKind.CONNECTOR_LINK)
                logger.debug("Connector %s fell back to nearest node %s", me.id, nodes[target].id)
                return 1
        logger.warning("Connector access %s has no collision-free neighbour", me.id)
        return 0

    def link_internal(self, access: int, center: int) -> bool:
        """Join an access node to its shaft centre unless an obstacle is in the way."""
        nodes = self.layer.nodes
        if not self.clear(nodes[access], nodes[center]):
            logger.warning("Connector %s is blocked from its access point; no internal edge", nodes[center].id)
            return False
        self.layer.add_edge(access, center, EdgeKind.CONNECTOR_INTERNAL)
        return True

    def prune(self, idx: int, keep: int) -> int:
        """Keep only the ``keep`` closest non-internal links of node ``idx``."""
        nodes = self.layer.nodes
        me = nodes[idx]
        links: list[tuple[float, int]] = []
        for pos, edge in self.layer.incident(idx):
            if edge.kind is EdgeKind.CONNECTOR_INTERNAL:
                continue
            other = nodes[edge.v if edge.u == idx else edge.u]
            links.append((math.hypot(other.x - me.x, other.y - me.y), pos))
        if len(links) <= keep:
            return 0
        links.sort()
        drop = {pos for _, pos in links[keep:]}
        self.layer.edges = [e for pos, e in enumerate(self.layer.edges) if pos not in drop]
        logger.debug("Exit gateway %s pruned %d -> %d links", me.id, len(links), keep)
        return len(drop)


def _find_or_create(layer: Layer, node_id: str, x: float, y: float, source: NodeSource, ctype: ConnectorType | None) -> tuple[int, bool]:
    if layer.has_node(node_id):
        return layer.index_of(node_id), False
    idx = layer.add_node(Node(node_id, x, y, layer.index, source, ctype))
    return idx, True


def connect_floors(
    layers: Sequence[Layer],
    connectors: Sequence[Connector],
    width: float,
    height: float,
    options: BuildOptions | None = None,
    indices: Sequence[SpatialIndex | None] | None = None,
) -> tuple[list[Connection], list[VerticalEdge]]:
    """Wire connectors into every floor and link adjacent floors.

    Layers are extended in place with access/centre nodes and their edges;
    cross-floor edges are returned separately.

    Args:
        layers: Sanitized floors, ordered bottom to top.
        connectors: Pre-placed connectors shared by all floors.
        width: World width.
        height: World height.
        options: Build options (clearance, hub/gateway limits, layer height).
        indices: Optional per-floor spatial indices.

    Returns:
        Tuple ``(connections, vertical_edges)``; one connection per connector
        per adjacent floor pair.
    """
    opts = options or BuildOptions()
    if len(layers) < 2 or not connectors:
        return [], []

    wiring = [
        _FloorWiring(layer, width, height, opts.edge_clearance, indices[i] if indices else None)
        for i, layer in enumerate(layers)
    ]
    connections: list[Connection] = []
    vertical: list[VerticalEdge] = []
    layer_height = opts.layer_height

    for lower_i in range(len(layers) - 1):
        upper_i = lower_i + 1
        lower, upper = layers[lower_i], layers[upper_i]
        for c in connectors:
            ax, ay = c.access_x, c.access_y

            lower_access, created = _find_or_create(
                lower, _access_id(lower_i, c), ax, ay, NodeSource.CONNECTOR_ACCESS, None
            )
            if created:
                wiring[lower_i].wire(lower_access, opts.hub_search_radius, opts.hub_max_connections)

            upper_access, created = _find_or_create(
                upper, _access_id(upper_i, c), ax, ay, NodeSource.CONNECTOR_ACCESS, None
            )
            if created:
                wiring[upper_i].wire(upper_access, opts.gateway_search_radius, opts.max_exit_connections)
            wiring[upper_i].prune(upper_access, opts.max_exit_connections)

            lower_center, created = _find_or_create(
                lower, _center_id(lower_i, c), c.x, c.y, NodeSource.CONNECTOR, c.type
            )
            if created:
                wiring[lower_i].link_internal(lower_access, lower_center)
            upper_center, created = _find_or_create(
                upper, _center_id(upper_i, c), c.x, c.y, NodeSource.CONNECTOR, c.type
            )
            if created:
                wiring[upper_i].link_internal(upper_access, upper_center)

            center_cost = layer_height * CENTER_COST_FACTOR
            la, ua = lower.nodes[lower_access], upper.nodes[upper_access]
            direct_cost = math.sqrt((la.x - ua.x) ** 2 + (la.y - ua.y) ** 2 + layer_height**2)

            vertical.append(VerticalEdge(lower_i, lower_center, upper_i, upper_center, center_cost, c.type.value))
            vertical.append(
                VerticalEdge(lower_i, lower_access, upper_i, upper_access, direct_cost, f"{c.type.value}-direct")
            )
            connections.append(
                Connection(
                    type=c.type,
                    connector_index=c.index,
                    lower_layer=lower_i,
                    upper_layer=upper_i,
                    lower_node_id=lower.nodes[lower_center].id,
                    upper_node_id=upper.nodes[upper_center].id,
                    position=(c.x, c.y),
                    access_position=(ax, ay),
                    cost=center_cost,
                    direct_cost=direct_cost,
                )
            )

    logger.info(
        "Connected %d floors through %d connector(s): %d connections",
        len(layers),
        len(connectors),
        len(connections),
    )
    return connections, vertical
