"""Core data model for multi-floor navigation graphs.

Purpose:
- Describe obstacles, nodes, edges and floors as plain dataclasses.
- Keep node storage as a per-floor arena addressed by dense integer handles.
- Provide the closed enums used for mode dispatch and node provenance.

String node ids (``L{layer}-N{i}`` and friends) are kept on each node for
serialization and lookups; every algorithm works on integer indices.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

import numpy as np


class NetworkMode(str, Enum):
    """Free-space decomposition strategy."""

    CENTROID = "centroid"
    PORTAL = "portal"
    VORONOI = "voronoi"

    @classmethod
    def parse(cls, value: "NetworkMode | str | None") -> "NetworkMode":
        """Resolve a user-supplied mode value, defaulting to centroid."""
        if value is None:
            return cls.CENTROID
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            allowed = ", ".join(m.value for m in cls)
            raise ValueError(f"mode must be one of: {allowed}") from exc

    @property
    def abstraction(self) -> str:
        """Abstraction label stored in layer metadata."""
        return {
            NetworkMode.CENTROID: "centroid-free",
            NetworkMode.PORTAL: "portal",
            NetworkMode.VORONOI: "voronoi-skeleton",
        }[self]


class NodeSource(str, Enum):
    """Which construction step produced a node."""

    CENTROID = "centroid"
    PORTAL = "portal"
    VORONOI = "voronoi"
    FIXED_POINT = "fixed-point"
    CONNECTOR = "connector"
    CONNECTOR_ACCESS = "connector-access"
    WAYPOINT = "waypoint"


class ConnectorType(str, Enum):
    """Vertical connector kind."""

    STAIRS = "stairs"
    ELEVATOR = "elevator"


class EdgeKind(str, Enum):
    """Edge provenance tag; plain network edges carry NETWORK."""

    NETWORK = "network"
    EXTRA = "extra"
    BRIDGE = "bridge"
    FIXED_LINK = "fixed-link"
    CONNECTOR_LINK = "connector-link"
    CONNECTOR_INTERNAL = "connector-internal"
    CROSS_FLOOR = "cross-floor"


@dataclass(frozen=True, slots=True)
class Obstacle:
    """Axis-aligned rectangle in world units."""

    id: int
    x: float
    y: float
    w: float
    h: float

    @property
    def x2(self) -> float:
        return self.x + self.w

    @property
    def y2(self) -> float:
        return self.y + self.h

    def to_dict(self) -> dict[str, float]:
        return {"id": int(self.id), "x": float(self.x), "y": float(self.y), "w": float(self.w), "h": float(self.h)}


@dataclass(frozen=True, slots=True)
class AvoidZone:
    """Circular region kept free of obstacles during generation."""

    x: float
    y: float
    radius: float


@dataclass(frozen=True, slots=True)
class FixedPoint:
    """Caller-provided point that must become a node (e.g. connector access)."""

    key: str
    x: float
    y: float
    source: NodeSource = NodeSource.CONNECTOR_ACCESS


@dataclass(slots=True)
class Node:
    """Graph vertex. Immutable by convention once a layer is published."""

    id: str
    x: float
    y: float
    layer: int
    source: NodeSource
    connector_type: ConnectorType | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "x": float(self.x),
            "y": float(self.y),
            "layer": int(self.layer),
            "source": self.source.value,
        }
        if self.connector_type is not None:
            payload["connectorType"] = self.connector_type.value
        return payload


@dataclass(slots=True)
class Edge:
    """Undirected edge between two node handles of the same layer."""

    u: int
    v: int
    cost: float
    kind: EdgeKind = EdgeKind.NETWORK


@dataclass(slots=True)
class Connector:
    """Pre-placed stair or elevator shaft shared by every floor."""

    index: int
    x: float
    y: float
    type: ConnectorType
    radius: float
    entrance_angle: float

    @property
    def access_x(self) -> float:
        return self.x + float(np.cos(self.entrance_angle)) * self.radius

    @property
    def access_y(self) -> float:
        return self.y + float(np.sin(self.entrance_angle)) * self.radius

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "x": float(self.x),
            "y": float(self.y),
            "type": self.type.value,
            "radius": float(self.radius),
            "entranceAngle": float(self.entrance_angle),
            "accessX": self.access_x,
            "accessY": self.access_y,
        }


@dataclass(slots=True)
class VerticalEdge:
    """Cross-floor edge between two nodes on adjacent floors."""

    lower_layer: int
    lower_node: int
    upper_layer: int
    upper_node: int
    cost: float
    entrance_type: str


@dataclass(slots=True)
class Connection:
    """Summary of one connector link between a pair of adjacent floors."""

    type: ConnectorType
    connector_index: int
    lower_layer: int
    upper_layer: int
    lower_node_id: str
    upper_node_id: str
    position: tuple[float, float]
    access_position: tuple[float, float]
    cost: float
    direct_cost: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "connectorIndex": self.connector_index,
            "lowerLayer": self.lower_layer,
            "upperLayer": self.upper_layer,
            "from": self.lower_node_id,
            "to": self.upper_node_id,
            "position": {"x": float(self.position[0]), "y": float(self.position[1])},
            "accessPosition": {"x": float(self.access_position[0]), "y": float(self.access_position[1])},
            "cost": float(self.cost),
            "directCost": float(self.direct_cost),
        }


@dataclass(slots=True)
class Layer:
    """One floor: node arena, undirected edge list, obstacles and metadata."""

    index: int
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    obstacles: list[Obstacle] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    nodes_packed: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    edges_packed: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    _id_index: dict[str, int] | None = field(default=None, repr=False)

    def index_of(self, node_id: str) -> int:
        """Return the handle of ``node_id``; raises KeyError when unknown."""
        if self._id_index is None or len(self._id_index) != len(self.nodes):
            self._id_index = {n.id: i for i, n in enumerate(self.nodes)}
        return self._id_index[node_id]

    def has_node(self, node_id: str) -> bool:
        try:
            self.index_of(node_id)
        except KeyError:
            return False
        return True

    def add_node(self, node: Node) -> int:
        self.nodes.append(node)
        idx = len(self.nodes) - 1
        if self._id_index is not None:
            self._id_index[node.id] = idx
        return idx

    def add_edge(self, u: int, v: int, kind: EdgeKind = EdgeKind.NETWORK) -> Edge:
        a, b = self.nodes[u], self.nodes[v]
        edge = Edge(u, v, float(np.hypot(a.x - b.x, a.y - b.y)), kind)
        self.edges.append(edge)
        return edge

    def incident(self, idx: int) -> Iterator[tuple[int, Edge]]:
        """Yield ``(position, edge)`` for every edge touching node ``idx``."""
        for pos, edge in enumerate(self.edges):
            if edge.u == idx or edge.v == idx:
                yield pos, edge


@dataclass(slots=True)
class NavGraph:
    """Complete multi-floor navigation graph."""

    width: float
    height: float
    layers: list[Layer] = field(default_factory=list)
    connectors: list[Connector] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)
    vertical_edges: list[VerticalEdge] = field(default_factory=list)
    obstacles_packed: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def obstacles(self) -> list[list[Obstacle]]:
        return [layer.obstacles for layer in self.layers]

    def layer(self, index: int) -> Layer:
        if not 0 <= index < len(self.layers):
            raise ValueError(f"Layer {index} is out of range (0..{len(self.layers) - 1})")
        return self.layers[index]
