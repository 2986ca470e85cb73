"""Flatten graph geometry into packed float32 buffers.

Layouts:
- nodes: ``x, y`` per node (length ``2 * node_count``)
- edges: ``x1, y1, x2, y2`` per edge (length ``4 * edge_count``)
- obstacles: ``x, y, w, h`` per rectangle (length ``4 * obstacle_count``)

Buffers are geometry only; id-based adjacency lives on the layer itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from navgraph.models import Edge, NavGraph, Node, Obstacle

logger = logging.getLogger(__name__)


def pack_nodes(nodes: Sequence[Node]) -> np.ndarray:
    packed = np.empty(2 * len(nodes), dtype=np.float32)
    for i, n in enumerate(nodes):
        packed[2 * i] = n.x
        packed[2 * i + 1] = n.y
    return packed


def pack_edges(nodes: Sequence[Node], edges: Sequence[Edge]) -> np.ndarray:
    packed = np.empty(4 * len(edges), dtype=np.float32)
    for i, e in enumerate(edges):
        a, b = nodes[e.u], nodes[e.v]
        packed[4 * i : 4 * i + 4] = (a.x, a.y, b.x, b.y)
    return packed


def pack_obstacles(obstacles: Sequence[Obstacle]) -> np.ndarray:
    packed = np.empty(4 * len(obstacles), dtype=np.float32)
    for i, ob in enumerate(obstacles):
        packed[4 * i : 4 * i + 4] = (ob.x, ob.y, ob.w, ob.h)
    return packed


@dataclass(slots=True)
class TransferStats:
    """Size summary of the buffers handed across the worker boundary."""

    buffer_count: int = 0
    transfer_bytes: int = 0
    packed_bytes: int = 0
    nodes_bytes: int = 0
    obs_bytes: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "bufferCount": self.buffer_count,
            "transferBytes": self.transfer_bytes,
            "packedBytes": self.packed_bytes,
            "nodesBytes": self.nodes_bytes,
            "obsBytes": self.obs_bytes,
        }


def collect_transferables(graph: NavGraph) -> tuple[list[np.ndarray], TransferStats]:
    """List every packed buffer of ``graph`` once, with byte counts.

    Buffers are returned by reference; the caller must not mutate them
    after handing them over.
    """
    buffers: list[np.ndarray] = []
    seen: set[int] = set()
    stats = TransferStats()

    def add(buf: Any, bucket: str) -> None:
        if not isinstance(buf, np.ndarray) or buf.size == 0 or id(buf) in seen:
            return
        seen.add(id(buf))
        buffers.append(buf)
        stats.transfer_bytes += buf.nbytes
        if bucket == "nodes":
            stats.nodes_bytes += buf.nbytes
        elif bucket == "obstacles":
            stats.obs_bytes += buf.nbytes
        else:
            stats.packed_bytes += buf.nbytes

    for layer in graph.layers:
        add(layer.nodes_packed, "nodes")
        add(layer.edges_packed, "edges")
        overlay = layer.metadata.get("overlayBase")
        if isinstance(overlay, dict):
            add(overlay.get("edgesPacked"), "edges")
    add(graph.obstacles_packed, "obstacles")

    stats.buffer_count = len(buffers)
    logger.debug(
        "Transfer: %d buffers, %.1f KB (nodes %.1f KB, edges %.1f KB, obstacles %.1f KB)",
        stats.buffer_count,
        stats.transfer_bytes / 1024,
        stats.nodes_bytes / 1024,
        stats.packed_bytes / 1024,
        stats.obs_bytes / 1024,
    )
    return buffers, stats
