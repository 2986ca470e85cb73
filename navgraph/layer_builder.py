"""Build one floor: network, sanitization, overlay and packed buffers."""

from __future__ import annotations

import logging
from typing import Sequence

from navgraph.config import BuildOptions
from navgraph.models import FixedPoint, Layer, NetworkMode, Obstacle
from navgraph.networks.overlay import build_overlay
from navgraph.networks.registry import build_network
from navgraph.packing import pack_edges, pack_nodes
from navgraph.sanitizer import sanitize_layer
from navgraph.spatial_index import SpatialIndex
from navgraph.utils import elapsed_ms, now

logger = logging.getLogger(__name__)


def repack_layer(layer: Layer) -> None:
    """Refresh packed buffers and counts after nodes or edges were added."""
    layer.nodes_packed = pack_nodes(layer.nodes)
    layer.edges_packed = pack_edges(layer.nodes, layer.edges)
    layer.metadata["nodeCount"] = len(layer.nodes)
    layer.metadata["edgeCount"] = len(layer.edges)


def build_layer(
    layer_index: int,
    width: float,
    height: float,
    obstacles: Sequence[Obstacle],
    mode: NetworkMode | str = NetworkMode.CENTROID,
    options: BuildOptions | None = None,
    fixed_points: Sequence[FixedPoint] = (),
    *,
    index: SpatialIndex | None = None,
) -> Layer:
    """Run the selected builder for one floor and sanitize its output.

    Args:
        layer_index: Floor number; used in node ids.
        width: World width.
        height: World height.
        obstacles: This floor's obstacles.
        mode: Free-space decomposition strategy.
        options: Build options.
        fixed_points: Points that must become nodes (centroid mode).
        index: Spatial index for ``obstacles``, usually from the shared cache.

    Returns:
        A packed Layer with metadata (abstraction, profile, sanitize report,
        overlay buffer and timings).
    """
    opts = options or BuildOptions()
    network_mode = NetworkMode.parse(mode)

    t0 = now()
    raw = build_network(
        network_mode, width, height, obstacles, opts, fixed_points, layer=layer_index, index=index
    )
    build_ms = elapsed_ms(t0)

    t1 = now()
    clean = sanitize_layer(
        raw.nodes,
        raw.edges,
        width,
        height,
        obstacles,
        clearance=opts.edge_clearance,
        repair_connectivity=opts.repair_connectivity,
        index=index,
    )
    sanitize_ms = elapsed_ms(t1)

    overlay = build_overlay(width, height, obstacles, opts.overlay_mode, index=index)

    layer = Layer(
        index=layer_index,
        nodes=clean.nodes,
        edges=clean.edges,
        obstacles=list(obstacles),
        metadata={
            "abstraction": network_mode.abstraction,
            "mode": network_mode.value,
            "triangleCount": raw.triangle_count,
            "profile": raw.profile.to_dict(),
            "sanitize": clean.report.to_dict(),
            "overlayBase": overlay.to_dict(),
            "timings": {
                "buildMs": round(build_ms, 3),
                "sanitizeMs": round(sanitize_ms, 3),
                "overlayMs": round(overlay.build_ms, 3),
            },
        },
    )
    repack_layer(layer)
    logger.info(
        "Layer %d (%s): %d nodes, %d edges, %d obstacles in %.1f ms",
        layer_index,
        network_mode.value,
        len(layer.nodes),
        len(layer.edges),
        len(layer.obstacles),
        build_ms + sanitize_ms + overlay.build_ms,
    )
    return layer
