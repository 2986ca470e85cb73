"""Generation pipeline: obstacles, per-floor networks and floor connectors.

Purpose:
- Validate a generation request before any work starts.
- Sequence obstacle generation, per-floor build/sanitize/overlay/pack,
  vertical connection and the optional quality gate.
- Report progress through an ``emit`` callback and honour a cooperative
  cancel token between floors.

Usage example:
    >>> request = GenerationRequest.from_payload({"width": 400, "height": 300, "layerCount": 2, "obstacleCount": 40, "seed": 7})
    >>> graph = generate_navgraph(request)
    >>> len(graph.layers)
    2
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

import numpy as np

from navgraph.config import BuildOptions
from navgraph.layer_builder import build_layer, repack_layer
from navgraph.models import Connector, FixedPoint, Layer, NavGraph, NetworkMode, Obstacle
from navgraph.obstacles import generate_obstacles
from navgraph.packing import collect_transferables, pack_obstacles
from navgraph.spatial_index import SpatialIndexCache, obstacles_signature
from navgraph.utils import elapsed_ms, now
from navgraph.validation import validate_navgraph
from navgraph.vertical import connect_floors, connector_avoid_zones, place_connectors

logger = logging.getLogger(__name__)

EmitFn = Callable[[str, dict[str, Any]], None]

WARMUP_PAYLOAD: dict[str, Any] = {
    "width": 64,
    "height": 48,
    "layerCount": 1,
    "obstacleCount": 16,
    "seed": 1,
    "mode": "centroid",
    "options": {"overlayMode": "none", "validate": False},
}


class GenerationCancelled(RuntimeError):
    """Raised at a loop boundary after a cancel request."""


class CancelToken:
    """Cooperative cancel flag shared between a caller and a running build."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, where: str = "") -> None:
        if self._event.is_set():
            raise GenerationCancelled(f"Generation cancelled{(' ' + where) if where else ''}")


def _fresh_seed() -> int:
    return int(np.random.SeedSequence().entropy & 0xFFFFFFFF)


@dataclass(slots=True)
class GenerationRequest:
    """Validated parameters of one generation run."""

    width: int
    height: int
    layer_count: int = 1
    obstacle_count: int = 0
    seed: int = field(default_factory=_fresh_seed)
    mode: NetworkMode = NetworkMode.CENTROID
    options: BuildOptions = field(default_factory=BuildOptions)

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any] | None, defaults: BuildOptions | None = None
    ) -> "GenerationRequest":
        """Parse a ``GENERATE_NAVGRAPH`` payload (camelCase keys).

        ``payload["options"]`` is layered over ``defaults``, normally the
        options the service read from its environment at startup.

        Raises:
            ValueError: When a required field is missing or out of range.
        """
        if not isinstance(payload, Mapping):
            raise ValueError("Invalid parameters: payload must be an object")

        def integer(key: str, alias: str | None = None, default: int | None = None) -> int:
            raw = payload.get(key, payload.get(alias) if alias else None)
            if raw is None:
                if default is None:
                    raise ValueError(f"Invalid parameters: {key} is required")
                return default
            if isinstance(raw, bool):
                raise ValueError(f"Invalid parameters: {key} must be an integer")
            try:
                value = float(raw)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Invalid parameters: {key} must be an integer") from exc
            if not value.is_integer():
                raise ValueError(f"Invalid parameters: {key} must be an integer")
            return int(value)

        width = integer("width")
        height = integer("height")
        layer_count = integer("layerCount", "layer_count")
        obstacle_count = integer("obstacleCount", "obstacle_count", default=0)
        if width <= 0 or height <= 0:
            raise ValueError("Invalid parameters: width and height must be > 0")
        if layer_count < 1:
            raise ValueError("Invalid parameters: layerCount must be >= 1")
        if obstacle_count < 0:
            raise ValueError("Invalid parameters: obstacleCount must be >= 0")

        seed_raw = payload.get("seed")
        seed = _fresh_seed() if seed_raw is None else integer("seed")
        if seed < 0:
            raise ValueError("Invalid parameters: seed must be >= 0")
        try:
            mode = NetworkMode.parse(payload.get("mode"))
            options = BuildOptions.from_mapping(payload.get("options") or {}, base=defaults)
        except ValueError as exc:
            raise ValueError(f"Invalid parameters: {exc}") from exc
        if layer_count > 1 and options.floor_entrance_count > 0 and options.connector_radius > min(width, height) / 2:
            raise ValueError("Invalid parameters: connectorRadius must be at most half the smaller world side")

        return cls(width, height, layer_count, obstacle_count, seed, mode, options)

    def to_payload(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "layerCount": self.layer_count,
            "obstacleCount": self.obstacle_count,
            "seed": self.seed,
            "mode": self.mode.value,
            "options": self.options.to_dict(),
        }


def _floor_obstacles(request: GenerationRequest, floor: int, connectors: list[Connector]) -> list[Obstacle]:
    opts = request.options
    return generate_obstacles(
        request.width,
        request.height,
        request.obstacle_count,
        [request.seed, 0, floor],
        min_size_ratio=opts.min_size_ratio,
        max_size_ratio=opts.max_size_ratio,
        avoid_overlap=opts.avoid_overlap,
        padding=opts.obstacle_padding,
        avoid_zones=connector_avoid_zones(connectors, clearance=opts.edge_clearance),
        max_attempts_per_obstacle=opts.max_attempts_per_obstacle,
    )


def build_layers(
    request: GenerationRequest,
    base_obstacles: list[Obstacle],
    connectors: list[Connector],
    *,
    cache: SpatialIndexCache | None = None,
    emit: EmitFn | None = None,
    cancel: CancelToken | None = None,
) -> list[Layer]:
    """Build every floor; floor 0 reuses ``base_obstacles``.

    Emits one ``PROGRESS`` event per completed floor.
    """
    cache = cache if cache is not None else SpatialIndexCache()
    opts = request.options
    fixed_points = [FixedPoint(f"{c.index}-access", c.access_x, c.access_y) for c in connectors]

    layers: list[Layer] = []
    for i in range(request.layer_count):
        if cancel is not None:
            cancel.check(f"before floor {i}")
        obstacles = base_obstacles if i == 0 else _floor_obstacles(request, i, connectors)
        index = cache.get(request.width, request.height, obstacles, opts.cell_size)
        layer = build_layer(
            i,
            request.width,
            request.height,
            obstacles,
            request.mode,
            opts,
            fixed_points,
            index=index,
        )
        layers.append(layer)
        if emit is not None:
            emit(
                "PROGRESS",
                {
                    "progress": (i + 1) / request.layer_count,
                    "currentLayer": i,
                    "totalLayers": request.layer_count,
                    "layerNodeCount": len(layer.nodes),
                },
            )
    return layers


def generate_navgraph(
    request: GenerationRequest,
    *,
    cache: SpatialIndexCache | None = None,
    emit: EmitFn | None = None,
    cancel: CancelToken | None = None,
) -> NavGraph:
    """Run the full generation pipeline for ``request``.

    Args:
        request: Validated request.
        cache: Spatial index cache shared across runs.
        emit: Optional ``(event_type, payload)`` callback for
            ``OBSTACLE_READY`` and ``PROGRESS`` events.
        cancel: Optional cooperative cancel token.

    Returns:
        The complete NavGraph with packed buffers and metadata.

    Raises:
        GenerationCancelled: When ``cancel`` fires between floors.
    """
    cache = cache if cache is not None else SpatialIndexCache()
    opts = request.options

    connectors = place_connectors(
        request.width,
        request.height,
        request.layer_count,
        [request.seed, 1],
        count=opts.floor_entrance_count,
        radius=opts.connector_radius,
    )

    t_ob = now()
    base_obstacles = _floor_obstacles(request, 0, connectors)
    signature = obstacles_signature(base_obstacles)
    obstacles_ms = elapsed_ms(t_ob)
    if emit is not None:
        emit(
            "OBSTACLE_READY",
            {
                "obstacles": [ob.to_dict() for ob in base_obstacles],
                "count": len(base_obstacles),
                "obstaclesSignature": signature,
            },
        )

    t_build = now()
    layers = build_layers(request, base_obstacles, connectors, cache=cache, emit=emit, cancel=cancel)

    if cancel is not None:
        cancel.check("before connecting floors")
    t_connect = now()
    indices = [cache.get(request.width, request.height, layer.obstacles, opts.cell_size) for layer in layers]
    connections, vertical_edges = connect_floors(
        layers, connectors, request.width, request.height, opts, indices
    )
    if connections:
        for layer in layers:
            repack_layer(layer)
    connect_ms = elapsed_ms(t_connect)
    build_ms = elapsed_ms(t_build)

    graph = NavGraph(
        width=request.width,
        height=request.height,
        layers=layers,
        connectors=connectors,
        connections=connections,
        vertical_edges=vertical_edges,
        obstacles_packed=pack_obstacles(base_obstacles),
    )

    first = layers[0].metadata if layers else {}
    graph.metadata = {
        "width": request.width,
        "height": request.height,
        "layerCount": request.layer_count,
        "obstacleCount": len(base_obstacles),
        "seed": request.seed,
        "mode": request.mode.value,
        "totalNodes": sum(len(layer.nodes) for layer in layers),
        "totalEdges": sum(len(layer.edges) for layer in layers),
        "crossFloorEdges": len(vertical_edges),
        "floorConnections": [c.to_dict() for c in connections],
        "connectors": [c.to_dict() for c in connectors],
        "profile": first.get("profile"),
        "useSpatialIndex": opts.use_spatial_index,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "obstaclesSignature": signature,
        "workerProfile": {
            "obstaclesMs": round(obstacles_ms, 3),
            "buildMs": round(build_ms, 3),
            "connectMs": round(connect_ms, 3),
            "overlayMs": (first.get("overlayBase") or {}).get("buildMs", 0.0),
        },
        "indexCache": cache.stats(),
    }

    if opts.validate:
        report = validate_navgraph(graph, clearance=opts.edge_clearance)
        graph.metadata["validation"] = report
        if not report["ok"]:
            logger.warning("Quality gate found %d error(s)", report["summary"]["errors"])

    _, stats = collect_transferables(graph)
    graph.metadata["transfer"] = stats.to_dict()
    logger.info(
        "Generated %d floor(s), %d nodes, %d edges, %d connections (seed=%d)",
        request.layer_count,
        graph.metadata["totalNodes"],
        graph.metadata["totalEdges"],
        len(connections),
        request.seed,
    )
    return graph


def perform_warmup(cache: SpatialIndexCache | None = None) -> float:
    """Run a small throwaway build; returns its duration in milliseconds."""
    t0 = now()
    generate_navgraph(GenerationRequest.from_payload(WARMUP_PAYLOAD), cache=cache)
    ms = elapsed_ms(t0)
    logger.debug("Warmup finished in %.1f ms", ms)
    return ms
