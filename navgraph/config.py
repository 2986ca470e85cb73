"""Tunable build options for navigation graph generation.

Options can be created directly, from a request mapping (snake_case or the
camelCase keys used on the wire), or seeded from ``NAVGRAPH_*`` environment
variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

logger = logging.getLogger(__name__)

OVERLAY_MODES = ("auto", "delaunay", "none")
MAX_CONNECTOR_RADIUS = 100.0

_CAMEL_ALIASES = {
    "useSpatialIndex": "use_spatial_index",
    "cellSize": "cell_size",
    "safetyMargin": "safety_margin",
    "edgeClearance": "edge_clearance",
    "repairConnectivity": "repair_connectivity",
    "overlayMode": "overlay_mode",
    "extraEdges": "extra_edges",
    "minDegreePerNode": "min_degree_per_node",
    "maxDegreePerNode": "max_degree_per_node",
    "maxLengthFactor": "max_length_factor",
    "floorEntranceCount": "floor_entrance_count",
    "connectorRadius": "connector_radius",
    "layerHeight": "layer_height",
    "hubSearchRadius": "hub_search_radius",
    "hubMaxConnections": "hub_max_connections",
    "gatewaySearchRadius": "gateway_search_radius",
    "maxExitConnections": "max_exit_connections",
    "minSizeRatio": "min_size_ratio",
    "maxSizeRatio": "max_size_ratio",
    "avoidOverlap": "avoid_overlap",
    "obstaclePadding": "obstacle_padding",
    "maxAttemptsPerObstacle": "max_attempts_per_obstacle",
    "validate": "validate",
}

_ENV_PREFIX = "NAVGRAPH_"


@dataclass(slots=True)
class BuildOptions:
    """All knobs consumed by the generation pipeline."""

    use_spatial_index: bool = True
    cell_size: float | None = None
    safety_margin: float = 0.5
    edge_clearance: float = 1.5
    repair_connectivity: bool = True
    overlay_mode: str = "auto"

    extra_edges: bool = False
    min_degree_per_node: int = 2
    max_degree_per_node: int = 6
    max_length_factor: float = 1.5

    floor_entrance_count: int = 4
    connector_radius: float = 15.0
    layer_height: float = 100.0
    hub_search_radius: float = 100.0
    hub_max_connections: int = 15
    gateway_search_radius: float = 60.0
    max_exit_connections: int = 5

    min_size_ratio: float = 0.01
    max_size_ratio: float = 0.05
    avoid_overlap: bool = True
    obstacle_padding: float = 2.0
    max_attempts_per_obstacle: int = 30

    validate: bool = True

    def __post_init__(self) -> None:
        self.check()

    def check(self) -> None:
        """Raise ValueError when any option is out of range."""
        if self.cell_size is not None and self.cell_size <= 0:
            raise ValueError("cell_size must be > 0 when provided")
        if self.safety_margin < 0:
            raise ValueError("safety_margin must be >= 0")
        if self.edge_clearance < 0:
            raise ValueError("edge_clearance must be >= 0")
        if self.overlay_mode not in OVERLAY_MODES:
            raise ValueError(f"overlay_mode must be one of: {', '.join(OVERLAY_MODES)}")
        if self.min_degree_per_node < 0:
            raise ValueError("min_degree_per_node must be >= 0")
        if self.max_degree_per_node < self.min_degree_per_node:
            raise ValueError("max_degree_per_node must be >= min_degree_per_node")
        if self.max_length_factor <= 0:
            raise ValueError("max_length_factor must be > 0")
        if self.floor_entrance_count < 0:
            raise ValueError("floor_entrance_count must be >= 0")
        if not 0 < self.connector_radius <= MAX_CONNECTOR_RADIUS:
            raise ValueError(f"connector_radius must be in (0, {MAX_CONNECTOR_RADIUS:g}]")
        if self.layer_height <= 0:
            raise ValueError("layer_height must be > 0")
        if self.hub_search_radius <= 0 or self.gateway_search_radius <= 0:
            raise ValueError("connector search radii must be > 0")
        if self.hub_max_connections < 1 or self.max_exit_connections < 1:
            raise ValueError("connector connection caps must be >= 1")
        if not 0 < self.min_size_ratio <= self.max_size_ratio:
            raise ValueError("size ratios must satisfy 0 < min_size_ratio <= max_size_ratio")
        if self.obstacle_padding < 0:
            raise ValueError("obstacle_padding must be >= 0")
        if self.max_attempts_per_obstacle < 1:
            raise ValueError("max_attempts_per_obstacle must be >= 1")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None, base: "BuildOptions | None" = None) -> "BuildOptions":
        """Build options from a request mapping, on top of ``base`` defaults."""
        base = base or cls()
        if not raw:
            return replace(base)

        known = {f.name: f for f in fields(cls)}
        updates: dict[str, Any] = {}
        for key, value in raw.items():
            name = _CAMEL_ALIASES.get(key, key)
            if name not in known:
                logger.debug("Ignoring unknown build option %r", key)
                continue
            if value is None and name != "cell_size":
                continue
            updates[name] = _coerce(name, value, getattr(base, name))
        return replace(base, **updates)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "BuildOptions":
        """Seed defaults from ``NAVGRAPH_<OPTION>`` environment variables."""
        env = os.environ if environ is None else environ
        updates: dict[str, Any] = {}
        defaults = cls()
        for f in fields(cls):
            raw = env.get(_ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            updates[f.name] = _coerce(f.name, raw, getattr(defaults, f.name))
        return replace(defaults, **updates)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _coerce(name: str, value: Any, current: Any) -> Any:
    """Convert ``value`` to the type of the option's current value."""
    try:
        if isinstance(current, bool):
            if isinstance(value, str):
                return value.strip().lower() in {"1", "true", "yes", "on"}
            return bool(value)
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float) or name == "cell_size":
            return None if value is None else float(value)
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid value for option {name!r}: {value!r}") from exc
