"""Mode dispatch for free-space network builders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from navgraph.config import BuildOptions
from navgraph.models import FixedPoint, NetworkMode, Obstacle
from navgraph.networks.centroid import build_centroid_network
from navgraph.networks.common import NetworkResult
from navgraph.networks.portal import build_portal_network
from navgraph.networks.voronoi import build_voronoi_skeleton
from navgraph.spatial_index import SpatialIndex


class NetworkBuilder(Protocol):
    """Single interface every decomposition strategy implements."""

    mode: NetworkMode

    def build(
        self,
        width: float,
        height: float,
        obstacles: Sequence[Obstacle],
        options: BuildOptions,
        fixed_points: Sequence[FixedPoint] = (),
        *,
        layer: int = 0,
        index: SpatialIndex | None = None,
    ) -> NetworkResult: ...


@dataclass(frozen=True, slots=True)
class FunctionBuilder:
    """Adapts a module-level build function to :class:`NetworkBuilder`."""

    mode: NetworkMode
    func: Callable[..., NetworkResult]

    def build(
        self,
        width: float,
        height: float,
        obstacles: Sequence[Obstacle],
        options: BuildOptions,
        fixed_points: Sequence[FixedPoint] = (),
        *,
        layer: int = 0,
        index: SpatialIndex | None = None,
    ) -> NetworkResult:
        return self.func(width, height, obstacles, options, fixed_points, layer=layer, index=index)


BUILDERS: dict[NetworkMode, NetworkBuilder] = {
    NetworkMode.CENTROID: FunctionBuilder(NetworkMode.CENTROID, build_centroid_network),
    NetworkMode.PORTAL: FunctionBuilder(NetworkMode.PORTAL, build_portal_network),
    NetworkMode.VORONOI: FunctionBuilder(NetworkMode.VORONOI, build_voronoi_skeleton),
}

if set(BUILDERS) != set(NetworkMode):  # pragma: no cover - import-time guard
    raise RuntimeError("Every NetworkMode needs a registered builder")


def get_builder(mode: NetworkMode | str) -> NetworkBuilder:
    """Return the builder for ``mode``; raises ValueError for unknown modes."""
    return BUILDERS[NetworkMode.parse(mode)]


def build_network(
    mode: NetworkMode | str,
    width: float,
    height: float,
    obstacles: Sequence[Obstacle],
    options: BuildOptions | None = None,
    fixed_points: Sequence[FixedPoint] = (),
    *,
    layer: int = 0,
    index: SpatialIndex | None = None,
) -> NetworkResult:
    return get_builder(mode).build(
        width, height, obstacles, options or BuildOptions(), fixed_points, layer=layer, index=index
    )
