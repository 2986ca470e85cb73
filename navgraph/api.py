"""FastAPI routes for navigation graph generation and path queries.

Routes:
- ``POST /generate`` runs a generation job on the background worker
- ``GET /navgraph`` returns the latest graph
- ``POST /find-path`` routes between two nodes or world points
- ``POST /cancel`` flags running jobs as cancelled
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Literal

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from navgraph.config import BuildOptions
from navgraph.hierarchical import DEFAULT_NODE_THRESHOLD, HierarchicalPathfinder, choose_grid_size
from navgraph.models import NavGraph, Node
from navgraph.pathfinding import path_stats
from navgraph.payload import navgraph_to_payload
from navgraph.pipeline import GenerationCancelled
from navgraph.routing import UnifiedLayer, build_unified_layer, find_route, resolve_endpoint
from navgraph.smoothing import orthogonalize, smooth_visibility
from navgraph.trajectory import sample_trajectory
from navgraph.utils import to_serializable
from navgraph.worker import GenerationError, MessageType, NavGraphWorker


@dataclass
class ProcessingState:
    """In-memory state for the latest generated navigation graph."""

    worker: NavGraphWorker | None = None
    defaults: BuildOptions | None = None
    graph: NavGraph | None = None
    payload: dict[str, Any] | None = None
    unified: UnifiedLayer | None = None
    hierarchies: dict[int, HierarchicalPathfinder] = field(default_factory=dict)

    def reset(self) -> None:
        if self.worker is not None:
            self.worker.stop()
        self.worker = None
        self.defaults = None
        self.graph = None
        self.payload = None
        self.unified = None
        self.hierarchies = {}


STATE = ProcessingState()


class GenerateRequest(BaseModel):
    """Request payload for a generation run (camelCase or snake_case keys)."""

    model_config = ConfigDict(populate_by_name=True)

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    layer_count: int = Field(1, ge=1, alias="layerCount")
    obstacle_count: int = Field(0, ge=0, alias="obstacleCount")
    seed: int | None = Field(None, ge=0)
    mode: str = "centroid"
    options: dict[str, Any] = Field(default_factory=dict)


class PointRef(BaseModel):
    """World point snapped to the nearest node of ``layer``."""

    x: float
    y: float
    layer: int = Field(0, ge=0)


class FindPathRequest(BaseModel):
    """Request payload for node-graph path queries."""

    start: str | PointRef
    goal: str | PointRef
    smooth: bool = False
    orthogonalize: bool = False
    hierarchical: Literal["auto", "on", "off"] = "auto"
    clearance: float = Field(0.0, ge=0)
    max_lookahead: int = Field(24, ge=1)
    trajectory_step: float | None = Field(None, gt=0)


class FindPathResponse(BaseModel):
    """Response payload for path queries."""

    path: list[dict[str, Any]]
    length: float
    cost: float
    turns: int
    floors: list[int]
    transitions: list[dict[str, Any]] = Field(default_factory=list)
    strategy: str
    abstract_path: list[str] | None = None
    trajectory: list[dict[str, float | int]] | None = None


def _worker() -> NavGraphWorker:
    if STATE.worker is None:
        STATE.worker = NavGraphWorker(defaults=STATE.defaults)
        STATE.worker.start()
        if os.getenv("NAVGRAPH_WARMUP", "true").lower() == "true":
            STATE.worker.warmup()
    return STATE.worker


def _graph_or_400() -> NavGraph:
    """Return the latest graph or raise a client error when none exists."""
    if STATE.graph is None:
        raise HTTPException(status_code=400, detail="No navigation graph generated yet")
    return STATE.graph


def _endpoint(ref: str | PointRef) -> str | dict[str, Any]:
    return ref if isinstance(ref, str) else ref.model_dump()


def create_app(defaults: BuildOptions | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``defaults`` are the build options request options are layered over;
    when omitted they are read from ``NAVGRAPH_*`` environment variables.
    """
    STATE.defaults = defaults if defaults is not None else BuildOptions.from_env()
    app = FastAPI(title="NavGraph API", version="0.1.0")

    raw_origins = os.getenv("NAVGRAPH_CORS_ORIGINS", "*").strip()
    if raw_origins == "*":
        cors_origins = ["*"]
        allow_credentials = False
    else:
        cors_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
        allow_credentials = True

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Health endpoint with worker and cache status."""
        worker = STATE.worker
        return {
            "status": "ok",
            "version": app.version,
            "worker_running": bool(worker and worker.running),
            "index_cache": worker.cache.stats() if worker else None,
            "has_graph": STATE.graph is not None,
            "layers": len(STATE.graph.layers) if STATE.graph else 0,
        }

    @app.post("/generate")
    def generate(payload: GenerateRequest) -> dict[str, Any]:
        """Generate a navigation graph and return the serialized payload."""
        timeout = float(os.getenv("NAVGRAPH_GENERATE_TIMEOUT", "120"))
        request = payload.model_dump(by_alias=True, exclude_none=True)
        try:
            job = _worker().submit(request)
            events: list[dict[str, Any]] = []
            data: dict[str, Any] | None = None
            for message in job.events(timeout=timeout):
                if message.type is MessageType.COMPLETE:
                    data = message.payload["data"]
                elif message.type is MessageType.PROGRESS:
                    events.append({"type": message.type.value, **message.payload})
                elif message.type is MessageType.OBSTACLE_READY:
                    events.append({"type": message.type.value, "count": message.payload["count"]})
            graph = job.result(timeout=timeout)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Generation failed: {exc}") from exc
        except GenerationCancelled as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except GenerationError as exc:
            raise HTTPException(status_code=500, detail=f"Generation error: {exc}") from exc
        except HTTPException:
            raise
        except Exception as exc:  # pragma: no cover - safety net
            raise HTTPException(status_code=500, detail=f"Unexpected generation error: {exc}") from exc

        STATE.graph = graph
        STATE.payload = to_serializable(data if data is not None else navgraph_to_payload(graph))
        STATE.unified = build_unified_layer(graph)
        STATE.hierarchies = {}
        return {"data": STATE.payload, "events": events}

    @app.get("/navgraph")
    def get_navgraph() -> dict[str, Any]:
        """Return the latest serialized graph."""
        _graph_or_400()
        return {"data": STATE.payload}

    @app.post("/find-path", response_model=FindPathResponse)
    def find_path_route(payload: FindPathRequest) -> FindPathResponse:
        """Compute an optionally smoothed path between two endpoints."""
        graph = _graph_or_400()
        unified = STATE.unified or build_unified_layer(graph)
        STATE.unified = unified

        try:
            s = resolve_endpoint(graph, unified, _endpoint(payload.start))
            g = resolve_endpoint(graph, unified, _endpoint(payload.goal))
            start_node: Node = unified.layer.nodes[s]
            goal_node: Node = unified.layer.nodes[g]

            strategy = "astar"
            abstract_path: list[str] | None = None
            transitions: list[dict[str, Any]] = []
            path: list[Node] | None
            cost = 0.0

            same_floor = start_node.layer == goal_node.layer
            floor_layer = graph.layer(start_node.layer)
            use_hierarchy = same_floor and (
                payload.hierarchical == "on"
                or (payload.hierarchical == "auto" and len(floor_layer.nodes) >= DEFAULT_NODE_THRESHOLD)
            )
            if use_hierarchy:
                finder = STATE.hierarchies.get(start_node.layer)
                if finder is None:
                    finder = HierarchicalPathfinder(
                        floor_layer, graph.width, graph.height, choose_grid_size(len(floor_layer.nodes))
                    )
                    STATE.hierarchies[start_node.layer] = finder
                path = finder.find_path(start_node.id, goal_node.id)
                strategy = "hierarchical"
                if finder.last_abstract_path:
                    abstract_path = [n.id for n in finder.last_abstract_path]
                if path:
                    cost = path_stats(path)["length"]
            else:
                route = find_route(graph, start_node.id, goal_node.id, unified)
                path = route.path if route else None
                if route:
                    cost = route.length
                    transitions = route.transitions
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid path query: {exc}") from exc
        except Exception as exc:  # pragma: no cover - safety net
            raise HTTPException(status_code=500, detail=f"Unexpected pathfinding error: {exc}") from exc

        if not path:
            raise HTTPException(status_code=404, detail="No navigable path found")

        obstacles_by_floor = {layer.index: layer.obstacles for layer in graph.layers}
        if payload.smooth:
            path = smooth_visibility(
                path,
                obstacles_by_floor,
                clearance=payload.clearance,
                max_lookahead=payload.max_lookahead,
            )
        if payload.orthogonalize:
            path = orthogonalize(path, obstacles_by_floor, clearance=payload.clearance)

        trajectory = None
        if payload.trajectory_step is not None:
            trajectory = [p.to_dict() for p in sample_trajectory(path, payload.trajectory_step)]

        stats = path_stats(path)
        return FindPathResponse(
            path=[n.to_dict() for n in path],
            length=stats["length"],
            cost=cost,
            turns=stats["turns"],
            floors=stats["floors"],
            transitions=transitions,
            strategy=strategy,
            abstract_path=abstract_path,
            trajectory=trajectory,
        )

    @app.post("/cancel")
    def cancel() -> dict[str, Any]:
        """Flag running and queued generation jobs as cancelled."""
        count = STATE.worker.cancel() if STATE.worker is not None else 0
        return {"cancelled": count}

    return app
