"""ASGI entry point for the navgraph service.

    uvicorn navgraph.main:app --host 0.0.0.0 --port 8000

Settings are read from ``NAVGRAPH_*`` environment variables, optionally
filled in from a local ``.env`` file. Server settings (host, port, reload,
log level) and build option defaults share the prefix, e.g.
``NAVGRAPH_EDGE_CLEARANCE=2.0`` or ``NAVGRAPH_FLOOR_ENTRANCE_COUNT=2``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, MutableMapping, Sequence

import uvicorn
from fastapi import FastAPI

from navgraph.api import create_app
from navgraph.config import BuildOptions

logger = logging.getLogger(__name__)

ENV_PREFIX = "NAVGRAPH_"
ENV_FILES = (Path("navgraph/.env"), Path(".env"))


def read_env_file(path: Path) -> dict[str, str]:
    """Parse ``KEY=value`` lines; blank lines, comments and ``export`` are tolerated."""
    values: dict[str, str] = {}
    for lineno, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            logger.warning("Skipping malformed line %d in %s", lineno, path)
            continue
        values[key] = value.strip().strip("'\"")
    return values


def apply_env_files(
    paths: Sequence[Path] = ENV_FILES, environ: MutableMapping[str, str] | None = None
) -> list[str]:
    """Copy ``NAVGRAPH_*`` keys from ``paths`` into ``environ``.

    Variables already set win, and so does the earlier file. Returns the
    names that were applied.
    """
    env = os.environ if environ is None else environ
    applied: list[str] = []
    for path in paths:
        if not path.is_file():
            continue
        for key, value in read_env_file(path).items():
            if key.startswith(ENV_PREFIX) and key not in env:
                env[key] = value
                applied.append(key)
    return applied


@dataclass(slots=True)
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerSettings":
        env = os.environ if environ is None else environ
        try:
            port = int(env.get(ENV_PREFIX + "API_PORT", "8000"))
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}API_PORT must be an integer") from exc
        return cls(
            host=env.get(ENV_PREFIX + "API_HOST", "0.0.0.0"),
            port=port,
            reload=env.get(ENV_PREFIX + "API_RELOAD", "false").strip().lower() in {"1", "true", "yes", "on"},
            log_level=env.get(ENV_PREFIX + "LOG_LEVEL", "INFO").strip().upper(),
        )


def build_app(environ: MutableMapping[str, str] | None = None, env_files: Sequence[Path] = ENV_FILES) -> FastAPI:
    """Load settings, configure logging and create the application."""
    applied = apply_env_files(env_files, environ)
    settings = ServerSettings.from_env(environ)
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if applied:
        logger.info("Loaded %s from .env", ", ".join(sorted(applied)))

    defaults = BuildOptions.from_env(environ)
    changed = {k: v for k, v in defaults.to_dict().items() if v != getattr(BuildOptions(), k)}
    if changed:
        logger.info("Build option defaults from environment: %s", changed)
    return create_app(defaults)


app = build_app()


if __name__ == "__main__":
    settings = ServerSettings.from_env()
    uvicorn.run(
        "navgraph.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
