"""Unit tests for navgraph.main settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from navgraph.api import STATE
from navgraph.main import ServerSettings, apply_env_files, build_app, read_env_file


def test_read_env_file_parses_lines(tmp_path: Path) -> None:
    """Comments, blank lines and ``export`` prefixes are handled; quotes are stripped."""
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# local settings\n\nexport NAVGRAPH_API_PORT=9000\nNAVGRAPH_LOG_LEVEL='debug'\nbroken line\n",
        encoding="utf-8",
    )

    assert read_env_file(env_file) == {"NAVGRAPH_API_PORT": "9000", "NAVGRAPH_LOG_LEVEL": "debug"}


def test_apply_env_files_keeps_existing_values(tmp_path: Path) -> None:
    """Set variables and earlier files win; unrelated keys are ignored."""
    first = tmp_path / "first.env"
    second = tmp_path / "second.env"
    first.write_text("NAVGRAPH_EDGE_CLEARANCE=2.0\nOTHER=x\n", encoding="utf-8")
    second.write_text("NAVGRAPH_EDGE_CLEARANCE=3.0\nNAVGRAPH_API_HOST=127.0.0.1\nNAVGRAPH_API_PORT=1\n", encoding="utf-8")
    environ = {"NAVGRAPH_API_PORT": "8080"}

    applied = apply_env_files([first, second, tmp_path / "missing.env"], environ)

    assert applied == ["NAVGRAPH_EDGE_CLEARANCE", "NAVGRAPH_API_HOST"]
    assert environ == {
        "NAVGRAPH_API_PORT": "8080",
        "NAVGRAPH_EDGE_CLEARANCE": "2.0",
        "NAVGRAPH_API_HOST": "127.0.0.1",
    }


def test_server_settings_from_env() -> None:
    settings = ServerSettings.from_env({"NAVGRAPH_API_PORT": "9001", "NAVGRAPH_API_RELOAD": "yes", "NAVGRAPH_LOG_LEVEL": "debug"})
    assert (settings.host, settings.port, settings.reload, settings.log_level) == ("0.0.0.0", 9001, True, "DEBUG")

    with pytest.raises(ValueError, match="API_PORT"):
        ServerSettings.from_env({"NAVGRAPH_API_PORT": "http"})


def test_build_app_uses_environment_build_options(tmp_path: Path) -> None:
    """Build option defaults for the app come from the environment and .env files."""
    env_file = tmp_path / ".env"
    env_file.write_text("NAVGRAPH_EDGE_CLEARANCE=2.5\n", encoding="utf-8")
    environ = {"NAVGRAPH_FLOOR_ENTRANCE_COUNT": "1"}

    build_app(environ, env_files=[env_file])

    assert STATE.defaults is not None
    assert STATE.defaults.edge_clearance == 2.5
    assert STATE.defaults.floor_entrance_count == 1


def test_invalid_environment_option_fails_startup() -> None:
    with pytest.raises(ValueError, match="edge_clearance"):
        build_app({"NAVGRAPH_EDGE_CLEARANCE": "abc"}, env_files=[])
