"""Unit tests for navgraph.config."""

from __future__ import annotations

import pytest

from navgraph.config import BuildOptions


def test_defaults() -> None:
    """Defaults keep the builder margin below the sanitizer clearance."""
    opts = BuildOptions()
    assert opts.safety_margin == 0.5
    assert opts.edge_clearance == 1.5
    assert opts.floor_entrance_count == 4
    assert opts.layer_height == 100.0


def test_from_mapping_accepts_camel_case() -> None:
    """Request options use camelCase keys and are coerced to field types."""
    opts = BuildOptions.from_mapping(
        {"useSpatialIndex": "false", "cellSize": "24", "overlayMode": "none", "floorEntranceCount": 2}
    )
    assert opts.use_spatial_index is False
    assert opts.cell_size == 24.0
    assert opts.overlay_mode == "none"
    assert opts.floor_entrance_count == 2


def test_from_mapping_ignores_unknown_keys() -> None:
    assert BuildOptions.from_mapping({"colour": "blue"}) == BuildOptions()


def test_invalid_overlay_mode_raises() -> None:
    """Out-of-range options fail validation."""
    with pytest.raises(ValueError, match="overlay_mode"):
        BuildOptions.from_mapping({"overlayMode": "mesh"})


def test_invalid_degree_bounds_raise() -> None:
    with pytest.raises(ValueError, match="max_degree_per_node"):
        BuildOptions(min_degree_per_node=4, max_degree_per_node=2)


def test_from_env_reads_prefixed_variables() -> None:
    """Environment defaults use ``NAVGRAPH_<FIELD>`` names."""
    opts = BuildOptions.from_env({"NAVGRAPH_EDGE_CLEARANCE": "2.5", "NAVGRAPH_VALIDATE": "0", "OTHER": "x"})
    assert opts.edge_clearance == 2.5
    assert opts.validate is False


def test_to_dict_round_trips_field_names() -> None:
    data = BuildOptions().to_dict()
    assert data["repair_connectivity"] is True
    assert BuildOptions(**data) == BuildOptions()


def test_connector_radius_is_bounded() -> None:
    """Connector radii must stay positive and within the supported maximum."""
    assert BuildOptions(connector_radius=100.0).connector_radius == 100.0
    with pytest.raises(ValueError, match="connector_radius"):
        BuildOptions(connector_radius=0.0)
    with pytest.raises(ValueError, match="connector_radius"):
        BuildOptions.from_mapping({"connectorRadius": 150})


def test_from_mapping_layers_over_base() -> None:
    """Request options override only the keys they name."""
    base = BuildOptions.from_env({"NAVGRAPH_EDGE_CLEARANCE": "2.0", "NAVGRAPH_FLOOR_ENTRANCE_COUNT": "2"})
    opts = BuildOptions.from_mapping({"floorEntranceCount": 3}, base=base)
    assert opts.edge_clearance == 2.0
    assert opts.floor_entrance_count == 3
