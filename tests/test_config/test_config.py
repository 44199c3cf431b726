"""Tests for configuration loading, overrides and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from waste_planner.config import (
    AppConfig,
    MapsConfig,
    OptimiserConfig,
    PlanningConfig,
    load_config,
)


def _write_toml(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(body, encoding="utf-8")
    return path


class TestDefaults:
    def test_model_defaults(self):
        config = AppConfig()
        assert config.planning.mixed_stream_key == "Mixed C&D"
        assert config.planning.min_streams == 4
        assert config.maps.batch_size == 25
        assert config.optimiser.distance_weight == 1.0
        assert config.optimiser.max_alternatives == 3

    def test_default_toml_loads(self, monkeypatch):
        for var in ("WASTE_PLANNER_DB_PATH", "WASTE_PLANNER_LOG_LEVEL", "WASTE_PLANNER_DEBUG"):
            monkeypatch.delenv(var, raising=False)
        config = load_config()
        assert config.database.db_path == "data/db/waste_planner.db"
        assert config.catalog.seed_file == "config/seed/facilities.json"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.toml")


class TestOverrides:
    def test_toml_sections(self, tmp_path):
        path = _write_toml(
            tmp_path,
            '[planning]\nmixed_stream_key = "General waste"\n'
            'fallback_streams = ["General waste", "Metals"]\nmin_streams = 2\n',
        )
        config = load_config(path)
        assert config.planning.mixed_stream_key == "General waste"
        assert config.planning.fallback_streams == ["General waste", "Metals"]

    def test_optimiser_section(self, tmp_path):
        path = _write_toml(tmp_path, "[optimiser]\ncost_weight = 2.5\nmax_alternatives = 1\n")
        config = load_config(path)
        assert config.optimiser.cost_weight == 2.5
        assert config.optimiser.distance_weight == 1.0
        assert config.optimiser.max_alternatives == 1

    def test_local_toml_merged(self, tmp_path):
        path = _write_toml(tmp_path, '[logging]\nlevel = "INFO"\nlog_file = "a.log"\n')
        (tmp_path / "local.toml").write_text('[logging]\nlevel = "debug"\n', encoding="utf-8")
        config = load_config(path)
        assert config.logging.level == "DEBUG"
        assert config.logging.log_file == "a.log"

    def test_env_vars(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WASTE_PLANNER_DB_PATH", "/tmp/x.db")
        monkeypatch.setenv("WASTE_PLANNER_MAPS_BATCH_SIZE", "10")
        monkeypatch.setenv("WASTE_PLANNER_DEBUG", "yes")
        config = load_config(_write_toml(tmp_path, ""))
        assert config.database.db_path == "/tmp/x.db"
        assert config.maps.batch_size == 10
        assert config.debug is True

    def test_api_key_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("CUSTOM_MAPS_KEY", "  k-123 ")
        assert MapsConfig(api_key_env="CUSTOM_MAPS_KEY").api_key == "k-123"
        monkeypatch.setenv("CUSTOM_MAPS_KEY", "")
        assert MapsConfig(api_key_env="CUSTOM_MAPS_KEY").api_key is None


class TestValidation:
    def test_bad_log_level(self, tmp_path):
        with pytest.raises(ValidationError):
            load_config(_write_toml(tmp_path, '[logging]\nlevel = "LOUD"\n'))

    @pytest.mark.parametrize("size", [0, 26])
    def test_batch_size_bounds(self, size):
        with pytest.raises(ValidationError):
            MapsConfig(batch_size=size)

    @pytest.mark.parametrize(
        "overrides", [{"distance_weight": -1}, {"carbon_weight": -0.5}, {"max_alternatives": -1}]
    )
    def test_optimiser_weights_non_negative(self, overrides):
        with pytest.raises(ValidationError):
            OptimiserConfig(**overrides)

    def test_thresholds_ordered(self):
        with pytest.raises(ValidationError):
            PlanningConfig(major_tonnes=0.1, medium_tonnes=0.5)

    def test_min_streams_within_fallbacks(self):
        with pytest.raises(ValidationError):
            PlanningConfig(fallback_streams=["Metals"], min_streams=2)

    def test_frozen(self):
        config = AppConfig()
        with pytest.raises(ValidationError):
            config.debug = True
