"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets such as the maps API key
  4. Environment variables        — ``WASTE_PLANNER_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The service facade and every CLI command receive an ``AppConfig`` instance.
Planning defaults that used to be buried in generation code (the mixed
stream key, the fallback stream list) live here so they are injected at the
boundary rather than hard-coded.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/waste_planner.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/waste_planner.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class MapsConfig(BaseModel):
    """Geocoding / distance matrix provider settings.

    The API key itself is never stored in TOML; ``api_key_env`` names the
    environment variable (usually set through ``.env``) that holds it.
    """

    model_config = ConfigDict(frozen=True)

    provider: str = "google"
    api_key_env: str = "GOOGLE_MAPS_API_KEY"
    batch_size: int = 25
    timeout_s: float = 15.0
    mode: str = "driving"

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        # Google Distance Matrix caps destinations per request at 25.
        if not 1 <= v <= 25:
            raise ValueError(f"batch_size must be in [1, 25], got {v}.")
        return v

    @property
    def api_key(self) -> Optional[str]:
        """Resolve the API key from the environment, or ``None`` if unset."""
        value = os.environ.get(self.api_key_env, "").strip()
        return value or None


class PlanningConfig(BaseModel):
    """Stream planning defaults.

    Attributes:
        mixed_stream_key: Catch-all stream that unallocated items are moved to.
        fallback_streams: Streams seeded into a plan document that has fewer
            than ``min_streams`` entries.
        min_streams: Minimum number of plans a seeded document should carry.
        default_outcome: Outcome used by ``set_outcome`` when neither the
            payload nor the stream defaults provide one.
        major_tonnes: Significance threshold for a "major" stream.
        medium_tonnes: Significance threshold for a "medium" stream.
    """

    model_config = ConfigDict(frozen=True)

    mixed_stream_key: str = "Mixed C&D"
    fallback_streams: list[str] = [
        "Mixed C&D",
        "Timber (untreated)",
        "Metals",
        "Cardboard",
        "Plasterboard / GIB",
        "Concrete / masonry",
    ]
    min_streams: int = 4
    default_outcome: str = "Recycle"
    major_tonnes: float = 1.0
    medium_tonnes: float = 0.2

    @model_validator(mode="after")
    def validate_thresholds(self) -> "PlanningConfig":
        if not 0.0 < self.medium_tonnes < self.major_tonnes:
            raise ValueError(
                "Expected 0 < medium_tonnes < major_tonnes, got "
                f"{self.medium_tonnes} / {self.major_tonnes}."
            )
        if self.min_streams > len(self.fallback_streams):
            raise ValueError(
                f"min_streams ({self.min_streams}) exceeds the number of "
                f"fallback_streams ({len(self.fallback_streams)})."
            )
        return self


class OptimiserConfig(BaseModel):
    """Facility optimiser scoring weights.

    Weights are relative; a dimension only counts when it has a positive
    weight and at least one eligible facility carries data for it. With no
    usable weight the optimiser ranks on distance alone.
    """

    model_config = ConfigDict(frozen=True)

    distance_weight: float = 1.0
    cost_weight: float = 0.0
    carbon_weight: float = 0.0
    diversion_weight: float = 0.0
    max_alternatives: int = 3

    @field_validator(
        "distance_weight", "cost_weight", "carbon_weight", "diversion_weight", "max_alternatives"
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Optimiser weights and max_alternatives must be >= 0, got {v}.")
        return v


class CatalogConfig(BaseModel):
    """Facility / partner seed data location."""

    model_config = ConfigDict(frozen=True)

    seed_file: str = "config/seed/facilities.json"


class AppConfig(BaseModel):
    """Complete application configuration.

    Constructed by ``load_config()`` which merges TOML + .env + env vars.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    maps: MapsConfig = MapsConfig()
    planning: PlanningConfig = PlanningConfig()
    optimiser: OptimiserConfig = OptimiserConfig()
    catalog: CatalogConfig = CatalogConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config explicitly."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply WASTE_PLANNER_* env vars to the raw config dict.

    Supported overrides:
      WASTE_PLANNER_DB_PATH          → raw["database"]["db_path"]
      WASTE_PLANNER_LOG_LEVEL        → raw["logging"]["level"]
      WASTE_PLANNER_MAPS_BATCH_SIZE  → raw["maps"]["batch_size"]
      WASTE_PLANNER_DEBUG            → raw["debug"]
    """
    if db_path := os.environ.get("WASTE_PLANNER_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("WASTE_PLANNER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if batch_size := os.environ.get("WASTE_PLANNER_MAPS_BATCH_SIZE"):
        raw.setdefault("maps", {})["batch_size"] = int(batch_size)

    if debug := os.environ.get("WASTE_PLANNER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        maps=MapsConfig(**raw.get("maps", {})),
        planning=PlanningConfig(**raw.get("planning", {})),
        optimiser=OptimiserConfig(**raw.get("optimiser", {})),
        catalog=CatalogConfig(**raw.get("catalog", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
