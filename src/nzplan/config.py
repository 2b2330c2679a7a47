"""YAML configuration for the plan resolver and its database collaborators."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .plans.archives import DEFAULT_ARCHIVE_BASE, DEFAULT_ARCHIVE_FALLBACKS
from .plans.extractor import DEFAULT_TIMEOUT, DEFAULT_TOOL_PATHS
from .plans.resolver import DEFAULT_MAX_ARCHIVE_ATTEMPTS
from .plans.validator import DEFAULT_MIN_CONTENT_LINES

DEFAULT_CONFIG_NAME = "nzplan.yaml"

ENV_OVERRIDES: Dict[str, tuple[str, str]] = {
    "NETEZZA_HOST": ("database", "host"),
    "NETEZZA_DB": ("database", "name"),
    "NETEZZA_USER": ("database", "user"),
    "NZSQL_PATH": ("database", "nzsql_path"),
}


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be read or validated."""


class SettingsModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid")


class DatabaseSettings(SettingsModel):
    """Connection parameters handed to ``nzsql``."""

    host: str = ""
    name: str = "SYSTEM"
    user: str = "ADMIN"
    nzsql_path: str = "nzsql"


class PlanSettings(SettingsModel):
    """Knobs for locating ``nz_plan`` and searching plan archives."""

    tool_paths: List[Path] = Field(default_factory=lambda: list(DEFAULT_TOOL_PATHS))
    tool_override: Optional[Path] = None
    archive_base: Path = DEFAULT_ARCHIVE_BASE
    archive_fallbacks: List[Path] = Field(default_factory=lambda: list(DEFAULT_ARCHIVE_FALLBACKS))
    min_content_lines: int = Field(default=DEFAULT_MIN_CONTENT_LINES, ge=0)
    max_archive_attempts: int = Field(default=DEFAULT_MAX_ARCHIVE_ATTEMPTS, ge=1)
    timeout: Optional[float] = DEFAULT_TIMEOUT
    work_dir: Optional[Path] = None
    output_dir: Path = Path("data/plans")

    @field_validator("timeout")
    @classmethod
    def _non_positive_timeout_disables(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            return None
        return value


class LoggingSettings(SettingsModel):
    level: str = "INFO"
    file: Optional[Path] = None


class Settings(SettingsModel):
    """Validated view of the YAML configuration."""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    plans: PlanSettings = Field(default_factory=PlanSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def archive_candidates(self) -> List[Path]:
        """Configured archive base followed by its fallbacks, without duplicates."""
        candidates: List[Path] = []
        for path in (self.plans.archive_base, *self.plans.archive_fallbacks):
            if path not in candidates:
                candidates.append(path)
        return candidates


def default_config_data() -> Dict[str, Any]:
    """Return the default configuration as plain YAML-friendly data."""
    return Settings().model_dump(mode="json")


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def _apply_env(data: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    merged = copy.deepcopy(data)
    for variable, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value is None or not value.strip():
            continue
        bucket = merged.setdefault(section, {})
        if not isinstance(bucket, dict):
            raise ConfigError(f"Section '{section}' must be a mapping.")
        bucket[key] = value.strip()
    return merged


def _resolve_relative(settings: Settings, base_dir: Path) -> Settings:
    """Anchor relative output/work paths to the directory holding the config."""
    plans = settings.plans
    updates: Dict[str, Any] = {}
    if not plans.output_dir.is_absolute():
        updates["output_dir"] = (base_dir / plans.output_dir).resolve()
    if plans.work_dir is not None and not plans.work_dir.is_absolute():
        updates["work_dir"] = (base_dir / plans.work_dir).resolve()
    if settings.logging.file is not None and not settings.logging.file.is_absolute():
        logging_settings = settings.logging.model_copy(
            update={"file": (base_dir / settings.logging.file).resolve()}
        )
        settings = settings.model_copy(update={"logging": logging_settings})
    if updates:
        settings = settings.model_copy(update={"plans": plans.model_copy(update=updates)})
    return settings


def load_settings(
    config_path: Path | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from YAML, falling back to defaults when the file is absent.

    ``NETEZZA_HOST``, ``NETEZZA_DB``, ``NETEZZA_USER`` and ``NZSQL_PATH``
    override the ``database`` section.
    """

    path = Path(config_path) if config_path else Path(DEFAULT_CONFIG_NAME)
    data: Dict[str, Any] = {}
    if path.exists():
        try:
            with path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
        except yaml.YAMLError as error:
            raise ConfigError(f"Failed to parse config {path}: {error}") from error
        if not isinstance(loaded, dict):
            raise ConfigError("Configuration must be a mapping at the top level.")
        data = loaded

    data = _apply_env(data, os.environ if environ is None else environ)
    try:
        settings = Settings.model_validate(data)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration in {path}: {error}") from error
    return _resolve_relative(settings, path.resolve().parent)


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "DatabaseSettings",
    "LoggingSettings",
    "PlanSettings",
    "Settings",
    "default_config_data",
    "load_settings",
    "write_config",
]
