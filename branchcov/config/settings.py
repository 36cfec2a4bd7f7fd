"""Configuration settings and loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from branchcov.errors import ConfigurationError

VALID_REPORT_FORMATS = {"markdown", "json"}
VALID_STRATEGIES = {"exhaustive", "pairwise", "priority-bucketed"}


class EngineSettings(BaseSettings):
    """Configuration for the branchcov engine."""

    model_config = SettingsConfigDict(
        env_prefix="BRANCHCOV_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_strategy: str = "exhaustive"
    pairwise_candidate_limit: int = Field(default=20, ge=1)
    ledger_path: str | None = None
    report_dir: str = "reports"
    report_formats: list[str] = Field(default_factory=lambda: ["markdown"])
    max_workers: int = Field(default=4, ge=1)
    impact_ignore_paths: list[str] = Field(default_factory=list)
    impact_ignore_order: bool = False
    impact_max_depth: int = Field(default=50, ge=1)
    verbose: bool = False

    @field_validator("default_strategy", mode="before")
    @classmethod
    def validate_strategy(cls, v: str) -> str:
        normalized = str(v).lower().replace("_", "-")
        if normalized not in VALID_STRATEGIES:
            raise ValueError(f"Invalid strategy: {v}. Valid: {sorted(VALID_STRATEGIES)}")
        return normalized

    @field_validator("report_formats", mode="before")
    @classmethod
    def validate_report_formats(cls, v: list[str] | str) -> list[str]:
        if isinstance(v, str):
            v = [f.strip() for f in v.split(",") if f.strip()]
        invalid = set(v) - VALID_REPORT_FORMATS
        if invalid:
            raise ValueError(f"Invalid report formats: {invalid}. Valid: {VALID_REPORT_FORMATS}")
        return v

    @field_validator("impact_ignore_paths", mode="before")
    @classmethod
    def split_ignore_paths(cls, v: list[str] | str) -> list[str]:
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v


def load_settings(config_path: str | Path | None = None, **overrides: Any) -> EngineSettings:
    """Load settings from a YAML file and the environment.

    Priority: explicit overrides > env vars > config file > defaults

    Raises:
        ConfigurationError: If the file is not valid YAML or a value is invalid.
    """
    config_data: dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            try:
                with open(config_path, encoding="utf-8") as f:
                    config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Could not parse settings file {config_path}: {e}", cause=e
                ) from e
            if not isinstance(config_data, dict):
                raise ConfigurationError(f"Settings file {config_path} must contain a mapping")

    # Init kwargs outrank env vars in pydantic-settings, so file values that an
    # env var also sets are dropped here.
    settings_cls = EngineSettings
    prefix = settings_cls.model_config.get("env_prefix", "")

    config_data = {
        k: v for k, v in config_data.items() if f"{prefix}{k}".upper() not in os.environ
    }
    config_data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return settings_cls(**config_data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid settings: {e.error_count()} validation error(s)",
            cause=e,
            errors=[
                {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            ],
        ) from e
