"""Configuration management for branchcov."""

from branchcov.config.settings import (
    VALID_REPORT_FORMATS,
    VALID_STRATEGIES,
    EngineSettings,
    load_settings,
)

__all__ = [
    "VALID_REPORT_FORMATS",
    "VALID_STRATEGIES",
    "EngineSettings",
    "load_settings",
]
