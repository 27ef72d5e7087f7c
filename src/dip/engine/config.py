"""Configuration model for query databases.

Provides DatabaseConfig, loaded from keyword arguments, environment
variables (``DIP_<SETTING_NAME>``) or the ``dip`` section of a YAML file.
"""

import os
from pathlib import Path
from typing import Union

from pydantic import BaseModel, Field, field_validator

_TRUTHY = ("true", "1", "yes")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class DatabaseConfig(BaseModel):
    """Settings for a Database instance and its observability hooks.

    Attributes:
        initial_revision: Revision the clock starts at
        trace: Install a logging event sink when no sink is passed explicitly
        metrics_enabled: Attach a Prometheus metrics collector
        log_level: Logging level used by the CLI
        json_logs: Render logs as JSON instead of console lines
    """

    initial_revision: int = Field(
        default=0,
        ge=0,
        description="Revision the clock starts at",
    )
    trace: bool = Field(
        default=False,
        description="Log a human-readable trace of every engine event",
    )
    metrics_enabled: bool = Field(
        default=False,
        description="Collect Prometheus metrics for fetches and mutations",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=False,
        description="Output logs in JSON format",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Normalize and validate the log level name."""
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Invalid log level '{value}'. Expected one of: {_LOG_LEVELS}")
        return level

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "DatabaseConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            DatabaseConfig instance loaded from the ``dip`` section

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML format is invalid
        """
        import yaml  # type: ignore[import-untyped]

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(config_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML format in {path}: {e}") from e

        config_data = data.get("dip", {}) if isinstance(data, dict) else {}

        return cls(**(config_data or {}))

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Load configuration from environment variables.

        Environment variables follow the pattern: DIP_<SETTING_NAME>
        For example: DIP_TRACE, DIP_INITIAL_REVISION

        Returns:
            DatabaseConfig instance with environment overrides
        """
        return cls(
            initial_revision=int(
                os.getenv("DIP_INITIAL_REVISION", cls.model_fields["initial_revision"].default)
            ),
            trace=os.getenv("DIP_TRACE", str(cls.model_fields["trace"].default)).lower()
            in _TRUTHY,
            metrics_enabled=os.getenv(
                "DIP_METRICS_ENABLED", str(cls.model_fields["metrics_enabled"].default)
            ).lower()
            in _TRUTHY,
            log_level=os.getenv("DIP_LOG_LEVEL", cls.model_fields["log_level"].default),
            json_logs=os.getenv("DIP_JSON_LOGS", str(cls.model_fields["json_logs"].default)).lower()
            in _TRUTHY,
        )
