# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Configuration management for the exporter.

Values are resolved in order: dataclass defaults, then the YAML config file,
then environment variables. Malformed or out-of-range numbers fall back to
the default instead of failing startup.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".netbird-exporter" / "config.yaml"

_TRUE_VALUES = ("1", "true", "yes", "on")

# Numeric fields and the check a value must pass; failures fall back to the default
_RANGES = {
    "push_timeout": (lambda v: v > 0, "must be positive"),
    "ready_attempts": (lambda v: v >= 1, "must be at least 1"),
    "ready_interval": (lambda v: v > 0, "must be positive"),
    "ready_timeout": (lambda v: v > 0, "must be positive"),
    "check_interval": (lambda v: v > 0, "must be positive"),
    "batch_size": (lambda v: v >= 1, "must be at least 1"),
    "max_consecutive_errors": (lambda v: v >= 1, "must be at least 1"),
    "error_backoff": (lambda v: v >= 0, "must be non-negative"),
}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_VALUES
    raise ValueError(f"not a boolean: {value!r}")


@dataclass
class Config:
    """Exporter configuration container."""

    # Loki settings
    loki_url: str = "http://loki:3100"
    push_timeout: float = 5.0
    ready_attempts: int = 60
    ready_interval: float = 2.0
    ready_timeout: float = 2.0

    # Event source
    db_path: str = "/netbird-data/events.db"

    # Polling settings
    check_interval: float = 10.0
    batch_size: int = 100
    max_consecutive_errors: int = 10
    error_backoff: float = 30.0

    # Labels
    job_label: str = "netbird-events"

    # Logging settings
    log_level: str = "INFO"
    log_events: bool = True

    # Config file path
    config_path: Optional[Path] = None

    # Skip the environment, used by tests
    use_env: bool = True

    def __post_init__(self):
        """Initialize configuration after creation."""
        if self.config_path is None:
            self.config_path = DEFAULT_CONFIG_PATH
        self.config_path = Path(self.config_path).expanduser()

        if self.config_path.exists():
            self.load_from_file()

        if self.use_env:
            self.load_from_env()

    def _default(self, name: str) -> Any:
        for f in fields(self):
            if f.name == name:
                return f.default
        raise KeyError(name)

    def _set(self, name: str, raw: Any, cast: Callable[[Any], Any], source: str) -> None:
        """Set a field from raw input, falling back to the default if it is malformed or out of range."""
        default = self._default(name)
        try:
            value = cast(raw)
        except (TypeError, ValueError):
            logger.warning(f"Invalid value {raw!r} for {name} from {source}, using default {default!r}")
            setattr(self, name, default)
            return

        if name in _RANGES:
            check, requirement = _RANGES[name]
            if not check(value):
                logger.warning(f"{name} {requirement}, got {raw!r} from {source}, using default {default!r}")
                setattr(self, name, default)
                return

        setattr(self, name, value)

    def load_from_file(self):
        """Load configuration from YAML file."""
        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not load config file {self.config_path}: {e}")
            return

        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file {self.config_path}: top level is not a mapping")
            return

        source = str(self.config_path)
        sections = {
            "loki": {
                "url": ("loki_url", str),
                "push_timeout": ("push_timeout", float),
                "ready_attempts": ("ready_attempts", int),
                "ready_interval": ("ready_interval", float),
                "ready_timeout": ("ready_timeout", float),
            },
            "source": {
                "db_path": ("db_path", str),
            },
            "polling": {
                "check_interval": ("check_interval", float),
                "batch_size": ("batch_size", int),
                "max_consecutive_errors": ("max_consecutive_errors", int),
                "error_backoff": ("error_backoff", float),
            },
            "labels": {
                "job": ("job_label", str),
            },
            "logging": {
                "level": ("log_level", str),
                "events": ("log_events", _to_bool),
            },
        }

        for section_name, keys in sections.items():
            section = data.get(section_name, {})
            if not isinstance(section, dict):
                logger.warning(f"Ignoring '{section_name}' section in {source}: not a mapping")
                continue
            for key, (name, cast) in keys.items():
                if key in section:
                    self._set(name, section[key], cast, source)

    def load_from_env(self):
        """Load configuration from environment variables."""
        env_fields = {
            "LOKI_URL": ("loki_url", str),
            "PUSH_TIMEOUT": ("push_timeout", float),
            "READY_ATTEMPTS": ("ready_attempts", int),
            "READY_INTERVAL": ("ready_interval", float),
            "EVENTS_DB_PATH": ("db_path", str),
            "CHECK_INTERVAL": ("check_interval", float),
            "BATCH_SIZE": ("batch_size", int),
            "MAX_CONSECUTIVE_ERRORS": ("max_consecutive_errors", int),
            "ERROR_BACKOFF": ("error_backoff", float),
            "JOB_LABEL": ("job_label", str),
            "LOG_LEVEL": ("log_level", str),
            "LOG_EVENTS": ("log_events", _to_bool),
        }

        for env_name, (name, cast) in env_fields.items():
            if (raw := os.environ.get(env_name)) is not None:
                self._set(name, raw, cast, env_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            k: v for k, v in self.__dict__.items()
            if not k.startswith("_") and k not in ("config_path", "use_env")
        }

    def validate(self) -> List[str]:
        """
        Check for values that have no usable fallback.

        Out-of-range numbers are already replaced by their defaults while
        loading, so only the Loki URL and the database path can fail here.

        Returns:
            List of problems, empty if the configuration is usable
        """
        errors = []

        if not self.loki_url.startswith(("http://", "https://")):
            errors.append("loki_url must start with http:// or https://")

        if not self.db_path:
            errors.append("db_path must not be empty")

        return errors
