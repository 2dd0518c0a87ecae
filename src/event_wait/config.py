"""Configuration loading and validation for the event-wait coordinator."""

from __future__ import annotations

from copy import deepcopy
from enum import Enum
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigValidationError
from .resolver import ResolutionScope
from .timeouts import TimeUnit

import tomllib  # stdlib since Python 3.11 (project requires >=3.11)

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "event-wait"
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
ASSIGNABLE_SCOPES = {ResolutionScope.MESSAGE, ResolutionScope.FLOW, ResolutionScope.GLOBAL}


class MergeStrategy(str, Enum):
    """How a matched event payload is combined with the waiting message."""

    MERGE_INTO_MESSAGE = "merge-into-message"
    MERGE_INTO_EVENT = "merge-into-event"
    SET_PROPERTY = "set-property"

    @classmethod
    def _missing_(cls, value: object) -> MergeStrategy | None:
        if value == "merge-original":
            return cls.MERGE_INTO_MESSAGE
        if value == "merge-event":
            return cls.MERGE_INTO_EVENT
        return None


class TimeoutHandling(str, Enum):
    """Whether a session ends on the first match or keeps listening.

    ``REPEAT`` is accepted so configurations round-trip, but the coordinator
    refuses to run it: whether the deadline resets per event and which
    events are forwarded is undecided.
    """

    SINGLE = "single"
    REPEAT = "repeat"


class PropertyRef(BaseModel):
    """A ``(scope, value)`` pair handed to the property resolver."""

    model_config = ConfigDict(frozen=True)
    scope: ResolutionScope = ResolutionScope.STRING
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        if not isinstance(value, str):
            raise ValueError("Property value must be a string, number or boolean.")
        return value.strip()


class WaitForConfig(BaseModel):
    """Parameters of one waiting coordinator."""

    event_id: PropertyRef = PropertyRef()
    timeout: PropertyRef = PropertyRef(scope=ResolutionScope.NUM, value="60000")
    timeout_unit: TimeUnit = TimeUnit.MILLISECONDS
    timeout_handling: TimeoutHandling = TimeoutHandling.SINGLE
    event_handling: MergeStrategy = MergeStrategy.SET_PROPERTY
    event_handling_property: PropertyRef = PropertyRef(
        scope=ResolutionScope.MESSAGE, value="payload"
    )

    @model_validator(mode="after")
    def _validate_target(self) -> WaitForConfig:
        if self.event_handling is MergeStrategy.SET_PROPERTY:
            target = self.event_handling_property
            if target.scope not in ASSIGNABLE_SCOPES:
                raise ValueError(
                    "event_handling_property.scope must be msg, flow or global."
                )
            if not target.value:
                raise ValueError("event_handling_property.value must not be empty.")
        return self


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/event-wait/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("log_file_path must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("log_file_path must not be empty.")
        return normalized


class Config(BaseModel):
    """Root configuration model for all sections."""

    wait_for: WaitForConfig = WaitForConfig()
    logging: LoggingConfig = LoggingConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump(mode="json")


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _safe_default_config() -> dict[str, dict[str, Any]]:
    """Return a deep copy of validated default config data."""
    return deepcopy(DEFAULT_CONFIG)


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fallback to safe defaults when possible."""
    try:
        config = Config.model_validate(raw)
        return config.model_dump(mode="json")
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return _safe_default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (
            Exception
        ) as exc:  # noqa: BLE001 - we must not crash on invalid user config.
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = _deep_merge(_safe_default_config(), raw_data)
    return _validate_config(merged)


def wait_for_config(data: dict[str, Any] | None = None) -> WaitForConfig:
    """Build a validated ``WaitForConfig`` from the ``wait_for`` section."""
    try:
        return WaitForConfig.model_validate(data or {})
    except ValidationError as exc:
        raise ConfigValidationError(f"Invalid wait_for configuration: {exc}") from exc
