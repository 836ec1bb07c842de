"""
Stepcast · Configuration system.

Loads configuration from:
  1. Defaults (defined here)
  2. config.yaml in $STEPCAST_HOME or ~/.stepcast/ (overrides defaults)
  3. Environment variables STEPCAST_* (overrides everything)

The dispatch engine receives the validated config once at construction;
nothing reads configuration from globals.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from stepcast.core.errors import ConfigError

log = logging.getLogger(__name__)

ENV_PREFIX = "STEPCAST_"


def default_home() -> Path:
    """Home directory: $STEPCAST_HOME if set, else ~/.stepcast."""
    env_home = os.environ.get(f"{ENV_PREFIX}HOME", "").strip()
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".stepcast"


# ============================================================================
# Configuration models
# ============================================================================


class TelegramConfig(BaseModel):
    """Telegram bot credentials and target channel."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    bot_token: str = ""
    channel_id: str = ""
    """Chat id (``-100...``) or public ``@channelname``."""

    parse_mode: str = "Markdown"


class StateConfig(BaseModel):
    """Location of the persisted job store."""

    file_path: str = "state.txt"
    """Relative paths resolve against ``stepcast_home``."""


class SchedulerConfig(BaseModel):
    """Timing of the per-job polling loops."""

    timezone: str = "Asia/Tehran"
    poll_interval_seconds: float = Field(default=1.0, gt=0.0, le=60.0)
    post_dispatch_pause_seconds: float = Field(default=5.0, ge=0.0, le=60.0)

    @field_validator("timezone")
    @classmethod
    def _valid_zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown timezone: {value!r}"
            raise ValueError(msg) from exc
        return value


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_logs: bool = False
    console: bool = True


# ============================================================================
# Main configuration
# ============================================================================


class StepcastConfig(BaseModel):
    """Complete Stepcast configuration.

    Loaded once at startup and handed to the dispatch engine.
    """

    stepcast_home: Path = Field(default_factory=default_home)

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def config_file(self) -> Path:
        return self.stepcast_home / "config.yaml"

    @property
    def state_file(self) -> Path:
        path = Path(self.state.file_path).expanduser()
        if path.is_absolute():
            return path
        return self.stepcast_home / path

    @property
    def logs_dir(self) -> Path:
        return self.stepcast_home / "logs"

    @property
    def tz(self) -> ZoneInfo:
        """Local timezone in which trigger minutes are evaluated."""
        return ZoneInfo(self.scheduler.timezone)

    def require_credentials(self) -> None:
        """Raises ConfigError unless bot token and channel id are set."""
        missing = [
            name
            for name, value in (
                ("telegram.bot_token", self.telegram.bot_token),
                ("telegram.channel_id", self.telegram.channel_id),
            )
            if not value.strip()
        ]
        if missing:
            raise ConfigError(
                "BotToken or ChannelId is missing: " + ", ".join(missing),
                error_code="CONFIG_MISSING_CREDENTIALS",
                details={"missing": missing},
            )


# ============================================================================
# Loading
# ============================================================================


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Applies STEPCAST_* environment variables.

    Convention: STEPCAST_SECTION_KEY → data["section"]["key"]
    Example: STEPCAST_TELEGRAM_BOT_TOKEN → data["telegram"]["bot_token"]
    STEPCAST_HOME sets ``stepcast_home``.
    """
    sections = set(StepcastConfig.model_fields)
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        parts = key[len(ENV_PREFIX):].lower().split("_")
        if len(parts) >= 2 and parts[0] in sections:
            section = data.setdefault(parts[0], {})
            if isinstance(section, dict):
                section["_".join(parts[1:])] = value
        elif parts == ["home"]:
            data["stepcast_home"] = value
        else:
            data["_".join(parts)] = value
    return data


def load_config(config_path: Path | None = None) -> StepcastConfig:
    """Loads the configuration.

    Order (later wins):
      1. Defaults (in the pydantic models)
      2. config.yaml (if present)
      3. STEPCAST_* environment variables

    Args:
        config_path: Explicit path to config.yaml. None: config.yaml in
            default_home()

    Returns:
        Fully validated StepcastConfig.

    Raises:
        ConfigError: If the merged values fail validation.
    """
    data: dict[str, Any] = {}

    if config_path is None:
        config_path = default_home() / "config.yaml"

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            if isinstance(file_data, dict):
                data = file_data
        except yaml.YAMLError as exc:
            log.warning("Ignoring malformed config.yaml: %s", exc)

    data = _apply_env_overrides(data)

    try:
        return StepcastConfig(**data)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def ensure_directory_structure(config: StepcastConfig) -> list[str]:
    """Creates the ~/.stepcast/ directories. Idempotent.

    Returns:
        Newly created paths (for logging).
    """
    created: list[str] = []
    for d in (config.stepcast_home, config.logs_dir, config.state_file.parent):
        if not d.exists():
            d.mkdir(parents=True, exist_ok=True)
            created.append(str(d))
    return created
