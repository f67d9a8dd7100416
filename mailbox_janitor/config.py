"""Configuration system for the mailbox janitor.

Settings are read from the environment (and an optional ``.env`` file) using
the variable names of existing deployments, e.g. ``WEBHOOK_SECRET`` and
``TICK_INTERVAL=5m``. There is no module-level settings instance: build one
with load_settings() and pass it to the components that need it.
"""

from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings

from mailbox_janitor.core.errors import ConfigurationError
from mailbox_janitor.core.utils import parse_duration

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Mailbox janitor configuration."""

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # HTTP
    listen_addr: str = Field(
        default=":8080",
        description="host:port to listen on; an empty host listens on all interfaces",
    )
    webhook_secret: SecretStr | None = Field(
        default=None,
        description="Shared secret for the HMAC-SHA256 webhook signature (required by serve)",
    )

    # Storage
    database_path: Path = Field(
        default=Path("./mailboxes.csv"),
        description="Path to the pending deletions file",
    )
    lock_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for the pending store file lock",
    )

    # Scheduling
    retention_hours: int = Field(
        default=24,
        ge=0,
        description="Hours a mailbox stays pending before it is purged",
    )
    tick_interval: timedelta = Field(
        default=timedelta(minutes=5),
        description="Time between purge cycles (e.g. 5m, 1h30m, 90s)",
    )

    # Purge command
    doveadm_path: str = Field(
        default="/usr/bin/doveadm",
        description="Path to the doveadm binary",
    )
    use_sudo: bool = Field(
        default=True,
        description="Run doveadm through sudo",
    )
    purge_timeout: timedelta = Field(
        default=timedelta(minutes=5),
        description="Kill a purge command running longer than this (0 disables)",
    )

    model_config = {
        "env_prefix": "",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        level = str(value).strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @field_validator("log_format", mode="before")
    @classmethod
    def _normalize_log_format(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("webhook_secret")
    @classmethod
    def _empty_secret_is_unset(cls, value: SecretStr | None) -> SecretStr | None:
        if value is None or not value.get_secret_value():
            return None
        return value

    @field_validator("listen_addr")
    @classmethod
    def _check_listen_addr(cls, value: str) -> str:
        _, sep, port = value.rpartition(":")
        if not sep or not port.isdigit() or not 0 < int(port) < 65536:
            raise ValueError(f"listen_addr must be host:port, got {value!r}")
        return value

    @field_validator("tick_interval", "purge_timeout", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_validator("tick_interval")
    @classmethod
    def _positive_tick(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("tick_interval must be positive")
        return value

    @property
    def retention(self) -> timedelta:
        return timedelta(hours=self.retention_hours)

    @property
    def listen_host(self) -> str:
        host, _, _ = self.listen_addr.rpartition(":")
        return host.strip("[]") or "0.0.0.0"

    @property
    def listen_port(self) -> int:
        return int(self.listen_addr.rpartition(":")[2])


def load_settings(require_webhook_secret: bool = True, **overrides: Any) -> Settings:
    """Build settings from the environment.

    Args:
        require_webhook_secret: Fail when WEBHOOK_SECRET is unset. Only the
            administrative commands, which never receive webhooks, pass False.
        **overrides: Field values taking precedence over the environment.

    Raises:
        ConfigurationError: If a variable is missing or invalid.
    """
    try:
        settings = Settings(**overrides)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
    if require_webhook_secret and settings.webhook_secret is None:
        raise ConfigurationError("WEBHOOK_SECRET environment variable is required")
    return settings
