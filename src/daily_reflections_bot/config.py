"""
Configuration management for the Daily Reflections Bot.

This module handles all configuration loading from environment variables,
validation, and provides typed configuration objects for use throughout
the application.

The configuration is loaded once at process start from environment
variables and an optional .env file, then passed explicitly to every
component. Nothing else in the package reads the environment.
"""

import os
from pathlib import Path
from typing import List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration settings."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str = Field(
        default="sqlite:///./daily_reflections.db",
        description="Database connection URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL queries to logs"
    )


class SourceConfig(BaseSettings):
    """External reflections API settings."""

    model_config = SettingsConfigDict(env_prefix="EXTERNAL_API_")

    url: str = Field(
        default="",
        description="Base URL of the public reflections API, without trailing slash"
    )
    timeout: float = Field(
        default=15.0,
        gt=0,
        description="Request timeout in seconds"
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per request for transient network failures"
    )

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalise the base URL so paths can be appended with '/'."""
        return v.rstrip("/")


class DiscordConfig(BaseSettings):
    """Discord application and webhook settings."""

    model_config = SettingsConfigDict(env_prefix="DISCORD_")

    public_key: Optional[str] = Field(
        default=None,
        description="Hex encoded Ed25519 application public key"
    )
    client_id: Optional[str] = Field(
        default=None,
        description="Discord application (client) ID"
    )
    bot_token: Optional[str] = Field(
        default=None,
        description="Bot token, only needed to register slash commands"
    )
    api_base: str = Field(
        default="https://discord.com/api/v10",
        description="Discord REST API base URL"
    )
    webhook_prefix: str = Field(
        default="DISCORD_WEBHOOK_URL",
        description="Prefix of the numbered webhook URL variables"
    )
    timeout: float = Field(
        default=10.0,
        gt=0,
        description="Request timeout in seconds for Discord calls"
    )

    @field_validator("api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalise the base URL so paths can be appended with '/'."""
        return v.rstrip("/")


class BackfillConfig(BaseSettings):
    """Bulk import settings."""

    model_config = SettingsConfigDict(env_prefix="BACKFILL_")

    batch_size: int = Field(
        default=20,
        gt=0,
        description="Concurrent requests per batch"
    )
    batch_delay_seconds: float = Field(
        default=5.5,
        ge=0,
        description="Pause between batches to respect the API rate limit"
    )


class SchedulerConfig(BaseSettings):
    """Scheduled delivery and health ping settings."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")

    enabled: bool = Field(
        default=True,
        description="Run the daily delivery job in-process"
    )
    hour: int = Field(default=7, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    timezone: str = Field(
        default="UTC",
        description="IANA timezone for the schedule and for 'today'"
    )
    jitter_max_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Upper bound of the random delay before a scheduled run"
    )
    ping_enabled: bool = Field(
        default=False,
        description="Periodically call the bot's own reflection endpoint"
    )
    ping_interval_minutes: int = Field(default=15, gt=0)
    app_url: str = Field(
        default="http://localhost:8080",
        description="Public base URL of this bot, used by the health ping"
    )
    bot_token: Optional[str] = Field(
        default=None,
        description="Bearer token protecting the internal endpoints"
    )
    trigger_header: str = Field(
        default="X-Scheduled-Event",
        description="Header set by an external scheduler"
    )
    trigger_value: str = Field(default="schedule")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate the IANA timezone name."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class ServerConfig(BaseSettings):
    """Inbound HTTP server settings."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, gt=0, le=65535)


class LoggingConfig(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(
        default="INFO",
        description="Logging level"
    )
    format: str = Field(
        default="json",
        description="Log format: 'json' or 'text'"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in {"json", "text"}:
            raise ValueError("Log format must be 'json' or 'text'")
        return v


class AppConfig(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Sub-configurations
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    backfill: BackfillConfig = Field(default_factory=BackfillConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    webhook_urls: List[str] = Field(
        default_factory=list,
        description="Outbound delivery targets, in configuration order"
    )


def load_webhook_urls(prefix: str, environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """
    Collect numbered webhook URLs from the environment.

    Reads ``{prefix}_1``, ``{prefix}_2``, ... and stops at the first index
    that is missing or empty, so ``_1, _2, _4`` yields two URLs.

    Args:
        prefix: Variable name prefix, e.g. ``DISCORD_WEBHOOK_URL``
        environ: Mapping to read from, defaults to ``os.environ``

    Returns:
        The URLs in index order
    """
    env = os.environ if environ is None else environ
    urls: List[str] = []
    index = 1
    while True:
        url = env.get(f"{prefix}_{index}", "").strip()
        if not url:
            break
        urls.append(url)
        index += 1
    return urls


def load_config() -> AppConfig:
    """
    Load and validate application configuration.

    This function loads configuration from environment variables and .env files,
    validates all settings, and returns a fully configured AppConfig instance.
    Webhook targets are discovered here, once.

    Returns:
        AppConfig: Validated application configuration

    Raises:
        pydantic.ValidationError: If configuration is invalid

    Example:
        ```python
        config = load_config()
        print(f"Delivering to {len(config.webhook_urls)} webhooks")
        ```
    """
    env_file = Path(".env")
    if env_file.exists():
        from dotenv import load_dotenv
        load_dotenv(env_file)

    config = AppConfig()
    config.webhook_urls = load_webhook_urls(config.discord.webhook_prefix)
    return config
