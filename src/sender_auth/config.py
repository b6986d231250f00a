"""Configuration management for sender-auth."""

import logging
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_DNS_TIMEOUT,
    DKIM_KEY_CACHE_TTL,
    DKIM_MAX_WORKERS,
    LOG_LEVEL_NAMES,
    SPF_MAX_DNS_LOOKUPS,
    SPF_MAX_MX_HOSTS,
    TUNABLE_LOGGERS,
)

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = "sender-auth"
CONFIG_FILE_NAME = ".sender-auth.toml"


class DNSConfig(BaseModel):
    """DNS resolver configuration."""

    nameservers: list[str] | None = Field(
        default=None,
        description="DNS nameservers to use (default: system resolver, falling back to public DNS)",
    )
    timeout: float = Field(
        default=DEFAULT_DNS_TIMEOUT, gt=0, description="DNS query timeout in seconds"
    )


class SPFConfig(BaseModel):
    """SPF evaluation configuration."""

    max_lookups: int = Field(
        default=SPF_MAX_DNS_LOOKUPS,
        ge=1,
        description="Maximum DNS-querying terms per evaluation (RFC 7208 limit is 10)",
    )
    max_mx_hosts: int = Field(
        default=SPF_MAX_MX_HOSTS,
        ge=1,
        description="Maximum MX exchanges an 'mx' mechanism may return",
    )
    fetch_explanation: bool = Field(
        default=True, description="Fetch the exp= explanation text when SPF fails"
    )


class DKIMConfig(BaseModel):
    """DKIM verification configuration."""

    key_cache_ttl: float = Field(
        default=DKIM_KEY_CACHE_TTL, ge=0, description="Public key cache TTL in seconds"
    )
    max_workers: int = Field(
        default=DKIM_MAX_WORKERS, ge=1, description="Signatures verified concurrently"
    )


class OutputConfig(BaseModel):
    """Output and logging configuration."""

    color: bool = Field(default=True, description="Enable colored output")
    verbosity: str = Field(
        default="normal",
        description="Verbosity level: quiet, normal, verbose, debug",
    )
    log_levels: dict[str, str] = Field(
        default_factory=dict,
        description="Per-component log levels overriding verbosity, keyed by component name",
    )

    @field_validator("verbosity")
    @classmethod
    def _check_verbosity(cls, value: str) -> str:
        value = value.lower()
        if value not in ("quiet", "normal", "verbose", "debug"):
            raise ValueError("verbosity must be one of: quiet, normal, verbose, debug")
        return value

    @field_validator("log_levels")
    @classmethod
    def _check_log_levels(cls, value: dict[str, str]) -> dict[str, str]:
        levels = {}
        for component, level in value.items():
            if component not in TUNABLE_LOGGERS:
                raise ValueError(
                    f"Unknown log component '{component}'. "
                    f"Must be one of: {', '.join(TUNABLE_LOGGERS)}"
                )
            if level.lower() not in LOG_LEVEL_NAMES:
                raise ValueError(
                    f"Invalid log level '{level}' for {component}. "
                    f"Must be one of: {', '.join(LOG_LEVEL_NAMES)}"
                )
            levels[component] = level.lower()
        return levels


class Config(BaseSettings):
    """
    Main configuration for sender-auth.

    Values come from TOML files (see :func:`load_config`) and can be
    overridden by environment variables such as
    ``SENDER_AUTH_DNS__TIMEOUT=2.5`` or ``SENDER_AUTH_SPF__MAX_LOOKUPS=20``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SENDER_AUTH_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    dns: DNSConfig = Field(default_factory=DNSConfig)
    spf: SPFConfig = Field(default_factory=SPFConfig)
    dkim: DKIMConfig = Field(default_factory=DKIMConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment overrides values read from config files
        return env_settings, init_settings

    def to_toml(self) -> str:
        """
        Export configuration to TOML string.

        Returns:
            TOML formatted configuration string
        """
        return tomli_w.dumps(self.model_dump(mode="json", exclude_none=True))

    def to_toml_file(self, path: Path) -> None:
        """
        Export configuration to TOML file.

        Args:
            path: Path to save the TOML file
        """
        with open(path, "wb") as f:
            tomli_w.dump(self.model_dump(mode="json", exclude_none=True), f)
        logger.info(f"Exported config to: {path}")

    @classmethod
    def from_toml_string(cls, toml_string: str) -> "Config":
        """
        Import configuration from TOML string.

        Args:
            toml_string: TOML formatted configuration string

        Returns:
            Config object
        """
        return cls(**tomllib.loads(toml_string))

    @classmethod
    def from_toml_file(cls, path: Path) -> "Config":
        """
        Import configuration from TOML file.

        Args:
            path: Path to the TOML file

        Returns:
            Config object
        """
        with open(path, "rb") as f:
            config_data = tomllib.load(f)
        logger.info(f"Imported config from: {path}")
        return cls(**config_data)


def get_config_paths() -> list[Path]:
    """
    Get configuration file paths in order of precedence (lowest to highest).

    Returns:
        List of existing config file paths
    """
    candidates = [
        # 1. System-wide config
        Path("/etc") / CONFIG_DIR_NAME / "config.toml",
        # 2. User config in ~/.config
        Path.home() / ".config" / CONFIG_DIR_NAME / "config.toml",
        # 3. User config in home directory
        Path.home() / CONFIG_FILE_NAME,
        # 4. Current directory config
        Path.cwd() / CONFIG_FILE_NAME,
    ]
    return [path for path in candidates if path.exists()]


def load_config(extra_path: Path | None = None) -> Config:
    """
    Load configuration from files.

    Configuration is loaded in this order (later files override earlier):
    1. System-wide config (/etc/sender-auth/config.toml)
    2. User config (~/.config/sender-auth/config.toml)
    3. User home config (~/.sender-auth.toml)
    4. Current directory config (.sender-auth.toml)
    5. ``extra_path`` if given (e.g. ``--config`` on the command line)

    Environment variables override all files.

    Args:
        extra_path: Additional config file with the highest file precedence

    Returns:
        Merged configuration
    """
    config_paths = get_config_paths()
    if extra_path is not None:
        config_paths.append(extra_path)

    config_data: dict[str, Any] = {}

    for config_path in config_paths:
        try:
            with open(config_path, "rb") as f:
                file_data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            if config_path == extra_path:
                raise
            logger.warning(f"Failed to load config from {config_path}: {e}")
            continue

        config_data = _merge_configs(config_data, file_data)
        logger.debug(f"Loaded config from {config_path}")

    return Config(**config_data)


def _merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge two configuration dictionaries.

    Args:
        base: Base configuration
        override: Configuration to override base with

    Returns:
        Merged configuration
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_configs(result[key], value)
        else:
            result[key] = value

    return result
