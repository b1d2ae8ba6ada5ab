# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
probekit Configuration System

Centralized configuration management supporting:
- Environment variables (PROBEKIT_*)
- Config files (~/.probekit/config.yaml, ./.probekit.yaml)
- Programmatic defaults
- Pydantic validation
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import ConfigError

logger = logging.getLogger("probekit.config")

DEFAULT_TIMEOUT_SECONDS = 300.0


# ============================================================================
# Configuration Models
# ============================================================================


class RuntimeConfig(BaseModel):
    """Process execution configuration"""

    default_timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        description="Effective timeout when a request carries none",
        gt=0,
    )
    kill_grace_seconds: float = Field(
        default=5.0, description="Wait after killing a process tree", gt=0
    )
    drain_grace_seconds: float = Field(
        default=2.0, description="Wait for output drains after termination", gt=0
    )


class ObservabilityConfig(BaseModel):
    """Logging configuration"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Path = Field(
        default_factory=lambda: Path.home() / ".probekit" / "logs",
        description="Log files directory",
    )
    file_logging: bool = Field(default=True, description="Write rotating log files")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator("log_dir", mode="before")
    @classmethod
    def ensure_path(cls, v):
        if isinstance(v, str):
            return Path(v).expanduser()
        return v


class ProbeConfig(BaseModel):
    """Complete probekit configuration"""

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


# ============================================================================
# Configuration Loader
# ============================================================================


class ConfigLoader:
    """Load configuration from multiple sources"""

    @staticmethod
    def load_from_env() -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config: Dict[str, Any] = {}

        timeout = os.getenv("PROBEKIT_TIMEOUT")
        if timeout:
            config.setdefault("runtime", {})["default_timeout_seconds"] = float(timeout)

        kill_grace = os.getenv("PROBEKIT_KILL_GRACE")
        if kill_grace:
            config.setdefault("runtime", {})["kill_grace_seconds"] = float(kill_grace)

        log_level = os.getenv("PROBEKIT_LOG_LEVEL")
        if log_level:
            config.setdefault("observability", {})["log_level"] = log_level

        log_dir = os.getenv("PROBEKIT_LOG_DIR")
        if log_dir:
            config.setdefault("observability", {})["log_dir"] = log_dir

        no_file_logs = os.getenv("PROBEKIT_NO_FILE_LOGS")
        if no_file_logs:
            config.setdefault("observability", {})["file_logging"] = (
                no_file_logs.lower() != "true"
            )

        return config

    @staticmethod
    def load_from_file(file_path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML (or JSON) file"""
        if not file_path.exists():
            return {}

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config file {file_path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Config file {file_path} must contain a mapping")
            return {}
        return data

    @staticmethod
    def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge multiple configuration dictionaries"""
        result: Dict[str, Any] = {}
        for config in configs:
            for key, value in config.items():
                if (
                    key in result
                    and isinstance(result[key], dict)
                    and isinstance(value, dict)
                ):
                    result[key] = ConfigLoader.merge_configs(result[key], value)
                else:
                    result[key] = value
        return result


# ============================================================================
# Global Configuration Instance
# ============================================================================

_config: Optional[ProbeConfig] = None


def get_config() -> ProbeConfig:
    """
    Get global probekit configuration

    Configuration is loaded from (in order of precedence):
    1. Environment variables (PROBEKIT_*)
    2. .probekit.yaml in current directory
    3. ~/.probekit/config.yaml
    4. Default values
    """
    global _config

    if _config is None:
        _config = load_config()

    return _config


def load_config(
    config_file: Optional[Path] = None, env_override: bool = True
) -> ProbeConfig:
    """
    Load configuration from all sources

    Args:
        config_file: Optional specific config file to load
        env_override: Whether environment variables override file config

    Returns:
        ProbeConfig instance
    """
    configs = []

    default_locations = [
        Path.home() / ".probekit" / "config.yaml",
        Path.cwd() / ".probekit.yaml",
    ]

    for location in default_locations:
        file_config = ConfigLoader.load_from_file(location)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {location}")

    if config_file:
        if not config_file.exists():
            raise ConfigError(
                f"Config file not found: {config_file}",
                details={"path": str(config_file)},
            )
        file_config = ConfigLoader.load_from_file(config_file)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_file}")

    if env_override:
        try:
            env_config = ConfigLoader.load_from_env()
        except ValueError as e:
            logger.error(f"Ignoring malformed PROBEKIT_* variable: {e}")
            env_config = {}
        if env_config:
            configs.append(env_config)
            logger.debug("Loaded config from environment")

    merged = ConfigLoader.merge_configs(*configs) if configs else {}

    try:
        return ProbeConfig(**merged)
    except ValueError as e:
        logger.error(f"Config validation failed: {e}")
        logger.warning("Using default configuration")
        return ProbeConfig()


def reload_config(config_file: Optional[Path] = None) -> ProbeConfig:
    """Reload global configuration"""
    global _config
    _config = load_config(config_file)
    logger.info("Configuration reloaded")
    return _config


def effective_timeout(timeout: Optional[float]) -> float:
    """Request timeout, or the configured default when absent"""
    if timeout is not None:
        return timeout
    return get_config().runtime.default_timeout_seconds
