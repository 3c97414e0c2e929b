"""
Configuration system for planscope.

Environment variables are the primary source; a JSON file can be selected
with PLANSCOPE_CONFIG_FILE for local development.

Usage:
    from planscope.config import get_config

    config = get_config()
    plan = parse_plan(text, config=config.parser)
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from planscope.exceptions import ConfigurationError
from planscope.parser.config import DEFAULT_CONFIG, ParserConfig

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Config(BaseModel):
    """Top-level planscope settings."""

    model_config = ConfigDict(frozen=True)

    parser: ParserConfig = Field(
        default=DEFAULT_CONFIG,
        description="Resource limits and text-parsing options",
    )

    log_level: str = Field(
        default="WARNING",
        description="Level the command line configures logging with",
    )

    default_plan_name: str = Field(
        default="",
        description="Name given to plans parsed without one; empty means dated name",
    )


def _parse_env_int(key: str, default: int) -> int:
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Could not parse %s=%s, using %s", key, value, default)
        return default


def _parse_env_float(key: str, default: float) -> float:
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Could not parse %s=%s, using %s", key, value, default)
        return default


def _parse_log_level(value: str | None, default: str = "WARNING") -> str:
    if value is None:
        return default
    level = value.strip().upper()
    if level not in _LOG_LEVELS:
        logger.warning("Unknown log level %r, using %s", value, default)
        return default
    return level


def load_config_from_env() -> Config:
    """
    Load configuration from environment variables.

    Examples:
    - PLANSCOPE_MAX_INPUT_SIZE_MB=10
    - PLANSCOPE_MAX_NODES=5000
    - PLANSCOPE_MAX_DEPTH=50
    - PLANSCOPE_TAB_WIDTH=8
    - PLANSCOPE_LOG_LEVEL=debug
    - PLANSCOPE_DEFAULT_PLAN_NAME="nightly report"
    """
    parser_kwargs: dict[str, Any] = {
        "max_input_size_mb": _parse_env_float(
            "PLANSCOPE_MAX_INPUT_SIZE_MB", DEFAULT_CONFIG.max_input_size_mb
        ),
        "max_nodes": _parse_env_int("PLANSCOPE_MAX_NODES", DEFAULT_CONFIG.max_nodes),
        "max_depth": _parse_env_int("PLANSCOPE_MAX_DEPTH", DEFAULT_CONFIG.max_depth),
        "tab_width": _parse_env_int("PLANSCOPE_TAB_WIDTH", DEFAULT_CONFIG.tab_width),
    }

    try:
        parser = ParserConfig(**parser_kwargs)
    except ValidationError as e:
        logger.warning("Invalid parser limits in environment, using defaults: %s", e)
        parser = DEFAULT_CONFIG

    return Config(
        parser=parser,
        log_level=_parse_log_level(os.environ.get("PLANSCOPE_LOG_LEVEL")),
        default_plan_name=os.environ.get("PLANSCOPE_DEFAULT_PLAN_NAME", ""),
    )


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON file.

    Falls back to environment variables when the file does not exist.

    Raises:
        ConfigurationError: If the file exists but is not valid JSON or
            does not describe a valid configuration
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Cannot read config file {path}: {e}",
            config_key="PLANSCOPE_CONFIG_FILE",
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a JSON object",
            config_key="PLANSCOPE_CONFIG_FILE",
        )

    try:
        config = Config(**data)
    except ValidationError as e:
        first = e.errors()[0]
        raise ConfigurationError(
            f"Invalid config in {path}: {first['msg']}",
            config_key=".".join(str(part) for part in first["loc"]),
        ) from e

    return config.model_copy(update={"log_level": _parse_log_level(config.log_level)})


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. PLANSCOPE_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get("PLANSCOPE_CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
