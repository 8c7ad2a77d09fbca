"""
Configuration management for Thoughtflow.

Uses XDG base directories:
- Config: ~/.config/thoughtflow/config.toml
- Data: ~/thoughtflow/ (local store for thoughts, patterns and reports)
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any

# XDG defaults
DEFAULT_CONFIG_HOME = Path.home() / ".config"
DEFAULT_DATA_HOME = Path.home() / "thoughtflow"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_config_dir() -> Path:
    """Get the config directory (XDG_CONFIG_HOME/thoughtflow)."""
    base = Path(os.environ.get("XDG_CONFIG_HOME", DEFAULT_CONFIG_HOME))
    return base / "thoughtflow"


def get_thoughtflow_home() -> Path:
    """Get the data directory (~/thoughtflow or THOUGHTFLOW_HOME)."""
    if env_home := os.environ.get("THOUGHTFLOW_HOME"):
        return Path(env_home)
    return DEFAULT_DATA_HOME


def get_config_path() -> Path:
    """Get the path to config.toml."""
    return get_config_dir() / "config.toml"


def get_db_path() -> Path:
    """Get the path to thoughtflow.db."""
    return get_thoughtflow_home() / "thoughtflow.db"


def ensure_dirs() -> None:
    """Ensure all required directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_thoughtflow_home().mkdir(parents=True, exist_ok=True)


def load_config() -> dict[str, Any]:
    """
    Load configuration from config.toml.

    Values in the file are merged over the defaults, so a config file only
    needs the keys it changes. Returns default config if file doesn't exist.
    """
    config_path = get_config_path()

    if not config_path.exists():
        return get_default_config()

    # Lazy import tomli only when needed
    import tomli

    with open(config_path, "rb") as f:
        return merge_config(get_default_config(), tomli.load(f))


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_default_config() -> dict[str, Any]:
    """Return default configuration."""
    return {
        "thoughtflow": {
            "home": str(get_thoughtflow_home()),
            "default_user": "local",
        },
        "llm": {
            "provider": "openai",  # or "anthropic"
            "model": "gpt-4o-mini",
            "timeout_seconds": 10.0,
            "max_tokens": 1500,
            "temperature": 0.3,  # Low for consistent categorization
        },
        "classifier": {
            "confidence_threshold": 0.5,
            "fallback_sla_seconds": 12.0,
        },
        "learning": {
            "max_attempts": 3,
            "retry_delay_seconds": 0.5,
        },
        "connections": {
            "window": 30,
            "min_strength": 60,
            "max_connections": 10,
            "project_pair_cap": 5,
        },
        "batch": {
            "size": 5,
            "delay_seconds": 1.0,  # Respect provider rate limits
        },
        "logging": {
            "level": "INFO",
        },
    }


def configure_logging(level: str | None = None, config: dict[str, Any] | None = None) -> None:
    """Configure root logging for CLI and server entry points."""
    if level is None:
        config = config or load_config()
        level = config.get("logging", {}).get("level", "INFO")

    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, str(level).upper(), logging.INFO),
    )
