"""3-layer configuration system for controlcheck.

Loads and merges configuration from:
1. Default settings (built-in)
2. Config file (./controlcheck.yaml, or the path given with --config)
3. CLI parameters (override)
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Optional

import yaml

from ..errors import ConfigError
from ..providers.base import PROVIDER_NAMES, provider_settings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "controlcheck.yaml"

DEFAULT_CONFIG: dict = {
    "ai": {
        "provider": "anthropic",
        "fallback_provider": None,
        "enable_fallback": True,
        "temperature": 0.3,
        "max_tokens": 4096,
        "timeout_seconds": 120,
        "anthropic": {
            "model": "claude-sonnet-4-5-20250929",
            "api_key_env": "ANTHROPIC_API_KEY",
        },
        "openai": {
            "model": "gpt-4o",
            "api_key_env": "OPENAI_API_KEY",
        },
        "azure-openai": {
            "endpoint": "",
            "deployment": "gpt-4o",
            "api_version": "2024-10-01-preview",
            "api_key_env": "AZURE_OPENAI_KEY",
        },
        "ollama": {
            "endpoint": "http://localhost:11434",
            "model": "llama3.1:70b",
        },
    },
    "analysis": {
        "inter_control_delay_ms": 500,
        "max_document_chars": 15000,
    },
    "logging": {
        "level": "INFO",
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = {}
    for key in base:
        result[key] = base[key]
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def load_config_file(config_path: Path) -> dict:
    """Load a YAML config file. Raises ``ConfigError`` if it is unreadable."""
    try:
        content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
    try:
        data = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return data


def validate_config(config: dict) -> None:
    """Check the merged config. Raises ``ConfigError`` on the first problem."""
    ai_config = config.get("ai") or {}

    for key in ("provider", "fallback_provider"):
        name = ai_config.get(key)
        if key == "fallback_provider" and not name:
            continue
        if name not in PROVIDER_NAMES:
            raise ConfigError(f"Unknown AI provider: {name}")
        provider_settings(config, name)

    analysis = config.get("analysis") or {}
    for key in ("inter_control_delay_ms", "max_document_chars"):
        value = analysis.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ConfigError(f"analysis.{key} must be a non-negative integer, got {value!r}")
    if analysis["max_document_chars"] == 0:
        raise ConfigError("analysis.max_document_chars must be positive")


def get_effective_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[dict] = None,
) -> dict:
    """Get the fully resolved and validated configuration."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        config = deep_merge(config, load_config_file(config_path))
    else:
        default_path = Path.cwd() / DEFAULT_CONFIG_FILE
        if default_path.exists():
            logger.debug("Using config file %s", default_path)
            config = deep_merge(config, load_config_file(default_path))

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    validate_config(config)
    return config
