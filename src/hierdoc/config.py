"""
Configuration for hierdoc.

All tunable parameters in one place. Loaded from:
1. Defaults (this file)
2. Config file (~/.config/hierdoc/config.toml) if exists
3. Environment variables (HIERDOC_*) override file
4. CLI flags override everything
"""

from __future__ import annotations

import contextlib
import logging
import os
import tomllib  # stdlib in 3.11+
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class LimitsConfig:
    """Recursion bound for parsers, serializers and tree walks."""
    max_depth: int = 256


@dataclass
class JsonConfig:
    indent: int = 2


@dataclass
class YamlConfig:
    """Fallback indentation when a document carries no detected style."""
    indent_size: int = 2
    indent_char: str = " "


@dataclass
class XmlConfig:
    indent: str | None = None  # None = compact output


@dataclass
class ExpansionConfig:
    default_expanded: bool = True
    max_depth: int = 256


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class Config:
    """Root config with all settings."""
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    json: JsonConfig = field(default_factory=JsonConfig)
    yaml: YamlConfig = field(default_factory=YamlConfig)
    xml: XmlConfig = field(default_factory=XmlConfig)
    expansion: ExpansionConfig = field(default_factory=ExpansionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_path() -> Path:
    """Get config file path, respecting XDG."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "hierdoc" / "config.toml"
    return Path.home() / ".config" / "hierdoc" / "config.toml"


def load_config() -> Config:
    """Load config from file if exists, else return defaults."""
    config = Config()
    path = get_config_path()

    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
            config = _apply_toml(config, data)
        except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable config file %s: %s", path, e)

    # env var overrides
    config = _apply_env(config)

    return config


# section -> attr -> converter
_SCHEMA: dict[str, dict[str, type]] = {
    "limits": {"max_depth": int},
    "json": {"indent": int},
    "yaml": {"indent_size": int, "indent_char": str},
    "xml": {"indent": str},
    "expansion": {"default_expanded": bool, "max_depth": int},
    "logging": {"level": str},
}


def _apply_toml(config: Config, data: dict) -> Config:
    """Apply toml data to config."""
    for section, attrs in _SCHEMA.items():
        if section not in data:
            continue
        values = data[section]
        for attr, conv in attrs.items():
            if attr in values:
                setattr(getattr(config, section), attr, conv(values[attr]))
    return config


def _apply_env(config: Config) -> Config:
    """Apply environment variable overrides."""
    env_map: dict[str, tuple[str, str, type]] = {
        "HIERDOC_MAX_DEPTH": ("limits", "max_depth", int),
        "HIERDOC_JSON_INDENT": ("json", "indent", int),
        "HIERDOC_YAML_INDENT_SIZE": ("yaml", "indent_size", int),
        "HIERDOC_YAML_INDENT_CHAR": ("yaml", "indent_char", str),
        "HIERDOC_XML_INDENT": ("xml", "indent", str),
        "HIERDOC_DEFAULT_EXPANDED": ("expansion", "default_expanded", bool),
        "HIERDOC_EXPANSION_MAX_DEPTH": ("expansion", "max_depth", int),
        "HIERDOC_LOG_LEVEL": ("logging", "level", str),
    }

    for env_key, (section, attr, conv) in env_map.items():
        val = os.environ.get(env_key)
        if val is not None:
            with contextlib.suppress(ValueError, AttributeError):
                # Bool needs special handling: "true", "1", "yes" -> True
                converted = val.lower() in ("true", "1", "yes") if conv is bool else conv(val)
                setattr(getattr(config, section), attr, converted)

    return config


# Module-level config instance, loaded once on first use
_config: Config | None = None


def get_config() -> Config:
    """Get the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config so the next get_config() reloads it."""
    global _config
    _config = None
