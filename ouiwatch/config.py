from __future__ import annotations

import argparse
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel

from ouiwatch.log import get_logger

logger = get_logger("config")

MANUF_GZ_URL = "https://www.wireshark.org/download/automated/data/manuf.gz"
DEFAULT_MANUF_PATH = str(Path.home() / ".ouiwatch" / "manuf.gz")


class Settings(BaseModel):
    url: str = MANUF_GZ_URL
    manuf_path: str = DEFAULT_MANUF_PATH
    cron: str = "0 0 * * 0"
    timezone: Optional[str] = None
    auto_update: bool = True
    throw_errors_on_init: bool = True
    return_misses: bool = True
    http_timeout: float = 30.0


def load_config() -> Dict[str, Any]:
    """
    Load configuration from:
    1. ~/.ouiwatch.toml
    2. ./ouiwatch.toml

    Later files override earlier ones.  Returns a dictionary of
    configuration values.
    """
    paths = [
        Path.home() / ".ouiwatch.toml",
        Path("ouiwatch.toml"),
    ]

    config: Dict[str, Any] = {}
    for path in paths:
        if path.exists():
            try:
                with path.open("rb") as f:
                    _deep_update(config, tomllib.load(f))
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.warning("failed to load config %s: %s", path, e)

    return config


def _deep_update(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, dict) and key in target and isinstance(target[key], dict):
            _deep_update(target[key], value)
        else:
            target[key] = value


def load_settings(config: Optional[Dict[str, Any]] = None, **overrides: Any) -> Settings:
    """Build :class:`Settings` from the ``[ouiwatch]`` section plus overrides.

    Overrides set to ``None`` are ignored so unset CLI flags fall through
    to the file values.
    """
    if config is None:
        config = load_config()
    values = dict(config.get("ouiwatch", {}))
    values.update({key: value for key, value in overrides.items() if value is not None})
    return Settings(**values)


def apply_config(parser: argparse.ArgumentParser, config: Dict[str, Any]) -> None:
    """
    Apply configuration values to the argument parser defaults.

    Example config:
    [ouiwatch]
    manuf_path = "/var/lib/ouiwatch/manuf.gz"

    [serve]
    port = 9000

    Sections are flattened and mapped onto argument destinations.
    """
    defaults: Dict[str, Any] = {}
    for values in config.values():
        if isinstance(values, dict):
            defaults.update(values)
    parser.set_defaults(**defaults)
