"""Default configuration files and loaders.

Defaults are stored in JSON files next to this module so the core bucket
layout and starting allocation mix can be changed without code changes.
Each file is parsed once per process; callers always get their own copy.
"""

from __future__ import annotations

import copy
import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

CONFIG_DIR = Path(__file__).parent


@lru_cache(maxsize=None)
def _read_config(config_name: str) -> Dict[str, Any]:
    config_path = CONFIG_DIR / f"{config_name}.json"
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    with open(config_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def load_config(config_name: str) -> Dict[str, Any]:
    """Parsed ``<config_name>.json`` from the defaults directory.

    Raises ``FileNotFoundError`` for an unknown name. The result is a deep
    copy, so callers may mutate it freely.
    """
    return copy.deepcopy(_read_config(config_name))


def get_forecast_config() -> Dict[str, Any]:
    """Core layout, default mix and planning rules."""
    return load_config('forecast')


def get_config_value(config_name: str, *keys: str, default: Any = None) -> Any:
    """Walk ``keys`` into a config file, e.g. ``('rollout', 'default_quarters')``.

    Missing files and key paths give ``default``.
    """
    try:
        value: Any = _read_config(config_name)
        for key in keys:
            value = value[key]
    except (KeyError, TypeError, FileNotFoundError):
        return default
    return copy.deepcopy(value)


__all__ = ['load_config', 'get_forecast_config', 'get_config_value']
