"""YAML file source and dict merging for layered configuration."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def deep_merge_dicts(
    base_dict: dict[str, Any],
    merge_dict: dict[str, Any],
) -> dict[str, Any]:
    """Return a copy of ``base_dict`` with ``merge_dict`` merged over it.

    Nested mappings are merged key by key; any other value in ``merge_dict``
    replaces the base value outright.
    """
    merged = copy.deepcopy(base_dict)
    for key, value in merge_dict.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge_dicts(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_yaml_file(file_path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping; a missing, empty or broken file yields ``{}``."""
    path = Path(file_path)
    if not path.is_file():
        logger.info(f"No configuration file at {path}, using defaults")
        return {}

    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.error(f"Could not parse {path}: {e}. Using defaults.")
        return {}

    if content is None:
        return {}
    if not isinstance(content, dict):
        logger.warning(f"Top level of {path} is not a mapping, ignoring it")
        return {}
    return content
