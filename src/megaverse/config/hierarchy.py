"""Layered settings resolution for the reconciler.

Sources, lowest priority first:
  1. Package defaults
  2. Global config   (~/.megaverse/config.yaml)
  3. Project config  (megaverse.yaml, nearest one from cwd upward)
  4. Environment     (CANDIDATE_ID, MEGAVERSE_<SETTING>)
  5. Runtime arguments (CLI flags); None never overrides
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from megaverse.config.defaults import get_defaults
from megaverse.config.schema import ReconcilerSettings

logger = logging.getLogger(__name__)

_GLOBAL_CONFIG_PATH = Path.home() / ".megaverse" / "config.yaml"
_PROJECT_CONFIG_NAME = "megaverse.yaml"
_ENV_PREFIX = "MEGAVERSE_"

_TRUTHY = {"1", "true", "yes", "on"}


def _build_env_map() -> dict[str, str]:
    # The bare CANDIDATE_ID comes first so the prefixed form wins when both are set
    env_map = {"CANDIDATE_ID": "candidate_id"}
    for name in ReconcilerSettings.model_fields:
        env_map[f"{_ENV_PREFIX}{name.upper()}"] = name
    return env_map


_ENV_MAP: dict[str, str] = _build_env_map()


def load_config_hierarchy(**runtime_overrides: Any) -> dict[str, Any]:
    """Merge every source into one flat dict of setting name -> value."""
    config = get_defaults()

    for path, layer in _file_layers():
        logger.debug("Applying settings from %s: %s", path, sorted(layer))
        config.update(layer)

    config.update(_load_env_vars())
    config.update({k: v for k, v in runtime_overrides.items() if v is not None})
    return config


def _file_layers() -> Iterator[tuple[Path, dict[str, Any]]]:
    paths = [_GLOBAL_CONFIG_PATH]
    project = _find_project_config()
    if project is not None:
        paths.append(project)

    for path in paths:
        data = _load_yaml_config(path)
        if data:
            # Accept both batch_size and batch-size spellings
            yield path, {str(k).replace("-", "_"): v for k, v in data.items()}


def _load_yaml_config(path: Path) -> dict[str, Any] | None:
    """Read one YAML mapping; anything else is logged and skipped."""
    if not path.is_file():
        return None
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load config %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping, ignoring", path)
        return None
    return data


def _find_project_config() -> Path | None:
    cwd = Path.cwd()
    return next(
        (d / _PROJECT_CONFIG_NAME for d in (cwd, *cwd.parents) if (d / _PROJECT_CONFIG_NAME).is_file()),
        None,
    )


def _load_env_vars() -> dict[str, Any]:
    return {
        key: _coerce_env_value(key, os.environ[env_key])
        for env_key, key in _ENV_MAP.items()
        if env_key in os.environ
    }


def _coerce_env_value(key: str, value: str) -> Any:
    """Convert an env string using the setting's declared type.

    Numbers that do not parse are passed through unchanged so validation
    reports them against the setting name.
    """
    field = ReconcilerSettings.model_fields.get(key)
    target = field.annotation if field is not None else None

    if target is bool:
        return value.strip().lower() in _TRUTHY
    if target in (int, float):
        try:
            return target(value)
        except ValueError:
            logger.warning("Cannot convert env var for '%s' to %s: %s", key, target.__name__, value)
    return value
