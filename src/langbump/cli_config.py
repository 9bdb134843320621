"""Configuration file loading and overrides for the ecosystem table.

A YAML file may override runtime tunables and any ecosystem's targets,
fallback, retention or source URL::

    cache_dir: .autofix/cache
    cache_ttl: 86400
    timeout: 20
    ecosystems:
      rust:
        targets: [images/rust/Dockerfile]
        fallback: "1.77.0"
      elixir:
        secondary:
          fallback: "26.2.2"

Precedence is CLI flag, then environment, then config file, then built-in
defaults.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from typing import Any, Dict, Mapping, Optional

import yaml

from .constants import Constants
from .versioning.models import EcosystemConfig, VersionFeed

logger = logging.getLogger(__name__)

_FEED_KEYS = {
    "fallback": "fallback_version",
    "retention": "retention",
    "source_url": "source_url",
    "marker_key": "marker_key",
}


class ConfigError(Exception):
    """Raised for unreadable or invalid configuration."""


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    """Load a YAML configuration file.

    Args:
        config_path: Path to the YAML file; None means no file.

    Returns:
        Parsed mapping (empty when no file was given).

    Raises:
        ConfigError: if the file is missing, unparseable or not a mapping.
    """
    if not config_path:
        return {}
    if not os.path.isfile(config_path):
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to load config {config_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must be a mapping at the top level")
    return data


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a positive integer") from exc
    if number <= 0:
        raise ConfigError(f"{name} must be a positive integer")
    return number


def _apply_feed(feed: VersionFeed, overrides: Mapping[str, Any], where: str) -> VersionFeed:
    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key == "secondary":
            continue
        if key not in _FEED_KEYS:
            if key != "targets":
                logger.warning("Ignoring unknown config key %s.%s", where, key)
            continue
        if key == "retention":
            changes["retention"] = _positive_int(value, f"{where}.retention")
        else:
            changes[_FEED_KEYS[key]] = str(value)
    return dataclasses.replace(feed, **changes) if changes else feed


def apply_ecosystem_overrides(
    table: Mapping[str, EcosystemConfig],
    config: Mapping[str, Any],
) -> Dict[str, EcosystemConfig]:
    """Return a new ecosystem table with config overrides applied.

    Raises:
        ConfigError: for unknown ecosystems or ill-typed values.
    """
    result = dict(table)
    overrides = config.get("ecosystems") or {}
    if not isinstance(overrides, dict):
        raise ConfigError("'ecosystems' must be a mapping")

    for ecosystem_id, section in overrides.items():
        if ecosystem_id not in result:
            raise ConfigError(f"Unknown ecosystem in config: {ecosystem_id}")
        if not isinstance(section, dict):
            raise ConfigError(f"Config for {ecosystem_id} must be a mapping")
        eco = result[ecosystem_id]

        changes: Dict[str, Any] = {"primary": _apply_feed(eco.primary, section, ecosystem_id)}
        if "targets" in section:
            targets = section["targets"]
            if isinstance(targets, str):
                targets = [targets]
            if not isinstance(targets, list) or not all(isinstance(t, str) for t in targets):
                raise ConfigError(f"{ecosystem_id}.targets must be a list of paths")
            changes["targets"] = tuple(targets)
        if "secondary" in section:
            if eco.secondary is None:
                raise ConfigError(f"{ecosystem_id} has no secondary component")
            secondary = section["secondary"]
            if not isinstance(secondary, dict):
                raise ConfigError(f"{ecosystem_id}.secondary must be a mapping")
            changes["secondary"] = _apply_feed(eco.secondary, secondary, f"{ecosystem_id}.secondary")

        result[ecosystem_id] = dataclasses.replace(eco, **changes)
    return result


def apply_runtime_overrides(config: Mapping[str, Any], args=None) -> None:
    """Apply cache/timeout tunables from config, environment and CLI.

    Mirrors the constants-override pattern: later sources win.
    """
    if "cache_dir" in config:
        Constants.CACHE_DIR = str(config["cache_dir"])
    if "cache_ttl" in config:
        Constants.CACHE_TTL_SEC = _positive_int(config["cache_ttl"], "cache_ttl")
    if "timeout" in config:
        Constants.REQUEST_TIMEOUT = _positive_int(config["timeout"], "timeout")

    env_cache_dir = os.environ.get(Constants.ENV_CACHE_DIR)
    if env_cache_dir and env_cache_dir.strip():
        Constants.CACHE_DIR = env_cache_dir.strip()

    if args is not None:
        if getattr(args, "CACHE_DIR", None):
            Constants.CACHE_DIR = args.CACHE_DIR
        if getattr(args, "TIMEOUT", None) is not None:
            Constants.REQUEST_TIMEOUT = _positive_int(args.TIMEOUT, "--timeout")
