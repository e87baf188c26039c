"""Configuration for the apply_patch tool and command line."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_CONFIG_NAME = "config.yaml"
DEFAULT_MAX_PATCH_BYTES = 200_000
MAX_PATCH_BYTES_ENV = "PATCHWRIGHT_MAX_PATCH_BYTES"


class ConfigError(RuntimeError):
    """Raised when a configuration file exists but cannot be used."""


@dataclass(slots=True)
class PatchConfig:
    """Limits and policy applied around the patch engine."""

    max_patch_bytes: int = DEFAULT_MAX_PATCH_BYTES
    blocked_paths: tuple[str, ...] = (".git",)
    telemetry: bool = True


def _coerce_positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return None
        return parsed if parsed > 0 else None
    return None


def _normalise_blocked_paths(raw: Any) -> tuple[str, ...] | None:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        return None
    entries: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        cleaned = item.strip().strip("/")
        if cleaned and cleaned not in entries:
            entries.append(cleaned)
    return tuple(entries)


def config_from_mapping(
    data: Mapping[str, Any],
    *,
    env: Mapping[str, str] | None = None,
) -> PatchConfig:
    """Interpret the ``patch`` section of a loaded configuration mapping."""
    env_mapping = os.environ if env is None else env
    config = PatchConfig()

    env_limit = _coerce_positive_int(env_mapping.get(MAX_PATCH_BYTES_ENV))
    if env_limit is not None:
        config.max_patch_bytes = env_limit

    section = data.get("patch")
    if not isinstance(section, Mapping):
        return config

    if "max_patch_bytes" in section:
        candidate = section.get("max_patch_bytes")
        limit = _coerce_positive_int(candidate)
        if limit is not None:
            config.max_patch_bytes = limit
        elif candidate == 0:
            config.max_patch_bytes = 0

    blocked = _normalise_blocked_paths(section.get("blocked_paths"))
    if blocked is not None:
        config.blocked_paths = blocked

    telemetry = section.get("telemetry")
    if isinstance(telemetry, bool):
        config.telemetry = telemetry
    return config


def load_config(
    config_path: Path | str | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> PatchConfig:
    """Load :class:`PatchConfig` from YAML, falling back to defaults."""
    candidate = Path(config_path) if config_path is not None else Path(DEFAULT_CONFIG_NAME)
    try:
        with candidate.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        return config_from_mapping({}, env=env)
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {candidate}: {error}") from error
    if not isinstance(loaded, Mapping):
        raise ConfigError(f"Configuration {candidate} must be a mapping at the top level.")
    return config_from_mapping(loaded, env=env)


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_MAX_PATCH_BYTES",
    "MAX_PATCH_BYTES_ENV",
    "PatchConfig",
    "config_from_mapping",
    "load_config",
]
