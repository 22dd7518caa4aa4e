"""Configuration resolution helpers."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import PanoptesConfig

ENV_PREFIX = "PANOPTES__"


def resolve_with_precedence(
    *,
    defaults: PanoptesConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> PanoptesConfig:
    """Merge configuration sources, later sources winning.

    Precedence is defaults < file < environment < CLI.

    Args:
        defaults: Baseline configuration.
        file_overrides: Mapping read from the YAML configuration file.
        env_overrides: Mapping derived from `PANOPTES__*` variables; keys may
            use dotted paths.
        cli_overrides: Mapping whose keys may use dotted paths.

    Returns:
        PanoptesConfig: Validated, merged configuration.

    Raises:
        ConfigError: If a source is malformed or the result fails validation.
    """
    merged = deepcopy(defaults.model_dump(mode="python"))
    for name, source in (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    ):
        if source is None:
            continue
        merged = _deep_merge(merged, _normalize_mapping(source, source_name=name))

    try:
        return PanoptesConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def parse_env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    """Turn `PANOPTES__SECTION__KEY` variables into dotted overrides.

    Values are parsed as YAML literals so numbers, booleans and lists keep
    their types; anything YAML cannot parse is kept as a string.
    """
    overrides: Dict[str, Any] = {}
    for key, raw_value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = [segment.lower() for segment in key[len(ENV_PREFIX) :].split("__") if segment]
        if not path:
            continue
        try:
            overrides[".".join(path)] = yaml.safe_load(raw_value)
        except yaml.YAMLError:
            overrides[".".join(path)] = raw_value
    return overrides


def merge_overrides(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Return `base` with dotted-key `overrides` merged in.

    Raises:
        ConfigError: If an override descends into a non-mapping value.
    """
    return _deep_merge(base, _normalize_mapping(overrides, source_name="cli"))


def _normalize_mapping(source: Mapping[str, Any], *, source_name: str) -> dict[str, Any]:
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{source_name.capitalize()} overrides must be a mapping.")

    result: dict[str, Any] = {}
    for key, value in dict(source).items():
        if not isinstance(key, str):
            raise ConfigError(f"{source_name.capitalize()} override keys must be strings.")
        _assign(result, key.split("."), value, source_name=source_name)
    return result


def _assign(target: dict[str, Any], path: list[str], value: Any, *, source_name: str) -> None:
    node = target
    for segment in path[:-1]:
        existing = node.setdefault(segment, {})
        if not isinstance(existing, dict):
            joined = ".".join(path)
            raise ConfigError(
                f"{source_name.capitalize()} override for {joined} conflicts with existing value."
            )
        node = existing
    leaf = path[-1]
    if isinstance(value, MappingABC):
        nested = _normalize_mapping(value, source_name=source_name)
        existing_leaf = node.get(leaf)
        node[leaf] = _deep_merge(existing_leaf if isinstance(existing_leaf, dict) else {}, nested)
    else:
        node[leaf] = value


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        if isinstance(value, MappingABC) and isinstance(merged.get(key), MappingABC):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = ["ENV_PREFIX", "merge_overrides", "parse_env_overrides", "resolve_with_precedence"]
