"""Configuration loading and validation."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from roll_lookup.common.constants import ENV_PREFIX
from roll_lookup.common.errors import ConfigError
from roll_lookup.common.fs import read_yaml
from roll_lookup.common.schema import validate_lookup_config

CONFIG_FILENAME = "lookup.yml"

_TRUE_VALUES = {"1", "t", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "f", "false", "no", "n", "off"}

# Environment variable suffix -> path into the key config.
_ENV_KEY_PATHS: dict[str, tuple[tuple[str, ...], str]] = {
    "DOCUMENT_CHARS": (("document", "chars"), "int"),
    "FIRST_CHARS": (("document", "first_chars"), "bool"),
    "ADD_LETTER": (("document", "add_letter"), "bool"),
    "NAME_CHARS": (("name_chars",), "int"),
    "DAY": (("fields", "day"), "bool"),
    "YEAR": (("fields", "year"), "bool"),
    "FN": (("fields", "fn"), "bool"),
    "SN1": (("fields", "sn1"), "bool"),
    "SN2": (("fields", "sn2"), "bool"),
    "POST_CODE": (("fields", "post_code"), "bool"),
    "OPAQUE": (("opaque",), "list"),
    "DUPLICATE_POLICY": (("duplicate_policy",), "str"),
}


@dataclass(frozen=True)
class ConfigBundle:
    source: dict
    key: dict
    store: dict


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    return _deep_merge(base, overlay)


def _parse_env_value(name: str, raw: str, kind: str) -> Any:
    value = raw.strip()
    if kind == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if kind == "bool":
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigError(f"{name} must be a boolean, got {raw!r}")
    if kind == "list":
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def apply_env_overrides(cfg: dict, environ: Mapping[str, str]) -> dict:
    """Return a copy of ``cfg`` with ``ROLL_*`` variables applied to the key section."""
    out = copy.deepcopy(cfg)
    key_cfg = out.get("key")
    if not isinstance(key_cfg, dict):
        return out

    for suffix, (path, kind) in _ENV_KEY_PATHS.items():
        name = f"{ENV_PREFIX}{suffix}"
        raw = environ.get(name)
        if raw is None or raw.strip() == "":
            continue
        target = key_cfg
        for part in path[:-1]:
            target = target.setdefault(part, {})
        target[path[-1]] = _parse_env_value(name, raw, kind)
    return out


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConfigBundle:
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / CONFIG_FILENAME
    cfg = _load_yaml_with_overlay(config_dir / CONFIG_FILENAME, overlay_path)
    cfg = apply_env_overrides(cfg, os.environ if environ is None else environ)
    cfg = validate_lookup_config(cfg, allow_unknown=allow_unknown)
    return ConfigBundle(source=cfg["source"], key=cfg["key"], store=cfg["store"])
