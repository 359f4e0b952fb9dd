"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from roll_lookup.common.constants import DUPLICATE_POLICIES, KEY_FIELDS, OPTIONAL_KEY_FIELDS
from roll_lookup.common.errors import ConfigError

SOURCE_COLUMNS = {
    "citizen_id",
    "birth_date",
    "given_name",
    "surname_1",
    "surname_2",
    "post_code",
    "station_id",
    "locality",
    "district",
    "section",
    "table",
    "address",
}
MIN_DOCUMENT_CHARS = 3


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_bool(value: object, ctx: str) -> None:
    if not isinstance(value, bool):
        raise ConfigError(f"{ctx} must be true or false")


def _assert_index(value: object, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{ctx} must be a non-negative column index")


def validate_source_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    required = {"delimiter", "encoding", "skip_header", "columns"}
    _assert_required_keys(cfg, required, "source")
    _assert_no_unknown_keys(cfg, required, "source", allow_unknown)

    if not isinstance(cfg["delimiter"], str) or len(cfg["delimiter"]) != 1:
        raise ConfigError("source.delimiter must be a single character")
    _assert_bool(cfg["skip_header"], "source.skip_header")

    columns = cfg["columns"]
    _assert_required_keys(columns, SOURCE_COLUMNS, "source.columns")
    _assert_no_unknown_keys(columns, SOURCE_COLUMNS, "source.columns", allow_unknown)
    for name in sorted(SOURCE_COLUMNS - {"address"}):
        _assert_index(columns[name], f"source.columns.{name}")
    if not isinstance(columns["address"], list) or not columns["address"]:
        raise ConfigError("source.columns.address must be a non-empty list")
    for idx, value in enumerate(columns["address"]):
        _assert_index(value, f"source.columns.address[{idx}]")

    return cfg


def validate_key_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    required = {"document", "name_chars", "fields", "opaque", "duplicate_policy"}
    _assert_required_keys(cfg, required, "key")
    _assert_no_unknown_keys(cfg, required, "key", allow_unknown)

    document = cfg["document"]
    document_keys = {"chars", "first_chars", "add_letter"}
    _assert_required_keys(document, document_keys, "key.document")
    _assert_no_unknown_keys(document, document_keys, "key.document", allow_unknown)
    chars = document["chars"]
    if isinstance(chars, bool) or not isinstance(chars, int):
        raise ConfigError("key.document.chars must be an integer")
    if chars != 0 and chars < MIN_DOCUMENT_CHARS:
        raise ConfigError(f"key.document.chars must be 0 or at least {MIN_DOCUMENT_CHARS}, got {chars}")
    _assert_bool(document["first_chars"], "key.document.first_chars")
    _assert_bool(document["add_letter"], "key.document.add_letter")

    name_chars = cfg["name_chars"]
    if isinstance(name_chars, bool) or not isinstance(name_chars, int) or name_chars < 1:
        raise ConfigError("key.name_chars must be a positive integer")

    fields = cfg["fields"]
    _assert_required_keys(fields, set(OPTIONAL_KEY_FIELDS), "key.fields")
    _assert_no_unknown_keys(fields, set(OPTIONAL_KEY_FIELDS), "key.fields", allow_unknown)
    for name in OPTIONAL_KEY_FIELDS:
        _assert_bool(fields[name], f"key.fields.{name}")

    opaque = cfg["opaque"]
    if not isinstance(opaque, list):
        raise ConfigError("key.opaque must be a list of field names")
    unknown = [name for name in opaque if name not in KEY_FIELDS]
    if unknown:
        raise ConfigError(f"Unknown fields in key.opaque: {', '.join(map(str, unknown))}")
    if len(set(opaque)) != len(opaque):
        raise ConfigError("key.opaque lists a field more than once")
    if opaque and "citizen_id" not in opaque:
        raise ConfigError("key.opaque must include citizen_id")
    disabled = [name for name in opaque if name != "citizen_id" and not fields[name]]
    if disabled:
        raise ConfigError(f"key.opaque names disabled fields: {', '.join(disabled)}")

    if cfg["duplicate_policy"] not in DUPLICATE_POLICIES:
        raise ConfigError(f"key.duplicate_policy must be one of: {', '.join(DUPLICATE_POLICIES)}")

    return cfg


def validate_store_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_required_keys(cfg, {"filename"}, "store")
    _assert_no_unknown_keys(cfg, {"filename"}, "store", allow_unknown)
    if not isinstance(cfg["filename"], str) or not cfg["filename"]:
        raise ConfigError("store.filename must be a non-empty string")
    return cfg


def validate_lookup_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"source", "key", "store"}
    _assert_required_keys(cfg, top_required, "lookup config")
    _assert_no_unknown_keys(cfg, top_required, "lookup config", allow_unknown)

    validate_source_config(cfg["source"], allow_unknown=allow_unknown)
    validate_key_config(cfg["key"], allow_unknown=allow_unknown)
    validate_store_config(cfg["store"], allow_unknown=allow_unknown)
    return cfg
