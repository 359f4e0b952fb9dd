"""Composite key derivation from personal-data fields.

A ``KeySchema`` lists the fields that identify a citizen, in declaration
order. Each field is either stored as its own queryable column or folded into
a single opaque key string. The same schema derives keys at ingestion time and
rebuilds the lookup filter from a caller's partial data.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Mapping

from roll_lookup.common.constants import DUPLICATE_POLICIES, KEY_FIELDS, OPAQUE_KEY_COLUMN
from roll_lookup.common.errors import ConfigError, InvalidPolicy, MalformedDate, MissingRequiredField
from roll_lookup.common.models import CitizenKeyRecord, PersonalRecord
from roll_lookup.common.normalize import (
    KEEP_FIRST_N,
    KEEP_FIRST_N_PLUS_LAST_CHAR,
    KEEP_LAST_N,
    KEEP_LAST_N_PLUS_LAST_CHAR,
    TRUNCATION_POLICIES,
    normalize_case,
    pad_day,
    split_date,
    truncate,
)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    source: str
    uppercase: bool = False
    truncation: str | None = None
    width: int = 0
    date_part: str | None = None
    required: bool = False
    opaque: bool = False

    def __post_init__(self) -> None:
        if self.truncation is None:
            return
        if self.truncation not in TRUNCATION_POLICIES:
            raise InvalidPolicy(f"Unknown truncation policy for {self.name}: {self.truncation}")
        if self.width < 1:
            raise InvalidPolicy(f"Truncation width for {self.name} must be at least 1, got {self.width}")

    def _shape(self, value: str) -> str:
        if self.uppercase:
            value = normalize_case(value)
        if self.truncation is not None and value:
            value = truncate(value, self.width, self.truncation)
        return value

    def _split(self, value: str, part: str) -> str:
        try:
            return split_date(value, part)
        except MalformedDate as exc:
            raise MalformedDate(str(exc), field=self.name) from exc

    def normalize(self, raw: str) -> str:
        """Normalise a value read from the extract."""
        value = raw.strip()
        if self.date_part is not None:
            value = self._split(value, self.date_part)
        return self._shape(value)

    def normalize_query(self, raw: str) -> str:
        """Normalise a value supplied by a caller.

        Date parts arrive already split: a one-digit day is zero padded and a
        four-digit year is cut to its last two digits.
        """
        value = raw.strip()
        if self.date_part == "day":
            value = pad_day(value)
        elif self.date_part == "year":
            value = self._split(value, "year")
        return self._shape(value)


def encode_opaque_key(parts: list[str]) -> str:
    # Length tags keep "AB"+"1" and "A"+"B1" apart.
    return "".join(f"{len(part)}:{part}" for part in parts)


@dataclass(frozen=True)
class KeySchema:
    fields: tuple[FieldSpec, ...]
    duplicate_policy: str = "reject"

    def __post_init__(self) -> None:
        names = [spec.name for spec in self.fields]
        if len(set(names)) != len(names):
            raise ConfigError("Key schema lists a field more than once")
        unknown = [name for name in names if name not in KEY_FIELDS]
        if unknown:
            raise ConfigError(f"Unknown key fields: {', '.join(unknown)}")
        if names != [name for name in KEY_FIELDS if name in names]:
            raise ConfigError("Key fields must follow declaration order: " + ", ".join(KEY_FIELDS))
        if "citizen_id" not in names:
            raise ConfigError("Key schema must include citizen_id")
        if self.has_opaque_key and not self.field("citizen_id").opaque:
            raise ConfigError("An opaque key must include citizen_id")
        if self.duplicate_policy not in DUPLICATE_POLICIES:
            raise ConfigError(f"Unknown duplicate policy: {self.duplicate_policy}")

    def field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)

    @property
    def opaque_fields(self) -> tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if spec.opaque)

    @property
    def attribute_fields(self) -> tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if not spec.opaque)

    @property
    def has_opaque_key(self) -> bool:
        return any(spec.opaque for spec in self.fields)

    @property
    def primary_column(self) -> str:
        return OPAQUE_KEY_COLUMN if self.has_opaque_key else "citizen_id"

    @property
    def columns(self) -> tuple[str, ...]:
        """Stored key columns in declaration order, primary column first."""
        attributes = tuple(spec.name for spec in self.attribute_fields)
        if self.has_opaque_key:
            return (OPAQUE_KEY_COLUMN, *attributes)
        return attributes

    @property
    def query_fields(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)

    def build_key(self, record: PersonalRecord) -> CitizenKeyRecord:
        values: dict[str, str] = {}
        for spec in self.fields:
            raw = getattr(record, spec.source, "") or ""
            value = spec.normalize(raw) if raw.strip() else ""
            if spec.required and not value:
                raise MissingRequiredField(spec.name)
            values[spec.name] = value

        key_fields: dict[str, str] = {}
        if self.has_opaque_key:
            key_fields[OPAQUE_KEY_COLUMN] = encode_opaque_key([values[spec.name] for spec in self.opaque_fields])
        for spec in self.attribute_fields:
            key_fields[spec.name] = values[spec.name]
        return CitizenKeyRecord(key_fields=key_fields, station_id=record.station.station_id)

    def build_filter(self, partial: Mapping[str, str | None]) -> dict[str, str]:
        """Equality filter for a partial query.

        Unset or blank optional fields are left out of the filter entirely, so
        they match any stored value rather than only empty ones.
        """
        supplied = {
            name: value.strip()
            for name, value in partial.items()
            if value is not None and value.strip() != ""
        }

        filters: dict[str, str] = {}
        if self.has_opaque_key:
            parts = []
            for spec in self.opaque_fields:
                if spec.name not in supplied:
                    raise MissingRequiredField(spec.name)
                parts.append(spec.normalize_query(supplied[spec.name]))
            filters[OPAQUE_KEY_COLUMN] = encode_opaque_key(parts)

        for spec in self.attribute_fields:
            if spec.name not in supplied:
                if spec.name == self.primary_column:
                    raise MissingRequiredField(spec.name)
                continue
            value = spec.normalize_query(supplied[spec.name])
            if value:
                filters[spec.name] = value
            elif spec.name == self.primary_column:
                raise MissingRequiredField(spec.name)
        return filters


def _document_policy(document_cfg: dict) -> str | None:
    if document_cfg["chars"] == 0:
        return None
    if document_cfg["first_chars"]:
        return KEEP_FIRST_N_PLUS_LAST_CHAR if document_cfg["add_letter"] else KEEP_FIRST_N
    return KEEP_LAST_N_PLUS_LAST_CHAR if document_cfg["add_letter"] else KEEP_LAST_N


def build_schema(key_cfg: dict) -> KeySchema:
    """Build the process-wide schema from the validated ``key`` config section."""
    enabled = key_cfg["fields"]
    opaque = set(key_cfg["opaque"])
    name_chars = key_cfg["name_chars"]
    document = key_cfg["document"]

    candidates = {
        "citizen_id": FieldSpec(
            name="citizen_id",
            source="citizen_id",
            uppercase=True,
            truncation=_document_policy(document),
            width=document["chars"],
            required=True,
        ),
        "day": FieldSpec(name="day", source="birth_date", date_part="day", required=True),
        "year": FieldSpec(name="year", source="birth_date", date_part="year", required=True),
        "fn": FieldSpec(name="fn", source="given_name", uppercase=True, truncation=KEEP_FIRST_N, width=name_chars),
        "sn1": FieldSpec(name="sn1", source="surname_1", uppercase=True, truncation=KEEP_FIRST_N, width=name_chars),
        "sn2": FieldSpec(name="sn2", source="surname_2", uppercase=True, truncation=KEEP_FIRST_N, width=name_chars),
        "post_code": FieldSpec(name="post_code", source="post_code", uppercase=True),
    }

    specs = []
    for name in KEY_FIELDS:
        if name != "citizen_id" and not enabled[name]:
            continue
        spec = candidates[name]
        if name in opaque:
            spec = replace(spec, opaque=True)
        specs.append(spec)
    return KeySchema(fields=tuple(specs), duplicate_policy=key_cfg["duplicate_policy"])
