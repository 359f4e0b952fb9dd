"""Resolve partial personal data to a single polling station.

Lookups never return data about more than one citizen. When a filter matches
several stored keys, the outcome names the key fields that tell them apart so
the caller can ask for more data, and carries no values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence, Union

from roll_lookup.common.constants import STATION_REF_COLUMN
from roll_lookup.common.errors import StoreError
from roll_lookup.common.models import CitizenKeyRecord, PollingStation
from roll_lookup.keys.key_schema import KeySchema
from roll_lookup.store.base import KeyedRecordStore


@dataclass(frozen=True)
class NotFound:
    status = "not_found"

    def to_payload(self) -> dict:
        return {"status": self.status}


@dataclass(frozen=True)
class Resolved:
    station: PollingStation
    key_fields: dict[str, str] = field(default_factory=dict)
    status = "resolved"

    def to_payload(self) -> dict:
        return {"status": self.status, "station": self.station.to_dict(), "key": dict(self.key_fields)}


@dataclass(frozen=True)
class Ambiguous:
    differing_fields: tuple[str, ...]
    status = "ambiguous"

    def to_payload(self) -> dict:
        return {"status": self.status, "differing_fields": list(self.differing_fields)}


@dataclass(frozen=True)
class StoreFailed:
    cause: StoreError
    status = "error"

    def to_payload(self) -> dict:
        # The cause stays server side.
        return {"status": self.status}


@dataclass(frozen=True)
class NotReady:
    status = "not_ready"

    def to_payload(self) -> dict:
        return {"status": self.status}


Outcome = Union[NotFound, Resolved, Ambiguous, StoreFailed, NotReady]


def differing_fields(records: Sequence[CitizenKeyRecord], columns: Sequence[str]) -> tuple[str, ...]:
    """Columns on which any record differs from the first, in ``columns`` order."""
    if len(records) < 2:
        return ()
    first = records[0].key_fields
    differing: set[str] = set()
    for record in records[1:]:
        for column in columns:
            if record.key_fields.get(column) != first.get(column):
                differing.add(column)
    return tuple(column for column in columns if column in differing)


def resolve(partial_key: Mapping[str, str | None], schema: KeySchema, store: KeyedRecordStore) -> Outcome:
    """Classify a partial query.

    ``partial_key`` maps query field names to values. The primary field is
    mandatory; any other field that is unset or blank is left out of the filter.
    ``station_id`` may narrow the match but is never reported as a difference.
    Raises ``NormalizationError`` for unusable query values.
    """
    filters = schema.build_filter(partial_key)
    station_ref = partial_key.get(STATION_REF_COLUMN)
    if station_ref is not None and station_ref.strip():
        filters[STATION_REF_COLUMN] = station_ref.strip()

    try:
        records = store.find_records(filters)
        if not records:
            return NotFound()
        if len(records) > 1:
            return Ambiguous(differing_fields(records, schema.columns))
        station = store.station_for(records[0])
    except StoreError as exc:
        return StoreFailed(exc)

    if station is None:
        return StoreFailed(StoreError(f"No polling station stored for reference {records[0].station_id!r}"))
    return Resolved(station=station, key_fields=dict(records[0].key_fields))
