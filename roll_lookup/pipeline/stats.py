"""Uniqueness of stored keys per optional field."""

from __future__ import annotations

import logging

from roll_lookup.common.constants import STATION_REF_COLUMN
from roll_lookup.common.logging import log_event
from roll_lookup.keys.key_schema import KeySchema
from roll_lookup.store.base import KeyedRecordStore


def key_uniqueness(schema: KeySchema, store: KeyedRecordStore) -> list[dict]:
    """Share of distinct keys for the primary column alone and combined with
    each other stored column, station reference included.

    Sorted most unique first; ties keep declaration order.
    """
    primary = schema.primary_column
    combos: list[tuple[str, ...]] = [()]
    combos.extend((column,) for column in schema.columns if column != primary)
    combos.append((STATION_REF_COLUMN,))

    total = store.count_records()
    results = []
    for combo in combos:
        columns = (primary, *combo)
        distinct = store.count_distinct(columns)
        percent = 0.0 if total == 0 else round(distinct / total * 100.0, 2)
        results.append({"fields": "+".join(columns), "distinct": distinct, "percent": percent})
    return sorted(results, key=lambda row: -row["percent"])


def log_key_uniqueness(logger: logging.Logger, results: list[dict]) -> None:
    for row in results:
        message = f"{row['fields']} = {row['percent']:.2f}%"
        log_event(logger, message, stage="stats", event="KEY_UNIQUENESS", status="ok")
