"""Ingest personal records into the keyed record store."""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from roll_lookup.common.errors import IngestFailed, NormalizationError, StoreError
from roll_lookup.common.logging import log_event
from roll_lookup.common.models import PersonalRecord
from roll_lookup.common.time_utils import elapsed_ms
from roll_lookup.keys.key_schema import KeySchema
from roll_lookup.store.base import KeyedRecordStore

_LOGGER = logging.getLogger("roll_lookup.ingest")


@dataclass
class IngestReport:
    rows_read: int = 0
    rows_imported: int = 0
    skipped_by_field: Counter = field(default_factory=Counter)

    @property
    def rows_skipped(self) -> int:
        return self.rows_read - self.rows_imported

    def to_dict(self) -> dict:
        return {
            "rows_read": self.rows_read,
            "rows_imported": self.rows_imported,
            "rows_skipped": self.rows_skipped,
            "skipped_by_field": dict(sorted(self.skipped_by_field.items())),
        }


def ingest(
    rows: Iterable[PersonalRecord],
    schema: KeySchema,
    store: KeyedRecordStore,
    logger: logging.Logger | None = None,
    *,
    fresh: bool = False,
) -> IngestReport:
    """Write every keyable row in one transaction.

    Rows that fail normalisation are counted and skipped. Any store failure
    rolls back the whole batch and raises ``IngestFailed``. A ``fresh`` ingest
    replaces everything previously stored.
    """
    logger = logger or _LOGGER
    report = IngestReport()
    started = time.monotonic()
    log_event(logger, "ingest start", stage="ingest", event="INGEST_START", status="ok")

    try:
        with store.transaction(fresh=fresh) as writer:
            for row_number, record in enumerate(rows, start=1):
                report.rows_read += 1
                try:
                    key = schema.build_key(record)
                except NormalizationError as exc:
                    field_name = exc.field or exc.error_code.lower()
                    report.skipped_by_field[field_name] += 1
                    log_event(
                        logger,
                        "row skipped",
                        level=logging.WARNING,
                        stage="ingest",
                        event="ROW_SKIPPED",
                        status="skipped",
                        row_number=row_number,
                        field=field_name,
                        error_code=exc.error_code,
                    )
                    continue
                writer.add_station(record.station)
                writer.add_record(key)
                report.rows_imported += 1
    except StoreError as exc:
        log_event(
            logger,
            "ingest rolled back",
            level=logging.ERROR,
            stage="ingest",
            event="INGEST_FAIL",
            status="error",
            rows_read=report.rows_read,
            error_code=IngestFailed.error_code,
            duration_ms=elapsed_ms(started),
        )
        raise IngestFailed(f"Ingestion rolled back after {report.rows_read} rows: {exc}") from exc

    log_event(
        logger,
        f"ingest complete: {report.rows_read} rows read, {report.rows_imported} rows imported",
        stage="ingest",
        event="INGEST_END",
        status="ok" if report.rows_skipped == 0 else "partial",
        rows_read=report.rows_read,
        rows_imported=report.rows_imported,
        rows_skipped=report.rows_skipped,
        duration_ms=elapsed_ms(started),
    )
    return report
