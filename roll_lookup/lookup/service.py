"""Lookup service: schema, store and readiness gate passed as one context."""

from __future__ import annotations

import logging
import threading
import time
from typing import Iterable, Mapping

from roll_lookup.common.logging import log_event
from roll_lookup.common.models import PersonalRecord
from roll_lookup.common.time_utils import elapsed_ms
from roll_lookup.keys.key_schema import KeySchema
from roll_lookup.lookup.resolver import NotReady, Outcome, StoreFailed, resolve
from roll_lookup.pipeline.ingest import IngestReport, ingest
from roll_lookup.store.base import KeyedRecordStore

_LOGGER = logging.getLogger("roll_lookup.service")


class ReadinessGate:
    """Closed until the store has been loaded; never closes again."""

    def __init__(self) -> None:
        self._ready = False
        self._lock = threading.Lock()

    def open(self) -> None:
        with self._lock:
            self._ready = True

    def is_ready(self) -> bool:
        with self._lock:
            return self._ready


class LookupService:
    def __init__(
        self,
        schema: KeySchema,
        store: KeyedRecordStore,
        *,
        logger: logging.Logger | None = None,
        gate: ReadinessGate | None = None,
    ) -> None:
        self.schema = schema
        self.store = store
        self.logger = logger or _LOGGER
        self.gate = gate or ReadinessGate()

    def load(self, rows: Iterable[PersonalRecord]) -> IngestReport:
        """Replace the store contents with ``rows`` and open the gate.

        A failed ingest keeps the previous contents and leaves the gate closed.
        """
        report = ingest(rows, self.schema, self.store, logger=self.logger, fresh=True)
        self.mark_ready()
        return report

    def mark_ready(self) -> None:
        self.gate.open()
        log_event(self.logger, "store ready", stage="lookup", event="READY", status="ok")

    def is_ready(self) -> bool:
        return self.gate.is_ready()

    def resolve(self, partial_key: Mapping[str, str | None]) -> Outcome:
        if not self.gate.is_ready():
            return NotReady()

        started = time.monotonic()
        outcome = resolve(partial_key, self.schema, self.store)
        if isinstance(outcome, StoreFailed):
            log_event(
                self.logger,
                f"lookup failed: {outcome.cause}",
                level=logging.ERROR,
                stage="lookup",
                event="LOOKUP",
                status=outcome.status,
                error_code=outcome.cause.error_code,
                duration_ms=elapsed_ms(started),
            )
        else:
            log_event(
                self.logger,
                "lookup",
                stage="lookup",
                event="LOOKUP",
                status=outcome.status,
                duration_ms=elapsed_ms(started),
            )
        return outcome
