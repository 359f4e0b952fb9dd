"""Keyed record store contract shared by ingestion and lookup."""

from __future__ import annotations

from typing import ContextManager, Mapping, Protocol, Sequence

from roll_lookup.common.models import CitizenKeyRecord, PollingStation


class BatchWriter(Protocol):
    def add_station(self, station: PollingStation) -> None:
        """Insert the station unless its id is already stored."""

    def add_record(self, record: CitizenKeyRecord) -> None:
        """Insert the record under the store's duplicate-key policy."""


class KeyedRecordStore(Protocol):
    def create_schema(self) -> None: ...

    def transaction(self, *, fresh: bool = False) -> ContextManager[BatchWriter]:
        """Batch writer committed on clean exit and rolled back on any exception.

        A ``fresh`` batch starts from empty tables.
        """

    def find_records(self, filters: Mapping[str, str]) -> list[CitizenKeyRecord]:
        """Records equal to every filter value, in no particular order."""

    def station_for(self, record: CitizenKeyRecord) -> PollingStation | None: ...

    def count_records(self) -> int: ...

    def count_distinct(self, columns: Sequence[str]) -> int: ...

    def close(self) -> None: ...
