"""Data models shared by ingestion, storage and lookup."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class PollingStation:
    station_id: str
    locality: str = ""
    district: str = ""
    section: str = ""
    table: str = ""
    address: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PersonalRecord:
    """One roll row as read from the extract; never stored as-is."""

    citizen_id: str
    birth_date: str
    given_name: str
    surname_1: str
    surname_2: str
    post_code: str
    station: PollingStation


@dataclass(frozen=True)
class CitizenKeyRecord:
    """Stored key columns (declared order) plus the polling station reference."""

    key_fields: dict[str, str]
    station_id: str

    def to_dict(self) -> dict[str, Any]:
        return {**self.key_fields, "station_id": self.station_id}
