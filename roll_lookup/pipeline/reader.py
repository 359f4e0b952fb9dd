"""Read the semicolon-delimited roll extract into personal records."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterator

from roll_lookup.common.errors import ConfigError, SourceError
from roll_lookup.common.models import PersonalRecord, PollingStation


def _cell(row: list[str], index: int) -> str:
    if index < len(row):
        return row[index]
    return ""


def row_to_record(row: list[str], columns: dict) -> PersonalRecord:
    address = " ".join(_cell(row, index) for index in columns["address"]).strip()
    station = PollingStation(
        station_id=_cell(row, columns["station_id"]),
        locality=_cell(row, columns["locality"]),
        district=_cell(row, columns["district"]),
        section=_cell(row, columns["section"]),
        table=_cell(row, columns["table"]),
        address=address,
    )
    return PersonalRecord(
        citizen_id=_cell(row, columns["citizen_id"]),
        birth_date=_cell(row, columns["birth_date"]),
        given_name=_cell(row, columns["given_name"]),
        surname_1=_cell(row, columns["surname_1"]),
        surname_2=_cell(row, columns["surname_2"]),
        post_code=_cell(row, columns["post_code"]),
        station=station,
    )


def read_roll_extract(path: Path, source_config: dict) -> Iterator[PersonalRecord]:
    """Yield one record per data row; short rows leave missing cells empty."""
    if not path.exists():
        raise SourceError(f"Missing roll extract: {path}")
    try:
        f = path.open("r", encoding=source_config["encoding"], newline="")
    except LookupError as exc:
        raise ConfigError(f"Unknown source encoding: {source_config['encoding']}") from exc

    with f:
        reader = csv.reader(f, delimiter=source_config["delimiter"])
        try:
            if source_config["skip_header"]:
                next(reader, None)
            for row in reader:
                if not row:
                    continue
                yield row_to_record(row, source_config["columns"])
        except (csv.Error, UnicodeDecodeError) as exc:
            raise SourceError(f"Error reading {path} at line {reader.line_num}: {exc}") from exc
