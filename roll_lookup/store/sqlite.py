"""SQLite implementation of the keyed record store."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import astuple
from functools import lru_cache
from pathlib import Path
from types import TracebackType
from typing import Iterator, Mapping, Sequence

from roll_lookup.common.constants import STATION_REF_COLUMN
from roll_lookup.common.errors import StoreError
from roll_lookup.common.models import CitizenKeyRecord, PollingStation
from roll_lookup.keys.key_schema import KeySchema

CITIZENS_TABLE = "citizens"
STATIONS_TABLE = "polling_stations"
STATION_COLUMNS = ("id", "locality", "district", "section", "table_no", "address")

MEMORY = ":memory:"


def _quote(identifier: str) -> str:
    return f'"{identifier}"'


@lru_cache(maxsize=None)
def _select_sql(columns: tuple[str, ...], filter_columns: tuple[str, ...]) -> str:
    select_list = ", ".join(_quote(column) for column in (*columns, STATION_REF_COLUMN))
    sql = f"SELECT {select_list} FROM {CITIZENS_TABLE}"
    if filter_columns:
        sql += " WHERE " + " AND ".join(f"{_quote(column)} = ?" for column in filter_columns)
    return sql


@lru_cache(maxsize=None)
def _station_join_sql(columns: tuple[str, ...]) -> str:
    select_list = ", ".join(f"p.{_quote(column)}" for column in STATION_COLUMNS)
    where = " AND ".join(f"c.{_quote(column)} = ?" for column in columns)
    return (
        f"SELECT {select_list} FROM {CITIZENS_TABLE} c "
        f"JOIN {STATIONS_TABLE} p ON c.{_quote(STATION_REF_COLUMN)} = p.id "
        f"WHERE {where}"
    )


class SqliteBatchWriter:
    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        insert_record_sql: str,
        insert_station_sql: str,
        columns: tuple[str, ...],
    ) -> None:
        self.conn = conn
        self.insert_record_sql = insert_record_sql
        self.insert_station_sql = insert_station_sql
        self.columns = columns

    def add_station(self, station: PollingStation) -> None:
        try:
            self.conn.execute(self.insert_station_sql, astuple(station))
        except sqlite3.Error as exc:
            raise StoreError(f"Error inserting polling station: {exc}") from exc

    def add_record(self, record: CitizenKeyRecord) -> None:
        params = [record.key_fields[column] for column in self.columns]
        params.append(record.station_id)
        try:
            self.conn.execute(self.insert_record_sql, params)
        except sqlite3.Error as exc:
            raise StoreError(f"Error inserting citizen: {exc}") from exc


class SqliteKeyedRecordStore:
    """Citizens and polling stations in one SQLite database.

    A single connection is shared between threads; access is serialised with
    a lock. Column names only ever come from the key schema, never from
    callers, so the generated SQL is parameterised on values alone.
    """

    def __init__(self, path: Path | str, schema: KeySchema) -> None:
        self.path = str(path)
        self.schema = schema
        self.columns = schema.columns
        self.lock = threading.Lock()
        try:
            self.conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
            self.conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as exc:
            raise StoreError(f"Error opening database {self.path}: {exc}") from exc

        verb = "INSERT OR REPLACE" if schema.duplicate_policy == "replace" else "INSERT"
        record_columns = (*self.columns, STATION_REF_COLUMN)
        self.insert_record_sql = (
            f"{verb} INTO {CITIZENS_TABLE} ({', '.join(_quote(c) for c in record_columns)}) "
            f"VALUES ({', '.join('?' for _ in record_columns)})"
        )
        self.insert_station_sql = (
            f"INSERT OR IGNORE INTO {STATIONS_TABLE} ({', '.join(_quote(c) for c in STATION_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in STATION_COLUMNS)})"
        )

    def __enter__(self) -> "SqliteKeyedRecordStore":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        with self.lock:
            self.conn.close()

    def _existing_columns(self) -> list[str]:
        rows = self.conn.execute(f"PRAGMA table_info({CITIZENS_TABLE})").fetchall()
        return [row[1] for row in rows]

    def _create_statements(self) -> tuple[str, str]:
        column_defs = ",\n".join(f"    {_quote(column)} TEXT NOT NULL" for column in self.columns)
        primary_key = ", ".join(_quote(column) for column in self.columns)
        create_stations = (
            f"CREATE TABLE IF NOT EXISTS {STATIONS_TABLE} (\n"
            "    id TEXT PRIMARY KEY,\n"
            "    locality TEXT,\n"
            "    district TEXT,\n"
            "    section TEXT,\n"
            "    table_no TEXT,\n"
            "    address TEXT\n"
            ")"
        )
        create_citizens = (
            f"CREATE TABLE IF NOT EXISTS {CITIZENS_TABLE} (\n"
            f"{column_defs},\n"
            f"    {_quote(STATION_REF_COLUMN)} TEXT NOT NULL,\n"
            f"    PRIMARY KEY ({primary_key}),\n"
            f"    FOREIGN KEY ({_quote(STATION_REF_COLUMN)}) REFERENCES {STATIONS_TABLE} (id)\n"
            ")"
        )
        return create_stations, create_citizens

    def create_schema(self) -> None:
        with self.lock:
            try:
                for statement in self._create_statements():
                    self.conn.execute(statement)
                existing = self._existing_columns()
            except sqlite3.Error as exc:
                raise StoreError(f"Error creating tables: {exc}") from exc

        expected = [*self.columns, STATION_REF_COLUMN]
        if existing != expected:
            raise StoreError(
                f"Existing {CITIZENS_TABLE} table has columns {existing}, key schema expects {expected}"
            )

    def _recreate_tables(self) -> None:
        # Citizens reference stations, so they go first.
        self.conn.execute(f"DROP TABLE IF EXISTS {CITIZENS_TABLE}")
        self.conn.execute(f"DROP TABLE IF EXISTS {STATIONS_TABLE}")
        for statement in self._create_statements():
            self.conn.execute(statement)

    @contextmanager
    def transaction(self, *, fresh: bool = False) -> Iterator[SqliteBatchWriter]:
        """Atomic batch. With ``fresh`` both tables are dropped and recreated
        inside the same transaction, so a rolled back batch keeps the old data.
        """
        with self.lock:
            try:
                self.conn.execute("BEGIN")
            except sqlite3.Error as exc:
                raise StoreError(f"Error starting transaction: {exc}") from exc
            if fresh:
                try:
                    self._recreate_tables()
                except sqlite3.Error as exc:
                    self.conn.execute("ROLLBACK")
                    raise StoreError(f"Error recreating tables: {exc}") from exc
            try:
                yield SqliteBatchWriter(
                    self.conn,
                    insert_record_sql=self.insert_record_sql,
                    insert_station_sql=self.insert_station_sql,
                    columns=self.columns,
                )
            except BaseException:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise
            try:
                self.conn.execute("COMMIT")
            except sqlite3.Error as exc:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise StoreError(f"Error committing transaction: {exc}") from exc

    def _row_to_record(self, row: Sequence[str]) -> CitizenKeyRecord:
        return CitizenKeyRecord(key_fields=dict(zip(self.columns, row[:-1])), station_id=row[-1])

    def find_records(self, filters: Mapping[str, str]) -> list[CitizenKeyRecord]:
        allowed = (*self.columns, STATION_REF_COLUMN)
        unknown = set(filters) - set(allowed)
        if unknown:
            raise ValueError(f"Unknown filter columns: {', '.join(sorted(unknown))}")
        filter_columns = tuple(column for column in allowed if column in filters)
        sql = _select_sql(self.columns, filter_columns)
        with self.lock:
            try:
                rows = self.conn.execute(sql, [filters[column] for column in filter_columns]).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(f"Error querying citizens: {exc}") from exc
        return [self._row_to_record(row) for row in rows]

    def station_for(self, record: CitizenKeyRecord) -> PollingStation | None:
        sql = _station_join_sql(self.columns)
        with self.lock:
            try:
                row = self.conn.execute(sql, [record.key_fields[column] for column in self.columns]).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(f"Error querying polling station: {exc}") from exc
        if row is None:
            return None
        return PollingStation(*row)

    def count_records(self) -> int:
        with self.lock:
            try:
                (count,) = self.conn.execute(f"SELECT COUNT(*) FROM {CITIZENS_TABLE}").fetchone()
            except sqlite3.Error as exc:
                raise StoreError(f"Error counting citizens: {exc}") from exc
        return int(count)

    def count_distinct(self, columns: Sequence[str]) -> int:
        unknown = set(columns) - {*self.columns, STATION_REF_COLUMN}
        if unknown or not columns:
            raise ValueError(f"Cannot count distinct values over {list(columns)}")
        select_list = ", ".join(_quote(column) for column in columns)
        sql = f"SELECT COUNT(*) FROM (SELECT DISTINCT {select_list} FROM {CITIZENS_TABLE})"
        with self.lock:
            try:
                (count,) = self.conn.execute(sql).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(f"Error counting distinct keys: {exc}") from exc
        return int(count)


def open_store(path: Path | str, schema: KeySchema, *, fresh: bool = False) -> SqliteKeyedRecordStore:
    """Open the store and create its tables.

    With ``fresh`` the existing tables are left alone: whatever they hold is
    replaced by the next ``transaction(fresh=True)``.
    """
    store = SqliteKeyedRecordStore(path, schema)
    if fresh:
        return store
    try:
        store.create_schema()
    except StoreError:
        store.close()
        raise
    return store
