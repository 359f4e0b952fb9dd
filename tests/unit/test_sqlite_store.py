from pathlib import Path

import pytest

from roll_lookup.common.errors import StoreError
from roll_lookup.common.models import CitizenKeyRecord, PollingStation
from roll_lookup.keys.key_schema import FieldSpec, KeySchema
from roll_lookup.store.sqlite import MEMORY, SqliteKeyedRecordStore, open_store


def _schema(policy="reject"):
    return KeySchema(
        fields=(
            FieldSpec(name="citizen_id", source="citizen_id", uppercase=True, required=True),
            FieldSpec(name="day", source="birth_date", date_part="day", required=True),
            FieldSpec(name="year", source="birth_date", date_part="year", required=True),
        ),
        duplicate_policy=policy,
    )


def _record(citizen_id, day, year, station_id="S1"):
    return CitizenKeyRecord(key_fields={"citizen_id": citizen_id, "day": day, "year": year}, station_id=station_id)


def test_create_schema_is_idempotent(tmp_path: Path):
    path = tmp_path / "citizens.db"
    with open_store(path, _schema()) as store:
        store.create_schema()
        store.create_schema()
        assert store.count_records() == 0


def test_create_schema_rejects_different_key_columns(tmp_path: Path):
    path = tmp_path / "citizens.db"
    with open_store(path, _schema()):
        pass
    other = KeySchema(fields=(FieldSpec(name="citizen_id", source="citizen_id"),))
    with pytest.raises(StoreError):
        open_store(path, other)


def test_find_records_with_equality_filters():
    with open_store(MEMORY, _schema()) as store:
        with store.transaction() as writer:
            writer.add_station(PollingStation(station_id="S1", locality="MADRID"))
            writer.add_record(_record("5678Z", "01", "90"))
            writer.add_record(_record("5678Z", "02", "90"))

        assert len(store.find_records({"citizen_id": "5678Z"})) == 2
        assert len(store.find_records({"citizen_id": "5678Z", "year": "90"})) == 2
        assert store.find_records({"citizen_id": "5678Z", "day": "02"}) == [_record("5678Z", "02", "90")]
        assert store.find_records({"citizen_id": "0000X"}) == []


def test_find_records_rejects_unknown_columns():
    with open_store(MEMORY, _schema()) as store:
        with pytest.raises(ValueError):
            store.find_records({"citizen_id": "1", "fn": "MA"})


def test_station_insert_keeps_first_write():
    with open_store(MEMORY, _schema()) as store:
        with store.transaction() as writer:
            writer.add_station(PollingStation(station_id="S1", locality="FIRST"))
            writer.add_station(PollingStation(station_id="S1", locality="SECOND"))
            writer.add_record(_record("5678Z", "01", "90"))

        station = store.station_for(_record("5678Z", "01", "90"))
        assert station == PollingStation(station_id="S1", locality="FIRST")


def test_station_for_unknown_record_is_none():
    with open_store(MEMORY, _schema()) as store:
        assert store.station_for(_record("5678Z", "01", "90")) is None


def test_reject_policy_raises_on_duplicate_and_rolls_back():
    with open_store(MEMORY, _schema("reject")) as store:
        with pytest.raises(StoreError):
            with store.transaction() as writer:
                writer.add_station(PollingStation(station_id="S1"))
                writer.add_record(_record("5678Z", "01", "90"))
                writer.add_record(_record("5678Z", "01", "90", station_id="S1"))
        assert store.count_records() == 0
        assert store.station_for(_record("5678Z", "01", "90")) is None


def test_replace_policy_keeps_last_write():
    with open_store(MEMORY, _schema("replace")) as store:
        with store.transaction() as writer:
            writer.add_station(PollingStation(station_id="S1"))
            writer.add_station(PollingStation(station_id="S2"))
            writer.add_record(_record("5678Z", "01", "90", station_id="S1"))
            writer.add_record(_record("5678Z", "01", "90", station_id="S2"))

        assert store.find_records({"citizen_id": "5678Z"}) == [_record("5678Z", "01", "90", station_id="S2")]


def test_exception_inside_transaction_rolls_back():
    with open_store(MEMORY, _schema()) as store:
        with pytest.raises(RuntimeError):
            with store.transaction() as writer:
                writer.add_station(PollingStation(station_id="S1"))
                writer.add_record(_record("5678Z", "01", "90"))
                raise RuntimeError("boom")
        assert store.count_records() == 0


def test_count_distinct():
    with open_store(MEMORY, _schema()) as store:
        with store.transaction() as writer:
            writer.add_station(PollingStation(station_id="S1"))
            writer.add_record(_record("5678Z", "01", "90"))
            writer.add_record(_record("5678Z", "02", "90"))
            writer.add_record(_record("1111A", "02", "85"))

        assert store.count_records() == 3
        assert store.count_distinct(["citizen_id"]) == 2
        assert store.count_distinct(["citizen_id", "day"]) == 3
        assert store.count_distinct(["citizen_id", "year"]) == 2


def test_store_is_not_created_until_schema_call(tmp_path: Path):
    store = SqliteKeyedRecordStore(tmp_path / "citizens.db", _schema())
    try:
        with pytest.raises(StoreError):
            store.count_records()
    finally:
        store.close()


def test_fresh_transaction_replaces_previous_contents():
    with open_store(MEMORY, _schema()) as store:
        with store.transaction() as writer:
            writer.add_station(PollingStation(station_id="S1", locality="OLD"))
            writer.add_record(_record("5678Z", "01", "90"))
            writer.add_record(_record("1111A", "02", "85"))

        with store.transaction(fresh=True) as writer:
            writer.add_station(PollingStation(station_id="S1", locality="NEW"))
            writer.add_record(_record("5678Z", "01", "90"))

        assert store.count_records() == 1
        assert store.find_records({"citizen_id": "1111A"}) == []
        assert store.station_for(_record("5678Z", "01", "90")).locality == "NEW"


def test_failed_fresh_transaction_keeps_previous_contents():
    with open_store(MEMORY, _schema()) as store:
        with store.transaction() as writer:
            writer.add_station(PollingStation(station_id="S1"))
            writer.add_record(_record("5678Z", "01", "90"))

        with pytest.raises(StoreError):
            with store.transaction(fresh=True) as writer:
                writer.add_station(PollingStation(station_id="S2"))
                writer.add_record(_record("1111A", "02", "85", station_id="S2"))
                writer.add_record(_record("1111A", "02", "85", station_id="S2"))

        assert store.count_records() == 1
        assert store.find_records({"citizen_id": "5678Z"}) == [_record("5678Z", "01", "90")]


def test_fresh_open_replaces_tables_with_other_key_columns(tmp_path: Path):
    path = tmp_path / "citizens.db"
    with open_store(path, _schema()) as store:
        with store.transaction() as writer:
            writer.add_station(PollingStation(station_id="S1"))
            writer.add_record(_record("5678Z", "01", "90"))

    other = KeySchema(fields=(FieldSpec(name="citizen_id", source="citizen_id"),))
    with open_store(path, other, fresh=True) as store:
        with store.transaction(fresh=True) as writer:
            writer.add_station(PollingStation(station_id="S1"))
            writer.add_record(CitizenKeyRecord(key_fields={"citizen_id": "9999B"}, station_id="S1"))
        assert store.find_records({"citizen_id": "9999B"}) == [
            CitizenKeyRecord(key_fields={"citizen_id": "9999B"}, station_id="S1")
        ]
        assert store.count_records() == 1


def test_count_distinct_with_station_reference():
    with open_store(MEMORY, _schema()) as store:
        with store.transaction() as writer:
            writer.add_station(PollingStation(station_id="S1"))
            writer.add_station(PollingStation(station_id="S2"))
            writer.add_record(_record("5678Z", "01", "90", station_id="S1"))
            writer.add_record(_record("5678Z", "02", "90", station_id="S2"))

        assert store.count_distinct(["citizen_id", "station_id"]) == 2
