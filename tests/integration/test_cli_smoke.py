import json
import os
from pathlib import Path

import pytest

from roll_lookup.cli import parse_args, run_command
from roll_lookup.common.constants import EXIT_HARD_FAIL, EXIT_NO_MATCH, EXIT_PARTIAL, EXIT_SUCCESS


def _line(**cells) -> str:
    row = [""] * 29
    for index, value in cells.items():
        row[int(index[1:])] = value
    return ";".join(row)


def _write_extract(path: Path) -> None:
    lines = [
        "MUN;X;LOCALIDAD;DIST;SECC;MESA;COLELE",
        _line(c2="MADRID", c3="01", c4="001", c5="A", c6="CEIP SOL", c9="CALLE", c10="SOL", c11="1",
              c13="ANA", c14="RUIZ", c15="DIAZ", c25="010190", c27="12345678Z", c28="28001"),
        _line(c2="MADRID", c3="02", c4="004", c5="U", c6="IES LUNA", c9="PLAZA", c10="LUNA", c11="3",
              c13="ANA", c14="RUIZ", c15="DIAZ", c25="020291", c27="12345678Z", c28="28002"),
        _line(c2="GETAFE", c3="01", c4="002", c5="B", c6="CEIP SOL", c9="CALLE", c10="SOL", c11="1",
              c13="LUIS", c14="GIL", c15="", c25="", c27="87654321X", c28="28901"),
    ]
    path.write_bytes("\n".join(lines).encode("latin-1"))


def _overlay(tmp_path: Path) -> Path:
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "lookup.yml").write_text(
        """key:
  document:
    chars: 4
    add_letter: true
""",
        encoding="utf-8",
    )
    return overlay


def _args(tmp_path: Path, *extra: str):
    return parse_args(
        [
            *extra,
            "--config-dir",
            "config",
            "--overlay-config-dir",
            str(tmp_path / "overlay"),
            "--data-dir",
            str(tmp_path / "data"),
            "--run-id",
            "run-test",
        ]
    )


@pytest.mark.integration
def test_cli_ingest_then_lookup(tmp_path: Path, capsys, monkeypatch):
    for name in list(os.environ):
        if name.startswith("ROLL_"):
            monkeypatch.delenv(name)
    extract = tmp_path / "roll.csv"
    _write_extract(extract)
    _overlay(tmp_path)

    assert run_command(_args(tmp_path, "ingest", "--source", str(extract))) == EXIT_PARTIAL
    report = json.loads((tmp_path / "data" / "run_meta" / "run-test.ingest.json").read_text(encoding="utf-8"))
    assert report["counts"]["rows_read"] == 3
    assert report["counts"]["rows_imported"] == 2
    assert (tmp_path / "data" / "citizens.db").exists()
    capsys.readouterr()

    assert run_command(_args(tmp_path, "lookup", "--citizen-id", "5678Z")) == EXIT_NO_MATCH
    payload = json.loads(capsys.readouterr().out)
    assert payload == {"status": "ambiguous", "differing_fields": ["day", "year"]}

    assert run_command(_args(tmp_path, "lookup", "--citizen-id", "12345678z", "--day", "2", "--year", "1991")) == EXIT_SUCCESS
    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "resolved"
    assert payload["station"] == {
        "station_id": "IES LUNA",
        "locality": "MADRID",
        "district": "02",
        "section": "004",
        "table": "U",
        "address": "PLAZA LUNA 3",
    }

    assert run_command(_args(tmp_path, "lookup", "--citizen-id", "4321X")) == EXIT_NO_MATCH
    assert json.loads(capsys.readouterr().out) == {"status": "not_found"}

    assert run_command(_args(tmp_path, "stats")) == EXIT_SUCCESS
    stats = json.loads(capsys.readouterr().out)
    assert stats[0] == {"fields": "citizen_id+day", "distinct": 2, "percent": 100.0}


@pytest.mark.integration
def test_cli_lookup_without_database_fails(tmp_path: Path):
    _overlay(tmp_path)
    assert run_command(_args(tmp_path, "lookup", "--citizen-id", "5678Z")) == EXIT_HARD_FAIL


@pytest.mark.integration
def test_cli_ingest_requires_source(tmp_path: Path):
    _overlay(tmp_path)
    assert run_command(_args(tmp_path, "ingest")) == EXIT_HARD_FAIL


@pytest.mark.integration
def test_cli_ingest_twice_starts_from_empty_store(tmp_path: Path, capsys, monkeypatch):
    for name in list(os.environ):
        if name.startswith("ROLL_"):
            monkeypatch.delenv(name)
    extract = tmp_path / "roll.csv"
    _write_extract(extract)
    _overlay(tmp_path)
    report_path = tmp_path / "data" / "run_meta" / "run-test.ingest.json"

    assert run_command(_args(tmp_path, "ingest", "--source", str(extract))) == EXIT_PARTIAL
    first = json.loads(report_path.read_text(encoding="utf-8"))["counts"]
    assert run_command(_args(tmp_path, "ingest", "--source", str(extract))) == EXIT_PARTIAL
    second = json.loads(report_path.read_text(encoding="utf-8"))["counts"]
    assert second == first
    capsys.readouterr()

    # Drop the second citizen from the extract and ingest again.
    lines = extract.read_bytes().decode("latin-1").split("\n")
    extract.write_bytes("\n".join(lines[:2] + lines[3:]).encode("latin-1"))
    assert run_command(_args(tmp_path, "ingest", "--source", str(extract))) == EXIT_PARTIAL
    capsys.readouterr()

    assert run_command(_args(tmp_path, "lookup", "--citizen-id", "5678Z", "--day", "02")) == EXIT_NO_MATCH
    assert json.loads(capsys.readouterr().out) == {"status": "not_found"}
    assert run_command(_args(tmp_path, "lookup", "--citizen-id", "5678Z")) == EXIT_SUCCESS
    assert json.loads(capsys.readouterr().out)["station"]["station_id"] == "CEIP SOL"
