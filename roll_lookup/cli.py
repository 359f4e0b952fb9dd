"""CLI entrypoint for the electoral roll lookup."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from roll_lookup.common.config_loader import ConfigBundle, load_all_configs
from roll_lookup.common.constants import (
    COMMANDS,
    EXIT_HARD_FAIL,
    EXIT_NO_MATCH,
    EXIT_PARTIAL,
    EXIT_SUCCESS,
    OPTIONAL_KEY_FIELDS,
)
from roll_lookup.common.errors import NormalizationError, PipelineError
from roll_lookup.common.fs import write_json
from roll_lookup.common.ids import generate_run_id
from roll_lookup.common.logging import build_logger, log_event
from roll_lookup.keys.key_schema import build_schema
from roll_lookup.lookup.resolver import Ambiguous, NotFound, Resolved
from roll_lookup.lookup.service import LookupService
from roll_lookup.pipeline.reader import read_roll_extract
from roll_lookup.pipeline.stats import key_uniqueness, log_key_uniqueness
from roll_lookup.store.sqlite import open_store


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--source", default=None, help="roll extract to ingest")
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--citizen-id", default=None)
    for name in OPTIONAL_KEY_FIELDS:
        parser.add_argument(f"--{name.replace('_', '-')}", dest=name, default=None)
    parser.add_argument("--station-id", default=None)
    return parser.parse_args(argv)


def _db_path(bundle: ConfigBundle, data_dir: Path) -> Path:
    return data_dir / bundle.store["filename"]


def _log_missing_db(logger, db_path: Path, stage: str) -> None:
    log_event(logger, f"no database at {db_path}", stage=stage, status="error", error_code="NOT_READY")


def _run_ingest(args: argparse.Namespace, bundle: ConfigBundle, data_dir: Path, run_id: str, logger) -> int:
    if not args.source:
        log_event(logger, "ingest needs --source", stage="ingest", status="error", error_code="USAGE")
        return EXIT_HARD_FAIL

    schema = build_schema(bundle.key)
    data_dir.mkdir(parents=True, exist_ok=True)
    with open_store(_db_path(bundle, data_dir), schema, fresh=True) as store:
        service = LookupService(schema, store, logger=logger)
        report = service.load(read_roll_extract(Path(args.source), bundle.source))
        uniqueness = key_uniqueness(schema, store)

    log_key_uniqueness(logger, uniqueness)
    write_json(
        data_dir / "run_meta" / f"{run_id}.ingest.json",
        {"run_id": run_id, "counts": report.to_dict(), "key_uniqueness": uniqueness},
    )
    return EXIT_PARTIAL if report.rows_skipped else EXIT_SUCCESS


def _run_lookup(args: argparse.Namespace, bundle: ConfigBundle, data_dir: Path, logger) -> int:
    db_path = _db_path(bundle, data_dir)
    if not db_path.exists():
        _log_missing_db(logger, db_path, "lookup")
        return EXIT_HARD_FAIL

    schema = build_schema(bundle.key)
    partial = {"citizen_id": args.citizen_id, "station_id": args.station_id}
    for name in OPTIONAL_KEY_FIELDS:
        partial[name] = getattr(args, name)

    with open_store(db_path, schema) as store:
        service = LookupService(schema, store, logger=logger)
        service.mark_ready()
        try:
            outcome = service.resolve(partial)
        except NormalizationError as exc:
            log_event(logger, str(exc), stage="lookup", status="rejected", field=exc.field, error_code=exc.error_code)
            return EXIT_HARD_FAIL

    print(json.dumps(outcome.to_payload(), ensure_ascii=False, sort_keys=True))
    if isinstance(outcome, Resolved):
        return EXIT_SUCCESS
    if isinstance(outcome, (NotFound, Ambiguous)):
        return EXIT_NO_MATCH
    return EXIT_HARD_FAIL


def _run_stats(bundle: ConfigBundle, data_dir: Path, logger) -> int:
    db_path = _db_path(bundle, data_dir)
    if not db_path.exists():
        _log_missing_db(logger, db_path, "stats")
        return EXIT_HARD_FAIL
    schema = build_schema(bundle.key)
    with open_store(db_path, schema) as store:
        uniqueness = key_uniqueness(schema, store)
    print(json.dumps(uniqueness, ensure_ascii=False))
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id(args.command)
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    try:
        bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
        if args.command == "ingest":
            return _run_ingest(args, bundle, data_dir, run_id, logger)
        if args.command == "lookup":
            return _run_lookup(args, bundle, data_dir, logger)
        return _run_stats(bundle, data_dir, logger)
    except PipelineError as exc:
        log_event(
            logger,
            f"{args.command} failed: {exc}",
            stage=args.command,
            event="COMMAND_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        return run_command(args)
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
