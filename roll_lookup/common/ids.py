"""Run identifier helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def generate_run_id(command: str = "run") -> str:
    """``<command>-<UTC timestamp>``, so run_meta files sort by time within a command."""
    now = datetime.now(tz=timezone.utc)
    return f"{command}-{now:%Y%m%dT%H%M%S%fZ}"
