"""Normalisation and truncation of personal-data fields.

All widths count logical characters. Source rows are decoded from the legacy
single-byte encoding before they reach these helpers, so slicing a ``str`` is
safe for accented names.
"""

from __future__ import annotations

from roll_lookup.common.errors import InvalidPolicy, MalformedDate

KEEP_FIRST_N = "keep-first-n"
KEEP_LAST_N = "keep-last-n"
KEEP_FIRST_N_PLUS_LAST_CHAR = "keep-first-n-plus-last-char"
KEEP_LAST_N_PLUS_LAST_CHAR = "keep-last-n-plus-last-char"
TRUNCATION_POLICIES = (
    KEEP_FIRST_N,
    KEEP_LAST_N,
    KEEP_FIRST_N_PLUS_LAST_CHAR,
    KEEP_LAST_N_PLUS_LAST_CHAR,
)

DATE_PARTS = ("day", "year")


def normalize_case(value: str) -> str:
    return value.strip().upper()


def truncate(value: str, width: int, policy: str) -> str:
    """Shorten ``value`` to ``width`` characters under ``policy``.

    The ``plus-last-char`` policies keep the final character on top of the
    ``width`` selected ones, which preserves the control letter some document
    ids carry. Re-applying a policy to its own output is a no-op.
    """
    if policy not in TRUNCATION_POLICIES:
        raise InvalidPolicy(f"Unknown truncation policy: {policy}")
    if width < 1:
        raise InvalidPolicy(f"Truncation width must be at least 1, got {width}")

    if policy == KEEP_FIRST_N:
        return value if width >= len(value) else value[:width]
    if policy == KEEP_LAST_N:
        return value if width >= len(value) else value[-width:]

    if width >= len(value) - 1:
        return value
    body, last = value[:-1], value[-1]
    if policy == KEEP_FIRST_N_PLUS_LAST_CHAR:
        return body[:width] + last
    return body[-width:] + last


def split_date(value: str, part: str) -> str:
    if part not in DATE_PARTS:
        raise MalformedDate(f"Unknown date part: {part}")
    if len(value) < 2:
        raise MalformedDate(f"Date too short to extract {part}: {len(value)} characters")
    if part == "day":
        return value[:2]
    return value[-2:]


def pad_day(value: str) -> str:
    # Callers often send "1" for the first of the month.
    if len(value) == 1:
        return "0" + value
    return value
