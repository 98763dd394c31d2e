"""
Timestamp normalization for ingested dataset rows.

Upstream systems emit timestamps without zone information. The value as
written is the wall-clock time the clinician saw, so normalization keeps
those wall-clock fields intact no matter which timezone the ingesting
process runs in, and derives a sortable epoch-millisecond key from them.
"""

from __future__ import annotations

import datetime as dt

import pandas as pd

from .exceptions import TimestampParseError


# Reserved row field carrying the normalized instant in epoch milliseconds
SORT_KEY_FIELD = "__dateunix__"

_EPOCH = dt.datetime(1970, 1, 1)
_ONE_MS = dt.timedelta(milliseconds=1)

# pandas resolves these against the current clock
_RELATIVE_KEYWORDS = frozenset({"now", "today", "tomorrow", "yesterday"})


def normalize_timestamp(value: str | dt.date | pd.Timestamp) -> dt.datetime:
    """
    Parse a timestamp into a naive datetime holding its wall-clock value.

    Naive inputs keep their fields unchanged. Inputs with an explicit offset
    are converted to UTC first, then the zone is dropped, so every returned
    value lives on the same naive timeline.

    Args:
        value: Timestamp text (ISO 8601 or anything pandas can parse), or an
            already-parsed date/datetime.

    Returns:
        Naive ``datetime``

    Raises:
        TimestampParseError: empty, unparseable, clock-relative ("now",
            "today") or NaT input

    Examples:
        >>> normalize_timestamp("2024-01-01")
        datetime.datetime(2024, 1, 1, 0, 0)
        >>> normalize_timestamp("2024-01-01T10:30:00+02:00")
        datetime.datetime(2024, 1, 1, 8, 30)
    """
    if isinstance(value, str):
        if not value.strip():
            raise TimestampParseError(value)
        if value.strip().lower() in _RELATIVE_KEYWORDS:
            raise TimestampParseError(value)
        parse_input: object = value.strip()
    elif isinstance(value, (dt.date, pd.Timestamp)):
        parse_input = value
    else:
        raise TimestampParseError(value)

    try:
        ts = pd.Timestamp(parse_input)
    except (ValueError, TypeError, OverflowError) as exc:
        raise TimestampParseError(value) from exc

    if pd.isna(ts):
        raise TimestampParseError(value)

    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)

    return ts.to_pydatetime()


def sort_key(instant: dt.datetime) -> int:
    """Epoch milliseconds of a normalized instant, reading its wall clock as UTC."""
    if instant.tzinfo is not None:
        instant = instant.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return (instant - _EPOCH) // _ONE_MS


__all__ = [
    "SORT_KEY_FIELD",
    "normalize_timestamp",
    "sort_key",
]
