"""
Date/time normalization for values coming off the backend.

Subscription end dates reach the dashboard in several shapes depending on
which backend (or which legacy export) produced them:

    • a native ``datetime`` / ``date``
    • an object with a zero-argument "to instant" method (``to_datetime()``,
      ``toDate()``, ...)
    • an object or mapping with epoch seconds (``seconds`` or ``_seconds``),
      possibly as a numeric string
    • an SQL DATETIME string ``"2024-01-15 10:30:00"``
    • anything else the generic parser understands (ISO 8601, RFC 2822,
      epoch milliseconds)

``normalize_instant`` folds all of them into one timezone-aware ``datetime``
and reports failures as a ``ParseError`` value instead of raising, so callers
can fail closed.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional, Union

SECONDS_FIELDS = ("seconds", "_seconds")
TO_INSTANT_METHODS = ("to_pydatetime", "to_datetime", "toDate")


@dataclass(frozen=True)
class Ok:
    value: datetime


@dataclass(frozen=True)
class ParseError:
    reason: str


ParsedInstant = Union[Ok, ParseError]


def _aware(dt: datetime) -> datetime:
    # zone-less values are wall-clock times on this machine
    if dt.tzinfo is None:
        return dt.astimezone()
    return dt


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _seconds_field(value: Any):
    if isinstance(value, dict):
        for name in SECONDS_FIELDS:
            if name in value:
                return name, value[name]
        return None
    for name in SECONDS_FIELDS:
        if hasattr(value, name):
            return name, getattr(value, name)
    return None


def _to_instant_method(value: Any):
    if isinstance(value, (str, bytes, dict)):
        return None
    for name in TO_INSTANT_METHODS:
        method = getattr(value, name, None)
        if callable(method):
            return method
    return None


def _from_epoch_seconds(seconds: Any) -> ParsedInstant:
    if isinstance(seconds, str):
        try:
            seconds = float(seconds.strip())
        except ValueError:
            return ParseError(f"epoch seconds is not a number: {seconds!r}")
    if not _is_number(seconds) or not math.isfinite(seconds):
        return ParseError(f"epoch seconds is not a number: {seconds!r}")
    try:
        return Ok(datetime.fromtimestamp(seconds, tz=timezone.utc))
    except (OverflowError, OSError, ValueError) as exc:
        return ParseError(f"epoch seconds out of range: {exc}")


def _parse_string(text: str) -> ParsedInstant:
    text = text.strip()
    if not text:
        return ParseError("empty date string")
    try:
        return Ok(_aware(datetime.fromisoformat(text)))
    except ValueError:
        pass
    try:
        return Ok(_aware(parsedate_to_datetime(text)))
    except (TypeError, ValueError, IndexError):
        pass
    return ParseError(f"unparseable date string: {text!r}")


def normalize_instant(value: Any) -> ParsedInstant:
    """
    Normalize a heterogeneous date value into an aware ``datetime``.

    Priority order:
        1. datetime / date used as-is
        2. zero-argument "to instant" method, invoked
        3. epoch seconds field (``seconds`` / ``_seconds``) * 1000 ms
        4. SQL string (space, no ``T``) rewritten to ISO before parsing
        5. generic parsing (strings, epoch milliseconds)
    """
    if value is None:
        return ParseError("missing date")

    if isinstance(value, datetime):
        return Ok(_aware(value))
    if isinstance(value, date):
        return Ok(_aware(datetime.combine(value, time.min)))

    method = _to_instant_method(value)
    if method is not None:
        try:
            result = method()
        except Exception as exc:
            return ParseError(f"to-instant call failed: {exc}")
        if isinstance(result, datetime):
            return Ok(_aware(result))
        return ParseError(f"to-instant returned {type(result).__name__}")

    field = _seconds_field(value)
    if field is not None:
        return _from_epoch_seconds(field[1])

    if isinstance(value, str):
        text = value.strip()
        if " " in text and "T" not in text:
            parsed = _parse_string(text.replace(" ", "T", 1))
            if isinstance(parsed, Ok):
                return parsed
        return _parse_string(text)

    if _is_number(value):
        if not math.isfinite(value):
            return ParseError(f"not a finite timestamp: {value!r}")
        return _from_epoch_seconds(value / 1000.0)

    return ParseError(f"unsupported date value: {type(value).__name__}")


def parse_optional_instant(value: Any) -> Optional[datetime]:
    """Lenient variant for informational fields such as ``created_at``."""
    parsed = normalize_instant(value)
    if isinstance(parsed, Ok):
        return parsed.value
    return None
