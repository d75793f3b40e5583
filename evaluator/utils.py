"""Shared utility functions used across evaluator modules."""
from __future__ import annotations

import math
import time
from datetime import UTC, datetime


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def to_float(value: object, default: float = 0.0) -> float:
    """Coerce a JSON value to float, returning *default* when missing or invalid."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


# signed 64-bit, the range of a SQLite INTEGER
_MAX_INT64 = 2**63 - 1


def _in_range(ms: int) -> int | None:
    return ms if -_MAX_INT64 - 1 <= ms <= _MAX_INT64 else None


def parse_timestamp_ms(value: object) -> int | None:
    """Parse an ISO-8601 string or epoch number into epoch milliseconds.

    Numbers are taken as milliseconds. Naive ISO strings are read as UTC.
    Returns None when absent, unparseable or out of range.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _in_range(value)
    if isinstance(value, float):
        return _in_range(int(value)) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        number = float(text)
    except ValueError:
        pass
    else:
        return _in_range(int(number)) if math.isfinite(number) else None
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    try:
        return _in_range(int(dt.timestamp() * 1000))
    except (OverflowError, OSError):
        return None
