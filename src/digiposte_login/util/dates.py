from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Union

_NANOS_PER_SECOND = 1_000_000_000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def unix_to_ns(value: Union[str, float, int]) -> int:
    """
    Convert Unix seconds (possibly fractional, possibly a string such as "1712345678.25")
    into integer nanoseconds: whole seconds plus the nanosecond remainder of the fractional part.
    """
    if isinstance(value, str):
        s = value.strip()
        if not s:
            raise ValueError("unix_to_ns: empty string")
        value = float(s)
    f = float(value)
    if math.isnan(f) or math.isinf(f):
        raise ValueError(f"unix_to_ns: not a finite timestamp: {value!r}")
    sec = math.trunc(f)
    nanos = int((f - sec) * _NANOS_PER_SECOND)
    return sec * _NANOS_PER_SECOND + nanos


def ns_to_unix(ns: int) -> float:
    sec, nanos = divmod(int(ns), _NANOS_PER_SECOND)
    return sec + nanos / _NANOS_PER_SECOND


def ns_to_datetime(ns: int) -> datetime:
    # datetime resolution is the microsecond; the sub-microsecond remainder is truncated.
    sec, nanos = divmod(int(ns), _NANOS_PER_SECOND)
    return _EPOCH + timedelta(seconds=sec, microseconds=nanos // 1000)


def unix_to_datetime(value: Union[str, float, int]) -> datetime:
    return ns_to_datetime(unix_to_ns(value))


def datetime_to_unix(dt: datetime) -> float:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _EPOCH
    return delta.days * 86_400 + delta.seconds + delta.microseconds / 1_000_000
