"""Duration parsing for TTL options.

Accepts seconds as a number, a ``datetime.timedelta``, or a string such as
``"30d"``, ``"1.5h"``, ``"90 min"`` or ``"500ms"``. A bare numeric string is
read as seconds.
"""

from __future__ import annotations

import re
import typing as t
from datetime import timedelta

from ..core.errors import ConfigurationError

Duration = t.Union[int, float, str, timedelta]

_UNITS: t.Dict[str, float] = {
    "ms": 0.001,
    "msec": 0.001,
    "msecs": 0.001,
    "millisecond": 0.001,
    "milliseconds": 0.001,
    "s": 1.0,
    "sec": 1.0,
    "secs": 1.0,
    "second": 1.0,
    "seconds": 1.0,
    "m": 60.0,
    "min": 60.0,
    "mins": 60.0,
    "minute": 60.0,
    "minutes": 60.0,
    "h": 3600.0,
    "hr": 3600.0,
    "hrs": 3600.0,
    "hour": 3600.0,
    "hours": 3600.0,
    "d": 86400.0,
    "day": 86400.0,
    "days": 86400.0,
    "w": 604800.0,
    "week": 604800.0,
    "weeks": 604800.0,
    "y": 31557600.0,  # 365.25 days
    "yr": 31557600.0,
    "yrs": 31557600.0,
    "year": 31557600.0,
    "years": 31557600.0,
}

_PATTERN = re.compile(r"^\s*(-?(?:\d+(?:\.\d*)?|\.\d+))\s*([a-z]*)\s*$", re.IGNORECASE)


def parse_duration(value: Duration) -> float:
    """Return ``value`` as a number of seconds."""
    if isinstance(value, bool):
        raise ConfigurationError(f"invalid duration: {value!r}")
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _PATTERN.match(value)
        if match is None:
            raise ConfigurationError(f"invalid duration: {value!r}")
        amount, unit = match.groups()
        unit = unit.lower() or "s"
        if unit not in _UNITS:
            raise ConfigurationError(f"unknown duration unit {unit!r} in {value!r}")
        return float(amount) * _UNITS[unit]
    raise ConfigurationError(f"invalid duration type: {type(value).__name__}")
