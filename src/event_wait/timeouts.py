"""Timeout unit handling and validation."""

from __future__ import annotations

from enum import Enum
import math
from typing import Any

from .exceptions import InvalidTimeout, NonPositiveTimeout


class TimeUnit(str, Enum):
    """Units a timeout value can be expressed in."""

    MILLISECONDS = "ms"
    SECONDS = "s"
    MINUTES = "m"
    HOURS = "h"
    DAYS = "d"

    @classmethod
    def _missing_(cls, value: object) -> TimeUnit | None:
        if isinstance(value, str):
            return _LONG_NAMES.get(value.strip().lower())
        return None

    @property
    def milliseconds(self) -> int:
        return _MULTIPLIERS[self]


_MULTIPLIERS: dict[TimeUnit, int] = {
    TimeUnit.MILLISECONDS: 1,
    TimeUnit.SECONDS: 1000,
    TimeUnit.MINUTES: 60_000,
    TimeUnit.HOURS: 3_600_000,
    TimeUnit.DAYS: 86_400_000,
}

_LONG_NAMES: dict[str, TimeUnit] = {
    "ms": TimeUnit.MILLISECONDS,
    "millisecond": TimeUnit.MILLISECONDS,
    "milliseconds": TimeUnit.MILLISECONDS,
    "s": TimeUnit.SECONDS,
    "second": TimeUnit.SECONDS,
    "seconds": TimeUnit.SECONDS,
    "m": TimeUnit.MINUTES,
    "minute": TimeUnit.MINUTES,
    "minutes": TimeUnit.MINUTES,
    "h": TimeUnit.HOURS,
    "hour": TimeUnit.HOURS,
    "hours": TimeUnit.HOURS,
    "d": TimeUnit.DAYS,
    "day": TimeUnit.DAYS,
    "days": TimeUnit.DAYS,
}


def _as_number(value: Any) -> int | float:
    if isinstance(value, bool) or value is None:
        raise InvalidTimeout(f"Timeout {value!r} is not a number.")
    if isinstance(value, (int, float)):
        number: int | float = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                raise InvalidTimeout(f"Timeout {value!r} is not a number.") from None
    else:
        raise InvalidTimeout(f"Timeout {value!r} is not a number.")
    if isinstance(number, float) and not math.isfinite(number):
        raise InvalidTimeout(f"Timeout {value!r} is not a finite number.")
    return number


def normalize_timeout(value: Any, unit: TimeUnit | str = TimeUnit.MILLISECONDS) -> int | float:
    """Convert ``value`` expressed in ``unit`` into milliseconds.

    Raises ``InvalidTimeout`` when the value is not a number (or the unit is
    unknown) and ``NonPositiveTimeout`` when the result is zero or less.
    Whole results are returned as ``int``.
    """
    try:
        time_unit = TimeUnit(unit)
    except ValueError:
        raise InvalidTimeout(f"Unknown timeout unit {unit!r}.") from None

    milliseconds = _as_number(value) * time_unit.milliseconds
    try:
        finite = math.isfinite(milliseconds)
    except OverflowError:
        finite = False
    if not finite:
        raise InvalidTimeout(
            f"Timeout {value!r} {time_unit.value} does not fit in milliseconds."
        )
    if milliseconds <= 0:
        raise NonPositiveTimeout(f"Timeout must be positive, got {milliseconds}ms.")
    if isinstance(milliseconds, float) and milliseconds.is_integer():
        return int(milliseconds)
    return milliseconds
