"""Canonical clock — every source timestamp becomes UTC epoch seconds.

Supported encodings:

* integer (or integral float / digit string) epoch **seconds**;
* integer epoch **milliseconds**, detected by magnitude: anything at or above
  ``MILLISECONDS_THRESHOLD`` (1e11, i.e. 1973 in milliseconds but year 5138 in
  seconds) is milliseconds;
* calendar values: ``datetime``, ``date``, ``pandas.Timestamp``,
  ``numpy.datetime64`` and ISO-8601 strings. Naive values are read in the
  declared source timezone.

Fractional seconds floor to the containing second (bar-open convention).

The magnitude rule decides the epoch unit once per dataset, not per row:
``TimestampNormalizer`` resolves the unit from the first numeric value it
sees and rejects later values of the other magnitude.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timezone, tzinfo
from enum import Enum
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import numpy as np
import pandas as pd

from tradereview.errors import InvalidRange, MalformedTimestamp

MILLISECONDS_THRESHOLD = 100_000_000_000

_NUMERIC_RE = re.compile(r"^[+-]?\d+(\.\d+)?$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")


class EpochUnit(Enum):
    SECONDS = "s"
    MILLISECONDS = "ms"


@lru_cache(maxsize=64)
def _zone_by_name(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone '{name}'") from e


def resolve_zone(tz: str | tzinfo | None) -> tzinfo:
    if tz is None:
        return timezone.utc
    if isinstance(tz, tzinfo):
        return tz
    return _zone_by_name(tz)


def detect_epoch_unit(value: float) -> EpochUnit:
    """Magnitude rule for epoch integers."""
    if abs(value) >= MILLISECONDS_THRESHOLD:
        return EpochUnit.MILLISECONDS
    return EpochUnit.SECONDS


def epoch_number(value: Any) -> int | float | None:
    """Return ``value`` as an epoch number, or None if it is not numeric.

    Booleans are not numbers here.
    """
    if isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return float(value)
    if isinstance(value, str) and _NUMERIC_RE.match(value.strip()):
        text = value.strip()
        return float(text) if "." in text else int(text)
    return None


def _from_epoch(number: int | float, unit: EpochUnit) -> int:
    if isinstance(number, float):
        if not math.isfinite(number):
            raise MalformedTimestamp(f"Non-finite epoch value {number!r}")
        seconds = number / 1000 if unit is EpochUnit.MILLISECONDS else number
        return math.floor(seconds)
    if unit is EpochUnit.MILLISECONDS:
        return number // 1000
    return number


def _from_datetime(value: datetime, zone: tzinfo) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return math.floor(value.timestamp())


def _from_calendar(value: Any, zone: tzinfo) -> int:
    if isinstance(value, pd.Timestamp):
        return _from_datetime(value.floor("s").to_pydatetime(), zone)
    if isinstance(value, datetime):
        return _from_datetime(value, zone)
    if isinstance(value, date):
        return _from_datetime(datetime.combine(value, time(0, 0)), zone)
    if isinstance(value, np.datetime64):
        if np.isnat(value):
            raise MalformedTimestamp("Missing timestamp (NaT)")
        return _from_calendar(pd.Timestamp(value), zone)
    if isinstance(value, str):
        try:
            parsed = pd.Timestamp(value.strip())
        except (ValueError, TypeError, OverflowError) as e:
            raise MalformedTimestamp(f"Unparseable timestamp {value!r}") from e
        if parsed is pd.NaT:
            raise MalformedTimestamp(f"Unparseable timestamp {value!r}")
        return _from_calendar(parsed, zone)
    raise MalformedTimestamp(
        f"Unsupported timestamp type {type(value).__name__}: {value!r}"
    )


def normalize_timestamp(
    value: Any,
    tz: str | tzinfo | None = "UTC",
    unit: EpochUnit | None = None,
) -> int:
    """Convert one source timestamp into UTC epoch seconds.

    Args:
        value: Source timestamp of unknown encoding.
        tz: Timezone for naive calendar values (default UTC).
        unit: Epoch unit for numeric values. ``None`` applies the magnitude
            rule to this value alone.

    Raises:
        MalformedTimestamp: The value cannot be read under any supported
            encoding.
    """
    if value is None or value is pd.NaT:
        raise MalformedTimestamp("Missing timestamp")
    number = epoch_number(value)
    if number is not None:
        if isinstance(number, float) and not math.isfinite(number):
            raise MalformedTimestamp(f"Non-finite epoch value {value!r}")
        return _from_epoch(number, unit or detect_epoch_unit(number))
    return _from_calendar(value, resolve_zone(tz))


class TimestampNormalizer:
    """Canonical clock bound to one dataset.

    The epoch unit is either pinned by the caller or resolved from the first
    numeric timestamp; a later numeric value whose magnitude points at the
    other unit is rejected rather than silently re-interpreted.
    """

    def __init__(
        self,
        tz: str | tzinfo | None = "UTC",
        unit: EpochUnit | None = None,
    ) -> None:
        self.zone = resolve_zone(tz)
        self.pinned = unit is not None
        self.unit = unit

    def __call__(self, value: Any) -> int:
        number = epoch_number(value)
        if number is None or self.pinned:
            return normalize_timestamp(value, self.zone, self.unit)
        if isinstance(number, float) and not math.isfinite(number):
            raise MalformedTimestamp(f"Non-finite epoch value {value!r}")
        detected = detect_epoch_unit(number)
        if self.unit is None:
            self.unit = detected
        elif detected is not self.unit:
            raise MalformedTimestamp(
                f"Epoch value {value!r} looks like {detected.name.lower()} but "
                f"this dataset uses {self.unit.name.lower()}"
            )
        return _from_epoch(number, self.unit)


# ---- Range bounds ----

def parse_range_bound(
    value: Any,
    end: bool = False,
    tz: str | tzinfo | None = "UTC",
) -> int | None:
    """Parse an inclusive query bound into epoch seconds.

    ``None`` is unbounded. A ``YYYY-MM-DD`` date covers the whole day: a start
    bound maps to its first second, an end bound to 23:59:59.

    Raises:
        InvalidRange: The bound is not an epoch value, a date or an ISO
            datetime.
    """
    if value is None:
        return None

    zone = resolve_zone(tz)
    day: date | None = None
    if isinstance(value, date) and not isinstance(value, datetime):
        day = value
    elif isinstance(value, str) and _DATE_RE.match(value.strip()):
        try:
            day = datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError as e:
            raise InvalidRange(f"Invalid date '{value}'. Expected YYYY-MM-DD.") from e

    if day is not None:
        moment = time(23, 59, 59) if end else time(0, 0, 0)
        return _from_datetime(datetime.combine(day, moment), zone)

    if isinstance(value, str) and not (
        _NUMERIC_RE.match(value.strip()) or _ISO_DATETIME_RE.match(value.strip())
    ):
        raise InvalidRange(f"Invalid date '{value}'. Expected YYYY-MM-DD.")

    try:
        return normalize_timestamp(value, zone)
    except MalformedTimestamp as e:
        raise InvalidRange(f"Invalid date '{value}'. Expected YYYY-MM-DD.") from e


def parse_range(
    start: Any,
    end: Any,
    tz: str | tzinfo | None = "UTC",
) -> tuple[int | None, int | None]:
    return parse_range_bound(start, tz=tz), parse_range_bound(end, end=True, tz=tz)
