"""Indicator projection — one series per precomputed indicator column.

Missing-value policy: a point whose source value is NaN, infinite, null or
non-numeric is omitted. Nothing is interpolated or filled, so a series is a
subset of its bar timeline with gaps where the source had no usable value.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from tradereview.columns import finite_float, to_float
from tradereview.models.indicator import (
    PRICE_PANE,
    IndicatorPoint,
    IndicatorSeries,
    SeriesKind,
)

# Column-name prefixes of indicators drawn on top of the candles.
OVERLAY_PREFIXES = (
    "sma", "ema", "wma", "hma", "dema", "tema", "kama", "vwap", "vwma",
    "bb_", "bbands", "boll", "kc_", "keltner", "donchian", "dc_",
    "supertrend", "psar", "ichimoku", "pivot", "ma_",
)
HISTOGRAM_MARKERS = ("hist",)


@dataclass(frozen=True)
class IndicatorStyle:
    """Presentation overrides for one indicator. ``None`` fields are inferred."""

    display_name: str | None = None
    kind: SeriesKind | None = None
    pane: str | None = None


def infer_style(column: str) -> IndicatorStyle:
    """Guess display name, kind and pane from a column id."""
    folded = column.strip().lower()
    pane = PRICE_PANE if folded.startswith(OVERLAY_PREFIXES) else column
    kind = (
        SeriesKind.HISTOGRAM
        if any(marker in folded for marker in HISTOGRAM_MARKERS)
        else SeriesKind.LINE
    )
    display_name = column.strip().replace("_", " ").upper()
    return IndicatorStyle(display_name=display_name, kind=kind, pane=pane)


def resolve_style(column: str, override: IndicatorStyle | None = None) -> IndicatorStyle:
    inferred = infer_style(column)
    if override is None:
        return inferred
    return IndicatorStyle(
        display_name=override.display_name or inferred.display_name,
        kind=override.kind or inferred.kind,
        pane=override.pane or inferred.pane,
    )


def detect_indicator_columns(
    rows: Sequence[Mapping[str, Any]],
    columns: Iterable[str],
    reserved: Iterable[str],
) -> list[str]:
    """Non-reserved columns holding at least one numeric cell (NaN counts)."""
    skip = {c.strip().lower() for c in reserved}
    found: list[str] = []
    for column in columns:
        if str(column).strip().lower() in skip:
            continue
        if any(to_float(row.get(column)) is not None for row in rows):
            found.append(column)
    return found


@dataclass(frozen=True)
class IndicatorColumn:
    """One indicator's finite points over a bar timeline, sorted by time."""

    id: str
    style: IndicatorStyle
    times: tuple[int, ...]
    values: tuple[float, ...]

    def __len__(self) -> int:
        return len(self.times)

    def to_series(self, start: int | None = None, end: int | None = None) -> IndicatorSeries:
        """Series restricted to ``[start, end]`` inclusive."""
        lo = 0 if start is None else bisect_left(self.times, start)
        hi = len(self.times) if end is None else bisect_right(self.times, end)
        points = tuple(
            IndicatorPoint(time=t, value=v)
            for t, v in zip(self.times[lo:hi], self.values[lo:hi])
        )
        return IndicatorSeries(
            id=self.id,
            display_name=self.style.display_name or self.id,
            kind=self.style.kind or SeriesKind.LINE,
            pane=self.style.pane or self.id,
            points=points,
        )


def project_indicator(
    column: str,
    timeline: Sequence[tuple[int, Mapping[str, Any]]],
    style: IndicatorStyle | None = None,
) -> IndicatorColumn:
    """Build one indicator column from ``(time, row)`` pairs sorted by time."""
    times: list[int] = []
    values: list[float] = []
    for t, row in timeline:
        value = finite_float(row.get(column))
        if value is None:
            continue
        times.append(t)
        values.append(value)
    return IndicatorColumn(
        id=column,
        style=resolve_style(column, style),
        times=tuple(times),
        values=tuple(values),
    )
