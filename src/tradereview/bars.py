"""Bar table ingestion — canonical, sorted OHLCV timelines per instrument.

One pass over the raw rows normalizes every timestamp and validates OHLCV;
the indicator columns are then projected from the same de-duplicated rows.
"""

from __future__ import annotations

import logging
import math
import statistics
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any, Iterable, Mapping, Sequence

from tradereview.clock import EpochUnit, TimestampNormalizer
from tradereview.columns import (
    ColumnMapping,
    ResolvedColumns,
    column_names,
    finite_float,
    is_missing,
    to_float,
)
from tradereview.errors import MalformedBar, MalformedTimestamp
from tradereview.indicators import (
    IndicatorColumn,
    IndicatorStyle,
    detect_indicator_columns,
    project_indicator,
)
from tradereview.models.bar import Bar
from tradereview.models.indicator import IndicatorSeries

logger = logging.getLogger(__name__)

BAR_COLUMNS = ColumnMapping.from_dict({
    "time": ("time", "timestamp", "ts", "ts_event", "datetime", "date", "open_time", "bar_time"),
    "open": ("open", "o", "open_price"),
    "high": ("high", "h", "high_price"),
    "low": ("low", "l", "low_price"),
    "close": ("close", "c", "close_price"),
    "volume": ("volume", "v", "vol"),
    "instrument": ("instrument", "contract", "symbol", "ticker"),
})

# Vendor bookkeeping columns that are numeric but are not indicators.
IGNORED_COLUMNS = (
    "rtype", "publisher_id", "instrument_id", "ts_recv", "index",
    "__index_level_0__", "unnamed: 0",
)


def infer_bar_interval(times: Sequence[int]) -> float:
    """Median spacing between consecutive bar times (0 for < 2 bars)."""
    if len(times) < 2:
        return 0.0
    return float(statistics.median(b - a for a, b in zip(times, times[1:])))


class BarTable:
    """Sorted, de-duplicated bar timeline for one instrument.

    ``times`` is strictly increasing; range lookups are binary searches over
    it, so slicing costs O(log n + k). ``bar_interval`` is inferred once at
    construction.
    """

    def __init__(
        self,
        instrument: str,
        bars: Sequence[Bar] = (),
        indicators: Sequence[IndicatorColumn] = (),
        duplicates: int = 0,
    ) -> None:
        self.instrument = instrument
        self.bars: tuple[Bar, ...] = tuple(bars)
        self.times: tuple[int, ...] = tuple(b.time for b in self.bars)
        self.indicators: tuple[IndicatorColumn, ...] = tuple(indicators)
        self.duplicates = duplicates
        self.bar_interval = infer_bar_interval(self.times)

    def __len__(self) -> int:
        return len(self.bars)

    def __repr__(self) -> str:
        return (
            f"BarTable({self.instrument!r}, bars={len(self.bars)}, "
            f"indicators={len(self.indicators)})"
        )

    @property
    def start_time(self) -> int | None:
        return self.times[0] if self.times else None

    @property
    def end_time(self) -> int | None:
        return self.times[-1] if self.times else None

    @property
    def indicator_ids(self) -> tuple[str, ...]:
        return tuple(c.id for c in self.indicators)

    @property
    def ohlc_inconsistent(self) -> int:
        """Bars whose high/low do not bracket open and close."""
        return sum(1 for b in self.bars if not b.is_consistent)

    def bar_at(self, index: int) -> Bar:
        return self.bars[index]

    def index_range(self, start: int | None, end: int | None) -> tuple[int, int]:
        lo = 0 if start is None else bisect_left(self.times, start)
        hi = len(self.times) if end is None else bisect_right(self.times, end)
        return lo, max(lo, hi)

    def slice(self, start: int | None = None, end: int | None = None) -> tuple[Bar, ...]:
        """Bars with ``start <= time <= end``; ``None`` bounds are open."""
        lo, hi = self.index_range(start, end)
        return self.bars[lo:hi]

    def series_in_range(
        self, start: int | None = None, end: int | None = None,
    ) -> list[IndicatorSeries]:
        return [c.to_series(start, end) for c in self.indicators]


@dataclass
class BarIngestion:
    """Result of one ingestion pass.

    Attributes:
        tables: Successfully built tables keyed by instrument.
        errors: Instruments whose ingestion was aborted, with the cause.
    """

    tables: dict[str, BarTable] = field(default_factory=dict)
    errors: dict[str, MalformedBar] = field(default_factory=dict)

    def table(self, instrument: str) -> BarTable | None:
        """Table for ``instrument``; re-raises if its ingestion failed."""
        if instrument in self.errors:
            raise self.errors[instrument]
        return self.tables.get(instrument)


# ---- row handling ----

def _instrument_of(row: Mapping[str, Any], cols: ResolvedColumns, default: str) -> str:
    value = cols.get(row, "instrument")
    if is_missing(value):
        return default
    return str(value).strip()


def _price(row: Mapping[str, Any], cols: ResolvedColumns, name: str, where: str) -> float:
    raw = cols.get(row, name)
    value = finite_float(raw)
    if value is None:
        raise MalformedBar(f"{where}: {name} is missing or non-finite ({raw!r})")
    return value


def _volume(row: Mapping[str, Any], cols: ResolvedColumns, where: str) -> float | None:
    raw = cols.get(row, "volume")
    if is_missing(raw):
        return None
    value = to_float(raw)
    if value is None or not math.isfinite(value):
        raise MalformedBar(f"{where}: volume is non-finite ({raw!r})")
    if value < 0:
        raise MalformedBar(f"{where}: volume is negative ({value})")
    return value


def parse_bar(
    row: Mapping[str, Any],
    cols: ResolvedColumns,
    clock: TimestampNormalizer,
    where: str = "row",
) -> Bar:
    """Build one Bar from a raw row.

    Raises:
        MalformedBar: Unreadable timestamp, or missing/non-finite OHLCV.
    """
    if "time" not in cols:
        raise MalformedBar(f"{where}: no timestamp column")
    try:
        t = clock(cols.get(row, "time"))
    except MalformedTimestamp as e:
        raise MalformedBar(f"{where}: {e}") from e
    return Bar(
        time=t,
        open=_price(row, cols, "open", where),
        high=_price(row, cols, "high", where),
        low=_price(row, cols, "low", where),
        close=_price(row, cols, "close", where),
        volume=_volume(row, cols, where),
    )


def build_bar_tables(
    rows: Iterable[Mapping[str, Any]],
    default_instrument: str,
    instruments: Iterable[str] | None = None,
    tz: str | tzinfo | None = "UTC",
    unit: EpochUnit | None = None,
    indicator_columns: Iterable[str] | None = None,
    indicator_styles: Mapping[str, IndicatorStyle] | None = None,
    columns: ColumnMapping = BAR_COLUMNS,
) -> BarIngestion:
    """Ingest raw bar rows into one BarTable per instrument.

    Args:
        rows: Raw rows in any order.
        default_instrument: Instrument for rows without an instrument field.
        instruments: Only build these instruments (default: all seen).
        tz: Timezone for naive calendar timestamps.
        unit: Pin the epoch unit; default resolves it once for the dataset.
        indicator_columns: Restrict indicators to these columns.
        indicator_styles: Display overrides keyed by indicator id.
        columns: Synonym table for the bar fields.

    Duplicate timestamps keep the last-seen row and are counted per table.
    A malformed row aborts its instrument only; that instrument lands in
    ``BarIngestion.errors`` and no partial table is kept for it.
    """
    rows = list(rows)
    names = column_names(rows)
    cols = columns.resolve(names)
    clock = TimestampNormalizer(tz=tz, unit=unit)
    wanted = set(instruments) if instruments is not None else None

    if indicator_columns is None:
        reserved = list(cols.used) + list(IGNORED_COLUMNS)
        indicator_ids = detect_indicator_columns(rows, names, reserved)
    else:
        indicator_ids = [c for c in indicator_columns if c in names]
    styles = indicator_styles or {}

    result = BarIngestion()
    pending: dict[str, dict[int, tuple[Bar, Mapping[str, Any]]]] = {}
    duplicates: dict[str, int] = {}

    for index, row in enumerate(rows):
        instrument = _instrument_of(row, cols, default_instrument)
        if wanted is not None and instrument not in wanted:
            continue
        if instrument in result.errors:
            continue
        try:
            bar = parse_bar(row, cols, clock, where=f"{instrument} row {index}")
        except MalformedBar as e:
            e.instrument = instrument
            result.errors[instrument] = e
            pending.pop(instrument, None)
            logger.warning("Aborting bar ingestion for %s: %s", instrument, e)
            continue
        bucket = pending.setdefault(instrument, {})
        if bar.time in bucket:
            duplicates[instrument] = duplicates.get(instrument, 0) + 1
        bucket[bar.time] = (bar, row)

    for instrument, bucket in pending.items():
        timeline = sorted(bucket.items())
        bars = [bar for _, (bar, _) in timeline]
        by_time = [(t, row) for t, (_, row) in timeline]
        indicators = [
            project_indicator(column, by_time, styles.get(column))
            for column in indicator_ids
        ]
        table = BarTable(
            instrument,
            bars=bars,
            indicators=indicators,
            duplicates=duplicates.get(instrument, 0),
        )
        result.tables[instrument] = table
        logger.debug(
            "Built bar table for %s: %d bars, %d indicators, %d duplicate timestamps",
            instrument, len(table), len(indicators), table.duplicates,
        )

    return result
