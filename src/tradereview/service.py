"""TradeReviewService — range queries over canonical bars, series and trades."""

from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from itertools import accumulate
from typing import Any

from tradereview.alignment import attach_flags
from tradereview.bars import BarIngestion, BarTable, build_bar_tables
from tradereview.cache import CacheBackend, MemoryCache, NoCache
from tradereview.clock import parse_range
from tradereview.config import ReviewConfig, SourceType
from tradereview.errors import UnknownInstrument
from tradereview.models.bar import Bar
from tradereview.models.indicator import IndicatorSeries
from tradereview.models.meta import InstrumentMeta
from tradereview.models.trade import SkippedRecord, Trade
from tradereview.sources import RowSource, create_source
from tradereview.trades import map_trades

logger = logging.getLogger(__name__)

Bound = Any  # epoch seconds, "YYYY-MM-DD", ISO datetime or None


@dataclass(frozen=True)
class Ingestion:
    """Everything built from one instrument's source data.

    Trades are stored without flags; flags are computed per query.
    ``entry_times`` and ``reach`` index the trades (sorted by entry time):
    ``reach[i]`` is the latest ``last_time`` among ``trades[: i + 1]``, so it
    is non-decreasing and binary-searchable.
    """

    instrument: str
    table: BarTable
    trades: tuple[Trade, ...] = ()
    skipped: tuple[SkippedRecord, ...] = ()
    entry_times: tuple[int, ...] = ()
    reach: tuple[int, ...] = ()

    def trades_between(self, lo: int | None, hi: int | None) -> tuple[Trade, ...]:
        """Trades whose ``[entry_time, last_time]`` intersects ``[lo, hi]``."""
        first = 0 if lo is None else bisect_left(self.reach, lo)
        last = len(self.trades) if hi is None else bisect_right(self.entry_times, hi)
        if lo is None:
            return self.trades[first:last]
        return tuple(t for t in self.trades[first:last] if t.last_time >= lo)


@dataclass(frozen=True)
class RangeQueryResult:
    bars: list[Bar] = field(default_factory=list)
    series: list[IndicatorSeries] = field(default_factory=list)
    trades: list[Trade] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "candles": [b.to_dict() for b in self.bars],
            "series": [s.to_dict() for s in self.series],
            "trades": [t.to_dict() for t in self.trades],
        }


class TradeReviewService:
    """Central read-only service: source -> ingest (cached) -> slice -> flag.

    Usage::

        from tradereview import create_service_from_env
        svc = create_service_from_env()
        bars = svc.get_bars("DEMO_CONTRACT", "2024-10-24", "2024-10-24")
    """

    def __init__(
        self,
        config: ReviewConfig | None = None,
        source: RowSource | None = None,
    ) -> None:
        self.config = config or ReviewConfig()

        if source is None:
            kwargs: dict[str, Any] = {}
            if self.config.source_type is SourceType.FILE:
                kwargs["root"] = self.config.data_dir
            source = create_source(self.config.source_type, **kwargs)
        self.source = source

        # Build cache
        self.cache: CacheBackend
        if self.config.cache_backend == "memory":
            self.cache = MemoryCache(max_entries=self.config.cache_max_entries)
        else:
            self.cache = NoCache()

    # ---------------------------------------------------------- instruments

    def list_instruments(self) -> list[str]:
        return self.source.instruments()

    def resolve_instrument(self, instrument: str | None) -> str | None:
        """Source name for a requested instrument, or None if unknown.

        Raises:
            UnknownInstrument: No instrument was requested and there is no
                default, or ``strict_instruments`` is set and the instrument
                is unknown.
        """
        if instrument is None or not str(instrument).strip():
            if self.config.default_instrument is None:
                raise UnknownInstrument("No contract requested and no default configured")
            instrument = self.config.default_instrument
        name = self.source.resolve(str(instrument).strip())
        if self.source.has_instrument(name):
            return name
        if self.config.strict_instruments:
            raise UnknownInstrument(f"Unknown contract '{instrument}'", instrument=instrument)
        return None

    # ------------------------------------------------------------ ingestion

    def _ingest(self, instrument: str) -> Ingestion:
        key = (instrument, self.source.fingerprint(instrument))
        return self.cache.get_or_build(key, lambda: self._build(instrument))

    @staticmethod
    def _select_table(ingestion: BarIngestion, instrument: str) -> tuple[str, BarTable]:
        """Pick the table for ``instrument`` out of a source's ingestion.

        A single-instrument source whose rows carry their own symbol label
        (``CLZ4`` inside ``CLZ4_ohlcv1m.parquet``) is served under the
        requested name.
        """
        labels = set(ingestion.tables) | set(ingestion.errors)
        label = instrument
        if instrument not in labels and len(labels) == 1:
            label = labels.pop()
        table = ingestion.table(label)
        return label, table if table is not None else BarTable(instrument)

    def _build(self, instrument: str) -> Ingestion:
        cfg = self.config
        bar_ingestion = build_bar_tables(
            self.source.bar_rows(instrument),
            default_instrument=instrument,
            tz=cfg.source_timezone,
            unit=cfg.epoch_unit,
            indicator_columns=cfg.indicator_columns,
            indicator_styles=cfg.indicator_styles,
        )
        label, table = self._select_table(bar_ingestion, instrument)

        mapping = map_trades(
            self.source.trade_rows(instrument),
            mapping=cfg.trade_columns,
            collapse=cfg.collapse_mode,
            drop_open=cfg.drop_open_trades,
            tz=cfg.source_timezone,
            unit=cfg.epoch_unit,
            instrument=label,
        )

        logger.info(
            "Ingested %s: %d bars (%d duplicate timestamps), %d indicators, "
            "%d trades (%d records skipped)",
            instrument, len(table), table.duplicates, len(table.indicators),
            len(mapping.trades), len(mapping.skipped),
        )
        return Ingestion(
            instrument=instrument,
            table=table,
            trades=tuple(mapping.trades),
            skipped=tuple(mapping.skipped),
            entry_times=tuple(t.entry_time for t in mapping.trades),
            reach=tuple(accumulate((t.last_time for t in mapping.trades), max)),
        )

    def _lookup(self, instrument: str | None) -> Ingestion | None:
        name = self.resolve_instrument(instrument)
        if name is None:
            return None
        return self._ingest(name)

    # ----------------------------------------------------------------- meta

    def get_meta(self, instrument: str | None = None) -> InstrumentMeta:
        ingestion = self._lookup(instrument)
        if ingestion is None:
            return InstrumentMeta(instrument=str(instrument or ""))
        table = ingestion.table
        return InstrumentMeta(
            instrument=ingestion.instrument,
            bar_count=len(table),
            start_time=table.start_time,
            end_time=table.end_time,
            available_indicator_ids=table.indicator_ids,
            trade_count=len(ingestion.trades),
            duplicate_bars=table.duplicates,
            skipped_trades=len(ingestion.skipped),
        )

    def skipped_trades(self, instrument: str | None = None) -> list[SkippedRecord]:
        ingestion = self._lookup(instrument)
        return list(ingestion.skipped) if ingestion is not None else []

    # ---------------------------------------------------------------- range

    def _range(self, start: Bound, end: Bound) -> tuple[int | None, int | None] | None:
        """Parsed bounds, or None when the range is empty (start > end)."""
        lo, hi = parse_range(start, end)
        if lo is not None and hi is not None and lo > hi:
            return None
        return lo, hi

    def _resolve_query(
        self, instrument: str | None, start: Bound, end: Bound,
    ) -> tuple[Ingestion, int | None, int | None] | None:
        """One ingestion and its bounds, or None when nothing can match."""
        bounds = self._range(start, end)
        ingestion = self._lookup(instrument)
        if bounds is None or ingestion is None:
            return None
        return ingestion, bounds[0], bounds[1]

    @staticmethod
    def _bars(ingestion: Ingestion, lo: int | None, hi: int | None) -> list[Bar]:
        return list(ingestion.table.slice(lo, hi))

    @staticmethod
    def _series(
        ingestion: Ingestion, lo: int | None, hi: int | None,
    ) -> list[IndicatorSeries]:
        return ingestion.table.series_in_range(lo, hi)

    def _trades(self, ingestion: Ingestion, lo: int | None, hi: int | None) -> list[Trade]:
        return attach_flags(
            ingestion.trades_between(lo, hi),
            ingestion.table,
            max_skew_seconds=self.config.max_skew_seconds,
            price_epsilon=self.config.price_epsilon,
        )

    def get_bars(
        self, instrument: str | None = None, start: Bound = None, end: Bound = None,
    ) -> list[Bar]:
        """Bars with ``start <= time <= end``, ascending."""
        resolved = self._resolve_query(instrument, start, end)
        return self._bars(*resolved) if resolved is not None else []

    def get_series(
        self, instrument: str | None = None, start: Bound = None, end: Bound = None,
    ) -> list[IndicatorSeries]:
        """Every indicator series restricted to the range.

        Series without points in the range are returned empty so the
        consumer's panes stay stable while scrolling.
        """
        resolved = self._resolve_query(instrument, start, end)
        return self._series(*resolved) if resolved is not None else []

    def get_trades(
        self, instrument: str | None = None, start: Bound = None, end: Bound = None,
    ) -> list[Trade]:
        """Trades overlapping the range, each with freshly computed flags.

        A trade overlaps when ``entry_time <= end`` and its exit (or entry,
        while open) is ``>= start``. Flags are judged against the
        instrument's full bar timeline.
        """
        resolved = self._resolve_query(instrument, start, end)
        return self._trades(*resolved) if resolved is not None else []

    def query(
        self, instrument: str | None = None, start: Bound = None, end: Bound = None,
    ) -> RangeQueryResult:
        """Bars, series and trades for one instrument and range.

        All three come from the same ingestion, so they describe one version
        of the source data.
        """
        resolved = self._resolve_query(instrument, start, end)
        if resolved is None:
            return RangeQueryResult()
        return RangeQueryResult(
            bars=self._bars(*resolved),
            series=self._series(*resolved),
            trades=self._trades(*resolved),
        )

    # --------------------------------------------------------------- cache

    def clear_cache(self, instrument: str) -> None:
        self.cache.clear(self.source.resolve(instrument))

    def clear_all_cache(self) -> None:
        self.cache.clear_all()
