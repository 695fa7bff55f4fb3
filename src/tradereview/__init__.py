"""tradereview — canonical bars, indicator series and flagged trades for
backtest review charts.

Reads heterogeneous backtest artifacts (wide bar tables with precomputed
indicators, trade-execution records), normalizes them onto one UTC clock and
serves time-ranged slices with non-fatal alignment diagnostics.

Quick start::

    from tradereview import create_service_from_env
    svc = create_service_from_env()
    result = svc.query("DEMO_CONTRACT", "2024-10-24", "2024-10-24")
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

from tradereview.alignment import align_trade, attach_flags, validate
from tradereview.bars import (
    BAR_COLUMNS,
    BarIngestion,
    BarTable,
    build_bar_tables,
    infer_bar_interval,
)
from tradereview.cache import CacheBackend, MemoryCache, NoCache
from tradereview.clock import (
    EpochUnit,
    TimestampNormalizer,
    normalize_timestamp,
    parse_range_bound,
)
from tradereview.columns import ColumnMapping
from tradereview.config import CollapseMode, ReviewConfig, SourceType
from tradereview.errors import (
    InvalidRange,
    MalformedBar,
    MalformedTimestamp,
    ReviewError,
    ReviewErrorCode,
    SourceError,
    UnknownInstrument,
)
from tradereview.indicators import IndicatorStyle
from tradereview.models import (
    Bar,
    IndicatorPoint,
    IndicatorSeries,
    InstrumentMeta,
    SeriesKind,
    SkippedRecord,
    SkipReason,
    Trade,
    TradeFlag,
    TradeSide,
)
from tradereview.service import RangeQueryResult, TradeReviewService
from tradereview.trades import TRADE_COLUMNS, TradeMapping, map_trades

__version__ = "0.1.0"

__all__ = [
    # Service
    "TradeReviewService",
    "RangeQueryResult",
    "create_service_from_env",
    # Config
    "ReviewConfig",
    "SourceType",
    "CollapseMode",
    "IndicatorStyle",
    "ColumnMapping",
    # Engine
    "normalize_timestamp",
    "parse_range_bound",
    "TimestampNormalizer",
    "EpochUnit",
    "build_bar_tables",
    "BarTable",
    "BarIngestion",
    "BAR_COLUMNS",
    "map_trades",
    "TradeMapping",
    "TRADE_COLUMNS",
    "validate",
    "align_trade",
    "attach_flags",
    "infer_bar_interval",
    # Cache
    "CacheBackend",
    "MemoryCache",
    "NoCache",
    # Errors
    "ReviewError",
    "ReviewErrorCode",
    "MalformedTimestamp",
    "MalformedBar",
    "InvalidRange",
    "UnknownInstrument",
    "SourceError",
    # Models
    "Bar",
    "IndicatorPoint",
    "IndicatorSeries",
    "SeriesKind",
    "InstrumentMeta",
    "Trade",
    "TradeSide",
    "TradeFlag",
    "SkipReason",
    "SkippedRecord",
]


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


def create_service_from_env(env_file: str | None = None) -> TradeReviewService:
    """Zero-config factory — reads source and tolerances from env vars.

    Args:
        env_file: Optional ``.env`` file loaded first. Variables already set
            in the environment win.

    Environment variables:
        TRADE_REVIEW_SOURCE: "file" or "memory" (default: "file" when
            TRADE_REVIEW_DATA_DIR is set, else "memory").
        TRADE_REVIEW_DATA_DIR: Directory of bar/trade files.
        TRADE_REVIEW_DEFAULT_CONTRACT: Instrument for requests naming none
            (default: "DEMO_CONTRACT"; empty disables the fallback).
        TRADE_REVIEW_TIMEZONE: Timezone of naive source timestamps (default: "UTC").
        TRADE_REVIEW_COLLAPSE: "collapse" or "skip" for multi-leg trades.
        TRADE_REVIEW_DROP_OPEN: "1" to skip trades without an exit.
        TRADE_REVIEW_MAX_SKEW: Skew tolerance in seconds (default: inferred).
        TRADE_REVIEW_PRICE_EPSILON: Price slack (default: 0).
        TRADE_REVIEW_CACHE: "memory" or "none" (default: "memory").
    """
    if env_file:
        load_dotenv(env_file, override=False)

    data_dir = os.getenv("TRADE_REVIEW_DATA_DIR")
    source_default = "file" if data_dir else "memory"

    config = ReviewConfig(
        source_type=SourceType(os.getenv("TRADE_REVIEW_SOURCE", source_default)),
        data_dir=data_dir or "data",
        default_instrument=os.getenv("TRADE_REVIEW_DEFAULT_CONTRACT", "DEMO_CONTRACT") or None,
        source_timezone=os.getenv("TRADE_REVIEW_TIMEZONE", "UTC"),
        collapse_mode=CollapseMode(os.getenv("TRADE_REVIEW_COLLAPSE", "collapse")),
        drop_open_trades=os.getenv("TRADE_REVIEW_DROP_OPEN", "0") in ("1", "true", "yes"),
        max_skew_seconds=_optional_float("TRADE_REVIEW_MAX_SKEW"),
        price_epsilon=_optional_float("TRADE_REVIEW_PRICE_EPSILON") or 0.0,
        cache_backend=os.getenv("TRADE_REVIEW_CACHE", "memory"),
    )

    return TradeReviewService(config)
