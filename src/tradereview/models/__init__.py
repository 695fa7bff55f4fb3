"""Trade review models."""

from tradereview.models.bar import Bar
from tradereview.models.indicator import (
    PRICE_PANE,
    IndicatorPoint,
    IndicatorSeries,
    SeriesKind,
)
from tradereview.models.meta import InstrumentMeta
from tradereview.models.trade import (
    SkippedRecord,
    SkipReason,
    Trade,
    TradeFlag,
    TradeSide,
)

__all__ = [
    "Bar",
    "IndicatorPoint",
    "IndicatorSeries",
    "SeriesKind",
    "PRICE_PANE",
    "InstrumentMeta",
    "Trade",
    "TradeSide",
    "TradeFlag",
    "SkipReason",
    "SkippedRecord",
]
