"""Trade review configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from tradereview.clock import EpochUnit
from tradereview.columns import ColumnMapping
from tradereview.indicators import IndicatorStyle


class SourceType(Enum):
    """Supported row source backends."""

    FILE = "file"
    MEMORY = "memory"


class CollapseMode(Enum):
    """What to do with trades recorded as several legs (partial fills,
    scaled exits).

    ``COLLAPSE`` folds the legs into one round trip using the first entry and
    the last exit. ``SKIP`` drops such trades with a recorded reason.
    """

    COLLAPSE = "collapse"
    SKIP = "skip"


DEMO_INSTRUMENT = "DEMO_CONTRACT"


@dataclass
class ReviewConfig:
    """Configuration for TradeReviewService.

    Attributes:
        source_type: Row source backend.
        data_dir: Directory holding bar and trade files (file source).
        default_instrument: Instrument served when a request names none.
            ``None`` makes an instrument-less request an error.
        strict_instruments: Raise for unknown instruments instead of
            returning empty collections.
        source_timezone: Timezone for naive calendar timestamps.
        epoch_unit: Pin the epoch unit of numeric timestamps. ``None`` lets
            each dataset resolve it from its first numeric value.
        collapse_mode: Multi-leg trade handling.
        drop_open_trades: Skip trades without an exit leg instead of keeping
            them open.
        max_skew_seconds: Time-skew tolerance. ``None`` uses half the bar
            interval inferred from each instrument's bars.
        price_epsilon: Slack around a bar's [low, high] before a fill is
            flagged as implausible.
        cache_backend: Ingestion cache — "memory" or "none".
        cache_max_entries: LRU capacity of the memory cache.
        indicator_columns: Restrict indicators to these columns. ``None``
            treats every extra numeric column as an indicator.
        indicator_styles: Display overrides keyed by indicator id.
        trade_columns: Synonym table for trade records. ``None`` uses the
            built-in table.
    """

    source_type: SourceType = SourceType.MEMORY
    data_dir: str = "data"
    default_instrument: str | None = DEMO_INSTRUMENT
    strict_instruments: bool = False
    source_timezone: str = "UTC"
    epoch_unit: EpochUnit | None = None

    collapse_mode: CollapseMode = CollapseMode.COLLAPSE
    drop_open_trades: bool = False
    max_skew_seconds: float | None = None
    price_epsilon: float = 0.0

    cache_backend: str = "memory"
    cache_max_entries: int = 32

    indicator_columns: list[str] | None = None
    indicator_styles: dict[str, IndicatorStyle] = field(default_factory=dict)
    trade_columns: ColumnMapping | None = None
