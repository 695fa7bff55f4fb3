"""Per-instrument dataset summary."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class InstrumentMeta:
    """What is available for one instrument.

    Attributes:
        instrument: Instrument identifier.
        bar_count: Number of bars in the table.
        start_time: First bar time, None when there are no bars.
        end_time: Last bar time, None when there are no bars.
        available_indicator_ids: Indicator column ids in source order.
        trade_count: Number of mapped trades.
        duplicate_bars: Bar rows replaced by a later row with the same time.
        skipped_trades: Trade records dropped during mapping.
    """

    instrument: str
    bar_count: int = 0
    start_time: int | None = None
    end_time: int | None = None
    available_indicator_ids: tuple[str, ...] = field(default_factory=tuple)
    trade_count: int = 0
    duplicate_bars: int = 0
    skipped_trades: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "instrument": self.instrument,
            "barCount": self.bar_count,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "availableIndicatorIds": list(self.available_indicator_ids),
            "tradeCount": self.trade_count,
            "duplicateBars": self.duplicate_bars,
            "skippedTrades": self.skipped_trades,
        }
