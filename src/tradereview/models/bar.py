"""Bar (OHLCV) data model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Bar:
    """Single price bar on the canonical clock.

    Attributes:
        time: Bar-open time, UTC epoch seconds.
        open: Opening price.
        high: High price.
        low: Low price.
        close: Closing price.
        volume: Traded volume, when the source carries it.
    """

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float | None = None

    @property
    def is_consistent(self) -> bool:
        """High >= low with open and close inside the bar's range."""
        return (
            self.high >= self.low
            and self.low <= self.open <= self.high
            and self.low <= self.close <= self.high
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
        }
        if self.volume is not None:
            data["volume"] = self.volume
        return data
