"""Indicator series data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

PRICE_PANE = "price"


class SeriesKind(Enum):
    """Rendering hint for a series. Carries no computational meaning."""

    LINE = "line"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class IndicatorPoint:
    time: int
    value: float


@dataclass(frozen=True)
class IndicatorSeries:
    """One named scalar series aligned to a bar timeline.

    Attributes:
        id: Stable machine identifier (the source column name).
        display_name: Label shown in the legend.
        kind: Line or histogram rendering hint.
        pane: ``"price"`` overlays the candles; any other string names a
            sub-pane, and series with equal pane strings share it.
        points: Points ordered by time. Gaps are simply missing points.
    """

    id: str
    display_name: str
    kind: SeriesKind = SeriesKind.LINE
    pane: str = PRICE_PANE
    points: tuple[IndicatorPoint, ...] = field(default_factory=tuple)

    @property
    def is_overlay(self) -> bool:
        return self.pane == PRICE_PANE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.display_name,
            "kind": self.kind.value,
            "pane": self.pane,
            "data": [{"time": p.time, "value": p.value} for p in self.points],
        }
