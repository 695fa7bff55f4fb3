"""Trade-to-bar alignment and price plausibility.

Checks:
    1. Time skew: each leg's timestamp against its nearest bar. Ties between
       the bar before and the bar after go to the bar before (the bar that
       was active when the fill happened).
    2. Price plausibility: each leg's price against its nearest bar's
       [low, high], widened by ``price_epsilon``.

Results are flags, never exceptions. Flags are per kind, not per leg: a
trade with both legs skewed carries ``TIME_SKEW`` once. With no bars at all
every trade is flagged ``TIME_SKEW``; price plausibility cannot be judged
without a bar and is not flagged.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from tradereview.bars import BarTable
from tradereview.models.bar import Bar
from tradereview.models.trade import Trade, TradeFlag


@dataclass(frozen=True)
class LegAlignment:
    """How one trade leg lines up with the bar timeline.

    Attributes:
        time: Leg timestamp.
        price: Leg fill price.
        bar: Nearest bar, None when the table is empty.
        skew: Seconds between the leg and its nearest bar.
        skewed: Skew exceeds the tolerance.
        price_in_range: Price within the bar's range (+/- epsilon). None
            when there is no bar to judge against.
    """

    time: int
    price: float
    bar: Bar | None
    skew: float
    skewed: bool
    price_in_range: bool | None


@dataclass(frozen=True)
class TradeAlignment:
    trade_id: str
    entry: LegAlignment
    exit: LegAlignment | None
    max_skew_seconds: float

    @property
    def legs(self) -> tuple[LegAlignment, ...]:
        return (self.entry,) if self.exit is None else (self.entry, self.exit)

    @property
    def flags(self) -> tuple[TradeFlag, ...]:
        raised = set()
        for leg in self.legs:
            if leg.skewed:
                raised.add(TradeFlag.TIME_SKEW)
            if leg.price_in_range is False:
                raised.add(TradeFlag.PRICE_OUT_OF_RANGE)
        return tuple(f for f in TradeFlag if f in raised)


def default_max_skew(table: BarTable) -> float:
    """Half the bar interval inferred when the table was built."""
    return table.bar_interval / 2


def nearest_bar_index(times: Sequence[int], t: int) -> int | None:
    """Index of the bar closest to ``t``; ties go to the earlier bar."""
    if not times:
        return None
    after = bisect_right(times, t)
    if after == 0:
        return 0
    before = after - 1
    if after == len(times):
        return before
    if t - times[before] <= times[after] - t:
        return before
    return after


def align_leg(
    table: BarTable,
    t: int,
    price: float,
    max_skew_seconds: float,
    price_epsilon: float = 0.0,
) -> LegAlignment:
    index = nearest_bar_index(table.times, t)
    if index is None:
        return LegAlignment(t, price, None, float("inf"), True, None)
    bar = table.bar_at(index)
    skew = abs(t - bar.time)
    in_range = bar.low - price_epsilon <= price <= bar.high + price_epsilon
    return LegAlignment(t, price, bar, skew, skew > max_skew_seconds, in_range)


def align_trade(
    trade: Trade,
    table: BarTable,
    max_skew_seconds: float | None = None,
    price_epsilon: float = 0.0,
) -> TradeAlignment:
    """Per-leg alignment diagnostics for one trade."""
    skew = default_max_skew(table) if max_skew_seconds is None else max_skew_seconds
    entry = align_leg(table, trade.entry_time, trade.entry_price, skew, price_epsilon)
    exit_leg = None
    if trade.exit_time is not None and trade.exit_price is not None:
        exit_leg = align_leg(table, trade.exit_time, trade.exit_price, skew, price_epsilon)
    return TradeAlignment(trade.id, entry, exit_leg, skew)


def validate(
    trade: Trade,
    table: BarTable,
    max_skew_seconds: float | None = None,
    price_epsilon: float = 0.0,
) -> tuple[TradeFlag, ...]:
    """Diagnostic flags for ``trade`` against ``table``.

    Args:
        trade: Trade to check.
        table: Bar timeline of the trade's instrument.
        max_skew_seconds: Skew tolerance. ``None`` uses half the bar
            interval inferred from ``table``.
        price_epsilon: Slack around [low, high] for slippage-adjusted fills.

    Returns:
        Flags in ``TradeFlag`` declaration order, without duplicates.
    """
    return align_trade(trade, table, max_skew_seconds, price_epsilon).flags


def attach_flags(
    trades: Iterable[Trade],
    table: BarTable,
    max_skew_seconds: float | None = None,
    price_epsilon: float = 0.0,
) -> list[Trade]:
    """Copies of ``trades`` carrying freshly computed flags."""
    skew = default_max_skew(table) if max_skew_seconds is None else max_skew_seconds
    return [
        replace(trade, flags=validate(trade, table, skew, price_epsilon))
        for trade in trades
    ]
