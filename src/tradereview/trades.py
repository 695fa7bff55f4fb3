"""Trade mapping — arbitrary trade-record layouts to canonical round trips.

Column names are resolved once per dataset through ``TRADE_COLUMNS`` (or a
caller-supplied ``ColumnMapping``). A record that cannot become a trade is
skipped with a ``SkipReason``; the rest of the batch is unaffected.

Records sharing a trade id are legs of one round trip (partial fills,
scaled exits). ``CollapseMode.COLLAPSE`` folds them into a single trade
using the earliest entry and the latest exit; ``CollapseMode.SKIP`` drops
them.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any, Iterable, Mapping

import numpy as np

from tradereview.clock import EpochUnit, TimestampNormalizer
from tradereview.columns import (
    ColumnMapping,
    ResolvedColumns,
    column_names,
    is_missing,
    to_float,
)
from tradereview.config import CollapseMode
from tradereview.errors import MalformedTimestamp
from tradereview.models.trade import SkippedRecord, SkipReason, Trade, TradeSide

logger = logging.getLogger(__name__)

TRADE_COLUMNS = ColumnMapping.from_dict({
    "id": ("id", "trade_id", "position_id", "order_id", "trade_no"),
    "side": ("side", "direction", "dir", "position_side"),
    "entry_time": (
        "entry_time", "open_time", "t_in", "entry_ts", "entry_timestamp",
        "time_in", "entry_date", "opened_at",
    ),
    "entry_price": (
        "entry_price", "open_price", "p_in", "price_in", "avg_entry_price", "entry",
    ),
    "exit_time": (
        "exit_time", "close_time", "t_out", "exit_ts", "exit_timestamp",
        "time_out", "exit_date", "closed_at",
    ),
    "exit_price": (
        "exit_price", "close_price", "p_out", "price_out", "avg_exit_price", "exit",
    ),
    "quantity": ("quantity", "qty", "size", "contracts", "shares"),
    "pnl": ("pnl", "profit", "net_pnl", "realized_pnl", "pl", "profit_loss"),
    "tags": ("tags", "tag", "labels", "signal"),
    "instrument": ("instrument", "contract", "symbol", "ticker"),
})

LONG_SIDES = frozenset({"long", "buy", "b", "l", "bull"})
SHORT_SIDES = frozenset({"short", "sell", "s", "sh", "bear"})

_TAG_SPLIT = re.compile(r"[,;|]")


@dataclass
class TradeMapping:
    """Mapped trades plus the records that were dropped."""

    trades: list[Trade] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)

    @property
    def skip_counts(self) -> dict[SkipReason, int]:
        return dict(Counter(s.reason for s in self.skipped))


class _Skip(Exception):
    def __init__(self, reason: SkipReason, detail: str = "") -> None:
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


@dataclass
class _Leg:
    index: int
    trade_id: str | None
    side: TradeSide
    entry: tuple[int, float] | None
    exit: tuple[int, float] | None
    quantity: float | None
    pnl: float | None
    tags: frozenset[str]


# ---- field parsing ----

def parse_side(value: Any) -> TradeSide:
    """Normalize a side value case-insensitively.

    Raises:
        _Skip: missing or unrecognized side.
    """
    if is_missing(value):
        raise _Skip(SkipReason.MISSING_SIDE)
    number = to_float(value)
    if number is not None and not isinstance(value, str):
        if number > 0:
            return TradeSide.LONG
        if number < 0:
            return TradeSide.SHORT
        raise _Skip(SkipReason.UNKNOWN_SIDE, f"side {value!r}")
    folded = str(value).strip().lower()
    if folded in LONG_SIDES or folded in ("1", "+1"):
        return TradeSide.LONG
    if folded in SHORT_SIDES or folded == "-1":
        return TradeSide.SHORT
    raise _Skip(SkipReason.UNKNOWN_SIDE, f"side {value!r}")


def parse_tags(value: Any) -> frozenset[str]:
    """Tags from a delimited string (``,``, ``;`` or ``|``) or a collection."""
    if isinstance(value, str):
        return frozenset(t.strip() for t in _TAG_SPLIT.split(value) if t.strip())
    if isinstance(value, (list, tuple, set, frozenset, np.ndarray)):
        return frozenset(str(t).strip() for t in value if not is_missing(t))
    if is_missing(value):
        return frozenset()
    return frozenset({str(value).strip()})


def _trade_id(value: Any) -> str | None:
    if is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _optional_number(value: Any, name: str) -> float | None:
    if is_missing(value):
        return None
    number = to_float(value)
    if number is None or not math.isfinite(number):
        raise _Skip(SkipReason.MALFORMED_VALUE, f"{name} {value!r}")
    return number


def _time(clock: TimestampNormalizer, value: Any, name: str) -> int:
    try:
        return clock(value)
    except MalformedTimestamp as e:
        raise _Skip(SkipReason.MALFORMED_VALUE, f"{name}: {e}") from e


def _parse_leg(
    index: int,
    record: Mapping[str, Any],
    cols: ResolvedColumns,
    clock: TimestampNormalizer,
    grouped: bool,
) -> _Leg:
    raw = {name: cols.get(record, name) for name in cols.columns}

    entry_time = raw.get("entry_time")
    entry_price = raw.get("entry_price")
    entry: tuple[int, float] | None = None
    if is_missing(entry_time) and is_missing(entry_price):
        # Exit-only legs are allowed when another record carries the entry.
        if not grouped:
            raise _Skip(SkipReason.MISSING_ENTRY_TIME)
    elif is_missing(entry_time):
        raise _Skip(SkipReason.MISSING_ENTRY_TIME)
    elif is_missing(entry_price):
        raise _Skip(SkipReason.MISSING_ENTRY_PRICE)
    else:
        price = _optional_number(entry_price, "entry_price")
        entry = (_time(clock, entry_time, "entry_time"), price)

    exit_time = raw.get("exit_time")
    exit_price = raw.get("exit_price")
    exit_leg: tuple[int, float] | None = None
    if is_missing(exit_time) != is_missing(exit_price):
        raise _Skip(SkipReason.INCOMPLETE_EXIT)
    if not is_missing(exit_time):
        price = _optional_number(exit_price, "exit_price")
        exit_leg = (_time(clock, exit_time, "exit_time"), price)

    if entry is None and exit_leg is None:
        raise _Skip(SkipReason.MISSING_ENTRY_TIME)

    return _Leg(
        index=index,
        trade_id=_trade_id(raw.get("id")),
        side=parse_side(raw.get("side")),
        entry=entry,
        exit=exit_leg,
        quantity=_optional_number(raw.get("quantity"), "quantity"),
        pnl=_optional_number(raw.get("pnl"), "pnl"),
        tags=parse_tags(raw.get("tags")),
    )


# ---- round trips ----

def _sum_present(values: Iterable[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    return sum(present) if present else None


def _collapse(trade_id: str, legs: list[_Leg], drop_open: bool) -> Trade:
    sides = {leg.side for leg in legs}
    if len(sides) > 1:
        raise _Skip(SkipReason.CONFLICTING_SIDE, "legs disagree on side")

    entries = [leg for leg in legs if leg.entry is not None]
    if not entries:
        raise _Skip(SkipReason.MISSING_ENTRY_TIME, "no entry leg")
    first = min(entries, key=lambda leg: leg.entry[0])  # type: ignore[index]
    entry_time, entry_price = first.entry  # type: ignore[misc]

    exits = [leg for leg in legs if leg.exit is not None]
    exit_time: int | None = None
    exit_price: float | None = None
    if exits:
        last = max(exits, key=lambda leg: leg.exit[0])  # type: ignore[index]
        exit_time, exit_price = last.exit  # type: ignore[misc]
        if exit_time < entry_time:
            raise _Skip(
                SkipReason.EXIT_BEFORE_ENTRY,
                f"exit {exit_time} precedes entry {entry_time}",
            )
    elif drop_open:
        raise _Skip(SkipReason.MISSING_EXIT)

    return Trade(
        id=trade_id,
        side=sides.pop(),
        entry_time=entry_time,
        entry_price=entry_price,
        exit_time=exit_time,
        exit_price=exit_price,
        quantity=_sum_present(leg.quantity for leg in entries),
        pnl=_sum_present(leg.pnl for leg in legs),
        tags=frozenset().union(*(leg.tags for leg in legs)),
    )


def map_trades(
    records: Iterable[Mapping[str, Any]],
    mapping: ColumnMapping | None = None,
    collapse: CollapseMode = CollapseMode.COLLAPSE,
    drop_open: bool = False,
    tz: str | tzinfo | None = "UTC",
    unit: EpochUnit | None = None,
    instrument: str | None = None,
) -> TradeMapping:
    """Map raw trade records to canonical trades.

    Args:
        records: Raw records in source order.
        mapping: Synonym table (default ``TRADE_COLUMNS``).
        collapse: Multi-leg handling.
        drop_open: Skip trades that have no exit leg.
        tz: Timezone for naive calendar timestamps.
        unit: Pin the epoch unit; default resolves it once for the dataset.
        instrument: Keep only records for this instrument. Records without
            an instrument field are kept.

    Returns:
        Trades ordered by entry time, and one ``SkippedRecord`` per dropped
        record.
    """
    records = list(records)
    cols = (mapping or TRADE_COLUMNS).resolve(column_names(records))
    clock = TimestampNormalizer(tz=tz, unit=unit)
    result = TradeMapping()

    selected: list[tuple[int, Mapping[str, Any]]] = []
    for index, record in enumerate(records):
        owner = cols.get(record, "instrument")
        if instrument is not None and not is_missing(owner) and str(owner).strip() != instrument:
            continue
        selected.append((index, record))

    id_counts = Counter(_trade_id(cols.get(r, "id")) for _, r in selected)
    id_counts.pop(None, None)

    # Keyed by (source id, synthetic id) so a positional id never merges
    # with a source id that happens to look the same.
    groups: dict[tuple[str | None, str | None], list[_Leg]] = {}
    for index, record in selected:
        trade_id = _trade_id(cols.get(record, "id"))
        grouped = trade_id is not None and id_counts[trade_id] > 1
        try:
            leg = _parse_leg(index, record, cols, clock, grouped)
        except _Skip as skip:
            result.skipped.append(SkippedRecord(index, skip.reason, skip.detail, trade_id))
            continue
        key = (trade_id, None) if trade_id is not None else (None, str(index + 1))
        groups.setdefault(key, []).append(leg)

    for (source_id, position_id), legs in groups.items():
        trade_id = source_id if source_id is not None else position_id or ""
        if len(legs) > 1 and collapse is CollapseMode.SKIP:
            result.skipped.extend(
                SkippedRecord(leg.index, SkipReason.MULTI_LEG, f"{len(legs)} legs", trade_id)
                for leg in legs
            )
            continue
        try:
            result.trades.append(_collapse(trade_id, legs, drop_open))
        except _Skip as skip:
            result.skipped.extend(
                SkippedRecord(leg.index, skip.reason, skip.detail, trade_id)
                for leg in legs
            )

    result.trades.sort(key=lambda t: (t.entry_time, t.id))
    result.skipped.sort(key=lambda s: s.index)
    if result.skipped:
        logger.warning(
            "Skipped %d of %d trade records: %s",
            len(result.skipped),
            len(selected),
            ", ".join(f"{r.value}={n}" for r, n in result.skip_counts.items()),
        )
    return result
