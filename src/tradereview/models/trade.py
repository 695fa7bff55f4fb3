"""Trade (round trip) data model and its diagnostics."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TradeSide(Enum):
    LONG = "long"
    SHORT = "short"


class TradeFlag(Enum):
    """Non-fatal diagnostics attached to a trade.

    Declaration order is the order flags are reported in.
    """

    TIME_SKEW = "TIME_SKEW"
    PRICE_OUT_OF_RANGE = "PRICE_OUT_OF_RANGE"


class SkipReason(Enum):
    """Why a raw trade record produced no Trade."""

    MISSING_ENTRY_TIME = "MissingEntryTime"
    MISSING_ENTRY_PRICE = "MissingEntryPrice"
    MISSING_SIDE = "MissingSide"
    UNKNOWN_SIDE = "UnknownSide"
    MALFORMED_VALUE = "MalformedValue"
    EXIT_BEFORE_ENTRY = "ExitBeforeEntry"
    INCOMPLETE_EXIT = "IncompleteExit"
    MISSING_EXIT = "MissingExit"
    MULTI_LEG = "MultiLeg"
    CONFLICTING_SIDE = "ConflictingSide"


@dataclass(frozen=True)
class Trade:
    """One round-trip execution normalized from arbitrary source columns.

    Attributes:
        id: Trade identifier (source id, or the record's 1-based position).
        side: Long or short.
        entry_time: Entry time, UTC epoch seconds.
        entry_price: Entry fill price.
        exit_time: Exit time, None while the trade is open.
        exit_price: Exit fill price, None while the trade is open.
        quantity: Position size, when the source carries it.
        pnl: Source-reported profit and loss. Never computed here.
        tags: Free-form labels from the source.
        flags: Alignment diagnostics. Empty until a query attaches them.
    """

    id: str
    side: TradeSide
    entry_time: int
    entry_price: float
    exit_time: int | None = None
    exit_price: float | None = None
    quantity: float | None = None
    pnl: float | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    flags: tuple[TradeFlag, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.exit_time is None

    @property
    def last_time(self) -> int:
        """Latest known timestamp of the round trip."""
        return self.entry_time if self.exit_time is None else self.exit_time

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "side": self.side.value,
            "entryTime": self.entry_time,
            "entryPrice": self.entry_price,
            "flags": [f.value for f in self.flags],
        }
        optional = {
            "exitTime": self.exit_time,
            "exitPrice": self.exit_price,
            "quantity": self.quantity,
            "pnl": self.pnl,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        if self.tags:
            data["tags"] = sorted(self.tags)
        return data


@dataclass(frozen=True)
class SkippedRecord:
    """A trade record that was dropped during mapping, and why."""

    index: int
    reason: SkipReason
    detail: str = ""
    trade_id: str | None = None
