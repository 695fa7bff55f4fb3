"""In-memory row source for demos, tests and CI — no files required."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from tradereview.config import DEMO_INSTRUMENT
from tradereview.sources.base import RowSource

DEMO_ALIASES = ("CLZ4_ohlcv1m",)

# Ten 5-minute crude oil bars from the 2024-10-24 session.
DEMO_BARS: tuple[dict[str, Any], ...] = (
    {"time": 1729771800, "open": 71.22, "high": 71.32, "low": 71.21, "close": 71.25},
    {"time": 1729772100, "open": 71.25, "high": 71.28, "low": 71.12, "close": 71.22},
    {"time": 1729772400, "open": 71.22, "high": 71.40, "low": 71.20, "close": 71.36},
    {"time": 1729772700, "open": 71.36, "high": 71.49, "low": 71.35, "close": 71.47},
    {"time": 1729773000, "open": 71.47, "high": 71.55, "low": 71.32, "close": 71.38},
    {"time": 1729773300, "open": 71.38, "high": 71.44, "low": 71.22, "close": 71.27},
    {"time": 1729773600, "open": 71.27, "high": 71.29, "low": 71.08, "close": 71.15},
    {"time": 1729773900, "open": 71.15, "high": 71.31, "low": 71.14, "close": 71.28},
    {"time": 1729774200, "open": 71.28, "high": 71.34, "low": 71.16, "close": 71.21},
    {"time": 1729774500, "open": 71.21, "high": 71.23, "low": 71.00, "close": 71.05},
)


class MemoryRowSource(RowSource):
    """Row source holding rows in memory.

    Use ``set_bar_rows`` / ``set_trade_rows`` to pre-load data. Unless
    ``seed_demo`` is False the demo contract is available out of the box.
    """

    def __init__(self, seed_demo: bool = True) -> None:
        self._bars: dict[str, list[Mapping[str, Any]]] = {}
        self._trades: dict[str, list[Mapping[str, Any]]] = {}
        self._aliases: dict[str, str] = {}
        self._revisions: dict[str, int] = {}
        if seed_demo:
            self.set_bar_rows(DEMO_INSTRUMENT, [dict(row) for row in DEMO_BARS])
            for alias in DEMO_ALIASES:
                self.add_alias(alias, DEMO_INSTRUMENT)

    # --- Pre-load helpers ---

    def _touch(self, instrument: str) -> None:
        self._revisions[instrument] = self._revisions.get(instrument, 0) + 1

    def set_bar_rows(self, instrument: str, rows: Iterable[Mapping[str, Any]]) -> None:
        self._bars[instrument] = list(rows)
        self._touch(instrument)

    def set_trade_rows(self, instrument: str, rows: Iterable[Mapping[str, Any]]) -> None:
        self._trades[instrument] = list(rows)
        self._touch(instrument)

    def add_alias(self, alias: str, instrument: str) -> None:
        self._aliases[alias] = instrument

    # --- RowSource ---

    def resolve(self, instrument: str) -> str:
        return self._aliases.get(instrument, instrument)

    def instruments(self) -> list[str]:
        return sorted(self._bars)

    def bar_rows(self, instrument: str) -> list[Mapping[str, Any]]:
        return list(self._bars.get(self.resolve(instrument), []))

    def trade_rows(self, instrument: str) -> list[Mapping[str, Any]]:
        return list(self._trades.get(self.resolve(instrument), []))

    def fingerprint(self, instrument: str) -> str:
        key = self.resolve(instrument)
        return f"memory:{key}:{self._revisions.get(key, 0)}"
