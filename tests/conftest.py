"""Shared fixtures for tradereview tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure src/ is on the path for editable-style imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from tradereview.bars import BarTable, build_bar_tables
from tradereview.models.bar import Bar
from tradereview.sources.memory import MemoryRowSource

BASE = 1705311000  # 2024-01-15 09:30:00 UTC


@pytest.fixture
def memory_source() -> MemoryRowSource:
    return MemoryRowSource()


@pytest.fixture
def sample_rows() -> list[dict]:
    """5 contiguous 1-min bar rows with two indicator columns.

    ``sma_3`` warms up over the first two bars (NaN); ``rsi_14`` has an
    infinite value on the third bar.
    """
    rows = []
    for i in range(5):
        rows.append({
            "timestamp": BASE + i * 60,
            "open": 150.0 + i,
            "high": 151.0 + i,
            "low": 149.0 + i,
            "close": 150.5 + i,
            "volume": 1000.0 + i * 100,
            "sma_3": float("nan") if i < 2 else 150.0 + i,
            "rsi_14": float("inf") if i == 2 else 50.0 + i,
        })
    return rows


@pytest.fixture
def sample_table(sample_rows) -> BarTable:
    return build_bar_tables(sample_rows, default_instrument="ES").table("ES")


@pytest.fixture
def minute_table() -> BarTable:
    """Bars at t=0, 60, 120 with ranges [99, 101], [100, 102], [101, 103]."""
    bars = [
        Bar(time=0, open=100.0, high=101.0, low=99.0, close=100.5),
        Bar(time=60, open=101.0, high=102.0, low=100.0, close=101.5),
        Bar(time=120, open=102.0, high=103.0, low=101.0, close=102.5),
    ]
    return BarTable("TEST", bars=bars)


@pytest.fixture
def sample_trade_rows() -> list[dict]:
    return [
        {
            "trade_id": "T1", "direction": "Long", "open_time": BASE + 60,
            "entry_price": 151.5, "close_time": BASE + 180, "exit_price": 153.5,
            "qty": 2, "pnl": 4.0, "tags": "breakout,am",
        },
        {
            "trade_id": "T2", "direction": "SELL", "open_time": BASE + 120,
            "entry_price": 152.0, "close_time": BASE + 240, "exit_price": 154.0,
            "qty": 1, "pnl": -2.0, "tags": None,
        },
    ]
