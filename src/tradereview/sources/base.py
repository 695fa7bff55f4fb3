"""Abstract base class for row sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping


class RowSource(ABC):
    """Abstract base for everything that hands raw rows to the engine.

    A source only decodes its container format into mapping rows. Timestamp
    normalization, validation and alignment all happen downstream.
    """

    @abstractmethod
    def instruments(self) -> list[str]:
        """Instruments with bar data, sorted."""
        ...

    @abstractmethod
    def bar_rows(self, instrument: str) -> list[Mapping[str, Any]]:
        """Raw bar rows (OHLCV plus indicator columns) for an instrument.

        Returns an empty list for unknown instruments.
        """
        ...

    def trade_rows(self, instrument: str) -> list[Mapping[str, Any]]:
        """Raw trade records for an instrument (default: none)."""
        return []

    @abstractmethod
    def fingerprint(self, instrument: str) -> str:
        """Identity of the instrument's current underlying data.

        Changes whenever the rows returned for the instrument would change.
        """
        ...

    def resolve(self, instrument: str) -> str:
        """Canonical name for an instrument alias (default: unchanged)."""
        return instrument

    def has_instrument(self, instrument: str) -> bool:
        return self.resolve(instrument) in self.instruments()
