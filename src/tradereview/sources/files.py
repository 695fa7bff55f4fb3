"""File-backed row source — Parquet or CSV backtest artifacts.

Layout under ``root``::

    {instrument}.parquet | {instrument}.csv                 bars + indicators
    {instrument}.trades.parquet | {instrument}.trades.csv   trade records

Parquet is preferred when both formats exist.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import pandas as pd

from tradereview.errors import SourceError
from tradereview.sources.base import RowSource

logger = logging.getLogger(__name__)

BAR_SUFFIXES = (".parquet", ".csv")
TRADE_MARKER = ".trades"


class FileRowSource(RowSource):
    """Read bar and trade rows from a directory of files."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    # ---- paths ----

    @staticmethod
    def _safe_name(instrument: str) -> bool:
        return bool(instrument) and not any(s in instrument for s in ("/", "\\", ".."))

    def _find(self, stem: str) -> Path | None:
        for suffix in BAR_SUFFIXES:
            path = self.root / f"{stem}{suffix}"
            if path.is_file():
                return path
        return None

    def bar_path(self, instrument: str) -> Path | None:
        if not self._safe_name(instrument):
            return None
        return self._find(instrument)

    def trade_path(self, instrument: str) -> Path | None:
        if not self._safe_name(instrument):
            return None
        return self._find(f"{instrument}{TRADE_MARKER}")

    # ---- RowSource ----

    def instruments(self) -> list[str]:
        if not self.root.is_dir():
            return []
        names = {
            f.name[: -len(f.suffix)]
            for f in self.root.iterdir()
            if f.is_file() and f.suffix in BAR_SUFFIXES
        }
        return sorted(n for n in names if not n.endswith(TRADE_MARKER))

    def has_instrument(self, instrument: str) -> bool:
        return self.bar_path(instrument) is not None

    def bar_rows(self, instrument: str) -> list[Mapping[str, Any]]:
        path = self.bar_path(instrument)
        return self._read(path) if path is not None else []

    def trade_rows(self, instrument: str) -> list[Mapping[str, Any]]:
        path = self.trade_path(instrument)
        return self._read(path) if path is not None else []

    def fingerprint(self, instrument: str) -> str:
        parts = []
        for path in (self.bar_path(instrument), self.trade_path(instrument)):
            if path is None:
                parts.append("-")
                continue
            st = path.stat()
            parts.append(f"{path.name}:{st.st_mtime_ns}:{st.st_size}")
        return "|".join(parts)

    # ---- helpers ----

    @staticmethod
    def _read(path: Path) -> list[Mapping[str, Any]]:
        try:
            if path.suffix == ".parquet":
                df = pd.read_parquet(path)
            else:
                df = pd.read_csv(path)
        except (OSError, ValueError) as e:
            raise SourceError(f"Could not read {path}: {e}") from e

        # Timestamp-indexed frames (common for vendor parquet) keep their
        # index as a regular column.
        if not isinstance(df.index, pd.RangeIndex):
            df = df.reset_index()
        logger.debug("Read %d rows from %s", len(df), path)
        return df.to_dict("records")
