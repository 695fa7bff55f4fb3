"""Declarative column synonym tables.

Source files name the same field many ways (``timestamp`` / ``ts_event``,
``entry_time`` / ``open_time`` / ``t_in``). A ``ColumnMapping`` lists the
accepted names per canonical field and is resolved once against a dataset's
column names; row handling then reads through the resolved names only.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class ColumnMapping:
    """Canonical field -> accepted source column names, in priority order."""

    synonyms: tuple[tuple[str, tuple[str, ...]], ...]

    @classmethod
    def from_dict(cls, table: Mapping[str, Iterable[str]]) -> ColumnMapping:
        return cls(tuple((name, tuple(names)) for name, names in table.items()))

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.synonyms)

    def names_for(self, field: str) -> tuple[str, ...]:
        for name, names in self.synonyms:
            if name == field:
                return names
        raise KeyError(field)

    def with_synonyms(self, field: str, *names: str) -> ColumnMapping:
        """Copy of this mapping with extra names tried first for ``field``."""
        table = dict(self.synonyms)
        table[field] = tuple(names) + tuple(table.get(field, ()))
        return ColumnMapping(tuple(table.items()))

    def resolve(self, columns: Iterable[str]) -> ResolvedColumns:
        """Match canonical fields against actual column names.

        Matching is case-insensitive and ignores surrounding whitespace. The
        first synonym present wins.
        """
        by_folded: dict[str, str] = {}
        for column in columns:
            by_folded.setdefault(str(column).strip().lower(), column)

        resolved: dict[str, str] = {}
        for name, names in self.synonyms:
            for candidate in names:
                actual = by_folded.get(candidate.lower())
                if actual is not None:
                    resolved[name] = actual
                    break
        return ResolvedColumns(resolved)


@dataclass(frozen=True)
class ResolvedColumns:
    """A ``ColumnMapping`` bound to one dataset's column names."""

    columns: dict[str, str]

    def __contains__(self, field: str) -> bool:
        return field in self.columns

    @property
    def used(self) -> frozenset[str]:
        return frozenset(self.columns.values())

    def get(self, row: Mapping[str, Any], field: str) -> Any:
        column = self.columns.get(field)
        if column is None:
            return None
        return row.get(column)


def column_names(rows: Iterable[Mapping[str, Any]]) -> list[str]:
    """Union of keys across rows, in first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


# ---- cell values ----

def to_float(value: Any) -> float | None:
    """Read a cell as a float. Non-numeric cells are None; NaN/inf pass through.

    Booleans are not numbers here.
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return None
    return None


def finite_float(value: Any) -> float | None:
    """Read a cell as a finite float, or None."""
    number = to_float(value)
    if number is None or not math.isfinite(number):
        return None
    return number


def is_missing(value: Any) -> bool:
    """None, NaN/NaT, or a blank string."""
    if value is None or value is pd.NaT:
        return True
    if isinstance(value, (float, np.floating)):
        return math.isnan(value)
    if isinstance(value, str):
        return not value.strip()
    return False
