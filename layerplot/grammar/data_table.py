"""Typed tabular data consumed by the grammar.

A ``DataTable`` is a thin, read-only view over a pandas DataFrame that pairs
every column with a declared ``ColumnKind``. The kinds decide how a column may
be used: which stats accept it and which kind of scale it feeds.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import pandas as pd
from pandas.api import types as ptypes

from layerplot.exceptions import ConfigValidationError, MissingColumnError


class ColumnKind(StrEnum):
    """Declared kind of a data column."""

    CONTINUOUS = "continuous"
    DISCRETE = "discrete"
    TEMPORAL = "temporal"

    @property
    def is_ranged(self) -> bool:
        """Whether values of this kind have a [min, max] domain."""
        return self is not ColumnKind.DISCRETE


def infer_column_kind(series: pd.Series) -> ColumnKind:
    """Infer a column kind from a pandas dtype."""
    if ptypes.is_bool_dtype(series):
        return ColumnKind.DISCRETE
    if ptypes.is_datetime64_any_dtype(series):
        return ColumnKind.TEMPORAL
    if ptypes.is_numeric_dtype(series):
        return ColumnKind.CONTINUOUS
    return ColumnKind.DISCRETE


@dataclass(frozen=True, eq=False)
class DataTable:
    """Ordered named columns of equal length, each with a declared kind.

    The wrapped frame is shared, never copied, so callers must treat
    ``frame`` as read-only. ``computed_by`` names the stat that produced the
    table, if any.
    """

    frame: pd.DataFrame
    kinds: Mapping[str, ColumnKind]
    computed_by: str | None = None

    def __post_init__(self) -> None:
        columns = [str(name) for name in self.frame.columns]
        if len(set(columns)) != len(columns):
            raise ConfigValidationError(f"DataTable column names must be unique, got {columns}")
        undeclared = [name for name in columns if name not in self.kinds]
        if undeclared:
            raise ConfigValidationError(f"DataTable columns {undeclared} have no declared kind")
        extra = [name for name in self.kinds if name not in columns]
        if extra:
            raise ConfigValidationError(f"DataTable declares kinds for unknown columns {extra}")
        object.__setattr__(self, "kinds", {name: ColumnKind(self.kinds[name]) for name in columns})

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        kinds: Mapping[str, ColumnKind | str] | None = None,
        computed_by: str | None = None,
    ) -> DataTable:
        """Wrap a DataFrame, inferring the kinds that are not declared."""
        declared = dict(kinds or {})
        unknown = [name for name in declared if name not in frame.columns]
        if unknown:
            raise ConfigValidationError(f"Kinds declared for columns {unknown} that are not in the data")
        resolved = {
            str(name): ColumnKind(declared[name]) if name in declared else infer_column_kind(frame[name])
            for name in frame.columns
        }
        return cls(frame=frame, kinds=resolved, computed_by=computed_by)

    @classmethod
    def from_records(cls, records: Mapping[str, Any], kinds: Mapping[str, ColumnKind | str] | None = None) -> DataTable:
        """Build a table from a column-name -> values mapping."""
        return cls.from_frame(pd.DataFrame(dict(records)), kinds)

    @property
    def columns(self) -> list[str]:
        """Column names in order."""
        return [str(name) for name in self.frame.columns]

    def __len__(self) -> int:
        return len(self.frame)

    def __iter__(self) -> Iterator[str]:
        return iter(self.columns)

    def __contains__(self, name: object) -> bool:
        return name in self.kinds

    @property
    def is_empty(self) -> bool:
        """Whether the table has no rows."""
        return len(self.frame) == 0

    def kind(self, name: str) -> ColumnKind:
        """Declared kind of ``name``."""
        try:
            return self.kinds[name]
        except KeyError as exc:
            raise MissingColumnError(f"Column '{name}' is not present; available columns: {self.columns}") from exc

    def column(self, name: str) -> pd.Series:
        """Values of ``name``."""
        if name not in self.kinds:
            raise MissingColumnError(f"Column '{name}' is not present; available columns: {self.columns}")
        return self.frame[name]


__all__ = ["ColumnKind", "DataTable", "infer_column_kind"]
