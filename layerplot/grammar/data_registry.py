"""Helpers for resolving logical data sources into DataTables."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

import pandas as pd

from layerplot.exceptions import ConfigValidationError
from layerplot.grammar.data_table import ColumnKind, DataTable

DataSource = DataTable | pd.DataFrame


class DataRegistry(Protocol):  # pylint: disable=too-few-public-methods
    """Protocol for registry objects that return DataTables."""

    def get(self, source_name: str) -> DataTable:
        """Return the DataTable associated with ``source_name``."""
        ...  # pylint: disable=unnecessary-ellipsis


class DictDataRegistry:  # pylint: disable=too-few-public-methods
    """Simple registry backed by an in-memory mapping.

    Values may be DataTables or DataFrames; DataFrames are wrapped on access
    using ``kinds`` (per source, per column) and inference for the rest.
    """

    def __init__(
        self,
        data: Mapping[str, DataSource] | None = None,
        kinds: Mapping[str, Mapping[str, ColumnKind | str]] | None = None,
    ) -> None:
        self._data: dict[str, DataSource] = dict(data or {})
        self._kinds: dict[str, Mapping[str, ColumnKind | str]] = dict(kinds or {})

    def register(self, source_name: str, data: DataSource, kinds: Mapping[str, ColumnKind | str] | None = None) -> None:
        """Add or replace a source."""
        self._data[source_name] = data
        if kinds is not None:
            self._kinds[source_name] = kinds

    def get(self, source_name: str) -> DataTable:
        """Get the DataTable associated with ``source_name``."""
        try:
            data = self._data[source_name]
        except KeyError as exc:
            raise ConfigValidationError(f"Data source '{source_name}' is not registered") from exc
        return as_data_table(data, self._kinds.get(source_name))


def as_data_table(data: DataSource, kinds: Mapping[str, ColumnKind | str] | None = None) -> DataTable:
    """Wrap a DataFrame as a DataTable; DataTables pass through unchanged."""
    if isinstance(data, DataTable):
        return data
    if isinstance(data, pd.DataFrame):
        return DataTable.from_frame(data, kinds)
    raise ConfigValidationError(f"Data sources must be DataTables or DataFrames, got {type(data)}")


def resolve_data_source(
    source_name: str,
    data_registry: DataRegistry | Mapping[str, DataSource],
    kinds: Mapping[str, ColumnKind | str] | None = None,
) -> DataTable:
    """Resolve a logical source name regardless of the registry implementation."""
    if isinstance(data_registry, Mapping):
        if source_name not in data_registry:
            raise ConfigValidationError(f"Data source '{source_name}' is not registered")
        return as_data_table(data_registry[source_name], kinds)
    table = data_registry.get(source_name)
    if kinds:
        return DataTable.from_frame(table.frame, {**table.kinds, **kinds})
    return table


__all__ = ["DataRegistry", "DictDataRegistry", "as_data_table", "resolve_data_source"]
