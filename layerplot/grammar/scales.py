"""Shared scales computed across every layer of a plot.

One scale exists per channel. Its kind is fixed by the first column that feeds
it; later layers may only extend its domain. Discrete levels keep the order in
which they were first seen across layers, which is the order legends use.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import numpy as np
import pandas as pd

from layerplot.exceptions import ChannelTypeMismatchError, GrammarError, MissingColumnError
from layerplot.grammar.aesthetics import AestheticMapping, Channel
from layerplot.grammar.data_table import ColumnKind, DataTable
from layerplot.grammar.stats import StatKind

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scale:
    """Frozen domain of one channel.

    ``domain`` is an inclusive ``(min, max)`` pair for continuous and temporal
    scales and an ordered tuple of levels for discrete scales. A scale that saw
    no usable value has ``valid`` set to False and an empty domain.
    """

    channel: Channel
    domain_kind: ColumnKind
    domain: tuple[Any, ...]
    valid: bool = True

    @property
    def is_discrete(self) -> bool:
        """Whether the scale holds levels rather than a range."""
        return self.domain_kind is ColumnKind.DISCRETE

    @property
    def limits(self) -> tuple[Any, Any] | None:
        """``(min, max)`` of a valid ranged scale, None otherwise."""
        if self.is_discrete or not self.valid:
            return None
        return self.domain[0], self.domain[1]


@dataclass
class _ScaleState:
    channel: Channel
    domain_kind: ColumnKind
    minimum: Any = None
    maximum: Any = None
    levels: dict[Any, None] = field(default_factory=dict)

    def extend(self, values: pd.Series) -> None:
        if self.domain_kind is ColumnKind.DISCRETE:
            for level in pd.unique(values.dropna()):
                self.levels.setdefault(_python_scalar(level), None)
            return
        finite = _finite_values(values, self.domain_kind)
        if finite.empty:
            return
        low, high = finite.min(), finite.max()
        self.minimum = low if self.minimum is None else min(self.minimum, low)
        self.maximum = high if self.maximum is None else max(self.maximum, high)

    def freeze(self) -> Scale:
        if self.domain_kind is ColumnKind.DISCRETE:
            levels = tuple(self.levels)
            return Scale(self.channel, self.domain_kind, levels, valid=bool(levels))
        if self.minimum is None:
            return Scale(self.channel, self.domain_kind, (), valid=False)
        return Scale(self.channel, self.domain_kind, (_python_scalar(self.minimum), _python_scalar(self.maximum)))


class ScaleRegistry:
    """Accumulates scale domains layer by layer, then freezes them.

    The registry is single-writer: layers must be accumulated one at a time in
    plot order because discrete level order depends on it.
    """

    def __init__(self) -> None:
        self._states: dict[Channel, _ScaleState] = {}
        self._frozen: Mapping[Channel, Scale] | None = None

    def __contains__(self, channel: object) -> bool:
        return channel in self._states

    def accumulate(
        self,
        channel: Channel,
        table: DataTable,
        mapping: AestheticMapping,
        layer_index: int | None = None,
    ) -> None:
        """Extend the scale of ``channel`` with the column it is bound to in ``mapping``.

        Constant and absent bindings contribute nothing.
        """
        if self._frozen is not None:
            raise RuntimeError("ScaleRegistry is frozen; create a new registry for another build")
        column = mapping.column(channel)
        if column is None:
            return
        if column not in table:
            raise MissingColumnError(
                f"channel '{channel}' references column '{column}', which is not in the layer's data",
                layer_index=layer_index,
                channel=channel.value,
            )
        kind = table.kind(column)
        target = channel.scale_channel
        state = self._states.get(target)
        if state is None:
            LOGGER.debug("Creating %s scale for channel '%s' from column '%s'", kind, target, column)
            state = _ScaleState(channel=target, domain_kind=kind)
            self._states[target] = state
        elif state.domain_kind is not kind:
            raise ChannelTypeMismatchError(
                f"channel '{channel}' is bound to {kind} column '{column}' but its scale is {state.domain_kind}",
                layer_index=layer_index,
                channel=channel.value,
            )
        state.extend(table.column(column))
        if table.computed_by == StatKind.BIN:
            for edge in (f"{column}_start", f"{column}_end"):
                if edge in table:
                    state.extend(table.column(edge))

    def accumulate_layer(
        self, table: DataTable, mapping: AestheticMapping, layer_index: int | None = None
    ) -> list[GrammarError]:
        """Accumulate every channel of one layer, returning the errors raised."""
        errors: list[GrammarError] = []
        for channel in mapping.columns():
            try:
                self.accumulate(channel, table, mapping, layer_index)
            except GrammarError as exc:
                errors.append(exc)
        return errors

    def freeze(self) -> Mapping[Channel, Scale]:
        """Freeze every scale; later calls return the same mapping."""
        if self._frozen is None:
            scales = {channel: self._states[channel].freeze() for channel in Channel if channel in self._states}
            self._frozen = MappingProxyType(scales)
        return self._frozen


def _finite_values(values: pd.Series, kind: ColumnKind) -> pd.Series:
    if kind is ColumnKind.TEMPORAL:
        return pd.to_datetime(values, errors="coerce").dropna()
    numeric = pd.to_numeric(values, errors="coerce")
    return numeric[np.isfinite(numeric.to_numpy(dtype=float, na_value=np.nan))]


def _python_scalar(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    return value


__all__ = ["Scale", "ScaleRegistry"]
