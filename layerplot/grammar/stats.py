"""Statistical transforms applied to a layer's data before drawing.

Every transform is a pure function of ``(stat, table, mapping)`` that returns a
new ``DataTable``; inputs are never modified. The identity stat returns its
input table object unchanged so unaggregated layers share the source data.

Aggregators and smoothing kernels are looked up by name in module-level
registries that callers can extend with ``register_aggregator`` and
``register_kernel``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import numpy as np
import pandas as pd

from layerplot.exceptions import (
    ChannelTypeMismatchError,
    ConfigValidationError,
    InvalidStatParameterError,
    UnsatisfiedGeometryRequirementError,
)
from layerplot.grammar.aesthetics import AestheticMapping, Channel, ColumnRef
from layerplot.grammar.data_table import ColumnKind, DataTable

LOGGER = logging.getLogger(__name__)

DEFAULT_BINS = 30
DEFAULT_DENSITY_POINTS = 512

COUNT_COLUMN = "count"
DENSITY_COLUMN = "density"
SCALED_COLUMN = "scaled"


class StatKind(StrEnum):
    """Closed set of statistical transforms."""

    IDENTITY = "identity"
    BIN = "bin"
    SUMMARY = "summary"
    DENSITY = "density"


Aggregator = Callable[[pd.Series], Any]
Kernel = Callable[[np.ndarray], np.ndarray]


def _mean(values: pd.Series) -> float:
    return values.mean()


def _sum(values: pd.Series) -> float:
    return values.sum()


def _median(values: pd.Series) -> float:
    return values.median()


def _count(values: pd.Series) -> int:
    return int(values.count())


def _min(values: pd.Series) -> float:
    return values.min()


def _max(values: pd.Series) -> float:
    return values.max()


AGGREGATORS: dict[str, Aggregator] = {
    "mean": _mean,
    "sum": _sum,
    "median": _median,
    "count": _count,
    "min": _min,
    "max": _max,
}


def _gaussian(u: np.ndarray) -> np.ndarray:
    return np.exp(-0.5 * u * u) / math.sqrt(2 * math.pi)


def _epanechnikov(u: np.ndarray) -> np.ndarray:
    return np.where(np.abs(u) <= 1, 0.75 * (1 - u * u), 0.0)


KERNELS: dict[str, Kernel] = {
    "gaussian": _gaussian,
    "epanechnikov": _epanechnikov,
}


def register_aggregator(name: str, func: Aggregator) -> None:
    """Make ``func`` available to summary stats as ``name``."""
    if not name or not callable(func):
        raise ConfigValidationError("register_aggregator requires a name and a callable")
    AGGREGATORS[name] = func


def register_kernel(name: str, func: Kernel) -> None:
    """Make ``func`` available to density stats as ``name``."""
    if not name or not callable(func):
        raise ConfigValidationError("register_kernel requires a name and a callable")
    KERNELS[name] = func


@dataclass(frozen=True)
class StatConfig:  # pylint: disable=too-many-instance-attributes
    """A stat kind plus its parameters.

    ``bins``/``bin_width``/``boundary`` configure binning, ``aggregator`` the
    summary reduction, and ``bandwidth``/``adjust``/``kernel``/``n_points``
    the density estimate. ``orientation`` (``"x"`` or ``"y"``) names the
    positional axis the stat runs along when the bound columns leave it
    ambiguous. Parameter ranges are checked when the stat runs so
    that a plot build can report them together with other layer errors.
    """

    kind: StatKind = StatKind.IDENTITY
    bins: int | None = None
    bin_width: float | None = None
    boundary: float | None = None
    aggregator: str | Aggregator = "mean"
    bandwidth: float | None = None
    adjust: float = 1.0
    kernel: str = "gaussian"
    n_points: int | None = None
    orientation: str | None = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "kind", StatKind(self.kind))
        except ValueError as exc:
            valid = ", ".join(kind.value for kind in StatKind)
            raise ConfigValidationError(f"Unknown stat '{self.kind}'; expected one of: {valid}") from exc

    @property
    def aggregator_name(self) -> str:
        """Printable name of the aggregator."""
        if isinstance(self.aggregator, str):
            return self.aggregator
        return getattr(self.aggregator, "__name__", repr(self.aggregator))


def parse_stat(value: StatConfig | StatKind | str) -> StatConfig:
    """Normalize a stat description.

    Accepts a ``StatConfig``, a ``StatKind``, or a string such as ``"bin"`` or
    ``"summary-mean"`` (summary with the named aggregator).
    """
    if isinstance(value, StatConfig):
        return value
    if isinstance(value, StatKind):
        return StatConfig(kind=value)
    name = str(value).strip()
    for separator in ("-", "_", ":"):
        prefix = f"{StatKind.SUMMARY.value}{separator}"
        if name.startswith(prefix):
            return StatConfig(kind=StatKind.SUMMARY, aggregator=name[len(prefix) :])
    return StatConfig(kind=name)  # type: ignore[arg-type]


def validate_stat_params(stat: StatConfig, layer_index: int | None = None) -> None:
    """Raise InvalidStatParameterError for out-of-range parameters."""

    def fail(message: str) -> None:
        raise InvalidStatParameterError(message, layer_index=layer_index)

    if stat.bins is not None and (isinstance(stat.bins, bool) or not isinstance(stat.bins, int) or stat.bins <= 0):
        fail(f"bins must be a positive integer, got {stat.bins!r}")
    if stat.bin_width is not None and not _is_positive(stat.bin_width):
        fail(f"bin_width must be positive, got {stat.bin_width!r}")
    if stat.bins is not None and stat.bin_width is not None:
        fail("bins and bin_width are mutually exclusive")
    if stat.boundary is not None and not _is_finite_number(stat.boundary):
        fail(f"boundary must be a finite number, got {stat.boundary!r}")
    if stat.bandwidth is not None and not _is_positive(stat.bandwidth):
        fail(f"bandwidth must be positive, got {stat.bandwidth!r}")
    if not _is_positive(stat.adjust):
        fail(f"adjust must be positive, got {stat.adjust!r}")
    if stat.n_points is not None and (not isinstance(stat.n_points, int) or stat.n_points < 2):
        fail(f"n_points must be an integer >= 2, got {stat.n_points!r}")
    if stat.kind is StatKind.SUMMARY and isinstance(stat.aggregator, str) and stat.aggregator not in AGGREGATORS:
        fail(f"unknown aggregator '{stat.aggregator}'; expected one of: {', '.join(AGGREGATORS)}")
    if stat.kind is StatKind.DENSITY and stat.kernel not in KERNELS:
        fail(f"unknown kernel '{stat.kernel}'; expected one of: {', '.join(KERNELS)}")
    if stat.orientation is not None and stat.orientation not in (Channel.X, Channel.Y):
        fail(f"orientation must be 'x' or 'y', got {stat.orientation!r}")


def apply_stat(
    stat: StatConfig,
    table: DataTable,
    mapping: AestheticMapping,
    geometry: str | None = None,
    *,
    layer_index: int | None = None,
    default_bins: int = DEFAULT_BINS,
    default_points: int = DEFAULT_DENSITY_POINTS,
) -> DataTable:
    """Run ``stat`` over ``table`` using the layer's resolved ``mapping``.

    ``geometry`` supplies the axis convention used when both positional
    channels are bound and neither ``stat.orientation`` nor the column kinds
    decide which axis the stat runs along.
    """
    validate_stat_params(stat, layer_index)
    if stat.kind is StatKind.IDENTITY:
        return table
    if stat.kind is StatKind.BIN:
        return _apply_bin(stat, table, mapping, geometry, layer_index, default_bins)
    if stat.kind is StatKind.SUMMARY:
        return _apply_summary(stat, table, mapping, geometry, layer_index)
    if stat.kind is StatKind.DENSITY:
        return _apply_density(stat, table, mapping, geometry, layer_index, default_points)
    raise ConfigValidationError(f"Unsupported stat '{stat.kind}'")


def stat_orientation(
    stat: StatConfig,
    table: DataTable,
    mapping: AestheticMapping,
    geometry: str | None = None,
    layer_index: int | None = None,
) -> Channel:
    """Positional axis a bin or density stat runs along.

    An explicit ``stat.orientation`` wins. Otherwise the only bound positional
    channel is used; when both are bound the continuous one is preferred, and
    the geometry's convention breaks remaining ties.
    """
    bound = [axis for axis in (Channel.X, Channel.Y) if mapping.column(axis) is not None]
    if stat.orientation is not None:
        axis = Channel(stat.orientation)
        if axis not in bound:
            raise UnsatisfiedGeometryRequirementError(
                f"stat '{stat.kind}' runs along '{axis}' but no column is bound to it",
                layer_index=layer_index,
                channel=axis.value,
            )
        return axis
    if not bound:
        raise UnsatisfiedGeometryRequirementError(
            f"stat '{stat.kind}' requires a column bound to 'x' or 'y'", layer_index=layer_index, channel="x"
        )
    if len(bound) == 1:
        return bound[0]
    continuous = [axis for axis in bound if table.kind(str(mapping.column(axis))) is ColumnKind.CONTINUOUS]
    if len(continuous) == 1:
        return continuous[0]
    return _geometry_orientation(geometry)


def stat_mapping(
    stat: StatConfig,
    mapping: AestheticMapping,
    result: DataTable | None = None,
    *,
    orientation: Channel | None = None,
    layer_index: int | None = None,
) -> AestheticMapping:
    """Mapping to draw a stat's output with.

    Bin and density stats compute the positional axis opposite ``orientation``;
    it is bound to the computed ``count`` or ``density`` column unless it
    already names a column of ``result``. Column bindings that do not survive
    into ``result`` are dropped with a warning.
    """
    computed = {StatKind.BIN: COUNT_COLUMN, StatKind.DENSITY: DENSITY_COLUMN}.get(stat.kind)
    if computed is None and result is None:
        return mapping
    bindings = dict(mapping.items())
    if computed is not None:
        if orientation is None:
            bound = [axis for axis in (Channel.X, Channel.Y) if mapping.column(axis) is not None]
            orientation = bound[0] if len(bound) == 1 else None
        if orientation is not None:
            other = Channel.Y if orientation is Channel.X else Channel.X
            current = mapping.column(other)
            if current is None or result is None or current not in result:
                if current is not None:
                    LOGGER.debug(
                        "Layer %s: '%s' is computed by stat '%s'; replacing column '%s'",
                        layer_index,
                        other,
                        stat.kind,
                        current,
                    )
                bindings[other] = ColumnRef(computed)
    if result is not None:
        for channel, binding in list(bindings.items()):
            if isinstance(binding, ColumnRef) and binding.name not in result:
                LOGGER.warning(
                    "Layer %s: dropping channel '%s'; column '%s' is not in the output of stat '%s'",
                    layer_index,
                    channel,
                    binding.name,
                    stat.kind,
                )
                del bindings[channel]
    return AestheticMapping(bindings)


def _geometry_orientation(geometry: str | None) -> Channel:
    if geometry is None:
        return Channel.X
    from layerplot.grammar.geometries import geometry_rule  # geometries imports this module

    return geometry_rule(geometry).orientation


# ---------------------------------------------------------------------------
# bin


def _apply_bin(
    stat: StatConfig,
    table: DataTable,
    mapping: AestheticMapping,
    geometry: str | None,
    layer_index: int | None,
    default_bins: int,
) -> DataTable:
    if table.computed_by == StatKind.BIN:
        raise InvalidStatParameterError(
            "data is already binned; binning it again is not supported", layer_index=layer_index
        )
    axis = stat_orientation(stat, table, mapping, geometry, layer_index)
    column = _require_continuous(StatKind.BIN, table, mapping, axis, layer_index)
    keys = _group_columns(table, mapping, exclude={column})

    frame = _finite_rows(table.frame, column, layer_index)
    edges = _bin_edges(frame[column].to_numpy(dtype=float), stat, default_bins)
    starts, ends = edges[:-1], edges[1:]
    widths = ends - starts

    pieces = []
    for key, values in _iter_groups(frame, keys, column):
        counts, _ = np.histogram(values, bins=edges)
        total = counts.sum()
        density = counts / (total * widths) if total > 0 else np.zeros_like(widths)
        piece = pd.DataFrame(
            {
                column: (starts + ends) / 2,
                f"{column}_start": starts,
                f"{column}_end": ends,
                COUNT_COLUMN: counts.astype(float),
                DENSITY_COLUMN: density,
            }
        )
        pieces.append(_prepend_keys(piece, keys, key))

    computed = [column, f"{column}_start", f"{column}_end", COUNT_COLUMN, DENSITY_COLUMN]
    return _assemble(table, pieces, keys, computed, StatKind.BIN)


def _bin_edges(values: np.ndarray, stat: StatConfig, default_bins: int) -> np.ndarray:
    if values.size == 0:
        return np.array([0.0, 1.0])
    lo, hi = float(values.min()), float(values.max())
    if stat.bin_width is not None:
        width = float(stat.bin_width)
        anchor = float(stat.boundary) if stat.boundary is not None else width / 2
        start = anchor + math.floor((lo - anchor) / width) * width
        count = max(1, math.ceil((hi - start) / width))
        edges = start + width * np.arange(count + 1)
        if edges[-1] < hi:
            edges = np.append(edges, edges[-1] + width)
        return edges
    bins = stat.bins or default_bins
    if lo == hi:
        lo, hi = lo - 0.5, hi + 0.5
    return np.linspace(lo, hi, bins + 1)


# ---------------------------------------------------------------------------
# summary


def _apply_summary(
    stat: StatConfig,
    table: DataTable,
    mapping: AestheticMapping,
    geometry: str | None,
    layer_index: int | None,
) -> DataTable:
    value_axis = _summary_value_axis(stat, table, mapping, geometry)
    value_column = mapping.column(value_axis)
    if value_column is None:
        raise UnsatisfiedGeometryRequirementError(
            f"stat 'summary' requires a column bound to '{value_axis}'",
            layer_index=layer_index,
            channel=value_axis.value,
        )
    aggregator = _resolve_aggregator(stat, layer_index)
    is_count = stat.aggregator == "count"

    other_axis = Channel.X if value_axis is Channel.Y else Channel.Y
    keys: list[str] = []
    other_column = mapping.column(other_axis)
    if other_column is not None:
        keys.append(other_column)
    keys.extend(name for name in _group_columns(table, mapping, exclude={value_column}) if name not in keys)

    reduced: list[str] = []
    for channel, name in mapping.columns().items():
        if name in keys or name in reduced:
            continue
        if not is_count and table.kind(name) is not ColumnKind.CONTINUOUS:
            raise ChannelTypeMismatchError(
                f"stat 'summary' reduces channel '{channel}' and expects a continuous column, "
                f"but '{name}' is {table.kind(name)}",
                layer_index=layer_index,
                channel=channel.value,
            )
        reduced.append(name)

    frame = table.frame
    if keys:
        result = frame.groupby(keys, sort=False, dropna=False)[reduced].agg(aggregator).reset_index()
    else:
        result = pd.DataFrame({name: [aggregator(frame[name])] for name in reduced})
    kinds = {name: table.kind(name) for name in keys}
    kinds.update({name: ColumnKind.CONTINUOUS for name in reduced})
    return DataTable(frame=result.loc[:, keys + reduced], kinds=kinds, computed_by=StatKind.SUMMARY.value)


def _summary_value_axis(
    stat: StatConfig,
    table: DataTable,
    mapping: AestheticMapping,
    geometry: str | None,
) -> Channel:
    """Axis reduced by a summary: the one opposite the axis the layer runs along."""
    if stat.orientation is not None:
        return Channel.Y if stat.orientation == Channel.X else Channel.X
    x_column, y_column = mapping.column(Channel.X), mapping.column(Channel.Y)
    x_kind = table.kind(x_column) if x_column is not None else None
    y_kind = table.kind(y_column) if y_column is not None else None
    if y_kind is not ColumnKind.CONTINUOUS and x_kind is ColumnKind.CONTINUOUS:
        return Channel.X
    if x_kind is ColumnKind.CONTINUOUS and y_kind is ColumnKind.CONTINUOUS:
        return Channel.Y if _geometry_orientation(geometry) is Channel.X else Channel.X
    return Channel.Y


def _resolve_aggregator(stat: StatConfig, layer_index: int | None) -> Aggregator:
    if callable(stat.aggregator):
        return stat.aggregator
    try:
        return AGGREGATORS[stat.aggregator]
    except KeyError as exc:
        raise InvalidStatParameterError(f"unknown aggregator '{stat.aggregator}'", layer_index=layer_index) from exc


# ---------------------------------------------------------------------------
# density


def silverman_bandwidth(values: np.ndarray) -> float:
    """Silverman's rule of thumb, ``0.9 * min(sd, IQR / 1.34) * n ** -0.2``.

    Degenerate samples fall back to the standard deviation, then to the
    magnitude of the first value, then to 1.
    """
    values = np.asarray(values, dtype=float)
    n = values.size
    if n == 0:
        return 1.0
    sd = float(np.std(values, ddof=1)) if n > 1 else 0.0
    q75, q25 = np.percentile(values, [75, 25])
    spread = min(sd, float(q75 - q25) / 1.34)
    if not spread > 0:
        spread = sd or abs(float(values[0])) or 1.0
    return 0.9 * spread * n ** (-0.2)


def _apply_density(
    stat: StatConfig,
    table: DataTable,
    mapping: AestheticMapping,
    geometry: str | None,
    layer_index: int | None,
    default_points: int,
) -> DataTable:
    axis = stat_orientation(stat, table, mapping, geometry, layer_index)
    column = _require_continuous(StatKind.DENSITY, table, mapping, axis, layer_index)
    keys = _group_columns(table, mapping, exclude={column})
    kernel = KERNELS[stat.kernel]
    n_points = stat.n_points or default_points

    frame = _finite_rows(table.frame, column, layer_index)
    pieces = []
    for key, values in _iter_groups(frame, keys, column):
        if values.size == 0:
            continue
        bandwidth = (stat.bandwidth or silverman_bandwidth(values)) * stat.adjust
        grid = np.linspace(values.min(), values.max(), n_points)
        density = kernel((grid[:, None] - values[None, :]) / bandwidth).sum(axis=1) / (values.size * bandwidth)
        peak = density.max()
        piece = pd.DataFrame(
            {
                column: grid,
                DENSITY_COLUMN: density,
                COUNT_COLUMN: density * values.size,
                SCALED_COLUMN: density / peak if peak > 0 else density,
            }
        )
        pieces.append(_prepend_keys(piece, keys, key))

    computed = [column, DENSITY_COLUMN, COUNT_COLUMN, SCALED_COLUMN]
    return _assemble(table, pieces, keys, computed, StatKind.DENSITY)


# ---------------------------------------------------------------------------
# shared helpers


def _require_continuous(
    kind: StatKind,
    table: DataTable,
    mapping: AestheticMapping,
    channel: Channel,
    layer_index: int | None,
) -> str:
    column = mapping.column(channel)
    assert column is not None
    column_kind = table.kind(column)
    if column_kind is not ColumnKind.CONTINUOUS:
        raise ChannelTypeMismatchError(
            f"stat '{kind}' expects a continuous column on channel '{channel}', but '{column}' is {column_kind}",
            layer_index=layer_index,
            channel=channel.value,
        )
    return column


def _group_columns(table: DataTable, mapping: AestheticMapping, exclude: set[str]) -> list[str]:
    """Columns of non-positional channels that partition rows into groups."""
    keys: list[str] = []
    for channel, name in mapping.columns().items():
        if channel.is_positional or name in exclude or name in keys:
            continue
        if channel is Channel.GROUP or table.kind(name) is not ColumnKind.CONTINUOUS:
            keys.append(name)
    return keys


def _finite_rows(frame: pd.DataFrame, column: str, layer_index: int | None) -> pd.DataFrame:
    values = pd.to_numeric(frame[column], errors="coerce").to_numpy(dtype=float, na_value=np.nan)
    finite = np.isfinite(values)
    dropped = int((~finite).sum())
    if dropped:
        LOGGER.warning("Layer %s: dropped %d non-finite value(s) in column '%s'", layer_index, dropped, column)
        return frame.loc[finite]
    return frame


def _iter_groups(frame: pd.DataFrame, keys: list[str], column: str):
    if not keys:
        yield (), frame[column].to_numpy(dtype=float)
        return
    for key, group in frame.groupby(keys, sort=False, dropna=False):
        yield key, group[column].to_numpy(dtype=float)


def _prepend_keys(piece: pd.DataFrame, keys: list[str], key: tuple) -> pd.DataFrame:
    for position, (name, value) in enumerate(zip(keys, key, strict=True)):
        piece.insert(position, name, value)
    return piece


def _assemble(
    table: DataTable,
    pieces: list[pd.DataFrame],
    keys: list[str],
    computed: list[str],
    kind: StatKind,
) -> DataTable:
    columns = keys + computed
    if pieces:
        frame = pd.concat(pieces, ignore_index=True)
    else:
        frame = pd.DataFrame({name: pd.Series(dtype=table.frame[name].dtype) for name in keys})
        for name in computed:
            frame[name] = pd.Series(dtype=float)
    kinds = {name: table.kind(name) for name in keys}
    kinds.update({name: ColumnKind.CONTINUOUS for name in computed})
    return DataTable(frame=frame.loc[:, columns], kinds=kinds, computed_by=kind.value)


def _is_positive(value: Any) -> bool:
    return _is_finite_number(value) and value > 0


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool) and math.isfinite(value)


__all__ = [
    "AGGREGATORS",
    "COUNT_COLUMN",
    "DEFAULT_BINS",
    "DEFAULT_DENSITY_POINTS",
    "DENSITY_COLUMN",
    "KERNELS",
    "SCALED_COLUMN",
    "StatConfig",
    "StatKind",
    "apply_stat",
    "parse_stat",
    "register_aggregator",
    "register_kernel",
    "silverman_bandwidth",
    "stat_mapping",
    "stat_orientation",
    "validate_stat_params",
]
