"""Structured plot description and build output dataclasses.

A ``Plot`` is an immutable value: a root dataset, a root aesthetic mapping and
an ordered tuple of ``Layer`` objects whose order is paint order. ``build_plot``
turns it into a ``RenderSpec``, the fully resolved description consumed by a
renderer. Nothing here depends on a particular rendering backend.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from layerplot.exceptions import ConfigValidationError
from layerplot.grammar.aesthetics import AestheticMapping, Channel, Removed, parse_channel
from layerplot.grammar.data_table import DataTable
from layerplot.grammar.geometries import GeometryKind, default_stat, parse_geometry
from layerplot.grammar.scales import Scale
from layerplot.grammar.stats import DEFAULT_BINS, DEFAULT_DENSITY_POINTS, StatConfig, StatKind, parse_stat


def _ensure(condition: bool, message: str) -> None:
    """Raise ConfigValidationError if condition is not met."""
    if not condition:
        raise ConfigValidationError(message)


@dataclass(frozen=True, eq=False)
class Layer:
    """One geometry instance.

    ``data`` replaces the plot's root dataset for this layer only and
    ``mapping`` is merged over the root mapping (it may contain ``REMOVED``).
    ``stat`` defaults to the geometry's default stat. ``style`` holds fixed
    mark properties that never touch a scale.
    """

    geometry: GeometryKind | str
    mapping: AestheticMapping | None = None
    data: DataTable | None = None
    stat: StatConfig | StatKind | str | None = None
    style: Mapping[str, Any] = field(default_factory=dict)
    name: str | None = None

    def __post_init__(self) -> None:
        geometry = parse_geometry(self.geometry)
        object.__setattr__(self, "geometry", geometry)
        stat = parse_stat(self.stat if self.stat is not None else default_stat(geometry))
        object.__setattr__(self, "stat", stat)
        _ensure(
            self.mapping is None or isinstance(self.mapping, AestheticMapping),
            "Layer.mapping must be an AestheticMapping or None",
        )
        _ensure(self.data is None or isinstance(self.data, DataTable), "Layer.data must be a DataTable or None")
        _ensure(isinstance(self.style, Mapping), "Layer.style must be a mapping")
        object.__setattr__(self, "style", MappingProxyType(dict(self.style)))

    @property
    def stat_config(self) -> StatConfig:
        """The layer's stat as a StatConfig."""
        assert isinstance(self.stat, StatConfig)
        return self.stat


@dataclass(frozen=True, eq=False)
class Plot:
    """Root dataset, root mapping and layers in paint order."""

    data: DataTable
    mapping: AestheticMapping = field(default_factory=AestheticMapping)
    layers: Sequence[Layer] = ()

    def __post_init__(self) -> None:
        _ensure(isinstance(self.data, DataTable), "Plot.data must be a DataTable")
        _ensure(isinstance(self.mapping, AestheticMapping), "Plot.mapping must be an AestheticMapping")
        _ensure(
            not any(isinstance(binding, Removed) for binding in self.mapping.values()),
            "Plot.mapping can not remove channels; REMOVED is only meaningful in a layer mapping",
        )
        layers = tuple(self.layers)
        _ensure(all(isinstance(layer, Layer) for layer in layers), "Plot.layers must contain Layer objects")
        object.__setattr__(self, "layers", layers)

    def add_layers(self, *layers: Layer) -> Plot:
        """New plot with ``layers`` drawn on top of the existing ones."""
        return replace(self, layers=(*self.layers, *layers))


@dataclass(frozen=True)
class BuildConfig:
    """Options threaded through ``build_plot``.

    ``max_workers`` greater than one prepares layers concurrently.
    ``default_bins`` and ``density_points`` apply to stats that do not set
    their own.
    """

    max_workers: int = 1
    default_bins: int = DEFAULT_BINS
    density_points: int = DEFAULT_DENSITY_POINTS

    def __post_init__(self) -> None:
        _ensure(
            isinstance(self.max_workers, int) and self.max_workers >= 1,
            f"BuildConfig.max_workers must be a positive integer, got {self.max_workers!r}",
        )
        _ensure(
            isinstance(self.default_bins, int) and self.default_bins >= 1,
            f"BuildConfig.default_bins must be a positive integer, got {self.default_bins!r}",
        )
        _ensure(
            isinstance(self.density_points, int) and self.density_points >= 2,
            f"BuildConfig.density_points must be an integer >= 2, got {self.density_points!r}",
        )


@dataclass(frozen=True, eq=False)
class LayerSpec:
    """Render-ready description of one layer."""

    index: int
    geometry: GeometryKind
    stat: StatConfig
    mapping: AestheticMapping
    data: DataTable
    style: Mapping[str, Any]
    name: str | None = None


@dataclass(frozen=True, eq=False)
class RenderSpec:
    """Fully resolved plot: layers in paint order plus one scale per channel."""

    layers: tuple[LayerSpec, ...]
    scales: Mapping[Channel, Scale]

    def __iter__(self) -> Iterator[LayerSpec]:
        return iter(self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    def scale(self, channel: Channel | str) -> Scale | None:
        """Scale backing ``channel`` (``ymin``/``ymax`` share the ``y`` scale)."""
        return self.scales.get(parse_channel(channel).scale_channel)


__all__ = ["BuildConfig", "Layer", "LayerSpec", "Plot", "RenderSpec"]
