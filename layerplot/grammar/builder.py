"""Assemble a RenderSpec from a Plot.

The build runs in two phases. Layer preparation (dataset selection, mapping
resolution, validation and the stat transform) touches no shared state and
may run concurrently. Scale accumulation then walks the prepared layers in
declared order with a single registry, since discrete level order is
observable.

Errors from every layer are collected and raised together as a
``PlotBuildError``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from layerplot.exceptions import (
    ConfigValidationError,
    EmptyDatasetError,
    InvalidScaleDomainError,
    MissingColumnError,
    PlotBuildError,
)
from layerplot.grammar.aesthetics import AestheticMapping
from layerplot.grammar.data_table import DataTable
from layerplot.grammar.geometries import check_geometry_requirements
from layerplot.grammar.mapping_resolver import resolve_mapping
from layerplot.grammar.scales import ScaleRegistry
from layerplot.grammar.stats import StatKind, apply_stat, stat_mapping, stat_orientation
from layerplot.grammar.structured_configs import BuildConfig, Layer, LayerSpec, Plot, RenderSpec

LOGGER = logging.getLogger(__name__)


@dataclass
class _PreparedLayer:
    index: int
    layer: Layer
    mapping: AestheticMapping | None = None
    data: DataTable | None = None
    errors: list[ConfigValidationError] = field(default_factory=list)


def build_plot(plot: Plot, config: BuildConfig | None = None) -> RenderSpec:
    """Resolve every layer of ``plot`` and compute shared scales.

    Raises:
        PlotBuildError: carrying every error found across all layers.
    """
    config = config or BuildConfig()
    errors: list[ConfigValidationError] = []
    if plot.data.is_empty:
        errors.append(EmptyDatasetError("the root dataset has no rows"))

    prepared = _prepare_layers(plot, config)
    errors.extend(error for item in prepared for error in item.errors)

    registry = ScaleRegistry()
    for item in prepared:
        if item.errors:
            continue
        assert item.data is not None and item.mapping is not None
        errors.extend(registry.accumulate_layer(item.data, item.mapping, item.index))
    scales = registry.freeze()

    for channel, scale in scales.items():
        if not scale.valid:
            reason = "has no levels" if scale.is_discrete else "has no finite values"
            errors.append(InvalidScaleDomainError(f"scale for channel '{channel}' {reason}", channel=channel.value))

    if errors:
        LOGGER.warning("Plot build failed with %d error(s)", len(errors))
        raise PlotBuildError(errors)

    layer_specs = tuple(_layer_spec(item) for item in prepared)
    LOGGER.debug("Built render spec with %d layer(s) and scales for %s", len(layer_specs), list(scales))
    return RenderSpec(layers=layer_specs, scales=scales)


def build_plot_or_errors(
    data: DataTable,
    mapping: AestheticMapping,
    layers: Sequence[Layer],
    config: BuildConfig | None = None,
) -> RenderSpec | list[ConfigValidationError]:
    """Build a plot from its parts, returning the error list instead of raising."""
    try:
        return build_plot(Plot(data=data, mapping=mapping, layers=layers), config)
    except PlotBuildError as exc:
        return exc.errors


def _prepare_layers(plot: Plot, config: BuildConfig) -> list[_PreparedLayer]:
    jobs = [(index, layer) for index, layer in enumerate(plot.layers)]
    if config.max_workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=config.max_workers, thread_name_prefix="layerplot-layer") as executor:
            return list(executor.map(lambda job: _prepare_layer(plot, config, *job), jobs))
    return [_prepare_layer(plot, config, index, layer) for index, layer in jobs]


def _prepare_layer(plot: Plot, config: BuildConfig, index: int, layer: Layer) -> _PreparedLayer:
    item = _PreparedLayer(index=index, layer=layer)
    table = layer.data if layer.data is not None else plot.data
    mapping = resolve_mapping(plot.mapping, layer.mapping)
    LOGGER.debug("Layer %d (%s): resolved mapping %r", index, layer.geometry, mapping)

    for channel, column in mapping.columns().items():
        if column not in table:
            item.errors.append(
                MissingColumnError(
                    f"channel '{channel}' references column '{column}', which is not in the layer's dataset",
                    layer_index=index,
                    channel=channel.value,
                )
            )
    try:
        check_geometry_requirements(layer.geometry, mapping, index)  # type: ignore[arg-type]
    except ConfigValidationError as exc:
        item.errors.append(exc)
    if item.errors:
        return item

    stat = layer.stat_config
    try:
        item.data = apply_stat(
            stat,
            table,
            mapping,
            layer.geometry,  # type: ignore[arg-type]
            layer_index=index,
            default_bins=config.default_bins,
            default_points=config.density_points,
        )
        orientation = None
        if stat.kind in (StatKind.BIN, StatKind.DENSITY):
            orientation = stat_orientation(stat, table, mapping, layer.geometry, index)  # type: ignore[arg-type]
    except ConfigValidationError as exc:
        item.errors.append(exc)
        return item
    item.mapping = stat_mapping(stat, mapping, item.data, orientation=orientation, layer_index=index)
    return item


def _layer_spec(item: _PreparedLayer) -> LayerSpec:
    assert item.data is not None and item.mapping is not None
    style: dict[str, Any] = dict(item.layer.style)
    style.update({channel.value: value for channel, value in item.mapping.constants().items()})
    return LayerSpec(
        index=item.index,
        geometry=item.layer.geometry,  # type: ignore[arg-type]
        stat=item.layer.stat_config,
        mapping=item.mapping,
        data=item.data,
        style=style,
        name=item.layer.name,
    )


__all__ = ["build_plot", "build_plot_or_errors"]
