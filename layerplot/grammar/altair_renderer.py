"""Altair renderer for resolved render specs."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

try:
    import altair as alt  # type: ignore import-not-found
except ImportError as exc:  # pragma: no cover - dependency missing only in unsupported envs
    raise ImportError("Altair is required for visualization rendering. Install `altair` to continue.") from exc

import pandas as pd

from layerplot.exceptions import ConfigValidationError
from layerplot.grammar.aesthetics import Channel
from layerplot.grammar.data_table import ColumnKind
from layerplot.grammar.geometries import GeometryKind
from layerplot.grammar.scales import Scale
from layerplot.grammar.stats import StatKind
from layerplot.grammar.structured_configs import LayerSpec, RenderSpec

LOGGER = logging.getLogger(__name__)

_GEOMETRY_MARKS: dict[GeometryKind, str | None] = {
    GeometryKind.LINE: "line",
    GeometryKind.BAR: "bar",
    GeometryKind.AREA: "area",
    GeometryKind.POINT: "point",
    GeometryKind.BOXPLOT: "boxplot",
    GeometryKind.VIOLIN: None,
    GeometryKind.DOTPLOT: "circle",
    GeometryKind.HISTOGRAM: "bar",
    GeometryKind.DENSITY: "area",
    GeometryKind.FREQPOLY: "line",
    GeometryKind.RIBBON: "area",
}

_CHANNEL_CLASS_MAP = {
    Channel.X: "X",
    Channel.Y: "Y",
    Channel.YMIN: "Y",
    Channel.YMAX: "Y2",
    Channel.COLOR: "Color",
    Channel.FILL: "Fill",
    Channel.ALPHA: "Opacity",
    Channel.SIZE: "Size",
    Channel.SHAPE: "Shape",
    Channel.LINETYPE: "StrokeDash",
    Channel.GROUP: "Detail",
}

_ENCODING_NAMES = {
    Channel.X: "x",
    Channel.Y: "y",
    Channel.YMIN: "y",
    Channel.YMAX: "y2",
    Channel.COLOR: "color",
    Channel.FILL: "fill",
    Channel.ALPHA: "opacity",
    Channel.SIZE: "size",
    Channel.SHAPE: "shape",
    Channel.LINETYPE: "strokeDash",
    Channel.GROUP: "detail",
}

_KIND_TYPES = {
    ColumnKind.CONTINUOUS: "quantitative",
    ColumnKind.DISCRETE: "nominal",
    ColumnKind.TEMPORAL: "temporal",
}

_STYLE_ALIASES = {"alpha": "opacity", "linetype": "strokeDash", "linewidth": "strokeWidth"}

_LINETYPE_DASHES = {"solid": [1, 0], "dashed": [4, 4], "dotted": [1, 3], "dotdash": [1, 3, 4, 3], "longdash": [8, 4]}

_NO_SCALE_CHANNELS = {Channel.YMAX, Channel.GROUP}


def build_altair_chart(
    render_spec: RenderSpec,
    *,
    title: str | None = None,
    width: int | None = None,
    height: int | None = None,
):
    """Render a RenderSpec into an Altair chart, layers drawn in paint order."""
    if not render_spec.layers:
        raise ConfigValidationError("RenderSpec must include at least one layer for Altair rendering.")

    layer_charts = [_build_layer_chart(layer, render_spec.scales) for layer in render_spec.layers]
    chart = layer_charts[0] if len(layer_charts) == 1 else alt.layer(*layer_charts)

    if title:
        chart = chart.properties(title=title)
    size = {key: value for key, value in (("width", width), ("height", height)) if value is not None}
    if size:
        chart = chart.properties(**size)
    return chart


def _build_layer_chart(layer: LayerSpec, scales: Mapping[Channel, Scale]):
    chart = alt.Chart(layer.data.frame)
    chart = _apply_geometry(chart, layer)
    encoding_kwargs = _encode_channels(layer, scales)
    if encoding_kwargs:
        chart = chart.encode(**encoding_kwargs)
    return chart


def _apply_geometry(chart, layer: LayerSpec):
    mark_type = _GEOMETRY_MARKS[layer.geometry]
    if mark_type is None:
        raise ConfigValidationError(f"Altair chart does not support geometry type '{layer.geometry}'")
    mark_fn = getattr(chart, f"mark_{mark_type}")
    return mark_fn(**_mark_properties(layer.style))


def _mark_properties(style: Mapping[str, Any]) -> dict[str, Any]:
    props: dict[str, Any] = {}
    for key, value in style.items():
        name = _STYLE_ALIASES.get(key, key)
        if name == "strokeDash" and isinstance(value, str):
            if value not in _LINETYPE_DASHES:
                valid = ", ".join(_LINETYPE_DASHES)
                raise ConfigValidationError(f"Unknown linetype '{value}'; expected one of: {valid}")
            value = _LINETYPE_DASHES[value]
        if name == "group":
            continue
        props[name] = value
    return props


def _encode_channels(layer: LayerSpec, scales: Mapping[Channel, Scale]) -> dict[str, Any]:
    encodings: dict[str, Any] = {}
    binned_axis = _binned_axis(layer)
    for channel, column in layer.mapping.columns().items():
        if channel is Channel.Y and Channel.YMIN in layer.mapping.columns():
            LOGGER.debug("Layer %d: 'ymin' takes the y encoding; ignoring 'y'", layer.index)
            continue
        encoding_name = _ENCODING_NAMES[channel]
        kwargs: dict[str, Any] = {"field": column}
        if channel is not Channel.YMAX:
            kwargs["type"] = _KIND_TYPES[layer.data.kind(column)]
        if channel is binned_axis:
            kwargs["field"] = f"{column}_start"
            encodings[f"{encoding_name}2"] = getattr(alt, f"{_CHANNEL_CLASS_MAP[channel]}2")(field=f"{column}_end")
            kwargs["title"] = column
        scale = scales.get(channel.scale_channel)
        if scale is not None and channel not in _NO_SCALE_CHANNELS:
            kwargs["scale"] = alt.Scale(domain=_scale_domain(scale))
        encodings[encoding_name] = getattr(alt, _CHANNEL_CLASS_MAP[channel])(**kwargs)
    return encodings


def _binned_axis(layer: LayerSpec) -> Channel | None:
    if layer.stat.kind is not StatKind.BIN or layer.geometry not in (GeometryKind.HISTOGRAM, GeometryKind.BAR):
        return None
    for axis in (Channel.X, Channel.Y):
        column = layer.mapping.column(axis)
        if column is not None and f"{column}_start" in layer.data:
            return axis
    return None


def _scale_domain(scale: Scale) -> list[Any]:
    if scale.domain_kind is ColumnKind.TEMPORAL:
        return [pd.Timestamp(value).isoformat() for value in scale.domain]
    return list(scale.domain)


__all__ = ["build_altair_chart"]
