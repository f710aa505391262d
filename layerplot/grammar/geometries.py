"""Geometry kinds and the channels each one needs.

Every ``GeometryKind`` has exactly one ``GeometryRule``; the table is checked
for completeness at import time so adding a kind without a rule fails fast.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from layerplot.exceptions import ConfigValidationError, UnsatisfiedGeometryRequirementError
from layerplot.grammar.aesthetics import AestheticMapping, Channel
from layerplot.grammar.stats import StatKind


class GeometryKind(StrEnum):
    """Closed set of mark types a layer can draw."""

    LINE = "line"
    BAR = "bar"
    AREA = "area"
    POINT = "point"
    BOXPLOT = "boxplot"
    VIOLIN = "violin"
    DOTPLOT = "dotplot"
    HISTOGRAM = "histogram"
    DENSITY = "density"
    FREQPOLY = "freqpoly"
    RIBBON = "ribbon"


@dataclass(frozen=True)
class GeometryRule:
    """Channel requirements and default stat of one geometry.

    ``required`` channels must all be bound. When ``one_of`` is non-empty at
    least one of its channels must be bound. ``orientation`` is the positional
    axis the geometry runs along when the mapping leaves it ambiguous.
    """

    required: tuple[Channel, ...] = ()
    one_of: tuple[Channel, ...] = ()
    default_stat: StatKind = StatKind.IDENTITY
    orientation: Channel = Channel.X


_XY = (Channel.X, Channel.Y)

GEOMETRY_RULES: dict[GeometryKind, GeometryRule] = {
    GeometryKind.LINE: GeometryRule(required=_XY),
    GeometryKind.BAR: GeometryRule(required=_XY),
    GeometryKind.AREA: GeometryRule(required=_XY),
    GeometryKind.POINT: GeometryRule(required=_XY),
    GeometryKind.BOXPLOT: GeometryRule(required=_XY),
    GeometryKind.VIOLIN: GeometryRule(required=_XY),
    GeometryKind.RIBBON: GeometryRule(required=(Channel.X, Channel.YMIN, Channel.YMAX)),
    GeometryKind.HISTOGRAM: GeometryRule(one_of=_XY, default_stat=StatKind.BIN),
    GeometryKind.FREQPOLY: GeometryRule(one_of=_XY, default_stat=StatKind.BIN),
    GeometryKind.DOTPLOT: GeometryRule(one_of=_XY, default_stat=StatKind.BIN),
    GeometryKind.DENSITY: GeometryRule(one_of=_XY, default_stat=StatKind.DENSITY),
}

_missing_rules = [kind for kind in GeometryKind if kind not in GEOMETRY_RULES]
if _missing_rules:  # pragma: no cover - guards edits to the table above
    raise ConfigValidationError(f"Geometry kinds without a rule: {_missing_rules}")


def parse_geometry(kind: str | GeometryKind) -> GeometryKind:
    """Normalize a geometry name."""
    if isinstance(kind, GeometryKind):
        return kind
    try:
        return GeometryKind(kind)
    except ValueError as exc:
        valid = ", ".join(geometry.value for geometry in GeometryKind)
        raise ConfigValidationError(f"Unknown geometry '{kind}'; expected one of: {valid}") from exc


def geometry_rule(kind: GeometryKind | str) -> GeometryRule:
    """Rule for ``kind``."""
    return GEOMETRY_RULES[parse_geometry(kind)]


def default_stat(kind: GeometryKind) -> StatKind:
    """Stat a geometry uses when its layer does not name one."""
    return GEOMETRY_RULES[kind].default_stat


def missing_channels(kind: GeometryKind, mapping: AestheticMapping) -> list[str]:
    """Describe the requirements of ``kind`` that ``mapping`` leaves unsatisfied."""
    rule = GEOMETRY_RULES[kind]
    missing = [channel.value for channel in rule.required if not mapping.is_bound(channel)]
    if rule.one_of and not any(mapping.is_bound(channel) for channel in rule.one_of):
        missing.append(" or ".join(channel.value for channel in rule.one_of))
    return missing


def check_geometry_requirements(kind: GeometryKind, mapping: AestheticMapping, layer_index: int) -> None:
    """Raise if ``mapping`` does not satisfy the requirements of ``kind``."""
    missing = missing_channels(kind, mapping)
    if missing:
        raise UnsatisfiedGeometryRequirementError(
            f"geometry '{kind}' requires channel(s) {', '.join(repr(m) for m in missing)}",
            layer_index=layer_index,
            channel=missing[0],
        )


__all__ = [
    "GEOMETRY_RULES",
    "GeometryKind",
    "GeometryRule",
    "check_geometry_requirements",
    "default_stat",
    "geometry_rule",
    "missing_channels",
    "parse_geometry",
]
