"""Layerplot: a declarative grammar for layered visualizations."""

from .grammar.aesthetics import REMOVED, AestheticMapping, Channel, aes, col, const
from .grammar.builder import build_plot, build_plot_or_errors
from .grammar.data_table import ColumnKind, DataTable
from .grammar.geometries import GeometryKind
from .grammar.stats import StatConfig, StatKind
from .grammar.structured_configs import BuildConfig, Layer, Plot, RenderSpec

__all__ = [
    "REMOVED",
    "AestheticMapping",
    "BuildConfig",
    "Channel",
    "ColumnKind",
    "DataTable",
    "GeometryKind",
    "Layer",
    "Plot",
    "RenderSpec",
    "StatConfig",
    "StatKind",
    "aes",
    "build_plot",
    "build_plot_or_errors",
    "col",
    "const",
]
