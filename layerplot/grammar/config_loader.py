"""Build Plot objects from declarative configs.

Configs are plain dicts, OmegaConf ``DictConfig`` objects, or YAML files. A
config names a root data source, a root ``aesthetics`` block and a list of
``layers``; each layer may name its own ``data`` source and ``aesthetics``
override. Channel entries bind exactly one of ``field`` (a column), ``value``
(a constant) or ``removed: true``.

Example:
    >>> config = {
    ...     "data": {"source": "cases", "kinds": {"date": "temporal"}},
    ...     "aesthetics": {"x": {"field": "date"}, "y": {"field": "cases"}},
    ...     "layers": [
    ...         {"geometry": "bar", "stat": "summary-mean"},
    ...         {"geometry": "point", "aesthetics": {"size": {"value": 2}}},
    ...     ],
    ... }
    >>> plot = plot_from_config(config, {"cases": cases_df})
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from omegaconf import DictConfig, OmegaConf

from layerplot.exceptions import ConfigValidationError
from layerplot.grammar.aesthetics import REMOVED, AestheticMapping, Binding, ColumnRef, Constant
from layerplot.grammar.data_registry import DataRegistry, DataSource, resolve_data_source
from layerplot.grammar.data_table import DataTable
from layerplot.grammar.stats import StatConfig, parse_stat
from layerplot.grammar.structured_configs import BuildConfig, Layer, Plot
from layerplot.logger import LAYERPLOT_LOGGER

_STAT_FIELDS = (
    "kind",
    "bins",
    "bin_width",
    "boundary",
    "aggregator",
    "bandwidth",
    "adjust",
    "kernel",
    "n_points",
    "orientation",
)


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Get value from dict-like object (supports both dict and OmegaConf DictConfig)."""
    if isinstance(obj, dict | DictConfig):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _to_container(config: Mapping[str, Any] | DictConfig) -> dict[str, Any]:
    """Resolve interpolations and convert to plain Python containers."""
    if not isinstance(config, DictConfig):
        config = OmegaConf.create(dict(config))
    container = OmegaConf.to_container(config, resolve=True)
    if not isinstance(container, dict):
        raise ConfigValidationError("Plot config must be a mapping")
    return container  # type: ignore[return-value]


def plot_from_config(
    config: Mapping[str, Any] | DictConfig,
    data_registry: DataRegistry | Mapping[str, DataSource],
) -> Plot:
    """Convert a plot config into a Plot, resolving data sources through ``data_registry``."""
    cfg = _to_container(config)
    data_section = _get(cfg, "data") or {}
    if not isinstance(data_section, str) and _get(data_section, "source") is None:
        raise ConfigValidationError("No data source specified in config")
    root_data = _data_from_config(data_section, data_registry)

    layer_configs = _get(cfg, "layers") or []
    if not isinstance(layer_configs, list):
        raise ConfigValidationError("Plot config 'layers' must be a list")
    layers = [_layer_from_config(layer_cfg, data_registry, index) for index, layer_cfg in enumerate(layer_configs)]
    LAYERPLOT_LOGGER.debug("[config] plot with %d layer(s) over source %r", len(layers), _source_name(data_section))
    return Plot(data=root_data, mapping=mapping_from_config(_get(cfg, "aesthetics")), layers=layers)


def build_config_from_config(config: Mapping[str, Any] | DictConfig) -> BuildConfig:
    """Read the optional ``build`` section of a plot config."""
    build_section = _get(_to_container(config), "build") or {}
    unknown = set(build_section) - {"max_workers", "default_bins", "density_points"}
    if unknown:
        raise ConfigValidationError(f"Unknown build options: {sorted(unknown)}")
    if build_section:
        LAYERPLOT_LOGGER.info("[config] build options: %s", build_section)
    return BuildConfig(**build_section)


def load_plot_config(
    path: str | Path,
    data_registry: DataRegistry | Mapping[str, DataSource],
) -> tuple[Plot, BuildConfig]:
    """Load a YAML plot config and return the Plot with its BuildConfig."""
    config = OmegaConf.load(Path(path))
    if not isinstance(config, DictConfig):
        raise ConfigValidationError(f"Plot config at {path} must be a mapping")
    return plot_from_config(config, data_registry), build_config_from_config(config)


def mapping_from_config(aes_dict: Mapping[str, Any] | None, allow_removed: bool = False) -> AestheticMapping:
    """Convert an ``aesthetics`` block into an AestheticMapping."""
    if not aes_dict:
        return AestheticMapping()
    bindings: dict[str, Binding] = {}
    for channel_name, ch_dict in aes_dict.items():
        bindings[channel_name] = _binding_from_config(channel_name, ch_dict, allow_removed)
    return AestheticMapping(bindings)


def _binding_from_config(channel_name: str, ch_dict: Any, allow_removed: bool) -> Binding:
    if ch_dict is None:
        raise ConfigValidationError(f"Channel '{channel_name}' has an empty binding; use 'removed: true' to drop it")
    if not isinstance(ch_dict, dict):
        raise ConfigValidationError(
            f"Channel '{channel_name}' must be a mapping with 'field', 'value' or 'removed', got {ch_dict!r}"
        )
    unknown = set(ch_dict) - {"field", "value", "removed"}
    if unknown:
        raise ConfigValidationError(f"Channel '{channel_name}' has unknown keys {sorted(unknown)}")
    chosen = [key for key in ("field", "value") if ch_dict.get(key) is not None]
    if ch_dict.get("removed"):
        chosen.append("removed")
    if len(chosen) != 1:
        raise ConfigValidationError(
            f"Channel '{channel_name}' must specify exactly one of 'field', 'value' or 'removed'; "
            f"got {chosen or 'none'}"
        )
    if chosen[0] == "field":
        return ColumnRef(ch_dict["field"])
    if chosen[0] == "value":
        return Constant(ch_dict["value"])
    if not allow_removed:
        raise ConfigValidationError(f"Channel '{channel_name}' can only be removed in a layer's aesthetics")
    return REMOVED


def _source_name(data_section: Any) -> str:
    return data_section if isinstance(data_section, str) else str(_get(data_section, "source"))


def _data_from_config(data_section: Any, data_registry: DataRegistry | Mapping[str, DataSource]) -> DataTable:
    if isinstance(data_section, str):
        return resolve_data_source(data_section, data_registry)
    source = _get(data_section, "source")
    if not source:
        raise ConfigValidationError("Data configs must name a 'source'")
    return resolve_data_source(source, data_registry, _get(data_section, "kinds"))


def _stat_from_config(stat_cfg: Any) -> StatConfig | None:
    if stat_cfg is None:
        return None
    if isinstance(stat_cfg, str):
        return parse_stat(stat_cfg)
    unknown = set(stat_cfg) - set(_STAT_FIELDS)
    if unknown:
        raise ConfigValidationError(f"Unknown stat options: {sorted(unknown)}")
    params = dict(stat_cfg)
    kind = params.pop("kind", None)
    if kind is None:
        raise ConfigValidationError("Stat configs must name a 'kind'")
    return StatConfig(kind=kind, **params)


def _layer_from_config(
    layer_cfg: Any,
    data_registry: DataRegistry | Mapping[str, DataSource],
    index: int,
) -> Layer:
    if not isinstance(layer_cfg, dict):
        raise ConfigValidationError(f"Layer {index} config must be a mapping")
    geometry = _get(layer_cfg, "geometry")
    style = dict(_get(layer_cfg, "style") or {})
    if isinstance(geometry, dict):
        style = {**(_get(geometry, "props") or {}), **style}
        geometry = _get(geometry, "type")
    if not geometry:
        raise ConfigValidationError(f"Layer {index} must name a geometry")
    data_section = _get(layer_cfg, "data")
    aesthetics = _get(layer_cfg, "aesthetics")
    return Layer(
        geometry=geometry,
        mapping=mapping_from_config(aesthetics, allow_removed=True) if aesthetics else None,
        data=_data_from_config(data_section, data_registry) if data_section else None,
        stat=_stat_from_config(_get(layer_cfg, "stat")),
        style=style,
        name=_get(layer_cfg, "name"),
    )


__all__ = ["build_config_from_config", "load_plot_config", "mapping_from_config", "plot_from_config"]
