"""Visual channels and the explicit bindings that feed them.

A binding is always one of three tagged choices: ``ColumnRef`` (data-driven,
contributes to the channel's scale), ``Constant`` (a literal, never touches a
scale) or ``Removed`` (only meaningful in a layer override, where it drops an
inherited channel). Bindings are never inferred from the shape of a value, so
a string constant can not be mistaken for a column name.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from layerplot.exceptions import ConfigValidationError


class Channel(StrEnum):
    """Closed set of visual channels."""

    X = "x"
    Y = "y"
    YMIN = "ymin"
    YMAX = "ymax"
    COLOR = "color"
    FILL = "fill"
    ALPHA = "alpha"
    SIZE = "size"
    SHAPE = "shape"
    LINETYPE = "linetype"
    GROUP = "group"

    @property
    def is_positional(self) -> bool:
        """Whether the channel places marks along an axis."""
        return self in _POSITIONAL

    @property
    def scale_channel(self) -> Channel:
        """Channel whose scale this channel shares."""
        return _SCALE_ALIASES.get(self, self)


_POSITIONAL = frozenset({Channel.X, Channel.Y, Channel.YMIN, Channel.YMAX})
_SCALE_ALIASES = {Channel.YMIN: Channel.Y, Channel.YMAX: Channel.Y}

_CHANNEL_ALIASES = {"colour": "color", "opacity": "alpha", "lty": "linetype"}


def parse_channel(name: str | Channel) -> Channel:
    """Normalize a channel name, accepting a few common aliases."""
    if isinstance(name, Channel):
        return name
    key = _CHANNEL_ALIASES.get(name, name)
    try:
        return Channel(key)
    except ValueError as exc:
        valid = ", ".join(channel.value for channel in Channel)
        raise ConfigValidationError(f"Unknown channel '{name}'; expected one of: {valid}") from exc


@dataclass(frozen=True)
class ColumnRef:
    """Binds a channel to a data column."""

    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ConfigValidationError(f"ColumnRef.name must be a non-empty string, got {self.name!r}")


@dataclass(frozen=True)
class Constant:
    """Binds a channel to a literal value."""

    value: Any


@dataclass(frozen=True)
class Removed:
    """Drops an inherited binding in a layer override."""


Binding = ColumnRef | Constant | Removed

REMOVED = Removed()


def col(name: str) -> ColumnRef:
    """Shorthand for ``ColumnRef(name)``."""
    return ColumnRef(name)


def const(value: Any) -> Constant:
    """Shorthand for ``Constant(value)``."""
    return Constant(value)


class AestheticMapping(Mapping[Channel, Binding]):
    """Immutable association of channels to bindings.

    Channels that are not present are absent. Lookups with ``get`` or
    ``binding`` accept channel names as well as ``Channel`` members.
    """

    __slots__ = ("_bindings",)

    def __init__(self, bindings: Mapping[Channel | str, Binding] | None = None) -> None:
        resolved: dict[Channel, Binding] = {}
        for key, binding in (bindings or {}).items():
            channel = parse_channel(key)
            if not isinstance(binding, ColumnRef | Constant | Removed):
                raise ConfigValidationError(
                    f"Channel '{channel}' must be bound with col(), const() or REMOVED, got {binding!r}"
                )
            if channel in resolved:
                raise ConfigValidationError(f"Channel '{channel}' is bound more than once")
            resolved[channel] = binding
        self._bindings = MappingProxyType({channel: resolved[channel] for channel in Channel if channel in resolved})

    def __getitem__(self, key: Channel | str) -> Binding:
        return self._bindings[parse_channel(key)]

    def __iter__(self) -> Iterator[Channel]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        try:
            return parse_channel(key) in self._bindings
        except ConfigValidationError:
            return False

    def __eq__(self, other: object) -> bool:
        if isinstance(other, AestheticMapping):
            return dict(self._bindings) == dict(other._bindings)
        return NotImplemented

    def __repr__(self) -> str:
        inner = ", ".join(f"{channel.value}={binding!r}" for channel, binding in self._bindings.items())
        return f"AestheticMapping({inner})"

    def binding(self, channel: Channel | str) -> Binding | None:
        """Binding of ``channel`` or None when absent."""
        return self._bindings.get(parse_channel(channel))

    def is_bound(self, channel: Channel | str) -> bool:
        """Whether ``channel`` has a column or constant binding."""
        return isinstance(self.binding(channel), ColumnRef | Constant)

    def column(self, channel: Channel | str) -> str | None:
        """Column name bound to ``channel``, or None for constants and absent channels."""
        binding = self.binding(channel)
        return binding.name if isinstance(binding, ColumnRef) else None

    def columns(self) -> dict[Channel, str]:
        """Data-driven channels and their column names."""
        return {channel: binding.name for channel, binding in self._bindings.items() if isinstance(binding, ColumnRef)}

    def constants(self) -> dict[Channel, Any]:
        """Constant channels and their values."""
        return {channel: binding.value for channel, binding in self._bindings.items() if isinstance(binding, Constant)}

    def updated(self, bindings: Mapping[Channel | str, Binding]) -> AestheticMapping:
        """New mapping with ``bindings`` replacing existing entries."""
        merged: dict[Channel | str, Binding] = dict(self._bindings)
        for key, binding in bindings.items():
            merged[parse_channel(key)] = binding
        return AestheticMapping(merged)


def aes(**bindings: Binding) -> AestheticMapping:
    """Build an AestheticMapping from keyword bindings, e.g. ``aes(x=col("date"), size=const(2))``."""
    return AestheticMapping(bindings)


__all__ = [
    "REMOVED",
    "AestheticMapping",
    "Binding",
    "Channel",
    "ColumnRef",
    "Constant",
    "Removed",
    "aes",
    "col",
    "const",
    "parse_channel",
]
