"""Custom exception hierarchy for the layerplot package."""

from __future__ import annotations

from collections.abc import Sequence


class LayerplotException(Exception):
    """Base exception for layerplot."""


class ConfigValidationError(LayerplotException):
    """Exception raised when a config is invalid."""


class GrammarError(ConfigValidationError):
    """A configuration problem attributable to one layer and/or channel."""

    def __init__(self, message: str, *, layer_index: int | None = None, channel: str | None = None) -> None:
        self.layer_index = layer_index
        self.channel = channel
        if layer_index is not None:
            message = f"Layer {layer_index}: {message}"
        super().__init__(message)


class MissingColumnError(GrammarError):
    """A mapping references a column absent from the effective dataset."""


class ChannelTypeMismatchError(GrammarError):
    """A bound column's kind conflicts with a scale or a stat requirement."""


class UnsatisfiedGeometryRequirementError(GrammarError):
    """A geometry's mandatory channels are absent after resolution."""


class InvalidScaleDomainError(GrammarError):
    """A frozen scale has no usable values."""


class InvalidStatParameterError(GrammarError):
    """A stat parameter is out of range or the stat cannot run on its input."""


class EmptyDatasetError(GrammarError):
    """The root dataset of a plot has no rows."""


class PlotBuildError(ConfigValidationError):
    """Aggregates every error collected while building a plot."""

    def __init__(self, errors: Sequence[ConfigValidationError]) -> None:
        self.errors = list(errors)
        lines = "\n".join(f"  - {error}" for error in self.errors)
        super().__init__(f"Plot build failed with {len(self.errors)} error(s):\n{lines}")
