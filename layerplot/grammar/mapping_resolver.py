"""Resolve the effective aesthetic mapping of a layer."""

from __future__ import annotations

from layerplot.grammar.aesthetics import AestheticMapping, Binding, Channel, Removed


def resolve_mapping(root: AestheticMapping, override: AestheticMapping | None = None) -> AestheticMapping:
    """Merge a layer override onto the root mapping.

    For every channel an explicit override binding wins, including ``REMOVED``
    which resolves to absent. Channels the override does not mention are
    inherited verbatim from ``root``. Neither argument is modified.
    """
    if not override:
        return root
    resolved: dict[Channel, Binding] = {}
    for channel in Channel:
        binding = override.binding(channel)
        if binding is None:
            binding = root.binding(channel)
        if binding is None or isinstance(binding, Removed):
            continue
        resolved[channel] = binding
    return AestheticMapping(resolved)


__all__ = ["resolve_mapping"]
