"""Tests for channels, bindings and aesthetic mappings."""

import pytest

from layerplot.exceptions import ConfigValidationError
from layerplot.grammar.aesthetics import (
    REMOVED,
    AestheticMapping,
    Channel,
    ColumnRef,
    Constant,
    aes,
    col,
    const,
    parse_channel,
)


class TestParseChannel:
    """Tests for parse_channel."""

    def test_accepts_names_and_aliases(self):
        """Test that channel names and aliases resolve."""
        assert parse_channel("x") is Channel.X
        assert parse_channel("colour") is Channel.COLOR
        assert parse_channel("opacity") is Channel.ALPHA

    def test_unknown_channel_raises(self):
        """Test that unknown names raise."""
        with pytest.raises(ConfigValidationError, match="Unknown channel 'depth'"):
            parse_channel("depth")

    def test_col_is_not_an_alias(self):
        """Test that 'col' is not accepted as a shorthand for color."""
        with pytest.raises(ConfigValidationError, match="Unknown channel 'col'"):
            parse_channel("col")
        with pytest.raises(ConfigValidationError, match="Unknown channel 'col'"):
            aes(col=col("region"))


class TestChannel:
    """Tests for Channel properties."""

    def test_range_channels_share_the_y_scale(self):
        """Test that ymin and ymax feed the y scale."""
        assert Channel.YMIN.scale_channel is Channel.Y
        assert Channel.YMAX.scale_channel is Channel.Y
        assert Channel.COLOR.scale_channel is Channel.COLOR

    def test_positional(self):
        """Test positional classification."""
        assert Channel.X.is_positional
        assert not Channel.FILL.is_positional


class TestAestheticMapping:
    """Tests for AestheticMapping."""

    def test_bindings_are_explicit(self):
        """Test that raw values are rejected."""
        with pytest.raises(ConfigValidationError, match="col\\(\\), const\\(\\) or REMOVED"):
            AestheticMapping({"x": "date"})

    def test_string_constant_is_not_a_column(self):
        """Test that a string constant stays a constant."""
        mapping = aes(x=col("date"), color=const("date"))
        assert mapping.columns() == {Channel.X: "date"}
        assert mapping.constants() == {Channel.COLOR: "date"}

    def test_lookup_by_name_and_channel(self):
        """Test lookups with strings and enum members."""
        mapping = aes(x=col("a"))
        assert mapping["x"] == ColumnRef("a")
        assert mapping[Channel.X] == ColumnRef("a")
        assert mapping.binding("y") is None
        assert "x" in mapping
        assert "y" not in mapping
        assert "nonsense" not in mapping

    def test_is_bound(self):
        """Test that removed and absent channels are not bound."""
        mapping = aes(x=col("a"), y=const(1), color=REMOVED)
        assert mapping.is_bound("x")
        assert mapping.is_bound("y")
        assert not mapping.is_bound("color")
        assert not mapping.is_bound("fill")

    def test_duplicate_alias_raises(self):
        """Test that binding a channel twice through aliases raises."""
        with pytest.raises(ConfigValidationError, match="more than once"):
            AestheticMapping({"color": col("a"), "colour": col("b")})

    def test_updated_returns_new_mapping(self):
        """Test that updated leaves the original untouched."""
        mapping = aes(x=col("a"))
        updated = mapping.updated({"y": Constant(3)})
        assert "y" not in mapping
        assert updated["y"] == Constant(3)

    def test_equality(self):
        """Test value equality."""
        assert aes(x=col("a"), y=col("b")) == aes(y=col("b"), x=col("a"))
        assert aes(x=col("a")) != aes(x=col("b"))

    def test_unhashable_constants(self):
        """Test that mappings holding list constants compare and update normally."""
        mapping = aes(x=col("a"), linetype=const([4, 4]))
        assert mapping == aes(linetype=const([4, 4]), x=col("a"))
        assert mapping.updated({"y": col("b")})["linetype"] == Constant([4, 4])
        with pytest.raises(TypeError):
            hash(mapping)

    def test_empty_column_name_raises(self):
        """Test that column references need a name."""
        with pytest.raises(ConfigValidationError, match="non-empty"):
            col("  ")
