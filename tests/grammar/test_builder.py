"""Tests for assembling render specs from plots."""

import pandas as pd
import pytest

from layerplot.exceptions import (
    ChannelTypeMismatchError,
    ConfigValidationError,
    EmptyDatasetError,
    InvalidScaleDomainError,
    InvalidStatParameterError,
    MissingColumnError,
    PlotBuildError,
    UnsatisfiedGeometryRequirementError,
)
from layerplot.grammar.aesthetics import REMOVED, Channel, ColumnRef, aes, col, const
from layerplot.grammar.builder import build_plot, build_plot_or_errors
from layerplot.grammar.data_table import ColumnKind, DataTable
from layerplot.grammar.geometries import GeometryKind
from layerplot.grammar.stats import StatConfig, StatKind
from layerplot.grammar.structured_configs import BuildConfig, Layer, Plot, RenderSpec


@pytest.fixture
def cases() -> DataTable:
    """Daily cases per region, regions first seen as Midwest, Northeast, South."""
    df = pd.DataFrame(
        {
            "date": pd.to_datetime(
                ["2020-03-01", "2020-03-01", "2020-03-02", "2020-03-02", "2020-03-03", "2020-03-03"]
            ),
            "region": ["Midwest", "Northeast", "Midwest", "South", "Northeast", "South"],
            "cases": [10.0, 2.0, 30.0, 4.0, 50.0, 6.0],
        }
    )
    return DataTable.from_frame(df)


class TestBuildPlot:
    """Tests for build_plot."""

    def test_summary_and_identity_layers_share_y_scale(self, cases):
        """Test that the y scale spans raw values and means across layers."""
        plot = Plot(
            data=cases,
            mapping=aes(x=col("date"), y=col("cases")),
            layers=[
                Layer(geometry="bar", stat="summary-mean"),
                Layer(geometry="point", mapping=aes(size=const(2))),
            ],
        )
        spec = build_plot(plot)

        bars, points = spec.layers
        assert list(bars.data.column("cases")) == [6.0, 17.0, 28.0]
        assert len(bars.data) == cases.frame["date"].nunique()
        assert points.data is cases
        assert points.style == {"size": 2}
        assert points.mapping.constants() == {Channel.SIZE: 2}

        y_scale = spec.scale("y")
        assert y_scale.domain == (2.0, 50.0)
        assert spec.scale("size") is None

    def test_discrete_levels_follow_first_seen_order(self, cases):
        """Test legend order across layers."""
        midwest = DataTable.from_frame(cases.frame[cases.frame["region"] == "Midwest"])
        plot = Plot(
            data=cases,
            mapping=aes(x=col("date"), y=col("cases"), color=col("region")),
            layers=[Layer(geometry="line", data=midwest), Layer(geometry="point")],
        )
        spec = build_plot(plot)
        assert spec.scale(Channel.COLOR).domain == ("Midwest", "Northeast", "South")

    def test_constant_override_does_not_feed_scale(self, cases):
        """Test that a layer with a constant linetype contributes no linetype levels."""
        south = DataTable.from_frame(cases.frame[cases.frame["region"] == "South"])
        midwest = DataTable.from_frame(cases.frame[cases.frame["region"] == "Midwest"])
        plot = Plot(
            data=cases,
            mapping=aes(x=col("date"), y=col("cases"), linetype=col("region")),
            layers=[
                Layer(geometry="line", data=south, mapping=aes(linetype=const("dashed"))),
                Layer(geometry="line", data=midwest),
            ],
        )
        spec = build_plot(plot)
        assert spec.scale("linetype").domain == ("Midwest",)
        assert spec.layers[0].style == {"linetype": "dashed"}

    def test_list_constant_reaches_style(self, cases):
        """Test that a dash-pattern list constant builds and is passed through as style."""
        plot = Plot(
            data=cases,
            mapping=aes(x=col("date"), y=col("cases")),
            layers=[Layer(geometry="line", mapping=aes(linetype=const([4, 4])))],
        )
        spec = build_plot(plot)
        assert spec.layers[0].style == {"linetype": [4, 4]}
        assert Channel.LINETYPE not in spec.scales

    def test_removed_y_on_line_fails(self, cases):
        """Test that removing a required channel names the layer and channel."""
        plot = Plot(
            data=cases,
            mapping=aes(x=col("date"), y=col("cases")),
            layers=[Layer(geometry="point"), Layer(geometry="line", mapping=aes(y=REMOVED))],
        )
        with pytest.raises(PlotBuildError) as info:
            build_plot(plot)
        [error] = info.value.errors
        assert isinstance(error, UnsatisfiedGeometryRequirementError)
        assert error.layer_index == 1
        assert error.channel == "y"
        assert "'y'" in str(info.value)

    def test_collects_errors_from_every_layer(self, cases):
        """Test that build reports all layers' errors together."""
        plot = Plot(
            data=cases,
            mapping=aes(x=col("date"), y=col("cases")),
            layers=[
                Layer(geometry="line", mapping=aes(y=REMOVED)),
                Layer(geometry="point", mapping=aes(color=col("missing"))),
                Layer(geometry="histogram", mapping=aes(x=col("cases"), y=REMOVED), stat=StatConfig("bin", bins=0)),
                Layer(geometry="point"),
            ],
        )
        with pytest.raises(PlotBuildError) as info:
            build_plot(plot)
        kinds = [type(error) for error in info.value.errors]
        assert kinds == [UnsatisfiedGeometryRequirementError, MissingColumnError, InvalidStatParameterError]
        assert [error.layer_index for error in info.value.errors] == [0, 1, 2]

    def test_kind_mismatch_across_layers(self, cases):
        """Test that continuous and discrete bindings on one channel conflict."""
        plot = Plot(
            data=cases,
            mapping=aes(x=col("date"), y=col("cases")),
            layers=[
                Layer(geometry="point", mapping=aes(color=col("cases"))),
                Layer(geometry="line", mapping=aes(color=col("region"))),
            ],
        )
        errors = build_plot_or_errors(plot.data, plot.mapping, plot.layers)
        assert isinstance(errors, list)
        [error] = errors
        assert isinstance(error, ChannelTypeMismatchError)
        assert error.layer_index == 1
        assert error.channel == "color"

    def test_invalid_scale_domain(self):
        """Test that an all-NaN continuous channel is reported."""
        table = DataTable.from_records({"x": [1.0, 2.0], "y": [float("nan"), float("nan")]})
        plot = Plot(data=table, mapping=aes(x=col("x"), y=col("y")), layers=[Layer(geometry="point")])
        with pytest.raises(PlotBuildError) as info:
            build_plot(plot)
        [error] = info.value.errors
        assert isinstance(error, InvalidScaleDomainError)
        assert error.channel == "y"

    def test_empty_root_dataset(self):
        """Test that an empty root dataset is rejected."""
        plot = Plot(data=DataTable.from_records({"x": []}), layers=[Layer(geometry="point")])
        with pytest.raises(PlotBuildError) as info:
            build_plot(plot)
        assert isinstance(info.value.errors[0], EmptyDatasetError)
        assert isinstance(info.value, ConfigValidationError)

    def test_empty_root_dataset_is_collected_with_layer_errors(self):
        """Test that an empty root dataset is reported alongside the layers' errors."""
        plot = Plot(
            data=DataTable.from_records({"v": []}),
            mapping=aes(x=col("v"), y=col("v")),
            layers=[Layer(geometry="point", mapping=aes(color=col("missing")))],
        )
        errors = build_plot_or_errors(plot.data, plot.mapping, plot.layers)
        assert [type(error) for error in errors] == [EmptyDatasetError, MissingColumnError]
        assert errors[1].layer_index == 0
        assert errors[1].channel == "color"

    def test_paint_order_follows_layer_order(self, cases):
        """Test that swapping layers only swaps the render spec entries."""
        mapping = aes(x=col("date"), y=col("cases"), color=col("region"))
        line = Layer(geometry="line", name="trend")
        points = Layer(geometry="point", name="raw")
        forward = build_plot(Plot(data=cases, mapping=mapping, layers=[line, points]))
        backward = build_plot(Plot(data=cases, mapping=mapping, layers=[points, line]))
        assert [layer.name for layer in forward] == ["trend", "raw"]
        assert [layer.name for layer in backward] == ["raw", "trend"]
        assert [layer.index for layer in backward] == [0, 1]
        assert dict(forward.scales) == dict(backward.scales)

    def test_histogram_maps_y_to_count(self, cases):
        """Test that a histogram layer draws the computed counts."""
        plot = Plot(
            data=cases,
            mapping=aes(x=col("cases")),
            layers=[Layer(geometry=GeometryKind.HISTOGRAM, stat=StatConfig(StatKind.BIN, bins=2))],
        )
        spec = build_plot(plot)
        [layer] = spec.layers
        assert layer.stat.kind is StatKind.BIN
        assert layer.mapping["y"] == ColumnRef("count")
        assert spec.scale("y").domain == (2.0, 4.0)
        assert spec.scale("x").domain == (2.0, 50.0)

    @pytest.mark.parametrize("geometry", ["histogram", "density"])
    def test_continuous_fill_on_computed_layer_is_dropped(self, geometry):
        """Test that a continuous fill which does not survive the stat is dropped instead of failing."""
        data = DataTable.from_records({"v": [0.0, 1.0, 2.0, 3.0, 4.0], "w": [0.5, 1.5, 2.5, 3.5, 4.5]})
        plot = Plot(data=data, mapping=aes(x=col("v"), fill=col("w")), layers=[Layer(geometry)])
        spec = build_plot(plot)
        [layer] = spec.layers
        assert "fill" not in layer.mapping
        assert "w" not in layer.data
        assert Channel.FILL not in spec.scales
        assert layer.mapping["x"] == ColumnRef("v")

    def test_histogram_with_both_axes_bound_bins_x(self):
        """Test that a histogram under a root mapping with x and y bins x and computes y."""
        data = DataTable.from_records({"v": [0.0, 1.0, 2.0, 3.0, 4.0], "c": [10.0, 20.0, 30.0, 40.0, 50.0]})
        mapping = aes(x=col("v"), y=col("c"))
        spec = build_plot(Plot(data=data, mapping=mapping, layers=[Layer("histogram", stat=StatConfig("bin", bins=2))]))
        [layer] = spec.layers
        assert layer.mapping["x"] == ColumnRef("v")
        assert layer.mapping["y"] == ColumnRef("count")
        assert spec.scale("y").domain == (2.0, 3.0)

    def test_histogram_orientation_y(self):
        """Test that orientation 'y' bins the y column and computes x."""
        data = DataTable.from_records({"v": [0.0, 1.0, 2.0, 3.0, 4.0], "c": [10.0, 20.0, 30.0, 40.0, 50.0]})
        layer = Layer("histogram", stat=StatConfig("bin", bins=2, orientation="y"))
        spec = build_plot(Plot(data=data, mapping=aes(x=col("v"), y=col("c")), layers=[layer]))
        [built] = spec.layers
        assert built.mapping["x"] == ColumnRef("count")
        assert built.mapping["y"] == ColumnRef("c")
        assert spec.scale("y").domain == (10.0, 50.0)

    def test_invalid_orientation_is_collected(self, cases):
        """Test that a bad orientation is reported as a layer error."""
        layer = Layer("histogram", mapping=aes(x=col("cases")), stat=StatConfig("bin", orientation="z"))
        errors = build_plot_or_errors(cases, aes(), [layer])
        [error] = errors
        assert isinstance(error, InvalidStatParameterError)
        assert error.layer_index == 0

    def test_ribbon_and_line_share_scales(self, cases):
        """Test that a spread ribbon and a mean line agree on the y and fill scales."""
        spread = pd.DataFrame(
            {
                "date": pd.to_datetime(["2020-03-01", "2020-03-02"]),
                "region": ["South", "Midwest"],
                "low": [0.0, 5.0],
                "high": [8.0, 60.0],
            }
        )
        plot = Plot(
            data=cases,
            mapping=aes(x=col("date"), y=col("cases"), fill=col("region")),
            layers=[
                Layer(
                    geometry="ribbon",
                    data=DataTable.from_frame(spread),
                    mapping=aes(y=REMOVED, ymin=col("low"), ymax=col("high")),
                ),
                Layer(geometry="line", stat="summary-mean"),
            ],
        )
        spec = build_plot(plot)
        assert spec.scale("y").domain == (0.0, 60.0)
        assert spec.scale("ymin") is spec.scale("y")
        assert spec.scale("fill").domain == ("South", "Midwest", "Northeast")

    def test_default_stat_from_geometry(self, cases):
        """Test that density layers run the density stat by default."""
        plot = Plot(data=cases, mapping=aes(x=col("cases")), layers=[Layer(geometry="density")])
        spec = build_plot(plot, BuildConfig(density_points=16))
        [layer] = spec.layers
        assert layer.stat.kind is StatKind.DENSITY
        assert len(layer.data) == 16
        assert layer.mapping["y"] == ColumnRef("density")
        assert spec.scale("y").domain_kind is ColumnKind.CONTINUOUS

    def test_parallel_preparation_matches_sequential(self, cases):
        """Test that concurrent layer preparation gives the same result."""
        plot = Plot(
            data=cases,
            mapping=aes(x=col("date"), y=col("cases"), color=col("region")),
            layers=[
                Layer(geometry="bar", stat="summary-sum"),
                Layer(geometry="point"),
                Layer(geometry="line", mapping=aes(color=REMOVED)),
            ],
        )
        sequential = build_plot(plot)
        parallel = build_plot(plot, BuildConfig(max_workers=3))
        assert dict(sequential.scales) == dict(parallel.scales)
        for left, right in zip(sequential.layers, parallel.layers, strict=True):
            assert left.geometry == right.geometry
            assert left.mapping == right.mapping
            pd.testing.assert_frame_equal(left.data.frame, right.data.frame)

    def test_build_plot_or_errors_returns_spec(self, cases):
        """Test the non-raising entry point on a valid plot."""
        result = build_plot_or_errors(cases, aes(x=col("date"), y=col("cases")), [Layer(geometry="point")])
        assert isinstance(result, RenderSpec)
        assert len(result) == 1

    def test_build_does_not_mutate_plot(self, cases):
        """Test that building leaves the plot and its data untouched."""
        before = cases.frame.copy()
        root = aes(x=col("date"), y=col("cases"), color=col("region"))
        plot = Plot(data=cases, mapping=root, layers=[Layer(geometry="bar", stat="summary-mean")])
        build_plot(plot)
        pd.testing.assert_frame_equal(cases.frame, before)
        assert plot.mapping == root


class TestPlot:
    """Tests for the Plot value."""

    def test_root_mapping_can_not_remove(self, cases):
        """Test that REMOVED is rejected in the root mapping."""
        with pytest.raises(ConfigValidationError, match="can not remove"):
            Plot(data=cases, mapping=aes(x=REMOVED))

    def test_add_layers_returns_new_plot(self, cases):
        """Test that layers are appended without modifying the original."""
        plot = Plot(data=cases, layers=[Layer(geometry="point")])
        extended = plot.add_layers(Layer(geometry="line"))
        assert len(plot.layers) == 1
        assert [layer.geometry for layer in extended.layers] == [GeometryKind.POINT, GeometryKind.LINE]

    def test_build_config_validation(self):
        """Test BuildConfig range checks."""
        with pytest.raises(ConfigValidationError, match="max_workers"):
            BuildConfig(max_workers=0)
        with pytest.raises(ConfigValidationError, match="density_points"):
            BuildConfig(density_points=1)
