"""
Tests for waterfall allocation and glide path interpolation.
"""

import math

import numpy as np
import pytest

from strategy_engine.models.allocation import (
    GlidePathPoint,
    WaterfallBucket,
    allocate_waterfall,
    build_glide_path,
    complement,
    ease,
    interpolate,
    normalize_progress,
    split_weights,
)


class TestWaterfall:
    """Test allocate_waterfall."""

    def test_monthly_contribution_example(self):
        """Test $3,000 over 401k/IRA caps with taxable overflow."""
        plan = allocate_waterfall(
            3000,
            [WaterfallBucket(name="401k", cap=1833), WaterfallBucket(name="ira", cap=542)],
            overflow_bucket="taxable",
        )

        assert plan.allocations == {"401k": 1833, "ira": 542, "taxable": 625}
        assert plan.unallocated == 0
        assert plan.total_allocated == 3000

    @pytest.mark.parametrize("budget", [0, 100, 1000, 1400, 1750, 5000])
    def test_conservation_without_overflow(self, budget):
        """Test that allocations sum to min(budget, total caps) and respect caps."""
        caps = [1000, 500, 250]
        buckets = [WaterfallBucket(name=f"b{i}", cap=cap) for i, cap in enumerate(caps)]

        plan = allocate_waterfall(budget, buckets)

        assert np.isclose(plan.total_allocated, min(budget, sum(caps)))
        assert np.isclose(plan.unallocated, budget - plan.total_allocated)
        for bucket in buckets:
            assert plan.amount(bucket.name) <= bucket.cap

    def test_order_matters(self):
        """Test that earlier buckets are filled first."""
        plan = allocate_waterfall(
            600, [WaterfallBucket(name="first", cap=500), WaterfallBucket(name="second", cap=500)]
        )

        assert plan.amount("first") == 500
        assert plan.amount("second") == 100

    def test_ineligible_buckets_skipped(self):
        """Test that flag and predicate eligibility are honoured."""
        plan = allocate_waterfall(
            1000,
            [
                WaterfallBucket(name="off", cap=500, eligible=False),
                WaterfallBucket(name="predicate_off", cap=500, eligible=lambda: False),
                WaterfallBucket(name="on", cap=300, eligible=lambda: True),
            ],
            overflow_bucket="rest",
        )

        assert plan.amount("off") == 0
        assert plan.amount("predicate_off") == 0
        assert plan.amount("on") == 300
        assert plan.amount("rest") == 700

    def test_zero_cap_and_zero_budget(self):
        """Test that zero caps are skipped and a zero budget allocates nothing."""
        plan = allocate_waterfall(
            0, [WaterfallBucket(name="a", cap=0), WaterfallBucket(name="b")], overflow_bucket="c"
        )

        assert plan.allocations == {"a": 0, "b": 0, "c": 0}

    def test_uncapped_bucket_takes_everything(self):
        """Test that a bucket with the default infinite cap absorbs the budget."""
        plan = allocate_waterfall(1234.5, [WaterfallBucket(name="all")])

        assert plan.caps["all"] == math.inf
        assert plan.amount("all") == 1234.5

    def test_negative_budget_rejected(self):
        """Test that a negative budget is a programming error."""
        with pytest.raises(ValueError):
            allocate_waterfall(-1, [WaterfallBucket(name="a", cap=10)])

    def test_negative_cap_rejected(self):
        """Test that a negative cap is rejected."""
        with pytest.raises(ValueError):
            WaterfallBucket(name="a", cap=-5)

    def test_duplicate_names_rejected(self):
        """Test that bucket and overflow names must be unique."""
        with pytest.raises(ValueError):
            allocate_waterfall(
                100, [WaterfallBucket(name="a", cap=10)], overflow_bucket="a"
            )


class TestEasing:
    """Test curve shapes and interpolation."""

    def test_interpolate_linear_midpoint(self):
        """Test the linear midpoint between 90% and 50%."""
        assert interpolate(0.90, 0.50, 0.5, "linear") == pytest.approx(0.70)

    @pytest.mark.parametrize(
        "shape,expected",
        [
            ("linear", 0.5),
            ("ease_in", 0.25),
            ("ease_out", math.sqrt(0.5)),
            ("s_curve", 0.5),
        ],
    )
    def test_shapes_at_midpoint(self, shape, expected):
        """Test each easing curve at p = 0.5."""
        assert ease(0.5, shape) == pytest.approx(expected)

    def test_s_curve_quarter(self):
        """Test the smoothstep value at p = 0.25."""
        assert ease(0.25, "s_curve") == pytest.approx(0.15625)

    def test_ease_vectorised(self):
        """Test that array input returns an array of the same shape."""
        result = ease(np.array([0.0, 0.5, 1.0]), "ease_in")

        assert isinstance(result, np.ndarray)
        assert np.allclose(result, [0.0, 0.25, 1.0])

    def test_progress_clamped(self):
        """Test that progress outside [0, 1] is clamped."""
        assert ease(1.5, "linear") == 1.0
        assert ease(-0.5, "linear") == 0.0

    def test_interpolate_stays_within_bounds(self):
        """Test that interpolation never leaves the [end, start] range."""
        for shape in ("linear", "ease_in", "ease_out", "s_curve"):
            for progress in np.linspace(-0.2, 1.2, 15):
                value = interpolate(0.9, 0.5, progress, shape)
                assert 0.5 - 1e-12 <= value <= 0.9 + 1e-12

    def test_smoothing_exponent(self):
        """Test that smoothing raises the eased progress to a power."""
        assert ease(0.5, "linear", smoothing=2.0) == pytest.approx(0.25)

    def test_invalid_shape_and_smoothing(self):
        """Test that unknown shapes and non-positive smoothing raise."""
        with pytest.raises(ValueError):
            ease(0.5, "zigzag")
        with pytest.raises(ValueError):
            ease(0.5, "linear", smoothing=0)

    def test_normalize_progress(self):
        """Test progress normalisation and the zero-width range."""
        assert normalize_progress(40, 30, 50) == pytest.approx(0.5)
        assert normalize_progress(60, 30, 50) == 1.0
        assert normalize_progress(20, 30, 50) == 0.0
        assert normalize_progress(30, 30, 30) == 1.0


class TestWeights:
    """Test weight helpers and GlidePathPoint validation."""

    def test_complement(self):
        """Test the two-asset counterweight."""
        assert complement(0.65) == pytest.approx(0.35)

    def test_split_weights(self):
        """Test spreading the remainder across several secondary assets."""
        weights = split_weights(0.6, {"bonds": 0.7, "cash": 0.3})

        assert weights["bonds"] == pytest.approx(0.28)
        assert weights["cash"] == pytest.approx(0.12)

    def test_point_weights_must_sum_to_one(self):
        """Test that an unbalanced point is rejected."""
        with pytest.raises(ValueError):
            GlidePathPoint(age=40, year=2030, primary_weight=0.7, secondary_weight=0.2)


class TestGlidePath:
    """Test build_glide_path."""

    def test_phases_hit_their_targets(self):
        """Test start, retirement and post-retirement weights."""
        path = build_glide_path(30, 65, 0.9, 0.5, 0.4, shape="linear", current_year=2025)

        assert len(path) == 51
        assert path[0].age == 30 and path[0].year == 2025
        assert path[0].primary_weight == pytest.approx(0.9)
        assert path[35].age == 65
        assert path[35].primary_weight == pytest.approx(0.5)
        assert path[-1].primary_weight == pytest.approx(0.4)

    def test_continuity_at_retirement(self):
        """Test that the chained phases join without a jump."""
        path = build_glide_path(30, 65, 0.9, 0.5, 0.4, shape="linear")
        weights = [point.primary_weight for point in path]

        assert abs(weights[35] - weights[34]) < 0.02
        assert abs(weights[36] - weights[35]) < 0.02

    def test_monotonic_for_declining_targets(self):
        """Test that a declining path never goes back up."""
        path = build_glide_path(25, 60, 0.95, 0.55, 0.35, shape="s_curve")
        weights = np.array([point.primary_weight for point in path])

        assert np.all(np.diff(weights) <= 1e-12)

    def test_bounds_and_complement(self):
        """Test clamping to bounds and that weights sum to one."""
        path = build_glide_path(30, 40, 1.0, 0.5, 0.0, shape="linear", horizon_years=30)

        for point in path:
            assert 0.15 <= point.primary_weight <= 0.95
            assert point.primary_weight + point.secondary_weight == pytest.approx(1.0)
        assert path[0].primary_weight == pytest.approx(0.95)
        assert path[-1].primary_weight == pytest.approx(0.15)

    def test_horizon_covers_post_retirement(self):
        """Test that the path spans at least the horizon and the post phase."""
        short = build_glide_path(60, 62, 0.6, 0.5, 0.4)
        long = build_glide_path(25, 65, 0.9, 0.5, 0.4)

        assert len(short) == 31
        assert len(long) == 56

    def test_invalid_bounds(self):
        """Test that inverted bounds are rejected."""
        with pytest.raises(ValueError):
            build_glide_path(30, 65, 0.9, 0.5, 0.4, bounds=(0.9, 0.1))
