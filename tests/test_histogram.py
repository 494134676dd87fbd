"""Test histogram rendering.

Tests for src.smlm_render.histogram:
    - Binning, counts and out-of-bounds points
    - Intensity scenario (counts 2 and 1 → colormap(1.0), colormap(0.5))
    - Grayscale, manual, field and categorical color modes
    - Raw counts when clipping is disabled

Run:
    pytest tests/test_histogram.py -v
"""

import numpy as np
import pytest

from src.smlm_render.color_mapping import resolve_colors
from src.smlm_render.colormaps import ColormapRegistry, default_registry
from src.smlm_render.histogram import accumulate_counts, bin_points, render_histogram
from src.smlm_render.points import extract_arrays, points_from_arrays
from src.smlm_render.renderer import render_points
from src.smlm_render.types import (
    CategoricalMapping,
    FieldMapping,
    GrayscaleMapping,
    HistogramStrategy,
    IntensityMapping,
    ManualMapping,
    Target,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def target():
    """30x30 target at 100 nm/pixel covering (0, 3) μm on both axes."""
    return Target(width=30, height=30, pixel_size=100.0, x_range=(0.0, 3.0), y_range=(0.0, 3.0))


@pytest.fixture
def scenario_points():
    """Two points at (1.0, 1.0) μm and one at (2.0, 2.0) μm."""
    return points_from_arrays([1.0, 1.0, 2.0], [1.0, 1.0, 2.0])


@pytest.fixture
def gray_registry():
    """Registry with an identity colormap so pixel values equal normalized counts."""
    registry = ColormapRegistry(use_matplotlib=False)
    registry.register_colormap("identity", lambda v: np.stack([v, v, v], axis=-1))
    return registry


# ============================================================================
# TEST SUITE 1: Binning
# ============================================================================

def test_bin_and_count(target, scenario_points):
    rows, cols, mask = bin_points(extract_arrays(scenario_points), target)
    assert mask.all()
    counts = accumulate_counts(rows, cols, target)
    # 10.5 and 20.5 round half to even: pixels (10, 10) and (20, 20), 1-based
    assert counts[9, 9] == 2.0
    assert counts[19, 19] == 1.0
    assert counts.sum() == 3.0


def test_out_of_bounds_points_counted(target):
    points = points_from_arrays([1.0, -1.0, 5.0], [1.0, 1.0, 1.0])
    resolved = resolve_colors(points, GrayscaleMapping(clip_percentile=1.0))
    image, n_skipped = render_histogram(extract_arrays(points), target, resolved)
    assert n_skipped == 2
    assert np.count_nonzero(image[..., 0]) == 1


# ============================================================================
# TEST SUITE 2: Intensity and grayscale
# ============================================================================

def test_intensity_scenario(target, scenario_points):
    """Count 2 → colormap(1.0), count 1 → colormap(0.5)."""
    mapping = IntensityMapping(colormap="inferno", clip_percentile=1.0)
    image, info = render_points(scenario_points, target, HistogramStrategy(), mapping)
    cmap = default_registry().get_colormap("inferno")
    np.testing.assert_array_equal(image[9, 9], cmap(np.array(1.0)))
    np.testing.assert_array_equal(image[19, 19], cmap(np.array(0.5)))
    np.testing.assert_array_equal(image[0, 0], cmap(np.array(0.0)))
    assert image.shape == (30, 30, 3)
    assert info.n_points == 3


def test_intensity_scenario_pre_colormap(target, scenario_points, gray_registry):
    mapping = IntensityMapping(colormap="identity", clip_percentile=1.0)
    image, _ = render_points(scenario_points, target, HistogramStrategy(), mapping, colormaps=gray_registry)
    np.testing.assert_array_equal(image[9, 9], 1.0)
    np.testing.assert_array_equal(image[19, 19], 0.5)


def test_distinct_pixels_normalize_to_one(target):
    points = points_from_arrays([0.5, 1.0, 1.5, 2.5], [0.5, 2.0, 1.5, 0.3])
    image, _ = render_points(points, target, HistogramStrategy(), GrayscaleMapping(clip_percentile=0.99))
    lit = image[..., 0] > 0
    assert np.count_nonzero(lit) == 4
    np.testing.assert_array_equal(image[lit], 1.0)


def test_grayscale_channels_equal(target, scenario_points):
    image, _ = render_points(scenario_points, target, HistogramStrategy(), GrayscaleMapping(clip_percentile=1.0))
    np.testing.assert_array_equal(image[..., 0], image[..., 1])
    np.testing.assert_array_equal(image[..., 1], image[..., 2])
    assert image[19, 19, 0] == 0.5


# ============================================================================
# TEST SUITE 3: Per-point color modes
# ============================================================================

def test_manual_color(target, scenario_points):
    image, _ = render_points(
        scenario_points, target, HistogramStrategy(), ManualMapping(rgb=(1.0, 0.0, 0.0)), clip_percentile=1.0
    )
    np.testing.assert_array_equal(image[9, 9], (1.0, 0.0, 0.0))
    np.testing.assert_array_equal(image[19, 19], (0.5, 0.0, 0.0))


def test_manual_raw_counts_without_clip(target, scenario_points):
    image, _ = render_points(
        scenario_points, target, HistogramStrategy(), ManualMapping(rgb=(0.0, 1.0, 0.0)), clip_percentile=None
    )
    np.testing.assert_array_equal(image[9, 9], (0.0, 2.0, 0.0))


def test_field_count_weighted_average(target, gray_registry):
    """Two points in one pixel show the mean of their values."""
    points = points_from_arrays([1.0, 1.0, 2.0], [1.0, 1.0, 2.0], z=[0.0, 10.0, 10.0])
    mapping = FieldMapping(attribute="z", colormap="identity", range=(0.0, 10.0))
    image, info = render_points(
        points, target, HistogramStrategy(), mapping, clip_percentile=1.0, colormaps=gray_registry
    )
    np.testing.assert_allclose(image[9, 9], 0.5)
    np.testing.assert_allclose(image[19, 19], 0.5)
    assert image[0, 0].sum() == 0.0
    assert info.field_range == (0.0, 10.0)


def test_field_raw_counts_without_clip(target, gray_registry):
    """Without clipping the field color is scaled by the raw count and may exceed 1."""
    points = points_from_arrays([1.0, 1.0, 2.0], [1.0, 1.0, 2.0], z=[10.0, 10.0, 10.0])
    mapping = FieldMapping(attribute="z", colormap="identity", range=(0.0, 10.0))
    image, _ = render_points(
        points, target, HistogramStrategy(), mapping, clip_percentile=None, colormaps=gray_registry
    )
    np.testing.assert_array_equal(image[9, 9], (2.0, 2.0, 2.0))
    np.testing.assert_array_equal(image[19, 19], (1.0, 1.0, 1.0))
    assert image.max() == 2.0
    assert np.count_nonzero(image[..., 0]) == 2


def test_manual_empty_point_set_is_black(target):
    """No points means no light, not a flat mid-gray fill."""
    image, info = render_points(
        [], target, HistogramStrategy(), ManualMapping(rgb=(0.0, 0.0, 1.0)), clip_percentile=1.0
    )
    assert image.shape == (30, 30, 3)
    assert image.sum() == 0.0
    assert info.n_points == 0


def test_categorical_average_color(target):
    registry = ColormapRegistry(use_matplotlib=False)
    registry.register_palette("rg", ["red", "lime"])
    points = points_from_arrays([1.0, 1.0, 2.0], [1.0, 1.0, 2.0], cluster=[1, 2, 2])
    mapping = CategoricalMapping(attribute="cluster", palette="rg")

    image, info = render_points(points, target, HistogramStrategy(), mapping, clip_percentile=1.0, colormaps=registry)
    np.testing.assert_allclose(image[9, 9], (0.5, 0.5, 0.0))
    np.testing.assert_allclose(image[19, 19], (0.0, 0.5, 0.0))
    assert info.field_range == (1.0, 2.0)

    raw, _ = render_points(points, target, HistogramStrategy(), mapping, clip_percentile=None, colormaps=registry)
    np.testing.assert_allclose(raw[9, 9], (1.0, 1.0, 0.0))
