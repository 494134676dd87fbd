"""Test multi-channel overlay compositing.

Tests for src.smlm_render.overlay:
    - Red + green without per-channel normalization → exactly yellow
    - Clamp to [0, 1] regardless of channel count
    - Per-channel normalization equalizes dense and sparse channels
    - Empty channels add no light
    - Shared data-bounds target from all channels combined
    - Argument validation

Run:
    pytest tests/test_overlay.py -v
"""

import numpy as np
import pytest

from src.smlm_render.overlay import render_overlay
from src.smlm_render.points import Point, points_from_arrays
from src.smlm_render.types import (
    CircleStrategy,
    ConfigError,
    GaussianStrategy,
    HistogramStrategy,
    Target,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def target():
    """20x20 target at 100 nm/pixel."""
    return Target(width=20, height=20, pixel_size=100.0, x_range=(0.0, 2.0), y_range=(0.0, 2.0))


@pytest.fixture
def same_pixel_channels():
    """Two channels with one point each, in the same pixel."""
    return [[Point(0.75, 0.75)], [Point(0.75, 0.75)]]


# ============================================================================
# TEST SUITE 1: Compositing
# ============================================================================

def test_red_plus_green_is_yellow(target, same_pixel_channels):
    image, info = render_overlay(
        same_pixel_channels,
        [(1.0, 0.0, 0.0), (0.0, 1.0, 0.0)],
        strategy=HistogramStrategy(),
        target=target,
        normalize_each=False,
        clip_percentile=1.0,
    )
    np.testing.assert_array_equal(image[7, 7], (1.0, 1.0, 0.0))
    assert image.sum() == 2.0
    assert info.color_mode == "manual"
    assert info.n_points == 2


def test_empty_channel_stays_black(target):
    """A channel without points adds nothing to the composite."""
    image, info = render_overlay(
        [[Point(0.5, 0.5)], []], ["red", "green"], strategy=HistogramStrategy(), target=target
    )
    np.testing.assert_array_equal(image[0, 0], (0.0, 0.0, 0.0))
    np.testing.assert_array_equal(image[5, 5], (1.0, 0.0, 0.0))
    assert image[..., 1].sum() == 0.0
    assert info.n_points == 1


def test_color_names_accepted(target, same_pixel_channels):
    image, _ = render_overlay(
        same_pixel_channels, ["red", "blue"], strategy=HistogramStrategy(), target=target, clip_percentile=1.0
    )
    np.testing.assert_array_equal(image[7, 7], (1.0, 0.0, 1.0))


def test_clamped_to_unit_range(target):
    channels = [[Point(0.75, 0.75)] * 3 for _ in range(4)]
    image, _ = render_overlay(
        channels,
        ["white", "red", "red", "yellow"],
        strategy=HistogramStrategy(),
        target=target,
        normalize_each=False,
        clip_percentile=None,
    )
    assert image.max() == 1.0
    assert image.min() >= 0.0
    np.testing.assert_array_equal(image[7, 7], (1.0, 1.0, 1.0))


def test_normalize_each_equalizes_channels(target):
    """Raw counts 4 and 2 in the dense channel become 1.0 and 0.5; the sparse count 1 becomes 1.0."""
    dense = points_from_arrays([0.25] * 4 + [1.05] * 2, [0.25] * 4 + [1.05] * 2)
    sparse = [Point(1.55, 1.55)]
    image, _ = render_overlay(
        [dense, sparse], ["red", "green"], strategy=HistogramStrategy(), target=target, clip_percentile=None
    )
    assert image[2, 2, 0] == 1.0
    assert image[10, 10, 0] == 0.5
    assert image[15, 15, 1] == 1.0

    unnormalized, _ = render_overlay(
        [dense, sparse], ["red", "green"], strategy=HistogramStrategy(), target=target,
        clip_percentile=None, normalize_each=False,
    )
    assert unnormalized[10, 10, 0] == 1.0


def test_gaussian_overlay_in_unit_range(target):
    dense = points_from_arrays([0.25] * 50, [0.25] * 50, sigma_x=[0.02] * 50, sigma_y=[0.02] * 50)
    sparse = points_from_arrays([1.55], [1.55], sigma_x=[0.02], sigma_y=[0.02])
    image, info = render_overlay([dense, sparse], ["red", "green"], strategy=GaussianStrategy(), target=target)
    assert image[..., 0].max() == pytest.approx(1.0)
    assert image[..., 1].max() == pytest.approx(1.0)
    assert info.n_points == 51


def test_outlines_not_normalized(target):
    strategy = CircleStrategy(use_precision=False, fixed_radius=300.0, radius_factor=1.0, line_width=0.2)
    image, info = render_overlay([[Point(1.0, 1.0)]], ["red"], strategy=strategy, target=target)
    assert image[..., 0].max() < 1.0
    assert info.strategy == "circle"


# ============================================================================
# TEST SUITE 2: Targets and validation
# ============================================================================

def test_shared_data_bounds_target():
    channels = [[Point(0.0, 0.0)], [Point(1.0, 2.0)]]
    image, info = render_overlay(
        channels, ["red", "green"], strategy=HistogramStrategy(), pixel_size=100.0, margin=0.0
    )
    assert info.output_size == (20, 10)
    assert image.shape == (20, 10, 3)


def test_mismatched_colors():
    with pytest.raises(ConfigError, match="must match"):
        render_overlay([[Point(0.0, 0.0)], [Point(1.0, 1.0)]], ["red"], pixel_size=10.0)


def test_no_channels():
    with pytest.raises(ConfigError, match="at least one channel"):
        render_overlay([], [], pixel_size=10.0)


def test_requires_one_resolution_mode(target, same_pixel_channels):
    with pytest.raises(ConfigError, match="Exactly one resolution mode"):
        render_overlay(same_pixel_channels, ["red", "green"])
    with pytest.raises(ConfigError, match="Exactly one resolution mode"):
        render_overlay(same_pixel_channels, ["red", "green"], target=target, pixel_size=10.0)
