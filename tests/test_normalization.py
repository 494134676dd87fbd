"""Test sparse-aware clipping, normalization and antialiased points.

Tests for src.smlm_render.normalization:
    - Percentiles are taken over nonzero pixels only
    - percentile >= 1 and all-zero images are no-ops
    - Flat images normalize to 0.5
    - RGB normalization and per-channel clipping
    - 3-tap antialiased point splat (primary pixel, fringe, thickness)

Run:
    pytest tests/test_normalization.py -v
"""

import numpy as np
import pytest

from src.smlm_render.normalization import (
    AA_FRINGE,
    approx_equal,
    clip_and_normalize,
    clip_at_percentile,
    clip_rgb_channels,
    draw_antialiased_points,
    normalize_rgb,
    normalize_to_01,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def sparse_image():
    """10x10 image with values 1..10 in the first row, zeros elsewhere."""
    img = np.zeros((10, 10), dtype=np.float64)
    img[0, :] = np.arange(1, 11, dtype=np.float64)
    return img


# ============================================================================
# TEST SUITE 1: Percentile clipping
# ============================================================================

def test_clip_ignores_background(sparse_image):
    """The median of the nonzero pixels is 5.5, not 0."""
    threshold = clip_at_percentile(sparse_image, 0.5)
    assert threshold == pytest.approx(5.5)
    assert sparse_image.max() == pytest.approx(5.5)
    assert sparse_image[0, 0] == 1.0
    assert np.count_nonzero(sparse_image) == 10


def test_clip_full_percentile_is_noop(sparse_image):
    original = sparse_image.copy()
    threshold = clip_at_percentile(sparse_image, 1.0)
    assert threshold == 10.0
    np.testing.assert_array_equal(sparse_image, original)


def test_clip_all_zero_image():
    img = np.zeros((4, 4))
    assert clip_at_percentile(img, 0.99) == 0.0
    assert not img.any()


def test_clip_uniform_counts_equals_count():
    """Points in distinct pixels: every percentile of the counts is the count."""
    img = np.zeros((20, 20))
    img[2, 3] = img[7, 7] = img[15, 1] = img[19, 19] = 1.0
    assert clip_at_percentile(img, 0.99) == 1.0
    np.testing.assert_array_equal(normalize_to_01(img)[img > 0], 1.0)


# ============================================================================
# TEST SUITE 2: Normalization
# ============================================================================

def test_normalize_to_01_range():
    img = np.array([[2.0, 4.0], [6.0, 10.0]])
    out = normalize_to_01(img)
    np.testing.assert_allclose(out, [[0.0, 0.25], [0.5, 1.0]])


def test_normalize_flat_image():
    out = normalize_to_01(np.full((3, 5), 7.0))
    assert out.shape == (3, 5)
    np.testing.assert_array_equal(out, 0.5)


def test_clip_and_normalize_copies(sparse_image):
    original = sparse_image.copy()
    out = clip_and_normalize(sparse_image, 0.5)
    np.testing.assert_array_equal(sparse_image, original)
    assert out.max() == 1.0
    assert out.min() == 0.0


def test_clip_and_normalize_none_skips_clip(sparse_image):
    out = clip_and_normalize(sparse_image, None)
    assert out[0, 4] == pytest.approx(0.5)


def test_approx_equal():
    assert approx_equal(0.0, 0.0)
    assert approx_equal(1.0, 1.0 + 1e-12)
    assert not approx_equal(1.0, 1.001)


def test_normalize_rgb():
    img = np.zeros((2, 2, 3))
    img[0, 0] = (0.5, 2.0, 1.0)
    out = normalize_rgb(img)
    np.testing.assert_allclose(out[0, 0], (0.25, 1.0, 0.5))
    black = np.zeros((2, 2, 3))
    assert normalize_rgb(black) is black


def test_clip_rgb_channels_independent():
    img = np.zeros((4, 4, 3))
    img[0, :, 0] = (1.0, 2.0, 3.0, 4.0)
    img[1, :, 1] = 5.0
    out = clip_rgb_channels(img, 0.5)
    assert out[..., 0].max() == pytest.approx(2.5)
    assert out[..., 1].max() == 5.0
    assert img[..., 0].max() == 4.0


# ============================================================================
# TEST SUITE 3: Antialiased points
# ============================================================================

def test_aa_point_at_pixel_center():
    buf = np.zeros((5, 5))
    draw_antialiased_points(buf, np.array([3.0]), np.array([2.0]), thickness=1.0)
    assert buf[1, 2] == 1.0
    assert buf.sum() == 1.0


def test_aa_point_fringe_direction():
    buf = np.zeros((5, 5))
    draw_antialiased_points(buf, np.array([3.3]), np.array([3.0]), thickness=1.0)
    assert buf[2, 2] == 1.0
    assert buf[2, 3] == pytest.approx(AA_FRINGE * 0.3)
    assert buf[2, 1] == 0.0
    assert buf[1, 2] == 0.0 and buf[3, 2] == 0.0


def test_aa_small_offset_has_no_fringe():
    buf = np.zeros((5, 5))
    draw_antialiased_points(buf, np.array([2.95]), np.array([3.05]), thickness=1.0)
    assert np.count_nonzero(buf) == 1


def test_aa_thickness_attenuates():
    buf = np.zeros((5, 5))
    draw_antialiased_points(buf, np.array([3.0, 3.0]), np.array([3.0, 3.0]), thickness=0.5)
    assert buf[2, 2] == pytest.approx(1.0)
    thick = np.zeros((5, 5))
    draw_antialiased_points(thick, np.array([3.0]), np.array([3.0]), thickness=4.0)
    assert thick[2, 2] == 1.0


def test_aa_drops_out_of_image_taps():
    buf = np.zeros((3, 3))
    draw_antialiased_points(buf, np.array([3.4, 0.0, 10.0]), np.array([1.0, 1.0, 1.0]), thickness=1.0)
    assert buf[0, 2] == 1.0
    assert buf.sum() == pytest.approx(1.0)


def test_aa_rgb_buffer():
    buf = np.zeros((4, 4, 3))
    colors = np.array([[1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    draw_antialiased_points(buf, np.array([1.0, 1.0]), np.array([1.0, 1.0]), 1.0, color=colors)
    np.testing.assert_allclose(buf[0, 0], (1.0, 0.0, 1.0))

    with pytest.raises(ValueError, match="requires a color"):
        draw_antialiased_points(buf, np.array([1.0]), np.array([1.0]), 1.0)
