"""Circle and ellipse outline rendering.

Each point is drawn as a closed outline sampled densely enough that
neighboring samples are about one pixel apart, and every sample is written
with the 3-tap antialiased-point primitive. Colors add up in a single RGB
buffer with no normalization, so overlapping outlines brighten.

Circle:
    radius = mean(σx, σy) × radius_factor (μm → nm), or fixed_radius ×
    radius_factor; samples = max(12, ⌈2π r_px⌉)

Ellipse:
    radii = (σx, σy) × radius_factor, rotated by θ = ½·atan2(2σxy, σx² − σy²)
    (θ = 0 without covariance or with fixed radii);
    samples = max(16, ⌈2π max(rx_px, ry_px)⌉); scale → rotate → translate

Radii below 0.1 nm or above 10 µm (and missing precisions) skip the point.
Only per-point color mappings (field, categorical, manual) apply: outlines
have no grayscale accumulator to colormap.
"""

import logging
import math
from typing import Tuple

import numpy as np

from src.smlm_render.color_mapping import ResolvedColors
from src.smlm_render.coordinates import physical_to_pixel
from src.smlm_render.normalization import draw_antialiased_points
from src.smlm_render.points import PointArrays
from src.smlm_render.types import CircleStrategy, EllipseStrategy, Target

logger = logging.getLogger(__name__)

RADIUS_MIN_NM = 0.1
RADIUS_MAX_NM = 10000.0

CIRCLE_MIN_SAMPLES = 12
ELLIPSE_MIN_SAMPLES = 16


def _valid_radius(radius_nm: np.ndarray) -> np.ndarray:
    with np.errstate(invalid='ignore'):
        return np.isfinite(radius_nm) & (radius_nm >= RADIUS_MIN_NM) & (radius_nm <= RADIUS_MAX_NM)


def circle_radii(arrays: PointArrays, strategy: CircleStrategy) -> np.ndarray:
    """Per-point circle radius in nm."""
    if strategy.use_precision:
        return (arrays.sigma_x + arrays.sigma_y) / 2.0 * strategy.radius_factor * 1000.0
    return np.full(len(arrays), strategy.fixed_radius * strategy.radius_factor)


def ellipse_params(arrays: PointArrays, strategy: EllipseStrategy) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Per-point (rx nm, ry nm, θ rad)."""
    n = len(arrays)
    if not strategy.use_precision:
        fixed_x, fixed_y = strategy.fixed_radii
        return (
            np.full(n, fixed_x * strategy.radius_factor),
            np.full(n, fixed_y * strategy.radius_factor),
            np.zeros(n),
        )

    rx = arrays.sigma_x * strategy.radius_factor * 1000.0
    ry = arrays.sigma_y * strategy.radius_factor * 1000.0
    sxy = np.nan_to_num(arrays.sigma_xy, nan=0.0)
    theta = np.where(
        sxy != 0.0,
        0.5 * np.arctan2(2.0 * sxy, arrays.sigma_x ** 2 - arrays.sigma_y ** 2),
        0.0,
    )
    return rx, ry, theta


def _sample_counts(max_radius_pix: np.ndarray, minimum: int) -> np.ndarray:
    return np.maximum(minimum, np.ceil(2.0 * math.pi * max_radius_pix)).astype(np.int64)


def outline_samples(
    center_x: np.ndarray,
    center_y: np.ndarray,
    rx_pix: np.ndarray,
    ry_pix: np.ndarray,
    theta: np.ndarray,
    minimum_samples: int,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Sample rotated ellipse outlines (circles when rx == ry, θ == 0).

    Point k gets n_k = max(minimum_samples, ⌈2π max(rx, ry)⌉) samples at
    parameters t = 2π·m/n_k for m = 1..n_k.

    Returns
    -------
    tuple
        (x, y, owner) flat arrays of sample coordinates in pixels and the
        index of the point each sample belongs to
    """
    counts = _sample_counts(np.maximum(rx_pix, ry_pix), minimum_samples)
    owner = np.repeat(np.arange(len(counts)), counts)
    # m runs 1..n_k within each point's block
    starts = np.cumsum(counts) - counts
    m = np.arange(owner.size) - np.repeat(starts, counts) + 1
    t = 2.0 * math.pi * m / counts[owner]

    x_local = rx_pix[owner] * np.cos(t)
    y_local = ry_pix[owner] * np.sin(t)
    cos_t = np.cos(theta)[owner]
    sin_t = np.sin(theta)[owner]

    x = center_x[owner] + x_local * cos_t - y_local * sin_t
    y = center_y[owner] + x_local * sin_t + y_local * cos_t
    return x, y, owner


def _draw_outlines(
    arrays: PointArrays,
    target: Target,
    rx_nm: np.ndarray,
    ry_nm: np.ndarray,
    theta: np.ndarray,
    line_width: float,
    minimum_samples: int,
    resolved: ResolvedColors,
) -> Tuple[np.ndarray, int]:
    image = np.zeros(target.shape + (3,), dtype=np.float64)

    valid = _valid_radius(rx_nm) & _valid_radius(ry_nm)
    n_skipped = int(valid.size - np.count_nonzero(valid))
    if n_skipped:
        logger.debug("Outline: skipped %d points with degenerate radius", n_skipped)
    if not np.any(valid):
        return image, n_skipped

    center_x, center_y = physical_to_pixel(arrays.x[valid], arrays.y[valid], target)
    x, y, owner = outline_samples(
        center_x,
        center_y,
        rx_nm[valid] / target.pixel_size,
        ry_nm[valid] / target.pixel_size,
        theta[valid],
        minimum_samples,
    )
    colors = np.asarray(resolved.colors)[valid]
    draw_antialiased_points(image, x, y, line_width, color=colors[owner])
    return image, n_skipped


def render_circle(
    arrays: PointArrays,
    target: Target,
    strategy: CircleStrategy,
    resolved: ResolvedColors,
) -> Tuple[np.ndarray, int]:
    """Draw circle outlines; returns (image, number of skipped points)."""
    radius = circle_radii(arrays, strategy)
    return _draw_outlines(
        arrays, target, radius, radius, np.zeros(len(arrays)),
        strategy.line_width, CIRCLE_MIN_SAMPLES, resolved,
    )


def render_ellipse(
    arrays: PointArrays,
    target: Target,
    strategy: EllipseStrategy,
    resolved: ResolvedColors,
) -> Tuple[np.ndarray, int]:
    """Draw ellipse outlines; returns (image, number of skipped points)."""
    rx, ry, theta = ellipse_params(arrays, strategy)
    return _draw_outlines(
        arrays, target, rx, ry, theta,
        strategy.line_width, ELLIPSE_MIN_SAMPLES, resolved,
    )
