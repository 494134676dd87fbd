"""Gaussian splatting: every point becomes a 2D normal kernel.

Kernel:
    - Axis-aligned: exp(-(dx²/2σx² + dy²/2σy²))
    - With covariance σxy: exp(-½ dᵀ Σ⁻¹ d), Σ = [[σx², σxy], [σxy, σy²]]
    - Normalization "integral": × 1/(2π √det Σ) (unit volume);
      "maximum": unit peak
    - Evaluated on integer pixel centers inside a ±n_sigmas box around the
      continuous position, clipped to the image

Sigma sources (all converted to pixels):
    - use_precision=True: per-point sigma_x/sigma_y (μm → nm), sigma_xy (μm²)
    - use_precision=False: fixed_sigma (nm) on both axes, no covariance

Degenerate kernels (σ < 1e-3 nm, σ > 1000 nm or missing) are skipped.
Covariances that are not positive definite (det Σ <= 0) fall back to the
axis-aligned kernel; both events are counted in SplatStats.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from src.smlm_render.color_mapping import ResolvedColors, resolve_weight_buffer, weighted_color_rgb
from src.smlm_render.coordinates import physical_to_pixel
from src.smlm_render.points import PointArrays
from src.smlm_render.types import GaussianStrategy, Target

logger = logging.getLogger(__name__)

SIGMA_MIN_NM = 1e-3
SIGMA_MAX_NM = 1000.0


@dataclass
class SplatStats:
    """Per-render kernel diagnostics."""

    n_skipped: int = 0
    n_covariance_fallbacks: int = 0


def kernel_sigmas(arrays: PointArrays, strategy: GaussianStrategy) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Per-point (σx, σy) in nm and covariance σxy in nm².

    Covariance is NaN when the point carries none or precision is not used.
    """
    n = len(arrays)
    if strategy.use_precision:
        sigma_x = arrays.sigma_x * 1000.0
        sigma_y = arrays.sigma_y * 1000.0
        sigma_xy = arrays.sigma_xy * 1e6
    else:
        sigma_x = np.full(n, float(strategy.fixed_sigma))
        sigma_y = np.full(n, float(strategy.fixed_sigma))
        sigma_xy = np.full(n, np.nan)
    return sigma_x, sigma_y, sigma_xy


def valid_sigma_mask(sigma_x: np.ndarray, sigma_y: np.ndarray) -> np.ndarray:
    """True where both sigmas are finite and within [1e-3, 1000] nm."""
    with np.errstate(invalid='ignore'):
        return (
            np.isfinite(sigma_x) & np.isfinite(sigma_y)
            & (sigma_x >= SIGMA_MIN_NM) & (sigma_y >= SIGMA_MIN_NM)
            & (sigma_x <= SIGMA_MAX_NM) & (sigma_y <= SIGMA_MAX_NM)
        )


def _kernel_box(center: float, sigma_pix: float, n_sigmas: float, size: int) -> Tuple[int, int]:
    """Inclusive 1-based pixel range covered by the kernel along one axis."""
    half_width = math.ceil(n_sigmas * sigma_pix)
    lo = max(1, math.floor(center) - half_width)
    hi = min(size, math.ceil(center) + half_width)
    return lo, hi


def evaluate_kernel(
    dx: np.ndarray,
    dy: np.ndarray,
    sx: float,
    sy: float,
    sxy: float,
    normalization: str,
) -> Tuple[np.ndarray, bool]:
    """Evaluate one kernel on pixel offsets (all quantities in pixels).

    Returns
    -------
    tuple
        (values, fell_back) where fell_back is True when a covariance was
        given but Σ was not positive definite
    """
    has_covariance = np.isfinite(sxy) and sxy != 0.0
    fell_back = False

    if has_covariance:
        det = sx * sx * sy * sy - sxy * sxy
        if det > 0:
            inv_xx = sy * sy / det
            inv_yy = sx * sx / det
            inv_xy = -sxy / det
            quad = inv_xx * dx * dx + 2.0 * inv_xy * dx * dy + inv_yy * dy * dy
            values = np.exp(-0.5 * quad)
            if normalization == "integral":
                values *= 1.0 / (2.0 * math.pi * math.sqrt(det))
            return values, False
        fell_back = True

    values = np.exp(-(dx * dx / (2.0 * sx * sx) + dy * dy / (2.0 * sy * sy)))
    if normalization == "integral":
        values *= 1.0 / (2.0 * math.pi * sx * sy)
    return values, fell_back


def accumulate_gaussian(
    arrays: PointArrays,
    target: Target,
    strategy: GaussianStrategy,
    colors: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, Optional[np.ndarray], SplatStats]:
    """Splat all kernels into a weight buffer (and an RGB numerator buffer).

    Parameters
    ----------
    arrays : PointArrays
        Point positions and precisions
    target : Target
        Output raster
    strategy : GaussianStrategy
        Kernel parameters
    colors : np.ndarray, optional
        (N, 3) per-point colors; when given, w·rgb is accumulated as well

    Returns
    -------
    tuple
        (weight (H, W), numerator (H, W, 3) or None, SplatStats)
    """
    weight = np.zeros(target.shape, dtype=np.float64)
    numerator = np.zeros(target.shape + (3,), dtype=np.float64) if colors is not None else None
    stats = SplatStats()

    sigma_x, sigma_y, sigma_xy = kernel_sigmas(arrays, strategy)
    valid = valid_sigma_mask(sigma_x, sigma_y)
    stats.n_skipped = int(valid.size - np.count_nonzero(valid))
    if stats.n_skipped:
        logger.debug("Gaussian: skipped %d points with degenerate sigma", stats.n_skipped)

    x_pix, y_pix = physical_to_pixel(arrays.x, arrays.y, target)
    px = target.pixel_size
    px2 = px * px

    for k in np.flatnonzero(valid):
        sx = sigma_x[k] / px
        sy = sigma_y[k] / px
        sxy = sigma_xy[k] / px2

        j_min, j_max = _kernel_box(x_pix[k], sx, strategy.n_sigmas, target.width)
        i_min, i_max = _kernel_box(y_pix[k], sy, strategy.n_sigmas, target.height)
        if j_max < j_min or i_max < i_min:
            continue

        rows, cols = np.meshgrid(
            np.arange(i_min, i_max + 1, dtype=np.float64),
            np.arange(j_min, j_max + 1, dtype=np.float64),
            indexing='ij',
        )
        values, fell_back = evaluate_kernel(
            cols - x_pix[k], rows - y_pix[k], sx, sy, sxy, strategy.normalization
        )
        if fell_back:
            stats.n_covariance_fallbacks += 1

        roi = (slice(i_min - 1, i_max), slice(j_min - 1, j_max))
        weight[roi] += values
        if numerator is not None:
            numerator[roi] += values[..., np.newaxis] * colors[k]

    if stats.n_covariance_fallbacks:
        logger.debug(
            "Gaussian: %d covariances not positive definite, drawn axis-aligned",
            stats.n_covariance_fallbacks,
        )
    return weight, numerator, stats


def render_gaussian(
    arrays: PointArrays,
    target: Target,
    strategy: GaussianStrategy,
    resolved: ResolvedColors,
) -> Tuple[np.ndarray, SplatStats]:
    """Render points as Gaussian kernels and resolve colors.

    Intensity/Grayscale resolve the single weight buffer; Field, Categorical
    and Manual use the weighted-average hue × clip-normalized weight blend.

    Returns
    -------
    tuple
        (image (H, W, 3) float64, SplatStats)
    """
    weight, numerator, stats = accumulate_gaussian(
        arrays, target, strategy, colors=resolved.colors if resolved.per_point else None
    )
    if numerator is None:
        return resolve_weight_buffer(weight, resolved), stats
    return weighted_color_rgb(weight, numerator, resolved.clip_percentile), stats
