"""Sparse-aware clipping, renormalization and the antialiased-point primitive.

Localization images are mostly background: a percentile over all pixels
would land on zero. Every percentile here is therefore taken over the
nonzero pixels only.

Provides:
    - clip_at_percentile(): in-place clip at a nonzero-pixel percentile
    - normalize_to_01(): linear min/max rescale (flat image → 0.5)
    - clip_and_normalize(): copy + clip + rescale, the brightness step
      shared by every color mapping
    - normalize_rgb(): scale an RGB image so its largest component is 1
    - clip_rgb_channels(): per-channel nonzero-percentile clip
    - draw_antialiased_points(): 3-tap point splat used by outline strategies
"""

import math
from typing import Optional

import numpy as np

# Relative tolerance for "max ≈ min" style comparisons
APPROX_RTOL = math.sqrt(np.finfo(np.float64).eps)

# Fringe strength of the antialiased point, relative to the primary pixel
AA_FRINGE = 0.3
# Sub-pixel offset below which no fringe is written
AA_MIN_OFFSET = 0.1


def approx_equal(a: float, b: float) -> bool:
    """Relative comparison with a sqrt(eps) tolerance; exact zeros compare equal."""
    return a == b or math.isclose(a, b, rel_tol=APPROX_RTOL, abs_tol=0.0)


def clip_at_percentile(img: np.ndarray, percentile: float) -> float:
    """Clip `img` in place at the given percentile of its nonzero pixels.

    Parameters
    ----------
    img : np.ndarray
        Float image (any shape), modified in place
    percentile : float
        Quantile in (0, 1]; values >= 1 leave the image untouched

    Returns
    -------
    float
        Threshold used: the image maximum when percentile >= 1, 0.0 for an
        all-zero image, otherwise the linearly interpolated quantile
    """
    if percentile >= 1.0:
        return float(img.max()) if img.size else 0.0

    nonzero = img[img > 0]
    if nonzero.size == 0:
        return 0.0

    threshold = float(np.quantile(nonzero, percentile))
    np.minimum(img, threshold, out=img)
    return threshold


def normalize_to_01(img: np.ndarray) -> np.ndarray:
    """Rescale to [0, 1] by the image's own min/max.

    A flat image (max ≈ min) becomes a constant 0.5 image instead of
    dividing by zero.
    """
    lo = float(img.min())
    hi = float(img.max())
    if approx_equal(hi, lo):
        return np.full(img.shape, 0.5, dtype=np.float64)
    return (img - lo) * (1.0 / (hi - lo))


def clip_and_normalize(img: np.ndarray, percentile: Optional[float]) -> np.ndarray:
    """Copy, clip at `percentile` (skipped when None) and rescale to [0, 1]."""
    out = np.array(img, dtype=np.float64, copy=True)
    if percentile is not None:
        clip_at_percentile(out, percentile)
    return normalize_to_01(out)


def normalize_rgb(img: np.ndarray) -> np.ndarray:
    """Divide by the largest component over the whole image (hue preserved).

    Black images are returned unchanged.
    """
    max_val = float(img.max()) if img.size else 0.0
    if approx_equal(max_val, 0.0):
        return img
    return img / max_val


def clip_rgb_channels(img: np.ndarray, percentile: Optional[float]) -> np.ndarray:
    """Return a copy of an (H, W, 3) image with each channel clipped independently."""
    out = np.array(img, dtype=np.float64, copy=True)
    if percentile is None:
        return out
    for c in range(out.shape[-1]):
        channel = out[..., c]
        clip_at_percentile(channel, percentile)
    return out


def draw_antialiased_points(
    buffer: np.ndarray,
    x: np.ndarray,
    y: np.ndarray,
    thickness: float,
    color: Optional[np.ndarray] = None,
) -> None:
    """Splat points at continuous 1-based pixel coordinates into `buffer`.

    Each point writes color * min(1, thickness) to its nearest pixel, plus a
    fringe of 0.3 * min(1, thickness) * |offset| to the one horizontal and the
    one vertical neighbor on the side of its sub-pixel offset (only when the
    offset exceeds 0.1 px). Out-of-image taps are dropped individually.

    Parameters
    ----------
    buffer : np.ndarray
        (H, W) weight buffer or (H, W, 3) RGB buffer, accumulated in place
    x, y : np.ndarray
        Continuous pixel coordinates, shape (N,)
    thickness : float
        Line width in pixels; only widths below 1 attenuate
    color : np.ndarray, optional
        RGB color (3,) or per-point colors (N, 3); required for RGB buffers,
        ignored for weight buffers
    """
    x = np.atleast_1d(np.asarray(x, dtype=np.float64))
    y = np.atleast_1d(np.asarray(y, dtype=np.float64))
    if x.size == 0:
        return

    height, width = buffer.shape[:2]
    rgb = buffer.ndim == 3
    strength = min(1.0, float(thickness))

    if rgb:
        if color is None:
            raise ValueError("RGB buffer requires a color")
        color = np.asarray(color, dtype=np.float64)
        colors = np.broadcast_to(color, (x.size, 3)) if color.ndim == 1 else color

    i0 = np.rint(y).astype(np.int64)
    j0 = np.rint(x).astype(np.int64)
    fy = y - i0
    fx = x - j0

    def _splat(rows, cols, weights, mask):
        mask = mask & (rows >= 1) & (rows <= height) & (cols >= 1) & (cols <= width)
        if not np.any(mask):
            return
        index = (rows[mask] - 1, cols[mask] - 1)
        if rgb:
            np.add.at(buffer, index, colors[mask] * weights[mask, np.newaxis])
        else:
            np.add.at(buffer, index, weights[mask])

    everywhere = np.ones(x.shape, dtype=bool)
    _splat(i0, j0, np.full(x.shape, strength), everywhere)

    fringe = AA_FRINGE * strength
    _splat(i0, np.where(fx > 0, j0 + 1, j0 - 1), fringe * np.abs(fx), np.abs(fx) > AA_MIN_OFFSET)
    _splat(np.where(fy > 0, i0 + 1, i0 - 1), j0, fringe * np.abs(fy), np.abs(fy) > AA_MIN_OFFSET)
