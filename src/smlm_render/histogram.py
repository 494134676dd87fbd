"""Histogram rendering: bin each point into the pixel that contains it.

Per-pixel rules by color mode:
    - intensity / grayscale: point count, then clip + normalize (+ colormap)
    - field: count-weighted average attribute value per pixel, colormapped,
      scaled by clip-normalized count (raw count when clipping is disabled,
      which lets overlapping points saturate on purpose)
    - categorical: count-weighted average palette color, scaled the same way
      (raw color sums when clipping is disabled)
    - manual: fixed color × clip-normalized count (raw count when disabled),
      black where no point landed

No sub-pixel accuracy; points whose nearest pixel lies outside the target are
dropped and counted.
"""

import logging
from typing import Tuple

import numpy as np

from src.smlm_render.color_mapping import ResolvedColors, normalize_values, resolve_weight_buffer
from src.smlm_render.coordinates import in_bounds, physical_to_pixel_index
from src.smlm_render.normalization import clip_and_normalize
from src.smlm_render.points import PointArrays
from src.smlm_render.types import (
    CategoricalMapping,
    FieldMapping,
    GrayscaleMapping,
    IntensityMapping,
    ManualMapping,
    Target,
)

logger = logging.getLogger(__name__)


def bin_points(arrays: PointArrays, target: Target) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Zero-based (row, col) of every in-bounds point plus the in-bounds mask."""
    i, j = physical_to_pixel_index(arrays.x, arrays.y, target)
    mask = in_bounds(i, j, target)
    return i[mask] - 1, j[mask] - 1, mask


def accumulate_counts(rows: np.ndarray, cols: np.ndarray, target: Target) -> np.ndarray:
    """Per-pixel point counts."""
    counts = np.zeros(target.shape, dtype=np.float64)
    np.add.at(counts, (rows, cols), 1.0)
    return counts


def _brightness(counts: np.ndarray, clip_percentile) -> np.ndarray:
    if clip_percentile is None:
        return counts
    return clip_and_normalize(counts, clip_percentile)


def render_histogram(
    arrays: PointArrays,
    target: Target,
    resolved: ResolvedColors,
) -> Tuple[np.ndarray, int]:
    """Render points as a 2D histogram.

    Parameters
    ----------
    arrays : PointArrays
        Point positions
    target : Target
        Output raster
    resolved : ResolvedColors
        Colors/lookups from resolve_colors()

    Returns
    -------
    tuple
        (image (H, W, 3) float64, number of out-of-bounds points)
    """
    rows, cols, mask = bin_points(arrays, target)
    n_skipped = int(mask.size - np.count_nonzero(mask))
    if n_skipped:
        logger.debug("Histogram: %d points outside the target", n_skipped)

    counts = accumulate_counts(rows, cols, target)
    covered = counts > 0

    if resolved.mode in (IntensityMapping.tag, GrayscaleMapping.tag):
        return resolve_weight_buffer(counts, resolved), n_skipped

    if resolved.mode == FieldMapping.tag:
        field_sum = np.zeros(target.shape, dtype=np.float64)
        np.add.at(field_sum, (rows, cols), resolved.values[mask])
        field_avg = np.zeros_like(field_sum)
        field_avg[covered] = field_sum[covered] / counts[covered]

        colors = resolved.colormap(normalize_values(field_avg, resolved.value_range))
        image = colors * _brightness(counts, resolved.clip_percentile)[..., np.newaxis]
        image[~covered] = 0.0
        return image, n_skipped

    if resolved.mode == CategoricalMapping.tag:
        color_sum = np.zeros(target.shape + (3,), dtype=np.float64)
        np.add.at(color_sum, (rows, cols), resolved.colors[mask])
        if resolved.clip_percentile is None:
            return color_sum, n_skipped

        image = np.zeros_like(color_sum)
        image[covered] = color_sum[covered] / counts[covered][:, np.newaxis]
        image *= clip_and_normalize(counts, resolved.clip_percentile)[..., np.newaxis]
        return image, n_skipped

    if resolved.mode == ManualMapping.tag:
        image = _brightness(counts, resolved.clip_percentile)[..., np.newaxis] * resolved.rgb
        # A flat (e.g. empty) count image normalizes to 0.5 everywhere
        image[~covered] = 0.0
        return image, n_skipped

    raise TypeError(f"Histogram cannot resolve color mode '{resolved.mode}'")
