"""Color resolution: per-point colors and final buffer → RGB conversion.

Two families of color mapping exist:
    - Weight mappings (Intensity, Grayscale): points only add weight to one
      scalar buffer; color is applied to the finished buffer after the
      sparse-aware clip + normalize.
    - Per-point mappings (Field, Categorical, Manual): every point carries an
      RGB color. Splatting strategies accumulate a weight buffer S and an
      RGB numerator buffer (w·r, w·g, w·b); the final pixel is the
      weighted-average hue scaled by clip-normalized S (hue encodes the
      attribute, luminance encodes local density).

resolve_colors() performs every lookup (colormap, palette, attribute,
value range) up front so that errors surface before any buffer is
allocated and attribute access happens once per render.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from src.smlm_render.colormaps import ColormapFn, ColormapRegistry, default_registry
from src.smlm_render.normalization import approx_equal, clip_and_normalize
from src.smlm_render.points import ABSOLUTE_FRAME, attribute_values, compute_frame_offsets
from src.smlm_render.types import (
    CategoricalMapping,
    ColorMapping,
    FieldMapping,
    GrayscaleMapping,
    IntensityMapping,
    ManualMapping,
)

logger = logging.getLogger(__name__)


# ============================================================================
# VALUE RANGES & NORMALIZATION
# ============================================================================

def field_value_range(
    points: Sequence,
    mapping: FieldMapping,
    values: Optional[np.ndarray] = None,
) -> Tuple[float, float]:
    """Value range used to normalize a field attribute.

    Parameters
    ----------
    points : Sequence
        Point providers
    mapping : FieldMapping
        Explicit range is returned as-is; "auto" derives it from the data
    values : np.ndarray, optional
        Pre-resolved attribute values (skips the attribute lookup)

    Returns
    -------
    tuple of float
        (min, max): the (low, high) quantiles of the values when
        clip_percentiles is set, otherwise the extrema. An empty point set
        yields (0.0, 1.0).
    """
    if not isinstance(mapping.range, str):
        return mapping.range

    if values is None:
        values = attribute_values(points, mapping.attribute)
    if values.size == 0:
        return (0.0, 1.0)

    if mapping.clip_percentiles is None:
        return (float(values.min()), float(values.max()))

    low, high = mapping.clip_percentiles
    return (float(np.quantile(values, low)), float(np.quantile(values, high)))


def normalize_values(values, value_range: Tuple[float, float]) -> np.ndarray:
    """Map values into [0, 1] by `value_range`; a zero-width range maps to 0.5."""
    values = np.asarray(values, dtype=np.float64)
    lo, hi = value_range
    if approx_equal(hi, lo):
        return np.full(values.shape, 0.5)
    return np.clip((values - lo) / (hi - lo), 0.0, 1.0)


def categorical_indices(values, palette_size: int) -> np.ndarray:
    """0-based palette index for each value.

    Values are rounded half-to-even and wrapped with 1-based modular
    arithmetic: value v selects palette entry ((v - 1) mod P) + 1, so v and
    v + P (and 0 and P) share a color.
    """
    rounded = np.rint(np.asarray(values, dtype=np.float64)).astype(np.int64)
    return np.mod(rounded - 1, palette_size)


# ============================================================================
# RESOLVED COLORS
# ============================================================================

@dataclass(frozen=True)
class ResolvedColors:
    """Everything a rasterizer needs to color its output.

    Attributes
    ----------
    mode : str
        Color mapping tag
    clip_percentile : float, optional
        Brightness clip percentile; None disables clipping
    colormap : callable, optional
        Continuous colormap (intensity and field modes)
    colors : np.ndarray, optional
        (N, 3) per-point RGB (field, categorical, manual)
    values : np.ndarray, optional
        (N,) attribute values (field, categorical)
    value_range : tuple of float, optional
        Field normalization range, or attribute extrema for categorical
    rgb : np.ndarray, optional
        (3,) fixed color of the manual mapping
    """

    mode: str
    clip_percentile: Optional[float]
    colormap: Optional[ColormapFn] = None
    colors: Optional[np.ndarray] = None
    values: Optional[np.ndarray] = None
    value_range: Optional[Tuple[float, float]] = None
    rgb: Optional[np.ndarray] = None

    @property
    def per_point(self) -> bool:
        return self.colors is not None


def resolve_colors(
    points: Sequence,
    mapping: ColorMapping,
    clip_percentile: Optional[float] = 0.99,
    colormaps: Optional[ColormapRegistry] = None,
) -> ResolvedColors:
    """Look up colormaps/palettes and per-point colors for one render.

    Intensity and Grayscale use their own clip_percentile; the per-point
    mappings use `clip_percentile` (None disables clipping).

    Raises
    ------
    UnknownColormapError
        Unknown colormap or palette name
    AttributeLookupError
        A point lacks the mapped attribute
    """
    registry = colormaps if colormaps is not None else default_registry()
    n = len(points)

    if isinstance(mapping, IntensityMapping):
        return ResolvedColors(
            mode=mapping.tag,
            clip_percentile=mapping.clip_percentile,
            colormap=registry.get_colormap(mapping.colormap),
        )

    if isinstance(mapping, GrayscaleMapping):
        return ResolvedColors(mode=mapping.tag, clip_percentile=mapping.clip_percentile)

    if isinstance(mapping, ManualMapping):
        rgb = np.asarray(mapping.rgb, dtype=np.float64)
        colors = np.broadcast_to(rgb, (n, 3))
        return ResolvedColors(mode=mapping.tag, clip_percentile=clip_percentile, colors=colors, rgb=rgb)

    if isinstance(mapping, FieldMapping):
        cmap = registry.get_colormap(mapping.colormap)
        offsets = compute_frame_offsets(points) if mapping.attribute == ABSOLUTE_FRAME else None
        values = attribute_values(points, mapping.attribute, frame_offsets=offsets)
        value_range = field_value_range(points, mapping, values=values)
        colors = cmap(normalize_values(values, value_range)) if n else np.zeros((0, 3))
        return ResolvedColors(
            mode=mapping.tag,
            clip_percentile=clip_percentile,
            colormap=cmap,
            colors=colors,
            values=values,
            value_range=value_range,
        )

    if isinstance(mapping, CategoricalMapping):
        palette = registry.get_palette(mapping.palette)
        values = attribute_values(points, mapping.attribute)
        colors = palette[categorical_indices(values, len(palette))] if n else np.zeros((0, 3))
        value_range = (float(values.min()), float(values.max())) if n else None
        return ResolvedColors(
            mode=mapping.tag,
            clip_percentile=clip_percentile,
            colors=colors,
            values=values,
            value_range=value_range,
        )

    raise TypeError(f"Unknown color mapping: {type(mapping).__name__}")


# ============================================================================
# BUFFER → RGB
# ============================================================================

def apply_intensity_colormap(
    intensity: np.ndarray,
    colormap: ColormapFn,
    clip_percentile: Optional[float],
) -> np.ndarray:
    """Clip (nonzero-pixel percentile), normalize and colormap a weight buffer."""
    return colormap(clip_and_normalize(intensity, clip_percentile))


def grayscale_rgb(intensity: np.ndarray, clip_percentile: Optional[float]) -> np.ndarray:
    """Clip and normalize a weight buffer and replicate it into three channels."""
    gray = clip_and_normalize(intensity, clip_percentile)
    return np.repeat(gray[..., np.newaxis], 3, axis=-1)


def weighted_color_rgb(
    weight: np.ndarray,
    numerator: np.ndarray,
    clip_percentile: Optional[float],
) -> np.ndarray:
    """Resolve the four-buffer blend into RGB.

    Parameters
    ----------
    weight : np.ndarray
        (H, W) total kernel weight S
    numerator : np.ndarray
        (H, W, 3) accumulated w·rgb
    clip_percentile : float, optional
        Brightness clip applied to S before normalization

    Returns
    -------
    np.ndarray
        (H, W, 3) = (numerator / S) × clip_normalize(S); pixels with S == 0
        stay black
    """
    covered = weight > 0
    hue = np.zeros_like(numerator)
    hue[covered] = numerator[covered] / weight[covered][:, np.newaxis]

    brightness = clip_and_normalize(weight, clip_percentile)
    rgb = hue * brightness[..., np.newaxis]
    rgb[~covered] = 0.0
    return rgb


def resolve_weight_buffer(intensity: np.ndarray, resolved: ResolvedColors) -> np.ndarray:
    """Finish a single weight buffer for the Intensity or Grayscale mapping."""
    if resolved.mode == IntensityMapping.tag:
        return apply_intensity_colormap(intensity, resolved.colormap, resolved.clip_percentile)
    return grayscale_rgb(intensity, resolved.clip_percentile)
