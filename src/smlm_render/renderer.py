"""Render orchestration: configuration → (target, strategy, color mapping) → image.

Two entry points:
    - render_points(points, target, strategy, color_mapping): explicit form
    - render(points, config): flat RenderConfig form that builds the target
      and the color mapping, then forwards to render_points()

Pipeline of one render_points() call:
    1. Validate the strategy × color-mapping pairing (VALID_PAIRINGS)
    2. Resolve colormaps, palettes, attributes and value ranges
    3. Extract point arrays and dispatch to the strategy's rasterizer
    4. Time the call and return (image, RenderInfo)

Steps 1-2 raise before any image buffer is allocated.

Usage:
    from src.smlm_render import RenderConfig, render
    image, info = render(points, RenderConfig(pixel_size=10.0, color_by="z"))
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Sequence, Tuple, Union

import numpy as np

from src.smlm_render.color_mapping import resolve_colors
from src.smlm_render.colormaps import ColormapRegistry, parse_color
from src.smlm_render.coordinates import ReferenceGrid, data_bounds_target, fixed_resolution_target
from src.smlm_render.gaussian import render_gaussian
from src.smlm_render.histogram import render_histogram
from src.smlm_render.outline import render_circle, render_ellipse
from src.smlm_render.points import extract_arrays
from src.smlm_render.types import (
    CategoricalMapping,
    CircleStrategy,
    ColorMapping,
    ConfigError,
    EllipseStrategy,
    FieldMapping,
    GaussianStrategy,
    GrayscaleMapping,
    HistogramStrategy,
    IntensityMapping,
    ManualMapping,
    RenderInfo,
    Strategy,
    Target,
    UnsupportedCombinationError,
)
from src.utils.profiler import timer

logger = logging.getLogger(__name__)


# Strategy tag → color-mapping tags it can resolve
VALID_PAIRINGS: Dict[str, FrozenSet[str]] = {
    HistogramStrategy.tag: frozenset({"intensity", "field", "categorical", "manual", "grayscale"}),
    GaussianStrategy.tag: frozenset({"intensity", "field", "categorical", "manual", "grayscale"}),
    CircleStrategy.tag: frozenset({"field", "categorical", "manual"}),
    EllipseStrategy.tag: frozenset({"field", "categorical", "manual"}),
}

_OUTLINE_HINT = (
    "Outline strategies have no grayscale accumulator; use color= for a single "
    "color or color_by= to color each outline by an attribute"
)


def validate_pairing(strategy: Strategy, color_mapping: ColorMapping) -> None:
    """Raise UnsupportedCombinationError unless the pair is in VALID_PAIRINGS."""
    strategy_tag = getattr(strategy, "tag", type(strategy).__name__)
    mode_tag = getattr(color_mapping, "tag", type(color_mapping).__name__)
    if strategy_tag not in VALID_PAIRINGS:
        raise ConfigError(f"Unknown rendering strategy: {type(strategy).__name__}")
    if mode_tag not in VALID_PAIRINGS[strategy_tag]:
        hint = _OUTLINE_HINT if strategy_tag in (CircleStrategy.tag, EllipseStrategy.tag) else ""
        raise UnsupportedCombinationError(strategy_tag, mode_tag, hint)


def _validate_clip(clip_percentile: Optional[float]) -> None:
    if clip_percentile is not None and not (0.0 < clip_percentile <= 1.0):
        raise ConfigError(f"clip_percentile must be in (0, 1] or None, got {clip_percentile}")


def render_points(
    points: Sequence,
    target: Target,
    strategy: Strategy,
    color_mapping: ColorMapping,
    clip_percentile: Optional[float] = 0.99,
    colormaps: Optional[ColormapRegistry] = None,
) -> Tuple[np.ndarray, RenderInfo]:
    """Render points onto `target`.

    Parameters
    ----------
    points : Sequence
        Point providers (x, y in μm, optional sigmas, get_attribute)
    target : Target
        Output raster
    strategy : Strategy
        HistogramStrategy, GaussianStrategy, CircleStrategy or EllipseStrategy
    color_mapping : ColorMapping
        Intensity, Field, Categorical, Manual or Grayscale mapping
    clip_percentile : float, optional
        Brightness clip for the per-point mappings (field, categorical,
        manual); None disables clipping. Intensity and Grayscale use their
        own clip_percentile.
    colormaps : ColormapRegistry, optional
        Colormap/palette provider; defaults to the matplotlib-backed registry

    Returns
    -------
    tuple
        (image, info): image is float64 (height, width, 3)

    Raises
    ------
    UnsupportedCombinationError
        Strategy cannot be paired with the color mapping
    ConfigError
        Invalid clip percentile
    UnknownColormapError
        Unknown colormap or palette
    AttributeLookupError
        Mapped attribute missing on a point
    """
    validate_pairing(strategy, color_mapping)
    _validate_clip(clip_percentile)

    timings: Dict[str, float] = {}
    n_skipped = 0
    n_fallbacks = 0

    with timer("render", sink=timings.__setitem__):
        resolved = resolve_colors(points, color_mapping, clip_percentile, colormaps)
        arrays = extract_arrays(points)

        if isinstance(strategy, HistogramStrategy):
            image, n_skipped = render_histogram(arrays, target, resolved)
        elif isinstance(strategy, GaussianStrategy):
            image, stats = render_gaussian(arrays, target, strategy, resolved)
            n_skipped = stats.n_skipped
            n_fallbacks = stats.n_covariance_fallbacks
        elif isinstance(strategy, CircleStrategy):
            image, n_skipped = render_circle(arrays, target, strategy, resolved)
        elif isinstance(strategy, EllipseStrategy):
            image, n_skipped = render_ellipse(arrays, target, strategy, resolved)
        else:
            raise ConfigError(f"Unknown rendering strategy: {type(strategy).__name__}")

    info = RenderInfo(
        elapsed_s=timings["render"],
        n_points=len(points),
        output_size=(target.height, target.width),
        pixel_size_nm=target.pixel_size,
        strategy=strategy.tag,
        color_mode=color_mapping.tag,
        field_range=resolved.value_range,
        n_skipped=n_skipped,
        n_covariance_fallbacks=n_fallbacks,
    )
    logger.info(
        "Rendered %dx%d %s/%s: %d points in %.3f s",
        target.width, target.height, info.strategy, info.color_mode, info.n_points, info.elapsed_s,
    )
    return image, info


# ============================================================================
# FLAT CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class RenderConfig:
    """Flat render configuration.

    Resolution (exactly one):
        - zoom (+ roi): fixed magnification of a reference grid passed to render()
        - pixel_size (+ margin): data bounds of the points
        - target: explicit Target

    Color (at most one mode; default intensity with "inferno"):
        - colormap alone: intensity colormap
        - color_by (+ colormap): field coloring, default colormap "turbo"
        - color_by + categorical (+ colormap as palette): categorical,
          default palette "tab10"
        - color: manual RGB triple or color name
        - grayscale: grayscale intensity
    """

    strategy: Strategy = field(default_factory=GaussianStrategy)
    zoom: Optional[float] = None
    roi: Optional[Tuple[Optional[Tuple[int, int]], Optional[Tuple[int, int]]]] = None
    pixel_size: Optional[float] = None
    margin: float = 0.05
    target: Optional[Target] = None
    colormap: Optional[str] = None
    color_by: Optional[str] = None
    color: Optional[Union[str, Tuple[float, float, float]]] = None
    categorical: bool = False
    grayscale: bool = False
    clip_percentile: Optional[float] = 0.99
    field_range: Union[Tuple[float, float], str] = "auto"
    field_clip_percentiles: Optional[Tuple[float, float]] = (0.01, 0.99)


def determine_color_mapping(config: RenderConfig) -> ColorMapping:
    """Build the color mapping selected by the flat config fields.

    Raises
    ------
    ConfigError
        Conflicting color selections
    """
    if config.color is not None and (config.colormap is not None or config.color_by is not None):
        raise ConfigError("color cannot be combined with colormap or color_by")
    if config.grayscale and (config.color is not None or config.colormap is not None or config.color_by is not None):
        raise ConfigError("grayscale cannot be combined with color, colormap or color_by")
    if config.categorical and config.color_by is None:
        raise ConfigError("categorical coloring requires color_by")

    intensity_clip = 1.0 if config.clip_percentile is None else config.clip_percentile

    if config.color_by is not None:
        if config.categorical:
            return CategoricalMapping(attribute=config.color_by, palette=config.colormap or "tab10")
        return FieldMapping(
            attribute=config.color_by,
            colormap=config.colormap or "turbo",
            range=config.field_range,
            clip_percentiles=config.field_clip_percentiles,
        )
    if config.colormap is not None:
        return IntensityMapping(colormap=config.colormap, clip_percentile=intensity_clip)
    if config.color is not None:
        return ManualMapping(rgb=parse_color(config.color))
    if config.grayscale:
        return GrayscaleMapping(clip_percentile=intensity_clip)
    return IntensityMapping(colormap="inferno", clip_percentile=intensity_clip)


def resolve_target(
    points: Sequence,
    zoom: Optional[float] = None,
    roi=None,
    pixel_size: Optional[float] = None,
    margin: float = 0.05,
    target: Optional[Target] = None,
    reference_grid: Optional[ReferenceGrid] = None,
) -> Target:
    """Build the target from exactly one resolution mode.

    Raises
    ------
    ConfigError
        Zero or several resolution modes, zoom without a reference grid, or
        roi without zoom
    """
    modes = [name for name, value in (("zoom", zoom), ("pixel_size", pixel_size), ("target", target))
             if value is not None]
    if len(modes) != 1:
        raise ConfigError(
            f"Exactly one resolution mode (zoom, pixel_size or target) is required, got {modes or 'none'}"
        )
    if roi is not None and zoom is None:
        raise ConfigError("roi is only valid together with zoom")

    if target is not None:
        return target
    if zoom is not None:
        if reference_grid is None:
            raise ConfigError("zoom requires a reference grid")
        return fixed_resolution_target(reference_grid, zoom, roi)
    return data_bounds_target(points, pixel_size, margin)


def render(
    points: Sequence,
    config: Optional[RenderConfig] = None,
    target: Optional[Target] = None,
    reference_grid: Optional[ReferenceGrid] = None,
    colormaps: Optional[ColormapRegistry] = None,
) -> Tuple[np.ndarray, RenderInfo]:
    """Render points with a flat RenderConfig.

    Parameters
    ----------
    points : Sequence
        Point providers
    config : RenderConfig, optional
        Configuration; defaults to RenderConfig()
    target : Target, optional
        Explicit target, counted as the resolution mode
    reference_grid : ReferenceGrid, optional
        Reference pixel grid for zoom mode
    colormaps : ColormapRegistry, optional
        Colormap/palette provider
    """
    config = config if config is not None else RenderConfig()
    if target is not None and config.target is not None:
        raise ConfigError("target given both in the config and as an argument")

    color_mapping = determine_color_mapping(config)
    validate_pairing(config.strategy, color_mapping)

    resolved_target = resolve_target(
        points,
        zoom=config.zoom,
        roi=config.roi,
        pixel_size=config.pixel_size,
        margin=config.margin,
        target=target if target is not None else config.target,
        reference_grid=reference_grid,
    )
    return render_points(
        points, resolved_target, config.strategy, color_mapping,
        clip_percentile=config.clip_percentile, colormaps=colormaps,
    )

