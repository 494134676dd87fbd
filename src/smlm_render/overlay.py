"""Multi-channel overlay compositing.

Each channel (one point set) is rendered on a shared target in its own
fixed color, optionally clipped per RGB channel and normalized by its own
maximum so that channels of different density read equally bright, then all
channels are summed and clamped to [0, 1]. Overlapping red and green give
yellow; full saturation on every channel clips to white.

Outline strategies draw at full intensity and are never normalized.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from src.smlm_render.colormaps import ColormapRegistry, parse_color
from src.smlm_render.coordinates import ReferenceGrid
from src.smlm_render.normalization import clip_rgb_channels, normalize_rgb
from src.smlm_render.renderer import render_points, resolve_target, validate_pairing
from src.smlm_render.types import (
    OUTLINE_STRATEGIES,
    ConfigError,
    GaussianStrategy,
    ManualMapping,
    RenderInfo,
    Strategy,
    Target,
)
from src.utils.logging_config import log_context
from src.utils.profiler import TimerAccumulator

logger = logging.getLogger(__name__)


def render_overlay(
    channels: Sequence[Sequence],
    colors: Sequence,
    strategy: Optional[Strategy] = None,
    target: Optional[Target] = None,
    pixel_size: Optional[float] = None,
    zoom: Optional[float] = None,
    roi=None,
    margin: float = 0.05,
    reference_grid: Optional[ReferenceGrid] = None,
    normalize_each: bool = True,
    clip_percentile: Optional[float] = 0.99,
    channel_clip_percentile: Optional[float] = None,
    colormaps: Optional[ColormapRegistry] = None,
) -> Tuple[np.ndarray, RenderInfo]:
    """Render point sets in separate colors and combine them additively.

    Parameters
    ----------
    channels : Sequence of point sequences
        One point set per channel
    colors : Sequence
        One color per channel (RGB triple or color name)
    strategy : Strategy, optional
        Rendering strategy for every channel, default GaussianStrategy()
    target, pixel_size, zoom (+ roi, reference_grid) : optional
        Exactly one resolution mode; pixel_size uses the data bounds of all
        channels combined
    normalize_each : bool
        Divide each channel image by its own maximum component before
        summing (ignored for outline strategies)
    clip_percentile : float, optional
        Brightness clip passed to each channel render
    channel_clip_percentile : float, optional
        Additional per-RGB-channel nonzero-percentile clip of each channel
        image before normalization

    Returns
    -------
    tuple
        (image in [0, 1], RenderInfo with color_mode "manual" and the total
        point count)
    """
    if len(channels) == 0:
        raise ConfigError("render_overlay needs at least one channel")
    if len(channels) != len(colors):
        raise ConfigError(
            f"Number of channels ({len(channels)}) must match number of colors ({len(colors)})"
        )

    strategy = strategy if strategy is not None else GaussianStrategy()
    mappings = [ManualMapping(rgb=parse_color(c)) for c in colors]
    validate_pairing(strategy, mappings[0])

    combined_points = [p for channel in channels for p in channel]
    shared_target = resolve_target(
        combined_points,
        zoom=zoom,
        roi=roi,
        pixel_size=pixel_size,
        margin=margin,
        target=target,
        reference_grid=reference_grid,
    )

    normalize = normalize_each and not isinstance(strategy, OUTLINE_STRATEGIES)
    combined = np.zeros(shared_target.shape + (3,), dtype=np.float64)
    acc = TimerAccumulator("overlay_channel")
    n_skipped = 0
    n_fallbacks = 0

    for k, (points, mapping) in enumerate(zip(channels, mappings), start=1):
        with log_context(channel=k), acc.measure():
            image, info = render_points(
                points, shared_target, strategy, mapping,
                clip_percentile=clip_percentile, colormaps=colormaps,
            )
            if channel_clip_percentile is not None:
                image = clip_rgb_channels(image, channel_clip_percentile)
            if normalize:
                image = normalize_rgb(image)
            combined += image
        n_skipped += info.n_skipped
        n_fallbacks += info.n_covariance_fallbacks

    np.clip(combined, 0.0, 1.0, out=combined)

    info = RenderInfo(
        elapsed_s=acc.total_time,
        n_points=len(combined_points),
        output_size=(shared_target.height, shared_target.width),
        pixel_size_nm=shared_target.pixel_size,
        strategy=strategy.tag,
        color_mode=ManualMapping.tag,
        n_skipped=n_skipped,
        n_covariance_fallbacks=n_fallbacks,
    )
    logger.info(
        "Overlay of %d channels (%s): %d points in %.3f s",
        len(channels), strategy.tag, info.n_points, info.elapsed_s,
    )
    return combined, info
