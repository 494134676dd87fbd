"""Point-cloud to raster rendering.

Layers (one-way dependencies, leaf first):
    types → points, coordinates, normalization, colormaps → color_mapping
    → histogram, gaussian, outline → renderer → overlay

Convenience imports:
    from src.smlm_render import render, render_points, render_overlay
    from src.smlm_render import Target, GaussianStrategy, FieldMapping
"""

from .color_mapping import field_value_range
from .colormaps import ColormapRegistry, default_registry, list_recommended_colormaps, parse_color
from .coordinates import (
    ReferenceGrid,
    data_bounds_target,
    fixed_resolution_target,
    in_bounds,
    physical_to_pixel,
    physical_to_pixel_index,
    pixel_to_physical,
    target_from_edges,
)
from .normalization import clip_and_normalize, clip_at_percentile, normalize_to_01
from .overlay import render_overlay
from .points import Point, attribute_values, compute_frame_offsets, points_from_arrays
from .renderer import RenderConfig, render, render_points
from .types import (
    AttributeLookupError,
    CategoricalMapping,
    CircleStrategy,
    ConfigError,
    EllipseStrategy,
    FieldMapping,
    GaussianStrategy,
    GrayscaleMapping,
    HistogramStrategy,
    IntensityMapping,
    ManualMapping,
    RenderInfo,
    Target,
    UnknownColormapError,
    UnsupportedCombinationError,
)

__all__ = [
    # Entry points
    'render',
    'render_points',
    'render_overlay',
    'RenderConfig',
    'RenderInfo',
    # Targets
    'Target',
    'ReferenceGrid',
    'fixed_resolution_target',
    'data_bounds_target',
    'target_from_edges',
    'physical_to_pixel',
    'physical_to_pixel_index',
    'pixel_to_physical',
    'in_bounds',
    # Strategies and mappings
    'HistogramStrategy',
    'GaussianStrategy',
    'CircleStrategy',
    'EllipseStrategy',
    'IntensityMapping',
    'FieldMapping',
    'CategoricalMapping',
    'ManualMapping',
    'GrayscaleMapping',
    # Points
    'Point',
    'points_from_arrays',
    'attribute_values',
    'compute_frame_offsets',
    'field_value_range',
    # Colors and normalization
    'ColormapRegistry',
    'default_registry',
    'parse_color',
    'list_recommended_colormaps',
    'clip_at_percentile',
    'normalize_to_01',
    'clip_and_normalize',
    # Errors
    'ConfigError',
    'UnsupportedCombinationError',
    'UnknownColormapError',
    'AttributeLookupError',
]
