"""Core value types for point rendering.

Provides:
    - Target: output raster specification (size, pixel size, physical bounds)
    - Rendering strategies: Histogram, Gaussian, Circle, Ellipse
    - Color mappings: Intensity, Field, Categorical, Manual, Grayscale
    - RenderInfo: metadata returned alongside every rendered image
    - Error types raised for configuration and lookup failures

Units:
    - Positions and physical ranges: micrometers (μm)
    - Pixel size, fixed sigma, fixed radius: nanometers (nm)

Invariants:
    - All types are frozen; validation happens in __post_init__
    - Pixel (1, 1) center sits 0.5 * pixel_size from the range minimum
    - Strategies and mappings are closed sets; the orchestrator dispatches
      on them through one explicit pairing table
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union


# ============================================================================
# ERRORS
# ============================================================================

class ConfigError(ValueError):
    """Raised when render parameters or selections are invalid."""

    pass


class UnsupportedCombinationError(ConfigError):
    """Raised when a strategy cannot be paired with a color mapping."""

    def __init__(self, strategy: str, color_mode: str, hint: str = ""):
        self.strategy = strategy
        self.color_mode = color_mode
        msg = f"Unsupported combination: strategy '{strategy}' with color mode '{color_mode}'"
        if hint:
            msg = f"{msg}. {hint}"
        super().__init__(msg)


class UnknownColormapError(LookupError):
    """Raised when a colormap or palette identifier is not registered."""

    pass


class AttributeLookupError(KeyError):
    """Raised when a point does not carry the requested named attribute."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


# ============================================================================
# RENDER TARGET
# ============================================================================

@dataclass(frozen=True)
class Target:
    """Specification of a 2D output raster.

    Attributes
    ----------
    width : int
        Image width in pixels (number of columns, x axis)
    height : int
        Image height in pixels (number of rows, y axis)
    pixel_size : float
        Pixel edge length in nm
    x_range : tuple of float
        Physical (min, max) along x in μm
    y_range : tuple of float
        Physical (min, max) along y in μm
    """

    width: int
    height: int
    pixel_size: float
    x_range: Tuple[float, float]
    y_range: Tuple[float, float]

    def __post_init__(self):
        if int(self.width) != self.width or int(self.height) != self.height:
            raise ConfigError(
                f"Target dimensions must be integers, got {self.width}x{self.height}"
            )
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise ConfigError(
                f"Target dimensions must be positive, got {self.width}x{self.height}"
            )
        if not self.pixel_size > 0:
            raise ConfigError(f"pixel_size must be positive, got {self.pixel_size}")
        if not (self.x_range[0] < self.x_range[1] and self.y_range[0] < self.y_range[1]):
            raise ConfigError(
                f"Invalid physical ranges: x={self.x_range}, y={self.y_range} (need min < max)"
            )
        object.__setattr__(self, 'width', int(self.width))
        object.__setattr__(self, 'height', int(self.height))
        object.__setattr__(self, 'pixel_size', float(self.pixel_size))
        object.__setattr__(self, 'x_range', (float(self.x_range[0]), float(self.x_range[1])))
        object.__setattr__(self, 'y_range', (float(self.y_range[0]), float(self.y_range[1])))

    @property
    def shape(self) -> Tuple[int, int]:
        """Array shape (rows, cols) of a single-channel buffer."""
        return (self.height, self.width)


# ============================================================================
# RENDERING STRATEGIES
# ============================================================================

@dataclass(frozen=True)
class HistogramStrategy:
    """Bin each point into the pixel that contains it."""

    tag = "histogram"


@dataclass(frozen=True)
class GaussianStrategy:
    """Splat each point as a 2D normal kernel.

    Attributes
    ----------
    n_sigmas : float
        Half-width of the evaluated box in standard deviations, default 3
    use_precision : bool
        Use per-point sigma_x/sigma_y (and sigma_xy) instead of fixed_sigma
    fixed_sigma : float, optional
        Sigma in nm; required when use_precision is False
    normalization : str
        "integral" (unit volume) or "maximum" (unit peak)
    """

    n_sigmas: float = 3.0
    use_precision: bool = True
    fixed_sigma: Optional[float] = None
    normalization: str = "integral"

    tag = "gaussian"

    def __post_init__(self):
        if not self.n_sigmas > 0:
            raise ConfigError(f"n_sigmas must be positive, got {self.n_sigmas}")
        if self.normalization not in ("integral", "maximum"):
            raise ConfigError(
                f"normalization must be 'integral' or 'maximum', got '{self.normalization}'"
            )
        if not self.use_precision and (self.fixed_sigma is None or not self.fixed_sigma > 0):
            raise ConfigError(
                "fixed_sigma must be positive when not using localization precision"
            )
        if self.fixed_sigma is not None and not self.fixed_sigma > 0:
            raise ConfigError(f"fixed_sigma must be positive, got {self.fixed_sigma}")


@dataclass(frozen=True)
class CircleStrategy:
    """Draw each point as a circle outline (radius from precision or fixed)."""

    radius_factor: float = 2.0
    line_width: float = 1.0
    use_precision: bool = True
    fixed_radius: Optional[float] = None

    tag = "circle"

    def __post_init__(self):
        _validate_outline(self.radius_factor, self.line_width, self.use_precision, self.fixed_radius)


@dataclass(frozen=True)
class EllipseStrategy:
    """Draw each point as an ellipse outline rotated by its covariance.

    With use_precision=False the radii are fixed_radius (x) and fixed_radius_y
    (defaults to fixed_radius), both in nm, and no rotation is applied.
    """

    radius_factor: float = 2.0
    line_width: float = 1.0
    use_precision: bool = True
    fixed_radius: Optional[float] = None
    fixed_radius_y: Optional[float] = None

    tag = "ellipse"

    def __post_init__(self):
        _validate_outline(self.radius_factor, self.line_width, self.use_precision, self.fixed_radius)
        if self.fixed_radius_y is not None and not self.fixed_radius_y > 0:
            raise ConfigError(f"fixed_radius_y must be positive, got {self.fixed_radius_y}")

    @property
    def fixed_radii(self) -> Tuple[Optional[float], Optional[float]]:
        ry = self.fixed_radius_y if self.fixed_radius_y is not None else self.fixed_radius
        return (self.fixed_radius, ry)


def _validate_outline(radius_factor, line_width, use_precision, fixed_radius):
    if not radius_factor > 0:
        raise ConfigError(f"radius_factor must be positive, got {radius_factor}")
    if not line_width > 0:
        raise ConfigError(f"line_width must be positive, got {line_width}")
    if not use_precision and (fixed_radius is None or not fixed_radius > 0):
        raise ConfigError(
            "fixed_radius must be positive when not using localization precision"
        )
    if fixed_radius is not None and not fixed_radius > 0:
        raise ConfigError(f"fixed_radius must be positive, got {fixed_radius}")


Strategy = Union[HistogramStrategy, GaussianStrategy, CircleStrategy, EllipseStrategy]

OUTLINE_STRATEGIES = (CircleStrategy, EllipseStrategy)


# ============================================================================
# COLOR MAPPINGS
# ============================================================================

@dataclass(frozen=True)
class IntensityMapping:
    """Accumulate grayscale weight, clip, normalize, then apply a colormap.

    Attributes
    ----------
    colormap : str
        Colormap identifier resolved through the colormap provider
    clip_percentile : float
        Percentile of nonzero pixels to clip at, in (0, 1]
    """

    colormap: str = "inferno"
    clip_percentile: float = 0.99

    tag = "intensity"

    def __post_init__(self):
        if not (0.0 < self.clip_percentile <= 1.0):
            raise ConfigError(
                f"clip_percentile must be in (0, 1], got {self.clip_percentile}"
            )


@dataclass(frozen=True)
class FieldMapping:
    """Color each point by a named attribute through a colormap.

    Attributes
    ----------
    attribute : str
        Attribute name (e.g. "z", "frame", "absolute_frame")
    colormap : str
        Colormap identifier
    range : tuple of float or "auto"
        Explicit (min, max) value range, or "auto" to derive from the data
    clip_percentiles : tuple of float, optional
        (low, high) percentiles for the auto range; None uses the extrema
    """

    attribute: str
    colormap: str = "turbo"
    range: Union[Tuple[float, float], str] = "auto"
    clip_percentiles: Optional[Tuple[float, float]] = (0.01, 0.99)

    tag = "field"

    def __post_init__(self):
        if isinstance(self.range, str):
            if self.range != "auto":
                raise ConfigError(f"range must be a (min, max) tuple or 'auto', got '{self.range}'")
        else:
            lo, hi = self.range
            if not lo < hi:
                raise ConfigError(f"range must be (min, max) with min < max, got {self.range}")
            object.__setattr__(self, 'range', (float(lo), float(hi)))
        if self.clip_percentiles is not None:
            lo, hi = self.clip_percentiles
            if not (0.0 <= lo < hi <= 1.0):
                raise ConfigError(
                    "clip_percentiles must be (low, high) with 0 <= low < high <= 1, "
                    f"got {self.clip_percentiles}"
                )
            object.__setattr__(self, 'clip_percentiles', (float(lo), float(hi)))


@dataclass(frozen=True)
class CategoricalMapping:
    """Color each point by an integer attribute indexed into a palette."""

    attribute: str
    palette: str = "tab10"

    tag = "categorical"


@dataclass(frozen=True)
class ManualMapping:
    """Render every point in one fixed RGB color."""

    rgb: Tuple[float, float, float] = (1.0, 1.0, 1.0)

    tag = "manual"

    def __post_init__(self):
        if len(self.rgb) != 3:
            raise ConfigError(f"rgb must have 3 components, got {self.rgb}")
        object.__setattr__(self, 'rgb', tuple(float(c) for c in self.rgb))


@dataclass(frozen=True)
class GrayscaleMapping:
    """Accumulate like IntensityMapping but skip the colormap step."""

    clip_percentile: float = 0.99

    tag = "grayscale"

    def __post_init__(self):
        if not (0.0 < self.clip_percentile <= 1.0):
            raise ConfigError(
                f"clip_percentile must be in (0, 1], got {self.clip_percentile}"
            )


ColorMapping = Union[IntensityMapping, FieldMapping, CategoricalMapping, ManualMapping, GrayscaleMapping]


# ============================================================================
# RESULTS
# ============================================================================

@dataclass(frozen=True)
class RenderInfo:
    """Metadata describing one render call.

    `field_range` is the value range used for field coloring (or the attribute
    extrema for categorical coloring) so callers can draw a legend.
    `n_skipped` counts points dropped for degenerate sigma/radius and
    `n_covariance_fallbacks` counts Gaussian kernels whose covariance was not
    positive definite and were drawn axis-aligned instead.
    """

    elapsed_s: float
    n_points: int
    output_size: Tuple[int, int]
    pixel_size_nm: float
    strategy: str
    color_mode: str
    backend: str = "cpu"
    field_range: Optional[Tuple[float, float]] = None
    n_skipped: int = 0
    n_covariance_fallbacks: int = 0
