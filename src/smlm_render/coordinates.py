"""Physical ↔ pixel coordinate mapping and target construction.

Conventions:
    - Physical coordinates in μm, pixel sizes in nm
    - Pixel indices are 1-based: (i, j) = (row, column) = (y, x)
    - Continuous pixel coordinate 1.0 is the center of the first pixel, i.e.
      pixel (1, 1)'s center sits 0.5 * pixel_size from the range minimum
    - Index rounding is round-half-to-even (numpy.rint)

Target construction modes:
    - fixed_resolution_target(): reference grid pixel size / zoom, bounds taken
      from the grid's cell edges; extent independent of the data
    - data_bounds_target(): data extrema ± fractional margin, absolute pixel size
    - target_from_edges(): explicit pixel edge vectors

All functions accept scalars or numpy arrays.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from src.smlm_render.types import ConfigError, Target

logger = logging.getLogger(__name__)

# Relative tolerance when checking that edge vectors describe square pixels
_SQUARE_PIXEL_RTOL = 1e-6


def physical_to_pixel(x, y, target: Target):
    """Convert μm positions to continuous pixel coordinates.

    Returns
    -------
    tuple
        (x_pixel, y_pixel); (1.0, 1.0) is the center of the top-left pixel
    """
    x_nm = np.asarray(x, dtype=np.float64) * 1000.0
    y_nm = np.asarray(y, dtype=np.float64) * 1000.0
    x_pixel = (x_nm - target.x_range[0] * 1000.0) / target.pixel_size + 0.5
    y_pixel = (y_nm - target.y_range[0] * 1000.0) / target.pixel_size + 0.5
    return x_pixel, y_pixel


def physical_to_pixel_index(x, y, target: Target):
    """Nearest pixel (i, j) for μm positions; may fall outside the image."""
    x_pixel, y_pixel = physical_to_pixel(x, y, target)
    i = np.rint(y_pixel).astype(np.int64)
    j = np.rint(x_pixel).astype(np.int64)
    return i, j


def in_bounds(i, j, target: Target):
    """True where 1 <= i <= height and 1 <= j <= width."""
    i = np.asarray(i)
    j = np.asarray(j)
    return (i >= 1) & (i <= target.height) & (j >= 1) & (j <= target.width)


def pixel_to_physical(i, j, target: Target):
    """Physical (x, y) in μm of the center of pixel (i, j)."""
    i = np.asarray(i, dtype=np.float64)
    j = np.asarray(j, dtype=np.float64)
    x = target.x_range[0] + (j - 0.5) * target.pixel_size / 1000.0
    y = target.y_range[0] + (i - 0.5) * target.pixel_size / 1000.0
    return x, y


# ============================================================================
# REFERENCE GRID
# ============================================================================

@dataclass(frozen=True)
class ReferenceGrid:
    """Pixel edges of a reference detector grid (μm).

    `pixel_edges_x[k]` is the left edge of reference pixel k+1 and
    `pixel_edges_x[k+1]` its right edge, so a grid with N pixels per axis
    carries N+1 edges.
    """

    pixel_edges_x: np.ndarray
    pixel_edges_y: np.ndarray

    def __post_init__(self):
        ex = np.asarray(self.pixel_edges_x, dtype=np.float64)
        ey = np.asarray(self.pixel_edges_y, dtype=np.float64)
        if ex.ndim != 1 or ey.ndim != 1 or len(ex) < 2 or len(ey) < 2:
            raise ConfigError("Reference grid needs at least two pixel edges per axis")
        if np.any(np.diff(ex) <= 0) or np.any(np.diff(ey) <= 0):
            raise ConfigError("Reference grid pixel edges must be strictly increasing")
        object.__setattr__(self, 'pixel_edges_x', ex)
        object.__setattr__(self, 'pixel_edges_y', ey)

    @classmethod
    def uniform(cls, n_x: int, n_y: int, pixel_size_nm: float, origin: Tuple[float, float] = (0.0, 0.0)):
        """Regular grid of n_x × n_y pixels starting at `origin` (μm)."""
        step = pixel_size_nm / 1000.0
        return cls(
            pixel_edges_x=origin[0] + step * np.arange(n_x + 1),
            pixel_edges_y=origin[1] + step * np.arange(n_y + 1),
        )

    @property
    def n_pixels_x(self) -> int:
        return len(self.pixel_edges_x) - 1

    @property
    def n_pixels_y(self) -> int:
        return len(self.pixel_edges_y) - 1

    @property
    def pixel_size_nm(self) -> float:
        """Pixel size from the first cell (square pixels assumed)."""
        return float(self.pixel_edges_x[1] - self.pixel_edges_x[0]) * 1000.0


def _resolve_window(window: Optional[Tuple[int, int]], n_pixels: int, axis: str) -> Tuple[int, int]:
    if window is None:
        return (1, n_pixels)
    first, last = int(window[0]), int(window[1])
    if not (1 <= first <= last <= n_pixels):
        raise ConfigError(
            f"ROI {axis} window ({first}, {last}) must satisfy 1 <= first <= last <= {n_pixels}"
        )
    return (first, last)


def fixed_resolution_target(
    grid: ReferenceGrid,
    zoom: float,
    roi: Optional[Tuple[Optional[Tuple[int, int]], Optional[Tuple[int, int]]]] = None,
) -> Target:
    """Target covering the reference grid (or a window of it) at `zoom`× resolution.

    Parameters
    ----------
    grid : ReferenceGrid
        Reference pixel edges
    zoom : float
        Magnification; output pixel size = grid pixel size / zoom
    roi : tuple, optional
        ((x_first, x_last), (y_first, y_last)) reference pixel indices,
        1-based and inclusive. Either axis may be None for its full range.

    Returns
    -------
    Target
        width = round(n_window_x * zoom), height = round(n_window_y * zoom)
    """
    if not zoom > 0:
        raise ConfigError(f"zoom must be positive, got {zoom}")

    x_window, y_window = (None, None) if roi is None else roi
    x_first, x_last = _resolve_window(x_window, grid.n_pixels_x, "x")
    y_first, y_last = _resolve_window(y_window, grid.n_pixels_y, "y")

    x_range = (float(grid.pixel_edges_x[x_first - 1]), float(grid.pixel_edges_x[x_last]))
    y_range = (float(grid.pixel_edges_y[y_first - 1]), float(grid.pixel_edges_y[y_last]))

    width = int(round((x_last - x_first + 1) * zoom))
    height = int(round((y_last - y_first + 1) * zoom))

    return Target(
        width=width,
        height=height,
        pixel_size=grid.pixel_size_nm / zoom,
        x_range=x_range,
        y_range=y_range,
    )


def data_bounds_target(points: Sequence, pixel_size: float, margin: float = 0.05) -> Target:
    """Target spanning the point extrema plus `margin` × span on each side.

    Notes
    -----
    With ``margin=0`` the extreme points sit exactly on the outer pixel edges
    (continuous coordinate 0.5 on the minimum side). Half-to-even rounding
    sends the minimum point to index 0, and the maximum point past the last
    pixel when the size is odd, so Histogram drops them as out of bounds.
    Keep a positive margin when every point must land in the image.

    Raises
    ------
    ConfigError
        If there are no points, the span is zero on an axis, or the
        parameters are not positive
    """
    if not pixel_size > 0:
        raise ConfigError(f"pixel_size must be positive, got {pixel_size}")
    if margin < 0:
        raise ConfigError(f"margin must be non-negative, got {margin}")
    if margin == 0:
        logger.debug("Data-bounds target without margin: extreme points fall on the pixel edges")
    if len(points) == 0:
        raise ConfigError("Cannot derive data bounds from an empty point set")

    xs = np.fromiter((float(p.x) for p in points), dtype=np.float64, count=len(points))
    ys = np.fromiter((float(p.y) for p in points), dtype=np.float64, count=len(points))
    x_min, x_max = float(xs.min()), float(xs.max())
    y_min, y_max = float(ys.min()), float(ys.max())

    x_span = x_max - x_min
    y_span = y_max - y_min
    if x_span <= 0 or y_span <= 0:
        raise ConfigError(
            f"Data bounds have zero span (x span {x_span} μm, y span {y_span} μm); "
            "use a fixed-resolution or explicit target instead"
        )

    x_min -= margin * x_span
    x_max += margin * x_span
    y_min -= margin * y_span
    y_max += margin * y_span

    width = math.ceil((x_max - x_min) * 1000.0 / pixel_size)
    height = math.ceil((y_max - y_min) * 1000.0 / pixel_size)

    logger.debug(
        "Data-bounds target: %dx%d px at %.2f nm, x=(%.4f, %.4f) y=(%.4f, %.4f)",
        width, height, pixel_size, x_min, x_max, y_min, y_max,
    )
    return Target(width=width, height=height, pixel_size=pixel_size,
                  x_range=(x_min, x_max), y_range=(y_min, y_max))


def target_from_edges(x_edges, y_edges) -> Target:
    """Target whose pixels are delimited by explicit edge vectors (μm).

    Raises
    ------
    ConfigError
        If an axis has fewer than two edges or the pixels are not square
    """
    x_edges = np.asarray(x_edges, dtype=np.float64)
    y_edges = np.asarray(y_edges, dtype=np.float64)
    if len(x_edges) < 2 or len(y_edges) < 2:
        raise ConfigError("Edge vectors need at least two entries per axis")

    px_x = (x_edges[1] - x_edges[0]) * 1000.0
    px_y = (y_edges[1] - y_edges[0]) * 1000.0
    if not np.isclose(px_x, px_y, rtol=_SQUARE_PIXEL_RTOL, atol=0.0):
        raise ConfigError(f"Non-square pixels are not supported: {px_x} nm x {px_y} nm")

    return Target(
        width=len(x_edges) - 1,
        height=len(y_edges) - 1,
        pixel_size=float(px_x),
        x_range=(float(x_edges[0]), float(x_edges[-1])),
        y_range=(float(y_edges[0]), float(y_edges[-1])),
    )
