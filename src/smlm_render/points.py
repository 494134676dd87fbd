"""Point records and vectorized attribute extraction.

Provides:
    - Point: frozen localization record (x, y in μm, optional sigmas, brightness,
      open-ended named attributes)
    - points_from_arrays(): build a point list from column arrays
    - PointArrays / extract_arrays(): columnar float64 view used by the
      rasterizers (missing sigmas become NaN)
    - attribute_values(): resolve a named attribute once for all points,
      including the computed "absolute_frame"
    - compute_frame_offsets(): cumulative per-dataset frame offsets

Any object exposing x, y (and optionally sigma_x, sigma_y, sigma_xy,
brightness) plus get_attribute(name) can be rendered; Point is the bundled
implementation. Points are never mutated.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

import numpy as np

from src.smlm_render.types import AttributeLookupError

logger = logging.getLogger(__name__)

ABSOLUTE_FRAME = "absolute_frame"

_CORE_FIELDS = ("x", "y", "sigma_x", "sigma_y", "sigma_xy", "brightness")


@dataclass(frozen=True)
class Point:
    """One localization.

    Attributes
    ----------
    x, y : float
        Position in μm
    sigma_x, sigma_y : float, optional
        Localization precision per axis in μm
    sigma_xy : float, optional
        x/y covariance in μm²
    brightness : float
        Photon count or other brightness measure
    attributes : Mapping[str, float]
        Named scalar attributes (e.g. z, frame, dataset, photons, cluster_id)
    """

    x: float
    y: float
    sigma_x: Optional[float] = None
    sigma_y: Optional[float] = None
    sigma_xy: Optional[float] = None
    brightness: float = 1.0
    attributes: Mapping[str, float] = field(default_factory=dict)

    def get_attribute(self, name: str) -> float:
        """Return a core field or a named attribute.

        Raises
        ------
        AttributeLookupError
            If the point has no attribute called `name`
        """
        if name in _CORE_FIELDS:
            value = getattr(self, name)
            if value is None:
                raise AttributeLookupError(f"Point has no value for '{name}'")
            return value
        try:
            return self.attributes[name]
        except KeyError:
            raise AttributeLookupError(
                f"Point has no attribute '{name}' (available: {sorted(self.attributes)})"
            ) from None


def points_from_arrays(x, y, sigma_x=None, sigma_y=None, sigma_xy=None, brightness=None, **attributes):
    """Build a list of Points from equally long column arrays.

    Examples
    --------
    >>> pts = points_from_arrays([1.0, 2.0], [1.0, 2.0], z=[-0.1, 0.3])
    >>> pts[1].get_attribute("z")
    0.3
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.shape != y.shape or x.ndim != 1:
        raise ValueError(f"x and y must be 1D arrays of equal length, got {x.shape} and {y.shape}")

    def _column(values):
        if values is None:
            return [None] * len(x)
        arr = np.asarray(values, dtype=np.float64)
        if arr.shape != x.shape:
            raise ValueError(f"Column length {arr.shape} does not match x {x.shape}")
        return [float(v) for v in arr]

    sx, sy, sxy = _column(sigma_x), _column(sigma_y), _column(sigma_xy)
    bright = _column(brightness) if brightness is not None else [1.0] * len(x)
    columns = {name: _column(values) for name, values in attributes.items()}

    return [
        Point(
            x=float(x[k]),
            y=float(y[k]),
            sigma_x=sx[k],
            sigma_y=sy[k],
            sigma_xy=sxy[k],
            brightness=bright[k],
            attributes={name: col[k] for name, col in columns.items()},
        )
        for k in range(len(x))
    ]


@dataclass(frozen=True)
class PointArrays:
    """Columnar float64 view of a point sequence (NaN where a sigma is absent)."""

    x: np.ndarray
    y: np.ndarray
    sigma_x: np.ndarray
    sigma_y: np.ndarray
    sigma_xy: np.ndarray

    def __len__(self) -> int:
        return len(self.x)


def _optional(point: Any, name: str) -> float:
    value = getattr(point, name, None)
    return np.nan if value is None else float(value)


def extract_arrays(points: Sequence[Any]) -> PointArrays:
    """Collect positions and precisions of all points into arrays."""
    n = len(points)
    x = np.fromiter((float(p.x) for p in points), dtype=np.float64, count=n)
    y = np.fromiter((float(p.y) for p in points), dtype=np.float64, count=n)
    sigma_x = np.fromiter((_optional(p, "sigma_x") for p in points), dtype=np.float64, count=n)
    sigma_y = np.fromiter((_optional(p, "sigma_y") for p in points), dtype=np.float64, count=n)
    sigma_xy = np.fromiter((_optional(p, "sigma_xy") for p in points), dtype=np.float64, count=n)
    return PointArrays(x=x, y=y, sigma_x=sigma_x, sigma_y=sigma_y, sigma_xy=sigma_xy)


def compute_frame_offsets(points: Sequence[Any]) -> Dict[int, int]:
    """Cumulative frame offset per dataset id.

    Datasets are ordered by id; each one is shifted by the sum of the maximum
    frame numbers of all datasets before it, so that
    ``frame + offsets[dataset]`` is continuous across datasets.

    Examples
    --------
    >>> # dataset 1: frames 1..100, dataset 2: frames 1..50
    >>> compute_frame_offsets(points)
    {1: 0, 2: 100}
    """
    max_frames: Dict[int, int] = {}
    for p in points:
        ds = int(p.get_attribute("dataset"))
        max_frames[ds] = max(max_frames.get(ds, 0), int(p.get_attribute("frame")))

    offsets: Dict[int, int] = {}
    cumulative = 0
    for ds in sorted(max_frames):
        offsets[ds] = cumulative
        cumulative += max_frames[ds]
    return offsets


def attribute_values(
    points: Sequence[Any],
    name: str,
    frame_offsets: Optional[Dict[int, int]] = None,
) -> np.ndarray:
    """Resolve attribute `name` for every point into a float64 array.

    Parameters
    ----------
    points : Sequence
        Point providers
    name : str
        Attribute name; "absolute_frame" is computed from frame and dataset
    frame_offsets : dict, optional
        Precomputed offsets for "absolute_frame"; computed on demand if None

    Raises
    ------
    AttributeLookupError
        If any point lacks the attribute
    """
    if name == ABSOLUTE_FRAME:
        if frame_offsets is None:
            frame_offsets = compute_frame_offsets(points)
        return np.array(
            [p.get_attribute("frame") + frame_offsets[int(p.get_attribute("dataset"))] for p in points],
            dtype=np.float64,
        )
    return np.array([p.get_attribute(name) for p in points], dtype=np.float64)
