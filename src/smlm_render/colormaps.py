"""Colormap and palette provider.

Continuous colormaps are pure functions from values in [0, 1] to RGB;
palettes are ordered (P, 3) RGB arrays indexed by category. Both are looked
up by name through a ColormapRegistry. The default registry samples
matplotlib's colormap registry into lookup tables, and callers may register
their own tables or functions on a private registry and pass it to the
renderer.

Usage:
    from src.smlm_render.colormaps import default_registry, parse_color
    cmap = default_registry().get_colormap("inferno")
    rgb = cmap(np.linspace(0, 1, 5))        # (5, 3)
    tab10 = default_registry().get_palette("tab10")  # (10, 3)
    parse_color("cyan")                      # (0.0, 1.0, 1.0)

Unknown names raise UnknownColormapError (a LookupError).
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import matplotlib
import matplotlib.colors as mcolors
import numpy as np

from src.smlm_render.types import ConfigError, UnknownColormapError

logger = logging.getLogger(__name__)

# Number of lookup-table entries sampled from a continuous colormap
LUT_ENTRIES = 256

ColormapFn = Callable[[np.ndarray], np.ndarray]


class LookupColormap:
    """Continuous colormap backed by an (N, 3) lookup table.

    Values are clamped to [0, 1] and mapped to the nearest table entry, so
    0.0 and 1.0 always hit the first and last entries.
    """

    def __init__(self, name: str, lut: np.ndarray):
        lut = np.asarray(lut, dtype=np.float64)
        if lut.ndim != 2 or lut.shape[1] != 3 or lut.shape[0] < 2:
            raise ConfigError(f"Colormap '{name}' needs an (N>=2, 3) table, got {lut.shape}")
        self.name = name
        self.lut = lut

    def __call__(self, values) -> np.ndarray:
        values = np.clip(np.asarray(values, dtype=np.float64), 0.0, 1.0)
        index = np.rint(values * (len(self.lut) - 1)).astype(np.int64)
        return self.lut[index]

    def __repr__(self) -> str:
        return f"LookupColormap({self.name}, entries={len(self.lut)})"


def _sample_matplotlib(name: str, entries: int = LUT_ENTRIES) -> LookupColormap:
    cmap = matplotlib.colormaps[name]
    lut = cmap(np.linspace(0.0, 1.0, entries))[:, :3]
    return LookupColormap(name, lut)


def _matplotlib_palette(name: str) -> np.ndarray:
    cmap = matplotlib.colormaps[name]
    if isinstance(cmap, mcolors.ListedColormap):
        colors = np.asarray(mcolors.to_rgba_array(cmap.colors), dtype=np.float64)
    else:
        colors = cmap(np.linspace(0.0, 1.0, cmap.N))
    return colors[:, :3]


class ColormapRegistry:
    """Name → colormap / palette lookup.

    Parameters
    ----------
    use_matplotlib : bool
        Fall back to matplotlib's registry for names not registered here.
        Entries registered explicitly always take precedence.
    """

    def __init__(self, use_matplotlib: bool = True):
        self.use_matplotlib = use_matplotlib
        self._colormaps: Dict[str, ColormapFn] = {}
        self._palettes: Dict[str, np.ndarray] = {}

    def register_colormap(self, name: str, colormap: Union[ColormapFn, Sequence]) -> None:
        """Register a callable, or a list of RGB stops interpolated into a table."""
        if callable(colormap):
            self._colormaps[name] = colormap
            return
        stops = np.asarray(colormap, dtype=np.float64)
        if stops.ndim != 2 or stops.shape[1] != 3 or len(stops) < 2:
            raise ConfigError(f"Colormap '{name}' needs at least two RGB stops, got shape {stops.shape}")
        segmented = mcolors.LinearSegmentedColormap.from_list(name, stops, N=LUT_ENTRIES)
        self._colormaps[name] = LookupColormap(name, segmented(np.linspace(0.0, 1.0, LUT_ENTRIES))[:, :3])

    def register_palette(self, name: str, colors: Sequence) -> None:
        """Register an ordered palette of RGB tuples or color names."""
        rgb = np.array([parse_color(c) for c in colors], dtype=np.float64)
        if len(rgb) == 0:
            raise ConfigError(f"Palette '{name}' must contain at least one color")
        self._palettes[name] = rgb

    def has_colormap(self, name: str) -> bool:
        if name in self._colormaps:
            return True
        return self.use_matplotlib and name in matplotlib.colormaps

    def has_palette(self, name: str) -> bool:
        if name in self._palettes:
            return True
        return self.use_matplotlib and name in matplotlib.colormaps

    def get_colormap(self, name: str) -> ColormapFn:
        """Return the colormap function for `name`.

        Raises
        ------
        UnknownColormapError
            If `name` is neither registered nor known to matplotlib
        """
        if name in self._colormaps:
            return self._colormaps[name]
        if not self.has_colormap(name):
            raise UnknownColormapError(f"Unknown colormap '{name}'")
        cmap = _sample_matplotlib(name)
        self._colormaps[name] = cmap
        return cmap

    def get_palette(self, name: str) -> np.ndarray:
        """Return the (P, 3) palette for `name`.

        Raises
        ------
        UnknownColormapError
            If `name` is neither registered nor known to matplotlib
        """
        if name in self._palettes:
            return self._palettes[name]
        if not self.has_palette(name):
            raise UnknownColormapError(f"Unknown palette '{name}'")
        palette = _matplotlib_palette(name)
        self._palettes[name] = palette
        return palette

    def preload(self, colormaps: Sequence[str] = (), palettes: Sequence[str] = ()) -> None:
        """Sample the named colormaps and palettes into the cache now.

        Lookups of preloaded names never write to the registry afterwards.

        Raises
        ------
        UnknownColormapError
            If any name is unknown
        """
        for name in colormaps:
            self.get_colormap(name)
        for name in palettes:
            self.get_palette(name)


_DEFAULT_REGISTRY: Optional[ColormapRegistry] = None


def default_registry() -> ColormapRegistry:
    """Process-wide matplotlib-backed registry (created on first use).

    Every name in list_recommended_colormaps() is sampled when the registry is
    created, so renders using those names only read from it. Other matplotlib
    names are still sampled and cached on first lookup; pass a private
    registry to the renderer to keep that state out of the process-wide one.
    """
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        registry = ColormapRegistry()
        recommended = list_recommended_colormaps()
        registry.preload(
            colormaps=[name for group in ('sequential', 'diverging', 'cyclic') for name in recommended[group]],
            palettes=recommended['categorical'],
        )
        logger.debug("Default colormap registry ready (%d colormaps, %d palettes)",
                     len(registry._colormaps), len(registry._palettes))
        _DEFAULT_REGISTRY = registry
    return _DEFAULT_REGISTRY


def parse_color(spec) -> Tuple[float, float, float]:
    """Turn an RGB triple or a color name ("red", "#00ff00", "tab:blue") into floats.

    Raises
    ------
    ConfigError
        If the color cannot be interpreted
    """
    if isinstance(spec, str):
        try:
            r, g, b = mcolors.to_rgb(spec)
        except ValueError as e:
            raise ConfigError(f"Invalid color '{spec}': {e}") from e
        return (float(r), float(g), float(b))

    rgb = tuple(float(c) for c in spec)
    if len(rgb) != 3:
        raise ConfigError(f"RGB color needs 3 components, got {spec}")
    return rgb


def list_recommended_colormaps() -> Dict[str, List[str]]:
    """Colormap suggestions grouped by purpose."""
    return {
        'sequential': ['viridis', 'cividis', 'inferno', 'magma', 'plasma', 'turbo', 'hot'],
        'diverging': ['RdBu', 'seismic', 'coolwarm'],
        'cyclic': ['twilight', 'twilight_shifted', 'hsv'],
        'perceptual': ['viridis', 'cividis', 'inferno', 'magma', 'plasma'],
        'categorical': ['tab10', 'tab20', 'Set1', 'Set2', 'Dark2'],
    }
