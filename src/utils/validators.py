"""YAML schema validation for render configuration files.

Provides pydantic models for the render.v1 schema and loaders that fail fast
with actionable messages (offending key, expected range):
    - ResolutionV1: zoom (+ roi) or pixel_size (+ margin)
    - StrategyV1: strategy kind and its parameters
    - ColorV1: flat color selection (colormap / color_by / color / grayscale)
    - LoggingV1: keyword arguments for logging_config.setup_logging
    - RenderConfigV1: the whole file, convertible to a core RenderConfig

Units:
    - pixel_size, fixed_sigma, fixed_radius: nanometers (nm)
    - roi: reference-grid pixel indices, 1-based and inclusive

Usage:
    from src.utils import validators

    cfg = validators.load_render_config("configs/render.v1.yaml")
    image, info = render(points, cfg.to_render_config(), reference_grid=grid)
"""

from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


# ============================================================================
# RENDER SCHEMA V1
# ============================================================================

class RoiV1(BaseModel):
    """Reference-grid window, 1-based inclusive; None means the full axis."""
    model_config = ConfigDict(extra='forbid')

    x: Optional[Tuple[int, int]] = Field(None, description="(first, last) column of the reference grid")
    y: Optional[Tuple[int, int]] = Field(None, description="(first, last) row of the reference grid")

    @field_validator('x', 'y')
    @classmethod
    def validate_window(cls, v: Optional[Tuple[int, int]]) -> Optional[Tuple[int, int]]:
        if v is None:
            return v
        first, last = v
        if first < 1 or last < first:
            raise ValueError(f"ROI window must satisfy 1 <= first <= last, got {v}")
        return v

    def as_tuple(self):
        return (self.x, self.y)


class ResolutionV1(BaseModel):
    """Exactly one of zoom or pixel_size."""
    model_config = ConfigDict(extra='forbid')

    zoom: Optional[float] = Field(None, gt=0.0, le=1000.0, description="Magnification of the reference grid")
    roi: Optional[RoiV1] = None
    pixel_size: Optional[float] = Field(None, gt=0.0, description="Output pixel size in nm")
    margin: float = Field(0.05, ge=0.0, le=1.0, description="Fractional margin around the data bounds")

    @model_validator(mode='after')
    def validate_single_mode(self) -> 'ResolutionV1':
        if (self.zoom is None) == (self.pixel_size is None):
            raise ValueError("resolution needs exactly one of 'zoom' or 'pixel_size'")
        if self.roi is not None and self.zoom is None:
            raise ValueError("resolution.roi is only valid together with 'zoom'")
        return self


class StrategyV1(BaseModel):
    """Rendering strategy and parameters (unused fields are ignored per kind)."""
    model_config = ConfigDict(extra='forbid')

    kind: Literal["histogram", "gaussian", "circle", "ellipse"] = "gaussian"
    n_sigmas: float = Field(3.0, gt=0.0, le=10.0)
    use_precision: bool = True
    fixed_sigma: Optional[float] = Field(None, gt=0.0, description="Gaussian sigma in nm")
    normalization: Literal["integral", "maximum"] = "integral"
    radius_factor: float = Field(2.0, gt=0.0)
    line_width: float = Field(1.0, gt=0.0)
    fixed_radius: Optional[float] = Field(None, gt=0.0, description="Outline radius in nm")
    fixed_radius_y: Optional[float] = Field(None, gt=0.0, description="Ellipse y radius in nm")

    @model_validator(mode='after')
    def validate_fixed_values(self) -> 'StrategyV1':
        if self.use_precision:
            return self
        if self.kind == "gaussian" and self.fixed_sigma is None:
            raise ValueError("strategy.fixed_sigma is required when use_precision is false")
        if self.kind in ("circle", "ellipse") and self.fixed_radius is None:
            raise ValueError("strategy.fixed_radius is required when use_precision is false")
        return self

    def build(self):
        """Instantiate the core strategy object."""
        from src.smlm_render.types import (
            CircleStrategy,
            EllipseStrategy,
            GaussianStrategy,
            HistogramStrategy,
        )

        if self.kind == "histogram":
            return HistogramStrategy()
        if self.kind == "gaussian":
            return GaussianStrategy(
                n_sigmas=self.n_sigmas,
                use_precision=self.use_precision,
                fixed_sigma=self.fixed_sigma,
                normalization=self.normalization,
            )
        if self.kind == "circle":
            return CircleStrategy(
                radius_factor=self.radius_factor,
                line_width=self.line_width,
                use_precision=self.use_precision,
                fixed_radius=self.fixed_radius,
            )
        return EllipseStrategy(
            radius_factor=self.radius_factor,
            line_width=self.line_width,
            use_precision=self.use_precision,
            fixed_radius=self.fixed_radius,
            fixed_radius_y=self.fixed_radius_y,
        )


class ColorV1(BaseModel):
    """Flat color selection; at most one color mode."""
    model_config = ConfigDict(extra='forbid')

    colormap: Optional[str] = None
    color_by: Optional[str] = None
    categorical: bool = False
    color: Optional[Union[str, Tuple[float, float, float]]] = None
    grayscale: bool = False
    clip_percentile: Optional[float] = Field(0.99, gt=0.0, le=1.0)
    field_range: Union[Literal["auto"], Tuple[float, float]] = "auto"
    field_clip_percentiles: Optional[Tuple[float, float]] = (0.01, 0.99)

    @field_validator('color')
    @classmethod
    def validate_rgb(cls, v):
        if isinstance(v, tuple) and not all(0.0 <= c <= 1.0 for c in v):
            raise ValueError(f"RGB components must be in [0, 1], got {v}")
        return v

    @field_validator('field_range')
    @classmethod
    def validate_range(cls, v):
        if isinstance(v, tuple) and not v[0] < v[1]:
            raise ValueError(f"field_range must be (min, max) with min < max, got {v}")
        return v

    @field_validator('field_clip_percentiles')
    @classmethod
    def validate_percentiles(cls, v):
        if v is not None and not (0.0 <= v[0] < v[1] <= 1.0):
            raise ValueError(f"field_clip_percentiles must satisfy 0 <= low < high <= 1, got {v}")
        return v

    @model_validator(mode='after')
    def validate_exclusive(self) -> 'ColorV1':
        if self.color is not None and (self.colormap is not None or self.color_by is not None):
            raise ValueError("color.color cannot be combined with colormap or color_by")
        if self.grayscale and any(v is not None for v in (self.color, self.colormap, self.color_by)):
            raise ValueError("color.grayscale cannot be combined with color, colormap or color_by")
        if self.categorical and self.color_by is None:
            raise ValueError("color.categorical requires color_by")
        return self


class LoggingV1(BaseModel):
    """Logging options forwarded to setup_logging()."""
    model_config = ConfigDict(extra='forbid')

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file: Optional[str] = None
    json_format: bool = Field(False, alias="json")
    color: bool = True

    def setup_kwargs(self) -> Dict[str, Any]:
        return {
            'log_level': self.level,
            'log_file': self.file,
            'json': self.json_format,
            'color': self.color,
        }


class RenderConfigV1(BaseModel):
    """Render configuration file (render.v1.yaml schema)."""
    model_config = ConfigDict(populate_by_name=True, extra='forbid')

    schema_version: str = Field("render.v1", alias="schema", description="Schema version")
    resolution: ResolutionV1
    strategy: StrategyV1 = Field(default_factory=StrategyV1)
    color: ColorV1 = Field(default_factory=ColorV1)
    logging: LoggingV1 = Field(default_factory=LoggingV1)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "render.v1":
            raise ValueError(f"Expected schema 'render.v1', got '{v}'")
        return v

    def to_render_config(self):
        """Convert to the core `RenderConfig`."""
        from src.smlm_render.renderer import RenderConfig

        res = self.resolution
        col = self.color
        return RenderConfig(
            strategy=self.strategy.build(),
            zoom=res.zoom,
            roi=res.roi.as_tuple() if res.roi is not None else None,
            pixel_size=res.pixel_size,
            margin=res.margin,
            colormap=col.colormap,
            color_by=col.color_by,
            color=col.color,
            categorical=col.categorical,
            grayscale=col.grayscale,
            clip_percentile=col.clip_percentile,
            field_range=col.field_range,
            field_clip_percentiles=col.field_clip_percentiles,
        )


def load_render_config(path: Union[str, Path]) -> RenderConfigV1:
    """Load and validate a render.v1 config from YAML.

    Parameters
    ----------
    path : str or Path
        Path to the YAML file

    Returns
    -------
    RenderConfigV1
        Validated config model

    Raises
    ------
    FileNotFoundError
        If file does not exist
    ConfigError
        If the content does not match the schema
    """
    from src.smlm_render.types import ConfigError

    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Render config not found: {path}")

    raw = fs.load_yaml(path)
    try:
        return RenderConfigV1(**raw)
    except ValidationError as e:
        raise ConfigError(f"Render config validation failed at {path}:\n{e}") from e


def save_render_config(cfg: RenderConfigV1, path: Union[str, Path]) -> None:
    """Write a validated config back to YAML (atomically, schema key first)."""
    from . import fs

    fs.atomic_yaml_dump(cfg.model_dump(mode='json', by_alias=True), path)
