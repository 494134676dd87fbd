"""SMLM Render: point-cloud to raster rendering for localization microscopy.

Converts sparse 2D localizations (position, precision, brightness, named
attributes) into RGB images with histogram, Gaussian, circle or ellipse
rendering and intensity, field, categorical, manual or grayscale coloring.

Architecture layers (strict one-way dependency):
    src/smlm_render/ → src/utils/

Key invariants:
    - Positions in micrometers, pixel sizes and sigmas in nanometers
    - Pixel (1, 1)'s center sits half a pixel from the target's range minimum
    - Images are float64 (height, width, 3), nominally in [0, 1]
    - YAML-only configs (render.v1 schema)
"""

__version__ = "0.4.0"
