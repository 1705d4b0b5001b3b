"""
Wplace Dither
=============

Quantise RGBA images to a small fixed palette with perceptually weighted
nearest-colour matching and Floyd-Steinberg error diffusion.

- Partial transparency (transparent pixels stay transparent)
- Seeded, reproducible jitter
- Edge-aware diffusion damping
- Freeze masks for re-dithering only part of an image
"""

__version__ = "0.4.0"

from wplace_dither.color_utils import (
    DistanceFunction,
    PaletteEntryMeta,
    build_palette_meta,
    make_distance_function,
)
from wplace_dither.config import AppConfig, DitherOptions
from wplace_dither.dithering import dither, edge_weights
from wplace_dither.errors import (
    DitherError,
    InvalidDimensions,
    InvalidPalette,
    InvalidParameter,
)
from wplace_dither.image_io import as_rgba_grid, load_rgba, save_rgba
from wplace_dither.mask import new_mask, stamp_brush
from wplace_dither.palette import (
    PALETTES,
    get_palette,
    parse_hex_palette,
    select_palette,
)
from wplace_dither.share import ShareSettings, make_share_url

__all__ = [
    "PALETTES",
    "AppConfig",
    "DistanceFunction",
    "DitherError",
    "DitherOptions",
    "InvalidDimensions",
    "InvalidPalette",
    "InvalidParameter",
    "PaletteEntryMeta",
    "ShareSettings",
    "as_rgba_grid",
    "build_palette_meta",
    "dither",
    "edge_weights",
    "get_palette",
    "load_rgba",
    "make_distance_function",
    "make_share_url",
    "new_mask",
    "parse_hex_palette",
    "save_rgba",
    "select_palette",
    "stamp_brush",
]
