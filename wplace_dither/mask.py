"""Freeze-mask editing: circular brush stamps and mask loading.

A freeze mask is an (H, W) bool array; ``True`` cells keep the colour of a
prior dithering result.  These helpers never touch the engine themselves,
they only produce the mask that is handed to :func:`~wplace_dither.dithering.dither`.
"""

from __future__ import annotations

import math
from pathlib import Path

import numpy as np
from PIL import Image

from wplace_dither.errors import InvalidDimensions, InvalidParameter

BRUSH_MODES = ("add", "subtract")


def new_mask(height: int, width: int) -> np.ndarray:
    """All-clear (H, W) mask."""
    return np.zeros((height, width), dtype=bool)


def clear_mask(mask: np.ndarray) -> np.ndarray:
    return np.zeros_like(mask, dtype=bool)


def brush_footprint(
    shape: tuple[int, int],
    x: float,
    y: float,
    radius: int,
) -> np.ndarray:
    """Cells a brush of *radius* centred on (*x*, *y*) covers.

    Offsets ``(i, j)`` with ``i*i + j*j <= radius**2`` are stamped at
    ``(floor(x + i), floor(y + j))``; cells off the grid are dropped.
    """
    if radius < 0:
        msg = f"Brush radius must be >= 0, got {radius}"
        raise InvalidParameter(msg)
    h, w = shape
    footprint = np.zeros((h, w), dtype=bool)
    r = int(radius)
    for j in range(-r, r + 1):
        py = math.floor(y + j)
        if not 0 <= py < h:
            continue
        for i in range(-r, r + 1):
            if i * i + j * j > r * r:
                continue
            px = math.floor(x + i)
            if 0 <= px < w:
                footprint[py, px] = True
    return footprint


def stamp_brush(
    mask: np.ndarray,
    x: float,
    y: float,
    radius: int,
    mode: str = "add",
) -> np.ndarray:
    """Return a copy of *mask* with a circular stamp set (``add``) or cleared (``subtract``)."""
    if mode not in BRUSH_MODES:
        msg = f"Brush mode must be one of {BRUSH_MODES}, got {mode!r}"
        raise InvalidParameter(msg)
    out = np.array(mask, dtype=bool, copy=True)
    footprint = brush_footprint(out.shape, x, y, radius)
    out[footprint] = mode == "add"
    return out


def mask_from_image(image: Image.Image | np.ndarray, threshold: int = 1) -> np.ndarray:
    """Build a mask from a painted image.

    RGBA / LA images use their alpha channel, anything else its luminance;
    values >= *threshold* count as frozen.
    """
    if isinstance(image, Image.Image):
        if image.mode in ("RGBA", "LA"):
            values = np.array(image.getchannel("A"), dtype=np.uint8)
        else:
            values = np.array(image.convert("L"), dtype=np.uint8)
    else:
        values = np.asarray(image)
        if values.ndim == 3:
            values = values[..., -1] if values.shape[2] in (2, 4) else values.max(axis=2)
    return values >= threshold


def load_mask(path: str | Path, shape: tuple[int, int] | None = None) -> np.ndarray:
    """Read a mask image from disk, optionally checking it against *shape*."""
    with Image.open(path) as img:
        mask = mask_from_image(img)
    if shape is not None and mask.shape != tuple(shape):
        msg = f"Mask {path} is {mask.shape[1]}x{mask.shape[0]}, expected {shape[1]}x{shape[0]}"
        raise InvalidDimensions(msg)
    return mask


def save_mask(mask: np.ndarray, path: str | Path) -> None:
    """Write *mask* as a black/white PNG."""
    Image.fromarray(np.where(mask, 255, 0).astype(np.uint8)).save(path)
