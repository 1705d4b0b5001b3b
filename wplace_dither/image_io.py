"""Image loading, saving, and comparison-grid generation (RGBA throughout)."""

from __future__ import annotations

import logging
import math
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFont, ImageOps

from wplace_dither.errors import InvalidDimensions, InvalidParameter

logger = logging.getLogger(__name__)

RESAMPLE_FILTERS: dict[str, Image.Resampling] = {
    "nearest": Image.Resampling.NEAREST,
    "box": Image.Resampling.BOX,
    "bilinear": Image.Resampling.BILINEAR,
    "bicubic": Image.Resampling.BICUBIC,
    "lanczos": Image.Resampling.LANCZOS,
}

# pre-dither scale accepted by the interactive front end
SCALE_RANGE = (0.01, 4.0)


def as_rgba_grid(data, width: int, height: int) -> np.ndarray:
    """Reshape a flat row-major RGBA byte buffer into (H, W, 4) uint8."""
    if isinstance(data, (bytes, bytearray, memoryview)):
        buf = np.frombuffer(data, dtype=np.uint8)
    else:
        buf = np.asarray(data, dtype=np.uint8).ravel()
    if buf.size != width * height * 4:
        msg = f"Buffer of {buf.size} bytes cannot hold a {width}x{height} RGBA image"
        raise InvalidDimensions(msg)
    return buf.reshape(height, width, 4).copy()


def compute_scaled_size(width: int, height: int, scale: float) -> tuple[int, int]:
    """Size after multiplying both sides by *scale* (rounded, minimum 1)."""
    if not math.isfinite(scale) or scale <= 0:
        msg = f"scale must be a finite number > 0, got {scale}"
        raise InvalidParameter(msg)
    return max(1, round(width * scale)), max(1, round(height * scale))


def clamp_scale(scale: float | None, default: float = 1.0) -> float:
    """Fit *scale* into SCALE_RANGE; a missing or non-finite value uses *default*."""
    if scale is None or not math.isfinite(scale):
        scale = default
    lo, hi = SCALE_RANGE
    return min(hi, max(lo, float(scale)))


def load_rgba(
    path: str | Path,
    scale: float = 1.0,
    interpolation: str = "nearest",
) -> np.ndarray:
    """Load an image as RGBA, optionally rescaled before dithering.

    Returns:
        (H, W, 4) uint8 array.
    """
    try:
        resample = RESAMPLE_FILTERS[interpolation.lower()]
    except KeyError:
        msg = (
            f"Unknown interpolation {interpolation!r}. "
            f"Choose from: {', '.join(RESAMPLE_FILTERS)}"
        )
        raise InvalidParameter(msg) from None

    with Image.open(path) as src:
        img = ImageOps.exif_transpose(src).convert("RGBA")
    if scale != 1.0:
        w, h = compute_scaled_size(img.width, img.height, scale)
        logger.debug("Resizing %s %dx%d -> %dx%d (%s)",
                     path, img.width, img.height, w, h, interpolation)
        img = img.resize((w, h), resample)
    return np.array(img, dtype=np.uint8)


def save_rgba(array: np.ndarray, path: str | Path) -> None:
    """Save an (H, W, 4) array; formats without alpha get a flattened RGB copy."""
    img = Image.fromarray(np.asarray(array, dtype=np.uint8))
    if Path(path).suffix.lower() in (".jpg", ".jpeg", ".bmp"):
        img = img.convert("RGB")
    img.save(path)


def save_upscaled(
    array: np.ndarray,
    path: str | Path,
    pixel_upscale: int = 4,
) -> None:
    """Save a small array as a nearest-neighbour-upscaled image."""
    img = Image.fromarray(np.asarray(array, dtype=np.uint8))
    h, w = array.shape[:2]
    img = img.resize((w * pixel_upscale, h * pixel_upscale), Image.Resampling.NEAREST)
    img.save(path)


def _checkerboard(width: int, height: int, cell: int = 8) -> Image.Image:
    yy, xx = np.mgrid[0:height, 0:width]
    tile = ((yy // cell + xx // cell) % 2).astype(bool)
    grey = np.where(tile, 200, 235).astype(np.uint8)
    return Image.fromarray(np.dstack([grey, grey, grey]))


def make_comparison_grid(
    before: np.ndarray,
    after: np.ndarray,
    output_path: str | Path,
    pixel_upscale: int = 4,
) -> None:
    """Create a 2-panel comparison: Before | After.

    Both panels are nearest-neighbour upscaled by *pixel_upscale* and laid
    over a checkerboard so transparency stays visible.
    """
    h, w = before.shape[:2]
    panel_w = w * pixel_upscale
    panel_h = h * pixel_upscale
    label_height = 36

    panels = []
    for arr in (before, after):
        rgba = Image.fromarray(np.asarray(arr, dtype=np.uint8)).convert("RGBA")
        rgba = rgba.resize((panel_w, panel_h), Image.Resampling.NEAREST)
        backdrop = _checkerboard(panel_w, panel_h).convert("RGBA")
        panels.append(Image.alpha_composite(backdrop, rgba).convert("RGB"))
    labels = [f"Before {w}x{h}", "After"]

    gap = 8
    total_w = len(panels) * panel_w + (len(panels) - 1) * gap
    total_h = panel_h + label_height

    canvas = Image.new("RGB", (total_w, total_h), (30, 30, 30))
    draw = ImageDraw.Draw(canvas)

    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", 18,
        )
    except OSError:
        font = ImageFont.load_default()

    for i, (panel, label) in enumerate(zip(panels, labels, strict=False)):
        x = i * (panel_w + gap)
        canvas.paste(panel, (x, label_height))

        bbox = draw.textbbox((0, 0), label, font=font)
        text_w = bbox[2] - bbox[0]
        tx = x + (panel_w - text_w) // 2
        draw.text((tx, 6), label, fill=(220, 220, 220), font=font)

    canvas.save(output_path)
