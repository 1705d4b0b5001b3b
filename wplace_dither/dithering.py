"""Floyd-Steinberg error-diffusion dithering against a fixed palette.

A single raster pass (top-to-bottom, left-to-right) quantises every pixel
to its nearest palette entry under :class:`~wplace_dither.color_utils.DistanceFunction`
and pushes the clamped quantisation error forward to the unvisited
neighbours.  On top of the classic algorithm:

- Pixels with alpha <= 0.001 become ``(0, 0, 0, 0)`` and diffuse nothing.
- Triangular jitter from a seeded LCG is added before the lookup, so equal
  inputs always give byte-identical output.
- Diffusion is damped by the local gradient of the *original* image, which
  keeps hard edges from bleeding.
- Pixels under a freeze mask copy the prior result's colour and diffuse
  only half of their error.
"""

from __future__ import annotations

import logging
import time

import numpy as np

from wplace_dither.color_utils import as_palette_array, make_distance_function
from wplace_dither.config import DitherOptions
from wplace_dither.errors import InvalidDimensions

logger = logging.getLogger(__name__)

# (dx, dy, weight); weights sum to 1
FS_KERNEL = (
    (1, 0, 7 / 16),
    (-1, 1, 3 / 16),
    (0, 1, 5 / 16),
    (1, 1, 1 / 16),
)

TRANSPARENT_ALPHA = 0.001
FROZEN_DIFFUSION_SCALE = 0.5

LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
_UINT32 = 1 << 32


# -- PRNG --------------------------------------------------------------

def seed_state(seed: int) -> int:
    """Reduce any integer seed to the 32-bit unsigned PRNG state."""
    return int(seed) % _UINT32


def lcg_next(state: int) -> tuple[int, float]:
    """Advance the LCG once; return ``(new_state, uniform in [0, 1))``."""
    state = (LCG_MULTIPLIER * state + LCG_INCREMENT) % _UINT32
    return state, state / _UINT32


def triangular_jitter(state: int, amplitude: float) -> tuple[int, float]:
    """Sum of two uniform draws in [-1, 1], scaled by ``amplitude / 2``."""
    state, u1 = lcg_next(state)
    state, u2 = lcg_next(state)
    return state, (u1 * 2 - 1 + u2 * 2 - 1) * (amplitude / 2)


# -- Edge weighting and diffusion --------------------------------------

def edge_weights(image: np.ndarray, edge_falloff: float) -> np.ndarray:
    """Per-pixel diffusion weight ``exp(-gradient_energy * edge_falloff)``.

    The gradient energy is the summed squared RGB difference to the left
    and top neighbours (where they exist), normalised by ``6 * 255**2``.

    Returns:
        (H, W) float64, ~1 in flat regions and ~0 across hard edges.
    """
    rgb = np.asarray(image)[..., :3].astype(np.float64)
    energy = np.zeros(rgb.shape[:2], dtype=np.float64)
    energy[:, 1:] += np.sum((rgb[:, 1:] - rgb[:, :-1]) ** 2, axis=2)
    energy[1:, :] += np.sum((rgb[1:] - rgb[:-1]) ** 2, axis=2)
    energy /= 6 * 255 * 255
    return np.exp(-energy * edge_falloff)


def diffuse_error(
    accumulator: np.ndarray,
    x: int,
    y: int,
    quant_error: np.ndarray,
    coefficient: float,
) -> None:
    """Add ``quant_error * kernel_weight * coefficient`` to the forward neighbours.

    Neighbours outside the grid are skipped; nothing wraps around.
    Only the RGB channels of *accumulator* are touched.
    """
    h, w = accumulator.shape[:2]
    for dx, dy, weight in FS_KERNEL:
        nx, ny = x + dx, y + dy
        if 0 <= nx < w and ny < h:
            accumulator[ny, nx, :3] += quant_error * weight * coefficient


# -- Input checks ------------------------------------------------------

def _as_rgba(image) -> np.ndarray:
    arr = np.asarray(image)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        msg = f"Image must be (H, W, 4) RGBA or (H, W, 3) RGB, got shape {arr.shape}"
        raise InvalidDimensions(msg)
    if arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
        arr = np.concatenate([arr.astype(np.uint8), alpha], axis=2)
    return arr.astype(np.uint8)


def _check_freeze_inputs(
    shape: tuple[int, int],
    prior_result,
    freeze_mask,
) -> tuple[np.ndarray | None, np.ndarray | None]:
    prior = None
    mask = None
    if prior_result is not None:
        prior = np.asarray(prior_result)
        if prior.ndim != 3 or prior.shape[:2] != shape or prior.shape[2] < 3:
            msg = f"Prior result shape {prior.shape} does not match image {shape}"
            raise InvalidDimensions(msg)
        prior = prior.astype(np.uint8)
    if freeze_mask is not None:
        mask = np.asarray(freeze_mask)
        if mask.shape != shape:
            msg = f"Freeze mask shape {mask.shape} does not match image {shape}"
            raise InvalidDimensions(msg)
        mask = mask.astype(bool)
    return prior, mask


# -- Engine ------------------------------------------------------------

def dither(
    image: np.ndarray,
    palette,
    prior_result: np.ndarray | None = None,
    freeze_mask: np.ndarray | None = None,
    options: DitherOptions | None = None,
) -> np.ndarray:
    """Quantise *image* to *palette* with edge-aware error diffusion.

    Args:
        image:        (H, W, 4) uint8 RGBA (RGB input is treated as opaque).
        palette:      (N, 3) RGB, N >= 1.  Output colours come only from here.
        prior_result: (H, W, 4) output of an earlier pass, read where
                      *freeze_mask* is set.
        freeze_mask:  (H, W) bool; ``True`` keeps the prior colour.
        options:      :class:`DitherOptions`; defaults when ``None``.

    Returns:
        (H, W, 4) uint8.  Alpha equals the input alpha; fully transparent
        pixels are ``(0, 0, 0, 0)``.

    Raises:
        InvalidPalette: empty or malformed palette.
        InvalidDimensions: image, mask or prior result shapes disagree.
        InvalidParameter: unusable options (see :class:`DitherOptions`).
    """
    opts = options if options is not None else DitherOptions()
    src = _as_rgba(image)
    h, w = src.shape[:2]
    pal = as_palette_array(palette)
    prior, mask = _check_freeze_inputs((h, w), prior_result, freeze_mask)
    distance = make_distance_function(
        pal, opts.channel_balance, opts.gamma_input, opts.chroma_weight,
    )
    frozen_map = mask if prior is not None else None

    logger.info(
        "Dithering %dx%d against %d colours (seed=%d, frozen=%d px)",
        w, h, len(pal), opts.seed,
        int(frozen_map.sum()) if frozen_map is not None else 0,
    )
    logger.debug("Options: %s", opts)
    t0 = time.perf_counter()

    output = np.zeros((h, w, 4), dtype=np.uint8)
    accumulator = src.astype(np.float32)
    alpha = src[..., 3].astype(np.float64) / 255
    edges = edge_weights(src, opts.edge_falloff)
    state = seed_state(opts.seed)

    for y in range(h):
        for x in range(w):
            a = alpha[y, x]
            if a <= TRANSPARENT_ALPHA:
                continue

            old = accumulator[y, x, :3].astype(np.float64)
            frozen = frozen_map is not None and bool(frozen_map[y, x])

            if frozen:
                new = prior[y, x, :3]
            else:
                noise = np.empty(3, dtype=np.float64)
                for c in range(3):
                    state, noise[c] = triangular_jitter(state, opts.jitter)
                noisy = np.minimum(255.0, np.maximum(0.0, old + noise))
                new = pal[distance(noisy)]

            output[y, x, :3] = new
            output[y, x, 3] = src[y, x, 3]

            quant_error = np.clip(
                old - new.astype(np.float64), -opts.error_clip, opts.error_clip,
            )
            coefficient = (
                opts.ratio * a * edges[y, x]
                * (FROZEN_DIFFUSION_SCALE if frozen else 1.0)
            )
            diffuse_error(accumulator, x, y, quant_error, coefficient)

    logger.info("Dithering done  (%.2f s)", time.perf_counter() - t0)
    return output
