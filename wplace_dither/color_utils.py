"""Gamma linearisation, palette metadata and the perceptual distance function."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from wplace_dither.errors import InvalidPalette, InvalidParameter

logger = logging.getLogger(__name__)

LUMA_WEIGHTS = (0.3, 0.59, 0.11)

# Thresholds on linearised channels, shared by palette entries and inputs
GREY_CHROMA_MAX = 0.1
GREY_LIGHTNESS_RANGE = (0.15, 0.85)


def linearize(rgb: np.ndarray, gamma: float) -> np.ndarray:
    """Map 0-255 channel values to ``(x / 255) ** gamma`` as float64."""
    return np.power(np.asarray(rgb, dtype=np.float64) / 255.0, gamma)


def channel_weights(channel_balance: float) -> np.ndarray:
    """Luma-style weights raised to *channel_balance* (0 gives uniform weights)."""
    return np.power(np.array(LUMA_WEIGHTS, dtype=np.float64), channel_balance)


def as_palette_array(palette) -> np.ndarray:
    """Validate *palette* and return it as an (N, 3) uint8 array."""
    arr = np.asarray(palette)
    if arr.size == 0:
        msg = "Palette must contain at least one colour"
        raise InvalidPalette(msg)
    if arr.ndim != 2 or arr.shape[1] != 3:
        msg = f"Palette must be a list of RGB triples, got shape {arr.shape}"
        raise InvalidPalette(msg)
    if np.any(arr < 0) or np.any(arr > 255):
        msg = "Palette channel values must lie in [0, 255]"
        raise InvalidPalette(msg)
    return arr.astype(np.uint8)


@dataclass(frozen=True)
class PaletteEntryMeta:
    """Linearised view of one palette entry."""

    linear: tuple[float, float, float]
    chroma: float
    lightness: float
    is_mid_grey: bool


def build_palette_meta(palette, gamma: float) -> tuple[PaletteEntryMeta, ...]:
    """Precompute linear channels, chroma, lightness and the mid-grey flag."""
    if not math.isfinite(gamma) or gamma <= 0:
        msg = f"gamma must be a finite number > 0, got {gamma}"
        raise InvalidParameter(msg)
    pal = as_palette_array(palette)

    lo, hi = GREY_LIGHTNESS_RANGE
    meta = []
    for lin in linearize(pal, gamma):
        chroma = float(lin.max() - lin.min())
        lightness = float((lin[0] + lin[1] + lin[2]) / 3)
        meta.append(PaletteEntryMeta(
            linear=(float(lin[0]), float(lin[1]), float(lin[2])),
            chroma=chroma,
            lightness=lightness,
            is_mid_grey=chroma < GREY_CHROMA_MAX and lo < lightness < hi,
        ))
    return tuple(meta)


@dataclass(frozen=True, eq=False)
class DistanceFunction:
    """Nearest-palette lookup under a weighted, grey-penalised metric.

    Built once per pass by :func:`make_distance_function` and never mutated.
    Calling it with an RGB(A) colour returns the index of the best entry;
    ties resolve to the lowest index.
    """

    meta: tuple[PaletteEntryMeta, ...]
    weights: np.ndarray
    gamma: float
    chroma_weight: float
    _linear: np.ndarray
    _grey_mask: np.ndarray

    def __call__(self, color) -> int:
        c = linearize([color[0], color[1], color[2]], self.gamma)
        chroma = c.max() - c.min()

        d = self._linear - c
        w = self.weights
        dist = w[0] * d[:, 0] ** 2 + w[1] * d[:, 1] ** 2 + w[2] * d[:, 2] ** 2
        if chroma > GREY_CHROMA_MAX:
            dist = np.where(self._grey_mask, dist + chroma * self.chroma_weight, dist)

        # argmin keeps the first minimum, i.e. strict "<" while scanning
        return int(np.argmin(dist))


def make_distance_function(
    palette,
    channel_balance: float = 0.75,
    gamma: float = 1.2,
    chroma_weight: float = 0.3,
) -> DistanceFunction:
    """Build the distance function for one dithering pass.

    Args:
        palette:         (N, 3) RGB values, N >= 1.
        channel_balance: Exponent for the [0.3, 0.59, 0.11] channel weights.
        gamma:           Linearisation exponent, must be > 0.
        chroma_weight:   Scale of the grey penalty.

    Raises:
        InvalidPalette: *palette* is empty or malformed.
        InvalidParameter: *gamma* is not a positive number, or
            *channel_balance* / *chroma_weight* is negative or not finite.
    """
    for name, value in (
        ("channel_balance", channel_balance),
        ("chroma_weight", chroma_weight),
    ):
        if not math.isfinite(value) or value < 0:
            msg = f"{name} must be a finite number >= 0, got {value}"
            raise InvalidParameter(msg)
    meta = build_palette_meta(palette, gamma)
    weights = channel_weights(channel_balance)
    weights.setflags(write=False)
    logger.debug(
        "Distance function: %d entries (%d mid-grey), weights=%s",
        len(meta), sum(m.is_mid_grey for m in meta), np.round(weights, 4).tolist(),
    )
    linear = np.array([m.linear for m in meta], dtype=np.float64)
    grey_mask = np.array([m.is_mid_grey for m in meta], dtype=bool)
    linear.setflags(write=False)
    grey_mask.setflags(write=False)
    return DistanceFunction(
        meta=meta,
        weights=weights,
        gamma=float(gamma),
        chroma_weight=float(chroma_weight),
        _linear=linear,
        _grey_mask=grey_mask,
    )
