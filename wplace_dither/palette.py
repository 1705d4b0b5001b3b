"""Palette presets, hex parsing and enable/disable selection.

Palettes are always supplied, never derived from an image.  Index order
matters: the enable/disable lists address entries by position.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path

import numpy as np

from wplace_dither.errors import InvalidPalette

logger = logging.getLogger(__name__)

# wplace.live colour set, greys first
WPLACE_HEX: list[str] = [
    "#000000", "#3c3c3c", "#787878", "#aaaaaa", "#d2d2d2", "#ffffff",
    "#600018", "#a50e1e", "#ed1c24", "#fa8072", "#e45c1a", "#ff7f27",
    "#f6aa09", "#f9dd3b", "#fffabc", "#9c8431", "#c5ad31", "#e8d45f",
    "#4a6b3a", "#5a944a", "#84c573", "#0eb968", "#13e67b", "#87ff5e",
    "#0c816e", "#10aea6", "#13e1be", "#0f799f", "#60f7f2", "#bbfaf2",
    "#28509e", "#4093e4", "#7dc7ff", "#4d31b8", "#6b50f6", "#99b1fb",
    "#4a4284", "#7a71c4", "#b5aef1", "#780c99", "#aa38b9", "#e09ff9",
    "#cb007a", "#ec1f80", "#f38da9", "#9b5249", "#d18078", "#fab6a4",
    "#684634", "#95682a", "#dba463", "#7b6352", "#9c846b", "#d6b594",
    "#d18051", "#f8b277", "#ffc5a5", "#6d643f", "#948c6b", "#cdc59e",
    "#333941", "#6d758d", "#b3b9d1",
]

PALETTES: dict[str, list[str]] = {
    "wplace": WPLACE_HEX,
    "bw": ["#000000", "#ffffff"],
    "grayscale": [
        "#000000", "#242424", "#494949", "#6d6d6d",
        "#929292", "#b6b6b6", "#dbdbdb", "#ffffff",
    ],
    "rgb": [
        "#000000", "#ff0000", "#00ff00", "#0000ff",
        "#ffff00", "#00ffff", "#ff00ff", "#ffffff",
    ],
}


def _hex_to_rgb(hex_str: str) -> np.ndarray:
    """Parse '#RRGGBB', 'RRGGBB' or '#RGB' to a (3,) uint8 array."""
    h = hex_str.strip().lstrip("#")
    if len(h) == 3:
        h = "".join(ch * 2 for ch in h)
    if len(h) != 6:
        msg = f"Invalid hex colour: {hex_str!r}"
        raise InvalidPalette(msg)
    try:
        return np.array([int(h[i : i + 2], 16) for i in (0, 2, 4)], dtype=np.uint8)
    except ValueError as exc:
        msg = f"Invalid hex colour: {hex_str!r}"
        raise InvalidPalette(msg) from exc


def rgb_to_hex(rgb: Iterable[int]) -> str:
    """RGB triple to lowercase '#rrggbb'."""
    r, g, b = (int(v) for v in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def parse_hex_palette(spec: str | Iterable[str]) -> np.ndarray:
    """Parse comma-separated (or listed) hex colours into an (N, 3) uint8 array."""
    items = spec.split(",") if isinstance(spec, str) else list(spec)
    items = [s for s in (i.strip() for i in items) if s]
    if not items:
        msg = "Palette must contain at least one colour"
        raise InvalidPalette(msg)
    return np.array([_hex_to_rgb(s) for s in items], dtype=np.uint8)


def get_palette(name: str) -> np.ndarray:
    """Return a preset from :data:`PALETTES` as an (N, 3) uint8 array."""
    try:
        hex_list = PALETTES[name.lower()]
    except KeyError:
        msg = f"Unknown palette {name!r}. Choose from: {', '.join(PALETTES)}"
        raise InvalidPalette(msg) from None
    return parse_hex_palette(hex_list)


def load_palette_file(path: str | Path) -> np.ndarray:
    """Read one hex colour per line; blank lines, ``# `` lines and ``//`` tails are skipped."""
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    colours = []
    for line in lines:
        entry = line.split("//", 1)[0].strip()
        if not entry or entry.startswith("# "):
            continue
        colours.append(entry)
    logger.debug("Read %d colours from %s", len(colours), path)
    return parse_hex_palette(colours)


def resolve_palette(name_or_spec: str) -> np.ndarray:
    """Preset name, path to a palette file, or inline comma-separated hex."""
    if name_or_spec.lower() in PALETTES:
        return get_palette(name_or_spec)
    path = Path(name_or_spec)
    if path.is_file():
        return load_palette_file(path)
    return parse_hex_palette(name_or_spec)


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_index_list(text: str | None) -> list[int]:
    """Parse '0, 5,12' into ints.

    Each entry contributes its leading integer, so '5.5' reads as 5 and '3px'
    as 3; entries without one are silently dropped.
    """
    if not text:
        return []
    out = []
    for part in text.split(","):
        m = _LEADING_INT.match(part)
        if m:
            out.append(int(m.group(1)))
    return out


def select_palette(
    palette: np.ndarray,
    disabled: Iterable[int] | None = None,
    enabled: Iterable[int] | None = None,
) -> np.ndarray:
    """Restrict *palette* to the active entries, preserving order.

    *enabled*, when given, overrides *disabled*.  Indices outside the
    palette are ignored.

    Raises:
        InvalidPalette: no entries remain.
    """
    pal = np.asarray(palette, dtype=np.uint8)
    n = len(pal)
    if enabled is not None:
        keep = np.zeros(n, dtype=bool)
        idx = [i for i in enabled if 0 <= i < n]
        keep[idx] = True
    else:
        keep = np.ones(n, dtype=bool)
        idx = [i for i in (disabled or ()) if 0 <= i < n]
        keep[idx] = False

    selected = pal[keep]
    if len(selected) == 0:
        msg = "Every palette colour is disabled"
        raise InvalidPalette(msg)
    logger.debug("Palette selection: %d of %d colours active", len(selected), n)
    return selected
