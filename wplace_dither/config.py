"""Centralised configuration via frozen dataclasses."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

from wplace_dither.errors import InvalidParameter


@dataclass(frozen=True)
class DitherOptions:
    """Tuneable parameters for one dithering pass.

    Attributes:
        ratio:           Global diffusion damping factor in [0, 1].
        error_clip:      Per-channel clamp on the propagated quantisation error.
        jitter:          Peak amplitude of the pre-quantisation noise.
        channel_balance: Exponent applied to the luma weights (0 = uniform).
        gamma_input:     Exponent of the channel linearisation, must be > 0.
        seed:            Initial state of the jitter PRNG.
        chroma_weight:   Penalty scale for matching saturated colours to greys.
        edge_falloff:    How strongly local gradients suppress diffusion.
    """

    ratio: float = 0.8
    error_clip: float = 255.0
    jitter: float = 8.0
    channel_balance: float = 0.75
    gamma_input: float = 1.2
    seed: int = 42
    chroma_weight: float = 0.3
    edge_falloff: float = 0.5

    def __post_init__(self) -> None:
        if isinstance(self.seed, bool) or not isinstance(self.seed, numbers.Integral):
            msg = f"seed must be an integer, got {self.seed!r}"
            raise InvalidParameter(msg)

        for f in fields(self):
            if f.name == "seed":
                continue
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                msg = f"{f.name} must be a number, got {value!r}"
                raise InvalidParameter(msg)
            if not math.isfinite(value):
                msg = f"{f.name} must be finite, got {value!r}"
                raise InvalidParameter(msg)

        if self.gamma_input <= 0:
            msg = f"gamma_input must be > 0, got {self.gamma_input}"
            raise InvalidParameter(msg)
        if not 0 <= self.ratio <= 1:
            msg = f"ratio must lie in [0, 1], got {self.ratio}"
            raise InvalidParameter(msg)
        for name in ("error_clip", "jitter", "channel_balance",
                     "chroma_weight", "edge_falloff"):
            if getattr(self, name) < 0:
                msg = f"{name} must be >= 0, got {getattr(self, name)}"
                raise InvalidParameter(msg)

    def with_overrides(self, **overrides: float) -> DitherOptions:
        """Return a validated copy with *overrides* applied."""
        unknown = set(overrides) - {f.name for f in fields(self)}
        if unknown:
            msg = f"Unknown option(s): {', '.join(sorted(unknown))}"
            raise InvalidParameter(msg)
        return replace(self, **overrides)


@dataclass(frozen=True)
class AppConfig:
    """Parameters of a CLI or app run around the dithering core.

    Attributes:
        palette:         Preset name (see palette.PALETTES).
        scale:           Resize factor applied to the source before dithering.
        interpolation:   Resampling filter used by that resize.
        pixel_upscale:   Each output pixel becomes n x n in the preview image.
        output_format:   Image format for saved files (alpha needs png/webp).
        save_preview:    Persist a nearest-neighbour upscaled preview.
        save_comparison: Generate a Before | After comparison grid.
        input_dir:       Folder to scan for source images.
        output_dir:      Folder for results.
    """

    # Source preparation
    palette: str = "wplace"
    scale: float = 1.0
    interpolation: str = "nearest"

    # Output
    pixel_upscale: int = 4
    output_format: str = "png"
    save_preview: bool = False
    save_comparison: bool = False

    # Paths
    input_dir: Path = field(default_factory=lambda: Path("images"))
    output_dir: Path = field(default_factory=lambda: Path("output"))

    SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
        {".jpg", ".jpeg", ".png", ".bmp", ".gif", ".tiff", ".tif", ".webp"}
    )
