"""Share links: round-trip options, source and palette selection through a query string.

Keys are written lower-case and read case-insensitively, so links made by
older front ends (``?greyPenalty=0.4``) still restore.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit

from wplace_dither.config import DitherOptions
from wplace_dither.palette import parse_index_list

logger = logging.getLogger(__name__)

# query key -> DitherOptions field
OPTION_KEYS: dict[str, str] = {
    "ratio": "ratio",
    "jitter": "jitter",
    "gamma": "gamma_input",
    "balance": "channel_balance",
    "seed": "seed",
    "greypenalty": "chroma_weight",
    "edgefalloff": "edge_falloff",
    "errorclip": "error_clip",
}


def _fmt(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def _parse_number(text: str, integer: bool = False) -> float | int | None:
    try:
        number = float(text)
    except ValueError:
        return None
    if integer:
        return int(number) if math.isfinite(number) else None
    return number


@dataclass(frozen=True)
class ShareSettings:
    """Everything a share link restores."""

    options: DitherOptions = field(default_factory=DitherOptions)
    scale: float | None = None
    interpolation: str | None = None
    src: str = ""
    disable: tuple[int, ...] = ()
    enable: tuple[int, ...] | None = None

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.scale is not None:
            params["scale"] = _fmt(self.scale)
        if self.interpolation:
            params["interpolation"] = self.interpolation
        for key, attr in OPTION_KEYS.items():
            value = getattr(self.options, attr)
            params[key] = str(int(value)) if attr == "seed" else _fmt(value)
        if self.src:
            params["src"] = self.src
        if self.disable:
            params["disable"] = ",".join(str(i) for i in self.disable)
        if self.enable is not None:
            params["enable"] = ",".join(str(i) for i in self.enable)
        return params

    def to_query(self) -> str:
        """Encode as ``key=value&...`` with lower-case keys, empty values dropped."""
        return urlencode(self.to_params())

    @classmethod
    def from_query(cls, query: str | Mapping[str, str]) -> ShareSettings:
        """Decode a query string, full URL or mapping.

        Unknown keys and unparsable numbers are ignored; the defaults stay
        in place for them.

        Raises:
            InvalidParameter: a parsed option is out of range.
        """
        if isinstance(query, str):
            text = urlsplit(query).query if "?" in query else query.lstrip("?")
            pairs = parse_qsl(text)
        else:
            pairs = list(query.items())
        params = {k.lower(): v for k, v in pairs}

        overrides: dict[str, float | int] = {}
        for key, attr in OPTION_KEYS.items():
            if key not in params:
                continue
            number = _parse_number(params[key], integer=attr == "seed")
            if number is None:
                logger.warning("Ignoring unparsable %s=%r", key, params[key])
                continue
            overrides[attr] = number

        scale = _parse_number(params["scale"]) if "scale" in params else None
        if scale is not None and not (math.isfinite(scale) and scale > 0):
            logger.warning("Ignoring unusable scale=%r", params["scale"])
            scale = None
        enable = (
            tuple(parse_index_list(params["enable"])) if "enable" in params else None
        )
        return cls(
            options=DitherOptions().with_overrides(**overrides),
            scale=scale,
            interpolation=params.get("interpolation") or None,
            src=params.get("src", ""),
            disable=tuple(parse_index_list(params.get("disable"))),
            enable=enable,
        )


def make_share_url(base_url: str, settings: ShareSettings) -> str:
    """Attach *settings* to *base_url*, replacing any existing query."""
    base = base_url.split("?", 1)[0]
    return f"{base}?{settings.to_query()}"


__all__ = [
    "OPTION_KEYS",
    "ShareSettings",
    "make_share_url",
]
