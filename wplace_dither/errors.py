"""Typed failures raised before a dithering pass starts."""

from __future__ import annotations


class DitherError(ValueError):
    """Base class for every rejected dithering request."""


class InvalidPalette(DitherError):
    """The palette is empty or not a list of RGB triples."""


class InvalidDimensions(DitherError):
    """A freeze mask or prior result does not match the image shape."""


class InvalidParameter(DitherError):
    """An option lies outside the domain the engine accepts."""
