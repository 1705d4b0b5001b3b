#!/usr/bin/env python3
"""
main.py — Quick-start entry point.

Drop images into ``images/`` and run:

    python main.py batch

Or use the full CLI:

    python -m wplace_dither.cli dither my_photo.png --palette wplace
    python -m wplace_dither.cli palettes wplace
"""

from wplace_dither.cli import app

if __name__ == "__main__":
    app()
