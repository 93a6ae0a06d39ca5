#!/usr/bin/env python3
"""
main.py — Quick-start entry point.

Put tile images in a folder and run:

    python main.py compose photo.jpg tiles/ mosaic.png --width 80

Or use the full CLI:

    python -m tile_mosaic.cli build tiles/
    python -m tile_mosaic.cli compose --help
"""

from tile_mosaic.cli import app

if __name__ == "__main__":
    app()
