"""Image loading, saving and target resizing."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from tile_mosaic.errors import DecodeFailure, EncodeFailure
from tile_mosaic.pixel_grid import ArrayGrid, PixelGrid


def compute_target_size(
    original_width: int,
    original_height: int,
    width: int | None = None,
    height: int | None = None,
) -> tuple[int, int]:
    """Compute the (w, h) the target is resized to before composition.

    If both *width* and *height* are given they are used as is. If only
    one is given the other follows the original aspect ratio (truncated,
    minimum 1). With neither, the original size is kept. An original with
    a zero side has no aspect ratio and always yields (0, 0).
    """
    if original_width <= 0 or original_height <= 0:
        return 0, 0
    if width and height:
        return width, height
    if width:
        h = max(1, int(width * original_height / original_width))
        return width, h
    if height:
        w = max(1, int(height * original_width / original_height))
        return w, height
    return original_width, original_height


def decode(path: str | Path) -> ArrayGrid:
    """Load an image as an RGB :class:`ArrayGrid`.

    Raises:
        DecodeFailure: The file is missing, unreadable or not an image.
    """
    try:
        with Image.open(path) as img:
            img = ImageOps.exif_transpose(img)
            arr = np.array(img.convert("RGB"), dtype=np.uint8)
    except (OSError, SyntaxError, UnidentifiedImageError, ValueError,
            Image.DecompressionBombError) as exc:
        raise DecodeFailure("Could not decode image", path, exc) from exc
    return ArrayGrid(arr)


def resize_rgb(array: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize an (H, W, 3) uint8 array to exactly (width, height)."""
    img = Image.fromarray(array.astype(np.uint8))
    img = img.resize((width, height), Image.LANCZOS)
    return np.array(img, dtype=np.uint8)


def resize_target(
    grid: PixelGrid,
    width: int | None = None,
    height: int | None = None,
) -> PixelGrid:
    """Resize a target grid per :func:`compute_target_size`.

    The grid is returned untouched when the size does not change.
    """
    w, h = compute_target_size(grid.width, grid.height, width, height)
    if (w, h) == (grid.width, grid.height):
        return grid
    return ArrayGrid(resize_rgb(grid.rgb(), w, h))


def encode(image: PixelGrid | np.ndarray, path: str | Path) -> None:
    """Save an RGB grid (or bare (H, W, 3) array); format follows the suffix.

    Raises:
        EncodeFailure: The image could not be written.
    """
    path = Path(path)
    array = image.rgb() if isinstance(image, PixelGrid) else image
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.fromarray(np.asarray(array, dtype=np.uint8)).save(path)
    except (OSError, ValueError, KeyError, SystemError) as exc:
        raise EncodeFailure("Could not write image", path, exc) from exc
