"""Mosaic assembly: nearest-colour lookup per target pixel, tiles stamped into a canvas.

The canvas is split into horizontal bands, one per work unit. Each
worker pastes tiles into an :class:`ArrayGrid` over its own band only,
so no two workers ever address the same output pixel and no locking is
needed.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass

import numpy as np

from tile_mosaic.color_index import ColorIndex
from tile_mosaic.color_utils import srgb_to_linear
from tile_mosaic.parallel import default_workers, run_all
from tile_mosaic.pixel_grid import ArrayGrid, PixelGrid, as_grid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Band:
    """Target rows [y0, y1) and the grid over the canvas rows they own."""

    y0: int
    y1: int
    canvas: ArrayGrid


def _tile_stack(index: ColorIndex) -> np.ndarray:
    """(n, tile_h, tile_w, 3) uint8 array of every tile's pixels."""
    return np.stack([t.pixels for t in index])


def _fill_band(
    band: _Band,
    target_rgb: np.ndarray,
    index: ColorIndex,
    tiles: np.ndarray,
    batch_size: int,
) -> int:
    rows = target_rgb[band.y0 : band.y1]
    n_rows, width = rows.shape[:2]
    _, th, tw, _ = tiles.shape

    choice = index.closest_indices(
        srgb_to_linear(rows.reshape(-1, 3)), batch_size=batch_size,
    ).reshape(n_rows, width)

    for ry in range(n_rows):
        for x in range(width):
            band.canvas.paste(tiles[choice[ry, x]], x * tw, ry * th)
    return n_rows * width


def compose(
    index: ColorIndex,
    target: PixelGrid | np.ndarray,
    *,
    workers: int | None = None,
    rows_per_band: int | None = None,
    batch_size: int = 4096,
) -> np.ndarray:
    """Build the mosaic canvas for *target*.

    Args:
        index:         Colour index built with tile pixels.
        target:        Target image (any :class:`PixelGrid` or (H, W, 3) RGB array).
        workers:       Pool size (None = os.cpu_count()).
        rows_per_band: Target rows per work unit (None = spread evenly
                       over the workers).
        batch_size:    Pixels per nearest-colour batch.

    Returns:
        (H * tile_h, W * tile_w, 3) uint8 RGB canvas.

    Raises:
        EmptyDictionary: The index holds no tiles.
        ValueError:      The index was built without tile pixels.
    """
    index.ensure_not_empty()
    if index.tile_size is None or not index.has_pixels:
        msg = "Colour index has no tile pixels; build it with a tile_size"
        raise ValueError(msg)

    grid = as_grid(target)
    tw, th = index.tile_size
    width, height = grid.width, grid.height
    canvas = np.zeros((height * th, width * tw, 3), dtype=np.uint8)
    if width == 0 or height == 0:
        return canvas

    t0 = time.perf_counter()
    target_rgb = grid.rgb()
    tiles = _tile_stack(index)

    workers = default_workers(workers)
    if rows_per_band is None:
        rows_per_band = math.ceil(height / workers)
    rows_per_band = max(1, rows_per_band)

    bands = [
        _Band(y0, min(y0 + rows_per_band, height),
              ArrayGrid(canvas[y0 * th : min(y0 + rows_per_band, height) * th]))
        for y0 in range(0, height, rows_per_band)
    ]
    placed = run_all(
        lambda band: _fill_band(band, target_rgb, index, tiles, batch_size),
        bands, workers,
    )

    logger.debug(
        "Composed %dx%d mosaic from %d tiles across %d band(s)  (%.1f s)",
        canvas.shape[1], canvas.shape[0], sum(placed), len(bands),
        time.perf_counter() - t0,
    )
    return canvas
