"""Immutable nearest-colour lookup over the finished tile set."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

import numpy as np
from scipy.spatial.distance import cdist

from tile_mosaic.color_utils import COLOR_SPACES, distance2, to_comparison_space
from tile_mosaic.errors import EmptyDictionary


@dataclass(frozen=True)
class Tile:
    """One dictionary entry.

    Attributes:
        identity: Path relative to the tile directory (cache key).
        color:    (3,) representative colour, linear RGB in [0, 1].
        pixels:   (tile_h, tile_w, 3) uint8 RGB, or None for colour-only runs.
    """

    identity: str
    color: np.ndarray
    pixels: np.ndarray | None = None


class ColorIndex:
    """Read-only collection of tiles answering "closest colour" queries.

    The scan is linear: every query is compared against every tile in
    index order and the first minimum wins.
    """

    def __init__(
        self,
        tiles: Sequence[Tile],
        color_space: str = "lab",
        tile_size: tuple[int, int] | None = None,
    ) -> None:
        if color_space not in COLOR_SPACES:
            msg = f"Unknown colour space '{color_space}'. Available: {', '.join(COLOR_SPACES)}"
            raise ValueError(msg)
        self._tiles: tuple[Tile, ...] = tuple(tiles)
        self.color_space = color_space
        self.tile_size = tile_size

        colors = np.array([t.color for t in self._tiles], dtype=np.float64).reshape(-1, 3)
        self._colors = colors
        self._colors.flags.writeable = False
        if len(colors):
            self._comparison = to_comparison_space(colors, color_space).reshape(-1, 3)
        else:
            self._comparison = np.empty((0, 3), dtype=np.float64)
        self._comparison.flags.writeable = False

        for t in self._tiles:
            if t.pixels is not None:
                t.pixels.flags.writeable = False

    # -- container protocol -------------------------------------------

    def __len__(self) -> int:
        return len(self._tiles)

    def __iter__(self) -> Iterator[Tile]:
        return iter(self._tiles)

    def __getitem__(self, i: int) -> Tile:
        return self._tiles[i]

    @property
    def tiles(self) -> tuple[Tile, ...]:
        return self._tiles

    @property
    def colors(self) -> np.ndarray:
        """(n, 3) linear RGB."""
        return self._colors

    @property
    def comparison_colors(self) -> np.ndarray:
        """(n, 3) colours in :attr:`color_space`."""
        return self._comparison

    @property
    def has_pixels(self) -> bool:
        return bool(self._tiles) and all(t.pixels is not None for t in self._tiles)

    def identities(self) -> list[str]:
        return [t.identity for t in self._tiles]

    # -- queries ------------------------------------------------------

    def ensure_not_empty(self) -> None:
        if not self._tiles:
            msg = "Colour index is empty; add images to the tile directory"
            raise EmptyDictionary(msg)

    def closest(self, query: np.ndarray) -> Tile:
        """Tile whose colour is nearest to *query* (linear RGB).

        Ties go to the tile encountered first in index order.
        """
        self.ensure_not_empty()
        q = to_comparison_space(np.asarray(query, dtype=np.float64).reshape(1, 3),
                                self.color_space)
        scores = distance2(self._comparison, q)
        return self._tiles[int(np.argmin(scores))]

    def closest_indices(
        self,
        linear_colors: np.ndarray,
        batch_size: int = 4096,
    ) -> np.ndarray:
        """Batched :meth:`closest`: index of the nearest tile per query.

        Args:
            linear_colors: (N, 3) linear RGB queries.
            batch_size:    Queries scored per batch (controls peak RAM).

        Returns:
            (N,) int64 indices into this index.
        """
        self.ensure_not_empty()
        queries = np.asarray(linear_colors, dtype=np.float64).reshape(-1, 3)
        n = len(queries)
        out = np.empty(n, dtype=np.int64)
        for i in range(0, n, batch_size):
            j = min(i + batch_size, n)
            q = to_comparison_space(queries[i:j], self.color_space)
            scores = cdist(q, self._comparison, "sqeuclidean")
            out[i:j] = np.argmin(scores, axis=1)
        return out
