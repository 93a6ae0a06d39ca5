"""One pixel-grid interface over in-memory RGB arrays and OpenCV BGR frames.

The dictionary builder and the compositor only ever talk to
:class:`PixelGrid`, so a decoded still image and a captured video
frame go through the same code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import cv2
import numpy as np


class PixelGrid(ABC):
    """Read access to an RGB pixel grid plus rectangular writes."""

    @property
    @abstractmethod
    def width(self) -> int: ...

    @property
    @abstractmethod
    def height(self) -> int: ...

    @abstractmethod
    def rgb(self) -> np.ndarray:
        """(H, W, 3) uint8 RGB array."""

    @abstractmethod
    def paste(self, tile_rgb: np.ndarray, x: int, y: int) -> None:
        """Copy an (h, w, 3) RGB block so its top-left corner lands at (x, y)."""

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.width}x{self.height})"


class ArrayGrid(PixelGrid):
    """Pixel grid backed by an (H, W, 3) uint8 RGB numpy array."""

    def __init__(self, array: np.ndarray) -> None:
        arr = np.asarray(array)
        if arr.ndim != 3 or arr.shape[2] != 3:
            msg = f"Expected an (H, W, 3) array, got shape {arr.shape}"
            raise ValueError(msg)
        self._array = arr.astype(np.uint8, copy=False)

    @property
    def width(self) -> int:
        return self._array.shape[1]

    @property
    def height(self) -> int:
        return self._array.shape[0]

    def rgb(self) -> np.ndarray:
        return self._array

    def paste(self, tile_rgb: np.ndarray, x: int, y: int) -> None:
        h, w = tile_rgb.shape[:2]
        self._array[y : y + h, x : x + w] = tile_rgb


class MatGrid(PixelGrid):
    """Pixel grid backed by an OpenCV (H, W, 3) BGR matrix."""

    def __init__(self, mat: np.ndarray) -> None:
        if mat.ndim != 3 or mat.shape[2] != 3:
            msg = f"Expected an (H, W, 3) BGR matrix, got shape {mat.shape}"
            raise ValueError(msg)
        self.mat = mat

    @classmethod
    def from_rgb(cls, rgb: np.ndarray) -> MatGrid:
        return cls(cv2.cvtColor(np.ascontiguousarray(rgb), cv2.COLOR_RGB2BGR))

    @property
    def width(self) -> int:
        return self.mat.shape[1]

    @property
    def height(self) -> int:
        return self.mat.shape[0]

    def rgb(self) -> np.ndarray:
        if self.mat.size == 0:
            return np.zeros(self.mat.shape, dtype=np.uint8)
        return cv2.cvtColor(self.mat, cv2.COLOR_BGR2RGB)

    def paste(self, tile_rgb: np.ndarray, x: int, y: int) -> None:
        h, w = tile_rgb.shape[:2]
        self.mat[y : y + h, x : x + w] = tile_rgb[..., ::-1]


def as_grid(image: PixelGrid | np.ndarray) -> PixelGrid:
    """Wrap a bare RGB array in an :class:`ArrayGrid`; grids pass through."""
    if isinstance(image, PixelGrid):
        return image
    return ArrayGrid(image)
