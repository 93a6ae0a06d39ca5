"""Colour-space conversion, running means and distance metric."""

from __future__ import annotations

import numpy as np
from skimage.color import rgb2lab

COLOR_SPACES = ("lab", "rgb")

# Valid channel ranges per comparison space: (low, high) for each channel.
COLOR_SPACE_RANGES: dict[str, tuple[tuple[float, float], ...]] = {
    "lab": ((0.0, 100.0), (-128.0, 128.0), (-128.0, 128.0)),
    "rgb": ((0.0, 1.0), (0.0, 1.0), (0.0, 1.0)),
}


def _normalise(values: np.ndarray) -> np.ndarray:
    """Integer samples → floats in [0, 1]; floats pass through."""
    arr = np.asarray(values)
    if np.issubdtype(arr.dtype, np.integer):
        return arr.astype(np.float64) / float(np.iinfo(arr.dtype).max)
    return arr.astype(np.float64)


def srgb_to_linear(values: np.ndarray) -> np.ndarray:
    """Gamma-decode sRGB samples (uint8, uint16 or float in [0, 1]).

    Returns:
        float64 array of the same shape with linear channels in [0, 1].
    """
    c = np.clip(_normalise(values), 0.0, 1.0)
    return np.where(c <= 0.04045, c / 12.92, ((c + 0.055) / 1.055) ** 2.4)


def linear_to_srgb(values: np.ndarray) -> np.ndarray:
    """Inverse of :func:`srgb_to_linear`; returns floats in [0, 1]."""
    c = np.clip(np.asarray(values, dtype=np.float64), 0.0, 1.0)
    return np.where(c <= 0.0031308, c * 12.92, 1.055 * c ** (1 / 2.4) - 0.055)


def to_comparison_space(
    linear_colors: np.ndarray,
    color_space: str = "lab",
) -> np.ndarray:
    """Express linear RGB colours in the space used for distance comparisons.

    Args:
        linear_colors: (..., 3) linear RGB in [0, 1].
        color_space:   ``"lab"`` (CIELAB D65) or ``"rgb"`` (linear RGB).

    Returns:
        float64 array of the same shape.
    """
    arr = np.asarray(linear_colors, dtype=np.float64)
    if color_space == "rgb":
        return arr.copy()
    if color_space == "lab":
        flat = linear_to_srgb(arr.reshape(1, -1, 3))
        return rgb2lab(flat).reshape(arr.shape)
    msg = f"Unknown colour space '{color_space}'. Available: {', '.join(COLOR_SPACES)}"
    raise ValueError(msg)


def distance2(a: np.ndarray, b: np.ndarray) -> np.ndarray | float:
    """Squared Euclidean distance over the last axis (no square root)."""
    d = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    out = np.sum(d * d, axis=-1)
    return float(out) if np.ndim(out) == 0 else out


def in_range(colors: np.ndarray, color_space: str = "lab") -> bool:
    """True if every colour is finite and inside the space's channel ranges."""
    arr = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
    if not np.all(np.isfinite(arr)):
        return False
    eps = 1e-6
    for ch, (lo, hi) in enumerate(COLOR_SPACE_RANGES[color_space]):
        if np.any(arr[:, ch] < lo - eps) or np.any(arr[:, ch] > hi + eps):
            return False
    return True


class MeanAccumulator:
    """Running arithmetic mean of 3-channel colours.

    Samples can arrive in any number of blocks; only a float64 sum and
    a count are held, so the full pixel set never has to be in memory.
    """

    def __init__(self) -> None:
        self._sum = np.zeros(3, dtype=np.float64)
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def add(self, samples: np.ndarray) -> None:
        block = np.asarray(samples, dtype=np.float64).reshape(-1, 3)
        self._sum += block.sum(axis=0)
        self._count += len(block)

    def mean(self) -> np.ndarray:
        if self._count == 0:
            msg = "Cannot take the mean of zero samples"
            raise ValueError(msg)
        return self._sum / self._count


def mean_color(pixels: np.ndarray, rows_per_block: int = 256) -> np.ndarray:
    """Representative colour of an (H, W, 3) sRGB image, in linear RGB.

    Rows are gamma-decoded block by block so large tiles never need a
    full float64 copy.
    """
    acc = MeanAccumulator()
    h = pixels.shape[0]
    for i in range(0, h, rows_per_block):
        acc.add(srgb_to_linear(pixels[i : i + rows_per_block]))
    return acc.mean()
