"""Tests for colour model, colour index, compositor and image I/O."""

from __future__ import annotations

import threading
from pathlib import Path

import numpy as np
import pytest
from PIL import Image
from skimage.color import rgb2lab

from tile_mosaic.color_index import ColorIndex, Tile
from tile_mosaic.color_utils import (
    MeanAccumulator,
    distance2,
    in_range,
    linear_to_srgb,
    mean_color,
    srgb_to_linear,
    to_comparison_space,
)
from tile_mosaic.compositor import compose
from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import DecodeFailure, EmptyDictionary
from tile_mosaic.image_io import compute_target_size, decode, encode, resize_target
from tile_mosaic.parallel import run_all
from tile_mosaic.pixel_grid import ArrayGrid, MatGrid

# -- Fixtures ----------------------------------------------------------

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)
TILE = 8


def _solid(color: tuple[int, int, int], w: int = TILE, h: int = TILE) -> np.ndarray:
    return np.full((h, w, 3), color, dtype=np.uint8)


def _tile(identity: str, color: tuple[int, int, int]) -> Tile:
    pixels = _solid(color)
    return Tile(identity, mean_color(pixels), pixels)


@pytest.fixture
def index() -> ColorIndex:
    tiles = [
        _tile("red.png", RED),
        _tile("green.png", GREEN),
        _tile("blue.png", BLUE),
        _tile("white.png", WHITE),
    ]
    return ColorIndex(tiles, "lab", (TILE, TILE))


@pytest.fixture
def target() -> np.ndarray:
    """2x2 target, one solid colour per pixel."""
    return np.array([[RED, GREEN], [BLUE, WHITE]], dtype=np.uint8)


@pytest.fixture
def tmp_image(tmp_path: Path) -> Path:
    """Write a small non-square test PNG to disk."""
    img = Image.fromarray(
        np.random.randint(0, 256, (48, 64, 3), dtype=np.uint8),
    )
    p = tmp_path / "test.png"
    img.save(p)
    return p


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        cfg = MosaicConfig()
        assert cfg.tile_size == 32
        assert cfg.color_space == "lab"
        assert cfg.cache_filename == "dictionary_cache.json"

    def test_frozen(self) -> None:
        cfg = MosaicConfig()
        with pytest.raises(AttributeError):
            cfg.tile_size = 64  # type: ignore[misc]


# -- Colour utilities --------------------------------------------------

class TestColorUtils:
    def test_linear_endpoints(self) -> None:
        lin = srgb_to_linear(np.array([0, 255], dtype=np.uint8))
        np.testing.assert_allclose(lin, [0.0, 1.0])

    def test_linear_midtone_is_darker(self) -> None:
        # sRGB 128 decodes to roughly 0.216 linear
        lin = srgb_to_linear(np.array([128], dtype=np.uint8))
        assert 0.21 < lin[0] < 0.22

    def test_srgb_roundtrip(self) -> None:
        values = np.linspace(0.0, 1.0, 11)
        np.testing.assert_allclose(srgb_to_linear(linear_to_srgb(values)), values, atol=1e-12)

    def test_uniform_mean(self) -> None:
        pixels = _solid((200, 100, 50), 7, 5)
        expected = srgb_to_linear(np.array([200, 100, 50], dtype=np.uint8))
        np.testing.assert_allclose(mean_color(pixels), expected)

    def test_half_and_half_is_midpoint(self) -> None:
        pixels = np.concatenate([_solid(RED, 4, 3), _solid(BLUE, 4, 3)])
        np.testing.assert_allclose(mean_color(pixels), [0.5, 0.0, 0.5])

    def test_mean_over_blocks(self) -> None:
        rng = np.random.default_rng(7)
        pixels = rng.integers(0, 256, size=(37, 11, 3), dtype=np.uint8)
        expected = srgb_to_linear(pixels).reshape(-1, 3).mean(axis=0)
        np.testing.assert_allclose(mean_color(pixels, rows_per_block=4), expected)

    def test_accumulator_is_true_mean(self) -> None:
        acc = MeanAccumulator()
        for value in (0.0, 0.0, 0.0, 1.0):
            acc.add(np.full(3, value))
        assert acc.count == 4
        np.testing.assert_allclose(acc.mean(), [0.25, 0.25, 0.25])

    def test_accumulator_empty(self) -> None:
        with pytest.raises(ValueError):
            MeanAccumulator().mean()

    def test_distance2(self) -> None:
        assert distance2(np.array([0, 0, 0]), np.array([1, 2, 2])) == 9.0

    def test_distance2_broadcasts(self) -> None:
        d = distance2(np.zeros((4, 3)), np.ones(3))
        np.testing.assert_allclose(d, [3.0] * 4)

    def test_lab_white(self) -> None:
        lab = to_comparison_space(np.array([1.0, 1.0, 1.0]), "lab")
        np.testing.assert_allclose(lab, [100.0, 0.0, 0.0], atol=0.01)

    def test_lab_matches_uint8_conversion(self) -> None:
        rgb = np.array([[255, 0, 0], [0, 128, 255]], dtype=np.uint8)
        via_linear = to_comparison_space(srgb_to_linear(rgb), "lab")
        expected = rgb2lab(rgb.reshape(1, -1, 3) / 255.0).reshape(-1, 3)
        np.testing.assert_allclose(via_linear, expected, atol=1e-6)

    def test_rgb_space_is_identity(self) -> None:
        colors = np.array([[0.1, 0.2, 0.3]])
        np.testing.assert_array_equal(to_comparison_space(colors, "rgb"), colors)

    def test_unknown_space(self) -> None:
        with pytest.raises(ValueError):
            to_comparison_space(np.zeros(3), "hsv")

    def test_in_range(self) -> None:
        assert in_range(np.array([[50.0, 10.0, -10.0]]), "lab")
        assert not in_range(np.array([[101.0, 0.0, 0.0]]), "lab")
        assert not in_range(np.array([[np.nan, 0.0, 0.0]]), "rgb")


# -- Colour index ------------------------------------------------------

class TestColorIndex:
    def test_exact_match(self, index: ColorIndex) -> None:
        for tile in index:
            assert index.closest(tile.color) is tile

    def test_nearest(self, index: ColorIndex) -> None:
        near_red = srgb_to_linear(np.array([230, 20, 10], dtype=np.uint8))
        assert index.closest(near_red).identity == "red.png"

    def test_tie_goes_to_first(self) -> None:
        a = _tile("a.png", RED)
        b = _tile("b.png", RED)
        idx = ColorIndex([a, b], "rgb", (TILE, TILE))
        assert idx.closest(a.color) is a
        np.testing.assert_array_equal(idx.closest_indices(np.stack([a.color] * 3)), [0, 0, 0])

    def test_batched_matches_single(self, index: ColorIndex) -> None:
        rng = np.random.default_rng(3)
        queries = rng.random((50, 3))
        batched = index.closest_indices(queries, batch_size=7)
        single = [index.identities().index(index.closest(q).identity) for q in queries]
        np.testing.assert_array_equal(batched, single)

    def test_empty_rejected(self) -> None:
        idx = ColorIndex([])
        assert len(idx) == 0
        with pytest.raises(EmptyDictionary):
            idx.closest(np.zeros(3))
        with pytest.raises(EmptyDictionary):
            idx.closest_indices(np.zeros((1, 3)))

    def test_read_only(self, index: ColorIndex) -> None:
        with pytest.raises(ValueError):
            index.colors[0, 0] = 1.0
        with pytest.raises(ValueError):
            index[0].pixels[0, 0, 0] = 1  # type: ignore[index]

    def test_comparison_colours_in_range(self, index: ColorIndex) -> None:
        assert in_range(index.comparison_colors, "lab")


# -- Compositor --------------------------------------------------------

class TestCompose:
    def test_quadrants(self, index: ColorIndex, target: np.ndarray) -> None:
        canvas = compose(index, target, workers=2)
        assert canvas.shape == (16, 16, 3)
        assert canvas.dtype == np.uint8
        np.testing.assert_array_equal(canvas[:8, :8], _solid(RED))
        np.testing.assert_array_equal(canvas[:8, 8:], _solid(GREEN))
        np.testing.assert_array_equal(canvas[8:, :8], _solid(BLUE))
        np.testing.assert_array_equal(canvas[8:, 8:], _solid(WHITE))

    def test_non_square_tiles(self, target: np.ndarray) -> None:
        tiles = [Tile("r", mean_color(_solid(RED, 3, 5)), _solid(RED, 3, 5))]
        canvas = compose(ColorIndex(tiles, "lab", (3, 5)), target)
        assert canvas.shape == (10, 6, 3)

    def test_empty_target(self, index: ColorIndex) -> None:
        canvas = compose(index, np.zeros((0, 0, 3), dtype=np.uint8))
        assert canvas.shape == (0, 0, 3)

    def test_empty_index(self, target: np.ndarray) -> None:
        with pytest.raises(EmptyDictionary):
            compose(ColorIndex([], "lab", (TILE, TILE)), target)

    def test_colour_only_index(self, target: np.ndarray) -> None:
        idx = ColorIndex([Tile("r", mean_color(_solid(RED)))], "lab")
        with pytest.raises(ValueError):
            compose(idx, target)

    def test_band_layout_does_not_change_result(self, index: ColorIndex) -> None:
        rng = np.random.default_rng(11)
        big = rng.integers(0, 256, size=(13, 9, 3), dtype=np.uint8)
        serial = compose(index, big, workers=1)
        banded = compose(index, big, workers=4, rows_per_band=1)
        np.testing.assert_array_equal(serial, banded)

    def test_matgrid_target(self, index: ColorIndex, target: np.ndarray) -> None:
        from_array = compose(index, ArrayGrid(target))
        from_mat = compose(index, MatGrid.from_rgb(target))
        np.testing.assert_array_equal(from_array, from_mat)


# -- Worker pool -------------------------------------------------------

class TestRunAll:
    def test_results_in_order(self) -> None:
        assert run_all(lambda x: x * 2, [1, 2, 3], workers=3) == [2, 4, 6]

    def test_failure_waits_for_siblings(self) -> None:
        done: list[int] = []
        lock = threading.Lock()

        def work(unit: int) -> int:
            if unit == 0:
                raise RuntimeError("boom")
            with lock:
                done.append(unit)
            return unit

        with pytest.raises(RuntimeError, match="boom"):
            run_all(work, list(range(6)), workers=2)
        assert sorted(done) == [1, 2, 3, 4, 5]

    def test_invalid_workers(self) -> None:
        with pytest.raises(ValueError):
            run_all(lambda x: x, [1], workers=0)


# -- Pixel grids -------------------------------------------------------

class TestPixelGrid:
    def test_matgrid_reads_rgb(self, target: np.ndarray) -> None:
        grid = MatGrid.from_rgb(target)
        assert grid.size == (2, 2)
        np.testing.assert_array_equal(grid.mat[0, 0], RED[::-1])
        np.testing.assert_array_equal(grid.rgb(), target)

    def test_paste(self) -> None:
        blank = np.zeros((4, 4, 3), dtype=np.uint8)
        for grid in (ArrayGrid(blank.copy()), MatGrid(blank.copy())):
            grid.paste(_solid(BLUE, 2, 2), 2, 2)
            np.testing.assert_array_equal(grid.rgb()[3, 3], BLUE)
            np.testing.assert_array_equal(grid.rgb()[0, 0], (0, 0, 0))

    def test_rejects_bad_shape(self) -> None:
        with pytest.raises(ValueError):
            ArrayGrid(np.zeros((4, 4), dtype=np.uint8))


# -- Image I/O ---------------------------------------------------------

class TestImageIO:
    def test_size_both_given(self) -> None:
        assert compute_target_size(640, 480, 10, 20) == (10, 20)

    def test_size_width_only(self) -> None:
        assert compute_target_size(640, 480, width=64) == (64, 48)

    def test_size_height_only(self) -> None:
        assert compute_target_size(640, 480, height=24) == (32, 24)

    def test_size_unchanged(self) -> None:
        assert compute_target_size(640, 480) == (640, 480)

    def test_size_minimum_one(self) -> None:
        assert compute_target_size(1000, 1, width=10) == (10, 1)

    def test_size_zero_original(self) -> None:
        assert compute_target_size(0, 0, width=4) == (0, 0)
        assert compute_target_size(0, 48, height=4) == (0, 0)
        assert compute_target_size(64, 0, 4, 4) == (0, 0)

    def test_decode(self, tmp_image: Path) -> None:
        grid = decode(tmp_image)
        assert grid.size == (64, 48)

    def test_decode_missing(self, tmp_path: Path) -> None:
        with pytest.raises(DecodeFailure):
            decode(tmp_path / "missing.png")

    def test_decode_garbage(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.png"
        bad.write_bytes(b"not an image")
        with pytest.raises(DecodeFailure) as info:
            decode(bad)
        assert info.value.path == bad

    def test_resize_target(self, tmp_image: Path) -> None:
        grid = resize_target(decode(tmp_image), width=16)
        assert grid.size == (16, 12)

    def test_encode(self, tmp_path: Path, target: np.ndarray) -> None:
        out = tmp_path / "nested" / "out.png"
        encode(ArrayGrid(target), out)
        assert out.exists()
        np.testing.assert_array_equal(decode(out).rgb(), target)
