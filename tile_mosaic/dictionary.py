"""Tile dictionary builder: colour extraction, caching and parallel chunks.

Typical use goes through :func:`build_dictionary`. The lower-level steps
are exposed for callers that schedule chunks themselves::

    reader = DictionaryReader.open("tiles/", tile_size=(32, 32))
    chunks = reader.partition(8)
    for chunk in chunks:           # any order, any thread
        while chunk.process_one():
            pass
    index, entries = reader.merge(chunks)
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from tile_mosaic import tile_cache
from tile_mosaic.color_index import ColorIndex, Tile
from tile_mosaic.color_utils import COLOR_SPACES, mean_color
from tile_mosaic.errors import (
    CorruptCache,
    DecodeFailure,
    InconsistentTileSize,
    SourceIsFile,
    SourceNotFound,
    SourceUnreadable,
)
from tile_mosaic.image_io import decode, resize_rgb
from tile_mosaic.parallel import default_workers, run_all

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingTile:
    """A file still to be decoded.

    ``color`` is set when the cache already knows it and only the
    resized pixels are needed.
    """

    path: Path
    identity: str
    color: np.ndarray | None = None


class DictionaryChunk:
    """Contiguous slice of pending tiles with a private result list."""

    def __init__(self, origin: DictionaryReader, items: Iterable[PendingTile]) -> None:
        self.origin = origin
        self._pending: deque[PendingTile] = deque(items)
        self.results: list[Tile] = []
        self.failures: list[tuple[str, str]] = []
        self.decode_count = 0
        self.pixel_loads = 0

    def __len__(self) -> int:
        """Number of tiles still to be processed."""
        return len(self._pending)

    @property
    def exhausted(self) -> bool:
        return not self._pending

    @property
    def identities(self) -> list[str]:
        return [item.identity for item in self._pending]

    def process_one(self) -> bool:
        """Decode the next pending tile.

        An unreadable tile is logged and recorded in :attr:`failures`;
        processing carries on with the next one.

        Returns:
            False once the chunk has nothing left, True otherwise.
        """
        if not self._pending:
            return False
        item = self._pending.popleft()
        tile_size = self.origin.tile_size

        if item.color is None:
            self.decode_count += 1
        else:
            self.pixel_loads += 1

        try:
            rgb = decode(item.path).rgb()
            if rgb.size == 0:
                msg = "Image has no pixels"
                raise DecodeFailure(msg, item.path)
            color = mean_color(rgb) if item.color is None else item.color
            pixels = resize_rgb(rgb, *tile_size) if tile_size else None
        except DecodeFailure as exc:
            logger.warning("Skipping tile %s: %s", item.identity, exc)
            self.failures.append((item.identity, str(exc)))
            return True

        self.results.append(Tile(item.identity, color, pixels))
        return True


class DictionaryReader:
    """Listing of a tile directory split into cached and pending tiles.

    Use :meth:`open` to create one.
    """

    def __init__(
        self,
        root: Path,
        cached: dict[str, np.ndarray],
        pending: list[PendingTile],
        tile_size: tuple[int, int] | None = None,
        color_space: str = "lab",
        cache_filename: str = tile_cache.CACHE_FILENAME,
    ) -> None:
        self.root = root
        self.cached = cached
        self.pending = pending
        self.tile_size = tile_size
        self.color_space = color_space
        self.cache_filename = cache_filename
        self._chunks: list[DictionaryChunk] | None = None
        self._merged = False

    @classmethod
    def open(
        cls,
        source_root: str | Path,
        tile_size: tuple[int, int] | None = None,
        *,
        color_space: str = "lab",
        use_cache: bool = True,
        extensions: Iterable[str] | None = None,
        cache_filename: str = tile_cache.CACHE_FILENAME,
    ) -> DictionaryReader:
        """List *source_root* and split its files into cached and pending.

        The directory is created if it does not exist. Only regular files
        directly inside it are considered, minus the cache sidecar. When
        *tile_size* is given, cached tiles still need their pixels loaded,
        so they stay pending but skip colour extraction.

        Raises:
            SourceNotFound:   The directory is missing and cannot be created.
            SourceIsFile:     The path exists but is not a directory.
            SourceUnreadable: The directory cannot be listed.
        """
        if color_space not in COLOR_SPACES:
            msg = f"Unknown colour space '{color_space}'. Available: {', '.join(COLOR_SPACES)}"
            raise ValueError(msg)
        if tile_size is not None and (tile_size[0] < 1 or tile_size[1] < 1):
            msg = f"tile_size must be positive, got {tile_size}"
            raise ValueError(msg)

        root = Path(source_root)
        if not root.exists():
            try:
                root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                msg = "Could not create tile directory"
                raise SourceNotFound(msg, root, exc) from exc
            logger.info("Created empty tile directory %s", root)
        elif not root.is_dir():
            msg = "Tile directory is a file"
            raise SourceIsFile(msg, root)

        suffixes = {e.lower() for e in extensions} if extensions is not None else None
        try:
            files = [
                p for p in sorted(root.iterdir())
                if p.is_file()
                and not tile_cache.is_cache_file(p, cache_filename)
                and (suffixes is None or p.suffix.lower() in suffixes)
            ]
        except OSError as exc:
            msg = "Could not read tile directory"
            raise SourceUnreadable(msg, root, exc) from exc
        identities = [p.relative_to(root).as_posix() for p in files]

        cache: dict[str, np.ndarray] = {}
        if use_cache:
            try:
                cache = tile_cache.load(root, cache_filename)
            except CorruptCache as exc:
                logger.warning("%s; recomputing every tile", exc)
            cache = tile_cache.prune(root, cache, present=set(identities))

        cached: dict[str, np.ndarray] = {}
        pending: list[PendingTile] = []
        for path, ident in zip(files, identities, strict=True):
            color = cache.get(ident)
            if color is not None and tile_size is None:
                cached[ident] = color
            else:
                pending.append(PendingTile(path, ident, color))

        return cls(root, cached, pending, tile_size, color_space, cache_filename)

    def __len__(self) -> int:
        return len(self.cached) + len(self.pending)

    def partition(self, chunk_count: int) -> list[DictionaryChunk]:
        """Split pending tiles into ``min(chunk_count, pending)`` contiguous chunks.

        Sizes differ by at most one, longer chunks first. No pending
        tiles gives an empty list.
        """
        if chunk_count < 1:
            msg = f"chunk_count must be >= 1, got {chunk_count}"
            raise ValueError(msg)
        if self._chunks is not None:
            msg = "Dictionary has already been partitioned"
            raise RuntimeError(msg)

        n = len(self.pending)
        size, extra = divmod(n, min(chunk_count, n) or 1)
        self._chunks = []
        start = 0
        while start < n:
            stop = start + size + (1 if len(self._chunks) < extra else 0)
            self._chunks.append(DictionaryChunk(self, self.pending[start:stop]))
            start = stop
        return list(self._chunks)

    def merge(
        self,
        chunks: Sequence[DictionaryChunk] | None = None,
    ) -> tuple[ColorIndex, dict[str, np.ndarray]]:
        """Combine cached entries and chunk results into a :class:`ColorIndex`.

        Must only be called once every chunk is exhausted.

        Returns:
            (index, entries) where *entries* is the identity → colour
            mapping to persist in the cache.

        Raises:
            InconsistentTileSize: A tile's pixels do not match ``tile_size``.
        """
        if self._merged:
            msg = "Dictionary has already been merged"
            raise RuntimeError(msg)
        issued = self._chunks or []
        if chunks is None:
            chunks = issued
        if self.pending and not issued:
            msg = "Pending tiles were never partitioned"
            raise RuntimeError(msg)
        for chunk in chunks:
            if chunk.origin is not self:
                msg = "Chunk belongs to a different dictionary"
                raise ValueError(msg)
        if {id(c) for c in chunks} != {id(c) for c in issued}:
            msg = "merge() needs every chunk returned by partition()"
            raise RuntimeError(msg)
        busy = sum(1 for c in chunks if not c.exhausted)
        if busy:
            msg = f"{busy} chunk(s) still have pending tiles"
            raise RuntimeError(msg)

        tiles = [Tile(ident, color) for ident, color in self.cached.items()]
        for chunk in chunks:
            tiles.extend(chunk.results)

        if self.tile_size is not None:
            w, h = self.tile_size
            for tile in tiles:
                shape = None if tile.pixels is None else tile.pixels.shape
                if shape != (h, w, 3):
                    msg = f"Tile pixels are {shape}, expected {(h, w, 3)}"
                    raise InconsistentTileSize(msg, self.root / tile.identity)

        self._merged = True
        index = ColorIndex(tiles, self.color_space, self.tile_size)
        entries = {t.identity: t.color for t in tiles}
        return index, entries


@dataclass
class BuildResult:
    """Outcome of :func:`build_dictionary`.

    Attributes:
        index:       The finished colour index.
        decoded:     Tiles whose colour was computed from pixels.
        pixel_loads: Cached tiles re-read only for their pixels.
        cache_hits:  Tiles whose colour came from the cache.
        failures:    (identity, message) for every skipped tile.
        cache_file:  Where the cache was written, if it was.
    """

    index: ColorIndex
    decoded: int = 0
    pixel_loads: int = 0
    cache_hits: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)
    cache_file: Path | None = None


def _drain(chunk: DictionaryChunk) -> DictionaryChunk:
    while chunk.process_one():
        pass
    return chunk


def build_dictionary(
    source_root: str | Path,
    tile_size: tuple[int, int] | None = None,
    *,
    color_space: str = "lab",
    workers: int | None = None,
    chunk_count: int | None = None,
    use_cache: bool = True,
    save_cache: bool = True,
    extensions: Iterable[str] | None = None,
    cache_filename: str = tile_cache.CACHE_FILENAME,
) -> BuildResult:
    """Build a :class:`ColorIndex` from a tile directory.

    Pending tiles are split into chunks and drained on a worker pool.
    The cache is written once, from this thread, after every chunk has
    finished and the merge succeeded.

    Args:
        source_root: Tile directory.
        tile_size:   (width, height) to resize tile pixels to, or None to
                     build colours only.
        color_space: Comparison space of the resulting index.
        workers:     Pool size (None = os.cpu_count()).
        chunk_count: Number of chunks (None = one per worker).
        use_cache:   Read and write the cache sidecar.
        save_cache:  Write the cache after a successful build.
        extensions:  Only consider files with these suffixes.
        cache_filename: Name of the cache sidecar.
    """
    t0 = time.perf_counter()
    reader = DictionaryReader.open(
        source_root, tile_size,
        color_space=color_space,
        use_cache=use_cache,
        extensions=extensions,
        cache_filename=cache_filename,
    )
    logger.info(
        "Loading %d images (%d cached, %d to decode)",
        len(reader), len(reader.cached), len(reader.pending),
    )

    workers = default_workers(workers)
    chunks = reader.partition(chunk_count or workers)
    run_all(_drain, chunks, workers)
    index, entries = reader.merge(chunks)

    result = BuildResult(
        index=index,
        decoded=sum(c.decode_count for c in chunks),
        pixel_loads=sum(c.pixel_loads for c in chunks),
        cache_hits=len(reader.cached) + sum(c.pixel_loads for c in chunks),
        failures=[f for c in chunks for f in c.failures],
    )
    if use_cache and save_cache:
        result.cache_file = tile_cache.save(reader.root, entries, cache_filename)

    logger.info(
        "Dictionary ready: %d tiles, %d decoded, %d from cache, %d skipped  (%.1f s)",
        len(index), result.decoded, result.cache_hits, len(result.failures),
        time.perf_counter() - t0,
    )
    return result
