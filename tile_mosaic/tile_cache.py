"""Persistent identity → representative-colour cache kept beside the tiles.

The sidecar is a JSON object with two parallel lists::

    {"images": ["a.png", "b.jpg"], "colors": [[r, g, b], [r, g, b]]}

Identities are POSIX paths relative to the tile directory and colours
are linear RGB, so the directory can be moved without invalidating it.
"""

from __future__ import annotations

import json
import logging
import math
import os
from pathlib import Path, PurePosixPath

import numpy as np

from tile_mosaic.errors import CacheWriteFailure, CorruptCache

logger = logging.getLogger(__name__)

CACHE_FILENAME = "dictionary_cache.json"


def cache_path(source_root: str | Path, filename: str = CACHE_FILENAME) -> Path:
    return Path(source_root) / filename


def is_cache_file(path: Path, filename: str = CACHE_FILENAME) -> bool:
    """True for the sidecar itself and for temp files left by :func:`save`."""
    return path.name == filename or path.name.startswith(f"{filename}.tmp.")


def _parse_color(raw: object) -> np.ndarray:
    if not isinstance(raw, list) or len(raw) != 3:
        msg = f"expected 3 channels, got {raw!r}"
        raise ValueError(msg)
    if not all(isinstance(c, (int, float)) and not isinstance(c, bool) for c in raw):
        msg = f"non-numeric channel in {raw!r}"
        raise ValueError(msg)
    if not all(math.isfinite(c) for c in raw):
        msg = f"non-finite channel in {raw!r}"
        raise ValueError(msg)
    return np.array(raw, dtype=np.float64)


def load(
    source_root: str | Path,
    filename: str = CACHE_FILENAME,
) -> dict[str, np.ndarray]:
    """Read the cache for *source_root*.

    Returns:
        Mapping identity → (3,) linear RGB. Empty if no cache file exists.

    Raises:
        CorruptCache: The file exists but cannot be parsed.
    """
    path = cache_path(source_root, filename)
    if not path.exists():
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            msg = "top level must be an object"
            raise ValueError(msg)
        images = data["images"]
        colors = data["colors"]
        if not isinstance(images, list) or not isinstance(colors, list):
            msg = "'images' and 'colors' must be lists"
            raise ValueError(msg)
        if len(images) != len(colors):
            msg = f"{len(images)} images but {len(colors)} colours"
            raise ValueError(msg)

        entries: dict[str, np.ndarray] = {}
        for ident, raw in zip(images, colors, strict=True):
            if not isinstance(ident, str) or not ident:
                msg = f"invalid identity {ident!r}"
                raise ValueError(msg)
            if PurePosixPath(ident).is_absolute():
                msg = f"identity must be relative: {ident!r}"
                raise ValueError(msg)
            if ident in entries:
                msg = f"duplicate identity {ident!r}"
                raise ValueError(msg)
            entries[ident] = _parse_color(raw)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise CorruptCache("Could not parse dictionary cache", path, exc) from exc

    logger.debug("Loaded %d cached colours from %s", len(entries), path)
    return entries


def save(
    source_root: str | Path,
    entries: dict[str, np.ndarray],
    filename: str = CACHE_FILENAME,
) -> Path:
    """Write *entries* atomically (temp file in the same directory + rename).

    Raises:
        CacheWriteFailure: The file could not be written.
    """
    path = cache_path(source_root, filename)
    tmp = path.with_name(f"{path.name}.tmp.{os.getpid()}")
    payload = {
        "images": list(entries.keys()),
        "colors": [[float(c) for c in color] for color in entries.values()],
    }
    try:
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as exc:
        try:
            tmp.unlink()
        except OSError:
            pass
        raise CacheWriteFailure("Could not write dictionary cache", path, exc) from exc

    logger.debug("Saved %d cached colours to %s", len(entries), path)
    return path


def prune(
    source_root: str | Path,
    entries: dict[str, np.ndarray],
    present: set[str] | None = None,
) -> dict[str, np.ndarray]:
    """Drop entries whose backing file is gone.

    Args:
        source_root: Tile directory the identities are relative to.
        entries:     Cached mapping.
        present:     Identities known to exist (e.g. from a directory
                     listing). If omitted, each file is checked on disk.
    """
    root = Path(source_root)
    kept: dict[str, np.ndarray] = {}
    for ident, color in entries.items():
        exists = ident in present if present is not None else (root / ident).is_file()
        if exists:
            kept[ident] = color
        else:
            logger.info("Pruning stale cache entry %s", ident)
    return kept
