"""Centralised configuration via a frozen dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class MosaicConfig:
    """All tuneable parameters for a mosaic run.

    Attributes:
        tile_size:      Side length in pixels each tile is resized to.
        width:          Target width in tiles (None = keep / follow height).
        height:         Target height in tiles (None = keep / follow width).
        color_space:    Comparison space - "lab" (perceptual) or "rgb" (linear).
        workers:        Worker-pool size (None = os.cpu_count()).
        chunk_count:    Dictionary chunks to split pending tiles into
                        (None = one per worker).
        use_cache:      Read and write the dictionary cache sidecar.
        cache_filename: Name of the sidecar inside the tile directory.
        batch_size:     Target pixels per nearest-colour batch (controls peak RAM).
        output:         Default output path for still images.
        video_output:   Default output path in video mode.
        video_codec:    FourCC used for the output video.
    """

    # Tiles
    tile_size: int = 32

    # Target scaling
    width: int | None = None
    height: int | None = None

    # Matching
    color_space: str = "lab"
    batch_size: int = 4096

    # Parallelism
    workers: int | None = None
    chunk_count: int | None = None

    # Cache
    use_cache: bool = True
    cache_filename: str = "dictionary_cache.json"

    # Output
    output: Path = field(default_factory=lambda: Path("output.png"))
    video_output: Path = field(default_factory=lambda: Path("output.mp4"))
    video_codec: str = "mp4v"

    SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
        {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp", ".jfif", ".gif"}
    )
