"""
Tile Mosaic Generator
=====================

Rebuild a target image out of a folder of smaller images. Each pixel of
the (optionally resized) target is replaced by the tile whose average
colour is closest to it.

- **Dictionary builder**: per-tile mean colours in linear RGB, cached in
  ``dictionary_cache.json`` beside the tiles, computed in parallel chunks
- **Compositor**: nearest-colour search (CIELAB or linear RGB) and canvas
  assembly over disjoint row bands
- **Video mode**: the same index applied frame by frame via OpenCV
"""

__version__ = "1.2.0"

from tile_mosaic.color_index import ColorIndex, Tile
from tile_mosaic.color_utils import (
    MeanAccumulator,
    distance2,
    mean_color,
    srgb_to_linear,
    to_comparison_space,
)
from tile_mosaic.compositor import compose
from tile_mosaic.config import MosaicConfig
from tile_mosaic.dictionary import BuildResult, DictionaryReader, build_dictionary
from tile_mosaic.errors import (
    CorruptCache,
    DecodeFailure,
    EmptyDictionary,
    EncodeFailure,
    InconsistentTileSize,
    MosaicError,
    SourceIsFile,
    SourceNotFound,
    SourceUnreadable,
)
from tile_mosaic.image_io import compute_target_size, decode, encode, resize_target
from tile_mosaic.pixel_grid import ArrayGrid, MatGrid, PixelGrid
from tile_mosaic.video import VideoSink, VideoSource, compose_video

__all__ = [
    "ArrayGrid",
    "BuildResult",
    "ColorIndex",
    "CorruptCache",
    "DecodeFailure",
    "DictionaryReader",
    "EmptyDictionary",
    "EncodeFailure",
    "InconsistentTileSize",
    "MatGrid",
    "MeanAccumulator",
    "MosaicConfig",
    "MosaicError",
    "PixelGrid",
    "SourceIsFile",
    "SourceNotFound",
    "SourceUnreadable",
    "Tile",
    "VideoSink",
    "VideoSource",
    "build_dictionary",
    "compose",
    "compose_video",
    "compute_target_size",
    "decode",
    "distance2",
    "encode",
    "mean_color",
    "resize_target",
    "srgb_to_linear",
    "to_comparison_space",
]
