"""Exception hierarchy for dictionary building and mosaic composition."""

from __future__ import annotations

from pathlib import Path


class MosaicError(Exception):
    """Base class for every error raised by :mod:`tile_mosaic`.

    Attributes:
        path:  File or directory the error relates to (may be ``None``).
        cause: Underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        path: str | Path | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.path = Path(path) if path is not None else None
        self.cause = cause
        if self.path is not None:
            message = f"{message}: {self.path}"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)


# -- Dictionary open ---------------------------------------------------

class SourceNotFound(MosaicError):
    """The tile source is missing and could not be created."""


class SourceIsFile(MosaicError):
    """The tile source path exists but is not a directory."""


class SourceUnreadable(MosaicError):
    """The tile source could not be listed."""


# -- Cache -------------------------------------------------------------

class CorruptCache(MosaicError):
    """A cache file exists but cannot be parsed. Recoverable by a full rebuild."""


class CacheWriteFailure(MosaicError):
    """The cache file could not be written."""


# -- Codec -------------------------------------------------------------

class DecodeFailure(MosaicError):
    """An image or video could not be opened or decoded."""


class EncodeFailure(MosaicError):
    """An image or video could not be written."""


# -- Index -------------------------------------------------------------

class InconsistentTileSize(MosaicError):
    """A tile's pixel buffer does not match the dictionary tile size."""


class EmptyDictionary(MosaicError):
    """The colour index holds no tiles, so no query can be answered."""
