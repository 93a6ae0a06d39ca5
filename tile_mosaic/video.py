"""Frame-by-frame video mosaics through OpenCV.

A video is a single-pass sequence of target frames. Every frame is
composed against the same colour index and appended to the sink.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from pathlib import Path

import cv2
import numpy as np

from tile_mosaic.color_index import ColorIndex
from tile_mosaic.compositor import compose
from tile_mosaic.errors import DecodeFailure, EncodeFailure
from tile_mosaic.image_io import compute_target_size
from tile_mosaic.pixel_grid import MatGrid

logger = logging.getLogger(__name__)


class VideoSource:
    """Pull-based frame reader over ``cv2.VideoCapture``."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        if not self.path.is_file():
            msg = "Video not found"
            raise DecodeFailure(msg, self.path)
        self._cap = cv2.VideoCapture(str(self.path))
        if not self._cap.isOpened():
            msg = "Cannot open video"
            raise DecodeFailure(msg, self.path)
        self.fps = self._cap.get(cv2.CAP_PROP_FPS) or 30.0
        self.frame_count = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT))
        self.width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._done = False

    def next_frame(self) -> MatGrid | None:
        """Next frame as a BGR-backed grid, or None once the video ends."""
        if self._done:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            self._done = True
            return None
        return MatGrid(frame)

    def __iter__(self) -> Iterator[MatGrid]:
        while (frame := self.next_frame()) is not None:
            yield frame

    def close(self) -> None:
        self._done = True
        self._cap.release()

    def __enter__(self) -> VideoSource:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class VideoSink:
    """Append-only writer over ``cv2.VideoWriter``; frames arrive as RGB."""

    def __init__(
        self,
        path: str | Path,
        fps: float,
        width: int,
        height: int,
        codec: str = "mp4v",
    ) -> None:
        self.path = Path(path)
        self.size = (width, height)
        self.frames_written = 0
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = "Cannot create output directory"
            raise EncodeFailure(msg, self.path, exc) from exc
        fourcc = cv2.VideoWriter_fourcc(*codec)
        self._writer = cv2.VideoWriter(str(self.path), fourcc, fps, self.size, True)
        if not self._writer.isOpened():
            msg = "Cannot open video writer"
            raise EncodeFailure(msg, self.path)

    def write(self, canvas_rgb: np.ndarray) -> None:
        h, w = canvas_rgb.shape[:2]
        if (w, h) != self.size:
            msg = f"Frame is {w}x{h}, writer expects {self.size[0]}x{self.size[1]}"
            raise EncodeFailure(msg, self.path)
        self._writer.write(cv2.cvtColor(np.ascontiguousarray(canvas_rgb), cv2.COLOR_RGB2BGR))
        self.frames_written += 1

    def close(self) -> None:
        self._writer.release()

    def __enter__(self) -> VideoSink:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def frame_grid_size(
    source: VideoSource,
    width: int | None = None,
    height: int | None = None,
) -> tuple[int, int]:
    """Target-grid size (in tiles) every frame is resized to."""
    return compute_target_size(source.width, source.height, width, height)


def resize_frame(frame: MatGrid, width: int, height: int) -> MatGrid:
    if (frame.width, frame.height) == (width, height):
        return frame
    return MatGrid(cv2.resize(frame.mat, (width, height), interpolation=cv2.INTER_AREA))


def compose_video(
    index: ColorIndex,
    source: VideoSource,
    sink: VideoSink,
    *,
    width: int | None = None,
    height: int | None = None,
    workers: int | None = None,
    batch_size: int = 4096,
) -> int:
    """Compose every remaining frame of *source* into *sink*.

    Returns:
        Number of frames written.
    """
    index.ensure_not_empty()
    gw, gh = frame_grid_size(source, width, height)
    if gw == 0 or gh == 0:
        msg = f"Video reports no usable frame size ({source.width}x{source.height})"
        raise ValueError(msg)
    t0 = time.perf_counter()
    written = 0

    for frame in source:
        canvas = compose(
            index, resize_frame(frame, gw, gh),
            workers=workers, batch_size=batch_size,
        )
        sink.write(canvas)
        written += 1
        if written % 30 == 0 or written == source.frame_count:
            logger.info("Frame %d/%d", written, source.frame_count)

    logger.info("Wrote %d frame(s) to %s  (%.1f s)", written, sink.path,
                time.perf_counter() - t0)
    return written
