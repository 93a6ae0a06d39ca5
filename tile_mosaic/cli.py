"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from tile_mosaic.compositor import compose
from tile_mosaic.config import MosaicConfig
from tile_mosaic.dictionary import BuildResult, build_dictionary
from tile_mosaic.errors import MosaicError
from tile_mosaic.image_io import decode, encode, resize_target
from tile_mosaic.video import VideoSink, VideoSource, compose_video, frame_grid_size

app = typer.Typer(
    name="tile-mosaic",
    help="Rebuild an image (or video) out of a folder of smaller images.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
    )


def _fail(exc: Exception) -> typer.Exit:
    console.print(f"[red]{exc}[/red]")
    return typer.Exit(1)


def _report_build(result: BuildResult) -> None:
    console.print(
        f"  [green]✓[/green] {len(result.index)} tiles  "
        f"[dim]decoded={result.decoded}  cached={result.cache_hits}  "
        f"skipped={len(result.failures)}[/dim]"
    )
    for ident, message in result.failures:
        console.print(f"    [yellow]skipped[/yellow] {ident}: [dim]{message}[/dim]")


# Defaults come from MosaicConfig - single source of truth
_DEFAULTS = MosaicConfig()


# -- build command -----------------------------------------------------

@app.command()
def build(
    source: Path = typer.Argument(..., help="Folder of tile images"),
    workers: int | None = typer.Option(
        _DEFAULTS.workers, "--workers", "-j", help="Worker threads (default: CPU count)",
    ),
    use_cache: bool = typer.Option(
        _DEFAULTS.use_cache, "--cache/--no-cache", help="Read/write the colour cache",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Compute and cache the representative colour of every tile in SOURCE."""
    _setup_logging(verbose)
    console.print("Loading dictionary...")
    try:
        result = build_dictionary(
            source,
            workers=workers,
            chunk_count=_DEFAULTS.chunk_count,
            use_cache=use_cache,
            extensions=_DEFAULTS.SUPPORTED_EXTENSIONS,
            cache_filename=_DEFAULTS.cache_filename,
        )
    except (MosaicError, ValueError) as exc:
        raise _fail(exc) from exc
    _report_build(result)
    if result.cache_file is not None:
        console.print(f"  Cache written to {result.cache_file}")


# -- compose command ---------------------------------------------------

@app.command(name="compose")
def compose_command(
    target: Path = typer.Argument(..., help="Path to the target image (or video)"),
    source: Path = typer.Argument(..., help="Folder of tile images"),
    output: Path | None = typer.Argument(
        None, help="Output file [default: output.png, or output.mp4 with --video]",
    ),
    width: int | None = typer.Option(
        _DEFAULTS.width, "--width", "-w", help="Resize the target to this many tiles wide",
    ),
    height: int | None = typer.Option(
        _DEFAULTS.height, "--height", "-h", help="Resize the target to this many tiles high",
    ),
    tile_size: int = typer.Option(
        _DEFAULTS.tile_size, "--pixel-width", "-p", min=1, help="Tile side length in pixels",
    ),
    color_space: str = typer.Option(
        _DEFAULTS.color_space, "--color-space", help="'lab' or 'rgb'",
    ),
    video: bool = typer.Option(False, "--video", help="Treat TARGET as a video"),
    workers: int | None = typer.Option(
        _DEFAULTS.workers, "--workers", "-j", help="Worker threads (default: CPU count)",
    ),
    use_cache: bool = typer.Option(
        _DEFAULTS.use_cache, "--cache/--no-cache", help="Read/write the colour cache",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Rebuild TARGET out of the tiles in SOURCE and save it to OUTPUT."""
    _setup_logging(verbose)
    logger = logging.getLogger("tile_mosaic")
    if output is None:
        output = _DEFAULTS.video_output if video else _DEFAULTS.output

    console.print(Panel.fit(
        f"[bold]TILE MOSAIC[/bold]\n"
        f"Target: {target.name}  |  Tiles: {source}\n"
        f"Tile size: {tile_size}px  |  Colour space: {color_space}",
        border_style="cyan",
    ))
    t_total = time.perf_counter()

    try:
        console.print("Loading dictionary...")
        result = build_dictionary(
            source, (tile_size, tile_size),
            color_space=color_space,
            workers=workers,
            chunk_count=_DEFAULTS.chunk_count,
            use_cache=use_cache,
            extensions=_DEFAULTS.SUPPORTED_EXTENSIONS,
            cache_filename=_DEFAULTS.cache_filename,
        )
        _report_build(result)
        index = result.index
        index.ensure_not_empty()

        if video:
            with VideoSource(target) as src:
                gw, gh = frame_grid_size(src, width, height)
                logger.info("Video is %dx%d, %d frames at %.1f fps",
                            src.width, src.height, src.frame_count, src.fps)
                with VideoSink(output, src.fps, gw * tile_size, gh * tile_size,
                               _DEFAULTS.video_codec) as sink:
                    frames = compose_video(
                        index, src, sink,
                        width=width, height=height, workers=workers,
                        batch_size=_DEFAULTS.batch_size,
                    )
            summary = f"{frames} frames, {gw * tile_size}x{gh * tile_size}"
        else:
            grid = resize_target(decode(target), width, height)
            logger.info("Loaded image is %dx%d", grid.width, grid.height)
            console.print("Processing...")
            canvas = compose(index, grid, workers=workers, batch_size=_DEFAULTS.batch_size)
            console.print("Saving...")
            encode(canvas, output)
            summary = f"{canvas.shape[1]}x{canvas.shape[0]}"
    except (MosaicError, ValueError) as exc:
        raise _fail(exc) from exc

    elapsed = time.perf_counter() - t_total
    console.print(
        f"[green]✓[/green] Saved to {output}  "
        f"[dim]{summary}  time={elapsed:.1f}s[/dim]"
    )


if __name__ == "__main__":
    app()
