"""Click CLI wiring and entry points for vsframes."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, List, Optional, cast

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeRemainingColumn
from rich.table import Table

from src.config_loader import ConfigError, load_config
from src.datatypes import AppConfig
from src.vsframes.api import FrameServer
from src.vsframes.engine import env as engine_env
from src.vsframes.engine.types import ScriptEngine
from src.vsframes.engine.vapoursynth import VapourSynthEngine
from src.vsframes.errors import VSFramesError
from src.vsframes.worker import FrameWorkerPool

logger = logging.getLogger(__name__)

_COMPLETION_POLL_SECONDS = 0.25


def _configure_logging(*, verbose: bool, quiet: bool, no_color: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    handler = RichHandler(
        console=Console(stderr=True, no_color=no_color),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)


def _build_engine(config: AppConfig) -> ScriptEngine:
    """Return the engine used by CLI commands after applying runtime settings."""

    engine_env.configure(search_paths=config.runtime.vapoursynth_python_paths)
    engine = VapourSynthEngine()
    engine.initialize()
    if config.runtime.ram_limit_mb > 0:
        engine_env.set_ram_limit(config.runtime.ram_limit_mb)
    return engine


def _open_server(ctx: click.Context, script_path: Path) -> FrameServer:
    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    config = cast(AppConfig, params["config"])
    try:
        script = script_path.read_bytes()
    except OSError as exc:
        raise click.ClickException(f"Unable to read {script_path}: {exc}") from exc
    pool = FrameWorkerPool(
        max_workers=config.workers.max_workers or None,
        thread_name_prefix=config.workers.thread_name_prefix,
    )
    try:
        return FrameServer(script, str(script_path), engine=_build_engine(config), pool=pool)
    except VSFramesError as exc:
        pool.shutdown()
        raise click.ClickException(str(exc)) from exc


def _close_server(server: FrameServer) -> None:
    try:
        server.close()
    finally:
        server.pool.shutdown()


def _render_info_table(info: Dict[str, Any], script_path: Path, console: Console) -> None:
    fps = info["fps"]
    table = Table(title=str(script_path), show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Width", str(info["width"]))
    table.add_row("Height", str(info["height"]))
    table.add_row("Frames", str(info["numFrames"]))
    table.add_row("FPS", f"{fps['numerator']}/{fps['denominator']}")
    table.add_row("Frame size", f"{info['frameSize']} bytes")
    console.print(table)


def pipe_frames(
    server: FrameServer,
    sink: BinaryIO,
    *,
    start: int,
    end: int,
    requests: int,
    on_frame: Optional[Callable[[int], None]] = None,
) -> int:
    """
    Write packed frames ``start..end`` (inclusive) to *sink* in index order.

    At most *requests* fetches are in flight; their buffers are reused once
    written. The first failed fetch stops submission, the remaining fetches
    are drained and the error is raised.

    Returns:
        int: Number of frames written.
    """
    frame_size = server.session.frame_size
    free: List[bytearray] = [bytearray(frame_size) for _ in range(max(requests, 1))]
    ready: Dict[int, bytearray] = {}
    errors: List[BaseException] = []

    def _on_complete(error: Optional[BaseException], frame: int, buffer: Any) -> None:
        if error is not None:
            errors.append(error)
            free.append(buffer)
            return
        ready[frame] = buffer

    next_submit = start
    next_write = start
    while next_write <= end:
        while free and next_submit <= end and not errors:
            server.get_frame(next_submit, free.pop(), _on_complete)
            next_submit += 1
        if errors:
            while server.pool.outstanding:
                server.process_completions(timeout=_COMPLETION_POLL_SECONDS)
            raise errors[0]
        while next_write in ready:
            buffer = ready.pop(next_write)
            sink.write(buffer)
            free.append(buffer)
            if on_frame is not None:
                on_frame(next_write)
            next_write += 1
        if next_write <= end and next_write not in ready:
            server.process_completions(timeout=_COMPLETION_POLL_SECONDS)
    return next_write - start


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to a vsframes TOML config file.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option("-q", "--quiet", is_flag=True, help="Only log warnings and errors.")
@click.option("--no-color", is_flag=True, help="Disable coloured output.")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Optional[Path],
    verbose: bool,
    quiet: bool,
    no_color: bool,
) -> None:
    """Inspect VapourSynth scripts and stream their frames as packed raw bytes."""

    if verbose and quiet:
        raise click.ClickException("Cannot use both --verbose and --quiet.")
    _configure_logging(verbose=verbose, quiet=quiet, no_color=no_color)
    try:
        config = load_config(str(config_path)) if config_path is not None else AppConfig()
    except OSError as exc:
        raise click.ClickException(f"Unable to read config {config_path}: {exc}") from exc
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    params.update({"config": config, "quiet": quiet, "no_color": no_color})


@main.command("info")
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "json_mode", is_flag=True, help="Emit machine-readable clip information.")
@click.pass_context
def info_command(ctx: click.Context, script: Path, json_mode: bool) -> None:
    """Print geometry, timing and packed frame size of SCRIPT's output clip."""

    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    server = _open_server(ctx, script)
    try:
        info = server.get_info()
    finally:
        _close_server(server)
    if json_mode:
        click.echo(json.dumps(info, indent=2))
        return
    _render_info_table(info, script, Console(no_color=bool(params.get("no_color"))))


@main.command("pipe")
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output", type=click.Path(dir_okay=False, allow_dash=True))
@click.option("--start", type=click.IntRange(min=0), default=0, show_default=True, help="First frame.")
@click.option("--end", type=click.IntRange(min=0), default=None, help="Last frame (inclusive).")
@click.option(
    "--requests",
    type=click.IntRange(min=1),
    default=None,
    help="Concurrent frame requests (defaults to [pipe].requests).",
)
@click.pass_context
def pipe_command(
    ctx: click.Context,
    script: Path,
    output: str,
    start: int,
    end: Optional[int],
    requests: Optional[int],
) -> None:
    """Write SCRIPT's frames as packed raw planes to OUTPUT ('-' for stdout)."""

    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    config = cast(AppConfig, params["config"])
    server = _open_server(ctx, script)
    try:
        last = server.session.info.num_frames - 1
        final = last if end is None else end
        if final > last:
            raise click.ClickException(f"--end {final} is beyond the last frame ({last}).")
        if start > final:
            raise click.ClickException(f"--start {start} is after --end {final}.")
        in_flight = requests if requests is not None else config.pipe.requests
        logger.info(
            "Piping frames %d-%d of %s (%d bytes each, %d in flight)",
            start,
            final,
            script,
            server.session.frame_size,
            in_flight,
        )
        progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeRemainingColumn(),
            console=Console(stderr=True, no_color=bool(params.get("no_color"))),
            disable=bool(params.get("quiet")),
            transient=True,
        )
        with progress, click.open_file(output, "wb") as sink:
            task = progress.add_task("Frames", total=final - start + 1)
            written = pipe_frames(
                server,
                cast(BinaryIO, sink),
                start=start,
                end=final,
                requests=in_flight,
                on_frame=lambda _frame: progress.advance(task),
            )
    except VSFramesError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        _close_server(server)
    logger.info("Wrote %d frames to %s", written, output)


cli = main

__all__ = ["cli", "main", "pipe_frames"]
