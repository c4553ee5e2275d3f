"""
avconvert command line interface.

Usage:
    avconvert convert song.wav clips/ --format mp3 --engine shell
    avconvert convert --project session.json
    avconvert formats
    avconvert info song.wav
    avconvert history --limit 10
    avconvert check-key
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from dotenv import load_dotenv
from tqdm import tqdm

from avconvert import __version__
from avconvert.config import APIKeyNotFoundError, ConverterConfig, get_api_key
from avconvert.models.conversion import BatchEvent, ConversionOptions, EngineChoice, ItemState
from avconvert.models.project import ConversionProject
from avconvert.services import format_catalog, media_info
from avconvert.services.engines import build_cloud_client
from avconvert.services.engines.shell import locate_tool
from avconvert.services.history_store import HistoryStore
from avconvert.services.importer import collect_media_files
from avconvert.services.orchestrator import (
    CancellationToken,
    ConversionOrchestrator,
    failed_events,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str, log_file: Optional[str] = None) -> None:
    """Configure root logging for the CLI."""
    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT, handlers=handlers)


def load_config(config_path: Optional[Path]) -> ConverterConfig:
    base = ConverterConfig.from_yaml(config_path) if config_path else ConverterConfig()
    config = ConverterConfig.from_env(base)
    config.validate()
    return config


@click.group()
@click.version_option(__version__, prog_name="avconvert")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML configuration file",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool):
    """Convert audio/video files with native, ffmpeg or cloud engines."""
    load_dotenv()
    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.ClickException(str(e))
    setup_logging("DEBUG" if verbose else config.log_level, config.log_file)
    ctx.obj = config


@cli.command()
@click.argument("inputs", nargs=-1, type=click.Path(exists=True, path_type=Path))
@click.option("--format", "-f", "output_format", default=None, help="Output format (e.g. mp3, m4a, mp4)")
@click.option(
    "--engine",
    "-e",
    type=click.Choice([c.value for c in EngineChoice]),
    default=None,
    help="Primary conversion engine",
)
@click.option("--output-dir", "-o", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.option("--bitrate", "audio_bitrate", default=None, help="Audio bitrate (e.g. 192k)")
@click.option("--sample-rate", type=int, default=None, help="Sample rate in Hz")
@click.option("--channels", type=int, default=None, help="Audio channel count")
@click.option("--resolution", "video_resolution", default=None, help="Video size WIDTHxHEIGHT")
@click.option("--video-bitrate", default=None, help="Video bitrate (e.g. 2M)")
@click.option("--title", default=None)
@click.option("--artist", default=None)
@click.option("--album", default=None)
@click.option("--cover-art", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None)
@click.option(
    "--project",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Load files and settings from a saved project",
)
@click.option("--save-project", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.option("--fallback/--no-fallback", default=None, help="Retry native failures with ffmpeg")
@click.pass_obj
def convert(
    config: ConverterConfig,
    inputs: Tuple[Path, ...],
    output_format: Optional[str],
    engine: Optional[str],
    output_dir: Optional[Path],
    audio_bitrate: Optional[str],
    sample_rate: Optional[int],
    channels: Optional[int],
    video_resolution: Optional[str],
    video_bitrate: Optional[str],
    title: Optional[str],
    artist: Optional[str],
    album: Optional[str],
    cover_art: Optional[Path],
    project: Optional[Path],
    save_project: Optional[Path],
    fallback: Optional[bool],
):
    """
    Convert INPUTS (files or folders) to the target format.

    Examples:
        avconvert convert song.wav --format mp3
        avconvert convert videos/ --format mp4 --engine shell --resolution 1920x1080
        avconvert convert talk.m4a --format mp3 --engine cloud
    """
    if project:
        doc = ConversionProject.load(project)
    else:
        doc = ConversionProject(
            selected_format=config.default_format,
            selected_engine=config.default_engine,
            output_folder_path=config.output_dir,
            audio_bitrate=config.audio_bitrate,
            sample_rate=str(config.sample_rate),
            audio_channels=config.channels,
            video_resolution=config.video_resolution,
            video_bitrate=config.video_bitrate,
        )

    overrides = {
        "selected_format": output_format,
        "selected_engine": engine,
        "output_folder_path": str(output_dir) if output_dir else None,
        "audio_bitrate": audio_bitrate,
        "sample_rate": str(sample_rate) if sample_rate else None,
        "audio_channels": channels,
        "video_resolution": video_resolution,
        "video_bitrate": video_bitrate,
        "metadata_title": title,
        "metadata_artist": artist,
        "metadata_album": album,
    }
    doc = doc.model_copy(update={k: v for k, v in overrides.items() if v is not None})
    doc = ConversionProject.model_validate(doc.model_dump())

    files = collect_media_files(list(inputs) or doc.input_paths)
    doc = doc.model_copy(update={"imported_files": [str(f) for f in files]})

    if not format_catalog.is_valid_format(doc.selected_format):
        raise click.BadParameter(
            f"'{doc.selected_format}' is not supported. "
            f"Choose from: {', '.join(sorted(format_catalog.supported_output_formats()))}",
            param_hint="--format",
        )
    if not files:
        raise click.ClickException("No supported media files to convert")

    if save_project:
        doc.save(save_project)

    if fallback is not None:
        config.auto_fallback = fallback

    options = doc.to_options(cover_art=cover_art)
    out_dir = Path(doc.output_folder_path) if doc.output_folder_path else None

    summary = asyncio.run(_run_batch(config, files, doc.selected_engine, options, out_dir))

    for event in failed_events(summary):
        click.echo(f"FAILED  {event.source_path.name}: [{event.error_code}] {event.error_message}", err=True)
    click.echo(
        f"Done: {summary.succeeded} succeeded, {summary.failed} failed, "
        f"{summary.cancelled} cancelled"
    )
    if summary.has_errors or summary.cancelled:
        sys.exit(1)


async def _run_batch(config, files, engine: EngineChoice, options: ConversionOptions, output_dir):
    cloud_client = None
    if engine == EngineChoice.CLOUD:
        try:
            cloud_client = build_cloud_client(config, get_api_key())
        except APIKeyNotFoundError as e:
            raise click.ClickException(e.message)

    orchestrator = ConversionOrchestrator.from_config(config, cloud_client=cloud_client)
    token = CancellationToken()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl+C will abort immediately")

    with tqdm(total=len(files), desc=f"Converting ({engine.value})", unit="file") as pbar:

        def on_event(event: BatchEvent) -> None:
            pbar.update(1)
            if event.state == ItemState.SUCCEEDED:
                pbar.set_postfix_str(event.source_path.name)

        try:
            return await orchestrator.convert_paths(
                files,
                engine,
                options,
                output_dir=output_dir,
                cancel_token=token,
                on_event=on_event,
            )
        finally:
            if cloud_client is not None:
                await cloud_client.aclose()


@cli.command()
def formats():
    """List output formats and the engines that produce them."""
    for fmt in sorted(format_catalog.supported_output_formats()):
        engines = sorted(e.value for e in format_catalog.engines_for(fmt))
        click.echo(f"{fmt:<6} {', '.join(engines)}")


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def info(config: ConverterConfig, files: Tuple[Path, ...]):
    """Show duration and stream layout of media FILES."""
    ffprobe = media_info.ffprobe_for(locate_tool(config.ffmpeg_paths))
    for path in files:
        summary = media_info.analyze(path, ffprobe)
        click.echo(f"{path.name}")
        click.echo(f"  format:   {summary.format_name or 'unknown'}")
        click.echo(f"  duration: {summary.duration:.2f}s")
        click.echo(f"  audio:    {'yes' if summary.has_audio else 'no'} ({summary.audio_streams} stream(s))")
        click.echo(f"  video:    {'yes' if summary.has_video else 'no'} ({summary.video_streams} stream(s))")
        if summary.sample_rate:
            click.echo(f"  sample rate: {summary.sample_rate} Hz, {summary.channels or '?'} channel(s)")


@cli.command()
@click.option("--limit", "-n", type=int, default=None, help="Show at most N records")
@click.option("--clear", is_flag=True, default=False, help="Delete all history records")
@click.pass_obj
def history(config: ConverterConfig, limit: Optional[int], clear: bool):
    """Show recent conversions."""
    store = HistoryStore(Path(config.history_path), limit=config.history_limit)
    if clear:
        store.clear()
        click.echo("History cleared")
        return

    records = store.load()
    if limit is not None:
        records = records[:limit]
    if not records:
        click.echo("No conversions yet")
        return
    for record in records:
        click.echo(f"{record.date.astimezone():%Y-%m-%d %H:%M}  {record.file_name} -> {record.output_path}")


@cli.command("check-key")
@click.pass_obj
def check_key(config: ConverterConfig):
    """Verify the cloud API key."""
    try:
        api_key = get_api_key()
    except APIKeyNotFoundError as e:
        raise click.ClickException(e.message)

    async def _check() -> bool:
        async with build_cloud_client(config, api_key) as client:
            return await client.verify_api_key()

    if asyncio.run(_check()):
        click.echo("Success: API key is valid")
    else:
        raise click.ClickException("Invalid API key")


if __name__ == "__main__":
    cli()
