"""
External ffmpeg process engine.

Locates an ffmpeg executable, builds its argument vector from
ConversionOptions and runs it with asyncio subprocesses.

Progress:
    ffmpeg reports ``time=HH:MM:SS.ss`` on stderr. The fraction reported is
    min(elapsed / duration, 1.0). The duration comes from an ffprobe metadata
    probe when one is available; otherwise a fixed reference duration is used
    and the fraction is only a rough heuristic (it saturates at 1.0 for any
    file longer than the reference).
"""

import asyncio
import logging
import os
import re
import shutil
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional, Sequence, Set

from avconvert.errors import ProcessError, ToolNotFoundError, UnsupportedConversionError
from avconvert.models.conversion import ConversionOptions, EngineChoice
from avconvert.services import format_catalog, media_info
from avconvert.services.engines.base import ConversionEngine, ProgressCallback

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_PATHS = media_info.FFMPEG_SEARCH_PATHS

TIME_PATTERN = re.compile(r"time=(\d{2}):(\d{2}):(\d{2}(?:\.\d+)?)")

STDERR_TAIL_LINES = 50


def locate_tool(search_paths: Sequence[str] = DEFAULT_SEARCH_PATHS, name: str = "ffmpeg") -> Optional[str]:
    """
    Find the transcoding executable.

    Checks the well-known installation paths first, then PATH.

    Returns:
        Absolute path to the executable, or None
    """
    for candidate in search_paths:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return shutil.which(name)


def parse_elapsed_seconds(line: str) -> Optional[float]:
    """Extract the elapsed time marker from an ffmpeg progress line."""
    match = TIME_PATTERN.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def estimate_progress(elapsed_seconds: float, duration_seconds: float) -> float:
    """Fractional progress, clamped to [0.0, 1.0]."""
    if duration_seconds <= 0:
        return 0.0
    return max(0.0, min(elapsed_seconds / duration_seconds, 1.0))


def build_command(input_path: Path, output_path: Path, options: ConversionOptions) -> List[str]:
    """
    Build the ffmpeg argument vector (without the executable).

    Raises:
        UnsupportedConversionError: If the output extension has no codec mapping
    """
    codec = format_catalog.codec_for(options.output_format)
    if codec is None:
        raise UnsupportedConversionError(options.output_format, EngineChoice.SHELL.value)

    attach_cover = options.cover_art is not None and codec.supports_cover_art
    if options.cover_art is not None and not attach_cover:
        logger.warning(f"Cover art is not supported for {options.output_format} output, skipping")

    args = ["-nostdin", "-y", "-i", str(input_path)]
    if attach_cover:
        args += ["-i", str(options.cover_art)]

    if codec.is_video:
        args += ["-c:v", codec.video_codec]
    args += ["-c:a", codec.audio_codec]
    if codec.uses_audio_bitrate and options.audio_bitrate:
        args += ["-b:a", options.audio_bitrate]

    if options.sample_rate:
        args += ["-ar", str(options.sample_rate)]
    if options.channels:
        args += ["-ac", str(options.channels)]

    if codec.is_video:
        if options.video_resolution:
            args += ["-s", options.video_resolution]
        if options.video_bitrate:
            args += ["-b:v", options.video_bitrate]
    elif not attach_cover:
        args += ["-vn"]

    for key, value in options.metadata:
        args += ["-metadata", f"{key}={value}"]

    if attach_cover:
        if codec.is_video:
            args += ["-map", "0", "-map", "1", "-c:v:1", "copy", "-disposition:v:1", "attached_pic"]
        else:
            args += ["-map", "0:a", "-map", "1:v", "-c:v", "copy", "-disposition:v:0", "attached_pic"]

    args.append(str(output_path))
    return args


class ShellTranscodeEngine(ConversionEngine):
    """Runs the external ffmpeg binary."""

    choice = EngineChoice.SHELL

    def __init__(
        self,
        search_paths: Sequence[str] = DEFAULT_SEARCH_PATHS,
        reference_duration: float = 60.0,
        probe_duration: bool = True,
    ):
        """
        Args:
            search_paths: Well-known executable locations checked before PATH
            reference_duration: Duration assumed when the probe is unavailable
            probe_duration: Probe the real media duration with ffprobe
        """
        self.search_paths = tuple(search_paths)
        self.reference_duration = reference_duration
        self.probe_duration = probe_duration
        self._active: Set[asyncio.subprocess.Process] = set()

    @property
    def active_processes(self) -> int:
        """Number of ffmpeg processes currently running."""
        return sum(1 for p in self._active if p.returncode is None)

    def find_tool(self) -> str:
        """
        Raises:
            ToolNotFoundError: If ffmpeg cannot be located
        """
        tool = locate_tool(self.search_paths)
        if tool is None:
            raise ToolNotFoundError("ffmpeg")
        return tool

    async def media_duration(self, input_path: Path, tool_path: str) -> float:
        """Duration used for progress estimation."""
        if self.probe_duration:
            ffprobe = media_info.ffprobe_for(tool_path)
            loop = asyncio.get_running_loop()
            info = await loop.run_in_executor(None, media_info.analyze, input_path, ffprobe)
            if info.duration > 0:
                return info.duration

        logger.debug(
            f"Using reference duration {self.reference_duration}s for {input_path.name} progress"
        )
        return self.reference_duration

    async def _drain_stderr(
        self,
        stream: asyncio.StreamReader,
        duration: float,
        progress_callback: Optional[ProgressCallback],
        tail: Deque[str],
    ) -> None:
        buffer = ""
        last_progress = 0.0

        def handle(line: str) -> None:
            nonlocal last_progress
            line = line.strip()
            if not line:
                return
            tail.append(line)
            elapsed = parse_elapsed_seconds(line)
            if elapsed is None or progress_callback is None:
                return
            fraction = estimate_progress(elapsed, duration)
            if fraction > last_progress:
                last_progress = fraction
                progress_callback(fraction)

        while True:
            chunk = await stream.read(1024)
            if not chunk:
                break
            buffer += chunk.decode("utf-8", errors="replace")
            # ffmpeg rewrites its status line with carriage returns
            parts = re.split(r"[\r\n]", buffer)
            buffer = parts.pop()
            for part in parts:
                handle(part)
        handle(buffer)

    async def convert(
        self,
        input_path: Path,
        output_path: Path,
        options: ConversionOptions,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        input_path = Path(input_path)
        output_path = Path(output_path)

        tool = self.find_tool()
        args = build_command(input_path, output_path, options)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        duration = await self.media_duration(input_path, tool)
        logger.info(f"Running {tool} for {input_path.name} -> {output_path.name}")
        logger.debug(f"ffmpeg arguments: {args}")

        try:
            process = await asyncio.create_subprocess_exec(
                tool,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError("ffmpeg") from e
        except OSError as e:
            raise ProcessError(-1, str(e)) from e

        self._active.add(process)
        tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        try:
            await self._drain_stderr(process.stderr, duration, progress_callback, tail)
            exit_code = await process.wait()
        except BaseException:
            # Never leave ffmpeg writing output_path after convert() gives up
            if process.returncode is None:
                logger.warning(f"Stopping ffmpeg for {input_path.name}")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            raise
        finally:
            self._active.discard(process)

        if exit_code != 0:
            raise ProcessError(exit_code, "\n".join(tail))

        if progress_callback:
            progress_callback(1.0)

        logger.info(f"Conversion complete: {output_path}")
        return output_path
