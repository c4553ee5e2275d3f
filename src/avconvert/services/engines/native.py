"""
Native preset export engine.

Exports through a fixed table of presets, the way a platform media export
session does: each supported output type maps to one preset with fixed
codec/bitrate/frame-size choices and the user's audio/video knobs are not
applied. Output types without a preset fail with UnsupportedConversionError
before any work starts.

The export itself runs through ffmpeg-python in the default executor so the
event loop is never blocked.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import ffmpeg
from ffmpeg import Error as FFmpegError

from avconvert.errors import ExportFailedError, UnsupportedConversionError
from avconvert.models.conversion import ConversionOptions, EngineChoice
from avconvert.services.engines.base import ConversionEngine, ProgressCallback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportPreset:
    """Fixed export settings for one output type."""

    name: str
    container: str
    audio_codec: str
    audio_bitrate: Optional[str] = None
    video_codec: Optional[str] = None
    frame_size: Optional[str] = None


NATIVE_PRESETS: Dict[str, ExportPreset] = {
    "m4a": ExportPreset("AppleM4A", "ipod", "aac", "256k"),
    # AAC is written in an M4A container
    "aac": ExportPreset("AppleM4A", "ipod", "aac", "256k"),
    "wav": ExportPreset("PassthroughPCM", "wav", "pcm_s16le"),
    "mp4": ExportPreset("1280x720", "mp4", "aac", "160k", "libx264", "1280x720"),
    "mov": ExportPreset("1280x720", "mov", "aac", "160k", "libx264", "1280x720"),
}


class NativeFrameworkEngine(ConversionEngine):
    """Preset-based export engine."""

    choice = EngineChoice.NATIVE

    def __init__(self, ffmpeg_cmd: str = "ffmpeg"):
        self.ffmpeg_cmd = ffmpeg_cmd

    def preset_for(self, format_name: str) -> ExportPreset:
        """
        Get the export preset for an output type.

        Raises:
            UnsupportedConversionError: If no preset maps to the output type
        """
        preset = NATIVE_PRESETS.get(format_name.lower())
        if preset is None:
            raise UnsupportedConversionError(format_name, self.name)
        return preset

    def _build_export(self, input_path: Path, output_path: Path, preset: ExportPreset):
        kwargs: Dict[str, Any] = {"format": preset.container, "acodec": preset.audio_codec}
        if preset.audio_bitrate:
            kwargs["audio_bitrate"] = preset.audio_bitrate
        if preset.video_codec:
            kwargs["vcodec"] = preset.video_codec
            kwargs["s"] = preset.frame_size
        else:
            kwargs["vn"] = None

        stream = ffmpeg.input(str(input_path))
        stream = stream.output(str(output_path), **kwargs)
        return stream.overwrite_output()

    async def convert(
        self,
        input_path: Path,
        output_path: Path,
        options: ConversionOptions,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        input_path = Path(input_path)
        output_path = Path(output_path)
        preset = self.preset_for(options.output_format)

        if not input_path.exists():
            raise ExportFailedError(f"Source file not found: {input_path}")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Exporting {input_path.name} with preset {preset.name} -> {output_path}")

        stream = self._build_export(input_path, output_path, preset)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None, functools.partial(stream.run, cmd=self.ffmpeg_cmd, quiet=True)
            )
        except FFmpegError as e:
            stderr = (e.stderr or b"").decode("utf-8", errors="replace").strip()
            detail = stderr.splitlines()[-1] if stderr else str(e)
            raise ExportFailedError(detail) from e
        except OSError as e:
            raise ExportFailedError(f"Export session could not start: {e}") from e

        if progress_callback:
            progress_callback(1.0)

        logger.info(f"Export complete: {output_path}")
        return output_path
