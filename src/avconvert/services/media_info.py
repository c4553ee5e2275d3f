"""
Media file analysis.

Summarizes an imported file with ffprobe: duration, which kinds of streams
it carries and how many. Embedded cover pictures are not counted as video.
"""

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import ffmpeg

logger = logging.getLogger(__name__)

# Well-known ffmpeg install locations, checked before PATH
FFMPEG_SEARCH_PATHS = (
    "/usr/local/bin/ffmpeg",
    "/opt/homebrew/bin/ffmpeg",
    "/usr/bin/ffmpeg",
)


@dataclass
class MediaInfo:
    """Stream summary of one media file."""

    path: Path
    duration: float = 0.0
    audio_streams: int = 0
    video_streams: int = 0
    format_name: Optional[str] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None

    @property
    def has_audio(self) -> bool:
        return self.audio_streams > 0

    @property
    def has_video(self) -> bool:
        return self.video_streams > 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["path"] = str(self.path)
        data["has_audio"] = self.has_audio
        data["has_video"] = self.has_video
        return data


def ffprobe_for(ffmpeg_path: Optional[str]) -> str:
    """ffprobe installed beside the given ffmpeg, else the one on PATH."""
    if ffmpeg_path:
        candidate = Path(ffmpeg_path).with_name("ffprobe")
        if os.path.isfile(candidate):
            return str(candidate)
    return "ffprobe"


def analyze(path: Path, ffprobe_cmd: str = "ffprobe") -> MediaInfo:
    """
    Probe a media file.

    Args:
        path: Media file
        ffprobe_cmd: ffprobe executable

    Returns:
        MediaInfo; an empty summary when ffprobe fails
    """
    path = Path(path)
    info = MediaInfo(path=path)
    try:
        report = ffmpeg.probe(str(path), cmd=ffprobe_cmd)
    except (ffmpeg.Error, OSError, ValueError) as e:
        logger.warning(f"Could not analyze {path.name}: {e}")
        return info

    fmt = report.get("format", {})
    info.format_name = fmt.get("format_name")
    info.duration = float(fmt.get("duration", 0) or 0)

    for stream in report.get("streams", []):
        codec_type = stream.get("codec_type")
        if codec_type == "audio":
            info.audio_streams += 1
            if info.sample_rate is None and stream.get("sample_rate"):
                info.sample_rate = int(stream["sample_rate"])
                info.channels = int(stream.get("channels", 0)) or None
            if not info.duration:
                info.duration = float(stream.get("duration", 0) or 0)
        elif codec_type == "video":
            if stream.get("disposition", {}).get("attached_pic"):
                continue
            info.video_streams += 1

    return info
