"""
Format Catalog

Static mapping of supported input/output formats to the engines that can
produce them, plus the codec choices used when building ffmpeg commands.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Set

from avconvert.models.conversion import EngineChoice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodecSpec:
    """Codec selection for one output extension."""

    audio_codec: str
    uses_audio_bitrate: bool = True
    video_codec: Optional[str] = None
    supports_cover_art: bool = False

    @property
    def is_video(self) -> bool:
        return self.video_codec is not None


# Codec choice by output extension
CODECS: Dict[str, CodecSpec] = {
    "mp3": CodecSpec("libmp3lame", supports_cover_art=True),
    "m4a": CodecSpec("aac", supports_cover_art=True),
    "aac": CodecSpec("aac"),
    "wav": CodecSpec("pcm_s16le", uses_audio_bitrate=False),
    "flac": CodecSpec("flac", uses_audio_bitrate=False, supports_cover_art=True),
    "ogg": CodecSpec("libvorbis"),
    "opus": CodecSpec("libopus"),
    "wma": CodecSpec("wmav2"),
    "mp4": CodecSpec("aac", video_codec="libx264", supports_cover_art=True),
    "mov": CodecSpec("aac", video_codec="libx264"),
    "mkv": CodecSpec("aac", video_codec="libx264"),
    "avi": CodecSpec("libmp3lame", video_codec="mpeg4"),
}

# Output formats each engine can produce
ENGINE_FORMATS: Dict[EngineChoice, FrozenSet[str]] = {
    EngineChoice.NATIVE: frozenset({"m4a", "aac", "wav", "mp4", "mov"}),
    EngineChoice.SHELL: frozenset(CODECS),
    EngineChoice.CLOUD: frozenset({"mp3", "m4a", "wav", "flac", "aac", "ogg", "wma", "opus"}),
}

SUPPORTED_INPUT_EXTENSIONS: FrozenSet[str] = frozenset(
    {"mp3", "m4a", "wav", "aac", "mp4", "mov", "mkv", "avi", "flac", "ogg"}
)


def _normalize(format_name: str) -> str:
    return format_name.strip().lower().lstrip(".")


def supported_output_formats() -> Set[str]:
    """All output formats at least one engine can produce."""
    formats: Set[str] = set()
    for engine_formats in ENGINE_FORMATS.values():
        formats |= engine_formats
    return formats


def is_valid_format(format_name: str) -> bool:
    """
    Check if an output format is supported.

    Args:
        format_name: File extension (with or without dot, any case)

    Returns:
        True if format is supported
    """
    if not format_name:
        return False
    return _normalize(format_name) in supported_output_formats()


def supports(engine: EngineChoice, format_name: str) -> bool:
    """Check whether an engine can produce the given output format."""
    return _normalize(format_name) in ENGINE_FORMATS[EngineChoice(engine)]


def engines_for(format_name: str) -> Set[EngineChoice]:
    """Engines able to produce the given output format."""
    fmt = _normalize(format_name)
    return {engine for engine, formats in ENGINE_FORMATS.items() if fmt in formats}


def codec_for(format_name: str) -> Optional[CodecSpec]:
    """Codec selection for an output format, None when unknown."""
    return CODECS.get(_normalize(format_name))


def is_video_format(format_name: str) -> bool:
    spec = codec_for(format_name)
    return spec is not None and spec.is_video


def is_supported_input(path: Path) -> bool:
    """Check whether a file has a supported media extension."""
    return Path(path).suffix.lstrip(".").lower() in SUPPORTED_INPUT_EXTENSIONS
