"""
Saved conversion project.

A project document captures a conversion session (imported files, target
format, engine, output folder and conversion knobs) so it can be reopened
and run again.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from avconvert.models.conversion import ConversionOptions, EngineChoice

logger = logging.getLogger(__name__)


class ConversionProject(BaseModel):
    """Persisted conversion session."""

    model_config = ConfigDict(populate_by_name=True)

    imported_files: List[str] = Field(default_factory=list, alias="importedFiles")
    selected_format: str = Field("mp3", alias="selectedFormat")
    selected_engine: EngineChoice = Field(EngineChoice.NATIVE, alias="selectedEngine")
    output_folder_path: Optional[str] = Field(None, alias="outputFolderPath")
    metadata_title: str = Field("", alias="metadataTitle")
    metadata_artist: str = Field("", alias="metadataArtist")
    metadata_album: str = Field("", alias="metadataAlbum")
    audio_bitrate: str = Field("192k", alias="audioBitrate")
    sample_rate: str = Field("44100", alias="sampleRate")
    audio_channels: int = Field(2, ge=1, alias="audioChannels")
    video_resolution: str = Field("1280x720", alias="videoResolution")
    video_bitrate: str = Field("2M", alias="videoBitrate")

    @field_validator("selected_engine", mode="before")
    @classmethod
    def _normalize_engine(cls, value):
        # Projects written by the desktop app use framework names
        if isinstance(value, str):
            lowered = value.lower()
            if lowered == "avfoundation":
                return EngineChoice.NATIVE
            if lowered == "ffmpeg":
                return EngineChoice.SHELL
            return lowered
        return value

    def to_options(self, cover_art: Optional[Path] = None) -> ConversionOptions:
        """Build the ConversionOptions this project describes."""
        try:
            sample_rate = int(self.sample_rate)
        except ValueError:
            logger.warning(f"Ignoring non-numeric sample rate '{self.sample_rate}'")
            sample_rate = None

        return ConversionOptions(
            output_format=self.selected_format,
            audio_bitrate=self.audio_bitrate or None,
            sample_rate=sample_rate,
            channels=self.audio_channels,
            video_resolution=self.video_resolution or None,
            video_bitrate=self.video_bitrate or None,
            title=self.metadata_title or None,
            artist=self.metadata_artist or None,
            album=self.metadata_album or None,
            cover_art=cover_art,
        )

    @property
    def input_paths(self) -> List[Path]:
        return [Path(p) for p in self.imported_files]

    @classmethod
    def load(cls, path: Path) -> "ConversionProject":
        """Read a project document."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.model_validate(json.load(f))

    def save(self, path: Path) -> None:
        """Write the project document."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json", by_alias=True), f, indent=2)
        logger.info(f"Saved project to {path}")
