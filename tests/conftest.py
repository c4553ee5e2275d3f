"""
Shared fixtures for avconvert tests.
"""

from pathlib import Path
from typing import List, Optional

import pytest

from avconvert.errors import ConversionError
from avconvert.models.conversion import ConversionOptions, EngineChoice
from avconvert.services.engines.base import ConversionEngine


class FakeEngine(ConversionEngine):
    """Engine that records calls and succeeds or raises a preset error."""

    def __init__(self, choice: EngineChoice, error: Optional[ConversionError] = None, on_convert=None):
        self.choice = choice
        self.error = error
        self.on_convert = on_convert
        self.calls: List[Path] = []

    async def convert(self, input_path, output_path, options, progress_callback=None):
        self.calls.append(Path(input_path))
        if self.on_convert is not None:
            await self.on_convert(Path(input_path))
        if self.error is not None:
            raise self.error
        if progress_callback:
            progress_callback(0.5)
            progress_callback(1.0)
        Path(output_path).write_bytes(b"converted")
        return Path(output_path)


@pytest.fixture
def make_engine():
    return FakeEngine


@pytest.fixture
def media_files(tmp_path: Path) -> List[Path]:
    """Two fake source files."""
    files = []
    for name in ("a.wav", "b.wav"):
        path = tmp_path / name
        path.write_bytes(b"RIFF" + b"\x00" * 64)
        files.append(path)
    return files


@pytest.fixture
def mp3_options() -> ConversionOptions:
    return ConversionOptions(output_format="mp3")
