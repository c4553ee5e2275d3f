"""
Conversion engine interface.

Every engine exposes one coroutine, ``convert``. Awaiting it yields exactly
one outcome: the written output path, or a raised ConversionError.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

from avconvert.models.conversion import ConversionOptions, EngineChoice

logger = logging.getLogger(__name__)

# Receives the fractional progress (0.0-1.0) of the current file
ProgressCallback = Callable[[float], None]


class ConversionEngine(ABC):
    """Base class for conversion backends."""

    choice: EngineChoice

    @property
    def name(self) -> str:
        return self.choice.value

    @abstractmethod
    async def convert(
        self,
        input_path: Path,
        output_path: Path,
        options: ConversionOptions,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Convert one file.

        Args:
            input_path: Source media file
            output_path: Destination file (extension matches options.output_format)
            options: Conversion options for the batch
            progress_callback: Optional per-file progress receiver

        Returns:
            Path of the written output file

        Raises:
            ConversionError: On any failure
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
