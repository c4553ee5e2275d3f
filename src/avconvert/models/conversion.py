"""
Conversion data model.

ConvertibleItem tracks one input file through a batch run. Its state only
moves forward: PENDING -> CONVERTING -> one of the terminal states
(SUCCEEDED, FAILED, CANCELLED). A batch that is cancelled before an item
starts may move it straight from PENDING to CANCELLED.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from avconvert.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class ItemState(str, Enum):
    """Lifecycle state of a ConvertibleItem."""

    PENDING = "pending"
    CONVERTING = "converting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemState.SUCCEEDED, ItemState.FAILED, ItemState.CANCELLED)


class EngineChoice(str, Enum):
    """Primary conversion engine for a batch."""

    NATIVE = "native"
    SHELL = "shell"
    CLOUD = "cloud"


_ALLOWED_ITEM_TRANSITIONS = {
    ItemState.PENDING: {ItemState.CONVERTING, ItemState.CANCELLED},
    ItemState.CONVERTING: {ItemState.SUCCEEDED, ItemState.FAILED, ItemState.CANCELLED},
}


@dataclass(frozen=True)
class ConversionOptions:
    """
    Target format and backend knobs for one batch invocation.

    Attributes:
        output_format: Target container/extension (mp3, m4a, wav, mp4, ...)
        audio_bitrate: Audio bitrate in ffmpeg notation (e.g. "192k")
        sample_rate: Audio sample rate in Hz
        channels: Audio channel count
        video_resolution: Video frame size "WIDTHxHEIGHT"
        video_bitrate: Video bitrate in ffmpeg notation (e.g. "2M")
        title: Optional title metadata
        artist: Optional artist metadata
        album: Optional album metadata
        cover_art: Optional image attached as a picture stream
    """

    output_format: str = "mp3"
    audio_bitrate: Optional[str] = "192k"
    sample_rate: Optional[int] = 44100
    channels: Optional[int] = 2
    video_resolution: Optional[str] = "1280x720"
    video_bitrate: Optional[str] = "2M"
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    cover_art: Optional[Path] = None

    def __post_init__(self):
        object.__setattr__(self, "output_format", self.output_format.lower().lstrip("."))

    @property
    def metadata(self) -> List[tuple]:
        """Non-empty (key, value) metadata pairs in title, artist, album order."""
        pairs = [("title", self.title), ("artist", self.artist), ("album", self.album)]
        return [(k, v) for k, v in pairs if v]


@dataclass
class ConvertibleItem:
    """One input file submitted for conversion."""

    source_path: Path
    state: ItemState = ItemState.PENDING
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    output_path: Optional[Path] = None
    engine_used: Optional[EngineChoice] = None

    def __post_init__(self):
        self.source_path = Path(self.source_path)

    @property
    def name(self) -> str:
        return self.source_path.name

    def _move(self, new_state: ItemState) -> None:
        allowed = _ALLOWED_ITEM_TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise InvalidTransitionError(self.state.value, new_state.value)
        self.state = new_state

    def start(self) -> None:
        """Mark as converting."""
        self._move(ItemState.CONVERTING)
        logger.debug(f"Started converting {self.name}")

    def succeed(self, output_path: Path, engine: EngineChoice) -> None:
        """Mark as succeeded."""
        self._move(ItemState.SUCCEEDED)
        self.output_path = Path(output_path)
        self.engine_used = engine

    def fail(self, error_code: str, error_message: str) -> None:
        """Mark as failed.

        Args:
            error_code: Stable error code from the error taxonomy
            error_message: Human-readable detail
        """
        self._move(ItemState.FAILED)
        self.error_code = error_code
        self.error_message = error_message

    def cancel(self) -> None:
        """Mark as cancelled."""
        self._move(ItemState.CANCELLED)


@dataclass
class BatchEvent:
    """Terminal event reported once per item."""

    source_path: Path
    state: ItemState
    output_path: Optional[Path] = None
    engine: Optional[EngineChoice] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    fell_back: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_item(cls, item: ConvertibleItem, fell_back: bool = False) -> "BatchEvent":
        return cls(
            source_path=item.source_path,
            state=item.state,
            output_path=item.output_path,
            engine=item.engine_used,
            error_code=item.error_code,
            error_message=item.error_message,
            fell_back=fell_back,
        )


@dataclass
class BatchSummary:
    """Aggregate outcome of one batch run."""

    total: int
    events: List[BatchEvent] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def _count(self, state: ItemState) -> int:
        return sum(1 for e in self.events if e.state == state)

    @property
    def succeeded(self) -> int:
        return self._count(ItemState.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(ItemState.FAILED)

    @property
    def cancelled(self) -> int:
        return self._count(ItemState.CANCELLED)

    @property
    def completed(self) -> int:
        return len(self.events)

    @property
    def progress(self) -> float:
        """Fraction of items in a terminal state (1.0 for an empty batch)."""
        if self.total == 0:
            return 1.0
        return self.completed / self.total

    @property
    def has_errors(self) -> bool:
        """True when the batch is done with errors."""
        return self.failed > 0

    @property
    def elapsed_seconds(self) -> float:
        if not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
