"""
Cloud job lifecycle model.

    CREATED -> UPLOADING -> UPLOADED -> CONVERTING -> READY -> DOWNLOADED
                     \\___________\\____________\\_________\\-> FAILED

A job never moves backward and FAILED / DOWNLOADED are final.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from avconvert.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class CloudJobState(str, Enum):
    """Local lifecycle state of a remote conversion job."""

    CREATED = "created"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    CONVERTING = "converting"
    READY = "ready"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


_ORDER = [
    CloudJobState.CREATED,
    CloudJobState.UPLOADING,
    CloudJobState.UPLOADED,
    CloudJobState.CONVERTING,
    CloudJobState.READY,
    CloudJobState.DOWNLOADED,
]


@dataclass
class CloudJob:
    """
    One remote conversion.

    Attributes:
        source_path: Local file that was uploaded
        job_id: Identifier assigned by the remote service on upload
        state: Local lifecycle state
        remote_status: Last status string reported by the service
        download_url: Populated once the job is READY
        error: Failure detail when FAILED
    """

    source_path: Path
    job_id: Optional[str] = None
    state: CloudJobState = CloudJobState.CREATED
    remote_status: Optional[str] = None
    download_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.state in (CloudJobState.DOWNLOADED, CloudJobState.FAILED)

    def advance(self, new_state: CloudJobState) -> None:
        """Move to the next lifecycle state.

        Raises:
            InvalidTransitionError: If new_state is not the immediate successor
        """
        if new_state == CloudJobState.FAILED or self.is_terminal:
            raise InvalidTransitionError(self.state.value, new_state.value)

        current_index = _ORDER.index(self.state)
        if _ORDER.index(new_state) != current_index + 1:
            raise InvalidTransitionError(self.state.value, new_state.value)

        self.state = new_state
        self.updated_at = datetime.now(timezone.utc)
        logger.debug(f"Cloud job {self.job_id or '<new>'} -> {new_state.value}")

    def mark_uploaded(self, job_id: str, remote_status: Optional[str] = None) -> None:
        self.job_id = job_id
        self.remote_status = remote_status
        self.advance(CloudJobState.UPLOADED)

    def mark_ready(self, download_url: str) -> None:
        self.download_url = download_url
        self.advance(CloudJobState.READY)

    def fail(self, error: str) -> None:
        """Move to FAILED from any non-terminal state."""
        if self.is_terminal:
            raise InvalidTransitionError(self.state.value, CloudJobState.FAILED.value)
        self.state = CloudJobState.FAILED
        self.error = error
        self.updated_at = datetime.now(timezone.utc)
        logger.debug(f"Cloud job {self.job_id or '<new>'} failed: {error}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "source_path": str(self.source_path),
            "job_id": self.job_id,
            "state": self.state.value,
            "remote_status": self.remote_status,
            "download_url": self.download_url,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
