"""
Conversion history record.

Serialized with the keys of the persisted history schema:
{id, fileName, outputURL, date}.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict
from urllib.parse import unquote, urlparse


@dataclass(frozen=True)
class HistoryRecord:
    """
    One completed conversion.

    Attributes:
        file_name: Source file name
        output_path: Resulting output file
        date: Completion timestamp (UTC)
        id: Unique record identifier
    """

    file_name: str
    output_path: Path
    date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()).upper())

    @property
    def output_url(self) -> str:
        return Path(self.output_path).absolute().as_uri()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "fileName": self.file_name,
            "outputURL": self.output_url,
            "date": self.date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryRecord":
        """Create from dictionary."""
        url = data["outputURL"]
        parsed = urlparse(url)
        output_path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(url)

        date = datetime.fromisoformat(data["date"])
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)

        return cls(
            file_name=data["fileName"],
            output_path=output_path,
            date=date,
            id=data["id"],
        )
