"""
Conversion history store.

Persists completed conversions as a JSON array of
{id, fileName, outputURL, date} records, newest first, capped at a bounded
number of entries. Every save rewrites the whole file atomically (temp file
in the same directory + os.replace) under a lock, so concurrent appends never
interleave or lose records.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from avconvert.models.history import HistoryRecord

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


class HistoryStore:
    """Append-only JSON history of completed conversions."""

    def __init__(self, path: Path, limit: int = DEFAULT_HISTORY_LIMIT):
        """
        Args:
            path: JSON file holding the history array
            limit: Maximum number of most recent records kept
        """
        self.path = Path(path)
        self.limit = limit
        self._lock = threading.Lock()

    def load(self) -> List[HistoryRecord]:
        """
        Load the stored history, newest first.

        A missing or unreadable file yields an empty history.
        """
        with self._lock:
            return self._read()

    def _read(self) -> List[HistoryRecord]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return [HistoryRecord.from_dict(item) for item in data]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Could not read history from {self.path}: {e}")
            return []

    def _write(self, records: List[HistoryRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump([r.to_dict() for r in records], f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def append(
        self, file_name: str, output_path: Path, date: Optional[datetime] = None
    ) -> HistoryRecord:
        """
        Record a completed conversion and persist the history.

        Returns:
            The stored record

        Raises:
            OSError: If the history file cannot be written
        """
        extra = {"date": date} if date is not None else {}
        record = HistoryRecord(file_name=file_name, output_path=Path(output_path), **extra)

        with self._lock:
            records = [record] + self._read()
            self._write(records[: self.limit])

        logger.debug(f"History: {file_name} -> {output_path}")
        return record

    def clear(self) -> None:
        """Remove all history records."""
        with self._lock:
            self._write([])
