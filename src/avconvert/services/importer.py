"""
Media file import.

Expands files and folders into a de-duplicated list of supported media
files. Folders are searched recursively.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Set

from avconvert.services.format_catalog import is_supported_input

logger = logging.getLogger(__name__)


def collect_media_files(paths: Iterable[Path]) -> List[Path]:
    """
    Collect supported media files.

    Args:
        paths: Files and/or folders

    Returns:
        Absolute paths in discovery order, duplicates removed
    """
    collected: List[Path] = []
    seen: Set[Path] = set()

    def add(candidate: Path) -> None:
        resolved = candidate.resolve()
        if resolved in seen:
            return
        seen.add(resolved)
        collected.append(resolved)

    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            for child in sorted(path.rglob("*")):
                if child.is_file() and is_supported_input(child):
                    add(child)
        elif path.is_file():
            if is_supported_input(path):
                add(path)
            else:
                logger.warning(f"Skipping unsupported file: {path}")
        else:
            logger.warning(f"Path not found: {path}")

    logger.info(f"Collected {len(collected)} media file(s)")
    return collected
