"""
Spotlight-style metadata attributes on output files.

Writes title/artist/album as extended attributes named after the Spotlight
keys. On Linux the names live in the ``user.`` namespace and are written with
os.setxattr; on macOS, where os.setxattr is unavailable, the system ``xattr``
tool is used. Failures are logged and never raised.
"""

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

ATTRIBUTE_NAMES: Dict[str, str] = {
    "title": "com.apple.metadata.kMDItemTitle",
    "artist": "com.apple.metadata.kMDItemArtist",
    "album": "com.apple.metadata.kMDItemAlbum",
}


def attribute_name(key: str) -> str:
    """Platform attribute name for a metadata key."""
    name = ATTRIBUTE_NAMES[key]
    if sys.platform.startswith("linux"):
        return f"user.{name}"
    return name


def set_extended_attribute(path: Path, name: str, value: str) -> bool:
    """
    Set one extended attribute.

    Returns:
        True if the attribute was written
    """
    try:
        if hasattr(os, "setxattr"):
            os.setxattr(str(path), name, value.encode("utf-8"))
            return True

        tool = shutil.which("xattr")
        if tool is None:
            logger.debug("No extended attribute support on this platform")
            return False
        subprocess.run(
            [tool, "-w", name, value, str(path)],
            check=True,
            capture_output=True,
            timeout=10,
        )
        return True
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"Could not set {name} on {Path(path).name}: {e}")
        return False


def apply_metadata_attributes(
    path: Path,
    title: Optional[str] = None,
    artist: Optional[str] = None,
    album: Optional[str] = None,
) -> int:
    """
    Write the non-empty metadata values as extended attributes.

    Returns:
        Number of attributes written
    """
    written = 0
    for key, value in (("title", title), ("artist", artist), ("album", album)):
        if not value:
            continue
        if set_extended_attribute(path, attribute_name(key), value):
            written += 1
    return written
