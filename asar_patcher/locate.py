"""
Archive discovery

Finds the application archive on disk for the current platform and derives
the working directory it is unpacked into.
"""

import os
import re
import sys
from pathlib import Path
from typing import Optional, Sequence, Tuple

from asar_patcher import constants
from asar_patcher.config import AppLayout


def current_platform() -> str:
    """Return one of constants.PLATFORMS for the running interpreter."""
    if sys.platform.startswith("win"):
        return constants.PLATFORM_WINDOWS
    if sys.platform == "darwin":
        return constants.PLATFORM_MAC
    return constants.PLATFORM_LINUX


def find_first_existing(candidates: Sequence[str]) -> Optional[str]:
    """Return the first candidate path that exists."""
    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate
    return None


def _version_key(match: "re.Match") -> Tuple[int, ...]:
    return tuple(int(part) for part in match.groups())


def find_latest_windows_archive(install_root: str) -> Optional[str]:
    """
    Find the archive of the newest app-X.Y.Z folder under an install root.

    Versions compare numerically, so app-1.10.0 is newer than app-1.9.0.

    Args:
        install_root: Directory holding one app-X.Y.Z folder per version

    Returns:
        Path to resources/app.asar inside the newest folder, or None
    """
    if not os.path.isdir(install_root):
        return None

    pattern = re.compile(constants.WINDOWS_APP_DIR_PATTERN)
    versions = []
    for item in os.listdir(install_root):
        match = pattern.match(item)
        if match:
            versions.append((_version_key(match), item))
    if not versions:
        return None

    _key, newest = max(versions)
    archive = os.path.join(install_root, newest, *constants.WINDOWS_APP_ARCHIVE.split("/"))
    return archive if os.path.exists(archive) else None


def find_asar(directory: Optional[str] = None, layout: Optional[AppLayout] = None,
              platform: Optional[str] = None) -> Optional[str]:
    """
    Locate the archive to patch.

    Args:
        directory: Working directory; its archive is the same path plus ".asar"
        layout: Per-platform install locations
        platform: Platform override (defaults to the running one)

    Returns:
        Archive path, or None if nothing was found
    """
    if directory:
        return os.path.normpath(directory) + constants.ASAR_EXTENSION

    layout = layout or AppLayout()
    platform = platform or current_platform()
    if platform == constants.PLATFORM_LINUX:
        return find_first_existing(layout.linux)
    if platform == constants.PLATFORM_MAC:
        return find_first_existing(layout.macos)
    if platform == constants.PLATFORM_WINDOWS and layout.windows:
        return find_latest_windows_archive(str(Path.home() / layout.windows))
    return None


def find_dir(archive_path: str) -> str:
    """Return the working directory for an archive: its path without the extension."""
    path = Path(archive_path)
    return str(path.parent / path.stem)
