"""
Utility functions for archive extraction and patching
"""

import os
import re
import sys
from pathlib import Path
from typing import List, Tuple

from asar_patcher.errors import UnsafePath

DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


# Global symbol variables (set by setup_symbols)
SYMBOL_CHECK = '[OK]'
SYMBOL_ERROR = '[ERROR]'
SYMBOL_WARNING = '[WARNING]'
SYMBOL_INFO = '[INFO]'


def detect_unicode_support(force_ascii=False):
    """
    Detect if the terminal supports Unicode output.

    Args:
        force_ascii: If True, force ASCII mode regardless of terminal support

    Returns:
        True if Unicode is supported, False otherwise
    """
    if force_ascii:
        return False

    if os.environ.get('FORCE_ASCII', '').lower() in ('1', 'true', 'yes'):
        return False

    try:
        encoding = sys.stdout.encoding or ''
        if encoding.lower() in ('utf-8', 'utf8'):
            return True

        '✓'.encode(encoding)
        return True
    except (UnicodeEncodeError, AttributeError, LookupError):
        return False


def setup_symbols(force_ascii=False):
    """
    Set up symbol variables based on Unicode support.

    Args:
        force_ascii: If True, force ASCII mode
    """
    global SYMBOL_CHECK, SYMBOL_ERROR, SYMBOL_WARNING, SYMBOL_INFO

    if detect_unicode_support(force_ascii):
        SYMBOL_CHECK = '✓'
        SYMBOL_ERROR = '✗'
        SYMBOL_WARNING = '⚠'
        SYMBOL_INFO = 'ℹ'
    else:
        SYMBOL_CHECK = '[OK]'
        SYMBOL_ERROR = '[ERROR]'
        SYMBOL_WARNING = '[WARNING]'
        SYMBOL_INFO = '[INFO]'


def normalize_relative_path(path: str) -> str:
    """
    Normalize an archive path to forward slashes without leading separators.

    Args:
        path: Path as listed by the archive (may start with "/" or use backslashes)

    Returns:
        Relative path such as "src/main/index.js"
    """
    return path.replace("\\", "/").lstrip("/")


def split_path(path: str) -> List[str]:
    """Split a path on either separator, dropping empty segments."""
    return [part for part in path.replace("\\", "/").split("/") if part]


def safe_path_parts(path: str) -> List[str]:
    """
    Split a relative path into segments that stay below its root.

    Empty and "." segments are dropped.

    Args:
        path: Relative path using either separator

    Returns:
        List of path segments

    Raises:
        UnsafePath: If the path is empty, absolute or contains ".."
    """
    normalized = path.replace("\\", "/")
    if normalized.startswith("/") or DRIVE_PREFIX.match(normalized):
        raise UnsafePath(path, "absolute paths are not allowed")

    parts = [part for part in normalized.split("/") if part and part != "."]
    if ".." in parts:
        raise UnsafePath(path, "path traversal is not allowed")
    if not parts:
        raise UnsafePath(path, "empty path")
    return parts


def get_readable_size(size_bytes: int) -> Tuple[float, str]:
    """
    Convert bytes to human-readable size.

    Args:
        size_bytes: Size in bytes

    Returns:
        Tuple of (size value, unit string)
    """
    power = 1024
    n = 0
    labels = {0: "B", 1: "KB", 2: "MB", 3: "GB", 4: "TB"}

    size = float(size_bytes)
    while size > power and n < 4:
        size /= power
        n += 1

    return round(size, 2), labels[n]


def format_size(size_bytes: int) -> str:
    """Format bytes as human-readable string (e.g., "1.5 MB")."""
    size, unit = get_readable_size(size_bytes)
    return f"{size} {unit}"


def ensure_directory(path: str) -> None:
    """
    Ensure directory exists, creating it if necessary.

    Creating a directory that already exists is not an error.

    Args:
        path: Directory path to create
    """
    Path(path).mkdir(parents=True, exist_ok=True)

