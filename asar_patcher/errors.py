"""
Exception hierarchy for archive extraction and patch application

Fatal errors propagate to the caller unchanged. The recoverable kinds
(MissingExternalFile, EntryExtractionFailed) are created by the extraction
engine, logged as warnings and counted, never raised out of it.
"""

import errno
from enum import Enum
from typing import Dict, Optional


class AsarPatcherError(Exception):
    """Base class for every error raised by asar_patcher."""

    # Set by the feature runner when the error stopped a feature
    feature = None


# Archive errors

class HeaderCorrupt(AsarPatcherError):
    """Raised when the archive metadata region cannot be decoded."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Corrupt archive header in {path}: {reason}")
        self.path = path
        self.reason = reason


class EntryNotFound(AsarPatcherError, KeyError):
    """Raised when a path is not present in the archive header."""

    def __init__(self, archive_path: str, entry_path: str):
        super().__init__(f"{entry_path} not found in {archive_path}")
        self.archive_path = archive_path
        self.entry_path = entry_path

    def __str__(self) -> str:
        return self.args[0]


class MissingUnpackedFile(FileNotFoundError):
    """
    Raised by the codec when an entry flagged ``unpacked`` has no file in the
    sibling ``.unpacked`` directory.

    Subclasses FileNotFoundError so ``errno``/``filename`` carry the same
    information a plain I/O failure would.
    """

    def __init__(self, entry_path: str, filename: str):
        super().__init__(errno.ENOENT, f"Unpacked file missing for {entry_path}", filename)
        self.entry_path = entry_path


class BulkExtractionFailed(AsarPatcherError):
    """Raised when bulk extraction fails for a reason other than missing unpacked files."""

    def __init__(self, archive_path: str, cause: BaseException):
        super().__init__(f"Failed to extract {archive_path}: {cause}")
        self.path = archive_path
        self.cause = cause


class MissingExternalFile(AsarPatcherError):
    """An unpacked entry is absent on disk after pre-seeding. Recovered."""

    def __init__(self, entry_path: str):
        super().__init__(f"Skipping missing unpacked file: {entry_path}")
        self.path = entry_path


class EntryExtractionFailed(AsarPatcherError):
    """A single entry could not be read or written during manual extraction. Recovered."""

    def __init__(self, entry_path: str, cause: BaseException):
        super().__init__(f"Failed to extract {entry_path}: {cause}")
        self.path = entry_path
        self.cause = cause


class UnsafePath(AsarPatcherError, ValueError):
    """Raised when an archive entry or patch path would resolve outside its root."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Unsafe path {path!r}: {reason}")
        self.path = path
        self.reason = reason


class ArchiveNotFound(AsarPatcherError):
    """Raised when no archive could be located on disk."""
    pass


# Patch errors

class DiffParseError(AsarPatcherError):
    """Raised when unified-diff text cannot be parsed."""
    pass


class SourceFileMissing(AsarPatcherError):
    """Raised when the file a diff patch targets does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Can't patch {path}: file not found")
        self.path = path


class PatchDidNotApply(AsarPatcherError):
    """Raised when a hunk's context cannot be located in the source text."""

    def __init__(self, path: str, hunk_index: Optional[int] = None):
        detail = f" (hunk {hunk_index + 1})" if hunk_index is not None else ""
        super().__init__(f"Can't patch {path}{detail}")
        self.path = path
        self.hunk_index = hunk_index


class AlreadyPatched(AsarPatcherError):
    """Raised when a pattern patch detects its own prior application."""

    def __init__(self, path: str):
        super().__init__(f"{path} is already patched")
        self.path = path


class PatternNotFound(AsarPatcherError):
    """Raised when a pattern patch's anchor/payload is absent and no marker was found."""

    def __init__(self, path: str):
        super().__init__(f"Can't patch {path}, pattern match failed")
        self.path = path


class UnknownFeature(AsarPatcherError):
    """Raised when no patch definition exists for a feature identifier."""

    def __init__(self, feature: str):
        super().__init__(f"No patch definition for feature '{feature}'")
        self.feature = feature


class PatchSourceError(AsarPatcherError):
    """Raised when a patch definition exists but cannot be loaded."""
    pass


# Copy-boundary classification

class CopyErrorClass(Enum):
    """Classes of OS errors seen while mirroring the unpacked tree."""
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    ACCESS_DENIED = "access_denied"
    OTHER = "other"


# True means skip the entry with a warning, False means abort the copy
COPY_ERROR_POLICY: Dict[CopyErrorClass, bool] = {
    CopyErrorClass.NOT_FOUND: True,
    CopyErrorClass.PERMISSION_DENIED: True,
    CopyErrorClass.ACCESS_DENIED: True,
    CopyErrorClass.OTHER: False,
}


def classify_os_error(error: OSError) -> CopyErrorClass:
    """
    Map an OSError onto a CopyErrorClass.

    EPERM is "permission denied" (operation not permitted), EACCES is
    "access denied" (mode bits or ACLs refuse the access).

    Args:
        error: The error raised by a filesystem call

    Returns:
        The matching CopyErrorClass
    """
    if isinstance(error, FileNotFoundError) or error.errno == errno.ENOENT:
        return CopyErrorClass.NOT_FOUND
    if error.errno == errno.EPERM:
        return CopyErrorClass.PERMISSION_DENIED
    if isinstance(error, PermissionError) or error.errno == errno.EACCES:
        return CopyErrorClass.ACCESS_DENIED
    return CopyErrorClass.OTHER


def is_recoverable_copy_error(error: OSError) -> bool:
    """Return True when the copy policy says the failing entry should be skipped."""
    return COPY_ERROR_POLICY[classify_os_error(error)]
