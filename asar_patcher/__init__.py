"""
asar_patcher - Unpack, patch and repack Electron asar archives

Extraction tolerates entries whose unpacked files are missing from the
shipped .unpacked directory. Patches are unified diffs or anchored
pattern rules, each applied all-or-nothing per file.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from asar_patcher.errors import (
    AlreadyPatched,
    AsarPatcherError,
    BulkExtractionFailed,
    HeaderCorrupt,
    PatchDidNotApply,
    PatternNotFound,
    SourceFileMissing,
)
from asar_patcher.extraction import copy_unpacked, extract
from asar_patcher.header import lookup, read_header
from asar_patcher.models import ArchiveEntryInfo, ArchiveHeader, FilePatch, PatchOutcome, PatchSpec, PatternRule
from asar_patcher.patcher import Patcher
from asar_patcher.patching import apply_diff_patch, apply_pattern_patch
from asar_patcher.sources import PatchSource

__all__ = [
    "AlreadyPatched",
    "AsarPatcherError",
    "BulkExtractionFailed",
    "HeaderCorrupt",
    "PatchDidNotApply",
    "PatternNotFound",
    "SourceFileMissing",
    "copy_unpacked",
    "extract",
    "lookup",
    "read_header",
    "ArchiveEntryInfo",
    "ArchiveHeader",
    "FilePatch",
    "PatchOutcome",
    "PatchSpec",
    "PatternRule",
    "Patcher",
    "apply_diff_patch",
    "apply_pattern_patch",
    "PatchSource",
]
