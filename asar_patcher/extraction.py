"""
Archive extraction with fallback for missing unpacked files

Some packagers leave entries flagged ``unpacked`` out of the shipped
``.unpacked`` directory (platform-excluded native modules, for example).
A strict extraction fails on the first such entry, so extraction runs in
two tiers: a bulk pass through the codec, then, only if the bulk pass hit a
missing unpacked file, a best-effort pass that extracts entry by entry and
reports every file it could not recover.
"""

import logging
import os
import shutil
import stat
from dataclasses import dataclass, field
from typing import List, Optional

from asar_patcher import codec, constants, utils
from asar_patcher.errors import (
    AsarPatcherError,
    BulkExtractionFailed,
    EntryExtractionFailed,
    MissingExternalFile,
    MissingUnpackedFile,
    classify_os_error,
    is_recoverable_copy_error,
)
from asar_patcher.header import lookup, read_header
from asar_patcher.models import ArchiveHeader

logger = logging.getLogger("asar_patcher.extraction")


@dataclass
class ExtractionStats:
    """
    Summary of one extraction.

    Attributes:
        used_fallback: Whether manual per-entry extraction ran
        written: Files written by the manual pass
        skipped_existing: Entries already present as regular files
        missing_external: Unpacked entries with no file on disk
        failed: Entries whose bytes could not be read or written
        copy_skipped: Unpacked-tree entries skipped while pre-seeding
    """
    used_fallback: bool = False
    written: int = 0
    skipped_existing: int = 0
    missing_external: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    copy_skipped: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing_external and not self.failed


def copy_unpacked(external_dir: str, dest_dir: str,
                  stats: Optional[ExtractionStats] = None) -> None:
    """
    Mirror an unpacked-files directory into the destination tree.

    A missing external_dir is not an error. Entries that cannot be read
    because they vanished or access is refused are skipped with a warning;
    any other OSError aborts the copy.

    Args:
        external_dir: The <archive>.unpacked directory
        dest_dir: Destination root
        stats: Optional stats object collecting skipped entries
    """
    if not os.path.isdir(external_dir):
        return

    for item in os.listdir(external_dir):
        src_path = os.path.join(external_dir, item)
        dest_path = os.path.join(dest_dir, item)

        try:
            mode = os.stat(src_path).st_mode
            if stat.S_ISDIR(mode):
                utils.ensure_directory(dest_path)
                copy_unpacked(src_path, dest_path, stats)
            else:
                utils.ensure_directory(dest_dir)
                shutil.copy(src_path, dest_path)
        except OSError as e:
            if not is_recoverable_copy_error(e):
                raise
            logger.warning(f"Skipping inaccessible file ({classify_os_error(e).value}): {src_path}")
            if stats is not None:
                stats.copy_skipped.append(src_path)


def is_missing_unpacked_error(error: BaseException) -> bool:
    """
    Decide whether a bulk extraction failure should trigger the manual pass.

    The codec raises MissingUnpackedFile for this case. Other "not found"
    errors qualify only when their path lies under an .unpacked directory.
    """
    if isinstance(error, MissingUnpackedFile):
        return True
    if isinstance(error, FileNotFoundError):
        filename = getattr(error, "filename", None)
        return bool(filename) and constants.UNPACKED_SUFFIX in str(filename)
    return False


def extract_manually(archive_path: str, dest_dir: str,
                     header: Optional[ArchiveHeader] = None,
                     stats: Optional[ExtractionStats] = None) -> ExtractionStats:
    """
    Extract an archive entry by entry, skipping what cannot be recovered.

    Regular files already present at their destination are kept as-is.
    A directory standing where a file belongs is removed first. Unpacked
    entries that were not pre-seeded and entries whose bytes cannot be read
    are reported with one warning each and skipped.

    Args:
        archive_path: Path to the .asar file
        dest_dir: Destination root
        header: Already-read header (read from disk if omitted)
        stats: Stats object to update (a new one is created if omitted)

    Returns:
        The updated ExtractionStats
    """
    if header is None:
        header = read_header(archive_path)
    if stats is None:
        stats = ExtractionStats()
    stats.used_fallback = True

    for filename in codec.list_package(archive_path, header):
        normalized = utils.normalize_relative_path(filename)
        dest_filename = os.path.join(dest_dir, *normalized.split("/"))
        entry_info = lookup(header, normalized)

        if entry_info.is_directory:
            utils.ensure_directory(dest_filename)
            continue

        if os.path.lexists(dest_filename):
            if os.path.isfile(dest_filename):
                stats.skipped_existing += 1
                continue
            if os.path.isdir(dest_filename):
                shutil.rmtree(dest_filename)

        if entry_info.is_unpacked:
            logger.warning(str(MissingExternalFile(normalized)))
            stats.missing_external.append(normalized)
            continue

        try:
            data = codec.extract_file(archive_path, normalized, header)
            utils.ensure_directory(os.path.dirname(dest_filename))
            with open(dest_filename, "wb") as f:
                f.write(data)
            stats.written += 1
        except (OSError, EOFError, AsarPatcherError) as e:
            logger.warning(str(EntryExtractionFailed(normalized, e)))
            stats.failed.append(normalized)

    return stats


def extract(archive_path: str, dest_dir: str) -> ExtractionStats:
    """
    Extract an archive, tolerating missing unpacked files.

    1. Copy <archive>.unpacked into dest_dir so unpacked files are in place.
    2. Try a bulk extraction of the whole archive.
    3. If that fails because an unpacked file is missing, extract entry by
       entry instead. Any other failure is fatal.

    Args:
        archive_path: Path to the .asar file
        dest_dir: Destination root (created if missing)

    Returns:
        ExtractionStats describing what was skipped

    Raises:
        HeaderCorrupt: If the archive header cannot be decoded
        BulkExtractionFailed: If bulk extraction fails for an unrelated reason
    """
    header = read_header(archive_path)

    stats = ExtractionStats()
    utils.ensure_directory(dest_dir)

    copy_unpacked(codec.unpacked_dir_for(archive_path), dest_dir, stats)

    try:
        codec.extract_all(archive_path, dest_dir, header)
    except Exception as e:
        if not is_missing_unpacked_error(e):
            raise BulkExtractionFailed(archive_path, e) from e
        logger.warning("Some unpacked files are missing, using fallback extraction...")
        extract_manually(archive_path, dest_dir, header, stats)
        if not stats.complete:
            logger.warning(
                f"Extraction of {archive_path} finished with "
                f"{len(stats.missing_external)} missing unpacked and {len(stats.failed)} failed entries"
            )
        return stats

    logger.info(f"Extracted {archive_path} to {dest_dir}")
    return stats
