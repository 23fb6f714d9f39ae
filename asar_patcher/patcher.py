"""
Patcher: unpack an application archive, patch it and pack it back
"""

import logging
import os
import shutil
import time
from typing import List, Optional, Sequence

from asar_patcher import codec, constants, locate
from asar_patcher.config import AppLayout
from asar_patcher.errors import ArchiveNotFound
from asar_patcher.extraction import ExtractionStats, extract
from asar_patcher.models import FeatureRun, FeatureState
from asar_patcher.patching import apply_feature
from asar_patcher.sources import PatchSource


class Patcher:
    """
    Drives one patch run over an archive and its working directory.

    The working directory is owned by this run: callers must not run two
    Patchers against the same directory at once.
    """

    def __init__(self, features: Sequence[str], source: PatchSource,
                 asar: Optional[str] = None, directory: Optional[str] = None,
                 layout: Optional[AppLayout] = None, unpack: Optional[Sequence[str]] = None):
        """
        Initialize the patcher.

        Args:
            features: Feature identifiers to apply, in order
            source: Where patch definitions are loaded from
            asar: Archive path (located automatically if None)
            directory: Working directory (archive path without extension if None)
            layout: Per-platform install locations used to find the archive
            unpack: Glob patterns of files kept outside the archive when packing

        Raises:
            ArchiveNotFound: If no archive was given and none could be found
            ValueError: If features is empty
        """
        self.logger = logging.getLogger("asar_patcher.patcher")

        asar = asar or locate.find_asar(directory, layout)
        if not asar:
            raise ArchiveNotFound("Can't find app.asar!")
        self.asar = asar
        self.dir = directory or locate.find_dir(self.asar)
        self.features = list(features)
        if not self.features:
            raise ValueError("Features is empty!")

        self.source = source
        self.unpack = list(unpack or [])
        self.runs: List[FeatureRun] = []

    def backup_asar(self) -> str:
        """
        Copy the archive to <asar>.<epoch millis>.backup.

        Returns:
            Path of the backup file
        """
        backup = f"{self.asar}.{int(time.time() * 1000)}{constants.BACKUP_SUFFIX}"
        shutil.copy2(self.asar, backup)
        self.logger.info(f"Backed up {self.asar} to {backup}")
        return backup

    def unpack_asar(self) -> ExtractionStats:
        """Unpack the archive into the working directory."""
        return extract(self.asar, self.dir)

    def pack_dir(self) -> int:
        """Pack the working directory back into the archive."""
        return codec.create_package(self.dir, self.asar, self.unpack)

    def remove_dir(self) -> None:
        """Remove the working directory."""
        if os.path.isdir(self.dir):
            shutil.rmtree(self.dir)
            self.logger.debug(f"Removed {self.dir}")

    def patch_dir(self, tolerate_already_patched: bool = False) -> List[FeatureRun]:
        """
        Apply every feature to the working directory, in order.

        Features run one after another; the first failing feature stops the
        run and its error propagates. Results so far stay in self.runs.

        Returns:
            FeatureRun for each feature
        """
        self.runs = [FeatureRun(feature=feature) for feature in self.features]
        for run in self.runs:
            try:
                spec = self.source.load(run.feature)
            except Exception as e:
                run.state = FeatureState.FAILED
                run.error = e
                raise
            apply_feature(self.dir, spec, run, tolerate_already_patched)
        return self.runs
