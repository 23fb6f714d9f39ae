"""
Example usage of asar_patcher library

This script demonstrates how to:
1. Unpack an asar archive, tolerating missing unpacked files
2. Apply a feature from a patches directory
3. Pack the patched tree back into the archive
"""

import logging
import sys

from asar_patcher import AlreadyPatched, PatchSource, Patcher


def setup_logging():
    """Configure logging for the example."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def main():
    """Main example function."""
    setup_logging()
    logger = logging.getLogger("example")

    if len(sys.argv) < 4:
        logger.error("Usage: example.py <app.asar> <patches_dir> <feature> [feature...]")
        return 1

    archive, patches_dir, features = sys.argv[1], sys.argv[2], sys.argv[3:]
    patcher = Patcher(features=features, source=PatchSource(patches_dir=patches_dir), asar=archive)

    backup = patcher.backup_asar()
    logger.info(f"Backup: {backup}")

    stats = patcher.unpack_asar()
    if stats.used_fallback:
        logger.info(f"Fallback extraction: {len(stats.missing_external)} unpacked file(s) missing")

    try:
        runs = patcher.patch_dir()
    except AlreadyPatched as e:
        logger.info(f"Nothing to do: {e}")
        patcher.remove_dir()
        return 0

    for run in runs:
        logger.info(str(run))

    patcher.pack_dir()
    patcher.remove_dir()
    logger.info("Example completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
