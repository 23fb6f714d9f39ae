"""
Patch engines for an extracted archive tree

Diff patches rewrite files hunk by hunk; pattern patches do a single
anchored search-and-replace. Either way the new content is computed fully
in memory and written in one step, so a failing patch never leaves a
half-written file behind.
"""

import logging
import os
from typing import Optional

import regex

from asar_patcher import constants, utils
from asar_patcher.diff import DEV_NULL, apply_hunks
from asar_patcher.errors import (
    AlreadyPatched,
    PatchSourceError,
    PatternNotFound,
    SourceFileMissing,
)
from asar_patcher.models import FeatureRun, FeatureState, FilePatch, PatchOutcome, PatchSpec, PatternRule

logger = logging.getLogger("asar_patcher.patching")


def _resolve(dest_dir: str, relative_path: str) -> str:
    """Join a patch path onto dest_dir, refusing paths that leave it."""
    return os.path.join(dest_dir, *utils.safe_path_parts(relative_path))


def _read_text(path: str, display_name: str) -> str:
    try:
        # newline="" keeps \r\n intact
        with open(path, "r", encoding=constants.DEFAULT_ENCODING, newline="") as f:
            return f.read()
    except FileNotFoundError:
        raise SourceFileMissing(display_name) from None


def _write_text(path: str, text: str) -> None:
    """Write text through a temporary file so readers never see partial content."""
    utils.ensure_directory(os.path.dirname(path))
    tmp_path = path + ".tmp"
    try:
        with open(tmp_path, "w", encoding=constants.DEFAULT_ENCODING, newline="") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except OSError:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def apply_diff_patch(dest_dir: str, patch: FilePatch) -> None:
    """
    Apply one file section of a unified diff inside dest_dir.

    All hunks are applied to the in-memory text first; the file is only
    written once every hunk matched. When the old and new names differ the
    old file is removed (rename). /dev/null on either side creates or
    deletes the file.

    Args:
        dest_dir: Extraction root
        patch: Parsed file patch

    Raises:
        SourceFileMissing: If the old file does not exist
        PatchDidNotApply: If any hunk does not match
        UnsafePath: If either file name leaves dest_dir
    """
    if patch.old_file_name == DEV_NULL:
        source_text = ""
        source_path = None
    else:
        source_path = _resolve(dest_dir, patch.old_file_name)
        source_text = _read_text(source_path, patch.old_file_name)

    patched_text = apply_hunks(source_text, patch)

    if patch.new_file_name == DEV_NULL:
        if source_path is not None:
            os.remove(source_path)
        logger.info(f"Deleted {patch.old_file_name}")
        return

    target_path = _resolve(dest_dir, patch.new_file_name)
    _write_text(target_path, patched_text)
    if source_path is not None and os.path.normpath(source_path) != os.path.normpath(target_path):
        os.remove(source_path)
        logger.info(f"Patched {patch.old_file_name} -> {patch.new_file_name}")
    else:
        logger.info(f"Patched {patch.new_file_name}")


def apply_pattern_patch(dest_dir: str, rule: PatternRule) -> PatchOutcome:
    """
    Apply a pattern rule to its target file.

    The payload is only matched when immediately preceded by the anchor.
    If nothing changes, the rule's marker tells whether the file was
    already patched or has a structure the rule no longer recognises.

    Args:
        dest_dir: Extraction root
        rule: Pattern rule to apply

    Returns:
        APPLIED, ALREADY_PATCHED or PATTERN_NOT_FOUND

    Raises:
        SourceFileMissing: If the target file does not exist
        PatchSourceError: If the rule's expressions do not compile
        UnsafePath: If the target path leaves dest_dir
    """
    target_path = _resolve(dest_dir, rule.target)
    source_text = _read_text(target_path, rule.target)

    try:
        search = regex.compile(rule.search_expression)
    except regex.error as e:
        raise PatchSourceError(f"Invalid pattern for {rule.target}: {e}") from e

    patched_text = search.sub(rule.replacement, source_text, count=1)
    if patched_text == source_text:
        if rule.marker in source_text:
            logger.debug(f"Marker found in {rule.target}, nothing to do")
            return PatchOutcome.ALREADY_PATCHED
        return PatchOutcome.PATTERN_NOT_FOUND

    _write_text(target_path, patched_text)
    logger.info(f"Patched {rule.target}")
    return PatchOutcome.APPLIED


def run_pattern_rule(dest_dir: str, rule: PatternRule) -> None:
    """
    Apply a pattern rule, raising on anything but APPLIED.

    Raises:
        AlreadyPatched: If the marker shows the rule was applied before
        PatternNotFound: If neither the pattern nor the marker is present
    """
    outcome = apply_pattern_patch(dest_dir, rule)
    if outcome == PatchOutcome.ALREADY_PATCHED:
        raise AlreadyPatched(rule.target)
    if outcome == PatchOutcome.PATTERN_NOT_FOUND:
        raise PatternNotFound(rule.target)


def apply_feature(dest_dir: str, spec: PatchSpec, run: Optional[FeatureRun] = None,
                  tolerate_already_patched: bool = False) -> FeatureRun:
    """
    Apply every patch unit of a feature in order.

    The first failing unit stops the feature; units written before it stay
    on disk. The error is re-raised with its ``feature`` attribute set.

    Args:
        dest_dir: Extraction root
        spec: The feature's patch units
        run: FeatureRun to update (created if omitted)
        tolerate_already_patched: Treat ALREADY_PATCHED as a no-op instead of a failure

    Returns:
        The FeatureRun, in state APPLIED

    Raises:
        Exception: The first fatal error (an AsarPatcherError or the
            underlying OSError), state left at FAILED
    """
    if run is None:
        run = FeatureRun(feature=spec.feature)
    run.state = FeatureState.APPLYING
    logger.info(f"Applying feature '{spec.feature}' ({spec.unit_count} unit(s))")

    try:
        for patch in spec.diff_patches:
            apply_diff_patch(dest_dir, patch)
            run.applied_units += 1

        for rule in spec.pattern_rules:
            outcome = apply_pattern_patch(dest_dir, rule)
            run.outcomes.append(outcome)
            if outcome == PatchOutcome.APPLIED:
                run.applied_units += 1
            elif outcome == PatchOutcome.ALREADY_PATCHED:
                if not tolerate_already_patched:
                    raise AlreadyPatched(rule.target)
                logger.info(f"{rule.target} is already patched, skipping")
            else:
                raise PatternNotFound(rule.target)
    except Exception as e:
        run.state = FeatureState.FAILED
        run.error = e
        if getattr(e, "feature", None) is None:
            e.feature = spec.feature
        logger.error(f"Feature '{spec.feature}' failed: {e}")
        raise

    run.state = FeatureState.APPLIED
    return run
