#!/usr/bin/env python3
"""
Command-line interface for asar_patcher
"""

import argparse
import logging
import sys

from asar_patcher import codec, constants, utils
from asar_patcher.config import load_config
from asar_patcher.errors import AsarPatcherError
from asar_patcher.extraction import extract
from asar_patcher.header import read_header
from asar_patcher.locate import find_dir
from asar_patcher.models import FeatureState
from asar_patcher.patcher import Patcher
from asar_patcher.sources import PatchSource


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _patch_source(args, config) -> PatchSource:
    return PatchSource(
        patches_dir=args.patches_dir or config.patches_dir or constants.PATCHES_DIR_NAME,
        base_url=args.patches_url or config.patches_url,
        timeout=config.timeout,
        retries=config.retries,
    )


def cmd_patch(args, config):
    """Handle patch command: backup, unpack, patch, pack."""
    patcher = Patcher(
        features=args.features,
        source=_patch_source(args, config),
        asar=args.asar,
        directory=args.dir,
        layout=config.layout,
        unpack=config.unpack,
    )

    print(f"Archive: {patcher.asar}")
    print(f"Working directory: {patcher.dir}")

    if config.backup and not args.no_backup:
        backup = patcher.backup_asar()
        print(f"{utils.SYMBOL_CHECK} Backup written to {backup}")

    stats = patcher.unpack_asar()
    print(f"{utils.SYMBOL_CHECK} Unpacked")
    if stats.missing_external:
        print(f"{utils.SYMBOL_WARNING} {len(stats.missing_external)} unpacked file(s) missing")
    if stats.failed:
        print(f"{utils.SYMBOL_WARNING} {len(stats.failed)} file(s) could not be extracted")

    try:
        runs = patcher.patch_dir(tolerate_already_patched=not args.strict)
    finally:
        for run in patcher.runs:
            if run.state == FeatureState.APPLIED:
                print(f"{utils.SYMBOL_CHECK} {run}")
            elif run.state == FeatureState.FAILED:
                print(f"{utils.SYMBOL_ERROR} {run}")

    if not any(run.applied_units for run in runs):
        print(f"{utils.SYMBOL_INFO} Nothing changed, archive left as is")
    else:
        patcher.pack_dir()
        print(f"{utils.SYMBOL_CHECK} Packed {patcher.asar}")

    if not args.keep_dir:
        patcher.remove_dir()
    return 0


def cmd_unpack(args, config):
    """Handle unpack command."""
    output = args.output or find_dir(args.asar)
    stats = extract(args.asar, output)
    print(f"{utils.SYMBOL_CHECK} Unpacked {args.asar} to {output}")
    for path in stats.missing_external:
        print(f"  {utils.SYMBOL_WARNING} missing unpacked file: {path}")
    for path in stats.failed:
        print(f"  {utils.SYMBOL_WARNING} failed: {path}")
    return 0


def cmd_pack(args, config):
    """Handle pack command."""
    output = args.output or args.dir.rstrip("/\\") + ".asar"
    count = codec.create_package(args.dir, output, args.unpack or config.unpack)
    print(f"{utils.SYMBOL_CHECK} Packed {count} file(s) into {output}")
    return 0


def cmd_list(args, config):
    """Handle list command."""
    header = read_header(args.asar)
    for path, node in header.walk():
        if not args.detailed:
            print("/" + path)
            continue
        if node.is_directory:
            kind, size = "dir ", ""
        elif node.is_link:
            kind, size = "link", f"-> {node.link}"
        else:
            kind = "unpk" if node.unpacked else "file"
            size = utils.format_size(node.size)
        print(f"{kind}  /{path}  {size}".rstrip())
    return 0


def cmd_features(args, config):
    """Handle features command."""
    source = _patch_source(args, config)
    features = source.available_features()
    if not features:
        print(f"{utils.SYMBOL_ERROR} No features found")
        return 1
    for feature in features:
        print(feature)
    return 0


def _add_source_arguments(parser):
    parser.add_argument("--patches-dir", help="Directory holding <feature>.diff / <feature>.json files")
    parser.add_argument("--patches-url", help="Base URL serving patch definitions")


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="asar-patcher - unpack, patch and repack Electron asar archives",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  asar-patcher patch -f myfeature --patches-dir ./patches\n"
               "  asar-patcher unpack resources/app.asar -o ./app\n"
               "  asar-patcher pack ./app -o resources/app.asar --unpack '*.node'\n"
               "  asar-patcher list resources/app.asar --detailed"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config file (default: ~/.config/asar_patcher/config.json)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--ascii", action="store_true", help="Use ASCII status symbols")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    patch_parser = subparsers.add_parser("patch", help="Backup, unpack, patch and repack an archive")
    patch_parser.add_argument("--asar", help="Archive to patch (located automatically if omitted)")
    patch_parser.add_argument("--dir", help="Working directory (default: archive path without extension)")
    patch_parser.add_argument(
        "--feature", "-f",
        dest="features",
        action="append",
        required=True,
        help="Feature to apply (repeatable)"
    )
    patch_parser.add_argument("--no-backup", action="store_true", help="Do not back up the archive")
    patch_parser.add_argument("--keep-dir", action="store_true", help="Keep the working directory")
    patch_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail when a pattern patch finds the file already patched"
    )
    _add_source_arguments(patch_parser)
    patch_parser.set_defaults(func=cmd_patch)

    unpack_parser = subparsers.add_parser("unpack", help="Extract an archive")
    unpack_parser.add_argument("asar", help="Archive to extract")
    unpack_parser.add_argument("--output", "-o", help="Destination directory")
    unpack_parser.set_defaults(func=cmd_unpack)

    pack_parser = subparsers.add_parser("pack", help="Create an archive from a directory")
    pack_parser.add_argument("dir", help="Directory to pack")
    pack_parser.add_argument("--output", "-o", help="Archive to write (default: <dir>.asar)")
    pack_parser.add_argument("--unpack", action="append", help="Glob of files to keep unpacked (repeatable)")
    pack_parser.set_defaults(func=cmd_pack)

    list_parser = subparsers.add_parser("list", help="List archive contents")
    list_parser.add_argument("asar", help="Archive to list")
    list_parser.add_argument("--detailed", action="store_true", help="Show entry kinds and sizes")
    list_parser.set_defaults(func=cmd_list)

    features_parser = subparsers.add_parser("features", help="List available features")
    _add_source_arguments(features_parser)
    features_parser.set_defaults(func=cmd_features)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    utils.setup_symbols(args.ascii)
    config = load_config(args.config)

    try:
        return args.func(args, config)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except (AsarPatcherError, ValueError) as e:
        print(f"\n{utils.SYMBOL_ERROR} Error: {e}")
        return 1
    except Exception as e:
        logging.exception("Unexpected error")
        print(f"\n{utils.SYMBOL_ERROR} Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
