"""
Asar archive codec

Reads file data out of the archive body and serialises directory trees back
into archive form. Files flagged ``unpacked`` live next to the archive in
``<archive>.unpacked/`` instead of in the body.
"""

import fnmatch
import hashlib
import json
import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from asar_patcher import constants, utils
from asar_patcher.errors import EntryNotFound, MissingUnpackedFile
from asar_patcher.header import SIZE_PICKLE, STRING_PICKLE, find_node, read_header
from asar_patcher.models import ArchiveHeader, ArchiveNode

logger = logging.getLogger("asar_patcher.codec")

MAX_LINK_DEPTH = 32


def unpacked_dir_for(archive_path: str) -> str:
    """Return the sibling directory holding an archive's unpacked files."""
    return str(archive_path) + constants.UNPACKED_SUFFIX


def list_package(archive_path: str, header: Optional[ArchiveHeader] = None) -> List[str]:
    """
    List every entry of an archive, directories included.

    Args:
        archive_path: Path to the .asar file
        header: Already-read header (read from disk if omitted)

    Returns:
        Paths prefixed with "/", parents before children, in header order
    """
    if header is None:
        header = read_header(archive_path)
    return ["/" + path for path, _node in header.walk()]


def _resolve_links(archive_path: str, header: ArchiveHeader, entry_path: str) -> ArchiveNode:
    """Find a node, following link nodes to their targets."""
    node = find_node(header, entry_path)
    depth = 0
    while node is not None and node.is_link:
        depth += 1
        if depth > MAX_LINK_DEPTH:
            raise EntryNotFound(archive_path, entry_path)
        node = find_node(header, node.link)
    if node is None:
        raise EntryNotFound(archive_path, entry_path)
    return node


def _node_path(header: ArchiveHeader, node: ArchiveNode) -> str:
    parts = []
    while node.parent is not None:
        parts.append(node.name)
        node = header.node(node.parent)
    return "/".join(reversed(parts))


def _read_node(archive_path: str, header: ArchiveHeader, node: ArchiveNode, entry_path: str) -> bytes:
    if node.unpacked:
        source = os.path.join(unpacked_dir_for(archive_path), *_node_path(header, node).split("/"))
        try:
            with open(source, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise MissingUnpackedFile(entry_path, source) from None

    with open(archive_path, "rb") as f:
        f.seek(header.body_offset + node.offset)
        data = f.read(node.size)
    if len(data) != node.size:
        raise EOFError(f"{entry_path}: expected {node.size} bytes, archive body has {len(data)}")
    return data


def extract_file(archive_path: str, entry_path: str,
                 header: Optional[ArchiveHeader] = None) -> bytes:
    """
    Read one file's bytes.

    Args:
        archive_path: Path to the .asar file
        entry_path: Path of the file inside the archive
        header: Already-read header (read from disk if omitted)

    Returns:
        File content

    Raises:
        EntryNotFound: If the path is not in the archive
        IsADirectoryError: If the path names a directory
        MissingUnpackedFile: If an unpacked file is absent from the .unpacked directory
    """
    if header is None:
        header = read_header(archive_path)
    node = _resolve_links(archive_path, header, entry_path)
    if node.is_directory:
        raise IsADirectoryError(f"{entry_path} is a directory in {archive_path}")
    return _read_node(archive_path, header, node, entry_path)


def _write_if_changed(dest: str, data: bytes) -> bool:
    """Write data unless dest already holds exactly these bytes."""
    if os.path.isdir(dest) and not os.path.islink(dest):
        shutil.rmtree(dest)
    elif os.path.isfile(dest) and os.path.getsize(dest) == len(data):
        with open(dest, "rb") as f:
            if f.read() == data:
                return False
    with open(dest, "wb") as f:
        f.write(data)
    return True


def _make_executable(dest: str) -> None:
    mode = os.stat(dest).st_mode
    os.chmod(dest, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def extract_all(archive_path: str, dest_dir: str, header: Optional[ArchiveHeader] = None) -> int:
    """
    Extract every entry of an archive into a directory.

    Files whose destination already holds identical bytes are left untouched.

    Args:
        archive_path: Path to the .asar file
        dest_dir: Destination root (created if missing)
        header: Already-read header (read from disk if omitted)

    Returns:
        Number of files written

    Raises:
        MissingUnpackedFile: If an unpacked file is absent from the .unpacked directory
    """
    if header is None:
        header = read_header(archive_path)

    utils.ensure_directory(dest_dir)
    written = 0
    for path, node in header.walk():
        dest = os.path.join(dest_dir, *path.split("/"))
        if node.is_directory:
            utils.ensure_directory(dest)
            continue

        utils.ensure_directory(os.path.dirname(dest))
        if node.is_link:
            target = os.path.join(dest_dir, *utils.safe_path_parts(node.link))
            link_value = os.path.relpath(target, os.path.dirname(dest))
            if os.path.islink(dest) or os.path.isfile(dest):
                os.unlink(dest)
            elif os.path.isdir(dest):
                shutil.rmtree(dest)
            os.symlink(link_value, dest)
            continue

        data = _read_node(archive_path, header, node, path)
        if _write_if_changed(dest, data):
            written += 1
        if node.executable:
            _make_executable(dest)

    logger.debug(f"Extracted {written} file(s) from {archive_path} to {dest_dir}")
    return written


def _integrity(data: bytes) -> Dict[str, Any]:
    block_size = constants.INTEGRITY_BLOCK_SIZE
    blocks = [hashlib.sha256(data[i:i + block_size]).hexdigest()
              for i in range(0, len(data), block_size)]
    if not blocks:
        blocks = [hashlib.sha256(b"").hexdigest()]
    return {
        "algorithm": constants.INTEGRITY_ALGORITHM,
        "hash": hashlib.sha256(data).hexdigest(),
        "blockSize": block_size,
        "blocks": blocks,
    }


def _matches_any(relative_path: str, patterns: Sequence[str]) -> bool:
    name = relative_path.rsplit("/", 1)[-1]
    return any(fnmatch.fnmatch(relative_path, p) or fnmatch.fnmatch(name, p) for p in patterns)


def _encode_header(header_json: Dict[str, Any]) -> bytes:
    text = json.dumps(header_json, separators=(",", ":")).encode("utf-8")
    padding = -len(text) % constants.PICKLE_ALIGNMENT
    header_pickle = (STRING_PICKLE.pack(4 + len(text) + padding, len(text))
                     + text + b"\x00" * padding)
    return SIZE_PICKLE.pack(4, len(header_pickle)) + header_pickle


def create_package(src_dir: str, archive_path: str, unpack: Optional[Sequence[str]] = None) -> int:
    """
    Serialise a directory tree into an asar archive.

    Entries are stored in sorted name order. Symlinks pointing inside the
    tree become link entries; symlinks pointing outside are stored as the
    file they point to (directories outside the tree are skipped).

    Args:
        src_dir: Root of the tree to pack
        archive_path: Output .asar path (replaced atomically)
        unpack: Glob patterns of files to store in the .unpacked directory

    Returns:
        Number of files stored
    """
    root = Path(src_dir).resolve()
    unpack = list(unpack or [])
    unpacked_root = Path(unpacked_dir_for(archive_path))

    header_json: Dict[str, Any] = {"files": {}}
    body: List[bytes] = []
    offset = 0
    count = 0

    # (relative path, directory on disk, files mapping to fill)
    pending = [("", root, header_json["files"])]
    while pending:
        rel_dir, directory, files = pending.pop(0)
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            rel = f"{rel_dir}/{entry.name}" if rel_dir else entry.name

            if entry.is_symlink():
                target = entry.resolve()
                if target == root:
                    logger.warning(f"Skipping symlink to the tree root: {rel}")
                    continue
                if root in target.parents:
                    files[entry.name] = {"link": target.relative_to(root).as_posix()}
                    continue
                if target.is_dir():
                    logger.warning(f"Skipping symlink to directory outside the tree: {rel}")
                    continue

            if entry.is_dir():
                node: Dict[str, Any] = {"files": {}}
                files[entry.name] = node
                pending.append((rel, entry, node["files"]))
                continue

            data = entry.read_bytes()
            node = {"size": len(data), "integrity": _integrity(data)}
            if os.access(entry, os.X_OK) and os.name != "nt":
                node["executable"] = True

            if unpack and _matches_any(rel, unpack):
                node["unpacked"] = True
                dest = unpacked_root.joinpath(*rel.split("/"))
                utils.ensure_directory(str(dest.parent))
                dest.write_bytes(data)
            else:
                node["offset"] = str(offset)
                body.append(data)
                offset += len(data)
            files[entry.name] = node
            count += 1

    tmp_path = str(archive_path) + ".tmp"
    try:
        with open(tmp_path, "wb") as f:
            f.write(_encode_header(header_json))
            for data in body:
                f.write(data)
        os.replace(tmp_path, archive_path)
    except OSError:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise

    logger.info(f"Packed {count} file(s) from {src_dir} into {archive_path} ({utils.format_size(offset)} body)")
    return count
