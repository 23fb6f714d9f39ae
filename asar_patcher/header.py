"""
Asar header reader

An asar archive starts with two Chromium pickles: an 8-byte size pickle
holding the length of the header pickle, then the header pickle itself,
which wraps a length-prefixed UTF-8 JSON document describing the tree.
Only this metadata region is read here, never the archive body.
"""

import json
import logging
import struct
from typing import Any, Dict, Optional, Tuple

from asar_patcher import constants
from asar_patcher.errors import HeaderCorrupt
from asar_patcher.models import ArchiveEntryInfo, ArchiveHeader, ArchiveNode, MISSING_ENTRY
from asar_patcher.utils import split_path

logger = logging.getLogger("asar_patcher.header")

SIZE_PICKLE = struct.Struct("<II")    # payload length (always 4), header pickle size
STRING_PICKLE = struct.Struct("<Ii")  # payload length, string length


def read_header_json(archive_path: str) -> Tuple[Dict[str, Any], int]:
    """
    Read and decode the JSON header of an archive.

    Args:
        archive_path: Path to the .asar file

    Returns:
        Tuple of (decoded JSON object, header pickle size)

    Raises:
        HeaderCorrupt: If the metadata region cannot be decoded
        OSError: If the archive cannot be opened
    """
    with open(archive_path, "rb") as f:
        size_data = f.read(constants.SIZE_PICKLE_LENGTH)
        if len(size_data) < constants.SIZE_PICKLE_LENGTH:
            raise HeaderCorrupt(archive_path, "file too short for size pickle")

        payload_length, header_size = SIZE_PICKLE.unpack(size_data)
        if payload_length != 4:
            raise HeaderCorrupt(archive_path, f"unexpected size pickle payload {payload_length}")
        if header_size < STRING_PICKLE.size:
            raise HeaderCorrupt(archive_path, f"header size {header_size} too small")

        header_data = f.read(header_size)

    if len(header_data) < header_size:
        raise HeaderCorrupt(archive_path, f"truncated header: {len(header_data)} of {header_size} bytes")

    _payload, string_length = STRING_PICKLE.unpack_from(header_data)
    if string_length < 0 or STRING_PICKLE.size + string_length > header_size:
        raise HeaderCorrupt(archive_path, f"bad header string length {string_length}")

    raw = header_data[STRING_PICKLE.size:STRING_PICKLE.size + string_length]
    try:
        header_json = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise HeaderCorrupt(archive_path, f"invalid header JSON: {e}") from e

    if not isinstance(header_json, dict):
        raise HeaderCorrupt(archive_path, "header JSON is not an object")
    return header_json, header_size


def read_header(archive_path: str) -> ArchiveHeader:
    """
    Read the header tree of an archive.

    Args:
        archive_path: Path to the .asar file

    Returns:
        Immutable ArchiveHeader

    Raises:
        HeaderCorrupt: If the metadata region cannot be decoded
    """
    header_json, header_size = read_header_json(archive_path)
    try:
        header = ArchiveHeader.from_json(header_json, header_size)
    except (ValueError, TypeError) as e:
        raise HeaderCorrupt(archive_path, str(e)) from e
    logger.debug(f"Read header of {archive_path}: {len(header.nodes)} nodes, {header_size} bytes")
    return header


def find_node(header: ArchiveHeader, relative_path: str) -> Optional[ArchiveNode]:
    """
    Walk the header one path segment at a time.

    Args:
        header: Header to search
        relative_path: Path using either separator; empty segments are ignored

    Returns:
        The node at that path, or None if any segment is missing
    """
    node = header.root
    for part in split_path(relative_path):
        node = header.child(node, part)
        if node is None:
            return None
    return node


def lookup(header: ArchiveHeader, relative_path: str) -> ArchiveEntryInfo:
    """
    Describe the entry at a path.

    Args:
        header: Header to search
        relative_path: Path using either separator

    Returns:
        ArchiveEntryInfo; exists is False when any segment is missing
    """
    node = find_node(header, relative_path)
    if node is None:
        return MISSING_ENTRY
    return ArchiveEntryInfo(
        is_directory=node.is_directory,
        is_unpacked=node.unpacked,
        exists=True,
    )
