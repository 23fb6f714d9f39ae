"""
Data models for asar headers, diff patches and pattern rules
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from asar_patcher import utils

ROOT_ID = 0


@dataclass(frozen=True)
class ArchiveNode:
    """
    One node of an asar header, stored in an arena and addressed by id.

    Attributes:
        node_id: Index of this node in ArchiveHeader.nodes
        name: Name of the node inside its parent ("" for the root)
        parent: Id of the parent node (None for the root)
        children: Mapping of child name to child id, None for leaves
        size: File size in bytes
        offset: Offset of the file data from the start of the archive body
        unpacked: Whether the file lives in the sibling .unpacked directory
        executable: Whether the file carries the executable bit
        link: Link target relative to the archive root, for symlink nodes
        integrity: Integrity block as stored in the header, if any
    """
    node_id: int
    name: str
    parent: Optional[int] = None
    children: Optional[Mapping[str, int]] = None
    size: int = 0
    offset: int = 0
    unpacked: bool = False
    executable: bool = False
    link: Optional[str] = None
    integrity: Optional[Mapping[str, Any]] = None

    @property
    def is_directory(self) -> bool:
        return self.children is not None

    @property
    def is_link(self) -> bool:
        return self.link is not None


@dataclass(frozen=True)
class ArchiveHeader:
    """
    Immutable asar header tree.

    Nodes live in a flat tuple; directories reference their children by id.

    Attributes:
        nodes: All nodes, root first
        header_size: Size of the header pickle in bytes (body starts at 8 + header_size)
    """
    nodes: Tuple[ArchiveNode, ...]
    header_size: int = 0

    @property
    def root(self) -> ArchiveNode:
        return self.nodes[ROOT_ID]

    @property
    def body_offset(self) -> int:
        return 8 + self.header_size

    def node(self, node_id: int) -> ArchiveNode:
        return self.nodes[node_id]

    def child(self, node: ArchiveNode, name: str) -> Optional[ArchiveNode]:
        """Return the named child of a directory node, or None."""
        if node.children is None or name not in node.children:
            return None
        return self.nodes[node.children[name]]

    def walk(self) -> Iterator[Tuple[str, ArchiveNode]]:
        """
        Yield (path, node) for every node below the root in header order.

        Paths use forward slashes and no leading separator. Parents are
        always yielded before their children.
        """
        stack: List[Tuple[str, int]] = []
        for name, child_id in reversed(list(self.root.children.items())):
            stack.append((name, child_id))
        while stack:
            path, node_id = stack.pop()
            node = self.nodes[node_id]
            yield path, node
            if node.children is not None:
                for name, child_id in reversed(list(node.children.items())):
                    stack.append((f"{path}/{name}", child_id))

    @classmethod
    def from_json(cls, header_json: Dict[str, Any], header_size: int = 0) -> "ArchiveHeader":
        """
        Build the arena from the decoded header JSON.

        A node is a directory iff it has a "files" mapping.

        Raises:
            ValueError: If a node is not a JSON object, carries bad numbers,
                or has a name or link target that leaves the archive root
        """
        if not isinstance(header_json, dict):
            raise ValueError("header root is not an object")

        # First pass assigns ids in breadth-first order, second pass freezes nodes
        raw_nodes: List[Dict[str, Any]] = [header_json]
        names: List[str] = [""]
        parents: List[Optional[int]] = [None]
        child_maps: List[Optional[Dict[str, int]]] = []

        index = 0
        while index < len(raw_nodes):
            raw = raw_nodes[index]
            if not isinstance(raw, dict):
                raise ValueError(f"node '{names[index]}' is not an object")
            files = raw.get("files")
            if files is None:
                child_maps.append(None)
            else:
                if not isinstance(files, dict):
                    raise ValueError(f"'files' of '{names[index]}' is not an object")
                mapping: Dict[str, int] = {}
                for name, child in files.items():
                    if name in ("", ".", "..") or "/" in name or "\\" in name:
                        raise ValueError(f"invalid entry name {name!r} in '{names[index]}'")
                    mapping[name] = len(raw_nodes)
                    raw_nodes.append(child)
                    names.append(name)
                    parents.append(index)
                child_maps.append(mapping)
            index += 1

        nodes = []
        for node_id, raw in enumerate(raw_nodes):
            children = child_maps[node_id]
            if children is not None:
                nodes.append(ArchiveNode(
                    node_id=node_id,
                    name=names[node_id],
                    parent=parents[node_id],
                    children=MappingProxyType(children),
                ))
                continue
            integrity = raw.get("integrity")
            link = raw.get("link")
            if link is not None:
                if not isinstance(link, str):
                    raise ValueError(f"link of '{names[node_id]}' is not a string")
                # Raises UnsafePath, a ValueError, for absolute or escaping targets
                utils.safe_path_parts(link)
            nodes.append(ArchiveNode(
                node_id=node_id,
                name=names[node_id],
                parent=parents[node_id],
                size=int(raw.get("size", 0)),
                offset=int(raw.get("offset", 0)),
                unpacked=raw.get("unpacked") is True,
                executable=raw.get("executable") is True,
                link=link,
                integrity=MappingProxyType(integrity) if isinstance(integrity, dict) else None,
            ))

        if nodes[ROOT_ID].children is None:
            raise ValueError("header root has no 'files'")
        return cls(nodes=tuple(nodes), header_size=header_size)


@dataclass(frozen=True)
class ArchiveEntryInfo:
    """Result of a single path lookup in an ArchiveHeader."""
    is_directory: bool = False
    is_unpacked: bool = False
    exists: bool = False


MISSING_ENTRY = ArchiveEntryInfo()


class HunkLineType(str, Enum):
    CONTEXT = " "
    REMOVED = "-"
    ADDED = "+"


@dataclass
class Hunk:
    """
    One hunk of a unified diff.

    Attributes:
        old_start: 1-based first line in the old file (0 for an empty range)
        old_lines: Number of lines taken from the old file
        new_start: 1-based first line in the new file
        new_lines: Number of lines in the new file
        lines: (type, text) pairs, text without its prefix or line ending
        old_eof_newline: False when the old side ends without a newline
        new_eof_newline: False when the new side ends without a newline
    """
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: List[Tuple[HunkLineType, str]] = field(default_factory=list)
    old_eof_newline: bool = True
    new_eof_newline: bool = True

    @property
    def old_text_lines(self) -> List[str]:
        """Lines the hunk expects to find (context and removed)."""
        return [text for kind, text in self.lines if kind != HunkLineType.ADDED]

    @property
    def new_text_lines(self) -> List[str]:
        """Lines the hunk leaves behind (context and added)."""
        return [text for kind, text in self.lines if kind != HunkLineType.REMOVED]


@dataclass
class FilePatch:
    """One file section of a unified diff."""
    old_file_name: str
    new_file_name: str
    hunks: List[Hunk] = field(default_factory=list)

    @property
    def is_rename(self) -> bool:
        return self.old_file_name != self.new_file_name


@dataclass
class PatternRule:
    """
    A targeted search-and-replace on one extracted file.

    Attributes:
        target: File path relative to the extraction root
        anchor: Expression that must immediately precede the payload
        payload: Expression that is replaced
        replacement: Replacement template (\\g<n> group references)
        marker: Literal that is present once the rule has been applied
        description: Optional human-readable summary
    """
    target: str
    anchor: str
    payload: str
    replacement: str
    marker: str
    description: str = ""

    @property
    def search_expression(self) -> str:
        return f"(?<={self.anchor}){self.payload}"

    @classmethod
    def from_json(cls, rule_json: Dict[str, Any]) -> "PatternRule":
        """Create a PatternRule from JSON data."""
        missing = [key for key in ("target", "anchor", "payload", "replacement", "marker")
                   if not isinstance(rule_json.get(key), str)]
        if missing:
            raise ValueError(f"pattern rule is missing {', '.join(missing)}")
        return cls(
            target=rule_json["target"],
            anchor=rule_json["anchor"],
            payload=rule_json["payload"],
            replacement=rule_json["replacement"],
            marker=rule_json["marker"],
            description=rule_json.get("description", ""),
        )


@dataclass
class PatchSpec:
    """The patch units that make up one feature."""
    feature: str
    diff_patches: List[FilePatch] = field(default_factory=list)
    pattern_rules: List[PatternRule] = field(default_factory=list)

    @property
    def unit_count(self) -> int:
        return len(self.diff_patches) + len(self.pattern_rules)


class PatchOutcome(str, Enum):
    """Result of a pattern patch attempt."""
    APPLIED = "applied"
    ALREADY_PATCHED = "already_patched"
    PATTERN_NOT_FOUND = "pattern_not_found"


class FeatureState(str, Enum):
    PENDING = "pending"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class FeatureRun:
    """
    Progress of one feature through PENDING -> APPLYING -> APPLIED | FAILED.

    Attributes:
        feature: Feature identifier
        state: Current state
        applied_units: Number of patch units written so far
        outcomes: Outcome of each pattern rule, in order
        error: The fatal error, when state is FAILED
    """
    feature: str
    state: FeatureState = FeatureState.PENDING
    applied_units: int = 0
    outcomes: List[PatchOutcome] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def finished(self) -> bool:
        return self.state in (FeatureState.APPLIED, FeatureState.FAILED)

    def __str__(self) -> str:
        text = f"{self.feature}: {self.state.value} ({self.applied_units} unit(s))"
        if self.error is not None:
            text += f" - {self.error}"
        return text
