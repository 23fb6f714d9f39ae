import json
import struct
from pathlib import Path

import pytest


class Unpacked:
    """Marks a file stored in <archive>.unpacked; present=False leaves it out."""

    def __init__(self, data: bytes, present: bool = True):
        self.data = data
        self.present = present


def write_archive(archive_path: Path, tree: dict) -> Path:
    """Write an asar archive from a nested dict of name -> bytes | Unpacked | dict."""
    body = bytearray()
    unpacked_root = Path(str(archive_path) + ".unpacked")

    def build(node: dict, prefix: tuple) -> dict:
        files = {}
        for name, value in node.items():
            if isinstance(value, dict):
                files[name] = build(value, prefix + (name,))
            elif isinstance(value, Unpacked):
                files[name] = {"size": len(value.data), "unpacked": True}
                if value.present:
                    target = unpacked_root.joinpath(*prefix, name)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(value.data)
            else:
                files[name] = {"size": len(value), "offset": str(len(body))}
                body.extend(value)
        return {"files": files}

    header = json.dumps(build(tree, ())).encode("utf-8")
    padding = -len(header) % 4
    header_pickle = struct.pack("<Ii", 4 + len(header) + padding, len(header)) + header + b"\x00" * padding
    archive_path.write_bytes(struct.pack("<II", 4, len(header_pickle)) + header_pickle + bytes(body))
    return archive_path


SAMPLE_TREE = {
    "package.json": b'{"name": "app", "main": "src/main.js"}',
    "src": {
        "main.js": b"const app = require('./app');\napp.start();\n",
        "lib": {
            "util.js": b"module.exports = {};\n",
        },
    },
    "native": {
        "addon.node": Unpacked(b"\x7fELF native addon"),
    },
}


@pytest.fixture
def archive_factory(tmp_path: Path):
    def make(tree: dict = None, name: str = "app.asar") -> Path:
        return write_archive(tmp_path / name, SAMPLE_TREE if tree is None else tree)
    return make


@pytest.fixture
def sample_archive(archive_factory) -> Path:
    return archive_factory()


@pytest.fixture
def missing_unpacked_archive(archive_factory) -> Path:
    tree = {
        "package.json": b'{"name": "app"}',
        "native": {
            "addon.node": Unpacked(b"addon bytes", present=False),
            "helper.node": Unpacked(b"helper bytes"),
        },
        "src": {
            "index.js": b"console.log('hi');\n",
        },
    }
    return archive_factory(tree)
