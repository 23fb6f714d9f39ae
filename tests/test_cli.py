"""Tests for the command-line interface."""

import json

import pytest

from asar_patcher import codec
from asar_patcher.cli import main
from asar_patcher.config import load_config

from test_patcher import DEV_MODE_DIFF


@pytest.fixture
def config_path(tmp_path):
    return str(tmp_path / "no-such-config.json")


@pytest.fixture
def patches_dir(tmp_path):
    root = tmp_path / "patches"
    root.mkdir()
    (root / "dev-mode.diff").write_text(DEV_MODE_DIFF)
    return root


class TestList:

    def test_plain(self, sample_archive, config_path, capsys):
        assert main(["--config", config_path, "--ascii", "list", str(sample_archive)]) == 0

        out = capsys.readouterr().out.splitlines()
        assert out[0] == "/package.json"
        assert "/native/addon.node" in out

    def test_detailed(self, sample_archive, config_path, capsys):
        assert main(["--config", config_path, "--ascii", "list", str(sample_archive), "--detailed"]) == 0

        out = capsys.readouterr().out
        assert "dir   /src" in out
        assert "unpk  /native/addon.node" in out

    def test_corrupt_archive(self, tmp_path, config_path, capsys):
        archive = tmp_path / "bad.asar"
        archive.write_bytes(b"\x01")

        assert main(["--config", config_path, "--ascii", "list", str(archive)]) == 1
        assert "[ERROR]" in capsys.readouterr().out


class TestUnpackAndPack:

    def test_unpack_then_pack(self, sample_archive, tmp_path, config_path):
        out_dir = tmp_path / "out"
        assert main(["--config", config_path, "--ascii", "unpack", str(sample_archive), "-o", str(out_dir)]) == 0
        assert (out_dir / "native" / "addon.node").exists()

        repacked = tmp_path / "repacked.asar"
        assert main(["--config", config_path, "--ascii", "pack", str(out_dir), "-o", str(repacked),
                     "--unpack", "*.node"]) == 0
        assert sorted(codec.list_package(str(repacked))) == sorted(codec.list_package(str(sample_archive)))
        assert (tmp_path / "repacked.asar.unpacked" / "native" / "addon.node").exists()


class TestPatch:

    def test_patch_flow(self, sample_archive, patches_dir, tmp_path, config_path, capsys):
        code = main([
            "--config", config_path, "--ascii",
            "patch", "--asar", str(sample_archive), "-f", "dev-mode",
            "--no-backup", "--patches-dir", str(patches_dir),
        ])

        assert code == 0
        assert "[OK] dev-mode: applied" in capsys.readouterr().out
        assert b"devMode: true" in codec.extract_file(str(sample_archive), "src/main.js")
        assert not (tmp_path / "app").exists()
        assert not list(tmp_path.glob("*.backup"))

    def test_unknown_feature(self, sample_archive, patches_dir, config_path, capsys):
        code = main([
            "--config", config_path, "--ascii",
            "patch", "--asar", str(sample_archive), "-f", "missing",
            "--no-backup", "--patches-dir", str(patches_dir),
        ])

        assert code == 1
        assert "No patch definition for feature 'missing'" in capsys.readouterr().out

    def test_keep_dir_and_backup(self, sample_archive, patches_dir, tmp_path, config_path):
        code = main([
            "--config", config_path, "--ascii",
            "patch", "--asar", str(sample_archive), "-f", "dev-mode",
            "--keep-dir", "--patches-dir", str(patches_dir),
        ])

        assert code == 0
        assert (tmp_path / "app" / "src" / "main.js").exists()
        assert len(list(tmp_path.glob("app.asar.*.backup"))) == 1


class TestFeatures:

    def test_lists_features(self, patches_dir, config_path, capsys):
        (patches_dir / "keys.json").write_text('{"rules": []}')

        assert main(["--config", config_path, "features", "--patches-dir", str(patches_dir)]) == 0
        assert capsys.readouterr().out.split() == ["dev-mode", "keys"]

    def test_no_command(self, capsys):
        assert main([]) == 1


class TestConfig:

    def test_missing_file_gives_defaults(self, config_path):
        config = load_config(config_path)

        assert config.backup
        assert config.patches_dir is None
        assert config.layout.linux == []

    def test_reads_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "patches_dir": "/srv/patches",
            "timeout": 30,
            "backup": False,
            "unpack": ["*.node"],
            "layout": {"linux": ["/opt/app/resources/app.asar"], "windows": "AppData/Local/app"},
        }))

        config = load_config(str(path))

        assert config.patches_dir == "/srv/patches"
        assert config.timeout == 30
        assert not config.backup
        assert config.unpack == ["*.node"]
        assert config.layout.linux == ["/opt/app/resources/app.asar"]
        assert config.layout.windows == "AppData/Local/app"

    def test_malformed_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{oops")

        assert load_config(str(path)).timeout == 10
