"""Tests for archive discovery and the Patcher run."""

import os
from pathlib import Path

import pytest

from asar_patcher import codec, locate
from asar_patcher.config import AppLayout
from asar_patcher.errors import ArchiveNotFound, UnknownFeature
from asar_patcher.models import FeatureState
from asar_patcher.patcher import Patcher
from asar_patcher.sources import PatchSource

DEV_MODE_DIFF = """\
--- a/src/main.js
+++ b/src/main.js
@@ -1,2 +1,2 @@
 const app = require('./app');
-app.start();
+app.start({ devMode: true });
"""


@pytest.fixture
def source(tmp_path):
    patches = tmp_path / "patches"
    patches.mkdir()
    (patches / "dev-mode.diff").write_text(DEV_MODE_DIFF)
    return PatchSource(patches_dir=str(patches))


class TestPatcher:

    def test_full_run(self, sample_archive, source, tmp_path):
        original = sample_archive.read_bytes()
        patcher = Patcher(["dev-mode"], source, asar=str(sample_archive), unpack=["*.node"])
        assert patcher.dir == str(tmp_path / "app")

        backup = patcher.backup_asar()
        assert Path(backup).read_bytes() == original
        assert backup.startswith(str(sample_archive) + ".")
        assert backup.endswith(".backup")

        stats = patcher.unpack_asar()
        assert stats.complete

        runs = patcher.patch_dir()
        assert [run.state for run in runs] == [FeatureState.APPLIED]
        assert runs[0].applied_units == 1

        patcher.pack_dir()
        patcher.remove_dir()

        assert not os.path.exists(patcher.dir)
        assert codec.extract_file(str(sample_archive), "src/main.js") == (
            b"const app = require('./app');\napp.start({ devMode: true });\n"
        )
        assert codec.extract_file(str(sample_archive), "native/addon.node") == b"\x7fELF native addon"
        assert codec.extract_file(str(sample_archive), "src/lib/util.js") == b"module.exports = {};\n"

    def test_archive_from_directory(self, source, tmp_path):
        patcher = Patcher(["dev-mode"], source, directory=str(tmp_path / "work"))

        assert patcher.asar == str(tmp_path / "work") + ".asar"
        assert patcher.dir == str(tmp_path / "work")

    def test_no_archive_found(self, source):
        with pytest.raises(ArchiveNotFound, match="Can't find app.asar!"):
            Patcher(["dev-mode"], source, layout=AppLayout())

    def test_empty_features(self, sample_archive, source):
        with pytest.raises(ValueError, match="Features is empty!"):
            Patcher([], source, asar=str(sample_archive))

    def test_unknown_feature_stops_the_run(self, sample_archive, source):
        patcher = Patcher(["nope", "dev-mode"], source, asar=str(sample_archive))
        patcher.unpack_asar()

        with pytest.raises(UnknownFeature):
            patcher.patch_dir()

        assert [run.state for run in patcher.runs] == [FeatureState.FAILED, FeatureState.PENDING]
        assert isinstance(patcher.runs[0].error, UnknownFeature)


class TestLocate:

    def test_directory_maps_to_archive(self, tmp_path):
        directory = os.path.join(str(tmp_path), "app") + os.sep
        assert locate.find_asar(directory) == os.path.join(str(tmp_path), "app.asar")

    def test_find_dir(self, tmp_path):
        archive = os.path.join(str(tmp_path), "resources", "app.asar")
        assert locate.find_dir(archive) == os.path.join(str(tmp_path), "resources", "app")

    def test_first_existing_candidate(self, tmp_path):
        present = tmp_path / "opt" / "app.asar"
        present.parent.mkdir()
        present.write_bytes(b"")
        layout = AppLayout(linux=[str(tmp_path / "missing.asar"), str(present)])

        assert locate.find_asar(layout=layout, platform="linux") == str(present)
        assert locate.find_asar(layout=layout, platform="macos") is None

    def test_latest_windows_version_is_numeric(self, tmp_path, monkeypatch):
        install_root = tmp_path / "AppData" / "Local" / "app"
        for version in ("app-1.9.0", "app-1.10.0", "app-1.2.30"):
            archive = install_root / version / "resources" / "app.asar"
            archive.parent.mkdir(parents=True)
            archive.write_bytes(b"")
        (install_root / "packages").mkdir()
        monkeypatch.setattr(Path, "home", lambda: tmp_path)

        layout = AppLayout(windows="AppData/Local/app")
        found = locate.find_asar(layout=layout, platform="windows")

        assert found == os.path.join(str(install_root), "app-1.10.0", "resources", "app.asar")

    def test_windows_without_versions(self, tmp_path):
        (tmp_path / "packages").mkdir()
        assert locate.find_latest_windows_archive(str(tmp_path)) is None
        assert locate.find_latest_windows_archive(str(tmp_path / "absent")) is None
