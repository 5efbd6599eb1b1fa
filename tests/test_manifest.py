"""Tests for the per-destination install manifest."""

from pathlib import Path

from forgesync import manifest


class TestManifest:
    def test_read_missing(self, tmp_path: Path):
        assert manifest.read(tmp_path, "forge-test") == []

    def test_update_and_read(self, tmp_path: Path):
        manifest.update(tmp_path, "forge-test", ["Architect", "Reviewer"])
        manifest.update(tmp_path, "other", ["Helper"])
        assert manifest.read(tmp_path, "forge-test") == ["Architect", "Reviewer"]
        assert manifest.read(tmp_path, "other") == ["Helper"]

    def test_empty_entries_drop_module(self, tmp_path: Path):
        manifest.update(tmp_path, "forge-test", ["Architect"])
        manifest.update(tmp_path, "other", ["Helper"])
        manifest.update(tmp_path, "forge-test", [])
        assert manifest.read(tmp_path, "forge-test") == []
        assert manifest.read(tmp_path, "other") == ["Helper"]

    def test_empty_manifest_deleted(self, tmp_path: Path):
        manifest.update(tmp_path, "forge-test", ["Architect"])
        manifest.update(tmp_path, "forge-test", [])
        assert not (tmp_path / manifest.MANIFEST_FILE).exists()

    def test_corrupt_manifest_ignored(self, tmp_path: Path):
        (tmp_path / manifest.MANIFEST_FILE).write_text("key: [unclosed\n")
        assert manifest.read(tmp_path, "forge-test") == []


class TestModuleName:
    def test_reads_module_yaml(self, tmp_path: Path):
        (tmp_path / "agents").mkdir()
        (tmp_path / "module.yaml").write_text("name: forge-council\nversion: 1\n")
        assert manifest.module_name(tmp_path / "agents") == "forge-council"

    def test_missing_module_yaml(self, tmp_path: Path):
        (tmp_path / "agents").mkdir()
        assert manifest.module_name(tmp_path / "agents") is None

    def test_module_yaml_without_name(self, tmp_path: Path):
        (tmp_path / "agents").mkdir()
        (tmp_path / "module.yaml").write_text("version: 1\n")
        assert manifest.module_name(tmp_path / "agents") is None
