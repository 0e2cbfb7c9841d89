"""Tests for akit.core.manifest module."""

import json
from pathlib import Path

import pytest

from akit.config.schemas import InstallManifest
from akit.core.manifest import (
    ManifestCorruptError,
    ManifestManager,
    ManifestMissingError,
    agent_name,
    build_manifest,
    item_path,
    stored_name,
)
from akit.core.resolver import PackageContentResolver


class TestNamingRules:
    """Tests for the per-category naming helpers."""

    def test_agent_name_strips_extension(self):
        assert agent_name("agents/master.md") == "master"
        assert agent_name(Path("/x/qa")) == "qa"

    def test_stored_name(self):
        """Only agents drop their extension."""
        assert stored_name("agents", Path("/pkg/agents/master.md")) == "master"
        assert stored_name("skills", Path("/pkg/skills/testing")) == "testing"
        assert stored_name("hooks", Path("/pkg/hooks/pre-commit.sh")) == "pre-commit.sh"

    def test_item_path(self, temp_dir: Path):
        """Agents regain .md; everything else is verbatim."""
        assert item_path(temp_dir, "agents", "master") == temp_dir / "master.md"
        assert item_path(temp_dir, "skills", "testing") == temp_dir / "testing"
        assert item_path(temp_dir, "resources", "guide.md") == temp_dir / "guide.md"


class TestManifestManager:
    """Tests for ManifestManager."""

    def test_load_missing(self, temp_dir: Path):
        """A missing manifest raises ManifestMissingError."""
        with pytest.raises(ManifestMissingError, match="Manifest file is missing"):
            ManifestManager(temp_dir).load()

    def test_load_corrupt(self, temp_dir: Path):
        """Unparsable JSON raises ManifestCorruptError."""
        (temp_dir / "manifest.json").write_text("{oops")

        with pytest.raises(ManifestCorruptError, match="Manifest parsing error"):
            ManifestManager(temp_dir).load()

    def test_load_invalid_structure(self, temp_dir: Path):
        (temp_dir / "manifest.json").write_text(json.dumps({"variant": "lite"}))

        with pytest.raises(ManifestCorruptError, match="Invalid manifest"):
            ManifestManager(temp_dir).load()

    def test_save_and_load(self, temp_dir: Path):
        """Saved manifests load back unchanged."""
        manager = ManifestManager(temp_dir)
        manifest = InstallManifest.model_validate(
            {"tool": "claude", "variant": "lite", "installedFiles": {"agents": ["master"]}}
        )

        path = manager.save(manifest)

        assert path == temp_dir / "manifest.json"
        assert manager.exists()
        assert manager.load() == manifest
        assert "installedFiles" in json.loads(path.read_text())

    def test_category_dir_falls_back(self, temp_dir: Path):
        """Without a recorded path the category lives under the target."""
        manager = ManifestManager(temp_dir)
        manifest = InstallManifest.model_validate(
            {"tool": "claude", "variant": "lite", "paths": {"agents": "/elsewhere/agents"}}
        )

        assert manager.category_dir(manifest, "agents") == Path("/elsewhere/agents")
        assert manager.category_dir(manifest, "skills") == temp_dir / "skills"

    def test_expected_items(self, temp_dir: Path):
        """Lists every item with its reconstructed path, in category order."""
        manager = ManifestManager(temp_dir)
        manifest = InstallManifest.model_validate(
            {
                "tool": "claude",
                "variant": "lite",
                "installedFiles": {
                    "hooks": ["pre-commit.sh"],
                    "agents": ["master"],
                    "skills": ["testing"],
                },
            }
        )

        items = manager.expected_items(manifest)

        assert [(i.category, i.name) for i in items] == [
            ("agents", "master"),
            ("skills", "testing"),
            ("hooks", "pre-commit.sh"),
        ]
        assert items[0].path == temp_dir / "agents" / "master.md"
        assert items[1].is_directory
        assert not items[2].is_directory


class TestBuildManifest:
    """Tests for build_manifest function."""

    def test_counts_match_items(self, resolver: PackageContentResolver, temp_dir: Path):
        """Component counts always equal the listed items."""
        target = temp_dir / "target"
        contents = resolver.resolve("claude", "standard")

        manifest = build_manifest(
            "claude",
            "standard",
            target,
            contents,
            resolver.size("claude", "standard"),
            resolver.metadata("claude", "standard"),
        )

        for category in ("agents", "skills", "resources", "hooks"):
            assert manifest.component_count(category) == len(manifest.items(category))
        assert manifest.components.agents == 13
        assert manifest.items("skills") == ["testing", "refactoring"]
        assert "master" in manifest.items("agents")
        assert manifest.paths.agents == str(target / "agents")
        assert manifest.files.total == contents.total_files
        assert manifest.variant_info is not None
        assert manifest.variant_info.name == "Standard"

    def test_template_cannot_override(self, resolver: PackageContentResolver, temp_dir: Path):
        """Template fields are kept but generated ones win."""
        contents = resolver.resolve("claude", "lite")

        manifest = build_manifest(
            "claude",
            "lite",
            temp_dir,
            contents,
            resolver.size("claude", "lite"),
            resolver.metadata("claude", "lite"),
            template={"author": "team", "variant": "pro", "installedAt": "never"},
        )

        data = manifest.model_dump(by_alias=True)
        assert data["author"] == "team"
        assert manifest.variant == "lite"
        assert manifest.installed_at != "never"
