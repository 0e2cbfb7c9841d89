"""Tests for akit.core.variants module."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from akit.core.installer import InstallationEngine
from akit.core.manifest import ManifestManager
from akit.core.progress import (
    AutoDecline,
    RecordingProgressSink,
    VariantChangeProgress,
)
from akit.core.resolver import PackageContentResolver
from akit.core.variants import diff_variants, variant_direction
from akit.core.verification import VerificationReport


def install(engine: InstallationEngine, target: Path, variant: str) -> Path:
    assert engine.install_one("claude", variant, target).success
    return target


class TestVariantDirection:
    """Tests for variant_direction function."""

    def test_tiers(self):
        assert variant_direction("lite", "pro") == "upgrade"
        assert variant_direction("pro", "standard") == "downgrade"
        assert variant_direction("standard", "standard") == "lateral"

    def test_unknown_variants_are_lateral(self):
        assert variant_direction("lite", "custom") == "lateral"


class TestDiffVariants:
    """Tests for diff_variants function."""

    def test_lite_to_pro(self, resolver: PackageContentResolver):
        """Agents are matched without their extension."""
        diff = diff_variants(resolver.resolve("claude", "lite"), resolver.resolve("claude", "pro"))

        added = {(i.category, i.name) for i in diff.to_add}
        assert len(diff.to_add) == 13
        assert ("agents", "qa.md") in added
        assert ("skills", "documentation") in added
        assert ("agents", "master.md") not in added
        assert diff.to_remove == []
        assert all(i.source is not None for i in diff.to_add)

    def test_pro_to_standard(self, resolver: PackageContentResolver):
        diff = diff_variants(
            resolver.resolve("claude", "pro"), resolver.resolve("claude", "standard")
        )

        assert diff.to_add == []
        assert [(i.category, i.name) for i in diff.to_remove] == [("skills", "documentation")]


class TestChangeVariant:
    """Tests for InstallationEngine.change_variant."""

    def test_upgrade_lite_to_pro(self, engine: InstallationEngine, target: Path):
        """Adds the missing agents and every skill, removes nothing."""
        install(engine, target, "lite")

        result = engine.change_variant("claude", "pro", target)

        assert result.success, result.error
        assert result.direction == "upgrade"
        assert result.from_variant == "lite"
        assert result.files_added == 10 + 3
        assert result.files_removed == 0
        assert result.backup_path is not None
        assert ManifestManager(result.backup_path).load().variant == "lite"
        manifest = ManifestManager(target).load()
        assert manifest.variant == "pro"
        assert manifest.components.agents == 13
        assert manifest.components.skills == len(manifest.items("skills")) == 3
        assert (target / "skills" / "documentation" / "templates" / "readme.md").exists()
        assert result.verification is not None and result.verification.valid

    def test_downgrade_preserves_user_skill(self, engine: InstallationEngine, target: Path):
        """A user-created skill is never removed."""
        install(engine, target, "pro")
        custom = target / "skills" / "custom-skill" / "skill.md"
        custom.parent.mkdir()
        custom.write_text("mine")

        result = engine.change_variant("claude", "lite", target)

        assert result.success, result.error
        assert result.direction == "downgrade"
        assert result.files_removed == 10 + 3
        assert custom.read_text() == "mine"
        assert not (target / "skills" / "testing").exists()
        assert not (target / "agents" / "qa.md").exists()
        assert (target / "agents" / "master.md").exists()
        assert ManifestManager(target).load().components.skills == 0

    def test_same_variant_is_noop(self, engine: InstallationEngine, target: Path):
        install(engine, target, "standard")
        before = (target / "manifest.json").read_text()

        result = engine.change_variant("claude", "standard", target)

        assert result.success
        assert result.files_added == 0
        assert result.files_removed == 0
        assert result.backup_path is None
        assert (target / "manifest.json").read_text() == before

    def test_only_removes_manifest_items(self, engine: InstallationEngine, target: Path):
        """An item the manifest never listed is left alone."""
        install(engine, target, "pro")
        manifest_path = target / "manifest.json"
        data = json.loads(manifest_path.read_text())
        data["installedFiles"]["skills"].remove("documentation")
        manifest_path.write_text(json.dumps(data))

        result = engine.change_variant("claude", "standard", target)

        assert result.success, result.error
        assert result.files_removed == 0
        assert (target / "skills" / "documentation" / "skill.md").exists()

    def test_keeps_empty_category_directories(self, engine: InstallationEngine, target: Path):
        install(engine, target, "standard")

        engine.change_variant("claude", "lite", target)

        assert (target / "skills").is_dir()

    def test_declined(self, engine: InstallationEngine, target: Path):
        """Declining changes nothing."""
        install(engine, target, "lite")

        result = engine.change_variant("claude", "pro", target, gate=AutoDecline())

        assert not result.success
        assert result.cancelled
        assert result.error == "Upgrade cancelled by user"
        assert result.backup_path is None
        assert ManifestManager(target).load().variant == "lite"

    def test_no_installation(self, engine: InstallationEngine, target: Path):
        result = engine.change_variant("claude", "pro", target)

        assert not result.success
        assert result.error == "No installation found at target path (manifest.json missing)"

    def test_unknown_variant(self, engine: InstallationEngine, target: Path):
        install(engine, target, "lite")

        result = engine.change_variant("claude", "ultra", target)

        assert not result.success
        assert "Invalid variant" in (result.error or "")

    def test_backup_failure_aborts(self, engine: InstallationEngine, target: Path):
        install(engine, target, "lite")

        with patch.object(engine, "create_backup", return_value=None):
            result = engine.change_variant("claude", "pro", target)

        assert not result.success
        assert "nothing was changed" in (result.error or "")
        assert ManifestManager(target).load().variant == "lite"

    def test_verification_failure_is_not_reverted(
        self, engine: InstallationEngine, target: Path
    ):
        """A failed verification reports the backup instead of restoring it."""
        install(engine, target, "lite")
        invalid = VerificationReport(valid=False, tool_id="claude", target_path=target)

        with patch("akit.core.variants.verify_installation", return_value=invalid):
            result = engine.change_variant("claude", "pro", target)

        assert not result.success
        assert result.error == "Verification failed after upgrade"
        assert result.backup_path is not None
        assert ManifestManager(target).load().variant == "pro"

        engine.restore_from_backup(target, result.backup_path)
        assert ManifestManager(target).load().variant == "lite"

    def test_reports_stages(self, engine: InstallationEngine, target: Path):
        install(engine, target, "standard")
        sink = RecordingProgressSink()

        engine.change_variant("claude", "pro", target, progress=sink)

        stages = [e.stage for e in sink.events if isinstance(e, VariantChangeProgress)]
        assert stages[:3] == ["reading_manifest", "comparing_variants", "creating_backup"]
        assert "adding_file" in stages
        assert "removing_files" not in stages
        assert stages[-3:] == ["updating_manifest", "verifying", "complete"]


@pytest.mark.parametrize(("start", "end"), [("lite", "standard"), ("pro", "lite")])
def test_counts_match_items_after_change(
    engine: InstallationEngine, target: Path, start: str, end: str
):
    """Component counts equal listed items after any change."""
    install(engine, target, start)

    engine.change_variant("claude", end, target)

    manifest = ManifestManager(target).load()
    for category in ("agents", "skills", "resources", "hooks"):
        assert manifest.component_count(category) == len(manifest.items(category))
