"""Variant upgrade and downgrade.

A variant change compares the content of the installed variant with the
requested one, removes what the new variant drops (only where the
manifest says akit installed it), copies in what it adds, and rewrites
the manifest.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from akit.config.schemas import CATEGORIES, VARIANT_ORDER, Category, InstallManifest
from akit.core.manifest import (
    ManifestCorruptError,
    ManifestManager,
    ManifestMissingError,
    build_manifest,
    item_path,
    stored_name,
)
from akit.core.progress import (
    ConfirmationGate,
    NullProgressSink,
    ProgressSink,
    VariantChangeConfirmation,
    VariantChangeProgress,
)
from akit.core.resolver import ContentResolutionError, ResolvedContent
from akit.core.verification import VerificationReport, verify_installation
from akit.utils.filesystem import copy_directory, copy_file, prune_empty_directories, remove_path

if TYPE_CHECKING:
    from akit.core.installer import InstallationEngine

Direction = Literal["upgrade", "downgrade", "lateral"]


@dataclass
class VariantItem:
    """An item that differs between two variants.

    ``name`` is the on-disk name (agents keep their .md suffix);
    ``source`` is set for items to add.
    """

    category: Category
    name: str
    source: Path | None = None


@dataclass
class VariantDiff:
    to_add: list[VariantItem] = field(default_factory=list)
    to_remove: list[VariantItem] = field(default_factory=list)


@dataclass
class VariantChangeResult:
    """Outcome of a variant change."""

    success: bool
    tool_id: str
    target_path: Path
    from_variant: str | None = None
    to_variant: str | None = None
    direction: Direction = "lateral"
    files_added: int = 0
    files_removed: int = 0
    backup_path: Path | None = None
    verification: VerificationReport | None = None
    cancelled: bool = False
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


def variant_direction(from_variant: str, to_variant: str) -> Direction:
    """Classify a change by tier order (lite < standard < pro)."""
    if from_variant not in VARIANT_ORDER or to_variant not in VARIANT_ORDER:
        return "lateral"
    delta = VARIANT_ORDER.index(to_variant) - VARIANT_ORDER.index(from_variant)
    if delta > 0:
        return "upgrade"
    if delta < 0:
        return "downgrade"
    return "lateral"


def diff_variants(current: ResolvedContent, target: ResolvedContent) -> VariantDiff:
    """Compare two resolved variants item by item.

    Items are matched per category by name; agent names are compared
    without their .md extension.

    Args:
        current: Content of the installed variant
        target: Content of the requested variant

    Returns:
        VariantDiff with items to add (in target only) and remove (in current only)
    """
    diff = VariantDiff()
    for category in CATEGORIES:
        current_names = {stored_name(category, p) for p in current.paths(category)}
        target_names = {stored_name(category, p) for p in target.paths(category)}

        for source in target.paths(category):
            if stored_name(category, source) not in current_names:
                diff.to_add.append(VariantItem(category=category, name=source.name, source=source))

        for source in current.paths(category):
            if stored_name(category, source) not in target_names:
                diff.to_remove.append(VariantItem(category=category, name=source.name))

    return diff


class VariantChanger:
    """Moves an installed tool from one variant to another."""

    def __init__(self, engine: "InstallationEngine") -> None:
        self.engine = engine
        self.resolver = engine.resolver
        self.log = engine.settings.get_logger("variants")

    def change_variant(
        self,
        tool: str,
        new_variant: str,
        target_path: Path,
        gate: ConfirmationGate | None = None,
        progress: ProgressSink | None = None,
    ) -> VariantChangeResult:
        """Change the installed variant of a tool.

        Changing to the installed variant is a no-op. Declining the
        confirmation aborts before anything is modified. A failed
        verification after the change is reported as a failure; the
        backup is left in place and is not restored automatically.

        Args:
            tool: Tool identifier
            new_variant: Variant to switch to
            target_path: Installation directory
            gate: Confirmation gate; None means proceed without asking
            progress: Progress sink for stage events

        Returns:
            VariantChangeResult
        """
        sink = progress or NullProgressSink()
        result = VariantChangeResult(
            success=False, tool_id=tool, target_path=target_path, to_variant=new_variant
        )
        manager = ManifestManager(target_path)

        try:
            manifest = manager.load()
        except ManifestMissingError:
            result.error = "No installation found at target path (manifest.json missing)"
            return result
        except ManifestCorruptError as e:
            result.error = str(e)
            return result

        current_variant = manifest.variant
        result.from_variant = current_variant
        result.direction = variant_direction(current_variant, new_variant)
        sink.report(VariantChangeProgress("reading_manifest", {"variant": current_variant}))

        if current_variant == new_variant:
            result.success = True
            self.log.info("%s is already on the %s variant", tool, new_variant)
            return result

        try:
            current_contents = self.resolver.resolve(tool, current_variant)
            new_contents = self.resolver.resolve(tool, new_variant)
        except ContentResolutionError as e:
            result.error = str(e)
            return result

        sink.report(
            VariantChangeProgress(
                "comparing_variants", {"from": current_variant, "to": new_variant}
            )
        )
        diff = diff_variants(current_contents, new_contents)

        if gate is not None:
            summary = VariantChangeConfirmation(
                from_variant=current_variant,
                to_variant=new_variant,
                files_to_add=len(diff.to_add),
                files_to_remove=len(diff.to_remove),
                direction=result.direction,
            )
            if not gate.confirm(summary):
                result.cancelled = True
                result.error = "Upgrade cancelled by user"
                return result

        sink.report(VariantChangeProgress("creating_backup"))
        backup = self.engine.create_backup(target_path, label="upgrade-backup")
        if backup is None:
            result.error = f"Could not create backup of {target_path}; nothing was changed"
            return result
        result.backup_path = backup.backup_path

        try:
            if diff.to_remove:
                sink.report(VariantChangeProgress("removing_files", {"count": len(diff.to_remove)}))
                result.files_removed = self._remove_items(manager, manifest, diff.to_remove, sink)

            if diff.to_add:
                sink.report(VariantChangeProgress("adding_files", {"count": len(diff.to_add)}))
                result.files_added = self._add_items(target_path, diff.to_add, sink)

            for category in CATEGORIES:
                (target_path / category).mkdir(parents=True, exist_ok=True)

            sink.report(VariantChangeProgress("updating_manifest"))
            new_manifest = build_manifest(
                tool,
                new_variant,
                target_path,
                new_contents,
                self.resolver.size(tool, new_variant),
                self.resolver.metadata(tool, new_variant),
                template=self.resolver.manifest_template(tool),
            )
            manager.save(new_manifest)
        except (OSError, ContentResolutionError) as e:
            result.error = str(e)
            self.log.error(
                "Variant change of %s failed; backup kept at %s", tool, result.backup_path
            )
            return result

        sink.report(VariantChangeProgress("verifying"))
        result.verification = verify_installation(tool, target_path)
        if not result.verification.valid:
            result.error = "Verification failed after upgrade"
            self.log.error(
                "Verification failed after changing %s to %s; backup kept at %s",
                tool,
                new_variant,
                result.backup_path,
            )
            return result

        result.success = True
        sink.report(VariantChangeProgress("complete", {"success": True}))
        self.log.info(
            "%s changed from %s to %s (%d added, %d removed)",
            tool,
            current_variant,
            new_variant,
            result.files_added,
            result.files_removed,
        )
        return result

    def _remove_items(
        self,
        manager: ManifestManager,
        manifest: InstallManifest,
        items: list[VariantItem],
        sink: ProgressSink,
    ) -> int:
        """Remove items the manifest lists; anything else is left alone."""
        removed = 0
        for item in items:
            name = stored_name(item.category, item.name)
            if name not in manifest.items(item.category):
                self.log.debug("Keeping %s/%s (not installed by akit)", item.category, item.name)
                continue

            path = item_path(manager.category_dir(manifest, item.category), item.category, name)
            if not path.exists():
                continue

            remove_path(path)
            removed += 1
            sink.report(
                VariantChangeProgress(
                    "removing_file", {"file": item.name, "category": item.category}
                )
            )

        for category in CATEGORIES:
            prune_empty_directories(manager.category_dir(manifest, category), include_root=False)
        return removed

    def _add_items(self, target_path: Path, items: list[VariantItem], sink: ProgressSink) -> int:
        added = 0
        for item in items:
            if item.source is None:
                continue
            dest = target_path / item.category / item.name
            if item.source.is_dir():
                copy_directory(item.source, dest)
            else:
                copy_file(item.source, dest)
            added += 1
            sink.report(
                VariantChangeProgress("adding_file", {"file": item.name, "category": item.category})
            )
        return added
