"""Manifest-driven uninstall.

Only items the manifest lists are removed. Anything a user added to the
target afterwards stays, along with the directories that hold it.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from akit.config.schemas import CATEGORIES
from akit.core.manifest import ManifestCorruptError, ManifestManager, ManifestMissingError
from akit.core.progress import (
    ConfirmationGate,
    NullProgressSink,
    ProgressSink,
    UninstallConfirmation,
    UninstallProgress,
    percentage,
)
from akit.utils.filesystem import count_files, iso_timestamp, remove_path

if TYPE_CHECKING:
    from akit.core.installer import InstallationEngine


@dataclass
class UninstallResult:
    """Outcome of an uninstall."""

    success: bool
    tool_id: str
    target_path: Path
    cancelled: bool = False
    files_removed: int = 0
    directories_removed: int = 0
    backup_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    timestamp: str = field(default_factory=iso_timestamp)


class Uninstaller:
    """Removes an installation using its manifest as the source of truth."""

    def __init__(self, engine: "InstallationEngine") -> None:
        self.engine = engine
        self.log = engine.settings.get_logger("uninstaller")

    def uninstall(
        self,
        tool: str,
        target_path: Path,
        gate: ConfirmationGate | None = None,
        progress: ProgressSink | None = None,
    ) -> UninstallResult:
        """Uninstall a tool from a target directory.

        The gate sees the full file count (skill directories counted
        recursively, manifest included) before anything is touched.
        Declining returns a cancelled result, not an error. A backup of
        the whole target is taken before removal.

        Args:
            tool: Tool identifier
            target_path: Installation directory
            gate: Confirmation gate; None means proceed without asking
            progress: Progress sink for removal events

        Returns:
            UninstallResult; missing or corrupt manifests are reported as errors
        """
        sink = progress or NullProgressSink()
        result = UninstallResult(success=False, tool_id=tool, target_path=target_path)
        manager = ManifestManager(target_path)

        try:
            manifest = manager.load()
        except (ManifestMissingError, ManifestCorruptError) as e:
            result.errors.append(str(e))
            self.log.error("Failed to uninstall %s: %s", tool, e)
            return result

        items = manager.expected_items(manifest)
        # Manifest itself counts as one file
        total_files = sum(count_files(item.path) for item in items) + 1

        if gate is not None:
            summary = UninstallConfirmation(
                tool_id=tool,
                target_path=target_path,
                file_count=total_files,
                variant=manifest.variant or "unknown",
                components={c: manifest.component_count(c) for c in CATEGORIES},
            )
            if not gate.confirm(summary):
                result.cancelled = True
                result.warnings.append("Uninstall cancelled by user")
                self.log.info("Uninstall of %s cancelled", tool)
                return result

        backup = self.engine.create_backup(target_path, label="uninstall-backup")
        if backup is None:
            result.warnings.append(f"Could not create backup of {target_path}")
        else:
            result.backup_path = backup.backup_path

        for item in items:
            if not item.path.exists():
                result.warnings.append(f"File not found: {item.path}")
                continue
            try:
                is_directory = item.path.is_dir()
                result.files_removed += remove_path(item.path)
                if is_directory:
                    result.directories_removed += 1
            except OSError as e:
                result.errors.append(f"Failed to remove {item.path}: {e}")
                continue

            self.log.debug("Removed %s/%s", item.category, item.name)
            sink.report(
                UninstallProgress(
                    type="removing",
                    category=item.category,
                    name=item.name,
                    files_removed=result.files_removed,
                    total_files=total_files,
                    percentage=percentage(result.files_removed, total_files),
                )
            )

        try:
            manager.manifest_path.unlink()
            result.files_removed += 1
            sink.report(
                UninstallProgress(
                    type="removing",
                    category="manifest",
                    name=manager.manifest_path.name,
                    files_removed=result.files_removed,
                    total_files=total_files,
                    percentage=100,
                )
            )
        except OSError as e:
            result.errors.append(f"Failed to remove manifest: {e}")

        result.directories_removed += len(self.engine.prune_install_tree(target_path))
        result.success = not result.errors

        if result.success:
            self.log.info(
                "%s uninstalled: %d file(s), %d director(ies) removed",
                tool,
                result.files_removed,
                result.directories_removed,
            )
        else:
            self.log.warning(
                "Uninstall of %s completed with %d error(s)", tool, len(result.errors)
            )
        return result
