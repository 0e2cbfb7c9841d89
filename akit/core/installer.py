"""Installation orchestrator.

This module contains the InstallationEngine which installs tool content
one tool at a time, checkpointing every copied file to the state ledger
so an interrupted run can resume, and rolling back partially written
installations when a tool fails.

Rollback picks the most precise source of truth available:

1. the in-memory session log of files written by this install,
2. the manifest at the target (e.g. after a restart),
3. a backup of the target taken before the install began.
"""

import shutil
import traceback
from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from akit.config.schemas import CATEGORIES, Category
from akit.config.settings import InstallerSettings
from akit.core.manifest import ManifestCorruptError, ManifestManager, build_manifest
from akit.core.paths import PathValidator
from akit.core.progress import (
    ConfirmationGate,
    InstallProgress,
    NullProgressSink,
    ProgressSink,
    percentage,
)
from akit.core.resolver import ContentResolutionError, ContentResolver, ResolvedContent
from akit.core.state import StateLedger, StateNotInitializedError
from akit.core.uninstaller import Uninstaller, UninstallResult
from akit.core.variants import VariantChanger, VariantChangeResult
from akit.core.verification import VerificationReport, verify_installation
from akit.utils.filesystem import (
    copy_directory,
    copy_file,
    ensure_directory,
    iso_timestamp,
    path_timestamp,
    prune_empty_directories,
    remove_path,
    unique_path,
    walk_files,
)


class InvalidPackageError(Exception):
    """The content resolver reported a tool's package as unusable."""

    def __init__(self, message: str, tool: str | None = None):
        self.tool = tool
        super().__init__(message)


class InstallFileSystemError(Exception):
    """A filesystem operation failed while installing a tool."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)


@dataclass
class FileEntry:
    """One file to copy, produced by the pre-scan."""

    source_path: Path
    relative_path: str
    size: int
    category: Category


@dataclass
class SessionLog:
    """Files written by the install currently in progress."""

    tool: str
    target_path: Path
    installed_files: list[Path] = field(default_factory=list)


@dataclass
class BackupRecord:
    """A full copy of a target directory taken before it was modified."""

    original_path: Path
    backup_path: Path
    timestamp: str


@dataclass
class RollbackLogEntry:
    """Outcome of one rollback attempt.

    ``strategy`` names the source of truth used: "session", "manifest",
    "backup", or "none" when nothing could be rolled back.
    """

    tool: str
    target_path: Path
    files_removed: int
    errors: list[str]
    timestamp: str
    strategy: str = "none"
    files_restored: int = 0


@dataclass
class InstallLogEntry:
    """A successful tool installation."""

    tool: str
    variant: str
    source: Path
    target: Path
    timestamp: str


@dataclass
class ToolInstallResult:
    """Result of installing a single tool."""

    tool_id: str
    variant: str
    target_path: Path
    success: bool
    files_installed: int = 0
    files_skipped: int = 0
    bytes_installed: int = 0
    manifest_path: Path | None = None
    backup_path: Path | None = None
    error: str | None = None
    error_detail: str | None = None
    rollback: RollbackLogEntry | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class FailedInstall:
    tool_id: str
    error: str


@dataclass
class BatchResult:
    """Outcome of a multi-tool installation."""

    successful: list[str] = field(default_factory=list)
    failed: list[FailedInstall] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    results: list[ToolInstallResult] = field(default_factory=list)

    @property
    def all_successful(self) -> bool:
        return not self.failed


@dataclass
class InstallationSummary:
    installations: list[InstallLogEntry]
    backups: list[BackupRecord]
    rollbacks: list[RollbackLogEntry]
    total_tools: int
    timestamp: str


class InstallationEngine:
    """Installs, rolls back, verifies, uninstalls, and changes tool variants.

    The engine owns the in-memory audit logs (installations, backups,
    rollbacks) for the lifetime of the process. Persistent progress goes
    through the state ledger; everything else it needs is injected.
    """

    def __init__(
        self,
        settings: InstallerSettings,
        resolver: ContentResolver,
        path_validator: PathValidator,
        ledger: StateLedger | None = None,
    ):
        """Initialize the engine.

        Args:
            settings: Runtime settings
            resolver: Content resolver for tool packages
            path_validator: Path validator for install targets
            ledger: State ledger (defaults to the configured state file)
        """
        self.settings = settings
        self.resolver = resolver
        self.path_validator = path_validator
        self.ledger = ledger or StateLedger.from_settings(settings)
        self.log = settings.get_logger("installer")
        self._session_log: SessionLog | None = None
        self._installation_log: list[InstallLogEntry] = []
        self._backup_log: list[BackupRecord] = []
        self._rollback_log: list[RollbackLogEntry] = []

    # =========================================================================
    # Logs
    # =========================================================================

    @property
    def session_log(self) -> SessionLog | None:
        """Files written by the install in progress (None between installs)."""
        return self._session_log

    @property
    def installation_log(self) -> list[InstallLogEntry]:
        return list(self._installation_log)

    @property
    def backup_log(self) -> list[BackupRecord]:
        return list(self._backup_log)

    @property
    def rollback_log(self) -> list[RollbackLogEntry]:
        return list(self._rollback_log)

    def installation_summary(self) -> InstallationSummary:
        """Aggregate everything this engine has done so far."""
        return InstallationSummary(
            installations=self.installation_log,
            backups=self.backup_log,
            rollbacks=self.rollback_log,
            total_tools=len(self._installation_log),
            timestamp=iso_timestamp(),
        )

    # =========================================================================
    # Multi-tool installation
    # =========================================================================

    def install_many(
        self,
        variant: str,
        tools: Sequence[str],
        paths: dict[str, str],
        progress: ProgressSink | None = None,
        resume: bool = False,
    ) -> BatchResult:
        """Install several tools, continuing past individual failures.

        Tools that the ledger already records as completed or failed are
        skipped; failed tools are not retried. The ledger is cleared when
        the run ends without failures and kept for a later resume otherwise.

        Args:
            variant: Variant to install
            tools: Tools to install, in order
            paths: Target path for each tool
            progress: Progress sink for file copy events
            resume: Continue the ledger's existing record instead of starting fresh

        Returns:
            BatchResult listing successful, failed, and skipped tools

        Raises:
            StateNotInitializedError: If resuming without a loadable record
        """
        results = BatchResult()

        if not resume:
            self.ledger.init(variant, tools, paths)
            self.ledger.persist(stage="initializing")
        elif self.ledger.state is None and self.ledger.load() is None:
            raise StateNotInitializedError("No interrupted installation to resume")

        self.log.info("Installing %s variant for %d tool(s)", variant, len(tools))

        for tool in tools:
            state = self.ledger.state
            if state is None:
                raise StateNotInitializedError("Installation state was lost")

            if tool in state.completed_tools:
                self.log.info("Skipping %s (already completed)", tool)
                results.skipped.append(tool)
                continue
            if tool in state.failed_tool_ids:
                self.log.info("Skipping %s (previously failed)", tool)
                results.skipped.append(tool)
                continue

            tool_progress = state.current_tool_progress
            completed_files = tool_progress.files_completed if tool_progress.tool_id == tool else ()
            self.ledger.begin_tool(tool)

            target = paths.get(tool)
            if not target:
                result = ToolInstallResult(
                    tool_id=tool,
                    variant=variant,
                    target_path=Path(),
                    success=False,
                    error=f"No target path configured for {tool}",
                )
            else:
                result = self.install_one(
                    tool, variant, target, progress=progress, completed_files=completed_files
                )
            results.results.append(result)

            if result.success:
                self.ledger.advance_on_success()
                results.successful.append(tool)
            else:
                error = result.error or "Unknown error"
                self.ledger.advance_on_failure(error, detail=result.error_detail)
                results.failed.append(FailedInstall(tool_id=tool, error=error))

        if not results.failed:
            self.ledger.clear()

        self.log.info(
            "Installation finished: %d succeeded, %d failed, %d skipped",
            len(results.successful),
            len(results.failed),
            len(results.skipped),
        )
        return results

    def resume(self, progress: ProgressSink | None = None) -> BatchResult:
        """Resume the interrupted installation recorded in the ledger.

        Raises:
            StateNotInitializedError: If there is nothing to resume
        """
        state = self.ledger.load()
        if state is None:
            raise StateNotInitializedError("No interrupted installation to resume")
        return self.install_many(
            state.variant, list(state.tools), dict(state.paths), progress=progress, resume=True
        )

    # =========================================================================
    # Single-tool installation
    # =========================================================================

    def install_one(
        self,
        tool: str,
        variant: str,
        target_path: str | Path,
        progress: ProgressSink | None = None,
        completed_files: Collection[str] = (),
    ) -> ToolInstallResult:
        """Install one tool's variant into a target directory.

        Failures never raise: the partially written target is rolled back
        and the returned result carries the error.

        Args:
            tool: Tool identifier
            variant: Variant to install
            target_path: Installation directory
            progress: Progress sink for file copy events
            completed_files: Relative paths already copied by an interrupted
                run; those still present with the expected size are not
                copied again

        Returns:
            ToolInstallResult describing the outcome
        """
        sink = progress or NullProgressSink()
        target = self.path_validator.expand(target_path)
        result = ToolInstallResult(tool_id=tool, variant=variant, target_path=target, success=False)
        self.log.info("Installing %s %s package to %s", tool, variant, target)

        # Validation never touches the target, so failures here need no rollback
        try:
            validation = self.resolver.validate(tool, variant)
            if not validation.valid:
                raise InvalidPackageError(
                    f"Invalid package: {'; '.join(validation.issues)}", tool=tool
                )
            contents = self.resolver.resolve(tool, variant)
            size = self.resolver.size(tool, variant)
            metadata = self.resolver.metadata(tool, variant)
        except (InvalidPackageError, ContentResolutionError) as e:
            return self._fail(result, e)

        backup: BackupRecord | None = None
        existing = self.path_validator.check_existing(target)
        if existing.exists or existing.has_content:
            self.log.info("Existing content found at %s, creating backup", target)
            backup = self.create_backup(target)
            if backup is None:
                result.warnings.append(f"Could not back up existing content at {target}")
            else:
                result.backup_path = backup.backup_path

        self._session_log = SessionLog(tool=tool, target_path=target)
        try:
            for category in CATEGORIES:
                ensure_directory(target / category)

            entries = self.scan_contents(contents)
            total_files = len(entries)
            total_bytes = sum(entry.size for entry in entries)
            already_copied = set(completed_files)
            files_done = 0
            bytes_done = 0

            for entry in entries:
                dest = target / entry.relative_path
                if entry.relative_path in already_copied and self._is_intact(dest, entry.size):
                    self._session_log.installed_files.append(dest)
                    result.files_skipped += 1
                else:
                    try:
                        copy_file(entry.source_path, dest)
                    except OSError as e:
                        raise InstallFileSystemError(
                            f"Failed to copy {entry.relative_path}: {e}", path=dest
                        ) from e
                    self._session_log.installed_files.append(dest)
                    self._checkpoint(tool, entry, total_files, total_bytes)
                    result.files_installed += 1
                    result.bytes_installed += entry.size

                files_done += 1
                bytes_done += entry.size
                sink.report(
                    InstallProgress(
                        current_file=entry.relative_path,
                        files_completed=files_done,
                        total_files=total_files,
                        percentage=percentage(files_done, total_files),
                        bytes_transferred=bytes_done,
                        total_bytes=total_bytes,
                    )
                )

            manifest = build_manifest(
                tool,
                variant,
                target,
                contents,
                size,
                metadata,
                template=self.resolver.manifest_template(tool),
            )
            try:
                manifest_path = ManifestManager(target).save(manifest)
            except OSError as e:
                raise InstallFileSystemError(f"Failed to write manifest: {e}", path=target) from e
            self._session_log.installed_files.append(manifest_path)
            result.manifest_path = manifest_path

        except Exception as e:
            result.rollback = self.rollback(tool, target, backup=backup)
            return self._fail(result, e)

        finally:
            self._session_log = None

        self._installation_log.append(
            InstallLogEntry(
                tool=tool,
                variant=variant,
                source=self._package_source(tool),
                target=target,
                timestamp=iso_timestamp(),
            )
        )
        result.success = True
        self.log.info(
            "%s installed successfully (%d files copied, %d already present)",
            tool,
            result.files_installed,
            result.files_skipped,
        )
        return result

    def scan_contents(self, contents: ResolvedContent) -> list[FileEntry]:
        """Flatten resolved content into the ordered list of files to copy.

        Single files map to ``<category>/<name>``; skill directories are
        walked so every file maps to ``<category>/<skill>/<relative path>``.

        Args:
            contents: Resolved variant content

        Returns:
            FileEntry list in category order
        """
        entries: list[FileEntry] = []
        for category in CATEGORIES:
            for source in contents.paths(category):
                if source.is_dir():
                    for file_path, relative in walk_files(source):
                        entries.append(
                            FileEntry(
                                source_path=file_path,
                                relative_path=f"{category}/{source.name}/{relative.as_posix()}",
                                size=file_path.stat().st_size,
                                category=category,
                            )
                        )
                else:
                    entries.append(
                        FileEntry(
                            source_path=source,
                            relative_path=f"{category}/{source.name}",
                            size=source.stat().st_size,
                            category=category,
                        )
                    )
        return entries

    def _checkpoint(self, tool: str, entry: FileEntry, total_files: int, total_bytes: int) -> None:
        """Record a copied file in the ledger when a batch is tracking this tool."""
        state = self.ledger.state
        if state is None or state.current_tool != tool:
            return
        self.ledger.checkpoint_file(entry.relative_path, entry.size, total_files, total_bytes)

    @staticmethod
    def _is_intact(path: Path, size: int) -> bool:
        try:
            return path.is_file() and path.stat().st_size == size
        except OSError:
            return False

    def _package_source(self, tool: str) -> Path:
        package_dir = getattr(self.resolver, "package_dir", None)
        return package_dir(tool) if callable(package_dir) else Path(tool)

    def _fail(self, result: ToolInstallResult, error: BaseException) -> ToolInstallResult:
        result.success = False
        result.error = str(error) or error.__class__.__name__
        result.error_detail = "".join(traceback.format_exception(error))
        self.log.error("Failed to install %s: %s", result.tool_id, result.error)
        return result

    # =========================================================================
    # Backup and rollback
    # =========================================================================

    def create_backup(self, target_path: Path, label: str = "backup") -> BackupRecord | None:
        """Copy a target directory to ``<target>.<label>.<timestamp>``.

        Backup failures are logged and reported as None; they never stop
        the operation that asked for the backup.

        Args:
            target_path: Directory to back up
            label: Backup kind ("backup", "uninstall-backup", "upgrade-backup")

        Returns:
            BackupRecord, or None if the backup could not be made
        """
        if not target_path.is_dir():
            self.log.warning("Could not create backup of %s: not a directory", target_path)
            return None

        backup_path = unique_path(
            target_path.with_name(f"{target_path.name}.{label}.{path_timestamp()}")
        )
        try:
            copy_directory(target_path, backup_path)
        except OSError as e:
            self.log.warning("Could not create backup of %s: %s", target_path, e)
            return None

        record = BackupRecord(
            original_path=target_path, backup_path=backup_path, timestamp=iso_timestamp()
        )
        self._backup_log.append(record)
        self.log.info("Backup created: %s", backup_path)
        return record

    def restore_from_backup(self, target_path: Path, backup_path: Path) -> int:
        """Replace a target directory with a backup copy.

        Args:
            target_path: Directory to replace
            backup_path: Backup to restore

        Returns:
            Number of files restored

        Raises:
            FileNotFoundError: If the backup doesn't exist
        """
        if not backup_path.is_dir():
            raise FileNotFoundError(f"Backup not found: {backup_path}")
        remove_path(target_path)
        restored = copy_directory(backup_path, target_path)
        self.log.info("Restored %s from %s", target_path, backup_path)
        return restored

    def rollback(
        self, tool: str, target_path: str | Path, backup: BackupRecord | None = None
    ) -> RollbackLogEntry:
        """Undo a partial installation.

        Removal failures are collected, never raised, so one stubborn file
        doesn't leave the rest of the installation in place. Only the given
        backup is restored from; backups taken by earlier operations on the
        same target are never consulted.

        Args:
            tool: Tool identifier
            target_path: Installation directory
            backup: Backup taken by the attempt being undone, if any

        Returns:
            The rollback log entry (also appended to rollback_log)
        """
        target = self.path_validator.expand(target_path)
        entry = RollbackLogEntry(
            tool=tool, target_path=target, files_removed=0, errors=[], timestamp=iso_timestamp()
        )
        if backup is not None and not backup.backup_path.is_dir():
            self.log.warning("Backup %s no longer exists", backup.backup_path)
            backup = None
        session = self._session_log
        self.log.info("Rolling back %s installation at %s", tool, target)

        try:
            if session is not None and session.target_path == target:
                entry.strategy = "session"
                self._rollback_session(session, entry)
                if backup is not None:
                    entry.files_restored = self._restore_missing(backup.backup_path, target)
            elif not self._rollback_manifest(target, entry):
                if backup is not None:
                    entry.strategy = "backup"
                    entry.files_restored = self.restore_from_backup(target, backup.backup_path)
                else:
                    self.log.warning(
                        "No session log, manifest, or backup for %s; nothing rolled back", target
                    )
        except OSError as e:
            entry.errors.append(f"Rollback failed: {e}")

        self._rollback_log.append(entry)
        if entry.errors:
            self.log.warning("Rollback completed with %d error(s)", len(entry.errors))
        else:
            self.log.info(
                "Rollback completed (%s): removed %d, restored %d",
                entry.strategy,
                entry.files_removed,
                entry.files_restored,
            )
        return entry

    def _rollback_session(self, session: SessionLog, entry: RollbackLogEntry) -> None:
        # Reverse order removes the manifest (written last) first
        for path in reversed(session.installed_files):
            try:
                if path.exists():
                    path.unlink()
                    entry.files_removed += 1
            except OSError as e:
                entry.errors.append(f"Failed to remove {path}: {e}")
        self.prune_install_tree(session.target_path)

    def _rollback_manifest(self, target: Path, entry: RollbackLogEntry) -> bool:
        """Remove what the target's manifest lists. Returns False if there is no usable manifest."""
        manager = ManifestManager(target)
        if not manager.exists():
            return False
        try:
            manifest = manager.load()
        except ManifestCorruptError as e:
            self.log.warning("Could not read manifest for rollback: %s", e)
            return False

        entry.strategy = "manifest"
        for item in manager.expected_items(manifest):
            try:
                if item.path.exists():
                    remove_path(item.path)
                    entry.files_removed += 1
            except OSError as e:
                entry.errors.append(f"Failed to remove {item.path}: {e}")

        try:
            manager.manifest_path.unlink()
            entry.files_removed += 1
        except OSError as e:
            entry.errors.append(f"Failed to remove manifest: {e}")

        self.prune_install_tree(target)
        return True

    def _restore_missing(self, backup_path: Path, target: Path) -> int:
        """Copy back every backed-up file that is no longer at the target."""
        restored = 0
        for file_path, relative in walk_files(backup_path):
            dest = target / relative
            if not dest.exists():
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(file_path, dest)
                restored += 1
        return restored

    def prune_install_tree(self, target: Path) -> list[Path]:
        """Remove empty category directories, then the target if it is empty."""
        removed: list[Path] = []
        for category in CATEGORIES:
            removed.extend(prune_empty_directories(target / category))
        try:
            if target.is_dir() and not any(target.iterdir()):
                target.rmdir()
                removed.append(target)
        except OSError as e:
            self.log.debug("Could not remove %s: %s", target, e)
        return removed

    # =========================================================================
    # Manifest-driven operations
    # =========================================================================

    def verify(self, tool: str, target_path: str | Path) -> VerificationReport:
        """Check an installation against its manifest."""
        return verify_installation(tool, self.path_validator.expand(target_path))

    def uninstall(
        self,
        tool: str,
        target_path: str | Path,
        gate: ConfirmationGate | None = None,
        progress: ProgressSink | None = None,
    ) -> UninstallResult:
        """Remove exactly what a tool's manifest lists."""
        return Uninstaller(self).uninstall(
            tool, self.path_validator.expand(target_path), gate=gate, progress=progress
        )

    def change_variant(
        self,
        tool: str,
        new_variant: str,
        target_path: str | Path,
        gate: ConfirmationGate | None = None,
        progress: ProgressSink | None = None,
    ) -> VariantChangeResult:
        """Upgrade or downgrade an installed tool to another variant."""
        return VariantChanger(self).change_variant(
            tool,
            new_variant,
            self.path_validator.expand(target_path),
            gate=gate,
            progress=progress,
        )
