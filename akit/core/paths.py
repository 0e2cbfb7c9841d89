"""Install path handling.

The installer asks a PathValidator two questions: what absolute directory
does a user-supplied path mean, and is there already an installation
there. LocalPathValidator also enforces that targets stay inside the
user's home directory (or the system temp directory) and probes
writability and free space before an install starts.
"""

import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from akit.config.schemas import InstallManifest
from akit.config.settings import InstallerSettings
from akit.core.manifest import ManifestCorruptError, ManifestManager, ManifestMissingError
from akit.tools import get_tool

logger = logging.getLogger("akit.paths")

WRITE_PROBE_NAME = ".akit-write-test"


@dataclass
class ExistingInstallation:
    """What is already present at an install target.

    Attributes:
        exists: A readable manifest was found
        path: Expanded target path
        manifest: The manifest, when one was found
        has_content: The target directory exists and is not empty
        error: Why an existing manifest could not be read
    """

    exists: bool
    path: Path
    manifest: InstallManifest | None = None
    has_content: bool = False
    error: str | None = None


@dataclass
class PathCheck:
    """Result of sanitizing or probing a path."""

    valid: bool
    path: Path
    error: str | None = None


@dataclass
class DiskSpace:
    """Disk capacity of the filesystem holding a path."""

    path: Path
    total: int = 0
    free: int = 0
    error: str | None = None


class PathValidator(ABC):
    """Resolves install targets and reports on what they hold."""

    @abstractmethod
    def expand(self, path: str | Path) -> Path:
        """Expand a user-supplied path into an absolute path."""
        ...

    @abstractmethod
    def check_existing(self, path: str | Path) -> ExistingInstallation:
        """Report whether an installation already exists at a path."""
        ...


class LocalPathValidator(PathValidator):
    """Path validator for the local filesystem."""

    def __init__(self, settings: InstallerSettings) -> None:
        self.settings = settings
        self.home_dir = settings.home_dir
        self.log = settings.get_logger("paths")

    def expand(self, path: str | Path) -> Path:
        """Expand ``~`` against the configured home and make the path absolute.

        Args:
            path: Path as given by the user or a settings file

        Returns:
            Absolute path
        """
        text = str(path)
        if text.startswith("~"):
            return (self.home_dir / text[1:].lstrip("/\\")).absolute()
        return Path(text).absolute()

    def sanitize(self, path: str | Path) -> PathCheck:
        """Expand and normalize a path, rejecting unsafe targets.

        A target must not contain null bytes and must resolve to a
        location inside the home directory or the system temp directory.

        Args:
            path: Path to sanitize

        Returns:
            PathCheck carrying the resolved path or the reason it was rejected
        """
        if "\0" in str(path):
            return PathCheck(
                valid=False,
                path=Path(str(path).replace("\0", "")),
                error="Path contains null bytes",
            )

        resolved = self.expand(path).resolve()
        allowed_roots = [self.home_dir.resolve(), Path(tempfile.gettempdir()).resolve()]
        if not any(resolved.is_relative_to(root) for root in allowed_roots):
            return PathCheck(
                valid=False,
                path=resolved,
                error=f"Path must be within home directory ({self.home_dir})",
            )

        return PathCheck(valid=True, path=resolved)

    def validate_writable(self, path: str | Path) -> PathCheck:
        """Ensure a target directory exists and can be written to.

        Creates the directory if needed and writes then removes a probe file.

        Args:
            path: Target directory

        Returns:
            PathCheck for the resolved directory
        """
        check = self.sanitize(path)
        if not check.valid:
            return check

        probe = check.path / WRITE_PROBE_NAME
        try:
            check.path.mkdir(parents=True, exist_ok=True)
            probe.write_text("probe", encoding="utf-8")
            probe.unlink()
        except OSError as e:
            self.log.debug("Write probe failed for %s: %s", check.path, e)
            return PathCheck(valid=False, path=check.path, error=str(e))

        return check

    def disk_space(self, path: str | Path) -> DiskSpace:
        """Report capacity of the filesystem a path lives on.

        The nearest existing ancestor is measured when the path itself
        doesn't exist yet.
        """
        target = self.expand(path)
        probe = target
        while not probe.exists() and probe != probe.parent:
            probe = probe.parent

        try:
            usage = shutil.disk_usage(probe)
        except OSError as e:
            return DiskSpace(path=target, error=str(e))

        return DiskSpace(path=target, total=usage.total, free=usage.free)

    def check_existing(self, path: str | Path) -> ExistingInstallation:
        target = self.expand(path)
        has_content = target.is_dir() and any(target.iterdir())

        try:
            manifest = ManifestManager(target).load()
        except ManifestMissingError:
            return ExistingInstallation(exists=False, path=target, has_content=has_content)
        except ManifestCorruptError as e:
            self.log.warning("Existing manifest at %s is unreadable: %s", target, e)
            return ExistingInstallation(
                exists=False, path=target, has_content=has_content, error=str(e)
            )

        return ExistingInstallation(
            exists=True, path=target, manifest=manifest, has_content=has_content
        )

    def default_path(self, tool: str) -> Path:
        """Get the install directory for a tool.

        A path configured in settings wins over the tool's default.

        Raises:
            ValueError: If the tool is not registered
        """
        configured = self.settings.paths.get(tool)
        if configured:
            return self.expand(configured)
        return get_tool(tool).default_path(self.home_dir)
