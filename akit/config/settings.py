"""Runtime settings shared by every akit component.

Settings are built once (usually by the CLI) and passed to the components
that need them. Nothing reads the home directory or logger configuration
on its own.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from akit.config.parser import load_settings_file

STATE_FILE_NAME = ".akit-install-state.json"
SETTINGS_DIR_NAME = ".akit"


def _default_logger() -> logging.Logger:
    return logging.getLogger("akit")


@dataclass
class InstallerSettings:
    """Locations and collaborators for one akit run.

    Attributes:
        home_dir: User home directory used for defaults and ``~`` expansion
        state_file: Location of the resumable installation state file
        packages_dir: Directory holding one content package per tool
        config_file: Optional YAML settings file
        default_variant: Variant used when none is given
        paths: Per-tool install path overrides
        logger: Parent logger for all components
    """

    home_dir: Path
    state_file: Path
    packages_dir: Path
    config_file: Path
    default_variant: str = "standard"
    paths: dict[str, str] = field(default_factory=dict)
    logger: logging.Logger = field(default_factory=_default_logger)

    @classmethod
    def for_home(cls, home_dir: Path) -> "InstallerSettings":
        """Build default settings rooted at a home directory.

        Args:
            home_dir: Home directory

        Returns:
            Settings with every location derived from home_dir
        """
        settings_dir = home_dir / SETTINGS_DIR_NAME
        return cls(
            home_dir=home_dir,
            state_file=home_dir / STATE_FILE_NAME,
            packages_dir=settings_dir / "packages",
            config_file=settings_dir / "config.yaml",
        )

    def get_logger(self, name: str) -> logging.Logger:
        """Get a child logger of the configured parent logger."""
        return self.logger.getChild(name)


def _resolve_setting_path(value: str, home_dir: Path) -> Path:
    if value.startswith("~"):
        return home_dir / value[1:].lstrip("/\\")
    return Path(value)


def load_settings(
    home_dir: Path | None = None,
    config_file: Path | None = None,
    packages_dir: Path | None = None,
    state_file: Path | None = None,
) -> InstallerSettings:
    """Build settings from defaults, the settings file, and explicit overrides.

    Explicit arguments win over the settings file, which wins over defaults.

    Args:
        home_dir: Home directory (defaults to the current user's home)
        config_file: Settings file to read (defaults to ~/.akit/config.yaml)
        packages_dir: Override for the content packages directory
        state_file: Override for the state file location

    Returns:
        Resolved InstallerSettings

    Raises:
        ConfigError: If the settings file exists but is invalid
    """
    home = (home_dir or Path.home()).expanduser().resolve()
    settings = InstallerSettings.for_home(home)
    if config_file is not None:
        settings.config_file = config_file

    file_settings = load_settings_file(settings.config_file)
    if file_settings is not None:
        if file_settings.packages_dir:
            settings.packages_dir = _resolve_setting_path(file_settings.packages_dir, home)
        if file_settings.state_file:
            settings.state_file = _resolve_setting_path(file_settings.state_file, home)
        if file_settings.default_variant:
            settings.default_variant = file_settings.default_variant
        settings.paths = dict(file_settings.paths)

    if packages_dir is not None:
        settings.packages_dir = packages_dir
    if state_file is not None:
        settings.state_file = state_file

    return settings
