"""Abstract base class for tool profiles.

A tool profile describes one third-party tool akit can install content
for: its identifier, how to present it, and where its content lives by
default.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from akit.config.schemas import ToolMetadata


class ToolProfile(ABC):
    """Abstract base class for tool profiles."""

    @property
    @abstractmethod
    def metadata(self) -> ToolMetadata:
        """Get tool metadata.

        Returns:
            ToolMetadata describing this tool
        """
        ...

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def display_name(self) -> str:
        return self.metadata.display_name

    def default_path(self, home_dir: Path) -> Path:
        """Get the default install directory for this tool.

        Args:
            home_dir: User home directory

        Returns:
            Absolute install directory
        """
        return home_dir / self.metadata.default_path
