"""Progress reporting and confirmation interfaces.

Long-running operations report through a ProgressSink and ask a
ConfirmationGate before destructive steps. Both are injected; the
defaults report nothing and approve everything.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal


@dataclass
class InstallProgress:
    """Emitted after each file copied during an install."""

    current_file: str
    files_completed: int
    total_files: int
    percentage: int
    bytes_transferred: int
    total_bytes: int


@dataclass
class UninstallProgress:
    """Emitted after each manifest item is removed."""

    type: Literal["removing"]
    category: str
    name: str
    files_removed: int
    total_files: int
    percentage: int


@dataclass
class VariantChangeProgress:
    """Emitted at each stage of a variant change.

    ``stage`` is one of reading_manifest, comparing_variants,
    creating_backup, removing_files, removing_file, adding_files,
    adding_file, updating_manifest, verifying, complete.
    """

    stage: str
    details: dict[str, Any] = field(default_factory=dict)


ProgressEvent = InstallProgress | UninstallProgress | VariantChangeProgress


class ProgressSink(ABC):
    """Receives progress events from long-running operations."""

    @abstractmethod
    def report(self, event: ProgressEvent) -> None:
        """Handle one progress event."""
        ...


class NullProgressSink(ProgressSink):
    def report(self, event: ProgressEvent) -> None:
        pass


class RecordingProgressSink(ProgressSink):
    """Keeps every event in order, for callers that summarize afterwards."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def report(self, event: ProgressEvent) -> None:
        self.events.append(event)


@dataclass
class UninstallConfirmation:
    """What an uninstall is about to remove."""

    tool_id: str
    target_path: Path
    file_count: int
    variant: str
    components: dict[str, int]


@dataclass
class VariantChangeConfirmation:
    """What a variant change is about to add and remove."""

    from_variant: str
    to_variant: str
    files_to_add: int
    files_to_remove: int
    direction: str = "lateral"


Confirmation = UninstallConfirmation | VariantChangeConfirmation


class ConfirmationGate(ABC):
    """Approves or declines a destructive operation before it mutates anything."""

    @abstractmethod
    def confirm(self, summary: Confirmation) -> bool:
        """Return True to proceed, False to cancel."""
        ...


class AutoConfirm(ConfirmationGate):
    """Approves every request (non-interactive use)."""

    def confirm(self, summary: Confirmation) -> bool:
        return True


class AutoDecline(ConfirmationGate):
    def confirm(self, summary: Confirmation) -> bool:
        return False


def percentage(done: int, total: int) -> int:
    """Whole-number completion percentage, rounded half up (0 when total is 0)."""
    if total <= 0:
        return 0
    return int(done * 100 / total + 0.5)
