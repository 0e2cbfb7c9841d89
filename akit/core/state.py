"""Resumable installation state ledger.

The ledger owns a single state file describing a multi-tool installation:
which tools are done, which failed, and which files of the in-flight tool
have already been copied. It is written after every copied file so an
interrupted run can pick up exactly where it stopped.

Every write goes to a temp file that is renamed over the state file, so a
reader sees either the previous record or the new one, never a fragment.
Writes are best-effort: a failure is logged and the installation carries on.
Reads never raise on a damaged file; they report "no prior state".
"""

import json
import logging
import secrets
import time
import traceback
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from akit.config.parser import dump_json
from akit.config.schemas import (
    FailedTool,
    InstallationState,
    LastError,
    ToolProgress,
)
from akit.config.settings import InstallerSettings
from akit.core.progress import percentage
from akit.utils.filesystem import atomic_write_text, iso_timestamp

logger = logging.getLogger("akit.state")

Migration = Callable[[dict[str, Any]], dict[str, Any]]


class StateNotInitializedError(Exception):
    """A ledger operation was attempted before init() or a successful load()."""


class StateCorruptionError(Exception):
    """The on-disk state record is unreadable or structurally invalid."""


@dataclass
class ResumeSummary:
    """Read-only view of an interrupted installation."""

    session_id: str
    started_at: str
    last_updated: str
    variant: str
    stage: str
    total_tools: int
    completed_tools: int
    failed_tools: int
    remaining_tools: int
    current_tool: str | None
    files_completed: int
    total_files: int
    percent_complete: int
    completed_tools_list: list[str] = field(default_factory=list)
    failed_tools_list: list[str] = field(default_factory=list)


class StateSerializer:
    """Versioned (de)serializer for InstallationState.

    Records written by an older schema are upgraded through MIGRATIONS,
    keyed by the version they migrate *from*. A version with no migration
    is logged and validated as-is; structural validation decides whether it
    is usable.
    """

    SCHEMA_VERSION = "1.0.0"
    MIGRATIONS: dict[str, Migration] = {}

    def __init__(
        self,
        migrations: dict[str, Migration] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.migrations = dict(self.MIGRATIONS if migrations is None else migrations)
        self.log = log or logger

    def dumps(self, state: InstallationState) -> str:
        """Serialize a state snapshot to JSON text."""
        return dump_json(state.model_dump(mode="json", by_alias=True))

    def loads(self, text: str) -> InstallationState:
        """Parse, migrate, and validate a state record.

        Args:
            text: Raw state file contents

        Returns:
            Validated InstallationState

        Raises:
            StateCorruptionError: If the text is not a valid state record
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StateCorruptionError(f"State file is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise StateCorruptionError("State file must contain a JSON object")

        data = self.migrate(data)

        try:
            return InstallationState.model_validate(data)
        except ValidationError as e:
            raise StateCorruptionError(f"Invalid state structure: {e}") from e

    def migrate(self, data: dict[str, Any]) -> dict[str, Any]:
        """Apply migrations until the record reaches the current schema version."""
        seen: set[str] = set()
        version = data.get("schemaVersion")

        while version != self.SCHEMA_VERSION:
            migration = self.migrations.get(version) if isinstance(version, str) else None
            if migration is None or version in seen:
                self.log.warning(
                    "State file schema version mismatch (expected %s, got %s)",
                    self.SCHEMA_VERSION,
                    version,
                )
                break
            seen.add(version)
            self.log.info("Migrating state file from schema %s", version)
            data = migration(data)
            version = data.get("schemaVersion")

        return data


def _generate_session_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}"


class StateLedger:
    """Persists and advances the resumable installation record.

    This is the only component that touches the state file.
    """

    def __init__(
        self,
        state_file: Path,
        log: logging.Logger | None = None,
        serializer: StateSerializer | None = None,
    ) -> None:
        """Initialize the ledger.

        Args:
            state_file: Location of the state file
            log: Logger for best-effort failures
            serializer: State serializer (defaults to the current schema)
        """
        self._state_file = state_file
        self.log = log or logger
        self.serializer = serializer or StateSerializer(log=self.log)
        self._state: InstallationState | None = None

    @classmethod
    def from_settings(cls, settings: InstallerSettings) -> "StateLedger":
        """Create a ledger at the configured state file location."""
        return cls(settings.state_file, log=settings.get_logger("state"))

    @property
    def state(self) -> InstallationState | None:
        """Current in-memory snapshot, or None before init/load."""
        return self._state

    @property
    def state_file(self) -> Path:
        """Location of the state file."""
        return self._state_file

    def _require_state(self) -> InstallationState:
        if self._state is None:
            raise StateNotInitializedError(
                "Installation state not initialized. Call init() or load() first."
            )
        return self._state

    def init(self, variant: str, tools: Sequence[str], paths: dict[str, str]) -> InstallationState:
        """Start a fresh installation record.

        The record is held in memory; call persist() to write it.

        Args:
            variant: Selected variant
            tools: Tools to install, in order
            paths: Target path for each tool

        Returns:
            The new state snapshot

        Raises:
            ValueError: If no tools are given
        """
        if not tools:
            raise ValueError("At least one tool is required")

        now = iso_timestamp()
        self._state = InstallationState(
            schema_version=self.serializer.SCHEMA_VERSION,
            session_id=_generate_session_id(),
            started_at=now,
            last_updated=now,
            variant=variant,
            tools=tuple(tools),
            paths=dict(paths),
            current_tool=tools[0],
            completed_tools=(),
            failed_tools=(),
            current_tool_progress=ToolProgress(tool_id=tools[0]),
            stage="initializing",
            last_error=None,
        )
        return self._state

    def persist(self, **updates: Any) -> InstallationState:
        """Merge updates into the state and write it to disk.

        The write is atomic and best-effort: an I/O failure is logged and
        the in-memory state is still updated.

        Args:
            **updates: Field values to change (snake_case names)

        Returns:
            The new state snapshot

        Raises:
            StateNotInitializedError: If there is no state to update
        """
        current = self._require_state()
        merged = {**current.model_dump(), **updates, "last_updated": iso_timestamp()}
        self._state = InstallationState.model_validate(merged)

        try:
            atomic_write_text(self._state_file, self.serializer.dumps(self._state))
        except OSError as e:
            self.log.warning("Failed to save installation state: %s", e)

        return self._state

    def load(self) -> InstallationState | None:
        """Load the state record from disk.

        Returns:
            The loaded state, or None if the file is absent or unusable
        """
        if not self._state_file.exists():
            return None

        try:
            text = self._state_file.read_text(encoding="utf-8")
        except OSError as e:
            self.log.warning("Failed to read installation state: %s", e)
            return None

        try:
            self._state = self.serializer.loads(text)
        except StateCorruptionError as e:
            self.log.warning("Ignoring corrupted installation state: %s", e)
            return None

        return self._state

    def clear(self) -> None:
        """Delete the state file and forget the in-memory state."""
        for path in (self._state_file, self._state_file.with_name(f"{self._state_file.name}.tmp")):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                self.log.warning("Failed to clear state file %s: %s", path, e)
        self._state = None

    def checkpoint_file(
        self, relative_path: str, size: int, total_files: int, total_bytes: int
    ) -> InstallationState:
        """Record that one file of the current tool is durably copied.

        Args:
            relative_path: Path of the file relative to the install target
            size: File size in bytes
            total_files: Total files for the current tool
            total_bytes: Total bytes for the current tool

        Returns:
            The new state snapshot
        """
        state = self._require_state()
        progress = state.current_tool_progress
        new_progress = progress.model_copy(
            update={
                "files_completed": (*progress.files_completed, relative_path),
                "bytes_transferred": progress.bytes_transferred + size,
                "total_files": total_files,
                "total_bytes": total_bytes,
            }
        )
        return self.persist(stage="installing", current_tool_progress=new_progress)

    def begin_tool(self, tool: str) -> InstallationState:
        """Make tool the current tool, resetting progress if it changed.

        Args:
            tool: Tool about to be installed

        Returns:
            The state snapshot (unchanged if tool was already current)
        """
        state = self._require_state()
        if state.current_tool == tool and state.current_tool_progress.tool_id == tool:
            return state
        return self.persist(current_tool=tool, current_tool_progress=ToolProgress(tool_id=tool))

    def advance_on_success(self) -> InstallationState:
        """Mark the current tool completed and move to the next one.

        Returns:
            The new state snapshot
        """
        state = self._require_state()
        completed = state.completed_tools
        if state.current_tool is not None and state.current_tool not in completed:
            completed = (*completed, state.current_tool)

        return self.persist(
            completed_tools=completed,
            **self._advance(state, completed, state.failed_tools),
        )

    def advance_on_failure(
        self, error: BaseException | str, detail: str | None = None
    ) -> InstallationState:
        """Record the current tool as failed and move to the next one.

        Args:
            error: The failure (exception or message)
            detail: Extra detail; defaults to the exception's traceback

        Returns:
            The new state snapshot
        """
        state = self._require_state()
        now = iso_timestamp()

        if isinstance(error, BaseException):
            message = str(error) or error.__class__.__name__
            if detail is None and error.__traceback__ is not None:
                detail = "".join(traceback.format_exception(error))
        else:
            message = error

        failed = state.failed_tools
        if state.current_tool is not None and state.current_tool not in state.failed_tool_ids:
            failed = (
                *failed,
                FailedTool(
                    tool_id=state.current_tool,
                    error_message=message,
                    error_detail=detail,
                    timestamp=now,
                ),
            )

        return self.persist(
            failed_tools=failed,
            last_error=LastError(message=message, timestamp=now),
            **self._advance(state, state.completed_tools, failed),
        )

    def _advance(
        self,
        state: InstallationState,
        completed: tuple[str, ...],
        failed: tuple[FailedTool, ...],
    ) -> dict[str, Any]:
        """Compute the fields that move the ledger to the next tool."""
        failed_ids = {f.tool_id for f in failed}
        remaining = [t for t in state.tools if t not in completed and t not in failed_ids]

        if remaining:
            return {
                "current_tool": remaining[0],
                "current_tool_progress": ToolProgress(tool_id=remaining[0]),
            }

        return {
            "current_tool": None,
            "stage": "failed" if failed else "completed",
        }

    def resume_summary(self) -> ResumeSummary | None:
        """Summarize the in-memory state for display.

        Returns:
            ResumeSummary, or None if there is no state
        """
        state = self._state
        if state is None:
            return None

        completed = len(state.completed_tools)
        failed = len(state.failed_tools)
        progress = state.current_tool_progress
        files_completed = len(progress.files_completed)

        return ResumeSummary(
            session_id=state.session_id,
            started_at=state.started_at,
            last_updated=state.last_updated,
            variant=state.variant,
            stage=state.stage,
            total_tools=len(state.tools),
            completed_tools=completed,
            failed_tools=failed,
            remaining_tools=len(state.tools) - completed - failed,
            current_tool=state.current_tool,
            files_completed=files_completed,
            total_files=progress.total_files,
            percent_complete=percentage(files_completed, progress.total_files),
            completed_tools_list=list(state.completed_tools),
            failed_tools_list=state.failed_tool_ids,
        )

    def has_interrupted(self) -> bool:
        """Check whether a loadable, unfinished installation record exists."""
        state = self.load()
        return state is not None and state.stage != "completed"
