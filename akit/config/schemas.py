"""Pydantic schemas for akit data files.

This module defines the data models for:
- variants.json (per-tool variant definitions inside a content package)
- manifest.json (record of one installed tool, inside its target directory)
- the installation state file (resumable progress ledger)
- config.yaml (optional user settings)

Files shared with other tooling use camelCase keys; Python attributes are
snake_case. Always dump with ``by_alias=True``.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# =============================================================================
# Common Types
# =============================================================================

Category = Literal["agents", "skills", "resources", "hooks"]
Stage = Literal["initializing", "installing", "completed", "failed"]

CATEGORIES: tuple[Category, ...] = ("agents", "skills", "resources", "hooks")

# Variant tiers from least to most content
VARIANT_ORDER: tuple[str, ...] = ("lite", "standard", "pro")

MANIFEST_FILE = "manifest.json"
MANIFEST_VERSION = "1.1.0"
WILDCARD = "*"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Variant Definitions (variants.json)
# =============================================================================

# A category selection is either "*" (everything available) or explicit names
Selection = Literal["*"] | list[str]


class VariantDefinition(CamelModel):
    """One content tier for a tool."""

    name: str
    description: str = ""
    use_case: str = ""
    target_users: str = ""
    agents: Selection = Field(default_factory=list)
    skills: Selection = Field(default_factory=list)
    resources: Selection = Field(default_factory=list)
    hooks: Selection = Field(default_factory=list)

    def selection(self, category: Category) -> Selection:
        """Get the selection for a category."""
        result: Selection = getattr(self, category)
        return result


class VariantConfig(BaseModel):
    """All variants defined for a tool."""

    variants: dict[str, VariantDefinition]

    @field_validator("variants")
    @classmethod
    def validate_required_variants(
        cls, v: dict[str, VariantDefinition]
    ) -> dict[str, VariantDefinition]:
        """Every tool must define every tier."""
        missing = [name for name in VARIANT_ORDER if name not in v]
        if missing:
            raise ValueError(f"Missing required variant(s): {', '.join(missing)}")
        return v


# =============================================================================
# Installation Manifest (<target>/manifest.json)
# =============================================================================


class VariantInfo(CamelModel):
    """Variant metadata copied into a manifest."""

    name: str
    description: str = ""
    use_case: str = ""
    target_users: str = ""


class ComponentCounts(BaseModel):
    """Number of installed items per category."""

    agents: int = 0
    skills: int = 0
    resources: int = 0
    hooks: int = 0


class CategoryItems(BaseModel):
    """Installed item names per category.

    Agents are stored without their .md extension, skills by directory
    name, resources and hooks by full file name.
    """

    agents: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)
    hooks: list[str] = Field(default_factory=list)


class CategoryPaths(BaseModel):
    """Absolute directory for each category."""

    agents: str | None = None
    skills: str | None = None
    resources: str | None = None
    hooks: str | None = None


class FileTotals(CamelModel):
    """Aggregate file information."""

    total: int = 0
    formatted_size: str = "0 B"


class InstallManifest(CamelModel):
    """Record of one tool installation.

    Stored at <target>/manifest.json. This is the source of truth for
    verify, uninstall, and variant changes once the installing process
    has exited. Unknown keys (e.g. from a package's manifest template)
    are preserved.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    tool: str
    variant: str
    version: str = MANIFEST_VERSION
    installed_at: str = ""
    variant_info: VariantInfo | None = None
    components: ComponentCounts = Field(default_factory=ComponentCounts)
    installed_files: CategoryItems = Field(default_factory=CategoryItems)
    paths: CategoryPaths = Field(default_factory=CategoryPaths)
    files: FileTotals = Field(default_factory=FileTotals)

    def items(self, category: Category) -> list[str]:
        """Get installed item names for a category."""
        result: list[str] = getattr(self.installed_files, category)
        return result

    def category_path(self, category: Category) -> str | None:
        """Get the recorded directory for a category."""
        result: str | None = getattr(self.paths, category)
        return result

    def component_count(self, category: Category) -> int:
        """Get the recorded item count for a category."""
        result: int = getattr(self.components, category)
        return result


# =============================================================================
# Installation State (resume ledger)
# =============================================================================


class FrozenCamelModel(BaseModel):
    """Immutable snapshot serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ToolProgress(FrozenCamelModel):
    """File-level progress for the tool currently being installed."""

    tool_id: str
    files_completed: tuple[str, ...] = ()
    total_files: int = 0
    bytes_transferred: int = 0
    total_bytes: int = 0

    @field_validator("tool_id")
    @classmethod
    def validate_tool_id(cls, v: str) -> str:
        if not v:
            raise ValueError("toolId cannot be empty")
        return v


class FailedTool(FrozenCamelModel):
    """A tool that failed to install."""

    tool_id: str
    error_message: str
    error_detail: str | None = None
    timestamp: str


class LastError(FrozenCamelModel):
    """Summary of the most recent failure."""

    message: str
    timestamp: str


class InstallationState(FrozenCamelModel):
    """Resumable multi-tool installation progress.

    Snapshots are immutable; the state ledger validates a new snapshot
    for every change so the accounting rules hold after each write.
    """

    schema_version: str
    session_id: str
    started_at: str
    last_updated: str
    variant: str
    tools: tuple[str, ...]
    paths: dict[str, str]
    current_tool: str | None
    completed_tools: tuple[str, ...]
    failed_tools: tuple[FailedTool, ...]
    current_tool_progress: ToolProgress
    stage: Stage
    last_error: LastError | None = None

    @model_validator(mode="after")
    def validate_accounting(self) -> "InstallationState":
        """A tool is never both completed and failed; terminal stages have no current tool."""
        failed_ids = {f.tool_id for f in self.failed_tools}
        overlap = failed_ids & set(self.completed_tools)
        if overlap:
            raise ValueError(f"Tools both completed and failed: {', '.join(sorted(overlap))}")
        if self.stage in ("completed", "failed") and self.current_tool is not None:
            raise ValueError(f"Stage '{self.stage}' cannot have a current tool")
        if self.stage == "completed" and self.failed_tools:
            raise ValueError("Stage 'completed' cannot have failed tools")
        return self

    @property
    def failed_tool_ids(self) -> list[str]:
        """Ids of failed tools, in failure order."""
        return [f.tool_id for f in self.failed_tools]

    def is_accounted_for(self, tool: str) -> bool:
        """Check whether a tool already completed or failed."""
        return tool in self.completed_tools or tool in self.failed_tool_ids


# =============================================================================
# Tool Metadata
# =============================================================================


class ToolMetadata(BaseModel):
    """Description of a supported tool."""

    name: str = Field(..., description="Tool identifier (e.g., 'claude')")
    display_name: str = Field(..., description="Human-readable tool name")
    description: str = ""
    default_path: str = Field(..., description="Install path relative to the home directory")


# =============================================================================
# User Settings (~/.akit/config.yaml)
# =============================================================================


class SettingsFile(BaseModel):
    """Optional user settings file."""

    model_config = ConfigDict(extra="forbid")

    packages_dir: str | None = None
    state_file: str | None = None
    default_variant: str | None = None
    paths: dict[str, str] = Field(default_factory=dict)

    @field_validator("default_variant")
    @classmethod
    def validate_default_variant(cls, v: str | None) -> str | None:
        if v is not None and v not in VARIANT_ORDER:
            raise ValueError(f"Unknown variant '{v}'. Expected one of: {', '.join(VARIANT_ORDER)}")
        return v
