"""Content resolution for tool packages.

A content resolver answers "which files belong to this tool's variant?".
The installer only depends on the ContentResolver interface; the
PackageContentResolver reads packages laid out on disk as::

    <packages_dir>/<tool>/
        variants.json            lite / standard / pro selections
        manifest-template.json   optional extra manifest fields
        agents/<name>.md
        skills/<name>/...
        resources/<file>
        hooks/<file>
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from akit.config.parser import ConfigError, load_manifest_template, load_variant_config
from akit.config.schemas import (
    CATEGORIES,
    VARIANT_ORDER,
    WILDCARD,
    Category,
    VariantConfig,
    VariantDefinition,
)
from akit.config.settings import InstallerSettings
from akit.utils.filesystem import count_files, directory_size, format_size

logger = logging.getLogger("akit.resolver")


class ContentResolutionError(Exception):
    """A tool or variant cannot be resolved."""

    def __init__(self, message: str, tool: str | None = None, variant: str | None = None):
        self.tool = tool
        self.variant = variant
        super().__init__(message)


@dataclass
class ResolvedContent:
    """Concrete source paths selected by a variant."""

    agents: list[Path] = field(default_factory=list)
    skills: list[Path] = field(default_factory=list)
    resources: list[Path] = field(default_factory=list)
    hooks: list[Path] = field(default_factory=list)
    total_files: int = 0

    def paths(self, category: Category) -> list[Path]:
        """Get the selected paths for a category."""
        result: list[Path] = getattr(self, category)
        return result


@dataclass
class PackageSize:
    """Total size of a variant's content."""

    bytes: int
    formatted_size: str


@dataclass
class ValidationReport:
    """Result of validating a tool's variant content."""

    valid: bool
    issues: list[str] = field(default_factory=list)


@dataclass
class VariantMetadata:
    """Descriptive information about a variant."""

    name: str
    description: str = ""
    use_case: str = ""
    target_users: str = ""


class ContentResolver(ABC):
    """Maps (tool, variant) to the files that should be installed."""

    @abstractmethod
    def resolve(self, tool: str, variant: str) -> ResolvedContent:
        """Resolve the content selected by a variant.

        Args:
            tool: Tool identifier
            variant: Variant name

        Returns:
            Selected source paths per category

        Raises:
            ContentResolutionError: If the tool or variant is unknown
        """
        ...

    @abstractmethod
    def size(self, tool: str, variant: str) -> PackageSize:
        """Compute the total size of a variant's content."""
        ...

    @abstractmethod
    def validate(self, tool: str, variant: str) -> ValidationReport:
        """Check that a variant's content is complete and installable."""
        ...

    @abstractmethod
    def metadata(self, tool: str, variant: str) -> VariantMetadata:
        """Get descriptive information about a variant."""
        ...

    def manifest_template(self, tool: str) -> dict[str, Any]:
        """Extra fields to merge into generated manifests.

        Default implementation returns no extra fields.
        """
        return {}

    def list_variants(self, tool: str) -> list[str]:
        """List the variants available for a tool, least content first."""
        return list(VARIANT_ORDER)


class PackageContentResolver(ContentResolver):
    """Resolves variant content from package directories on disk."""

    def __init__(self, packages_dir: Path, log: logging.Logger | None = None) -> None:
        """Initialize the resolver.

        Args:
            packages_dir: Directory containing one package directory per tool
            log: Logger
        """
        self.packages_dir = packages_dir
        self.log = log or logger
        self._configs: dict[str, VariantConfig] = {}

    @classmethod
    def from_settings(cls, settings: InstallerSettings) -> "PackageContentResolver":
        """Create a resolver for the configured packages directory."""
        return cls(settings.packages_dir, log=settings.get_logger("resolver"))

    def package_dir(self, tool: str) -> Path:
        """Get the package directory for a tool."""
        return self.packages_dir / tool

    def list_tools(self) -> list[str]:
        """List tools that have a package with a variants.json."""
        if not self.packages_dir.is_dir():
            return []
        return sorted(
            p.name
            for p in self.packages_dir.iterdir()
            if p.is_dir() and (p / "variants.json").is_file()
        )

    def load_variant_config(self, tool: str) -> VariantConfig:
        """Load (and cache) a tool's variant definitions.

        Raises:
            ContentResolutionError: If the package or its variants.json is missing or invalid
        """
        if tool in self._configs:
            return self._configs[tool]

        package_dir = self.package_dir(tool)
        if not package_dir.is_dir():
            raise ContentResolutionError(f"Package not found for tool: {tool}", tool=tool)

        try:
            config = load_variant_config(package_dir)
        except ConfigError as e:
            raise ContentResolutionError(str(e), tool=tool) from e

        self._configs[tool] = config
        return config

    def variant_definition(self, tool: str, variant: str) -> VariantDefinition:
        """Get one variant's definition.

        Raises:
            ContentResolutionError: If the tool or variant is unknown
        """
        config = self.load_variant_config(tool)
        definition = config.variants.get(variant)
        if definition is None:
            available = ", ".join(config.variants)
            raise ContentResolutionError(
                f"Invalid variant '{variant}' for {tool}. Available variants: {available}",
                tool=tool,
                variant=variant,
            )
        return definition

    def available_content(self, tool: str) -> dict[Category, dict[str, Path]]:
        """Index everything a package ships, keyed by the name variants use.

        Agents are keyed by file stem, skills by directory name, resources
        and hooks by file name. Hidden entries are ignored.
        """
        package_dir = self.package_dir(tool)
        available: dict[Category, dict[str, Path]] = {}

        for category in CATEGORIES:
            category_dir = package_dir / category
            entries: dict[str, Path] = {}
            if category_dir.is_dir():
                for child in sorted(category_dir.iterdir(), key=lambda p: p.name):
                    if child.name.startswith("."):
                        continue
                    if category == "agents":
                        if child.is_file() and child.suffix == ".md":
                            entries[child.stem] = child
                    elif category == "skills":
                        if child.is_dir():
                            entries[child.name] = child
                    elif child.is_file():
                        entries[child.name] = child
            available[category] = entries

        return available

    def _select(self, tool: str, variant: str) -> tuple[ResolvedContent, list[str]]:
        """Apply a variant's selections to the available content."""
        definition = self.variant_definition(tool, variant)
        available = self.available_content(tool)
        content = ResolvedContent()
        missing: list[str] = []

        for category in CATEGORIES:
            selection = definition.selection(category)
            entries = available[category]
            selected = content.paths(category)

            if selection == WILDCARD:
                selected.extend(entries.values())
                continue

            for name in selection:
                key = name[: -len(".md")] if category == "agents" and name.endswith(".md") else name
                if key in entries:
                    selected.append(entries[key])
                else:
                    missing.append(f"{category}/{name} listed in variant '{variant}' not found")

        content.total_files = sum(
            count_files(path) for category in CATEGORIES for path in content.paths(category)
        )
        return content, missing

    def resolve(self, tool: str, variant: str) -> ResolvedContent:
        """Resolve a variant, skipping listed items that don't exist."""
        content, missing = self._select(tool, variant)
        for issue in missing:
            self.log.warning("%s: %s", tool, issue)
        self.log.debug(
            "Resolved %s/%s: %d agents, %d skills, %d resources, %d hooks",
            tool,
            variant,
            len(content.agents),
            len(content.skills),
            len(content.resources),
            len(content.hooks),
        )
        return content

    def size(self, tool: str, variant: str) -> PackageSize:
        content, _missing = self._select(tool, variant)
        total = sum(
            directory_size(path) for category in CATEGORIES for path in content.paths(category)
        )
        return PackageSize(bytes=total, formatted_size=format_size(total))

    def validate(self, tool: str, variant: str) -> ValidationReport:
        """Validate a variant without raising.

        A package is invalid if it or the variant doesn't exist, if
        variants.json is malformed, or if any listed item is missing.
        """
        try:
            _content, missing = self._select(tool, variant)
        except ContentResolutionError as e:
            return ValidationReport(valid=False, issues=[str(e)])

        return ValidationReport(valid=not missing, issues=missing)

    def metadata(self, tool: str, variant: str) -> VariantMetadata:
        definition = self.variant_definition(tool, variant)
        return VariantMetadata(
            name=definition.name,
            description=definition.description,
            use_case=definition.use_case,
            target_users=definition.target_users,
        )

    def manifest_template(self, tool: str) -> dict[str, Any]:
        try:
            return load_manifest_template(self.package_dir(tool))
        except ConfigError as e:
            self.log.warning("Ignoring invalid manifest template for %s: %s", tool, e)
            return {}

    def list_variants(self, tool: str) -> list[str]:
        config = self.load_variant_config(tool)
        ordered = [name for name in VARIANT_ORDER if name in config.variants]
        return ordered + [name for name in config.variants if name not in VARIANT_ORDER]
