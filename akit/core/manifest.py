"""Installation manifest management.

Each installed tool carries a manifest.json in its target directory listing
exactly what akit put there. Verify, uninstall, and variant changes only
ever act on items the manifest names, which is what keeps user-added files
safe.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from akit.config.parser import dump_json
from akit.config.schemas import (
    CATEGORIES,
    MANIFEST_FILE,
    MANIFEST_VERSION,
    Category,
    CategoryItems,
    CategoryPaths,
    ComponentCounts,
    FileTotals,
    InstallManifest,
    VariantInfo,
)
from akit.utils.filesystem import atomic_write_text, iso_timestamp

if TYPE_CHECKING:
    from akit.core.resolver import PackageSize, ResolvedContent, VariantMetadata


class ManifestMissingError(Exception):
    """No manifest exists at an install target."""

    def __init__(self, target_path: Path):
        self.target_path = target_path
        super().__init__(f"No installation found at {target_path}. Manifest file is missing.")


class ManifestCorruptError(Exception):
    """A manifest exists but cannot be parsed."""

    def __init__(self, message: str, manifest_path: Path):
        self.manifest_path = manifest_path
        super().__init__(message)


@dataclass
class ManifestItem:
    """One item a manifest says was installed."""

    category: Category
    name: str
    path: Path

    @property
    def is_directory(self) -> bool:
        return self.category == "skills"


def agent_name(path: Path | str) -> str:
    """Name an agent is stored under (file name without .md)."""
    name = Path(path).name
    return name[: -len(".md")] if name.endswith(".md") else name


def stored_name(category: Category, path: Path | str) -> str:
    """Name an item is stored under in a manifest."""
    if category == "agents":
        return agent_name(path)
    return Path(path).name


def item_path(category_dir: Path, category: Category, name: str) -> Path:
    """Reconstruct the on-disk path of a manifest item.

    Agents get a .md suffix; skills are directories; resources and hooks
    use their stored name verbatim.
    """
    if category == "agents":
        return category_dir / f"{name}.md"
    return category_dir / name


class ManifestManager:
    """Reads and writes the manifest of one install target."""

    def __init__(self, target_path: Path) -> None:
        """Initialize the manifest manager.

        Args:
            target_path: Installation directory of the tool
        """
        self.target_path = target_path

    @property
    def manifest_path(self) -> Path:
        """Get the manifest file path."""
        return self.target_path / MANIFEST_FILE

    def exists(self) -> bool:
        """Check whether a manifest file is present."""
        return self.manifest_path.is_file()

    def load(self) -> InstallManifest:
        """Load and validate the manifest.

        Returns:
            The parsed manifest

        Raises:
            ManifestMissingError: If there is no manifest
            ManifestCorruptError: If the manifest cannot be parsed
        """
        if not self.exists():
            raise ManifestMissingError(self.target_path)

        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestCorruptError(f"Manifest parsing error: {e}", self.manifest_path) from e
        except OSError as e:
            raise ManifestCorruptError(f"Cannot read manifest: {e}", self.manifest_path) from e

        try:
            return InstallManifest.model_validate(data)
        except ValidationError as e:
            raise ManifestCorruptError(f"Invalid manifest: {e}", self.manifest_path) from e

    def save(self, manifest: InstallManifest) -> Path:
        """Write the manifest atomically.

        Args:
            manifest: Manifest to write

        Returns:
            Path of the written manifest
        """
        atomic_write_text(
            self.manifest_path,
            dump_json(manifest.model_dump(mode="json", by_alias=True)),
        )
        return self.manifest_path

    def category_dir(self, manifest: InstallManifest, category: Category) -> Path:
        """Directory of a category, falling back to <target>/<category>."""
        recorded = manifest.category_path(category)
        return Path(recorded) if recorded else self.target_path / category

    def expected_items(self, manifest: InstallManifest) -> list[ManifestItem]:
        """List every item the manifest says was installed, in category order."""
        items: list[ManifestItem] = []
        for category in CATEGORIES:
            category_dir = self.category_dir(manifest, category)
            for name in manifest.items(category):
                items.append(
                    ManifestItem(
                        category=category,
                        name=name,
                        path=item_path(category_dir, category, name),
                    )
                )
        return items


def build_manifest(
    tool: str,
    variant: str,
    target_path: Path,
    contents: "ResolvedContent",
    size: "PackageSize",
    metadata: "VariantMetadata",
    template: dict[str, Any] | None = None,
) -> InstallManifest:
    """Build a manifest for a freshly installed or changed variant.

    Args:
        tool: Tool identifier
        variant: Installed variant
        target_path: Installation directory
        contents: Resolved variant content
        size: Computed package size
        metadata: Variant metadata
        template: Extra fields from the package's manifest template

    Returns:
        The manifest (not yet written)
    """
    counts = {category: len(contents.paths(category)) for category in CATEGORIES}
    names = {
        category: [stored_name(category, p) for p in contents.paths(category)]
        for category in CATEGORIES
    }
    # Template fields never override generated ones
    reserved = set(InstallManifest.model_fields)
    reserved.update(f.alias for f in InstallManifest.model_fields.values() if f.alias)
    data: dict[str, Any] = {k: v for k, v in (template or {}).items() if k not in reserved}
    data.update(
        tool=tool,
        variant=variant,
        version=MANIFEST_VERSION,
        installed_at=iso_timestamp(),
        variant_info=VariantInfo(
            name=metadata.name,
            description=metadata.description,
            use_case=metadata.use_case,
            target_users=metadata.target_users,
        ),
        components=ComponentCounts(**counts),
        installed_files=CategoryItems(**names),
        paths=CategoryPaths(
            **{category: str(target_path / category) for category in CATEGORIES}
        ),
        files=FileTotals(total=contents.total_files, formatted_size=size.formatted_size),
    )
    return InstallManifest.model_validate(data)
