"""Manifest-driven installation verification."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from akit.config.schemas import CATEGORIES, InstallManifest
from akit.core.manifest import ManifestCorruptError, ManifestManager, ManifestMissingError
from akit.utils.filesystem import iso_timestamp

logger = logging.getLogger("akit.verification")


@dataclass
class VerificationIssue:
    """One problem found while verifying.

    Errors make an installation invalid; warnings (count mismatches) only
    suggest the target was modified outside akit.
    """

    severity: Literal["error", "warning"]
    message: str
    component: str
    item: str | None = None
    path: Path | None = None


@dataclass
class ComponentCheck:
    expected: int = 0
    found: int = 0
    missing: list[str] = field(default_factory=list)


@dataclass
class VerificationSummary:
    total_expected: int = 0
    total_found: int = 0
    total_missing: int = 0
    issue_count: int = 0
    warning_count: int = 0


@dataclass
class VerificationReport:
    """Result of checking an installation against its manifest."""

    valid: bool
    tool_id: str
    target_path: Path
    manifest: InstallManifest | None = None
    variant: str | None = None
    version: str | None = None
    issues: list[VerificationIssue] = field(default_factory=list)
    warnings: list[VerificationIssue] = field(default_factory=list)
    components: dict[str, ComponentCheck] = field(
        default_factory=lambda: {category: ComponentCheck() for category in CATEGORIES}
    )
    summary: VerificationSummary = field(default_factory=VerificationSummary)
    timestamp: str = field(default_factory=iso_timestamp)

    def add_error(self, issue: VerificationIssue) -> None:
        self.issues.append(issue)
        self.valid = False

    def summarize(self) -> VerificationSummary:
        """Recompute the aggregate counts."""
        checks = self.components.values()
        self.summary = VerificationSummary(
            total_expected=sum(c.expected for c in checks),
            total_found=sum(c.found for c in checks),
            total_missing=sum(len(c.missing) for c in checks),
            issue_count=len(self.issues),
            warning_count=len(self.warnings),
        )
        return self.summary


def verify_installation(tool: str, target_path: Path) -> VerificationReport:
    """Verify that everything a manifest lists is present.

    Each category directory the manifest records must exist, and every
    listed item must exist at the path reconstructed from its stored name.
    Recorded component counts that disagree with what was found are
    reported as warnings.

    Args:
        tool: Tool identifier
        target_path: Installation directory

    Returns:
        VerificationReport; ``valid`` is False iff any error was found
    """
    report = VerificationReport(valid=True, tool_id=tool, target_path=target_path)
    manager = ManifestManager(target_path)

    try:
        manifest = manager.load()
    except ManifestMissingError:
        report.add_error(
            VerificationIssue(
                severity="error", message="Manifest file not found", component="manifest"
            )
        )
        report.summarize()
        return report
    except ManifestCorruptError as e:
        report.add_error(VerificationIssue(severity="error", message=str(e), component="manifest"))
        report.summarize()
        return report

    report.manifest = manifest
    report.variant = manifest.variant
    report.version = manifest.version

    for category in CATEGORIES:
        recorded = manifest.category_path(category)
        if recorded and not Path(recorded).is_dir():
            report.add_error(
                VerificationIssue(
                    severity="error",
                    message=f"Missing component directory: {category}",
                    component=category,
                    path=Path(recorded),
                )
            )

    for item in manager.expected_items(manifest):
        check = report.components[item.category]
        check.expected += 1
        if item.path.exists():
            check.found += 1
            continue

        check.missing.append(item.name)
        report.add_error(
            VerificationIssue(
                severity="error",
                message=f"Missing {item.category[:-1]}: {item.name}",
                component=item.category,
                item=item.name,
                path=item.path,
            )
        )

    for category in CATEGORIES:
        expected_count = manifest.component_count(category)
        found = report.components[category].found
        if expected_count != found:
            report.warnings.append(
                VerificationIssue(
                    severity="warning",
                    message=f"{category} count mismatch: expected {expected_count}, found {found}",
                    component=category,
                )
            )

    report.summarize()
    logger.debug(
        "Verified %s at %s: %d issue(s), %d warning(s)",
        tool,
        target_path,
        report.summary.issue_count,
        report.summary.warning_count,
    )
    return report
