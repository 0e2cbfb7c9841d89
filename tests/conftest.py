"""Shared fixtures for akit tests."""

import json
import shutil
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from akit.config.settings import InstallerSettings
from akit.core.installer import InstallationEngine
from akit.core.paths import LocalPathValidator
from akit.core.resolver import PackageContentResolver
from akit.core.state import StateLedger

AGENTS = [
    "master",
    "orchestrator",
    "scrum-master",
    "analyst",
    "architect",
    "developer",
    "qa",
    "product-owner",
    "ux-expert",
    "devops",
    "security",
    "reviewer",
    "writer",
]

SKILLS: dict[str, dict[str, str]] = {
    "testing": {
        "skill.md": "# Testing\n",
        "examples/unit.md": "Unit test example\n",
    },
    "refactoring": {
        "skill.md": "# Refactoring\n",
    },
    "documentation": {
        "skill.md": "# Documentation\n",
        "templates/readme.md": "# README template\n",
        "templates/nested/changelog.md": "# CHANGELOG template\n",
    },
}

RESOURCES = {
    "checklist.md": "- [ ] review\n",
    "style-guide.md": "Use short sentences.\n",
}

HOOKS = {
    "pre-commit.sh": "#!/bin/sh\nexit 0\n",
    "post-install.sh": "#!/bin/sh\necho done\n",
}

LITE_AGENTS = ["master", "orchestrator", "scrum-master"]
STANDARD_SKILLS = ["testing", "refactoring"]


def default_variants() -> dict[str, Any]:
    """variants.json content used by the synthetic packages."""
    return {
        "lite": {
            "name": "Lite",
            "description": "Core agents only",
            "useCase": "Trying things out",
            "targetUsers": "Beginners",
            "agents": list(LITE_AGENTS),
            "skills": [],
            "resources": "*",
            "hooks": "*",
        },
        "standard": {
            "name": "Standard",
            "description": "All agents with common skills",
            "useCase": "Day-to-day development",
            "targetUsers": "Most developers",
            "agents": "*",
            "skills": list(STANDARD_SKILLS),
            "resources": "*",
            "hooks": "*",
        },
        "pro": {
            "name": "Pro",
            "description": "Everything",
            "useCase": "Large teams",
            "targetUsers": "Power users",
            "agents": "*",
            "skills": "*",
            "resources": "*",
            "hooks": "*",
        },
    }


def write_package(
    packages_dir: Path, tool: str, variants: dict[str, Any] | None = None
) -> Path:
    """Write a synthetic content package for a tool.

    Args:
        packages_dir: Directory holding all packages
        tool: Tool identifier
        variants: variants.json content (defaults to default_variants())

    Returns:
        The package directory
    """
    package_dir = packages_dir / tool
    (package_dir / "agents").mkdir(parents=True, exist_ok=True)
    for name in AGENTS:
        (package_dir / "agents" / f"{name}.md").write_text(f"# {name}\n")

    for skill, files in SKILLS.items():
        for relative, content in files.items():
            path = package_dir / "skills" / skill / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)

    for category, files in (("resources", RESOURCES), ("hooks", HOOKS)):
        (package_dir / category).mkdir(parents=True, exist_ok=True)
        for name, content in files.items():
            (package_dir / category / name).write_text(content)

    (package_dir / "variants.json").write_text(json.dumps(variants or default_variants()))
    return package_dir


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory."""
    path = Path(tempfile.mkdtemp(prefix="akit_test_"))
    yield path
    if path.exists():
        shutil.rmtree(path)


@pytest.fixture
def home_dir(temp_dir: Path) -> Path:
    """A fake home directory."""
    home = temp_dir / "home"
    home.mkdir()
    return home


@pytest.fixture
def packages_dir(temp_dir: Path) -> Path:
    """Packages for claude and opencode."""
    packages = temp_dir / "packages"
    write_package(packages, "claude")
    write_package(packages, "opencode")
    return packages


@pytest.fixture
def make_package(packages_dir: Path) -> Callable[..., Path]:
    """Factory for extra packages with custom variants."""

    def factory(tool: str, variants: dict[str, Any] | None = None) -> Path:
        return write_package(packages_dir, tool, variants)

    return factory


@pytest.fixture
def settings(home_dir: Path, packages_dir: Path) -> InstallerSettings:
    """Settings rooted at the fake home."""
    result = InstallerSettings.for_home(home_dir)
    result.packages_dir = packages_dir
    return result


@pytest.fixture
def resolver(settings: InstallerSettings) -> PackageContentResolver:
    return PackageContentResolver.from_settings(settings)


@pytest.fixture
def path_validator(settings: InstallerSettings) -> LocalPathValidator:
    return LocalPathValidator(settings)


@pytest.fixture
def ledger(settings: InstallerSettings) -> StateLedger:
    return StateLedger.from_settings(settings)


@pytest.fixture
def engine(
    settings: InstallerSettings,
    resolver: PackageContentResolver,
    path_validator: LocalPathValidator,
    ledger: StateLedger,
) -> InstallationEngine:
    """An engine wired to the synthetic packages."""
    return InstallationEngine(settings, resolver, path_validator, ledger)


@pytest.fixture
def target(home_dir: Path) -> Path:
    """Install target for claude inside the fake home."""
    return home_dir / ".claude"
