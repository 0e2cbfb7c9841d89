"""Integration tests for CLI commands."""

import json
from collections.abc import Callable
from pathlib import Path

import pytest
from typer.testing import CliRunner

from akit import __version__
from akit.cli.main import app

BROKEN_VARIANTS = {
    "lite": {"name": "Lite", "agents": ["ghost"]},
    "standard": {"name": "Standard", "agents": ["ghost"]},
    "pro": {"name": "Pro", "agents": ["ghost"]},
}


def text(result) -> str:
    """CLI output with line wrapping undone."""
    return " ".join(result.output.split())


@pytest.fixture
def runner():
    """Get a CLI test runner."""
    return CliRunner()


@pytest.fixture
def invoke(runner: CliRunner, home_dir: Path, packages_dir: Path) -> Callable:
    """Invoke the CLI against the fake home and packages."""

    def run(*args: str, input: str | None = None):
        return runner.invoke(
            app,
            ["--home", str(home_dir), "--packages-dir", str(packages_dir), *args],
            input=input,
        )

    return run


@pytest.fixture
def claude_target(home_dir: Path) -> Path:
    return home_dir.resolve() / ".claude"


class TestVersionCommand:
    """Tests for 'akit version' command."""

    def test_prints_version(self, runner: CliRunner):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert f"akit {__version__}" in text(result)


class TestToolsCommand:
    """Tests for 'akit tools' command."""

    def test_lists_tools(self, invoke: Callable):
        result = invoke("tools")

        assert result.exit_code == 0
        assert "Supported Tools" in text(result)
        assert "claude" in text(result)
        assert "droid" in text(result)


class TestVariantsCommand:
    """Tests for 'akit variants' command."""

    def test_lists_variants(self, invoke: Callable):
        result = invoke("variants", "claude")

        assert result.exit_code == 0
        for name in ("lite", "standard", "pro"):
            assert name in text(result)

    def test_unknown_tool(self, invoke: Callable):
        result = invoke("variants", "ghost")

        assert result.exit_code == 1
        assert "Package not found" in text(result)


class TestInstallCommand:
    """Tests for 'akit install' command."""

    def test_installs_tool(self, invoke: Callable, claude_target: Path):
        """Installs into the tool's default location."""
        result = invoke("install", "--variant", "lite", "--tool", "claude", "--yes")

        assert result.exit_code == 0, result.output
        assert "Installed claude" in text(result)
        manifest = json.loads((claude_target / "manifest.json").read_text())
        assert manifest["variant"] == "lite"

    def test_installs_all_packaged_tools(self, invoke: Callable, home_dir: Path):
        """Without --tool every packaged tool is installed."""
        result = invoke("install", "--variant", "lite", "--yes")

        assert result.exit_code == 0, result.output
        assert (home_dir / ".claude" / "manifest.json").exists()
        assert (home_dir / ".config" / "opencode" / "manifest.json").exists()

    def test_path_override(self, invoke: Callable, home_dir: Path):
        result = invoke("install", "--tool", "claude", "--path", "claude=~/custom", "--yes")

        assert result.exit_code == 0, result.output
        manifest = json.loads((home_dir / "custom" / "manifest.json").read_text())
        assert manifest["variant"] == "standard"

    def test_invalid_path_override(self, invoke: Callable):
        result = invoke("install", "--tool", "claude", "--path", "claude", "--yes")

        assert result.exit_code == 1
        assert "Expected TOOL=PATH" in text(result)

    def test_rejects_path_outside_home(self, invoke: Callable):
        result = invoke("install", "--tool", "claude", "--path", "claude=/etc/akit", "--yes")

        assert result.exit_code == 1
        assert "within home directory" in text(result)

    def test_confirmation_declined(self, invoke: Callable, claude_target: Path):
        result = invoke("install", "--tool", "claude", input="n\n")

        assert result.exit_code == 1
        assert not claude_target.exists()

    def test_confirmation_accepted(self, invoke: Callable, claude_target: Path):
        result = invoke("install", "--tool", "claude", input="y\n")

        assert result.exit_code == 0, result.output
        assert (claude_target / "manifest.json").exists()

    def test_partial_failure(
        self, invoke: Callable, make_package: Callable, home_dir: Path, claude_target: Path
    ):
        """A failed tool exits 1 and keeps state for resume."""
        make_package("broken", BROKEN_VARIANTS)

        result = invoke(
            "install",
            "--tool",
            "claude",
            "--tool",
            "broken",
            "--path",
            "broken=~/broken",
            "--yes",
        )

        assert result.exit_code == 1
        assert "Failed to install broken" in text(result)
        assert "akit resume" in text(result)
        assert (claude_target / "manifest.json").exists()
        assert (home_dir / ".akit-install-state.json").exists()

    def test_unknown_tool_needs_path(self, invoke: Callable, make_package: Callable):
        """Tools outside the registry have no default location."""
        make_package("custom")

        result = invoke("install", "--tool", "custom", "--yes")

        assert result.exit_code == 1
        assert "Use --path" in text(result)

    def test_no_packages(self, runner: CliRunner, home_dir: Path, temp_dir: Path):
        empty = temp_dir / "empty"
        empty.mkdir()

        result = runner.invoke(
            app, ["--home", str(home_dir), "--packages-dir", str(empty), "install", "--yes"]
        )

        assert result.exit_code == 1
        assert "No tool packages found" in text(result)

    def test_invalid_settings_file(self, invoke: Callable, home_dir: Path):
        config = home_dir / ".akit" / "config.yaml"
        config.parent.mkdir(parents=True)
        config.write_text("default_variant: mega\n")

        result = invoke("install", "--yes")

        assert result.exit_code == 1
        assert "Invalid settings file" in text(result)


class TestStateCommands:
    """Tests for 'akit status', 'akit resume' and 'akit clear-state'."""

    def test_status_without_state(self, invoke: Callable):
        result = invoke("status")

        assert result.exit_code == 0
        assert "No interrupted installation" in text(result)

    def test_resume_without_state(self, invoke: Callable):
        result = invoke("resume")

        assert result.exit_code == 1
        assert "No interrupted installation to resume" in text(result)

    def test_failed_run_lifecycle(
        self, invoke: Callable, make_package: Callable, home_dir: Path
    ):
        """status shows the failure, resume skips, clear-state forgets."""
        make_package("broken", BROKEN_VARIANTS)
        invoke(
            "install",
            "--tool",
            "claude",
            "--tool",
            "broken",
            "--path",
            "broken=~/broken",
            "--yes",
        )

        status = invoke("status")
        assert status.exit_code == 0
        assert "failed" in text(status)
        assert "broken" in text(status)

        resumed = invoke("resume")
        assert resumed.exit_code == 0, resumed.output
        assert "Skipped claude" in text(resumed)
        assert "Skipped broken" in text(resumed)

        cleared = invoke("clear-state")
        assert cleared.exit_code == 0
        assert "Installation state cleared" in text(cleared)
        assert not (home_dir / ".akit-install-state.json").exists()


class TestVerifyCommand:
    """Tests for 'akit verify' command."""

    def test_verifies_installation(self, invoke: Callable):
        invoke("install", "--tool", "claude", "--variant", "lite", "--yes")

        result = invoke("verify", "claude")

        assert result.exit_code == 0, result.output
        assert "verified" in text(result)

    def test_missing_installation(self, invoke: Callable):
        result = invoke("verify", "claude")

        assert result.exit_code == 1
        assert "Manifest file not found" in text(result)

    def test_missing_file(self, invoke: Callable, claude_target: Path):
        invoke("install", "--tool", "claude", "--variant", "lite", "--yes")
        (claude_target / "agents" / "master.md").unlink()

        result = invoke("verify", "claude")

        assert result.exit_code == 1
        assert "Missing agent: master" in text(result)


class TestUninstallCommand:
    """Tests for 'akit uninstall' command."""

    def test_uninstalls(self, invoke: Callable, claude_target: Path):
        invoke("install", "--tool", "claude", "--variant", "lite", "--yes")

        result = invoke("uninstall", "claude", "--yes")

        assert result.exit_code == 0, result.output
        assert "claude uninstalled" in text(result)
        assert not claude_target.exists()

    def test_prompt_declined(self, invoke: Callable, claude_target: Path):
        invoke("install", "--tool", "claude", "--variant", "lite", "--yes")

        result = invoke("uninstall", "claude", input="n\n")

        assert result.exit_code == 0
        assert "Uninstall cancelled" in text(result)
        assert (claude_target / "manifest.json").exists()

    def test_nothing_installed(self, invoke: Callable):
        result = invoke("uninstall", "claude", "--yes")

        assert result.exit_code == 1
        assert "Manifest file is missing" in text(result)


class TestUpgradeCommand:
    """Tests for 'akit upgrade' command."""

    def test_upgrades(self, invoke: Callable, claude_target: Path):
        invoke("install", "--tool", "claude", "--variant", "lite", "--yes")

        result = invoke("upgrade", "claude", "pro", "--yes")

        assert result.exit_code == 0, result.output
        assert "13 added" in text(result)
        manifest = json.loads((claude_target / "manifest.json").read_text())
        assert manifest["variant"] == "pro"

    def test_same_variant(self, invoke: Callable):
        invoke("install", "--tool", "claude", "--variant", "lite", "--yes")

        result = invoke("upgrade", "claude", "lite", "--yes")

        assert result.exit_code == 0
        assert "already on the lite variant" in text(result)

    def test_prompt_declined(self, invoke: Callable, claude_target: Path):
        invoke("install", "--tool", "claude", "--variant", "lite", "--yes")

        result = invoke("upgrade", "claude", "pro", input="n\n")

        assert result.exit_code == 0
        assert "Variant change cancelled" in text(result)
        manifest = json.loads((claude_target / "manifest.json").read_text())
        assert manifest["variant"] == "lite"

    def test_not_installed(self, invoke: Callable):
        result = invoke("upgrade", "claude", "pro", "--yes")

        assert result.exit_code == 1
        assert "No installation found" in text(result)
