"""Tests for the tool registration system."""

from pathlib import Path

import pytest

from akit.tools import get_tool, list_tools
from akit.tools.ampcode import AmpCodeTool
from akit.tools.base import ToolProfile
from akit.tools.claude import ClaudeTool


class TestToolRegistry:
    """Tests for tool registration."""

    def test_lists_every_tool(self):
        """All bundled tools are registered."""
        assert list_tools() == ["ampcode", "claude", "droid", "opencode"]

    def test_get_tool_returns_instance(self):
        tool = get_tool("claude")

        assert isinstance(tool, ClaudeTool)
        assert isinstance(tool, ToolProfile)

    def test_unknown_tool(self):
        """Unknown tools list what is available."""
        with pytest.raises(
            ValueError,
            match="^Unknown tool: ghost. Available tools: ampcode, claude, droid, opencode$",
        ):
            get_tool("ghost")


class TestToolProfiles:
    """Tests for the bundled profiles."""

    @pytest.mark.parametrize(
        ("name", "relative"),
        [
            ("claude", ".claude"),
            ("opencode", ".config/opencode"),
            ("ampcode", ".amp"),
            ("droid", ".factory"),
        ],
    )
    def test_default_paths(self, name: str, relative: str, home_dir: Path):
        """Each tool installs under its own directory in home."""
        assert get_tool(name).default_path(home_dir) == home_dir / relative

    def test_metadata(self):
        tool = AmpCodeTool()

        assert tool.name == "ampcode"
        assert tool.display_name == tool.metadata.display_name
        assert tool.metadata.default_path == ".amp"
