"""OpenCode tool profile."""

from akit.config.schemas import ToolMetadata
from akit.tools import register_tool
from akit.tools.base import ToolProfile


@register_tool("opencode")
class OpenCodeTool(ToolProfile):
    """OpenCode follows the XDG layout (~/.config/opencode)."""

    @property
    def metadata(self) -> ToolMetadata:
        return ToolMetadata(
            name="opencode",
            display_name="OpenCode",
            description="Open source terminal coding agent",
            default_path=".config/opencode",
        )
