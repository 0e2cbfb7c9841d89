"""Droid tool profile."""

from akit.config.schemas import ToolMetadata
from akit.tools import register_tool
from akit.tools.base import ToolProfile


@register_tool("droid")
class DroidTool(ToolProfile):
    """Factory's Droid reads from ~/.factory."""

    @property
    def metadata(self) -> ToolMetadata:
        return ToolMetadata(
            name="droid",
            display_name="Droid",
            description="Factory's Droid coding agent",
            default_path=".factory",
        )
