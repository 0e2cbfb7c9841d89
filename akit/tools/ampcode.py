"""Amp tool profile."""

from akit.config.schemas import ToolMetadata
from akit.tools import register_tool
from akit.tools.base import ToolProfile


@register_tool("ampcode")
class AmpCodeTool(ToolProfile):
    @property
    def metadata(self) -> ToolMetadata:
        return ToolMetadata(
            name="ampcode",
            display_name="Amp",
            description="Sourcegraph's Amp coding agent",
            default_path=".amp",
        )
