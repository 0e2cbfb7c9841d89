"""Claude Code tool profile."""

from akit.config.schemas import ToolMetadata
from akit.tools import register_tool
from akit.tools.base import ToolProfile


@register_tool("claude")
class ClaudeTool(ToolProfile):
    """Claude Code keeps its agents, skills and hooks under ~/.claude."""

    @property
    def metadata(self) -> ToolMetadata:
        return ToolMetadata(
            name="claude",
            display_name="Claude Code",
            description="Anthropic's Claude Code CLI agent",
            default_path=".claude",
        )
