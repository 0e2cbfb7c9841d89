"""Supported tools for akit.

This module provides the tool registration system. Each supported tool
is described by a ToolProfile subclass registered under its identifier.
"""

from __future__ import annotations

import importlib
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from akit.tools.base import ToolProfile

_TOOLS: dict[str, type[ToolProfile]] = {}
_LOADED = False

# Known tool modules - add new tools here
_TOOL_MODULES = [
    "akit.tools.claude",
    "akit.tools.opencode",
    "akit.tools.ampcode",
    "akit.tools.droid",
]


def register_tool(
    name: str,
) -> Callable[[type[ToolProfile]], type[ToolProfile]]:
    """Decorator for tool registration.

    Usage:
        @register_tool("claude")
        class ClaudeTool(ToolProfile):
            ...
    """

    def decorator(cls: type[ToolProfile]) -> type[ToolProfile]:
        _TOOLS[name] = cls
        return cls

    return decorator


def _load_tools() -> None:
    """Import every tool module so its profile registers itself."""
    global _LOADED
    if _LOADED:
        return

    for module_name in _TOOL_MODULES:
        importlib.import_module(module_name)

    _LOADED = True


def get_tool(name: str) -> ToolProfile:
    """Get an instantiated tool profile by name.

    Args:
        name: The tool identifier (e.g., "claude", "opencode")

    Returns:
        An instantiated tool profile

    Raises:
        ValueError: If the tool is not registered
    """
    _load_tools()

    if name not in _TOOLS:
        available = ", ".join(sorted(_TOOLS)) or "none"
        raise ValueError(f"Unknown tool: {name}. Available tools: {available}")
    return _TOOLS[name]()


def list_tools() -> list[str]:
    """List all registered tool identifiers, sorted by name."""
    _load_tools()
    return sorted(_TOOLS)
