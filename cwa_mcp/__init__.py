"""Agent-facing tools over the memory engine."""

from __future__ import annotations

from .tool_blueprint import ToolBlueprint, ToolResult  # noqa: F401
from .tools import MemoryTool  # noqa: F401

__all__ = [
    "MemoryTool",
    "ToolBlueprint",
    "ToolResult",
]
