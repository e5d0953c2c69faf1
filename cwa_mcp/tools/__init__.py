"""Built-in tools."""

from __future__ import annotations

from .memory_tool import MemoryTool, MemoryToolConfig, MemoryToolInput  # noqa: F401

__all__ = ["MemoryTool", "MemoryToolConfig", "MemoryToolInput"]
