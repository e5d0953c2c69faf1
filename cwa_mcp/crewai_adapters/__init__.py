"""CrewAI tool adapters."""

from .memory_crewai_tool import MemoryCrewAIInput, MemoryCrewAITool

__all__ = [
    "MemoryCrewAIInput",
    "MemoryCrewAITool",
]
