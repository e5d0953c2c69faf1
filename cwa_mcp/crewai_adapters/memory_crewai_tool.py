"""CrewAI BaseTool wrapper around MemoryTool."""

from __future__ import annotations

import json
from typing import Any, List, Optional, Type

from crewai.tools import BaseTool
from pydantic import BaseModel, ConfigDict, Field

from cwa.core.exceptions import ToolError
from cwa.core.logger import get_logger

from ..tool_blueprint import ToolResult
from ..tools.memory_tool import MemoryTool


class MemoryCrewAIInput(BaseModel):
    """Subset of MemoryTool input an agent normally needs."""

    operation: str = Field(
        ...,
        description=(
            "One of: add_memory, add_observation, search, list_observations, "
            "get_observations, timeline, summarize, compact, decay, find_orphans"
        ),
    )
    project_id: Optional[str] = Field(default=None, description="Project the records belong to")
    query: Optional[str] = Field(default=None, description="Search query")
    content: Optional[str] = Field(default=None, description="Memory text for add_memory")
    entry_type: Optional[str] = Field(default=None, description="preference, decision, fact, pattern, design_system")
    obs_type: Optional[str] = Field(default=None, description="bugfix, feature, refactor, discovery, decision, change, insight")
    title: Optional[str] = Field(default=None, description="Observation title")
    narrative: Optional[str] = Field(default=None, description="Observation narrative")
    facts: Optional[List[str]] = Field(default=None, description="Observation facts")
    ids: Optional[List[str]] = Field(default=None, description="Observation ids for get_observations")
    top_k: Optional[int] = Field(default=None, description="Number of search results")
    min_confidence: Optional[float] = Field(default=None, description="Compaction threshold")
    factor: Optional[float] = Field(default=None, description="Decay factor")


class MemoryCrewAITool(BaseTool):
    name: str = "project_memory"
    description: str = (
        "Store project memories and observations, search them by meaning, "
        "and review the observation timeline."
    )
    args_schema: Type[BaseModel] = MemoryCrewAIInput

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __init__(self, memory_tool: MemoryTool | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._logger = get_logger(__name__)
        self._memory_tool = memory_tool or MemoryTool()

    def _run(self, operation: str, **kwargs: Any) -> str:
        params = {"operation": operation, **{k: v for k, v in kwargs.items() if v is not None}}
        self._logger.info(
            "[MemoryCrewAITool] %s", json.dumps(params, ensure_ascii=False, default=str)[:200]
        )

        try:
            result: ToolResult = self._memory_tool(**params)
        except ToolError as exc:
            self._logger.error("[MemoryCrewAITool] ToolError: %s", exc)
            return f"Memory tool error: {str(exc)[:200]}"

        if not result.success:
            self._logger.warning("[MemoryCrewAITool] failed: %s", result.error)
            return f"Memory operation failed: {result.error}"
        return self._format_success_response(result.data, operation)

    def _format_success_response(self, data: Any, operation: str) -> str:
        if not isinstance(data, dict):
            return f"OK: {data}"

        if "matches" in data:
            matches = data["matches"]
            if not matches:
                return "No matching records."
            lines = [f"{len(matches)} result(s) for {operation}:"]
            for idx, match in enumerate(matches, 1):
                payload = match.get("payload", match)
                label = payload.get("title") or payload.get("content") or payload.get("name") or match.get("id")
                line = f"{idx}. {label}"
                if "score" in match:
                    line += f" (score {match['score']:.3f}, {match.get('collection', '')})"
                elif "confidence" in match:
                    line += f" (confidence {match['confidence']:.2f})"
                lines.append(line)
            if data.get("degraded"):
                failed = ", ".join(sorted(data.get("failed_collections", {})))
                lines.append(f"Warning: some collections were unavailable ({failed}).")
            return "\n".join(lines)

        if "summary" in data:
            summary = data["summary"]
            if summary is None:
                return "No observations to summarize."
            return f"Summary of {summary['observations_count']} observations:\n{summary['content']}"

        return f"OK:\n{json.dumps(data, indent=2, ensure_ascii=False)}"
