"""Base classes for agent-facing tools backed by a pydantic input model."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from cwa.core.exceptions import ToolError
from cwa.core.logger import get_logger


@dataclass(slots=True)
class ToolResult:
    """Outcome of one tool call."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def unwrap(self) -> Any:
        """Return ``data`` on success, otherwise raise :class:`ToolError`."""
        if not self.success:
            raise ToolError(self.error or "Tool call failed without an error message.")
        return self.data


class ToolBlueprint(ABC):
    """Validate keyword arguments against ``input_model`` then dispatch to :meth:`run`.

    Malformed input and unexpected crashes raise :class:`ToolError`; expected
    domain failures are returned as ``ToolResult.failed`` by subclasses.
    """

    tool_name: ClassVar[str]
    description: ClassVar[str] = ""
    input_model: ClassVar[Type[BaseModel]]
    examples: ClassVar[List[Dict[str, Any]]] = []

    def __init__(self) -> None:
        self._logger = get_logger(self.__class__.__name__)
        self._validate_metadata()

    @abstractmethod
    def run(self, request: BaseModel) -> ToolResult:
        """Execute one validated request."""

    def __call__(self, **kwargs: Any) -> ToolResult:
        try:
            request = self.input_model.model_validate(kwargs)
        except ValidationError as exc:
            raise ToolError(f"Invalid input for '{self.tool_name}': {exc}") from exc

        try:
            result = self.run(request)
        except ToolError:
            raise
        except Exception as exc:
            self._logger.error("Tool '%s' crashed", self.tool_name, exc_info=True)
            raise ToolError(f"Tool '{self.tool_name}' execution crashed: {exc}") from exc

        if not isinstance(result, ToolResult):
            raise ToolError(f"Tool '{self.tool_name}' must return ToolResult instances.")
        return result

    def schema(self) -> Dict[str, Any]:
        """Name, description and JSON schema of the input model."""
        schema_dict: Dict[str, Any] = {
            "name": self.tool_name,
            "description": self.description,
            "parameters": self.input_model.model_json_schema(),
        }
        if self.examples:
            schema_dict["examples"] = list(self.examples)
        return schema_dict

    def get_usage_guide(self) -> str:
        lines = [f"# {self.tool_name} Usage Guide\n"]
        if self.description:
            lines.append(f"{self.description}\n")
        for idx, example in enumerate(self.examples, 1):
            if idx == 1:
                lines.append("## Examples\n")
            lines.append(f"### {idx}. {example.get('description', self.tool_name)}")
            lines.append("```json")
            lines.append(json.dumps(example.get("parameters", {}), indent=2, ensure_ascii=False))
            lines.append("```\n")
        return "\n".join(lines)

    def _validate_metadata(self) -> None:
        name = getattr(self, "tool_name", "").strip()
        if not name:
            raise ToolError("ToolBlueprint subclasses must define non-empty 'tool_name'.")
        model = getattr(self, "input_model", None)
        if not (isinstance(model, type) and issubclass(model, BaseModel)):
            raise ToolError(f"Tool '{name}' must declare a pydantic 'input_model'.")
