"""Tool exposing the memory engine to agents."""

from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from cwa.core.exceptions import MemoryEngineError, ToolError
from cwa.core.logger import project_context
from cwa.memory.factory import MemoryEngine, create_memory_engine
from cwa.memory.hybrid_search import FusionAlgo
from cwa.memory.metrics import MemoryMetrics
from cwa.memory.records import MemoryType, ObservationConcept, ObservationType

from ..tool_blueprint import ToolBlueprint, ToolResult

Operation = Literal[
    "add_memory",
    "add_observation",
    "search",
    "list_observations",
    "get_observations",
    "timeline",
    "summarize",
    "compact",
    "decay",
    "find_orphans",
]

_WRITE_OPERATIONS = frozenset({"add_memory", "add_observation"})
_LIFECYCLE_OPERATIONS = frozenset({"compact", "decay"})


class MemoryToolInput(BaseModel):
    """Input shared by every memory operation; each handler checks what it needs."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    operation: Operation = Field(description="Memory operation to perform")
    project_id: Optional[str] = Field(default=None, description="Project the records belong to")
    content: Optional[str] = Field(default=None, description="Memory text for add_memory")
    entry_type: Optional[str] = Field(
        default=None, description="One of: " + ", ".join(kind.value for kind in MemoryType)
    )
    context: Optional[str] = None
    obs_type: Optional[str] = Field(
        default=None, description="One of: " + ", ".join(kind.value for kind in ObservationType)
    )
    title: Optional[str] = None
    narrative: Optional[str] = None
    facts: List[str] = Field(default_factory=list)
    concepts: List[str] = Field(
        default_factory=list,
        description="Suggested: " + ", ".join(concept.value for concept in ObservationConcept),
    )
    files_modified: List[str] = Field(default_factory=list)
    files_read: List[str] = Field(default_factory=list)
    session_id: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    query: Optional[str] = Field(default=None, description="Natural-language query for search")
    top_k: Optional[int] = Field(default=None, ge=1, le=100)
    collections: Optional[List[str]] = None
    fusion: FusionAlgo = FusionAlgo.RRF
    ids: List[str] = Field(default_factory=list, description="Observation ids for get_observations")
    limit: Optional[int] = Field(default=None, ge=1, le=500)
    days: Optional[int] = Field(default=None, ge=0)
    count: Optional[int] = Field(default=None, ge=1, le=500)
    min_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    keep_top: Optional[int] = Field(default=None, ge=0)
    factor: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Decay factor")


@dataclass(slots=True)
class MemoryToolConfig:
    default_top_k: int = 10
    default_limit: int = 20
    default_min_confidence: float = 0.3
    # None means the engine's configured boost
    boost_on_access: Optional[float] = None


Handler = Callable[[MemoryEngine, MemoryToolInput], ToolResult]


class MemoryTool(ToolBlueprint):
    """Store and recall project memories and observations."""

    tool_name = "memory"
    description = (
        "Store project memories and development observations, search them by meaning, "
        "and manage their confidence lifecycle"
    )
    input_model = MemoryToolInput
    examples = [
        {
            "description": "Remember a team decision",
            "parameters": {
                "operation": "add_memory",
                "project_id": "my-project",
                "content": "Use PostgreSQL for persistence",
                "entry_type": "decision",
            },
        },
        {
            "description": "Search everything about authentication",
            "parameters": {"operation": "search", "project_id": "my-project", "query": "auth tokens"},
        },
        {
            "description": "Drop stale observations",
            "parameters": {"operation": "compact", "project_id": "my-project", "min_confidence": 0.3},
        },
    ]

    def __init__(
        self,
        engine: MemoryEngine | None = None,
        *,
        engine_factory: Callable[[], MemoryEngine] | None = None,
        config: MemoryToolConfig | None = None,
        metrics: MemoryMetrics | None = None,
    ) -> None:
        super().__init__()
        self._engine = engine
        self._engine_factory = engine_factory or create_memory_engine
        self._config = config or MemoryToolConfig()
        self._metrics = metrics

        self._handlers: Dict[str, Handler] = {
            "add_memory": self._add_memory,
            "add_observation": self._add_observation,
            "search": self._search,
            "list_observations": self._list_observations,
            "get_observations": self._get_observations,
            "timeline": self._timeline,
            "summarize": self._summarize,
            "compact": self._compact,
            "decay": self._decay,
            "find_orphans": self._find_orphans,
        }

    @property
    def metrics(self) -> MemoryMetrics:
        if self._metrics is None:
            self._metrics = self._get_engine().metrics
        return self._metrics

    def run(self, request: MemoryToolInput) -> ToolResult:
        with project_context(request.project_id):
            return self._dispatch(request)

    def _dispatch(self, request: MemoryToolInput) -> ToolResult:
        engine = self._get_engine()
        operation = request.operation
        start = perf_counter()
        try:
            result = self._handlers[operation](engine, request)
        except (MemoryEngineError, ValueError) as exc:
            self._logger.warning("Memory operation '%s' failed: %s", operation, exc)
            if operation in _WRITE_OPERATIONS:
                self.metrics.record_write(exc)
            return ToolResult.failed(str(exc))

        if operation in _WRITE_OPERATIONS:
            self.metrics.record_write()
        elif operation not in _LIFECYCLE_OPERATIONS:
            data = result.data or {}
            self.metrics.record_read(
                operation,
                match_count=_match_count(data),
                latency_ms=(perf_counter() - start) * 1000.0,
                failed_collections=data.get("failed_collections", {}),
            )
        return result

    def _get_engine(self) -> MemoryEngine:
        if self._engine is None:
            try:
                self._engine = self._engine_factory()
            except Exception as exc:
                self._logger.error("Memory engine initialisation failed", exc_info=True)
                raise ToolError(f"Cannot initialise memory engine: {exc}") from exc
        return self._engine

    def _add_memory(self, engine: MemoryEngine, request: MemoryToolInput) -> ToolResult:
        result = engine.memories.add_memory(
            _require(request, "project_id"),
            _require(request, "content"),
            _require(request, "entry_type"),
            request.context,
        )
        return ToolResult.ok({"id": result.id, "embedding_dim": result.embedding_dim})

    def _add_observation(self, engine: MemoryEngine, request: MemoryToolInput) -> ToolResult:
        extra: Dict[str, Any] = {}
        if request.confidence is not None:
            extra["confidence"] = request.confidence
        result = engine.observations.add_observation(
            _require(request, "project_id"),
            _require(request, "obs_type"),
            _require(request, "title"),
            narrative=request.narrative,
            facts=request.facts,
            concepts=request.concepts,
            files_modified=request.files_modified,
            files_read=request.files_read,
            session_id=request.session_id,
            **extra,
        )
        return ToolResult.ok({"id": result.id, "embedding_dim": result.embedding_dim})

    def _search(self, engine: MemoryEngine, request: MemoryToolInput) -> ToolResult:
        outcome = engine.search.search_with_status(
            _require(request, "query"),
            request.top_k or self._config.default_top_k,
            collections=request.collections,
            project_id=request.project_id,
            fusion=request.fusion,
        )
        return ToolResult.ok(
            {
                "matches": [result.to_document() for result in outcome.results],
                "degraded": outcome.degraded,
                "failed_collections": dict(outcome.failed_collections),
            }
        )

    def _list_observations(self, engine: MemoryEngine, request: MemoryToolInput) -> ToolResult:
        rows = engine.timeline.list_observations(
            _require(request, "project_id"), request.limit or self._config.default_limit
        )
        return ToolResult.ok({"matches": [row.to_document() for row in rows]})

    def _get_observations(self, engine: MemoryEngine, request: MemoryToolInput) -> ToolResult:
        if not request.ids:
            raise ToolError("ids parameter is required for get_observations.")
        amount = self._config.boost_on_access
        if amount is None:
            amount = engine.config.boost_on_access

        documents = []
        for observation in engine.timeline.get_observations(request.ids):
            document = observation.to_document()
            if amount > 0:
                document["confidence"] = engine.lifecycle.boost(observation.id, amount)
            documents.append(document)
        if amount > 0 and documents:
            self.metrics.record_lifecycle(boosts=len(documents))
        return ToolResult.ok({"matches": documents})

    def _timeline(self, engine: MemoryEngine, request: MemoryToolInput) -> ToolResult:
        rows = engine.timeline.get_timeline(
            _require(request, "project_id"),
            days=request.days if request.days is not None else 7,
            limit=request.limit or 50,
        )
        return ToolResult.ok({"matches": [row.to_document() for row in rows]})

    def _summarize(self, engine: MemoryEngine, request: MemoryToolInput) -> ToolResult:
        summary = engine.timeline.summarize(
            _require(request, "project_id"), request.count or 20, session_id=request.session_id
        )
        return ToolResult.ok({"summary": summary.to_document() if summary else None})

    def _compact(self, engine: MemoryEngine, request: MemoryToolInput) -> ToolResult:
        threshold = request.min_confidence
        if threshold is None:
            threshold = self._config.default_min_confidence
        report = engine.lifecycle.compact(
            _require(request, "project_id"), threshold, keep_top=request.keep_top
        )
        self.metrics.record_lifecycle(
            compacted=report.removed_count, failed_deletions=len(report.failed_deletions)
        )
        return ToolResult.ok(report.to_document())

    def _decay(self, engine: MemoryEngine, request: MemoryToolInput) -> ToolResult:
        project_id = _require(request, "project_id")
        if request.factor is None:
            raise ToolError("factor parameter is required for decay.")
        touched = engine.lifecycle.decay(project_id, request.factor)
        self.metrics.record_lifecycle(decayed=touched)
        return ToolResult.ok({"decayed": touched})

    def _find_orphans(self, engine: MemoryEngine, request: MemoryToolInput) -> ToolResult:
        orphans = engine.lifecycle.find_orphans(_require(request, "project_id"))
        return ToolResult.ok(
            {
                "matches": [
                    {
                        "id": orphan.id,
                        "kind": orphan.kind,
                        "collection": orphan.collection,
                        "embedding_id": orphan.embedding_id,
                    }
                    for orphan in orphans
                ]
            }
        )


def _match_count(data: Dict[str, Any]) -> int:
    if "matches" in data:
        return len(data["matches"])
    return 1 if data.get("summary") else 0


def _require(request: MemoryToolInput, field_name: str) -> str:
    value = getattr(request, field_name)
    if not isinstance(value, str) or not value:
        raise ToolError(f"{field_name} parameter is required for {request.operation}.")
    return value
