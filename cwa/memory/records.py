"""Data contracts for the semantic memory subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from cwa.core.exceptions import InvalidMemoryType, InvalidObservationType

Scalar = Union[str, int, float, bool]
Payload = Dict[str, Scalar]

EMBEDDING_MARKER_PREFIX = "vector:"
DEFAULT_MEMORY_CONFIDENCE = 0.5
DEFAULT_OBSERVATION_CONFIDENCE = 0.8


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def embedding_marker(record_id: str) -> str:
    """Marker stored on a row to say "a vector exists for this id"."""
    return f"{EMBEDDING_MARKER_PREFIX}{record_id}"


class MemoryType(str, Enum):
    """Kinds of free-text memory entries."""

    PREFERENCE = "preference"
    DECISION = "decision"
    FACT = "fact"
    PATTERN = "pattern"
    DESIGN_SYSTEM = "design_system"

    @classmethod
    def parse(cls, value: "MemoryType | str") -> "MemoryType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise InvalidMemoryType(f"Invalid memory type: '{value}'. Use: {allowed}") from None


class ObservationType(str, Enum):
    """Kinds of structured development observations."""

    BUGFIX = "bugfix"
    FEATURE = "feature"
    REFACTOR = "refactor"
    DISCOVERY = "discovery"
    DECISION = "decision"
    CHANGE = "change"
    INSIGHT = "insight"

    @classmethod
    def parse(cls, value: "ObservationType | str") -> "ObservationType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise InvalidObservationType(
                f"Invalid observation type: '{value}'. Use: {allowed}"
            ) from None


class ObservationConcept(str, Enum):
    """Recommended vocabulary for how an observation's knowledge is categorised."""

    HOW_IT_WORKS = "how-it-works"
    WHY_IT_EXISTS = "why-it-exists"
    WHAT_CHANGED = "what-changed"
    PROBLEM_SOLUTION = "problem-solution"
    GOTCHA = "gotcha"
    PATTERN = "pattern"
    TRADE_OFF = "trade-off"


@dataclass(slots=True)
class MemoryEntry:
    """A free-text memory row."""

    id: str
    project_id: str
    content: str
    entry_type: MemoryType
    context: Optional[str] = None
    confidence: float = DEFAULT_MEMORY_CONFIDENCE
    embedding_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "content": self.content,
            "entry_type": self.entry_type.value,
            "context": self.context,
            "confidence": self.confidence,
            "embedding_id": self.embedding_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class Observation:
    """A structured capture of development activity."""

    id: str
    project_id: str
    obs_type: ObservationType
    title: str
    narrative: Optional[str] = None
    facts: List[str] = field(default_factory=list)
    concepts: List[str] = field(default_factory=list)
    files_modified: List[str] = field(default_factory=list)
    files_read: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    confidence: float = DEFAULT_OBSERVATION_CONFIDENCE
    embedding_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "session_id": self.session_id,
            "obs_type": self.obs_type.value,
            "title": self.title,
            "narrative": self.narrative,
            "facts": list(self.facts),
            "concepts": list(self.concepts),
            "files_modified": list(self.files_modified),
            "files_read": list(self.files_read),
            "confidence": self.confidence,
            "embedding_id": self.embedding_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class ObservationIndex:
    """Compact observation view for progressive disclosure.

    Omits narrative, facts and file lists so index responses stay small.
    """

    id: str
    obs_type: ObservationType
    title: str
    confidence: float
    created_at: datetime

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "obs_type": self.obs_type.value,
            "title": self.title,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class Summary:
    """Compressed digest of a run of observations."""

    id: str
    project_id: str
    content: str
    observations_count: int
    key_facts: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    time_range_start: Optional[datetime] = None
    time_range_end: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "session_id": self.session_id,
            "content": self.content,
            "observations_count": self.observations_count,
            "key_facts": list(self.key_facts),
            "time_range_start": self.time_range_start.isoformat() if self.time_range_start else None,
            "time_range_end": self.time_range_end.isoformat() if self.time_range_end else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class AddMemoryResult:
    id: str
    embedding_dim: int


@dataclass(slots=True)
class AddObservationResult:
    id: str
    embedding_dim: int


@dataclass(slots=True)
class ObservationSearchResult:
    id: str
    title: str
    obs_type: str
    score: float
    created_at: str


@dataclass(slots=True)
class DomainObjectSearchResult:
    id: str
    name: str
    object_type: str
    context_name: str
    description: str
    score: float


@dataclass(slots=True)
class DeletionOutcome:
    """Per-item result of a best-effort vector deletion."""

    id: str
    collection: str
    succeeded: bool
    error: Optional[str] = None


@dataclass(slots=True)
class CompactionReport:
    removed_memories: List[str] = field(default_factory=list)
    removed_observations: List[str] = field(default_factory=list)
    vector_deletions: List[DeletionOutcome] = field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return len(self.removed_memories) + len(self.removed_observations)

    @property
    def failed_deletions(self) -> List[DeletionOutcome]:
        return [outcome for outcome in self.vector_deletions if not outcome.succeeded]

    def to_document(self) -> Dict[str, Any]:
        return {
            "removed_memories": list(self.removed_memories),
            "removed_observations": list(self.removed_observations),
            "vector_deletions": [
                {
                    "id": outcome.id,
                    "collection": outcome.collection,
                    "succeeded": outcome.succeeded,
                    "error": outcome.error,
                }
                for outcome in self.vector_deletions
            ],
        }


@dataclass(slots=True)
class OrphanRecord:
    """A row whose embedding marker has no vector twin."""

    id: str
    kind: str
    collection: str
    embedding_id: str
