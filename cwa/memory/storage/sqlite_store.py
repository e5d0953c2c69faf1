"""SQLite-backed structured store for memories, observations and summaries."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from cwa.core.exceptions import PersistenceFailure
from cwa.core.logger import get_logger

from ..records import (
    MemoryEntry,
    MemoryType,
    Observation,
    ObservationIndex,
    ObservationType,
    Summary,
)
from .base import MEMORY_KIND, OBSERVATION_KIND, RecordRef, RecordStore


_SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    content TEXT NOT NULL,
    entry_type TEXT NOT NULL,
    context TEXT,
    confidence REAL NOT NULL DEFAULT 0.5,
    embedding_id TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_memories_project ON memories(project_id);

CREATE TABLE IF NOT EXISTS observations (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    session_id TEXT,
    obs_type TEXT NOT NULL,
    title TEXT NOT NULL,
    narrative TEXT,
    facts TEXT NOT NULL DEFAULT '[]',
    concepts TEXT NOT NULL DEFAULT '[]',
    files_modified TEXT NOT NULL DEFAULT '[]',
    files_read TEXT NOT NULL DEFAULT '[]',
    confidence REAL NOT NULL DEFAULT 0.8,
    embedding_id TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_observations_project ON observations(project_id, created_at);

CREATE TABLE IF NOT EXISTS summaries (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    session_id TEXT,
    content TEXT NOT NULL,
    observations_count INTEGER NOT NULL,
    key_facts TEXT NOT NULL DEFAULT '[]',
    time_range_start TEXT,
    time_range_end TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_summaries_project ON summaries(project_id, created_at);
"""

_OBSERVATION_COLUMNS = (
    "id, project_id, session_id, obs_type, title, narrative, facts, concepts, "
    "files_modified, files_read, confidence, embedding_id, created_at"
)
_INDEX_COLUMNS = "id, obs_type, title, confidence, created_at"


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _format_ts(value: Optional[datetime]) -> Optional[str]:
    return _to_utc(value).isoformat() if value is not None else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return _to_utc(datetime.fromisoformat(value))


class SqliteRecordStore(RecordStore):
    """Persist memories, observations and summaries in a SQLite database."""

    def __init__(self, database_path: str | Path) -> None:
        self._path = Path(database_path)
        self._logger = get_logger(self.__class__.__name__)
        self._initialise()

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------
    def save_memory(self, entry: MemoryEntry) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO memories
                (id, project_id, content, entry_type, context, confidence, embedding_id, created_at)
                VALUES (:id, :project_id, :content, :entry_type, :context, :confidence, :embedding_id, :created_at)
                """,
                {
                    "id": entry.id,
                    "project_id": entry.project_id,
                    "content": entry.content,
                    "entry_type": entry.entry_type.value,
                    "context": entry.context,
                    "confidence": entry.confidence,
                    "embedding_id": entry.embedding_id,
                    "created_at": _format_ts(entry.created_at),
                },
            )

    def get_memory(self, record_id: str) -> Optional[MemoryEntry]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM memories WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_memory(row) if row else None

    def list_memories(self, project_id: str) -> List[MemoryEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM memories WHERE project_id = ? ORDER BY created_at DESC, rowid DESC",
                (project_id,),
            ).fetchall()
        return [self._row_to_memory(row) for row in rows]

    def delete_memory(self, record_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM memories WHERE id = ?", (record_id,))
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------
    def save_observation(self, observation: Observation) -> None:
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO observations ({_OBSERVATION_COLUMNS})
                VALUES (:id, :project_id, :session_id, :obs_type, :title, :narrative, :facts, :concepts,
                        :files_modified, :files_read, :confidence, :embedding_id, :created_at)
                """,
                {
                    "id": observation.id,
                    "project_id": observation.project_id,
                    "session_id": observation.session_id,
                    "obs_type": observation.obs_type.value,
                    "title": observation.title,
                    "narrative": observation.narrative,
                    "facts": json.dumps(list(observation.facts), ensure_ascii=False),
                    "concepts": json.dumps(list(observation.concepts), ensure_ascii=False),
                    "files_modified": json.dumps(list(observation.files_modified), ensure_ascii=False),
                    "files_read": json.dumps(list(observation.files_read), ensure_ascii=False),
                    "confidence": observation.confidence,
                    "embedding_id": observation.embedding_id,
                    "created_at": _format_ts(observation.created_at),
                },
            )

    def get_observation(self, record_id: str) -> Optional[Observation]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_OBSERVATION_COLUMNS} FROM observations WHERE id = ?", (record_id,)
            ).fetchone()
        return self._row_to_observation(row) if row else None

    def get_observations(self, record_ids: Sequence[str]) -> List[Observation]:
        ids = list(dict.fromkeys(record_ids))
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_OBSERVATION_COLUMNS} FROM observations WHERE id IN ({placeholders})",
                ids,
            ).fetchall()
        by_id = {row["id"]: self._row_to_observation(row) for row in rows}
        return [by_id[record_id] for record_id in ids if record_id in by_id]

    def list_observations(self, project_id: str, *, limit: int = 20) -> List[ObservationIndex]:
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_INDEX_COLUMNS} FROM observations
                WHERE project_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (project_id, limit),
            ).fetchall()
        return [self._row_to_index(row) for row in rows]

    def observations_since(
        self, project_id: str, since: datetime, *, limit: int = 50
    ) -> List[ObservationIndex]:
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_INDEX_COLUMNS} FROM observations
                WHERE project_id = ? AND created_at >= ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (project_id, _format_ts(since), limit),
            ).fetchall()
        return [self._row_to_index(row) for row in rows]

    def delete_observation(self, record_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM observations WHERE id = ?", (record_id,))
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------
    def get_confidence(self, record_id: str) -> Optional[RecordRef]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT id, 'memory' AS kind, confidence, embedding_id FROM memories WHERE id = :id
                UNION ALL
                SELECT id, 'observation' AS kind, confidence, embedding_id FROM observations WHERE id = :id
                """,
                {"id": record_id},
            ).fetchone()
        return self._row_to_ref(row) if row else None

    def boost_confidence(self, record_id: str, amount: float) -> Optional[RecordRef]:
        with self._connect() as conn:
            for table, kind in (("memories", MEMORY_KIND), ("observations", OBSERVATION_KIND)):
                cursor = conn.execute(
                    f"UPDATE {table} SET confidence = MIN(1.0, confidence + ?) WHERE id = ?",
                    (amount, record_id),
                )
                if cursor.rowcount:
                    row = conn.execute(
                        f"SELECT id, ? AS kind, confidence, embedding_id FROM {table} WHERE id = ?",
                        (kind, record_id),
                    ).fetchone()
                    return self._row_to_ref(row)
        return None

    def decay_observations(self, project_id: str, factor: float) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE observations SET confidence = confidence * ? WHERE project_id = ?",
                (factor, project_id),
            )
        return cursor.rowcount

    def low_confidence(self, project_id: str, min_confidence: float) -> List[RecordRef]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, 'memory' AS kind, confidence, embedding_id, created_at FROM memories
                WHERE project_id = :project_id AND confidence < :threshold
                UNION ALL
                SELECT id, 'observation' AS kind, confidence, embedding_id, created_at FROM observations
                WHERE project_id = :project_id AND confidence < :threshold
                ORDER BY confidence ASC, created_at ASC
                """,
                {"project_id": project_id, "threshold": min_confidence},
            ).fetchall()
        return [self._row_to_ref(row) for row in rows]

    def embedded_records(self, project_id: str) -> List[RecordRef]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, 'memory' AS kind, confidence, embedding_id FROM memories
                WHERE project_id = :project_id AND embedding_id IS NOT NULL
                UNION ALL
                SELECT id, 'observation' AS kind, confidence, embedding_id FROM observations
                WHERE project_id = :project_id AND embedding_id IS NOT NULL
                """,
                {"project_id": project_id},
            ).fetchall()
        return [self._row_to_ref(row) for row in rows]

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------
    def save_summary(self, summary: Summary) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO summaries
                (id, project_id, session_id, content, observations_count, key_facts,
                 time_range_start, time_range_end, created_at)
                VALUES (:id, :project_id, :session_id, :content, :observations_count, :key_facts,
                        :time_range_start, :time_range_end, :created_at)
                """,
                {
                    "id": summary.id,
                    "project_id": summary.project_id,
                    "session_id": summary.session_id,
                    "content": summary.content,
                    "observations_count": summary.observations_count,
                    "key_facts": json.dumps(list(summary.key_facts), ensure_ascii=False),
                    "time_range_start": _format_ts(summary.time_range_start),
                    "time_range_end": _format_ts(summary.time_range_end),
                    "created_at": _format_ts(summary.created_at),
                },
            )

    def recent_summaries(self, project_id: str, *, limit: int = 5) -> List[Summary]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM summaries WHERE project_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (project_id, limit),
            ).fetchall()
        return [
            Summary(
                id=row["id"],
                project_id=row["project_id"],
                session_id=row["session_id"],
                content=row["content"],
                observations_count=row["observations_count"],
                key_facts=json.loads(row["key_facts"]),
                time_range_start=_parse_ts(row["time_range_start"]),
                time_range_end=_parse_ts(row["time_range_end"]),
                created_at=_parse_ts(row["created_at"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._path, timeout=30.0)
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Cannot open SQLite database {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"SQLite operation failed: {exc}") from exc
        finally:
            conn.close()

    def _initialise(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        self._logger.debug("SQLite record store initialised at %s", self._path)

    @staticmethod
    def _row_to_ref(row: sqlite3.Row) -> RecordRef:
        return RecordRef(
            id=row["id"],
            kind=row["kind"],
            confidence=row["confidence"],
            embedding_id=row["embedding_id"],
        )

    @staticmethod
    def _row_to_memory(row: sqlite3.Row) -> MemoryEntry:
        return MemoryEntry(
            id=row["id"],
            project_id=row["project_id"],
            content=row["content"],
            entry_type=MemoryType(row["entry_type"]),
            context=row["context"],
            confidence=row["confidence"],
            embedding_id=row["embedding_id"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_observation(row: sqlite3.Row) -> Observation:
        return Observation(
            id=row["id"],
            project_id=row["project_id"],
            session_id=row["session_id"],
            obs_type=ObservationType(row["obs_type"]),
            title=row["title"],
            narrative=row["narrative"],
            facts=json.loads(row["facts"]),
            concepts=json.loads(row["concepts"]),
            files_modified=json.loads(row["files_modified"]),
            files_read=json.loads(row["files_read"]),
            confidence=row["confidence"],
            embedding_id=row["embedding_id"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_index(row: sqlite3.Row) -> ObservationIndex:
        return ObservationIndex(
            id=row["id"],
            obs_type=ObservationType(row["obs_type"]),
            title=row["title"],
            confidence=row["confidence"],
            created_at=_parse_ts(row["created_at"]),
        )
