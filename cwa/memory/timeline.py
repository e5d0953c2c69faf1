"""Progressive-disclosure views over observations and their summaries."""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import List, Optional, Sequence

from cwa.core.logger import get_logger

from .records import Observation, ObservationIndex, Summary, utcnow
from .storage.base import RecordStore

SUMMARY_WINDOW_DAYS = 30


class ObservationTimeline:
    """Read compact timelines, full details, and compress runs into summaries."""

    def __init__(self, record_store: RecordStore) -> None:
        self._records = record_store
        self._logger = get_logger(self.__class__.__name__)

    def get_timeline(self, project_id: str, days: int = 7, limit: int = 50) -> List[ObservationIndex]:
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")
        since = utcnow() - timedelta(days=days)
        return self._records.observations_since(project_id, since, limit=limit)

    def list_observations(self, project_id: str, limit: int = 20) -> List[ObservationIndex]:
        return self._records.list_observations(project_id, limit=limit)

    def get_observations(self, ids: Sequence[str]) -> List[Observation]:
        return self._records.get_observations(ids)

    def summarize(
        self,
        project_id: str,
        count: int = 20,
        *,
        session_id: Optional[str] = None,
    ) -> Optional[Summary]:
        """Persist a digest of the latest ``count`` observations.

        Returns ``None`` when the project has no recent observations.
        """
        index = self.get_timeline(project_id, days=SUMMARY_WINDOW_DAYS, limit=count)
        if not index:
            return None

        observations = self._records.get_observations([row.id for row in index])
        if not observations:
            return None

        parts: List[str] = []
        key_facts: List[str] = []
        for observation in observations:
            parts.append(f"[{observation.obs_type.value.upper()}] {observation.title}")
            key_facts.extend(observation.facts)

        timestamps = [observation.created_at for observation in observations]
        summary = Summary(
            id=str(uuid.uuid4()),
            project_id=project_id,
            session_id=session_id,
            content=". ".join(parts),
            observations_count=len(observations),
            key_facts=key_facts,
            time_range_start=min(timestamps),
            time_range_end=max(timestamps),
        )
        self._records.save_summary(summary)
        self._logger.info(
            "Summary %s created from %d observations (%d key facts)",
            summary.id,
            summary.observations_count,
            len(key_facts),
        )
        return summary

    def recent_summaries(self, project_id: str, limit: int = 5) -> List[Summary]:
        return self._records.recent_summaries(project_id, limit=limit)
