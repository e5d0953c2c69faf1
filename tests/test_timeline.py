"""Tests for timeline views and observation summaries."""

from __future__ import annotations

from datetime import timedelta

import pytest

from cwa.memory.records import Observation, ObservationType, utcnow


def test_timeline_returns_compact_rows_newest_first(engine):
    first = engine.observations.add_observation("proj", "bugfix", "Fix login").id
    second = engine.observations.add_observation("proj", "feature", "Add SSO").id

    rows = engine.timeline.get_timeline("proj")

    assert [row.id for row in rows] == [second, first]
    document = rows[0].to_document()
    assert set(document) == {"id", "obs_type", "title", "confidence", "created_at"}


def test_timeline_window_excludes_old_observations(engine, record_store):
    record_store.save_observation(
        Observation(
            id="ancient",
            project_id="proj",
            obs_type=ObservationType.CHANGE,
            title="Old change",
            created_at=utcnow() - timedelta(days=10),
        )
    )
    recent = engine.observations.add_observation("proj", "change", "New change").id

    assert [row.id for row in engine.timeline.get_timeline("proj", days=7)] == [recent]
    assert {row.id for row in engine.timeline.get_timeline("proj", days=30)} == {recent, "ancient"}


def test_timeline_rejects_negative_days(engine):
    with pytest.raises(ValueError):
        engine.timeline.get_timeline("proj", days=-1)


def test_get_observations_returns_full_details(engine):
    obs_id = engine.observations.add_observation(
        "proj", "insight", "Batching halves latency", facts=["batch=32"]
    ).id

    [observation] = engine.timeline.get_observations([obs_id])

    assert observation.facts == ["batch=32"]


def test_summarize_builds_digest_and_persists(engine):
    engine.observations.add_observation("proj", "bugfix", "Fix login", facts=["cookie path fixed"])
    engine.observations.add_observation("proj", "feature", "Add SSO", facts=["okta", "azure"])

    summary = engine.timeline.summarize("proj", count=10, session_id="s-9")

    assert summary.content == "[FEATURE] Add SSO. [BUGFIX] Fix login"
    assert summary.observations_count == 2
    assert summary.key_facts == ["okta", "azure", "cookie path fixed"]
    assert summary.session_id == "s-9"
    assert summary.time_range_start <= summary.time_range_end

    [stored] = engine.timeline.recent_summaries("proj")
    assert stored.id == summary.id
    assert stored.content == summary.content


def test_summarize_respects_count(engine):
    for title in ("one", "two", "three"):
        engine.observations.add_observation("proj", "change", title)

    summary = engine.timeline.summarize("proj", count=2)

    assert summary.observations_count == 2
    assert summary.content == "[CHANGE] three. [CHANGE] two"


def test_summarize_without_observations_returns_none(engine):
    assert engine.timeline.summarize("proj") is None
    assert engine.timeline.recent_summaries("proj") == []
