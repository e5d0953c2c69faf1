"""Tests for the agent-facing memory tool."""

from __future__ import annotations

import pytest

from cwa.core.exceptions import ToolError
from cwa_mcp.tool_blueprint import ToolResult
from cwa_mcp.tools.memory_tool import MemoryTool, MemoryToolConfig


@pytest.fixture
def tool(engine) -> MemoryTool:
    return MemoryTool(engine)


def test_schema_lists_operations(tool):
    schema = tool.schema()
    assert schema["name"] == "memory"
    assert "add_observation" in schema["parameters"]["properties"]["operation"]["enum"]
    assert schema["parameters"]["required"] == ["operation"]
    guide = tool.get_usage_guide()
    assert guide.startswith("# memory Usage Guide")
    assert '"operation": "compact"' in guide


def test_add_memory_and_search(tool):
    added = tool(
        operation="add_memory",
        project_id="proj",
        content="Use PostgreSQL for persistence",
        entry_type="decision",
    )
    assert added.success
    memory_id = added.unwrap()["id"]

    found = tool(operation="search", project_id="proj", query="PostgreSQL", top_k=3)

    data = found.unwrap()
    assert data["matches"][0]["id"] == memory_id
    assert data["matches"][0]["collection"] == "cwa_memories"
    assert data["degraded"] is False


def test_unknown_operation_raises_tool_error(tool):
    with pytest.raises(ToolError):
        tool(operation="forget_everything", project_id="proj")


def test_unknown_field_raises_tool_error(tool):
    with pytest.raises(ToolError):
        tool(operation="search", query="x", mystery=True)


def test_missing_required_field_raises_tool_error(tool):
    with pytest.raises(ToolError):
        tool(operation="add_memory", project_id="proj", entry_type="fact")


def test_engine_errors_become_failed_results(tool):
    result = tool(operation="add_memory", project_id="proj", content="x", entry_type="rumour")

    assert isinstance(result, ToolResult)
    assert result.success is False
    assert "Invalid memory type" in result.error
    with pytest.raises(ToolError):
        result.unwrap()


def test_add_observation_with_lists(tool, engine):
    result = tool(
        operation="add_observation",
        project_id="proj",
        obs_type="refactor",
        title="Split the repository layer",
        facts=["one class per aggregate"],
        confidence=0.6,
    )

    stored = engine.records.get_observation(result.unwrap()["id"])
    assert stored.facts == ["one class per aggregate"]
    assert stored.confidence == 0.6


def test_get_observations_boosts_confidence(engine):
    tool = MemoryTool(engine, config=MemoryToolConfig(boost_on_access=0.1))
    obs_id = engine.observations.add_observation("proj", "insight", "Retry with jitter", confidence=0.5).id

    result = tool(operation="get_observations", ids=[obs_id])

    [document] = result.unwrap()["matches"]
    assert document["confidence"] == pytest.approx(0.6)
    assert engine.records.get_observation(obs_id).confidence == pytest.approx(0.6)


def test_get_observations_uses_engine_boost_by_default(tool, engine):
    obs_id = engine.observations.add_observation("proj", "insight", "Retry with jitter", confidence=0.5).id

    tool(operation="get_observations", ids=[obs_id])

    expected = 0.5 + engine.config.boost_on_access
    assert engine.records.get_observation(obs_id).confidence == pytest.approx(expected)


def test_get_observations_requires_ids(tool):
    with pytest.raises(ToolError):
        tool(operation="get_observations")


def test_timeline_summarize_and_list(tool, engine):
    engine.observations.add_observation("proj", "bugfix", "Fix login")

    timeline = tool(operation="timeline", project_id="proj", days=1).unwrap()
    listed = tool(operation="list_observations", project_id="proj", limit=5).unwrap()
    summary = tool(operation="summarize", project_id="proj").unwrap()

    assert [row["title"] for row in timeline["matches"]] == ["Fix login"]
    assert len(listed["matches"]) == 1
    assert summary["summary"]["content"] == "[BUGFIX] Fix login"


def test_decay_then_compact(tool, engine):
    obs_id = engine.observations.add_observation("proj", "change", "Minor tweak", confidence=0.4).id

    decayed = tool(operation="decay", project_id="proj", factor=0.5).unwrap()
    report = tool(operation="compact", project_id="proj").unwrap()

    assert decayed == {"decayed": 1}
    assert report["removed_observations"] == [obs_id]
    assert report["vector_deletions"][0]["succeeded"] is True


def test_decay_requires_factor(tool):
    with pytest.raises(ToolError):
        tool(operation="decay", project_id="proj")


def test_find_orphans_reports_missing_vectors(tool, vector_store):
    vector_store.fail_upsert = True
    failed = tool(operation="add_memory", project_id="proj", content="lost", entry_type="fact")
    vector_store.fail_upsert = False

    orphans = tool(operation="find_orphans", project_id="proj").unwrap()

    assert failed.success is False
    assert len(orphans["matches"]) == 1
    assert orphans["matches"][0]["kind"] == "memory"


def test_metrics_count_writes_reads_and_lifecycle(tool, engine, vector_store):
    tool(operation="add_memory", project_id="proj", content="x", entry_type="fact")
    tool(operation="add_memory", project_id="proj", content="x", entry_type="rumour")
    vector_store.fail_upsert = True
    tool(operation="add_memory", project_id="proj", content="y", entry_type="fact")
    vector_store.fail_upsert = False
    vector_store.fail_search.add("cwa_terms")
    tool(operation="search", project_id="proj", query="x")
    tool(operation="list_observations", project_id="other")
    tool(operation="compact", project_id="proj", min_confidence=0.6)

    metrics = tool.metrics.as_dict()
    assert metrics["writes"] == {
        "attempts": 3,
        "stored": 1,
        "failed": 2,
        "orphaned": 1,
        "failures": {"InvalidMemoryType": 1, "VectorUpsertFailure": 1},
    }
    assert metrics["searches"]["requests"] == 2
    assert metrics["searches"]["empty"] == 1
    assert metrics["searches"]["degraded"] == 1
    assert metrics["searches"]["collection_failures"] == {"cwa_terms": 1}
    assert metrics["searches"]["operations"] == {"search": 1, "list_observations": 1}
    assert metrics["lifecycle"]["compacted_rows"] == 2
    assert tool.metrics is engine.metrics


def test_get_observations_counts_boosts(tool, engine):
    obs_id = engine.observations.add_observation("proj", "insight", "Retry with jitter").id
    tool(operation="get_observations", ids=[obs_id])
    assert tool.metrics.as_dict()["lifecycle"]["boosts"] == 1


def test_engine_factory_is_lazy(engine):
    calls = []

    def factory():
        calls.append(1)
        return engine

    tool = MemoryTool(engine_factory=factory)
    assert calls == []
    tool(operation="list_observations", project_id="proj")
    tool(operation="list_observations", project_id="proj")
    assert calls == [1]


def test_engine_factory_failure_raises_tool_error():
    def factory():
        raise RuntimeError("qdrant down")

    with pytest.raises(ToolError):
        MemoryTool(engine_factory=factory)(operation="list_observations", project_id="proj")
