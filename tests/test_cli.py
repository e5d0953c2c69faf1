"""Tests for the cwa-memory command line."""

from __future__ import annotations

import pytest

from cwa import cli
from cwa.core import logger as cwa_logger
from cwa.core.exceptions import EmbeddingUnavailable


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch, tmp_path):
    # keep the root handlers installed by pytest
    monkeypatch.setattr(cwa_logger, "_configured", True)
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("CWA_VECTOR_BACKEND", raising=False)
    monkeypatch.delenv("CWA_EMBEDDING_PROVIDER", raising=False)


@pytest.fixture
def run(engine, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    def _run(*argv: str) -> int:
        return cli.main(["--project", "proj", *argv], engine_factory=lambda config: engine)

    return _run


def test_add_and_search(run, capsys):
    assert run("add", "Use PostgreSQL for persistence", "--type", "decision") == 0
    assert "Memory added:" in capsys.readouterr().out

    assert run("search", "PostgreSQL", "--collection", "cwa_memories") == 0
    out = capsys.readouterr().out
    assert "[cwa_memories]" in out
    assert "Use PostgreSQL for persistence" in out


def test_observe_and_timeline(run, capsys, engine):
    assert run(
        "observe",
        "Fix token refresh",
        "--type",
        "bugfix",
        "--fact",
        "refresh is locked",
        "--file-modified",
        "auth.py",
    ) == 0
    capsys.readouterr()

    assert run("timeline", "--days", "1") == 0
    out = capsys.readouterr().out
    assert "[BUGFIX] Fix token refresh (0.80)" in out

    [row] = engine.timeline.list_observations("proj")
    assert engine.records.get_observation(row.id).files_modified == ["auth.py"]


def test_summarize_without_observations(run, capsys):
    assert run("summarize") == 0
    assert "No observations to summarize." in capsys.readouterr().out


def test_compact_with_decay(run, capsys, engine):
    engine.observations.add_observation("proj", "change", "Tiny tweak", confidence=0.5)

    assert run("compact", "--decay", "0.5", "--min-confidence", "0.3") == 0

    out = capsys.readouterr().out
    assert "Decayed 1 observations by 0.5" in out
    assert "Removed 0 memories and 1 observations" in out


def test_orphans_listed(run, capsys, vector_store):
    vector_store.fail_upsert = True
    assert run("add", "Lost vector") == 1
    vector_store.fail_upsert = False
    capsys.readouterr()

    assert run("orphans") == 0
    assert "missing from cwa_memories" in capsys.readouterr().out


def test_engine_errors_exit_with_one(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)

    def broken_factory(config):
        raise EmbeddingUnavailable("ollama is not running")

    assert cli.main(["search", "x"], engine_factory=broken_factory) == 1
    assert "ollama is not running" in capsys.readouterr().err


def test_configuration_error_exits_with_one(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CWA_VECTOR_BACKEND", "pinecone")

    assert cli.main(["orphans"], engine_factory=lambda config: None) == 1
    assert "Configuration error" in capsys.readouterr().err


def test_invalid_observation_type_is_rejected_by_parser(run):
    with pytest.raises(SystemExit):
        run("observe", "title", "--type", "chore")
