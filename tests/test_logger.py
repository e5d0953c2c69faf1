"""Tests for logging setup."""

from __future__ import annotations

import logging

import pytest

from cwa.core import logger as cwa_logger
from cwa.core.logger import get_logger, project_context, session_log_path, setup_logging


@pytest.fixture
def fresh_logging(monkeypatch):
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    monkeypatch.setattr(cwa_logger, "_configured", False)
    monkeypatch.setattr(cwa_logger, "_session_log", None)
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_get_logger_namespaces_names():
    assert get_logger("HybridSearchEngine").name == "cwa.HybridSearchEngine"
    assert get_logger("cwa.cli").name == "cwa.cli"
    assert get_logger().name == "cwa"


def test_setup_logging_writes_session_file(tmp_path, fresh_logging):
    setup_logging("DEBUG", log_dir=tmp_path)

    get_logger("test").info("hello session")
    for handler in logging.getLogger().handlers:
        handler.flush()

    path = session_log_path()
    assert path is not None and path.parent == tmp_path
    assert "hello session" in path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_records_carry_project_context(tmp_path, fresh_logging):
    setup_logging("INFO", log_dir=tmp_path)

    with project_context("billing"):
        get_logger("test").info("inside")
    get_logger("test").info("outside")
    for handler in logging.getLogger().handlers:
        handler.flush()

    lines = session_log_path().read_text(encoding="utf-8").splitlines()
    assert "| billing | cwa.test | inside" in lines[0]
    assert "| - | cwa.test | outside" in lines[1]


def test_setup_logging_without_file(fresh_logging):
    setup_logging("warning", log_dir=False)

    assert session_log_path() is None
    assert logging.getLogger().level == logging.WARNING


def test_second_call_only_changes_level(tmp_path, fresh_logging):
    setup_logging("INFO", log_dir=False)
    handlers = logging.getLogger().handlers[:]

    setup_logging("ERROR", log_dir=tmp_path)

    assert logging.getLogger().handlers == handlers
    assert logging.getLogger().level == logging.ERROR
