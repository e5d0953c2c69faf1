"""Semantic memory and hybrid retrieval for project workflow orchestration."""

__version__ = "0.4.0"
