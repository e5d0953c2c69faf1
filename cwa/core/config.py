"""Configuration loader for the memory engine."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, MutableMapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigError

SUPPORTED_VECTOR_BACKENDS = ("qdrant", "faiss")
SUPPORTED_EMBEDDING_PROVIDERS = ("ollama", "qwen", "hash")


def _coerce_optional(value: Optional[str]) -> Optional[str]:
    """Return stripped value or ``None`` when the input is empty."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _mask(value: Optional[str]) -> str:
    if not value:
        return "<empty>"
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}***{value[-4:]}"


def _read_float(name: str, default: float, logger: logging.Logger) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s '%s', defaulting to %s", name, raw, default)
        return default


def _read_int(name: str, default: int, logger: logging.Logger) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s '%s', defaulting to %s", name, raw, default)
        return default


def _read_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = (os.getenv(name) or default).strip().lower()
    if value not in choices:
        supported = ", ".join(choices)
        raise ConfigError(f"Unsupported {name} '{value}'. Supported values: {supported}.")
    return value


@dataclass(frozen=True)
class Config:
    """Immutable runtime configuration derived from environment variables."""

    db_path: Path
    vector_backend: str
    qdrant_url: str
    qdrant_api_key: Optional[str]
    faiss_dir: Path
    embedding_provider: str
    ollama_url: str
    embedding_model: str
    embedding_dim: int
    request_timeout: float
    collection_timeout: float
    boost_on_access: float
    log_level: str
    env_path: Optional[str] = field(default=None, repr=False)

    @classmethod
    def load(
        cls,
        env_file: Optional[Path | str] = None,
        *,
        override_env: Optional[MutableMapping[str, str]] = None,
    ) -> "Config":
        """Load configuration from ``.env`` and the current environment."""
        env_path = Path(env_file) if env_file is not None else Path.cwd() / ".env"

        logger = logging.getLogger(__name__)
        env_path_str: Optional[str] = None

        if env_path.exists():
            load_dotenv(dotenv_path=env_path, override=True)
            logger.debug("Loaded .env file", extra={"env_path": str(env_path)})
            env_path_str = str(env_path)
        else:
            load_dotenv(override=False)
            logger.debug("No .env file at %s; using process environment", env_path)

        if override_env:
            for key, value in override_env.items():
                os.environ[key] = value

        vector_backend = _read_choice("CWA_VECTOR_BACKEND", "qdrant", SUPPORTED_VECTOR_BACKENDS)
        embedding_provider = _read_choice(
            "CWA_EMBEDDING_PROVIDER", "ollama", SUPPORTED_EMBEDDING_PROVIDERS
        )

        embedding_dim = _read_int("CWA_EMBEDDING_DIM", 768, logger)
        if embedding_dim <= 0:
            raise ConfigError(f"CWA_EMBEDDING_DIM must be positive, got {embedding_dim}.")

        boost_on_access = _read_float("CWA_BOOST_ON_ACCESS", 0.05, logger)
        if not 0.0 <= boost_on_access <= 1.0:
            raise ConfigError(f"CWA_BOOST_ON_ACCESS must be within [0, 1], got {boost_on_access}.")

        qdrant_api_key = _coerce_optional(os.getenv("QDRANT_API_KEY"))
        config = cls(
            db_path=Path(os.getenv("CWA_DB_PATH", "data/cwa/memory.db")),
            vector_backend=vector_backend,
            qdrant_url=(os.getenv("QDRANT_URL") or "http://localhost:6334").strip(),
            qdrant_api_key=qdrant_api_key,
            faiss_dir=Path(os.getenv("CWA_FAISS_DIR", "data/cwa/vectors")),
            embedding_provider=embedding_provider,
            ollama_url=(os.getenv("OLLAMA_URL") or "http://localhost:11434").strip().rstrip("/"),
            embedding_model=(os.getenv("CWA_EMBEDDING_MODEL") or "nomic-embed-text").strip(),
            embedding_dim=embedding_dim,
            request_timeout=_read_float("CWA_REQUEST_TIMEOUT", 30.0, logger),
            collection_timeout=_read_float("CWA_COLLECTION_TIMEOUT", 10.0, logger),
            boost_on_access=boost_on_access,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            env_path=env_path_str,
        )

        logger.debug(
            "Environment variables resolved",
            extra={
                "vector_backend": vector_backend,
                "embedding_provider": embedding_provider,
                "qdrant_api_key": _mask(qdrant_api_key),
                "embedding_dim": embedding_dim,
            },
        )
        return config

    def as_dict(self) -> Mapping[str, str]:
        """Expose configuration values for debugging, with secrets masked."""
        return {
            "db_path": str(self.db_path),
            "vector_backend": self.vector_backend,
            "qdrant_url": self.qdrant_url,
            "qdrant_api_key": _mask(self.qdrant_api_key),
            "faiss_dir": str(self.faiss_dir),
            "embedding_provider": self.embedding_provider,
            "ollama_url": self.ollama_url,
            "embedding_model": self.embedding_model,
            "embedding_dim": str(self.embedding_dim),
            "request_timeout": str(self.request_timeout),
            "collection_timeout": str(self.collection_timeout),
            "boost_on_access": str(self.boost_on_access),
            "log_level": self.log_level,
        }
