"""Test fixtures for the tutor RAG backend."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

_DEPLOYMENT_ENV = (
    "OPENAI_API_KEY",
    "OPENAI_API_BASE_URL",
    "OPENAI_EMBEDDING_MODEL",
    "OLLAMA_BASE_URL",
    "CHUNK_SIZE",
    "CHUNK_OVERLAP",
    "SUPABASE_URL",
    "NEXT_PUBLIC_SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
)


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    for key in list(os.environ):
        if key.startswith("TRAG_"):
            monkeypatch.delenv(key, raising=False)
    for key in _DEPLOYMENT_ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("TRAG_CONFIG", str(tmp_path / "missing-config.yaml"))

    from tutor_rag.api import dependencies as deps

    deps.reset_dependencies()
    yield
    deps.reset_dependencies()


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."
