"""CLI tests against a stubbed backend."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import requests
from typer.testing import CliRunner

from tutor_rag.cli import main as cli

runner = CliRunner()


class FakeResponse:
    def __init__(self, status_code: int, payload: Any) -> None:
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def text(self) -> str:
        return json.dumps(self._payload)

    def json(self) -> Any:
        return self._payload


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    recorded: list[dict[str, Any]] = []
    responses = {
        ("POST", "/documents"): FakeResponse(200, {"document_id": "d1", "success": True, "chunk_count": 2}),
        ("POST", "/retrieve"): FakeResponse(200, {"context": "c", "sources": []}),
        ("GET", "/documents"): FakeResponse(200, []),
        ("DELETE", "/documents/d1"): FakeResponse(200, {"status": "ok", "document_id": "d1"}),
        ("GET", "/debug/vector-store"): FakeResponse(503, {"detail": "unavailable"}),
    }

    def fake_request(method: str, url: str, timeout: int, **kwargs: Any) -> FakeResponse:
        path = url[len("http://tutor.test") :]
        recorded.append({"method": method, "path": path, **kwargs})
        return responses[(method, path)]

    monkeypatch.setenv("TRAG_HOST", "http://tutor.test/")
    monkeypatch.setattr(requests, "request", fake_request)
    return recorded


def test_ingest_posts_file_contents(tmp_path: Path, calls: list[dict[str, Any]]) -> None:
    notes = tmp_path / "notes.txt"
    notes.write_text("Osmosis moves water across membranes.", encoding="utf-8")

    result = runner.invoke(cli.app, ["ingest", str(notes), "--user", "student", "--chunk-size", "500"])

    assert result.exit_code == 0, result.output
    body = calls[0]["json"]
    assert body["document_name"] == "notes.txt"
    assert body["text"] == "Osmosis moves water across membranes."
    assert body["user_id"] == "student"
    assert body["chunk_size"] == 500


def test_query_sends_optional_fields(calls: list[dict[str, Any]]) -> None:
    result = runner.invoke(cli.app, ["query", "what is osmosis", "--k", "3", "--threshold", "0.2"])
    assert result.exit_code == 0, result.output
    assert calls[0]["json"] == {"query": "what is osmosis", "k": 3, "similarity_threshold": 0.2}


def test_documents_commands(calls: list[dict[str, Any]]) -> None:
    assert runner.invoke(cli.app, ["documents", "list"]).exit_code == 0
    assert runner.invoke(cli.app, ["documents", "remove", "d1"]).exit_code == 0
    assert [(call["method"], call["path"]) for call in calls] == [("GET", "/documents"), ("DELETE", "/documents/d1")]


def test_failed_request_exits_non_zero(calls: list[dict[str, Any]]) -> None:
    result = runner.invoke(cli.app, ["stats"])
    assert result.exit_code == 1
