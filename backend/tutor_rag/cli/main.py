"""CLI entrypoint for the tutor RAG backend."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="trag", help="Tutor RAG command-line interface")
documents_app = typer.Typer(name="documents")
app.add_typer(documents_app, name="documents")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("TRAG_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


@app.command()
def ingest(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Plain-text document to index"),
    name: Optional[str] = typer.Option(None, "--name", help="Document name (defaults to the file name)"),
    document_id: Optional[str] = typer.Option(None, "--id", help="Stable document id"),
    user: Optional[str] = typer.Option(None, "--user", help="Owning user id"),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", help="Override chunk size"),
    chunk_overlap: Optional[int] = typer.Option(None, "--chunk-overlap", help="Override chunk overlap"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Chunk, embed and index a text file."""
    body: dict[str, object] = {
        "document_name": name or path.name,
        "text": path.expanduser().read_text(encoding="utf-8", errors="replace"),
    }
    if document_id:
        body["document_id"] = document_id
    if user:
        body["user_id"] = user
    if chunk_size is not None:
        body["chunk_size"] = chunk_size
    if chunk_overlap is not None:
        body["chunk_overlap"] = chunk_overlap
    resp = _request("POST", "/documents", host=host, json=body)
    payload = resp.json()
    typer.echo(json.dumps(payload, indent=2))
    if not payload.get("success"):
        raise typer.Exit(code=1)


@app.command()
def query(
    q: str = typer.Argument(..., help="Query text"),
    k: Optional[int] = typer.Option(None, "--k", help="Number of chunks to consider"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Minimum similarity score"),
    document: Optional[str] = typer.Option(None, "--document", help="Restrict to a document id"),
    user: Optional[str] = typer.Option(None, "--user", help="Restrict to a user's documents"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Retrieve cited context for a query."""
    payload: dict[str, object] = {"query": q}
    if k is not None:
        payload["k"] = k
    if threshold is not None:
        payload["similarity_threshold"] = threshold
    if document:
        payload["document_id"] = document
    if user:
        payload["user_id"] = user
    resp = _request("POST", "/retrieve", host=host, json=payload)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def stats(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show vector store statistics and recent retrievals."""
    resp = _request("GET", "/debug/vector-store", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@documents_app.command("list")
def list_documents(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List indexed documents."""
    resp = _request("GET", "/documents", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@documents_app.command("remove")
def remove_document(
    document_id: str = typer.Argument(..., help="Document identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Remove an indexed document."""
    _request("DELETE", f"/documents/{document_id}", host=host)
    typer.echo(json.dumps({"status": "ok"}))


if __name__ == "__main__":
    app()
