"""Chunking utilities."""

from __future__ import annotations

import re
from typing import Iterator

from tutor_rag.core.errors import ConfigurationError
from tutor_rag.ingest.types import Chunk
from tutor_rag.utils.ids import chunk_id
from tutor_rag.utils.text import normalize_document

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+")
_PARAGRAPH_SEP = "\n\n"


def chunk_text(
    text: str,
    document_id: str,
    document_name: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 100,
) -> list[Chunk]:
    """Split text into overlapping passages, paragraph first.

    Paragraphs are packed greedily up to ``chunk_size`` characters. When a
    chunk is flushed, the next one starts with roughly ``chunk_overlap``
    trailing characters of it. Paragraphs longer than ``chunk_size`` are split
    at sentence boundaries (and hard-wrapped on words as a last resort)
    without any injected overlap.
    """
    if chunk_size <= 0:
        raise ConfigurationError("chunk_size must be positive", {"chunk_size": chunk_size})
    if chunk_overlap < 0:
        raise ConfigurationError("chunk_overlap must not be negative", {"chunk_overlap": chunk_overlap})
    overlap = min(chunk_overlap, chunk_size - 1)

    cleaned = normalize_document(text)
    if not cleaned:
        return []

    pieces: list[str] = []
    buffer = ""
    for paragraph in _iter_paragraphs(cleaned):
        if len(paragraph) > chunk_size:
            if buffer:
                pieces.append(buffer)
            sentence_pieces = _split_oversized(paragraph, chunk_size)
            pieces.extend(sentence_pieces[:-1])
            buffer = sentence_pieces[-1]
            continue

        if not buffer:
            buffer = paragraph
            continue

        candidate = f"{buffer}{_PARAGRAPH_SEP}{paragraph}"
        if len(candidate) <= chunk_size:
            buffer = candidate
            continue

        pieces.append(buffer)
        room = chunk_size - len(paragraph) - len(_PARAGRAPH_SEP)
        tail = _overlap_tail(buffer, min(overlap, room))
        buffer = f"{tail}{_PARAGRAPH_SEP}{paragraph}" if tail else paragraph

    if buffer:
        pieces.append(buffer)

    total = len(pieces)
    return [
        Chunk(
            id=chunk_id(document_id, index),
            content=content,
            document_id=document_id,
            document_name=document_name,
            index=index,
            total_chunks=total,
        )
        for index, content in enumerate(pieces)
    ]


def _iter_paragraphs(text: str) -> Iterator[str]:
    for block in _PARAGRAPH_RE.split(text):
        paragraph = block.strip()
        if paragraph:
            yield paragraph


def _overlap_tail(content: str, size: int) -> str:
    """Trailing ``size`` characters of ``content``, starting on a word boundary."""
    if size <= 0 or not content:
        return ""
    if len(content) <= size:
        return content.strip()
    start = len(content) - size
    tail = content[start:]
    if not content[start - 1].isspace() and not tail[0].isspace():
        boundary = re.search(r"\s", tail)
        if boundary is None:
            return ""
        tail = tail[boundary.end() :]
    return tail.strip()


def _split_oversized(paragraph: str, chunk_size: int) -> list[str]:
    pieces: list[str] = []
    current = ""
    for sentence in _SENTENCE_BOUNDARY_RE.split(paragraph):
        sentence = sentence.strip()
        if not sentence:
            continue
        if len(sentence) > chunk_size:
            if current:
                pieces.append(current)
            wrapped = _wrap_words(sentence, chunk_size)
            pieces.extend(wrapped[:-1])
            current = wrapped[-1]
            continue
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= chunk_size:
            current = candidate
        else:
            pieces.append(current)
            current = sentence
    if current:
        pieces.append(current)
    return pieces


def _wrap_words(sentence: str, chunk_size: int) -> list[str]:
    pieces: list[str] = []
    current = ""
    for word in sentence.split():
        while len(word) > chunk_size:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(word[:chunk_size])
            word = word[chunk_size:]
        if not word:
            continue
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= chunk_size:
            current = candidate
        else:
            pieces.append(current)
            current = word
    if current:
        pieces.append(current)
    return pieces


__all__ = ["chunk_text"]
