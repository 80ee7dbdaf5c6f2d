"""Tests for chunking utilities."""

import pytest

from tutor_rag.core.errors import ConfigurationError
from tutor_rag.ingest.chunker import chunk_text


def test_chunk_text_basic(sample_text: str) -> None:
    chunks = chunk_text(sample_text, "doc1", "notes.txt", chunk_size=1000, chunk_overlap=100)
    assert len(chunks) == 1
    chunk = chunks[0]
    assert chunk.id == "doc1-chunk-0"
    assert chunk.content == "Title\n\nParagraph one.\n\nParagraph two is here."
    assert chunk.total_chunks == 1
    assert chunk.document_name == "notes.txt"


def test_empty_and_whitespace_input_yield_no_chunks() -> None:
    assert chunk_text("", "doc", "empty.txt") == []
    assert chunk_text("   \n\n\t  \r\n ", "doc", "blank.txt") == []


def test_invalid_configuration_raises() -> None:
    with pytest.raises(ConfigurationError):
        chunk_text("text", "doc", "d.txt", chunk_size=0)
    with pytest.raises(ConfigurationError):
        chunk_text("text", "doc", "d.txt", chunk_size=100, chunk_overlap=-1)


def test_line_endings_and_blank_runs_are_normalized() -> None:
    chunks = chunk_text("one\r\ntwo\r\n\r\n\r\n\r\nthree\tfour", "doc", "d.txt")
    assert chunks[0].content == "one\ntwo\n\nthree four"


def test_paragraphs_pack_up_to_chunk_size_with_overlap() -> None:
    paragraphs = [f"Paragraph {idx} talks about topic number {idx} in detail." for idx in range(12)]
    text = "\n\n".join(paragraphs)
    chunks = chunk_text(text, "doc", "d.txt", chunk_size=200, chunk_overlap=40)

    assert len(chunks) > 1
    assert all(0 < len(chunk.content) <= 200 for chunk in chunks)
    assert [chunk.index for chunk in chunks] == list(range(len(chunks)))
    assert all(chunk.total_chunks == len(chunks) for chunk in chunks)

    for previous, current in zip(chunks, chunks[1:]):
        head = current.content.split("\n\n")[0]
        # the carried-over tail comes from the end of the previous chunk
        assert previous.content.endswith(head)
        assert len(head) <= 40


def test_every_paragraph_is_covered() -> None:
    paragraphs = [f"Unique marker {idx} " + "filler " * 10 for idx in range(20)]
    chunks = chunk_text("\n\n".join(paragraphs), "doc", "d.txt", chunk_size=150, chunk_overlap=20)
    joined = "\n".join(chunk.content for chunk in chunks)
    for idx in range(20):
        assert f"Unique marker {idx} " in joined


def test_oversized_paragraph_splits_on_sentences() -> None:
    sentence = "This sentence is about forty characters."
    paragraph = " ".join([sentence] * 20)
    chunks = chunk_text(paragraph, "doc", "d.txt", chunk_size=100, chunk_overlap=10)

    assert len(chunks) > 1
    for chunk in chunks:
        assert len(chunk.content) <= 100
        assert chunk.content.endswith(".")
        assert chunk.content.startswith("This sentence")


def test_oversized_sentence_wraps_on_words() -> None:
    words = " ".join(f"word{idx}" for idx in range(200))
    chunks = chunk_text(words, "doc", "d.txt", chunk_size=50, chunk_overlap=0)
    assert all(len(chunk.content) <= 50 for chunk in chunks)
    assert " ".join(chunk.content for chunk in chunks).split() == words.split()


def test_single_word_longer_than_chunk_size_is_cut() -> None:
    chunks = chunk_text("x" * 25, "doc", "d.txt", chunk_size=10, chunk_overlap=3)
    assert [chunk.content for chunk in chunks] == ["x" * 10, "x" * 10, "x" * 5]


def test_overlap_larger_than_chunk_size_is_capped() -> None:
    text = "\n\n".join(["alpha beta gamma"] * 10)
    chunks = chunk_text(text, "doc", "d.txt", chunk_size=40, chunk_overlap=500)
    assert chunks
    assert all(len(chunk.content) <= 40 for chunk in chunks)
