"""Text processing helpers."""

from __future__ import annotations

import re

_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def normalize_document(text: str) -> str:
    """Unify line endings, expand tabs and keep at most one blank line between paragraphs."""
    cleaned = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", " ")
    return _EXCESS_NEWLINES_RE.sub("\n\n", cleaned).strip()
