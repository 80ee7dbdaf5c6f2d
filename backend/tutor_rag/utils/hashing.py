"""Hashing utilities."""

from __future__ import annotations

import hashlib
from typing import Sequence


def sha256_text(text: str) -> str:
    """Return hex digest for a text input."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def vector_digest(vector: Sequence[float]) -> str:
    """Short digest identifying an exact float vector."""
    h = hashlib.blake2b(digest_size=16)
    for value in vector:
        h.update(float(value).hex().encode("ascii"))
    return h.hexdigest()


def char_code_hash(text: str) -> int:
    """32-bit rolling hash over the character codes of ``text``."""
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return value
