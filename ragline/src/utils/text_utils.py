"""
Ragline - Text Utilities
=========================
Helper functions for text normalisation and source naming.

These utilities are consumed by the chunker and the ingestion pipeline
and must remain stateless and side-effect-free.
"""

from __future__ import annotations

import re
from pathlib import Path

_WHITESPACE_RE = re.compile(r"\s+")

# Characters that would break a LanceDB SQL filter or a readable chunk id
_UNSAFE_SOURCE_CHARS_RE = re.compile(r"[^\w.\-]+")

_CONTENT_TYPES: dict[str, str] = {
    ".txt": "text/plain",
    ".md": "text/markdown",
}


def normalize_whitespace(text: str) -> str:
    """
    Collapse every run of whitespace to a single space and trim both ends.

    ``"  a\\n\\tb  "`` → ``"a b"``.  Whitespace-only input yields ``""``.
    """
    return _WHITESPACE_RE.sub(" ", text).strip()


def safe_source_name(name: str) -> str:
    """
    Reduce a source name to ``[A-Za-z0-9_.-]`` so it can be embedded in ids.

    Empty results fall back to ``"document"``.
    """
    cleaned = _UNSAFE_SOURCE_CHARS_RE.sub("_", name.strip()).strip("_")
    return cleaned or "document"


def content_type_for(filename: str) -> str:
    """Return the MIME type for a supported filename (``text/plain`` otherwise)."""
    return _CONTENT_TYPES.get(Path(filename).suffix.lower(), "text/plain")


def supported_suffixes() -> set[str]:
    return set(_CONTENT_TYPES)
