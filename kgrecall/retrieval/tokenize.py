"""Deterministic text normalization."""

import re

_WS_RE = re.compile(r"\s+")


def normalize_whitespace(text: str | None) -> str:
    """Collapse whitespace to single spaces."""
    if text is None:
        return ""
    return _WS_RE.sub(" ", text.replace("\n", " ").replace("\t", " ")).strip()


def normalize_for_key(text: str | None) -> str:
    """Whitespace-collapsed, case-folded text for identity comparisons."""
    return normalize_whitespace(text).casefold()
