"""Ordered context rendering for the answer generator."""

import math

from .types import RetrievalResult

# Lines carrying graph bookkeeping rather than document content.
_BOOKKEEPING_MARKERS = (
    "urn:hkv:prop:",
    "rdf-syntax-ns#type",
    "triplet_source_id",
    "documentid",
    "from_document",
)
_UNKNOWN_SOURCE = "graph"


def estimate_tokens(text: str) -> int:
    """Estimate tokens with 10% safety margin."""
    if not text:
        return 0
    return int(math.ceil((len(text) / 4.0) * 1.10))


def _drop_line(line: str) -> bool:
    lowered = (line or "").lower()
    if not lowered.strip():
        return True
    return any(marker in lowered for marker in _BOOKKEEPING_MARKERS)


def sanitize_context_text(text: str | None) -> str:
    """Remove blank and bookkeeping lines from a passage."""
    lines = (text or "").split("\n")
    return "\n".join(line for line in lines if not _drop_line(line)).strip()


def source_info(result: RetrievalResult) -> str:
    metadata = result.metadata
    info = f"from: {metadata.document_id or _UNKNOWN_SOURCE}"
    if metadata.page_number:
        info += f", page {metadata.page_number}"
    if metadata.content_type == "image":
        info += ", [IMAGE DESCRIPTION]"
    return info


def render_context_with_meta(
    results: list[RetrievalResult] | tuple[RetrievalResult, ...],
    *,
    max_passages: int,
    max_tokens: int | None = None,
) -> tuple[list[str], list[RetrievalResult], bool]:
    """Render numbered passages.

    Returns the blocks, the results they were rendered from (in the same
    order) and whether the token budget cut any passage.

    Passages that are empty after sanitizing are skipped and do not consume a
    number. The budget, when given, stops rendering at the first passage that
    would overflow it.
    """
    blocks: list[str] = []
    rendered: list[RetrievalResult] = []
    used = 0
    truncated = False
    for result in results:
        if len(blocks) >= max_passages:
            break
        cleaned = sanitize_context_text(result.text)
        if not cleaned:
            continue
        block = f"[{len(blocks) + 1}] ({source_info(result)})\n{cleaned}"
        block_tokens = estimate_tokens(block + "\n\n")
        if max_tokens is not None and used + block_tokens > max_tokens:
            truncated = True
            break
        blocks.append(block)
        rendered.append(result)
        used += block_tokens
    return blocks, rendered, truncated


def render_context(
    results: list[RetrievalResult] | tuple[RetrievalResult, ...],
    *,
    max_passages: int = 8,
    max_tokens: int | None = None,
) -> list[str]:
    """Ordered context blocks as handed to the answer generator."""
    blocks, _, _ = render_context_with_meta(
        results, max_passages=max_passages, max_tokens=max_tokens
    )
    return blocks
