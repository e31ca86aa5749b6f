"""Channel merge, deduplication and document filtering."""

from collections import Counter

from .tokenize import normalize_for_key
from .types import RetrievalResult

DEDUP_PREFIX_CHARS = 200


def dedup_key(result: RetrievalResult) -> str:
    """Identity of the underlying content, independent of channel."""
    normalized = normalize_for_key(result.text)
    if normalized:
        return "text:" + normalized[:DEDUP_PREFIX_CHARS]
    return f"id:{result.source_id or ''}"


def sort_results(results: list[RetrievalResult]) -> list[RetrievalResult]:
    """Stable sort by score, highest first."""
    return sorted(results, key=lambda r: -r.score)


def merge_results(
    graph_results: list[RetrievalResult],
    direct_results: list[RetrievalResult],
) -> list[RetrievalResult]:
    """Concatenate graph then direct results, drop later duplicates, sort.

    The first occurrence of a key wins even when a later duplicate scores
    higher, so graph-channel passages shadow their direct-channel copies.
    """
    seen: set[str] = set()
    merged: list[RetrievalResult] = []
    for result in [*graph_results, *direct_results]:
        key = dedup_key(result)
        if key in seen:
            continue
        seen.add(key)
        merged.append(result)
    return sort_results(merged)


def filter_by_document(
    results: list[RetrievalResult],
    document_filter: list[str] | tuple[str, ...],
) -> list[RetrievalResult]:
    """Keep results whose document id contains any filter substring.

    Matching is case-insensitive. An empty filter keeps everything; results
    without a document id never match a non-empty filter.
    """
    needles = [f.casefold() for f in document_filter if f]
    if not needles:
        return list(results)

    kept = []
    for result in results:
        document_id = result.metadata.document_id
        if not document_id:
            continue
        haystack = document_id.casefold()
        if any(needle in haystack for needle in needles):
            kept.append(result)
    return kept


def document_sources(results: list[RetrievalResult]) -> dict[str, int]:
    """Passage count per document, most frequent first."""
    counts = Counter(
        r.metadata.document_id for r in results if r.metadata.document_id
    )
    return dict(counts.most_common())
