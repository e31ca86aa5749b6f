"""Diagnostic replay of the graph path.

``explain`` runs exactly the computation ``ask`` runs for the graph channel
and reports every intermediate value, so an operator can see why a fact was
ranked where it was.
"""

from .config import DEFAULT_QUERY_OPTIONS, QueryOptions
from .pipeline import EmbeddingProvider, prepare_query, run_graph_path
from .stages import GraphStore
from .types import ExplainTrace

DEFAULT_TOP_N = 10


async def explain(
    query: str,
    *,
    store: GraphStore,
    embedder: EmbeddingProvider,
    options: QueryOptions = DEFAULT_QUERY_OPTIONS,
    top_n: int = DEFAULT_TOP_N,
) -> ExplainTrace:
    """Build an ExplainTrace for ``query``.

    Unlike ``ask``, a rejected query embedding propagates as ValidationError.
    """
    normalized = prepare_query(query, options)
    query_embedding = await embedder.embed(normalized)
    path = await run_graph_path(store, query_embedding, options)
    return ExplainTrace(
        query=normalized,
        embedding_dimensions=path.embedding_dimensions,
        boost_enabled=options.cross_check_boost,
        boost_factor=options.cross_check_boost_factor,
        matches=path.matches,
        triplet_count=path.triplet_count,
        semantic_count=path.semantic_count,
        metadata_count=path.metadata_count,
        scored=path.ranked,
        top=path.ranked[: max(0, top_n)],
    )


def render_trace(trace: ExplainTrace) -> str:
    boost = (
        f"on (x{trace.boost_factor:g})" if trace.boost_enabled else "off"
    )
    lines = [
        f"Query: {trace.query}",
        f"Embedding dimensions: {trace.embedding_dimensions}",
        f"Cross-check boost: {boost}",
        "",
        f"Vector matches ({len(trace.matches)}):",
    ]
    for i, match in enumerate(trace.matches, 1):
        node = match.node
        lines.append(f"  {i}. [{match.score:.4f}] {node.name} ({node.label}, {node.id})")
    if not trace.matches:
        lines.append("  (none)")

    lines += [
        "",
        f"Triplets: {trace.triplet_count} total, {trace.semantic_count} semantic, "
        f"{trace.metadata_count} metadata",
        f"Boosted: {trace.boosted_count}/{len(trace.scored)}",
        "",
        f"Top {len(trace.top)} facts:",
    ]
    for i, scored in enumerate(trace.top, 1):
        line = (
            f"  {i}. [{scored.base_score:.4f} -> {scored.boosted_score:.4f}] "
            f"{scored.triplet.describe()} | {scored.reason}"
        )
        if scored.matched_key:
            line += f" via {scored.matched_key}"
        lines.append(line)
    if not trace.top:
        lines.append("  (none)")
    return "\n".join(lines)
