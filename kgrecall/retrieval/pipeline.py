"""Hybrid recall orchestration: graph path and direct-chunk channel."""

import asyncio
import logging
from typing import Protocol

from ..errors import UserInputError, ValidationError
from ..graph.predicates import classify_triplets
from .config import DEFAULT_QUERY_OPTIONS, QueryOptions
from .merge import document_sources, filter_by_document, merge_results
from .provenance import rank_triplets
from .renderer import render_context_with_meta
from .stages import (
    ChunkIndex,
    GraphStore,
    assemble_graph_passages,
    expand_graph,
    search_direct_chunks,
    vector_match,
)
from .tokenize import normalize_whitespace
from .types import (
    Answer,
    GraphPathResult,
    RankedResponse,
    ResponseCounters,
    RetrievalResult,
)

log = logging.getLogger(__name__)

NO_INFORMATION_ANSWER = (
    "I don't have enough information in the uploaded documents to answer that question."
)


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


class AnswerGenerator(Protocol):
    async def generate(self, question: str, context: list[str]) -> str: ...


def prepare_query(query: str, options: QueryOptions) -> str:
    """Normalize the query and validate options before any outbound call."""
    normalized = normalize_whitespace(query)
    if not normalized:
        raise UserInputError("Query must not be empty")
    options.validate()
    return normalized


async def run_graph_path(
    store: GraphStore,
    query_embedding: list[float],
    options: QueryOptions,
) -> GraphPathResult:
    """Vector match, expansion, classification and provenance ranking.

    Shared by ``ask`` and ``explain`` so both see the same ranking.
    """
    matches = await vector_match(store, query_embedding, options.similarity_top_k)
    triplets = await expand_graph(
        store, matches, depth=options.path_depth, limit=options.limit
    )
    semantic, metadata = classify_triplets(triplets)
    ranked = rank_triplets(
        semantic,
        matches,
        boost_enabled=options.cross_check_boost,
        boost_factor=options.cross_check_boost_factor,
    )
    log.info(
        f"Graph path: {len(matches)} matches, {len(triplets)} triplets "
        f"({len(semantic)} semantic, {len(metadata)} metadata)"
    )
    return GraphPathResult(
        embedding_dimensions=len(query_embedding),
        matches=tuple(matches),
        triplet_count=len(triplets),
        semantic_count=len(semantic),
        metadata_count=len(metadata),
        ranked=tuple(ranked),
    )


async def _graph_channel(
    store: GraphStore,
    chunks: ChunkIndex,
    query_embedding: list[float],
    options: QueryOptions,
) -> tuple[GraphPathResult, list[RetrievalResult], list[str]]:
    path = await run_graph_path(store, query_embedding, options)
    try:
        passages = await assemble_graph_passages(list(path.ranked), chunks)
    except Exception as exc:
        log.warning(f"Graph passage lookup failed: {exc}")
        return path, [], ["graph_passage_lookup_failed"]
    return path, passages, []


async def _direct_channel(
    chunks: ChunkIndex,
    query_embedding: list[float],
    options: QueryOptions,
) -> tuple[list[RetrievalResult], list[str]]:
    try:
        results = await search_direct_chunks(chunks, query_embedding, options.direct_top_k)
    except Exception as exc:
        log.warning(f"Direct chunk search failed: {exc}")
        return [], ["direct_chunk_search_failed"]
    return results, []


async def ask(
    query: str,
    *,
    store: GraphStore,
    chunks: ChunkIndex,
    embedder: EmbeddingProvider,
    options: QueryOptions = DEFAULT_QUERY_OPTIONS,
) -> RankedResponse:
    """Run hybrid recall and return ranked, deduplicated, filtered results.

    Raises:
        UserInputError: empty query or invalid options; nothing is called.
        StoreError: the graph store failed.
        CallFailedError: the query embedding kept failing after retries.
    """
    normalized = prepare_query(query, options)

    try:
        query_embedding = await embedder.embed(normalized)
    except ValidationError as exc:
        log.warning(f"Query embedding rejected: {exc}")
        return RankedResponse(
            query=normalized,
            results=tuple(),
            counters=ResponseCounters(),
            warnings=("query_embedding_invalid",),
        )

    channels = [
        asyncio.ensure_future(_graph_channel(store, chunks, query_embedding, options)),
        asyncio.ensure_future(_direct_channel(chunks, query_embedding, options)),
    ]
    try:
        # Merged in argument order, whatever finishes first.
        (path, graph_results, graph_warnings), (direct_results, direct_warnings) = (
            await asyncio.gather(*channels)
        )
    except BaseException:
        for task in channels:
            task.cancel()
        await asyncio.gather(*channels, return_exceptions=True)
        raise

    merged = merge_results(graph_results, direct_results)
    results = filter_by_document(merged, options.document_filter)
    log.info(
        f"Recall: {len(graph_results)} graph + {len(direct_results)} direct "
        f"-> {len(merged)} merged -> {len(results)} after filter"
    )

    return RankedResponse(
        query=normalized,
        results=tuple(results),
        counters=ResponseCounters(
            vector_match_count=len(path.matches),
            semantic_triplet_count=path.semantic_count,
            metadata_triplet_count=path.metadata_count,
            direct_chunk_count=len(direct_results),
            merged_count=len(merged),
        ),
        warnings=tuple(graph_warnings + direct_warnings),
    )


async def answer(
    query: str,
    generator: AnswerGenerator,
    *,
    store: GraphStore,
    chunks: ChunkIndex,
    embedder: EmbeddingProvider,
    options: QueryOptions = DEFAULT_QUERY_OPTIONS,
) -> Answer:
    """Recall context for ``query`` and hand it to ``generator``."""
    response = await ask(
        query, store=store, chunks=chunks, embedder=embedder, options=options
    )
    context, rendered, _ = render_context_with_meta(
        response.results, max_passages=options.context_passages
    )
    if not context:
        return Answer(text=NO_INFORMATION_ANSWER, sources={}, response=response)

    text = await generator.generate(response.query, context)
    sources = document_sources(rendered)
    return Answer(text=text, sources=sources, response=response)
