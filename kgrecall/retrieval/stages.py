"""Individual recall stages and the collaborator contracts they call."""

import asyncio
from typing import Protocol

from ..errors import StoreError
from ..graph.model import Node, Triplet
from ..graph.predicates import IGNORED_RELATIONS
from ..vector.records import ContentChunk, ImageChunk
from .types import Channel, ResultMetadata, RetrievalResult, ScoredTriplet, VectorMatch


class GraphStore(Protocol):
    async def vector_query(
        self, query_embedding: list[float], similarity_top_k: int
    ) -> tuple[list[Node], list[float]]: ...

    async def get_rel_map(
        self,
        nodes: list[Node],
        depth: int = 2,
        limit: int = 30,
        ignore_relations: list[str] | tuple[str, ...] = (),
    ) -> list[Triplet]: ...

    async def get(self, ids: list[str]) -> list[Node]: ...


class ChunkIndex(Protocol):
    """Blocking chunk index; called from a worker thread."""

    def search(
        self, query_embedding: list[float], limit: int = 15
    ) -> list[tuple[ContentChunk, float]]: ...

    def get_chunks(self, chunk_ids: list[str]) -> list[ContentChunk]: ...


def chunk_to_result(chunk: ContentChunk, score: float, channel: Channel) -> RetrievalResult:
    return RetrievalResult(
        text=chunk.text,
        score=float(score),
        metadata=ResultMetadata(
            document_id=chunk.document_id,
            content_type=chunk.content_type,
            page_number=chunk.page_number,
            image_id=chunk.image_id if isinstance(chunk, ImageChunk) else None,
        ),
        channel=channel,
        source_id=chunk.chunk_id,
    )


async def vector_match(
    store: GraphStore,
    query_embedding: list[float],
    similarity_top_k: int,
) -> list[VectorMatch]:
    """Seed entities for the query, most similar first."""
    try:
        nodes, scores = await store.vector_query(query_embedding, similarity_top_k)
    except StoreError:
        raise
    except Exception as exc:
        raise StoreError(f"Vector query failed: {exc}") from exc

    if len(nodes) != len(scores):
        raise StoreError(
            f"Vector query returned {len(nodes)} nodes but {len(scores)} scores"
        )
    return [VectorMatch(node=node, score=float(score)) for node, score in zip(nodes, scores)]


async def expand_graph(
    store: GraphStore,
    matches: list[VectorMatch],
    *,
    depth: int,
    limit: int,
) -> list[Triplet]:
    """Triplets around the seeds, in store order."""
    if not matches or depth <= 0:
        return []
    try:
        return await store.get_rel_map(
            [m.node for m in matches],
            depth=depth,
            limit=limit,
            ignore_relations=IGNORED_RELATIONS,
        )
    except StoreError:
        raise
    except Exception as exc:
        raise StoreError(f"Graph expansion failed: {exc}") from exc


def _fact_result(scored: ScoredTriplet) -> RetrievalResult:
    triplet = scored.triplet
    document_id = triplet.subject.document_id or triplet.object.document_id
    return RetrievalResult(
        text=triplet.describe(),
        score=scored.boosted_score,
        metadata=ResultMetadata(document_id=document_id),
        channel="graph",
        source_id=f"{triplet.subject.id}|{triplet.predicate.text}|{triplet.object.id}",
    )


async def assemble_graph_passages(
    ranked: list[ScoredTriplet],
    chunks: ChunkIndex,
) -> list[RetrievalResult]:
    """Join ranked triplets back to the chunk text they were extracted from.

    A chunk appears once, at the position and score of its best triplet.
    Triplets whose source chunk cannot be found in the index become one-line
    fact passages of their own.
    """
    candidates = [
        [c for c in (s.triplet.subject.source_chunk, s.triplet.object.source_chunk) if c]
        for s in ranked
    ]
    wanted = sorted({chunk_id for ids in candidates for chunk_id in ids})

    found: dict[str, ContentChunk] = {}
    if wanted:
        fetched = await asyncio.to_thread(chunks.get_chunks, wanted)
        found = {chunk.chunk_id: chunk for chunk in fetched}

    first_by_key: dict[str, tuple[ScoredTriplet, ContentChunk | None]] = {}
    for scored, ids in zip(ranked, candidates):
        chunk = next((found[i] for i in ids if i in found), None)
        if chunk is not None:
            key = f"chunk:{chunk.chunk_id}"
        else:
            triplet = scored.triplet
            key = f"fact:{triplet.subject.id}|{triplet.predicate.text}|{triplet.object.id}"
        first_by_key.setdefault(key, (scored, chunk))

    passages = []
    for scored, chunk in first_by_key.values():
        if chunk is not None:
            passages.append(chunk_to_result(chunk, scored.boosted_score, "graph"))
        else:
            passages.append(_fact_result(scored))
    return passages


async def search_direct_chunks(
    chunks: ChunkIndex,
    query_embedding: list[float],
    top_k: int,
) -> list[RetrievalResult]:
    """Similarity search straight over chunk embeddings."""
    hits = await asyncio.to_thread(chunks.search, query_embedding, top_k)
    return [chunk_to_result(chunk, score, "direct") for chunk, score in hits]
