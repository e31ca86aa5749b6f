"""Per-run ingestion: chunk indexing and optional graph extraction.

Everything that must not outlive one upload (the embedding cache and the
progress counters) lives on an ``IngestionRun`` instance. Nothing is held at
module level, so two runs never share cached vectors.
"""

import asyncio
from dataclasses import asdict, dataclass, field
import logging
from typing import Any, Iterable, Protocol

from ..errors import CallFailedError, ValidationError
from ..graph.model import Node, generate_entity_id
from ..graph.predicates import is_metadata_predicate
from ..retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry_async
from ..vector.records import ContentChunk, chunk_from_record
from .extraction import ExtractedTriplet, parse_extraction

log = logging.getLogger(__name__)

EMBED_CONCURRENCY = 5


class TextEmbedder(Protocol):
    async def embed(self, text: str) -> list[float]: ...


class ChunkWriter(Protocol):
    def add_chunk(self, chunk: ContentChunk, embedding: list[float]) -> int: ...


class GraphWriter(Protocol):
    async def upsert_entity(self, node: Node, embedding: list[float] | None) -> None: ...

    async def upsert_relation(
        self, subject_id: str, predicate: str, object_id: str, properties: dict | None = None
    ) -> None: ...

    async def link_to_document(self, entity_id: str, document_id: str) -> None: ...


class TripletExtractor(Protocol):
    async def extract(self, text: str) -> Any:
        """Raw extractor output: JSON text or a decoded object."""
        ...


@dataclass
class IngestionStats:
    records: int = 0
    invalid_records: int = 0
    chunks_indexed: int = 0
    embed_calls: int = 0
    cache_hits: int = 0
    skipped_embeddings: int = 0
    extraction_calls: int = 0
    failed_extractions: int = 0
    triplets: int = 0
    skipped_triplets: int = 0
    entities: int = 0
    error_details: list[str] = field(default_factory=list)


class IngestionRun:
    """One upload: owns its embedding cache and counters."""

    def __init__(
        self,
        embedder: TextEmbedder,
        chunks: ChunkWriter,
        graph: GraphWriter | None = None,
        *,
        embed_concurrency: int = EMBED_CONCURRENCY,
        retry: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        self.embedder = embedder
        self.chunks = chunks
        self.graph = graph
        self.embed_concurrency = max(1, embed_concurrency)
        self.retry = retry
        self.stats = IngestionStats()
        # None marks a text whose embedding was rejected in this run.
        self._cache: dict[str, list[float] | None] = {}

    async def _embed_one(self, text: str) -> list[float] | None:
        self.stats.embed_calls += 1
        try:
            return await self.embedder.embed(text)
        except ValidationError as exc:
            self.stats.skipped_embeddings += 1
            log.warning(f"Skipping text with invalid embedding ({len(text)} chars): {exc}")
            return None

    async def embed_batch(self, texts: list[str]) -> list[list[float] | None]:
        """Embed texts through the run cache; output order matches input.

        Duplicates are computed once. Misses are embedded concurrently in
        slices of ``embed_concurrency``.
        """
        unique = list(dict.fromkeys(texts))
        to_compute = []
        for text in unique:
            if text in self._cache:
                self.stats.cache_hits += 1
            else:
                to_compute.append(text)

        if len(unique) != len(texts) or len(to_compute) != len(unique):
            log.info(
                f"Embedding dedup: {len(texts)} texts -> {len(unique)} unique "
                f"({len(unique) - len(to_compute)} cached, {len(to_compute)} to compute)"
            )

        for start in range(0, len(to_compute), self.embed_concurrency):
            batch = to_compute[start : start + self.embed_concurrency]
            embeddings = await asyncio.gather(*(self._embed_one(t) for t in batch))
            for text, embedding in zip(batch, embeddings):
                self._cache[text] = embedding

        return [self._cache[text] for text in texts]

    async def extract(self, extractor: TripletExtractor, text: str) -> list[ExtractedTriplet]:
        """Extract and validate triplets for one chunk.

        Schema mismatches are retried; when they persist, or the extractor
        keeps failing, the chunk contributes no triplets.
        """
        async def call() -> list[ExtractedTriplet]:
            self.stats.extraction_calls += 1
            result = parse_extraction(await extractor.extract(text))
            if not result.ok:
                raise result.error
            return list(result.triplets)

        try:
            return await retry_async(call, operation="extract_triplets", policy=self.retry)
        except (ValidationError, CallFailedError) as exc:
            self.stats.failed_extractions += 1
            self.stats.error_details.append(str(exc))
            log.warning(f"Triplet extraction failed, chunk skipped: {exc}")
            return []

    async def _write_triplets(self, chunk: ContentChunk, triplets: list[ExtractedTriplet]) -> None:
        assert self.graph is not None
        provenance = {"sourceChunk": chunk.chunk_id}
        if chunk.document_id:
            provenance["documentId"] = chunk.document_id

        entities: dict[str, Node] = {}
        relations: list[tuple[str, str, str]] = []
        for t in triplets:
            if is_metadata_predicate(t.predicate):
                self.stats.skipped_triplets += 1
                continue
            subject = Node(
                id=generate_entity_id(t.subject_label, t.subject),
                label=t.subject_label,
                name=t.subject,
                properties=dict(provenance),
            )
            obj = Node(
                id=generate_entity_id(t.object_label, t.object),
                label=t.object_label,
                name=t.object,
                properties=dict(provenance),
            )
            entities.setdefault(subject.id, subject)
            entities.setdefault(obj.id, obj)
            relations.append((subject.id, t.predicate, obj.id))

        nodes = list(entities.values())
        embeddings = await self.embed_batch([n.name for n in nodes])
        for node, embedding in zip(nodes, embeddings):
            await self.graph.upsert_entity(node, embedding)
            if chunk.document_id:
                await self.graph.link_to_document(node.id, chunk.document_id)

        for subject_id, predicate, object_id in relations:
            await self.graph.upsert_relation(subject_id, predicate, object_id, dict(provenance))

        self.stats.entities += len(nodes)
        self.stats.triplets += len(relations)

    async def ingest(
        self,
        records: Iterable[dict[str, Any]],
        extractor: TripletExtractor | None = None,
    ) -> dict[str, Any]:
        """Index chunk records and, with an extractor, build the graph.

        Returns the run statistics.
        """
        chunks: list[ContentChunk] = []
        for index, raw in enumerate(records, 1):
            self.stats.records += 1
            try:
                chunks.append(chunk_from_record(raw))
            except ValidationError as exc:
                self.stats.invalid_records += 1
                self.stats.error_details.append(f"record {index}: {exc}")
                log.warning(f"Skipping invalid record {index}: {exc}")

        embeddings = await self.embed_batch([c.text for c in chunks])
        for chunk, embedding in zip(chunks, embeddings):
            if embedding is None:
                continue
            await asyncio.to_thread(self.chunks.add_chunk, chunk, embedding)
            self.stats.chunks_indexed += 1
        log.info(f"Indexed {self.stats.chunks_indexed}/{len(chunks)} chunks")

        if extractor is not None and self.graph is not None:
            for chunk in chunks:
                triplets = await self.extract(extractor, chunk.text)
                if triplets:
                    await self._write_triplets(chunk, triplets)
            log.info(
                f"Graph: {self.stats.entities} entities, {self.stats.triplets} relations "
                f"from {self.stats.extraction_calls} extraction calls"
            )

        return asdict(self.stats)
