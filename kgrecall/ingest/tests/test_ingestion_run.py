import asyncio

from kgrecall.errors import ValidationError
from kgrecall.graph.predicates import FROM_DOCUMENT
from kgrecall.ingest.run import IngestionRun
from kgrecall.retry import RetryPolicy

NO_WAIT = RetryPolicy(attempts=3, base_delay=0.0)


class _Embedder:
    def __init__(self, invalid=()):
        self.invalid = set(invalid)
        self.calls = []

    async def embed(self, text):
        self.calls.append(text)
        if text in self.invalid:
            raise ValidationError("Embedding contains invalid values (NaN/Infinity)")
        return [float(len(text)), 0.0, 0.0, 1.0]


class _Chunks:
    def __init__(self):
        self.added = []

    def add_chunk(self, chunk, embedding):
        self.added.append((chunk, embedding))
        return len(self.added)


class _Graph:
    def __init__(self):
        self.entities = []
        self.relations = []
        self.links = []

    async def upsert_entity(self, node, embedding):
        self.entities.append((node, embedding))

    async def upsert_relation(self, subject_id, predicate, object_id, properties=None):
        self.relations.append((subject_id, predicate, object_id, properties))

    async def link_to_document(self, entity_id, document_id):
        self.links.append((entity_id, document_id, FROM_DOCUMENT))


class _Extractor:
    def __init__(self, outputs):
        self.outputs = outputs
        self.calls = []

    async def extract(self, text):
        self.calls.append(text)
        output = self.outputs[text]
        if isinstance(output, list):
            return output.pop(0)
        return output


def test_embed_batch_dedups_and_caches():
    embedder = _Embedder()
    run = IngestionRun(embedder, _Chunks())

    first = asyncio.run(run.embed_batch(["a", "bb", "a", "ccc"]))
    second = asyncio.run(run.embed_batch(["bb", "dddd"]))

    assert first[0] == first[2]
    assert sorted(embedder.calls) == ["a", "bb", "ccc", "dddd"]
    assert second[0] == first[1]
    assert run.stats.cache_hits == 1
    assert run.stats.embed_calls == 4


def test_embed_batch_marks_invalid_as_none():
    run = IngestionRun(_Embedder(invalid={"bad"}), _Chunks())

    result = asyncio.run(run.embed_batch(["good", "bad", "bad"]))

    assert result[0] is not None
    assert result[1] is None and result[2] is None
    assert run.stats.skipped_embeddings == 1


def test_embed_batch_respects_concurrency_slices():
    class _Tracking(_Embedder):
        def __init__(self):
            super().__init__()
            self.active = 0
            self.peak = 0

        async def embed(self, text):
            self.active += 1
            self.peak = max(self.peak, self.active)
            await asyncio.sleep(0)
            self.active -= 1
            return await super().embed(text)

    embedder = _Tracking()
    run = IngestionRun(embedder, _Chunks(), embed_concurrency=2)

    asyncio.run(run.embed_batch([f"t{i}" for i in range(7)]))

    assert embedder.peak == 2
    assert len(embedder.calls) == 7


def test_separate_runs_do_not_share_cache():
    embedder = _Embedder()
    asyncio.run(IngestionRun(embedder, _Chunks()).embed_batch(["same"]))
    asyncio.run(IngestionRun(embedder, _Chunks()).embed_batch(["same"]))

    assert embedder.calls == ["same", "same"]


def test_ingest_indexes_valid_chunks():
    chunks = _Chunks()
    run = IngestionRun(_Embedder(invalid={"broken text"}), chunks)

    stats = asyncio.run(
        run.ingest(
            [
                {"chunkId": "c1", "text": "Open the valve.", "documentId": "Manual", "pageNumber": 1},
                {"chunkId": "c2", "text": "broken text", "documentId": "Manual"},
                {"text": "missing id"},
                {"chunkId": "c3", "text": "Wiring", "contentType": "image", "imageId": "img-1"},
            ]
        )
    )

    assert [c.chunk_id for c, _ in chunks.added] == ["c1", "c3"]
    assert stats["records"] == 4
    assert stats["invalid_records"] == 1
    assert stats["chunks_indexed"] == 2
    assert stats["skipped_embeddings"] == 1
    assert len(stats["error_details"]) == 1


def test_ingest_builds_graph_with_provenance():
    graph = _Graph()
    extractor = _Extractor(
        {
            "The valve feeds the pump.": {
                "triplets": [
                    {
                        "subject": "Valve",
                        "subject_label": "Component",
                        "predicate": "FEEDS",
                        "object": "Pump",
                        "object_label": "Component",
                    },
                    {"subject": "Valve", "predicate": FROM_DOCUMENT, "object": "Manual"},
                ]
            }
        }
    )
    run = IngestionRun(_Embedder(), _Chunks(), graph, retry=NO_WAIT)

    stats = asyncio.run(
        run.ingest(
            [{"chunkId": "c1", "text": "The valve feeds the pump.", "documentId": "Manual"}],
            extractor,
        )
    )

    assert [n.id for n, _ in graph.entities] == ["component:valve", "component:pump"]
    valve, embedding = graph.entities[0]
    assert valve.document_id == "Manual"
    assert valve.source_chunk == "c1"
    assert embedding is not None
    assert graph.relations == [
        ("component:valve", "FEEDS", "component:pump", {"sourceChunk": "c1", "documentId": "Manual"})
    ]
    assert [(e, d) for e, d, _ in graph.links] == [
        ("component:valve", "Manual"),
        ("component:pump", "Manual"),
    ]
    assert stats["triplets"] == 1
    assert stats["skipped_triplets"] == 1
    assert stats["entities"] == 2


def test_schema_mismatch_is_retried_then_skipped():
    graph = _Graph()
    bad = {"triplets": [{"subject": "A"}]}
    extractor = _Extractor({"chunk text": [bad, bad, bad]})
    run = IngestionRun(_Embedder(), _Chunks(), graph, retry=NO_WAIT)

    stats = asyncio.run(run.ingest([{"chunkId": "c1", "text": "chunk text"}], extractor))

    assert len(extractor.calls) == 3
    assert stats["extraction_calls"] == 3
    assert stats["failed_extractions"] == 1
    assert graph.entities == []


def test_schema_mismatch_recovers_on_retry():
    graph = _Graph()
    good = {"triplets": [{"subject": "A", "predicate": "USES", "object": "B"}]}
    extractor = _Extractor({"chunk text": [{"triplets": "oops"}, good]})
    run = IngestionRun(_Embedder(), _Chunks(), graph, retry=NO_WAIT)

    stats = asyncio.run(run.ingest([{"chunkId": "c1", "text": "chunk text"}], extractor))

    assert stats["failed_extractions"] == 0
    assert graph.relations[0][:3] == ("entity:a", "USES", "entity:b")
