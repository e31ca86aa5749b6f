import asyncio

import pytest

from kgrecall.errors import StoreError
from kgrecall.graph.model import Node, Predicate, Triplet
from kgrecall.retrieval.stages import (
    assemble_graph_passages,
    expand_graph,
    search_direct_chunks,
    vector_match,
)
from kgrecall.retrieval.types import ScoredTriplet, VectorMatch
from kgrecall.vector.records import ImageChunk, TextChunk


def _node(node_id, **props):
    return Node(id=node_id, label="ENTITY", name=node_id.title(), properties=props)


def _scored(s, p, o, score, position=0):
    return ScoredTriplet(
        triplet=Triplet(subject=s, predicate=Predicate(id=p, label=p), object=o),
        base_score=score,
        boosted_score=score,
        reason="boost_disabled",
        matched_key=None,
        position=position,
    )


class _Chunks:
    def __init__(self, chunks):
        self.chunks = chunks
        self.requested = []

    def search(self, query_embedding, limit=15):
        return [(c, 0.5) for c in self.chunks][:limit]

    def get_chunks(self, chunk_ids):
        self.requested.append(list(chunk_ids))
        return [c for c in self.chunks if c.chunk_id in chunk_ids]


class _Store:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def vector_query(self, query_embedding, similarity_top_k):
        if self.error:
            raise self.error
        return [_node("a"), _node("b")], [0.9, 0.4]

    async def get_rel_map(self, nodes, depth=2, limit=30, ignore_relations=()):
        self.calls.append((tuple(n.id for n in nodes), depth, limit))
        if self.error:
            raise self.error
        return []

    async def get(self, ids):
        return []


def test_vector_match_pairs_nodes_and_scores():
    matches = asyncio.run(vector_match(_Store(), [0.1], 2))
    assert [(m.node.id, m.score) for m in matches] == [("a", 0.9), ("b", 0.4)]


@pytest.mark.parametrize("error", [RuntimeError("boom"), StoreError("bad")])
def test_vector_match_wraps_store_errors(error):
    with pytest.raises(StoreError):
        asyncio.run(vector_match(_Store(error), [0.1], 2))


def test_expand_graph_passes_seeds_and_bounds():
    store = _Store()
    matches = [VectorMatch(_node("a"), 0.9), VectorMatch(_node("b"), 0.4)]

    assert asyncio.run(expand_graph(store, matches, depth=3, limit=7)) == []
    assert store.calls == [(("a", "b"), 3, 7)]


def test_expand_graph_without_seeds_skips_store():
    store = _Store()
    assert asyncio.run(expand_graph(store, [], depth=2, limit=30)) == []
    assert store.calls == []


def test_expand_graph_wraps_errors():
    with pytest.raises(StoreError):
        asyncio.run(
            expand_graph(_Store(RuntimeError("timeout")), [VectorMatch(_node("a"), 0.9)], depth=2, limit=30)
        )


def test_assemble_joins_triplets_to_chunks_once():
    a = _node("a", sourceChunk="c1", documentId="doc-a")
    b = _node("b", sourceChunk="c1")
    c = _node("c", documentId="doc-c")
    d = _node("d")
    chunks = _Chunks([TextChunk(chunk_id="c1", text="A relates to B.", document_id="doc-a", page_number=2)])

    passages = asyncio.run(
        assemble_graph_passages(
            [
                _scored(a, "R1", b, 0.9, 0),
                _scored(c, "R2", d, 0.7, 1),
                _scored(b, "R3", a, 0.5, 2),
            ],
            chunks,
        )
    )

    assert [(p.text, p.score, p.metadata.document_id) for p in passages] == [
        ("A relates to B.", 0.9, "doc-a"),
        ("C R2 D", 0.7, "doc-c"),
    ]
    assert passages[0].metadata.page_number == 2
    assert all(p.channel == "graph" for p in passages)
    assert chunks.requested == [["c1"]]


def test_assemble_falls_back_to_fact_for_missing_chunk():
    a = _node("a", sourceChunk="gone")
    b = _node("b")

    passages = asyncio.run(assemble_graph_passages([_scored(a, "USES", b, 0.8)], _Chunks([])))

    assert [p.text for p in passages] == ["A USES B"]


def test_assemble_keeps_every_fact_when_shared_chunk_is_missing():
    a = _node("a", sourceChunk="gone")
    b = _node("b", sourceChunk="gone")
    c = _node("c", sourceChunk="gone")

    passages = asyncio.run(
        assemble_graph_passages(
            [_scored(a, "FEEDS", b, 0.8, 0), _scored(a, "HAS", c, 0.6, 1)],
            _Chunks([]),
        )
    )

    assert [(p.text, p.score) for p in passages] == [("A FEEDS B", 0.8), ("A HAS C", 0.6)]


def test_assemble_falls_back_to_object_chunk():
    a = _node("a", sourceChunk="gone")
    b = _node("b", sourceChunk="c2")
    chunks = _Chunks([TextChunk(chunk_id="c2", text="B is described here.")])

    passages = asyncio.run(assemble_graph_passages([_scored(a, "USES", b, 0.7)], chunks))

    assert [p.text for p in passages] == ["B is described here."]
    assert chunks.requested == [["c2", "gone"]]


def test_assemble_without_triplets_skips_lookup():
    chunks = _Chunks([])
    assert asyncio.run(assemble_graph_passages([], chunks)) == []
    assert chunks.requested == []


def test_search_direct_chunks_carries_metadata():
    image = ImageChunk(chunk_id="i1", text="Diagram", image_id="img-9", document_id="doc", page_number=5)

    results = asyncio.run(search_direct_chunks(_Chunks([image]), [0.1], 15))

    assert len(results) == 1
    result = results[0]
    assert result.channel == "direct"
    assert result.source_id == "i1"
    assert result.score == 0.5
    assert result.metadata.content_type == "image"
    assert result.metadata.image_id == "img-9"
    assert result.metadata.page_number == 5
