"""Typed contracts for the hybrid recall pipeline."""

from dataclasses import dataclass, field
from typing import Literal

from ..graph.model import Node, Triplet

Channel = Literal["graph", "direct"]
BoostReason = Literal["cross_check", "no_provenance_overlap", "boost_disabled", "no_seed"]


@dataclass(frozen=True)
class VectorMatch:
    node: Node
    score: float


@dataclass(frozen=True)
class ScoredTriplet:
    triplet: Triplet
    base_score: float
    boosted_score: float
    reason: BoostReason
    matched_key: str | None
    # Index in the traversal output; ties keep this order.
    position: int


@dataclass(frozen=True)
class ResultMetadata:
    document_id: str | None = None
    content_type: Literal["text", "image"] = "text"
    page_number: int | None = None
    image_id: str | None = None


@dataclass(frozen=True)
class RetrievalResult:
    text: str
    score: float
    metadata: ResultMetadata
    channel: Channel
    source_id: str | None = None


@dataclass(frozen=True)
class GraphPathResult:
    """Everything the entity/graph path computed for one query."""

    embedding_dimensions: int
    matches: tuple[VectorMatch, ...]
    triplet_count: int
    semantic_count: int
    metadata_count: int
    ranked: tuple[ScoredTriplet, ...]


@dataclass(frozen=True)
class ResponseCounters:
    vector_match_count: int = 0
    semantic_triplet_count: int = 0
    metadata_triplet_count: int = 0
    direct_chunk_count: int = 0
    merged_count: int = 0


@dataclass(frozen=True)
class RankedResponse:
    query: str
    results: tuple[RetrievalResult, ...]
    counters: ResponseCounters
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ExplainTrace:
    """Diagnostic projection of one graph-path run."""

    query: str
    embedding_dimensions: int
    boost_enabled: bool
    boost_factor: float
    matches: tuple[VectorMatch, ...]
    triplet_count: int
    semantic_count: int
    metadata_count: int
    scored: tuple[ScoredTriplet, ...]
    top: tuple[ScoredTriplet, ...]

    @property
    def boosted_count(self) -> int:
        return sum(1 for s in self.scored if s.reason == "cross_check")


@dataclass(frozen=True)
class Answer:
    text: str
    sources: dict[str, int]
    response: RankedResponse
