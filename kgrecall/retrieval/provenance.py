"""Cross-check boosting of semantic triplets.

A fact is trusted more when the entities it touches share an id, name,
document or source chunk with the seeds the vector search already matched.
This is a single propagation step over the expanded subgraph, bounded to
nodes the similarity search surfaced.
"""

from ..graph.model import Node, Triplet
from .types import BoostReason, ScoredTriplet, VectorMatch

DEFAULT_BOOST_FACTOR = 1.25


def _node_keys(node: Node) -> list[str]:
    """Lower-cased id, name, documentId and sourceChunk of a node."""
    keys = []
    for value in (node.id, node.name, node.document_id, node.source_chunk):
        if value:
            keys.append(str(value).lower())
    return keys


def build_provenance_set(matches: list[VectorMatch]) -> frozenset[str]:
    """Provenance keys of every seed match; never mutated afterwards."""
    keys: set[str] = set()
    for match in matches:
        keys.update(_node_keys(match.node))
    return frozenset(keys)


def seed_scores(matches: list[VectorMatch]) -> dict[str, float]:
    """Best score per seed node id."""
    scores: dict[str, float] = {}
    for match in matches:
        node_id = match.node.id
        if node_id not in scores or match.score > scores[node_id]:
            scores[node_id] = match.score
    return scores


def boost_score(base: float, factor: float) -> float:
    """Amplified score, clamped to 1."""
    return min(1.0, base * factor)


def score_triplet(
    triplet: Triplet,
    *,
    position: int,
    seeds: dict[str, float],
    provenance: frozenset[str],
    boost_enabled: bool,
    boost_factor: float,
) -> ScoredTriplet:
    base = max(
        seeds.get(triplet.subject.id, 0.0),
        seeds.get(triplet.object.id, 0.0),
    )

    reason: BoostReason
    matched_key: str | None = None
    boosted = base
    if base <= 0:
        reason = "no_seed"
    elif not boost_enabled:
        reason = "boost_disabled"
    else:
        for key in _node_keys(triplet.subject) + _node_keys(triplet.object):
            if key in provenance:
                matched_key = key
                break
        if matched_key is not None:
            reason = "cross_check"
            boosted = boost_score(base, boost_factor)
        else:
            reason = "no_provenance_overlap"

    return ScoredTriplet(
        triplet=triplet,
        base_score=base,
        boosted_score=boosted,
        reason=reason,
        matched_key=matched_key,
        position=position,
    )


def rank_triplets(
    semantic: list[Triplet],
    matches: list[VectorMatch],
    *,
    boost_enabled: bool = True,
    boost_factor: float = DEFAULT_BOOST_FACTOR,
) -> list[ScoredTriplet]:
    """Score and rank semantic triplets, highest boosted score first.

    The sort is stable and has no secondary key: equal scores keep the
    traversal order, which the store does not guarantee.
    """
    provenance = build_provenance_set(matches)
    seeds = seed_scores(matches)
    scored = [
        score_triplet(
            triplet,
            position=index,
            seeds=seeds,
            provenance=provenance,
            boost_enabled=boost_enabled,
            boost_factor=boost_factor,
        )
        for index, triplet in enumerate(semantic)
    ]
    return sorted(scored, key=lambda item: -item.boosted_score)
