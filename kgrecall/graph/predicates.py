"""Reserved bookkeeping predicates and the semantic/metadata triplet split."""

from .model import Triplet

PROPERTY_NAMESPACE = "urn:hkv:prop:"
RDF_TYPE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"
FROM_DOCUMENT = "FROM_DOCUMENT"

# Never traversed during graph expansion.
IGNORED_RELATIONS: tuple[str, ...] = (FROM_DOCUMENT, RDF_TYPE)


def is_metadata_predicate(predicate: str | None) -> bool:
    """True for internal provenance/type/property edges."""
    if not predicate:
        return True
    if PROPERTY_NAMESPACE in predicate:
        return True
    return predicate in (RDF_TYPE, FROM_DOCUMENT)


def classify_triplets(
    triplets: list[Triplet],
) -> tuple[list[Triplet], list[Triplet]]:
    """Split triplets into (semantic, metadata), preserving input order."""
    semantic: list[Triplet] = []
    metadata: list[Triplet] = []
    for triplet in triplets:
        if is_metadata_predicate(triplet.predicate.text):
            metadata.append(triplet)
        else:
            semantic.append(triplet)
    return semantic, metadata
