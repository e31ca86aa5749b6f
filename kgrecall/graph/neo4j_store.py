"""Neo4j-backed graph store with native vector search.

Entities carry their embedding as a node property indexed by a Neo4j vector
index. Relationship traversal and similarity search run through the async
driver so one long-lived handle can serve concurrent queries.
"""

import logging
import re
from typing import Any

from neo4j import AsyncGraphDatabase
from neo4j.exceptions import AuthError, Neo4jError, ServiceUnavailable

from ..errors import ConfigurationError, StoreError
from .model import Node, Predicate, Triplet
from .predicates import FROM_DOCUMENT

log = logging.getLogger(__name__)

# Internal labels/properties hidden from returned nodes
INTERNAL_LABELS = frozenset({"Entity"})
INTERNAL_PROPERTIES = frozenset({"embedding", "id", "name"})
DEFAULT_EMBEDDING_DIMENSIONS = 384
VECTOR_INDEX_NAME = "entity_embeddings"
DOCUMENT_LABEL = "Document"


def _sanitize_label(label: str) -> str:
    """Sanitize label for Neo4j (no spaces, special chars)."""
    sanitized = re.sub(r"[^a-zA-Z0-9_]", "_", label)
    if sanitized and not sanitized[0].isalpha():
        sanitized = "N_" + sanitized
    return sanitized or "Unknown"


def _to_node(raw: Any, labels: list[str] | None) -> Node:
    props = dict(raw)
    visible = [l for l in (labels or []) if l not in INTERNAL_LABELS]
    node_id = str(props.get("id") or "")
    return Node(
        id=node_id,
        label=visible[0] if visible else "ENTITY",
        name=str(props.get("name") or node_id or "Unknown"),
        properties={k: v for k, v in props.items() if k not in INTERNAL_PROPERTIES},
    )


class Neo4jGraphStore:
    """Async Neo4j wrapper implementing the GraphStore contract."""

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        user: str = "neo4j",
        password: str = "",
        embedding_dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS,
    ):
        if not password:
            raise ConfigurationError("Neo4j password is not configured")
        self.driver = AsyncGraphDatabase.driver(uri, auth=(user, password))
        self.uri = uri
        self.embedding_dimensions = embedding_dimensions

    async def verify(self) -> None:
        """Fail fast if the database is unreachable or rejects credentials."""
        try:
            await self.driver.verify_connectivity()
        except (ServiceUnavailable, AuthError) as exc:
            raise ConfigurationError(f"Cannot reach Neo4j at {self.uri}: {exc}") from exc

    async def close(self) -> None:
        await self.driver.close()

    async def _run(self, query: str, **params: Any) -> list[Any]:
        try:
            async with self.driver.session() as session:
                result = await session.run(query, **params)
                return [record async for record in result]
        except Neo4jError as exc:
            raise StoreError(f"Neo4j query failed: {exc}") from exc
        except ServiceUnavailable as exc:
            raise StoreError(f"Neo4j unavailable: {exc}") from exc

    # =========================================================================
    # QUERY OPERATIONS
    # =========================================================================

    async def vector_query(
        self, query_embedding: list[float], similarity_top_k: int
    ) -> tuple[list[Node], list[float]]:
        """Top-K entities by cosine similarity, most similar first."""
        if len(query_embedding) != self.embedding_dimensions:
            raise StoreError(
                f"Query embedding dimension mismatch: expected {self.embedding_dimensions}, got {len(query_embedding)}"
            )
        records = await self._run(
            f"""
            CALL db.index.vector.queryNodes('{VECTOR_INDEX_NAME}', $limit, $embedding)
            YIELD node, score
            RETURN node, labels(node) AS labels, score
            ORDER BY score DESC
            """,
            embedding=query_embedding,
            limit=max(1, similarity_top_k),
        )
        nodes = [_to_node(r["node"], r["labels"]) for r in records]
        scores = [float(r["score"]) for r in records]
        return nodes, scores

    async def get_rel_map(
        self,
        nodes: list[Node],
        depth: int = 2,
        limit: int = 30,
        ignore_relations: list[str] | tuple[str, ...] = (),
    ) -> list[Triplet]:
        """Bounded expansion from all seeds at once.

        Paths crossing an ignored relation are not followed. Result order is
        whatever the database yields.
        """
        if not nodes or depth <= 0 or limit <= 0:
            return []

        records = await self._run(
            f"""
            MATCH (seed) WHERE seed.id IN $ids
            MATCH p = (seed)-[*1..{int(depth)}]-(other)
            WHERE none(rel IN relationships(p) WHERE type(rel) IN $ignore)
            UNWIND relationships(p) AS r
            WITH DISTINCT r
            RETURN startNode(r) AS s, labels(startNode(r)) AS s_labels,
                   type(r) AS relation, r.id AS rel_id,
                   endNode(r) AS o, labels(endNode(r)) AS o_labels
            LIMIT $limit
            """,
            ids=[n.id for n in nodes],
            ignore=list(ignore_relations),
            limit=limit,
        )
        triplets = []
        for r in records:
            relation = r["relation"]
            triplets.append(
                Triplet(
                    subject=_to_node(r["s"], r["s_labels"]),
                    predicate=Predicate(id=r["rel_id"] or relation, label=relation),
                    object=_to_node(r["o"], r["o_labels"]),
                )
            )
        return triplets

    async def get(self, ids: list[str]) -> list[Node]:
        """Fetch nodes by id; unknown ids are skipped."""
        if not ids:
            return []
        records = await self._run(
            """
            MATCH (n) WHERE n.id IN $ids
            RETURN n, labels(n) AS labels
            """,
            ids=list(ids),
        )
        return [_to_node(r["n"], r["labels"]) for r in records]

    # =========================================================================
    # WRITE OPERATIONS (ingestion)
    # =========================================================================

    async def ensure_vector_index(self) -> None:
        """Create id constraint and entity vector index if missing."""
        await self._run(
            f"CREATE CONSTRAINT IF NOT EXISTS FOR (n:{DOCUMENT_LABEL}) REQUIRE n.id IS UNIQUE"
        )
        await self._run("CREATE INDEX IF NOT EXISTS FOR (n:Entity) ON (n.id)")
        await self._run(
            f"""
            CREATE VECTOR INDEX {VECTOR_INDEX_NAME} IF NOT EXISTS
            FOR (n:Entity)
            ON (n.embedding)
            OPTIONS {{indexConfig: {{
                `vector.dimensions`: {self.embedding_dimensions},
                `vector.similarity_function`: 'cosine'
            }}}}
            """
        )
        log.info(f"Vector index '{VECTOR_INDEX_NAME}' ensured")

    async def upsert_entity(self, node: Node, embedding: list[float] | None) -> None:
        """MERGE an entity by id; attach embedding when one is available."""
        if embedding is not None and len(embedding) != self.embedding_dimensions:
            raise StoreError(
                f"Embedding dimension mismatch: expected {self.embedding_dimensions}, got {len(embedding)}"
            )
        props = {**node.properties, "name": node.name}
        label = _sanitize_label(node.label)
        await self._run(
            f"""
            MERGE (n:Entity {{id: $id}})
            SET n += $props, n:{label},
                n.embedding = coalesce($embedding, n.embedding)
            RETURN n.id AS id
            """,
            id=node.id,
            props=props,
            embedding=embedding,
        )

    async def upsert_relation(
        self, subject_id: str, predicate: str, object_id: str, properties: dict | None = None
    ) -> None:
        rel_type = _sanitize_label(predicate).upper()
        await self._run(
            f"""
            MATCH (s:Entity {{id: $subject_id}}), (o:Entity {{id: $object_id}})
            MERGE (s)-[r:{rel_type}]->(o)
            SET r += $props
            """,
            subject_id=subject_id,
            object_id=object_id,
            props=properties or {},
        )

    async def link_to_document(self, entity_id: str, document_id: str) -> None:
        """Attach an entity to its document via the bookkeeping predicate."""
        await self._run(
            f"""
            MERGE (d:{DOCUMENT_LABEL} {{id: $document_id}})
            ON CREATE SET d.name = $document_id
            WITH d
            MATCH (n:Entity {{id: $entity_id}})
            MERGE (n)-[:{FROM_DOCUMENT}]->(d)
            """,
            entity_id=entity_id,
            document_id=document_id,
        )
