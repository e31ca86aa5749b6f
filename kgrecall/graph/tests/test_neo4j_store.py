"""Tests for the Neo4j graph store.

Integration tests require a running Neo4j instance and are skipped otherwise.
"""

import asyncio

import pytest

from kgrecall.errors import ConfigurationError
from kgrecall.graph.model import Node
from kgrecall.graph.neo4j_store import Neo4jGraphStore, _sanitize_label, _to_node
from kgrecall.graph.predicates import IGNORED_RELATIONS
from kgrecall.graph.tests.neo4j_test_config import integration_settings

DIMS = 4


def test_missing_password_is_configuration_error():
    with pytest.raises(ConfigurationError):
        Neo4jGraphStore(uri="bolt://localhost:17687", user="neo4j", password="")


def test_sanitize_label():
    assert _sanitize_label("Safety Rule") == "Safety_Rule"
    assert _sanitize_label("3d-model") == "N_3d_model"
    assert _sanitize_label("") == "Unknown"


def test_to_node_hides_internal_fields():
    node = _to_node(
        {"id": "c:valve", "name": "Valve", "embedding": [0.1], "documentId": "manual"},
        ["Entity", "Component"],
    )

    assert node.id == "c:valve"
    assert node.label == "Component"
    assert node.name == "Valve"
    assert node.properties == {"documentId": "manual"}


def test_to_node_defaults():
    node = _to_node({"id": "x"}, ["Entity"])

    assert node.label == "ENTITY"
    assert node.name == "x"


class TestNeo4jGraphStore:
    @pytest.fixture
    def store(self):
        settings = integration_settings()
        return Neo4jGraphStore(
            uri=settings.neo4j_uri,
            user=settings.neo4j_user,
            password=settings.neo4j_password,
            embedding_dimensions=DIMS,
        )

    def test_write_and_expand(self, store):
        valve = Node(
            id="component:test_valve",
            label="Component",
            name="Test Valve",
            properties={"documentId": "test-manual", "sourceChunk": "test-chunk-1"},
        )
        pump = Node(
            id="component:test_pump",
            label="Component",
            name="Test Pump",
            properties={"documentId": "test-manual", "sourceChunk": "test-chunk-1"},
        )

        async def scenario():
            try:
                await store.verify()
            except ConfigurationError as e:
                await store.close()
                return e
            try:
                await store.upsert_entity(valve, [1.0, 0.0, 0.0, 0.0])
                await store.upsert_entity(pump, [0.0, 1.0, 0.0, 0.0])
                await store.upsert_relation(valve.id, "feeds", pump.id)
                await store.link_to_document(valve.id, "test-manual")

                triplets = await store.get_rel_map(
                    [valve], depth=1, limit=10, ignore_relations=IGNORED_RELATIONS
                )
                fetched = await store.get([valve.id, "component:missing"])
                return triplets, fetched
            finally:
                await store._run(
                    "MATCH (n) WHERE n.id IN $ids DETACH DELETE n",
                    ids=[valve.id, pump.id, "test-manual"],
                )
                await store.close()

        outcome = asyncio.run(scenario())
        if isinstance(outcome, ConfigurationError):
            pytest.skip(f"Neo4j not available: {outcome}")
        triplets, fetched = outcome

        assert [t.predicate.text for t in triplets] == ["FEEDS"]
        assert triplets[0].subject.id == valve.id
        assert triplets[0].object.id == pump.id
        assert [n.id for n in fetched] == [valve.id]
        assert fetched[0].document_id == "test-manual"
