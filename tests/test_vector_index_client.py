"""
Unit tests for VectorIndexClient against a mocked QdrantClient.
"""

from unittest.mock import Mock

import pytest
from qdrant_client.http.models.models import PointIdsList
from qdrant_client.models import Distance, PointStruct

from toolsync.models.config import QdrantConfig
from toolsync.models.sync import SyncCollection
from toolsync.storage.client import VectorIndexClient
from toolsync.storage.schemas import DistanceMetric, build_collection_schemas
from toolsync.storage.utils import tool_id_to_point_id


class TestPointIds:

    def test_deterministic(self):
        assert tool_id_to_point_id("notion-ai") == tool_id_to_point_id("notion-ai")

    def test_distinct_tools_get_distinct_ids(self):
        assert tool_id_to_point_id("notion-ai") != tool_id_to_point_id("jasper")

    def test_fits_unsigned_64_bits(self):
        point_id = tool_id_to_point_id("notion-ai")
        assert 0 <= point_id < 2 ** 64


class TestCollectionSchemas:

    def test_one_schema_per_collection(self):
        schemas = build_collection_schemas(QdrantConfig())

        assert set(schemas) == set(SyncCollection)
        assert schemas[SyncCollection.TOOLS].name == "tools"
        assert schemas[SyncCollection.TOOLS].vector_name == "semantic"
        assert schemas[SyncCollection.INTERFACE].distance_metric == DistanceMetric.COSINE

    def test_prefix_applied(self):
        schemas = build_collection_schemas(QdrantConfig(collection_prefix="prod", vector_size=768))

        assert schemas[SyncCollection.USECASES].name == "prod-usecases"
        assert schemas[SyncCollection.USECASES].vector_size == 768

    def test_owned_fields_indexed(self):
        schema = build_collection_schemas(QdrantConfig())[SyncCollection.USECASES]
        indexed = {index.field_name: index.field_type for index in schema.payload_indexes}

        assert indexed["tool_id"] == "keyword"
        assert indexed["industries"] == "keyword"
        assert indexed["name"] == "text"


class TestVectorIndexClient:
    """Test suite for Qdrant operations"""

    @pytest.fixture
    def qdrant(self):
        return Mock()

    @pytest.fixture
    def client(self, qdrant):
        return VectorIndexClient(QdrantConfig(), client=qdrant)

    @pytest.mark.asyncio
    async def test_upsert_vector(self, client, qdrant):
        result = await client.upsert_vector(
            SyncCollection.FUNCTIONALITY, "notion-ai", [0.1, 0.2], {"tool_id": "notion-ai"}
        )

        assert result.success is True
        assert result.operation == "upsert"
        assert result.affected_count == 1

        kwargs = qdrant.upsert.call_args.kwargs
        assert kwargs["collection_name"] == "functionality"
        point = kwargs["points"][0]
        assert isinstance(point, PointStruct)
        assert point.id == tool_id_to_point_id("notion-ai")
        assert point.vector == {"entities_functionality": [0.1, 0.2]}
        assert point.payload == {"tool_id": "notion-ai"}

    @pytest.mark.asyncio
    async def test_upsert_failure_is_reported(self, client, qdrant):
        qdrant.upsert.side_effect = Exception("connection refused")

        result = await client.upsert_vector(SyncCollection.TOOLS, "notion-ai", [0.1], {})

        assert result.success is False
        assert "connection refused" in result.error
        assert result.error_details["tool_id"] == "notion-ai"

    @pytest.mark.asyncio
    async def test_update_payload(self, client, qdrant):
        result = await client.update_payload(SyncCollection.INTERFACE, "notion-ai", {"website": "https://x.io"})

        assert result.success is True
        kwargs = qdrant.set_payload.call_args.kwargs
        assert kwargs["collection_name"] == "interface"
        assert kwargs["points"] == [tool_id_to_point_id("notion-ai")]
        assert kwargs["payload"] == {"website": "https://x.io"}

    @pytest.mark.asyncio
    async def test_delete_vector(self, client, qdrant):
        result = await client.delete_vector(SyncCollection.USECASES, "notion-ai")

        assert result.success is True
        kwargs = qdrant.delete.call_args.kwargs
        assert kwargs["collection_name"] == "usecases"
        assert isinstance(kwargs["points_selector"], PointIdsList)
        assert kwargs["points_selector"].points == [tool_id_to_point_id("notion-ai")]

    @pytest.mark.asyncio
    async def test_delete_failure_is_reported(self, client, qdrant):
        qdrant.delete.side_effect = Exception("not found")

        result = await client.delete_vector(SyncCollection.USECASES, "notion-ai")

        assert result.success is False
        assert result.operation == "delete"

    @pytest.mark.asyncio
    async def test_ensure_collections_creates_missing(self, client, qdrant):
        qdrant.collection_exists.return_value = False

        results = await client.ensure_collections()

        assert all(r.success for r in results)
        assert qdrant.create_collection.call_count == 4
        created = {
            call.kwargs["collection_name"]: call.kwargs["vectors_config"]
            for call in qdrant.create_collection.call_args_list
        }
        params = created["tools"]["semantic"]
        assert params.size == 384
        assert params.distance == Distance.COSINE
        assert qdrant.create_payload_index.call_count > 0

    @pytest.mark.asyncio
    async def test_ensure_collections_keeps_existing(self, client, qdrant):
        qdrant.collection_exists.return_value = True

        results = await client.ensure_collections()

        assert all(r.success for r in results)
        qdrant.create_collection.assert_not_called()

    @pytest.mark.asyncio
    async def test_ensure_collections_reports_failures(self, client, qdrant):
        qdrant.collection_exists.side_effect = Exception("unreachable")

        results = await client.ensure_collections()

        assert not any(r.success for r in results)

    @pytest.mark.asyncio
    async def test_health_check(self, client, qdrant):
        existing = Mock()
        existing.name = "tools"
        qdrant.get_collections.return_value = Mock(collections=[existing])

        health = await client.health_check()

        assert health["status"] == "healthy"
        assert health["collections"] == {
            "tools": True, "functionality": False, "usecases": False, "interface": False
        }

    @pytest.mark.asyncio
    async def test_health_check_unhealthy(self, client, qdrant):
        qdrant.get_collections.side_effect = Exception("connection refused")

        health = await client.health_check()

        assert health["status"] == "unhealthy"
        assert "connection refused" in health["error"]

    @pytest.mark.asyncio
    async def test_close_releases_client(self, client, qdrant):
        await client.close()

        qdrant.close.assert_called_once()
        assert client._client is None
