"""
Qdrant vector index client for the sync collections.

Wraps the synchronous qdrant-client in worker threads and reports every
outcome as a StorageResult; failures are returned, not raised.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance, PayloadSchemaType, PointStruct, TextIndexParams, TokenizerType, VectorParams
)
from qdrant_client.http.models.models import PointIdsList

from .schemas import CollectionSchema, DistanceMetric, build_collection_schemas
from .utils import tool_id_to_point_id
from ..models.config import QdrantConfig
from ..models.storage import StorageResult
from ..models.sync import SyncCollection

logger = logging.getLogger(__name__)


class VectorIndexClient:
    """
    Qdrant client holding one point per tool in each sync collection.

    Point ids are derived from tool ids, so upserts overwrite the previous
    vector of a tool and deletes need no lookup.
    """

    def __init__(self, config: Optional[QdrantConfig] = None, client: Optional[QdrantClient] = None):
        """
        Initialize vector index client.

        Args:
            config: Qdrant configuration, uses defaults if None
            client: Pre-built QdrantClient (tests, embedded mode)
        """
        self.config = config or QdrantConfig()
        self.schemas: Dict[SyncCollection, CollectionSchema] = build_collection_schemas(self.config)
        self._client = client
        self._connection_lock = asyncio.Lock()
        self._collections_ready = False

        logger.info(f"Initialized VectorIndexClient: {self.config.url}")

    @property
    def client(self) -> QdrantClient:
        """Get Qdrant client instance"""
        if self._client is None:
            self._client = QdrantClient(
                url=self.config.url,
                api_key=self.config.api_key,
                timeout=int(self.config.timeout)
            )
        return self._client

    def collection_name(self, collection: SyncCollection) -> str:
        return self.schemas[collection].name

    async def close(self) -> None:
        if self._client is not None:
            try:
                await asyncio.to_thread(self._client.close)
            except Exception as e:
                logger.warning(f"Error closing Qdrant client: {e}")
            self._client = None
        self._collections_ready = False

    async def health_check(self) -> Dict[str, Any]:
        """
        Check Qdrant server health.

        Returns:
            Health status information
        """
        try:
            start_time = time.time()
            collections = await asyncio.to_thread(self.client.get_collections)
            elapsed = time.time() - start_time

            existing = {c.name for c in collections.collections}
            return {
                "status": "healthy",
                "response_time_ms": elapsed * 1000,
                "collections": {
                    collection.value: schema.name in existing
                    for collection, schema in self.schemas.items()
                },
                "url": self.config.url
            }

        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "url": self.config.url
            }

    async def ensure_collections(self) -> List[StorageResult]:
        """Create any missing sync collection with its payload indexes"""
        async with self._connection_lock:
            results = []
            for schema in self.schemas.values():
                results.append(await self._ensure_collection(schema))
            self._collections_ready = all(r.success for r in results)
            return results

    async def _ensure_collection(self, schema: CollectionSchema) -> StorageResult:
        start_time = time.time()

        try:
            exists = await asyncio.to_thread(self.client.collection_exists, schema.name)
            if exists:
                processing_time = (time.time() - start_time) * 1000
                return StorageResult.successful("create_collection", schema.name, 0, processing_time)

            await asyncio.to_thread(
                self.client.create_collection,
                collection_name=schema.name,
                vectors_config={
                    schema.vector_name: VectorParams(
                        size=schema.vector_size,
                        distance=self._map_distance_metric(schema.distance_metric)
                    )
                },
                on_disk_payload=schema.on_disk_payload
            )
            await self._create_payload_indexes(schema)

            processing_time = (time.time() - start_time) * 1000
            logger.info(f"Created collection '{schema.name}' in {processing_time:.2f}ms")
            return StorageResult.successful("create_collection", schema.name, 1, processing_time)

        except Exception as e:
            processing_time = (time.time() - start_time) * 1000
            error_msg = f"Failed to create collection {schema.name}: {e}"
            logger.error(error_msg)
            return StorageResult.failed_operation(
                "create_collection", schema.name, error_msg, processing_time
            )

    async def _create_payload_indexes(self, schema: CollectionSchema) -> None:
        """Create payload indexes for a collection"""
        for index_config in schema.payload_indexes:
            try:
                if index_config.field_type == "text":
                    field_schema = TextIndexParams(
                        type="text",
                        tokenizer=TokenizerType.WORD,
                        min_token_len=2,
                        max_token_len=20,
                        lowercase=True
                    )
                else:
                    field_schema = PayloadSchemaType.KEYWORD

                await asyncio.to_thread(
                    self.client.create_payload_index,
                    collection_name=schema.name,
                    field_name=index_config.field_name,
                    field_schema=field_schema
                )
                logger.debug(
                    f"Created {index_config.field_type} index on {schema.name}.{index_config.field_name}"
                )

            except Exception as e:
                logger.warning(
                    f"Failed to create index on {schema.name}.{index_config.field_name}: {e}"
                )

    def _map_distance_metric(self, metric: DistanceMetric) -> Distance:
        """Map distance metric enum to Qdrant Distance"""
        mapping = {
            DistanceMetric.COSINE: Distance.COSINE,
            DistanceMetric.EUCLIDEAN: Distance.EUCLID,
            DistanceMetric.DOT_PRODUCT: Distance.DOT
        }
        return mapping[metric]

    async def upsert_vector(
        self,
        collection: SyncCollection,
        tool_id: str,
        vector: List[float],
        payload: Dict[str, Any]
    ) -> StorageResult:
        """Insert or replace the point of a tool in one collection"""
        schema = self.schemas[collection]
        start_time = time.time()

        try:
            point = PointStruct(
                id=tool_id_to_point_id(tool_id),
                vector={schema.vector_name: list(vector)},
                payload=payload
            )
            await asyncio.to_thread(
                self.client.upsert,
                collection_name=schema.name,
                points=[point],
                wait=True
            )

            processing_time = (time.time() - start_time) * 1000
            logger.debug(f"Upserted {tool_id} into {schema.name} in {processing_time:.2f}ms")
            return StorageResult.successful("upsert", schema.name, 1, processing_time)

        except Exception as e:
            processing_time = (time.time() - start_time) * 1000
            error_msg = f"Failed to upsert {tool_id} into {schema.name}: {e}"
            logger.error(error_msg)
            return StorageResult.failed_operation(
                "upsert", schema.name, error_msg, processing_time,
                error_details={"tool_id": tool_id, "exception_type": type(e).__name__}
            )

    async def update_payload(
        self,
        collection: SyncCollection,
        tool_id: str,
        payload: Dict[str, Any]
    ) -> StorageResult:
        """Overwrite payload fields of an existing point, keeping its vector"""
        schema = self.schemas[collection]
        start_time = time.time()

        try:
            await asyncio.to_thread(
                self.client.set_payload,
                collection_name=schema.name,
                payload=payload,
                points=[tool_id_to_point_id(tool_id)],
                wait=True
            )

            processing_time = (time.time() - start_time) * 1000
            logger.debug(f"Updated payload of {tool_id} in {schema.name}")
            return StorageResult.successful("update_payload", schema.name, 1, processing_time)

        except Exception as e:
            processing_time = (time.time() - start_time) * 1000
            error_msg = f"Failed to update payload of {tool_id} in {schema.name}: {e}"
            logger.error(error_msg)
            return StorageResult.failed_operation(
                "update_payload", schema.name, error_msg, processing_time,
                error_details={"tool_id": tool_id, "exception_type": type(e).__name__}
            )

    async def delete_vector(self, collection: SyncCollection, tool_id: str) -> StorageResult:
        """Delete the point of a tool from one collection"""
        schema = self.schemas[collection]
        start_time = time.time()

        try:
            await asyncio.to_thread(
                self.client.delete,
                collection_name=schema.name,
                points_selector=PointIdsList(points=[tool_id_to_point_id(tool_id)]),
                wait=True
            )

            processing_time = (time.time() - start_time) * 1000
            logger.debug(f"Deleted {tool_id} from {schema.name}")
            return StorageResult.successful("delete", schema.name, 1, processing_time)

        except Exception as e:
            processing_time = (time.time() - start_time) * 1000
            error_msg = f"Failed to delete {tool_id} from {schema.name}: {e}"
            logger.error(error_msg)
            return StorageResult.failed_operation(
                "delete", schema.name, error_msg, processing_time,
                error_details={"tool_id": tool_id, "exception_type": type(e).__name__}
            )
