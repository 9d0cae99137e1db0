"""
Sync orchestrator pushing catalog tools into the vector search collections.

For every target collection the pipeline is: hash the owned fields, skip when
the stored hash matches (unless forced), build the collection text, embed it,
and upsert vector plus payload. Collections are processed concurrently and
independently; the outcome of each is written back to the tool's sync
metadata in one atomic store update, which also re-derives the overall status
from the four collection statuses.
"""

import asyncio
import logging
import time
from collections.abc import Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar, Union

from pydantic import ValidationError

from ..models.config import OrchestratorConfig
from ..models.sync import (
    CollectionSyncResult, SyncCollection, SyncErrorCode, SyncMetadataPatch, SyncResult, SyncStatus
)
from ..models.tool import Tool
from ..storage.store import ToolStore
from .content import ContentGeneratorFactory
from .detector import ChangeDetector
from .errors import (
    EmbeddingError, InvalidToolDataError, StoreUpdateError, SyncError,
    ToolNotFoundError, VectorIndexError, is_retryable
)
from .hasher import CollectionHasher

logger = logging.getLogger(__name__)

T = TypeVar('T')

ToolInput = Union[Tool, Mapping]

# Upper bound for batch force-syncs from the admin surface
MAX_BATCH_SIZE = 50


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class ToolSyncOrchestrator:
    """
    Drives per-collection indexing of catalog tools.

    Collaborators are injected: ``store`` is a ToolStore, ``embedder`` exposes
    ``embed_single(text)``, and ``vector_index`` exposes ``upsert_vector``,
    ``update_payload`` and ``delete_vector`` returning StorageResult.
    """

    def __init__(
        self,
        store: ToolStore,
        embedder,  # EmbedderProtocol
        vector_index,  # VectorIndexClient
        content_factory: Optional[ContentGeneratorFactory] = None,
        hasher: Optional[CollectionHasher] = None,
        detector: Optional[ChangeDetector] = None,
        config: Optional[OrchestratorConfig] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.store = store
        self.embedder = embedder
        self.vector_index = vector_index
        self.content_factory = content_factory or ContentGeneratorFactory()
        self.hasher = hasher or CollectionHasher()
        self.detector = detector or ChangeDetector()
        self.config = config or OrchestratorConfig()
        self.clock = clock

        # Sync metadata writes are read-modify-write; one sync per tool at a time
        self._entity_locks: Dict[str, asyncio.Lock] = {}
        # Holders plus waiters per lock; the lock is dropped when this reaches zero
        self._lock_users: Dict[str, int] = {}

        self._stats = {
            "entities_synced": 0,
            "collections_synced": 0,
            "collections_failed": 0,
            "collections_skipped": 0,
            "payload_updates": 0,
            "deletes": 0,
            "retries": 0,
            "store_failures": 0,
        }

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    @asynccontextmanager
    async def _entity_lock(self, tool_id: str) -> AsyncIterator[None]:
        lock = self._entity_locks.setdefault(tool_id, asyncio.Lock())
        self._lock_users[tool_id] = self._lock_users.get(tool_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[tool_id] -= 1
            if self._lock_users[tool_id] == 0:
                del self._lock_users[tool_id]
                del self._entity_locks[tool_id]

    def _coerce_tool(self, tool: Any) -> Tool:
        if isinstance(tool, Tool):
            return tool
        if isinstance(tool, Mapping):
            try:
                return Tool.model_validate(dict(tool))
            except ValidationError as e:
                raise InvalidToolDataError(f"Invalid tool data: {e}") from e
        raise InvalidToolDataError(f"Unsupported tool data type: {type(tool).__name__}")

    @staticmethod
    def _normalize_collections(
        collections: Optional[Iterable[Union[SyncCollection, str]]]
    ) -> List[SyncCollection]:
        if collections is None:
            return list(SyncCollection)
        requested = {SyncCollection(c) for c in collections}
        return [c for c in SyncCollection if c in requested]

    # ------------------------------------------------------------------
    # Entity-level operations
    # ------------------------------------------------------------------

    async def sync_entity(
        self,
        tool: ToolInput,
        collections: Optional[Iterable[Union[SyncCollection, str]]] = None,
        force: bool = False
    ) -> SyncResult:
        """
        Sync a tool into its collections.

        Args:
            tool: Tool model or raw tool document
            collections: Target collections, all when None
            force: Re-index even when the stored content hash is current

        Returns:
            Aggregated result; ``success`` is False if any collection failed
            or the sync state could not be persisted

        Raises:
            InvalidToolDataError: when the tool data does not validate
        """
        tool = self._coerce_tool(tool)
        targets = self._normalize_collections(collections)
        start_time = time.perf_counter()

        async with self._entity_lock(tool.id):
            results = await asyncio.gather(
                *(self._sync_collection(tool, collection, force) for collection in targets)
            )
            result = SyncResult.from_collections(tool.id, list(results), 0.0)

            attempted = [r for r in results if not r.skipped]
            if attempted:
                await self._persist_outcomes(tool.id, attempted, result)

        result.total_duration_ms = _elapsed_ms(start_time)
        self._stats["entities_synced"] += 1

        log = logger.info if result.success else logger.warning
        log(
            f"Synced tool {tool.id}: {result.synced_count} synced, {result.failed_count} failed, "
            f"{result.skipped_count} skipped ({result.total_duration_ms:.1f}ms)"
        )
        return result

    async def sync_affected_collections(self, tool: ToolInput, changed_fields: List[str]) -> SyncResult:
        """
        Sync only what a change set requires.

        An empty change set skips every collection; a metadata-only change
        rewrites payloads without embedding; otherwise the affected
        collections are force-synced.
        """
        tool = self._coerce_tool(tool)

        if not changed_fields:
            logger.debug(f"No changed fields for {tool.id}, skipping sync")
            return SyncResult.from_collections(
                tool.id,
                [CollectionSyncResult.skipped_result(c) for c in SyncCollection],
                0.0
            )

        if self.detector.is_metadata_only_change(changed_fields):
            logger.info(f"Metadata-only change on {tool.id} ({changed_fields}), updating payloads")
            return await self.update_payload_only(tool)

        affected = self.detector.get_affected_collections(changed_fields)
        logger.info(
            f"Changed fields on {tool.id} affect {[c.value for c in affected]}"
        )
        return await self.sync_entity(tool, collections=affected, force=True)

    async def update_payload_only(self, tool: ToolInput) -> SyncResult:
        """
        Rewrite stored payloads in every collection without re-embedding.

        Successful rewrites leave the collection sync state untouched;
        failures mark the collection failed so the worker re-syncs it.
        """
        tool = self._coerce_tool(tool)
        start_time = time.perf_counter()
        now = self.clock()

        async with self._entity_lock(tool.id):
            results = await asyncio.gather(
                *(self._update_collection_payload(tool, c, now) for c in SyncCollection)
            )
            result = SyncResult.from_collections(tool.id, list(results), 0.0)

            failed = [r for r in results if not r.success]
            if failed:
                await self._persist_outcomes(tool.id, failed, result)

        result.total_duration_ms = _elapsed_ms(start_time)
        self._stats["payload_updates"] += 1
        logger.info(
            f"Payload update for {tool.id}: {result.synced_count} updated, {result.failed_count} failed"
        )
        return result

    async def delete_entity(self, tool_id: str) -> SyncResult:
        """Delete a tool's point from every collection, each independently"""
        start_time = time.perf_counter()

        results = await asyncio.gather(
            *(self._delete_from_collection(tool_id, c) for c in SyncCollection)
        )
        result = SyncResult.from_collections(tool_id, list(results), _elapsed_ms(start_time))

        self._stats["deletes"] += 1
        logger.info(
            f"Deleted tool {tool_id}: {result.synced_count} deleted, {result.failed_count} failed"
        )
        return result

    async def retry_failed_sync(self, tool_id: str) -> SyncResult:
        """
        Re-attempt the collections of a tool that are failed or pending.

        Raises:
            ToolNotFoundError: when no tool has this id or slug
        """
        tool = await self.store.find_by_id_or_slug(tool_id)
        if tool is None:
            raise ToolNotFoundError(tool_id)

        targets = tool.sync_metadata.collections_with_status((SyncStatus.FAILED, SyncStatus.PENDING))
        if not targets:
            logger.info(f"Nothing to retry for {tool.id}")
            return SyncResult.from_collections(
                tool.id,
                [CollectionSyncResult.skipped_result(c) for c in SyncCollection],
                0.0
            )

        logger.info(f"Retrying {[c.value for c in targets]} for {tool.id}")
        return await self.sync_entity(tool, collections=targets, force=True)

    async def sync_many(
        self,
        tool_ids: List[str],
        collections: Optional[Iterable[Union[SyncCollection, str]]] = None
    ) -> Dict[str, Any]:
        """Force-sync a batch of tools by id or slug"""
        if len(tool_ids) > MAX_BATCH_SIZE:
            raise ValueError(f"Batch sync accepts at most {MAX_BATCH_SIZE} tools, got {len(tool_ids)}")

        targets = list(collections) if collections is not None else None
        results: List[Dict[str, Any]] = []
        for tool_id in tool_ids:
            tool = await self.store.find_by_id_or_slug(tool_id)
            if tool is None:
                results.append({
                    "tool_id": tool_id,
                    "success": False,
                    "error": f"Tool not found: {tool_id}",
                    "error_code": SyncErrorCode.TOOL_NOT_FOUND.value
                })
                continue

            try:
                result = await self.sync_entity(tool, collections=targets, force=True)
                results.append({"tool_id": tool.id, **result.model_dump(mode='json', exclude={'tool_id'})})
            except SyncError as e:
                results.append({
                    "tool_id": tool_id, "success": False, "error": str(e), "error_code": e.code.value
                })

        succeeded = sum(1 for r in results if r["success"])
        return {
            "total": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
            "results": results
        }

    # ------------------------------------------------------------------
    # Collection-level pipeline
    # ------------------------------------------------------------------

    async def _sync_collection(
        self,
        tool: Tool,
        collection: SyncCollection,
        force: bool
    ) -> CollectionSyncResult:
        content_hash = self.hasher.hash(tool, collection)
        stored = tool.sync_metadata.get(collection)

        if not force and stored.content_hash == content_hash:
            logger.debug(f"Skipping {collection.value} for {tool.id}: content unchanged")
            self._stats["collections_skipped"] += 1
            return CollectionSyncResult.skipped_result(collection, content_hash)

        start_time = time.perf_counter()
        try:
            content = self.content_factory.generate(tool, collection)
            vector = await self._with_retries(
                lambda: self._embed(content), f"embed {tool.id}/{collection.value}"
            )
            payload = self.content_factory.build_payload(tool, collection, synced_at=self.clock())
            await self._with_retries(
                lambda: self._upsert(collection, tool.id, vector, payload),
                f"upsert {tool.id}/{collection.value}"
            )

        except SyncError as e:
            self._stats["collections_failed"] += 1
            logger.error(f"Sync of {tool.id} into {collection.value} failed [{e.code.value}]: {e}")
            return CollectionSyncResult.failed_result(collection, str(e), e.code, _elapsed_ms(start_time))

        self._stats["collections_synced"] += 1
        logger.debug(f"Synced {tool.id} into {collection.value} ({content_hash})")
        return CollectionSyncResult(
            collection=collection,
            success=True,
            content_hash=content_hash,
            duration_ms=_elapsed_ms(start_time)
        )

    async def _update_collection_payload(
        self,
        tool: Tool,
        collection: SyncCollection,
        now: datetime
    ) -> CollectionSyncResult:
        start_time = time.perf_counter()
        try:
            payload = self.content_factory.build_payload(tool, collection, synced_at=now)
            await self._with_retries(
                lambda: self._set_payload(collection, tool.id, payload),
                f"payload {tool.id}/{collection.value}"
            )
        except SyncError as e:
            logger.error(f"Payload update of {tool.id} in {collection.value} failed: {e}")
            return CollectionSyncResult.failed_result(
                collection, str(e), SyncErrorCode.QDRANT_UPSERT_FAILED, _elapsed_ms(start_time)
            )

        return CollectionSyncResult(collection=collection, success=True, duration_ms=_elapsed_ms(start_time))

    async def _delete_from_collection(self, tool_id: str, collection: SyncCollection) -> CollectionSyncResult:
        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self.vector_index.delete_vector(collection, tool_id),
                timeout=self.config.index_timeout
            )
            if not result.success:
                raise VectorIndexError(result.error or "Vector delete failed")
        except asyncio.TimeoutError:
            error = f"Vector delete timed out after {self.config.index_timeout}s"
            return CollectionSyncResult.failed_result(
                collection, error, SyncErrorCode.QDRANT_DELETE_FAILED, _elapsed_ms(start_time)
            )
        except Exception as e:
            logger.error(f"Delete of {tool_id} from {collection.value} failed: {e}")
            return CollectionSyncResult.failed_result(
                collection, str(e), SyncErrorCode.QDRANT_DELETE_FAILED, _elapsed_ms(start_time)
            )

        return CollectionSyncResult(collection=collection, success=True, duration_ms=_elapsed_ms(start_time))

    async def _embed(self, content: str) -> List[float]:
        try:
            return await asyncio.wait_for(
                self.embedder.embed_single(content),
                timeout=self.config.embed_timeout
            )
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding timed out after {self.config.embed_timeout}s") from e
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}") from e

    async def _upsert(
        self,
        collection: SyncCollection,
        tool_id: str,
        vector: List[float],
        payload: Dict[str, Any]
    ) -> None:
        try:
            result = await asyncio.wait_for(
                self.vector_index.upsert_vector(collection, tool_id, vector, payload),
                timeout=self.config.index_timeout
            )
        except asyncio.TimeoutError as e:
            raise VectorIndexError(f"Vector upsert timed out after {self.config.index_timeout}s") from e
        except Exception as e:
            raise VectorIndexError(f"Vector upsert failed: {e}") from e

        if not result.success:
            raise VectorIndexError(result.error or "Vector upsert failed")

    async def _set_payload(self, collection: SyncCollection, tool_id: str, payload: Dict[str, Any]) -> None:
        try:
            result = await asyncio.wait_for(
                self.vector_index.update_payload(collection, tool_id, payload),
                timeout=self.config.index_timeout
            )
        except asyncio.TimeoutError as e:
            raise VectorIndexError(f"Payload update timed out after {self.config.index_timeout}s") from e
        except Exception as e:
            raise VectorIndexError(f"Payload update failed: {e}") from e

        if not result.success:
            raise VectorIndexError(result.error or "Payload update failed")

    async def _with_retries(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        """Run operation, retrying transient failures with linear backoff"""
        attempt = 1
        while True:
            try:
                return await operation()
            except SyncError as e:
                if attempt >= self.config.max_attempts or not is_retryable(e):
                    raise
                delay = self.config.retry_delay_ms * attempt / 1000
                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.config.max_attempts}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                self._stats["retries"] += 1
                await asyncio.sleep(delay)
                attempt += 1

    # ------------------------------------------------------------------
    # Sync state persistence
    # ------------------------------------------------------------------

    def _build_outcome_patch(self, results: List[CollectionSyncResult], now: datetime) -> SyncMetadataPatch:
        patch = SyncMetadataPatch()
        for r in results:
            if r.success:
                patch.set_collection(
                    r.collection,
                    status=SyncStatus.SYNCED,
                    content_hash=r.content_hash,
                    last_synced_at=now,
                    last_sync_attempt_at=now,
                    last_error=None,
                    error_code=None,
                    retry_count=0
                )
                patch.inc_collection(r.collection, 'vector_version', 1)
            else:
                patch.set_collection(
                    r.collection,
                    status=SyncStatus.FAILED,
                    last_error=r.error,
                    error_code=r.error_code,
                    last_sync_attempt_at=now
                )
                patch.inc_collection(r.collection, 'retry_count', 1)
        return patch.touch(now)

    async def _persist_outcomes(
        self,
        tool_id: str,
        results: List[CollectionSyncResult],
        sync_result: SyncResult
    ) -> None:
        """Write collection outcomes and the re-derived overall status in one store update"""
        now = self.clock()
        patch = self._build_outcome_patch(results, now).rederive_overall()
        try:
            updated = await asyncio.wait_for(
                self.store.update_fields(tool_id, patch),
                timeout=self.config.store_timeout
            )
            if updated is None:
                raise StoreUpdateError(f"Tool {tool_id} disappeared while persisting sync state")
        except Exception as e:
            self._stats["store_failures"] += 1
            error = f"Failed to persist sync state for {tool_id}: {e}"
            logger.error(error)
            sync_result.success = False
            sync_result.error = error
            sync_result.error_code = SyncErrorCode.MONGODB_UPDATE_FAILED
