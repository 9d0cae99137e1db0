"""
Tests for SyncWorker sweeps, backoff policy and operator actions.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from toolsync.models.sync import (
    CollectionSyncStatus, SyncCollection, SyncResult, SyncStatus, default_sync_metadata
)
from toolsync.storage.store import InMemoryToolStore
from toolsync.sync.errors import ToolNotFoundError
from toolsync.sync.worker import SyncWorker, SyncWorkerConfig


class TestSyncWorkerConfig:

    def test_defaults(self):
        config = SyncWorkerConfig()

        assert config.sweep_interval_ms == 60_000
        assert config.batch_size == 50
        assert config.max_retries == 5
        assert config.base_backoff_delay_ms == 60_000
        assert config.max_backoff_delay_ms == 3_600_000
        assert config.enabled is True

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SYNC_WORKER_INTERVAL_MS", "1000")
        monkeypatch.setenv("SYNC_WORKER_BATCH_SIZE", "10")
        monkeypatch.setenv("SYNC_WORKER_MAX_RETRIES", "2")
        monkeypatch.setenv("SYNC_WORKER_ENABLED", "false")

        config = SyncWorkerConfig.from_env()

        assert config.sweep_interval_ms == 1000
        assert config.batch_size == 10
        assert config.max_retries == 2
        assert config.enabled is False
        assert config.base_backoff_delay_ms == 60_000

    def test_from_dict_ignores_unknown_keys(self):
        config = SyncWorkerConfig.from_dict({"batch_size": 5, "colour": "red"})
        assert config.batch_size == 5

    @pytest.mark.parametrize("retry_count,expected", [
        (0, 0),
        (1, 60_000),
        (2, 120_000),
        (3, 240_000),
        (10, 3_600_000),
    ])
    def test_backoff_delay(self, retry_count, expected):
        assert SyncWorkerConfig().backoff_delay_ms(retry_count) == expected


class TestSyncWorkerSweep:
    """Test suite for sweep selection and backoff"""

    @pytest.fixture
    def mock_orchestrator(self, sync_success):
        orchestrator = Mock()
        orchestrator.sync_entity = AsyncMock(
            side_effect=lambda tool, collections=None, force=False: sync_success(tool.id)
        )
        return orchestrator

    @pytest.fixture
    def failing_tool(self, make_tool, clock):
        """Approved tool whose tools collection failed twice at clock.now"""
        def _make(retry_count: int = 2, tool_id: str = "notion-ai"):
            metadata = default_sync_metadata(clock.now)
            for collection in SyncCollection:
                metadata.collections[collection] = CollectionSyncStatus(status=SyncStatus.SYNCED)
            metadata.collections[SyncCollection.TOOLS] = CollectionSyncStatus(
                status=SyncStatus.FAILED,
                retry_count=retry_count,
                last_sync_attempt_at=clock.now
            )
            metadata.overall_status = SyncStatus.FAILED
            return make_tool(id=tool_id, sync_metadata=metadata)
        return _make

    def _worker(self, store, orchestrator, clock, **config):
        return SyncWorker(store, orchestrator, SyncWorkerConfig(**config), clock=clock)

    @pytest.mark.asyncio
    async def test_syncs_pending_approved_tools(self, make_tool, mock_orchestrator, clock):
        store = InMemoryToolStore([make_tool()])
        worker = self._worker(store, mock_orchestrator, clock)

        result = await worker.trigger_sweep()

        assert result.processed == 1
        assert result.succeeded == 1
        tool = mock_orchestrator.sync_entity.await_args.args[0]
        assert tool.id == "notion-ai"
        assert mock_orchestrator.sync_entity.await_args.kwargs == {
            "collections": list(SyncCollection),
            "force": True
        }

    @pytest.mark.asyncio
    async def test_ignores_unapproved_and_synced_tools(self, make_tool, mock_orchestrator, clock):
        synced = default_sync_metadata(clock.now)
        for collection in SyncCollection:
            synced.collections[collection] = CollectionSyncStatus(status=SyncStatus.SYNCED)
        synced.overall_status = SyncStatus.SYNCED

        store = InMemoryToolStore([
            make_tool(id="pending-review", approvalStatus="pending"),
            make_tool(id="already-synced", sync_metadata=synced),
        ])
        worker = self._worker(store, mock_orchestrator, clock)

        result = await worker.trigger_sweep()

        assert result.processed == 0
        mock_orchestrator.sync_entity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_collections_needing_sync_are_targeted(self, failing_tool, mock_orchestrator, clock):
        store = InMemoryToolStore([failing_tool(retry_count=1)])
        clock.now = clock.now + timedelta(minutes=2)
        worker = self._worker(store, mock_orchestrator, clock)

        await worker.trigger_sweep()

        assert mock_orchestrator.sync_entity.await_args.kwargs["collections"] == [SyncCollection.TOOLS]

    @pytest.mark.asyncio
    async def test_backoff_skips_recent_failure(self, failing_tool, mock_orchestrator, clock):
        store = InMemoryToolStore([failing_tool(retry_count=2)])
        clock.now = clock.now + timedelta(seconds=1)
        worker = self._worker(store, mock_orchestrator, clock)

        result = await worker.trigger_sweep()

        assert result.processed == 0
        assert result.skipped == 1
        mock_orchestrator.sync_entity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_backoff_elapsed_is_attempted(self, failing_tool, mock_orchestrator, clock):
        store = InMemoryToolStore([failing_tool(retry_count=2)])
        clock.now = clock.now + timedelta(seconds=130)
        worker = self._worker(store, mock_orchestrator, clock)

        result = await worker.trigger_sweep()

        assert result.processed == 1
        assert result.skipped == 0

    @pytest.mark.asyncio
    async def test_retry_limit_skips_tool(self, failing_tool, mock_orchestrator, clock):
        store = InMemoryToolStore([failing_tool(retry_count=5)])
        clock.now = clock.now + timedelta(days=1)
        worker = self._worker(store, mock_orchestrator, clock)

        result = await worker.trigger_sweep()

        assert result.skipped == 1
        mock_orchestrator.sync_entity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_below_retry_limit_is_attempted(self, failing_tool, mock_orchestrator, clock):
        store = InMemoryToolStore([failing_tool(retry_count=4)])
        clock.now = clock.now + timedelta(days=1)
        worker = self._worker(store, mock_orchestrator, clock)

        result = await worker.trigger_sweep()

        assert result.processed == 1
        mock_orchestrator.sync_entity.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_store_query_failure_returns_result(self, mock_orchestrator, clock):
        store = InMemoryToolStore()
        store.find_many = AsyncMock(side_effect=RuntimeError("store unavailable"))
        worker = self._worker(store, mock_orchestrator, clock)

        result = await worker.trigger_sweep()

        assert result.processed == 0
        assert worker.is_sweeping is False
        assert worker.get_status()["last_sweep_at"] == clock.now.isoformat()
        mock_orchestrator.sync_entity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_sweeps_process_once(self, make_tool, clock, sync_success):
        release = asyncio.Event()

        async def slow_sync(tool, collections=None, force=False):
            await release.wait()
            return sync_success(tool.id)

        orchestrator = Mock()
        orchestrator.sync_entity = AsyncMock(side_effect=slow_sync)
        worker = self._worker(InMemoryToolStore([make_tool()]), orchestrator, clock)

        first = asyncio.create_task(worker.trigger_sweep())
        while not worker.is_sweeping:
            await asyncio.sleep(0)
        second = await worker.trigger_sweep()
        release.set()
        first_result = await first

        assert first_result.processed + second.processed <= 1
        assert second.processed == 0
        assert orchestrator.sync_entity.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_sync_recorded(self, make_tool, clock):
        orchestrator = Mock()
        orchestrator.sync_entity = AsyncMock(return_value=SyncResult(
            tool_id="notion-ai", success=False, failed_count=4, error="Embedding failed"
        ))
        worker = self._worker(InMemoryToolStore([make_tool()]), orchestrator, clock)

        result = await worker.trigger_sweep()

        assert result.failed == 1
        assert result.errors[0].tool_id == "notion-ai"
        assert result.errors[0].error == "Embedding failed"

    @pytest.mark.asyncio
    async def test_raising_sync_does_not_abort_sweep(self, make_tool, clock, sync_success):
        async def sync(tool, collections=None, force=False):
            if tool.id == "broken":
                raise RuntimeError("boom")
            return sync_success(tool.id)

        orchestrator = Mock()
        orchestrator.sync_entity = AsyncMock(side_effect=sync)
        store = InMemoryToolStore([make_tool(id="broken"), make_tool(id="healthy")])
        worker = self._worker(store, orchestrator, clock)

        result = await worker.trigger_sweep()

        assert result.processed == 2
        assert result.succeeded == 1
        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_batch_size_limits_sweep(self, make_tool, mock_orchestrator, clock):
        store = InMemoryToolStore([make_tool(id=f"tool-{i}") for i in range(5)])
        worker = self._worker(store, mock_orchestrator, clock, batch_size=2)

        result = await worker.trigger_sweep()

        assert result.processed == 2

    @pytest.mark.asyncio
    async def test_status_reflects_metrics(self, make_tool, mock_orchestrator, clock):
        worker = self._worker(InMemoryToolStore([make_tool()]), mock_orchestrator, clock)
        await worker.trigger_sweep()

        status = worker.get_status()

        assert status["is_running"] is False
        assert status["is_sweeping"] is False
        assert status["processed_count"] == 1
        assert status["success_count"] == 1
        assert status["last_sweep_at"] == clock.now.isoformat()
        assert status["next_sweep_at"] is None
        assert status["config"]["batch_size"] == 50


class TestSyncWorkerLifecycle:

    @pytest.mark.asyncio
    async def test_disabled_worker_does_not_start(self, store, clock):
        worker = SyncWorker(store, Mock(), SyncWorkerConfig(enabled=False), clock=clock)

        assert await worker.start() is False
        assert worker.is_running is False

    @pytest.mark.asyncio
    async def test_start_and_stop(self, store, clock):
        worker = SyncWorker(store, Mock(), SyncWorkerConfig(initial_delay_ms=60_000), clock=clock)

        assert await worker.start() is True
        assert await worker.start() is False
        assert worker.is_running is True

        await worker.stop()
        assert worker.is_running is False

    @pytest.mark.asyncio
    async def test_loop_runs_sweeps(self, store, clock):
        worker = SyncWorker(
            store, Mock(), SyncWorkerConfig(initial_delay_ms=0, sweep_interval_ms=10), clock=clock
        )

        await worker.start()
        for _ in range(100):
            if worker.metrics.sweep_count >= 2:
                break
            await asyncio.sleep(0.01)
        await worker.stop()

        assert worker.metrics.sweep_count >= 2


class TestOperatorActions:
    """Admin surface of the worker"""

    @pytest.fixture
    def worker(self, store, orchestrator, clock):
        return SyncWorker(store, orchestrator, SyncWorkerConfig(), clock=clock)

    @pytest.mark.asyncio
    async def test_force_retry_tool(self, worker, store, make_tool):
        await store.insert(make_tool())

        result = await worker.force_retry_tool("notion-ai")

        assert result["success"] is True
        assert result["synced_count"] == 4

    @pytest.mark.asyncio
    async def test_force_retry_unknown_tool(self, worker):
        with pytest.raises(ToolNotFoundError):
            await worker.force_retry_tool("missing")

    @pytest.mark.asyncio
    async def test_force_retry_all_failed(self, worker, store, make_tool, mock_embedder):
        await store.insert(make_tool())
        mock_embedder.embed_single.side_effect = RuntimeError("boom")
        await worker.orchestrator.sync_entity(await store.find_by_id("notion-ai"))
        mock_embedder.embed_single.side_effect = None

        summary = await worker.force_retry_all_failed()

        assert summary["total"] == 1
        assert summary["succeeded"] == 1
        stored = await store.find_by_id("notion-ai")
        assert stored.sync_metadata.overall_status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_reset_retry_count(self, worker, store, make_tool, mock_embedder):
        await store.insert(make_tool())
        mock_embedder.embed_single.side_effect = RuntimeError("boom")
        await worker.orchestrator.sync_entity(await store.find_by_id("notion-ai"))

        assert await worker.reset_retry_count("notion-ai") is True

        stored = await store.find_by_id("notion-ai")
        assert stored.sync_metadata.max_retry_count == 0
        assert stored.sync_metadata.get(SyncCollection.TOOLS).status == SyncStatus.FAILED

    @pytest.mark.asyncio
    async def test_reset_unknown_tool(self, worker):
        assert await worker.reset_retry_count("missing") is False

    @pytest.mark.asyncio
    async def test_mark_tool_as_stale(self, worker, store, make_tool):
        await store.insert(make_tool())
        await worker.orchestrator.sync_entity(await store.find_by_id("notion-ai"))

        assert await worker.mark_tool_as_stale("notion-ai") is True

        stored = await store.find_by_id("notion-ai")
        assert stored.sync_metadata.overall_status == SyncStatus.PENDING
        assert stored.sync_metadata.collections_needing_sync() == list(SyncCollection)

    @pytest.mark.asyncio
    async def test_mark_tools_as_stale_batch(self, worker, store, make_tool):
        await store.insert(make_tool())

        result = await worker.mark_tools_as_stale(["notion-ai", "missing"])

        assert result == {"marked": ["notion-ai"], "not_found": ["missing"]}

    @pytest.mark.asyncio
    async def test_mark_tools_as_stale_limit(self, worker):
        with pytest.raises(ValueError):
            await worker.mark_tools_as_stale([f"tool-{i}" for i in range(51)])

    @pytest.mark.asyncio
    async def test_sync_stats(self, worker, store, make_tool):
        await store.insert(make_tool(id="synced-tool"))
        await store.insert(make_tool(id="waiting-tool"))
        await store.insert(make_tool(id="unreviewed", approvalStatus="pending"))
        await worker.orchestrator.sync_entity(await store.find_by_id("synced-tool"))

        stats = await worker.get_sync_stats()

        assert stats["total"] == 2
        assert stats["synced"] == 1
        assert stats["pending"] == 1
        assert stats["failed"] == 0
        assert stats["collections"]["tools"] == {"pending": 1, "synced": 1, "failed": 0, "stale": 0}

    @pytest.mark.asyncio
    async def test_list_tools_by_status(self, worker, store, make_tool, mock_embedder):
        await store.insert(make_tool())
        mock_embedder.embed_single.side_effect = RuntimeError("boom")
        await worker.orchestrator.sync_entity(await store.find_by_id("notion-ai"))

        listing = await worker.list_tools_by_status(SyncStatus.FAILED)

        assert len(listing) == 1
        entry = listing[0]
        assert entry["id"] == "notion-ai"
        assert entry["max_retry_count"] == 1
        assert entry["collections"]["tools"]["error_code"] == "EMBEDDING_FAILED"
