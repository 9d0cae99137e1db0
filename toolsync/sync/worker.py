"""
Background sync worker.

Periodically sweeps the primary store for approved tools whose sync state is
pending, failed or stale, applies the retry/backoff policy and hands the rest
to the orchestrator. Also carries the operator actions used by the admin
surface (force retry, reset, mark stale, stats).
"""

import asyncio
import logging
import os
import time
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..models.sync import (
    NEEDS_SYNC_STATUSES, SweepError, SweepResult, SyncCollection, SyncMetadataPatch, SyncStatus
)
from ..models.tool import ApprovalStatus, Tool
from ..storage.store import ToolQuery, ToolStore
from .errors import ToolNotFoundError
from .orchestrator import MAX_BATCH_SIZE, ToolSyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class SyncWorkerConfig:
    """Configuration for the sync worker"""
    sweep_interval_ms: int = 60_000
    batch_size: int = 50
    max_retries: int = 5
    base_backoff_delay_ms: int = 60_000
    max_backoff_delay_ms: int = 3_600_000
    enabled: bool = True
    initial_delay_ms: int = 5_000
    # Tools synced in parallel within one sweep
    concurrency: int = 1

    @classmethod
    def from_env(cls, prefix: str = "SYNC_WORKER_") -> 'SyncWorkerConfig':
        """Create config from environment variables."""
        return cls(
            sweep_interval_ms=int(os.environ.get(f'{prefix}INTERVAL_MS', '60000')),
            batch_size=int(os.environ.get(f'{prefix}BATCH_SIZE', '50')),
            max_retries=int(os.environ.get(f'{prefix}MAX_RETRIES', '5')),
            base_backoff_delay_ms=int(os.environ.get(f'{prefix}BASE_BACKOFF_MS', '60000')),
            max_backoff_delay_ms=int(os.environ.get(f'{prefix}MAX_BACKOFF_MS', '3600000')),
            enabled=os.environ.get(f'{prefix}ENABLED', 'true').lower() == 'true',
            initial_delay_ms=int(os.environ.get(f'{prefix}INITIAL_DELAY_MS', '5000')),
            concurrency=int(os.environ.get(f'{prefix}CONCURRENCY', '1'))
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncWorkerConfig':
        """Build from a config file section, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def backoff_delay_ms(self, retry_count: int) -> int:
        """Wait required after the retry_count-th failure"""
        if retry_count <= 0:
            return 0
        return min(self.base_backoff_delay_ms * (2 ** (retry_count - 1)), self.max_backoff_delay_ms)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WorkerMetrics:
    """Cumulative sweep metrics"""
    sweep_count: int = 0
    processed_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    last_sweep_at: Optional[datetime] = None
    last_sweep_duration_ms: Optional[float] = None

    def record(self, result: SweepResult, finished_at: datetime) -> None:
        self.sweep_count += 1
        self.processed_count += result.processed
        self.success_count += result.succeeded
        self.failed_count += result.failed
        self.skipped_count += result.skipped
        self.last_sweep_at = finished_at
        self.last_sweep_duration_ms = result.duration_ms


class SyncWorker:
    """
    Asyncio background worker retrying pending, failed and stale syncs.

    Only one sweep runs at a time; a sweep requested while another is in
    progress returns an empty result immediately.
    """

    def __init__(
        self,
        store: ToolStore,
        orchestrator: ToolSyncOrchestrator,
        config: Optional[SyncWorkerConfig] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize sync worker.

        Args:
            store: Primary tool store to scan
            orchestrator: Orchestrator performing the syncs
            config: Worker configuration (uses defaults if None)
            clock: Time source, injectable for tests
        """
        self.store = store
        self.orchestrator = orchestrator
        self.config = config or SyncWorkerConfig()
        self.clock = clock

        self.metrics = WorkerMetrics()
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._running = False

        # Lifecycle lock for start/stop, sweep lock as a non-blocking guard
        self._lifecycle_lock = asyncio.Lock()
        self._sweep_lock = asyncio.Lock()

        logger.info(
            f"Initialized sync worker (interval: {self.config.sweep_interval_ms}ms, "
            f"batch: {self.config.batch_size}, max_retries: {self.config.max_retries})"
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_sweeping(self) -> bool:
        return self._sweep_lock.locked()

    async def start(self) -> bool:
        """
        Start periodic sweeping.

        Returns:
            True if the worker was started, False if disabled or already running
        """
        async with self._lifecycle_lock:
            if not self.config.enabled:
                logger.info("Sync worker is disabled, not starting")
                return False
            if self._running:
                logger.debug("Sync worker is already running")
                return False

            self._shutdown_event.clear()
            self._task = asyncio.create_task(self._run_loop())
            self._running = True
            logger.info("Sync worker started")
            return True

    async def stop(self) -> None:
        """Stop periodic sweeping; an in-flight sweep is cancelled"""
        async with self._lifecycle_lock:
            if not self._running:
                logger.debug("Sync worker is already stopped")
                return

            logger.info("Stopping sync worker...")
            self._shutdown_event.set()
            self._running = False

            if self._task and not self._task.done():
                self._task.cancel()
                try:
                    await asyncio.wait_for(self._task, timeout=5.0)
                except (asyncio.CancelledError, asyncio.TimeoutError):
                    logger.debug("Sweep loop cancelled or timed out during shutdown")
                except Exception as e:
                    logger.warning(f"Error during sync worker shutdown: {e}")

            self._task = None
            logger.info("Sync worker stopped")

    async def _run_loop(self) -> None:
        """Initial delay, then one sweep per interval until shutdown"""
        if await self._wait_for_shutdown(self.config.initial_delay_ms):
            return

        while not self._shutdown_event.is_set():
            try:
                await self.trigger_sweep()
            except Exception as e:
                logger.error(f"Sync sweep crashed: {e}", exc_info=True)

            if await self._wait_for_shutdown(self.config.sweep_interval_ms):
                break

    async def _wait_for_shutdown(self, delay_ms: int) -> bool:
        """Sleep delay_ms; True if shutdown was requested meanwhile"""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay_ms / 1000)
            return True
        except asyncio.TimeoutError:
            return False

    async def trigger_sweep(self) -> SweepResult:
        """Run one sweep now, unless a sweep is already in progress"""
        if self._sweep_lock.locked():
            logger.debug("Sweep already in progress, skipping")
            return SweepResult()

        async with self._sweep_lock:
            start_time = time.perf_counter()
            result = SweepResult()

            try:
                candidates = await self.store.find_many(
                    ToolQuery(
                        approval_status=ApprovalStatus.APPROVED,
                        any_status_in=NEEDS_SYNC_STATUSES
                    ),
                    limit=self.config.batch_size
                )

                if candidates:
                    logger.info(f"Sweep found {len(candidates)} tools needing sync")

                now = self.clock()
                to_sync: List[Tool] = []
                for tool in candidates:
                    reason = self._skip_reason(tool, now)
                    if reason:
                        logger.debug(f"Skipping {tool.id}: {reason}")
                        result.skipped += 1
                    else:
                        to_sync.append(tool)

                semaphore = asyncio.Semaphore(max(1, self.config.concurrency))

                async def run(tool: Tool) -> None:
                    async with semaphore:
                        await self._sync_candidate(tool, result)

                await asyncio.gather(*(run(tool) for tool in to_sync))

            except Exception as e:
                logger.error(f"Sweep error: {e}", exc_info=True)
            finally:
                result.duration_ms = (time.perf_counter() - start_time) * 1000
                self.metrics.record(result, self.clock())

            if result.processed or result.skipped:
                logger.info(
                    f"Sweep complete: {result.processed} processed, {result.succeeded} succeeded, "
                    f"{result.failed} failed, {result.skipped} skipped ({result.duration_ms:.1f}ms)"
                )
            return result

    def _skip_reason(self, tool: Tool, now: datetime) -> Optional[str]:
        """Why the worker should leave a tool alone this sweep, if at all"""
        metadata = tool.sync_metadata
        retry_count = metadata.max_retry_count

        # Inclusive: a tool with max_retries failed attempts gets no further automatic attempt
        if retry_count >= self.config.max_retries:
            return f"retry limit reached ({retry_count}/{self.config.max_retries})"

        last_attempt = metadata.last_sync_attempt_at
        if retry_count > 0 and last_attempt is not None:
            wait = timedelta(milliseconds=self.config.backoff_delay_ms(retry_count))
            if now < last_attempt + wait:
                return f"in backoff until {(last_attempt + wait).isoformat()}"

        return None

    async def _sync_candidate(self, tool: Tool, result: SweepResult) -> None:
        targets = tool.sync_metadata.collections_needing_sync() or list(SyncCollection)
        result.processed += 1
        try:
            sync_result = await self.orchestrator.sync_entity(tool, collections=targets, force=True)
        except Exception as e:
            result.failed += 1
            result.errors.append(SweepError(tool_id=tool.id, error=str(e)))
            logger.error(f"Sweep sync of {tool.id} raised: {e}")
            return

        if sync_result.success:
            result.succeeded += 1
        else:
            result.failed += 1
            error = sync_result.error or "; ".join(
                f"{r.collection.value}: {r.error}" for r in sync_result.collections if not r.success
            )
            result.errors.append(SweepError(tool_id=tool.id, error=error))

    def get_status(self) -> Dict[str, Any]:
        """Current worker state, cumulative counters and config"""
        next_sweep_at = None
        if self._running and self.metrics.last_sweep_at is not None:
            next_sweep_at = self.metrics.last_sweep_at + timedelta(milliseconds=self.config.sweep_interval_ms)

        last_sweep_at = self.metrics.last_sweep_at
        return {
            "is_running": self._running,
            "is_sweeping": self.is_sweeping,
            "last_sweep_at": last_sweep_at.isoformat() if last_sweep_at else None,
            "last_sweep_duration_ms": self.metrics.last_sweep_duration_ms,
            "processed_count": self.metrics.processed_count,
            "success_count": self.metrics.success_count,
            "failed_count": self.metrics.failed_count,
            "next_sweep_at": next_sweep_at.isoformat() if next_sweep_at else None,
            "config": self.config.to_dict()
        }

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    async def force_retry_tool(self, tool_id: str) -> Dict[str, Any]:
        """
        Sync one tool now, ignoring backoff and retry limits.

        Raises:
            ToolNotFoundError: when no tool has this id or slug
        """
        tool = await self.store.find_by_id_or_slug(tool_id)
        if tool is None:
            raise ToolNotFoundError(tool_id)

        targets = tool.sync_metadata.collections_needing_sync() or list(SyncCollection)
        result = await self.orchestrator.sync_entity(tool, collections=targets, force=True)
        return result.model_dump(mode='json')

    async def force_retry_all_failed(self, limit: int = 100) -> Dict[str, Any]:
        """Force-sync every approved tool whose overall status is failed"""
        tools = await self.store.find_many(
            ToolQuery(approval_status=ApprovalStatus.APPROVED, overall_status_in=[SyncStatus.FAILED]),
            limit=limit
        )
        logger.info(f"Force retrying {len(tools)} failed tools")

        results = []
        for tool in tools:
            try:
                targets = tool.sync_metadata.collections_needing_sync() or list(SyncCollection)
                sync_result = await self.orchestrator.sync_entity(tool, collections=targets, force=True)
                results.append({
                    "tool_id": tool.id,
                    "success": sync_result.success,
                    "error": sync_result.error
                })
            except Exception as e:
                logger.error(f"Force retry of {tool.id} failed: {e}")
                results.append({"tool_id": tool.id, "success": False, "error": str(e)})

        succeeded = sum(1 for r in results if r["success"])
        return {
            "total": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
            "results": results
        }

    async def reset_retry_count(self, tool_id: str) -> bool:
        """Zero every collection's retry count; statuses are unchanged"""
        tool = await self.store.find_by_id_or_slug(tool_id)
        if tool is None:
            return False

        patch = SyncMetadataPatch()
        for collection in SyncCollection:
            patch.set_collection(collection, retry_count=0)
        patch.touch(self.clock())

        updated = await self.store.update_fields(tool.id, patch)
        if updated is not None:
            logger.info(f"Reset retry counts for {tool.id}")
        return updated is not None

    async def mark_tool_as_stale(self, tool_id: str) -> bool:
        """Force a full re-sync: every collection and the overall status go to pending"""
        tool = await self.store.find_by_id_or_slug(tool_id)
        if tool is None:
            return False

        patch = SyncMetadataPatch().set_overall(SyncStatus.PENDING)
        for collection in SyncCollection:
            patch.set_collection(collection, status=SyncStatus.PENDING, retry_count=0)
        patch.touch(self.clock())

        updated = await self.store.update_fields(tool.id, patch)
        if updated is not None:
            logger.info(f"Marked {tool.id} for full re-sync")
        return updated is not None

    async def mark_tools_as_stale(self, tool_ids: List[str]) -> Dict[str, Any]:
        """Batch variant of mark_tool_as_stale"""
        if len(tool_ids) > MAX_BATCH_SIZE:
            raise ValueError(f"Batch accepts at most {MAX_BATCH_SIZE} tools, got {len(tool_ids)}")

        marked, not_found = [], []
        for tool_id in tool_ids:
            if await self.mark_tool_as_stale(tool_id):
                marked.append(tool_id)
            else:
                not_found.append(tool_id)
        return {"marked": marked, "not_found": not_found}

    async def get_sync_stats(self) -> Dict[str, Any]:
        """Status counts over approved tools"""
        counts = await self.store.count_by_status(ToolQuery(approval_status=ApprovalStatus.APPROVED))
        overall = counts["overall"]
        return {
            "total": counts["total"],
            "synced": overall[SyncStatus.SYNCED.value],
            "pending": overall[SyncStatus.PENDING.value],
            "stale": overall[SyncStatus.STALE.value],
            "failed": overall[SyncStatus.FAILED.value],
            "collections": counts["collections"]
        }

    async def list_tools_by_status(self, status: SyncStatus, limit: int = 50) -> List[Dict[str, Any]]:
        """Approved tools with the given overall status, for operator listings"""
        tools = await self.store.find_many(
            ToolQuery(approval_status=ApprovalStatus.APPROVED, overall_status_in=[status]),
            limit=limit
        )
        listing = []
        for tool in tools:
            metadata = tool.sync_metadata
            listing.append({
                "id": tool.id,
                "name": tool.name,
                "overall_status": metadata.overall_status.value,
                "max_retry_count": metadata.max_retry_count,
                "last_sync_attempt_at": (
                    metadata.last_sync_attempt_at.isoformat() if metadata.last_sync_attempt_at else None
                ),
                "collections": {
                    collection.value: {
                        "status": s.status.value,
                        "retry_count": s.retry_count,
                        "error_code": s.error_code.value if s.error_code else None,
                        "last_error": s.last_error
                    }
                    for collection, s in metadata.collections.items()
                }
            })
        return listing
