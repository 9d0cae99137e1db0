"""
Fire-and-forget sync triggers for catalog mutations.

Catalog writes must not wait for indexing: each trigger spawns a detached
task whose outcome is visible only through the tool's sync metadata and the
logs. Exceptions never reach the caller.
"""

import asyncio
import logging
from typing import Awaitable, List, Optional, Set

from ..models.sync import SyncResult
from ..models.tool import Tool
from .orchestrator import ToolSyncOrchestrator

logger = logging.getLogger(__name__)


class SyncTriggers:
    """Spawns background orchestrator calls for catalog events"""

    def __init__(self, orchestrator: ToolSyncOrchestrator):
        self.orchestrator = orchestrator
        # Strong references keep pending tasks from being garbage collected
        self._tasks: Set[asyncio.Task] = set()
        self.completed_count = 0
        self.failed_count = 0

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def on_created(self, tool: Tool) -> Optional[asyncio.Task]:
        return self._spawn(f"create:{tool.id}", self.orchestrator.sync_entity(tool, force=True))

    def on_approved(self, tool: Tool) -> Optional[asyncio.Task]:
        return self._spawn(f"approve:{tool.id}", self.orchestrator.sync_entity(tool, force=True))

    def on_updated(self, tool: Tool, changed_fields: List[str]) -> Optional[asyncio.Task]:
        return self._spawn(
            f"update:{tool.id}",
            self.orchestrator.sync_affected_collections(tool, list(changed_fields))
        )

    def on_payload_changed(self, tool: Tool) -> Optional[asyncio.Task]:
        return self._spawn(f"payload:{tool.id}", self.orchestrator.update_payload_only(tool))

    def on_rejected(self, tool_id: str) -> Optional[asyncio.Task]:
        return self._spawn(f"reject:{tool_id}", self.orchestrator.delete_entity(tool_id))

    def on_deleted(self, tool_id: str) -> Optional[asyncio.Task]:
        return self._spawn(f"delete:{tool_id}", self.orchestrator.delete_entity(tool_id))

    def _spawn(self, label: str, coro: Awaitable[SyncResult]) -> Optional[asyncio.Task]:
        runner = self._run(label, coro)
        try:
            task = asyncio.create_task(runner, name=f"sync-trigger-{label}")
        except RuntimeError as e:
            # No running loop; the worker sweep will pick the tool up
            runner.close()
            coro.close()
            logger.warning(f"Could not schedule sync for {label}: {e}")
            return None

        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, label: str, coro: Awaitable[SyncResult]) -> None:
        try:
            result = await coro
        except asyncio.CancelledError:
            logger.debug(f"Background sync {label} cancelled")
            raise
        except Exception as e:
            self.failed_count += 1
            logger.error(f"Background sync {label} failed: {e}", exc_info=True)
            return

        if result.success:
            self.completed_count += 1
            logger.info(f"Background sync {label} completed ({result.synced_count} collections)")
        else:
            self.failed_count += 1
            logger.warning(
                f"Background sync {label} finished with {result.failed_count} failed collections"
            )

    async def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Wait for all outstanding background syncs"""
        while self._tasks:
            await asyncio.wait(list(self._tasks), timeout=timeout)
            if timeout is not None:
                break

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
