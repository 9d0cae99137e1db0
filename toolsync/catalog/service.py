"""
Catalog management service.

Creates, edits, moderates and deletes catalog tools, keeps their sync
metadata in step with each change, and hands indexing to fire-and-forget
sync triggers so callers never wait on embeddings or the vector index.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..models.sync import SyncCollection, SyncMetadataPatch, SyncStatus, default_sync_metadata
from ..models.tool import ApprovalStatus, Tool
from ..storage.store import ToolQuery, ToolStore
from ..sync.detector import ChangeDetector, field_name_for
from ..sync.errors import InvalidToolDataError, ToolNotFoundError
from ..sync.fields import ALL_SEMANTIC_FIELDS, BOOKKEEPING_FIELDS, METADATA_ONLY_FIELDS
from ..sync.triggers import SyncTriggers

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ALL_SEMANTIC_FIELDS | METADATA_ONLY_FIELDS


class CatalogService:
    """Tool CRUD and moderation wired to background sync"""

    def __init__(
        self,
        store: ToolStore,
        triggers: Optional[SyncTriggers] = None,
        detector: Optional[ChangeDetector] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.store = store
        self.triggers = triggers
        self.detector = detector or ChangeDetector()
        self.clock = clock

    async def get_tool(self, tool_id: str) -> Tool:
        tool = await self.store.find_by_id_or_slug(tool_id)
        if tool is None:
            raise ToolNotFoundError(tool_id)
        return tool

    async def create_tool(self, data: Mapping) -> Tool:
        """
        Validate and insert a new tool with all collections pending.

        Approved tools are indexed right away in the background.
        """
        now = self.clock()
        document = {k: v for k, v in dict(data).items() if field_name_for(k) not in BOOKKEEPING_FIELDS}
        document['id'] = data.get('id')
        try:
            tool = Tool.model_validate(document)
        except ValidationError as e:
            raise InvalidToolDataError(f"Invalid tool data: {e}") from e

        tool = tool.model_copy(update={
            'created_at': now,
            'updated_at': now,
            'date_added': now,
            'last_updated': now,
            'sync_metadata': default_sync_metadata(now)
        })
        await self.store.insert(tool)
        logger.info(f"Created tool {tool.id} ({tool.approval_status.value})")

        if tool.is_approved and self.triggers:
            self.triggers.on_created(tool)
        return tool

    async def update_tool(self, tool_id: str, changes: Mapping) -> Tool:
        """
        Apply field changes to a tool.

        Semantic changes mark the affected collections and the overall status
        stale. Approved tools are re-indexed in the background, metadata-only
        changes through a payload rewrite.
        """
        tool = await self.get_tool(tool_id)

        merged = tool.model_dump()
        editable: List[str] = []
        for key, value in changes.items():
            name = field_name_for(key)
            if name in EDITABLE_FIELDS and name not in editable:
                merged[name] = value
                editable.append(name)
        try:
            candidate = Tool.model_validate(merged)
        except ValidationError as e:
            raise InvalidToolDataError(f"Invalid tool update: {e}") from e

        # Stored values follow the edit exactly; normalized comparison only
        # decides which collections go stale
        written = [name for name in editable if getattr(candidate, name) != getattr(tool, name)]
        if not written:
            logger.debug(f"Update of {tool.id} changed nothing")
            return tool
        changed_fields = [f for f in self.detector.detect_changed_fields(tool, changes) if f in written]

        now = self.clock()
        patch = SyncMetadataPatch()
        for name in written:
            patch.set(name, getattr(candidate, name))
        patch.set('updated_at', now).set('last_updated', now)
        patch.set(f"{SyncMetadataPatch.ROOT}.last_modified_fields", written)

        affected = self.detector.get_affected_collections(changed_fields)
        for collection in affected:
            patch.set_collection(collection, status=SyncStatus.STALE)
        if affected:
            patch.set_overall(SyncStatus.STALE)
        patch.touch(now)

        updated = await self.store.update_fields(tool.id, patch)
        if updated is None:
            raise ToolNotFoundError(tool.id)

        logger.info(
            f"Updated tool {tool.id}: {written} "
            f"(stale: {[c.value for c in affected] or 'none'})"
        )

        if updated.is_approved and self.triggers:
            if changed_fields:
                self.triggers.on_updated(updated, changed_fields)
            else:
                # Case or whitespace edits keep every hash; only payloads change
                self.triggers.on_payload_changed(updated)
        return updated

    async def approve_tool(self, tool_id: str, reviewer: Optional[str] = None) -> Tool:
        """Approve a tool and queue a full sync"""
        tool = await self.get_tool(tool_id)
        now = self.clock()

        patch = SyncMetadataPatch()
        patch.set('approval_status', ApprovalStatus.APPROVED)
        patch.set('reviewed_by', reviewer).set('reviewed_at', now)
        patch.set('rejection_reason', None).set('updated_at', now)
        patch.set_overall(SyncStatus.PENDING)
        for collection in SyncCollection:
            patch.set_collection(collection, status=SyncStatus.PENDING)
        patch.touch(now)

        updated = await self.store.update_fields(tool.id, patch)
        if updated is None:
            raise ToolNotFoundError(tool.id)

        logger.info(f"Approved tool {tool.id}")
        if self.triggers:
            self.triggers.on_approved(updated)
        return updated

    async def reject_tool(self, tool_id: str, reason: str, reviewer: Optional[str] = None) -> Tool:
        """Reject a tool and remove it from the search collections"""
        tool = await self.get_tool(tool_id)
        now = self.clock()

        patch = SyncMetadataPatch()
        patch.set('approval_status', ApprovalStatus.REJECTED)
        patch.set('rejection_reason', reason)
        patch.set('reviewed_by', reviewer).set('reviewed_at', now).set('updated_at', now)

        updated = await self.store.update_fields(tool.id, patch)
        if updated is None:
            raise ToolNotFoundError(tool.id)

        logger.info(f"Rejected tool {tool.id}: {reason}")
        if self.triggers:
            self.triggers.on_rejected(tool.id)
        return updated

    async def delete_tool(self, tool_id: str) -> bool:
        tool = await self.get_tool(tool_id)
        deleted = await self.store.delete(tool.id)
        if deleted:
            logger.info(f"Deleted tool {tool.id}")
            if self.triggers:
                self.triggers.on_deleted(tool.id)
        return deleted

    async def list_tools(self, approval_status: Optional[ApprovalStatus] = None) -> List[Tool]:
        return await self.store.find_many(ToolQuery(approval_status=approval_status))

    def validate_update(self, tool: Tool, changes: Mapping) -> Dict[str, Any]:
        """Preview of what an update would touch"""
        changed_fields = self.detector.detect_changed_fields(tool, changes)
        return {
            "changed_fields": changed_fields,
            "affected_collections": [c.value for c in self.detector.get_affected_collections(changed_fields)],
            "metadata_only": self.detector.is_metadata_only_change(changed_fields)
        }
