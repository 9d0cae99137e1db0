"""
Primary tool store.

The sync engine reads tools and writes their sync metadata through ToolStore.
Partial updates are SyncMetadataPatch objects applied to one document at a
time under the store lock, so concurrent writers never lose each other's
fields.
"""

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from ..models.sync import SyncCollection, SyncMetadataPatch, SyncStatus
from ..models.tool import ApprovalStatus, Tool

logger = logging.getLogger(__name__)


@dataclass
class ToolQuery:
    """Filter for store scans; unset criteria match everything"""
    approval_status: Optional[ApprovalStatus] = None
    overall_status_in: Optional[Sequence[SyncStatus]] = None
    # Matches when the overall status or any collection status is in the set
    any_status_in: Optional[Sequence[SyncStatus]] = None

    def matches(self, tool: Tool) -> bool:
        if self.approval_status is not None and tool.approval_status != self.approval_status:
            return False

        metadata = tool.sync_metadata
        if self.overall_status_in is not None and metadata.overall_status not in self.overall_status_in:
            return False

        if self.any_status_in is not None:
            statuses = {metadata.overall_status}
            statuses.update(status.status for status in metadata.collections.values())
            if not statuses.intersection(self.any_status_in):
                return False

        return True


class ToolStore(ABC):
    """Query and update interface over the primary tool records"""

    @abstractmethod
    async def insert(self, tool: Tool) -> Tool:
        pass

    @abstractmethod
    async def find_by_id(self, tool_id: str) -> Optional[Tool]:
        pass

    @abstractmethod
    async def find_by_slug(self, slug: str) -> Optional[Tool]:
        pass

    @abstractmethod
    async def update_fields(self, tool_id: str, patch: SyncMetadataPatch) -> Optional[Tool]:
        """
        Apply a patch atomically; returns the updated tool or None if missing.

        When the patch asks for it, the overall status is re-derived from the
        patched collection statuses before the write.
        """
        pass

    @abstractmethod
    async def replace(self, tool: Tool) -> bool:
        pass

    @abstractmethod
    async def delete(self, tool_id: str) -> bool:
        pass

    @abstractmethod
    async def find_many(self, query: Optional[ToolQuery] = None, limit: Optional[int] = None) -> List[Tool]:
        """Matching tools, least recently updated sync metadata first"""
        pass

    async def find_by_id_or_slug(self, key: str) -> Optional[Tool]:
        tool = await self.find_by_id(key)
        if tool is None:
            tool = await self.find_by_slug(key)
        return tool

    async def count(self, query: Optional[ToolQuery] = None) -> int:
        return len(await self.find_many(query))

    async def count_by_status(self, query: Optional[ToolQuery] = None) -> Dict[str, Any]:
        """Overall and per-collection status counts over matching tools"""
        overall = {status.value: 0 for status in SyncStatus}
        collections = {
            collection.value: {status.value: 0 for status in SyncStatus}
            for collection in SyncCollection
        }

        tools = await self.find_many(query)
        for tool in tools:
            metadata = tool.sync_metadata
            overall[metadata.overall_status.value] += 1
            for collection, status in metadata.collections.items():
                collections[collection.value][status.status.value] += 1

        return {"total": len(tools), "overall": overall, "collections": collections}


class InMemoryToolStore(ToolStore):
    """Dictionary-backed store holding JSON documents"""

    def __init__(self, tools: Optional[Sequence[Union[Tool, Dict[str, Any]]]] = None):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

        for item in tools or []:
            tool = item if isinstance(item, Tool) else Tool.model_validate(item)
            self._documents[tool.id] = tool.to_document()

    def __len__(self) -> int:
        return len(self._documents)

    def _load(self, document: Dict[str, Any]) -> Tool:
        return Tool.model_validate(copy.deepcopy(document))

    async def _persist(self) -> None:
        """Hook for durable subclasses"""

    async def insert(self, tool: Tool) -> Tool:
        async with self._lock:
            if tool.id in self._documents:
                raise ValueError(f"Tool already exists: {tool.id}")
            self._documents[tool.id] = tool.to_document()
            await self._persist()
        logger.debug(f"Inserted tool {tool.id}")
        return tool

    async def find_by_id(self, tool_id: str) -> Optional[Tool]:
        document = self._documents.get(tool_id)
        return self._load(document) if document is not None else None

    async def find_by_slug(self, slug: str) -> Optional[Tool]:
        for document in self._documents.values():
            if document.get('slug') == slug:
                return self._load(document)
        return None

    async def update_fields(self, tool_id: str, patch: SyncMetadataPatch) -> Optional[Tool]:
        async with self._lock:
            document = self._documents.get(tool_id)
            if document is None:
                return None

            updated = patch.apply(copy.deepcopy(document))
            tool = Tool.model_validate(updated)
            if patch.derive_overall:
                metadata = tool.sync_metadata
                metadata = metadata.model_copy(update={'overall_status': metadata.derive_overall_status()})
                tool = tool.model_copy(update={'sync_metadata': metadata})
            self._documents[tool_id] = tool.to_document()
            await self._persist()

        logger.debug(f"Applied {patch!r} to tool {tool_id}")
        return tool

    async def replace(self, tool: Tool) -> bool:
        async with self._lock:
            if tool.id not in self._documents:
                return False
            self._documents[tool.id] = tool.to_document()
            await self._persist()
        return True

    async def delete(self, tool_id: str) -> bool:
        async with self._lock:
            if self._documents.pop(tool_id, None) is None:
                return False
            await self._persist()
        return True

    async def find_many(self, query: Optional[ToolQuery] = None, limit: Optional[int] = None) -> List[Tool]:
        tools = [self._load(document) for document in list(self._documents.values())]
        if query is not None:
            tools = [tool for tool in tools if query.matches(tool)]
        tools.sort(key=lambda tool: tool.sync_metadata.updated_at)
        if limit is not None:
            tools = tools[:limit]
        return tools


class JsonFileToolStore(InMemoryToolStore):
    """In-memory store persisted to a JSON file after every write"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(self._read_file(self.path))
        logger.info(f"Loaded {len(self)} tools from {self.path}")

    @staticmethod
    def _read_file(path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if isinstance(data, dict):
            data = data.get('tools', [])
        if not isinstance(data, list):
            raise ValueError(f"Catalog file must hold a list of tools: {path}")
        return data

    def _write_file(self, documents: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump({"tools": documents}, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)

    async def _persist(self) -> None:
        documents = copy.deepcopy(list(self._documents.values()))
        await asyncio.to_thread(self._write_file, documents)
