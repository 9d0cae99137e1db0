"""
Sync state models.

Every tool carries one SyncMetadata record holding an overall status and
exactly one CollectionSyncStatus per search collection. Partial updates to
that record go through SyncMetadataPatch so stores can apply them atomically.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import to_jsonable_python


MAX_ERROR_LENGTH = 1000


class SyncStatus(str, Enum):
    """Sync state of a tool or of one of its collections"""
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    STALE = "stale"


class SyncCollection(str, Enum):
    """Derived vector search collections every tool is indexed into"""
    TOOLS = "tools"
    FUNCTIONALITY = "functionality"
    USECASES = "usecases"
    INTERFACE = "interface"


class SyncErrorCode(str, Enum):
    """Error codes recorded on collection statuses and results"""
    EMBEDDING_FAILED = "EMBEDDING_FAILED"
    QDRANT_UPSERT_FAILED = "QDRANT_UPSERT_FAILED"
    QDRANT_DELETE_FAILED = "QDRANT_DELETE_FAILED"
    CONTENT_GENERATION_FAILED = "CONTENT_GENERATION_FAILED"
    MONGODB_UPDATE_FAILED = "MONGODB_UPDATE_FAILED"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    INVALID_TOOL_DATA = "INVALID_TOOL_DATA"


# Statuses the worker picks up
NEEDS_SYNC_STATUSES = (SyncStatus.PENDING, SyncStatus.FAILED, SyncStatus.STALE)

# Worst status wins when deriving the overall status
_STATUS_SEVERITY = {
    SyncStatus.SYNCED: 0,
    SyncStatus.PENDING: 1,
    SyncStatus.STALE: 2,
    SyncStatus.FAILED: 3,
}


def _truncate_error(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value[:MAX_ERROR_LENGTH]


class CollectionSyncStatus(BaseModel):
    """Sync state of one tool in one collection"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: SyncStatus = SyncStatus.PENDING
    last_synced_at: Optional[datetime] = None
    last_sync_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    error_code: Optional[SyncErrorCode] = None
    retry_count: int = Field(default=0, ge=0)
    content_hash: Optional[str] = None
    vector_version: int = Field(default=0, ge=0)

    @field_validator('last_error')
    @classmethod
    def truncate_error(cls, v: Optional[str]) -> Optional[str]:
        return _truncate_error(v)

    @property
    def needs_sync(self) -> bool:
        return self.status in NEEDS_SYNC_STATUSES


class SyncMetadata(BaseModel):
    """Overall and per-collection sync state of a tool"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    overall_status: SyncStatus = SyncStatus.PENDING
    collections: Dict[SyncCollection, CollectionSyncStatus] = Field(default_factory=dict)
    last_modified_fields: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode='after')
    def fill_missing_collections(self) -> 'SyncMetadata':
        """Every collection always has a status entry"""
        for collection in SyncCollection:
            if collection not in self.collections:
                self.collections[collection] = CollectionSyncStatus()
        return self

    def get(self, collection: SyncCollection) -> CollectionSyncStatus:
        return self.collections[collection]

    def collections_with_status(self, statuses: Iterable[SyncStatus]) -> List[SyncCollection]:
        """Collections whose status is one of statuses, in declaration order"""
        wanted = set(statuses)
        return [c for c in SyncCollection if self.collections[c].status in wanted]

    def collections_needing_sync(self) -> List[SyncCollection]:
        return self.collections_with_status(NEEDS_SYNC_STATUSES)

    def derive_overall_status(self) -> SyncStatus:
        """Worst of the per-collection statuses (failed > stale > pending > synced)"""
        return max(
            (status.status for status in self.collections.values()),
            key=lambda s: _STATUS_SEVERITY[s]
        )

    @property
    def max_retry_count(self) -> int:
        return max(status.retry_count for status in self.collections.values())

    @property
    def last_sync_attempt_at(self) -> Optional[datetime]:
        """Most recent attempt across all collections"""
        attempts = [
            status.last_sync_attempt_at for status in self.collections.values()
            if status.last_sync_attempt_at is not None
        ]
        return max(attempts) if attempts else None


def default_sync_metadata(now: Optional[datetime] = None) -> SyncMetadata:
    """Fresh sync metadata with every collection pending"""
    now = now or datetime.now()
    return SyncMetadata(
        overall_status=SyncStatus.PENDING,
        collections={collection: CollectionSyncStatus() for collection in SyncCollection},
        created_at=now,
        updated_at=now
    )


class SyncMetadataPatch:
    """
    Dot-path partial update of a tool document.

    Paths use field names, e.g. ``sync_metadata.collections.tools.status``.
    ``set`` assigns a value and ``inc`` adds to a numeric value; stores apply
    both to a single document in one step.
    With ``rederive_overall()`` the store also recomputes the overall status
    from the patched collection statuses inside that same step.
    """

    ROOT = "sync_metadata"

    def __init__(self):
        self.set_fields: Dict[str, Any] = {}
        self.inc_fields: Dict[str, int] = {}
        self.derive_overall = False

    def set(self, path: str, value: Any) -> 'SyncMetadataPatch':
        self.set_fields[path] = value
        return self

    def inc(self, path: str, amount: int = 1) -> 'SyncMetadataPatch':
        self.inc_fields[path] = self.inc_fields.get(path, 0) + amount
        return self

    @classmethod
    def collection_path(cls, collection: SyncCollection, field_name: str) -> str:
        return f"{cls.ROOT}.collections.{collection.value}.{field_name}"

    def set_collection(self, collection: SyncCollection, **values: Any) -> 'SyncMetadataPatch':
        """Set fields of one collection's status"""
        for field_name, value in values.items():
            if field_name == 'last_error':
                value = _truncate_error(value)
            self.set(self.collection_path(collection, field_name), value)
        return self

    def inc_collection(
        self,
        collection: SyncCollection,
        field_name: str,
        amount: int = 1
    ) -> 'SyncMetadataPatch':
        return self.inc(self.collection_path(collection, field_name), amount)

    def set_overall(self, status: SyncStatus) -> 'SyncMetadataPatch':
        return self.set(f"{self.ROOT}.overall_status", status)

    def touch(self, now: datetime) -> 'SyncMetadataPatch':
        return self.set(f"{self.ROOT}.updated_at", now)

    def rederive_overall(self) -> 'SyncMetadataPatch':
        self.derive_overall = True
        return self

    @property
    def is_empty(self) -> bool:
        return not self.set_fields and not self.inc_fields and not self.derive_overall

    def apply(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Apply the patch in place to a JSON-compatible document"""
        for path, value in self.set_fields.items():
            parent, key = self._resolve(document, path)
            parent[key] = to_jsonable_python(value)

        for path, amount in self.inc_fields.items():
            parent, key = self._resolve(document, path)
            parent[key] = (parent.get(key) or 0) + amount

        return document

    def _resolve(self, document: Dict[str, Any], path: str):
        keys = path.split('.')
        current = document
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        return current, keys[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "set": to_jsonable_python(self.set_fields),
            "inc": dict(self.inc_fields),
            "derive_overall": self.derive_overall
        }

    def __repr__(self) -> str:
        return (
            f"SyncMetadataPatch(set={list(self.set_fields)}, inc={list(self.inc_fields)}, "
            f"derive_overall={self.derive_overall})"
        )


class CollectionSyncResult(BaseModel):
    """Outcome of syncing one tool into one collection"""

    collection: SyncCollection
    success: bool
    skipped: bool = False
    error: Optional[str] = None
    error_code: Optional[SyncErrorCode] = None
    content_hash: Optional[str] = None
    duration_ms: float = 0.0

    @classmethod
    def skipped_result(cls, collection: SyncCollection, content_hash: Optional[str] = None) -> 'CollectionSyncResult':
        return cls(collection=collection, success=True, skipped=True, content_hash=content_hash)

    @classmethod
    def failed_result(
        cls,
        collection: SyncCollection,
        error: str,
        error_code: SyncErrorCode,
        duration_ms: float = 0.0
    ) -> 'CollectionSyncResult':
        return cls(
            collection=collection,
            success=False,
            error=_truncate_error(error),
            error_code=error_code,
            duration_ms=duration_ms
        )


class SyncResult(BaseModel):
    """Aggregated outcome of syncing one tool"""

    tool_id: str
    success: bool
    synced_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    collections: List[CollectionSyncResult] = Field(default_factory=list)
    total_duration_ms: float = 0.0
    error: Optional[str] = None
    error_code: Optional[SyncErrorCode] = None

    @classmethod
    def from_collections(
        cls,
        tool_id: str,
        results: List[CollectionSyncResult],
        total_duration_ms: float
    ) -> 'SyncResult':
        skipped = sum(1 for r in results if r.skipped)
        failed = sum(1 for r in results if not r.success)
        synced = len(results) - skipped - failed
        return cls(
            tool_id=tool_id,
            success=failed == 0,
            synced_count=synced,
            failed_count=failed,
            skipped_count=skipped,
            collections=results,
            total_duration_ms=total_duration_ms
        )

    def get(self, collection: SyncCollection) -> Optional[CollectionSyncResult]:
        for result in self.collections:
            if result.collection == collection:
                return result
        return None

    @property
    def failed_collections(self) -> List[SyncCollection]:
        return [r.collection for r in self.collections if not r.success]

    @property
    def attempted_collections(self) -> List[SyncCollection]:
        return [r.collection for r in self.collections if not r.skipped]


@dataclass
class SweepError:
    """Per-tool failure recorded during a sweep"""
    tool_id: str
    error: str


@dataclass
class SweepResult:
    """Summary of one sync worker pass"""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: float = 0.0
    errors: List[SweepError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration_ms": self.duration_ms,
            "errors": [{"tool_id": e.tool_id, "error": e.error} for e in self.errors]
        }
