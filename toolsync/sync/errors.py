"""
Sync error hierarchy.

Collection-level errors are recorded on the collection status with their
code; entity-level errors propagate to the caller.
"""

import asyncio
from typing import Optional

from ..models.sync import SyncErrorCode


class SyncError(Exception):
    """Base class for sync failures carrying an error code"""

    code: SyncErrorCode = SyncErrorCode.QDRANT_UPSERT_FAILED

    def __init__(self, message: str, code: Optional[SyncErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ToolNotFoundError(SyncError):
    code = SyncErrorCode.TOOL_NOT_FOUND

    def __init__(self, tool_id: str):
        super().__init__(f"Tool not found: {tool_id}")
        self.tool_id = tool_id


class InvalidToolDataError(SyncError):
    code = SyncErrorCode.INVALID_TOOL_DATA


class ContentGenerationError(SyncError):
    code = SyncErrorCode.CONTENT_GENERATION_FAILED


class EmbeddingError(SyncError):
    code = SyncErrorCode.EMBEDDING_FAILED


class VectorIndexError(SyncError):
    code = SyncErrorCode.QDRANT_UPSERT_FAILED


class StoreUpdateError(SyncError):
    code = SyncErrorCode.MONGODB_UPDATE_FAILED


_RETRYABLE_MARKERS = ("timeout", "timed out", "rate limit", "too many requests", "connection", "unavailable")


def is_retryable(error: BaseException) -> bool:
    """Transient errors worth retrying within the same sync call"""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    cause = error.__cause__
    if cause is not None and cause is not error and is_retryable(cause):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


__all__ = [
    "SyncErrorCode",
    "SyncError",
    "ToolNotFoundError",
    "InvalidToolDataError",
    "ContentGenerationError",
    "EmbeddingError",
    "VectorIndexError",
    "StoreUpdateError",
    "is_retryable",
]
