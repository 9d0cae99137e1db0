"""
toolsync core package

Keeps a curated tool catalog in step with its derived vector search collections.
"""

__version__ = "1.0.0"

from .models import Tool, SyncCollection, SyncStatus, SyncMetadata, SyncResult, StorageResult

__all__ = [
    "Tool",
    "SyncCollection",
    "SyncStatus",
    "SyncMetadata",
    "SyncResult",
    "StorageResult"
]
