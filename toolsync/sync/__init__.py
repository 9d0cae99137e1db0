"""
Synchronization engine for toolsync.

Change detection, content hashing, the per-collection sync orchestrator and
the background sync worker.
"""

from .fields import COLLECTION_FIELDS, COLLECTION_VECTOR_TYPES, METADATA_ONLY_FIELDS, BOOKKEEPING_FIELDS
from .hasher import CollectionHasher
from .detector import ChangeDetector
from .content import ContentGeneratorFactory
from .errors import (
    SyncError, ToolNotFoundError, InvalidToolDataError, ContentGenerationError,
    EmbeddingError, VectorIndexError, StoreUpdateError
)
from .orchestrator import ToolSyncOrchestrator
from .worker import SyncWorker, SyncWorkerConfig
from .triggers import SyncTriggers

__all__ = [
    # Collection table
    "COLLECTION_FIELDS",
    "COLLECTION_VECTOR_TYPES",
    "METADATA_ONLY_FIELDS",
    "BOOKKEEPING_FIELDS",
    
    # Components
    "CollectionHasher",
    "ChangeDetector",
    "ContentGeneratorFactory",
    "ToolSyncOrchestrator",
    "SyncWorker",
    "SyncWorkerConfig",
    "SyncTriggers",
    
    # Errors
    "SyncError",
    "ToolNotFoundError",
    "InvalidToolDataError",
    "ContentGenerationError",
    "EmbeddingError",
    "VectorIndexError",
    "StoreUpdateError"
]
