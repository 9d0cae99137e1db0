"""
Data models for toolsync

Pydantic models for catalog tools, sync state, storage results and configuration.
"""

from .tool import Tool, PricingTier, ApprovalStatus, ToolStatus
from .sync import (
    SyncStatus, SyncCollection, CollectionSyncStatus, SyncMetadata,
    SyncErrorCode, SyncMetadataPatch, CollectionSyncResult, SyncResult, SweepResult, SweepError,
    default_sync_metadata
)
from .storage import StorageResult
from .config import QdrantConfig, EmbeddingConfig, OrchestratorConfig, SyncConfig, GlobalSettings

__all__ = [
    # Catalog
    "Tool",
    "PricingTier",
    "ApprovalStatus",
    "ToolStatus",
    
    # Sync state
    "SyncStatus",
    "SyncCollection",
    "CollectionSyncStatus",
    "SyncMetadata",
    "SyncErrorCode",
    "SyncMetadataPatch",
    "CollectionSyncResult",
    "SyncResult",
    "SweepResult",
    "SweepError",
    "default_sync_metadata",
    
    # Storage
    "StorageResult",
    
    # Configuration
    "QdrantConfig",
    "EmbeddingConfig",
    "OrchestratorConfig",
    "SyncConfig",
    "GlobalSettings"
]
