"""
Storage result model for vector index operations.

Vector index calls report failures through StorageResult instead of raising.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class StorageResult(BaseModel):
    """Result of a vector index operation"""

    # Operation details
    operation: str
    collection_name: str
    success: bool

    # Performance metrics
    processing_time_ms: float
    affected_count: int = 0

    # Error handling
    error: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    warnings: List[str] = Field(default_factory=list)

    # Timestamps
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @field_validator('operation')
    @classmethod
    def validate_operation(cls, v: str) -> str:
        """Validate operation type"""
        valid_ops = {
            'upsert', 'update_payload', 'delete',
            'create_collection', 'health_check'
        }
        if v.lower() not in valid_ops:
            raise ValueError(f'Invalid operation: {v}')
        return v.lower()

    @field_validator('collection_name')
    @classmethod
    def validate_collection_name(cls, v: str) -> str:
        """Validate collection name format"""
        if not v or not v.replace('-', '').replace('_', '').isalnum():
            raise ValueError('Collection name must be alphanumeric with dashes/underscores')
        return v.lower()

    def mark_completed(self) -> None:
        """Mark operation as completed"""
        self.completed_at = datetime.now()

    @classmethod
    def successful(
        cls,
        operation: str,
        collection_name: str,
        count: int,
        processing_time_ms: float
    ) -> 'StorageResult':
        """Create successful result"""
        return cls(
            operation=operation,
            collection_name=collection_name,
            success=True,
            processing_time_ms=processing_time_ms,
            affected_count=count,
            completed_at=datetime.now()
        )

    @classmethod
    def failed_operation(
        cls,
        operation: str,
        collection_name: str,
        error: str,
        processing_time_ms: float,
        error_details: Optional[Dict[str, Any]] = None
    ) -> 'StorageResult':
        """Create failed operation result"""
        return cls(
            operation=operation,
            collection_name=collection_name,
            success=False,
            processing_time_ms=processing_time_ms,
            error=error,
            error_details=error_details
        )
