"""
Configuration models for toolsync.

Handles Qdrant, embedding, orchestrator and worker settings.
"""

from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QdrantConfig(BaseModel):
    """Qdrant vector database configuration"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    # Connection settings
    url: str = "http://localhost:6333"
    api_key: Optional[str] = None
    timeout: float = 30.0

    # Collection settings
    collection_prefix: str = ""
    vector_size: int = Field(default=384, ge=1)
    distance_metric: str = "cosine"
    on_disk_payload: bool = False

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Qdrant URL format"""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('Qdrant URL must start with http:// or https://')
        return v.rstrip('/')

    @field_validator('distance_metric')
    @classmethod
    def validate_distance_metric(cls, v: str) -> str:
        """Validate distance metric"""
        valid_metrics = {'cosine', 'euclidean', 'dot'}
        if v.lower() not in valid_metrics:
            raise ValueError(f'Distance metric must be one of: {valid_metrics}')
        return v.lower()

    def get_collection_name(self, collection: str) -> str:
        """Physical Qdrant collection name for a sync collection"""
        if not self.collection_prefix:
            return collection
        return f"{self.collection_prefix}-{collection}"


class EmbeddingConfig(BaseModel):
    """Sentence embedding model configuration"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimensions: int = Field(default=384, ge=1)
    device: Optional[str] = None  # Auto-detect if None
    batch_size: int = Field(default=32, ge=1, le=256)
    max_length: int = Field(default=512, ge=1, le=8192)
    normalize_embeddings: bool = True
    cache_dir: Optional[Path] = None


class OrchestratorConfig(BaseModel):
    """Retry and timeout policy for per-collection sync calls"""
    model_config = ConfigDict(validate_assignment=True)

    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_delay_ms: int = Field(default=500, ge=0)
    embed_timeout: float = Field(default=30.0, gt=0)
    index_timeout: float = Field(default=30.0, gt=0)
    store_timeout: float = Field(default=10.0, gt=0)


class SyncConfig(BaseModel):
    """Complete runtime configuration"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)

    # Sync worker knobs, see SyncWorkerConfig
    worker: Dict[str, Any] = Field(default_factory=dict)

    # Primary store
    catalog_path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return self.model_dump(mode='json')


class GlobalSettings(BaseSettings):
    """Process-wide settings with environment variable support"""
    model_config = SettingsConfigDict(
        env_prefix="TOOLSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Logging
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_to_file: bool = False
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".toolsync" / "logs")

    # Default locations
    config_file: Optional[Path] = None
    catalog_path: Optional[Path] = None

    def get_log_file(self) -> Optional[Path]:
        """Get log file path if logging to file is enabled"""
        if not self.log_to_file:
            return None
        self.log_dir.mkdir(parents=True, exist_ok=True)
        return self.log_dir / "toolsync.log"
