"""
Default configuration values for toolsync.

Centralized defaults that can be overridden by a JSON config file or
environment variables.
"""

from typing import Any, Dict
import copy

# Global default settings
DEFAULT_SETTINGS: Dict[str, Any] = {
    # Qdrant configuration
    "qdrant": {
        "url": "http://localhost:6333",
        "api_key": None,
        "timeout": 30.0,
        "collection_prefix": "",
        "vector_size": 384,
        "distance_metric": "cosine",
        "on_disk_payload": False
    },
    
    # Sentence embeddings
    "embedding": {
        "model_name": "sentence-transformers/all-MiniLM-L6-v2",
        "dimensions": 384,
        "device": None,  # Auto-detect
        "batch_size": 32,
        "max_length": 512,
        "normalize_embeddings": True
    },
    
    # Per-collection sync calls
    "orchestrator": {
        "max_attempts": 3,
        "retry_delay_ms": 500,
        "embed_timeout": 30.0,
        "index_timeout": 30.0,
        "store_timeout": 10.0
    },
    
    # Background sync worker
    "worker": {
        "sweep_interval_ms": 60000,
        "batch_size": 50,
        "max_retries": 5,
        "base_backoff_delay_ms": 60000,
        "max_backoff_delay_ms": 3600000,
        "enabled": True,
        "initial_delay_ms": 5000,
        "concurrency": 1
    },
    
    # Primary store
    "catalog_path": None
}

# Environment variable mappings
ENV_VAR_MAPPING = {
    'TOOLSYNC_QDRANT_URL': 'qdrant.url',
    'TOOLSYNC_QDRANT_API_KEY': 'qdrant.api_key',
    'TOOLSYNC_QDRANT_TIMEOUT': 'qdrant.timeout',
    'TOOLSYNC_COLLECTION_PREFIX': 'qdrant.collection_prefix',
    'TOOLSYNC_VECTOR_SIZE': 'qdrant.vector_size',
    'TOOLSYNC_EMBEDDING_MODEL': 'embedding.model_name',
    'TOOLSYNC_EMBEDDING_DIMENSIONS': 'embedding.dimensions',
    'TOOLSYNC_EMBEDDING_DEVICE': 'embedding.device',
    'TOOLSYNC_MAX_ATTEMPTS': 'orchestrator.max_attempts',
    'TOOLSYNC_RETRY_DELAY_MS': 'orchestrator.retry_delay_ms',
    'TOOLSYNC_CATALOG_PATH': 'catalog_path',
    'SYNC_WORKER_INTERVAL_MS': 'worker.sweep_interval_ms',
    'SYNC_WORKER_BATCH_SIZE': 'worker.batch_size',
    'SYNC_WORKER_MAX_RETRIES': 'worker.max_retries',
    'SYNC_WORKER_BASE_BACKOFF_MS': 'worker.base_backoff_delay_ms',
    'SYNC_WORKER_MAX_BACKOFF_MS': 'worker.max_backoff_delay_ms',
    'SYNC_WORKER_ENABLED': 'worker.enabled'
}

# Keys whose env values stay strings even when they look numeric or boolean
STRING_KEYS = {'qdrant.api_key', 'qdrant.collection_prefix', 'embedding.model_name', 'catalog_path'}


def get_default_config() -> Dict[str, Any]:
    """Deep copy of the default settings"""
    return copy.deepcopy(DEFAULT_SETTINGS)
