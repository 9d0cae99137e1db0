"""
Storage package for toolsync.

Primary tool store adapters and the Qdrant vector index client.
"""

from .store import ToolStore, ToolQuery, InMemoryToolStore, JsonFileToolStore
from .client import VectorIndexClient
from .schemas import CollectionSchema, DistanceMetric, build_collection_schemas
from .utils import tool_id_to_point_id

__all__ = [
    "ToolStore",
    "ToolQuery",
    "InMemoryToolStore",
    "JsonFileToolStore",
    "VectorIndexClient",
    "CollectionSchema",
    "DistanceMetric",
    "build_collection_schemas",
    "tool_id_to_point_id"
]
