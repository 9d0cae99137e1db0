"""
Qdrant collection schemas for the sync collections.

Every sync collection maps to one Qdrant collection holding a single named
vector (its vector type) plus keyword/text payload indexes used for filtering.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

from ..models.config import QdrantConfig
from ..models.sync import SyncCollection
from ..sync.fields import COLLECTION_FIELDS, get_vector_type


class DistanceMetric(Enum):
    """Distance metrics for vector similarity"""
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"
    DOT_PRODUCT = "dot"


@dataclass
class IndexConfig:
    """Configuration for payload field indexing"""
    field_name: str
    field_type: str  # text, keyword, integer, float, bool


@dataclass
class CollectionSchema:
    """Physical layout of one sync collection"""
    name: str
    collection: SyncCollection
    vector_name: str
    vector_size: int = 384
    distance_metric: DistanceMetric = DistanceMetric.COSINE
    on_disk_payload: bool = False
    payload_indexes: List[IndexConfig] = field(default_factory=list)


# Payload fields indexed in every collection
_COMMON_INDEXES = [
    IndexConfig("tool_id", "keyword"),
    IndexConfig("slug", "keyword"),
    IndexConfig("status", "keyword"),
    IndexConfig("approval_status", "keyword"),
    IndexConfig("name", "text"),
]

# Free-text fields; everything else owned by a collection is a keyword list
_TEXT_FIELDS = {"name", "description", "long_description", "tagline"}


def build_collection_schema(config: QdrantConfig, collection: SyncCollection) -> CollectionSchema:
    indexes = list(_COMMON_INDEXES)
    known = {index.field_name for index in indexes}
    for field_name in COLLECTION_FIELDS[collection]:
        if field_name in known:
            continue
        field_type = "text" if field_name in _TEXT_FIELDS else "keyword"
        indexes.append(IndexConfig(field_name, field_type))

    return CollectionSchema(
        name=config.get_collection_name(collection.value),
        collection=collection,
        vector_name=get_vector_type(collection),
        vector_size=config.vector_size,
        distance_metric=DistanceMetric(config.distance_metric),
        on_disk_payload=config.on_disk_payload,
        payload_indexes=indexes
    )


def build_collection_schemas(config: QdrantConfig) -> Dict[SyncCollection, CollectionSchema]:
    """Schemas for all sync collections"""
    return {collection: build_collection_schema(config, collection) for collection in SyncCollection}
