"""
Static field ownership table for the search collections.

Each collection owns a fixed list of tool fields and a vector type that picks
its embedding profile. Fields not owned by any collection are either
metadata-only (stored in payloads, never embedded) or bookkeeping (never
considered a change).
"""

from typing import Dict, FrozenSet, List, Tuple

from ..models.sync import SyncCollection


COLLECTION_FIELDS: Dict[SyncCollection, Tuple[str, ...]] = {
    SyncCollection.TOOLS: ("name", "description", "long_description", "tagline"),
    SyncCollection.FUNCTIONALITY: ("functionality", "categories"),
    SyncCollection.USECASES: ("industries", "user_types", "deployment"),
    SyncCollection.INTERFACE: ("interface", "pricing_model", "status"),
}

COLLECTION_VECTOR_TYPES: Dict[SyncCollection, str] = {
    SyncCollection.TOOLS: "semantic",
    SyncCollection.FUNCTIONALITY: "entities_functionality",
    SyncCollection.USECASES: "entities_industries",
    SyncCollection.INTERFACE: "entities_interface",
}

METADATA_ONLY_FIELDS: FrozenSet[str] = frozenset({
    "pricing",
    "pricing_url",
    "website",
    "documentation",
    "logo_url",
    "contributor",
    "slug",
    "approval_status",
    "reviewed_by",
    "reviewed_at",
    "rejection_reason",
})

BOOKKEEPING_FIELDS: FrozenSet[str] = frozenset({
    "id",
    "_id",
    "date_added",
    "last_updated",
    "created_at",
    "updated_at",
    "sync_metadata",
})

# Display fields copied into every collection payload
PAYLOAD_METADATA_FIELDS: Tuple[str, ...] = (
    "pricing", "pricing_url", "website", "documentation", "logo_url",
)


def check_collection_tables(
    field_table: Dict[SyncCollection, Tuple[str, ...]],
    vector_types: Dict[SyncCollection, str]
) -> None:
    """Raise unless every collection has both a field list and a vector type"""
    missing = [c for c in SyncCollection if c not in field_table or c not in vector_types]
    if missing:
        raise RuntimeError(f"Collections without field or vector type mapping: {missing}")


check_collection_tables(COLLECTION_FIELDS, COLLECTION_VECTOR_TYPES)

ALL_SEMANTIC_FIELDS: FrozenSet[str] = frozenset(
    name for fields in COLLECTION_FIELDS.values() for name in fields
)

FIELD_TO_COLLECTIONS: Dict[str, Tuple[SyncCollection, ...]] = {
    name: tuple(c for c in SyncCollection if name in COLLECTION_FIELDS[c])
    for name in ALL_SEMANTIC_FIELDS
}


def get_collection_fields(collection: SyncCollection) -> List[str]:
    return list(COLLECTION_FIELDS[collection])


def get_vector_type(collection: SyncCollection) -> str:
    return COLLECTION_VECTOR_TYPES[collection]


def is_semantic_field(field_name: str) -> bool:
    return field_name in ALL_SEMANTIC_FIELDS
