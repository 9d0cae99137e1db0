"""
Field-level change detection for catalog updates.

Compares a tool's stored values with a proposed update and maps the changed
fields onto the collections that have to be re-indexed.
"""

import logging
from typing import Any, Dict, List, Literal, Mapping, Union

from pydantic import BaseModel
from pydantic.alias_generators import to_snake

from ..models.sync import SyncCollection
from .fields import (
    ALL_SEMANTIC_FIELDS, BOOKKEEPING_FIELDS, COLLECTION_FIELDS, METADATA_ONLY_FIELDS
)
from .hasher import ToolLike, normalize_value, read_field

logger = logging.getLogger(__name__)

ChangeKind = Literal["semantic", "none"]


def _as_mapping(source: Union[BaseModel, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(source, BaseModel):
        return source.model_dump()
    return source


def field_name_for(key: str) -> str:
    """Field name for a snake_case or camelCase document key"""
    if key.startswith('_'):
        return key
    return to_snake(key)


class ChangeDetector:
    """Detects changed fields and the collections they affect"""

    def detect_changed_fields(self, previous: ToolLike, proposed: ToolLike) -> List[str]:
        """
        Fields in ``proposed`` whose normalized value differs from ``previous``.

        Bookkeeping fields (ids, timestamps, sync metadata) and unknown keys
        are never reported.
        """
        changed: List[str] = []
        for key, value in _as_mapping(proposed).items():
            name = field_name_for(key)
            if name in BOOKKEEPING_FIELDS or name in changed:
                continue
            if name not in ALL_SEMANTIC_FIELDS and name not in METADATA_ONLY_FIELDS:
                continue
            if normalize_value(read_field(previous, name)) != normalize_value(value):
                changed.append(name)

        logger.debug(f"Detected changed fields: {changed}")
        return changed

    def get_affected_collections(self, changed_fields: List[str]) -> List[SyncCollection]:
        """Collections owning at least one changed field, each listed once"""
        changed = set(changed_fields)
        return [
            collection for collection in SyncCollection
            if changed.intersection(COLLECTION_FIELDS[collection])
        ]

    def is_metadata_only_change(self, changed_fields: List[str]) -> bool:
        """True when no changed field is embedded by any collection"""
        return not any(name in ALL_SEMANTIC_FIELDS for name in changed_fields)

    def has_semantic_changes(self, changed_fields: List[str]) -> bool:
        if not changed_fields:
            return False
        return not self.is_metadata_only_change(changed_fields)

    def classify_changes(self, previous: ToolLike, proposed: ToolLike) -> Dict[SyncCollection, ChangeKind]:
        """Per-collection classification of a proposed update"""
        affected = set(self.get_affected_collections(
            self.detect_changed_fields(previous, proposed)
        ))
        return {
            collection: "semantic" if collection in affected else "none"
            for collection in SyncCollection
        }
