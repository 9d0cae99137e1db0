"""
Per-collection content fingerprints.

A fingerprint covers only the fields a collection owns and is insensitive to
string case, surrounding whitespace and array ordering, so re-syncing
logically unchanged content can be skipped.
"""

import hashlib
import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Union

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from ..models.sync import SyncCollection
from .fields import COLLECTION_FIELDS

logger = logging.getLogger(__name__)

HASH_LENGTH = 16

ToolLike = Union[BaseModel, Mapping[str, Any]]


def read_field(source: ToolLike, field_name: str) -> Any:
    """Read a field from a model or a snake_case/camelCase mapping"""
    if isinstance(source, BaseModel):
        return getattr(source, field_name, None)
    if field_name in source:
        return source[field_name]
    return source.get(to_camel(field_name))


def has_field(source: Mapping[str, Any], field_name: str) -> bool:
    return field_name in source or to_camel(field_name) in source


def normalize_value(value: Any) -> Any:
    """
    Canonical form used for hashing and change comparison.

    Strings are trimmed and lower-cased, sequences are normalized element-wise
    and sorted, and empty values collapse to None so that absent, null, ""
    and [] compare equal.
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, BaseModel):
        value = value.model_dump(mode='json')

    if isinstance(value, str):
        value = value.strip().lower()
        return value or None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        normalized = {str(k): normalize_value(v) for k, v in value.items()}
        return normalized or None
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [normalize_value(item) for item in value]
        items = [item for item in items if item is not None]
        if not items:
            return None
        return sorted(items, key=_sort_key)
    return value


def _sort_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


class CollectionHasher:
    """Computes deterministic content hashes per collection"""

    def hash(self, tool: ToolLike, collection: SyncCollection) -> str:
        """
        Hash the fields owned by a collection.

        Args:
            tool: Tool model or raw tool document
            collection: Collection whose field subset is hashed

        Returns:
            16 hex character digest
        """
        subset = {
            field_name: normalize_value(read_field(tool, field_name))
            for field_name in COLLECTION_FIELDS[collection]
        }
        canonical = json.dumps(
            subset, sort_keys=True, separators=(',', ':'), ensure_ascii=False, default=str
        )
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()[:HASH_LENGTH]

    def hash_all(self, tool: ToolLike) -> Dict[SyncCollection, str]:
        """Hash every collection at once"""
        return {collection: self.hash(tool, collection) for collection in SyncCollection}
