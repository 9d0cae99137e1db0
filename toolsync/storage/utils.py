"""
Storage utilities shared by the vector index client and its callers.
"""

import hashlib


def tool_id_to_point_id(tool_id: str) -> int:
    """
    Convert a tool id to a Qdrant point id using SHA256.

    The same tool id maps to the same point id in every collection, which
    keeps upserts idempotent and lets deletes target the point directly.

    Args:
        tool_id: Catalog tool identifier (e.g. "notion-ai")

    Returns:
        Unsigned 64-bit integer point id
    """
    hash_digest = hashlib.sha256(tool_id.encode('utf-8')).digest()
    return int.from_bytes(hash_digest[:8], byteorder='big', signed=False)
