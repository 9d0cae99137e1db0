"""
Embedding providers for toolsync.
"""

from .base import BaseEmbedder, EmbedderProtocol, EmbeddingResponse
from .sentence import SentenceTransformerEmbedder

__all__ = [
    "BaseEmbedder",
    "EmbedderProtocol",
    "EmbeddingResponse",
    "SentenceTransformerEmbedder"
]
