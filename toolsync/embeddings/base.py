"""
Base embedding interface and protocols for toolsync.

Defines the interface every embedding provider implements. The sync
orchestrator only needs ``embed_single``; batch embedding is used by bulk
tooling.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import numpy as np


@dataclass
class EmbeddingResponse:
    """Response containing generated embeddings"""
    embeddings: List[List[float]]
    processing_time_ms: float
    model_info: Optional[Dict[str, Any]] = None

    @property
    def embedding_count(self) -> int:
        """Get number of embeddings generated"""
        return len(self.embeddings)


@runtime_checkable
class EmbedderProtocol(Protocol):
    """Protocol defining the interface for embedding providers"""

    @property
    def model_name(self) -> str:
        ...

    @property
    def dimensions(self) -> int:
        ...

    async def embed_texts(self, texts: List[str]) -> EmbeddingResponse:
        ...

    async def embed_single(self, text: str) -> List[float]:
        ...


class BaseEmbedder(ABC):
    """Abstract base class for embedding providers"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self._model = None
        self._is_loaded = False
        self._load_time: Optional[datetime] = None

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the name of the embedding model"""
        pass

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Get the dimensionality of the embeddings"""
        pass

    @property
    def normalize_embeddings(self) -> bool:
        return bool(self.config.get('normalize_embeddings', True))

    @property
    def is_loaded(self) -> bool:
        """Check if the model is loaded and ready"""
        return self._is_loaded and self._model is not None

    @abstractmethod
    async def load_model(self) -> bool:
        """Load the embedding model"""
        pass

    @abstractmethod
    async def unload_model(self) -> None:
        """Unload the embedding model to free memory"""
        pass

    @abstractmethod
    async def _generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Internal method to generate embeddings"""
        pass

    async def embed_texts(self, texts: List[str]) -> EmbeddingResponse:
        """Generate embeddings for a list of texts with error handling"""
        if not self.is_loaded:
            loaded = await self.load_model()
            if not loaded:
                raise RuntimeError(f"Embedding model {self.model_name} could not be loaded")

        if not texts:
            return EmbeddingResponse(embeddings=[], processing_time_ms=0.0)

        loop = asyncio.get_running_loop()
        start_time = loop.time()

        try:
            raw = await self._generate_embeddings(texts)
            embeddings = self._postprocess(raw, expected=len(texts))
        except Exception as e:
            raise RuntimeError(f"Embedding generation failed: {e}") from e

        return EmbeddingResponse(
            embeddings=embeddings,
            processing_time_ms=(loop.time() - start_time) * 1000,
            model_info=self.get_model_info()
        )

    async def embed_single(self, text: str) -> List[float]:
        """Generate embedding for a single text"""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        response = await self.embed_texts([text])
        if not response.embeddings:
            raise RuntimeError("Failed to generate embedding for single text")
        return response.embeddings[0]

    def _postprocess(self, raw: Any, expected: int) -> List[List[float]]:
        """Validate shape and optionally L2-normalize"""
        matrix = np.asarray(raw, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[0] != expected:
            raise ValueError(f"Expected {expected} embeddings, got shape {matrix.shape}")
        if matrix.shape[1] != self.dimensions:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimensions}, got {matrix.shape[1]}"
            )
        if not np.all(np.isfinite(matrix)):
            raise ValueError("Embedding contains non-finite values")

        if self.normalize_embeddings:
            norms = np.linalg.norm(matrix, axis=1, keepdims=True)
            norms[norms == 0] = 1.0
            matrix = matrix / norms

        return matrix.tolist()

    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the model"""
        return {
            "model_name": self.model_name,
            "dimensions": self.dimensions,
            "is_loaded": self.is_loaded,
            "load_time": self._load_time.isoformat() if self._load_time else None
        }
