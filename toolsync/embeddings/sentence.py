"""
Sentence-transformers embedder.

The model is imported and loaded lazily in a worker thread so importing
toolsync never pulls in torch.
"""

import asyncio
import logging
import threading
import time
from datetime import datetime
from typing import List, Optional

from .base import BaseEmbedder
from ..models.config import EmbeddingConfig

logger = logging.getLogger(__name__)


class SentenceTransformerEmbedder(BaseEmbedder):
    """Embedder backed by a sentence-transformers model"""

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.embedding_config = config or EmbeddingConfig()
        super().__init__(self.embedding_config.model_dump(mode='json'))
        self._model_lock = threading.Lock()
        self._device: Optional[str] = None

        logger.info(f"Initialized SentenceTransformerEmbedder: {self.embedding_config.model_name}")

    @property
    def model_name(self) -> str:
        return self.embedding_config.model_name

    @property
    def dimensions(self) -> int:
        return self.embedding_config.dimensions

    @property
    def device(self) -> Optional[str]:
        return self._device

    def _load_blocking(self) -> None:
        # Import here to avoid startup delays
        from sentence_transformers import SentenceTransformer

        with self._model_lock:
            if self._model is not None:
                return
            cache_dir = self.embedding_config.cache_dir
            model = SentenceTransformer(
                self.embedding_config.model_name,
                device=self.embedding_config.device,
                cache_folder=str(cache_dir) if cache_dir else None
            )
            model.max_seq_length = self.embedding_config.max_length
            self._model = model
            self._device = str(model.device)

    async def load_model(self) -> bool:
        """
        Load the sentence-transformers model.

        Returns:
            True if model loaded successfully, False otherwise
        """
        if self.is_loaded:
            return True

        try:
            start_time = time.time()
            await asyncio.to_thread(self._load_blocking)
            self._is_loaded = True
            self._load_time = datetime.now()
            logger.info(
                f"Loaded {self.model_name} on {self._device} in {time.time() - start_time:.2f}s"
            )
            return True

        except Exception as e:
            logger.error(f"Failed to load embedding model {self.model_name}: {e}")
            self._model = None
            self._is_loaded = False
            return False

    async def unload_model(self) -> None:
        with self._model_lock:
            self._model = None
            self._is_loaded = False
            self._device = None
        logger.info(f"Unloaded {self.model_name}")

    async def _generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        if not self.is_loaded:
            raise RuntimeError("Model not loaded")

        embeddings = await asyncio.to_thread(
            self._model.encode,
            texts,
            batch_size=self.embedding_config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=False
        )
        return embeddings
