"""
Tests for the embedding base class and the sentence-transformers embedder.
"""

import sys
from typing import List
from unittest.mock import Mock, patch

import numpy as np
import pytest

from toolsync.embeddings.base import BaseEmbedder, EmbedderProtocol, EmbeddingResponse
from toolsync.embeddings.sentence import SentenceTransformerEmbedder
from toolsync.models.config import EmbeddingConfig


class FixedEmbedder(BaseEmbedder):
    """Embedder returning preset vectors"""

    def __init__(self, vectors=None, dims: int = 3, config=None, loads: bool = True):
        super().__init__(config)
        self.vectors = vectors
        self.dims = dims
        self.loads = loads
        self.load_calls = 0

    @property
    def model_name(self) -> str:
        return "fixed"

    @property
    def dimensions(self) -> int:
        return self.dims

    async def load_model(self) -> bool:
        self.load_calls += 1
        if self.loads:
            self._model = object()
            self._is_loaded = True
        return self.loads

    async def unload_model(self) -> None:
        self._model = None
        self._is_loaded = False

    async def _generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        if self.vectors is not None:
            return self.vectors
        return [[3.0, 4.0, 0.0] for _ in texts]


class TestBaseEmbedder:
    """Test suite for shared embedding behavior"""

    @pytest.mark.asyncio
    async def test_loads_lazily_and_normalizes(self):
        embedder = FixedEmbedder()

        response = await embedder.embed_texts(["a", "b"])

        assert isinstance(response, EmbeddingResponse)
        assert embedder.load_calls == 1
        assert response.embedding_count == 2
        np.testing.assert_allclose(response.embeddings[0], [0.6, 0.8, 0.0], rtol=1e-6)
        assert response.model_info["model_name"] == "fixed"

    @pytest.mark.asyncio
    async def test_normalization_can_be_disabled(self):
        embedder = FixedEmbedder(config={"normalize_embeddings": False})

        vector = await embedder.embed_single("text")

        assert vector == [3.0, 4.0, 0.0]

    @pytest.mark.asyncio
    async def test_embed_single_rejects_empty_text(self):
        with pytest.raises(ValueError):
            await FixedEmbedder().embed_single("   ")

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        response = await FixedEmbedder().embed_texts([])
        assert response.embeddings == []

    @pytest.mark.asyncio
    async def test_dimension_mismatch_raises(self):
        embedder = FixedEmbedder(vectors=[[1.0, 2.0]])

        with pytest.raises(RuntimeError, match="dimension mismatch"):
            await embedder.embed_texts(["a"])

    @pytest.mark.asyncio
    async def test_non_finite_values_raise(self):
        embedder = FixedEmbedder(vectors=[[1.0, float("nan"), 0.0]])

        with pytest.raises(RuntimeError, match="non-finite"):
            await embedder.embed_texts(["a"])

    @pytest.mark.asyncio
    async def test_load_failure_raises(self):
        with pytest.raises(RuntimeError, match="could not be loaded"):
            await FixedEmbedder(loads=False).embed_texts(["a"])

    def test_satisfies_protocol(self):
        assert isinstance(FixedEmbedder(), EmbedderProtocol)

    def test_model_info(self):
        info = FixedEmbedder().get_model_info()
        assert info == {"model_name": "fixed", "dimensions": 3, "is_loaded": False, "load_time": None}


class TestSentenceTransformerEmbedder:
    """sentence-transformers integration with the library mocked out"""

    @pytest.fixture
    def fake_library(self):
        model = Mock()
        model.device = "cpu"
        model.encode.side_effect = lambda texts, **kwargs: np.ones((len(texts), 4), dtype=np.float32)
        module = Mock()
        module.SentenceTransformer.return_value = model
        with patch.dict(sys.modules, {"sentence_transformers": module}):
            yield module, model

    def test_init_does_not_load_model(self):
        embedder = SentenceTransformerEmbedder(EmbeddingConfig(dimensions=4))

        assert embedder.is_loaded is False
        assert embedder.model_name == "sentence-transformers/all-MiniLM-L6-v2"
        assert embedder.dimensions == 4

    @pytest.mark.asyncio
    async def test_embed_single(self, fake_library):
        module, model = fake_library
        embedder = SentenceTransformerEmbedder(EmbeddingConfig(dimensions=4, max_length=256))

        vector = await embedder.embed_single("collaborative docs")

        assert len(vector) == 4
        np.testing.assert_allclose(vector, [0.5] * 4, rtol=1e-6)
        assert embedder.device == "cpu"
        assert model.max_seq_length == 256
        module.SentenceTransformer.assert_called_once()

    @pytest.mark.asyncio
    async def test_model_loaded_once(self, fake_library):
        module, _ = fake_library
        embedder = SentenceTransformerEmbedder(EmbeddingConfig(dimensions=4))

        await embedder.embed_single("one")
        await embedder.embed_single("two")

        module.SentenceTransformer.assert_called_once()

    @pytest.mark.asyncio
    async def test_load_failure(self, fake_library):
        module, _ = fake_library
        module.SentenceTransformer.side_effect = OSError("model not found")
        embedder = SentenceTransformerEmbedder(EmbeddingConfig(dimensions=4))

        assert await embedder.load_model() is False
        assert embedder.is_loaded is False

    @pytest.mark.asyncio
    async def test_unload(self, fake_library):
        embedder = SentenceTransformerEmbedder(EmbeddingConfig(dimensions=4))
        await embedder.load_model()

        await embedder.unload_model()

        assert embedder.is_loaded is False
