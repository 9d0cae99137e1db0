"""
Shared fixtures for toolsync tests.

Collaborators of the sync engine are replaced by Mock/AsyncMock doubles; the
primary store is the real in-memory implementation.
"""

import copy
from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest

from toolsync.models.config import OrchestratorConfig
from toolsync.models.storage import StorageResult
from toolsync.models.sync import SyncCollection, SyncResult
from toolsync.models.tool import Tool
from toolsync.storage.store import InMemoryToolStore
from toolsync.sync.orchestrator import ToolSyncOrchestrator


FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0)

SAMPLE_TOOL = {
    "id": "notion-ai",
    "name": "Notion AI",
    "description": "AI writing assistant built into Notion",
    "longDescription": "Drafts, summarizes and rewrites documents inside your workspace.",
    "tagline": "Write faster",
    "functionality": ["Text Generation", "Summarization"],
    "categories": ["Productivity", "Writing"],
    "industries": ["Technology", "Education"],
    "userTypes": ["Writers", "Teams"],
    "deployment": ["Cloud"],
    "interface": ["Web", "API"],
    "pricingModel": ["Freemium"],
    "status": "active",
    "pricing": [{"tier": "Plus", "billingPeriod": "monthly", "price": 10}],
    "website": "https://www.notion.so/product/ai",
    "approvalStatus": "approved",
}


@pytest.fixture
def tool_data():
    """Raw camelCase tool document as written by the catalog API."""
    return copy.deepcopy(SAMPLE_TOOL)


@pytest.fixture
def make_tool():
    """Factory building validated tools from the sample document."""
    def _make(**overrides) -> Tool:
        data = copy.deepcopy(SAMPLE_TOOL)
        data.update(overrides)
        return Tool.model_validate(data)
    return _make


@pytest.fixture
def clock():
    """Controllable clock; set ``clock.now`` to move time."""
    fake = Mock()
    fake.now = FIXED_NOW
    fake.side_effect = lambda: fake.now
    return fake


@pytest.fixture
def mock_embedder():
    """Embedder returning a fixed 8-dimensional vector."""
    embedder = Mock()
    embedder.model_name = "test-model"
    embedder.dimensions = 8
    embedder.embed_single = AsyncMock(return_value=[0.1] * 8)
    embedder.get_model_info = Mock(return_value={"model_name": "test-model", "dimensions": 8})
    return embedder


@pytest.fixture
def mock_vector_index():
    """Vector index whose calls all succeed."""
    index = Mock()
    index.upsert_vector = AsyncMock(
        side_effect=lambda collection, tool_id, vector, payload:
            StorageResult.successful("upsert", collection.value, 1, 1.0)
    )
    index.update_payload = AsyncMock(
        side_effect=lambda collection, tool_id, payload:
            StorageResult.successful("update_payload", collection.value, 1, 1.0)
    )
    index.delete_vector = AsyncMock(
        side_effect=lambda collection, tool_id:
            StorageResult.successful("delete", collection.value, 1, 1.0)
    )
    return index


@pytest.fixture
def store():
    return InMemoryToolStore()


@pytest.fixture
def orchestrator(store, mock_embedder, mock_vector_index, clock):
    """Orchestrator without retry delays."""
    return ToolSyncOrchestrator(
        store=store,
        embedder=mock_embedder,
        vector_index=mock_vector_index,
        config=OrchestratorConfig(max_attempts=3, retry_delay_ms=0),
        clock=clock
    )


@pytest.fixture
def sync_success():
    """Factory for a fully successful SyncResult."""
    def _result(tool_id: str) -> SyncResult:
        return SyncResult(tool_id=tool_id, success=True, synced_count=len(SyncCollection))
    return _result
