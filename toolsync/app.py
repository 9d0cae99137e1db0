"""
Service container.

Builds the sync engine once at process start with its collaborators
injected, so tests and the CLI can swap any of them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .catalog.service import CatalogService
from .embeddings.sentence import SentenceTransformerEmbedder
from .models.config import SyncConfig
from .storage.client import VectorIndexClient
from .storage.store import InMemoryToolStore, JsonFileToolStore, ToolStore
from .sync.content import ContentGeneratorFactory
from .sync.detector import ChangeDetector
from .sync.hasher import CollectionHasher
from .sync.orchestrator import ToolSyncOrchestrator
from .sync.triggers import SyncTriggers
from .sync.worker import SyncWorker, SyncWorkerConfig

logger = logging.getLogger(__name__)


@dataclass
class SyncServices:
    """Wired sync engine components"""
    config: SyncConfig
    store: ToolStore
    embedder: object
    vector_index: object
    orchestrator: ToolSyncOrchestrator
    worker: SyncWorker
    triggers: SyncTriggers
    catalog: CatalogService

    async def start(self, ensure_collections: bool = True) -> None:
        if ensure_collections and hasattr(self.vector_index, 'ensure_collections'):
            results = await self.vector_index.ensure_collections()
            failed = [r.collection_name for r in results if not r.success]
            if failed:
                logger.warning(f"Could not prepare collections: {failed}")
        await self.worker.start()

    async def shutdown(self) -> None:
        await self.worker.stop()
        await self.triggers.wait_idle(timeout=10.0)
        await self.triggers.cancel_all()
        if hasattr(self.vector_index, 'close'):
            await self.vector_index.close()


def build_services(
    config: Optional[SyncConfig] = None,
    store: Optional[ToolStore] = None,
    embedder=None,
    vector_index=None,
    worker_config: Optional[SyncWorkerConfig] = None
) -> SyncServices:
    """
    Construct all services from configuration.

    Args:
        config: Runtime configuration, defaults if None
        store: Primary store; a JSON file store when config.catalog_path is set,
            otherwise an empty in-memory store
        embedder: Embedding provider, sentence-transformers by default
        vector_index: Vector index client, Qdrant by default
        worker_config: Overrides config.worker
    """
    config = config or SyncConfig()

    if store is None:
        store = JsonFileToolStore(config.catalog_path) if config.catalog_path else InMemoryToolStore()
    if embedder is None:
        embedder = SentenceTransformerEmbedder(config.embedding)
    if vector_index is None:
        vector_index = VectorIndexClient(config.qdrant)

    detector = ChangeDetector()
    orchestrator = ToolSyncOrchestrator(
        store=store,
        embedder=embedder,
        vector_index=vector_index,
        content_factory=ContentGeneratorFactory(),
        hasher=CollectionHasher(),
        detector=detector,
        config=config.orchestrator
    )
    worker = SyncWorker(
        store=store,
        orchestrator=orchestrator,
        config=worker_config or SyncWorkerConfig.from_dict(config.worker)
    )
    triggers = SyncTriggers(orchestrator)
    catalog = CatalogService(store=store, triggers=triggers, detector=detector)

    return SyncServices(
        config=config,
        store=store,
        embedder=embedder,
        vector_index=vector_index,
        orchestrator=orchestrator,
        worker=worker,
        triggers=triggers,
        catalog=catalog
    )
