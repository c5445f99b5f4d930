"""
docrag/core/factories/vector_store_factory.py

Factory for creating the vector store from configuration.

Supported Vector Stores:
------------------------
✅ ChromaDB - persistent (local directory) or http (Chroma server)
"""

import logging

from docrag.core.interfaces.vectorstore_interface import VectorStoreInterface
from docrag.core.vectorstores.chromadb_store import ChromaDBStore
from docrag.models.rag_config import VectorStoreConfig

# Configure logging
logger = logging.getLogger(__name__)


class VectorStoreFactory:
    """Factory for vector store instances."""

    @staticmethod
    def create_vector_store(config: VectorStoreConfig) -> VectorStoreInterface:
        provider = config.provider.lower()
        logger.info(f"Creating vector store: {provider} ({config.mode})")

        if provider == "chromadb":
            return VectorStoreFactory._create_chromadb(config)

        raise ValueError(
            f"Unsupported vector store provider: '{provider}'. Supported: ['chromadb']"
        )

    @staticmethod
    def _create_chromadb(config: VectorStoreConfig) -> ChromaDBStore:
        return ChromaDBStore(
            persist_directory=config.persist_directory,
            mode=config.mode,
            host=config.host,
            port=config.port,
            distance_metric=config.distance_metric,
        )
