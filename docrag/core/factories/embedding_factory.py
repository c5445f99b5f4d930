"""
docrag/core/factories/embedding_factory.py

Factory for embedding providers.

Instead of:
    if config.provider == "sentence_transformers":
        embedder = SentenceTransformerEmbeddings(model, device, batch_size)
    elif config.provider == "gemini":
        embedder = GeminiEmbeddings(api_key, model)

You write:
    embedder = EmbeddingFactory.create_embedder(config.embeddings)
    cached = EmbeddingFactory.create_cached_embedder(config.embeddings, config.embedding_cache)

Provider classes are imported lazily, so a deployment using Gemini never
loads torch and a local deployment never imports the Gemini SDK.
"""

import os
import logging
from typing import Union, Dict, Any, Optional

from docrag.core.embeddings.embedding_cache import CachedEmbedder, EmbeddingCache, get_shared_cache
from docrag.core.interfaces.embedding_interface import EmbeddingInterface
from docrag.models.rag_config import EmbeddingConfig, EmbeddingCacheConfig

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("sentence_transformers", "gemini")


class EmbeddingFactory:
    """
    Factory for creating embedding provider instances based on configuration.

    Supported Providers:
    - sentence_transformers: Local embeddings (HuggingFace Sentence-Transformers)
    - gemini: Google Gemini API embeddings
    """

    @staticmethod
    def create_embedder(config: Union[Dict[str, Any], EmbeddingConfig]) -> EmbeddingInterface:
        """
        Create an embedding provider instance from configuration.

        Parameters:
        -----------
        config : EmbeddingConfig or dict
            Must carry provider and model_name; the Gemini API key falls
            back to the GEMINI_API_KEY environment variable.

        Raises:
        -------
        ValueError:
            If the provider is unknown or a required parameter is missing
        RuntimeError:
            If the provider fails to initialise
        """
        if isinstance(config, dict):
            config = EmbeddingConfig(**config)

        provider = config.provider.lower()
        logger.info(f"Creating embedder with provider: {provider}")

        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unknown embedding provider: '{provider}'. "
                f"Available providers: {list(SUPPORTED_PROVIDERS)}"
            )

        if provider == "sentence_transformers":
            from docrag.core.embeddings.sentence_transformer_embeddings import SentenceTransformerEmbeddings
            return SentenceTransformerEmbeddings(
                model_name=config.model_name,
                device=config.device or "cpu",
                batch_size=config.batch_size,
                normalize=config.normalize,
            )

        api_key = config.api_key or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError(
                "Gemini embeddings need an API key: set embeddings.api_key "
                "or the GEMINI_API_KEY environment variable"
            )
        from docrag.core.embeddings.gemini_embeddings import GeminiEmbeddings
        return GeminiEmbeddings(
            api_key=api_key,
            model_name=config.model_name,
            batch_size=config.batch_size,
            task_type=config.task_type,
            request_timeout=config.request_timeout_seconds,
        )

    @staticmethod
    def create_cached_embedder(
            config: Union[Dict[str, Any], EmbeddingConfig],
            cache_config: Optional[EmbeddingCacheConfig] = None,
            embedder: Optional[EmbeddingInterface] = None
    ) -> CachedEmbedder:
        """
        Wrap a provider in a CachedEmbedder.

        With caching enabled the process-wide shared cache is used; with it
        disabled a one-entry private cache keeps the call path identical.
        """
        cache_config = cache_config or EmbeddingCacheConfig()
        embedder = embedder or EmbeddingFactory.create_embedder(config)

        if cache_config.enabled:
            cache = get_shared_cache(cache_config.max_entries, cache_config.max_bytes)
        else:
            logger.info("Embedding cache disabled")
            cache = EmbeddingCache(max_entries=1)

        return CachedEmbedder(embedder, cache)
