"""
docrag/core/embeddings/embedding_cache.py

Content-addressed embedding cache and the caching encoder built on it.

Why a Cache?
------------
The same texts are embedded again and again: structural queries run
for every file of every overview question, users repeat questions, and
re-ingesting a file re-embeds identical chunks. Keying vectors by the MD5 of
the exact text (namespaced by provider model and dimension) makes every
repeat free.

Components:
-----------
EmbeddingCache
    Thread-safe LRU map {"<model>/<dim>:<md5(text)>" -> vector}, bounded
    by entry count and by total vector bytes. The lock is held only around
    map operations, never across a provider call.

CachedEmbedder
    EmbeddingInterface wrapper: looks every text up in the cache, sends all
    distinct misses to the wrapped provider in ONE embed_texts call, stores
    the new vectors, and returns rows in input order. Provider failures
    surface as EncodingError and leave the cache untouched.

Two threads missing the same text at the same time may both call the
provider; the second put simply overwrites an identical vector.

Example Usage:
--------------
embedder = CachedEmbedder(SentenceTransformerEmbeddings())
vectors = embedder.embed(["What is covered?", "Define entropy"])  # 1 provider call
vectors = embedder.embed(["What is covered?"])                    # 0 provider calls
"""

from collections import OrderedDict
from typing import Dict, List, Optional
import logging
import threading

import numpy as np

from docrag.core.exceptions import EncodingError
from docrag.core.interfaces.embedding_interface import EmbeddingInterface
from docrag.core.utils.hashing import compute_text_hash

# Configure logging
logger = logging.getLogger(__name__)


class EmbeddingCache:
    """
    Bounded LRU cache of embedding vectors.

    Parameters:
    -----------
    max_entries : int
        Maximum number of cached vectors
    max_bytes : int
        Maximum total size of cached vectors (numpy nbytes)
    """

    def __init__(self, max_entries: int = 10_000, max_bytes: int = 64 * 1024 * 1024):
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        if max_bytes < 1:
            raise ValueError(f"max_bytes must be >= 1, got {max_bytes}")

        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self._entries: "OrderedDict[str, np.ndarray]" = OrderedDict()
        self._bytes = 0
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[np.ndarray]:
        with self._lock:
            vector = self._entries.get(key)
            if vector is None:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return vector

    def put(self, key: str, vector: np.ndarray) -> None:
        # Stored vectors are read-only copies so callers can't mutate cached state
        vector = np.array(vector, dtype=np.float32, copy=True)
        vector.setflags(write=False)

        with self._lock:
            previous = self._entries.pop(key, None)
            if previous is not None:
                self._bytes -= previous.nbytes

            if vector.nbytes > self.max_bytes:
                logger.warning(
                    f"Vector of {vector.nbytes} bytes exceeds cache budget "
                    f"({self.max_bytes} bytes), not cached"
                )
                return

            self._entries[key] = vector
            self._bytes += vector.nbytes
            self._evict()

    def _evict(self) -> None:
        """Drop least recently used entries until both bounds hold. Caller holds the lock."""
        while self._entries and (
                len(self._entries) > self.max_entries or self._bytes > self.max_bytes
        ):
            _, evicted = self._entries.popitem(last=False)
            self._bytes -= evicted.nbytes

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._bytes = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "bytes": self._bytes,
                "hits": self._hits,
                "misses": self._misses,
                "max_entries": self.max_entries,
                "max_bytes": self.max_bytes,
            }


_shared_cache: Optional[EmbeddingCache] = None
_shared_cache_lock = threading.Lock()


def get_shared_cache(max_entries: int = 10_000, max_bytes: int = 64 * 1024 * 1024) -> EmbeddingCache:
    """
    Process-wide cache instance.

    The bounds apply on first creation only; later calls return the same
    instance regardless of arguments.
    """
    global _shared_cache
    with _shared_cache_lock:
        if _shared_cache is None:
            _shared_cache = EmbeddingCache(max_entries=max_entries, max_bytes=max_bytes)
            logger.info(
                f"Created shared embedding cache "
                f"(max_entries={max_entries:,}, max_bytes={max_bytes:,})"
            )
        return _shared_cache


class CachedEmbedder(EmbeddingInterface):
    """
    Embedding provider wrapper that serves repeats from an EmbeddingCache.

    Parameters:
    -----------
    embedder : EmbeddingInterface
        Provider used for cache misses
    cache : EmbeddingCache, optional
        Cache to use (a private one is created when omitted)
    """

    def __init__(self, embedder: EmbeddingInterface, cache: Optional[EmbeddingCache] = None):
        self.embedder = embedder
        self.cache = cache if cache is not None else EmbeddingCache()
        self._namespace: Optional[str] = None

    @property
    def namespace(self) -> str:
        """Key prefix "<model>/<dimension>"; providers sharing a cache never share keys."""
        if self._namespace is None:
            self._namespace = f"{self.embedder.get_model_name()}/{self.embedder.get_embedding_dimension()}"
        return self._namespace

    def cache_key(self, text: str) -> str:
        return f"{self.namespace}:{compute_text_hash(text)}"

    def embed(self, texts: List[str]) -> np.ndarray:
        """
        Embed texts, order preserved, with at most one provider call.

        Raises:
        -------
        ValueError:
            If texts is empty
        EncodingError:
            If the provider fails or returns the wrong number of rows
        """
        if not texts:
            raise ValueError("texts cannot be empty")

        keys = [self.cache_key(text) for text in texts]
        vectors: List[Optional[np.ndarray]] = [self.cache.get(key) for key in keys]

        # Distinct misses, first occurrence order
        missing: Dict[str, str] = {}
        for key, text, vector in zip(keys, texts, vectors):
            if vector is None and key not in missing:
                missing[key] = text

        if missing:
            logger.debug(
                f"Embedding cache: {len(texts) - sum(v is None for v in vectors)} hits, "
                f"{len(missing)} distinct misses"
            )
            try:
                computed = self.embedder.embed_texts(list(missing.values()))
            except Exception as e:
                logger.error(f"Embedding provider failed for {len(missing)} texts: {e}")
                raise EncodingError(
                    f"Embedding provider {self.embedder.get_model_name()} failed\n"
                    f"Texts: {len(missing)}\n"
                    f"Error: {e}"
                ) from e

            if len(computed) != len(missing):
                raise EncodingError(
                    f"Embedding provider returned {len(computed)} vectors "
                    f"for {len(missing)} texts"
                )

            fresh = dict(zip(missing.keys(), computed))
            for key, vector in fresh.items():
                self.cache.put(key, vector)

            vectors = [
                vector if vector is not None else fresh[key]
                for key, vector in zip(keys, vectors)
            ]

        return np.vstack(vectors).astype(np.float32, copy=False)

    def embed_query(self, text: str) -> np.ndarray:
        """Embed a single text and return a 1D vector."""
        return self.embed([text])[0]

    def embed_texts(self, texts: List[str]) -> np.ndarray:
        return self.embed(texts)

    def get_model_name(self) -> str:
        return self.embedder.get_model_name()

    def get_embedding_dimension(self) -> int:
        return self.embedder.get_embedding_dimension()

    def cache_stats(self) -> Dict[str, int]:
        return self.cache.stats()
