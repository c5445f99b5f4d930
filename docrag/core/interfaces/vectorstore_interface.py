"""
docrag/core/interfaces/vectorstore_interface.py

Abstract interface for vector store providers.

Collection Model:
-----------------
Every uploaded file owns exactly one collection, named by its file id.
Collections are created lazily on first write and dropped when the file is
deleted, so deleting a file can never leave orphan vectors behind and a
query against one file never scans another file's vectors.

Result Format:
--------------
query() and get() return a list of plain dicts:

    {
        'id': 'file_123_chunk_4',
        'document': 'chunk text...',
        'metadata': {'file_id': 'file_123', 'chunk_index': 4, ...},
        'distance': 0.23          # None for get()
    }
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
import numpy as np

from docrag.core.exceptions import CollectionNotFoundError


class VectorStoreInterface(ABC):
    """
    Abstract base class for per-file vector collections.

    Errors:
    -------
    query() and get() raise CollectionNotFoundError when the file has no
    collection; any other backend failure raises RuntimeError.
    """

    @abstractmethod
    def create_or_get_collection(self, file_id: str) -> Any:
        """Return the file's collection, creating it if needed. Idempotent."""
        pass

    @abstractmethod
    def add(
            self,
            file_id: str,
            ids: List[str],
            embeddings: np.ndarray,
            documents: List[str],
            metadatas: List[Dict[str, Any]]
    ) -> None:
        """Upsert vectors (by id) into the file's collection."""
        pass

    @abstractmethod
    def query(
            self,
            file_id: str,
            query_embedding: np.ndarray,
            top_k: int,
            where: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Nearest neighbours of query_embedding, ascending distance."""
        pass

    @abstractmethod
    def get(
            self,
            file_id: str,
            where: Optional[Dict[str, Any]] = None,
            limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Fetch stored chunks by metadata filter (no similarity ranking)."""
        pass

    @abstractmethod
    def delete_collection(self, file_id: str) -> None:
        """Drop the file's collection and all its vectors. Missing is a no-op."""
        pass

    @abstractmethod
    def count(self, file_id: str) -> int:
        """Number of vectors stored for the file (0 when it has no collection)."""
        pass

    def query_or_empty(
            self,
            file_id: str,
            query_embedding: np.ndarray,
            top_k: int,
            where: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """query(), with a missing collection read as an empty result."""
        try:
            return self.query(file_id, query_embedding, top_k, where)
        except CollectionNotFoundError:
            return []
