"""
Shared fakes for the docrag test suite.

Nothing here touches the network: embeddings are derived from text hashes,
the vector store lives in memory and OCR engines return scripted text.
"""

from typing import Any, Callable, Dict, List, Optional
import hashlib

import numpy as np
import pytest

from docrag.core.exceptions import CollectionNotFoundError, OCRError
from docrag.core.interfaces.embedding_interface import EmbeddingInterface
from docrag.core.interfaces.ocr_interface import OCRInterface
from docrag.core.interfaces.vectorstore_interface import VectorStoreInterface


class FakeEmbedder(EmbeddingInterface):
    """Deterministic unit vectors seeded by the MD5 of each text."""

    def __init__(self, dimension: int = 8, fail: bool = False):
        self.dimension = dimension
        self.fail = fail
        self.calls: List[List[str]] = []

    def embed_texts(self, texts: List[str]) -> np.ndarray:
        self.calls.append(list(texts))
        if self.fail:
            raise ConnectionError("embedding provider unavailable")

        rows = []
        for text in texts:
            seed = int(hashlib.md5(text.encode("utf-8")).hexdigest()[:8], 16)
            vector = np.random.default_rng(seed).normal(size=self.dimension)
            rows.append(vector / np.linalg.norm(vector))
        return np.asarray(rows, dtype=np.float32)

    def get_model_name(self) -> str:
        return "fake-embedder"

    def get_embedding_dimension(self) -> int:
        return self.dimension

    @property
    def texts_embedded(self) -> int:
        return sum(len(call) for call in self.calls)


class FakeVectorStore(VectorStoreInterface):
    """
    In-memory per-file collections with cosine distance.

    failing   : file ids whose queries raise RuntimeError
    handler   : optional callable(file_id, embedding, top_k, where) replacing query()
    """

    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.failing: set = set()
        self.handler: Optional[Callable] = None
        self.query_calls: List[Dict[str, Any]] = []
        self.get_calls: List[Dict[str, Any]] = []

    def create_or_get_collection(self, file_id: str):
        return self.collections.setdefault(file_id, {})

    def add(self, file_id, ids, embeddings, documents, metadatas) -> None:
        collection = self.create_or_get_collection(file_id)
        for chunk_id, embedding, document, metadata in zip(ids, embeddings, documents, metadatas):
            collection[chunk_id] = {
                'embedding': np.asarray(embedding, dtype=np.float32),
                'document': document,
                'metadata': dict(metadata),
            }

    def query(self, file_id, query_embedding, top_k, where=None) -> List[Dict[str, Any]]:
        self.query_calls.append({'file_id': file_id, 'top_k': top_k, 'where': where})

        if file_id in self.failing:
            raise RuntimeError(f"collection {file_id} is corrupt")
        if self.handler is not None:
            return self.handler(file_id, query_embedding, top_k, where)
        if file_id not in self.collections:
            raise CollectionNotFoundError(file_id)

        query_embedding = np.asarray(query_embedding, dtype=np.float32)
        rows = []
        for chunk_id, row in self.collections[file_id].items():
            similarity = float(np.dot(row['embedding'], query_embedding)) / (
                float(np.linalg.norm(row['embedding']) * np.linalg.norm(query_embedding)) or 1.0
            )
            rows.append({
                'id': chunk_id,
                'document': row['document'],
                'metadata': dict(row['metadata']),
                'distance': 1.0 - similarity,
            })
        rows.sort(key=lambda r: r['distance'])
        return rows[:top_k]

    def get(self, file_id, where=None, limit=None) -> List[Dict[str, Any]]:
        self.get_calls.append({'file_id': file_id, 'where': where, 'limit': limit})
        if file_id not in self.collections:
            raise CollectionNotFoundError(file_id)

        rows = [
            {'id': chunk_id, 'document': row['document'], 'metadata': dict(row['metadata']), 'distance': None}
            for chunk_id, row in self.collections[file_id].items()
        ]
        if where and 'chunk_index' in where:
            bound = where['chunk_index']['$lt']
            rows = [r for r in rows if r['metadata'].get('chunk_index', bound) < bound]
        return rows[:limit] if limit else rows

    def delete_collection(self, file_id: str) -> None:
        self.collections.pop(file_id, None)

    def count(self, file_id: str) -> int:
        return len(self.collections.get(file_id, {}))


class ScriptedOCR(OCRInterface):
    """OCR engine returning fixed text, or raising OCRError when text is None."""

    def __init__(self, name: str, text: Optional[str]):
        self._name = name
        self.text = text
        self.calls = 0

    @property
    def engine_name(self) -> str:
        return self._name

    def extract_pdf(self, data: bytes, page_count: int) -> str:
        self.calls += 1
        if self.text is None:
            raise OCRError(f"{self._name} is unavailable")
        return self.text


def make_row(chunk_id: str, distance: Optional[float], chunk_index: Optional[int] = None,
             document: Optional[str] = None, file_id: str = "file_a", total: int = 10) -> Dict[str, Any]:
    """A vector-store result row as returned by query()/get()."""
    metadata: Dict[str, Any] = {'file_id': file_id, 'file_name': f"{file_id}.pdf", 'total_chunks': total}
    if chunk_index is not None:
        metadata['chunk_index'] = chunk_index
    return {
        'id': chunk_id,
        'document': document if document is not None else f"text of {chunk_id}",
        'metadata': metadata,
        'distance': distance,
    }


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_store() -> FakeVectorStore:
    return FakeVectorStore()
