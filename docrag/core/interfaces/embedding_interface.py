"""
docrag/core/interfaces/embedding_interface.py

Abstract interface (contract) for embedding providers.

Purpose:
--------
Every embedding implementation (Sentence-Transformers locally, Google Gemini
in the cloud, and the caching wrapper around either) follows this contract,
so the ingestion pipeline and the retriever never care which one they hold.

What Are Embeddings?
--------------------
Dense vectors that capture the meaning of a text. Similar texts produce
vectors with small cosine distance, which is what the vector store ranks by.

Example Usage:
--------------
embedder: EmbeddingInterface = EmbeddingFactory.create_embedder(config.embeddings)

embeddings = embedder.embed_texts(["Hello world", "Python is great"])
# numpy array of shape (2, embedding_dim), row i belongs to text i
"""

from abc import ABC, abstractmethod
from typing import List
import numpy as np


class EmbeddingInterface(ABC):
    """
    Abstract base class for embedding providers.

    Contract:
    ---------
    - embed_texts returns one row per input text, in input order
    - rows of one provider all have get_embedding_dimension() columns
    - provider failures raise (never return partial arrays)
    """

    @abstractmethod
    def embed_texts(self, texts: List[str]) -> np.ndarray:
        """
        Convert a list of texts into embedding vectors.

        Parameters:
        -----------
        texts : List[str]
            Texts to embed, non-empty list

        Returns:
        --------
        np.ndarray:
            2D float32 array of shape (len(texts), embedding_dim)
        """
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Identifier of the embedding model, e.g. 'all-MiniLM-L6-v2'."""
        pass

    @abstractmethod
    def get_embedding_dimension(self) -> int:
        """Length of the vectors this provider returns."""
        pass
