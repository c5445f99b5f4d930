"""
docrag/core/embeddings/sentence_transformer_embeddings.py

Sentence-Transformers embedding provider (local, free).

The default provider: runs on CPU or GPU with no API calls, so ingestion and
retrieval work fully offline. The model is loaded once per process and
reused for all calls.

Popular models:
- "all-MiniLM-L6-v2" (384-dim, fast, default)
- "all-mpnet-base-v2" (768-dim, better quality)

References:
-----------
- Documentation: https://www.sbert.net/
"""

from typing import List
import numpy as np
from sentence_transformers import SentenceTransformer
from docrag.core.interfaces.embedding_interface import EmbeddingInterface
import logging
import torch

# Configure logging
logger = logging.getLogger(__name__)


class SentenceTransformerEmbeddings(EmbeddingInterface):
    """
    Sentence-Transformers embedding provider.

    Configuration Parameters:
    -------------------------
    model_name : str
        Pre-trained model to load
    device : str
        "cpu", "cuda" or "mps"; CUDA falls back to CPU when unavailable
    batch_size : int
        Texts per encode batch
    normalize : bool
        L2-normalise embeddings (cosine distance = 1 - dot product)
    """

    def __init__(
            self,
            model_name: str = "all-MiniLM-L6-v2",
            device: str = "cpu",
            batch_size: int = 32,
            normalize: bool = True
    ):
        self.model_name = model_name
        self.device = device or "cpu"
        self.batch_size = batch_size
        self.normalize = normalize

        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning(
                "CUDA requested but not available. Falling back to CPU."
            )
            self.device = "cpu"

        logger.info(f"Loading Sentence-Transformer model: {model_name} on {self.device}...")

        try:
            self.model = SentenceTransformer(model_name, device=self.device)
            self.embedding_dim = self.model.get_sentence_embedding_dimension()

            logger.info(
                f"✅ Model loaded successfully!\n"
                f"   Model: {model_name}\n"
                f"   Dimension: {self.embedding_dim}\n"
                f"   Device: {self.device}\n"
                f"   Normalize: {normalize}"
            )
        except Exception as e:
            logger.error(f"Failed to load model {model_name}: {e}")
            raise RuntimeError(
                f"Could not load Sentence-Transformer model: {model_name}\n"
                f"Error: {e}"
            ) from e

    def embed_texts(self, texts: List[str]) -> np.ndarray:
        """
        Generate embeddings for a batch of texts.

        Every input text gets a row, including blank ones, so callers can
        rely on row i belonging to texts[i].

        Raises:
        -------
        ValueError:
            If texts is empty or not a list
        RuntimeError:
            If the model fails
        """
        if not texts:
            raise ValueError("texts cannot be empty")

        if not isinstance(texts, list):
            raise ValueError(f"texts must be a list, got {type(texts)}")

        logger.debug(f"Embedding {len(texts)} texts using {self.model_name}...")

        try:
            embeddings = self.model.encode(
                texts,
                batch_size=self.batch_size,
                show_progress_bar=len(texts) > 100,
                convert_to_numpy=True,
                normalize_embeddings=self.normalize,
                device=self.device
            )
        except Exception as e:
            logger.error(f"Embedding generation failed: {e}")
            raise RuntimeError(
                f"Failed to generate embeddings with {self.model_name}\n"
                f"Texts: {len(texts)}\n"
                f"Error: {e}"
            ) from e

        expected_shape = (len(texts), self.embedding_dim)
        if embeddings.shape != expected_shape:
            raise RuntimeError(
                f"Unexpected embedding shape: {embeddings.shape}, "
                f"expected {expected_shape}"
            )

        return embeddings.astype(np.float32, copy=False)

    def get_model_name(self) -> str:
        return self.model_name

    def get_embedding_dimension(self) -> int:
        return self.embedding_dim
