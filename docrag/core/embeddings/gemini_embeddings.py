"""
docrag/core/embeddings/gemini_embeddings.py

Google Gemini embedding provider (cloud API).

Used when the deployment prefers hosted embeddings over a local
Sentence-Transformers model. Requests are batched (API limit: 100 texts per
request), spaced by a short delay, and every request carries a timeout so a
stalled call fails the batch instead of hanging ingestion.

One task type is used for both chunks and queries: cache keys carry the
model and text but not the side asking, so a text must map to the same
vector for chunks and queries.

Requirements:
-------------
- pip install google-generativeai
- GEMINI_API_KEY (see configs/profiles/gemini.yaml)
"""

from typing import List, Optional
import numpy as np
import google.generativeai as genai
from docrag.core.interfaces.embedding_interface import EmbeddingInterface
import logging
import time

# Configure logging
logger = logging.getLogger(__name__)

# Output dimension of published embedding models
KNOWN_DIMENSIONS = {
    "models/text-embedding-004": 768,
    "models/embedding-001": 768,
}


class GeminiEmbeddings(EmbeddingInterface):
    """
    Google Gemini embedding provider.

    Configuration Parameters:
    -------------------------
    api_key : str
        Google API key for Gemini API
    model_name : str
        Gemini embedding model, e.g. "models/text-embedding-004"
    batch_size : int
        Texts per API call (capped at 100)
    task_type : str
        Optimization hint, e.g. "retrieval_document"
    request_timeout : float
        Seconds before a single API call is abandoned

    Example Usage:
    --------------
    embedder = GeminiEmbeddings(api_key=os.getenv("GEMINI_API_KEY"))
    embeddings = embedder.embed_texts(["Hello world", "AI is powerful"])
    print(embeddings.shape)  # (2, 768)
    """

    def __init__(
            self,
            api_key: str,
            model_name: str = "models/text-embedding-004",
            batch_size: int = 100,
            task_type: str = "retrieval_document",
            request_timeout: float = 30.0,
            batch_delay: float = 0.1
    ):
        if not api_key:
            raise ValueError(
                "GEMINI_API_KEY is required for Gemini embeddings.\n"
                "Set environment variable: export GEMINI_API_KEY='your-key'"
            )

        self.model_name = model_name
        self.batch_size = min(batch_size, 100)
        self.task_type = task_type
        self.request_timeout = request_timeout
        self.batch_delay = batch_delay
        self.embedding_dim: Optional[int] = KNOWN_DIMENSIONS.get(model_name)

        logger.info(f"Initializing Gemini API with model: {model_name}...")

        try:
            genai.configure(api_key=api_key)
            logger.info(
                f"✅ Gemini API initialized!\n"
                f"   Model: {model_name}\n"
                f"   Batch size: {self.batch_size}\n"
                f"   Task type: {task_type}"
            )
        except Exception as e:
            logger.error(f"Failed to initialize Gemini API: {e}")
            raise RuntimeError(
                f"Could not initialize Gemini API\n"
                f"Error: {e}\n"
                f"Check API key and internet connection"
            ) from e

    def embed_texts(self, texts: List[str]) -> np.ndarray:
        """
        Generate embeddings using Gemini API.

        Parameters:
        -----------
        texts : List[str]
            Texts to embed; row i of the result belongs to texts[i]

        Returns:
        --------
        np.ndarray:
            2D float32 array of shape (n_texts, embedding_dim)

        Raises:
        -------
        ValueError:
            If texts is empty
        RuntimeError:
            If any API request fails or times out
        """
        if not texts:
            raise ValueError("texts cannot be empty")

        logger.debug(f"Embedding {len(texts)} texts using Gemini API...")

        all_embeddings = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i:i + self.batch_size]
            batch_num = i // self.batch_size + 1

            try:
                start = time.time()
                result = genai.embed_content(
                    model=self.model_name,
                    content=batch,
                    task_type=self.task_type,
                    request_options={"timeout": self.request_timeout}
                )
                api_time = time.time() - start

                vectors = result['embedding']
                # A single-text request comes back as one flat vector
                if vectors and not isinstance(vectors[0], (list, tuple)):
                    vectors = [vectors]
                all_embeddings.extend(vectors)

                logger.debug(
                    f"Batch {batch_num}/{total_batches} completed in {api_time:.2f}s"
                )

                if i + self.batch_size < len(texts):
                    time.sleep(self.batch_delay)

            except Exception as e:
                logger.error(f"Gemini API call failed for batch {batch_num}: {e}")
                raise RuntimeError(
                    f"Failed to generate embeddings using Gemini API\n"
                    f"Batch: {batch_num}/{total_batches}\n"
                    f"Error: {e}"
                ) from e

        embeddings = np.array(all_embeddings, dtype=np.float32)

        if embeddings.ndim != 2 or embeddings.shape[0] != len(texts):
            raise RuntimeError(
                f"Unexpected embedding shape: {embeddings.shape}, "
                f"expected ({len(texts)}, dim)"
            )

        self.embedding_dim = embeddings.shape[1]
        return embeddings

    def get_model_name(self) -> str:
        return self.model_name

    def get_embedding_dimension(self) -> int:
        """Embedding dimension; known for published models, otherwise learned from one request."""
        if self.embedding_dim is None:
            self.embed_texts(["dimension check"])
        return self.embedding_dim
