"""

docrag/core/vectorstores/chromadb_store.py

ChromaDB vector store adapter with one collection per file.

What is ChromaDB?
------------------
An open-source embedding database: HNSW index for approximate nearest
neighbour search, SQLite for metadata, file-based persistence. It runs
in-process (PersistentClient) or as a server (HttpClient).

Collection Layout:
------------------
Each uploaded file gets its own collection named by its file id:

    file_123  ->  file_123_chunk_0, file_123_chunk_1, ...
    file_456  ->  file_456_chunk_0, ...

- Querying a set of files = querying each file's collection (the retriever
  fans these out in parallel)
- Deleting a file = dropping its collection, nothing can be left behind
- Re-ingesting a file upserts by chunk id

Collections are created without an embedding function: docrag always
supplies vectors itself, so Chroma never downloads its default model.

Metadata Limitations:
---------------------
- Values must be: str, int, float, or bool
- No nested dicts or lists
- No None values
ChunkMetadata.to_store_metadata() produces exactly that.

References:
-----------
- Documentation: https://docs.trychroma.com/

"""

from typing import List, Dict, Any, Optional
import numpy as np
import chromadb
from pathlib import Path
from docrag.core.exceptions import CollectionNotFoundError
from docrag.core.interfaces.vectorstore_interface import VectorStoreInterface
import logging

# Configure logging
logger = logging.getLogger(__name__)


def _is_missing_collection(error: Exception) -> bool:
    """
    True when a Chroma error means "collection does not exist".

    Chroma has reported this as ValueError, InvalidCollectionException and
    NotFoundError across releases.
    """
    if type(error).__name__ in ("NotFoundError", "InvalidCollectionException"):
        return True
    return "does not exist" in str(error).lower()


class ChromaDBStore(VectorStoreInterface):
    """
    ChromaDB adapter with per-file collections.

    Configuration Parameters:
    -------------------------
    persist_directory : str
        Directory for local persistence (persistent mode)
    mode : str
        "persistent" (in-process, on disk) or "http" (Chroma server)
    host, port : str, int
        Chroma server address (http mode)
    distance_metric : str
        hnsw:space for new collections: "cosine" (default), "l2" or "ip"

    Example Usage:
    --------------
    store = ChromaDBStore(persist_directory="./data/chroma_db")

    store.add("file_123", ids, embeddings, documents, metadatas)
    hits = store.query("file_123", query_embedding, top_k=5)
    store.delete_collection("file_123")
    """

    def __init__(
            self,
            persist_directory: str = "./data/chroma_db",
            mode: str = "persistent",
            host: str = "localhost",
            port: int = 8000,
            distance_metric: str = "cosine"
    ):
        self.persist_directory = persist_directory
        self.mode = mode
        self.distance_metric = distance_metric

        logger.info(
            f"Initializing ChromaDB store:\n"
            f"  Mode: {mode}\n"
            f"  Location: {persist_directory if mode == 'persistent' else f'{host}:{port}'}"
        )

        try:
            if mode == "http":
                self.client = chromadb.HttpClient(host=host, port=port)
            else:
                persist_path = Path(persist_directory)
                persist_path.mkdir(parents=True, exist_ok=True)
                self.client = chromadb.PersistentClient(path=str(persist_path))

            logger.info(
                f"✅ ChromaDB initialized successfully!\n"
                f"   Distance metric: {distance_metric}"
            )

        except Exception as e:
            logger.error(f"Failed to initialize ChromaDB: {e}", exc_info=True)
            raise RuntimeError(
                f"Could not initialize ChromaDB\n"
                f"Mode: {mode}\n"
                f"Directory: {persist_directory}\n"
                f"Error: {str(e)}"
            ) from e

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    def create_or_get_collection(self, file_id: str):
        try:
            return self.client.get_or_create_collection(
                name=file_id,
                metadata={"hnsw:space": self.distance_metric},
                embedding_function=None
            )
        except Exception as e:
            logger.error(f"Failed to create collection for file {file_id}: {e}")
            raise RuntimeError(
                f"Failed to create ChromaDB collection\n"
                f"File: {file_id}\n"
                f"Error: {e}"
            ) from e

    def _get_existing_collection(self, file_id: str):
        """Return the file's collection or raise CollectionNotFoundError."""
        try:
            return self.client.get_collection(name=file_id, embedding_function=None)
        except Exception as e:
            if _is_missing_collection(e):
                raise CollectionNotFoundError(file_id) from e
            logger.error(f"Failed to open collection for file {file_id}: {e}")
            raise RuntimeError(
                f"Failed to open ChromaDB collection\n"
                f"File: {file_id}\n"
                f"Error: {e}"
            ) from e

    def delete_collection(self, file_id: str) -> None:
        """Drop the file's collection. A file without a collection is a no-op."""
        logger.info(f"Deleting collection for file: {file_id}")

        try:
            self.client.delete_collection(name=file_id)
            logger.info(f"✅ Deleted collection: {file_id}")
        except Exception as e:
            if _is_missing_collection(e):
                logger.debug(f"No collection to delete for file: {file_id}")
                return
            logger.error(f"Deletion failed: {e}")
            raise RuntimeError(
                f"Failed to delete collection for file: {file_id}\n"
                f"Error: {e}"
            ) from e

    def count(self, file_id: str) -> int:
        try:
            return self._get_existing_collection(file_id).count()
        except CollectionNotFoundError:
            return 0

    # =========================================================================
    # WRITE
    # =========================================================================

    def add(
            self,
            file_id: str,
            ids: List[str],
            embeddings: np.ndarray,
            documents: List[str],
            metadatas: List[Dict[str, Any]]
    ) -> None:
        """
        Upsert chunks into the file's collection (created if needed).

        Raises:
        -------
        ValueError:
            If the four inputs differ in length or embeddings is not 2D
        RuntimeError:
            If the upsert fails
        """
        embeddings = np.asarray(embeddings, dtype=np.float32)

        if not (len(ids) == len(documents) == len(metadatas) == len(embeddings)):
            raise ValueError(
                f"ids ({len(ids)}), documents ({len(documents)}), metadatas ({len(metadatas)}) "
                f"and embeddings ({len(embeddings)}) must have the same length"
            )

        if len(ids) == 0:
            logger.warning(f"Add called with no chunks for file {file_id}")
            return

        if embeddings.ndim != 2:
            raise ValueError(
                f"Embeddings must be 2D array, got shape: {embeddings.shape}"
            )

        collection = self.create_or_get_collection(file_id)
        logger.info(f"Upserting {len(ids)} chunks to collection {file_id}...")

        try:
            collection.upsert(
                ids=list(ids),
                documents=list(documents),
                embeddings=embeddings.tolist(),
                metadatas=list(metadatas)
            )

            logger.info(
                f"✅ Upsert successful!\n"
                f"   Upserted: {len(ids)} chunks\n"
                f"   Total vectors in collection: {collection.count():,}\n"
                f"   Collection: {file_id}"
            )

        except Exception as e:
            logger.error(f"Upsert failed: {e}")
            raise RuntimeError(
                f"Failed to upsert chunks to ChromaDB\n"
                f"Collection: {file_id}\n"
                f"Chunks: {len(ids)}\n"
                f"Error: {e}"
            ) from e

    # =========================================================================
    # READ
    # =========================================================================

    def query(
            self,
            file_id: str,
            query_embedding: np.ndarray,
            top_k: int,
            where: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Nearest chunks of one file, ascending distance.

        top_k larger than the collection returns the whole collection.

        Raises:
        -------
        CollectionNotFoundError:
            If the file has no collection
        """
        query_embedding = np.asarray(query_embedding, dtype=np.float32)
        if query_embedding.ndim != 1:
            raise ValueError(
                f"Query embedding must be 1D array, got shape: {query_embedding.shape}"
            )

        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")

        collection = self._get_existing_collection(file_id)

        try:
            available = collection.count()
            if available == 0:
                return []

            results = collection.query(
                query_embeddings=[query_embedding.tolist()],
                n_results=min(top_k, available),
                where=where,
                include=["documents", "metadatas", "distances"]
            )
        except Exception as e:
            logger.error(f"Search failed: {e}")
            raise RuntimeError(
                f"Failed to search ChromaDB\n"
                f"Collection: {file_id}\n"
                f"top_k: {top_k}\n"
                f"Filters: {where}\n"
                f"Error: {e}"
            ) from e

        formatted = self._format_query_results(results)
        logger.debug(f"Found {len(formatted)} results in {file_id}")
        return formatted

    def get(
            self,
            file_id: str,
            where: Optional[Dict[str, Any]] = None,
            limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch chunks of one file by metadata filter, in store order.

        Raises:
        -------
        CollectionNotFoundError:
            If the file has no collection
        """
        collection = self._get_existing_collection(file_id)

        try:
            results = collection.get(
                where=where,
                limit=limit,
                include=["documents", "metadatas"]
            )
        except Exception as e:
            logger.error(f"Get failed: {e}")
            raise RuntimeError(
                f"Failed to fetch chunks from ChromaDB\n"
                f"Collection: {file_id}\n"
                f"Filters: {where}\n"
                f"Error: {e}"
            ) from e

        return [
            {
                'id': chunk_id,
                'document': results['documents'][i],
                'metadata': results['metadatas'][i] or {},
                'distance': None,
            }
            for i, chunk_id in enumerate(results['ids'])
        ]

    # =========================================================================
    # HELPER METHODS (Private)
    # =========================================================================

    def _format_query_results(self, results: Dict) -> List[Dict[str, Any]]:
        """
        Flatten Chroma's nested per-query lists into a list of dicts.
        """
        if not results['ids'] or not results['ids'][0]:
            return []

        formatted = []
        distances = results.get('distances')

        for i in range(len(results['ids'][0])):
            formatted.append({
                'id': results['ids'][0][i],
                'document': results['documents'][0][i],
                'metadata': results['metadatas'][0][i] or {},
                'distance': distances[0][i] if distances else None
            })

        return formatted
