"""
docrag/core/services/document_service.py

Service layer: the single entry point used by the upload handler, the chat
handler and the CLI.

What is the Service Layer?
---------------------------
Callers never touch factories, pipelines or vector stores directly. They call
DocumentService, which owns one instance of every component (built from
configuration) and exposes the operations of the surrounding application:

Upload handler:
    ingest_document()      synchronous ingestion, returns IngestionResult
    submit_ingestion()     background ingestion, returns a tracked IngestionJob
    get_ingestion_job()    observe a background job

Chat handler:
    query_documents()      multi-strategy retrieval → RetrievalResult
    build_context()        retrieval + context assembly, never raises

File management:
    get_file_chunks()      stored chunks of one file in document order
    delete_file()          drop a file's collection (all its vectors)

Architecture Position:
----------------------
Upload / chat handler, CLI
    ↓ calls ONLY
**Service Layer (DocumentService)** ← YOU ARE HERE
    ↓ delegates to
IngestionPipeline, MultiStrategyRetriever, context builder
    ↓ use
Factories → embeddings, vector store, OCR engines

Example Usage:
--------------
service = DocumentService()

result = service.ingest_document(
    file_id="file_123",
    file_name="handbook.pdf",
    mime_type="application/pdf",
    data=pdf_bytes,
)

context, metrics = service.build_context("Give me an overview of chapter 2", ["file_123"])
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple
import logging
import threading
import time

from docrag.core.chunking.recursive_chunker import RecursiveChunker
from docrag.core.config_manager import ConfigManager
from docrag.core.embeddings.embedding_cache import CachedEmbedder
from docrag.core.exceptions import CollectionNotFoundError, UnsupportedTypeError
from docrag.core.factories.embedding_factory import EmbeddingFactory
from docrag.core.factories.ocr_factory import OCRFactory
from docrag.core.factories.vector_store_factory import VectorStoreFactory
from docrag.core.interfaces.vectorstore_interface import VectorStoreInterface
from docrag.core.pipeline.ingestion_pipeline import IngestionPipeline, StatusCallback
from docrag.core.prompts.context_builder import build_rag_context
from docrag.core.retrievals.multi_strategy_retrieval import MultiStrategyRetriever
from docrag.core.retrievals.query_classifier import classify_query
from docrag.core.utils.file_parsers import TextExtractor, is_valid_document_type
from docrag.models.metadata_models import (
    ChunkMetadata,
    ChunkRecord,
    DocumentStatus,
    IngestionJob,
    IngestionResult,
    QueryType,
    RetrievalOptions,
    RetrievalResult,
)
from docrag.models.rag_config import RAGConfig

logger = logging.getLogger(__name__)


class DocumentService:
    """
    High-level document APIs over ingestion and retrieval.

    Parameters:
    -----------
    config : RAGConfig, optional
        Validated configuration; loaded with ConfigManager when omitted
    profile : str, optional
        Profile to merge over the global config (only used when config is omitted)
    extractor, embedder, vector_store : optional
        Pre-built components (tests inject fakes here); built from config otherwise
    status_callback : StatusCallback, optional
        Receives every ingestion status change (file_id, status, result)
    max_ingestion_workers : int
        Threads for background ingestion jobs

    Example:
    --------
    service = DocumentService(profile="gemini")
    job = service.submit_ingestion("file_1", "notes.md", "text/markdown", data=b"# Notes")
    ...
    service.get_ingestion_job("file_1").status   # DocumentStatus.COMPLETED
    """

    def __init__(
            self,
            config: Optional[RAGConfig] = None,
            profile: Optional[str] = None,
            extractor: Optional[TextExtractor] = None,
            embedder: Optional[CachedEmbedder] = None,
            vector_store: Optional[VectorStoreInterface] = None,
            status_callback: Optional[StatusCallback] = None,
            max_ingestion_workers: int = 2
    ):
        self.config = config or ConfigManager().load_config(profile)

        logger.info(f"Initializing DocumentService (config: {self.config.name})")

        self.extractor = extractor or TextExtractor(
            ocr_engines=OCRFactory.create_chain(self.config.ocr),
            min_chars_per_page=self.config.extraction.min_chars_per_page,
            fetch_timeout=self.config.extraction.fetch_timeout_seconds,
        )
        self.embedder = embedder or EmbeddingFactory.create_cached_embedder(
            self.config.embeddings, self.config.embedding_cache
        )
        self.vector_store = vector_store or VectorStoreFactory.create_vector_store(self.config.vector_store)

        self._status_callback = status_callback
        self.pipeline = IngestionPipeline(
            extractor=self.extractor,
            chunker=RecursiveChunker(self.config.chunking),
            embedder=self.embedder,
            vector_store=self.vector_store,
            status_callback=self._on_status,
        )
        self.retriever = MultiStrategyRetriever(
            vector_store=self.vector_store,
            embedder=self.embedder,
            config=self.config.retrieval,
        )

        self._jobs: Dict[str, IngestionJob] = {}
        self._jobs_lock = threading.Lock()
        self._ingestion_executor = ThreadPoolExecutor(
            max_workers=max_ingestion_workers,
            thread_name_prefix="docrag-ingestion"
        )

        logger.info(f"✅ DocumentService initialized (embeddings: {self.embedder.get_model_name()})")

    def close(self) -> None:
        """Wait for background ingestion and release worker threads."""
        self._ingestion_executor.shutdown(wait=True)
        self.retriever.close()

    # =========================================================================
    # INGESTION
    # =========================================================================

    def ingest_document(
            self,
            file_id: str,
            file_name: str,
            mime_type: str,
            data: Optional[bytes] = None,
            file_url: Optional[str] = None,
            project_id: Optional[str] = None
    ) -> IngestionResult:
        """
        Ingest one document and wait for it.

        Raises whatever the pipeline raises (UnsupportedTypeError before any
        status change, everything else after status failed was reported).
        """
        return self.pipeline.ingest(
            file_id=file_id,
            file_name=file_name,
            mime_type=mime_type,
            data=data,
            file_url=file_url,
            project_id=project_id,
        )

    def submit_ingestion(
            self,
            file_id: str,
            file_name: str,
            mime_type: str,
            data: Optional[bytes] = None,
            file_url: Optional[str] = None,
            project_id: Optional[str] = None
    ) -> IngestionJob:
        """
        Start ingestion in the background and return its tracked job.

        The upload response does not wait for OCR or embedding. The job's
        status follows pending → processing → completed | failed, and its
        result (including the error message on failure) is available from
        get_ingestion_job().

        Raises:
        -------
        UnsupportedTypeError:
            Immediately, no job is created
        """
        if not is_valid_document_type(mime_type):
            raise UnsupportedTypeError(
                f"Unsupported file type: {mime_type}\n"
                f"File: {file_name} ({file_id})"
            )

        job = IngestionJob(file_id=file_id, file_name=file_name)
        with self._jobs_lock:
            self._jobs[file_id] = job

        self._ingestion_executor.submit(
            self._run_job, file_id, file_name, mime_type, data, file_url, project_id
        )

        logger.info(f"Queued ingestion of {file_name} ({file_id})")
        return job.model_copy()

    def get_ingestion_job(self, file_id: str) -> Optional[IngestionJob]:
        """Snapshot of the background job for file_id, or None."""
        with self._jobs_lock:
            job = self._jobs.get(file_id)
            return job.model_copy() if job else None

    def _run_job(
            self,
            file_id: str,
            file_name: str,
            mime_type: str,
            data: Optional[bytes],
            file_url: Optional[str],
            project_id: Optional[str]
    ) -> None:
        try:
            self.ingest_document(file_id, file_name, mime_type, data, file_url, project_id)
        except Exception as e:
            # Failure is already recorded on the job by _on_status
            logger.warning(f"Background ingestion of {file_id} failed: {e}")

    def _on_status(
            self,
            file_id: str,
            status: DocumentStatus,
            result: Optional[IngestionResult]
    ) -> None:
        with self._jobs_lock:
            job = self._jobs.get(file_id)
            if job is not None:
                job.status = status
                if result is not None:
                    job.result = result

        if self._status_callback is not None:
            self._status_callback(file_id, status, result)

    # =========================================================================
    # RETRIEVAL
    # =========================================================================

    def default_n_results(self, query: str) -> int:
        """More chunks for overview questions than for everything else."""
        if classify_query(query) == QueryType.OVERVIEW:
            return self.config.retrieval.overview_n_results
        return self.config.retrieval.default_n_results

    def query_documents(
            self,
            query: str,
            file_ids: List[str],
            n_results: Optional[int] = None,
            options: Optional[RetrievalOptions] = None,
            multi_query: bool = False
    ) -> RetrievalResult:
        """
        Multi-strategy retrieval across the selected files.

        Parameters:
        -----------
        query : str
            User question
        file_ids : List[str]
            Files selected for this chat turn
        n_results : int, optional
            Defaults to 25 for overview questions, 10 otherwise
        options : RetrievalOptions, optional
            Rerank / diversity / smart retrieval switches
        multi_query : bool
            Retrieve with several rephrasings of the question and merge

        Raises:
        -------
        EncodingError:
            If the question cannot be embedded
        """
        n_results = n_results or self.default_n_results(query)

        if multi_query:
            return self.retriever.retrieve_multi_query(query, file_ids, n_results, options)
        return self.retriever.retrieve(query, file_ids, n_results, options)

    def build_context(
            self,
            query: str,
            file_ids: List[str],
            n_results: Optional[int] = None,
            options: Optional[RetrievalOptions] = None,
            multi_query: bool = False
    ) -> Tuple[str, Dict[str, Any]]:
        """
        Retrieve and format context for the language model.

        Retrieval failures degrade to an empty context so the chat turn can
        still be answered. multi_query retrieves with rephrasings of the
        question, as in query_documents.

        Returns:
        --------
        Tuple[str, Dict[str, Any]]:
            (context, metrics) where metrics holds documents_retrieved,
            files_queried, total_chunks, retrieval_strategy, multi_query, context_length,
            elapsed_ms and, on failure, error
        """
        metrics: Dict[str, Any] = {
            'documents_retrieved': 0,
            'files_queried': 0,
            'total_chunks': 0,
            'retrieval_strategy': 'none',
            'context_length': 0,
        }

        if not file_ids:
            return "", metrics

        start = time.perf_counter()
        try:
            result = self.query_documents(query, file_ids, n_results, options, multi_query=multi_query)
        except Exception as e:
            logger.error(f"Error retrieving context, continuing without it: {e}")
            metrics['error'] = str(e)
            metrics['elapsed_ms'] = round((time.perf_counter() - start) * 1000, 1)
            return "", metrics

        context = build_rag_context(result, query)

        metrics.update({
            'documents_retrieved': len(result.chunks),
            'files_queried': len(result.files_queried),
            'total_chunks': result.total_chunks,
            'retrieval_strategy': result.query_type.value,
            'multi_query': multi_query,
            'context_length': len(context),
            'elapsed_ms': round((time.perf_counter() - start) * 1000, 1),
        })

        if context:
            logger.info(f"RAG context statistics: {metrics}")
        else:
            logger.info(f"No relevant documents found for query: {query[:100]}")

        return context, metrics

    # =========================================================================
    # FILE MANAGEMENT
    # =========================================================================

    def get_file_chunks(self, file_id: str) -> List[ChunkRecord]:
        """
        All stored chunks of a file in document order.

        Returns an empty list when the file has no collection.
        """
        try:
            rows = self.vector_store.get(file_id)
        except CollectionNotFoundError:
            logger.warning(f"No collection found for file {file_id}")
            return []

        records = [
            ChunkRecord(
                chunk_id=row['id'],
                text=row.get('document') or '',
                metadata=ChunkMetadata.from_store_metadata(row.get('metadata'), file_id=file_id),
            )
            for row in rows
        ]
        records.sort(
            key=lambda record: (
                record.metadata.chunk_index is None,
                record.metadata.chunk_index or 0,
            )
        )
        return records

    def delete_file(self, file_id: str) -> None:
        """Drop the file's collection and every vector in it."""
        self.vector_store.delete_collection(file_id)
        with self._jobs_lock:
            self._jobs.pop(file_id, None)
        logger.info(f"✅ Deleted collection for file {file_id}")
