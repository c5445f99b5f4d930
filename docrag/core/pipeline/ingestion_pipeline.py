"""
docrag/core/pipeline/ingestion_pipeline.py

Document ingestion pipeline: bytes → text → chunks → vectors → collection.

What is the Ingestion Pipeline?
-------------------------------
IngestionPipeline owns the lifecycle of one uploaded document:

    pending ──► processing ──► completed
                    │
                    └────────► failed

1. Validate the MIME type (UnsupportedTypeError, no status change)
2. Report "processing"
3. Obtain the bytes (given directly, or downloaded from file_url)
4. Extract text (OCR for scanned PDFs)
5. Split into overlapping chunks
6. Embed all chunks through the embedding cache
7. Replace the file's collection with the new chunks
8. Report "completed" with chunk count and extraction metadata

Any failure after step 2 reports "failed" and re-raises the original error;
there is no internal retry, a failed document is recovered by uploading it
again.

Status Write-Back:
------------------
Status changes are the only side effect besides vector-store writes. They are
delivered to an optional callback so the caller can persist them against its
own document record:

    def on_status(file_id: str, status: DocumentStatus, result: Optional[IngestionResult]):
        db.update_file(file_id, status=status.value)

    pipeline = IngestionPipeline(extractor, chunker, embedder, store, status_callback=on_status)

Example Usage:
--------------
pipeline = IngestionPipeline(extractor, RecursiveChunker(), embedder, store)

with open("handbook.pdf", "rb") as f:
    result = pipeline.ingest(
        file_id="file_123",
        file_name="handbook.pdf",
        mime_type="application/pdf",
        data=f.read(),
    )

print(result.status, result.chunk_count, result.metadata.is_scanned)
"""

from datetime import datetime, timezone
from typing import Callable, Optional
import logging

from docrag.core.chunking.recursive_chunker import RecursiveChunker
from docrag.core.embeddings.embedding_cache import CachedEmbedder
from docrag.core.exceptions import UnsupportedTypeError
from docrag.core.interfaces.vectorstore_interface import VectorStoreInterface
from docrag.core.utils.file_parsers import TextExtractor, is_valid_document_type
from docrag.core.utils.hashing import compute_bytes_hash
from docrag.models.metadata_models import DocumentStatus, IngestionResult

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, DocumentStatus, Optional[IngestionResult]], None]


class IngestionPipeline:
    """
    Orchestrates extraction, chunking, embedding and storage of one document.

    Parameters:
    -----------
    extractor : TextExtractor
        MIME-dispatched text extraction (with OCR chain)
    chunker : RecursiveChunker
        Overlapping boundary-aware chunker
    embedder : CachedEmbedder
        Embedding provider behind the content-addressed cache
    vector_store : VectorStoreInterface
        Per-file collections
    status_callback : StatusCallback, optional
        Receives (file_id, status, result) on every status change
    """

    def __init__(
            self,
            extractor: TextExtractor,
            chunker: RecursiveChunker,
            embedder: CachedEmbedder,
            vector_store: VectorStoreInterface,
            status_callback: Optional[StatusCallback] = None
    ):
        self.extractor = extractor
        self.chunker = chunker
        self.embedder = embedder
        self.vector_store = vector_store
        self.status_callback = status_callback

    def ingest(
            self,
            file_id: str,
            file_name: str,
            mime_type: str,
            data: Optional[bytes] = None,
            file_url: Optional[str] = None,
            project_id: Optional[str] = None
    ) -> IngestionResult:
        """
        Ingest one document end-to-end.

        Parameters:
        -----------
        file_id : str
            Document identifier; also the collection name
        file_name : str
            Display name, denormalised onto every chunk
        mime_type : str
            Declared MIME type of the document
        data : bytes, optional
            Document bytes (takes precedence over file_url)
        file_url : str, optional
            Where to download the bytes from when data is not given
        project_id : str, optional
            Owning project, denormalised onto every chunk

        Returns:
        --------
        IngestionResult:
            status completed, chunk count, collection id and extraction metadata

        Raises:
        -------
        UnsupportedTypeError:
            Before any status change, for MIME types without an extractor
        ValueError:
            Before any status change, when neither data nor file_url is given
        ExtractionError, EmptyInputError, EncodingError, RuntimeError:
            After reporting status failed
        """
        if not is_valid_document_type(mime_type):
            logger.error(f"Rejected {file_name} ({file_id}): unsupported type {mime_type}")
            raise UnsupportedTypeError(
                f"Unsupported file type: {mime_type}\n"
                f"File: {file_name} ({file_id})"
            )

        if data is None and not file_url:
            raise ValueError(f"Either data or file_url is required to ingest {file_id}")

        started_at = datetime.now(timezone.utc)
        logger.info(f"Ingesting {file_name} ({file_id}, {mime_type})")
        self._notify(file_id, DocumentStatus.PROCESSING, None)

        try:
            result = self._run(
                file_id, file_name, mime_type, data, file_url, project_id, started_at
            )
        except Exception as e:
            logger.error(f"Ingestion failed for {file_name} ({file_id}): {e}")
            failed = IngestionResult(
                file_id=file_id,
                status=DocumentStatus.FAILED,
                error=str(e),
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )
            try:
                self._notify(file_id, DocumentStatus.FAILED, failed)
            except Exception as callback_error:
                logger.error(f"Status callback failed for {file_id}: {callback_error}")
            raise

        self._notify(file_id, DocumentStatus.COMPLETED, result)
        return result

    def _run(
            self,
            file_id: str,
            file_name: str,
            mime_type: str,
            data: Optional[bytes],
            file_url: Optional[str],
            project_id: Optional[str],
            started_at: datetime
    ) -> IngestionResult:
        # Step 1: Source bytes
        if data is None:
            data = self.extractor.fetch_source(file_url)

        # Step 2: Extract
        extracted = self.extractor.extract(data, mime_type)
        metadata = extracted.metadata.model_copy(update={
            "extra": {**extracted.metadata.extra, 'source_sha256': compute_bytes_hash(data)}
        })
        logger.info(
            f"✅ Extracted {len(extracted.text):,} characters "
            f"(scanned={metadata.is_scanned}, ocr={metadata.ocr_engine})"
        )

        # Step 3: Chunk
        chunks = self.chunker.chunk_document(
            extracted.text,
            file_id=file_id,
            file_name=file_name,
            project_id=project_id,
            extraction=metadata,
        )
        logger.info(f"✅ Created {len(chunks)} chunks")

        # Step 4: Embed
        embeddings = self.embedder.embed([chunk.text for chunk in chunks])
        logger.info(f"✅ Generated embeddings: shape={embeddings.shape}")

        # Step 5: Store (a re-upload replaces every chunk of the previous version)
        if self.vector_store.count(file_id):
            logger.info(f"Replacing existing collection for {file_id}")
            self.vector_store.delete_collection(file_id)

        self.vector_store.create_or_get_collection(file_id)
        self.vector_store.add(
            file_id,
            ids=[chunk.chunk_id for chunk in chunks],
            embeddings=embeddings,
            documents=[chunk.text for chunk in chunks],
            metadatas=[chunk.metadata.to_store_metadata() for chunk in chunks],
        )

        logger.info(f"✅ Stored {len(chunks)} chunks for {file_name} ({file_id})")

        return IngestionResult(
            file_id=file_id,
            status=DocumentStatus.COMPLETED,
            chunk_count=len(chunks),
            collection_id=file_id,
            metadata=metadata,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

    def _notify(
            self,
            file_id: str,
            status: DocumentStatus,
            result: Optional[IngestionResult]
    ) -> None:
        logger.debug(f"Status of {file_id}: {status.value}")
        if self.status_callback is not None:
            self.status_callback(file_id, status, result)
