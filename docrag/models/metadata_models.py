"""
docrag/models/metadata_models.py

Data models shared by ingestion and retrieval.

What is This File?
-------------------
Every value that crosses a component boundary in docrag is a Pydantic model
defined here:

- ExtractedText / ExtractionMetadata : output of the text extractor
- ChunkRecord / ChunkMetadata        : output of the chunker, input of the vector store
- RetrievedChunk / RetrievalResult   : output of the multi-strategy retriever
- RetrievalOptions                   : caller-controlled retrieval switches
- IngestionResult / IngestionJob     : document lifecycle records

Chunk Metadata in the Vector Store:
-----------------------------------
ChromaDB only accepts flat scalar metadata (str, int, float, bool; no None,
no nesting). ChunkMetadata therefore has an explicit serialisation pair:

    flat = chunk.metadata.to_store_metadata()
    again = ChunkMetadata.from_store_metadata(flat, file_id="file_123")

Known fields are typed; anything else an extractor wants to record goes into
the `extra` extension map and is stored under an "x_" prefix so it can never
shadow a known field.

References:
-----------
- Pydantic Docs: https://docs.pydantic.dev/
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Union
from datetime import datetime, timezone
from enum import Enum

MetadataValue = Union[str, int, float, bool]

EXTRA_PREFIX = "x_"


# =============================================================================
# ENUMS
# =============================================================================

class DocumentStatus(str, Enum):
    """
    Processing status of an uploaded document.

    pending -> processing -> completed | failed
    Only the ingestion pipeline moves a document between states.
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QueryType(str, Enum):
    """Intent of a user question, decides the retrieval strategy."""
    OVERVIEW = "overview"  # summaries, outlines, "what is covered"
    EXPLANATION = "explanation"  # explain / describe / define
    SPECIFIC = "specific"  # everything else


class ChunkSource(str, Enum):
    """Which retrieval strategy found a chunk."""
    SEMANTIC = "semantic"
    STRUCTURAL = "structural"
    BOUNDARY = "boundary"


# =============================================================================
# EXTRACTION
# =============================================================================

class ExtractionMetadata(BaseModel):
    """Facts the extractor learned about a document."""
    page_count: Optional[int] = Field(default=None, ge=0, description="Pages (PDF only)")
    is_scanned: bool = Field(default=False, description="PDF had no usable text layer")
    ocr_engine: Optional[str] = Field(default=None, description="OCR engine that produced the text")
    format: Optional[str] = Field(default=None, description="pdf, docx, txt, md or csv")
    extra: Dict[str, MetadataValue] = Field(default_factory=dict, description="Extension map")


class ExtractedText(BaseModel):
    """Plain text of one document plus extraction metadata. Never persisted."""
    model_config = ConfigDict(frozen=True)

    text: str
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)


# =============================================================================
# CHUNKS
# =============================================================================

class ChunkMetadata(BaseModel):
    """
    Metadata stored alongside every chunk vector.

    Fields:
    -------
    file_id, file_name, project_id : ownership of the chunk
    chunk_index, total_chunks      : position inside the file (0-based, contiguous)
    page_count, is_scanned,
    ocr_engine, format             : extraction facts, denormalised per chunk
    extra                          : extension map for anything else

    chunk_index and total_chunks are optional only so that rows written by
    other tools can still be read back; the chunker always sets them.
    """
    file_id: str
    file_name: str = ""
    project_id: Optional[str] = None
    chunk_index: Optional[int] = Field(default=None, ge=0)
    total_chunks: Optional[int] = Field(default=None, ge=0)
    page_count: Optional[int] = None
    is_scanned: bool = False
    ocr_engine: Optional[str] = None
    format: Optional[str] = None
    extra: Dict[str, MetadataValue] = Field(default_factory=dict)

    @property
    def chunk_id(self) -> str:
        return f"{self.file_id}_chunk_{self.chunk_index}"

    @classmethod
    def for_chunk(
            cls,
            file_id: str,
            file_name: str,
            chunk_index: int,
            total_chunks: int,
            project_id: Optional[str] = None,
            extraction: Optional[ExtractionMetadata] = None
    ) -> "ChunkMetadata":
        """Build chunk metadata, copying the extraction facts onto the chunk."""
        extraction = extraction or ExtractionMetadata()
        return cls(
            file_id=file_id,
            file_name=file_name,
            project_id=project_id,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            page_count=extraction.page_count,
            is_scanned=extraction.is_scanned,
            ocr_engine=extraction.ocr_engine,
            format=extraction.format,
            extra=dict(extraction.extra),
        )

    def to_store_metadata(self) -> Dict[str, MetadataValue]:
        """
        Flatten to a ChromaDB-compatible dict.

        None values are dropped (ChromaDB rejects them); extension keys are
        prefixed with "x_".
        """
        flat: Dict[str, MetadataValue] = {}
        for key, value in self.model_dump(exclude={"extra"}).items():
            if value is not None:
                flat[key] = value
        for key, value in self.extra.items():
            flat[f"{EXTRA_PREFIX}{key}"] = value
        return flat

    @classmethod
    def from_store_metadata(
            cls,
            metadata: Optional[Dict[str, Any]],
            file_id: Optional[str] = None
    ) -> "ChunkMetadata":
        """
        Rebuild from a stored metadata dict.

        Tolerant of rows missing any field: file_id falls back to the
        collection's file id, unknown keys go to `extra`.
        """
        metadata = dict(metadata or {})
        known = set(cls.model_fields) - {"extra"}
        values: Dict[str, Any] = {}
        extra: Dict[str, MetadataValue] = {}

        for key, value in metadata.items():
            if key in known:
                values[key] = value
            elif key.startswith(EXTRA_PREFIX):
                extra[key[len(EXTRA_PREFIX):]] = value
            elif isinstance(value, (str, int, float, bool)):
                extra[key] = value

        values.setdefault("file_id", file_id or "")
        return cls(**values, extra=extra)


class ChunkRecord(BaseModel):
    """One chunk ready to be embedded and stored."""
    chunk_id: str
    text: str
    metadata: ChunkMetadata


# =============================================================================
# RETRIEVAL
# =============================================================================

class RetrievalOptions(BaseModel):
    """Caller switches for a retrieval call."""
    rerank_results: bool = Field(default=True, description="Apply composite reranking")
    diversity_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0,
        description="Jaccard similarity at or above which a chunk counts as a near-duplicate"
    )
    enable_smart_retrieval: bool = Field(
        default=True, description="Use the overview strategy for overview questions"
    )


class RetrievedChunk(BaseModel):
    """A chunk returned by retrieval, with its (possibly adjusted) distance."""
    chunk_id: str
    document: str
    metadata: ChunkMetadata
    distance: float
    file_id: str
    source: ChunkSource = ChunkSource.SEMANTIC
    score: Optional[float] = Field(default=None, description="Rerank composite score")

    @property
    def chunk_index(self) -> Optional[int]:
        return self.metadata.chunk_index


class RetrievalResult(BaseModel):
    """
    Fully materialised retrieval output.

    total_chunks counts the fused candidates before diversity filtering and
    truncation; files_queried lists (in request order) the files that
    contributed at least one candidate.
    """
    chunks: List[RetrievedChunk] = Field(default_factory=list)
    total_chunks: int = 0
    files_queried: List[str] = Field(default_factory=list)
    query_type: QueryType = QueryType.SPECIFIC

    @classmethod
    def empty(cls, query_type: QueryType = QueryType.SPECIFIC) -> "RetrievalResult":
        return cls(query_type=query_type)

    @property
    def documents(self) -> List[str]:
        return [chunk.document for chunk in self.chunks]

    @property
    def metadatas(self) -> List[ChunkMetadata]:
        return [chunk.metadata for chunk in self.chunks]

    @property
    def distances(self) -> List[float]:
        return [chunk.distance for chunk in self.chunks]

    def is_empty(self) -> bool:
        return not self.chunks


# =============================================================================
# INGESTION
# =============================================================================

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionResult(BaseModel):
    """Outcome of ingesting one file."""
    file_id: str
    status: DocumentStatus
    chunk_count: int = 0
    collection_id: Optional[str] = None
    metadata: Optional[ExtractionMetadata] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None


class IngestionJob(BaseModel):
    """Tracked background ingestion of one file."""
    file_id: str
    file_name: str
    status: DocumentStatus = DocumentStatus.PENDING
    submitted_at: datetime = Field(default_factory=_utcnow)
    result: Optional[IngestionResult] = None

    @property
    def done(self) -> bool:
        return self.status in (DocumentStatus.COMPLETED, DocumentStatus.FAILED)
