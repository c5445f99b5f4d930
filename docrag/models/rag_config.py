"""
docrag/models/rag_config.py

Pydantic configuration schemas for docrag.

Every tunable of ingestion and retrieval lives here with its production
default, so a YAML file (see configs/global_config.yaml) can override any of
them without code changes:

    embeddings:        provider, model, batching, timeouts
    embedding_cache:   LRU bounds
    chunking:          chunk size and overlap
    vector_store:      ChromaDB location and distance metric
    extraction:        scanned-PDF heuristic, fetch timeout
    ocr:               primary/secondary engines, page chunking, delays
    retrieval:         result counts, overview budgets, rerank weights, timeouts
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""
    provider: str = Field(default="sentence_transformers", description="sentence_transformers or gemini")
    model_name: str = Field(default="all-MiniLM-L6-v2", description="Model name/identifier")
    device: Optional[str] = Field(default="cpu", description="Device for local models: cpu, cuda, mps")
    batch_size: int = Field(default=32, ge=1, le=1000, description="Texts per provider request")
    normalize: bool = Field(default=True, description="L2-normalise local embeddings")
    api_key: Optional[str] = Field(default=None, description="API key for cloud providers (from env)")
    task_type: str = Field(default="retrieval_document", description="Gemini embedding task type")
    request_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")

    @field_validator('provider')
    @classmethod
    def validate_provider(cls, v):
        allowed = ["sentence_transformers", "gemini"]
        if v not in allowed:
            raise ValueError(f"Invalid embedding provider: {v}. Allowed: {allowed}")
        return v


class EmbeddingCacheConfig(BaseModel):
    """Bounds of the process-wide embedding cache."""
    enabled: bool = Field(default=True)
    max_entries: int = Field(default=10_000, ge=1, description="Maximum cached vectors")
    max_bytes: int = Field(default=64 * 1024 * 1024, ge=1024, description="Maximum cached vector bytes")


class ChunkingConfig(BaseModel):
    """Recursive chunker configuration."""
    chunk_size: int = Field(default=1000, ge=50, le=10_000, description="Characters per chunk")
    overlap: int = Field(default=200, ge=0, le=5000, description="Characters shared by adjacent chunks")

    @model_validator(mode="after")
    def validate_overlap(self):
        if self.overlap >= self.chunk_size:
            raise ValueError(
                f"overlap ({self.overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        return self


class VectorStoreConfig(BaseModel):
    """ChromaDB configuration. One collection is created per file."""
    provider: str = Field(default="chromadb", description="Vector store provider")
    mode: str = Field(default="persistent", description="persistent (local directory) or http (server)")
    persist_directory: str = Field(default="./data/chroma_db", description="ChromaDB persistence directory")
    host: str = Field(default="localhost", description="ChromaDB server host (http mode)")
    port: int = Field(default=8000, ge=1, le=65535, description="ChromaDB server port (http mode)")
    distance_metric: str = Field(default="cosine", description="hnsw:space of new collections")

    @field_validator('provider')
    @classmethod
    def validate_provider(cls, v):
        if v != "chromadb":
            raise ValueError(f"Invalid vector store provider: {v}. Allowed: ['chromadb']")
        return v

    @field_validator('mode')
    @classmethod
    def validate_mode(cls, v):
        allowed = ["persistent", "http"]
        if v not in allowed:
            raise ValueError(f"Invalid vector store mode: {v}. Allowed: {allowed}")
        return v

    @field_validator('distance_metric')
    @classmethod
    def validate_metric(cls, v):
        allowed = ["cosine", "l2", "ip"]
        if v not in allowed:
            raise ValueError(f"Invalid distance metric: {v}. Allowed: {allowed}")
        return v


class ExtractionConfig(BaseModel):
    """Text extraction configuration."""
    min_chars_per_page: int = Field(
        default=100, ge=0,
        description="A PDF with no more than this many text-layer characters per page is treated as scanned"
    )
    fetch_timeout_seconds: float = Field(default=60.0, gt=0, description="Source download timeout")


class OCRConfig(BaseModel):
    """OCR chain configuration for scanned PDFs."""
    primary: str = Field(default="tesseract", description="Engine tried first on the whole document")
    secondary: Optional[str] = Field(default="gemini", description="Fallback engine, or null to disable")
    tesseract_lang: str = Field(default="eng", description="Tesseract language pack")
    tesseract_dpi: int = Field(default=200, ge=72, le=600, description="Page render resolution")
    tesseract_timeout_seconds: float = Field(default=120.0, gt=0, description="Per-page Tesseract timeout")
    gemini_model: str = Field(default="gemini-1.5-flash", description="Gemini model used for OCR")
    api_key: Optional[str] = Field(default=None, description="Gemini API key (from env)")
    pages_per_chunk: int = Field(default=15, ge=1, le=500, description="Pages per fallback OCR request")
    submit_delay_seconds: float = Field(default=0.1, ge=0, description="Delay between chunk submissions")
    max_workers: int = Field(default=4, ge=1, le=64, description="Parallel fallback OCR requests")
    request_timeout_seconds: float = Field(default=300.0, gt=0, description="Per-request OCR timeout")

    @field_validator('primary', 'secondary')
    @classmethod
    def validate_engine(cls, v):
        allowed = ["tesseract", "gemini"]
        if v is not None and v not in allowed:
            raise ValueError(f"Invalid OCR engine: {v}. Allowed: {allowed}")
        return v


class RetrievalConfig(BaseModel):
    """Multi-strategy retrieval configuration."""
    overview_n_results: int = Field(default=25, ge=1, le=200, description="Chunks for overview questions")
    default_n_results: int = Field(default=10, ge=1, le=200, description="Chunks for other questions")
    rerank_overfetch: int = Field(default=3, ge=1, le=10, description="Candidate multiplier when reranking")
    semantic_fraction: float = Field(default=0.6, ge=0.0, le=1.0, description="Overview semantic budget")
    structural_fraction: float = Field(default=0.4, ge=0.0, le=1.0, description="Overview structural budget")
    boundary_fraction: float = Field(default=0.0, ge=0.0, le=1.0, description="Overview leading-chunk budget")
    structural_queries: List[str] = Field(
        default=[
            "introduction objectives learning outcomes",
            "key concepts main topics definitions",
        ],
        description="Fixed queries for structural retrieval"
    )
    structural_penalty: float = Field(default=0.1, ge=0.0, le=2.0, description="Added to structural distances")
    boundary_base_distance: float = Field(default=0.3, ge=0.0, le=2.0, description="Distance given to leading chunks")
    boundary_penalty: float = Field(default=0.3, ge=0.0, le=2.0, description="Added to leading-chunk distances")
    tie_tolerance: float = Field(default=0.2, ge=0.0, le=2.0, description="Distances this close order by position")
    missing_distance: float = Field(default=1.0, ge=0.0, le=2.0, description="Distance assumed when absent")
    semantic_weight: float = Field(default=0.6, ge=0.0, le=1.0, description="Rerank weight of 1 - distance")
    keyword_weight: float = Field(default=0.3, ge=0.0, le=1.0, description="Rerank weight of term overlap")
    position_weight: float = Field(default=0.1, ge=0.0, le=1.0, description="Rerank weight of chunk position")
    max_workers: int = Field(default=8, ge=1, le=64, description="Parallel per-file queries")
    per_file_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-file retrieval timeout")

    @field_validator('structural_queries')
    @classmethod
    def validate_structural_queries(cls, v):
        if not v or any(not query.strip() for query in v):
            raise ValueError("structural_queries must be a non-empty list of non-blank queries")
        return v

    @model_validator(mode="after")
    def validate_budgets(self):
        total = self.semantic_fraction + self.structural_fraction + self.boundary_fraction
        if total > 1.0 + 1e-9:
            raise ValueError(f"Overview budget fractions sum to {total:.2f}, must not exceed 1.0")

        weights = self.semantic_weight + self.keyword_weight + self.position_weight
        if weights > 1.0 + 1e-9:
            raise ValueError(f"Rerank weights sum to {weights:.2f}, must not exceed 1.0")
        return self


class RAGConfig(BaseModel):
    """
    Root configuration schema.

    All sections have defaults, so an empty YAML file yields a working
    local setup (sentence-transformers + persistent ChromaDB + Tesseract).
    """
    model_config = ConfigDict(extra="allow")

    name: str = Field(default="default", description="Configuration profile name")
    embeddings: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    embedding_cache: EmbeddingCacheConfig = Field(default_factory=EmbeddingCacheConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
