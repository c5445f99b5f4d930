"""
Pydantic models for docrag: configuration schemas and data records.
"""

from .metadata_models import (
    ChunkMetadata,
    ChunkRecord,
    ChunkSource,
    DocumentStatus,
    ExtractedText,
    ExtractionMetadata,
    IngestionJob,
    IngestionResult,
    QueryType,
    RetrievalOptions,
    RetrievalResult,
    RetrievedChunk,
)
from .rag_config import RAGConfig

__all__ = [
    'ChunkMetadata',
    'ChunkRecord',
    'ChunkSource',
    'DocumentStatus',
    'ExtractedText',
    'ExtractionMetadata',
    'IngestionJob',
    'IngestionResult',
    'QueryType',
    'RAGConfig',
    'RetrievalOptions',
    'RetrievalResult',
    'RetrievedChunk',
]
