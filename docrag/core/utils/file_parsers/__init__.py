"""
Document text extraction for docrag.

This package provides text extraction for:
- PDF files (PyMuPDF/pdfplumber, OCR fallback for scanned documents)
- Word documents (python-docx)
- Plain text and Markdown
- CSV (rendered as Markdown tables with pandas)
"""

from .parser_factory import (
    FileParserFactory,
    SUPPORTED_MIME_TYPES,
    TextExtractor,
    is_valid_document_type,
)

__all__ = ['FileParserFactory', 'SUPPORTED_MIME_TYPES', 'TextExtractor', 'is_valid_document_type']
