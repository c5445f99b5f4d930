"""
docrag/core/interfaces/ocr_interface.py

Abstract interface for OCR engines used on scanned PDFs.
"""

from abc import ABC, abstractmethod


class OCRInterface(ABC):
    """
    An OCR engine turns the bytes of a whole PDF into plain text.

    Implementations raise OCRError on any failure, including producing no
    text at all, so the extractor can move on to the next engine.
    """

    @property
    @abstractmethod
    def engine_name(self) -> str:
        """Short name recorded in ExtractionMetadata.ocr_engine."""
        pass

    @abstractmethod
    def extract_pdf(self, data: bytes, page_count: int) -> str:
        """Return the text of every page, pages separated by blank lines."""
        pass
