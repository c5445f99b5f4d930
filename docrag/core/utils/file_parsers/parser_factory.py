"""
docrag/core/utils/file_parsers/parser_factory.py

MIME-type dispatch for document text extraction, plus source download.

Supported types:
----------------
application/pdf                                                          -> PDFProcessor
application/vnd.openxmlformats-officedocument.wordprocessingml.document  -> DOCXProcessor
application/msword                                                       -> DOCXProcessor
text/plain, text/markdown                                                -> TXTProcessor
text/csv                                                                 -> CSVProcessor

Usage:
    extractor = TextExtractor(ocr_engines=[...])
    result = extractor.extract(data, "application/pdf")
"""

from typing import Dict, List, Optional
import logging

import requests

from docrag.core.exceptions import ExtractionError, UnsupportedTypeError
from docrag.core.interfaces.ocr_interface import OCRInterface
from docrag.models.metadata_models import ExtractedText

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC_MIME = "application/msword"
TXT_MIME = "text/plain"
MARKDOWN_MIME = "text/markdown"
CSV_MIME = "text/csv"

SUPPORTED_MIME_TYPES = (PDF_MIME, DOCX_MIME, DOC_MIME, TXT_MIME, MARKDOWN_MIME, CSV_MIME)


def _normalize_mime(mime_type: Optional[str]) -> str:
    """Lowercase and drop parameters such as '; charset=utf-8'."""
    return (mime_type or "").split(";")[0].strip().lower()


def is_valid_document_type(mime_type: Optional[str]) -> bool:
    """True if the MIME type has an extractor."""
    return _normalize_mime(mime_type) in SUPPORTED_MIME_TYPES


class FileParserFactory:
    """
    Factory for creating parser instances based on MIME type.

    Parsers are imported lazily so that importing the factory does not pull
    in PyMuPDF, python-docx and pandas.
    """

    @staticmethod
    def _get_parsers(ocr_engines: List[OCRInterface], min_chars_per_page: int) -> Dict[str, object]:
        from .pdf_processor import PDFProcessor
        from .docx_processor import DOCXProcessor
        from .txt_processor import TXTProcessor
        from .csv_processor import CSVProcessor

        return {
            PDF_MIME: lambda: PDFProcessor(ocr_engines, min_chars_per_page),
            DOCX_MIME: DOCXProcessor,
            DOC_MIME: DOCXProcessor,
            TXT_MIME: lambda: TXTProcessor("txt"),
            MARKDOWN_MIME: lambda: TXTProcessor("md"),
            CSV_MIME: CSVProcessor,
        }

    @staticmethod
    def create_parser(
            mime_type: str,
            ocr_engines: Optional[List[OCRInterface]] = None,
            min_chars_per_page: int = 100
    ):
        """
        Create the parser for a MIME type.

        Raises:
        -------
        UnsupportedTypeError:
            If the MIME type is not supported
        """
        mime = _normalize_mime(mime_type)
        if mime not in SUPPORTED_MIME_TYPES:
            raise UnsupportedTypeError(
                f"Unsupported file type: '{mime_type}'. "
                f"Supported types: {', '.join(SUPPORTED_MIME_TYPES)}"
            )

        parsers = FileParserFactory._get_parsers(list(ocr_engines or []), min_chars_per_page)
        return parsers[mime]()


class TextExtractor:
    """
    Converts raw document bytes into ExtractedText.

    Parameters:
    -----------
    ocr_engines : List[OCRInterface]
        OCR chain for scanned PDFs (primary first)
    min_chars_per_page : int
        Scanned-PDF threshold
    fetch_timeout : float
        Timeout in seconds for fetch_source downloads
    """

    def __init__(
            self,
            ocr_engines: Optional[List[OCRInterface]] = None,
            min_chars_per_page: int = 100,
            fetch_timeout: float = 60.0
    ):
        self.ocr_engines = list(ocr_engines or [])
        self.min_chars_per_page = min_chars_per_page
        self.fetch_timeout = fetch_timeout

    def extract(self, data: bytes, mime_type: str) -> ExtractedText:
        """
        Extract text from document bytes.

        Raises:
        -------
        UnsupportedTypeError:
            If the MIME type is not supported
        ExtractionError:
            If the document cannot be read
        """
        parser = FileParserFactory.create_parser(mime_type, self.ocr_engines, self.min_chars_per_page)
        logger.info(f"Extracting {len(data):,} bytes of {_normalize_mime(mime_type)}")
        return parser.extract(data)

    def fetch_source(self, url: str) -> bytes:
        """
        Download document bytes.

        Raises:
        -------
        ExtractionError:
            On connection errors, timeouts and non-2xx responses
        """
        logger.info(f"Fetching source document: {url}")
        try:
            response = requests.get(url, timeout=self.fetch_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to fetch {url}: {e}")
            raise ExtractionError(
                f"Failed to download source document\n"
                f"URL: {url}\n"
                f"Error: {e}"
            ) from e

        logger.debug(f"Fetched {len(response.content):,} bytes from {url}")
        return response.content
