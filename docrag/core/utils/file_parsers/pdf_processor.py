"""
docrag/core/utils/file_parsers/pdf_processor.py

PDF text extraction with scanned-document detection and an OCR fallback chain.

Workflow:
---------
1. Read the text layer with PyMuPDF (fitz); if PyMuPDF cannot parse the
   file, try pdfplumber before giving up
2. Decide whether the PDF is scanned:
       len(text.strip()) <= page_count * min_chars_per_page   -> scanned
3. Text PDFs: paragraph-normalise the text layer and return it
4. Scanned PDFs: run the OCR engines in order (primary first); the first
   engine that returns text wins, an engine failure moves on to the next
5. Every engine failing raises ExtractionError

Metadata:
---------
page_count, is_scanned, ocr_engine (None for text PDFs)

Example Usage:
--------------
processor = PDFProcessor(ocr_engines=[TesseractOCR(), GeminiOCR(api_key)])
result = processor.extract(pdf_bytes)
print(result.metadata.is_scanned, result.metadata.ocr_engine)

References:
-----------
- PyMuPDF: https://pymupdf.readthedocs.io/
- pdfplumber: https://github.com/jsvine/pdfplumber
"""

from typing import List, Optional, Tuple
import io
import logging

import fitz  # PyMuPDF
import pdfplumber

from docrag.core.exceptions import ExtractionError, OCRError
from docrag.core.interfaces.ocr_interface import OCRInterface
from docrag.core.utils.file_parsers.txt_processor import normalize_paragraphs
from docrag.models.metadata_models import ExtractedText, ExtractionMetadata

logger = logging.getLogger(__name__)


class PDFProcessor:
    """
    PDF extractor.

    Parameters:
    -----------
    ocr_engines : List[OCRInterface]
        Engines tried in order on scanned PDFs; empty means scanned PDFs fail
    min_chars_per_page : int
        Scanned-PDF threshold (default: 100 characters per page)
    """

    def __init__(
            self,
            ocr_engines: Optional[List[OCRInterface]] = None,
            min_chars_per_page: int = 100
    ):
        self.ocr_engines = list(ocr_engines or [])
        self.min_chars_per_page = min_chars_per_page

        logger.debug(
            f"PDFProcessor initialized: OCR chain = "
            f"{[engine.engine_name for engine in self.ocr_engines] or 'none'}"
        )

    def extract(self, data: bytes) -> ExtractedText:
        text, page_count = self._read_text_layer(data)

        if self.has_text_layer(text, page_count):
            normalized = normalize_paragraphs(text)
            logger.info(
                f"Extracted {len(normalized):,} characters from {page_count} page text layer"
            )
            return ExtractedText(
                text=normalized,
                metadata=ExtractionMetadata(format="pdf", page_count=page_count, is_scanned=False)
            )

        logger.info(
            f"PDF looks scanned ({len(text.strip())} text-layer characters for "
            f"{page_count} pages), running OCR"
        )
        ocr_text, engine_name = self._run_ocr(data, page_count)

        return ExtractedText(
            text=ocr_text,
            metadata=ExtractionMetadata(
                format="pdf",
                page_count=page_count,
                is_scanned=True,
                ocr_engine=engine_name,
            )
        )

    def has_text_layer(self, text: str, page_count: int) -> bool:
        return len(text.strip()) > page_count * self.min_chars_per_page

    # =========================================================================
    # TEXT LAYER
    # =========================================================================

    def _read_text_layer(self, data: bytes) -> Tuple[str, int]:
        """Return (text, page_count), PyMuPDF first, pdfplumber as fallback."""
        try:
            return self._read_with_pymupdf(data)
        except Exception as e:
            logger.warning(f"PyMuPDF could not read PDF, trying pdfplumber: {e}")

        try:
            return self._read_with_pdfplumber(data)
        except Exception as e:
            logger.error(f"pdfplumber could not read PDF: {e}")
            raise ExtractionError(
                f"Failed to read PDF\n"
                f"Size: {len(data)} bytes\n"
                f"Error: {e}"
            ) from e

    @staticmethod
    def _read_with_pymupdf(data: bytes) -> Tuple[str, int]:
        with fitz.open(stream=data, filetype="pdf") as doc:
            pages = [page.get_text() for page in doc]
            return '\n\n'.join(pages), len(pages)

    @staticmethod
    def _read_with_pdfplumber(data: bytes) -> Tuple[str, int]:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or '' for page in pdf.pages]
            return '\n\n'.join(pages), len(pages)

    # =========================================================================
    # OCR CHAIN
    # =========================================================================

    def _run_ocr(self, data: bytes, page_count: int) -> Tuple[str, str]:
        if not self.ocr_engines:
            raise ExtractionError(
                "PDF has no text layer and no OCR engine is configured"
            )

        errors = []
        for engine in self.ocr_engines:
            try:
                text = engine.extract_pdf(data, page_count)
            except OCRError as e:
                logger.warning(f"OCR engine {engine.engine_name} failed: {e}")
                errors.append(f"{engine.engine_name}: {e}")
                continue

            if text and text.strip():
                logger.info(
                    f"✅ OCR succeeded with {engine.engine_name}: {len(text):,} characters"
                )
                return text.strip(), engine.engine_name

            logger.warning(f"OCR engine {engine.engine_name} returned no text")
            errors.append(f"{engine.engine_name}: no text")

        raise ExtractionError(
            "All OCR engines failed for scanned PDF\n" + '\n'.join(errors)
        )
