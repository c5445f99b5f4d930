"""
docrag/core/utils/ocr/tesseract_ocr.py

Local OCR with Tesseract: every PDF page is rendered to an image with
PyMuPDF and read with pytesseract. Runs offline; needs the `tesseract`
binary on PATH (or tesseract_cmd pointing at it).
"""

from typing import Optional
import io
import logging

import fitz  # PyMuPDF
import pytesseract
from PIL import Image

from docrag.core.exceptions import OCRError
from docrag.core.interfaces.ocr_interface import OCRInterface

logger = logging.getLogger(__name__)


class TesseractOCR(OCRInterface):
    """
    Page-by-page Tesseract OCR over a whole PDF.

    Parameters:
    -----------
    lang : str
        Tesseract language pack(s), e.g. "eng" or "eng+deu"
    dpi : int
        Render resolution; 200-300 is the usual range for OCR
    timeout : float
        Seconds allowed per page before Tesseract is killed
    tesseract_cmd : str, optional
        Path of the tesseract binary
    """

    def __init__(
            self,
            lang: str = "eng",
            dpi: int = 200,
            timeout: float = 120.0,
            tesseract_cmd: Optional[str] = None
    ):
        self.lang = lang
        self.dpi = dpi
        self.timeout = timeout

        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    @property
    def engine_name(self) -> str:
        return "tesseract"

    def extract_pdf(self, data: bytes, page_count: int) -> str:
        logger.info(f"Running Tesseract OCR on {page_count} pages (lang={self.lang}, dpi={self.dpi})")

        pages = []
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                for page_number, page in enumerate(doc, start=1):
                    image = self._render_page(page)
                    text = pytesseract.image_to_string(image, lang=self.lang, timeout=self.timeout)
                    logger.debug(f"Page {page_number}: {len(text.strip())} characters")
                    if text.strip():
                        pages.append(text.strip())
        except Exception as e:
            logger.error(f"Tesseract OCR failed: {e}")
            raise OCRError(f"Tesseract OCR failed: {e}") from e

        if not pages:
            raise OCRError("Tesseract OCR produced no text")

        return '\n\n'.join(pages)

    def _render_page(self, page) -> Image.Image:
        pixmap = page.get_pixmap(dpi=self.dpi)
        return Image.open(io.BytesIO(pixmap.tobytes("png")))
