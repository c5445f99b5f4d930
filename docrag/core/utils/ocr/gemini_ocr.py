"""
docrag/core/utils/ocr/gemini_ocr.py

Cloud OCR with Gemini: the PDF itself is sent to a multimodal Gemini model
with an instruction to transcribe it as Markdown.

Large documents are split into page ranges (15 pages by default) that are
transcribed in parallel:

    40 pages -> pages 1-15, 16-30, 31-40   (3 requests)

Submissions are spaced by a short delay to stay under rate limits, and the
results are joined in page order regardless of completion order. Any range
failing fails the whole document (OCRError), so a partial transcript is
never mistaken for a complete one.

Requirements:
-------------
- pip install google-generativeai
- GEMINI_API_KEY
"""

from concurrent.futures import ThreadPoolExecutor
from typing import List, Tuple
import logging
import time

import fitz  # PyMuPDF
import google.generativeai as genai

from docrag.core.exceptions import OCRError
from docrag.core.interfaces.ocr_interface import OCRInterface

logger = logging.getLogger(__name__)

OCR_PROMPT = (
    "Extract all text from this PDF (pages {start}-{end}). Format the output in "
    "markdown with proper headings, paragraphs, lists, and tables where appropriate. "
    "Preserve the document structure."
)


def page_ranges(total_pages: int, pages_per_chunk: int) -> List[Tuple[int, int]]:
    """1-based inclusive page ranges covering every page exactly once."""
    if pages_per_chunk < 1:
        raise ValueError(f"pages_per_chunk must be >= 1, got {pages_per_chunk}")
    return [
        (start + 1, min(start + pages_per_chunk, total_pages))
        for start in range(0, total_pages, pages_per_chunk)
    ]


class GeminiOCR(OCRInterface):
    """
    Gemini multimodal OCR with page-range fan-out.

    Parameters:
    -----------
    api_key : str
        Gemini API key
    model_name : str
        Multimodal Gemini model
    pages_per_chunk : int
        Pages per request (default: 15)
    submit_delay : float
        Seconds between request submissions (default: 0.1)
    max_workers : int
        Requests in flight at once
    request_timeout : float
        Seconds before a single request is abandoned
    """

    def __init__(
            self,
            api_key: str,
            model_name: str = "gemini-1.5-flash",
            pages_per_chunk: int = 15,
            submit_delay: float = 0.1,
            max_workers: int = 4,
            request_timeout: float = 300.0
    ):
        if not api_key:
            raise ValueError(
                "GEMINI_API_KEY is required for Gemini OCR.\n"
                "Set environment variable: export GEMINI_API_KEY='your-key'"
            )

        self.model_name = model_name
        self.pages_per_chunk = pages_per_chunk
        self.submit_delay = submit_delay
        self.max_workers = max_workers
        self.request_timeout = request_timeout

        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model_name)

    @property
    def engine_name(self) -> str:
        return "gemini"

    def extract_pdf(self, data: bytes, page_count: int) -> str:
        if page_count <= self.pages_per_chunk:
            logger.info(f"Gemini OCR: {page_count} pages in one request")
            text = self._transcribe(data, 1, page_count)
        else:
            text = self._transcribe_in_ranges(data, page_count)

        if not text.strip():
            raise OCRError("Gemini OCR produced no text")
        return text

    def _transcribe_in_ranges(self, data: bytes, page_count: int) -> str:
        ranges = page_ranges(page_count, self.pages_per_chunk)
        logger.info(
            f"Gemini OCR: {page_count} pages in {len(ranges)} parallel requests "
            f"of up to {self.pages_per_chunk} pages"
        )

        futures = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for i, (start, end) in enumerate(ranges):
                chunk_bytes = self._split_pdf(data, start, end)
                futures.append(executor.submit(self._transcribe, chunk_bytes, start, end))
                if i < len(ranges) - 1:
                    time.sleep(self.submit_delay)

            results = [future.result() for future in futures]

        return '\n\n'.join(text for text in results if text)

    def _transcribe(self, pdf_bytes: bytes, start: int, end: int) -> str:
        """Transcribe one page range; '' when the model returns nothing."""
        try:
            text = self._generate(pdf_bytes, start, end)
        except OCRError:
            raise
        except Exception as e:
            logger.error(f"Gemini OCR failed for pages {start}-{end}: {e}")
            raise OCRError(f"Gemini OCR failed for pages {start}-{end}: {e}") from e

        if not text or not text.strip():
            logger.warning(f"No text extracted from pages {start}-{end}")
            return ''

        logger.debug(f"Extracted {len(text)} characters from pages {start}-{end}")
        return text.strip()

    def _generate(self, pdf_bytes: bytes, start: int, end: int) -> str:
        response = self.model.generate_content(
            [
                OCR_PROMPT.format(start=start, end=end),
                {"mime_type": "application/pdf", "data": pdf_bytes},
            ],
            generation_config={"temperature": 0},
            request_options={"timeout": self.request_timeout},
        )
        return response.text

    @staticmethod
    def _split_pdf(data: bytes, start: int, end: int) -> bytes:
        """New PDF holding pages start..end (1-based, inclusive)."""
        try:
            with fitz.open(stream=data, filetype="pdf") as source, fitz.open() as part:
                part.insert_pdf(source, from_page=start - 1, to_page=end - 1)
                return part.tobytes()
        except Exception as e:
            raise OCRError(f"Could not split PDF pages {start}-{end}: {e}") from e
