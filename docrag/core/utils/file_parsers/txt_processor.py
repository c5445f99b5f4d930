"""
docrag/core/utils/file_parsers/txt_processor.py

Plain text and Markdown extraction.

Text is decoded (UTF-8 first, chardet detection otherwise) and
paragraph-normalised: paragraphs are the blocks separated by blank lines,
each is stripped, empty ones are dropped, and the rest are joined with a
single blank line. Markdown is treated the same way; its syntax is kept
as-is since the language model reads Markdown natively.
"""

from typing import Tuple
import logging
import re

import chardet

from docrag.models.metadata_models import ExtractedText, ExtractionMetadata

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = re.compile(r'\n\s*\n')


def normalize_paragraphs(text: str) -> str:
    """Split on blank lines, strip each paragraph, drop empty ones, rejoin with '\\n\\n'."""
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    paragraphs = (p.strip() for p in PARAGRAPH_BREAK.split(text))
    return '\n\n'.join(p for p in paragraphs if p)


def decode_text(data: bytes) -> Tuple[str, str]:
    """
    Decode raw bytes to text.

    Strategy:
    ---------
    1. UTF-8 (a leading BOM is dropped)
    2. chardet detection
    3. latin-1, which never fails

    Returns:
    --------
    Tuple[str, str]:
        (text, encoding used)
    """
    try:
        return data.decode('utf-8-sig'), 'utf-8'
    except UnicodeDecodeError:
        pass

    detection = chardet.detect(data)
    encoding = detection.get('encoding')
    confidence = detection.get('confidence') or 0

    if encoding:
        try:
            logger.debug(f"chardet detected: {encoding} (confidence: {confidence:.2f})")
            return data.decode(encoding), encoding.lower()
        except (UnicodeDecodeError, LookupError):
            logger.debug(f"chardet guess {encoding} failed to decode, using latin-1")

    return data.decode('latin-1'), 'latin-1'


class TXTProcessor:
    """Extractor for text/plain and text/markdown."""

    def __init__(self, format_name: str = "txt"):
        self.format_name = format_name

    def extract(self, data: bytes) -> ExtractedText:
        text, encoding = decode_text(data)
        normalized = normalize_paragraphs(text)

        logger.debug(
            f"Extracted {len(normalized)} characters of {self.format_name} "
            f"(encoding: {encoding})"
        )

        metadata = ExtractionMetadata(format=self.format_name)
        if encoding != 'utf-8':
            metadata.extra['encoding'] = encoding

        return ExtractedText(text=normalized, metadata=metadata)
