"""
docrag/core/factories/ocr_factory.py

Builds the OCR chain (primary engine, then optional secondary) from OCRConfig.
"""

import os
import logging
from typing import List

from docrag.core.interfaces.ocr_interface import OCRInterface
from docrag.models.rag_config import OCRConfig

logger = logging.getLogger(__name__)


class OCRFactory:
    """Factory for OCR engines."""

    @staticmethod
    def create_engine(name: str, config: OCRConfig) -> OCRInterface:
        name = name.lower()

        if name == "tesseract":
            from docrag.core.utils.ocr.tesseract_ocr import TesseractOCR
            return TesseractOCR(
                lang=config.tesseract_lang,
                dpi=config.tesseract_dpi,
                timeout=config.tesseract_timeout_seconds,
            )

        if name == "gemini":
            from docrag.core.utils.ocr.gemini_ocr import GeminiOCR
            return GeminiOCR(
                api_key=config.api_key or os.getenv("GEMINI_API_KEY"),
                model_name=config.gemini_model,
                pages_per_chunk=config.pages_per_chunk,
                submit_delay=config.submit_delay_seconds,
                max_workers=config.max_workers,
                request_timeout=config.request_timeout_seconds,
            )

        raise ValueError(f"Unknown OCR engine: '{name}'. Available: ['tesseract', 'gemini']")

    @staticmethod
    def create_chain(config: OCRConfig) -> List[OCRInterface]:
        """
        Primary engine followed by the secondary one.

        An engine that cannot be constructed (e.g. Gemini without an API key)
        is left out of the chain with a warning; scanned PDFs then fail only
        if no engine remains.
        """
        chain: List[OCRInterface] = []
        for name in (config.primary, config.secondary):
            if not name or any(engine.engine_name == name for engine in chain):
                continue
            try:
                chain.append(OCRFactory.create_engine(name, config))
            except ValueError as e:
                logger.warning(f"OCR engine '{name}' unavailable: {e}")

        logger.info(f"OCR chain: {[engine.engine_name for engine in chain] or 'none'}")
        return chain
