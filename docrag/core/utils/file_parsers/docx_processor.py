"""
docrag/core/utils/file_parsers/docx_processor.py

Microsoft Word extraction with python-docx.

Raw text only: paragraph text in document order, followed by the text of
every table row (cells separated by " | "), blocks separated by blank lines.
Styles, images and headers/footers are ignored.

Legacy binary .doc files (application/msword) are routed here too; python-docx
cannot open them, so they fail with ExtractionError.
"""

from typing import List
import io
import logging

import docx

from docrag.core.exceptions import ExtractionError
from docrag.core.utils.file_parsers.txt_processor import normalize_paragraphs
from docrag.models.metadata_models import ExtractedText, ExtractionMetadata

logger = logging.getLogger(__name__)


class DOCXProcessor:
    """
    Extractor for Word documents.

    Example:
    --------
    processor = DOCXProcessor()
    result = processor.extract(open("report.docx", "rb").read())
    print(result.text[:100])
    """

    def __init__(self, include_tables: bool = True):
        self.include_tables = include_tables

    def extract(self, data: bytes) -> ExtractedText:
        try:
            document = docx.Document(io.BytesIO(data))
        except Exception as e:
            logger.error(f"python-docx could not open document: {e}")
            raise ExtractionError(
                f"Failed to read Word document\n"
                f"Size: {len(data)} bytes\n"
                f"Error: {e}"
            ) from e

        blocks: List[str] = [p.text for p in document.paragraphs if p.text.strip()]
        table_count = 0

        if self.include_tables:
            for table in document.tables:
                table_count += 1
                rows = []
                for row in table.rows:
                    cells = [cell.text.strip() for cell in row.cells]
                    if any(cells):
                        rows.append(' | '.join(cells))
                if rows:
                    blocks.append('\n'.join(rows))

        text = normalize_paragraphs('\n\n'.join(blocks))

        logger.debug(
            f"Extracted {len(text)} characters from DOCX "
            f"({len(document.paragraphs)} paragraphs, {table_count} tables)"
        )

        metadata = ExtractionMetadata(format="docx")
        if table_count:
            metadata.extra['table_count'] = table_count

        return ExtractedText(text=text, metadata=metadata)
