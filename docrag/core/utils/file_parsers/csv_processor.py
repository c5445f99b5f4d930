"""
docrag/core/utils/file_parsers/csv_processor.py

CSV extraction: the table is rendered as a Markdown pipe table so that
chunks keep the header row and the language model can read cells in context.

    name,age          | name | age |
    Alice,30    ->    | --- | --- |
    Bob,25            | Alice | 30 |
                      | Bob | 25 |

Literal "|" in cell values is escaped as "\\|". When pandas finds no header
or no data rows the raw CSV text is returned unchanged.
"""

from typing import List
import io
import logging

import pandas as pd

from docrag.core.utils.file_parsers.txt_processor import decode_text
from docrag.models.metadata_models import ExtractedText, ExtractionMetadata

logger = logging.getLogger(__name__)


def _escape_cell(value) -> str:
    return str(value).replace('|', '\\|')


def to_markdown_table(headers: List[str], rows: List[List[str]]) -> str:
    """Render headers and rows as a Markdown table, every line newline-terminated."""
    markdown = '| ' + ' | '.join(headers) + ' |\n'
    markdown += '| ' + ' | '.join('---' for _ in headers) + ' |\n'
    for row in rows:
        markdown += '| ' + ' | '.join(_escape_cell(value) for value in row) + ' |\n'
    return markdown


class CSVProcessor:
    """Extractor for text/csv."""

    def extract(self, data: bytes) -> ExtractedText:
        raw, _ = decode_text(data)
        metadata = ExtractionMetadata(format="csv")

        try:
            frame = pd.read_csv(
                io.StringIO(raw),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
            )
        except pd.errors.EmptyDataError:
            logger.debug("CSV has no columns, returning raw text")
            return ExtractedText(text=raw, metadata=metadata)
        except pd.errors.ParserError as e:
            logger.warning(f"CSV could not be parsed as a table, returning raw text: {e}")
            return ExtractedText(text=raw, metadata=metadata)

        headers = [str(column) for column in frame.columns]
        if frame.empty or not headers:
            logger.debug("CSV has no data rows, returning raw text")
            return ExtractedText(text=raw, metadata=metadata)

        rows = frame.values.tolist()
        metadata.extra['rows'] = len(rows)
        metadata.extra['columns'] = len(headers)

        logger.debug(f"Converted CSV to Markdown table: {len(rows)} rows x {len(headers)} columns")
        return ExtractedText(text=to_markdown_table(headers, rows), metadata=metadata)
