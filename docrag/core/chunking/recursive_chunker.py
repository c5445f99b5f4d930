"""
docrag/core/chunking/recursive_chunker.py

Recursive (boundary-aware, fixed-size) text chunking with overlap.

Algorithm:
----------
1. Take a window of chunk_size characters starting at `start`
2. If the window does not reach the end of the text, pull its end back to
   the best natural boundary found in the second half of the window, in
   order of preference:
       paragraph break "\\n\\n" > line break "\\n" > sentence end ". " > space
3. Emit the stripped window (empty windows are skipped, they take no index)
4. Start the next window `overlap` characters before the end of this one,
   moved forward to the next word start so no chunk begins mid-word
5. Repeat until the end of the text

The split is deterministic: the same text and configuration always produce
the same chunks, which keeps chunk ids stable across re-ingestion.

Example:
--------
chunker = RecursiveChunker(ChunkingConfig(chunk_size=1000, overlap=200))
records = chunker.chunk_document(text, file_id="file_123", file_name="notes.pdf")
print(records[0].chunk_id)               # file_123_chunk_0
print(records[0].metadata.total_chunks)  # len(records)
"""

from typing import List, Optional
import logging
import re

from docrag.core.exceptions import EmptyInputError
from docrag.models.metadata_models import ChunkMetadata, ChunkRecord, ExtractionMetadata
from docrag.models.rag_config import ChunkingConfig

logger = logging.getLogger(__name__)

SENTENCE_END = re.compile(r'[.!?]\s')


class RecursiveChunker:
    """
    Boundary-aware sliding-window chunker.

    Configuration Parameters:
    -------------------------
    chunk_size : int
        Maximum characters per chunk (default: 1000)
    overlap : int
        Characters shared by adjacent chunks (default: 200), must be
        smaller than chunk_size
    """

    def __init__(self, config: Optional[ChunkingConfig] = None):
        config = config or ChunkingConfig()
        self.chunk_size = config.chunk_size
        self.overlap = config.overlap

        if self.overlap >= self.chunk_size:
            raise ValueError(
                f"overlap ({self.overlap}) must be less than chunk_size ({self.chunk_size})"
            )

        logger.debug(
            f"Initialized RecursiveChunker: chunk_size={self.chunk_size}, overlap={self.overlap}"
        )

    def split(self, text: str) -> List[str]:
        """
        Split text into overlapping chunks of at most chunk_size characters.

        Raises:
        -------
        EmptyInputError:
            If text is empty or whitespace only
        """
        if not text or not text.strip():
            raise EmptyInputError("Text to chunk is empty")

        pieces: List[str] = []
        length = len(text)
        start = 0

        while start < length:
            end = min(start + self.chunk_size, length)
            if end < length:
                end = self._find_split_point(text, start, end)

            piece = text[start:end].strip()
            if piece:
                pieces.append(piece)
            else:
                logger.debug(f"Skipping empty chunk at position {start}-{end}")

            if end >= length:
                break

            next_start = max(end - self.overlap, start + 1)
            start = self._align_to_word_start(text, next_start, end)

        return pieces

    def chunk_document(
            self,
            text: str,
            file_id: str,
            file_name: str,
            project_id: Optional[str] = None,
            extraction: Optional[ExtractionMetadata] = None
    ) -> List[ChunkRecord]:
        """
        Split a document and attach chunk ids and metadata.

        Indices are contiguous 0..total-1 and every record carries
        total_chunks = number of records.
        """
        pieces = self.split(text)
        total = len(pieces)

        records = []
        for index, piece in enumerate(pieces):
            metadata = ChunkMetadata.for_chunk(
                file_id=file_id,
                file_name=file_name,
                chunk_index=index,
                total_chunks=total,
                project_id=project_id,
                extraction=extraction,
            )
            records.append(ChunkRecord(chunk_id=metadata.chunk_id, text=piece, metadata=metadata))

        logger.info(
            f"Created {total} chunks for file_id={file_id} "
            f"(chunk_size={self.chunk_size}, overlap={self.overlap}, text_length={len(text)})"
        )
        return records

    def _find_split_point(self, text: str, start: int, end: int) -> int:
        """
        Best boundary in the second half of text[start:end], or end if none.

        The returned position is exclusive: the boundary characters stay
        with the left chunk.
        """
        floor = start + self.chunk_size // 2
        window = text[floor:end]

        for separator in ("\n\n", "\n"):
            idx = window.rfind(separator)
            if idx != -1:
                return floor + idx + len(separator)

        matches = list(SENTENCE_END.finditer(window))
        if matches:
            return floor + matches[-1].end()

        idx = window.rfind(" ")
        if idx != -1:
            return floor + idx + 1

        return end

    @staticmethod
    def _align_to_word_start(text: str, pos: int, limit: int) -> int:
        """Move pos forward past a partial word, staying below limit."""
        if pos == 0 or text[pos - 1].isspace():
            return pos

        for i in range(pos, limit):
            if text[i].isspace():
                return i + 1

        return pos
