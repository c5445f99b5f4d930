"""

docrag/core/exceptions.py

Error taxonomy for the document retrieval core.

Every error raised on purpose by docrag derives from DocRAGError, so callers
(upload handler, chat handler, CLI) can catch the whole family at once and
still distinguish the cases they treat differently:

- UnsupportedTypeError   : MIME type has no extractor (rejected before ingestion starts)
- ExtractionError        : document bytes could not be turned into text
- EmptyInputError        : extracted text is empty or whitespace only
- EncodingError          : embedding provider failed or timed out
- CollectionNotFoundError: no vector collection exists for a file id
- OCRError               : one OCR engine failed (caught by the OCR fallback chain)

"""


class DocRAGError(Exception):
    """Base class for all docrag errors."""


class UnsupportedTypeError(DocRAGError):
    """Raised when a document's MIME type has no registered extractor."""


class ExtractionError(DocRAGError):
    """Raised when a document cannot be converted to text."""


class EmptyInputError(DocRAGError):
    """Raised when there is no text to chunk."""


class EncodingError(DocRAGError):
    """Raised when the embedding provider fails."""


class CollectionNotFoundError(DocRAGError):
    """Raised when a file has no vector collection."""

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"No vector collection for file: {file_id}")


class OCRError(DocRAGError):
    """Raised when a single OCR engine cannot read a document."""
