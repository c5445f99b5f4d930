import pytest

from conftest import FakeEmbedder, FakeVectorStore
from docrag.core.chunking.recursive_chunker import RecursiveChunker
from docrag.core.embeddings.embedding_cache import CachedEmbedder, EmbeddingCache
from docrag.core.exceptions import EmptyInputError, EncodingError, ExtractionError, UnsupportedTypeError
from docrag.core.pipeline.ingestion_pipeline import IngestionPipeline
from docrag.core.utils.file_parsers import TextExtractor
from docrag.models.metadata_models import DocumentStatus
from docrag.models.rag_config import ChunkingConfig

NOTES = ("Paragraph one about revenue.\n\n" * 20).encode("utf-8")


class StatusRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, file_id, status, result):
        self.events.append((file_id, status, result))

    @property
    def statuses(self):
        return [status for _, status, _ in self.events]


def make_pipeline(store=None, embedder=None, recorder=None, extractor=None) -> IngestionPipeline:
    return IngestionPipeline(
        extractor=extractor or TextExtractor(),
        chunker=RecursiveChunker(ChunkingConfig(chunk_size=200, overlap=40)),
        embedder=CachedEmbedder(embedder or FakeEmbedder(), EmbeddingCache()),
        vector_store=store or FakeVectorStore(),
        status_callback=recorder,
    )


class TestIngestionPipeline:

    def test_successful_ingestion(self):
        """Should store every chunk and report processing then completed."""
        store, recorder = FakeVectorStore(), StatusRecorder()
        pipeline = make_pipeline(store=store, recorder=recorder)

        result = pipeline.ingest("file_notes", "notes.txt", "text/plain", data=NOTES, project_id="proj_1")

        assert result.status == DocumentStatus.COMPLETED
        assert result.chunk_count > 1
        assert result.collection_id == "file_notes"
        assert result.metadata.format == "txt"
        assert "source_sha256" in result.metadata.extra
        assert result.finished_at >= result.started_at
        assert store.count("file_notes") == result.chunk_count
        assert recorder.statuses == [DocumentStatus.PROCESSING, DocumentStatus.COMPLETED]

    def test_stored_metadata(self):
        """Should store contiguous chunk indices and denormalised file facts."""
        store = FakeVectorStore()
        make_pipeline(store=store).ingest("file_notes", "notes.txt", "text/plain", data=NOTES, project_id="proj_1")

        rows = store.collections["file_notes"]
        indices = sorted(row['metadata']['chunk_index'] for row in rows.values())
        assert indices == list(range(len(rows)))
        for chunk_id, row in rows.items():
            assert chunk_id == f"file_notes_chunk_{row['metadata']['chunk_index']}"
            assert row['metadata']['file_name'] == "notes.txt"
            assert row['metadata']['project_id'] == "proj_1"
            assert row['metadata']['total_chunks'] == len(rows)

    def test_unsupported_type_rejected_before_status_change(self):
        recorder = StatusRecorder()
        pipeline = make_pipeline(recorder=recorder)

        with pytest.raises(UnsupportedTypeError):
            pipeline.ingest("file_img", "photo.png", "image/png", data=b"\x89PNG")

        assert recorder.events == []

    def test_empty_document_fails(self):
        """Should report failed and re-raise when the text is empty."""
        recorder = StatusRecorder()
        pipeline = make_pipeline(recorder=recorder)

        with pytest.raises(EmptyInputError):
            pipeline.ingest("file_blank", "blank.txt", "text/plain", data=b"   \n\n  ")

        assert recorder.statuses == [DocumentStatus.PROCESSING, DocumentStatus.FAILED]
        failed = recorder.events[-1][2]
        assert failed.status == DocumentStatus.FAILED
        assert failed.error

    def test_embedding_failure_fails_the_file(self):
        store, recorder = FakeVectorStore(), StatusRecorder()
        pipeline = make_pipeline(store=store, embedder=FakeEmbedder(fail=True), recorder=recorder)

        with pytest.raises(EncodingError):
            pipeline.ingest("file_notes", "notes.txt", "text/plain", data=NOTES)

        assert recorder.statuses[-1] == DocumentStatus.FAILED
        assert store.count("file_notes") == 0

    def test_extraction_failure_fails_the_file(self):
        recorder = StatusRecorder()
        pipeline = make_pipeline(recorder=recorder)

        with pytest.raises(ExtractionError):
            pipeline.ingest("file_pdf", "broken.pdf", "application/pdf", data=b"not a pdf at all")

        assert recorder.statuses == [DocumentStatus.PROCESSING, DocumentStatus.FAILED]

    def test_fetches_source_url(self):
        """Should download the bytes when only a URL is given."""
        class StubExtractor(TextExtractor):
            def __init__(self):
                super().__init__()
                self.urls = []

            def fetch_source(self, url):
                self.urls.append(url)
                return NOTES

        extractor = StubExtractor()
        result = make_pipeline(extractor=extractor).ingest(
            "file_remote", "remote.md", "text/markdown", file_url="https://files.example.com/remote.md"
        )

        assert extractor.urls == ["https://files.example.com/remote.md"]
        assert result.metadata.format == "md"

    def test_requires_data_or_url(self):
        with pytest.raises(ValueError):
            make_pipeline().ingest("file_x", "x.txt", "text/plain")

    def test_reingesting_shorter_text_drops_stale_chunks(self):
        """Should leave only the new version's chunks with one shared total."""
        store = FakeVectorStore()
        pipeline = make_pipeline(store=store)
        first = pipeline.ingest("file_notes", "notes.txt", "text/plain", data=NOTES)
        assert first.chunk_count > 1

        second = pipeline.ingest("file_notes", "notes.txt", "text/plain", data=b"Short replacement.")

        rows = store.collections["file_notes"]
        assert second.chunk_count == 1
        assert store.count("file_notes") == 1
        assert list(rows) == ["file_notes_chunk_0"]
        assert {row['metadata']['total_chunks'] for row in rows.values()} == {1}
        assert rows["file_notes_chunk_0"]['document'] == "Short replacement."

    def test_failed_reingestion_keeps_previous_version(self):
        store = FakeVectorStore()
        make_pipeline(store=store).ingest("file_notes", "notes.txt", "text/plain", data=NOTES)
        stored = store.count("file_notes")

        with pytest.raises(EncodingError):
            make_pipeline(store=store, embedder=FakeEmbedder(fail=True)).ingest(
                "file_notes", "notes.txt", "text/plain", data=b"Short replacement."
            )

        assert store.count("file_notes") == stored
