import numpy as np
import pytest

from docrag.core.exceptions import CollectionNotFoundError
from docrag.core.vectorstores.chromadb_store import ChromaDBStore
from docrag.models.metadata_models import ChunkMetadata


@pytest.fixture
def store(tmp_path) -> ChromaDBStore:
    return ChromaDBStore(persist_directory=str(tmp_path / "chroma"))


def add_chunks(store: ChromaDBStore, file_id: str, vectors) -> None:
    vectors = np.asarray(vectors, dtype=np.float32)
    total = len(vectors)
    store.add(
        file_id,
        ids=[f"{file_id}_chunk_{i}" for i in range(total)],
        embeddings=vectors,
        documents=[f"chunk {i} of {file_id}" for i in range(total)],
        metadatas=[
            ChunkMetadata.for_chunk(file_id, f"{file_id}.txt", i, total).to_store_metadata()
            for i in range(total)
        ],
    )


class TestChromaDBStore:

    def test_add_and_query(self, store):
        """Should return the nearest chunk first with its metadata."""
        add_chunks(store, "file_alpha", [[1, 0, 0], [0, 1, 0], [0, 0, 1]])

        hits = store.query("file_alpha", np.array([0.9, 0.1, 0.0]), top_k=2)

        assert [hit['id'] for hit in hits] == ["file_alpha_chunk_0", "file_alpha_chunk_1"]
        assert hits[0]['distance'] <= hits[1]['distance']
        assert hits[0]['metadata']['chunk_index'] == 0
        assert hits[0]['document'] == "chunk 0 of file_alpha"

    def test_top_k_larger_than_collection(self, store):
        add_chunks(store, "file_alpha", [[1, 0], [0, 1]])

        hits = store.query("file_alpha", np.array([1.0, 0.0]), top_k=10)

        assert len(hits) == 2

    def test_upsert_is_idempotent(self, store):
        add_chunks(store, "file_alpha", [[1, 0], [0, 1]])
        add_chunks(store, "file_alpha", [[1, 0], [0, 1]])

        assert store.count("file_alpha") == 2

    def test_collections_are_per_file(self, store):
        """Should never return another file's chunks."""
        add_chunks(store, "file_alpha", [[1, 0]])
        add_chunks(store, "file_beta", [[1, 0]])

        hits = store.query("file_beta", np.array([1.0, 0.0]), top_k=5)

        assert [hit['id'] for hit in hits] == ["file_beta_chunk_0"]

    def test_missing_collection(self, store):
        """Should raise CollectionNotFoundError, or [] via query_or_empty."""
        with pytest.raises(CollectionNotFoundError):
            store.query("file_ghost", np.array([1.0, 0.0]), top_k=1)

        assert store.query_or_empty("file_ghost", np.array([1.0, 0.0]), top_k=1) == []
        assert store.count("file_ghost") == 0

    def test_get_by_chunk_index(self, store):
        add_chunks(store, "file_alpha", [[1, 0], [0, 1], [1, 1], [1, -1]])

        rows = store.get("file_alpha", where={"chunk_index": {"$lt": 2}})

        assert sorted(row['metadata']['chunk_index'] for row in rows) == [0, 1]
        assert all(row['distance'] is None for row in rows)

    def test_delete_collection_cascades(self, store):
        add_chunks(store, "file_alpha", [[1, 0], [0, 1]])

        store.delete_collection("file_alpha")

        assert store.count("file_alpha") == 0
        with pytest.raises(CollectionNotFoundError):
            store.get("file_alpha")

    def test_delete_missing_collection_is_noop(self, store):
        store.delete_collection("file_never_created")

    def test_empty_collection_query(self, store):
        store.create_or_get_collection("file_empty")
        assert store.query("file_empty", np.array([1.0, 0.0]), top_k=3) == []

    def test_length_mismatch_raises(self, store):
        with pytest.raises(ValueError):
            store.add("file_alpha", ids=["a"], embeddings=np.ones((2, 2)), documents=["a"], metadatas=[{}])

    def test_metadata_round_trip(self, store):
        """Should rebuild typed chunk metadata from stored rows."""
        add_chunks(store, "file_alpha", [[1, 0]])

        row = store.get("file_alpha")[0]
        metadata = ChunkMetadata.from_store_metadata(row['metadata'], file_id="file_alpha")

        assert metadata.file_name == "file_alpha.txt"
        assert metadata.chunk_index == 0
        assert metadata.total_chunks == 1
