import time

import pytest

from conftest import FakeEmbedder, FakeVectorStore, make_row
from docrag.core.embeddings.embedding_cache import CachedEmbedder, EmbeddingCache
from docrag.core.exceptions import EncodingError
from docrag.core.retrievals.multi_strategy_retrieval import (
    MultiStrategyRetriever,
    generate_query_variations,
)
from docrag.models.metadata_models import (
    ChunkMetadata,
    ChunkSource,
    QueryType,
    RetrievalOptions,
)
from docrag.models.rag_config import RetrievalConfig

NO_RERANK = RetrievalOptions(rerank_results=False)


def make_retriever(store, embedder=None, **config) -> MultiStrategyRetriever:
    cached = CachedEmbedder(embedder or FakeEmbedder(), EmbeddingCache())
    return MultiStrategyRetriever(store, cached, RetrievalConfig(**config))


def index_file(store: FakeVectorStore, embedder: FakeEmbedder, file_id: str, texts):
    metadatas = [
        ChunkMetadata.for_chunk(file_id, f"{file_id}.txt", i, len(texts)).to_store_metadata()
        for i in range(len(texts))
    ]
    store.add(
        file_id,
        ids=[f"{file_id}_chunk_{i}" for i in range(len(texts))],
        embeddings=embedder.embed_texts(list(texts)),
        documents=list(texts),
        metadatas=metadatas,
    )


@pytest.fixture
def populated_store(fake_store, fake_embedder):
    index_file(fake_store, fake_embedder, "file_a", [
        "Revenue grew twelve percent in the north",
        "Headcount rose in engineering",
        "Costs were flat across divisions",
        "The outlook remains positive",
    ])
    index_file(fake_store, fake_embedder, "file_b", [
        "GDP growth slowed in 2020",
        "Inflation stayed below target",
        "Exports recovered late in the year",
    ])
    fake_embedder.calls.clear()
    return fake_store


class TestRetrieve:

    def test_empty_file_ids_make_no_calls(self, fake_store, fake_embedder):
        """Should return an empty result without embedding or querying."""
        retriever = make_retriever(fake_store, fake_embedder)

        result = retriever.retrieve("Summarize chapter 1", [], n_results=5)

        assert result.is_empty()
        assert (result.documents, result.metadatas, result.distances) == ([], [], [])
        assert result.total_chunks == 0
        assert result.files_queried == []
        assert result.query_type == QueryType.OVERVIEW
        assert fake_embedder.calls == []
        assert fake_store.query_calls == []

    def test_returns_at_most_n_results(self, populated_store, fake_embedder):
        retriever = make_retriever(populated_store, fake_embedder)

        result = retriever.retrieve("GDP growth", ["file_a", "file_b"], n_results=3)

        assert len(result.chunks) <= 3
        assert result.files_queried == ["file_a", "file_b"]
        assert result.total_chunks == 7

    def test_failing_file_is_isolated(self, populated_store, fake_embedder):
        """Should still return the other file's chunks when one file fails."""
        populated_store.failing.add("file_a")
        retriever = make_retriever(populated_store, fake_embedder)

        result = retriever.retrieve("GDP growth in 2020", ["file_a", "file_b"], n_results=4)

        assert result.files_queried == ["file_b"]
        assert result.chunks
        assert all(chunk.file_id == "file_b" for chunk in result.chunks)

    def test_missing_collection_contributes_nothing(self, populated_store, fake_embedder):
        retriever = make_retriever(populated_store, fake_embedder)

        result = retriever.retrieve("exports", ["not_indexed_yet", "file_b"], n_results=2)

        assert result.files_queried == ["file_b"]

    def test_all_files_failing_returns_empty(self, populated_store, fake_embedder):
        populated_store.failing.update({"file_a", "file_b"})
        retriever = make_retriever(populated_store, fake_embedder)

        result = retriever.retrieve("anything", ["file_a", "file_b"], n_results=5)

        assert result.is_empty()
        assert result.files_queried == []

    def test_encoding_failure_raises(self, populated_store):
        """Should fail the retrieval when the question cannot be embedded."""
        retriever = make_retriever(populated_store, FakeEmbedder(fail=True))

        with pytest.raises(EncodingError):
            retriever.retrieve("GDP growth", ["file_a"], n_results=3)

    def test_overfetch_when_reranking(self, populated_store, fake_embedder):
        """Should fetch ceil(n / files) * 3 per file for reranked standard queries."""
        retriever = make_retriever(populated_store, fake_embedder)

        retriever.retrieve("GDP growth", ["file_a", "file_b"], n_results=5)

        assert {call['top_k'] for call in populated_store.query_calls} == {9}

    def test_no_overfetch_without_reranking(self, populated_store, fake_embedder):
        retriever = make_retriever(populated_store, fake_embedder)

        retriever.retrieve("GDP growth", ["file_a", "file_b"], n_results=5, options=NO_RERANK)

        assert {call['top_k'] for call in populated_store.query_calls} == {3}

    def test_duplicate_file_ids_are_queried_once(self, populated_store, fake_embedder):
        retriever = make_retriever(populated_store, fake_embedder)

        result = retriever.retrieve("exports", ["file_b", "file_b"], n_results=2, options=NO_RERANK)

        assert len(populated_store.query_calls) == 1
        assert result.files_queried == ["file_b"]

    def test_fused_results_sorted_by_distance_without_rerank(self, fake_store, fake_embedder):
        fake_store.handler = lambda file_id, emb, top_k, where: {
            "file_a": [make_row("a0", 0.30, 0, "alpha one", "file_a"),
                       make_row("a1", 0.50, 1, "alpha two", "file_a")],
            "file_b": [make_row("b0", 0.10, 0, "beta one", "file_b"),
                       make_row("b1", 0.40, 1, "beta two", "file_b")],
        }[file_id][:top_k]
        retriever = make_retriever(fake_store, fake_embedder)

        result = retriever.retrieve("which numbers", ["file_a", "file_b"], n_results=4, options=NO_RERANK)

        assert [c.chunk_id for c in result.chunks] == ["b0", "a0", "b1", "a1"]
        assert result.distances == sorted(result.distances)

    def test_diversity_drops_near_duplicates_across_files(self, fake_store, fake_embedder):
        """Should not return the same passage twice when more candidates than needed exist."""
        fake_store.handler = lambda file_id, emb, top_k, where: [
            make_row(f"{file_id}_0", 0.1, 0, "the shared boilerplate disclaimer text", file_id),
            make_row(f"{file_id}_1", 0.2, 1, f"unique finding from {file_id}", file_id),
        ][:top_k]
        retriever = make_retriever(fake_store, fake_embedder)

        result = retriever.retrieve(
            "findings", ["file_a", "file_b"], n_results=3,
            options=RetrievalOptions(rerank_results=False, diversity_threshold=0.7),
        )

        documents = result.documents
        assert len(documents) == 3
        assert len(set(documents)) == 3
        assert result.total_chunks == 4

    def test_rerank_sets_scores(self, populated_store, fake_embedder):
        retriever = make_retriever(populated_store, fake_embedder)

        result = retriever.retrieve("GDP growth", ["file_a", "file_b"], n_results=3)

        scores = [chunk.score for chunk in result.chunks]
        assert all(score is not None for score in scores)
        assert scores == sorted(scores, reverse=True)

    def test_slow_file_is_skipped_after_timeout(self, fake_store, fake_embedder):
        """Should not wait past the per-file timeout."""
        def handler(file_id, emb, top_k, where):
            if file_id == "slow":
                time.sleep(1.0)
            return [make_row(f"{file_id}_0", 0.2, 0, f"text of {file_id}", file_id)]

        fake_store.handler = handler
        retriever = make_retriever(fake_store, fake_embedder, per_file_timeout_seconds=0.2)

        result = retriever.retrieve("status", ["slow", "fast"], n_results=2, options=NO_RERANK)
        retriever.close()

        assert result.files_queried == ["fast"]


class TestOverviewStrategy:

    def test_tie_break_by_position(self, fake_store, fake_embedder):
        """Should order chunks within the tolerance by chunk index."""
        fake_store.handler = lambda file_id, emb, top_k, where: (
            [make_row("c5", 0.41, 5), make_row("c2", 0.50, 2)] if top_k == 6 else []
        )
        retriever = make_retriever(fake_store, fake_embedder)

        ranked = retriever._overview_for_file("file_a", retriever.embedder.embed_query("overview"), 10)

        assert [c.chunk_id for c in ranked] == ["c2", "c5"]

    def test_large_distance_gap_orders_by_distance(self, fake_store, fake_embedder):
        fake_store.handler = lambda file_id, emb, top_k, where: (
            [make_row("c5", 0.10, 5), make_row("c2", 0.50, 2)] if top_k == 6 else []
        )
        retriever = make_retriever(fake_store, fake_embedder)

        ranked = retriever._overview_for_file("file_a", retriever.embedder.embed_query("overview"), 10)

        assert [c.chunk_id for c in ranked] == ["c5", "c2"]

    def test_semantic_and_structural_hits_are_deduplicated(self, fake_store, fake_embedder):
        """Should keep each chunk once, semantic source first, with structural penalty."""
        def handler(file_id, emb, top_k, where):
            if top_k == 6:  # semantic budget for n=10
                return [make_row("c0", 0.20, 0), make_row("c1", 0.30, 1)]
            return [make_row("c1", 0.35, 1), make_row("c9", 0.15, 9)]

        fake_store.handler = handler
        retriever = make_retriever(fake_store, fake_embedder)

        ranked = retriever._overview_for_file("file_a", retriever.embedder.embed_query("overview"), 10)
        by_id = {chunk.chunk_id: chunk for chunk in ranked}

        assert [c.chunk_id for c in ranked] == ["c0", "c1", "c9"]
        assert by_id["c1"].source == ChunkSource.SEMANTIC
        assert by_id["c1"].distance == pytest.approx(0.30)
        assert by_id["c9"].source == ChunkSource.STRUCTURAL
        assert by_id["c9"].distance == pytest.approx(0.25)

    def test_budgets(self, fake_store, fake_embedder):
        """Should query 60% semantically and split 40% across the structural queries."""
        fake_store.handler = lambda file_id, emb, top_k, where: []
        retriever = make_retriever(fake_store, fake_embedder)

        retriever._overview_for_file("file_a", retriever.embedder.embed_query("overview"), 25)

        assert [call['top_k'] for call in fake_store.query_calls] == [15, 5, 5]

    def test_missing_distance_is_penalised(self, fake_store, fake_embedder):
        fake_store.handler = lambda file_id, emb, top_k, where: (
            [] if top_k == 6 else [make_row("c3", None, 3)]
        )
        retriever = make_retriever(fake_store, fake_embedder)

        ranked = retriever._overview_for_file("file_a", retriever.embedder.embed_query("overview"), 10)

        assert ranked[0].distance == pytest.approx(1.1)

    def test_boundary_chunks(self, populated_store, fake_embedder):
        """Should add the leading chunks of the file when a boundary budget is configured."""
        retriever = make_retriever(
            populated_store, fake_embedder,
            semantic_fraction=0.5, structural_fraction=0.3, boundary_fraction=0.2,
        )

        ranked = retriever._overview_for_file("file_a", retriever.embedder.embed_query("overview"), 10)

        assert populated_store.get_calls == [
            {'file_id': 'file_a', 'where': {"chunk_index": {"$lt": 2}}, 'limit': None}
        ]
        assert len({c.chunk_id for c in ranked}) == len(ranked)

    def test_structural_query_failure_falls_back_to_standard(self, fake_store, fake_embedder):
        """Should fall back to a plain query when the structural part fails."""
        def handler(file_id, emb, top_k, where):
            if top_k == 2:
                raise RuntimeError("structural query failed")
            return [make_row("c0", 0.2, 0), make_row("c1", 0.3, 1)][:top_k]

        fake_store.handler = handler
        retriever = make_retriever(fake_store, fake_embedder)

        ranked = retriever._overview_for_file("file_a", retriever.embedder.embed_query("overview"), 10)

        assert [c.chunk_id for c in ranked] == ["c0", "c1"]
        assert fake_store.query_calls[-1]['top_k'] == 10

    def test_overview_question_uses_overview_strategy(self, populated_store, fake_embedder):
        retriever = make_retriever(populated_store, fake_embedder)

        result = retriever.retrieve("Give me an overview of the report", ["file_a"], n_results=10)

        assert result.query_type == QueryType.OVERVIEW
        assert len(populated_store.query_calls) == 3

    def test_structural_query_embeddings_are_cached(self, populated_store, fake_embedder):
        """Should embed the structural queries once across retrievals."""
        retriever = make_retriever(populated_store, fake_embedder)

        retriever.retrieve("Summarize the introduction", ["file_a"], n_results=10)
        retriever.retrieve("Summarize the introduction", ["file_a"], n_results=10)

        assert len(fake_embedder.calls) == 2

    def test_smart_retrieval_can_be_disabled(self, populated_store, fake_embedder):
        retriever = make_retriever(populated_store, fake_embedder)

        retriever.retrieve(
            "Give me an overview", ["file_a"], n_results=4,
            options=RetrievalOptions(enable_smart_retrieval=False),
        )

        assert len(populated_store.query_calls) == 1


class TestMultiQuery:

    def test_variations_without_question_mark(self):
        assert generate_query_variations("revenue growth") == [
            "revenue growth", "What revenue growth?", "How revenue growth?",
        ]

    def test_variations_with_question_mark(self):
        assert generate_query_variations("What is the revenue?") == ["What is the revenue?", "revenue?"]

    def test_results_are_deduplicated_by_text(self, fake_store, fake_embedder):
        """Should merge identical chunks found by several variations."""
        fake_store.handler = lambda file_id, emb, top_k, where: [
            make_row("c0", 0.2, 0, "revenue table"), make_row("c1", 0.3, 1, "growth notes"),
        ][:top_k]
        retriever = make_retriever(fake_store, fake_embedder)

        result = retriever.retrieve_multi_query("revenue growth", ["file_a"], n_results=4)

        assert result.documents == ["revenue table", "growth notes"]
        assert result.files_queried == ["file_a"]

    def test_empty_file_ids(self, fake_store, fake_embedder):
        retriever = make_retriever(fake_store, fake_embedder)
        assert retriever.retrieve_multi_query("anything", [], n_results=3).is_empty()
