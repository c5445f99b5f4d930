import pytest

from docrag.core.retrievals.diversity import apply_diversity_filter, jaccard_similarity, tokenize
from docrag.core.retrievals.reranking import compute_rerank_score, rerank_by_relevance
from docrag.models.metadata_models import ChunkMetadata, RetrievedChunk


def make_chunk(chunk_id: str, document: str, distance: float,
               chunk_index=None, total_chunks=None) -> RetrievedChunk:
    return RetrievedChunk(
        chunk_id=chunk_id,
        document=document,
        metadata=ChunkMetadata(file_id="f", chunk_index=chunk_index, total_chunks=total_chunks),
        distance=distance,
        file_id="f",
    )


class TestJaccard:

    def test_identical_texts(self):
        assert jaccard_similarity("The cat sat", "the CAT sat") == 1.0

    def test_disjoint_texts(self):
        assert jaccard_similarity("alpha beta", "gamma delta") == 0.0

    def test_partial_overlap(self):
        # {a, b, c} vs {b, c, d}: 2 shared of 4
        assert jaccard_similarity("a b c", "b c d") == pytest.approx(0.5)

    def test_empty_texts(self):
        assert jaccard_similarity("", "   ") == 0.0

    def test_tokens_are_lowercase_whitespace_split(self):
        assert tokenize("Hello  World\nhello") == {"hello", "world"}


class TestDiversityFilter:

    def test_near_duplicates_are_dropped(self):
        """Should keep the first of two near-identical chunks."""
        chunks = [
            make_chunk("1", "the quarterly revenue grew by twelve percent", 0.1),
            make_chunk("2", "the quarterly revenue grew by twelve percent overall", 0.2),
            make_chunk("3", "headcount increased in engineering", 0.3),
        ]
        kept = apply_diversity_filter(chunks, threshold=0.7)
        assert [c.chunk_id for c in kept] == ["1", "3"]

    def test_pairwise_similarity_below_threshold(self):
        """Should leave no kept pair at or above the threshold."""
        texts = [
            "a b c d", "a b c e", "a b f g", "h i j k", "h i j l", "m n o p", "a b c d e",
        ]
        chunks = [make_chunk(str(i), t, i / 10) for i, t in enumerate(texts)]
        kept = apply_diversity_filter(chunks, threshold=0.5)

        for i, first in enumerate(kept):
            for second in kept[i + 1:]:
                assert jaccard_similarity(first.document, second.document) < 0.5

    def test_stops_at_max_results(self):
        """Should stop once max_results chunks are kept."""
        chunks = [make_chunk(str(i), f"unique words {i} number{i}", 0.1) for i in range(10)]
        kept = apply_diversity_filter(chunks, threshold=0.9, max_results=4)
        assert [c.chunk_id for c in kept] == ["0", "1", "2", "3"]

    def test_first_item_always_kept(self):
        chunks = [make_chunk("only", "", 0.5)]
        assert apply_diversity_filter(chunks, threshold=0.0) == chunks


class TestReranking:

    def test_score_formula(self):
        """Should weight semantic, keyword and position scores 0.6/0.3/0.1."""
        score = compute_rerank_score(
            "revenue growth", "Revenue was flat", distance=0.2, chunk_index=5, total_chunks=10
        )
        # semantic 0.8, keyword 1/2, position 1 - 0.5 * 0.1
        assert score == pytest.approx(0.6 * 0.8 + 0.3 * 0.5 + 0.1 * 0.95)

    def test_unknown_position_gets_full_score(self):
        score = compute_rerank_score("x", "y", distance=0.0)
        assert score == pytest.approx(0.6 + 0.1)

    @pytest.mark.parametrize("distance", [0.0, 0.3, 0.7, 1.0])
    @pytest.mark.parametrize("chunk_index", [None, 0, 9])
    def test_score_bounds(self, distance, chunk_index):
        """Should stay within [0, 1] for distances in [0, 1]."""
        score = compute_rerank_score(
            "quarterly revenue", "quarterly revenue report", distance, chunk_index, 10
        )
        assert 0.0 <= score <= 1.0

    def test_rerank_orders_by_score_and_truncates(self):
        """Should return the top_k chunks by descending composite score."""
        chunks = [
            make_chunk("far", "unrelated text", 0.5, 0, 3),
            make_chunk("keyword", "revenue growth numbers", 0.45, 1, 3),
            make_chunk("close", "something else", 0.1, 2, 3),
        ]
        ranked = rerank_by_relevance("revenue growth", chunks, top_k=2)

        assert [c.chunk_id for c in ranked] == ["keyword", "close"]
        assert all(c.score is not None for c in ranked)
        assert ranked[0].score >= ranked[1].score

    def test_rerank_does_not_mutate_input(self):
        chunks = [make_chunk("a", "text", 0.2)]
        rerank_by_relevance("text", chunks, top_k=1)
        assert chunks[0].score is None
