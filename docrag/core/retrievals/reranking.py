"""
docrag/core/retrievals/reranking.py

Composite relevance reranking of retrieved chunks.

score = semantic_weight * (1 - distance)
      + keyword_weight  * (query terms found in the chunk / query terms)
      + position_weight * (1 - chunk_index / total_chunks * 0.1)

Query terms are the lowercase, whitespace-split words of the question,
matched as substrings of the lowercase chunk text. Chunks without a known
position get the full position score. With the default weights
(0.6 / 0.3 / 0.1) and distances in [0, 1] every score lies in [0, 1].
"""

from typing import List, Optional

from docrag.models.metadata_models import RetrievedChunk


def query_terms(query: str) -> List[str]:
    return query.lower().split()


def compute_rerank_score(
        query: str,
        document: str,
        distance: Optional[float],
        chunk_index: Optional[int] = None,
        total_chunks: Optional[int] = None,
        semantic_weight: float = 0.6,
        keyword_weight: float = 0.3,
        position_weight: float = 0.1
) -> float:
    semantic_score = 1 - (distance or 0.0)

    terms = query_terms(query)
    if terms:
        lowered = document.lower()
        keyword_score = sum(1 for term in terms if term in lowered) / len(terms)
    else:
        keyword_score = 0.0

    if chunk_index is None:
        position_score = 1.0
    else:
        position_score = 1 - (chunk_index / (total_chunks or 1)) * 0.1

    return (
            semantic_weight * semantic_score
            + keyword_weight * keyword_score
            + position_weight * position_score
    )


def rerank_by_relevance(
        query: str,
        chunks: List[RetrievedChunk],
        top_k: int,
        semantic_weight: float = 0.6,
        keyword_weight: float = 0.3,
        position_weight: float = 0.1
) -> List[RetrievedChunk]:
    """
    Score every chunk, return the top_k by descending score.

    Returned chunks are copies carrying their score; equal scores keep their
    input order.
    """
    scored = [
        chunk.model_copy(update={
            "score": compute_rerank_score(
                query,
                chunk.document,
                chunk.distance,
                chunk.metadata.chunk_index,
                chunk.metadata.total_chunks,
                semantic_weight,
                keyword_weight,
                position_weight,
            )
        })
        for chunk in chunks
    ]
    scored.sort(key=lambda chunk: chunk.score, reverse=True)
    return scored[:top_k]
