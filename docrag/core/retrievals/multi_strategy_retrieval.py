"""
docrag/core/retrievals/multi_strategy_retrieval.py

Multi-strategy retrieval across the per-file vector collections.

What Does the Retriever Do?
----------------------------
Given a question and the files selected for a chat turn, it returns the
chunks most worth showing to the language model:

1. Classify the question (overview / explanation / specific)
2. Embed the question through the embedding cache
3. Query every file's collection in parallel (one thread per file)
     - standard strategy: one nearest-neighbour query
     - overview strategy: budgeted mix of semantic hits, structural query
       hits ("introduction objectives ...") and optionally the file's
       leading chunks, deduplicated and ordered with a position tie-break
4. Fuse all files' candidates, ordered by ascending distance
5. Drop near-duplicates (token Jaccard) when there are more than needed
6. Optionally rerank by semantic + keyword + position score

Failure Model:
--------------
- No file ids: empty result, no embedding or store call
- Question embedding fails: EncodingError (the caller decides what to do)
- One file fails, times out or has no collection yet: that file contributes
  nothing, the others are still returned, a warning is logged

Budget Example (overview, n=10 for one file, default config):
-------------------------------------------------------------
semantic   : floor(10 * 0.6)       = 6 nearest chunks
structural : floor(10 * 0.4) / 2   = 2 chunks per structural query
boundary   : floor(10 * 0.0)       = 0 leading chunks (disabled)
"""

from concurrent.futures import ThreadPoolExecutor, wait
from functools import cmp_to_key
from math import ceil, floor
from typing import Dict, List, Optional
import logging
import sys

import numpy as np

from docrag.core.embeddings.embedding_cache import CachedEmbedder
from docrag.core.exceptions import CollectionNotFoundError
from docrag.core.interfaces.vectorstore_interface import VectorStoreInterface
from docrag.core.retrievals.diversity import apply_diversity_filter
from docrag.core.retrievals.query_classifier import classify_query
from docrag.core.retrievals.reranking import rerank_by_relevance
from docrag.core.utils.hashing import compute_text_hash
from docrag.models.metadata_models import (
    ChunkMetadata,
    ChunkSource,
    QueryType,
    RetrievalOptions,
    RetrievalResult,
    RetrievedChunk,
)
from docrag.models.rag_config import RetrievalConfig

logger = logging.getLogger(__name__)

MISSING_CHUNK_INDEX = sys.maxsize

FILLER_WORDS = {'what', 'how', 'why', 'when', 'where', 'is', 'are', 'the', 'a', 'an'}


def generate_query_variations(query: str) -> List[str]:
    """
    Rephrasings of a question for multi-query retrieval.

    - the question itself
    - "What <q>?" and "How <q>?" when it has no question mark
    - its keywords (filler words and words of <= 2 characters removed)
    """
    variations = [query]

    if '?' not in query:
        variations.append(f"What {query}?")
        variations.append(f"How {query}?")

    keywords = ' '.join(
        word for word in query.lower().split()
        if word not in FILLER_WORDS and len(word) > 2
    )
    if keywords and keywords != query:
        variations.append(keywords)

    return list(dict.fromkeys(variations))


class MultiStrategyRetriever:
    """
    Parallel per-file retrieval with overview budgeting, diversity and reranking.

    Parameters:
    -----------
    vector_store : VectorStoreInterface
        Per-file collections
    embedder : CachedEmbedder
        Embeds questions and structural queries (cached)
    config : RetrievalConfig
        Budgets, penalties, weights and timeouts
    executor : ThreadPoolExecutor, optional
        Pool for the per-file fan-out; a private pool is created when omitted

    Example Usage:
    --------------
    retriever = MultiStrategyRetriever(store, CachedEmbedder(provider))
    result = retriever.retrieve("Summarize chapter 2", ["file_a", "file_b"], n_results=25)
    for chunk in result.chunks:
        print(chunk.metadata.file_name, chunk.metadata.chunk_index, chunk.distance)
    """

    def __init__(
            self,
            vector_store: VectorStoreInterface,
            embedder: CachedEmbedder,
            config: Optional[RetrievalConfig] = None,
            executor: Optional[ThreadPoolExecutor] = None
    ):
        self.vector_store = vector_store
        self.embedder = embedder
        self.config = config or RetrievalConfig()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="docrag-retrieval"
        )

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def retrieve(
            self,
            query: str,
            file_ids: List[str],
            n_results: int = 5,
            options: Optional[RetrievalOptions] = None
    ) -> RetrievalResult:
        """
        Retrieve the n_results most useful chunks across file_ids.

        Parameters:
        -----------
        query : str
            User question
        file_ids : List[str]
            Files selected for this turn (duplicates are ignored)
        n_results : int
            Number of chunks wanted
        options : RetrievalOptions, optional
            rerank_results, diversity_threshold, enable_smart_retrieval

        Returns:
        --------
        RetrievalResult:
            At most n_results chunks; total_chunks is the fused candidate
            count, files_queried the files that contributed any candidate

        Raises:
        -------
        EncodingError:
            If the question cannot be embedded
        """
        if n_results < 1:
            raise ValueError(f"n_results must be >= 1, got {n_results}")

        options = options or RetrievalOptions()
        query_type = classify_query(query)

        if not file_ids:
            logger.warning("No file ids provided for query")
            return RetrievalResult.empty(query_type)

        file_ids = list(dict.fromkeys(file_ids))
        query_embedding = self.embedder.embed_query(query)

        use_overview = options.enable_smart_retrieval and query_type == QueryType.OVERVIEW
        results_per_file = ceil(n_results / len(file_ids))
        if use_overview or not options.rerank_results:
            fetch_per_file = results_per_file
        else:
            fetch_per_file = results_per_file * self.config.rerank_overfetch

        per_file = self._query_files(file_ids, query_embedding, fetch_per_file, use_overview)

        fused = [chunk for file_id in file_ids for chunk in per_file.get(file_id, [])]
        fused.sort(key=lambda chunk: chunk.distance)

        total_chunks = len(fused)
        files_queried = [file_id for file_id in file_ids if per_file.get(file_id)]

        if len(files_queried) < len(file_ids):
            missing = [file_id for file_id in file_ids if file_id not in files_queried]
            logger.warning(
                f"Partial retrieval: {len(files_queried)}/{len(file_ids)} files returned chunks "
                f"(no results from {missing})"
            )

        chunks = fused
        if len(chunks) > n_results:
            chunks = apply_diversity_filter(chunks, options.diversity_threshold, max_results=n_results)

        if options.rerank_results and chunks:
            chunks = rerank_by_relevance(
                query,
                chunks,
                n_results,
                semantic_weight=self.config.semantic_weight,
                keyword_weight=self.config.keyword_weight,
                position_weight=self.config.position_weight,
            )
        else:
            chunks = chunks[:n_results]

        logger.info(
            f"Retrieved {len(chunks)} chunks for {query_type.value} query "
            f"from {len(files_queried)} files ({total_chunks} candidates)"
        )

        return RetrievalResult(
            chunks=chunks,
            total_chunks=total_chunks,
            files_queried=files_queried,
            query_type=query_type,
        )

    def retrieve_multi_query(
            self,
            query: str,
            file_ids: List[str],
            n_results: int = 5,
            options: Optional[RetrievalOptions] = None
    ) -> RetrievalResult:
        """
        Retrieve with several rephrasings of the question and merge.

        Each variation retrieves ceil(n/2) chunks without reranking; chunks
        with identical text are merged keeping their smallest distance, and
        the n closest are returned.
        """
        query_type = classify_query(query)
        if not file_ids:
            return RetrievalResult.empty(query_type)

        options = (options or RetrievalOptions()).model_copy(update={"rerank_results": False})
        per_variation = ceil(n_results / 2)

        best: Dict[str, RetrievedChunk] = {}
        for variation in generate_query_variations(query):
            result = self.retrieve(variation, file_ids, per_variation, options)
            for chunk in result.chunks:
                key = compute_text_hash(chunk.document)
                if key not in best or chunk.distance < best[key].distance:
                    best[key] = chunk

        merged = sorted(best.values(), key=lambda chunk: chunk.distance)[:n_results]
        contributing = {chunk.file_id for chunk in merged}

        return RetrievalResult(
            chunks=merged,
            total_chunks=len(best),
            files_queried=[file_id for file_id in dict.fromkeys(file_ids) if file_id in contributing],
            query_type=query_type,
        )

    # =========================================================================
    # PER-FILE FAN-OUT
    # =========================================================================

    def _query_files(
            self,
            file_ids: List[str],
            query_embedding: np.ndarray,
            top_k: int,
            use_overview: bool
    ) -> Dict[str, List[RetrievedChunk]]:
        futures = {
            file_id: self._executor.submit(
                self._retrieve_for_file, file_id, query_embedding, top_k, use_overview
            )
            for file_id in file_ids
        }

        done, _ = wait(list(futures.values()), timeout=self.config.per_file_timeout_seconds)

        per_file: Dict[str, List[RetrievedChunk]] = {}
        for file_id, future in futures.items():
            if future in done:
                per_file[file_id] = future.result()
            else:
                future.cancel()
                logger.warning(
                    f"Query for file {file_id} did not finish within "
                    f"{self.config.per_file_timeout_seconds}s, skipping it"
                )
                per_file[file_id] = []

        return per_file

    def _retrieve_for_file(
            self,
            file_id: str,
            query_embedding: np.ndarray,
            top_k: int,
            use_overview: bool
    ) -> List[RetrievedChunk]:
        """One file's candidates; never raises."""
        try:
            if use_overview:
                return self._overview_for_file(file_id, query_embedding, top_k)
            return self._standard_for_file(file_id, query_embedding, top_k)
        except CollectionNotFoundError:
            logger.debug(f"No collection for file {file_id} (not indexed yet)")
            return []
        except Exception as e:
            logger.warning(f"Failed to query collection {file_id}: {e}")
            return []

    def _standard_for_file(
            self,
            file_id: str,
            query_embedding: np.ndarray,
            top_k: int
    ) -> List[RetrievedChunk]:
        rows = self.vector_store.query(file_id, query_embedding, top_k)
        return [self._to_chunk(row, file_id, ChunkSource.SEMANTIC) for row in rows]

    def _overview_for_file(
            self,
            file_id: str,
            query_embedding: np.ndarray,
            n_results: int
    ) -> List[RetrievedChunk]:
        """
        Budgeted semantic + structural (+ boundary) retrieval for one file.

        Falls back to the standard strategy on any error other than a
        missing collection.
        """
        cfg = self.config

        try:
            candidates: Dict[str, RetrievedChunk] = {}

            semantic_budget = max(1, floor(n_results * cfg.semantic_fraction))
            self._collect(
                candidates,
                self.vector_store.query(file_id, query_embedding, semantic_budget),
                file_id, ChunkSource.SEMANTIC, 0.0
            )

            per_query_budget = floor(n_results * cfg.structural_fraction) // len(cfg.structural_queries)
            if per_query_budget > 0:
                structural_vectors = self.embedder.embed(cfg.structural_queries)
                for structural_vector in structural_vectors:
                    self._collect(
                        candidates,
                        self.vector_store.query(file_id, structural_vector, per_query_budget),
                        file_id, ChunkSource.STRUCTURAL, cfg.structural_penalty
                    )

            boundary_budget = floor(n_results * cfg.boundary_fraction)
            if boundary_budget > 0:
                rows = self.vector_store.get(file_id, where={"chunk_index": {"$lt": boundary_budget}})
                for row in rows:
                    row['distance'] = cfg.boundary_base_distance
                self._collect(candidates, rows, file_id, ChunkSource.BOUNDARY, cfg.boundary_penalty)

            ordered = sorted(candidates.values(), key=cmp_to_key(self._compare_overview))
            return ordered[:n_results]

        except CollectionNotFoundError:
            raise
        except Exception as e:
            logger.warning(
                f"Overview retrieval failed for file {file_id}, "
                f"falling back to standard retrieval: {e}"
            )
            return self._standard_for_file(file_id, query_embedding, n_results)

    # =========================================================================
    # HELPER METHODS (Private)
    # =========================================================================

    def _collect(
            self,
            candidates: Dict[str, RetrievedChunk],
            rows: List[Dict],
            file_id: str,
            source: ChunkSource,
            penalty: float
    ) -> None:
        """Add rows not seen yet (by chunk id); the first source to find a chunk keeps it."""
        for row in rows:
            if row['id'] in candidates:
                continue
            candidates[row['id']] = self._to_chunk(row, file_id, source, penalty)

    def _to_chunk(
            self,
            row: Dict,
            file_id: str,
            source: ChunkSource,
            penalty: float = 0.0
    ) -> RetrievedChunk:
        distance = row.get('distance')
        if distance is None:
            distance = self.config.missing_distance

        return RetrievedChunk(
            chunk_id=row['id'],
            document=row.get('document') or '',
            metadata=ChunkMetadata.from_store_metadata(row.get('metadata'), file_id=file_id),
            distance=distance + penalty,
            file_id=file_id,
            source=source,
        )

    def _compare_overview(self, a: RetrievedChunk, b: RetrievedChunk) -> int:
        """
        Distance order, except that chunks within tie_tolerance of each other
        keep document order (missing chunk index sorts last).
        """
        diff = a.distance - b.distance
        if abs(diff) > self.config.tie_tolerance:
            return -1 if diff < 0 else 1

        index_a = a.chunk_index if a.chunk_index is not None else MISSING_CHUNK_INDEX
        index_b = b.chunk_index if b.chunk_index is not None else MISSING_CHUNK_INDEX
        return (index_a > index_b) - (index_a < index_b)
