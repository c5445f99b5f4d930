"""
docrag/core/retrievals/diversity.py

Near-duplicate suppression for retrieved chunks.

Overlapping chunks and repeated passages across files often come back
together. Greedy filtering over the distance-ordered candidates keeps the
best-ranked chunk of every group of near-duplicates:

    accept candidate  <=>  jaccard(candidate, kept) < threshold  for every kept chunk

Similarity is Jaccard over lowercase whitespace-delimited token sets.
"""

from typing import List, Optional, TypeVar, Callable, Set

T = TypeVar('T')


def tokenize(text: str) -> Set[str]:
    return set(text.lower().split())


def _token_jaccard(tokens_a: Set[str], tokens_b: Set[str]) -> float:
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def jaccard_similarity(text_a: str, text_b: str) -> float:
    """|A ∩ B| / |A ∪ B| of the two token sets; 0.0 when both are empty."""
    return _token_jaccard(tokenize(text_a), tokenize(text_b))


def apply_diversity_filter(
        items: List[T],
        threshold: float,
        max_results: Optional[int] = None,
        get_text: Callable[[T], str] = lambda item: item.document
) -> List[T]:
    """
    Greedily keep items in order, skipping near-duplicates of kept items.

    Stops once max_results items are kept. The first item is always kept;
    the output preserves input order.
    """
    kept: List[T] = []
    kept_tokens: List[Set[str]] = []

    for item in items:
        if max_results is not None and len(kept) >= max_results:
            break

        tokens = tokenize(get_text(item))
        is_duplicate = False

        for other in kept_tokens:
            if _token_jaccard(tokens, other) >= threshold:
                is_duplicate = True
                break

        if not is_duplicate:
            kept.append(item)
            kept_tokens.append(tokens)

    return kept
