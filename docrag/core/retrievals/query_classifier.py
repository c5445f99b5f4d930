"""
docrag/core/retrievals/query_classifier.py

Keyword-based intent classification of user questions.

    "Give me an overview of chapter 3"  -> OVERVIEW
    "Explain gradient descent"          -> EXPLANATION
    "What year was the treaty signed?"  -> SPECIFIC

Overview cues are checked first, so "summarize and explain X" is an
overview question. Matching is case-insensitive substring matching on the
raw question; it never fails and never calls a model.
"""

from docrag.models.metadata_models import QueryType

OVERVIEW_KEYWORDS = (
    'overview',
    'summary',
    'summarize',
    'chapter',
    'introduction',
    'introduce',
    'what is covered',
    'main topics',
    'key concepts',
    'outline',
)

EXPLANATION_KEYWORDS = (
    'explain',
    'describe',
    'what is',
    'how does',
    'define',
    'tell me about',
    'elaborate',
)

QUERY_TYPE_LABELS = {
    QueryType.OVERVIEW: 'OVERVIEW/SUMMARY',
    QueryType.EXPLANATION: 'EXPLANATION',
    QueryType.SPECIFIC: 'SPECIFIC INFORMATION',
}


def classify_query(query: str) -> QueryType:
    lowered = (query or '').lower()

    if any(keyword in lowered for keyword in OVERVIEW_KEYWORDS):
        return QueryType.OVERVIEW

    if any(keyword in lowered for keyword in EXPLANATION_KEYWORDS):
        return QueryType.EXPLANATION

    return QueryType.SPECIFIC
