"""
Query classification, diversity filtering, reranking and multi-strategy retrieval.
"""
