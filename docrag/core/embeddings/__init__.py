"""
Embedding providers and the embedding cache.
"""
