"""
Core components: extraction, chunking, embeddings, vector store, retrieval.
"""
