"""
docrag: document ingestion and multi-strategy retrieval for RAG chat.
"""

__version__ = "0.1.0"
