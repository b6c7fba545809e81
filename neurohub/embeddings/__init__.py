# FILE: neurohub/embeddings/__init__.py
"""
File summary embeddings: generation, storage, and vector similarity search.
"""

from .service import (
    embed_text,
    content_hash,
    get_file_embedding,
    get_indexed_hashes,
    store_file_embedding,
    update_file_embedding,
    delete_file_embeddings,
    delete_file_embeddings_by_path,
    count_file_embeddings,
    cosine_similarity,
    search_file_embeddings,
)

from .models import SourceEmbedding


__all__ = [
    # Service functions
    "embed_text",
    "content_hash",
    "get_file_embedding",
    "get_indexed_hashes",
    "store_file_embedding",
    "update_file_embedding",
    "delete_file_embeddings",
    "delete_file_embeddings_by_path",
    "count_file_embeddings",
    "cosine_similarity",
    "search_file_embeddings",
    # Model
    "SourceEmbedding",
]
