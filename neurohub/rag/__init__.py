"""
NeuroHub RAG system - repository ingestion and retrieval.

Pipeline:
    GitHub tree -> chunker -> summarizer -> combiner -> embedder -> source_embeddings
    question -> embedder -> cosine ranking over source_embeddings -> guarded prompt -> streamed answer

Modules:
    config      all tunables (env overridable)
    chunker     overlapping text windows with layered separators
    summarizer  prompts, model path with retry, deterministic fallbacks, LRU cache
    indexer     index_repository()
    retriever   search_files(), answer_question()
    locks       one outstanding run per project
    router      HTTP endpoints

Import submodules directly; this package keeps no eager imports.
"""
