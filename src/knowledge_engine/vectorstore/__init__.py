"""Embeddings and the similarity-searchable store."""


def __getattr__(name: str):
    """Lazy import for vectorstore components."""
    if name in (
        "BaseEmbeddings",
        "EmbeddingService",
        "get_embeddings",
        "get_available_embedding_providers",
    ):
        from knowledge_engine.vectorstore import embeddings

        return getattr(embeddings, name)

    if name in ("KnowledgeStore", "ChunkRecord"):
        from knowledge_engine.vectorstore import store

        return getattr(store, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "BaseEmbeddings",
    "ChunkRecord",
    "EmbeddingService",
    "KnowledgeStore",
    "get_available_embedding_providers",
    "get_embeddings",
]
