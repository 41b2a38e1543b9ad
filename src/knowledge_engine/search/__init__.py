"""Retrieval, ranking and citation building."""


def __getattr__(name: str):
    """Lazy import for search components (the store imports search.models)."""
    if name in ("RetrievalEngine", "RetrievalOptions", "RetrievalResult", "Grounding", "ground_query"):
        from knowledge_engine.search import retriever

        return getattr(retriever, name)

    if name in ("SourceCitation", "ConfidenceScore", "build_citations", "build_confidence", "relevance_label"):
        from knowledge_engine.search import citations

        return getattr(citations, name)

    if name in ("RankedChunk", "SourceType", "ALL_CORPORA"):
        from knowledge_engine.search import models

        return getattr(models, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ALL_CORPORA",
    "ConfidenceScore",
    "Grounding",
    "RankedChunk",
    "RetrievalEngine",
    "RetrievalOptions",
    "RetrievalResult",
    "SourceCitation",
    "SourceType",
    "build_citations",
    "build_confidence",
    "ground_query",
    "relevance_label",
]
