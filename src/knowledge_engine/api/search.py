"""Grounded search endpoint."""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from knowledge_engine.api.deps import get_retrieval_engine
from knowledge_engine.api.schemas import (
    CitationItem,
    ConfidenceItem,
    SearchRequest,
    SearchResponse,
)
from knowledge_engine.search.models import ALL_CORPORA
from knowledge_engine.search.retriever import RetrievalEngine, RetrievalOptions, ground_query

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["search"])


def _build_options(request: SearchRequest) -> RetrievalOptions:
    overrides = {
        key: value
        for key, value in {
            "top_k": request.top_k,
            "similarity_threshold": request.similarity_threshold,
            "max_context_tokens": request.max_context_tokens,
        }.items()
        if value is not None
    }
    return RetrievalOptions(
        tenant_id=request.tenant_id,
        source_filter=set(request.source_filter) if request.source_filter is not None else None,
        corpora=tuple(request.corpora) if request.corpora else ALL_CORPORA,
        **overrides,
    )


@router.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    engine: RetrievalEngine = Depends(get_retrieval_engine),
) -> SearchResponse:
    """Retrieve context, citations and confidence for a query.

    A retrieval failure returns an ungrounded response rather than an error.
    """
    start = time.time()
    try:
        options = _build_options(request)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    grounding = await ground_query(engine, request.query, options)
    took_ms = int((time.time() - start) * 1000)
    logger.info(
        f"Search '{request.query[:50]}' -> {len(grounding.citations)} citations "
        f"({grounding.confidence.level}) in {took_ms}ms"
    )

    return SearchResponse(
        query=request.query,
        context=grounding.context,
        citations=[
            CitationItem(**c.to_dict(), relevance_label=c.relevance_label)
            for c in grounding.citations
        ],
        confidence=ConfidenceItem(**grounding.confidence.to_dict()),
        grounded=grounding.grounded,
        took_ms=took_ms,
    )
