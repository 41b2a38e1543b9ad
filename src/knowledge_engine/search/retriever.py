"""Cross-corpus retrieval with a token-bounded context.

Flow:
1. Embed the query once.
2. Query every enabled corpus concurrently for chunks above the similarity floor.
3. Merge into one list ranked by similarity (ties: most recently updated first).
4. Keep the top-k, then pack them into the context until the budget is reached.

The same embedding model produces every stored vector, so similarities from
different corpora are directly comparable.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from knowledge_engine.config import settings
from knowledge_engine.exceptions import EmbeddingFailure, RetrievalError
from knowledge_engine.search.citations import (
    ConfidenceScore,
    SourceCitation,
    build_citations,
    build_confidence,
)
from knowledge_engine.search.models import (
    ALL_CORPORA,
    RankedChunk,
    SourceType,
    estimate_tokens,
)
from knowledge_engine.vectorstore.embeddings import EmbeddingService
from knowledge_engine.vectorstore.store import KnowledgeStore

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n"


@dataclass
class RetrievalOptions:
    """Per-query retrieval parameters."""

    tenant_id: str
    top_k: int = field(default_factory=lambda: settings.RAG_TOP_K)
    similarity_threshold: float = field(default_factory=lambda: settings.RAG_SIMILARITY_THRESHOLD)
    max_context_tokens: int = field(default_factory=lambda: settings.RAG_MAX_CONTEXT_TOKENS)
    source_filter: set[str] | None = None  # Document ids; documents corpus only
    corpora: tuple[SourceType, ...] = ALL_CORPORA

    def __post_init__(self):
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")
        if self.top_k < 1:
            raise ValueError("top_k must be at least 1")
        if self.max_context_tokens < 1:
            raise ValueError("max_context_tokens must be at least 1")


@dataclass
class RetrievalResult:
    """Chunks that made it into the context, and the context itself."""

    chunks: list[RankedChunk]
    context: str
    total_tokens: int

    @property
    def is_empty(self) -> bool:
        return not self.chunks


def format_chunk(chunk: RankedChunk) -> str:
    """Render one chunk as it appears in the model context."""
    return f"[{chunk.source_name}]: {chunk.content}"


def rank_chunks(chunks: list[RankedChunk]) -> list[RankedChunk]:
    """Order by similarity descending; ties go to the most recently updated."""
    return sorted(
        chunks,
        key=lambda c: (c.score, c.last_updated or datetime.min),
        reverse=True,
    )


def assemble_context(
    candidates: list[RankedChunk], max_tokens: int
) -> tuple[list[RankedChunk], str, int]:
    """Pack ranked candidates into a context string under a token budget.

    Each candidate costs the estimated tokens of its rendered block including
    the separator before it, so the whole context stays within
    ``max_tokens * 4`` characters. Packing stops at the first candidate that
    would overflow. The top candidate is always included, even alone over
    budget.

    Returns:
        (included chunks, context string, estimated tokens)
    """
    included: list[RankedChunk] = []
    blocks: list[str] = []
    used = 0

    for chunk in candidates:
        block = format_chunk(chunk)
        cost = estimate_tokens(block if not blocks else CONTEXT_SEPARATOR + block)
        if included and used + cost > max_tokens:
            logger.debug(
                f"Context budget reached at {used}/{max_tokens} tokens; "
                f"dropping {len(candidates) - len(included)} candidate(s)"
            )
            break
        included.append(chunk)
        blocks.append(block)
        used += cost

    return included, CONTEXT_SEPARATOR.join(blocks), used


class RetrievalEngine:
    """Retrieves ranked, budgeted context across documents, meetings and records."""

    def __init__(
        self,
        embedding_service: EmbeddingService | None = None,
        store: KnowledgeStore | None = None,
    ):
        """Initialize the retrieval engine.

        Args:
            embedding_service: Service used to embed queries
            store: Similarity-searchable store
        """
        self.embedding_service = embedding_service or EmbeddingService()
        self.store = store or KnowledgeStore()

    async def retrieve(self, query: str, options: RetrievalOptions) -> RetrievalResult:
        """Retrieve the context for a query.

        Raises:
            RetrievalError: If the query could not be embedded. Corpus query
                failures do not raise; the failing corpus is dropped.
        """
        try:
            vector = await self.embedding_service.embed(query)
        except EmbeddingFailure as e:
            raise RetrievalError(f"Could not embed query: {e}") from e

        per_corpus = await asyncio.gather(
            *(self._query_corpus(corpus, vector, options) for corpus in options.corpora)
        )
        merged = rank_chunks([chunk for chunks in per_corpus for chunk in chunks])
        candidates = merged[: options.top_k]

        included, context, tokens = assemble_context(candidates, options.max_context_tokens)

        logger.info(
            f"Retrieved {len(included)}/{len(merged)} chunks for query "
            f"'{query[:50]}' (~{tokens} tokens)"
        )
        return RetrievalResult(chunks=included, context=context, total_tokens=tokens)

    async def _query_corpus(
        self, corpus: SourceType, vector: list[float], options: RetrievalOptions
    ) -> list[RankedChunk]:
        """Query one corpus; a failure drops only this corpus."""
        source_ids = options.source_filter if corpus == SourceType.DOCUMENT else None
        try:
            return await self.store.query_nearest(
                corpus,
                vector,
                tenant_id=options.tenant_id,
                threshold=options.similarity_threshold,
                limit=options.top_k,
                source_ids=source_ids,
            )
        except Exception as e:
            logger.warning(f"Dropping {corpus.value} corpus from retrieval: {e}")
            return []


@dataclass
class Grounding:
    """What a generation call gets: context, provenance and confidence."""

    context: str
    citations: list[SourceCitation]
    confidence: ConfidenceScore
    grounded: bool


async def ground_query(
    engine: RetrievalEngine, query: str, options: RetrievalOptions
) -> Grounding:
    """Retrieve context for a chat turn, failing closed.

    A retrieval failure is logged and yields an empty grounding so the chat can
    answer without sources instead of failing.
    """
    try:
        result = await engine.retrieve(query, options)
    except RetrievalError as e:
        logger.warning(f"RAG retrieval failed, continuing without context: {e}")
        return Grounding(context="", citations=[], confidence=build_confidence([]), grounded=False)

    citations = build_citations(result.chunks)
    return Grounding(
        context=result.context,
        citations=citations,
        confidence=build_confidence(citations),
        grounded=bool(citations),
    )
