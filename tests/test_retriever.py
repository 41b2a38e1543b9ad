"""Tests for cross-corpus retrieval and context assembly."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from knowledge_engine.exceptions import RetrievalError
from knowledge_engine.search.models import RankedChunk, SourceType
from knowledge_engine.search.retriever import (
    RetrievalEngine,
    RetrievalOptions,
    assemble_context,
    format_chunk,
    ground_query,
    rank_chunks,
)
from knowledge_engine.vectorstore.embeddings import EmbeddingService

from conftest import FakeEmbeddings


def make_chunk(
    chunk_id: str,
    score: float,
    source_type: SourceType = SourceType.DOCUMENT,
    content: str = "content",
    last_updated: datetime | None = None,
) -> RankedChunk:
    return RankedChunk(
        chunk_id=chunk_id,
        source_type=source_type,
        source_id=f"src-{chunk_id}",
        source_name=f"Source {chunk_id}",
        content=content,
        score=score,
        last_updated=last_updated,
    )


def mock_store(results: dict[SourceType, list[RankedChunk] | Exception]) -> AsyncMock:
    """Store double whose query_nearest answers per corpus."""
    store = AsyncMock()

    async def query_nearest(corpus, vector, tenant_id, threshold, limit, source_ids=None):
        outcome = results.get(corpus, [])
        if isinstance(outcome, Exception):
            raise outcome
        return [c for c in outcome if c.score > threshold][:limit]

    store.query_nearest.side_effect = query_nearest
    return store


@pytest.fixture
def options():
    return RetrievalOptions(
        tenant_id="partner-1",
        top_k=5,
        similarity_threshold=0.7,
        max_context_tokens=4000,
    )


class TestRankChunks:
    """Tests for merge ordering."""

    def test_orders_by_score_descending(self):
        """Higher similarity ranks first regardless of corpus."""
        chunks = [
            make_chunk("a", 0.75, SourceType.MEETING),
            make_chunk("b", 0.92),
            make_chunk("c", 0.81, SourceType.TABULAR),
        ]
        assert [c.chunk_id for c in rank_chunks(chunks)] == ["b", "c", "a"]

    def test_tie_goes_to_newer(self):
        """Equal scores are broken by the most recent update."""
        now = datetime.utcnow()
        old = make_chunk("old", 0.8, last_updated=now - timedelta(days=3))
        new = make_chunk("new", 0.8, last_updated=now)
        undated = make_chunk("undated", 0.8)

        assert [c.chunk_id for c in rank_chunks([old, undated, new])] == ["new", "old", "undated"]


class TestAssembleContext:
    """Tests for token-budgeted packing."""

    def test_format_chunk(self):
        """Chunks render as [name]: content."""
        assert format_chunk(make_chunk("a", 0.9, content="hello")) == "[Source a]: hello"

    def test_blocks_joined_by_blank_line(self):
        """Included blocks are separated by a blank line."""
        chunks = [make_chunk("a", 0.9, content="one"), make_chunk("b", 0.8, content="two")]
        included, context, _ = assemble_context(chunks, max_tokens=100)

        assert len(included) == 2
        assert context == "[Source a]: one\n\n[Source b]: two"

    def test_stops_before_overflow(self):
        """A candidate that would exceed the budget is dropped with everything after it."""
        chunks = [
            make_chunk("a", 0.9, content="x" * 100),
            make_chunk("b", 0.85, content="y" * 100),
            make_chunk("c", 0.8, content="z"),
        ]
        included, context, tokens = assemble_context(chunks, max_tokens=40)

        assert [c.chunk_id for c in included] == ["a"]
        assert tokens <= 40
        assert len(context) <= 40 * 4

    def test_context_never_exceeds_budget(self):
        """For any mix of sizes the context stays within max_tokens * 4 characters."""
        chunks = [make_chunk(str(i), 0.9 - i * 0.01, content="w" * (37 * i + 5)) for i in range(8)]
        for budget in (50, 120, 333, 1000):
            included, context, _ = assemble_context(chunks, max_tokens=budget)
            if len(included) > 1:
                assert len(context) <= budget * 4

    def test_single_oversized_candidate_included(self):
        """The top candidate is kept even when it alone exceeds the budget."""
        chunks = [make_chunk("big", 0.95, content="x" * 1000), make_chunk("small", 0.9, content="y")]
        included, context, _ = assemble_context(chunks, max_tokens=10)

        assert [c.chunk_id for c in included] == ["big"]
        assert context.startswith("[Source big]: ")

    def test_empty_candidates(self):
        """No candidates give an empty context."""
        assert assemble_context([], max_tokens=100) == ([], "", 0)


class TestRetrievalOptions:
    """Tests for option validation."""

    def test_threshold_out_of_range(self):
        """Thresholds outside [0, 1] are rejected."""
        with pytest.raises(ValueError):
            RetrievalOptions(tenant_id="p", similarity_threshold=1.5)

    def test_top_k_must_be_positive(self):
        """top_k must be at least 1."""
        with pytest.raises(ValueError):
            RetrievalOptions(tenant_id="p", top_k=0)


class TestRetrievalEngine:
    """Tests for the retrieval flow with a store double."""

    @pytest.mark.asyncio
    async def test_merges_corpora_above_threshold(self, embedding_service, options):
        """Only chunks above the threshold are returned, ranked across corpora."""
        store = mock_store({
            SourceType.DOCUMENT: [make_chunk("doc", 0.92)],
            SourceType.MEETING: [make_chunk("meet", 0.65, SourceType.MEETING)],
            SourceType.TABULAR: [make_chunk("row", 0.81, SourceType.TABULAR)],
        })
        engine = RetrievalEngine(embedding_service, store)

        result = await engine.retrieve("Q3 revenue", options)

        assert [c.chunk_id for c in result.chunks] == ["doc", "row"]
        assert "[Source doc]" in result.context
        assert "[Source meet]" not in result.context

    @pytest.mark.asyncio
    async def test_top_k_applied_after_merge(self, embedding_service):
        """top_k limits the merged list, not each corpus."""
        store = mock_store({
            SourceType.DOCUMENT: [make_chunk(f"d{i}", 0.9 - i * 0.01) for i in range(3)],
            SourceType.TABULAR: [make_chunk(f"t{i}", 0.95 - i * 0.1, SourceType.TABULAR) for i in range(3)],
        })
        engine = RetrievalEngine(embedding_service, store)

        result = await engine.retrieve("q", RetrievalOptions(tenant_id="p", top_k=3, similarity_threshold=0.5))

        assert [c.chunk_id for c in result.chunks] == ["t0", "d0", "d1"]

    @pytest.mark.asyncio
    async def test_failing_corpus_is_dropped(self, embedding_service, options):
        """A corpus query error drops only that corpus."""
        store = mock_store({
            SourceType.DOCUMENT: [make_chunk("doc", 0.9)],
            SourceType.TABULAR: RuntimeError("table index offline"),
        })
        engine = RetrievalEngine(embedding_service, store)

        result = await engine.retrieve("q", options)

        assert [c.chunk_id for c in result.chunks] == ["doc"]

    @pytest.mark.asyncio
    async def test_source_filter_only_for_documents(self, embedding_service):
        """The document allow-list is passed to the document corpus only."""
        store = mock_store({})
        engine = RetrievalEngine(embedding_service, store)
        opts = RetrievalOptions(tenant_id="p", source_filter={"doc-1"})

        await engine.retrieve("q", opts)

        by_corpus = {
            call.args[0]: call.kwargs["source_ids"] for call in store.query_nearest.call_args_list
        }
        assert by_corpus[SourceType.DOCUMENT] == {"doc-1"}
        assert by_corpus[SourceType.MEETING] is None
        assert by_corpus[SourceType.TABULAR] is None

    @pytest.mark.asyncio
    async def test_tenant_passed_to_every_corpus(self, embedding_service, options):
        """Every corpus query is scoped to the requesting tenant."""
        store = mock_store({})
        engine = RetrievalEngine(embedding_service, store)

        await engine.retrieve("q", options)

        assert store.query_nearest.call_count == 3
        for call in store.query_nearest.call_args_list:
            assert call.kwargs["tenant_id"] == "partner-1"

    @pytest.mark.asyncio
    async def test_corpora_option_limits_queries(self, embedding_service):
        """Only the requested corpora are queried."""
        store = mock_store({})
        engine = RetrievalEngine(embedding_service, store)

        await engine.retrieve("q", RetrievalOptions(tenant_id="p", corpora=(SourceType.TABULAR,)))

        assert [call.args[0] for call in store.query_nearest.call_args_list] == [SourceType.TABULAR]

    @pytest.mark.asyncio
    async def test_embedding_failure_raises_retrieval_error(self, options):
        """Retrieval fails closed when the query cannot be embedded."""
        service = EmbeddingService(provider=FakeEmbeddings(fail_on={"q"}))
        store = mock_store({SourceType.DOCUMENT: [make_chunk("doc", 0.9)]})
        engine = RetrievalEngine(service, store)

        with pytest.raises(RetrievalError):
            await engine.retrieve("q", options)
        store.query_nearest.assert_not_called()


class TestGroundQuery:
    """Tests for the fail-closed caller."""

    @pytest.mark.asyncio
    async def test_example_scenario(self, embedding_service, options):
        """Document 0.92 and record 0.81 give two ordered citations and high confidence."""
        store = mock_store({
            SourceType.DOCUMENT: [make_chunk("doc", 0.92)],
            SourceType.MEETING: [make_chunk("meet", 0.65, SourceType.MEETING)],
            SourceType.TABULAR: [make_chunk("row", 0.81, SourceType.TABULAR)],
        })
        engine = RetrievalEngine(embedding_service, store)

        grounding = await ground_query(engine, "Q3 revenue", options)

        assert grounding.grounded is True
        assert [(c.type, c.relevance_score) for c in grounding.citations] == [
            (SourceType.DOCUMENT, 0.92),
            (SourceType.TABULAR, 0.81),
        ]
        assert grounding.confidence.level == "high"

    @pytest.mark.asyncio
    async def test_citations_match_context(self, embedding_service):
        """Citations cover exactly the chunks in the context."""
        store = mock_store({
            SourceType.DOCUMENT: [
                make_chunk("a", 0.95, content="x" * 300),
                make_chunk("b", 0.9, content="y" * 300),
            ],
        })
        engine = RetrievalEngine(embedding_service, store)
        opts = RetrievalOptions(tenant_id="p", max_context_tokens=100)

        grounding = await ground_query(engine, "q", opts)

        assert [c.id for c in grounding.citations] == ["a"]
        assert "[Source b]" not in grounding.context

    @pytest.mark.asyncio
    async def test_retrieval_failure_gives_empty_grounding(self, options):
        """An embedding failure yields no context instead of an exception."""
        service = EmbeddingService(provider=FakeEmbeddings(fail_on={"q"}))
        engine = RetrievalEngine(service, mock_store({}))

        grounding = await ground_query(engine, "q", options)

        assert grounding.grounded is False
        assert grounding.context == ""
        assert grounding.citations == []
        assert grounding.confidence.level == "low"
