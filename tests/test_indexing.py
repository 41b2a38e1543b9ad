"""Tests for text chunking and corpus indexing."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from knowledge_engine.indexing.chunker import ChunkConfig, TextChunker
from knowledge_engine.indexing.indexer import CorpusIndexer, MeetingInfo, TranscriptSegment
from knowledge_engine.search.models import SourceType

from conftest import QUERY_VECTOR


class TestTextChunker:
    """Tests for paragraph/sentence chunking."""

    def test_empty_text(self):
        """Whitespace-only text produces no chunks."""
        assert TextChunker(ChunkConfig(max_chars=100, overlap_chars=10)).chunk("  \n\n ") == []

    def test_small_paragraphs_merged(self):
        """Paragraphs that fit together share one chunk."""
        chunker = TextChunker(ChunkConfig(max_chars=100, overlap_chars=10))
        assert chunker.chunk("First para.\n\nSecond para.") == ["First para.\n\nSecond para."]

    def test_chunks_respect_max_chars(self):
        """No chunk is longer than max_chars."""
        text = "\n\n".join(
            " ".join(f"Sentence {p}-{s} has several words in it." for s in range(12))
            for p in range(6)
        )
        chunker = TextChunker(ChunkConfig(max_chars=200, overlap_chars=40))

        chunks = chunker.chunk(text)

        assert len(chunks) > 1
        assert all(len(c) <= 200 for c in chunks)
        assert all(c.strip() for c in chunks)

    def test_overlap_carries_previous_tail(self):
        """A new chunk starts with the tail of the previous one."""
        chunker = TextChunker(ChunkConfig(max_chars=60, overlap_chars=20))
        chunks = chunker.chunk(
            "Alpha beta gamma delta epsilon zeta eta theta.\n\nIota kappa lambda mu nu xi omicron pi."
        )

        assert len(chunks) == 2
        assert chunks[1].startswith("zeta eta theta.")
        assert chunks[1].endswith("omicron pi.")

    def test_overlong_sentence_hard_split(self):
        """A single sentence longer than max_chars is cut."""
        chunker = TextChunker(ChunkConfig(max_chars=50, overlap_chars=0))
        chunks = chunker.chunk("x" * 120)

        assert [len(c) for c in chunks] == [50, 50, 20]

    def test_overlap_must_be_smaller(self):
        """overlap_chars >= max_chars is rejected."""
        with pytest.raises(ValueError):
            TextChunker(ChunkConfig(max_chars=10, overlap_chars=10))


@pytest.fixture
def dispatcher():
    mock = MagicMock()
    mock.trigger = AsyncMock()
    return mock


@pytest.mark.integration
class TestCorpusIndexer:
    """Tests for indexing documents and meetings into the store."""

    @pytest.mark.asyncio
    async def test_index_document(self, embedding_service, store, dispatcher):
        """Pages are chunked, embedded, stored as ready and announced."""
        indexer = CorpusIndexer(
            embedding_service, store, dispatcher,
            chunker=TextChunker(ChunkConfig(max_chars=200, overlap_chars=20)),
        )

        count = await indexer.index_document(
            "doc-1", "partner-1", "Q3 report.pdf", ["Revenue grew 12%.", "Costs fell."], "pdf"
        )

        assert count == 2
        results = await store.query_nearest(
            SourceType.DOCUMENT, QUERY_VECTOR, tenant_id="partner-1", threshold=0.5, limit=10
        )
        assert sorted(r.page_number for r in results) == [1, 2]

        event = dispatcher.trigger.call_args.args[0]
        assert event.type == "new_document"
        assert event.data.document_id == "doc-1"
        assert event.data.page_count == 2

    @pytest.mark.asyncio
    async def test_reindex_is_idempotent(self, embedding_service, store):
        """Indexing the same document twice leaves the same chunks."""
        indexer = CorpusIndexer(embedding_service, store)
        pages = ["Page one text.", "Page two text."]

        await indexer.index_document("doc-1", "partner-1", "Doc", pages)
        await indexer.index_document("doc-1", "partner-1", "Doc", pages)

        results = await store.query_nearest(
            SourceType.DOCUMENT, QUERY_VECTOR, tenant_id="partner-1", threshold=0.5, limit=10
        )
        assert sorted(r.chunk_index for r in results) == [0, 1]

    @pytest.mark.asyncio
    async def test_index_meeting(self, embedding_service, store, dispatcher):
        """Segments are grouped with the first timestamp kept, then announced."""
        indexer = CorpusIndexer(
            embedding_service, store, dispatcher,
            chunker=TextChunker(ChunkConfig(max_chars=60, overlap_chars=10)),
        )
        segments = [
            TranscriptSegment("00:00:05", "Ana", "Welcome everyone to the review."),
            TranscriptSegment("00:00:20", "Ben", "Revenue is up this quarter."),
            TranscriptSegment("00:01:10", "Ana", ""),
            TranscriptSegment("00:01:30", "Ana", "Next, the hiring plan."),
        ]
        meeting = MeetingInfo(
            fireflies_id="ff-1", partner_id="partner-1", title="Q3 review",
            participants=["Ana", "Ben"], duration_minutes=30,
        )

        meeting_id = await indexer.index_meeting(meeting, segments)

        results = await store.query_nearest(
            SourceType.MEETING, QUERY_VECTOR, tenant_id="partner-1", threshold=0.5, limit=10
        )
        assert sorted(r.timestamp for r in results) == ["00:00:05", "00:00:20", "00:01:30"]
        assert all(r.source_id == meeting_id for r in results)

        event = dispatcher.trigger.call_args.args[0]
        assert event.type == "meeting_synced"
        assert event.data.fireflies_id == "ff-1"
        assert event.data.participants == ["Ana", "Ben"]


def test_group_segments_keeps_first_timestamp(embedding_service):
    """Each group is labelled with the timestamp of its first segment."""
    indexer = CorpusIndexer(
        embedding_service, MagicMock(),
        chunker=TextChunker(ChunkConfig(max_chars=1000, overlap_chars=0)),
    )
    groups = indexer.group_segments([
        TranscriptSegment("00:00:01", "Ana", "Hi."),
        TranscriptSegment("00:00:03", "Ben", "Hello."),
    ])

    assert groups == [("00:00:01", "Ana: Hi.\nBen: Hello.")]
