"""Index extracted document pages and meeting transcripts into the store."""

import logging
from dataclasses import dataclass
from datetime import datetime

from knowledge_engine.indexing.chunker import TextChunker
from knowledge_engine.vectorstore.embeddings import EmbeddingService
from knowledge_engine.vectorstore.store import ChunkRecord, KnowledgeStore
from knowledge_engine.webhooks.dispatcher import WebhookDispatcher
from knowledge_engine.webhooks.events import (
    MeetingSyncedData,
    MeetingSyncedEvent,
    NewDocumentData,
    NewDocumentEvent,
)

logger = logging.getLogger(__name__)


@dataclass
class TranscriptSegment:
    """One utterance from a meeting transcript."""

    timestamp: str
    speaker: str
    text: str

    def render(self) -> str:
        return f"{self.speaker}: {self.text}" if self.speaker else self.text


@dataclass
class MeetingInfo:
    """Meeting metadata as received from the transcript source."""

    fireflies_id: str
    partner_id: str
    title: str
    participants: list[str]
    duration_minutes: int = 0
    date: datetime | None = None


class CorpusIndexer:
    """Chunks, embeds and stores documents and meetings."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        store: KnowledgeStore,
        dispatcher: WebhookDispatcher | None = None,
        chunker: TextChunker | None = None,
    ):
        self.embedding_service = embedding_service
        self.store = store
        self.dispatcher = dispatcher
        self.chunker = chunker or TextChunker()

    async def index_document(
        self,
        document_id: str,
        partner_id: str,
        name: str,
        pages: list[str],
        document_type: str = "text",
    ) -> int:
        """Index the extracted text of a document, one string per page.

        Re-indexing the same document replaces its chunks in place.

        Returns:
            Number of chunks stored
        """
        pieces: list[tuple[int, str]] = []
        for page_number, page_text in enumerate(pages, start=1):
            for text in self.chunker.chunk(page_text):
                pieces.append((page_number, text))

        embeddings = await self.embedding_service.embed_batch([text for _, text in pieces])
        chunks = [
            ChunkRecord(chunk_index=i, content=text, embedding=embedding, page_number=page_number)
            for i, ((page_number, text), embedding) in enumerate(zip(pieces, embeddings))
        ]

        count = await self.store.save_document(
            document_id=document_id,
            partner_id=partner_id,
            name=name,
            chunks=chunks,
            page_count=len(pages),
        )
        logger.info(f"Indexed document {name}: {count} chunks from {len(pages)} pages")

        if self.dispatcher is not None:
            await self.dispatcher.trigger(
                NewDocumentEvent(
                    partner_id=partner_id,
                    data=NewDocumentData(
                        document_id=document_id,
                        document_name=name,
                        document_type=document_type,
                        page_count=len(pages),
                    ),
                )
            )
        return count

    def group_segments(self, segments: list[TranscriptSegment]) -> list[tuple[str, str]]:
        """Pack consecutive segments into chunks of at most ``max_chars``.

        Each chunk keeps the timestamp of its first segment.
        """
        limit = self.chunker.config.max_chars
        groups: list[tuple[str, str]] = []
        start: str | None = None
        lines: list[str] = []
        size = 0

        for segment in segments:
            line = segment.render().strip()
            if not segment.text.strip():
                continue
            if lines and size + len(line) + 1 > limit:
                groups.append((start, "\n".join(lines)))
                lines, size = [], 0
            if not lines:
                start = segment.timestamp
            lines.append(line)
            size += len(line) + 1

        if lines:
            groups.append((start, "\n".join(lines)))
        return groups

    async def index_meeting(self, meeting: MeetingInfo, segments: list[TranscriptSegment]) -> str:
        """Index a meeting transcript, keyed by its external id.

        Returns:
            Local meeting id
        """
        groups = self.group_segments(segments)
        embeddings = await self.embedding_service.embed_batch([text for _, text in groups])
        chunks = [
            ChunkRecord(chunk_index=i, content=text, embedding=embedding, timestamp=timestamp)
            for i, ((timestamp, text), embedding) in enumerate(zip(groups, embeddings))
        ]

        meeting_id = await self.store.save_meeting(
            fireflies_id=meeting.fireflies_id,
            partner_id=meeting.partner_id,
            title=meeting.title,
            chunks=chunks,
            participants=meeting.participants,
            duration_minutes=meeting.duration_minutes,
            date=meeting.date,
        )
        logger.info(f"Indexed meeting {meeting.title}: {len(chunks)} chunks")

        if self.dispatcher is not None:
            await self.dispatcher.trigger(
                MeetingSyncedEvent(
                    partner_id=meeting.partner_id,
                    data=MeetingSyncedData(
                        meeting_id=meeting_id,
                        fireflies_id=meeting.fireflies_id,
                        title=meeting.title,
                        participants=meeting.participants,
                        duration_minutes=meeting.duration_minutes,
                    ),
                )
            )
        return meeting_id
