"""Similarity-searchable store over the relational database.

This is the storage capability the engine relies on:
- exact-match upserts on natural keys (idempotent)
- nearest-neighbour queries scoped by tenant, with an optional document allow-list
- plain reads/writes of the per-source sync status row

Vectors are stored as JSON arrays and compared with numpy. A pgvector backend
only needs to replace ``query_nearest``.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import numpy as np
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_engine.db.models import (
    DataSourceStatus,
    Document,
    DocumentChunk,
    Meeting,
    MeetingChunk,
    SyncedRecord,
)
from knowledge_engine.search.models import RankedChunk, SourceType

logger = logging.getLogger(__name__)

AIRTABLE_EDIT_URL = "https://airtable.com/{base_id}/{table_id}/{record_id}"


@dataclass
class ChunkRecord:
    """A chunk ready to be written: text, embedding and location."""

    chunk_index: int
    content: str
    embedding: list[float]
    page_number: int | None = None
    timestamp: str | None = None


def cosine_similarities(query: list[float], vectors: list[list[float]]) -> np.ndarray:
    """Cosine similarity between one query vector and many stored vectors.

    Zero-length vectors score 0.
    """
    if not vectors:
        return np.array([])
    q = np.asarray(query, dtype=float)
    matrix = np.asarray(vectors, dtype=float)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / norms, 0.0)
    return sims


class KnowledgeStore:
    """Reads and writes chunks, synced records and sync status."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None):
        """Initialize the store.

        Args:
            session_maker: Session factory (defaults to the application's)
        """
        if session_maker is None:
            from knowledge_engine.db.database import async_session_maker

            session_maker = async_session_maker
        self.session_maker = session_maker

    # ------------------------------------------------------------------
    # Similarity queries
    # ------------------------------------------------------------------

    async def query_nearest(
        self,
        corpus: SourceType,
        vector: list[float],
        tenant_id: str,
        threshold: float,
        limit: int,
        source_ids: set[str] | None = None,
    ) -> list[RankedChunk]:
        """Find the chunks of one corpus most similar to ``vector``.

        Only chunks owned by ``tenant_id`` are considered, and only those with
        similarity strictly above ``threshold`` are returned. ``source_ids``
        restricts the document corpus to the given document ids; it has no
        effect on the other corpora.

        Returns:
            Up to ``limit`` chunks ordered by similarity, descending
        """
        async with self.session_maker() as session:
            if corpus == SourceType.DOCUMENT:
                candidates = await self._document_candidates(session, tenant_id, source_ids)
            elif corpus == SourceType.MEETING:
                candidates = await self._meeting_candidates(session, tenant_id)
            elif corpus == SourceType.TABULAR:
                candidates = await self._tabular_candidates(session, tenant_id)
            else:
                raise ValueError(f"Unknown corpus: {corpus}")

        # Rows embedded by a different model stay unsearchable until re-embedded
        usable = [c for c in candidates if len(c[0]) == len(vector)]
        if len(usable) < len(candidates):
            logger.debug(
                f"{corpus.value}: skipped {len(candidates) - len(usable)} chunks "
                f"with embedding size != {len(vector)}"
            )
        candidates = usable

        if not candidates:
            return []

        sims = cosine_similarities(vector, [embedding for embedding, _ in candidates])
        results = []
        for sim, (_, chunk) in zip(sims, candidates):
            if sim > threshold:
                chunk.score = float(sim)
                results.append(chunk)

        results.sort(key=lambda c: c.score, reverse=True)
        logger.debug(
            f"{corpus.value}: {len(candidates)} candidates, {len(results)} above {threshold}"
        )
        return results[:limit]

    async def _document_candidates(
        self, session: AsyncSession, tenant_id: str, source_ids: set[str] | None
    ) -> list[tuple[list[float], RankedChunk]]:
        stmt = (
            select(DocumentChunk, Document)
            .join(Document, DocumentChunk.document_id == Document.id)
            .where(Document.partner_id == tenant_id, Document.status == "ready")
        )
        if source_ids is not None:
            stmt = stmt.where(Document.id.in_(source_ids))

        rows = (await session.execute(stmt)).all()
        return [
            (
                chunk.embedding,
                RankedChunk(
                    chunk_id=chunk.id,
                    source_type=SourceType.DOCUMENT,
                    source_id=document.id,
                    source_name=document.name,
                    content=chunk.content,
                    score=0.0,
                    last_updated=document.updated_at,
                    metadata={
                        "chunk_index": chunk.chunk_index,
                        "page_number": chunk.page_number,
                    },
                ),
            )
            for chunk, document in rows
            if chunk.embedding
        ]

    async def _meeting_candidates(
        self, session: AsyncSession, tenant_id: str
    ) -> list[tuple[list[float], RankedChunk]]:
        stmt = (
            select(MeetingChunk, Meeting)
            .join(Meeting, MeetingChunk.meeting_id == Meeting.id)
            .where(Meeting.partner_id == tenant_id)
        )
        rows = (await session.execute(stmt)).all()
        return [
            (
                chunk.embedding,
                RankedChunk(
                    chunk_id=chunk.id,
                    source_type=SourceType.MEETING,
                    source_id=meeting.id,
                    source_name=meeting.title,
                    content=chunk.content,
                    score=0.0,
                    last_updated=meeting.synced_at,
                    metadata={
                        "chunk_index": chunk.chunk_index,
                        "timestamp": chunk.timestamp,
                    },
                ),
            )
            for chunk, meeting in rows
            if chunk.embedding
        ]

    async def _tabular_candidates(
        self, session: AsyncSession, tenant_id: str
    ) -> list[tuple[list[float], RankedChunk]]:
        stmt = select(SyncedRecord).where(
            SyncedRecord.partner_id == tenant_id,
            SyncedRecord.embedding.is_not(None),
        )
        records = (await session.execute(stmt)).scalars().all()
        return [
            (record.embedding, self._record_to_chunk(record))
            for record in records
            if record.embedding
        ]

    @staticmethod
    def _record_to_chunk(record: SyncedRecord) -> RankedChunk:
        fields = record.fields or {}
        label = fields.get(record.primary_field) if record.primary_field else None
        source_name = f"{record.table_name}: {label}" if label else f"{record.table_name} Record"
        return RankedChunk(
            chunk_id=record.id,
            source_type=SourceType.TABULAR,
            source_id=record.id,
            source_name=source_name,
            content=record.content or json.dumps(fields, default=str),
            score=0.0,
            last_updated=record.synced_at,
            metadata={
                "field_key": record.primary_field,
                "table_name": record.table_name,
                "edit_url": AIRTABLE_EDIT_URL.format(
                    base_id=record.base_id,
                    table_id=record.table_id,
                    record_id=record.external_id,
                ),
            },
        )

    # ------------------------------------------------------------------
    # Documents and meetings
    # ------------------------------------------------------------------

    async def save_document(
        self,
        document_id: str,
        partner_id: str,
        name: str,
        chunks: list[ChunkRecord],
        page_count: int | None = None,
    ) -> int:
        """Create or update a document and replace its chunks.

        Chunks are keyed by (document_id, chunk_index); indices beyond the new
        chunk count are removed so a shorter re-index leaves no stale chunks.

        Returns:
            Number of chunks stored
        """
        async with self.session_maker() as session:
            document = await session.get(Document, document_id)
            if document is None:
                document = Document(id=document_id, partner_id=partner_id, name=name)
                session.add(document)
            document.name = name
            document.partner_id = partner_id
            document.page_count = page_count
            document.status = "ready"
            document.updated_at = datetime.utcnow()

            existing = {
                chunk.chunk_index: chunk
                for chunk in (
                    await session.execute(
                        select(DocumentChunk).where(DocumentChunk.document_id == document_id)
                    )
                ).scalars()
            }
            for chunk in chunks:
                row = existing.pop(chunk.chunk_index, None)
                if row is None:
                    row = DocumentChunk(document_id=document_id, chunk_index=chunk.chunk_index)
                    session.add(row)
                row.content = chunk.content
                row.embedding = chunk.embedding
                row.page_number = chunk.page_number

            for stale in existing.values():
                await session.delete(stale)

            await session.commit()
        return len(chunks)

    async def save_meeting(
        self,
        fireflies_id: str,
        partner_id: str,
        title: str,
        chunks: list[ChunkRecord],
        participants: list[str] | None = None,
        duration_minutes: int = 0,
        date: datetime | None = None,
    ) -> str:
        """Create or update a meeting (keyed by its external id) and replace its chunks.

        Returns:
            Local meeting id
        """
        async with self.session_maker() as session:
            meeting = (
                await session.execute(select(Meeting).where(Meeting.fireflies_id == fireflies_id))
            ).scalar_one_or_none()
            if meeting is None:
                meeting = Meeting(fireflies_id=fireflies_id, partner_id=partner_id, title=title)
                session.add(meeting)
                await session.flush()
            meeting.partner_id = partner_id
            meeting.title = title
            meeting.participants = participants or []
            meeting.duration_minutes = duration_minutes
            meeting.date = date
            meeting.synced_at = datetime.utcnow()

            await session.execute(delete(MeetingChunk).where(MeetingChunk.meeting_id == meeting.id))
            for chunk in chunks:
                session.add(
                    MeetingChunk(
                        meeting_id=meeting.id,
                        chunk_index=chunk.chunk_index,
                        timestamp=chunk.timestamp,
                        content=chunk.content,
                        embedding=chunk.embedding,
                    )
                )

            await session.commit()
            return meeting.id

    # ------------------------------------------------------------------
    # Synced (tabular) records
    # ------------------------------------------------------------------

    async def upsert_synced_record(self, data: dict[str, Any]) -> SyncedRecord:
        """Insert or update one record by (external_id, base_id, table_id).

        Applying the same data twice leaves exactly one row with that content.
        A missing ``embedding`` key keeps the stored embedding.
        """
        async with self.session_maker() as session:
            existing = (
                await session.execute(
                    select(SyncedRecord).where(
                        SyncedRecord.external_id == data["external_id"],
                        SyncedRecord.base_id == data["base_id"],
                        SyncedRecord.table_id == data["table_id"],
                    )
                )
            ).scalar_one_or_none()

            if existing is None:
                existing = SyncedRecord(**data)
                session.add(existing)
            else:
                for key, value in data.items():
                    if key != "id":
                        setattr(existing, key, value)

            await session.commit()
            return existing

    async def get_synced_records(self, table_name: str, source: str = "airtable") -> list[SyncedRecord]:
        """All records synced for one table."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(SyncedRecord).where(
                    SyncedRecord.table_name == table_name,
                    SyncedRecord.source == source,
                )
            )
            return list(result.scalars().all())

    async def update_record_embedding(
        self, record_id: str, embedding: list[float], content: str
    ) -> None:
        """Replace the embedding of one synced record in place."""
        async with self.session_maker() as session:
            record = await session.get(SyncedRecord, record_id)
            if record is None:
                raise LookupError(f"Synced record not found: {record_id}")
            record.embedding = embedding
            record.content = content
            record.synced_at = datetime.utcnow()
            await session.commit()

    async def delete_synced_records(self, table_name: str, source: str = "airtable") -> int:
        """Delete every record synced for one table.

        Returns:
            Number of rows removed
        """
        async with self.session_maker() as session:
            result = await session.execute(
                delete(SyncedRecord).where(
                    SyncedRecord.table_name == table_name,
                    SyncedRecord.source == source,
                )
            )
            await session.commit()
            return result.rowcount or 0

    async def count_records_by_table(self, source: str = "airtable") -> dict[str, int]:
        """Record counts per table name."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(SyncedRecord.table_name, func.count(SyncedRecord.id))
                .where(SyncedRecord.source == source)
                .group_by(SyncedRecord.table_name)
            )
            return {name: count for name, count in result.all()}

    # ------------------------------------------------------------------
    # Sync status
    # ------------------------------------------------------------------

    async def upsert_source_status(
        self,
        source: str,
        status: str,
        item_count: int,
        last_error: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Overwrite the last-known sync status for a source."""
        async with self.session_maker() as session:
            row = await session.get(DataSourceStatus, source)
            if row is None:
                row = DataSourceStatus(source=source)
                session.add(row)
            row.last_sync = datetime.utcnow()
            row.status = status
            row.item_count = item_count
            row.last_error = last_error
            row.details = details or {}
            await session.commit()

    async def get_source_status(self, source: str) -> dict[str, Any] | None:
        """Read the last-known sync status for a source."""
        async with self.session_maker() as session:
            row = await session.get(DataSourceStatus, source)
            return row.to_dict() if row else None

    async def check_health(self) -> bool:
        """Check the database answers a trivial query."""
        try:
            async with self.session_maker() as session:
                await session.execute(select(1))
            return True
        except Exception as e:
            logger.warning(f"Store health check failed: {e}")
            return False
