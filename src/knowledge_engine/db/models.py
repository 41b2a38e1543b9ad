"""SQLAlchemy models for the retrievable corpora and sync bookkeeping.

Corpora:
- documents / document_chunks: uploaded documents, chunked by page
- meetings / meeting_chunks: synced meeting transcripts
- airtable_records: one row per synced Airtable record (the record is its own chunk)

Bookkeeping:
- data_source_status: latest sync snapshot per external source
- webhook_logs: append-only audit trail of automation deliveries
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Document(Base):
    """An uploaded document whose extracted text has been chunked."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    partner_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(512))
    status: Mapped[str] = mapped_column(String(32), default="processing")  # processing, ready, error
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    chunks: Mapped[list["DocumentChunk"]] = relationship(
        "DocumentChunk", back_populates="document", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, name={self.name[:30]}, status={self.status})>"


class DocumentChunk(Base):
    """A chunk of document text with its embedding."""

    __tablename__ = "document_chunks"
    __table_args__ = (UniqueConstraint("document_id", "chunk_index"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    document_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("documents.id", ondelete="CASCADE"), index=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer)
    page_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    content: Mapped[str] = mapped_column(Text)
    embedding: Mapped[list[float]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    document: Mapped["Document"] = relationship("Document", back_populates="chunks")

    def __repr__(self) -> str:
        return f"<DocumentChunk(document_id={self.document_id}, index={self.chunk_index})>"


class Meeting(Base):
    """A meeting transcript synced from the transcription service."""

    __tablename__ = "meetings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    partner_id: Mapped[str] = mapped_column(String(64), index=True)
    fireflies_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(512))
    participants: Mapped[list[str]] = mapped_column(JSON, default=list)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=0)
    date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    chunks: Mapped[list["MeetingChunk"]] = relationship(
        "MeetingChunk", back_populates="meeting", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Meeting(fireflies_id={self.fireflies_id}, title={self.title[:30]})>"


class MeetingChunk(Base):
    """A group of transcript segments with its embedding."""

    __tablename__ = "meeting_chunks"
    __table_args__ = (UniqueConstraint("meeting_id", "chunk_index"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    meeting_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("meetings.id", ondelete="CASCADE"), index=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer)
    timestamp: Mapped[str | None] = mapped_column(String(32), nullable=True)  # "mm:ss" of first segment
    content: Mapped[str] = mapped_column(Text)
    embedding: Mapped[list[float]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    meeting: Mapped["Meeting"] = relationship("Meeting", back_populates="chunks")


class SyncedRecord(Base):
    """A record pulled from an Airtable base.

    The natural key (external_id, base_id, table_id) is unique so re-syncing the
    same record updates it in place.
    """

    __tablename__ = "airtable_records"
    __table_args__ = (UniqueConstraint("external_id", "base_id", "table_id"),)

    id: Mapped[str] = mapped_column(String(255), primary_key=True)  # "{base}_{table}_{record}"
    external_id: Mapped[str] = mapped_column(String(64))
    source: Mapped[str] = mapped_column(String(32), default="airtable", index=True)
    partner_id: Mapped[str] = mapped_column(String(64), index=True)
    base_id: Mapped[str] = mapped_column(String(64))
    table_id: Mapped[str] = mapped_column(String(64))
    table_name: Mapped[str] = mapped_column(String(256), index=True)
    primary_field: Mapped[str | None] = mapped_column(String(256), nullable=True)
    fields: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    content: Mapped[str] = mapped_column(Text, default="")  # Text that was embedded
    created_at_source: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    embedding: Mapped[list[float] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncedRecord(id={self.id}, table={self.table_name})>"


class DataSourceStatus(Base):
    """Latest sync snapshot for one external source (overwritten each run)."""

    __tablename__ = "data_source_status"

    source: Mapped[str] = mapped_column(String(32), primary_key=True)
    last_sync: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="disconnected")  # connected, error
    item_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "status": self.status,
            "item_count": self.item_count,
            "last_error": self.last_error,
            "metadata": self.details or {},
        }


class WebhookLog(Base):
    """One row per webhook delivery outcome (not per retry)."""

    __tablename__ = "webhook_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    direction: Mapped[str] = mapped_column(String(16))  # inbound, outbound
    endpoint: Mapped[str] = mapped_column(String(1024))
    event_type: Mapped[str] = mapped_column(String(64), index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    response: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending, success, error
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<WebhookLog(event_type={self.event_type}, status={self.status})>"
