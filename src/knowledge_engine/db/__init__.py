"""Database module for the knowledge engine."""

from knowledge_engine.db.database import async_session_maker, engine, init_db
from knowledge_engine.db.models import (
    Base,
    DataSourceStatus,
    Document,
    DocumentChunk,
    Meeting,
    MeetingChunk,
    SyncedRecord,
    WebhookLog,
)

__all__ = [
    "Base",
    "DataSourceStatus",
    "Document",
    "DocumentChunk",
    "Meeting",
    "MeetingChunk",
    "SyncedRecord",
    "WebhookLog",
    "engine",
    "async_session_maker",
    "init_db",
]
