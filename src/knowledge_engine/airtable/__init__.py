"""Airtable API client and sync engine."""

from knowledge_engine.airtable.client import AirtableClient
from knowledge_engine.airtable.models import AirtableRecord, AirtableTable, SyncResult
from knowledge_engine.airtable.sync import AirtableSyncEngine, record_to_text

__all__ = [
    "AirtableClient",
    "AirtableRecord",
    "AirtableSyncEngine",
    "AirtableTable",
    "SyncResult",
    "record_to_text",
]
