"""Airtable to local store synchronization.

A sync run moves through: schema discovery -> paginated fetch (per table,
fully drained) -> per-record upsert with optional embedding -> status
snapshot. Failures are isolated per record: a bad record is reported in the
table's errors and the rest of the batch carries on.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any

from knowledge_engine.airtable.client import AirtableClient
from knowledge_engine.airtable.models import (
    AirtableRecord,
    AirtableTable,
    DeleteResult,
    PushResult,
    ReembedResult,
    SyncResult,
    SyncStatus,
    TableSyncResult,
)
from knowledge_engine.config import settings
from knowledge_engine.exceptions import ConfigurationError
from knowledge_engine.vectorstore.embeddings import EmbeddingService
from knowledge_engine.vectorstore.store import KnowledgeStore
from knowledge_engine.webhooks.dispatcher import WebhookDispatcher
from knowledge_engine.webhooks.events import AirtableUpdatedData, AirtableUpdatedEvent

logger = logging.getLogger(__name__)

SOURCE = "airtable"


def record_to_text(record: AirtableRecord, table_name: str) -> str:
    """Render a record as text for embedding.

    First line names the table, then one ``key: value`` line per non-null
    field in the record's own order.
    """
    parts = [f"Table: {table_name}"]
    for key, value in record.fields.items():
        if value is None:
            continue
        if isinstance(value, str):
            parts.append(f"{key}: {value}")
        elif isinstance(value, list):
            parts.append(f"{key}: {', '.join(str(v) for v in value)}")
        elif isinstance(value, dict):
            parts.append(f"{key}: {json.dumps(value, default=str)}")
        else:
            parts.append(f"{key}: {value}")
    return "\n".join(parts)


class AirtableSyncEngine:
    """Pulls Airtable tables into the store and pushes edits back."""

    def __init__(
        self,
        client: AirtableClient | None = None,
        store: KnowledgeStore | None = None,
        embedding_service: EmbeddingService | None = None,
        dispatcher: WebhookDispatcher | None = None,
        partner_id: str | None = None,
        table_concurrency: int | None = None,
    ):
        """Initialize the sync engine.

        Args:
            client: Airtable API client
            store: Store that receives synced records
            embedding_service: Used when records are embedded during sync
            dispatcher: Optional webhook dispatcher for push notifications
            partner_id: Tenant that owns synced rows (defaults to settings.AIRTABLE_PARTNER_ID)
            table_concurrency: Tables synced at once (defaults to settings.SYNC_TABLE_CONCURRENCY)
        """
        self.client = client or AirtableClient()
        self.store = store or KnowledgeStore()
        self._embedding_service = embedding_service
        self.dispatcher = dispatcher
        self.partner_id = partner_id if partner_id is not None else settings.AIRTABLE_PARTNER_ID
        self.table_concurrency = max(1, table_concurrency or settings.SYNC_TABLE_CONCURRENCY)

    @property
    def embedding_service(self) -> EmbeddingService:
        """Lazy-load the embedding service."""
        if self._embedding_service is None:
            self._embedding_service = EmbeddingService()
        return self._embedding_service

    @property
    def base_id(self) -> str:
        return self.client.base_id

    def _require_configured(self) -> None:
        self.client.require_configured()
        if not self.partner_id:
            raise ConfigurationError(
                "Airtable sync needs a tenant: AIRTABLE_PARTNER_ID is empty"
            )

    async def sync_all_tables(
        self,
        tables: list[str] | None = None,
        embed_records: bool = True,
    ) -> SyncResult:
        """Sync every table of the base, or the named subset.

        Args:
            tables: Table names or ids to restrict the run to
            embed_records: Generate an embedding for each record

        Returns:
            SyncResult; ``success`` is True if at least one table synced at
            least one record

        Raises:
            ConfigurationError: Before any work, if credentials, base or tenant are missing
        """
        self._require_configured()
        result = SyncResult()

        try:
            all_tables = await self.client.get_base_schema()
            selected = (
                [t for t in all_tables if t.name in tables or t.id in tables]
                if tables is not None
                else all_tables
            )
            logger.info(f"Syncing {len(selected)} of {len(all_tables)} Airtable tables")

            semaphore = asyncio.Semaphore(self.table_concurrency)

            async def _bounded(table: AirtableTable) -> tuple[int, list[str]]:
                async with semaphore:
                    return await self.sync_table(table, embed_records=embed_records)

            outcomes = await asyncio.gather(*(_bounded(t) for t in selected))

            for table, (synced, errors) in zip(selected, outcomes):
                result.tables.append(
                    TableSyncResult(
                        name=table.name,
                        synced=synced,
                        status="success" if not errors else "error",
                        error=errors[0] if errors else None,
                    )
                )
                result.total_records += synced
                result.errors.extend(errors)

            result.success = any(t.synced > 0 for t in result.tables)
        except Exception as e:
            logger.error(f"Airtable sync failed: {e}")
            result.success = False
            result.errors.append(f"Sync failed: {e}")

        await self.store.upsert_source_status(
            SOURCE,
            status="connected" if result.success else "error",
            item_count=result.total_records,
            last_error=result.errors[0] if result.errors else None,
            details={"base_id": self.base_id, "tables_synced": len(result.tables)},
        )

        logger.info(
            f"Airtable sync complete: {result.total_records} records across "
            f"{len(result.tables)} tables, {len(result.errors)} errors"
        )
        return result

    async def sync_table(
        self, table: AirtableTable, embed_records: bool = True
    ) -> tuple[int, list[str]]:
        """Fetch all records of one table, then upsert them one by one.

        Returns:
            (records synced, error messages)
        """
        synced = 0
        errors: list[str] = []

        try:
            raw_records = await self.client.get_all_records(table.id)
        except Exception as e:
            logger.error(f"Failed to fetch table {table.name}: {e}")
            return 0, [f"Failed to fetch table {table.name}: {e}"]

        for raw in raw_records:
            record_id = raw.get("id", "<no id>") if isinstance(raw, dict) else "<invalid>"
            try:
                record = AirtableRecord.from_api(raw)
                await self._upsert_record(table, record, embed_records)
                synced += 1
            except Exception as e:
                logger.warning(f"Failed to sync record {record_id} in {table.name}: {e}")
                errors.append(f"Failed to sync record {record_id}: {e}")

        logger.info(f"Table {table.name}: {synced} synced, {len(errors)} errors")
        return synced, errors

    async def _upsert_record(
        self, table: AirtableTable, record: AirtableRecord, embed_records: bool
    ) -> None:
        content = record_to_text(record, table.name)
        data: dict[str, Any] = {
            "id": f"{self.base_id}_{table.id}_{record.id}",
            "external_id": record.id,
            "source": SOURCE,
            "partner_id": self.partner_id,
            "base_id": self.base_id,
            "table_id": table.id,
            "table_name": table.name,
            "primary_field": table.primary_field_name,
            "fields": record.fields,
            "content": content,
            "created_at_source": record.created_time,
            "synced_at": datetime.utcnow(),
        }
        if embed_records:
            data["embedding"] = await self.embedding_service.embed(content)

        await self.store.upsert_synced_record(data)

    async def reembed_table(self, table_name: str) -> ReembedResult:
        """Regenerate embeddings for every synced record of one table."""
        result = ReembedResult()

        try:
            records = await self.store.get_synced_records(table_name, source=SOURCE)
        except Exception as e:
            result.errors.append(f"Re-embed failed: {e}")
            return result

        for row in records:
            try:
                record = AirtableRecord(
                    id=row.external_id, created_time=row.created_at_source, fields=row.fields or {}
                )
                content = record_to_text(record, row.table_name)
                embedding = await self.embedding_service.embed(content)
                await self.store.update_record_embedding(row.id, embedding, content)
                result.updated += 1
            except Exception as e:
                logger.warning(f"Failed to re-embed record {row.id}: {e}")
                result.errors.append(f"Failed to re-embed record {row.id}: {e}")

        logger.info(f"Re-embedded {result.updated} records in {table_name}")
        return result

    async def push_record(
        self,
        table_name: str,
        record_id: str | None,
        fields: dict[str, Any],
    ) -> PushResult:
        """Create (no ``record_id``) or update one Airtable record.

        Never raises and never retries; callers are interactive.
        """
        try:
            if record_id:
                record = await self.client.update_record(table_name, record_id, fields)
                action = "update"
            else:
                record = await self.client.create_record(table_name, fields)
                action = "create"
        except Exception as e:
            logger.warning(f"Push to Airtable table {table_name} failed: {e}")
            return PushResult(success=False, error=str(e) or type(e).__name__)

        if self.dispatcher is not None and self.partner_id:
            await self.dispatcher.trigger(
                AirtableUpdatedEvent(
                    partner_id=self.partner_id,
                    data=AirtableUpdatedData(
                        base_id=self.base_id,
                        table_name=table_name,
                        record_id=record.id,
                        action=action,
                    ),
                )
            )
        return PushResult(success=True, record=record)

    async def delete_synced_records(self, table_name: str) -> DeleteResult:
        """Remove every locally synced record of one table."""
        try:
            deleted = await self.store.delete_synced_records(table_name, source=SOURCE)
        except Exception as e:
            logger.error(f"Failed to delete synced records for {table_name}: {e}")
            return DeleteResult(deleted=0, error=str(e))
        logger.info(f"Deleted {deleted} synced records for {table_name}")
        return DeleteResult(deleted=deleted)

    async def get_sync_status(self) -> SyncStatus:
        """Configuration flag, last run snapshot and per-table counts."""
        status = await self.store.get_source_status(SOURCE)
        counts = await self.store.count_records_by_table(source=SOURCE)
        return SyncStatus(
            configured=self.client.is_configured,
            status=status,
            tables=[{"name": name, "count": count} for name, count in sorted(counts.items())],
        )
