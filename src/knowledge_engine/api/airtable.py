"""Airtable sync endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from knowledge_engine.airtable.sync import AirtableSyncEngine
from knowledge_engine.api.deps import get_sync_engine
from knowledge_engine.api.schemas import (
    AirtableStatusResponse,
    AirtableSyncRequest,
    AirtableSyncResponse,
    DeleteTableResponse,
    PushRecordRequest,
    PushRecordResponse,
    ReembedRequest,
    ReembedResponse,
    TableSyncItem,
)
from knowledge_engine.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/airtable", tags=["airtable"])


@router.post("/sync", response_model=AirtableSyncResponse)
async def sync(
    request: AirtableSyncRequest,
    engine: AirtableSyncEngine = Depends(get_sync_engine),
) -> AirtableSyncResponse:
    """Pull the configured base (or some of its tables) into the store."""
    try:
        result = await engine.sync_all_tables(
            tables=request.tables, embed_records=request.embed_records
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return AirtableSyncResponse(
        success=result.success,
        tables=[TableSyncItem(**t.to_dict()) for t in result.tables],
        total_records=result.total_records,
        errors=result.errors,
    )


@router.get("/status", response_model=AirtableStatusResponse)
async def status(engine: AirtableSyncEngine = Depends(get_sync_engine)) -> AirtableStatusResponse:
    """Last sync snapshot and per-table record counts."""
    result = await engine.get_sync_status()
    return AirtableStatusResponse(
        configured=result.configured, status=result.status, tables=result.tables
    )


@router.post("/reembed", response_model=ReembedResponse)
async def reembed(
    request: ReembedRequest,
    engine: AirtableSyncEngine = Depends(get_sync_engine),
) -> ReembedResponse:
    """Regenerate embeddings for one synced table."""
    result = await engine.reembed_table(request.table_name)
    return ReembedResponse(updated=result.updated, errors=result.errors)


@router.post("/push", response_model=PushRecordResponse)
async def push(
    request: PushRecordRequest,
    engine: AirtableSyncEngine = Depends(get_sync_engine),
) -> PushRecordResponse:
    """Create or update one record in Airtable."""
    result = await engine.push_record(request.table_name, request.record_id, request.fields)
    if not result.success:
        return PushRecordResponse(success=False, error=result.error)
    return PushRecordResponse(
        success=True, record_id=result.record.id, fields=result.record.fields
    )


@router.delete("/tables/{table_name}", response_model=DeleteTableResponse)
async def delete_table(
    table_name: str,
    engine: AirtableSyncEngine = Depends(get_sync_engine),
) -> DeleteTableResponse:
    """Remove every locally synced record of one table."""
    result = await engine.delete_synced_records(table_name)
    return DeleteTableResponse(deleted=result.deleted, error=result.error)
