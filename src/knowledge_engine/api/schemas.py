"""API request and response schemas."""

from typing import Any

from pydantic import BaseModel, Field

from knowledge_engine.search.models import SourceType


class SearchRequest(BaseModel):
    """Grounded search request."""

    query: str = Field(..., description="Search query text", min_length=1)
    tenant_id: str = Field(..., description="Partner whose sources are searched", min_length=1)
    top_k: int | None = Field(default=None, ge=1, le=50, description="Number of chunks to keep")
    similarity_threshold: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Minimum cosine similarity (exclusive)"
    )
    max_context_tokens: int | None = Field(
        default=None, ge=1, description="Approximate token budget for the context"
    )
    source_filter: list[str] | None = Field(
        default=None, description="Restrict document results to these document ids"
    )
    corpora: list[SourceType] | None = Field(
        default=None, description="Corpora to search (default: all)"
    )

    model_config = {"json_schema_extra": {
        "example": {
            "query": "Q3 revenue",
            "tenant_id": "partner-123",
            "top_k": 5,
            "similarity_threshold": 0.7,
        }
    }}


class CitationItem(BaseModel):
    """One source backing the answer."""

    id: str = Field(..., description="Chunk or record id")
    type: SourceType = Field(..., description="Corpus the source came from")
    source_name: str = Field(..., description="Display name of the source")
    source_id: str = Field(..., description="Document, meeting or record id")
    location: dict[str, Any] = Field(default_factory=dict, description="page, timestamp, field or chunk_index")
    excerpt: str = Field(..., description="First characters of the chunk")
    relevance_score: float = Field(..., description="Cosine similarity in [0, 1]")
    relevance_label: str = Field(..., description="high match, good match, relevant or partial match")
    last_updated: str | None = Field(default=None, description="ISO-8601 timestamp")
    edit_url: str | None = Field(default=None, description="Link to edit the source record")


class ConfidenceItem(BaseModel):
    """Confidence derived from the citations."""

    level: str = Field(..., description="high, medium or low")
    score: float = Field(..., description="Best similarity among citations")
    supporting_sources: int = Field(..., description="Citations at or above the relevance floor")
    explanation: str = Field(..., description="Deterministic summary of the supporting sources")
    breakdown: dict[str, int] = Field(
        default_factory=dict, description="Supporting citations per source type"
    )


class SearchResponse(BaseModel):
    """Grounding for a generation call."""

    query: str = Field(..., description="Original search query")
    context: str = Field(default="", description="Assembled context handed to the model")
    citations: list[CitationItem] = Field(default_factory=list, description="Sources in the context")
    confidence: ConfidenceItem
    grounded: bool = Field(..., description="False when no sources were found or retrieval failed")
    took_ms: int = Field(..., description="Search duration in milliseconds")


class AirtableSyncRequest(BaseModel):
    """Airtable sync request."""

    tables: list[str] | None = Field(
        default=None, description="Table names or ids to sync (default: all)"
    )
    embed_records: bool = Field(default=True, description="Generate embeddings for records")


class TableSyncItem(BaseModel):
    name: str
    synced: int
    status: str = Field(..., description="success or error")
    error: str | None = None


class AirtableSyncResponse(BaseModel):
    """Outcome of one sync run."""

    success: bool = Field(..., description="At least one table synced at least one record")
    tables: list[TableSyncItem] = Field(default_factory=list)
    total_records: int = 0
    errors: list[str] = Field(default_factory=list)


class AirtableStatusResponse(BaseModel):
    configured: bool
    status: dict[str, Any] | None = Field(default=None, description="Last sync snapshot")
    tables: list[dict[str, Any]] = Field(default_factory=list, description="Record counts per table")


class ReembedRequest(BaseModel):
    table_name: str = Field(..., min_length=1)


class ReembedResponse(BaseModel):
    updated: int
    errors: list[str] = Field(default_factory=list)


class PushRecordRequest(BaseModel):
    """Create (no record_id) or update an Airtable record."""

    table_name: str = Field(..., min_length=1)
    record_id: str | None = Field(default=None, description="Existing record to update")
    fields: dict[str, Any] = Field(..., description="Field values to write")


class PushRecordResponse(BaseModel):
    success: bool
    record_id: str | None = None
    fields: dict[str, Any] | None = None
    error: str | None = None


class DeleteTableResponse(BaseModel):
    deleted: int
    error: str | None = None
