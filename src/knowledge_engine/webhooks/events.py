"""Typed outbound automation events.

Each event type has its own data model; all of them serialise to the same wire
payload: ``{"type", "partner_id", "data", "timestamp"}``.
"""

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


def _now() -> datetime:
    return datetime.now(timezone.utc)


class NewDocumentData(BaseModel):
    document_id: str
    document_name: str
    document_type: str
    page_count: int | None = None


class ChatQueryData(BaseModel):
    conversation_id: str
    message: str
    sources_used: int


class ContentGeneratedData(BaseModel):
    content_id: str
    content_type: Literal["infographic", "presentation", "report"]
    title: str


class MeetingSyncedData(BaseModel):
    meeting_id: str
    fireflies_id: str
    title: str
    participants: list[str] = Field(default_factory=list)
    duration_minutes: int = 0


class AirtableUpdatedData(BaseModel):
    base_id: str
    table_name: str
    record_id: str
    action: Literal["create", "update", "delete"]


class _EventBase(BaseModel):
    partner_id: str
    timestamp: datetime = Field(default_factory=_now)

    def to_payload(self) -> dict:
        """Wire payload sent to the automation endpoint."""
        return self.model_dump(mode="json")


class NewDocumentEvent(_EventBase):
    type: Literal["new_document"] = "new_document"
    data: NewDocumentData


class ChatQueryEvent(_EventBase):
    type: Literal["chat_query"] = "chat_query"
    data: ChatQueryData


class ContentGeneratedEvent(_EventBase):
    type: Literal["content_generated"] = "content_generated"
    data: ContentGeneratedData


class MeetingSyncedEvent(_EventBase):
    type: Literal["meeting_synced"] = "meeting_synced"
    data: MeetingSyncedData


class AirtableUpdatedEvent(_EventBase):
    type: Literal["airtable_updated"] = "airtable_updated"
    data: AirtableUpdatedData


OutboundEvent = Annotated[
    Union[
        NewDocumentEvent,
        ChatQueryEvent,
        ContentGeneratedEvent,
        MeetingSyncedEvent,
        AirtableUpdatedEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter = TypeAdapter(OutboundEvent)


def parse_event(payload: dict) -> OutboundEvent:
    """Validate a wire payload back into its typed event."""
    return _event_adapter.validate_python(payload)


# Event type -> webhook sub-path
EVENT_ENDPOINTS: dict[str, str] = {
    "new_document": "/webhook/document",
    "chat_query": "/webhook/chat",
    "content_generated": "/webhook/content",
    "meeting_synced": "/webhook/meeting",
    "airtable_updated": "/webhook/airtable",
}
DEFAULT_ENDPOINT = "/webhook/general"


def endpoint_for_event(event_type: str) -> str:
    """Sub-path for an event type; unknown types go to the generic hook."""
    return EVENT_ENDPOINTS.get(event_type, DEFAULT_ENDPOINT)
