"""Outbound automation webhooks."""

from knowledge_engine.webhooks.dispatcher import TriggerResult, WebhookDispatcher
from knowledge_engine.webhooks.events import (
    AirtableUpdatedEvent,
    ChatQueryEvent,
    ContentGeneratedEvent,
    MeetingSyncedEvent,
    NewDocumentEvent,
    OutboundEvent,
    endpoint_for_event,
    parse_event,
)
from knowledge_engine.webhooks.log import WebhookLogWriter

__all__ = [
    "AirtableUpdatedEvent",
    "ChatQueryEvent",
    "ContentGeneratedEvent",
    "MeetingSyncedEvent",
    "NewDocumentEvent",
    "OutboundEvent",
    "TriggerResult",
    "WebhookDispatcher",
    "WebhookLogWriter",
    "endpoint_for_event",
    "parse_event",
]
