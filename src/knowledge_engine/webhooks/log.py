"""Durable audit trail of webhook deliveries."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_engine.db.models import WebhookLog

logger = logging.getLogger(__name__)


class WebhookLogWriter:
    """Appends one webhook_logs row per delivery outcome."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None):
        if session_maker is None:
            from knowledge_engine.db.database import async_session_maker

            session_maker = async_session_maker
        self.session_maker = session_maker

    async def write(
        self,
        direction: str,
        endpoint: str,
        event_type: str,
        payload: dict[str, Any],
        response: dict[str, Any] | None,
        status: str,
    ) -> None:
        """Persist one log row.

        A failure to write is logged and swallowed; the audit trail must never
        change the outcome reported to the caller.
        """
        try:
            async with self.session_maker() as session:
                session.add(
                    WebhookLog(
                        direction=direction,
                        endpoint=endpoint,
                        event_type=event_type,
                        payload=payload,
                        response=response,
                        status=status,
                    )
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to log webhook {event_type} -> {endpoint}: {e}")
