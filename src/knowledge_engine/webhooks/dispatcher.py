"""Outbound webhook delivery to n8n automation workflows.

One dispatcher is built by the application's composition root and shared by
every caller. Its configuration is fixed at construction.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from knowledge_engine.config import settings
from knowledge_engine.exceptions import WebhookDeliveryError
from knowledge_engine.webhooks.events import OutboundEvent, endpoint_for_event
from knowledge_engine.webhooks.log import WebhookLogWriter

logger = logging.getLogger(__name__)

# Failures that are worth another attempt
DELIVERY_ERRORS = (httpx.HTTPError, WebhookDeliveryError, asyncio.TimeoutError)


@dataclass
class TriggerResult:
    """Outcome of delivering one event."""

    success: bool
    execution_id: str | None = None
    error: str | None = None
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.execution_id:
            data["executionId"] = self.execution_id
        if self.error:
            data["error"] = self.error
        return data


def backoff_seconds(attempt: int) -> float:
    """Wait after failed attempt ``attempt`` (1-based): 2, 4, 8, ..."""
    return float(2**attempt)


class WebhookDispatcher:
    """Delivers events with timeout, exponential backoff and an audit trail.

    Each attempt is cancelled after ``timeout`` seconds. After a failed
    attempt ``n`` the dispatcher waits ``2**n`` seconds, except after the last
    one. Attempts for one event are strictly sequential. Exactly one audit row
    is written per event, for its terminal outcome.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        log_writer: WebhookLogWriter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the dispatcher.

        Args:
            base_url: n8n base URL (defaults to settings.N8N_WEBHOOK_URL)
            api_key: Bearer token (defaults to settings.N8N_API_KEY)
            timeout: Per-attempt timeout in seconds (defaults to settings.WEBHOOK_TIMEOUT)
            max_retries: Maximum attempts per event (defaults to settings.WEBHOOK_MAX_RETRIES)
            log_writer: Audit log writer (defaults to the database writer)
            transport: Optional httpx transport (used by tests)
            sleep: Coroutine used for backoff waits (used by tests)
        """
        base_url = settings.N8N_WEBHOOK_URL if base_url is None else base_url
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key if api_key is not None else settings.N8N_API_KEY
        self._timeout = timeout or settings.WEBHOOK_TIMEOUT
        self._max_retries = max_retries or settings.WEBHOOK_MAX_RETRIES
        self._log_writer = log_writer or WebhookLogWriter()
        self._transport = transport
        self._sleep = sleep

        if not self._base_url:
            logger.warning("N8N_WEBHOOK_URL not configured; webhooks are disabled")

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url)

    async def trigger(self, event: OutboundEvent) -> TriggerResult:
        """Deliver one event. Never raises.

        Returns:
            TriggerResult with the upstream execution id on success, or the
            last error once every attempt has failed
        """
        if not self._base_url:
            return TriggerResult(success=False, error="n8n webhook URL not configured")

        url = f"{self._base_url}{endpoint_for_event(event.type)}"
        payload = event.to_payload()
        attempts = 0

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=2),  # 2 * 2**(n-1) == 2**n
            retry=retry_if_exception_type(DELIVERY_ERRORS),
            before_sleep=self._log_failed_attempt,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    body = await self._post(url, payload)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(
                f"n8n trigger for {event.type} failed after {attempts} attempt(s): {error}"
            )
            await self._log_writer.write(
                direction="outbound",
                endpoint=url,
                event_type=event.type,
                payload=payload,
                response={"error": error},
                status="error",
            )
            return TriggerResult(success=False, error=error, attempts=attempts)

        await self._log_writer.write(
            direction="outbound",
            endpoint=url,
            event_type=event.type,
            payload=payload,
            response=body,
            status="success",
        )
        execution_id = body.get("executionId")
        logger.info(f"n8n trigger for {event.type} delivered after {attempts} attempt(s)")
        return TriggerResult(
            success=True,
            execution_id=str(execution_id) if execution_id is not None else None,
            attempts=attempts,
        )

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """One delivery attempt, cancelled after the configured timeout."""
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await asyncio.wait_for(
                client.post(url, json=payload, headers=headers),
                timeout=self._timeout,
            )

        if not response.is_success:
            raise WebhookDeliveryError(response.status_code, response.text)

        try:
            body = response.json()
        except ValueError:
            return {"raw": response.text}
        return body if isinstance(body, dict) else {"data": body}

    @staticmethod
    def _log_failed_attempt(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"n8n trigger attempt {retry_state.attempt_number} failed: {exc}. "
            f"Retrying in {backoff_seconds(retry_state.attempt_number):.0f}s..."
        )
