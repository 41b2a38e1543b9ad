"""Airtable API client with rate limiting and retry logic."""

import asyncio
import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from knowledge_engine.airtable.models import AirtableRecord, AirtableTable, RecordPage
from knowledge_engine.config import settings
from knowledge_engine.exceptions import AirtableAPIError, ConfigurationError, RateLimitError

logger = logging.getLogger(__name__)


def _is_transient(exc: BaseException) -> bool:
    """Rate limits, 5xx responses and transport errors are worth retrying."""
    if isinstance(exc, RateLimitError):
        return True
    if isinstance(exc, AirtableAPIError):
        return exc.status_code is not None and exc.status_code >= 500
    return isinstance(exc, httpx.TransportError)


class AirtableClient:
    """Async Airtable API client with rate limiting."""

    def __init__(
        self,
        api_key: str | None = None,
        base_id: str | None = None,
        api_url: str | None = None,
        page_size: int | None = None,
        requests_per_second: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.AIRTABLE_API_KEY
        self.base_id = base_id if base_id is not None else settings.AIRTABLE_BASE_ID
        self.api_url = (api_url or settings.AIRTABLE_API_URL).rstrip("/")
        self.page_size = page_size or settings.AIRTABLE_PAGE_SIZE
        self.requests_per_second = requests_per_second or settings.AIRTABLE_REQUESTS_PER_SECOND
        self._transport = transport
        self._last_request_time: float = 0.0
        self._rate_lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.base_id)

    def require_configured(self) -> None:
        """Fail fast when credentials or the base id are missing."""
        if not self.api_key:
            raise ConfigurationError("Airtable not configured: AIRTABLE_API_KEY is empty")
        if not self.base_id:
            raise ConfigurationError("Airtable not configured: AIRTABLE_BASE_ID is empty")

    async def _rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        async with self._rate_lock:
            min_interval = 1.0 / self.requests_per_second
            loop = asyncio.get_running_loop()
            elapsed = loop.time() - self._last_request_time
            if elapsed < min_interval:
                await asyncio.sleep(min_interval - elapsed)
            self._last_request_time = loop.time()

    @retry(
        retry=retry_if_exception(_is_transient),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        stop=stop_after_attempt(4),
        reraise=True,
    )
    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to the Airtable API."""
        self.require_configured()
        await self._rate_limit()

        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            response = await client.request(
                method, f"{self.api_url}{path}", headers=headers, params=params, json=json
            )

        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After", 30))
            logger.warning(f"Airtable rate limited. Waiting {retry_after}s...")
            raise RateLimitError(retry_after)

        if response.is_error:
            raise AirtableAPIError(
                f"Airtable API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response.json()

    async def get_base_schema(self) -> list[AirtableTable]:
        """List the tables of the configured base."""
        data = await self._request("GET", f"/meta/bases/{self.base_id}/tables")
        return [AirtableTable.from_api(t) for t in data.get("tables", [])]

    async def list_records(self, table_id: str, offset: str | None = None) -> RecordPage:
        """Fetch one page of raw records.

        Records are returned unparsed so that one malformed record can be
        rejected on its own later.
        """
        params: dict[str, Any] = {"pageSize": self.page_size}
        if offset:
            params["offset"] = offset
        data = await self._request("GET", f"/{self.base_id}/{table_id}", params=params)
        return RecordPage(records=data.get("records", []), offset=data.get("offset"))

    async def get_all_records(self, table_id: str) -> list[dict[str, Any]]:
        """Drain every page of a table into memory."""
        records: list[dict[str, Any]] = []
        offset = None
        pages = 0

        while True:
            page = await self.list_records(table_id, offset)
            pages += 1
            records.extend(page.records)
            if not page.offset:
                break
            offset = page.offset

        logger.info(f"Fetched {len(records)} records from table {table_id} in {pages} page(s)")
        return records

    async def create_record(
        self, table: str, fields: dict[str, Any], typecast: bool = True
    ) -> AirtableRecord:
        """Create one record in a table (by name or id)."""
        data = await self._request(
            "POST", f"/{self.base_id}/{table}", json={"fields": fields, "typecast": typecast}
        )
        return AirtableRecord.from_api(data)

    async def update_record(
        self, table: str, record_id: str, fields: dict[str, Any], typecast: bool = True
    ) -> AirtableRecord:
        """Patch the given fields of one record."""
        data = await self._request(
            "PATCH",
            f"/{self.base_id}/{table}/{record_id}",
            json={"fields": fields, "typecast": typecast},
        )
        return AirtableRecord.from_api(data)
