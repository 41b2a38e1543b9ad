"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from knowledge_engine.api.deps import get_store
from knowledge_engine.config import settings
from knowledge_engine.vectorstore.store import KnowledgeStore

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Basic health check - returns ok if the service is running."""
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(store: KnowledgeStore = Depends(get_store)) -> dict[str, Any]:
    """
    Readiness check.

    The database must answer; integrations are reported but optional.
    """
    services: dict[str, str] = {}

    database_ok = await store.check_health()
    services["database"] = "ok" if database_ok else "error: unreachable"
    services["airtable"] = "configured" if settings.airtable_configured else "not configured"
    services["webhooks"] = "configured" if settings.webhooks_configured else "not configured"

    status = "ready" if database_ok else "degraded"
    return {"status": status, "services": services}
