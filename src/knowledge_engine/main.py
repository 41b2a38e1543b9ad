"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from knowledge_engine import __version__
from knowledge_engine.airtable.client import AirtableClient
from knowledge_engine.api.airtable import router as airtable_router
from knowledge_engine.api.health import router as health_router
from knowledge_engine.api.search import router as search_router
from knowledge_engine.config import settings
from knowledge_engine.db.database import init_db
from knowledge_engine.search.retriever import RetrievalEngine
from knowledge_engine.vectorstore.embeddings import EmbeddingService
from knowledge_engine.vectorstore.store import KnowledgeStore
from knowledge_engine.webhooks.dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared components once per process."""
    await init_db()

    embedding_service = EmbeddingService()
    store = KnowledgeStore()
    app.state.embedding_service = embedding_service
    app.state.store = store
    app.state.retrieval_engine = RetrievalEngine(embedding_service, store)
    app.state.dispatcher = WebhookDispatcher()
    app.state.airtable_client = AirtableClient()

    logger.info(
        f"{settings.APP_NAME} started (embeddings: {embedding_service.provider.provider_name}, "
        f"webhooks: {'on' if app.state.dispatcher.is_configured else 'off'})"
    )
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description="Retrieval and synchronization engine for grounded notebook answers",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(search_router)
app.include_router(airtable_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic application info."""
    return {
        "name": settings.APP_NAME,
        "version": __version__,
        "docs": "/docs",
    }
