"""Dependency functions resolving the shared components built at startup."""

from fastapi import Request

from knowledge_engine.airtable.sync import AirtableSyncEngine
from knowledge_engine.search.retriever import RetrievalEngine
from knowledge_engine.vectorstore.store import KnowledgeStore


def get_store(request: Request) -> KnowledgeStore:
    return request.app.state.store


def get_retrieval_engine(request: Request) -> RetrievalEngine:
    return request.app.state.retrieval_engine


def get_sync_engine(request: Request) -> AirtableSyncEngine:
    """A sync engine wired to the shared store, embeddings and dispatcher."""
    state = request.app.state
    return AirtableSyncEngine(
        client=state.airtable_client,
        store=state.store,
        embedding_service=state.embedding_service,
        dispatcher=state.dispatcher,
    )
