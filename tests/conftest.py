"""Shared fixtures: in-memory database, fake embeddings and vector helpers."""

import math

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from knowledge_engine.config import settings
from knowledge_engine.db.models import Base
from knowledge_engine.vectorstore.embeddings import BaseEmbeddings, EmbeddingService
from knowledge_engine.vectorstore.store import KnowledgeStore

DIM = 4


def vector_with_similarity(similarity: float) -> list[float]:
    """A unit vector whose cosine similarity with QUERY_VECTOR is ``similarity``."""
    return [similarity, math.sqrt(max(0.0, 1.0 - similarity**2)), 0.0, 0.0]


QUERY_VECTOR = [1.0, 0.0, 0.0, 0.0]


class FakeEmbeddings(BaseEmbeddings):
    """Deterministic provider: known texts map to fixed vectors."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, fail_on: set[str] | None = None):
        self.vectors = vectors or {}
        self.fail_on = fail_on or set()
        self.calls: list[str] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def dimension(self) -> int:
        return DIM

    async def embed(self, texts: list[str], **kwargs) -> list[list[float]]:
        result = []
        for text in texts:
            self.calls.append(text)
            if any(marker in text for marker in self.fail_on):
                raise RuntimeError(f"provider rejected: {text[:20]}")
            result.append(self.vectors.get(text, QUERY_VECTOR))
        return result


@pytest.fixture(autouse=True)
def embedding_dimension(monkeypatch):
    """Services built without an explicit dimension expect DIM-sized vectors."""
    monkeypatch.setattr(settings, "EMBEDDING_DIMENSION", DIM)


@pytest.fixture
def fake_provider():
    return FakeEmbeddings()


@pytest.fixture
def embedding_service(fake_provider):
    return EmbeddingService(provider=fake_provider, max_chars=8000)


@pytest_asyncio.fixture(scope="function")
async def session_maker():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def store(session_maker):
    return KnowledgeStore(session_maker)
