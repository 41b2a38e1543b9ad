"""Embedding providers and the embedding service used by retrieval and sync."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable

import httpx

from knowledge_engine.config import settings
from knowledge_engine.exceptions import EmbeddingFailure

logger = logging.getLogger(__name__)

# Provider registry
_EMBEDDING_REGISTRY: dict[str, Callable[[], "BaseEmbeddings"]] = {}


def register_embedding_provider(name: str):
    """Decorator to register an embedding provider factory."""

    def decorator(factory: Callable[[], "BaseEmbeddings"]):
        _EMBEDDING_REGISTRY[name.lower()] = factory
        return factory

    return decorator


class BaseEmbeddings(ABC):
    """Abstract base class for embedding providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimension."""
        pass

    @abstractmethod
    async def embed(self, texts: list[str], **kwargs) -> list[list[float]]:
        """Generate embeddings for a list of texts.

        Args:
            texts: List of texts to embed
            **kwargs: Additional provider-specific parameters

        Returns:
            List of embedding vectors
        """
        pass

    async def embed_single(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        embeddings = await self.embed([text])
        return embeddings[0]


class OpenAIEmbeddings(BaseEmbeddings):
    """Embeddings from an OpenAI-compatible /embeddings endpoint."""

    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize OpenAI embeddings.

        Args:
            api_key: API key (defaults to settings.OPENAI_API_KEY)
            base_url: API base URL (defaults to settings.OPENAI_BASE_URL)
            model: Model name (defaults to settings.OPENAI_EMBEDDING_MODEL)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.model = model or settings.OPENAI_EMBEDDING_MODEL
        self.timeout = timeout or settings.EMBEDDING_TIMEOUT
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def dimension(self) -> int:
        return self.MODEL_DIMENSIONS.get(self.model, settings.EMBEDDING_DIMENSION)

    async def embed(self, texts: list[str], **kwargs) -> list[list[float]]:
        """Generate embeddings in a single request.

        Args:
            texts: List of texts to embed
            **kwargs: Additional parameters (ignored)

        Returns:
            List of embedding vectors, in input order
        """
        if not texts:
            return []

        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}/embeddings",
                headers=headers,
                json={"model": self.model, "input": texts},
            )
            response.raise_for_status()
            data = response.json()

        items = sorted(data.get("data", []), key=lambda item: item.get("index", 0))
        return [item["embedding"] for item in items]


class OllamaEmbeddings(BaseEmbeddings):
    """Embeddings using Ollama (requires Ollama server)."""

    # Known dimensions for common Ollama embedding models
    MODEL_DIMENSIONS = {
        "mxbai-embed-large": 1024,
        "nomic-embed-text": 768,
        "all-minilm": 384,
    }

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_EMBEDDING_MODEL
        self.timeout = timeout
        self._transport = transport
        self._dimension: int | None = self.MODEL_DIMENSIONS.get(self.model)

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            return 1024
        return self._dimension

    async def embed(self, texts: list[str], **kwargs) -> list[list[float]]:
        """Generate embeddings using Ollama, one request per text."""
        embeddings = []

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for text in texts:
                response = await client.post(
                    f"{self.base_url}/api/embeddings",
                    json={"model": self.model, "prompt": text},
                )
                response.raise_for_status()
                embedding = response.json().get("embedding", [])
                embeddings.append(embedding)

                if self._dimension is None and embedding:
                    self._dimension = len(embedding)

        return embeddings


# Register providers
@register_embedding_provider("openai")
def _create_openai():
    return OpenAIEmbeddings()


@register_embedding_provider("ollama")
def _create_ollama():
    return OllamaEmbeddings()


def get_available_embedding_providers() -> list[str]:
    """Get list of registered embedding provider names."""
    return list(_EMBEDDING_REGISTRY.keys())


def get_embeddings(provider: str | None = None) -> BaseEmbeddings:
    """Get an embeddings instance.

    Args:
        provider: Provider name (defaults to settings.EMBEDDING_PROVIDER)

    Raises:
        ValueError: If provider is not registered
    """
    provider_name = (provider or settings.EMBEDDING_PROVIDER).lower()

    if provider_name not in _EMBEDDING_REGISTRY:
        available = ", ".join(get_available_embedding_providers())
        raise ValueError(
            f"Unknown embedding provider '{provider_name}'. Available: {available}"
        )

    return _EMBEDDING_REGISTRY[provider_name]()


def prepare_text(text: str, max_chars: int | None = None) -> str:
    """Truncate text and collapse newlines before embedding.

    Truncation is lossy and silent: anything past ``max_chars`` is not
    represented in the vector. Callers that need full coverage of a long text
    must chunk it first.
    """
    limit = max_chars or settings.EMBEDDING_MAX_CHARS
    return text[:limit].replace("\n", " ")


def format_embedding_for_pgvector(embedding: list[float]) -> str:
    """Format an embedding as a pgvector literal, e.g. '[0.1,0.2]'."""
    return "[" + ",".join(str(value) for value in embedding) + "]"


class EmbeddingService:
    """Turns text into fixed-size vectors through a provider.

    No retries happen here; an upstream error surfaces as EmbeddingFailure and
    the caller decides whether to retry, skip or degrade.
    """

    def __init__(
        self,
        provider: BaseEmbeddings | None = None,
        max_chars: int | None = None,
        dimension: int | None = None,
        concurrency: int | None = None,
    ):
        """Initialize the service.

        Args:
            provider: Embedding provider (defaults to the configured one)
            max_chars: Input character ceiling (defaults to settings.EMBEDDING_MAX_CHARS)
            dimension: Expected vector size (defaults to settings.EMBEDDING_DIMENSION)
            concurrency: Parallel calls in embed_batch (defaults to settings.EMBEDDING_CONCURRENCY)
        """
        self.provider = provider or get_embeddings()
        self.max_chars = max_chars or settings.EMBEDDING_MAX_CHARS
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.concurrency = concurrency or settings.EMBEDDING_CONCURRENCY
        if self.provider.dimension != self.dimension:
            logger.warning(
                f"{self.provider.provider_name} produces {self.provider.dimension}-dimensional "
                f"vectors but EMBEDDING_DIMENSION is {self.dimension}; embeddings will be rejected"
            )

    async def embed(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingFailure: If the provider fails or returns a wrong-sized vector
        """
        processed = prepare_text(text, self.max_chars)
        try:
            embedding = await self.provider.embed_single(processed)
        except Exception as e:
            logger.error(f"Error generating embedding with {self.provider.provider_name}: {e}")
            raise EmbeddingFailure(str(e), provider=self.provider.provider_name, cause=e) from e

        if len(embedding) != self.dimension:
            raise EmbeddingFailure(
                f"Expected {self.dimension} dimensions, got {len(embedding)}",
                provider=self.provider.provider_name,
            )
        return list(embedding)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts as independent concurrent calls.

        At most ``concurrency`` calls are in flight. If any call fails, the
        first EmbeddingFailure propagates.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(text: str) -> list[float]:
            async with semaphore:
                return await self.embed(text)

        return list(await asyncio.gather(*(_bounded(text) for text in texts)))
