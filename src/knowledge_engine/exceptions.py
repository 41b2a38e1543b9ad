"""Exceptions raised by the retrieval and synchronization engine."""


class KnowledgeEngineError(Exception):
    """Base exception for engine operations."""

    pass


class ConfigurationError(KnowledgeEngineError):
    """Required configuration (credentials, base id, tenant) is missing.

    Raised before any work is attempted. Not retryable.
    """

    pass


class EmbeddingFailure(KnowledgeEngineError):
    """The embedding provider failed to produce a vector."""

    def __init__(self, message: str, provider: str = "unknown", cause: Exception | None = None):
        self.provider = provider
        self.cause = cause
        super().__init__(f"[{provider}] {message}")


class RetrievalError(KnowledgeEngineError):
    """Retrieval failed closed; callers should continue without context."""

    pass


class RecordValidationError(KnowledgeEngineError):
    """A synced record is missing required fields or is malformed."""

    pass


class AirtableAPIError(KnowledgeEngineError):
    """The Airtable API returned an error response."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimitError(AirtableAPIError):
    """Raised when the Airtable rate limit is hit."""

    def __init__(self, retry_after: int = 30):
        self.retry_after = retry_after
        super().__init__(f"Rate limited. Retry after {retry_after}s", status_code=429)


class WebhookDeliveryError(KnowledgeEngineError):
    """The automation endpoint answered with a non-success status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"n8n returned {status_code}: {body}")
