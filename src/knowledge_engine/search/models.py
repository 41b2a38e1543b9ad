"""Result models shared by the store, the retriever and the citation builder."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SourceType(str, Enum):
    """Corpora that chunks can come from."""

    DOCUMENT = "document"
    MEETING = "meeting"
    TABULAR = "tabular"


ALL_CORPORA: tuple[SourceType, ...] = (
    SourceType.DOCUMENT,
    SourceType.MEETING,
    SourceType.TABULAR,
)


@dataclass
class RankedChunk:
    """A chunk returned by a similarity query, with its score.

    Location details live in ``metadata`` and are read through properties so the
    three corpora can share one shape.
    """

    chunk_id: str
    source_type: SourceType
    source_id: str
    source_name: str
    content: str
    score: float  # Cosine similarity (higher is better)
    last_updated: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def chunk_index(self) -> int | None:
        """Position of the chunk within its source, if any."""
        return self.metadata.get("chunk_index")

    @property
    def page_number(self) -> int | None:
        """Page the chunk came from (documents)."""
        return self.metadata.get("page_number")

    @property
    def timestamp(self) -> str | None:
        """Transcript offset of the chunk (meetings)."""
        return self.metadata.get("timestamp")

    @property
    def field_key(self) -> str | None:
        """Primary field name of the record (tabular)."""
        return self.metadata.get("field_key")

    @property
    def edit_url(self) -> str | None:
        """Link to edit the source item, if it lives in an external tool."""
        return self.metadata.get("edit_url")


def estimate_tokens(text: str) -> int:
    """Approximate token count as ceil(len / 4).

    A deliberate heuristic, not a tokenizer. The context budget is defined in
    these units.
    """
    return (len(text) + 3) // 4
