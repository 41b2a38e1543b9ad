"""Citation and confidence building.

Citations are read-only projections of the chunks the model actually saw; they
are recomputed for every query and never stored on their own.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from knowledge_engine.search.models import ALL_CORPORA, RankedChunk, SourceType

EXCERPT_CHARS = 200

# Relevance bands
HIGH_MATCH = 0.9
GOOD_MATCH = 0.8
RELEVANT = 0.7

# Confidence thresholds
SUPPORTING_THRESHOLD = 0.7
HIGH_CONFIDENCE_THRESHOLD = 0.85

_TYPE_NOUNS = {
    SourceType.DOCUMENT: ("document", "documents"),
    SourceType.MEETING: ("meeting", "meetings"),
    SourceType.TABULAR: ("table record", "table records"),
}


@dataclass
class SourceCitation:
    """Provenance record for one chunk used to ground an answer."""

    id: str
    type: SourceType
    source_name: str
    source_id: str
    location: dict[str, Any]  # one of: page, timestamp, field, chunk_index
    excerpt: str
    relevance_score: float
    last_updated: str | None = None  # ISO-8601
    edit_url: str | None = None

    @property
    def relevance_label(self) -> str:
        return relevance_label(self.relevance_score)

    def to_dict(self) -> dict[str, Any]:
        """Wire shape used by the chat client."""
        data = {
            "id": self.id,
            "type": self.type.value,
            "source_name": self.source_name,
            "source_id": self.source_id,
            "location": self.location,
            "excerpt": self.excerpt,
            "relevance_score": self.relevance_score,
            "last_updated": self.last_updated,
        }
        if self.edit_url:
            data["edit_url"] = self.edit_url
        return data


@dataclass
class ConfidenceScore:
    """How well an answer is supported by its citations."""

    level: str  # high, medium, low
    score: float
    supporting_sources: int
    explanation: str
    breakdown: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "score": self.score,
            "supporting_sources": self.supporting_sources,
            "explanation": self.explanation,
            "breakdown": dict(self.breakdown),
        }


def relevance_label(score: float) -> str:
    """Human-readable band for a similarity score."""
    if score >= HIGH_MATCH:
        return "high match"
    if score >= GOOD_MATCH:
        return "good match"
    if score >= RELEVANT:
        return "relevant"
    return "partial match"


def _location(chunk: RankedChunk) -> dict[str, Any]:
    if chunk.source_type == SourceType.DOCUMENT and chunk.page_number is not None:
        return {"page": chunk.page_number}
    if chunk.source_type == SourceType.MEETING and chunk.timestamp:
        return {"timestamp": chunk.timestamp}
    if chunk.source_type == SourceType.TABULAR and chunk.field_key:
        return {"field": chunk.field_key}
    if chunk.chunk_index is not None:
        return {"chunk_index": chunk.chunk_index}
    return {}


def _excerpt(content: str) -> str:
    if len(content) <= EXCERPT_CHARS:
        return content
    return content[:EXCERPT_CHARS].rstrip() + "..."


def build_citations(chunks: list[RankedChunk]) -> list[SourceCitation]:
    """Map included chunks to citations, preserving rank order."""
    return [
        SourceCitation(
            id=chunk.chunk_id,
            type=chunk.source_type,
            source_name=chunk.source_name,
            source_id=chunk.source_id,
            location=_location(chunk),
            excerpt=_excerpt(chunk.content),
            relevance_score=min(max(chunk.score, 0.0), 1.0),
            last_updated=chunk.last_updated.isoformat() if chunk.last_updated else None,
            edit_url=chunk.edit_url,
        )
        for chunk in chunks
    ]


def _describe_mix(citations: list[SourceCitation]) -> str:
    counts = Counter(c.type for c in citations)
    parts = []
    for source_type in ALL_CORPORA:
        n = counts.get(source_type, 0)
        if n:
            singular, plural = _TYPE_NOUNS[source_type]
            parts.append(f"{n} {singular if n == 1 else plural}")
    return ", ".join(parts)


def build_confidence(citations: list[SourceCitation]) -> ConfidenceScore:
    """Derive a confidence level from the citations backing one answer.

    - high: at least two supporting citations (>= 0.7) whose top two scores
      average at least 0.85 (so any two citations >= 0.85 qualify)
    - medium: at least one supporting citation
    - low: nothing at or above 0.7

    The explanation depends only on the citation set.
    """
    if not citations:
        return ConfidenceScore(
            level="low",
            score=0.0,
            supporting_sources=0,
            explanation="No supporting sources found.",
        )

    score = max(c.relevance_score for c in citations)
    supporting = sorted(
        (c for c in citations if c.relevance_score >= SUPPORTING_THRESHOLD),
        key=lambda c: c.relevance_score,
        reverse=True,
    )
    breakdown = {t.value: n for t, n in Counter(c.type for c in supporting).items()}

    if not supporting:
        return ConfidenceScore(
            level="low",
            score=score,
            supporting_sources=0,
            explanation=(
                f"Found {len(citations)} source(s) ({_describe_mix(citations)}) "
                f"but none at or above {SUPPORTING_THRESHOLD:.0%} relevance."
            ),
        )

    top_two = [c.relevance_score for c in supporting[:2]]
    if len(top_two) == 2 and sum(top_two) / 2 >= HIGH_CONFIDENCE_THRESHOLD:
        level = "high"
    else:
        level = "medium"

    noun = "source" if len(supporting) == 1 else "sources"
    return ConfidenceScore(
        level=level,
        score=score,
        supporting_sources=len(supporting),
        explanation=(
            f"Based on {len(supporting)} supporting {noun} "
            f"({_describe_mix(supporting)}); best match {score:.0%}."
        ),
        breakdown=breakdown,
    )
