"""Tests for citation and confidence building."""

from datetime import datetime

import pytest

from knowledge_engine.search.citations import (
    SourceCitation,
    build_citations,
    build_confidence,
    relevance_label,
)
from knowledge_engine.search.models import RankedChunk, SourceType


def chunk(source_type: SourceType, score: float, content: str = "text", **metadata) -> RankedChunk:
    return RankedChunk(
        chunk_id=f"{source_type.value}-{score}",
        source_type=source_type,
        source_id=f"id-{source_type.value}",
        source_name=f"{source_type.value} source",
        content=content,
        score=score,
        metadata=metadata,
    )


def citation(source_type: SourceType, score: float) -> SourceCitation:
    return build_citations([chunk(source_type, score)])[0]


class TestRelevanceLabel:
    """Tests for relevance bands."""

    @pytest.mark.parametrize(
        "score,label",
        [
            (0.95, "high match"),
            (0.9, "high match"),
            (0.85, "good match"),
            (0.8, "good match"),
            (0.75, "relevant"),
            (0.7, "relevant"),
            (0.69, "partial match"),
            (0.0, "partial match"),
        ],
    )
    def test_bands(self, score, label):
        """Scores map to the documented bands."""
        assert relevance_label(score) == label

    def test_available_on_citation(self):
        """Citations expose their label without a UI."""
        assert citation(SourceType.DOCUMENT, 0.92).relevance_label == "high match"


class TestBuildCitations:
    """Tests for chunk to citation mapping."""

    def test_document_location_is_page(self):
        """Document citations point at the page."""
        c = build_citations([chunk(SourceType.DOCUMENT, 0.9, page_number=4, chunk_index=7)])[0]
        assert c.location == {"page": 4}

    def test_meeting_location_is_timestamp(self):
        """Meeting citations point at the transcript timestamp."""
        c = build_citations([chunk(SourceType.MEETING, 0.9, timestamp="00:12:30", chunk_index=2)])[0]
        assert c.location == {"timestamp": "00:12:30"}

    def test_tabular_location_is_field(self):
        """Record citations point at the primary field."""
        c = build_citations([chunk(SourceType.TABULAR, 0.9, field_key="Name")])[0]
        assert c.location == {"field": "Name"}

    def test_falls_back_to_chunk_index(self):
        """Without a type-specific location the chunk index is used."""
        c = build_citations([chunk(SourceType.DOCUMENT, 0.9, chunk_index=3)])[0]
        assert c.location == {"chunk_index": 3}

    def test_excerpt_truncated(self):
        """Long content is excerpted to 200 characters plus an ellipsis."""
        c = build_citations([chunk(SourceType.DOCUMENT, 0.9, content="a" * 500)])[0]
        assert c.excerpt == "a" * 200 + "..."

    def test_short_excerpt_unchanged(self):
        """Short content is used as-is."""
        c = build_citations([chunk(SourceType.DOCUMENT, 0.9, content="short")])[0]
        assert c.excerpt == "short"

    def test_score_clamped(self):
        """Relevance scores stay within [0, 1]."""
        c = build_citations([chunk(SourceType.DOCUMENT, 1.0000002)])[0]
        assert c.relevance_score == 1.0

    def test_preserves_order(self):
        """Citations keep the rank order of the chunks."""
        chunks = [chunk(SourceType.DOCUMENT, 0.92), chunk(SourceType.TABULAR, 0.81)]
        assert [c.type for c in build_citations(chunks)] == [SourceType.DOCUMENT, SourceType.TABULAR]

    def test_to_dict_wire_shape(self):
        """Serialised citations use the wire keys."""
        rc = chunk(SourceType.TABULAR, 0.81, field_key="Name", edit_url="https://airtable.com/b/t/r")
        rc.last_updated = datetime(2024, 5, 1, 12, 0, 0)
        data = build_citations([rc])[0].to_dict()

        assert data["type"] == "tabular"
        assert data["source_name"] == "tabular source"
        assert data["relevance_score"] == 0.81
        assert data["last_updated"] == "2024-05-01T12:00:00"
        assert data["edit_url"] == "https://airtable.com/b/t/r"


class TestBuildConfidence:
    """Tests for confidence levels."""

    def test_no_citations_is_low(self):
        """No citations give low confidence with a zero score."""
        confidence = build_confidence([])
        assert confidence.level == "low"
        assert confidence.score == 0.0
        assert confidence.supporting_sources == 0

    def test_two_strong_citations_is_high(self):
        """Two citations at or above 0.85 give high confidence."""
        confidence = build_confidence([
            citation(SourceType.DOCUMENT, 0.88),
            citation(SourceType.MEETING, 0.86),
        ])
        assert confidence.level == "high"

    def test_strong_pair_averaging_high(self):
        """A 0.92 document and a 0.81 record together are high confidence."""
        confidence = build_confidence([
            citation(SourceType.DOCUMENT, 0.92),
            citation(SourceType.TABULAR, 0.81),
        ])
        assert confidence.level == "high"
        assert confidence.score == 0.92
        assert confidence.supporting_sources == 2

    def test_single_strong_citation_is_medium(self):
        """One supporting citation alone is medium."""
        confidence = build_confidence([citation(SourceType.DOCUMENT, 0.95)])
        assert confidence.level == "medium"

    def test_two_weak_citations_is_medium(self):
        """Two supporting citations with a low average are medium."""
        confidence = build_confidence([
            citation(SourceType.DOCUMENT, 0.75),
            citation(SourceType.MEETING, 0.72),
        ])
        assert confidence.level == "medium"

    def test_all_below_threshold_is_low(self):
        """Citations under 0.7 do not support the answer."""
        confidence = build_confidence([
            citation(SourceType.DOCUMENT, 0.6),
            citation(SourceType.MEETING, 0.5),
        ])
        assert confidence.level == "low"
        assert confidence.score == 0.6
        assert confidence.supporting_sources == 0

    def test_explanation_names_mix(self):
        """The explanation counts supporting sources by type."""
        confidence = build_confidence([
            citation(SourceType.DOCUMENT, 0.92),
            citation(SourceType.TABULAR, 0.81),
        ])
        assert confidence.explanation == (
            "Based on 2 supporting sources (1 document, 1 table record); best match 92%."
        )

    def test_explanation_is_deterministic(self):
        """The same citations always produce the same explanation."""
        citations = [
            citation(SourceType.MEETING, 0.8),
            citation(SourceType.DOCUMENT, 0.9),
            citation(SourceType.MEETING, 0.75),
        ]
        first = build_confidence(citations)
        second = build_confidence(list(reversed(citations)))
        assert first.explanation == second.explanation
        assert first.breakdown == {"document": 1, "meeting": 2}
