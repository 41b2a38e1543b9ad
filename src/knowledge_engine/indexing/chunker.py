"""Text chunker for splitting extracted text into overlapping chunks."""

import re
from dataclasses import dataclass

from knowledge_engine.config import settings

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n+")
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


@dataclass
class ChunkConfig:
    """Configuration for chunking behavior."""

    max_chars: int = 1500
    overlap_chars: int = 200

    @classmethod
    def from_settings(cls) -> "ChunkConfig":
        return cls(max_chars=settings.CHUNK_MAX_CHARS, overlap_chars=settings.CHUNK_OVERLAP_CHARS)


class TextChunker:
    """Splits plain text on paragraph, then sentence, boundaries.

    Consecutive chunks share up to ``overlap_chars`` trailing characters of
    the previous chunk, cut at a word boundary.
    """

    def __init__(self, config: ChunkConfig | None = None):
        self.config = config or ChunkConfig.from_settings()
        if self.config.overlap_chars >= self.config.max_chars:
            raise ValueError("overlap_chars must be smaller than max_chars")

    def chunk(self, text: str) -> list[str]:
        """Split ``text`` into chunks no longer than ``max_chars``."""
        if not text or not text.strip():
            return []

        pieces: list[str] = []
        for para in _PARAGRAPH_BREAK.split(text.strip()):
            para = para.strip()
            if not para:
                continue
            if len(para) <= self.config.max_chars:
                pieces.append(para)
            else:
                pieces.extend(self._split_sentences(para))

        return self._merge(pieces)

    def _split_sentences(self, para: str) -> list[str]:
        """Split an oversized paragraph into sentences, hard-cutting any that are still too long."""
        limit = self.config.max_chars
        out = []
        for sentence in _SENTENCE_END.split(para):
            sentence = sentence.strip()
            while len(sentence) > limit:
                out.append(sentence[:limit])
                sentence = sentence[limit:].strip()
            if sentence:
                out.append(sentence)
        return out

    def _merge(self, pieces: list[str]) -> list[str]:
        limit = self.config.max_chars
        chunks: list[str] = []
        current = ""

        for piece in pieces:
            candidate = f"{current}\n\n{piece}" if current else piece
            if len(candidate) <= limit:
                current = candidate
                continue

            chunks.append(current)
            overlap = self._tail(current)
            current = f"{overlap} {piece}" if overlap else piece
            if len(current) > limit:
                current = piece

        if current:
            chunks.append(current)
        return chunks

    def _tail(self, text: str) -> str:
        """Last ``overlap_chars`` of ``text``, starting on a word."""
        n = self.config.overlap_chars
        if n <= 0 or len(text) <= n:
            return ""
        tail = text[-n:]
        space = tail.find(" ")
        return tail[space + 1:].strip() if space != -1 else ""
