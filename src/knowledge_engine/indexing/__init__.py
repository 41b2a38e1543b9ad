"""Chunking and indexing of documents and meeting transcripts."""

from knowledge_engine.indexing.chunker import ChunkConfig, TextChunker
from knowledge_engine.indexing.indexer import CorpusIndexer, MeetingInfo, TranscriptSegment

__all__ = [
    "ChunkConfig",
    "CorpusIndexer",
    "MeetingInfo",
    "TextChunker",
    "TranscriptSegment",
]
