"""
Retriever - Per-Agent Retrieval-Augmented Context

Key Components:
- QueryProcessor: Strips stop words before a query is embedded
- RetrievalEngine: Ingests documents into an agent's collection and
  retrieves the chunks most similar to a message

Pipeline:
1. Chunk, embed and store each context document (one collection per agent)
2. Embed the inbound message and search the agent's collection
3. Hand the best chunks to the response agent as additional context
"""

from .query_processor import QueryProcessor, ParsedQuery
from .engine import (
    RetrievalEngine,
    IngestResult,
    RetrievedChunk,
    DocumentStatus,
    RetrievalHealth,
    chunk_point_id,
)

__all__ = [
    "QueryProcessor",
    "ParsedQuery",
    "RetrievalEngine",
    "IngestResult",
    "RetrievedChunk",
    "DocumentStatus",
    "RetrievalHealth",
    "chunk_point_id",
]
