"""
Retrieval Engine

Ingests agent context documents into per-agent vector collections and
retrieves the chunks most similar to an inbound message.

Ingest:
1. Clean and chunk the text (crawled websites are chunked page by page)
2. Tag the document with a best-effort language family
3. Embed every chunk
4. Replace the document's previous chunks with the new set

Retrieve:
1. Strip stop words from the query
2. Embed the query with the same model
3. Cosine search in the agent's collection, filtered by score threshold
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..common.chunker import TextChunker, clean_text, is_website_content, split_website_pages
from ..common.embedding_service import EmbeddingService
from ..common.errors import UpstreamUnavailableError, VectorStoreError
from ..common.language import LanguageInfo, detect_language
from ..common.schemas import ContextDocument, DocumentType
from ..common.vector_store import (
    CollectionInfo,
    VectorPoint,
    VectorStoreClient,
    collection_name,
)
from .query_processor import QueryProcessor

logger = logging.getLogger("relay.retriever.engine")

MIN_LIMIT = 1
MAX_LIMIT = 100
CONTEXT_SEPARATOR = "\n\n"

# Chunk ids are uuid5 of "<document_id>_chunk_<i>" in this namespace
CHUNK_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "relay/chunks")


def chunk_point_id(document_id: str, index: int) -> str:
    return str(uuid.uuid5(CHUNK_NAMESPACE, f"{document_id}_chunk_{index}"))


@dataclass
class IngestResult:
    """Outcome of ingesting one document"""
    chunks_created: int
    collection_name: str
    language: str = "english"


@dataclass
class RetrievedChunk:
    """A chunk returned by similarity search"""
    text: str
    score: float
    document_id: str = ""
    chunk_index: int = 0
    document_type: str = ""
    title: str = ""
    language: str = ""
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "score": self.score,
            "metadata": {
                "documentId": self.document_id,
                "chunkIndex": self.chunk_index,
                "documentType": self.document_type,
                "documentTitle": self.title,
                "language": self.language,
                "source": self.source,
            },
        }


@dataclass
class DocumentStatus:
    """Whether a document currently has chunks in the index"""
    in_index: bool
    chunks_count: int = 0


@dataclass
class RetrievalHealth:
    """Vector store and embedding model status"""
    connected: bool
    model_loaded: bool
    model_name: str
    store_url: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "qdrant": {"connected": self.connected, "url": self.store_url},
            "embeddings": {"modelLoaded": self.model_loaded, "modelName": self.model_name},
            "error": self.error,
        }


@dataclass
class _PendingChunk:
    text: str
    source: Optional[str] = None


class RetrievalEngine:
    """
    Per-agent retrieval-augmented context.

    All methods are synchronous. Retrieval never raises for an unavailable
    store or model; it logs and returns no context. Ingestion propagates
    those errors to the caller.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStoreClient,
        chunker: Optional[TextChunker] = None,
        language_detector: Callable[[str], LanguageInfo] = detect_language,
        batch_size: int = 10,
        query_processor: Optional[QueryProcessor] = None,
    ):
        """
        Initialize retrieval engine.

        Args:
            embedding_service: Shared embedding model
            vector_store: Vector store client
            chunker: Text chunker (defaults to 500/50/20)
            language_detector: Returns the language family of a text
            batch_size: Points per upsert request
            query_processor: Query clean-up before embedding
        """
        self._embedding = embedding_service
        self._store = vector_store
        self._chunker = chunker or TextChunker()
        self._detect_language = language_detector
        self._batch_size = max(1, batch_size)
        self._query_processor = query_processor or QueryProcessor()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(
        self,
        agent_id: str,
        document_id: str,
        text: str,
        *,
        document_type: str = DocumentType.FILE.value,
        title: str = "",
        source: Optional[str] = None,
    ) -> IngestResult:
        """
        Chunk, embed and store a document, replacing any previous version.

        Args:
            agent_id: Owning agent (selects the collection)
            document_id: Document identity; previous chunks with this id are deleted
            text: Raw document text
            document_type: "file", "url" or "website"
            title: Document title stored with each chunk
            source: Filename or URL stored with each chunk

        Returns:
            IngestResult with the number of chunks stored
        """
        document_type = DocumentType(document_type).value
        pending = self._chunk_document(text, document_type, source)

        cleaned = clean_text(text)
        language = self._detect_language(cleaned).family if cleaned else "english"
        name = collection_name(agent_id)

        # Embed before touching the index so a failure keeps the old chunks
        vectors = self._embedding.embed([c.text for c in pending]) if pending else []

        self._store.ensure_collection(agent_id, self._embedding.dimension, "Cosine")
        self._store.delete_by_document(agent_id, document_id)

        points = []
        for index, (chunk, vector) in enumerate(zip(pending, vectors)):
            payload = {
                "text": chunk.text,
                "agentId": agent_id,
                "documentId": document_id,
                "type": document_type,
                "title": title,
                "chunkIndex": index,
                "language": language,
                "source": chunk.source,
                "originalId": f"{document_id}_chunk_{index}",
            }
            points.append(VectorPoint(id=chunk_point_id(document_id, index), vector=vector, payload=payload))

        for start in range(0, len(points), self._batch_size):
            self._store.upsert_many(agent_id, points[start:start + self._batch_size])

        logger.info(
            "Ingested document %s for agent %s: %d chunks (%s)",
            document_id, agent_id, len(points), language,
        )
        return IngestResult(chunks_created=len(points), collection_name=name, language=language)

    def ingest_document(self, agent_id: str, document: ContextDocument) -> IngestResult:
        """Ingest an agent's context document."""
        return self.ingest(
            agent_id,
            document.id,
            document.content,
            document_type=document.type.value,
            title=document.title,
            source=document.source,
        )

    def _chunk_document(self, text: str, document_type: str, source: Optional[str]) -> List[_PendingChunk]:
        if document_type == DocumentType.WEBSITE.value and is_website_content(text):
            pending = []
            for page_url, page_text in split_website_pages(text):
                for chunk in self._chunker.split(page_text):
                    pending.append(_PendingChunk(text=chunk, source=page_url or source))
            return pending

        return [_PendingChunk(text=chunk, source=source) for chunk in self._chunker.split(clean_text(text))]

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def search(
        self,
        agent_id: str,
        query: str,
        limit: int = 5,
        score_threshold: float = 0.1,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[RetrievedChunk]:
        """
        Find the agent's chunks most similar to a query.

        Returns:
            At most `limit` chunks with score >= score_threshold, best first.
            Empty when there is nothing to search or the backends are down.
        """
        if not query or not query.strip():
            return []

        limit = max(MIN_LIMIT, min(MAX_LIMIT, int(limit)))
        processed = self._query_processor.clean(query)
        logger.debug("Query preprocessing: %r -> %r", query[:50], processed[:50])

        try:
            vector = self._embedding.embed_single(processed)
            hits = self._store.search(
                agent_id,
                vector,
                limit=limit,
                score_threshold=score_threshold,
                filters=filters,
            )
        except (UpstreamUnavailableError, VectorStoreError) as e:
            logger.warning("Retrieval degraded to empty context for agent %s: %s", agent_id, e)
            return []

        chunks = [
            RetrievedChunk(
                text=hit.text,
                score=hit.score,
                document_id=hit.payload.get("documentId", ""),
                chunk_index=int(hit.payload.get("chunkIndex", 0)),
                document_type=hit.payload.get("type", ""),
                title=hit.payload.get("title", ""),
                language=hit.payload.get("language", ""),
                source=hit.payload.get("source"),
            )
            for hit in hits
            if hit.text and hit.score >= score_threshold
        ]
        chunks.sort(key=lambda c: c.score, reverse=True)
        return chunks[:limit]

    def retrieve(
        self,
        agent_id: str,
        query: str,
        limit: int = 5,
        score_threshold: float = 0.1,
    ) -> List[str]:
        """Chunk texts most similar to the query, best first."""
        return [c.text for c in self.search(agent_id, query, limit, score_threshold)]

    @staticmethod
    def build_context(chunks: List[str]) -> str:
        return CONTEXT_SEPARATOR.join(c for c in chunks if c)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def delete_document(self, agent_id: str, document_id: str) -> None:
        self._store.delete_by_document(agent_id, document_id)
        logger.info("Deleted chunks of document %s for agent %s", document_id, agent_id)

    def document_status(self, agent_id: str, document_id: str) -> DocumentStatus:
        count = self._store.count_by_document(agent_id, document_id)
        return DocumentStatus(in_index=count > 0, chunks_count=count)

    def collection_info(self, agent_id: str) -> CollectionInfo:
        return self._store.collection_info(agent_id)

    def drop_agent(self, agent_id: str) -> bool:
        """Delete the agent's whole collection. Returns False if there was none."""
        dropped = self._store.delete_collection(agent_id)
        if dropped:
            logger.info("Dropped collection %s", collection_name(agent_id))
        return dropped

    def health(self) -> RetrievalHealth:
        status = self._store.health()
        return RetrievalHealth(
            connected=status.connected,
            model_loaded=self._embedding.is_loaded,
            model_name=self._embedding.model_name,
            store_url=self._store.url,
            error=status.error,
        )
