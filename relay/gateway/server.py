"""
Relay Server

FastAPI server that receives inbox webhooks and runs the agent pipeline.

Endpoints:
- GET /health: Health check
- GET /rag/health: Vector store and embedding model status
- POST /webhook/inbox/{inbox_id}: Inbox webhook (runs the pipeline)
- GET /inboxes/{inbox_id}/processing-order: Stage preview for an inbox
- POST /agents/{agent_id}/rag/search: Search an agent's documents
- GET /agents/{agent_id}/rag/stats: Agent collection statistics
- DELETE /agents/{agent_id}/rag: Drop an agent's collection
- POST /agents/{agent_id}/context/{document_id}/ingest: (Re-)ingest a context document
- GET /agents/{agent_id}/context/{document_id}/status: Whether a document is indexed
- DELETE /agents/{agent_id}/context/{document_id}: Remove a document and its chunks

Pipeline:
1. Receive webhook event
2. Verify signature (when the inbox has a secret and the caller signed)
3. Parse into a ProcessingContext
4. Run pre-process, response, main and post-process stages
5. Return the aggregated PipelineResult
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field

from ..common.chunker import TextChunker
from ..common.config import RelayConfig, ensure_directories, load_config
from ..common.embedding_service import EmbeddingService
from ..common.errors import (
    InboxInactiveError,
    InboxNotFoundError,
    MalformedInputError,
    UpstreamUnavailableError,
    VectorStoreError,
)
from ..common.schemas import Agent
from ..common.vector_store import VectorStoreClient, collection_name
from ..pipeline import AgentExecutor, ConnectionResolver, PipelineOrchestrator, Registry
from ..retriever import RetrievalEngine
from .delivery import ChatwootDelivery, DeliveryGateway, NullDelivery
from .handlers import ChatwootHandler

logger = logging.getLogger("relay.gateway.server")


# Global state
config: Optional[RelayConfig] = None
registry: Optional[Registry] = None
embedding_service: Optional[EmbeddingService] = None
vector_store: Optional[VectorStoreClient] = None
retrieval_engine: Optional[RetrievalEngine] = None
orchestrator: Optional[PipelineOrchestrator] = None
delivery: Optional[DeliveryGateway] = None
chatwoot_handler: Optional[ChatwootHandler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, registry, embedding_service, vector_store, retrieval_engine
    global orchestrator, delivery, chatwoot_handler

    logger.info("Starting up...")
    load_dotenv()
    ensure_directories()

    config = load_config()
    registry = Registry(Path(config.server.registry_path))

    embedding_service = EmbeddingService(
        model=config.embedding.model,
        dimension=config.embedding.dimension,
        cache_dir=config.embedding.cache_dir,
    )
    try:
        await asyncio.to_thread(embedding_service.load)
    except UpstreamUnavailableError as e:
        # Retrieval degrades to empty context until the model loads
        logger.warning("Embedding model not loaded at startup: %s", e)

    vector_store = VectorStoreClient(
        url=config.qdrant.url,
        api_key=config.qdrant.api_key or None,
        timeout=config.qdrant.timeout,
    )
    retrieval_engine = RetrievalEngine(
        embedding_service,
        vector_store,
        chunker=TextChunker(
            chunk_size=config.chunking.chunk_size,
            overlap=config.chunking.overlap,
            min_chunk_size=config.chunking.min_chunk_size,
        ),
        batch_size=config.chunking.batch_size,
    )

    executor = AgentExecutor(
        retrieval_engine,
        ConnectionResolver(registry.ai_settings),
        timeout=config.pipeline.agent_timeout,
        retrieval_limit=config.retrieval.limit,
        score_threshold=config.retrieval.score_threshold,
    )

    if config.chatwoot.base_url and config.chatwoot.api_key:
        delivery = ChatwootDelivery(config.chatwoot.base_url, config.chatwoot.api_key)
        logger.info("Delivering replies to %s", config.chatwoot.base_url)
    else:
        delivery = NullDelivery()
        logger.info("Chatwoot not configured; replies are logged only")

    orchestrator = PipelineOrchestrator(
        executor,
        registry=registry,
        delivery=delivery,
        max_concurrency=config.pipeline.max_concurrency,
        fallback_message=config.pipeline.fallback_message,
        request_timeout=config.pipeline.request_timeout,
    )
    chatwoot_handler = ChatwootHandler()

    logger.info("Ready to receive webhooks")

    yield

    # Cleanup
    logger.info("Shutting down...")
    vector_store.close()
    await delivery.aclose()


app = FastAPI(
    title="Relay",
    description="Staged agent pipeline for conversational inboxes",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request Models
# =============================================================================

class SearchRequest(BaseModel):
    """RAG search request"""
    query: str
    limit: int = Field(default=5, ge=1, le=100)
    score_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    document_type: Optional[str] = None
    language: Optional[str] = None


# =============================================================================
# Helpers
# =============================================================================

def _require(component, name: str):
    if component is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return component


def _require_agent(agent_id: str) -> Agent:
    agent = _require(registry, "Registry").get_agent(agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent


def _upstream_error(e: Exception) -> HTTPException:
    if isinstance(e, UpstreamUnavailableError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "relay",
        "initialized": orchestrator is not None,
        "inboxes": len(registry.list_inboxes()) if registry else 0,
        "agents": len(registry.list_agents()) if registry else 0,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/rag/health")
async def rag_health():
    """Vector store connectivity and embedding model state"""
    engine = _require(retrieval_engine, "Retrieval engine")
    status = await asyncio.to_thread(engine.health)
    return status.to_dict()


@app.post("/webhook/inbox/{inbox_id}")
async def inbox_webhook(
    inbox_id: str,
    request: Request,
    x_webhook_secret: Optional[str] = Header(None),
):
    """
    Handle an inbox webhook.

    This is the main entry point for chat platform integration.
    """
    pipeline = _require(orchestrator, "Pipeline")
    handler = _require(chatwoot_handler, "Handler")

    body = await request.body()
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON")

    inbox = _require(registry, "Registry").get_inbox(inbox_id)
    if inbox is None or not inbox.is_active:
        raise HTTPException(status_code=404, detail="Inbox not found or inactive")

    # Only validated when both a secret and a signature are present
    is_test = isinstance(data, dict) and bool(data.get("test"))
    if not is_test and inbox.webhook_secret and x_webhook_secret:
        if not handler.verify_signature(body, x_webhook_secret, inbox.webhook_secret):
            logger.warning("Invalid webhook signature for inbox %s", inbox_id)
            raise HTTPException(status_code=401, detail="Invalid webhook signature")
    elif inbox.webhook_secret and not x_webhook_secret:
        logger.info("Inbox %s has a webhook secret but the request is unsigned", inbox_id)

    try:
        context = await handler.parse_event(data, inbox_id)
    except MalformedInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        result = await pipeline.run_for_inbox(inbox_id, context)
    except (InboxNotFoundError, InboxInactiveError):
        raise HTTPException(status_code=404, detail="Inbox not found or inactive")

    return {
        "success": True,
        "message": result.message,
        "data": {
            "inbox": {"id": inbox.id, "name": inbox.name},
            "event": context.event_type,
            **result.to_dict(),
        },
    }


@app.get("/inboxes/{inbox_id}/processing-order")
async def processing_order(inbox_id: str):
    """Which agents run in which stage"""
    pipeline = _require(orchestrator, "Pipeline")
    try:
        return {"success": True, "data": pipeline.processing_order(inbox_id)}
    except (InboxNotFoundError, InboxInactiveError):
        raise HTTPException(status_code=404, detail="Inbox not found or inactive")


@app.post("/agents/{agent_id}/rag/search")
async def rag_search(agent_id: str, search: SearchRequest):
    """Search an agent's documents"""
    engine = _require(retrieval_engine, "Retrieval engine")
    _require_agent(agent_id)

    if not search.query.strip():
        raise HTTPException(status_code=400, detail="Query is required")

    filters = {}
    if search.document_type:
        filters["type"] = search.document_type
    if search.language:
        filters["language"] = search.language

    chunks = await asyncio.to_thread(
        engine.search,
        agent_id,
        search.query,
        search.limit,
        search.score_threshold,
        filters or None,
    )
    return {
        "success": True,
        "data": {
            "query": search.query,
            "results": [c.to_dict() for c in chunks],
            "totalResults": len(chunks),
        },
    }


@app.get("/agents/{agent_id}/rag/stats")
async def rag_stats(agent_id: str):
    """Collection statistics for an agent"""
    engine = _require(retrieval_engine, "Retrieval engine")
    agent = _require_agent(agent_id)

    try:
        info = await asyncio.to_thread(engine.collection_info, agent_id)
    except (UpstreamUnavailableError, VectorStoreError) as e:
        raise _upstream_error(e)

    return {
        "success": True,
        "data": {
            "collectionName": collection_name(agent_id),
            "exists": info.exists,
            "pointsCount": info.points_count,
            "documentsCount": len(agent.context_documents),
        },
    }


@app.delete("/agents/{agent_id}/rag")
async def drop_agent_collection(agent_id: str):
    """Delete every chunk of an agent (the agent itself may already be gone)"""
    engine = _require(retrieval_engine, "Retrieval engine")
    try:
        dropped = await asyncio.to_thread(engine.drop_agent, agent_id)
    except (UpstreamUnavailableError, VectorStoreError) as e:
        raise _upstream_error(e)
    return {"success": True, "data": {"collectionName": collection_name(agent_id), "dropped": dropped}}


@app.post("/agents/{agent_id}/context/{document_id}/ingest")
async def ingest_document(agent_id: str, document_id: str):
    """Chunk, embed and index one of an agent's context documents"""
    engine = _require(retrieval_engine, "Retrieval engine")
    agent = _require_agent(agent_id)

    document = agent.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")

    try:
        result = await asyncio.to_thread(engine.ingest_document, agent_id, document)
    except (UpstreamUnavailableError, VectorStoreError) as e:
        raise _upstream_error(e)

    return {
        "success": True,
        "data": {
            "documentId": document_id,
            "chunksCreated": result.chunks_created,
            "collectionName": result.collection_name,
            "language": result.language,
        },
    }


@app.get("/agents/{agent_id}/context/{document_id}/status")
async def document_status(agent_id: str, document_id: str):
    """Whether a document currently has chunks in the index"""
    engine = _require(retrieval_engine, "Retrieval engine")
    _require_agent(agent_id)

    try:
        status = await asyncio.to_thread(engine.document_status, agent_id, document_id)
    except (UpstreamUnavailableError, VectorStoreError) as e:
        raise _upstream_error(e)

    return {
        "success": True,
        "data": {
            "documentId": document_id,
            "inRAG": status.in_index,
            "chunksCount": status.chunks_count,
        },
    }


@app.delete("/agents/{agent_id}/context/{document_id}")
async def delete_document(agent_id: str, document_id: str):
    """Remove a context document from an agent and delete its chunks"""
    engine = _require(retrieval_engine, "Retrieval engine")
    agent = _require_agent(agent_id)

    try:
        await asyncio.to_thread(engine.delete_document, agent_id, document_id)
    except (UpstreamUnavailableError, VectorStoreError) as e:
        raise _upstream_error(e)

    remaining = [d for d in agent.context_documents if d.id != document_id]
    removed = len(remaining) < len(agent.context_documents)
    if removed:
        registry.put_agent(agent.model_copy(update={"context_documents": remaining}))

    return {"success": True, "data": {"documentId": document_id, "removed": removed}}


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Relay server"""
    import uvicorn

    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    logger.info("Starting server on %s:%d", config.server.host, config.server.port)
    uvicorn.run(
        "relay.gateway.server:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
