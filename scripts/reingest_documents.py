#!/usr/bin/env python3
"""
Re-ingestion Script

Re-chunks and re-embeds every context document of the registered agents.
Run this after changing the embedding model or the chunking settings so the
stored chunks match what queries are embedded with.

Usage:
    python scripts/reingest_documents.py [--agent AGENT_ID] [--dry-run]
"""

import sys
import argparse
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def main():
    parser = argparse.ArgumentParser(description="Re-ingest agent context documents")
    parser.add_argument("--agent", type=str, default=None, help="Only re-ingest this agent's documents")
    parser.add_argument("--dry-run", action="store_true", help="Print what would be done without executing")
    parser.add_argument("--registry", type=str, default=None, help="Registry file (default from config)")
    args = parser.parse_args()

    from relay.common.config import load_config
    from relay.common.chunker import TextChunker
    from relay.common.embedding_service import EmbeddingService
    from relay.common.errors import RelayError
    from relay.common.vector_store import VectorStoreClient
    from relay.pipeline.registry import Registry
    from relay.retriever import RetrievalEngine

    config = load_config()
    registry = Registry(Path(args.registry or config.server.registry_path))

    if args.agent:
        agent = registry.get_agent(args.agent)
        if agent is None:
            print(f"[Reingest] ERROR: Agent {args.agent} not found in registry")
            sys.exit(1)
        agents = [agent]
    else:
        agents = registry.list_agents()

    total_docs = sum(len(a.context_documents) for a in agents)
    print(f"[Reingest] {len(agents)} agents, {total_docs} documents")

    if args.dry_run:
        print("[Reingest] DRY RUN - no changes will be made")
        for agent in agents:
            for document in agent.context_documents:
                print(f"[Reingest] Would re-ingest {agent.id}/{document.id} ({document.type.value}, {len(document.content)} chars)")
        return

    print(f"[Reingest] Loading embedding model {config.embedding.model}...")
    embedding_svc = EmbeddingService(
        model=config.embedding.model,
        dimension=config.embedding.dimension,
        cache_dir=config.embedding.cache_dir,
    )
    try:
        embedding_svc.load()
    except RelayError as e:
        print(f"[Reingest] ERROR: {e}")
        sys.exit(1)

    print(f"[Reingest] Connecting to vector store at {config.qdrant.url}...")
    store = VectorStoreClient(
        url=config.qdrant.url,
        api_key=config.qdrant.api_key or None,
        timeout=config.qdrant.timeout,
    )
    health = store.health()
    if not health.connected:
        print(f"[Reingest] ERROR: Could not connect to vector store: {health.error}")
        sys.exit(1)

    engine = RetrievalEngine(
        embedding_svc,
        store,
        chunker=TextChunker(
            chunk_size=config.chunking.chunk_size,
            overlap=config.chunking.overlap,
            min_chunk_size=config.chunking.min_chunk_size,
        ),
        batch_size=config.chunking.batch_size,
    )

    ingested = 0
    chunks = 0
    errors = 0

    try:
        for agent in agents:
            for document in agent.context_documents:
                try:
                    result = engine.ingest_document(agent.id, document)
                    print(f"[Reingest] {agent.id}/{document.id}: {result.chunks_created} chunks ({result.language})")
                    ingested += 1
                    chunks += result.chunks_created
                except (RelayError, ValueError) as e:
                    print(f"[Reingest] WARNING: Failed {agent.id}/{document.id}: {e}")
                    errors += 1
    finally:
        store.close()

    print(f"[Reingest] Complete: {ingested} documents, {chunks} chunks, {errors} errors")
    if errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
