"""
Relay

Staged agent pipeline for conversational inboxes with retrieval-augmented replies.

Philosophy:
- One inbound message, one ordered pipeline run
- Exactly one response agent per inbox; its answer is grounded in the agent's own documents
- A failing agent is a result, never an aborted pipeline
- "No context" is a normal outcome of retrieval, not an error

Usage:
    from relay.common import load_config, EmbeddingService, VectorStoreClient
    from relay.retriever import RetrievalEngine
    from relay.pipeline import AgentExecutor, PipelineOrchestrator, ProcessingContext
"""

__version__ = "0.1.0"
