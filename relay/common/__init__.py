"""
Relay Common Module

Shared infrastructure for the retriever, the pipeline, and the gateway.
"""

from .config import RelayConfig, load_config
from .chunker import TextChunker
from .embedding_service import EmbeddingService
from .vector_store import VectorStoreClient
from .llm_client import LLMClient
from .language import LanguageInfo, detect_language

__all__ = [
    "RelayConfig",
    "load_config",
    "TextChunker",
    "EmbeddingService",
    "VectorStoreClient",
    "LLMClient",
    "LanguageInfo",
    "detect_language",
]
