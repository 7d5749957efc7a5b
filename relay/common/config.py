"""
Configuration Management for Relay

Loads configuration from ~/.relay/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("relay.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".relay"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
MODELS_DIR = CONFIG_DIR / "models"
REGISTRY_PATH = CONFIG_DIR / "registry.json"

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
DEFAULT_FALLBACK_MESSAGE = (
    "Sorry, I can't answer right now. A member of our team will get back to you shortly."
)


@dataclass
class QdrantConfig:
    """Vector store configuration"""
    url: str = "http://localhost:6333"
    api_key: str = ""
    timeout: float = 10.0


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    model: str = DEFAULT_EMBEDDING_MODEL
    dimension: int = 384
    cache_dir: str = str(MODELS_DIR)


@dataclass
class ChunkingConfig:
    """Document chunking configuration (characters)"""
    chunk_size: int = 500
    overlap: int = 50
    min_chunk_size: int = 20
    batch_size: int = 10  # points per upsert request


@dataclass
class RetrievalConfig:
    """Query-time retrieval configuration"""
    limit: int = 5
    score_threshold: float = 0.1


@dataclass
class PipelineConfig:
    """Agent pipeline configuration"""
    agent_timeout: float = 60.0  # seconds, per agent invocation
    max_concurrency: int = 5  # simultaneous main-stage agents
    request_timeout: float = 0.0  # seconds for the whole run, 0 = unlimited
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE


@dataclass
class ChatwootConfig:
    """Delivery target for response-agent replies"""
    base_url: str = ""
    api_key: str = ""


@dataclass
class ServerConfig:
    """Webhook server configuration"""
    host: str = "0.0.0.0"
    port: int = 8080
    registry_path: str = str(REGISTRY_PATH)


@dataclass
class RelayConfig:
    """Main Relay configuration"""
    qdrant: QdrantConfig = field(default_factory=QdrantConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    chatwoot: ChatwootConfig = field(default_factory=ChatwootConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_qdrant_config(data: dict) -> QdrantConfig:
    """Parse qdrant section from config dict"""
    qdrant_data = data.get("qdrant", {})
    return QdrantConfig(
        url=qdrant_data.get("url", "http://localhost:6333"),
        api_key=qdrant_data.get("api_key", ""),
        timeout=float(qdrant_data.get("timeout", 10.0)),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        model=embedding_data.get("model", DEFAULT_EMBEDDING_MODEL),
        dimension=int(embedding_data.get("dimension", 384)),
        cache_dir=embedding_data.get("cache_dir", str(MODELS_DIR)),
    )


def _parse_chunking_config(data: dict) -> ChunkingConfig:
    """Parse chunking section from config dict"""
    chunking_data = data.get("chunking", {})
    return ChunkingConfig(
        chunk_size=int(chunking_data.get("chunk_size", 500)),
        overlap=int(chunking_data.get("overlap", 50)),
        min_chunk_size=int(chunking_data.get("min_chunk_size", 20)),
        batch_size=int(chunking_data.get("batch_size", 10)),
    )


def _parse_retrieval_config(data: dict) -> RetrievalConfig:
    """Parse retrieval section from config dict"""
    retrieval_data = data.get("retrieval", {})
    return RetrievalConfig(
        limit=int(retrieval_data.get("limit", 5)),
        score_threshold=float(retrieval_data.get("score_threshold", 0.1)),
    )


def _parse_pipeline_config(data: dict) -> PipelineConfig:
    """Parse pipeline section from config dict"""
    pipeline_data = data.get("pipeline", {})
    return PipelineConfig(
        agent_timeout=float(pipeline_data.get("agent_timeout", 60.0)),
        max_concurrency=int(pipeline_data.get("max_concurrency", 5)),
        request_timeout=float(pipeline_data.get("request_timeout", 0.0)),
        fallback_message=pipeline_data.get("fallback_message", DEFAULT_FALLBACK_MESSAGE),
    )


def _parse_chatwoot_config(data: dict) -> ChatwootConfig:
    """Parse chatwoot section from config dict"""
    chatwoot_data = data.get("chatwoot", {})
    return ChatwootConfig(
        base_url=chatwoot_data.get("base_url", ""),
        api_key=chatwoot_data.get("api_key", ""),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 8080)),
        registry_path=server_data.get("registry_path", str(REGISTRY_PATH)),
    )


def load_config() -> RelayConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.relay/config.json)
    3. Default values
    """
    config = RelayConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.qdrant = _parse_qdrant_config(data)
            config.embedding = _parse_embedding_config(data)
            config.chunking = _parse_chunking_config(data)
            config.retrieval = _parse_retrieval_config(data)
            config.pipeline = _parse_pipeline_config(data)
            config.chatwoot = _parse_chatwoot_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError, ValueError, TypeError) as e:
            logger.warning("Failed to load config file: %s", e)
            config = RelayConfig()

    # Secrets: track which came from the environment so save_config skips them
    _env_secret_map = {
        "QDRANT_API_KEY": (config.qdrant, "api_key", "qdrant_api_key"),
        "CHATWOOT_API_KEY": (config.chatwoot, "api_key", "chatwoot_api_key"),
    }
    for env_var, (section, attr, key) in _env_secret_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(section, attr, val)
            config._env_sourced_keys.add(key)

    if os.getenv("QDRANT_URL"):
        config.qdrant.url = os.getenv("QDRANT_URL")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")
    if os.getenv("EMBEDDING_CACHE_DIR"):
        config.embedding.cache_dir = os.getenv("EMBEDDING_CACHE_DIR")

    if os.getenv("RELAY_CHUNK_SIZE"):
        config.chunking.chunk_size = int(os.getenv("RELAY_CHUNK_SIZE"))
    if os.getenv("RELAY_CHUNK_OVERLAP"):
        config.chunking.overlap = int(os.getenv("RELAY_CHUNK_OVERLAP"))

    if os.getenv("RELAY_AGENT_TIMEOUT"):
        config.pipeline.agent_timeout = float(os.getenv("RELAY_AGENT_TIMEOUT"))
    if os.getenv("RELAY_MAX_CONCURRENCY"):
        config.pipeline.max_concurrency = int(os.getenv("RELAY_MAX_CONCURRENCY"))
    if os.getenv("RELAY_REQUEST_TIMEOUT"):
        config.pipeline.request_timeout = float(os.getenv("RELAY_REQUEST_TIMEOUT"))

    if os.getenv("CHATWOOT_URL"):
        config.chatwoot.base_url = os.getenv("CHATWOOT_URL")

    if os.getenv("RELAY_HOST"):
        config.server.host = os.getenv("RELAY_HOST")
    if os.getenv("RELAY_PORT"):
        config.server.port = int(os.getenv("RELAY_PORT"))
    if os.getenv("RELAY_REGISTRY_PATH"):
        config.server.registry_path = os.getenv("RELAY_REGISTRY_PATH")

    return config


def save_config(config: RelayConfig) -> None:
    """Save configuration to file.

    API keys that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    data = {
        "qdrant": {
            "url": config.qdrant.url,
            "api_key": "" if "qdrant_api_key" in env_sourced else config.qdrant.api_key,
            "timeout": config.qdrant.timeout,
        },
        "embedding": {
            "model": config.embedding.model,
            "dimension": config.embedding.dimension,
            "cache_dir": config.embedding.cache_dir,
        },
        "chunking": {
            "chunk_size": config.chunking.chunk_size,
            "overlap": config.chunking.overlap,
            "min_chunk_size": config.chunking.min_chunk_size,
            "batch_size": config.chunking.batch_size,
        },
        "retrieval": {
            "limit": config.retrieval.limit,
            "score_threshold": config.retrieval.score_threshold,
        },
        "pipeline": {
            "agent_timeout": config.pipeline.agent_timeout,
            "max_concurrency": config.pipeline.max_concurrency,
            "request_timeout": config.pipeline.request_timeout,
            "fallback_message": config.pipeline.fallback_message,
        },
        "chatwoot": {
            "base_url": config.chatwoot.base_url,
            "api_key": "" if "chatwoot_api_key" in env_sourced else config.chatwoot.api_key,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
            "registry_path": config.server.registry_path,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    MODELS_DIR.mkdir(parents=True, exist_ok=True)
