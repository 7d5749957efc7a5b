"""
Completion connection resolution.

Which connection and model an agent talks to, in priority order:
1. The agent's own connection/model selection
2. The system default connection/model
3. The first active connection with at least one enabled model

A selection that points at a missing or inactive connection, or at a
disabled model, is skipped in favour of the next tier.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from ..common.errors import ConfigurationError
from ..common.llm_client import LLMClient
from ..common.schemas import AgentSettings, AIConnection, AISettings

logger = logging.getLogger("relay.pipeline.connections")


@dataclass(frozen=True)
class ResolvedConnection:
    """A usable connection and the model to call on it"""
    connection: AIConnection
    model_id: str
    tier: str  # "agent", "default" or "fallback"


class ConnectionResolver:
    """Resolves agents to completion clients and caches the clients."""

    def __init__(
        self,
        ai_settings: Optional[AISettings] = None,
        client_factory: Callable[..., LLMClient] = LLMClient,
    ):
        self._settings = ai_settings or AISettings()
        self._client_factory = client_factory
        self._clients: Dict[Tuple[str, str], LLMClient] = {}
        self._lock = threading.Lock()

    @property
    def ai_settings(self) -> AISettings:
        return self._settings

    def update(self, ai_settings: AISettings) -> None:
        """Swap in new connection settings and forget cached clients."""
        with self._lock:
            self._settings = ai_settings
            self._clients.clear()

    def resolve(self, settings: AgentSettings) -> ResolvedConnection:
        """
        Pick the connection and model for an agent.

        Raises:
            ConfigurationError: no active connection with an enabled model
        """
        if settings.connection_id:
            resolved = self._try(settings.connection_id, settings.model_id, "agent")
            if resolved:
                return resolved

        default = self._settings.default
        if default.connection_id:
            resolved = self._try(default.connection_id, default.model_id, "default")
            if resolved:
                return resolved

        for connection in self._settings.connections:
            if not connection.is_active:
                continue
            enabled = connection.enabled_models()
            if enabled:
                return ResolvedConnection(connection=connection, model_id=enabled[0].id, tier="fallback")

        raise ConfigurationError("No active AI connection with an enabled model is configured")

    def _try(self, connection_id: str, model_id: Optional[str], tier: str) -> Optional[ResolvedConnection]:
        connection = self._settings.get_connection(connection_id)
        if connection is None:
            logger.warning("%s connection %s not found, falling back", tier, connection_id)
            return None
        if not connection.is_active:
            logger.warning("%s connection %s is inactive, falling back", tier, connection_id)
            return None

        if model_id:
            model = connection.find_model(model_id)
            if model is None or not model.enabled:
                logger.warning(
                    "%s model %s is not enabled on connection %s, falling back",
                    tier, model_id, connection_id,
                )
                return None
            return ResolvedConnection(connection=connection, model_id=model.id, tier=tier)

        enabled = connection.enabled_models()
        if not enabled:
            logger.warning("%s connection %s has no enabled models, falling back", tier, connection_id)
            return None
        return ResolvedConnection(connection=connection, model_id=enabled[0].id, tier=tier)

    def client_for(self, resolved: ResolvedConnection) -> LLMClient:
        """Completion client for a resolved connection (one per connection and model)."""
        key = (resolved.connection.id, resolved.model_id)
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                connection = resolved.connection
                client = self._client_factory(
                    provider=connection.provider,
                    model=resolved.model_id,
                    api_key=connection.api_key,
                    endpoint=connection.endpoint,
                )
                self._clients[key] = client
            return client
