"""
Error types shared across Relay.

Every per-agent failure is eventually reduced to an ErrorKind and stored on
the agent's result. Only structurally invalid requests (unknown or inactive
inbox) escape the orchestrator as exceptions.
"""

import asyncio
from enum import Enum


class ErrorKind(str, Enum):
    """Stable classification stored on failed agent results"""
    CONFIGURATION = "configuration"  # no usable completion connection/model
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"  # embedding, vector store, completion API
    TIMEOUT = "timeout"  # handled like upstream_unavailable
    MALFORMED_INPUT = "malformed_input"
    INTERNAL = "internal"


class RelayError(Exception):
    """Base class for Relay errors."""
    kind: ErrorKind = ErrorKind.INTERNAL


class ConfigurationError(RelayError):
    """No active completion connection, no enabled model, or missing credentials."""
    kind = ErrorKind.CONFIGURATION


class UpstreamUnavailableError(RelayError):
    """An external service could not be reached or refused the request."""
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class EmbeddingUnavailableError(UpstreamUnavailableError):
    """Embedding model could not be loaded or failed to embed."""


class VectorStoreUnavailableError(UpstreamUnavailableError):
    """Vector store unreachable, timed out, or returned a server error."""


class CompletionUnavailableError(UpstreamUnavailableError):
    """Completion API unreachable, rate limited, or returned nothing usable."""


class VectorStoreError(RelayError):
    """Vector store rejected the request (4xx other than a missing collection)."""
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class MalformedInputError(RelayError):
    """Webhook payload or message cannot be processed."""
    kind = ErrorKind.MALFORMED_INPUT


class InboxNotFoundError(RelayError):
    """Inbox id does not resolve to a registered inbox."""
    kind = ErrorKind.MALFORMED_INPUT


class InboxInactiveError(RelayError):
    """Inbox exists but is switched off."""
    kind = ErrorKind.MALFORMED_INPUT


class AssignmentError(RelayError):
    """Invalid agent assignment on an inbox."""
    kind = ErrorKind.MALFORMED_INPUT


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map an exception raised while running an agent to its ErrorKind."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, RelayError):
        return exc.kind
    if isinstance(exc, (ConnectionError, OSError)):
        return ErrorKind.UPSTREAM_UNAVAILABLE
    if isinstance(exc, ValueError):
        return ErrorKind.MALFORMED_INPUT
    return ErrorKind.INTERNAL
