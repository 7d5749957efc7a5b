"""
Relay Schemas

Agents, inbox assignments, and AI connections.
"""

from .agent import (
    Agent,
    AgentSettings,
    SettingsOverride,
    ContextDocument,
    DocumentMetadata,
    DocumentType,
    TEMPERATURE_RANGE,
    MAX_TOKENS_RANGE,
    RESPONSE_DELAY_RANGE,
    clamp,
)
from .inbox import Inbox, AgentAssignment, ResponseAgentAssignment, DEFAULT_PRIORITY
from .connection import AIModel, AIConnection, DefaultConnection, AISettings

__all__ = [
    "Agent",
    "AgentSettings",
    "SettingsOverride",
    "ContextDocument",
    "DocumentMetadata",
    "DocumentType",
    "TEMPERATURE_RANGE",
    "MAX_TOKENS_RANGE",
    "RESPONSE_DELAY_RANGE",
    "clamp",
    "Inbox",
    "AgentAssignment",
    "ResponseAgentAssignment",
    "DEFAULT_PRIORITY",
    "AIModel",
    "AIConnection",
    "DefaultConnection",
    "AISettings",
]
