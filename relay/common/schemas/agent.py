"""
Agent Schemas

An agent owns a prompt, completion settings, and the context documents that
are chunked into its own vector collection.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


TEMPERATURE_RANGE = (0.0, 1.0)
MAX_TOKENS_RANGE = (1, 2000)
RESPONSE_DELAY_RANGE = (0.0, 30.0)


def clamp(value, bounds):
    low, high = bounds
    return max(low, min(high, value))


# ============================================================================
# Settings
# ============================================================================

class SettingsOverride(BaseModel):
    """Per-inbox override of agent settings. Unset fields keep the agent's value."""
    temperature: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_tokens: Optional[int] = Field(default=None, ge=1, le=2000)
    response_delay: Optional[float] = Field(default=None, ge=0.0, le=30.0)
    connection_id: Optional[str] = None
    model_id: Optional[str] = None


class AgentSettings(BaseModel):
    """Completion settings of one agent"""
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    max_tokens: int = Field(default=500, ge=1, le=2000)
    response_delay: float = Field(default=0.0, ge=0.0, le=30.0, description="Seconds to wait after a reply")
    connection_id: Optional[str] = None
    model_id: Optional[str] = None

    def merged(self, override: Optional[SettingsOverride]) -> "AgentSettings":
        """Apply an override field by field; set override fields win."""
        if override is None:
            return self.model_copy()

        values = self.model_dump()
        for name, value in override.model_dump(exclude_none=True).items():
            values[name] = value
        return AgentSettings(**values)


# ============================================================================
# Context documents
# ============================================================================

class DocumentType(str, Enum):
    """How a context document was obtained"""
    FILE = "file"
    URL = "url"
    WEBSITE = "website"


class DocumentMetadata(BaseModel):
    """Ingestion metadata"""
    page_count: Optional[int] = None
    max_pages: Optional[int] = None  # crawl option
    max_depth: Optional[int] = None  # crawl option
    last_refreshed_at: Optional[datetime] = None


class ContextDocument(BaseModel):
    """Raw text an agent retrieves from"""
    id: str
    type: DocumentType = DocumentType.FILE
    title: str = ""
    content: str = ""
    filename: Optional[str] = None
    url: Optional[str] = None
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)

    @property
    def source(self) -> Optional[str]:
        return self.url or self.filename


# ============================================================================
# Agent
# ============================================================================

class Agent(BaseModel):
    """An operator-defined agent"""
    id: str
    name: str
    description: str = ""
    prompt: str = Field(default="", description="System instructions")
    agent_type: str = "general"
    settings: AgentSettings = Field(default_factory=AgentSettings)
    context_documents: List[ContextDocument] = Field(default_factory=list)
    is_active: bool = True

    def get_document(self, document_id: str) -> Optional[ContextDocument]:
        for document in self.context_documents:
            if document.id == document_id:
                return document
        return None
