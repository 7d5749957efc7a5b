"""
AI Connection Schemas

Completion providers configured by the operator, each exposing a set of
models that can be switched on and off.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


Provider = Literal["openai", "anthropic", "google", "custom"]


class AIModel(BaseModel):
    """A model offered by a connection"""
    id: str
    name: str = ""
    enabled: bool = True


class AIConnection(BaseModel):
    """One completion provider account"""
    id: str
    name: str = ""
    provider: Provider = "openai"
    endpoint: Optional[str] = None  # required for "custom"
    api_key: str = Field(default="", repr=False)
    models: List[AIModel] = Field(default_factory=list)
    is_active: bool = True

    def enabled_models(self) -> List[AIModel]:
        return [m for m in self.models if m.enabled]

    def find_model(self, model_id: str) -> Optional[AIModel]:
        for model in self.models:
            if model.id == model_id:
                return model
        return None


class DefaultConnection(BaseModel):
    """System-wide default connection and model"""
    connection_id: Optional[str] = None
    model_id: Optional[str] = None


class AISettings(BaseModel):
    """All configured connections plus the system default"""
    connections: List[AIConnection] = Field(default_factory=list)
    default: DefaultConnection = Field(default_factory=DefaultConnection)

    def get_connection(self, connection_id: str) -> Optional[AIConnection]:
        for connection in self.connections:
            if connection.id == connection_id:
                return connection
        return None
