"""
Inbox Schemas

An inbox references (never owns) one response agent and any number of
pipeline agents. The same agent cannot be both for the same inbox.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from ..errors import AssignmentError
from .agent import SettingsOverride


DEFAULT_PRIORITY = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AgentAssignment(BaseModel):
    """A pipeline agent assigned to an inbox"""
    agent_id: str
    name: str = ""
    priority: int = Field(default=DEFAULT_PRIORITY, ge=1, le=999)
    is_active: bool = True
    config: SettingsOverride = Field(default_factory=SettingsOverride)
    assigned_at: datetime = Field(default_factory=_now)


class ResponseAgentAssignment(BaseModel):
    """The inbox's designated response agent"""
    agent_id: str
    config: SettingsOverride = Field(default_factory=SettingsOverride)
    assigned_at: datetime = Field(default_factory=_now)


class Inbox(BaseModel):
    """A channel endpoint"""
    id: str
    name: str = ""
    account_id: Optional[str] = None
    chatwoot_inbox_id: Optional[str] = None
    channel_type: str = "api"
    webhook_secret: Optional[str] = None
    is_active: bool = True
    response_agent: Optional[ResponseAgentAssignment] = None
    agents: List[AgentAssignment] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_assignments(self) -> "Inbox":
        seen = set()
        for assignment in self.agents:
            if assignment.agent_id in seen:
                raise ValueError(f"Agent {assignment.agent_id} is assigned twice")
            seen.add(assignment.agent_id)

        if self.response_agent and self.response_agent.agent_id in seen:
            raise ValueError(
                f"Agent {self.response_agent.agent_id} cannot be both response agent and pipeline agent"
            )
        return self

    # ------------------------------------------------------------------
    # Assignment operations
    # ------------------------------------------------------------------

    def get_assignment(self, agent_id: str) -> Optional[AgentAssignment]:
        for assignment in self.agents:
            if assignment.agent_id == agent_id:
                return assignment
        return None

    def references(self, agent_id: str) -> bool:
        if self.response_agent and self.response_agent.agent_id == agent_id:
            return True
        return self.get_assignment(agent_id) is not None

    def assign_response_agent(self, agent_id: str, config: Optional[SettingsOverride] = None) -> None:
        if self.get_assignment(agent_id):
            raise AssignmentError(
                f"Agent {agent_id} is already a pipeline agent of inbox {self.id}"
            )
        self.response_agent = ResponseAgentAssignment(
            agent_id=agent_id,
            config=config or SettingsOverride(),
        )

    def remove_response_agent(self) -> None:
        self.response_agent = None

    def add_agent(
        self,
        agent_id: str,
        *,
        name: str = "",
        priority: int = DEFAULT_PRIORITY,
        config: Optional[SettingsOverride] = None,
        is_active: bool = True,
    ) -> AgentAssignment:
        if self.response_agent and self.response_agent.agent_id == agent_id:
            raise AssignmentError(
                f"Agent {agent_id} is the response agent of inbox {self.id}"
            )
        if self.get_assignment(agent_id):
            raise AssignmentError(f"Agent {agent_id} is already assigned to inbox {self.id}")
        if not 1 <= priority <= 999:
            raise AssignmentError(f"Priority must be between 1 and 999, got {priority}")

        assignment = AgentAssignment(
            agent_id=agent_id,
            name=name,
            priority=priority,
            is_active=is_active,
            config=config or SettingsOverride(),
        )
        self.agents.append(assignment)
        return assignment

    def remove_agent(self, agent_id: str) -> bool:
        before = len(self.agents)
        self.agents = [a for a in self.agents if a.agent_id != agent_id]
        return len(self.agents) < before

    def update_agent_config(
        self,
        agent_id: str,
        *,
        config: Optional[SettingsOverride] = None,
        priority: Optional[int] = None,
        is_active: Optional[bool] = None,
    ) -> AgentAssignment:
        assignment = self.get_assignment(agent_id)
        if assignment is None:
            raise AssignmentError(f"Agent {agent_id} is not assigned to inbox {self.id}")

        if priority is not None:
            if not 1 <= priority <= 999:
                raise AssignmentError(f"Priority must be between 1 and 999, got {priority}")
            assignment.priority = priority
        if config is not None:
            assignment.config = config
        if is_active is not None:
            assignment.is_active = is_active
        return assignment

    def active_agents_sorted(self) -> List[AgentAssignment]:
        """Active pipeline assignments by ascending priority."""
        return sorted((a for a in self.agents if a.is_active), key=lambda a: a.priority)
