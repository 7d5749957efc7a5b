"""
Pipeline Data Types

ProcessingContext is built once per webhook and shared, read-only, by every
agent of the run. AgentResult and PipelineResult are created fresh per run
and handed back to the caller.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..common.errors import ErrorKind, MalformedInputError
from ..common.schemas import Agent, SettingsOverride

MESSAGE_CREATED = "message_created"
SKIPPED_MESSAGE_TYPES = ("outgoing", "template")

# Chatwoot sends message_type either as a name or as its enum integer
_MESSAGE_TYPE_CODES = {0: "incoming", 1: "outgoing", 2: "activity", 3: "template"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class PipelineStage(str, Enum):
    """Pipeline state machine"""
    CREATED = "created"
    PRE_PROCESS = "pre_process"
    RESPONSE = "response"
    MAIN_PROCESS = "main_process"
    POST_PROCESS = "post_process"
    COMPLETED = "completed"


class PipelineStatus(str, Enum):
    """Overall outcome of a webhook"""
    COMPLETED = "completed"
    SKIPPED = "skipped"  # message not eligible, no agent invoked
    ACKNOWLEDGED = "acknowledged"  # event type not processed


@dataclass(frozen=True)
class ProcessingContext:
    """Immutable snapshot of one inbound message event"""
    text: str
    inbox_id: str
    event_type: str = MESSAGE_CREATED
    message_type: str = "incoming"
    conversation_id: Optional[str] = None
    account_id: Optional[str] = None
    message_id: Optional[str] = None
    sender: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_webhook(cls, payload: Dict[str, Any], inbox_id: str) -> "ProcessingContext":
        """
        Build a context from a Chatwoot-style webhook payload.

        Raises:
            MalformedInputError: payload is not a JSON object
        """
        if not isinstance(payload, dict):
            raise MalformedInputError("Webhook payload must be a JSON object")

        conversation = payload.get("conversation") or {}
        account = payload.get("account") or {}
        sender = payload.get("sender") or {}
        if not isinstance(conversation, dict):
            conversation = {}
        if not isinstance(account, dict):
            account = {}

        message_type = payload.get("message_type", "incoming")
        if isinstance(message_type, int):
            message_type = _MESSAGE_TYPE_CODES.get(message_type, str(message_type))

        timestamp = _utcnow()
        created_at = payload.get("created_at")
        if isinstance(created_at, (int, float)):
            try:
                timestamp = datetime.fromtimestamp(created_at, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                pass
        elif isinstance(created_at, str):
            try:
                timestamp = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
            except ValueError:
                pass

        content = payload.get("content")
        return cls(
            text=(content if isinstance(content, str) else "").strip(),
            inbox_id=str(inbox_id),
            event_type=str(payload.get("event") or ""),
            message_type=str(message_type or "incoming"),
            conversation_id=_opt_str(conversation.get("id")),
            account_id=_opt_str(account.get("id") or conversation.get("account_id")),
            message_id=_opt_str(payload.get("id")),
            sender=_opt_str(sender.get("name")) if isinstance(sender, dict) else None,
            timestamp=timestamp,
        )

    @property
    def is_message_event(self) -> bool:
        return self.event_type == MESSAGE_CREATED


@dataclass
class AgentInvocation:
    """One agent scheduled for a pipeline run"""
    agent: Agent
    override: Optional[SettingsOverride] = None
    priority: int = 100
    is_active: bool = True


@dataclass
class AgentResult:
    """Outcome of one agent's execution"""
    agent_id: str
    agent_name: str
    stage: PipelineStage
    success: bool
    agent_type: str = "general"
    priority: Optional[int] = None
    response: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    duration_ms: float = 0.0
    processed_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def succeeded(
        cls,
        agent: Agent,
        stage: PipelineStage,
        response: str,
        duration_ms: float,
        priority: Optional[int] = None,
    ) -> "AgentResult":
        return cls(
            agent_id=agent.id,
            agent_name=agent.name,
            agent_type=agent.agent_type,
            stage=stage,
            priority=priority,
            success=True,
            response=response,
            duration_ms=duration_ms,
        )

    @classmethod
    def failed(
        cls,
        agent: Agent,
        stage: PipelineStage,
        error: str,
        error_kind: ErrorKind,
        duration_ms: float = 0.0,
        priority: Optional[int] = None,
    ) -> "AgentResult":
        return cls(
            agent_id=agent.id,
            agent_name=agent.name,
            agent_type=agent.agent_type,
            stage=stage,
            priority=priority,
            success=False,
            error=error,
            error_kind=error_kind,
            duration_ms=duration_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "agentId": self.agent_id,
            "agentName": self.agent_name,
            "agentType": self.agent_type,
            "stage": self.stage.value,
            "priority": self.priority,
            "response": self.response,
            "error": self.error,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "durationMs": round(self.duration_ms, 2),
            "processedAt": self.processed_at.isoformat(),
        }


@dataclass
class StageError:
    """A failure outside any single agent's result (e.g. delivery)"""
    stage: str
    error: str
    agent_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.stage, "error": self.error, "agentName": self.agent_name}


@dataclass
class PipelineResult:
    """
    Aggregated outcome of one pipeline run.

    Counts cover pipeline agents only; the response agent is reported
    separately by response_agents.
    """
    status: PipelineStatus
    inbox_id: str = ""
    message: str = ""
    stage: PipelineStage = PipelineStage.CREATED
    pre_process: List[AgentResult] = field(default_factory=list)
    response: Optional[AgentResult] = None
    main_process: List[AgentResult] = field(default_factory=list)
    post_process: List[AgentResult] = field(default_factory=list)
    errors: List[StageError] = field(default_factory=list)
    response_text: Optional[str] = None
    message_sent: bool = False
    partial: bool = False
    duration_ms: float = 0.0

    @classmethod
    def skipped(cls, inbox_id: str, message: str) -> "PipelineResult":
        return cls(status=PipelineStatus.SKIPPED, inbox_id=inbox_id, message=message)

    @classmethod
    def acknowledged(cls, inbox_id: str, event_type: str) -> "PipelineResult":
        return cls(
            status=PipelineStatus.ACKNOWLEDGED,
            inbox_id=inbox_id,
            message=f"Event {event_type} acknowledged but not processed",
        )

    def pipeline_results(self) -> List[AgentResult]:
        return self.pre_process + self.main_process + self.post_process

    def all_results(self) -> List[AgentResult]:
        """Every agent result in execution order, response agent included."""
        results = list(self.pre_process)
        if self.response:
            results.append(self.response)
        return results + self.main_process + self.post_process

    @property
    def total_agents(self) -> int:
        return len(self.pipeline_results())

    @property
    def successful_agents(self) -> int:
        return sum(1 for r in self.pipeline_results() if r.success)

    @property
    def failed_agents(self) -> int:
        return sum(1 for r in self.pipeline_results() if not r.success)

    @property
    def response_agents(self) -> int:
        return 1 if self.response else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "stage": self.stage.value,
            "message": self.message,
            "inboxId": self.inbox_id,
            "processing": {
                "totalAgents": self.total_agents,
                "successfulAgents": self.successful_agents,
                "failedAgents": self.failed_agents,
                "responseAgents": self.response_agents,
                "results": {
                    "preProcess": [r.to_dict() for r in self.pre_process],
                    "response": self.response.to_dict() if self.response else None,
                    "mainProcess": [r.to_dict() for r in self.main_process],
                    "postProcess": [r.to_dict() for r in self.post_process],
                    "errors": [e.to_dict() for e in self.errors],
                },
            },
            "responseText": self.response_text,
            "messageSent": self.message_sent,
            "partial": self.partial,
            "durationMs": round(self.duration_ms, 2),
        }
