"""
Pipeline - Staged Agent Processing

Key Components:
- ProcessingContext: Immutable snapshot of one inbound message
- AgentExecutor: Runs one agent (retrieval, completion, response delay)
- PipelineOrchestrator: Runs pre-process, response, main and post-process stages
- ConnectionResolver: Picks the completion connection and model per agent
- Registry: Inboxes, agents and AI settings the pipeline reads from
"""

from .models import (
    AgentInvocation,
    AgentResult,
    PipelineResult,
    PipelineStage,
    PipelineStatus,
    ProcessingContext,
    StageError,
)
from .stages import PRE_PROCESS_MAX, POST_PROCESS_MIN, StagePlan, partition, stage_for_priority
from .connections import ConnectionResolver, ResolvedConnection
from .executor import AgentExecutor, build_prompt
from .orchestrator import PipelineOrchestrator
from .registry import Registry

__all__ = [
    "AgentInvocation",
    "AgentResult",
    "PipelineResult",
    "PipelineStage",
    "PipelineStatus",
    "ProcessingContext",
    "StageError",
    "PRE_PROCESS_MAX",
    "POST_PROCESS_MIN",
    "StagePlan",
    "partition",
    "stage_for_priority",
    "ConnectionResolver",
    "ResolvedConnection",
    "AgentExecutor",
    "build_prompt",
    "PipelineOrchestrator",
    "Registry",
]
