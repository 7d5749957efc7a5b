"""
Pipeline Orchestrator

Sequences one inbound message through an inbox's agents:

    Created -> PreProcess -> Response -> MainProcess -> PostProcess -> Completed

- PreProcess / PostProcess: sequential, ascending priority
- Response: the inbox's response agent, exactly once, grounded in its documents;
  its reply (or a fixed fallback) is handed to the delivery gateway
- MainProcess: concurrent, bounded by a semaphore, each agent with its own timeout

An agent failure is recorded and the run continues. Only an unknown or
inactive inbox raises.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from ..common.config import DEFAULT_FALLBACK_MESSAGE
from ..common.errors import (
    ConfigurationError,
    InboxInactiveError,
    InboxNotFoundError,
    classify_exception,
)
from ..common.schemas import Inbox
from .executor import AgentExecutor
from .models import (
    SKIPPED_MESSAGE_TYPES,
    AgentInvocation,
    AgentResult,
    PipelineResult,
    PipelineStage,
    PipelineStatus,
    ProcessingContext,
    StageError,
)
from .registry import Registry
from .stages import StagePlan, partition

logger = logging.getLogger("relay.pipeline.orchestrator")

_STAGE_ORDER = (
    PipelineStage.PRE_PROCESS,
    PipelineStage.RESPONSE,
    PipelineStage.MAIN_PROCESS,
    PipelineStage.POST_PROCESS,
)


class PipelineOrchestrator:
    """Runs the staged agent pipeline for one message at a time."""

    def __init__(
        self,
        executor: AgentExecutor,
        *,
        registry: Optional[Registry] = None,
        delivery=None,
        max_concurrency: int = 5,
        fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
        request_timeout: Optional[float] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            executor: Runs individual agents
            registry: Inbox/agent lookup for run_for_inbox
            delivery: Delivery gateway with `async send(context, text)`; None disables delivery
            max_concurrency: Simultaneous main-stage agents
            fallback_message: Sent instead of error text when the response agent fails
            request_timeout: Seconds after which no further stage is started (None/0 = unlimited)
        """
        self._executor = executor
        self._registry = registry
        self._delivery = delivery
        self._max_concurrency = max(1, max_concurrency)
        self._fallback_message = fallback_message
        self._request_timeout = request_timeout or None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_for_inbox(self, inbox_id: str, context: ProcessingContext) -> PipelineResult:
        """
        Load an inbox's assignments from the registry and execute the pipeline.

        Raises:
            InboxNotFoundError: no such inbox
            InboxInactiveError: inbox is switched off
        """
        inbox = self._require_inbox(inbox_id)
        pipeline_agents, response_agent = self._invocations(inbox)
        return await self.execute(pipeline_agents, response_agent, context)

    async def execute(
        self,
        pipeline_agents: Sequence[AgentInvocation],
        response_agent: Optional[AgentInvocation],
        context: ProcessingContext,
    ) -> PipelineResult:
        """
        Execute all stages for one message.

        Args:
            pipeline_agents: Priority-banded agents (inactive ones are skipped)
            response_agent: The inbox's response agent, if any
            context: The inbound message

        Returns:
            PipelineResult; never raises for agent failures
        """
        inbox_id = context.inbox_id

        if not context.is_message_event:
            logger.info("Event %s on inbox %s acknowledged, not processed", context.event_type, inbox_id)
            return PipelineResult.acknowledged(inbox_id, context.event_type)
        if context.message_type in SKIPPED_MESSAGE_TYPES:
            return PipelineResult.skipped(inbox_id, f"Skipped {context.message_type} message")
        if not context.text:
            return PipelineResult.skipped(inbox_id, "Skipped empty message")

        started = time.perf_counter()
        deadline = (started + self._request_timeout) if self._request_timeout else None
        plan = partition(pipeline_agents)
        result = PipelineResult(status=PipelineStatus.COMPLETED, inbox_id=inbox_id)
        responds = response_agent is not None and response_agent.is_active

        logger.info(
            "Pipeline for inbox %s: %d pre, %s response, %d main, %d post",
            inbox_id, len(plan.pre_process), "1" if responds else "no",
            len(plan.main_process), len(plan.post_process),
        )

        for stage in _STAGE_ORDER:
            if deadline is not None and time.perf_counter() >= deadline:
                logger.warning(
                    "Request deadline reached on inbox %s before %s; returning partial result",
                    inbox_id, stage.value,
                )
                result.partial = True
                result.message = f"Request deadline exceeded before {stage.value}"
                result.duration_ms = (time.perf_counter() - started) * 1000
                return result

            await self._run_stage(stage, plan, response_agent, context, result)
            result.stage = stage

        result.stage = PipelineStage.COMPLETED
        result.message = "Webhook processed successfully"
        result.duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Pipeline for inbox %s completed: %d/%d agents succeeded in %.0fms",
            inbox_id, result.successful_agents, result.total_agents, result.duration_ms,
        )
        return result

    def processing_order(self, inbox_id: str) -> Dict[str, Any]:
        """Preview which agents would run in which stage for an inbox."""
        inbox = self._require_inbox(inbox_id)
        pipeline_agents, response_agent = self._invocations(inbox)
        plan = partition(pipeline_agents)

        def describe(invocation: AgentInvocation) -> Dict[str, Any]:
            return {
                "agentId": invocation.agent.id,
                "name": invocation.agent.name,
                "priority": invocation.priority,
            }

        return {
            "inboxId": inbox.id,
            "preProcess": [describe(i) for i in plan.pre_process],
            "response": (
                {"agentId": response_agent.agent.id, "name": response_agent.agent.name}
                if response_agent and response_agent.is_active else None
            ),
            "mainProcess": [describe(i) for i in plan.main_process],
            "postProcess": [describe(i) for i in plan.post_process],
        }

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_stage(
        self,
        stage: PipelineStage,
        plan: StagePlan,
        response_agent: Optional[AgentInvocation],
        context: ProcessingContext,
        result: PipelineResult,
    ) -> None:
        if stage == PipelineStage.PRE_PROCESS:
            await self._run_sequential(plan.pre_process, context, stage, result.pre_process)
        elif stage == PipelineStage.RESPONSE:
            await self._run_response(response_agent, context, result)
        elif stage == PipelineStage.MAIN_PROCESS:
            await self._run_concurrent(plan.main_process, context, result.main_process)
        elif stage == PipelineStage.POST_PROCESS:
            await self._run_sequential(plan.post_process, context, stage, result.post_process)

    async def _safe_run(
        self,
        invocation: AgentInvocation,
        context: ProcessingContext,
        stage: PipelineStage,
        use_retrieval: bool = False,
    ) -> AgentResult:
        # The response agent is not placed by priority
        priority = None if stage == PipelineStage.RESPONSE else invocation.priority
        try:
            return await self._executor.run(
                invocation.agent,
                context,
                invocation.override,
                stage=stage,
                priority=priority,
                use_retrieval=use_retrieval,
            )
        except Exception as e:
            logger.error("Agent %s raised in %s: %s", invocation.agent.name, stage.value, e, exc_info=True)
            return AgentResult.failed(
                invocation.agent, stage, str(e) or type(e).__name__, classify_exception(e),
                priority=priority,
            )

    async def _run_sequential(
        self,
        invocations: List[AgentInvocation],
        context: ProcessingContext,
        stage: PipelineStage,
        results: List[AgentResult],
    ) -> None:
        for invocation in invocations:
            results.append(await self._safe_run(invocation, context, stage))

    async def _run_concurrent(
        self,
        invocations: List[AgentInvocation],
        context: ProcessingContext,
        results: List[AgentResult],
    ) -> None:
        if not invocations:
            return

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _run_one(invocation: AgentInvocation) -> AgentResult:
            async with semaphore:
                return await self._safe_run(invocation, context, PipelineStage.MAIN_PROCESS)

        results.extend(await asyncio.gather(*[_run_one(i) for i in invocations]))

    async def _run_response(
        self,
        invocation: Optional[AgentInvocation],
        context: ProcessingContext,
        result: PipelineResult,
    ) -> None:
        if invocation is None:
            return
        if not invocation.is_active:
            logger.info(
                "Response agent %s on inbox %s is inactive; no reply sent",
                invocation.agent.name, context.inbox_id,
            )
            return

        agent_result = await self._safe_run(invocation, context, PipelineStage.RESPONSE, use_retrieval=True)
        result.response = agent_result

        if agent_result.success and agent_result.response:
            text = agent_result.response
        else:
            text = self._fallback_message
        result.response_text = text

        if self._delivery is None:
            return
        if not context.conversation_id:
            logger.info("No conversation id on inbox %s message; reply not delivered", context.inbox_id)
            return

        try:
            await self._delivery.send(context, text)
            result.message_sent = True
        except Exception as e:
            logger.error("Failed to deliver response for inbox %s: %s", context.inbox_id, e)
            result.errors.append(
                StageError(stage="response_send", error=str(e), agent_name=invocation.agent.name)
            )

    # ------------------------------------------------------------------
    # Registry lookups
    # ------------------------------------------------------------------

    def _require_inbox(self, inbox_id: str) -> Inbox:
        if self._registry is None:
            raise ConfigurationError("Orchestrator has no registry to load inboxes from")

        inbox = self._registry.get_inbox(inbox_id)
        if inbox is None:
            raise InboxNotFoundError(f"Inbox {inbox_id} not found")
        if not inbox.is_active:
            raise InboxInactiveError(f"Inbox {inbox_id} is inactive")
        return inbox

    def _invocations(self, inbox: Inbox):
        pipeline_agents = []
        for assignment in inbox.agents:
            agent = self._registry.get_agent(assignment.agent_id)
            if agent is None:
                logger.warning("Inbox %s references missing agent %s; skipped", inbox.id, assignment.agent_id)
                continue
            pipeline_agents.append(
                AgentInvocation(
                    agent=agent,
                    override=assignment.config,
                    priority=assignment.priority,
                    is_active=assignment.is_active and agent.is_active,
                )
            )

        response_agent = None
        if inbox.response_agent:
            agent = self._registry.get_agent(inbox.response_agent.agent_id)
            if agent is None:
                logger.warning(
                    "Inbox %s references missing response agent %s",
                    inbox.id, inbox.response_agent.agent_id,
                )
            else:
                response_agent = AgentInvocation(
                    agent=agent, override=inbox.response_agent.config, is_active=agent.is_active,
                )

        return pipeline_agents, response_agent
