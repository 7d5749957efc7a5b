"""
Agent Executor

Runs one agent against one message:
1. Merge the inbox override onto the agent's settings
2. Retrieve context from the agent's own documents (response agent only)
3. Resolve the completion connection and call it
4. Wait the configured response delay

Every failure is returned as a failed AgentResult, never raised.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

from ..common.errors import ErrorKind, classify_exception
from ..common.schemas import (
    Agent,
    AgentSettings,
    MAX_TOKENS_RANGE,
    RESPONSE_DELAY_RANGE,
    SettingsOverride,
    TEMPERATURE_RANGE,
    clamp,
)
from ..retriever.engine import RetrievalEngine
from .connections import ConnectionResolver
from .models import AgentResult, PipelineStage, ProcessingContext

logger = logging.getLogger("relay.pipeline.executor")

CONTEXT_HEADER = "\n\nAdditional Context:\n"
MIN_COMPLETION_TIMEOUT = 0.1


def build_prompt(agent_prompt: str, chunks: List[str]) -> str:
    """Agent instructions followed by retrieved context, when there is any."""
    if not chunks:
        return agent_prompt
    return agent_prompt + CONTEXT_HEADER + RetrievalEngine.build_context(chunks)


class AgentExecutor:
    """Executes single agents for the orchestrator."""

    def __init__(
        self,
        retrieval_engine: Optional[RetrievalEngine],
        connection_resolver: ConnectionResolver,
        *,
        timeout: float = 60.0,
        retrieval_limit: int = 5,
        score_threshold: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize agent executor.

        Args:
            retrieval_engine: Context source for the response agent (None disables retrieval)
            connection_resolver: Picks the completion connection per agent
            timeout: Seconds allowed for retrieval plus completion of one agent
            retrieval_limit: Chunks retrieved per message
            score_threshold: Minimum similarity of retrieved chunks
            sleep: Delay function (tests pass a fake)
        """
        self._retrieval = retrieval_engine
        self._resolver = connection_resolver
        self._timeout = timeout
        self._retrieval_limit = retrieval_limit
        self._score_threshold = score_threshold
        self._sleep = sleep

    @property
    def timeout(self) -> float:
        return self._timeout

    async def run(
        self,
        agent: Agent,
        context: ProcessingContext,
        override: Optional[SettingsOverride] = None,
        *,
        stage: PipelineStage,
        priority: Optional[int] = None,
        use_retrieval: bool = False,
    ) -> AgentResult:
        """
        Run one agent.

        Args:
            agent: Agent to run
            context: The inbound message
            override: Inbox-level settings override
            stage: Stage the agent runs in (recorded on the result)
            priority: Assignment priority (recorded on the result)
            use_retrieval: Ground the prompt in the agent's documents

        Returns:
            AgentResult, successful or failed
        """
        started = time.perf_counter()

        try:
            settings = agent.settings.merged(override)
            response = await asyncio.wait_for(
                self._generate(agent, context, settings, use_retrieval, started + self._timeout),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            duration_ms = (time.perf_counter() - started) * 1000
            logger.warning("Agent %s (%s) timed out after %.1fs", agent.name, stage.value, self._timeout)
            return AgentResult.failed(
                agent, stage,
                f"Agent timed out after {self._timeout:g}s",
                ErrorKind.TIMEOUT,
                duration_ms=duration_ms,
                priority=priority,
            )
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            kind = classify_exception(e)
            logger.warning("Agent %s (%s) failed [%s]: %s", agent.name, stage.value, kind.value, e)
            return AgentResult.failed(
                agent, stage, str(e) or type(e).__name__, kind,
                duration_ms=duration_ms,
                priority=priority,
            )

        duration_ms = (time.perf_counter() - started) * 1000

        delay = clamp(settings.response_delay, RESPONSE_DELAY_RANGE)
        if delay > 0:
            await self._sleep(delay)

        logger.info("Agent %s (%s) succeeded in %.0fms", agent.name, stage.value, duration_ms)
        return AgentResult.succeeded(agent, stage, response, duration_ms, priority=priority)

    async def _generate(
        self,
        agent: Agent,
        context: ProcessingContext,
        settings: AgentSettings,
        use_retrieval: bool,
        deadline: float,
    ) -> str:
        chunks: List[str] = []
        if use_retrieval and self._retrieval is not None:
            chunks = await asyncio.to_thread(
                self._retrieval.retrieve,
                agent.id,
                context.text,
                self._retrieval_limit,
                self._score_threshold,
            )
            logger.debug("Retrieved %d chunks for agent %s", len(chunks), agent.name)

        resolved = self._resolver.resolve(settings)
        client = self._resolver.client_for(resolved)

        # The SDK call must not outlive the wait_for bound; its worker thread
        # cannot be cancelled
        remaining = max(deadline - time.perf_counter(), MIN_COMPLETION_TIMEOUT)
        return await asyncio.to_thread(
            client.generate,
            context.text,
            system=build_prompt(agent.prompt, chunks),
            temperature=clamp(settings.temperature, TEMPERATURE_RANGE),
            max_tokens=int(clamp(settings.max_tokens, MAX_TOKENS_RANGE)),
            timeout=remaining,
        )
