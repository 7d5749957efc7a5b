"""
Priority bands.

A pipeline agent's priority decides both its stage and its order within it:

    priority < 100          pre-process   (sequential, ascending)
    100 <= priority < 200   main-process  (concurrent)
    priority >= 200         post-process  (sequential, ascending)

The response agent is never placed by priority.
"""

from typing import List, NamedTuple, Sequence

from .models import AgentInvocation, PipelineStage

PRE_PROCESS_MAX = 100  # exclusive upper bound of pre-process
POST_PROCESS_MIN = 200  # inclusive lower bound of post-process


class StagePlan(NamedTuple):
    pre_process: List[AgentInvocation]
    main_process: List[AgentInvocation]
    post_process: List[AgentInvocation]


def stage_for_priority(priority: int) -> PipelineStage:
    if priority < PRE_PROCESS_MAX:
        return PipelineStage.PRE_PROCESS
    if priority < POST_PROCESS_MIN:
        return PipelineStage.MAIN_PROCESS
    return PipelineStage.POST_PROCESS


def partition(invocations: Sequence[AgentInvocation]) -> StagePlan:
    """Drop inactive invocations and split the rest into stages, ascending by priority."""
    active = sorted((i for i in invocations if i.is_active), key=lambda i: i.priority)
    plan = StagePlan([], [], [])
    for invocation in active:
        stage = stage_for_priority(invocation.priority)
        if stage == PipelineStage.PRE_PROCESS:
            plan.pre_process.append(invocation)
        elif stage == PipelineStage.MAIN_PROCESS:
            plan.main_process.append(invocation)
        else:
            plan.post_process.append(invocation)
    return plan
