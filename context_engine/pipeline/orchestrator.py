"""Sequencing of the context generation stages.

First-time generation runs research, glossary and chunks in order for an
approved blueprint. Each stage can also be regenerated on its own; every
run of a stage opens a new generation cycle and supersedes the earlier
cycles of that type. Regenerating research also rebuilds the glossary and
chunks, since both are derived from research results.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from context_engine.core.errors import BlueprintNotApprovedError, DatastoreError
from context_engine.core.logging import get_logger
from context_engine.core.pricing import CostTracker
from context_engine.core.schemas_blueprint import Blueprint
from context_engine.core.schemas_context import (
    DOWNSTREAM_OF_RESEARCH,
    LIVE_BLUEPRINT_STATUSES,
    AgentStage,
    BlueprintStatus,
    CycleStatus,
    CycleType,
)
from context_engine.db.agents import get_agent, set_agent_stage
from context_engine.db.blueprints import (
    get_blueprint,
    get_latest_blueprint_for_agent,
    load_blueprint_plan,
    mark_blueprint_error,
)
from context_engine.db.generation_cycles import (
    create_generation_cycle,
    mark_cycles_superseded,
    update_generation_cycle,
)
from context_engine.pipeline.chunks_phase import run_chunks_phase
from context_engine.pipeline.clients import PipelineClients
from context_engine.pipeline.glossary_phase import run_glossary_phase
from context_engine.pipeline.research_phase import run_research_phase

logger = get_logger(__name__)

StageRunner = Callable[[str], Awaitable[CostTracker]]

# Component label recorded on each stage's cycles
STAGE_COMPONENTS = {
    CycleType.RESEARCH: "research",
    CycleType.GLOSSARY: "glossary",
    CycleType.CHUNKS: "llm_chunks",
}

STAGE_AGENT_STAGES = {
    CycleType.RESEARCH: AgentStage.RESEARCHING,
    CycleType.GLOSSARY: AgentStage.BUILDING_GLOSSARY,
    CycleType.CHUNKS: AgentStage.BUILDING_CHUNKS,
}


@dataclass
class GenerationTarget:
    """The agent, event and approved blueprint a run works on."""

    agent_id: str
    event_id: str
    blueprint_id: str
    blueprint: Blueprint


def load_approved_target(
    clients: PipelineClients, agent_id: str, blueprint_id: str | None = None
) -> GenerationTarget:
    """
    Resolve the blueprint to generate from and check it is approved.

    Without an explicit blueprint the agent's latest live blueprint is used.

    Raises:
        BlueprintNotApprovedError: If the blueprint is missing or not approved
        DatastoreError: If the agent or blueprint cannot be read
    """
    agent = get_agent(clients.supabase, agent_id)
    if blueprint_id:
        row = get_blueprint(clients.supabase, blueprint_id)
    else:
        row = get_latest_blueprint_for_agent(clients.supabase, agent_id, LIVE_BLUEPRINT_STATUSES)
        if row is None:
            raise BlueprintNotApprovedError("none", "missing")

    if row.get("status") != BlueprintStatus.APPROVED.value:
        raise BlueprintNotApprovedError(row["id"], str(row.get("status")))

    return GenerationTarget(
        agent_id=agent_id,
        event_id=row.get("event_id") or agent["event_id"],
        blueprint_id=row["id"],
        blueprint=load_blueprint_plan(row),
    )


def _fail(
    clients: PipelineClients, target: GenerationTarget, cycle_id: str | None, error: Exception
) -> None:
    """Record a stage failure on the cycle, blueprint and agent. Never raises."""
    message = str(error)
    if cycle_id:
        try:
            update_generation_cycle(
                clients.supabase, cycle_id, status=CycleStatus.FAILED, error_message=message
            )
        except DatastoreError as e:
            logger.error(f"Failed to mark cycle {cycle_id} as failed: {e}")
    mark_blueprint_error(clients.supabase, target.blueprint_id, message)
    try:
        set_agent_stage(clients.supabase, target.agent_id, AgentStage.ERROR, run_state="error")
    except DatastoreError as e:
        logger.error(f"Failed to mark agent {target.agent_id} as error: {e}")


async def run_stage(
    clients: PipelineClients, target: GenerationTarget, cycle_type: CycleType
) -> str:
    """
    Run one stage in a new generation cycle.

    Earlier cycles of the same type are superseded once the new cycle
    exists. On failure the cycle is marked failed with the error, the
    blueprint and agent are put into error, and the exception is re-raised.

    Returns:
        The new cycle UUID
    """
    runners: dict[CycleType, StageRunner] = {
        CycleType.RESEARCH: lambda cid: run_research_phase(
            clients, target.event_id, target.blueprint_id, cid, target.blueprint
        ),
        CycleType.GLOSSARY: lambda cid: run_glossary_phase(
            clients, target.event_id, cid, target.blueprint
        ),
        CycleType.CHUNKS: lambda cid: run_chunks_phase(
            clients, target.event_id, cid, target.blueprint
        ),
    }

    cycle_id: str | None = None
    try:
        set_agent_stage(clients.supabase, target.agent_id, STAGE_AGENT_STAGES[cycle_type])
        cycle_id = create_generation_cycle(
            clients.supabase,
            target.event_id,
            target.agent_id,
            target.blueprint_id,
            cycle_type,
            component=STAGE_COMPONENTS[cycle_type],
        )
        mark_cycles_superseded(
            clients.supabase, target.event_id, [cycle_type], exclude_cycle_id=cycle_id
        )
        costs = await runners[cycle_type](cycle_id)
    except Exception as e:
        logger.error(
            f"{cycle_type.value} stage failed: {e}",
            extra={"event_id": target.event_id, "cycle_id": cycle_id},
        )
        _fail(clients, target, cycle_id, e)
        raise

    logger.info(
        f"{cycle_type.value} stage complete",
        extra={"event_id": target.event_id, "cycle_id": cycle_id, "cost": round(costs.total, 4)},
    )
    return cycle_id


def _complete(clients: PipelineClients, target: GenerationTarget) -> None:
    set_agent_stage(
        clients.supabase, target.agent_id, AgentStage.CONTEXT_COMPLETE, run_state="idle"
    )
    logger.info(
        f"Context complete for agent {target.agent_id}",
        extra={"event_id": target.event_id, "blueprint_id": target.blueprint_id},
    )


async def run_full_generation(
    clients: PipelineClients, agent_id: str, blueprint_id: str | None = None
) -> None:
    """Run research, glossary and chunks for an approved blueprint."""
    target = load_approved_target(clients, agent_id, blueprint_id)
    logger.info(
        f"Starting context generation for agent {agent_id}",
        extra={"event_id": target.event_id, "blueprint_id": target.blueprint_id},
    )
    for cycle_type in (CycleType.RESEARCH, CycleType.GLOSSARY, CycleType.CHUNKS):
        await run_stage(clients, target, cycle_type)
    _complete(clients, target)


async def regenerate_research(clients: PipelineClients, agent_id: str) -> None:
    """
    Re-run research, then rebuild glossary and chunks from the new results.

    The previous glossary and chunks cycles are superseded before the
    downstream stages re-run.
    """
    target = load_approved_target(clients, agent_id)
    await run_stage(clients, target, CycleType.RESEARCH)

    superseded = mark_cycles_superseded(clients.supabase, target.event_id, DOWNSTREAM_OF_RESEARCH)
    logger.info(
        f"Research regenerated; superseded {superseded} downstream cycle(s)",
        extra={"event_id": target.event_id},
    )

    await run_stage(clients, target, CycleType.GLOSSARY)
    await run_stage(clients, target, CycleType.CHUNKS)
    _complete(clients, target)


async def regenerate_glossary(clients: PipelineClients, agent_id: str) -> None:
    """Re-run the glossary stage only."""
    target = load_approved_target(clients, agent_id)
    await run_stage(clients, target, CycleType.GLOSSARY)
    _complete(clients, target)


async def regenerate_chunks(clients: PipelineClients, agent_id: str) -> None:
    """Re-run the chunks stage only."""
    target = load_approved_target(clients, agent_id)
    await run_stage(clients, target, CycleType.CHUNKS)
    _complete(clients, target)


REGENERATORS: dict[CycleType, Callable[[PipelineClients, str], Awaitable[None]]] = {
    CycleType.RESEARCH: regenerate_research,
    CycleType.GLOSSARY: regenerate_glossary,
    CycleType.CHUNKS: regenerate_chunks,
}
