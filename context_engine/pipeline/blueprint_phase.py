"""Blueprint phase: plan an agent's context before any research runs."""

from context_engine.chains.generate_blueprint import generate_blueprint
from context_engine.core.documents import extract_documents, format_documents_section
from context_engine.core.errors import DatastoreError
from context_engine.core.logging import get_logger
from context_engine.core.pricing import CostTracker
from context_engine.core.schemas_context import AgentStage, CycleStatus, CycleType
from context_engine.db.agents import get_agent, set_agent_stage
from context_engine.db.blueprints import (
    insert_blueprint,
    mark_blueprint_error,
    save_generated_blueprint,
    supersede_existing_blueprints,
)
from context_engine.db.events import get_event, list_event_documents
from context_engine.db.generation_cycles import create_generation_cycle, update_generation_cycle
from context_engine.pipeline.clients import PipelineClients

logger = get_logger(__name__)


def _documents_section(clients: PipelineClients, event_id: str) -> str:
    try:
        docs = list_event_documents(clients.supabase, event_id)
    except DatastoreError as e:
        logger.warning(f"Could not list documents for event {event_id}: {e}")
        return ""
    extracted = extract_documents(clients.supabase, docs)
    if docs:
        logger.info(f"Extracted text from {len(extracted)}/{len(docs)} uploaded documents")
    return format_documents_section(extracted)


async def run_blueprint_phase(clients: PipelineClients, agent_id: str) -> str:
    """
    Generate a fresh blueprint for an agent.

    The agent's previous live blueprints, and every cycle built from them,
    are superseded. On success the blueprint is `ready` and the agent is
    left idle in the blueprint stage awaiting approval.

    Returns:
        New blueprint UUID

    Raises:
        BlueprintGenerationError: If the LLM cannot produce a blueprint
        DatastoreError: If a required read or write fails
    """
    settings = clients.settings
    agent = get_agent(clients.supabase, agent_id)
    event_id = agent["event_id"]
    event = get_event(clients.supabase, event_id)

    set_agent_stage(clients.supabase, agent_id, AgentStage.BLUEPRINT, run_state="running")

    blueprint_id = insert_blueprint(clients.supabase, event_id, agent_id)
    supersede_existing_blueprints(clients.supabase, event_id, agent_id, blueprint_id)

    cycle_id: str | None = None
    try:
        cycle_id = create_generation_cycle(
            clients.supabase,
            event_id,
            agent_id,
            blueprint_id,
            CycleType.BLUEPRINT,
            status=CycleStatus.PROCESSING,
            progress_total=1,
        )

        documents_section = _documents_section(clients, event_id)
        blueprint, usage = await generate_blueprint(
            clients.openai,
            settings.BLUEPRINT_MODEL,
            event.get("title") or "",
            event.get("topic"),
            documents_section,
            max_attempts=settings.BLUEPRINT_MAX_ATTEMPTS,
        )
        save_generated_blueprint(clients.supabase, blueprint_id, blueprint)

        costs = CostTracker()
        costs.add_chat(usage, settings.BLUEPRINT_MODEL)
        update_generation_cycle(
            clients.supabase,
            cycle_id,
            status=CycleStatus.COMPLETED,
            progress_current=1,
            metadata=costs.to_metadata(),
        )
    except Exception as e:
        logger.error(
            f"Blueprint generation failed for agent {agent_id}: {e}",
            extra={"event_id": event_id, "blueprint_id": blueprint_id},
        )
        mark_blueprint_error(clients.supabase, blueprint_id, str(e))
        if cycle_id:
            try:
                update_generation_cycle(
                    clients.supabase, cycle_id, status=CycleStatus.FAILED, error_message=str(e)
                )
            except DatastoreError as update_error:
                logger.error(f"Failed to mark blueprint cycle {cycle_id} failed: {update_error}")
        try:
            set_agent_stage(clients.supabase, agent_id, AgentStage.ERROR, run_state="error")
        except DatastoreError as update_error:
            logger.error(f"Failed to mark agent {agent_id} as error: {update_error}")
        raise

    set_agent_stage(clients.supabase, agent_id, AgentStage.BLUEPRINT, run_state="idle")
    logger.info(
        f"Blueprint {blueprint_id} ready for agent {agent_id}",
        extra={"event_id": event_id, "blueprint_id": blueprint_id, "cost": round(costs.total, 4)},
    )
    return blueprint_id
