"""Research phase: execute the blueprint's research plan into research results."""

from context_engine.core.errors import ResearchSchemaValidationError
from context_engine.core.logging import get_logger
from context_engine.core.pricing import CostTracker
from context_engine.core.schemas_blueprint import Blueprint
from context_engine.core.schemas_context import CycleStatus
from context_engine.db.generation_cycles import update_generation_cycle
from context_engine.pipeline.clients import PipelineClients
from context_engine.pipeline.deep_research import (
    PendingResearchTask,
    poll_research_tasks,
    submit_deep_research,
)
from context_engine.pipeline.research_strategies import (
    SYNC_STRATEGIES,
    ResearchRun,
    ResearchStrategy,
    select_strategy,
)

logger = get_logger(__name__)


async def run_research_phase(
    clients: PipelineClients,
    event_id: str,
    blueprint_id: str,
    cycle_id: str,
    blueprint: Blueprint,
) -> CostTracker:
    """
    Run every planned query, then poll deep research tasks to completion.

    Progress is written after each query. Errors on a single query are
    logged and the loop moves on; a schema validation failure from deep
    research is fatal and propagates.

    Returns:
        Cost tracker for the phase (already merged into cycle metadata)

    Raises:
        ResearchSchemaValidationError: If Exa rejects the research schema
        DatastoreError: If the cycle cannot be updated
    """
    settings = clients.settings
    queries = blueprint.research_plan.queries
    run = ResearchRun(clients=clients, event_id=event_id, blueprint_id=blueprint_id, cycle_id=cycle_id)

    if clients.exa is None and any(q.api == "exa" for q in queries):
        logger.warning(
            "Exa API key not configured; exa queries will use the LLM stub",
            extra={"event_id": event_id, "cycle_id": cycle_id},
        )

    update_generation_cycle(
        clients.supabase, cycle_id, status=CycleStatus.PROCESSING, progress_total=len(queries)
    )

    pending: list[PendingResearchTask] = []
    for number, query in enumerate(queries, 1):
        strategy = select_strategy(
            query, clients.exa is not None, settings.DEEP_RESEARCH_MAX_PRIORITY
        )
        logger.info(
            f"[{number}/{len(queries)}] {strategy.value}: {query.query}",
            extra={"cycle_id": cycle_id, "priority": query.priority},
        )

        try:
            if strategy == ResearchStrategy.DEEP_RESEARCH:
                pending.append(await submit_deep_research(run, query, number))
            else:
                await SYNC_STRATEGIES[strategy](run, query)
        except ResearchSchemaValidationError:
            raise
        except Exception as e:
            logger.error(
                f"Research query failed ({strategy.value}) '{query.query}': {e}",
                extra={"event_id": event_id, "cycle_id": cycle_id},
            )

        update_generation_cycle(clients.supabase, cycle_id, progress_current=number)

    if pending:
        await poll_research_tasks(
            run,
            pending,
            poll_interval=settings.DEEP_RESEARCH_POLL_INTERVAL,
            max_age=settings.DEEP_RESEARCH_MAX_AGE,
        )

    update_generation_cycle(
        clients.supabase,
        cycle_id,
        status=CycleStatus.COMPLETED,
        progress_current=len(queries),
        metadata=run.costs.to_metadata(),
    )
    logger.info(
        f"Research phase complete: {run.inserted} chunks from {len(queries)} queries",
        extra={"event_id": event_id, "cycle_id": cycle_id, "cost": round(run.costs.total, 4)},
    )
    return run.costs
