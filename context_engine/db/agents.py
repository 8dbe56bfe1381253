"""Agent status and stage database operations."""

from typing import Any

from supabase import Client

from context_engine.core.errors import DatastoreError
from context_engine.core.logging import get_logger
from context_engine.core.schemas_context import AgentStage, AgentStatus, agent_status_for

logger = get_logger(__name__)

TABLE = "agents"


def get_agent(supabase: Client, agent_id: str) -> dict[str, Any]:
    """
    Fetch an agent row.

    Raises:
        DatastoreError: If the agent does not exist or the query fails
    """
    try:
        response = supabase.table(TABLE).select("*").eq("id", agent_id).limit(1).execute()
    except Exception as e:
        raise DatastoreError("get_agent", str(e)) from e
    if not response.data:
        raise DatastoreError("get_agent", f"agent not found: {agent_id}")
    return response.data[0]


def set_agent_stage(
    supabase: Client, agent_id: str, stage: AgentStage, run_state: str = "running"
) -> None:
    """
    Move an agent to a pipeline stage.

    Args:
        supabase: Supabase client
        agent_id: Agent UUID
        stage: New fine-grained stage
        run_state: "running", "error" or "idle"; mapped to the coarse status

    Raises:
        DatastoreError: If the update fails
    """
    status = agent_status_for(run_state)
    try:
        (
            supabase.table(TABLE)
            .update({"status": status.value, "stage": stage.value})
            .eq("id", agent_id)
            .execute()
        )
    except Exception as e:
        raise DatastoreError("set_agent_stage", str(e)) from e

    logger.info(
        f"Agent {agent_id} -> stage={stage.value} status={status.value}",
        extra={"agent_id": agent_id},
    )


def list_agents(
    supabase: Client, stages: list[AgentStage], status: AgentStatus | None = None
) -> list[dict[str, Any]]:
    """Agents currently in one of the given stages (and status, if given)."""
    query = supabase.table(TABLE).select("id, event_id, status, stage").in_(
        "stage", [s.value for s in stages]
    )
    if status is not None:
        query = query.eq("status", status.value)
    try:
        response = query.execute()
    except Exception as e:
        raise DatastoreError("list_agents", str(e)) from e
    return response.data or []
