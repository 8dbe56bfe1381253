"""Context blueprint database operations."""

from datetime import datetime, timezone  # noqa: UP035
from typing import Any

from supabase import Client

from context_engine.core.errors import DatastoreError
from context_engine.core.logging import get_logger
from context_engine.core.schemas_blueprint import Blueprint
from context_engine.core.schemas_context import (
    DOWNSTREAM_OF_RESEARCH,
    LIVE_BLUEPRINT_STATUSES,
    BlueprintStatus,
    CycleType,
)
from context_engine.db.generation_cycles import mark_cycles_superseded

logger = get_logger(__name__)

TABLE = "context_blueprints"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()  # noqa: UP017


def get_blueprint(supabase: Client, blueprint_id: str) -> dict[str, Any]:
    """
    Fetch a blueprint row.

    Raises:
        DatastoreError: If the blueprint does not exist or the query fails
    """
    try:
        response = supabase.table(TABLE).select("*").eq("id", blueprint_id).limit(1).execute()
    except Exception as e:
        raise DatastoreError("get_blueprint", str(e)) from e

    if not response.data:
        raise DatastoreError("get_blueprint", f"blueprint not found: {blueprint_id}")
    return response.data[0]


def get_latest_blueprint_for_agent(
    supabase: Client,
    agent_id: str,
    statuses: list[BlueprintStatus] | None = None,
) -> dict[str, Any] | None:
    """Most recent blueprint for an agent, optionally restricted to some statuses."""
    query = supabase.table(TABLE).select("*").eq("agent_id", agent_id)
    if statuses:
        query = query.in_("status", [s.value for s in statuses])

    try:
        response = query.order("created_at", desc=True).limit(1).execute()
    except Exception as e:
        raise DatastoreError("get_latest_blueprint_for_agent", str(e)) from e
    return response.data[0] if response.data else None


def insert_blueprint(supabase: Client, event_id: str, agent_id: str) -> str:
    """
    Create a blueprint record in `generating` status.

    Raises:
        DatastoreError: If the insert fails
    """
    try:
        response = (
            supabase.table(TABLE)
            .insert(
                {
                    "event_id": event_id,
                    "agent_id": agent_id,
                    "status": BlueprintStatus.GENERATING.value,
                }
            )
            .execute()
        )
    except Exception as e:
        raise DatastoreError("insert_blueprint", str(e)) from e

    if not response.data:
        raise DatastoreError("insert_blueprint", "no data returned")
    return response.data[0]["id"]


def supersede_existing_blueprints(
    supabase: Client, event_id: str, agent_id: str, current_blueprint_id: str
) -> list[str]:
    """
    Supersede the agent's other live blueprints and every cycle built from them.

    Failures are logged rather than raised; a stale blueprint left live does
    not block generating the new one.

    Returns:
        IDs of the blueprints that were superseded
    """
    try:
        response = (
            supabase.table(TABLE)
            .select("id")
            .eq("agent_id", agent_id)
            .neq("id", current_blueprint_id)
            .in_("status", [s.value for s in LIVE_BLUEPRINT_STATUSES])
            .execute()
        )
    except Exception as e:
        logger.warning(f"Failed to look up existing blueprints for agent {agent_id}: {e}")
        return []

    blueprint_ids = [row["id"] for row in response.data or []]
    if not blueprint_ids:
        return []

    try:
        (
            supabase.table(TABLE)
            .update({"status": BlueprintStatus.SUPERSEDED.value, "superseded_at": _utc_now_iso()})
            .eq("agent_id", agent_id)
            .in_("id", blueprint_ids)
            .execute()
        )
    except Exception as e:
        logger.warning(f"Failed to mark existing blueprints as superseded: {e}")
        return []

    for cycle_types in ([CycleType.BLUEPRINT], [CycleType.RESEARCH, *DOWNSTREAM_OF_RESEARCH]):
        try:
            mark_cycles_superseded(supabase, event_id, cycle_types, blueprint_ids=blueprint_ids)
        except DatastoreError as e:
            logger.warning(f"Failed to supersede cycles of old blueprints: {e}")

    logger.info(
        f"Superseded {len(blueprint_ids)} blueprint(s) for agent {agent_id}",
        extra={"event_id": event_id, "agent_id": agent_id},
    )
    return blueprint_ids


def save_generated_blueprint(supabase: Client, blueprint_id: str, blueprint: Blueprint) -> None:
    """
    Store a generated blueprint and mark it ready.

    The plan sections are also written to their own columns for querying.

    Raises:
        DatastoreError: If the update fails
    """
    payload = blueprint.model_dump(mode="json")
    try:
        response = (
            supabase.table(TABLE)
            .update(
                {
                    "status": BlueprintStatus.READY.value,
                    "blueprint": payload,
                    "important_details": blueprint.important_details,
                    "inferred_topics": blueprint.inferred_topics,
                    "key_terms": blueprint.key_terms,
                    "research_plan": payload["research_plan"],
                    "research_apis": [q.api for q in blueprint.research_plan.queries],
                    "research_search_count": blueprint.research_plan.total_searches,
                    "estimated_cost": blueprint.cost_breakdown.total,
                    "glossary_plan": payload["glossary_plan"],
                    "chunks_plan": payload["chunks_plan"],
                    "target_chunk_count": blueprint.chunks_plan.target_count,
                    "quality_tier": blueprint.chunks_plan.quality_tier,
                }
            )
            .eq("id", blueprint_id)
            .execute()
        )
    except Exception as e:
        raise DatastoreError("save_generated_blueprint", str(e)) from e

    if not response.data:
        raise DatastoreError("save_generated_blueprint", f"blueprint not found: {blueprint_id}")


def mark_blueprint_error(supabase: Client, blueprint_id: str, message: str) -> None:
    """Put a blueprint into error status. Logged, never raised."""
    try:
        (
            supabase.table(TABLE)
            .update({"status": BlueprintStatus.ERROR.value, "error_message": message})
            .eq("id", blueprint_id)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to mark blueprint {blueprint_id} as error: {e}")


def load_blueprint_plan(row: dict[str, Any]) -> Blueprint:
    """Parse the stored plan of a blueprint row."""
    return Blueprint.model_validate(row.get("blueprint") or {})
