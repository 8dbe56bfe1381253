"""Generation cycle lifecycle database operations.

A generation cycle records one execution of a pipeline stage. Cycles are
never deleted: regenerating a stage flips earlier cycles to `superseded`,
which is what makes their research results, glossary terms and context
items inactive.
"""

from datetime import datetime, timezone  # noqa: UP035
from typing import Any

from supabase import Client

from context_engine.core.errors import DatastoreError
from context_engine.core.logging import get_logger
from context_engine.core.schemas_context import (
    SUPERSEDABLE_STATUSES,
    CycleStatus,
    CycleType,
)

logger = get_logger(__name__)

TABLE = "generation_cycles"


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()  # noqa: UP017


def create_generation_cycle(
    supabase: Client,
    event_id: str,
    agent_id: str,
    blueprint_id: str,
    cycle_type: CycleType,
    component: str | None = None,
    status: CycleStatus = CycleStatus.STARTED,
    progress_total: int = 0,
) -> str:
    """
    Create a generation cycle record.

    Args:
        supabase: Supabase client
        event_id: Event UUID
        agent_id: Agent UUID
        blueprint_id: Blueprint the cycle executes
        cycle_type: Stage being executed
        component: Component label (defaults to the cycle type)
        status: Initial status
        progress_total: Units of work expected

    Returns:
        Created cycle UUID

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
                    "blueprint_id": blueprint_id,
                    "cycle_type": cycle_type.value,
                    "component": component or cycle_type.value,
                    "status": status.value,
                    "progress_current": 0,
                    "progress_total": progress_total,
                }
            )
            .execute()
        )
    except Exception as e:
        raise DatastoreError("create_generation_cycle", str(e)) from e

    if not response.data:
        raise DatastoreError("create_generation_cycle", "no data returned")

    cycle_id = response.data[0]["id"]
    logger.info(
        f"Created {cycle_type.value} generation cycle {cycle_id}",
        extra={"event_id": event_id, "cycle_id": cycle_id},
    )
    return cycle_id


def get_generation_cycle(supabase: Client, cycle_id: str) -> dict[str, Any] | None:
    """Fetch a cycle row, or None if it does not exist."""
    try:
        response = supabase.table(TABLE).select("*").eq("id", cycle_id).limit(1).execute()
    except Exception as e:
        raise DatastoreError("get_generation_cycle", str(e)) from e
    return response.data[0] if response.data else None


def update_generation_cycle(
    supabase: Client,
    cycle_id: str,
    status: CycleStatus | None = None,
    progress_current: int | None = None,
    progress_total: int | None = None,
    metadata: dict[str, Any] | None = None,
    error_message: str | None = None,
) -> None:
    """
    Update a generation cycle.

    Metadata is merged into the stored metadata rather than replacing it.
    `completed_at` is stamped when the status becomes completed.

    Raises:
        DatastoreError: If the cycle cannot be read or updated
    """
    updates: dict[str, Any] = {}

    if status is not None:
        updates["status"] = status.value
        if status == CycleStatus.COMPLETED:
            updates["completed_at"] = _utc_now_iso()
    if progress_current is not None:
        updates["progress_current"] = progress_current
    if progress_total is not None:
        updates["progress_total"] = progress_total
    if error_message is not None:
        updates["error_message"] = error_message

    if metadata is not None:
        existing = get_generation_cycle(supabase, cycle_id)
        current = (existing or {}).get("metadata")
        merged = dict(current) if isinstance(current, dict) else {}
        merged.update(metadata)
        updates["metadata"] = merged

    if not updates:
        return

    try:
        response = supabase.table(TABLE).update(updates).eq("id", cycle_id).execute()
    except Exception as e:
        logger.error(f"Failed to update generation cycle {cycle_id}: {e}")
        raise DatastoreError("update_generation_cycle", str(e)) from e

    if not response.data:
        raise DatastoreError("update_generation_cycle", f"cycle not found: {cycle_id}")

    if status is not None:
        logger.info(
            f"Generation cycle {cycle_id} -> {status.value}",
            extra={"cycle_id": cycle_id},
        )


def mark_cycles_superseded(
    supabase: Client,
    event_id: str,
    cycle_types: list[CycleType],
    exclude_cycle_id: str | None = None,
    blueprint_ids: list[str] | None = None,
) -> int:
    """
    Flip live cycles of the given types to superseded.

    Only started, processing and completed cycles are touched, so
    superseding an already-superseded (or failed) cycle is a no-op.

    Args:
        supabase: Supabase client
        event_id: Event UUID
        cycle_types: Stages whose cycles should be superseded
        exclude_cycle_id: Cycle to leave alone (usually the new one)
        blueprint_ids: Restrict to cycles of these blueprints

    Returns:
        Number of cycles superseded

    Raises:
        DatastoreError: If the update fails
    """
    query = (
        supabase.table(TABLE)
        .update({"status": CycleStatus.SUPERSEDED.value})
        .eq("event_id", event_id)
        .in_("cycle_type", [t.value for t in cycle_types])
        .in_("status", [s.value for s in SUPERSEDABLE_STATUSES])
    )
    if exclude_cycle_id:
        query = query.neq("id", exclude_cycle_id)
    if blueprint_ids:
        query = query.in_("blueprint_id", blueprint_ids)

    try:
        response = query.execute()
    except Exception as e:
        raise DatastoreError("mark_cycles_superseded", str(e)) from e

    count = len(response.data or [])
    if count:
        logger.info(
            f"Superseded {count} {'/'.join(t.value for t in cycle_types)} cycle(s)",
            extra={"event_id": event_id, "exclude_cycle_id": exclude_cycle_id},
        )
    return count


def get_active_cycle_ids(supabase: Client, event_id: str, cycle_type: CycleType) -> list[str]:
    """
    IDs of the event's cycles of one type that have not been superseded.

    Raises:
        DatastoreError: If the query fails
    """
    try:
        response = (
            supabase.table(TABLE)
            .select("id")
            .eq("event_id", event_id)
            .eq("cycle_type", cycle_type.value)
            .neq("status", CycleStatus.SUPERSEDED.value)
            .execute()
        )
    except Exception as e:
        raise DatastoreError("get_active_cycle_ids", str(e)) from e
    return [row["id"] for row in response.data or []]


def apply_active_filter(query: Any, active_cycle_ids: list[str]) -> Any:
    """
    Restrict a select to active rows: null cycle reference (legacy) or one
    of the given non-superseded cycles.
    """
    if not active_cycle_ids:
        return query.is_("generation_cycle_id", "null")
    id_list = ",".join(active_cycle_ids)
    return query.or_(f"generation_cycle_id.is.null,generation_cycle_id.in.({id_list})")
