"""Context item (ranked chunk) database operations."""

from typing import Any

from supabase import Client

from context_engine.core.errors import DatastoreError
from context_engine.core.schemas_context import CycleType
from context_engine.db.generation_cycles import apply_active_filter, get_active_cycle_ids

TABLE = "context_items"


def insert_context_item(
    supabase: Client,
    event_id: str,
    cycle_id: str,
    chunk: str,
    embedding: list[float],
    rank: int,
    metadata: dict[str, Any],
) -> str:
    """
    Insert one ranked, embedded chunk.

    Raises:
        DatastoreError: If the insert fails
    """
    try:
        response = (
            supabase.table(TABLE)
            .insert(
                {
                    "event_id": event_id,
                    "generation_cycle_id": cycle_id,
                    "chunk": chunk,
                    "embedding": embedding,
                    "rank": rank,
                    "metadata": metadata,
                }
            )
            .execute()
        )
    except Exception as e:
        raise DatastoreError("insert_context_item", str(e)) from e

    if not response.data:
        raise DatastoreError("insert_context_item", "no data returned")
    return response.data[0]["id"]


def list_active_context_items(supabase: Client, event_id: str) -> list[dict[str, Any]]:
    """Context items for an event from live chunks cycles (or legacy rows), by rank."""
    active_ids = get_active_cycle_ids(supabase, event_id, CycleType.CHUNKS)
    query = apply_active_filter(
        supabase.table(TABLE).select("*").eq("event_id", event_id), active_ids
    )
    try:
        response = query.order("rank").execute()
    except Exception as e:
        raise DatastoreError("list_active_context_items", str(e)) from e
    return response.data or []
