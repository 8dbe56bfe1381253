"""Research result database operations."""

from typing import Any

from supabase import Client

from context_engine.core.errors import DatastoreError
from context_engine.core.logging import get_logger
from context_engine.core.schemas_context import CycleType, ResearchChunk
from context_engine.db.generation_cycles import apply_active_filter, get_active_cycle_ids

logger = get_logger(__name__)

TABLE = "research_results"


def insert_research_result(
    supabase: Client,
    event_id: str,
    blueprint_id: str,
    cycle_id: str,
    query: str,
    api: str,
    content: str,
    quality_score: float,
    metadata: dict[str, Any],
    source_url: str | None = None,
) -> str:
    """
    Insert one research fragment.

    Returns:
        Created row UUID

    Raises:
        DatastoreError: If the insert fails
    """
    row = {
        "event_id": event_id,
        "blueprint_id": blueprint_id,
        "generation_cycle_id": cycle_id,
        "query": query,
        "api": api,
        "content": content,
        "source_url": source_url,
        "quality_score": quality_score,
        "metadata": metadata,
    }
    try:
        response = supabase.table(TABLE).insert(row).execute()
    except Exception as e:
        raise DatastoreError("insert_research_result", str(e)) from e

    if not response.data:
        raise DatastoreError("insert_research_result", "no data returned")
    return response.data[0]["id"]


def list_active_research_results(supabase: Client, event_id: str) -> list[ResearchChunk]:
    """
    Research fragments for an event that belong to a non-superseded research
    cycle or predate cycles altogether.

    Raises:
        DatastoreError: If the query fails
    """
    active_ids = get_active_cycle_ids(supabase, event_id, CycleType.RESEARCH)
    query = supabase.table(TABLE).select("*").eq("event_id", event_id)
    query = apply_active_filter(query, active_ids)

    try:
        response = query.order("created_at").execute()
    except Exception as e:
        raise DatastoreError("list_active_research_results", str(e)) from e

    chunks = [ResearchChunk.from_row(row) for row in response.data or []]
    logger.debug(
        f"Loaded {len(chunks)} active research results for event {event_id}",
        extra={"event_id": event_id, "active_cycles": len(active_ids)},
    )
    return chunks
