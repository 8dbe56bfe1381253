"""Glossary term database operations."""

from typing import Any

from supabase import Client

from context_engine.core.errors import DatastoreError
from context_engine.core.logging import get_logger
from context_engine.core.schemas_context import CycleType, TermDefinition
from context_engine.db.generation_cycles import apply_active_filter, get_active_cycle_ids

logger = get_logger(__name__)

TABLE = "glossary_terms"


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so ilike performs an exact case-insensitive match."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def upsert_glossary_term(
    supabase: Client,
    event_id: str,
    cycle_id: str,
    definition: TermDefinition,
    agent_utility: list[str] | None = None,
) -> str:
    """
    Store a term definition, one row per event and case-insensitive term.

    Updates the existing row when one matches; inserts otherwise.

    Returns:
        "updated" or "inserted"

    Raises:
        DatastoreError: If the write fails
    """
    term = definition.term.strip()
    row: dict[str, Any] = {
        "event_id": event_id,
        "generation_cycle_id": cycle_id,
        "term": term,
        "definition": definition.definition,
        "acronym_for": definition.acronym_for,
        "category": definition.category,
        "usage_examples": definition.usage_examples,
        "related_terms": definition.related_terms,
        "confidence_score": definition.confidence_score,
        "source": definition.source,
        "source_url": definition.source_url,
    }
    if agent_utility is not None:
        row["agent_utility"] = agent_utility

    try:
        updated = (
            supabase.table(TABLE)
            .update(row)
            .eq("event_id", event_id)
            .ilike("term", _escape_like(term))
            .execute()
        )
        if updated.data:
            return "updated"

        inserted = supabase.table(TABLE).insert(row).execute()
    except Exception as e:
        raise DatastoreError("upsert_glossary_term", str(e)) from e

    if not inserted.data:
        raise DatastoreError("upsert_glossary_term", f"no data returned for term '{term}'")
    return "inserted"


def list_active_glossary_terms(supabase: Client, event_id: str) -> list[dict[str, Any]]:
    """Glossary rows for an event that belong to a live glossary cycle or are legacy."""
    active_ids = get_active_cycle_ids(supabase, event_id, CycleType.GLOSSARY)
    query = apply_active_filter(
        supabase.table(TABLE).select("*").eq("event_id", event_id), active_ids
    )
    try:
        response = query.execute()
    except Exception as e:
        raise DatastoreError("list_active_glossary_terms", str(e)) from e
    return response.data or []
