"""Event and uploaded-document lookups."""

from typing import Any

from supabase import Client

from context_engine.core.errors import DatastoreError

EVENTS_TABLE = "events"
DOCUMENTS_TABLE = "event_docs"


def get_event(supabase: Client, event_id: str) -> dict[str, Any]:
    """
    Fetch an event's id, title and topic.

    Raises:
        DatastoreError: If the event does not exist or the query fails
    """
    try:
        response = (
            supabase.table(EVENTS_TABLE)
            .select("id, title, topic")
            .eq("id", event_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        raise DatastoreError("get_event", str(e)) from e
    if not response.data:
        raise DatastoreError("get_event", f"event not found: {event_id}")
    return response.data[0]


def list_event_documents(supabase: Client, event_id: str) -> list[dict[str, Any]]:
    """Metadata of documents uploaded to an event."""
    try:
        response = (
            supabase.table(DOCUMENTS_TABLE)
            .select("id, path, file_type, name")
            .eq("event_id", event_id)
            .execute()
        )
    except Exception as e:
        raise DatastoreError("list_event_documents", str(e)) from e
    return response.data or []
