"""Context Enrichment - builds the substitution context for a trigger payload.

Checklist rows only carry event_id; templates want client and event fields,
so the parent event is fetched and its fields merged in.
"""
import logging
from typing import Any, Dict, Optional

from database import database
from models import TriggerPayload
from services.trigger_matcher import EVENTS_TABLE

logger = logging.getLogger(__name__)

EVENT_REFERENCE_FIELD = "event_id"

# context key -> field on the events row
PARENT_EVENT_FIELDS = {
    "client_name": "client_name",
    "client_phone": "client_phone",
    "event_date": "date",
    "event_location": "location",
}

# Rows of the events table expose these under their own column names
EVENT_ROW_ALIASES = {
    "event_date": "date",
    "event_location": "location",
    "event_name": "name",
}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


async def _fetch_parent_event(event_id: Any) -> Optional[Dict[str, Any]]:
    try:
        db = database.get_db()
        return await db.events.find_one({"event_id": event_id}, {"_id": 0})
    except Exception as e:
        logger.warning(f"Parent event lookup failed for {event_id}: {e}")
        return None


async def enrich_context(payload: TriggerPayload) -> Dict[str, Any]:
    """Return record plus parent-event fields. Never raises."""
    context: Dict[str, Any] = dict(payload.record or {})

    if payload.table == EVENTS_TABLE:
        for key, column in EVENT_ROW_ALIASES.items():
            if _is_blank(context.get(key)) and not _is_blank(context.get(column)):
                context[key] = context[column]

    event_id = context.get(EVENT_REFERENCE_FIELD)
    missing = [key for key in PARENT_EVENT_FIELDS if _is_blank(context.get(key))]
    if _is_blank(event_id) or not missing:
        return context

    parent = await _fetch_parent_event(event_id)
    if not parent:
        logger.info(f"No parent event {event_id}; rendering with record fields only")
        return context

    for key, column in PARENT_EVENT_FIELDS.items():
        if not _is_blank(parent.get(column)):
            context[key] = parent[column]

    return context
