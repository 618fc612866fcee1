"""Trigger Matcher - maps a database change event to a canonical trigger.

An explicit event_type hint configured on the change-capture webhook wins.
Without a hint the trigger is inferred from the table and the row (legacy
wiring). No match is the normal outcome for most mutations.
"""
import logging
from typing import Optional

from models import MutationType, TriggerEvent, TriggerPayload

logger = logging.getLogger(__name__)

CHECKLISTS_TABLE = "checklists"
EVENTS_TABLE = "events"
CHECKLIST_COMPLETED_STATUS = "completed"

HINT_TRIGGERS = {
    "entrada": TriggerEvent.CHECKLIST_ENTRADA,
    "inicial": TriggerEvent.CHECKLIST_ENTRADA,
    "saida": TriggerEvent.CHECKLIST_SAIDA,
    "event_created": TriggerEvent.EVENT_CREATED,
}

CHECKLIST_TYPE_TRIGGERS = {
    "entrada": TriggerEvent.CHECKLIST_ENTRADA,
    "inicial": TriggerEvent.CHECKLIST_ENTRADA,
    "saida": TriggerEvent.CHECKLIST_SAIDA,
}


def match_trigger(payload: TriggerPayload) -> Optional[TriggerEvent]:
    """Return the trigger this payload represents, or None."""
    hint = (payload.event_type or "").strip()
    if hint:
        trigger = HINT_TRIGGERS.get(hint)
        if trigger is None:
            logger.info(f"Unknown event_type hint ignored: {hint}")
        return trigger

    record = payload.record or {}

    if payload.table == CHECKLISTS_TABLE and record.get("status") == CHECKLIST_COMPLETED_STATUS:
        return CHECKLIST_TYPE_TRIGGERS.get(record.get("type"))

    if payload.table == EVENTS_TABLE and payload.type == MutationType.INSERT:
        return TriggerEvent.EVENT_CREATED

    return None
