"""Rule history - who created, switched, removed or test-sent an automation rule.

Entries live in the automation_history collection, one per management action.
A failed history write is logged and never fails the action it describes.
"""
from database import database
from models import RuleChange, RuleHistoryEntry
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50


def changed_fields(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Fields of after whose value differs from before, as {field: {"from", "to"}}."""
    before = before or {}
    return {
        field: {"from": before.get(field), "to": value}
        for field, value in (after or {}).items()
        if before.get(field) != value
    }


async def record_rule_change(
    change: RuleChange,
    automation_id: str,
    actor_id: Optional[str] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> Optional[str]:
    """Append a history entry for automation_id. Returns the entry id, or None if not stored."""
    entry = RuleHistoryEntry(
        automation_id=automation_id,
        change=change,
        actor_id=actor_id,
        fields=changed_fields(before, after) or None,
        details=details,
        ip_address=ip_address,
    )

    try:
        db = database.get_db()
        await db.automation_history.insert_one(entry.model_dump(mode="json"))
    except Exception as e:
        logger.error(f"Failed to record {change.value} for automation {automation_id}: {e}")
        return None

    logger.info(f"Automation {automation_id} {change.value} by {actor_id or 'unknown'}")
    return entry.entry_id


async def get_rule_history(automation_id: str, limit: int = HISTORY_LIMIT) -> List[Dict[str, Any]]:
    """History of one rule, newest first. Empty on store failure."""
    try:
        db = database.get_db()
        return await db.automation_history.find(
            {"automation_id": automation_id},
            {"_id": 0},
        ).sort("timestamp", -1).to_list(limit)
    except Exception as e:
        logger.error(f"Failed to read history for automation {automation_id}: {e}")
        return []
