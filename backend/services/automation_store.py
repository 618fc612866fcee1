"""Automation Store - access to automation rules in MongoDB.

The webhook path only reads active rules for a trigger and bumps usage
counters; create/toggle/delete/list serve the rule-management routes.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from database import database
from models import ActionType, AutomationRule, TriggerEvent

logger = logging.getLogger(__name__)

MAX_RULES_PER_TRIGGER = 200


class RuleStoreError(Exception):
    """Rule store could not be queried; the invocation cannot proceed."""


@dataclass
class InvalidRule:
    """Active rule whose stored document cannot be run; reported as a per-rule error."""
    automation_id: str
    name: str
    reason: str


LoadedRule = Union[AutomationRule, InvalidRule]

SUPPORTED_ACTION_TYPES = {action_type.value for action_type in ActionType}


class AutomationStore:

    def _collection(self):
        db = database.get_db()
        if db is None:
            raise RuleStoreError("Database not connected")
        return db.automations

    @staticmethod
    def _to_rule(doc: Dict[str, Any]) -> LoadedRule:
        automation_id = str(doc.get("automation_id") or "")
        name = str(doc.get("name") or "")

        action_type = doc.get("action_type", ActionType.WHATSAPP_MESSAGE.value)
        if action_type not in SUPPORTED_ACTION_TYPES:
            return InvalidRule(automation_id, name, f"Unsupported action type: {action_type}")

        try:
            return AutomationRule.model_validate(doc)
        except ValidationError as e:
            logger.error(f"Malformed automation {automation_id}: {e}")
            fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
            return InvalidRule(automation_id, name, f"Invalid automation fields: {fields}")

    async def load_active_rules_for(self, trigger: TriggerEvent) -> List[LoadedRule]:
        """Active rules subscribed to trigger, one entry per stored document.

        Documents that fail validation come back as InvalidRule. Raises
        RuleStoreError on store failure.
        """
        try:
            docs = await self._collection().find(
                {"active": True, "trigger_event": trigger.value},
                {"_id": 0},
            ).to_list(MAX_RULES_PER_TRIGGER)
        except RuleStoreError:
            raise
        except Exception as e:
            logger.error(f"Failed to load automations for {trigger.value}: {e}")
            raise RuleStoreError(str(e)) from e

        return [self._to_rule(doc) for doc in docs]

    async def record_trigger(self, automation_id: str, at: Optional[datetime] = None) -> None:
        """Increment trigger_count and stamp last_triggered_at.

        Concurrent invocations rely on the store's atomic $inc; the timestamp is
        last-write-wins.
        """
        at = at or datetime.now(timezone.utc)
        await self._collection().update_one(
            {"automation_id": automation_id},
            {"$inc": {"trigger_count": 1}, "$set": {"last_triggered_at": at}},
        )

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    async def list_rules(self, active_only: bool = False, limit: int = 100) -> List[Dict[str, Any]]:
        query = {"active": True} if active_only else {}
        return await self._collection().find(query, {"_id": 0}).sort(
            "created_at", -1
        ).to_list(limit)

    async def get_rule(self, automation_id: str) -> Optional[Dict[str, Any]]:
        return await self._collection().find_one({"automation_id": automation_id}, {"_id": 0})

    async def create_rule(self, rule: AutomationRule) -> Dict[str, Any]:
        doc = rule.model_dump(mode="python")
        doc["trigger_event"] = rule.trigger_event.value
        doc["action_type"] = rule.action_type.value
        await self._collection().insert_one(dict(doc))
        logger.info(f"Automation created: {rule.automation_id} ({rule.trigger_event.value})")
        return doc

    async def set_active(self, automation_id: str, active: bool) -> bool:
        result = await self._collection().update_one(
            {"automation_id": automation_id},
            {"$set": {"active": active}},
        )
        return result.matched_count > 0

    async def delete_rule(self, automation_id: str) -> bool:
        result = await self._collection().delete_one({"automation_id": automation_id})
        return result.deleted_count > 0


# Singleton instance
automation_store = AutomationStore()
