"""
Automation Engine.
Entry point for database change events: match trigger, load active rules,
render each rule's message and send it through WhatsApp.

Flow per invocation:
    Received -> Matched | NoTrigger
             -> RulesLoaded (empty: done)
             -> per rule: Enriching -> Rendering -> Dispatching -> Recording
             -> Completed

NoTrigger and "no rules" are informational, not errors. A failing rule never
stops the others. Only an unparseable payload or an unreachable rule store
aborts the invocation.

Reserved rule fields (delay_seconds, max_retries, trigger_conditions) are not
acted on: one immediate send per rule per invocation, no deduplication.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from models import DispatchResult, DispatchStatus, TriggerPayload
from services.automation_store import InvalidRule, LoadedRule, RuleStoreError, automation_store
from services.context_enrichment import enrich_context
from services.trigger_matcher import match_trigger
from services.variable_substitution import variable_substitution
from services.whatsapp_service import whatsapp_service

logger = logging.getLogger(__name__)

# Context keys checked, in order, for the destination number
PHONE_FIELDS = ("client_phone", "phone")

NO_RECORD = "No record"
NO_MATCHING_TRIGGER = "No matching trigger"
NO_MATCHING_AUTOMATIONS = "No matching automations"


@dataclass
class EngineOutcome:
    status_code: int
    body: Union[Dict[str, Any], List[Dict[str, Any]]]

    @classmethod
    def info(cls, message: str) -> "EngineOutcome":
        return cls(200, {"message": message})

    @classmethod
    def fatal(cls, status_code: int, error: str, message: str) -> "EngineOutcome":
        return cls(status_code, {"error": error, "message": message})


def resolve_phone(context: Dict[str, Any]) -> Optional[str]:
    for field_name in PHONE_FIELDS:
        value = context.get(field_name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


class AutomationEngine:
    """Stateless handler; one call processes one payload to completion."""

    def __init__(self, store=None, dispatcher=None, substitution=None):
        self.store = store or automation_store
        self.dispatcher = dispatcher or whatsapp_service
        self.substitution = substitution or variable_substitution

    async def handle(self, raw_payload: Any) -> EngineOutcome:
        if not isinstance(raw_payload, dict):
            return EngineOutcome.fatal(400, "invalid_payload", "Payload must be a JSON object")

        if raw_payload.get("record") is None:
            return EngineOutcome.info(NO_RECORD)

        try:
            payload = TriggerPayload.model_validate(raw_payload)
        except ValidationError as e:
            logger.warning(f"Rejected automation payload: {e}")
            return EngineOutcome.fatal(400, "invalid_payload", str(e))

        trigger = match_trigger(payload)
        if trigger is None:
            logger.debug(f"No trigger for {payload.type.value} on {payload.table}")
            return EngineOutcome.info(NO_MATCHING_TRIGGER)

        try:
            rules = await self.store.load_active_rules_for(trigger)
        except RuleStoreError as e:
            return EngineOutcome.fatal(500, "rule_store_unavailable", str(e))

        if not rules:
            logger.info(f"No active automations for {trigger.value}")
            return EngineOutcome.info(NO_MATCHING_AUTOMATIONS)

        logger.info(f"Trigger {trigger.value}: {len(rules)} automation(s) to run")
        context = await enrich_context(payload)

        results = []
        for rule in rules:
            result = await self._run_rule(rule, context)
            results.append(result.to_response())
        return EngineOutcome(200, results)

    async def _run_rule(self, rule: LoadedRule, context: Dict[str, Any]) -> DispatchResult:
        def failed(reason: str) -> DispatchResult:
            logger.warning(f"Automation {rule.automation_id} ({rule.name}) failed: {reason}")
            return DispatchResult(
                automation_id=rule.automation_id,
                automation_name=rule.name,
                status=DispatchStatus.ERROR,
                detail=reason,
            )

        if isinstance(rule, InvalidRule):
            return failed(rule.reason)

        template = rule.action_config.message
        if not template or not template.strip():
            return failed("Missing message template")

        phone = resolve_phone(context)
        if not phone:
            return failed("Missing phone number")

        message = self.substitution.substitute(template, context)
        outcome = await self.dispatcher.dispatch(phone, message, test_mode=rule.action_config.test_mode)
        if outcome.status == DispatchStatus.ERROR:
            return failed(outcome.detail)

        if outcome.status == DispatchStatus.SUCCESS:
            try:
                await self.store.record_trigger(rule.automation_id, at=datetime.now(timezone.utc))
            except Exception as e:
                logger.error(f"Failed to record usage for automation {rule.automation_id}: {e}")

        return DispatchResult(
            automation_id=rule.automation_id,
            automation_name=rule.name,
            status=outcome.status,
            message_id=outcome.message_id,
            detail=outcome.detail,
        )


# Singleton instance
automation_engine = AutomationEngine()
