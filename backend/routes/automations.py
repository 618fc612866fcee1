"""Automation Rules Management Routes - Admin only

Endpoints:
- GET /api/admin/automations - List rules (newest first)
- POST /api/admin/automations - Create rule
- GET /api/admin/automations/variables - Template vocabulary and hints
- POST /api/admin/automations/validate - Validate a message template
- POST /api/admin/automations/preview - Render a template with sample data
- GET /api/admin/automations/{id} - Get rule
- GET /api/admin/automations/{id}/history - Management history of a rule
- PATCH /api/admin/automations/{id}/toggle - Activate / deactivate
- DELETE /api/admin/automations/{id} - Delete rule
- POST /api/admin/automations/{id}/test - Test-mode send of the rule's preview
"""
from fastapi import APIRouter, HTTPException, Request, status
from middleware import admin_route_guard
from models import (
    ActionConfig, AutomationCreate, AutomationRule, AutomationToggle,
    MATCHABLE_TRIGGERS, RuleChange, TemplateRequest, TestSendRequest,
)
from services.automation_store import automation_store
from services.variable_substitution import variable_substitution
from services.whatsapp_service import mask_phone, normalize_phone, whatsapp_service
from utils.rule_history import HISTORY_LIMIT, get_rule_history, record_rule_change
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/automations", tags=["Admin - Automations"])


def _client_ip(request: Request):
    return request.client.host if request.client else None


async def _get_or_404(automation_id: str) -> dict:
    rule = await automation_store.get_rule(automation_id)
    if not rule:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Automation not found"
        )
    return rule


@router.get("")
async def list_automations(request: Request, active_only: bool = False, limit: int = 100):
    """List automation rules."""
    await admin_route_guard(request)

    try:
        rules = await automation_store.list_rules(active_only=active_only, limit=limit)
        return {"automations": rules, "total": len(rules)}
    except Exception as e:
        logger.error(f"List automations error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list automations"
        )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_automation(request: Request, data: AutomationCreate):
    """Create an automation rule. The message must only use known variables."""
    user = await admin_route_guard(request)

    if data.trigger_event not in MATCHABLE_TRIGGERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Trigger {data.trigger_event.value} is not available yet"
        )

    validation = variable_substitution.validate(data.message)
    if not validation["valid"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid template variables", "errors": validation["errors"]}
        )

    rule = AutomationRule(
        name=data.name.strip(),
        active=data.active,
        trigger_event=data.trigger_event,
        trigger_conditions=data.trigger_conditions,
        action_config=ActionConfig(
            message=data.message,
            phone_source=data.phone_source,
            delay_seconds=data.delay_seconds,
            max_retries=data.max_retries,
            test_mode=data.test_mode,
        ),
    )

    try:
        await automation_store.create_rule(rule)
    except Exception as e:
        logger.error(f"Create automation error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create automation"
        )

    await record_rule_change(
        RuleChange.CREATED,
        rule.automation_id,
        actor_id=user["actor_id"],
        after={"name": rule.name, "trigger_event": rule.trigger_event.value, "active": rule.active},
        ip_address=_client_ip(request),
    )

    return rule.model_dump(mode="json")


@router.get("/variables")
async def get_variables(request: Request):
    """Template variables grouped for the rule editor."""
    await admin_route_guard(request)
    return {
        "groups": variable_substitution.describe(),
        "keys": variable_substitution.all_keys(),
        "hints": variable_substitution.hints(),
    }


@router.post("/validate")
async def validate_template(request: Request, data: TemplateRequest):
    await admin_route_guard(request)
    return variable_substitution.validate(data.message)


@router.post("/preview")
async def preview_template(request: Request, data: TemplateRequest):
    """Render the template with sample data, plus its validation result."""
    await admin_route_guard(request)
    return {
        "preview": variable_substitution.preview(data.message),
        "validation": variable_substitution.validate(data.message),
    }


@router.get("/{automation_id}")
async def get_automation(request: Request, automation_id: str):
    await admin_route_guard(request)
    return await _get_or_404(automation_id)


@router.get("/{automation_id}/history")
async def get_automation_history(request: Request, automation_id: str, limit: int = HISTORY_LIMIT):
    await admin_route_guard(request)
    history = await get_rule_history(automation_id, limit=limit)
    return {"automation_id": automation_id, "history": history}


@router.patch("/{automation_id}/toggle")
async def toggle_automation(request: Request, automation_id: str, data: AutomationToggle):
    """Activate or deactivate a rule."""
    user = await admin_route_guard(request)
    rule = await _get_or_404(automation_id)

    if not await automation_store.set_active(automation_id, data.active):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Automation not found"
        )

    await record_rule_change(
        RuleChange.TOGGLED,
        automation_id,
        actor_id=user["actor_id"],
        before={"active": rule.get("active")},
        after={"active": data.active},
        ip_address=_client_ip(request),
    )

    return {"automation_id": automation_id, "active": data.active}


@router.delete("/{automation_id}")
async def delete_automation(request: Request, automation_id: str):
    user = await admin_route_guard(request)
    rule = await _get_or_404(automation_id)

    if not await automation_store.delete_rule(automation_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Automation not found"
        )

    await record_rule_change(
        RuleChange.DELETED,
        automation_id,
        actor_id=user["actor_id"],
        details={"name": rule.get("name"), "trigger_event": rule.get("trigger_event")},
        ip_address=_client_ip(request),
    )

    return {"deleted": True, "automation_id": automation_id}


@router.post("/{automation_id}/test")
async def test_automation(request: Request, automation_id: str, data: TestSendRequest):
    """Simulate the rule with sample data. Always test mode; usage is not counted."""
    user = await admin_route_guard(request)
    rule = await _get_or_404(automation_id)

    message = variable_substitution.preview((rule.get("action_config") or {}).get("message", ""))
    outcome = await whatsapp_service.dispatch(data.phone, message, test_mode=True)

    await record_rule_change(
        RuleChange.TEST_SENT,
        automation_id,
        actor_id=user["actor_id"],
        details={"status": outcome.status.value, "phone": mask_phone(normalize_phone(data.phone))},
        ip_address=_client_ip(request),
    )

    response = {
        "automation_id": automation_id,
        "status": outcome.status.value,
        "message": outcome.detail,
        "rendered": message,
    }
    if outcome.message_id:
        response["messageId"] = outcome.message_id
    return response
