"""Automation Webhook Route - database change events in, WhatsApp messages out.

POST /api/automations/webhook
    Body: {type, schema, table, record, old_record?, event_type?}
    200: list of per-automation results, or {"message": ...} when there is
         nothing to do (no record / no matching trigger / no automations)
    400/500: {"error", "message"} when the invocation cannot proceed
    401: X-Webhook-Secret mismatch (only when AUTOMATION_WEBHOOK_SECRET is set)
"""
from fastapi import APIRouter, HTTPException, Request, Header, status
from fastapi.responses import JSONResponse
from middleware import webhook_secret_ok
from services.automation_engine import automation_engine, EngineOutcome
import json
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/automations", tags=["automations"])


@router.post("/webhook")
async def handle_automation_webhook(
    request: Request,
    x_webhook_secret: str = Header(None, alias="X-Webhook-Secret"),
):
    """Run every active automation matching the change event."""
    if not webhook_secret_ok(x_webhook_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret"
        )

    try:
        payload = json.loads(await request.body())
    except (ValueError, UnicodeDecodeError):
        outcome = EngineOutcome.fatal(400, "invalid_payload", "Body is not valid JSON")
        return JSONResponse(status_code=outcome.status_code, content=outcome.body)

    logger.info(f"Automation webhook received: {payload.get('type') if isinstance(payload, dict) else '?'} "
                f"on {payload.get('table') if isinstance(payload, dict) else '?'}")

    try:
        outcome = await automation_engine.handle(payload)
    except Exception as e:
        logger.exception(f"Automation webhook error: {e}")
        outcome = EngineOutcome.fatal(500, "internal_error", str(e))

    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
