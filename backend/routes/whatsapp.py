"""WhatsApp Routes - direct sends and gateway status.
Used by internal callers that need a one-off message outside automation rules.
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from models import DispatchStatus, WhatsAppSendRequest
from services.whatsapp_service import whatsapp_service, normalize_phone
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])

MIN_PHONE_DIGITS = 10


def _response(status_code: int, status: str, message: str, message_id: str = None) -> JSONResponse:
    body = {
        "status": status,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if message_id:
        body["messageId"] = message_id
    return JSONResponse(status_code=status_code, content=body)


@router.get("/status")
async def get_whatsapp_status():
    """Get WhatsApp gateway configuration status."""
    return {
        "configured": whatsapp_service.is_configured(),
        "api_url": whatsapp_service.api_url,
    }


@router.post("/send")
async def send_whatsapp(data: WhatsAppSendRequest):
    """Send (or, with test_mode, simulate) a WhatsApp message.

    Phone may be formatted freely; it is normalized to 55 + area code + number.
    """
    if not data.phone:
        return _response(400, DispatchStatus.ERROR.value, "Missing phone number")
    if not data.message:
        return _response(400, DispatchStatus.ERROR.value, "Missing message")

    normalized = normalize_phone(data.phone)
    if len(normalized) < MIN_PHONE_DIGITS:
        return _response(
            400,
            DispatchStatus.ERROR.value,
            f"Invalid phone number format. Expected Brazilian format (10+ digits). Got: {data.phone}",
        )

    outcome = await whatsapp_service.dispatch(data.phone, data.message, test_mode=data.test_mode)
    status_code = 200 if outcome.ok else 500
    return _response(status_code, outcome.status.value, outcome.detail, outcome.message_id)
