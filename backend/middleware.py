from fastapi import Request, HTTPException, status
from typing import Optional
import hmac
import logging
import os

logger = logging.getLogger(__name__)

ADMIN_ACTOR = "admin"

def _configured(name: str) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or None

def _matches(expected: str, provided: Optional[str]) -> bool:
    return bool(provided) and hmac.compare_digest(expected.encode(), provided.strip().encode())

def webhook_secret_ok(header_secret: Optional[str]) -> bool:
    """True if the automation webhook call is authorized.

    When AUTOMATION_WEBHOOK_SECRET is set the X-Webhook-Secret header must match.
    """
    configured = _configured("AUTOMATION_WEBHOOK_SECRET")
    if not configured:
        return True
    return _matches(configured, header_secret)

async def admin_route_guard(request: Request) -> dict:
    """Guard for rule-management routes.

    Requires Authorization: Bearer <ADMIN_API_TOKEN> when ADMIN_API_TOKEN is set.
    """
    configured = _configured("ADMIN_API_TOKEN")
    if not configured:
        return {"actor_id": ADMIN_ACTOR}

    auth_header = request.headers.get("Authorization") or ""
    token = auth_header.split(" ", 1)[1] if auth_header.startswith("Bearer ") else None
    if not _matches(configured, token):
        logger.warning(f"Rejected admin request to {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return {"actor_id": ADMIN_ACTOR}
