"""WhatsApp Service - outbound messages through the UAZapi gateway.

Numbers are normalized to Brazilian digits-only form (55 + area code + number)
before every send. Test mode never contacts the gateway.
One attempt per call: no retries.
"""
import aiohttp
import asyncio
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from models import DispatchStatus

logger = logging.getLogger(__name__)

COUNTRY_CODE = "55"
DEFAULT_AREA_CODE = "11"

DEFAULT_API_URL = "https://nexus-ultra.uazapi.com"
REQUEST_TIMEOUT_SECONDS = float(os.getenv("WHATSAPP_TIMEOUT_SECONDS", "10"))

GENERIC_FAILURE = "Failed to send message via WhatsApp"


def normalize_phone(phone: Optional[str]) -> str:
    """Digits-only number with country code.

    8/9 digits (no area code) get 55 + default area code, 10/11 digits get 55,
    anything else is assumed to already carry the country code.
    """
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) in (8, 9):
        return f"{COUNTRY_CODE}{DEFAULT_AREA_CODE}{digits}"
    if len(digits) in (10, 11):
        return f"{COUNTRY_CODE}{digits}"
    return digits


def mask_phone(phone: str) -> str:
    return f"{phone[:7]}***" if phone else ""


@dataclass
class DispatchOutcome:
    status: DispatchStatus
    detail: str
    message_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != DispatchStatus.ERROR


def _extract_message_id(body: Dict[str, Any]) -> str:
    key = body.get("key")
    nested = key.get("id") if isinstance(key, dict) else None
    return body.get("messageId") or nested or "sent"


class WhatsAppService:

    def __init__(self):
        self.api_url = (os.getenv("WHATSAPP_API_URL") or DEFAULT_API_URL).rstrip("/")
        self.token = os.getenv("WHATSAPP_API_TOKEN")
        self.timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)

    def is_configured(self) -> bool:
        return bool(self.api_url and self.token)

    async def dispatch(self, phone: str, message: str, test_mode: bool = False) -> DispatchOutcome:
        """Send message to phone. Never raises; failures come back as status=error."""
        number = normalize_phone(phone)
        if not number:
            return DispatchOutcome(DispatchStatus.ERROR, "Missing phone number")
        if not message:
            return DispatchOutcome(DispatchStatus.ERROR, "Missing message")

        if test_mode:
            logger.info(f"[WhatsApp TEST MODE] Would send to {mask_phone(number)}: {message[:100]}")
            return DispatchOutcome(
                DispatchStatus.TEST,
                f"[TEST MODE] Message would be sent to {number}",
                message_id=f"test-{int(time.time() * 1000)}",
            )

        if not self.token:
            logger.error("WhatsApp gateway token not configured")
            return DispatchOutcome(
                DispatchStatus.ERROR,
                "WhatsApp service not properly configured - missing token",
            )

        try:
            return await self._post(number, message)
        except aiohttp.ClientError as e:
            logger.error(f"WhatsApp connection error for {mask_phone(number)}: {e}")
            return DispatchOutcome(DispatchStatus.ERROR, f"Connection error: {e}")
        except asyncio.TimeoutError:
            logger.error(f"WhatsApp request timed out for {mask_phone(number)}")
            return DispatchOutcome(
                DispatchStatus.ERROR,
                f"Request timed out after {REQUEST_TIMEOUT_SECONDS:g}s",
            )
        except Exception as e:
            logger.exception(f"WhatsApp unexpected error for {mask_phone(number)}: {e}")
            return DispatchOutcome(DispatchStatus.ERROR, f"Internal error: {e}")

    async def _post(self, number: str, message: str) -> DispatchOutcome:
        headers = {"Content-Type": "application/json", "token": self.token}
        payload = {"number": number, "text": message}

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(f"{self.api_url}/send/text", json=payload, headers=headers) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
                if not isinstance(body, dict):
                    body = {}

                if 200 <= response.status < 300 and not body.get("error"):
                    message_id = _extract_message_id(body)
                    logger.info(f"WhatsApp sent to {mask_phone(number)}: {message_id}")
                    return DispatchOutcome(
                        DispatchStatus.SUCCESS,
                        "Message sent successfully",
                        message_id=message_id,
                    )

                error = body.get("error")
                detail = body.get("message") or (error if isinstance(error, str) else None) or GENERIC_FAILURE
                logger.warning(f"WhatsApp gateway rejected message ({response.status}): {detail}")
                return DispatchOutcome(DispatchStatus.ERROR, detail)


# Singleton instance
whatsapp_service = WhatsAppService()
