"""
WhatsApp dispatcher.
- Phone normalization to 55 + area code + number
- Test mode never calls the gateway
- Gateway success / rejection / transport error all come back as outcomes
"""
import aiohttp
import pytest
from unittest.mock import AsyncMock, patch

from models import DispatchStatus
from services.whatsapp_service import WhatsAppService, normalize_phone


class _FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self._body = body

    async def json(self, content_type=None):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class _FakeSession:
    def __init__(self, response, calls):
        self._response = response
        self._calls = calls

    def post(self, url, json=None, headers=None):
        self._calls.append({"url": url, "json": json, "headers": headers})
        return self._response

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


def _service(token="tok-123"):
    env = {"WHATSAPP_API_URL": "https://gateway.test/", "WHATSAPP_API_TOKEN": token}
    with patch.dict("os.environ", env):
        return WhatsAppService()


def _gateway(status, body, calls):
    session = _FakeSession(_FakeResponse(status, body), calls)
    return patch("services.whatsapp_service.aiohttp.ClientSession", lambda timeout=None: session)


# ============================================================================
# NORMALIZATION
# ============================================================================

@pytest.mark.parametrize("raw,expected", [
    ("5511999998888", "5511999998888"),
    ("11999998888", "5511999998888"),
    ("999998888", "5511999998888"),
    ("99998888", "551199998888"),
    ("1133334444", "551133334444"),
    ("+55 (11) 98888-7777", "5511988887777"),
    ("(11) 98765-4321", "5511987654321"),
    ("", ""),
    (None, ""),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_normalize_phone_is_idempotent():
    once = normalize_phone("11 98888-7777")
    assert normalize_phone(once) == once


# ============================================================================
# DISPATCH
# ============================================================================

@pytest.mark.asyncio
async def test_test_mode_does_not_call_gateway():
    service = _service()
    calls = []
    with _gateway(200, {"messageId": "x"}, calls):
        outcome = await service.dispatch("11988887777", "Olá", test_mode=True)
    assert outcome.status == DispatchStatus.TEST
    assert outcome.message_id.startswith("test-")
    assert "5511988887777" in outcome.detail
    assert calls == []


@pytest.mark.asyncio
async def test_success_posts_normalized_number_and_text():
    service = _service()
    calls = []
    with _gateway(200, {"messageId": "wamid-1"}, calls):
        outcome = await service.dispatch("11988887777", "Olá João")
    assert outcome.status == DispatchStatus.SUCCESS
    assert outcome.message_id == "wamid-1"
    assert calls[0]["url"] == "https://gateway.test/send/text"
    assert calls[0]["json"] == {"number": "5511988887777", "text": "Olá João"}
    assert calls[0]["headers"]["token"] == "tok-123"


@pytest.mark.asyncio
async def test_success_accepts_nested_key_id():
    service = _service()
    with _gateway(200, {"key": {"id": "nested-7"}}, []):
        outcome = await service.dispatch("11988887777", "Olá")
    assert outcome.message_id == "nested-7"


@pytest.mark.asyncio
async def test_success_without_id_uses_sentinel():
    service = _service()
    with _gateway(201, {}, []):
        outcome = await service.dispatch("11988887777", "Olá")
    assert outcome.status == DispatchStatus.SUCCESS
    assert outcome.message_id == "sent"


@pytest.mark.asyncio
async def test_gateway_rejection_uses_gateway_message():
    service = _service()
    with _gateway(400, {"message": "number not on WhatsApp"}, []):
        outcome = await service.dispatch("11988887777", "Olá")
    assert outcome.status == DispatchStatus.ERROR
    assert outcome.detail == "number not on WhatsApp"
    assert outcome.message_id is None


@pytest.mark.asyncio
async def test_error_field_in_2xx_body_is_a_failure():
    service = _service()
    with _gateway(200, {"error": "instance disconnected"}, []):
        outcome = await service.dispatch("11988887777", "Olá")
    assert outcome.status == DispatchStatus.ERROR
    assert outcome.detail == "instance disconnected"


@pytest.mark.asyncio
async def test_non_json_failure_gets_generic_message():
    service = _service()
    with _gateway(502, ValueError("not json"), []):
        outcome = await service.dispatch("11988887777", "Olá")
    assert outcome.status == DispatchStatus.ERROR
    assert outcome.detail == "Failed to send message via WhatsApp"


@pytest.mark.asyncio
async def test_transport_exception_is_converted():
    service = _service()
    with patch.object(service, "_post", AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))):
        outcome = await service.dispatch("11988887777", "Olá")
    assert outcome.status == DispatchStatus.ERROR
    assert "refused" in outcome.detail


@pytest.mark.asyncio
async def test_missing_token_is_an_error_outside_test_mode():
    service = _service(token="")
    outcome = await service.dispatch("11988887777", "Olá")
    assert outcome.status == DispatchStatus.ERROR
    assert "missing token" in outcome.detail


@pytest.mark.asyncio
async def test_missing_phone_or_message():
    service = _service()
    assert (await service.dispatch("", "Olá")).status == DispatchStatus.ERROR
    assert (await service.dispatch("11988887777", "")).status == DispatchStatus.ERROR
