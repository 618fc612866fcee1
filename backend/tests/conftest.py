"""
Pytest configuration and shared test helpers for backend tests.
"""
import os
import sys
from pathlib import Path

# Skip MongoDB connection when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest
from unittest.mock import AsyncMock, MagicMock

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app)."""
    return TestClient(app)


@pytest.fixture
def open_access(monkeypatch):
    """No admin token / webhook secret configured."""
    monkeypatch.delenv("ADMIN_API_TOKEN", raising=False)
    monkeypatch.delenv("AUTOMATION_WEBHOOK_SECRET", raising=False)


def make_rule_doc(automation_id="auto-1", name="Rule", trigger_event="checklist_entrada",
                  message="Olá {cliente}", test_mode=False, active=True, **extra):
    """Automation document as stored in MongoDB."""
    doc = {
        "automation_id": automation_id,
        "name": name,
        "active": active,
        "trigger_event": trigger_event,
        "trigger_conditions": None,
        "action_type": "whatsapp_message",
        "action_config": {"message": message, "test_mode": test_mode},
        "trigger_count": 0,
        "last_triggered_at": None,
    }
    doc.update(extra)
    return doc


def mock_db():
    """MagicMock db whose collections answer Motor calls with AsyncMocks."""
    db = MagicMock()
    for name in ("automations", "events", "automation_history"):
        collection = getattr(db, name)
        collection.find_one = AsyncMock(return_value=None)
        collection.insert_one = AsyncMock()
        collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
        collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=[])
        cursor.sort.return_value = cursor
        cursor.limit.return_value = cursor
        collection.find = MagicMock(return_value=cursor)
    return db


@pytest.fixture
def db():
    return mock_db()


@pytest.fixture
def rule_doc():
    """Factory for stored automation documents."""
    return make_rule_doc
