"""
Rule history: field changes per management action, never failing the action itself.
"""
import pytest
from unittest.mock import AsyncMock, patch

from models import RuleChange
from utils.rule_history import changed_fields, get_rule_history, record_rule_change


def test_changed_fields_only_lists_differences():
    assert changed_fields({"active": True, "name": "A"}, {"active": False, "name": "A"}) == {
        "active": {"from": True, "to": False},
    }
    assert changed_fields(None, {"name": "A"}) == {"name": {"from": None, "to": "A"}}
    assert changed_fields({"active": True}, None) == {}


@pytest.mark.asyncio
async def test_record_rule_change_stores_json_entry(db):
    with patch("utils.rule_history.database.get_db", return_value=db):
        entry_id = await record_rule_change(
            RuleChange.TOGGLED, "a1", actor_id="admin",
            before={"active": True}, after={"active": False}, ip_address="10.0.0.1",
        )

    stored = db.automation_history.insert_one.call_args.args[0]
    assert stored["entry_id"] == entry_id
    assert stored["change"] == "toggled"
    assert stored["fields"] == {"active": {"from": True, "to": False}}
    assert stored["details"] is None
    assert isinstance(stored["timestamp"], str)


@pytest.mark.asyncio
async def test_unchanged_state_stores_no_fields(db):
    with patch("utils.rule_history.database.get_db", return_value=db):
        await record_rule_change(RuleChange.TOGGLED, "a1", before={"active": True}, after={"active": True})

    assert db.automation_history.insert_one.call_args.args[0]["fields"] is None


@pytest.mark.asyncio
async def test_store_failure_is_not_raised(db):
    db.automation_history.insert_one = AsyncMock(side_effect=Exception("disk full"))

    with patch("utils.rule_history.database.get_db", return_value=db):
        assert await record_rule_change(RuleChange.DELETED, "a1") is None


@pytest.mark.asyncio
async def test_history_read_failure_returns_empty(db):
    db.automation_history.find.return_value.to_list = AsyncMock(side_effect=Exception("timeout"))

    with patch("utils.rule_history.database.get_db", return_value=db):
        assert await get_rule_history("a1") == []
