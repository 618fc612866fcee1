"""
Trigger matching: explicit event_type hint first, then legacy inference from table + row.
"""
import pytest

from models import TriggerEvent, TriggerPayload
from services.trigger_matcher import match_trigger


def _payload(**kwargs):
    data = {"type": "UPDATE", "table": "checklists", "record": {}}
    data.update(kwargs)
    return TriggerPayload.model_validate(data)


@pytest.mark.parametrize("hint,expected", [
    ("entrada", TriggerEvent.CHECKLIST_ENTRADA),
    ("inicial", TriggerEvent.CHECKLIST_ENTRADA),
    ("saida", TriggerEvent.CHECKLIST_SAIDA),
    ("event_created", TriggerEvent.EVENT_CREATED),
])
def test_hint_lookup(hint, expected):
    assert match_trigger(_payload(event_type=hint)) == expected


def test_unknown_hint_is_no_match_even_when_row_would_infer():
    payload = _payload(event_type="pagamento", record={"status": "completed", "type": "entrada"})
    assert match_trigger(payload) is None


def test_hint_wins_over_legacy_inference():
    payload = _payload(type="INSERT", table="events", event_type="saida", record={"name": "Festa"})
    assert match_trigger(payload) == TriggerEvent.CHECKLIST_SAIDA


def test_blank_hint_falls_back_to_inference():
    payload = _payload(event_type="  ", record={"status": "completed", "type": "saida"})
    assert match_trigger(payload) == TriggerEvent.CHECKLIST_SAIDA


@pytest.mark.parametrize("checklist_type,expected", [
    ("entrada", TriggerEvent.CHECKLIST_ENTRADA),
    ("inicial", TriggerEvent.CHECKLIST_ENTRADA),
    ("saida", TriggerEvent.CHECKLIST_SAIDA),
    ("parcial", None),
])
def test_completed_checklist_inference(checklist_type, expected):
    payload = _payload(record={"event_id": "evt-1", "status": "completed", "type": checklist_type})
    assert match_trigger(payload) == expected


def test_incomplete_checklist_is_no_match():
    payload = _payload(record={"status": "in_progress", "type": "entrada"})
    assert match_trigger(payload) is None


def test_event_insert_infers_event_created():
    payload = _payload(type="INSERT", table="events", record={"event_id": "evt-1"})
    assert match_trigger(payload) == TriggerEvent.EVENT_CREATED


@pytest.mark.parametrize("mutation", ["UPDATE", "DELETE"])
def test_event_update_or_delete_is_no_match(mutation):
    payload = _payload(type=mutation, table="events", record={"event_id": "evt-1"})
    assert match_trigger(payload) is None


def test_unrelated_table_is_no_match():
    payload = _payload(type="INSERT", table="inventory", record={"item": "gelo"})
    assert match_trigger(payload) is None
