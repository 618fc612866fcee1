from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class TriggerEvent(str, Enum):
    CHECKLIST_ENTRADA = "checklist_entrada"
    CHECKLIST_SAIDA = "checklist_saida"
    EVENT_CREATED = "event_created"
    # Declared for future rule types; no payload path matches these yet
    STATUS_CHANGED = "status_changed"
    EVENT_UPDATED = "event_updated"

# Triggers the matcher can actually produce
MATCHABLE_TRIGGERS = (
    TriggerEvent.CHECKLIST_ENTRADA,
    TriggerEvent.CHECKLIST_SAIDA,
    TriggerEvent.EVENT_CREATED,
)

class ActionType(str, Enum):
    WHATSAPP_MESSAGE = "whatsapp_message"

class MutationType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

class DispatchStatus(str, Enum):
    SUCCESS = "success"
    TEST = "test"
    ERROR = "error"

class RuleChange(str, Enum):
    CREATED = "created"
    TOGGLED = "toggled"
    DELETED = "deleted"
    TEST_SENT = "test_sent"

# ============================================================================
# MODELS
# ============================================================================

class ActionConfig(BaseModel):
    """Delivery settings of a rule.

    delay_seconds and max_retries are persisted but reserved: the engine
    sends once, immediately.
    """
    model_config = ConfigDict(extra="ignore")

    message: str = ""
    phone_source: Optional[str] = None  # informational only
    delay_seconds: int = 0
    max_retries: int = 0
    test_mode: bool = False

class AutomationRule(BaseModel):
    model_config = ConfigDict(extra="ignore")

    automation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    active: bool = True
    trigger_event: TriggerEvent
    trigger_conditions: Optional[Dict[str, Any]] = None  # reserved, never evaluated
    action_type: ActionType = ActionType.WHATSAPP_MESSAGE
    action_config: ActionConfig = Field(default_factory=ActionConfig)
    trigger_count: int = 0
    last_triggered_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class TriggerPayload(BaseModel):
    """Invocation payload of the automation webhook (database change event)."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: MutationType
    table: str = Field(..., min_length=1)
    db_schema: Optional[str] = Field(None, alias="schema")  # informational
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None
    event_type: Optional[str] = None

    @field_validator("record", "old_record")
    @classmethod
    def _flat_values(cls, value):
        if value is None:
            return value
        for key, item in value.items():
            if isinstance(item, (dict, list)):
                raise ValueError(f"field '{key}' must be a flat value")
        return value

class DispatchResult(BaseModel):
    """Outcome of one rule within an invocation. Never persisted."""
    automation_id: str
    automation_name: str
    status: DispatchStatus
    message_id: Optional[str] = None
    detail: str = ""

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "automation_id": self.automation_id,
            "automation_name": self.automation_name,
            "status": self.status.value,
        }
        if self.message_id:
            body["messageId"] = self.message_id
        if self.status == DispatchStatus.ERROR:
            body["reason"] = self.detail
        else:
            body["message"] = self.detail
        return body

class RuleHistoryEntry(BaseModel):
    """One management action on an automation rule."""
    model_config = ConfigDict(extra="ignore")

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    automation_id: str
    change: RuleChange
    actor_id: Optional[str] = None
    fields: Optional[Dict[str, Dict[str, Any]]] = None  # field -> {"from", "to"}
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

# ============================================================================
# REQUEST MODELS (rule management + WhatsApp)
# ============================================================================

class AutomationCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    trigger_event: TriggerEvent
    message: str = Field(..., min_length=5, max_length=500)
    trigger_conditions: Optional[Dict[str, Any]] = None
    phone_source: Optional[str] = None
    delay_seconds: int = Field(0, ge=0)
    max_retries: int = Field(0, ge=0)
    test_mode: bool = False
    active: bool = True

class AutomationToggle(BaseModel):
    active: bool

class TemplateRequest(BaseModel):
    message: str = ""

class TestSendRequest(BaseModel):
    phone: str = Field(..., min_length=1)

class WhatsAppSendRequest(BaseModel):
    phone: Optional[str] = None
    message: Optional[str] = None
    test_mode: bool = False
