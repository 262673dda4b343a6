from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime
from decimal import Decimal

from app.schemas.common import RequestModel

Channel = Literal["sms", "email", "whatsapp"]


class EscalationRuleIn(RequestModel):
    name: str = Field(..., min_length=1, max_length=128)
    threshold_days: int = Field(..., ge=0)
    channel: Channel
    recipient: Literal["parent", "student", "principal"] = "parent"
    template: str = Field(..., min_length=1, max_length=2000)
    is_active: bool = True


class EscalationRulesReplace(RequestModel):
    rules: List[EscalationRuleIn]


class EscalationRuleOut(BaseModel):
    id: str
    name: str
    threshold_days: int
    position: int
    channel: str
    recipient: str
    template: str
    is_active: bool

    class Config:
        from_attributes = True


class SendReminders(RequestModel):
    student_ids: List[str] = Field(..., min_length=1)
    channel: Optional[Channel] = None
    message: Optional[str] = Field(None, max_length=2000)


class RunEscalation(RequestModel):
    student_ids: Optional[List[str]] = None


class ReminderCount(BaseModel):
    sent: int


class ReminderLogOut(BaseModel):
    id: str
    student_fee_id: str
    student_id: str
    student_name: str
    student_class: str
    escalation_rule_id: Optional[str]
    escalation_level: int
    channel: str
    recipient: str
    message: str
    days_overdue: int
    amount: Decimal
    status: str
    error: Optional[str]
    sent_at: datetime

    class Config:
        from_attributes = True
