# app/models/notification.py - Escalation rules and the reminder log
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Numeric, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utcnow
from app.models.base import Base
from app.models.fee import new_id

ReminderChannel = Literal["sms", "email", "whatsapp"]
ReminderRecipient = Literal["parent", "student", "principal"]
REMINDER_CHANNELS = ("sms", "email", "whatsapp")


class EscalationRule(Base):
    __tablename__ = "escalation_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    threshold_days: Mapped[int] = mapped_column(Integer, nullable=False)
    # Position in the configured list; breaks ties between equal thresholds
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    channel: Mapped[ReminderChannel] = mapped_column(String(16), nullable=False)
    recipient: Mapped[ReminderRecipient] = mapped_column(String(16), nullable=False, default="parent")
    template: Mapped[str] = mapped_column(String(2000), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("threshold_days >= 0", name="ck_escalation_rules_threshold"),
        CheckConstraint("channel IN ('sms','email','whatsapp')", name="ck_escalation_rules_channel"),
        CheckConstraint(
            "recipient IN ('parent','student','principal')", name="ck_escalation_rules_recipient"
        ),
    )


class ReminderLog(Base):
    __tablename__ = "reminder_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    student_fee_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("student_fees.id", ondelete="CASCADE"), index=True, nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_class: Mapped[str] = mapped_column(String(32), nullable=False)
    escalation_rule_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("escalation_rules.id", ondelete="SET NULL"))
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    channel: Mapped[ReminderChannel] = mapped_column(String(16), nullable=False)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    message: Mapped[str] = mapped_column(String(2000), nullable=False)
    days_overdue: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="sent")  # sent/failed
    error: Mapped[Optional[str]] = mapped_column(String(500))
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("status IN ('sent','failed')", name="ck_reminder_logs_status"),
        Index("ix_reminder_logs_fee_rule", "student_fee_id", "escalation_rule_id"),
    )
