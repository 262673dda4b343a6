# app/api/routers/notifications.py - Escalation rules and fee reminders
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Dict, List, Optional, Tuple, Literal

from app.core.clock import Clock
from app.core.db import get_db
from app.core.security import CallerIdentity, COLLECTOR_ROLES, STAFF_ROLES
from app.api.deps.auth import require_roles
from app.api.deps.tenancy import get_clock, get_channels, pagination
from app.schemas.common import Page
from app.schemas.notification import (
    EscalationRulesReplace, EscalationRuleOut, SendReminders, RunEscalation,
    ReminderCount, ReminderLogOut, Channel,
)
from app.services.escalation_service import EscalationService
from app.services.notification_channels import NotificationChannel

router = APIRouter()

collectors = require_roles(sorted(COLLECTOR_ROLES))


@router.get("/escalation-rules", response_model=List[EscalationRuleOut])
async def get_escalation_rules(
    caller: CallerIdentity = Depends(require_roles(sorted(STAFF_ROLES))),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Current rules; the default ladder is installed on first read"""
    rules = EscalationService(db, clock, channels={}).ensure_default_rules()
    return [EscalationRuleOut.model_validate(r) for r in rules]


@router.put("/escalation-rules", response_model=List[EscalationRuleOut])
async def replace_escalation_rules(
    data: EscalationRulesReplace,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Replace the whole rule set"""
    rules = EscalationService(db, clock, channels={}).replace_rules([r.model_dump() for r in data.rules])
    return [EscalationRuleOut.model_validate(r) for r in rules]


@router.post("/reminders/run", response_model=List[ReminderLogOut])
def run_escalation(
    data: RunEscalation,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    channels: Dict[str, NotificationChannel] = Depends(get_channels),
    db: Session = Depends(get_db),
):
    """
    One escalation pass over outstanding dues. Each obligation is reminded
    at most once per rule, so repeated runs on the same day send nothing new.
    """
    logs = EscalationService(db, clock, channels).run(clock.today(), student_ids=data.student_ids)
    return [ReminderLogOut.model_validate(log) for log in logs]


@router.post("/reminders/send", response_model=ReminderCount)
def send_reminders(
    data: SendReminders,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    channels: Dict[str, NotificationChannel] = Depends(get_channels),
    db: Session = Depends(get_db),
):
    sent = EscalationService(db, clock, channels).send_reminders(
        data.student_ids, channel=data.channel, message=data.message, today=clock.today()
    )
    return ReminderCount(sent=sent)


@router.get("/reminders/logs", response_model=Page[ReminderLogOut])
async def list_reminder_logs(
    channel: Optional[Channel] = None,
    log_status: Optional[Literal["sent", "failed"]] = Query(None, alias="status"),
    student_id: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination),
    caller: CallerIdentity = Depends(require_roles(sorted(STAFF_ROLES))),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    page, limit = paging
    items, total = EscalationService(db, clock, channels={}).list_logs(
        page, limit, channel=channel, status=log_status, student_id=student_id
    )
    return Page[ReminderLogOut].build(items, page, limit, total, ReminderLogOut)
