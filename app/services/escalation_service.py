# app/services/escalation_service.py - Threshold-based dunning over outstanding dues
from datetime import date
from typing import Optional, List, Dict, Any, Sequence
import logging

from jinja2 import TemplateError
from jinja2.sandbox import SandboxedEnvironment
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.db import atomic
from app.core.errors import ValidationError
from app.models.notification import EscalationRule, ReminderLog, REMINDER_CHANNELS
from app.repositories.base import paginate
from app.services.dues_service import DuesService, OutstandingDue
from app.services.notification_channels import NotificationChannel, default_channels

logger = logging.getLogger(__name__)

DEFAULT_RULES = [
    {
        "name": "First reminder",
        "threshold_days": 7,
        "channel": "sms",
        "recipient": "parent",
        "template": "Dear Parent, fee of {{ amount }} for {{ student }} ({{ fee_type }}) is "
                    "{{ days }} days overdue. Please pay at the earliest.",
    },
    {
        "name": "Second reminder",
        "threshold_days": 14,
        "channel": "email",
        "recipient": "parent",
        "template": "Dear Parent, this is a reminder that {{ amount }} for {{ student }} "
                    "({{ fee_type }}, due {{ due_date }}) is {{ days }} days overdue.",
    },
    {
        "name": "Final notice",
        "threshold_days": 30,
        "channel": "whatsapp",
        "recipient": "parent",
        "template": "Final notice: fee of {{ amount }} for {{ student }} is {{ days }} days overdue. "
                    "Please contact the accounts office.",
    },
    {
        "name": "Principal escalation",
        "threshold_days": 45,
        "channel": "email",
        "recipient": "principal",
        "template": "{{ student }} has {{ amount }} ({{ fee_type }}) outstanding for {{ days }} days.",
    },
]

MANUAL_TEMPLATE = "Dear Parent, fee of {{ amount }} for {{ student }} ({{ fee_type }}) is pending."

# Templates come from staff; values only ever enter as render variables
templates = SandboxedEnvironment()


def compile_template(source: str, label: str = "template"):
    try:
        return templates.from_string(source)
    except TemplateError as e:
        raise ValidationError(f"Invalid {label}: {e}")


def select_rule(rules: Sequence[EscalationRule], overdue_days: int) -> Optional[EscalationRule]:
    """
    The active rule with the largest threshold not above ``overdue_days``.

    ``rules`` must be in ascending (threshold, position) order; on equal
    thresholds the first one wins.
    """
    chosen = None
    for rule in rules:
        if not rule.is_active:
            continue
        if rule.threshold_days > overdue_days:
            break
        if chosen is None or rule.threshold_days > chosen.threshold_days:
            chosen = rule
    return chosen


class EscalationService:
    def __init__(self, db: Session, clock: Clock = system_clock,
                 channels: Optional[Dict[str, NotificationChannel]] = None):
        self.db = db
        self.clock = clock
        self.channels = channels if channels is not None else default_channels()

    # ---------- rules ----------

    def rules(self) -> List[EscalationRule]:
        return list(self.db.execute(
            select(EscalationRule).order_by(EscalationRule.threshold_days, EscalationRule.position)
        ).scalars().all())

    def replace_rules(self, rules: List[Dict[str, Any]]) -> List[EscalationRule]:
        """Swap the whole rule set; reminder logs keep their level and channel"""
        for rule in rules:
            if rule.get("channel") not in REMINDER_CHANNELS:
                raise ValidationError(f"Unknown channel '{rule.get('channel')}'", channel=rule.get("channel"))
            if int(rule.get("threshold_days", -1)) < 0:
                raise ValidationError("threshold_days must be >= 0", name=rule.get("name"))
            compile_template(rule.get("template") or "", f"template for '{rule.get('name')}'")

        ordered = sorted(enumerate(rules), key=lambda pair: (int(pair[1]["threshold_days"]), pair[0]))
        with atomic(self.db):
            for existing in self.rules():
                self.db.delete(existing)
            self.db.flush()
            created = []
            for position, (_, fields) in enumerate(ordered):
                rule = EscalationRule(
                    name=fields["name"],
                    threshold_days=int(fields["threshold_days"]),
                    channel=fields["channel"],
                    recipient=fields.get("recipient", "parent"),
                    template=fields["template"],
                    is_active=fields.get("is_active", True),
                    position=position,
                )
                self.db.add(rule)
                created.append(rule)

        logger.info(f"Escalation rules replaced: {len(created)} rule(s)")
        return created

    def ensure_default_rules(self) -> List[EscalationRule]:
        existing = self.rules()
        return existing or self.replace_rules(DEFAULT_RULES)

    # ---------- dispatch ----------

    def _recipient(self, due: OutstandingDue, channel: str, recipient_kind: str) -> str:
        fee = due.student_fee
        if recipient_kind == "principal":
            return settings.PRINCIPAL_EMAIL or ""
        if channel == "email":
            return fee.guardian_email or ""
        return fee.guardian_phone or ""

    def _render(self, template: str, due: OutstandingDue) -> str:
        """
        Raises:
            ValidationError: the template does not compile or touches unsafe attributes
        """
        fee = due.student_fee
        try:
            return compile_template(template).render(
                student=fee.student_name,
                amount=f"{settings.CURRENCY_SYMBOL}{due.remaining_due}",
                days=due.days_overdue,
                fee_type=fee.fee_type_name,
                due_date=fee.due_date.isoformat(),
            )
        except (TemplateError, TypeError, ValueError, ArithmeticError) as e:
            raise ValidationError(f"Reminder template failed to render: {e}", student_fee_id=fee.id)

    def _dispatch(self, due: OutstandingDue, channel_name: str, message: str,
                  rule: Optional[EscalationRule], recipient_kind: str = "parent",
                  error: Optional[str] = None) -> ReminderLog:
        fee = due.student_fee
        recipient = self._recipient(due, channel_name, recipient_kind)
        channel = self.channels.get(channel_name)
        if error:
            sent = False
        elif channel is None:
            sent, error = False, f"channel '{channel_name}' is not configured"
        elif not recipient:
            sent, error = False, "no recipient on record"
        else:
            subject = f"Fee reminder: {fee.student_name} - {fee.fee_type_name}"
            sent = channel.send(recipient, subject, message)
            if not sent:
                error = "delivery failed"

        log = ReminderLog(
            student_fee_id=fee.id,
            student_id=fee.student_id,
            student_name=fee.student_name,
            student_class=fee.student_class,
            escalation_rule_id=rule.id if rule else None,
            escalation_level=(rule.position + 1) if rule else 0,
            channel=channel_name,
            recipient=recipient,
            message=message[:2000],
            days_overdue=due.days_overdue,
            amount=due.remaining_due,
            status="sent" if sent else "failed",
            error=error[:500] if error else None,
            sent_at=self.clock.now(),
        )
        self.db.add(log)
        if sent:
            logger.info(f"Reminder sent via {channel_name} for {fee.student_name} ({fee.id})")
        else:
            logger.warning(f"Reminder via {channel_name} failed for {fee.student_name} ({fee.id}): {error}")
        return log

    def _already_sent(self, fee_id: str, rule_id: str) -> bool:
        return self.db.execute(
            select(ReminderLog.id).where(
                ReminderLog.student_fee_id == fee_id,
                ReminderLog.escalation_rule_id == rule_id,
                ReminderLog.status == "sent",
            ).limit(1)
        ).first() is not None

    def run(self, today: Optional[date] = None, student_ids: Optional[Sequence[str]] = None) -> List[ReminderLog]:
        """
        One escalation pass. Each due gets the most aggressive rule it
        qualifies for, at most once per (obligation, rule).
        """
        today = today or self.clock.today()
        rules = self.ensure_default_rules()
        logs = []
        with atomic(self.db):
            for due in DuesService(self.db).outstanding(today, student_ids=student_ids):
                rule = select_rule(rules, due.days_overdue)
                if rule is None or self._already_sent(due.student_fee.id, rule.id):
                    continue
                try:
                    body, error = self._render(rule.template, due), None
                except ValidationError as e:
                    body, error = rule.template, e.message
                logs.append(self._dispatch(due, rule.channel, body, rule, rule.recipient, error=error))
        logger.info(
            f"Escalation run {today}: {sum(1 for l in logs if l.status == 'sent')} sent, "
            f"{sum(1 for l in logs if l.status == 'failed')} failed"
        )
        return logs

    def send_reminders(self, student_ids: Sequence[str], channel: Optional[str] = None,
                       message: Optional[str] = None, today: Optional[date] = None) -> int:
        """
        Manual reminders for the given students. Returns how many were sent.

        With a channel every outstanding due is reminded through it; without
        one the escalation rules choose, without skipping earlier sends.
        """
        if not student_ids:
            raise ValidationError("At least one student id is required")
        if channel is not None and channel not in REMINDER_CHANNELS:
            raise ValidationError(f"Unknown channel '{channel}'", channel=channel)
        if message:
            compile_template(message, "message template")

        today = today or self.clock.today()
        rules = self.ensure_default_rules()

        # Render everything first so a bad message sends nothing
        outbox = []
        for due in DuesService(self.db).outstanding(today, student_ids=student_ids):
            if channel:
                outbox.append((due, channel, self._render(message or MANUAL_TEMPLATE, due), None, "parent"))
                continue
            rule = select_rule(rules, due.days_overdue)
            if rule is not None:
                body = self._render(message or rule.template, due)
                outbox.append((due, rule.channel, body, rule, rule.recipient))

        sent = 0
        with atomic(self.db):
            for due, channel_name, body, rule, recipient_kind in outbox:
                if self._dispatch(due, channel_name, body, rule, recipient_kind).status == "sent":
                    sent += 1
        return sent

    def list_logs(self, page: int, limit: int, channel: Optional[str] = None, status: Optional[str] = None,
                  student_id: Optional[str] = None):
        stmt = select(ReminderLog)
        if channel:
            stmt = stmt.where(ReminderLog.channel == channel)
        if status:
            stmt = stmt.where(ReminderLog.status == status)
        if student_id:
            stmt = stmt.where(ReminderLog.student_id == student_id)
        stmt = stmt.order_by(ReminderLog.sent_at.desc(), ReminderLog.id)
        return paginate(self.db, stmt, page, limit)
