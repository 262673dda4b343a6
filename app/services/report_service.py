# app/services/report_service.py - Collection/due reports and finance stats
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, Any, List

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.errors import ValidationError
from app.models.payment import Payment
from app.repositories.payment_repo import PaymentRepository
from app.repositories.student_fee_repo import StudentFeeRepository
from app.services.concession_service import ConcessionService
from app.services.dues_service import DuesService
from app.services.expense_service import ExpenseService
from app.services.fee_status import ZERO, money

AGING_BUCKETS = (("0-30", 0, 30), ("31-60", 31, 60), ("61-90", 61, 90), ("90+", 91, None))
TOP_DEFAULTERS = 10


def _bucket(days: int) -> str:
    for label, low, high in AGING_BUCKETS:
        if days >= low and (high is None or days <= high):
            return label
    return AGING_BUCKETS[-1][0]


def _sorted_totals(totals: Dict[str, Decimal]) -> List[Dict[str, Any]]:
    return [{"key": k, "amount": v} for k, v in sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))]


class ReportService:
    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    def collection_report(self, date_from: date, date_to: date) -> Dict[str, Any]:
        if date_to < date_from:
            raise ValidationError("date_to is before date_from")
        start = datetime.combine(date_from, time.min)
        end = datetime.combine(date_to + timedelta(days=1), time.min)
        payments = PaymentRepository(self.db).payments_between(start, end)

        by_mode, by_fee_type, by_class, daily = (defaultdict(lambda: ZERO) for _ in range(4))
        receipts = set()
        for p in payments:
            amount = money(p.amount)
            by_mode[p.payment_mode] += amount
            by_fee_type[p.fee_type_name] += amount
            by_class[p.student_class] += amount
            daily[p.collected_at.date().isoformat()] += amount
            receipts.add(p.receipt_number)

        return {
            "date_from": date_from,
            "date_to": date_to,
            "total_collected": sum(by_mode.values(), ZERO),
            "receipt_count": len(receipts),
            "by_payment_mode": _sorted_totals(by_mode),
            "by_fee_type": _sorted_totals(by_fee_type),
            "by_class": _sorted_totals(by_class),
            "daily": [{"key": k, "amount": daily[k]} for k in sorted(daily)],
        }

    def due_report(self, today: date = None) -> Dict[str, Any]:
        today = today or self.clock.today()
        dues = DuesService(self.db).outstanding(today)

        by_class = defaultdict(lambda: ZERO)
        buckets = {label: ZERO for label, _, _ in AGING_BUCKETS}
        per_student: Dict[str, Dict[str, Any]] = {}
        for due in dues:
            fee = due.student_fee
            by_class[fee.student_class] += due.remaining_due
            buckets[_bucket(due.days_overdue)] += due.remaining_due
            entry = per_student.setdefault(fee.student_id, {
                "student_id": fee.student_id,
                "student_name": fee.student_name,
                "student_class": fee.student_class,
                "amount": ZERO,
                "max_days_overdue": 0,
            })
            entry["amount"] += due.remaining_due
            entry["max_days_overdue"] = max(entry["max_days_overdue"], due.days_overdue)

        defaulters = sorted(per_student.values(), key=lambda s: (-s["amount"], s["student_id"]))
        return {
            "as_of": today,
            "total_outstanding": sum((d.remaining_due for d in dues), ZERO),
            "students_with_dues": len(per_student),
            "by_class": _sorted_totals(by_class),
            "aging": [{"key": label, "amount": buckets[label]} for label, _, _ in AGING_BUCKETS],
            "top_defaulters": defaulters[:TOP_DEFAULTERS],
        }

    def stats(self, today: date = None) -> Dict[str, Any]:
        today = today or self.clock.today()
        total_collected = money(self.db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0))
        ).scalar_one())

        month_start = datetime.combine(today.replace(day=1), time.min)
        this_month = money(self.db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.collected_at >= month_start)
        ).scalar_one())

        fees = StudentFeeRepository(self.db).all_matching()
        expected = sum((money(f.total_amount) - money(f.discount_amount) for f in fees), ZERO)
        paid = sum((money(f.paid_amount) for f in fees), ZERO)
        dues = DuesService(self.db).outstanding(today)

        return {
            "total_collected": total_collected,
            "total_pending": sum((d.remaining_due for d in dues), ZERO),
            "this_month_collection": this_month,
            "collection_rate": float(round(paid / expected * 100, 2)) if expected > 0 else 0.0,
            "pending_expense_approvals": ExpenseService(self.db, self.clock).pending_approvals(),
            "pending_concession_value": ConcessionService(self.db, self.clock).pending_total(),
            "overdue_students": len({d.student_fee.student_id for d in dues if d.days_overdue > 0}),
        }
