# app/services/fee_status.py - Pure status and money helpers for obligations
import calendar
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

Number = Union[Decimal, int, str]


def money(value: Number) -> Decimal:
    """Normalize to a two-place Decimal"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_status(total: Number, discount: Number, paid: Number, due_date: date, today: date) -> str:
    """
    Status of an obligation given its amounts and the current date.

    remaining <= 0 is paid; any payment with something left is partial;
    nothing paid and past the due date is overdue; otherwise pending.
    """
    paid = money(paid)
    remaining = money(total) - money(discount) - paid
    if remaining <= 0:
        return "paid"
    if paid > 0:
        return "partial"
    if today > due_date:
        return "overdue"
    return "pending"


def project_status(fee, today: date) -> str:
    """Status of a StudentFee (or Installment-like object) as of ``today``"""
    return compute_status(
        fee.total_amount,
        getattr(fee, "discount_amount", ZERO),
        fee.paid_amount,
        fee.due_date,
        today,
    )


def refresh_status(fee, today: date) -> bool:
    """Rewrite the stored status; True when it changed"""
    status = project_status(fee, today)
    if fee.status != status:
        fee.status = status
        return True
    return False


def days_overdue(due_date: date, today: date) -> int:
    return max(0, (today - due_date).days)


def due_date_for(period_start: date, due_day: int) -> date:
    """The due day inside the period's month, clamped to the last day of that month"""
    last_day = calendar.monthrange(period_start.year, period_start.month)[1]
    return date(period_start.year, period_start.month, min(due_day, last_day))
