# app/models/expense.py - School expenses paid out of the ledger
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from sqlalchemy import String, Numeric, Date, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utcnow
from app.models.base import Base
from app.models.fee import new_id

ExpenseCategory = Literal[
    "salary", "utilities", "maintenance", "supplies", "infrastructure", "events", "other"
]
ExpenseStatus = Literal["pending_approval", "approved", "rejected", "paid"]


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    expense_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    category: Mapped[ExpenseCategory] = mapped_column(String(24), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    vendor_name: Mapped[Optional[str]] = mapped_column(String(255))
    invoice_number: Mapped[Optional[str]] = mapped_column(String(64))
    invoice_date: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[ExpenseStatus] = mapped_column(String(24), nullable=False, default="pending_approval")

    requested_by: Mapped[str] = mapped_column(String(255), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    approved_by: Mapped[Optional[str]] = mapped_column(String(255))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    approval_remarks: Mapped[Optional[str]] = mapped_column(String(500))
    rejected_by: Mapped[Optional[str]] = mapped_column(String(255))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(500))
    paid_by: Mapped[Optional[str]] = mapped_column(String(255))
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    payment_ref: Mapped[Optional[str]] = mapped_column(String(64))

    __table_args__ = (
        CheckConstraint(
            "category IN ('salary','utilities','maintenance','supplies','infrastructure','events','other')",
            name="ck_expenses_category",
        ),
        CheckConstraint(
            "status IN ('pending_approval','approved','rejected','paid')", name="ck_expenses_status"
        ),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )
