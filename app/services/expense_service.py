# app/services/expense_service.py - Expense approval workflow, paid out through the ledger
from datetime import date
from typing import Optional, Dict, Any
import logging

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.db import atomic
from app.core.errors import NotFound, InvalidState, ValidationError
from app.core.locks import hold_ledger
from app.models.expense import Expense
from app.repositories.base import paginate, like
from app.repositories.payment_repo import PaymentRepository
from app.services.fee_status import money
from app.services.ledger_service import LedgerService, EXPENSE_PAYMENT

logger = logging.getLogger(__name__)

EXPENSE_SEQUENCE = "expense"
EDITABLE_FIELDS = {"category", "description", "amount", "vendor_name", "invoice_number", "invoice_date"}


class ExpenseService:
    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    def get(self, expense_id: str) -> Expense:
        expense = self.db.get(Expense, expense_id)
        if not expense:
            raise NotFound("Expense", expense_id)
        return expense

    def create(self, category: str, description: str, amount, requested_by: str,
               vendor_name: Optional[str] = None, invoice_number: Optional[str] = None,
               invoice_date: Optional[date] = None) -> Expense:
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Expense amount must be positive", amount=amount)

        # The number sequence shares the ledger's single writer
        with hold_ledger():
            with atomic(self.db):
                number = PaymentRepository(self.db).next_number(EXPENSE_SEQUENCE)
                expense = Expense(
                    expense_number=f"{settings.EXPENSE_PREFIX}{number:06d}",
                    category=category,
                    description=description,
                    amount=amount,
                    vendor_name=vendor_name,
                    invoice_number=invoice_number,
                    invoice_date=invoice_date,
                    status="pending_approval",
                    requested_by=requested_by,
                    requested_at=self.clock.now(),
                )
                self.db.add(expense)

        logger.info(f"Expense {expense.expense_number} requested by {requested_by}: {amount}")
        return expense

    def update(self, expense_id: str, changes: Dict[str, Any]) -> Expense:
        expense = self.get(expense_id)
        if expense.status != "pending_approval":
            raise InvalidState(f"Only pending expenses can be edited (status {expense.status})",
                               expense_id=expense.id)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        if "amount" in changes and money(changes["amount"]) <= 0:
            raise ValidationError("Expense amount must be positive", amount=changes["amount"])
        with atomic(self.db):
            for field, value in changes.items():
                setattr(expense, field, value)
        return expense

    def _transition(self, expense_id: str, expected: str) -> Expense:
        expense = self.db.execute(
            select(Expense)
            .where(Expense.id == expense_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if expense is None:
            raise NotFound("Expense", expense_id)
        if expense.status != expected:
            raise InvalidState(
                f"Expense {expense.expense_number} is {expense.status}, expected {expected}",
                expense_id=expense.id,
                status=expense.status,
            )
        return expense

    def approve(self, expense_id: str, approved_by: str, remarks: Optional[str] = None) -> Expense:
        with atomic(self.db):
            expense = self._transition(expense_id, "pending_approval")
            expense.status = "approved"
            expense.approved_by = approved_by
            expense.approved_at = self.clock.now()
            expense.approval_remarks = remarks
        logger.info(f"Expense {expense.expense_number} approved by {approved_by}")
        return expense

    def reject(self, expense_id: str, rejected_by: str, reason: str) -> Expense:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")
        with atomic(self.db):
            expense = self._transition(expense_id, "pending_approval")
            expense.status = "rejected"
            expense.rejected_by = rejected_by
            expense.rejected_at = self.clock.now()
            expense.rejection_reason = reason.strip()
        logger.info(f"Expense {expense.expense_number} rejected by {rejected_by}: {reason}")
        return expense

    def mark_paid(self, expense_id: str, paid_by: str, payment_ref: Optional[str] = None) -> Expense:
        """Pay an approved expense; the debit entry commits with the status change"""
        with hold_ledger():
            with atomic(self.db):
                expense = self._transition(expense_id, "approved")
                expense.status = "paid"
                expense.paid_by = paid_by
                expense.paid_at = self.clock.now()
                expense.payment_ref = payment_ref
                entry = LedgerService(self.db, self.clock).post(
                    "debit",
                    EXPENSE_PAYMENT,
                    expense.id,
                    expense.amount,
                    description=f"{expense.category}: {expense.description}",
                    reference_number=expense.expense_number,
                )
        logger.info(f"Expense {expense.expense_number} paid: {expense.amount}, balance {entry.balance}")
        return expense

    def delete(self, expense_id: str) -> None:
        expense = self.get(expense_id)
        if expense.status == "paid":
            raise InvalidState("A paid expense cannot be deleted", expense_id=expense.id)
        with atomic(self.db):
            self.db.delete(expense)
        logger.info(f"Expense {expense.expense_number} deleted")

    def list(self, page: int, limit: int, status: Optional[str] = None, category: Optional[str] = None,
             search: Optional[str] = None):
        stmt = select(Expense)
        if status:
            stmt = stmt.where(Expense.status == status)
        if category:
            stmt = stmt.where(Expense.category == category)
        if search:
            term = like(search)
            stmt = stmt.where(or_(
                func.lower(Expense.description).like(term),
                func.lower(Expense.vendor_name).like(term),
                func.lower(Expense.expense_number).like(term),
            ))
        return paginate(self.db, stmt.order_by(Expense.requested_at.desc(), Expense.id), page, limit)

    def pending_approvals(self) -> int:
        return self.db.execute(
            select(func.count(Expense.id)).where(Expense.status == "pending_approval")
        ).scalar_one()
