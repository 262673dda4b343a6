# app/repositories/payment_repo.py - Receipts, payment lines and number sequences
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session, selectinload

from app.models.payment import Receipt, Payment, DocumentSequence
from app.repositories.base import paginate, like


class PaymentRepository:
    def __init__(self, db: Session):
        self.db = db

    def receipt_by_number(self, receipt_number: str) -> Optional[Receipt]:
        return self.db.execute(
            select(Receipt)
            .where(Receipt.receipt_number == receipt_number)
            .options(selectinload(Receipt.payments))
        ).scalar_one_or_none()

    def receipt_by_idempotency_key(self, key: str) -> Optional[Receipt]:
        return self.db.execute(
            select(Receipt)
            .where(Receipt.idempotency_key == key)
            .options(selectinload(Receipt.payments))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_payments(
        self,
        page: int,
        limit: int,
        student_id: Optional[str] = None,
        student_ids: Optional[Sequence[str]] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        payment_mode: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Payment], int]:
        stmt = select(Payment)
        if student_id:
            stmt = stmt.where(Payment.student_id == student_id)
        if student_ids is not None:
            stmt = stmt.where(Payment.student_id.in_(list(student_ids)))
        if date_from:
            stmt = stmt.where(Payment.collected_at >= date_from)
        if date_to:
            stmt = stmt.where(Payment.collected_at < date_to)
        if payment_mode:
            stmt = stmt.where(Payment.payment_mode == payment_mode)
        if search:
            term = like(search)
            stmt = stmt.where(or_(
                func.lower(Payment.student_name).like(term),
                func.lower(Payment.receipt_number).like(term),
                func.lower(Payment.admission_number).like(term),
            ))
        stmt = stmt.order_by(Payment.collected_at.desc(), Payment.receipt_number.desc(), Payment.line_no)
        return paginate(self.db, stmt, page, limit)

    def payments_between(self, date_from: datetime, date_to: datetime) -> List[Payment]:
        return list(self.db.execute(
            select(Payment)
            .where(Payment.collected_at >= date_from, Payment.collected_at < date_to)
            .order_by(Payment.collected_at)
        ).scalars().all())

    def next_number(self, name: str) -> int:
        """
        Advance a named counter inside the caller's transaction.

        Callers hold the ledger lock, so the read-modify-write is single writer.
        """
        seq = self.db.execute(
            select(DocumentSequence)
            .where(DocumentSequence.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if seq is None:
            seq = DocumentSequence(name=name, last_value=0)
            self.db.add(seq)
        seq.last_value += 1
        self.db.flush()
        return seq.last_value
