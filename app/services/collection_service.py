# app/services/collection_service.py - Atomic multi-line payment collection
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Sequence, Tuple
import logging

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.db import atomic
from app.core.errors import NotFound, ExceedsDue, InvalidState, ValidationError, ConcurrencyConflict
from app.core.locks import obligation_locks, hold_ledger
from app.models.payment import Receipt, Payment, PAYMENT_MODES
from app.repositories.payment_repo import PaymentRepository
from app.repositories.student_fee_repo import StudentFeeRepository
from app.services.fee_status import ZERO, money, refresh_status
from app.services.ledger_service import LedgerService, FEE_COLLECTION

logger = logging.getLogger(__name__)

RECEIPT_SEQUENCE = "receipt"


@dataclass(frozen=True)
class CollectionLine:
    student_fee_id: str
    amount: Decimal


class CollectionService:
    """
    Applies a batch of (obligation, amount) lines as one unit.

    Every line is validated against freshly locked rows before anything is
    written; any failure rolls the whole batch back.
    """

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.fees = StudentFeeRepository(db)
        self.payments = PaymentRepository(db)

    @staticmethod
    def _normalize(lines: Sequence) -> List[CollectionLine]:
        if not lines:
            raise ValidationError("At least one payment line is required")

        normalized, seen = [], set()
        for index, line in enumerate(lines, start=1):
            if isinstance(line, CollectionLine):
                fee_id, amount = line.student_fee_id, line.amount
            elif isinstance(line, dict):
                fee_id, amount = line.get("student_fee_id"), line.get("amount")
            else:
                fee_id, amount = line
            if not fee_id:
                raise ValidationError(f"Line {index}: student_fee_id is required", line=index)
            if amount is None:
                raise ValidationError(f"Line {index}: amount is required", line=index)
            amount = money(amount)
            if amount <= 0:
                raise ValidationError(
                    f"Line {index}: amount must be positive", line=index, student_fee_id=fee_id, amount=amount
                )
            if fee_id in seen:
                raise ValidationError(
                    f"Line {index}: student fee {fee_id} appears more than once", line=index, student_fee_id=fee_id
                )
            seen.add(fee_id)
            normalized.append(CollectionLine(str(fee_id), amount))
        return normalized

    @staticmethod
    def _matches(receipt: Receipt, lines: List[CollectionLine], mode: str) -> bool:
        recorded = sorted((p.student_fee_id, money(p.amount)) for p in receipt.payments)
        requested = sorted((l.student_fee_id, l.amount) for l in lines)
        return receipt.payment_mode == mode and recorded == requested

    def collect(
        self,
        lines: Sequence,
        payment_mode: str,
        collected_by: str,
        transaction_ref: Optional[str] = None,
        remarks: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Tuple[Receipt, List[Payment]]:
        """
        Collect payment for one or more obligations of a single student.

        Args:
            lines: (student_fee_id, amount) pairs, dicts or CollectionLine
            payment_mode: one of PAYMENT_MODES
            collected_by: caller identity recorded on the receipt
            idempotency_key: replaying the same request returns the first receipt

        Returns:
            The receipt and its payment lines in request order

        Raises:
            ValidationError: empty batch, bad amount, duplicate line, mixed students
            NotFound: unknown obligation (names the line)
            ExceedsDue: a line is larger than its remaining due (names the line)
            InvalidState: idempotency key reused for a different request
            ConcurrencyConflict: lock timeout or stale row at commit
        """
        if payment_mode not in PAYMENT_MODES:
            raise ValidationError(f"Unknown payment mode '{payment_mode}'", payment_mode=payment_mode)
        lines = self._normalize(lines)

        try:
            with obligation_locks.hold([l.student_fee_id for l in lines]):
                with hold_ledger():
                    with atomic(self.db):
                        if idempotency_key:
                            existing = self.payments.receipt_by_idempotency_key(idempotency_key)
                            if existing is not None:
                                if not self._matches(existing, lines, payment_mode):
                                    raise InvalidState(
                                        "Idempotency key was already used for a different collection",
                                        idempotency_key=idempotency_key,
                                        receipt_number=existing.receipt_number,
                                    )
                                logger.info(
                                    f"Replayed collection {idempotency_key} -> {existing.receipt_number}"
                                )
                                return existing, list(existing.payments)

                        receipt, payments = self._apply(
                            lines, payment_mode, collected_by, transaction_ref, remarks, idempotency_key
                        )
        except StaleDataError as e:
            logger.warning(f"Stale student fee detected during collection: {e}")
            raise ConcurrencyConflict(
                "A student fee changed while the payment was being applied; retry",
                student_fee_ids=[l.student_fee_id for l in lines],
            )

        logger.info(
            f"Collected {receipt.total_amount} from {receipt.student_name} "
            f"({len(payments)} line(s), {payment_mode}) receipt {receipt.receipt_number} by {collected_by}"
        )
        return receipt, payments

    def _apply(self, lines, payment_mode, collected_by, transaction_ref, remarks, idempotency_key):
        fees = self.fees.lock_many([l.student_fee_id for l in lines])

        # Validate every line before touching anything
        for index, line in enumerate(lines, start=1):
            fee = fees.get(line.student_fee_id)
            if fee is None:
                raise NotFound("StudentFee", line.student_fee_id, line=index)

        student_ids = {fees[l.student_fee_id].student_id for l in lines}
        if len(student_ids) > 1:
            raise ValidationError(
                "All lines of a receipt must belong to the same student",
                student_ids=sorted(student_ids),
            )

        for index, line in enumerate(lines, start=1):
            fee = fees[line.student_fee_id]
            remaining = money(fee.remaining_due)
            if line.amount > remaining:
                logger.warning(
                    f"Rejected collection: line {index} {line.amount} exceeds remaining {remaining} on {fee.id}"
                )
                raise ExceedsDue(index, fee.id, line.amount, remaining, fee.fee_type_name)

        now = self.clock.now()
        today = now.date()
        first = fees[lines[0].student_fee_id]
        total = sum((l.amount for l in lines), ZERO)

        sequence = self.payments.next_number(RECEIPT_SEQUENCE)
        receipt = Receipt(
            receipt_number=f"{settings.RECEIPT_PREFIX}{sequence:06d}",
            sequence=sequence,
            student_id=first.student_id,
            student_name=first.student_name,
            student_class=first.student_class,
            student_section=first.student_section,
            admission_number=first.admission_number,
            total_amount=total,
            payment_mode=payment_mode,
            transaction_ref=transaction_ref,
            remarks=remarks,
            idempotency_key=idempotency_key,
            generated_by=collected_by,
            generated_at=now,
        )
        self.db.add(receipt)

        ledger = LedgerService(self.db, self.clock)
        payments = []
        for line_no, line in enumerate(lines, start=1):
            fee = fees[line.student_fee_id]
            fee.paid_amount = money(fee.paid_amount) + line.amount
            fee.updated_at = now
            refresh_status(fee, today)

            payment = Payment(
                receipt_number=receipt.receipt_number,
                line_no=line_no,
                student_fee_id=fee.id,
                student_id=fee.student_id,
                student_name=fee.student_name,
                student_class=fee.student_class,
                student_section=fee.student_section,
                admission_number=fee.admission_number,
                fee_type_name=fee.fee_type_name,
                amount=line.amount,
                payment_mode=payment_mode,
                transaction_ref=transaction_ref,
                remarks=remarks,
                collected_by=collected_by,
                collected_at=now,
            )
            receipt.payments.append(payment)
            payments.append(payment)

            ledger.post(
                "credit",
                FEE_COLLECTION,
                fee.id,
                line.amount,
                description=f"{fee.fee_type_name} - {fee.student_name} ({fee.student_class})",
                reference_number=receipt.receipt_number,
            )

        self.db.flush()
        return receipt, payments

    def get_receipt(self, receipt_number: str) -> Receipt:
        receipt = self.payments.receipt_by_number(receipt_number)
        if receipt is None:
            raise NotFound("Receipt", receipt_number)
        return receipt

    def list_payments(self, page: int, limit: int, student_id: Optional[str] = None,
                      student_ids: Optional[Sequence[str]] = None,
                      date_from: Optional[datetime] = None, date_to: Optional[datetime] = None,
                      payment_mode: Optional[str] = None, search: Optional[str] = None):
        return self.payments.list_payments(
            page, limit,
            student_id=student_id,
            student_ids=student_ids,
            date_from=date_from,
            date_to=date_to,
            payment_mode=payment_mode,
            search=search,
        )
