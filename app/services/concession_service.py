# app/services/concession_service.py - Manually adjudicated concession requests
from datetime import date
from decimal import Decimal
from typing import Optional, List
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.clock import Clock, system_clock
from app.core.db import atomic
from app.core.errors import NotFound, InvalidState, ValidationError, ConcurrencyConflict
from app.core.locks import obligation_locks
from app.models.discount import ConcessionRequest
from app.models.fee import StudentFee
from app.repositories.base import paginate
from app.repositories.student_fee_repo import StudentFeeRepository
from app.services.discount_service import DiscountService, headroom, percentage_of
from app.services.fee_status import ZERO, money

logger = logging.getLogger(__name__)


def request_key(request_id: str) -> str:
    """Registry key serializing adjudication of one request, even with no fees to lock"""
    return f"concession:{request_id}"

class ConcessionService:
    """
    pending -> approved | rejected, and nothing else.

    Approval turns the concession into AppliedDiscount rows on the student's
    open obligations of the targeted fee types.
    """

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.fees = StudentFeeRepository(db)

    def create(
        self,
        student_id: str,
        student_name: str,
        fee_type_ids: List[str],
        concession_type: str,
        concession_value,
        reason: str,
        requested_by: str,
        student_class: str = "",
        section: str = "",
        admission_number: str = "",
        valid_from: Optional[date] = None,
        valid_to: Optional[date] = None,
    ) -> ConcessionRequest:
        if not fee_type_ids:
            raise ValidationError("A concession must target at least one fee type")
        if not reason or not reason.strip():
            raise ValidationError("A concession needs a reason")
        value = money(concession_value)
        if value <= 0:
            raise ValidationError("Concession value must be positive", concession_value=value)
        if concession_type == "percentage" and value > 100:
            raise ValidationError("Percentage concession cannot exceed 100", concession_value=value)
        if valid_from and valid_to and valid_to < valid_from:
            raise ValidationError("valid_to is before valid_from")

        with atomic(self.db):
            request = ConcessionRequest(
                student_id=student_id,
                student_name=student_name,
                student_class=student_class,
                section=section,
                admission_number=admission_number,
                fee_type_ids=list(dict.fromkeys(fee_type_ids)),
                concession_type=concession_type,
                concession_value=value,
                reason=reason.strip(),
                valid_from=valid_from,
                valid_to=valid_to,
                status="pending",
                requested_by=requested_by,
                requested_at=self.clock.now(),
            )
            self.db.add(request)

        logger.info(
            f"Concession requested for {student_name}: {concession_type} {value} by {requested_by}"
        )
        return request

    def get(self, request_id: str) -> ConcessionRequest:
        request = self.db.get(ConcessionRequest, request_id)
        if not request:
            raise NotFound("ConcessionRequest", request_id)
        return request

    def _pending(self, request_id: str) -> ConcessionRequest:
        request = self.db.execute(
            select(ConcessionRequest)
            .where(ConcessionRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if request is None:
            raise NotFound("ConcessionRequest", request_id)
        if request.status != "pending":
            raise InvalidState(
                f"Concession request is already {request.status}",
                concession_id=request.id,
                status=request.status,
            )
        return request

    def _targets(self, request: ConcessionRequest) -> List[StudentFee]:
        fees = [
            fee for fee in self.fees.open_obligations(student_id=request.student_id)
            if fee.fee_type_id in request.fee_type_ids
        ]
        if request.valid_from:
            fees = [f for f in fees if f.due_date >= request.valid_from]
        if request.valid_to:
            fees = [f for f in fees if f.due_date <= request.valid_to]
        return fees

    def approve(self, request_id: str, approved_by: str) -> ConcessionRequest:
        """
        Approve a pending request and apply it.

        Percentage concessions take ``value`` percent of each obligation's
        total; fixed amounts are consumed across obligations in due-date
        order. Every allocation is clamped to the obligation's headroom.

        Raises:
            InvalidState: the request is not pending
        """
        # Peek at the targets so their locks can be taken in id order
        preview = self.get(request_id)
        target_ids = [f.id for f in self._targets(preview)]

        try:
            with obligation_locks.hold(target_ids + [request_key(request_id)]):
                with atomic(self.db):
                    request = self._pending(request_id)
                    locked = self.fees.lock_many(target_ids)
                    fees = sorted(
                        (f for f in locked.values() if money(f.remaining_due) > 0),
                        key=lambda f: (f.due_date, f.id),
                    )

                    discounts = DiscountService(self.db, self.clock)
                    applied_total = ZERO
                    remaining_value = money(request.concession_value)
                    for fee in fees:
                        if request.concession_type == "percentage":
                            wanted = percentage_of(fee.total_amount, request.concession_value)
                        else:
                            wanted = remaining_value
                        amount = min(wanted, headroom(fee))
                        if amount <= 0:
                            continue
                        discounts.add_discount(
                            fee, amount, "concession", approved_by, reason=request.reason, concession=request
                        )
                        applied_total += amount
                        if request.concession_type == "fixed_amount":
                            remaining_value -= amount
                            if remaining_value <= 0:
                                break

                    request.status = "approved"
                    request.approved_by = approved_by
                    request.approved_at = self.clock.now()
                    request.total_concession_amount = applied_total
        except StaleDataError as e:
            logger.warning(f"Stale student fee while approving concession {request_id}: {e}")
            raise ConcurrencyConflict("A targeted student fee changed during approval; retry",
                                      concession_id=request_id)

        logger.info(
            f"Concession {request.id} approved by {approved_by}: {applied_total} "
            f"across {len(fees)} obligation(s)"
        )
        return request

    def reject(self, request_id: str, rejected_by: str, reason: str) -> ConcessionRequest:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")
        with obligation_locks.hold([request_key(request_id)]):
            with atomic(self.db):
                request = self._pending(request_id)
                request.status = "rejected"
                request.rejected_by = rejected_by
                request.rejected_at = self.clock.now()
                request.rejection_reason = reason.strip()
        logger.info(f"Concession {request.id} rejected by {rejected_by}: {reason}")
        return request

    def list(self, page: int, limit: int, status: Optional[str] = None, student_id: Optional[str] = None):
        stmt = select(ConcessionRequest)
        if status:
            stmt = stmt.where(ConcessionRequest.status == status)
        if student_id:
            stmt = stmt.where(ConcessionRequest.student_id == student_id)
        stmt = stmt.order_by(ConcessionRequest.requested_at.desc(), ConcessionRequest.id)
        return paginate(self.db, stmt, page, limit)

    def pending_total(self) -> Decimal:
        return sum(
            (money(r.concession_value) for r in self.db.execute(
                select(ConcessionRequest).where(ConcessionRequest.status == "pending")
            ).scalars().all()),
            ZERO,
        )
