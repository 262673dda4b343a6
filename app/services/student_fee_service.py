# app/services/student_fee_service.py - Instantiating and adjusting student fee obligations
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, List, Dict, Any, Sequence
import logging

from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.db import atomic
from app.core.errors import NotFound, InvalidState, ValidationError
from app.core.locks import obligation_locks
from app.models.fee import FeeStructure, StudentFee
from app.repositories.student_fee_repo import StudentFeeRepository
from app.services.discount_service import DiscountService
from app.services.fee_status import ZERO, money, due_date_for, project_status, refresh_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentRef:
    """Snapshot of the student an obligation is created for"""

    student_id: str
    name: str
    class_name: str
    section: str = ""
    admission_number: str = ""
    guardian_email: Optional[str] = None
    guardian_phone: Optional[str] = None
    eligibility: Sequence[str] = field(default_factory=tuple)


class StudentFeeService:
    """Owns StudentFee records: creation, manual discounts, status upkeep"""

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.repo = StudentFeeRepository(db)

    def get(self, fee_id: str) -> StudentFee:
        fee = self.repo.get(fee_id)
        if not fee:
            raise NotFound("StudentFee", fee_id)
        return fee

    def get_current(self, fee_id: str) -> StudentFee:
        """The obligation with its status projected to today"""
        fee = self.get(fee_id)
        fee.status = project_status(fee, self.clock.today())
        return fee

    def _structure(self, structure_id: str) -> FeeStructure:
        structure = self.db.get(FeeStructure, structure_id)
        if not structure:
            raise NotFound("FeeStructure", structure_id)
        if not structure.is_active:
            raise ValidationError("Fee structure is inactive", fee_structure_id=structure.id)
        return structure

    def _build(self, structure: FeeStructure, student: StudentRef, period_start: date,
               created_by: str) -> StudentFee:
        if student.class_name not in structure.applicable_classes:
            raise ValidationError(
                f"Class '{student.class_name}' is not covered by this fee structure",
                fee_structure_id=structure.id,
                student_id=student.student_id,
            )
        today = self.clock.today()
        now = self.clock.now()
        fee = StudentFee(
            student_id=student.student_id,
            student_name=student.name,
            student_class=student.class_name,
            student_section=student.section,
            admission_number=student.admission_number,
            guardian_email=student.guardian_email,
            guardian_phone=student.guardian_phone,
            fee_structure_id=structure.id,
            fee_type_id=structure.fee_type_id,
            fee_type_name=structure.fee_type_name,
            academic_year=structure.academic_year,
            period_start=period_start,
            total_amount=money(structure.amount),
            discount_amount=ZERO,
            paid_amount=ZERO,
            due_date=due_date_for(period_start, structure.due_day),
            created_at=now,
            updated_at=now,
        )
        fee.status = project_status(fee, today)
        self.db.add(fee)
        self.db.flush()

        DiscountService(self.db, self.clock).apply_rules(fee, student.eligibility, created_by)
        return fee

    def instantiate(self, structure_id: str, student: StudentRef, period_start: date,
                    created_by: str = "system") -> StudentFee:
        """
        Create one obligation for (student, structure, period).

        Raises:
            NotFound: unknown structure
            ValidationError: inactive structure or class not covered
            InvalidState: the obligation already exists
        """
        structure = self._structure(structure_id)
        existing = self.repo.find_for_period(student.student_id, structure.id, period_start)
        if existing:
            raise InvalidState(
                "Student fee already exists for this structure and period",
                student_fee_id=existing.id,
                student_id=student.student_id,
            )

        with atomic(self.db):
            fee = self._build(structure, student, period_start, created_by)

        logger.info(
            f"Student fee created: {fee.student_name} {fee.fee_type_name} {fee.total_amount} "
            f"due {fee.due_date} (discount {fee.discount_amount})"
        )
        return fee

    def assign(self, structure_id: str, students: List[StudentRef], period_start: date,
               created_by: str = "system") -> Dict[str, Any]:
        """Bulk instantiate; students already billed for the period are skipped"""
        structure = self._structure(structure_id)
        already = self.repo.student_ids_for_period(structure.id, period_start)

        created, skipped = [], []
        with atomic(self.db):
            for student in students:
                if student.student_id in already:
                    skipped.append(student.student_id)
                    continue
                created.append(self._build(structure, student, period_start, created_by))
                already.add(student.student_id)

        logger.info(
            f"Assigned {structure.fee_type_name} ({structure.academic_year}) to "
            f"{len(created)} student(s), skipped {len(skipped)}"
        )
        return {"created": created, "skipped_student_ids": skipped}

    def apply_discount(self, fee_id: str, amount, reason: str, applied_by: str) -> StudentFee:
        """
        Manual discount on one obligation.

        Raises:
            ValidationError: amount <= 0
            InvalidDiscount: discount + paid would exceed total
        """
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Discount amount must be positive", amount=amount)

        with obligation_locks.hold([fee_id]):
            with atomic(self.db):
                fee = self.repo.lock_many([fee_id]).get(fee_id)
                if fee is None:
                    raise NotFound("StudentFee", fee_id)
                DiscountService(self.db, self.clock).add_discount(
                    fee, amount, "manual", applied_by, reason=reason
                )

        logger.info(f"Manual discount {amount} on {fee.id} by {applied_by}: {reason}")
        return fee

    def delete(self, fee_id: str) -> None:
        with obligation_locks.hold([fee_id]):
            with atomic(self.db):
                fee = self.repo.lock_many([fee_id]).get(fee_id)
                if fee is None:
                    raise NotFound("StudentFee", fee_id)
                if money(fee.paid_amount) > 0:
                    raise InvalidState(
                        "Cannot delete a student fee with payments against it",
                        student_fee_id=fee.id,
                        paid_amount=fee.paid_amount,
                    )
                self.db.delete(fee)
        logger.info(f"Student fee deleted: {fee_id}")

    def list_for_student(self, student_id: str, academic_year: Optional[str] = None) -> Dict[str, Any]:
        """A student's obligations plus summary totals, statuses as of today"""
        today = self.clock.today()
        fees = self.repo.for_student(student_id, academic_year)
        for fee in fees:
            fee.status = project_status(fee, today)
        total = sum((money(f.total_amount) for f in fees), ZERO)
        discount = sum((money(f.discount_amount) for f in fees), ZERO)
        paid = sum((money(f.paid_amount) for f in fees), ZERO)
        return {
            "items": fees,
            "summary": {
                "total_amount": total,
                "discount_amount": discount,
                "paid_amount": paid,
                "remaining_due": total - discount - paid,
            },
        }

    def list(self, page: int, limit: int, status: Optional[str] = None, **filters):
        """
        Filtered listing. The status filter is applied to the projected
        status, so it stays correct even before refresh_statuses has run.
        """
        today = self.clock.today()
        if status:
            fees = [f for f in self.repo.all_matching(**filters) if project_status(f, today) == status]
            fees.sort(key=lambda f: (f.due_date, f.id), reverse=True)
            start = (page - 1) * limit
            items, total = fees[start:start + limit], len(fees)
        else:
            items, total = self.repo.list(page, limit, **filters)
        for fee in items:
            fee.status = project_status(fee, today)
        return items, total

    def refresh_statuses(self, today: Optional[date] = None) -> int:
        """Rewrite stored statuses that have drifted as days passed"""
        today = today or self.clock.today()
        candidates = self.repo.all_matching(statuses=("pending", "overdue", "partial"))
        changed = 0
        for fee in candidates:
            with obligation_locks.hold([fee.id]):
                with atomic(self.db):
                    locked = self.repo.lock_many([fee.id]).get(fee.id)
                    if locked is not None and refresh_status(locked, today):
                        changed += 1
        if changed:
            logger.info(f"Refreshed status of {changed} student fee(s) as of {today}")
        return changed

    def summary(self, student_ids: Optional[Sequence[str]] = None) -> Dict[str, Decimal]:
        fees = self.repo.all_matching(student_ids=student_ids)
        total = sum((money(f.total_amount) for f in fees), ZERO)
        discount = sum((money(f.discount_amount) for f in fees), ZERO)
        paid = sum((money(f.paid_amount) for f in fees), ZERO)
        return {
            "total_amount": total,
            "discount_amount": discount,
            "paid_amount": paid,
            "remaining_due": total - discount - paid,
        }
