# app/repositories/student_fee_repo.py - Queries over StudentFee obligations
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from app.models.fee import StudentFee
from app.repositories.base import paginate, like

OPEN_STATUSES = ("pending", "partial", "overdue")


class StudentFeeRepository:
    """Storage access for StudentFee; callers own the transaction"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, fee_id: str) -> Optional[StudentFee]:
        return self.db.get(StudentFee, fee_id)

    def lock_many(self, fee_ids: Iterable[str]) -> Dict[str, StudentFee]:
        """
        Load obligations with a row lock, refreshing any identity-map copies.

        Rows are requested in id order so PostgreSQL takes the locks in the
        same order the in-process registry does.
        """
        ids = sorted(set(fee_ids))
        if not ids:
            return {}
        rows = self.db.execute(
            select(StudentFee)
            .where(StudentFee.id.in_(ids))
            .order_by(StudentFee.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        return {fee.id: fee for fee in rows}

    def find_for_period(self, student_id: str, structure_id: str, period_start: date) -> Optional[StudentFee]:
        return self.db.execute(
            select(StudentFee).where(
                StudentFee.student_id == student_id,
                StudentFee.fee_structure_id == structure_id,
                StudentFee.period_start == period_start,
            )
        ).scalar_one_or_none()

    def student_ids_for_period(self, structure_id: str, period_start: date) -> set:
        rows = self.db.execute(
            select(StudentFee.student_id).where(
                StudentFee.fee_structure_id == structure_id,
                StudentFee.period_start == period_start,
            )
        ).scalars().all()
        return set(rows)

    def for_student(self, student_id: str, academic_year: Optional[str] = None) -> List[StudentFee]:
        stmt = select(StudentFee).where(StudentFee.student_id == student_id)
        if academic_year:
            stmt = stmt.where(StudentFee.academic_year == academic_year)
        return list(self.db.execute(stmt.order_by(StudentFee.due_date, StudentFee.id)).scalars().all())

    def exists_for_structure(self, structure_id: str) -> bool:
        return self.db.execute(
            select(StudentFee.id).where(StudentFee.fee_structure_id == structure_id).limit(1)
        ).first() is not None

    def _filtered(
        self,
        student_id: Optional[str] = None,
        student_ids: Optional[Sequence[str]] = None,
        academic_year: Optional[str] = None,
        fee_type_id: Optional[str] = None,
        student_class: Optional[str] = None,
        section: Optional[str] = None,
        statuses: Optional[Sequence[str]] = None,
        search: Optional[str] = None,
    ):
        stmt = select(StudentFee)
        if student_id:
            stmt = stmt.where(StudentFee.student_id == student_id)
        if student_ids is not None:
            stmt = stmt.where(StudentFee.student_id.in_(list(student_ids)))
        if academic_year:
            stmt = stmt.where(StudentFee.academic_year == academic_year)
        if fee_type_id:
            stmt = stmt.where(StudentFee.fee_type_id == fee_type_id)
        if student_class:
            stmt = stmt.where(StudentFee.student_class == student_class)
        if section:
            stmt = stmt.where(StudentFee.student_section == section)
        if statuses:
            stmt = stmt.where(StudentFee.status.in_(list(statuses)))
        if search:
            term = like(search)
            stmt = stmt.where(or_(
                func.lower(StudentFee.student_name).like(term),
                func.lower(StudentFee.admission_number).like(term),
            ))
        return stmt

    def list(self, page: int, limit: int, **filters) -> Tuple[List[StudentFee], int]:
        stmt = self._filtered(**filters).order_by(StudentFee.due_date.desc(), StudentFee.id)
        return paginate(self.db, stmt, page, limit)

    def open_obligations(self, **filters) -> List[StudentFee]:
        """Obligations with something left to pay, in due-date order"""
        stmt = self._filtered(statuses=OPEN_STATUSES, **filters).where(
            StudentFee.total_amount > StudentFee.discount_amount + StudentFee.paid_amount
        )
        return list(self.db.execute(stmt.order_by(StudentFee.due_date, StudentFee.id)).scalars().all())

    def all_matching(self, **filters) -> List[StudentFee]:
        return list(self.db.execute(self._filtered(**filters).order_by(StudentFee.id)).scalars().all())
