# app/services/dues_service.py - Outstanding dues and aging, a read-only projection
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, List, Dict, Any, Sequence, Tuple

from sqlalchemy.orm import Session

from app.models.fee import StudentFee
from app.repositories.student_fee_repo import StudentFeeRepository
from app.services.fee_status import ZERO, money, days_overdue, project_status


@dataclass
class OutstandingDue:
    student_fee: StudentFee
    remaining_due: Decimal
    days_overdue: int
    status: str


class DuesService:
    """No side effects: obligations are read, never written"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = StudentFeeRepository(db)

    def outstanding(
        self,
        today: date,
        student_class: Optional[str] = None,
        section: Optional[str] = None,
        min_days_overdue: int = 0,
        student_ids: Optional[Sequence[str]] = None,
        search: Optional[str] = None,
    ) -> List[OutstandingDue]:
        dues = []
        for fee in self.repo.open_obligations(
            student_class=student_class, section=section, student_ids=student_ids, search=search
        ):
            remaining = money(fee.remaining_due)
            if remaining <= 0:
                continue
            overdue = days_overdue(fee.due_date, today)
            if overdue < min_days_overdue:
                continue
            dues.append(OutstandingDue(fee, remaining, overdue, project_status(fee, today)))
        dues.sort(key=lambda d: (-d.days_overdue, -d.remaining_due, d.student_fee.id))
        return dues

    def list_outstanding(self, today: date, page: int, limit: int, **filters) -> Tuple[List[OutstandingDue], int]:
        dues = self.outstanding(today, **filters)
        start = (page - 1) * limit
        return dues[start:start + limit], len(dues)

    def summary(self, today: date, **filters) -> Dict[str, Any]:
        """
        Totals over the outstanding set. The average age is per student,
        measured from each student's oldest unpaid due date.
        """
        dues = self.outstanding(today, **filters)
        oldest: Dict[str, date] = {}
        for due in dues:
            fee = due.student_fee
            if fee.student_id not in oldest or fee.due_date < oldest[fee.student_id]:
                oldest[fee.student_id] = fee.due_date

        ages = [days_overdue(d, today) for d in oldest.values()]
        return {
            "total_outstanding": sum((d.remaining_due for d in dues), ZERO),
            "students_with_dues": len(oldest),
            "obligations": len(dues),
            "average_days_overdue": round(sum(ages) / len(ages), 1) if ages else 0.0,
        }
