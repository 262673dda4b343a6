# app/api/routers/students.py - Student fee obligations and outstanding dues
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional, Tuple, FrozenSet

from app.core.clock import Clock
from app.core.db import get_db
from app.core.security import CallerIdentity, COLLECTOR_ROLES
from app.api.deps.auth import get_current_caller, require_roles
from app.api.deps.tenancy import get_clock, pagination, student_scope, ensure_student_access
from app.schemas.common import Page
from app.schemas.fee_schema import (
    StudentFeeCreate, StudentFeeAssign, StudentFeeOut, StudentFeeList, AssignResult,
    ManualDiscount, RecomputeDiscounts, OutstandingDueOut, DuesSummary, FeeStatus,
)
from app.services.discount_service import DiscountService
from app.services.dues_service import DuesService
from app.services.student_fee_service import StudentFeeService, StudentRef

router = APIRouter()

collectors = require_roles(sorted(COLLECTOR_ROLES))


def _student_ref(snapshot) -> StudentRef:
    return StudentRef(
        student_id=snapshot.student_id,
        name=snapshot.name,
        class_name=snapshot.class_name,
        section=snapshot.section,
        admission_number=snapshot.admission_number,
        guardian_email=snapshot.guardian_email,
        guardian_phone=snapshot.guardian_phone,
        eligibility=tuple(snapshot.eligibility),
    )


@router.post("/student-fees", response_model=StudentFeeOut, status_code=status.HTTP_201_CREATED)
def create_student_fee(
    data: StudentFeeCreate,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Instantiate one obligation for a student and billing period"""
    fee = StudentFeeService(db, clock).instantiate(
        data.fee_structure_id, _student_ref(data.student), data.period_start, created_by=caller.display
    )
    return StudentFeeOut.model_validate(fee)


@router.post("/student-fees/assign", response_model=AssignResult, status_code=status.HTTP_201_CREATED)
def assign_fee_structure(
    data: StudentFeeAssign,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Bulk-assign a structure; students already billed for the period are skipped"""
    result = StudentFeeService(db, clock).assign(
        data.fee_structure_id, [_student_ref(s) for s in data.students], data.period_start,
        created_by=caller.display,
    )
    return AssignResult(
        created=[StudentFeeOut.model_validate(f) for f in result["created"]],
        skipped_student_ids=result["skipped_student_ids"],
    )


@router.get("/student-fees", response_model=Page[StudentFeeOut])
async def list_student_fees(
    student_id: Optional[str] = None,
    academic_year: Optional[str] = None,
    fee_type_id: Optional[str] = None,
    class_name: Optional[str] = Query(None, alias="class"),
    section: Optional[str] = None,
    fee_status: Optional[FeeStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination),
    scope: Optional[FrozenSet[str]] = Depends(student_scope),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Filtered obligations, limited to the caller's students"""
    page, limit = paging
    items, total = StudentFeeService(db, clock).list(
        page, limit,
        status=fee_status,
        student_id=student_id,
        student_ids=scope,
        academic_year=academic_year,
        fee_type_id=fee_type_id,
        student_class=class_name,
        section=section,
        search=search,
    )
    return Page[StudentFeeOut].build(items, page, limit, total, StudentFeeOut)


@router.get("/student-fees/student/{student_id}", response_model=StudentFeeList)
async def get_student_fees(
    student_id: str,
    academic_year: Optional[str] = None,
    caller: CallerIdentity = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """A student's obligations with summary totals"""
    ensure_student_access(caller, student_id)
    result = StudentFeeService(db, clock).list_for_student(student_id, academic_year)
    return StudentFeeList(
        items=[StudentFeeOut.model_validate(f) for f in result["items"]],
        summary=result["summary"],
    )


@router.post("/student-fees/refresh-statuses")
def refresh_statuses(
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Rewrite stored statuses that drifted as days passed"""
    return {"updated": StudentFeeService(db, clock).refresh_statuses()}


@router.get("/student-fees/{fee_id}", response_model=StudentFeeOut)
async def get_student_fee(
    fee_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    fee = StudentFeeService(db, clock).get_current(fee_id)
    ensure_student_access(caller, fee.student_id)
    return StudentFeeOut.model_validate(fee)


@router.post("/student-fees/{fee_id}/discount", response_model=StudentFeeOut)
def apply_manual_discount(
    fee_id: str,
    data: ManualDiscount,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Manual discount; rejected when discount + paid would exceed the total"""
    fee = StudentFeeService(db, clock).apply_discount(fee_id, data.amount, data.reason, caller.display)
    return StudentFeeOut.model_validate(fee)


@router.post("/student-fees/{fee_id}/recompute-discounts", response_model=StudentFeeOut)
def recompute_discounts(
    fee_id: str,
    data: RecomputeDiscounts,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    fee = DiscountService(db, clock).recompute(fee_id, data.eligibility, caller.display)
    return StudentFeeOut.model_validate(fee)


@router.delete("/student-fees/{fee_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_student_fee(
    fee_id: str,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Only obligations with nothing paid can be deleted"""
    StudentFeeService(db, clock).delete(fee_id)


# ---------- Outstanding dues ----------

@router.get("/dues", response_model=Page[OutstandingDueOut])
async def list_outstanding_dues(
    class_name: Optional[str] = Query(None, alias="class"),
    section: Optional[str] = None,
    min_days_overdue: int = Query(0, ge=0),
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination),
    scope: Optional[FrozenSet[str]] = Depends(student_scope),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Outstanding obligations, most overdue first"""
    page, limit = paging
    items, total = DuesService(db).list_outstanding(
        clock.today(), page, limit,
        student_class=class_name,
        section=section,
        min_days_overdue=min_days_overdue,
        student_ids=scope,
        search=search,
    )
    return Page[OutstandingDueOut].build(items, page, limit, total, OutstandingDueOut)


@router.get("/dues/summary", response_model=DuesSummary)
async def dues_summary(
    class_name: Optional[str] = Query(None, alias="class"),
    section: Optional[str] = None,
    scope: Optional[FrozenSet[str]] = Depends(student_scope),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    return DuesSummary(**DuesService(db).summary(
        clock.today(), student_class=class_name, section=section, student_ids=scope
    ))
