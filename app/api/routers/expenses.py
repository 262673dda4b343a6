# app/api/routers/expenses.py - Expense requests, approval and payment
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional, Tuple

from app.core.clock import Clock
from app.core.db import get_db
from app.core.security import CallerIdentity, COLLECTOR_ROLES, ADJUDICATOR_ROLES, STAFF_ROLES
from app.api.deps.auth import require_roles
from app.api.deps.tenancy import get_clock, pagination
from app.schemas.common import Page
from app.schemas.expense import (
    ExpenseCreate, ExpenseUpdate, ExpenseApprove, ExpenseReject, ExpensePay, ExpenseOut, ExpenseCategory,
)
from app.services.expense_service import ExpenseService

router = APIRouter()

staff = require_roles(sorted(STAFF_ROLES))
collectors = require_roles(sorted(COLLECTOR_ROLES))
adjudicators = require_roles(sorted(ADJUDICATOR_ROLES))


@router.post("/expenses", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
def create_expense(
    data: ExpenseCreate,
    caller: CallerIdentity = Depends(staff),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    expense = ExpenseService(db, clock).create(requested_by=caller.display, **data.model_dump())
    return ExpenseOut.model_validate(expense)


@router.get("/expenses", response_model=Page[ExpenseOut])
async def list_expenses(
    expense_status: Optional[str] = Query(None, alias="status"),
    category: Optional[ExpenseCategory] = None,
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination),
    caller: CallerIdentity = Depends(staff),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    page, limit = paging
    items, total = ExpenseService(db, clock).list(
        page, limit, status=expense_status, category=category, search=search
    )
    return Page[ExpenseOut].build(items, page, limit, total, ExpenseOut)


@router.get("/expenses/{expense_id}", response_model=ExpenseOut)
async def get_expense(
    expense_id: str,
    caller: CallerIdentity = Depends(staff),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    return ExpenseOut.model_validate(ExpenseService(db, clock).get(expense_id))


@router.patch("/expenses/{expense_id}", response_model=ExpenseOut)
async def update_expense(
    expense_id: str,
    data: ExpenseUpdate,
    caller: CallerIdentity = Depends(staff),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Only expenses awaiting approval can be edited"""
    expense = ExpenseService(db, clock).update(expense_id, data.model_dump(exclude_unset=True))
    return ExpenseOut.model_validate(expense)


@router.post("/expenses/{expense_id}/approve", response_model=ExpenseOut)
async def approve_expense(
    expense_id: str,
    data: ExpenseApprove,
    caller: CallerIdentity = Depends(adjudicators),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    expense = ExpenseService(db, clock).approve(expense_id, caller.display, data.remarks)
    return ExpenseOut.model_validate(expense)


@router.post("/expenses/{expense_id}/reject", response_model=ExpenseOut)
async def reject_expense(
    expense_id: str,
    data: ExpenseReject,
    caller: CallerIdentity = Depends(adjudicators),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    expense = ExpenseService(db, clock).reject(expense_id, caller.display, data.reason)
    return ExpenseOut.model_validate(expense)


@router.post("/expenses/{expense_id}/pay", response_model=ExpenseOut)
def pay_expense(
    expense_id: str,
    data: ExpensePay,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Pay an approved expense and debit the ledger"""
    expense = ExpenseService(db, clock).mark_paid(expense_id, caller.display, data.payment_ref)
    return ExpenseOut.model_validate(expense)


@router.delete("/expenses/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(
    expense_id: str,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    ExpenseService(db, clock).delete(expense_id)
