# app/api/routers/installments.py - Installment plans over fee structures
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.clock import Clock
from app.core.db import get_db
from app.core.security import CallerIdentity, COLLECTOR_ROLES
from app.api.deps.auth import get_current_caller, require_roles
from app.api.deps.tenancy import get_clock
from app.schemas.installment import InstallmentPlanCreate, InstallmentPlanOut
from app.services.installment_service import InstallmentService

router = APIRouter()

collectors = require_roles(sorted(COLLECTOR_ROLES))


@router.post("/installment-plans", response_model=InstallmentPlanOut, status_code=status.HTTP_201_CREATED)
async def create_installment_plan(
    data: InstallmentPlanCreate,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Split a structure's amount; the last installment absorbs the remainder"""
    service = InstallmentService(db, clock)
    plan = service.create_plan(data.fee_structure_id, data.number_of_installments, data.due_dates, data.name)
    return InstallmentPlanOut.model_validate(service.get(plan.id))


@router.get("/installment-plans", response_model=List[InstallmentPlanOut])
async def list_installment_plans(
    academic_year: Optional[str] = None,
    active_only: bool = False,
    caller: CallerIdentity = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    plans = InstallmentService(db, clock).list(academic_year=academic_year, active_only=active_only)
    return [InstallmentPlanOut.model_validate(p) for p in plans]


@router.get("/installment-plans/{plan_id}", response_model=InstallmentPlanOut)
async def get_installment_plan(
    plan_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    return InstallmentPlanOut.model_validate(InstallmentService(db, clock).get(plan_id))


@router.post("/installment-plans/{plan_id}/toggle", response_model=InstallmentPlanOut)
async def toggle_installment_plan(
    plan_id: str,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    return InstallmentPlanOut.model_validate(InstallmentService(db, clock).toggle(plan_id))


@router.delete("/installment-plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_installment_plan(
    plan_id: str,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    InstallmentService(db, clock).delete(plan_id)
