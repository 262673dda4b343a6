# app/api/routers/discounts.py - Discount rules, applied discounts and concession requests
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple, Literal

from app.core.clock import Clock
from app.core.db import get_db
from app.core.security import CallerIdentity, COLLECTOR_ROLES, ADJUDICATOR_ROLES, STAFF_ROLES
from app.api.deps.auth import require_roles
from app.api.deps.tenancy import get_clock, pagination
from app.schemas.common import Page
from app.schemas.discount import (
    DiscountRuleCreate, DiscountRuleUpdate, DiscountRuleOut, AppliedDiscountOut,
    ConcessionCreate, ConcessionReject, ConcessionOut,
)
from app.schemas.fee_schema import Applicability
from app.services.concession_service import ConcessionService
from app.services.discount_service import DiscountService

router = APIRouter()

collectors = require_roles(sorted(COLLECTOR_ROLES))
adjudicators = require_roles(sorted(ADJUDICATOR_ROLES))
staff = require_roles(sorted(STAFF_ROLES))


# ---------- Discount Rules ----------

@router.post("/discount-rules", response_model=DiscountRuleOut, status_code=status.HTTP_201_CREATED)
async def create_discount_rule(
    data: DiscountRuleCreate,
    caller: CallerIdentity = Depends(collectors),
    db: Session = Depends(get_db),
):
    """Rules apply automatically to obligations created afterwards"""
    rule = DiscountService(db).create_rule(**data.model_dump())
    return DiscountRuleOut.model_validate(rule)


@router.get("/discount-rules", response_model=List[DiscountRuleOut])
async def list_discount_rules(
    active_only: bool = False,
    applicability: Optional[Applicability] = None,
    caller: CallerIdentity = Depends(staff),
    db: Session = Depends(get_db),
):
    rules = DiscountService(db).list_rules(active_only=active_only, applicability=applicability)
    return [DiscountRuleOut.model_validate(r) for r in rules]


@router.get("/discount-rules/{rule_id}", response_model=DiscountRuleOut)
async def get_discount_rule(
    rule_id: str,
    caller: CallerIdentity = Depends(staff),
    db: Session = Depends(get_db),
):
    return DiscountRuleOut.model_validate(DiscountService(db).get_rule(rule_id))


@router.patch("/discount-rules/{rule_id}", response_model=DiscountRuleOut)
async def update_discount_rule(
    rule_id: str,
    data: DiscountRuleUpdate,
    caller: CallerIdentity = Depends(collectors),
    db: Session = Depends(get_db),
):
    """Edits do not touch discounts already applied"""
    rule = DiscountService(db).update_rule(rule_id, data.model_dump(exclude_unset=True))
    return DiscountRuleOut.model_validate(rule)


@router.post("/discount-rules/{rule_id}/toggle", response_model=DiscountRuleOut)
async def toggle_discount_rule(
    rule_id: str,
    caller: CallerIdentity = Depends(collectors),
    db: Session = Depends(get_db),
):
    return DiscountRuleOut.model_validate(DiscountService(db).toggle_rule(rule_id))


@router.delete("/discount-rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_discount_rule(
    rule_id: str,
    caller: CallerIdentity = Depends(collectors),
    db: Session = Depends(get_db),
):
    """Rules that were ever applied can only be deactivated"""
    DiscountService(db).delete_rule(rule_id)


@router.get("/applied-discounts", response_model=Page[AppliedDiscountOut])
async def list_applied_discounts(
    student_id: Optional[str] = None,
    rule_id: Optional[str] = None,
    student_fee_id: Optional[str] = None,
    source: Optional[Literal["rule", "manual", "concession"]] = None,
    paging: Tuple[int, int] = Depends(pagination),
    caller: CallerIdentity = Depends(staff),
    db: Session = Depends(get_db),
):
    page, limit = paging
    items, total = DiscountService(db).list_applied(
        page, limit, student_id=student_id, rule_id=rule_id, student_fee_id=student_fee_id, source=source
    )
    return Page[AppliedDiscountOut].build(items, page, limit, total, AppliedDiscountOut)


# ---------- Concessions ----------

@router.post("/concessions", response_model=ConcessionOut, status_code=status.HTTP_201_CREATED)
async def request_concession(
    data: ConcessionCreate,
    caller: CallerIdentity = Depends(staff),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """File a concession request; it takes effect only once approved"""
    request = ConcessionService(db, clock).create(requested_by=caller.display, **data.model_dump())
    return ConcessionOut.model_validate(request)


@router.get("/concessions", response_model=Page[ConcessionOut])
async def list_concessions(
    concession_status: Optional[Literal["pending", "approved", "rejected"]] = Query(None, alias="status"),
    student_id: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination),
    caller: CallerIdentity = Depends(staff),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    page, limit = paging
    items, total = ConcessionService(db, clock).list(page, limit, status=concession_status, student_id=student_id)
    return Page[ConcessionOut].build(items, page, limit, total, ConcessionOut)


@router.get("/concessions/{request_id}", response_model=ConcessionOut)
async def get_concession(
    request_id: str,
    caller: CallerIdentity = Depends(staff),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    return ConcessionOut.model_validate(ConcessionService(db, clock).get(request_id))


@router.post("/concessions/{request_id}/approve", response_model=ConcessionOut)
def approve_concession(
    request_id: str,
    caller: CallerIdentity = Depends(adjudicators),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Approve and apply to the student's open obligations of the targeted fee types"""
    request = ConcessionService(db, clock).approve(request_id, approved_by=caller.display)
    return ConcessionOut.model_validate(request)


@router.post("/concessions/{request_id}/reject", response_model=ConcessionOut)
def reject_concession(
    request_id: str,
    data: ConcessionReject,
    caller: CallerIdentity = Depends(adjudicators),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    request = ConcessionService(db, clock).reject(request_id, caller.display, data.reason)
    return ConcessionOut.model_validate(request)
