# app/api/routers/ledger.py - Ledger entries, balance and corrections
from datetime import date, datetime, time, timedelta
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional, Tuple, Literal

from app.core.clock import Clock
from app.core.db import get_db
from app.core.security import CallerIdentity, STAFF_ROLES, COLLECTOR_ROLES
from app.api.deps.auth import require_roles
from app.api.deps.tenancy import get_clock, pagination
from app.repositories.base import page_meta
from app.schemas.payment import LedgerEntryOut, LedgerPage, LedgerReversal, BalanceSummary
from app.services.ledger_service import LedgerService

router = APIRouter()


@router.get("/ledger", response_model=LedgerPage)
async def list_ledger_entries(
    entry_type: Optional[Literal["credit", "debit"]] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    paging: Tuple[int, int] = Depends(pagination),
    caller: CallerIdentity = Depends(require_roles(sorted(STAFF_ROLES))),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Ledger entries, most recent first, with the current balance"""
    page, limit = paging
    service = LedgerService(db, clock)
    items, total = service.list_entries(
        page, limit,
        entry_type=entry_type,
        date_from=datetime.combine(date_from, time.min) if date_from else None,
        date_to=datetime.combine(date_to + timedelta(days=1), time.min) if date_to else None,
    )
    return LedgerPage(
        items=[LedgerEntryOut.model_validate(e) for e in items],
        meta=page_meta(page, limit, total),
        balance=service.get_balance(),
    )


@router.get("/ledger/balance", response_model=BalanceSummary)
async def get_balance(
    caller: CallerIdentity = Depends(require_roles(sorted(STAFF_ROLES))),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Opening balance, credits, debits and closing balance"""
    return BalanceSummary(**LedgerService(db, clock).balance_summary())


@router.post("/ledger/{entry_id}/reverse", response_model=LedgerEntryOut, status_code=status.HTTP_201_CREATED)
def reverse_ledger_entry(
    entry_id: str,
    data: LedgerReversal,
    caller: CallerIdentity = Depends(require_roles(sorted(COLLECTOR_ROLES))),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Append a compensating entry; entries are never edited or deleted"""
    entry = LedgerService(db, clock).reverse(entry_id, data.reason, reversed_by=caller.display)
    return LedgerEntryOut.model_validate(entry)
