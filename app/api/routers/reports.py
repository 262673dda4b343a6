# app/api/routers/reports.py - Collection and dues reporting
from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from app.core.clock import Clock
from app.core.db import get_db
from app.core.security import CallerIdentity, STAFF_ROLES
from app.api.deps.auth import require_roles
from app.api.deps.tenancy import get_clock
from app.schemas.report import CollectionReport, DueReport, FinanceStats
from app.services.report_service import ReportService

router = APIRouter()

staff = require_roles(sorted(STAFF_ROLES))


@router.get("/reports/collection", response_model=CollectionReport)
async def collection_report(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    caller: CallerIdentity = Depends(staff),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Collections in a date range; defaults to the current month"""
    today = clock.today()
    date_to = date_to or today
    date_from = date_from or date_to.replace(day=1)
    return CollectionReport(**ReportService(db, clock).collection_report(date_from, date_to))


@router.get("/reports/dues", response_model=DueReport)
async def due_report(
    caller: CallerIdentity = Depends(staff),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Outstanding dues by class and age, with the largest defaulters"""
    return DueReport(**ReportService(db, clock).due_report(clock.today()))


@router.get("/stats", response_model=FinanceStats)
async def finance_stats(
    caller: CallerIdentity = Depends(staff),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    return FinanceStats(**ReportService(db, clock).stats(clock.today()))
