# app/api/routers/payments.py - Payment collection, receipts and online orders
from datetime import date, datetime, time, timedelta
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional, Tuple, FrozenSet

from app.core.clock import Clock
from app.core.db import get_db
from app.core.security import CallerIdentity, COLLECTOR_ROLES
from app.api.deps.auth import get_current_caller, require_roles
from app.api.deps.tenancy import (
    get_clock, get_payment_gateway, pagination, student_scope, ensure_student_access,
)
from app.schemas.common import Page
from app.schemas.payment import (
    CollectPayment, CollectionOut, ReceiptOut, PaymentOut, PaymentMode,
    OnlineOrderCreate, OnlineOrderOut,
)
from app.services.collection_service import CollectionService
from app.services.online_payment_service import OnlinePaymentService
from app.services.payment_gateway import PaymentGateway

router = APIRouter()

collectors = require_roles(sorted(COLLECTOR_ROLES))


@router.post("/payments/collect", response_model=CollectionOut, status_code=status.HTTP_201_CREATED)
def collect_payment(
    data: CollectPayment,
    caller: CallerIdentity = Depends(collectors),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """
    Collect payment against one or more obligations of a student.
    All lines are applied together or not at all.
    """
    receipt, payments = CollectionService(db, clock).collect(
        [(line.student_fee_id, line.amount) for line in data.lines],
        data.payment_mode,
        collected_by=caller.display,
        transaction_ref=data.transaction_ref,
        remarks=data.remarks,
        idempotency_key=data.idempotency_key,
    )
    return CollectionOut(
        receipt=ReceiptOut.model_validate(receipt),
        payments=[PaymentOut.model_validate(p) for p in payments],
    )


@router.get("/payments", response_model=Page[PaymentOut])
async def list_payments(
    student_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    payment_mode: Optional[PaymentMode] = None,
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination),
    scope: Optional[FrozenSet[str]] = Depends(student_scope),
    db: Session = Depends(get_db),
):
    """Payment lines, newest first"""
    page, limit = paging
    items, total = CollectionService(db).list_payments(
        page, limit,
        student_id=student_id,
        student_ids=scope,
        date_from=datetime.combine(date_from, time.min) if date_from else None,
        date_to=datetime.combine(date_to + timedelta(days=1), time.min) if date_to else None,
        payment_mode=payment_mode,
        search=search,
    )
    return Page[PaymentOut].build(items, page, limit, total, PaymentOut)


@router.get("/receipts/{receipt_number}", response_model=ReceiptOut)
async def get_receipt(
    receipt_number: str,
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    receipt = CollectionService(db).get_receipt(receipt_number)
    ensure_student_access(caller, receipt.student_id)
    return ReceiptOut.model_validate(receipt)


# ---------- Online payment orders ----------

@router.post("/online-orders", response_model=OnlineOrderOut, status_code=status.HTTP_201_CREATED)
def create_online_order(
    data: OnlineOrderCreate,
    caller: CallerIdentity = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db),
):
    """Start a gateway payment for some of a student's dues; parents may pay their own"""
    ensure_student_access(caller, data.student_id)
    order = OnlinePaymentService(db, clock, gateway).create_order(data.student_id, data.fee_ids, caller.display)
    return OnlineOrderOut.model_validate(order)


@router.post("/online-orders/{order_id}/confirm", response_model=OnlineOrderOut)
def confirm_online_order(
    order_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db),
):
    """Ask the gateway for the order status and settle a completed payment"""
    service = OnlinePaymentService(db, clock, gateway)
    ensure_student_access(caller, service.get(order_id).student_id)
    order = service.confirm(order_id, confirmed_by=caller.display)
    return OnlineOrderOut.model_validate(order)


@router.get("/online-orders", response_model=Page[OnlineOrderOut])
async def list_online_orders(
    student_id: Optional[str] = None,
    order_status: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination),
    caller: CallerIdentity = Depends(collectors),
    db: Session = Depends(get_db),
):
    page, limit = paging
    items, total = OnlinePaymentService(db).list(page, limit, student_id=student_id, status=order_status)
    return Page[OnlineOrderOut].build(items, page, limit, total, OnlineOrderOut)
