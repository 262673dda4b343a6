# app/models/online_payment.py - Gateway payment orders
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from sqlalchemy import String, Numeric, DateTime, ForeignKey, JSON, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utcnow
from app.models.base import Base
from app.models.fee import new_id

OrderStatus = Literal["created", "processing", "completed", "failed", "unapplied"]


class OnlinePaymentOrder(Base):
    __tablename__ = "online_payment_orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    fee_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    # Remaining due per fee at order time, {fee_id: "amount"}
    fee_amounts: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    gateway: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(String(16), nullable=False, default="created")
    payment_link: Mapped[Optional[str]] = mapped_column(String(255))
    transaction_id: Mapped[Optional[str]] = mapped_column(String(64))
    receipt_number: Mapped[Optional[str]] = mapped_column(String(32), ForeignKey("receipts.receipt_number"))
    failure_reason: Mapped[Optional[str]] = mapped_column(String(500))

    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        CheckConstraint(
            "status IN ('created','processing','completed','failed','unapplied')", name="ck_online_payment_orders_status"
        ),
        CheckConstraint("amount > 0", name="ck_online_payment_orders_amount_positive"),
    )
