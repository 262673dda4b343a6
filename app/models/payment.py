# app/models/payment.py - Receipts, payment lines and document number sequences
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from sqlalchemy import (
    String, Integer, Numeric, DateTime, ForeignKey, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.clock import utcnow
from app.models.base import Base
from app.models.fee import new_id

PaymentMode = Literal["cash", "upi", "bank_transfer", "cheque", "dd", "online"]
PAYMENT_MODES = ("cash", "upi", "bank_transfer", "cheque", "dd", "online")


class Receipt(Base):
    """Payer-facing aggregate of the payment lines collected in one call"""
    __tablename__ = "receipts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    receipt_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_class: Mapped[str] = mapped_column(String(32), nullable=False)
    student_section: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    admission_number: Mapped[str] = mapped_column(String(32), nullable=False, default="")

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_mode: Mapped[PaymentMode] = mapped_column(String(16), nullable=False)
    transaction_ref: Mapped[Optional[str]] = mapped_column(String(64))
    remarks: Mapped[Optional[str]] = mapped_column(String(500))
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(64), unique=True)

    generated_by: Mapped[str] = mapped_column(String(255), nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="receipt",
        order_by="Payment.line_no",
    )

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="ck_receipts_total_positive"),
        CheckConstraint(
            "payment_mode IN ('cash','upi','bank_transfer','cheque','dd','online')",
            name="ck_receipts_payment_mode",
        ),
    )


class Payment(Base):
    """One line of a receipt. Immutable once created."""
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    receipt_id: Mapped[str] = mapped_column(String(36), ForeignKey("receipts.id"), index=True, nullable=False)
    receipt_number: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    student_fee_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("student_fees.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_class: Mapped[str] = mapped_column(String(32), nullable=False)
    student_section: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    admission_number: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    fee_type_name: Mapped[str] = mapped_column(String(128), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_mode: Mapped[PaymentMode] = mapped_column(String(16), nullable=False)
    transaction_ref: Mapped[Optional[str]] = mapped_column(String(64))
    remarks: Mapped[Optional[str]] = mapped_column(String(500))
    collected_by: Mapped[str] = mapped_column(String(255), nullable=False)
    collected_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    receipt: Mapped["Receipt"] = relationship("Receipt", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        UniqueConstraint("receipt_id", "line_no", name="uix_payments_receipt_line"),
        Index("ix_payments_collected_at", "collected_at"),
    )


class DocumentSequence(Base):
    """Monotonic counters for receipt and expense numbers"""
    __tablename__ = "document_sequences"

    name: Mapped[str] = mapped_column(String(32), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
