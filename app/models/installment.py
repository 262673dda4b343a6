# app/models/installment.py - Installment plans derived from fee structures
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String, Integer, Boolean, Numeric, Date, DateTime, ForeignKey, JSON,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.clock import utcnow
from app.models.base import Base
from app.models.fee import new_id


class InstallmentPlan(Base):
    __tablename__ = "installment_plans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    fee_structure_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("fee_structures.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    fee_type_name: Mapped[str] = mapped_column(String(128), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(16), nullable=False)
    applicable_classes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    number_of_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    installments: Mapped[list["Installment"]] = relationship(
        "Installment",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="Installment.installment_number",
    )

    __table_args__ = (
        CheckConstraint("number_of_installments >= 1", name="ck_installment_plans_count"),
    )


class Installment(Base):
    __tablename__ = "installments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("installment_plans.id", ondelete="CASCADE"), index=True, nullable=False
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    paid_date: Mapped[Optional[date]] = mapped_column(Date)

    plan: Mapped["InstallmentPlan"] = relationship("InstallmentPlan", back_populates="installments")

    __table_args__ = (
        UniqueConstraint("plan_id", "installment_number", name="uix_installments_plan_number"),
        CheckConstraint("amount >= 0", name="ck_installments_amount_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_installments_paid_non_negative"),
    )
