# app/models/discount.py - Discount rules, applied discounts and concession requests
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from sqlalchemy import (
    String, Boolean, Numeric, Date, DateTime, ForeignKey, JSON, CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utcnow
from app.models.base import Base
from app.models.fee import new_id

DiscountKind = Literal["percentage", "fixed_amount"]
Applicability = Literal[
    "sibling", "scholarship", "merit", "staff_ward", "early_bird", "hardship", "custom"
]
DiscountSource = Literal["rule", "concession", "manual"]
ConcessionStatus = Literal["pending", "approved", "rejected"]

APPLICABILITIES = ("sibling", "scholarship", "merit", "staff_ward", "early_bird", "hardship", "custom")


class DiscountRule(Base):
    __tablename__ = "discount_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[DiscountKind] = mapped_column(String(16), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    applicability: Mapped[Applicability] = mapped_column(String(16), nullable=False)
    # Empty list means "every fee type" / "every class"
    applicable_fee_type_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    applicable_classes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    max_discount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    academic_year: Mapped[Optional[str]] = mapped_column(String(16))
    valid_from: Mapped[Optional[date]] = mapped_column(Date)
    valid_to: Mapped[Optional[date]] = mapped_column(Date)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("kind IN ('percentage','fixed_amount')", name="ck_discount_rules_kind"),
        CheckConstraint("value > 0", name="ck_discount_rules_value_positive"),
    )


class AppliedDiscount(Base):
    """A realized reduction of one obligation, from a rule, a concession or by hand"""
    __tablename__ = "applied_discounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    student_fee_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("student_fees.id", ondelete="CASCADE"), index=True, nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_class: Mapped[str] = mapped_column(String(32), nullable=False)
    fee_type_name: Mapped[str] = mapped_column(String(128), nullable=False)

    source: Mapped[DiscountSource] = mapped_column(String(16), nullable=False)
    discount_rule_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("discount_rules.id"), index=True)
    discount_rule_name: Mapped[Optional[str]] = mapped_column(String(128))
    concession_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("concession_requests.id"), index=True)
    reason: Mapped[Optional[str]] = mapped_column(String(500))

    original_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    final_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    applied_by: Mapped[str] = mapped_column(String(255), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("source IN ('rule','concession','manual')", name="ck_applied_discounts_source"),
        CheckConstraint("discount_amount > 0", name="ck_applied_discounts_amount_positive"),
        Index("ix_applied_discounts_fee_source", "student_fee_id", "source"),
    )


class ConcessionRequest(Base):
    __tablename__ = "concession_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_class: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    section: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    admission_number: Mapped[str] = mapped_column(String(32), nullable=False, default="")

    fee_type_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    concession_type: Mapped[DiscountKind] = mapped_column(String(16), nullable=False)
    concession_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str] = mapped_column(String(1000), nullable=False)
    valid_from: Mapped[Optional[date]] = mapped_column(Date)
    valid_to: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[ConcessionStatus] = mapped_column(String(16), nullable=False, default="pending")

    requested_by: Mapped[str] = mapped_column(String(255), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    approved_by: Mapped[Optional[str]] = mapped_column(String(255))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    rejected_by: Mapped[Optional[str]] = mapped_column(String(255))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(1000))
    # Amount actually applied on approval
    total_concession_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    __table_args__ = (
        CheckConstraint("status IN ('pending','approved','rejected')", name="ck_concession_requests_status"),
        CheckConstraint(
            "concession_type IN ('percentage','fixed_amount')", name="ck_concession_requests_type"
        ),
        CheckConstraint("concession_value > 0", name="ck_concession_requests_value_positive"),
    )
