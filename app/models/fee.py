from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from sqlalchemy import (
    String, Integer, Boolean, Numeric, ForeignKey, DateTime, Date, JSON,
    CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.clock import utcnow
from app.models.base import Base

FeeCategory = Literal[
    "tuition", "development", "lab", "library", "sports",
    "computer", "transport", "examination", "other",
]
FeeFrequency = Literal["monthly", "quarterly", "half_yearly", "term", "annual", "one_time"]
FeeStatus = Literal["pending", "partial", "paid", "overdue"]

FEE_CATEGORIES = (
    "tuition", "development", "lab", "library", "sports",
    "computer", "transport", "examination", "other",
)
FEE_FREQUENCIES = ("monthly", "quarterly", "half_yearly", "term", "annual", "one_time")
FEE_STATUSES = ("pending", "partial", "paid", "overdue")


def new_id() -> str:
    return str(uuid.uuid4())


class FeeType(Base):
    __tablename__ = "fee_types"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    category: Mapped[FeeCategory] = mapped_column(String(24), nullable=False, default="other")
    description: Mapped[Optional[str]] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    structures: Mapped[list["FeeStructure"]] = relationship("FeeStructure", back_populates="fee_type")

    __table_args__ = (
        CheckConstraint(
            "category IN ('tuition','development','lab','library','sports',"
            "'computer','transport','examination','other')",
            name="ck_fee_types_category",
        ),
    )


class FeeStructure(Base):
    __tablename__ = "fee_structures"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    fee_type_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("fee_types.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    # Snapshot of the fee type name for receipts and reports
    fee_type_name: Mapped[str] = mapped_column(String(128), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(16), nullable=False)
    applicable_classes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    frequency: Mapped[FeeFrequency] = mapped_column(String(16), nullable=False, default="annual")
    due_day: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    is_optional: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    fee_type: Mapped["FeeType"] = relationship("FeeType", back_populates="structures")

    __table_args__ = (
        CheckConstraint(
            "frequency IN ('monthly','quarterly','half_yearly','term','annual','one_time')",
            name="ck_fee_structures_frequency",
        ),
        CheckConstraint("amount > 0", name="ck_fee_structures_amount_positive"),
        CheckConstraint("due_day BETWEEN 1 AND 31", name="ck_fee_structures_due_day"),
        Index("ix_fee_structures_year_type", "academic_year", "fee_type_id"),
    )


class StudentFee(Base):
    """
    One student's obligation for one structure and billing period.

    Student name/class/section/contact columns are a snapshot taken when the
    obligation is created, not a live join. ``discount_amount`` always equals
    the sum of the obligation's AppliedDiscount rows.
    """
    __tablename__ = "student_fees"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_class: Mapped[str] = mapped_column(String(32), nullable=False)
    student_section: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    admission_number: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    guardian_email: Mapped[Optional[str]] = mapped_column(String(255))
    guardian_phone: Mapped[Optional[str]] = mapped_column(String(32))

    fee_structure_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("fee_structures.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    fee_type_id: Mapped[str] = mapped_column(String(36), ForeignKey("fee_types.id"), index=True, nullable=False)
    fee_type_name: Mapped[str] = mapped_column(String(128), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(16), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[FeeStatus] = mapped_column(String(16), nullable=False, default="pending")

    # Optimistic concurrency guard, bumped on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    structure: Mapped["FeeStructure"] = relationship("FeeStructure")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("status IN ('pending','partial','paid','overdue')", name="ck_student_fees_status"),
        CheckConstraint("total_amount > 0", name="ck_student_fees_total_positive"),
        CheckConstraint("discount_amount >= 0", name="ck_student_fees_discount_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_student_fees_paid_non_negative"),
        UniqueConstraint(
            "student_id", "fee_structure_id", "period_start",
            name="uix_student_fee_period"
        ),
        Index("ix_student_fees_class_section", "student_class", "student_section"),
        Index("ix_student_fees_student_year", "student_id", "academic_year"),
    )

    @property
    def remaining_due(self) -> Decimal:
        return self.total_amount - self.discount_amount - self.paid_amount
