# app/schemas/fee_schema.py
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import date, datetime
from decimal import Decimal

from app.schemas.common import RequestModel

FeeCategory = Literal[
    "tuition", "development", "lab", "library", "sports",
    "computer", "transport", "examination", "other",
]
FeeFrequency = Literal["monthly", "quarterly", "half_yearly", "term", "annual", "one_time"]
FeeStatus = Literal["pending", "partial", "paid", "overdue"]
Applicability = Literal["sibling", "scholarship", "merit", "staff_ward", "early_bird", "hardship", "custom"]


# Fee Type Schemas
class FeeTypeCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=128)
    category: FeeCategory = "other"
    description: Optional[str] = Field(None, max_length=500)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure fee type name is not just whitespace"""
        if not v.strip():
            raise ValueError('Fee type name cannot be empty or whitespace')
        return v.strip()


class FeeTypeUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=128)
    category: Optional[FeeCategory] = None
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class FeeTypeOut(BaseModel):
    id: str
    name: str
    category: str
    description: Optional[str]
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# Fee Structure Schemas
class FeeStructureCreate(RequestModel):
    fee_type_id: str
    academic_year: str = Field(..., min_length=4, max_length=16)
    applicable_classes: List[str] = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    frequency: FeeFrequency = "annual"
    due_day: int = Field(10, ge=1, le=31)
    is_optional: bool = False

    @field_validator('applicable_classes')
    @classmethod
    def validate_classes(cls, v: List[str]) -> List[str]:
        """Strip class names and drop blanks"""
        classes = [c.strip() for c in v if c and c.strip()]
        if not classes:
            raise ValueError('At least one applicable class is required')
        return classes


class FeeStructureUpdate(RequestModel):
    """Amount changes only affect obligations created afterwards"""
    applicable_classes: Optional[List[str]] = None
    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    frequency: Optional[FeeFrequency] = None
    due_day: Optional[int] = Field(None, ge=1, le=31)
    is_optional: Optional[bool] = None
    is_active: Optional[bool] = None


class FeeStructureOut(BaseModel):
    id: str
    fee_type_id: str
    fee_type_name: str
    academic_year: str
    applicable_classes: List[str]
    amount: Decimal
    frequency: str
    due_day: int
    is_optional: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# Student Fee Schemas
class StudentSnapshot(RequestModel):
    student_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    class_name: str = Field(..., min_length=1, max_length=32)
    section: str = Field("", max_length=8)
    admission_number: str = Field("", max_length=32)
    guardian_email: Optional[str] = Field(None, max_length=255)
    guardian_phone: Optional[str] = Field(None, max_length=32)
    eligibility: List[Applicability] = []


class StudentFeeCreate(RequestModel):
    fee_structure_id: str
    period_start: date
    student: StudentSnapshot


class StudentFeeAssign(RequestModel):
    fee_structure_id: str
    period_start: date
    students: List[StudentSnapshot] = Field(..., min_length=1)


class ManualDiscount(RequestModel):
    amount: Decimal = Field(..., decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=500)


class RecomputeDiscounts(RequestModel):
    eligibility: List[Applicability] = []


class StudentFeeOut(BaseModel):
    id: str
    student_id: str
    student_name: str
    student_class: str
    student_section: str
    admission_number: str
    fee_structure_id: str
    fee_type_id: str
    fee_type_name: str
    academic_year: str
    period_start: date
    total_amount: Decimal
    discount_amount: Decimal
    paid_amount: Decimal
    remaining_due: Decimal
    due_date: date
    status: FeeStatus
    created_at: datetime

    class Config:
        from_attributes = True


class FeeTotals(BaseModel):
    total_amount: Decimal
    discount_amount: Decimal
    paid_amount: Decimal
    remaining_due: Decimal


class StudentFeeList(BaseModel):
    """A student's obligations with summary totals"""
    items: List[StudentFeeOut]
    summary: FeeTotals


class AssignResult(BaseModel):
    created: List[StudentFeeOut]
    skipped_student_ids: List[str]


class OutstandingDueOut(BaseModel):
    student_fee: StudentFeeOut
    remaining_due: Decimal
    days_overdue: int
    status: FeeStatus

    class Config:
        from_attributes = True


class DuesSummary(BaseModel):
    total_outstanding: Decimal
    students_with_dues: int
    obligations: int
    average_days_overdue: float
