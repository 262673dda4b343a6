# app/schemas/discount.py - Discount rules, applied discounts and concessions
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Literal
from datetime import date, datetime
from decimal import Decimal

from app.schemas.common import RequestModel
from app.schemas.fee_schema import Applicability

DiscountKind = Literal["percentage", "fixed_amount"]


class DiscountRuleCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=128)
    kind: DiscountKind
    value: Decimal = Field(..., gt=0, decimal_places=2)
    applicability: Applicability
    applicable_fee_type_ids: List[str] = []
    applicable_classes: List[str] = []
    max_discount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    academic_year: Optional[str] = Field(None, max_length=16)
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    description: Optional[str] = Field(None, max_length=500)
    is_active: bool = True

    @model_validator(mode='after')
    def validate_rule(self):
        """Percentages stay within 100 and the window is ordered"""
        if self.kind == "percentage" and self.value > 100:
            raise ValueError('Percentage discount cannot exceed 100')
        if self.valid_from and self.valid_to and self.valid_to < self.valid_from:
            raise ValueError('valid_to is before valid_from')
        return self


class DiscountRuleUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=128)
    value: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    applicable_fee_type_ids: Optional[List[str]] = None
    applicable_classes: Optional[List[str]] = None
    max_discount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    academic_year: Optional[str] = Field(None, max_length=16)
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    description: Optional[str] = Field(None, max_length=500)


class DiscountRuleOut(BaseModel):
    id: str
    name: str
    kind: str
    value: Decimal
    applicability: str
    applicable_fee_type_ids: List[str]
    applicable_classes: List[str]
    max_discount: Optional[Decimal]
    academic_year: Optional[str]
    valid_from: Optional[date]
    valid_to: Optional[date]
    description: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class AppliedDiscountOut(BaseModel):
    id: str
    student_fee_id: str
    student_id: str
    student_name: str
    student_class: str
    fee_type_name: str
    source: str
    discount_rule_id: Optional[str]
    discount_rule_name: Optional[str]
    concession_id: Optional[str]
    reason: Optional[str]
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    applied_by: str
    applied_at: datetime

    class Config:
        from_attributes = True


# Concession Schemas
class ConcessionCreate(RequestModel):
    student_id: str = Field(..., min_length=1, max_length=64)
    student_name: str = Field(..., min_length=1, max_length=255)
    student_class: str = Field("", max_length=32)
    section: str = Field("", max_length=8)
    admission_number: str = Field("", max_length=32)
    fee_type_ids: List[str] = Field(..., min_length=1)
    concession_type: DiscountKind
    concession_value: Decimal = Field(..., gt=0, decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=1000)
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v: str) -> str:
        """Ensure reason is not just whitespace"""
        if not v.strip():
            raise ValueError('Reason cannot be empty or whitespace')
        return v.strip()


class ConcessionReject(RequestModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class ConcessionOut(BaseModel):
    id: str
    student_id: str
    student_name: str
    student_class: str
    section: str
    admission_number: str
    fee_type_ids: List[str]
    concession_type: str
    concession_value: Decimal
    reason: str
    valid_from: Optional[date]
    valid_to: Optional[date]
    status: Literal["pending", "approved", "rejected"]
    requested_by: str
    requested_at: datetime
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    rejected_by: Optional[str]
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
    total_concession_amount: Decimal

    class Config:
        from_attributes = True
