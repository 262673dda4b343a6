# app/schemas/installment.py
from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal

from app.schemas.common import RequestModel


class InstallmentPlanCreate(RequestModel):
    fee_structure_id: str
    number_of_installments: int = Field(..., ge=1, le=24)
    due_dates: List[date] = Field(..., min_length=1)
    name: Optional[str] = Field(None, max_length=128)

    @model_validator(mode='after')
    def validate_dates(self):
        """One due date per installment"""
        if len(self.due_dates) != self.number_of_installments:
            raise ValueError('due_dates must have one entry per installment')
        return self


class InstallmentOut(BaseModel):
    installment_number: int
    amount: Decimal
    due_date: date
    status: str
    paid_amount: Decimal
    paid_date: Optional[date]

    class Config:
        from_attributes = True


class InstallmentPlanOut(BaseModel):
    id: str
    name: str
    fee_structure_id: str
    fee_type_name: str
    academic_year: str
    applicable_classes: List[str]
    total_amount: Decimal
    number_of_installments: int
    is_active: bool
    created_at: datetime
    installments: List[InstallmentOut]

    class Config:
        from_attributes = True
