# app/schemas/expense.py
from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import date, datetime
from decimal import Decimal

from app.schemas.common import RequestModel

ExpenseCategory = Literal["salary", "utilities", "maintenance", "supplies", "infrastructure", "events", "other"]


class ExpenseCreate(RequestModel):
    category: ExpenseCategory
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    vendor_name: Optional[str] = Field(None, max_length=255)
    invoice_number: Optional[str] = Field(None, max_length=64)
    invoice_date: Optional[date] = None


class ExpenseUpdate(RequestModel):
    category: Optional[ExpenseCategory] = None
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    vendor_name: Optional[str] = Field(None, max_length=255)
    invoice_number: Optional[str] = Field(None, max_length=64)
    invoice_date: Optional[date] = None


class ExpenseApprove(RequestModel):
    remarks: Optional[str] = Field(None, max_length=500)


class ExpenseReject(RequestModel):
    reason: str = Field(..., min_length=1, max_length=500)


class ExpensePay(RequestModel):
    payment_ref: Optional[str] = Field(None, max_length=64)


class ExpenseOut(BaseModel):
    id: str
    expense_number: str
    category: str
    description: str
    amount: Decimal
    vendor_name: Optional[str]
    invoice_number: Optional[str]
    invoice_date: Optional[date]
    status: str
    requested_by: str
    requested_at: datetime
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    rejected_by: Optional[str]
    rejection_reason: Optional[str]
    paid_by: Optional[str]
    paid_at: Optional[datetime]
    payment_ref: Optional[str]

    class Config:
        from_attributes = True
