# app/schemas/payment.py - Collection requests, receipts, payments and the ledger
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import datetime
from decimal import Decimal

from app.schemas.common import RequestModel, PageMeta

PaymentMode = Literal["cash", "upi", "bank_transfer", "cheque", "dd", "online"]


class CollectionLineIn(RequestModel):
    student_fee_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., decimal_places=2)


class CollectPayment(RequestModel):
    lines: List[CollectionLineIn] = Field(..., min_length=1)
    payment_mode: PaymentMode
    transaction_ref: Optional[str] = Field(None, max_length=64)
    remarks: Optional[str] = Field(None, max_length=500)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=64)

    @field_validator('transaction_ref')
    @classmethod
    def validate_transaction_ref(cls, v: Optional[str]) -> Optional[str]:
        """Blank references are treated as absent"""
        return v or None


class PaymentOut(BaseModel):
    id: str
    receipt_number: str
    line_no: int
    student_fee_id: str
    student_id: str
    student_name: str
    student_class: str
    fee_type_name: str
    amount: Decimal
    payment_mode: str
    transaction_ref: Optional[str]
    collected_by: str
    collected_at: datetime

    class Config:
        from_attributes = True


class ReceiptLineOut(BaseModel):
    line_no: int
    student_fee_id: str
    fee_type_name: str
    amount: Decimal

    class Config:
        from_attributes = True


class ReceiptOut(BaseModel):
    id: str
    receipt_number: str
    student_id: str
    student_name: str
    student_class: str
    student_section: str
    admission_number: str
    total_amount: Decimal
    payment_mode: str
    transaction_ref: Optional[str]
    remarks: Optional[str]
    generated_by: str
    generated_at: datetime
    payments: List[ReceiptLineOut]

    class Config:
        from_attributes = True


class CollectionOut(BaseModel):
    receipt: ReceiptOut
    payments: List[PaymentOut]


# Ledger Schemas
class LedgerEntryOut(BaseModel):
    id: str
    sequence: int
    date: datetime
    type: Literal["credit", "debit"]
    category: str
    reference_id: str
    reference_number: Optional[str]
    description: str
    amount: Decimal
    balance: Decimal
    reverses_entry_id: Optional[str]

    class Config:
        from_attributes = True


class LedgerReversal(RequestModel):
    reason: str = Field(..., min_length=1, max_length=200)


class BalanceSummary(BaseModel):
    opening_balance: Decimal
    total_credits: Decimal
    total_debits: Decimal
    closing_balance: Decimal
    as_of: datetime


class LedgerPage(BaseModel):
    """Ledger entries plus the current balance"""
    items: List[LedgerEntryOut]
    meta: PageMeta
    balance: Decimal


# Online payment orders
class OnlineOrderCreate(RequestModel):
    student_id: str = Field(..., min_length=1)
    fee_ids: List[str] = Field(..., min_length=1)


class OnlineOrderOut(BaseModel):
    order_id: str
    student_id: str
    student_name: str
    fee_ids: List[str]
    amount: Decimal
    gateway: str
    status: str
    payment_link: Optional[str]
    transaction_id: Optional[str]
    receipt_number: Optional[str]
    failure_reason: Optional[str]
    created_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True
