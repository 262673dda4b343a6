# app/schemas/report.py
from pydantic import BaseModel
from typing import List
from datetime import date
from decimal import Decimal


class AmountBy(BaseModel):
    key: str
    amount: Decimal


class CollectionReport(BaseModel):
    date_from: date
    date_to: date
    total_collected: Decimal
    receipt_count: int
    by_payment_mode: List[AmountBy]
    by_fee_type: List[AmountBy]
    by_class: List[AmountBy]
    daily: List[AmountBy]


class Defaulter(BaseModel):
    student_id: str
    student_name: str
    student_class: str
    amount: Decimal
    max_days_overdue: int


class DueReport(BaseModel):
    as_of: date
    total_outstanding: Decimal
    students_with_dues: int
    by_class: List[AmountBy]
    aging: List[AmountBy]
    top_defaulters: List[Defaulter]


class FinanceStats(BaseModel):
    total_collected: Decimal
    total_pending: Decimal
    this_month_collection: Decimal
    collection_rate: float
    pending_expense_approvals: int
    pending_concession_value: Decimal
    overdue_students: int
