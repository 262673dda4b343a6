# app/models/__init__.py - Import all models so SQLAlchemy can discover them

from app.models.base import Base

# Import all model classes
from app.models.fee import FeeType, FeeStructure, StudentFee
from app.models.payment import Receipt, Payment, DocumentSequence
from app.models.accounting import LedgerAccount, LedgerEntry
from app.models.discount import DiscountRule, AppliedDiscount, ConcessionRequest
from app.models.installment import InstallmentPlan, Installment
from app.models.notification import EscalationRule, ReminderLog
from app.models.expense import Expense
from app.models.online_payment import OnlinePaymentOrder

# Export the Base for other modules
__all__ = [
    "Base",
    "FeeType",
    "FeeStructure",
    "StudentFee",
    "Receipt",
    "Payment",
    "DocumentSequence",
    "LedgerAccount",
    "LedgerEntry",
    "DiscountRule",
    "AppliedDiscount",
    "ConcessionRequest",
    "InstallmentPlan",
    "Installment",
    "EscalationRule",
    "ReminderLog",
    "Expense",
    "OnlinePaymentOrder",
]
