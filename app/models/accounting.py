# app/models/accounting.py - Append-only ledger with a running balance
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from sqlalchemy import String, Integer, Numeric, DateTime, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utcnow
from app.models.base import Base
from app.models.fee import new_id

LedgerEntryType = Literal["credit", "debit"]

MAIN_ACCOUNT = "main"


class LedgerAccount(Base):
    """
    Single row per account holding the current balance.

    Every post reads this row FOR UPDATE and rewrites it in the same
    transaction as the new entry, so entries never race on the balance.
    """
    __tablename__ = "ledger_accounts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=MAIN_ACCOUNT)
    opening_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    last_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    account_id: Mapped[str] = mapped_column(String(32), ForeignKey("ledger_accounts.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    type: Mapped[LedgerEntryType] = mapped_column(String(8), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    reference_number: Mapped[Optional[str]] = mapped_column(String(32))
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    # Balance of the account immediately after this entry
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # Set on compensating entries
    reverses_entry_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("ledger_entries.id"), unique=True
    )

    __table_args__ = (
        CheckConstraint("type IN ('credit','debit')", name="ck_ledger_entries_type"),
        CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
        Index("ix_ledger_entries_date", "date"),
    )
