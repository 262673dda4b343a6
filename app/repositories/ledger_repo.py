# app/repositories/ledger_repo.py - Ledger account row and entries
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from app.models.accounting import LedgerAccount, LedgerEntry, MAIN_ACCOUNT
from app.repositories.base import paginate


class LedgerRepository:
    def __init__(self, db: Session):
        self.db = db

    def account(self, for_update: bool = False) -> Optional[LedgerAccount]:
        stmt = select(LedgerAccount).where(LedgerAccount.id == MAIN_ACCOUNT)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_account(self, opening_balance: Decimal) -> LedgerAccount:
        account = LedgerAccount(
            id=MAIN_ACCOUNT,
            opening_balance=opening_balance,
            balance=opening_balance,
            last_sequence=0,
        )
        self.db.add(account)
        self.db.flush()
        return account

    def latest(self) -> Optional[LedgerEntry]:
        return self.db.execute(
            select(LedgerEntry).order_by(LedgerEntry.sequence.desc()).limit(1)
        ).scalar_one_or_none()

    def get(self, entry_id: str) -> Optional[LedgerEntry]:
        return self.db.get(LedgerEntry, entry_id)

    def reversal_of(self, entry_id: str) -> Optional[LedgerEntry]:
        return self.db.execute(
            select(LedgerEntry).where(LedgerEntry.reverses_entry_id == entry_id)
        ).scalar_one_or_none()

    def _filtered(self, entry_type: Optional[str] = None,
                  date_from: Optional[datetime] = None, date_to: Optional[datetime] = None):
        stmt = select(LedgerEntry)
        if entry_type:
            stmt = stmt.where(LedgerEntry.type == entry_type)
        if date_from:
            stmt = stmt.where(LedgerEntry.date >= date_from)
        if date_to:
            stmt = stmt.where(LedgerEntry.date < date_to)
        return stmt

    def list(self, page: int, limit: int, **filters) -> Tuple[List[LedgerEntry], int]:
        stmt = self._filtered(**filters).order_by(LedgerEntry.sequence.desc())
        return paginate(self.db, stmt, page, limit)

    def totals(self) -> Tuple[Decimal, Decimal]:
        """Sum of credits and of debits across the whole ledger"""
        rows = self.db.execute(
            select(LedgerEntry.type, func.coalesce(func.sum(LedgerEntry.amount), 0))
            .group_by(LedgerEntry.type)
        ).all()
        sums = {entry_type: Decimal(str(total)) for entry_type, total in rows}
        return sums.get("credit", Decimal("0")), sums.get("debit", Decimal("0"))
