# app/services/ledger_service.py - Append-only journal with a running balance
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any
import logging

from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.db import atomic
from app.core.errors import NotFound, InvalidState, ValidationError
from app.core.locks import hold_ledger
from app.models.accounting import LedgerEntry, MAIN_ACCOUNT
from app.repositories.ledger_repo import LedgerRepository
from app.services.fee_status import money

logger = logging.getLogger(__name__)

FEE_COLLECTION = "Fee Collection"
EXPENSE_PAYMENT = "Expense"
REVERSAL = "Reversal"


class LedgerService:
    """
    Single writer for ledger entries.

    ``post`` assumes the caller holds the ledger lock and owns the
    transaction; use ``record`` for a standalone locked, committed post.
    """

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.repo = LedgerRepository(db)

    def _account(self):
        account = self.repo.account(for_update=True)
        if account is None:
            account = self.repo.create_account(money(settings.LEDGER_OPENING_BALANCE))
        return account

    def post(
        self,
        entry_type: str,
        category: str,
        reference_id: str,
        amount,
        description: str = "",
        reference_number: Optional[str] = None,
        reverses_entry_id: Optional[str] = None,
    ) -> LedgerEntry:
        """
        Append one entry and move the account balance.

        Raises:
            ValidationError: non-positive amount or unknown type
        """
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Ledger amount must be positive", amount=amount)
        if entry_type not in ("credit", "debit"):
            raise ValidationError(f"Unknown ledger entry type '{entry_type}'", type=entry_type)

        account = self._account()
        balance = account.balance + amount if entry_type == "credit" else account.balance - amount
        sequence = account.last_sequence + 1

        entry = LedgerEntry(
            account_id=MAIN_ACCOUNT,
            sequence=sequence,
            date=self.clock.now(),
            type=entry_type,
            category=category,
            reference_id=reference_id,
            reference_number=reference_number,
            description=description[:255],
            amount=amount,
            balance=balance,
            reverses_entry_id=reverses_entry_id,
        )
        account.balance = balance
        account.last_sequence = sequence
        self.db.add(entry)
        self.db.flush()
        return entry

    def record(self, entry_type: str, category: str, reference_id: str, amount,
               description: str = "", reference_number: Optional[str] = None) -> LedgerEntry:
        with hold_ledger():
            with atomic(self.db):
                entry = self.post(entry_type, category, reference_id, amount, description, reference_number)
        logger.info(f"Ledger {entry_type} #{entry.sequence}: {entry.amount} ({category}), balance {entry.balance}")
        return entry

    def reverse(self, entry_id: str, reason: str, reversed_by: str) -> LedgerEntry:
        """
        Append a compensating entry of the opposite type for the same amount.

        Raises:
            NotFound: unknown entry
            InvalidState: entry already reversed, or is itself a reversal
        """
        if not reason or not reason.strip():
            raise ValidationError("A reversal needs a reason")

        with hold_ledger():
            with atomic(self.db):
                original = self.repo.get(entry_id)
                if original is None:
                    raise NotFound("LedgerEntry", entry_id)
                if original.reverses_entry_id:
                    raise InvalidState("A reversal entry cannot itself be reversed", entry_id=entry_id)
                if self.repo.reversal_of(entry_id):
                    raise InvalidState("Ledger entry has already been reversed", entry_id=entry_id)

                entry = self.post(
                    "debit" if original.type == "credit" else "credit",
                    REVERSAL,
                    original.reference_id,
                    original.amount,
                    description=f"Reversal of #{original.sequence}: {reason.strip()} (by {reversed_by})",
                    reference_number=original.reference_number,
                    reverses_entry_id=original.id,
                )

        logger.info(f"Ledger entry #{original.sequence} reversed by #{entry.sequence}: {reason}")
        return entry

    def get_balance(self) -> Decimal:
        latest = self.repo.latest()
        if latest is None:
            return money(settings.LEDGER_OPENING_BALANCE)
        return money(latest.balance)

    def balance_summary(self) -> Dict[str, Any]:
        account = self.repo.account()
        opening = money(account.opening_balance if account else settings.LEDGER_OPENING_BALANCE)
        credits, debits = self.repo.totals()
        return {
            "opening_balance": opening,
            "total_credits": money(credits),
            "total_debits": money(debits),
            "closing_balance": self.get_balance(),
            "as_of": self.clock.now(),
        }

    def list_entries(self, page: int, limit: int, entry_type: Optional[str] = None,
                     date_from: Optional[datetime] = None, date_to: Optional[datetime] = None):
        return self.repo.list(page, limit, entry_type=entry_type, date_from=date_from, date_to=date_to)
