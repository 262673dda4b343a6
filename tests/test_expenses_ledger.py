from decimal import Decimal

import pytest

from app.core.errors import InvalidState, NotFound, ValidationError
from app.services.collection_service import CollectionService
from app.services.expense_service import ExpenseService
from app.services.ledger_service import EXPENSE_PAYMENT, FEE_COLLECTION, LedgerService


@pytest.fixture
def expenses(db, clock):
    return ExpenseService(db, clock)


def _request(expenses, amount="1200"):
    return expenses.create("supplies", "Chalk and dusters", amount, requested_by="Meera",
                           vendor_name="Sharma Stores")


def test_expense_lifecycle_posts_a_debit(db, clock, expenses, tuition, make_fee):
    fee = make_fee(tuition)
    CollectionService(db, clock).collect([(fee.id, 5000)], "cash", collected_by="Meera")

    expense = _request(expenses)
    assert expense.expense_number == "EXP000001"
    assert expense.status == "pending_approval"

    expenses.approve(expense.id, approved_by="Principal Iyer", remarks="ok")
    paid = expenses.mark_paid(expense.id, paid_by="Meera", payment_ref="CASH-17")
    assert paid.status == "paid"
    assert paid.payment_ref == "CASH-17"

    ledger = LedgerService(db, clock)
    assert ledger.get_balance() == Decimal("3800.00")
    summary = ledger.balance_summary()
    assert summary["total_credits"] == Decimal("5000.00")
    assert summary["total_debits"] == Decimal("1200.00")
    assert summary["closing_balance"] == Decimal("3800.00")

    items, total = ledger.list_entries(1, 20, entry_type="debit")
    assert total == 1
    assert items[0].category == EXPENSE_PAYMENT
    assert items[0].reference_number == "EXP000001"


def test_expense_transitions_are_enforced(expenses):
    expense = _request(expenses)
    with pytest.raises(InvalidState):
        expenses.mark_paid(expense.id, paid_by="Meera")

    expenses.reject(expense.id, rejected_by="Principal Iyer", reason="Duplicate bill")
    with pytest.raises(InvalidState):
        expenses.approve(expense.id, approved_by="Principal Iyer")
    with pytest.raises(InvalidState):
        expenses.update(expense.id, {"amount": Decimal("100")})


def test_expense_edits_only_while_pending(expenses):
    expense = _request(expenses)
    updated = expenses.update(expense.id, {"amount": Decimal("1500"), "vendor_name": "Gupta & Sons"})
    assert updated.amount == Decimal("1500")

    with pytest.raises(ValidationError):
        expenses.update(expense.id, {"status": "paid"})
    with pytest.raises(ValidationError):
        expenses.update(expense.id, {"amount": Decimal("0")})


def test_paid_expense_cannot_be_deleted(expenses):
    expense = _request(expenses)
    expenses.approve(expense.id, approved_by="Principal Iyer")
    expenses.mark_paid(expense.id, paid_by="Meera")
    with pytest.raises(InvalidState):
        expenses.delete(expense.id)


def test_delete_and_list_expenses(expenses):
    first = _request(expenses)
    second = expenses.create("maintenance", "Fan repair", "800", requested_by="Meera")

    items, total = expenses.list(1, 20, search="fan")
    assert [e.id for e in items] == [second.id]
    assert expenses.pending_approvals() == 2

    expenses.delete(first.id)
    with pytest.raises(NotFound):
        expenses.get(first.id)


def test_expense_amount_must_be_positive(expenses):
    with pytest.raises(ValidationError):
        _request(expenses, amount="-5")


def test_ledger_balances_chain(db, clock):
    ledger = LedgerService(db, clock)
    ledger.record("credit", FEE_COLLECTION, "fee-1", "1000", "Tuition")
    ledger.record("debit", EXPENSE_PAYMENT, "exp-1", "250.50", "Chalk")
    entry = ledger.record("credit", FEE_COLLECTION, "fee-2", "10", "Library")

    assert entry.sequence == 3
    assert entry.balance == Decimal("759.50")
    assert ledger.get_balance() == Decimal("759.50")


def test_ledger_rejects_bad_entries(db, clock):
    ledger = LedgerService(db, clock)
    with pytest.raises(ValidationError):
        ledger.record("credit", FEE_COLLECTION, "fee-1", "0")
    with pytest.raises(ValidationError):
        ledger.record("transfer", FEE_COLLECTION, "fee-1", "10")


def test_reversal_compensates_once(db, clock):
    ledger = LedgerService(db, clock)
    original = ledger.record("credit", FEE_COLLECTION, "fee-1", "1000", "Tuition")

    reversal = ledger.reverse(original.id, "Cheque bounced", reversed_by="Meera")
    assert reversal.type == "debit"
    assert reversal.amount == Decimal("1000.00")
    assert reversal.reverses_entry_id == original.id
    assert ledger.get_balance() == Decimal("0.00")

    with pytest.raises(InvalidState):
        ledger.reverse(original.id, "again", reversed_by="Meera")
    with pytest.raises(InvalidState):
        ledger.reverse(reversal.id, "undo", reversed_by="Meera")
    with pytest.raises(NotFound):
        ledger.reverse("missing", "typo", reversed_by="Meera")
