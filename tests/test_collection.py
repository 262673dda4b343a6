import threading
from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import ConcurrencyConflict, ExceedsDue, InvalidState, NotFound, ValidationError
from app.models.accounting import LedgerEntry
from app.models.payment import Payment, Receipt
from app.services.catalog_service import CatalogService
from app.services.collection_service import CollectionService
from app.services.dues_service import DuesService
from app.services.ledger_service import LedgerService
from app.services.student_fee_service import StudentFeeService
from factories import student


@pytest.fixture
def due_yesterday(db, clock, make_fee):
    catalog = CatalogService(db)
    fee_type = catalog.create_fee_type("Lab Fee", "lab")
    structure = catalog.create_structure(
        fee_type_id=fee_type.id,
        academic_year="2025-26",
        applicable_classes=["5"],
        amount=Decimal("5000"),
        due_day=14,
    )
    return make_fee(structure)


def test_obligation_overdue_by_one_day(db, clock, due_yesterday):
    fee = StudentFeeService(db, clock).get_current(due_yesterday.id)
    assert fee.status == "overdue"

    [due] = DuesService(db).outstanding(clock.today())
    assert due.days_overdue == 1
    assert due.remaining_due == Decimal("5000.00")


def test_full_payment_marks_paid_and_credits_ledger(db, clock, due_yesterday):
    receipt, payments = CollectionService(db, clock).collect(
        [(due_yesterday.id, Decimal("5000"))], "cash", collected_by="Meera"
    )

    db.refresh(due_yesterday)
    assert due_yesterday.paid_amount == Decimal("5000.00")
    assert due_yesterday.remaining_due == Decimal("0.00")
    assert due_yesterday.status == "paid"
    assert receipt.receipt_number == "RCP000001"
    assert len(payments) == 1
    assert len(receipt.payments) == 1
    assert LedgerService(db, clock).get_balance() == Decimal("5000.00")


def test_overpayment_is_rejected_without_side_effects(db, clock, due_yesterday):
    with pytest.raises(ExceedsDue) as exc:
        CollectionService(db, clock).collect([(due_yesterday.id, 6000)], "cash", collected_by="Meera")

    assert exc.value.context["line"] == 1
    assert exc.value.context["remaining_due"] == Decimal("5000.00")
    db.refresh(due_yesterday)
    assert due_yesterday.paid_amount == Decimal("0.00")
    assert db.query(Receipt).count() == 0
    assert db.query(LedgerEntry).count() == 0
    assert LedgerService(db, clock).get_balance() == Decimal("0.00")


def test_multi_line_receipt(db, clock, tuition, transport, make_fee):
    tuition_fee = make_fee(tuition)
    transport_fee = make_fee(transport)

    receipt, payments = CollectionService(db, clock).collect(
        [
            {"student_fee_id": tuition_fee.id, "amount": "2000"},
            {"student_fee_id": transport_fee.id, "amount": "1500"},
        ],
        "upi",
        collected_by="Meera",
        transaction_ref="UPI-1",
    )

    assert receipt.total_amount == Decimal("3500.00")
    assert [p.line_no for p in payments] == [1, 2]
    assert [p.fee_type_name for p in payments] == ["Tuition Fee", "Transport Fee"]
    db.refresh(tuition_fee)
    db.refresh(transport_fee)
    assert tuition_fee.status == "partial"
    assert transport_fee.status == "paid"
    entries = db.query(LedgerEntry).order_by(LedgerEntry.sequence).all()
    assert [e.balance for e in entries] == [Decimal("2000.00"), Decimal("3500.00")]
    assert {e.reference_number for e in entries} == {receipt.receipt_number}


def test_one_bad_line_fails_the_whole_batch(db, clock, tuition, transport, make_fee):
    tuition_fee = make_fee(tuition)
    transport_fee = make_fee(transport)

    with pytest.raises(ExceedsDue) as exc:
        CollectionService(db, clock).collect(
            [(tuition_fee.id, 1000), (transport_fee.id, 2000)], "cash", collected_by="Meera"
        )

    assert exc.value.context["line"] == 2
    db.refresh(tuition_fee)
    assert tuition_fee.paid_amount == Decimal("0.00")
    assert db.query(Payment).count() == 0


def test_unknown_obligation_names_the_line(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    with pytest.raises(NotFound) as exc:
        CollectionService(db, clock).collect([(fee.id, 100), ("missing", 100)], "cash", collected_by="Meera")
    assert exc.value.context["line"] == 2


@pytest.mark.parametrize("lines", [
    [],
    [("fee", 0)],
    [("fee", -10)],
    [("fee", 10), ("fee", 20)],
])
def test_malformed_batches(db, clock, lines):
    with pytest.raises(ValidationError):
        CollectionService(db, clock).collect(lines, "cash", collected_by="Meera")


def test_unknown_payment_mode(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    with pytest.raises(ValidationError):
        CollectionService(db, clock).collect([(fee.id, 100)], "barter", collected_by="Meera")


def test_receipt_lines_must_share_a_student(db, clock, tuition, make_fee):
    first = make_fee(tuition)
    second = make_fee(tuition, student("S2", "Kiran Das"))
    with pytest.raises(ValidationError):
        CollectionService(db, clock).collect([(first.id, 100), (second.id, 100)], "cash", collected_by="Meera")


def test_idempotent_replay_returns_first_receipt(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    service = CollectionService(db, clock)

    first, _ = service.collect([(fee.id, 1000)], "cash", collected_by="Meera", idempotency_key="k-1")
    again, payments = service.collect([(fee.id, 1000)], "cash", collected_by="Meera", idempotency_key="k-1")

    assert again.receipt_number == first.receipt_number
    assert len(payments) == 1
    db.refresh(fee)
    assert fee.paid_amount == Decimal("1000.00")
    assert db.query(Receipt).count() == 1

    with pytest.raises(InvalidState):
        service.collect([(fee.id, 2000)], "cash", collected_by="Meera", idempotency_key="k-1")


def test_receipt_numbers_are_sequential(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    service = CollectionService(db, clock)
    numbers = [
        service.collect([(fee.id, 100)], "cash", collected_by="Meera")[0].receipt_number
        for _ in range(3)
    ]
    assert numbers == ["RCP000001", "RCP000002", "RCP000003"]


def test_concurrent_collections_never_overdraw(database, db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    barrier = threading.Barrier(2)
    outcomes = []

    def pay():
        session = database.SessionLocal()
        try:
            barrier.wait()
            CollectionService(session, clock).collect([(fee.id, 3000)], "cash", collected_by="Meera")
            outcomes.append("ok")
        except (ExceedsDue, ConcurrencyConflict) as e:
            outcomes.append(e.kind)
        finally:
            session.close()

    threads = [threading.Thread(target=pay) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    db.refresh(fee)
    assert fee.paid_amount == Decimal("3000.00")
    assert fee.paid_amount <= fee.total_amount - fee.discount_amount
    assert LedgerService(db, clock).get_balance() == Decimal("3000.00")


def test_payment_history_filters(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    other = make_fee(tuition, student("S2", "Kiran Das", class_name="6"))
    service = CollectionService(db, clock)
    service.collect([(fee.id, 500)], "cash", collected_by="Meera")
    service.collect([(other.id, 700)], "cheque", collected_by="Meera", transaction_ref="CHQ-9")

    items, total = service.list_payments(1, 20, student_id="S2")
    assert total == 1
    assert items[0].amount == Decimal("700.00")

    items, total = service.list_payments(1, 20, payment_mode="cash")
    assert [p.student_id for p in items] == ["S1"]

    items, total = service.list_payments(1, 20, search="kiran")
    assert total == 1
    assert service.get_receipt(items[0].receipt_number).transaction_ref == "CHQ-9"
    with pytest.raises(NotFound):
        service.get_receipt("RCP999999")


def test_paid_obligation_cannot_be_deleted(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    CollectionService(db, clock).collect([(fee.id, 100)], "cash", collected_by="Meera")
    with pytest.raises(InvalidState):
        StudentFeeService(db, clock).delete(fee.id)


def test_period_is_billed_once(db, clock, tuition, make_fee):
    make_fee(tuition)
    with pytest.raises(InvalidState):
        make_fee(tuition)
    assert make_fee(tuition, period_start=date(2025, 7, 1)).due_date == date(2025, 7, 10)
