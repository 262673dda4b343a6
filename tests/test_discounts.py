import threading
from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import ConcurrencyConflict, InvalidDiscount, InvalidState, ValidationError
from app.services.collection_service import CollectionService
from app.services.concession_service import ConcessionService
from app.services.discount_service import DiscountService
from app.services.student_fee_service import StudentFeeService
from factories import student


@pytest.fixture
def sibling_rule(db, clock, tuition):
    return DiscountService(db, clock).create_rule(
        name="Sibling discount",
        kind="percentage",
        value=Decimal("10"),
        applicability="sibling",
        applicable_fee_type_ids=[tuition.fee_type_id],
        applicable_classes=[],
    )


def test_rule_applies_at_instantiation(db, clock, tuition, make_fee, sibling_rule):
    fee = make_fee(tuition, student(eligibility=("sibling",)))
    assert fee.discount_amount == Decimal("500.00")
    assert fee.remaining_due == Decimal("4500.00")

    items, total = DiscountService(db, clock).list_applied(1, 20, student_fee_id=fee.id)
    assert total == 1
    assert items[0].source == "rule"
    assert items[0].discount_rule_name == "Sibling discount"
    assert items[0].final_amount == Decimal("4500.00")


def test_rule_ignored_without_eligibility(tuition, make_fee, sibling_rule):
    fee = make_fee(tuition)
    assert fee.discount_amount == Decimal("0.00")


def test_rule_cap_and_other_fee_types(db, clock, tuition, transport, make_fee):
    DiscountService(db, clock).create_rule(
        name="Merit",
        kind="percentage",
        value=Decimal("50"),
        max_discount=Decimal("1000"),
        applicability="merit",
        applicable_fee_type_ids=[tuition.fee_type_id],
    )
    ref = student(eligibility=("merit",))
    assert make_fee(tuition, ref).discount_amount == Decimal("1000.00")
    assert make_fee(transport, ref).discount_amount == Decimal("0.00")


def test_percentage_rule_above_hundred_rejected(db, clock):
    with pytest.raises(ValidationError):
        DiscountService(db, clock).create_rule(
            name="Too much", kind="percentage", value=Decimal("120"), applicability="custom"
        )


def test_manual_discount_respects_headroom(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    CollectionService(db, clock).collect([(fee.id, 4000)], "cash", collected_by="Meera")
    fees = StudentFeeService(db, clock)

    with pytest.raises(InvalidDiscount):
        fees.apply_discount(fee.id, 1500, "hardship", applied_by="Principal")

    fee = fees.apply_discount(fee.id, 1000, "hardship", applied_by="Principal")
    assert fee.discount_amount == Decimal("1000.00")
    assert fee.remaining_due == Decimal("0.00")
    assert fee.status == "paid"


def test_manual_discount_must_be_positive(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    with pytest.raises(ValidationError):
        StudentFeeService(db, clock).apply_discount(fee.id, 0, "none", applied_by="Principal")


def test_applied_rule_cannot_be_deleted(db, clock, tuition, make_fee, sibling_rule):
    make_fee(tuition, student(eligibility=("sibling",)))
    with pytest.raises(InvalidState):
        DiscountService(db, clock).delete_rule(sibling_rule.id)


def test_recompute_after_rule_deactivated(db, clock, tuition, make_fee, sibling_rule):
    fee = make_fee(tuition, student(eligibility=("sibling",)))
    service = DiscountService(db, clock)
    service.toggle_rule(sibling_rule.id)

    fee = service.recompute(fee.id, ("sibling",), applied_by="Meera")
    assert fee.discount_amount == Decimal("0.00")
    _, total = service.list_applied(1, 20, student_fee_id=fee.id)
    assert total == 0


def _concession(db, clock, fee, value, kind="fixed_amount"):
    return ConcessionService(db, clock).create(
        student_id=fee.student_id,
        student_name=fee.student_name,
        fee_type_ids=[fee.fee_type_id],
        concession_type=kind,
        concession_value=value,
        reason="Family hardship",
        requested_by="Meera",
        student_class=fee.student_class,
    )


def test_concession_approval_discounts_and_cannot_repeat(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    request = _concession(db, clock, fee, 1000)
    assert request.status == "pending"

    service = ConcessionService(db, clock)
    approved = service.approve(request.id, approved_by="Principal Iyer")
    assert approved.status == "approved"
    assert approved.total_concession_amount == Decimal("1000.00")

    db.refresh(fee)
    assert fee.discount_amount == Decimal("1000.00")
    assert fee.remaining_due == Decimal("4000.00")

    with pytest.raises(InvalidState):
        service.approve(request.id, approved_by="Principal Iyer")
    db.refresh(fee)
    assert fee.discount_amount == Decimal("1000.00")


def test_percentage_concession_spans_obligations(db, clock, tuition, make_fee):
    june = make_fee(tuition)
    july = make_fee(tuition, period_start=date(2025, 7, 1))
    request = _concession(db, clock, june, 20, kind="percentage")

    approved = ConcessionService(db, clock).approve(request.id, approved_by="Principal Iyer")
    assert approved.total_concession_amount == Decimal("2000.00")
    db.refresh(june)
    db.refresh(july)
    assert june.discount_amount == july.discount_amount == Decimal("1000.00")


def test_fixed_concession_clamped_to_headroom(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    CollectionService(db, clock).collect([(fee.id, 4500)], "cash", collected_by="Meera")
    request = _concession(db, clock, fee, 1000)

    approved = ConcessionService(db, clock).approve(request.id, approved_by="Principal Iyer")
    assert approved.total_concession_amount == Decimal("500.00")
    db.refresh(fee)
    assert fee.status == "paid"


def test_rejected_concession_is_final(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    request = _concession(db, clock, fee, 1000)
    service = ConcessionService(db, clock)

    with pytest.raises(ValidationError):
        service.reject(request.id, rejected_by="Principal Iyer", reason="  ")

    rejected = service.reject(request.id, rejected_by="Principal Iyer", reason="Not eligible")
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Not eligible"
    with pytest.raises(InvalidState):
        service.approve(request.id, approved_by="Principal Iyer")
    db.refresh(fee)
    assert fee.discount_amount == Decimal("0.00")


def test_concession_needs_reason_and_positive_value(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    with pytest.raises(ValidationError):
        _concession(db, clock, fee, 0)
    with pytest.raises(ValidationError):
        _concession(db, clock, fee, 150, kind="percentage")


def test_concurrent_approvals_without_open_fees(database, db, clock, tuition):
    request = ConcessionService(db, clock).create(
        "S1", "Asha Rao", [tuition.fee_type_id], "fixed_amount", "500", "Staff ward", requested_by="Meera"
    )
    barrier = threading.Barrier(2)
    outcomes = []

    def approve():
        session = database.SessionLocal()
        try:
            barrier.wait()
            ConcessionService(session, clock).approve(request.id, approved_by="Principal Iyer")
            outcomes.append("ok")
        except (InvalidState, ConcurrencyConflict) as e:
            outcomes.append(e.kind)
        finally:
            session.close()

    threads = [threading.Thread(target=approve) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["InvalidState", "ok"]
    db.refresh(request)
    assert request.status == "approved"
    assert request.total_concession_amount == Decimal("0.00")
