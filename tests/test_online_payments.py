from decimal import Decimal

import pytest

from app.core.errors import GatewayUnavailable, NotFound, ValidationError
from app.models.payment import Receipt
from app.services.collection_service import CollectionService
from app.services.online_payment_service import OnlinePaymentService
from app.services.payment_gateway import GatewayError
from factories import student


@pytest.fixture
def online(db, clock, gateway):
    return OnlinePaymentService(db, clock, gateway)


def test_order_covers_remaining_dues(db, clock, online, tuition, transport, make_fee):
    tuition_fee = make_fee(tuition)
    transport_fee = make_fee(transport)
    CollectionService(db, clock).collect([(tuition_fee.id, 1000)], "cash", collected_by="Meera")

    order = online.create_order("S1", [tuition_fee.id, transport_fee.id], created_by="parent-1")
    assert order.amount == Decimal("5500.00")
    assert order.status == "created"
    assert order.gateway == "sandbox"
    assert order.payment_link.endswith(order.order_id)
    assert order.fee_amounts == {tuition_fee.id: "4000.00", transport_fee.id: "1500.00"}


def test_completed_order_collects_exactly_once(db, clock, gateway, online, tuition, make_fee):
    fee = make_fee(tuition)
    order = online.create_order("S1", [fee.id], created_by="parent-1")

    assert online.confirm(order.order_id).status == "processing"
    assert db.query(Receipt).count() == 0

    gateway.complete(order.order_id, "TXN-42")
    confirmed = online.confirm(order.order_id)
    assert confirmed.status == "completed"
    assert confirmed.transaction_id == "TXN-42"

    again = online.confirm(order.order_id)
    assert again.receipt_number == confirmed.receipt_number

    receipt, payments = CollectionService(db, clock).collect(
        [(fee.id, Decimal("5000.00"))], "online", collected_by="gateway", idempotency_key=order.order_id
    )
    assert receipt.receipt_number == confirmed.receipt_number
    assert db.query(Receipt).count() == 1
    db.refresh(fee)
    assert fee.status == "paid"
    assert receipt.payment_mode == "online"


def test_failed_order_collects_nothing(db, gateway, online, tuition, make_fee):
    fee = make_fee(tuition)
    order = online.create_order("S1", [fee.id], created_by="parent-1")

    gateway.fail(order.order_id, "card declined")
    failed = online.confirm(order.order_id)
    assert failed.status == "failed"
    assert failed.failure_reason == "card declined"
    db.refresh(fee)
    assert fee.paid_amount == Decimal("0.00")


def test_dues_paid_elsewhere_before_confirmation(db, clock, gateway, online, tuition, make_fee):
    fee = make_fee(tuition)
    order = online.create_order("S1", [fee.id], created_by="parent-1")
    CollectionService(db, clock).collect([(fee.id, 5000)], "cash", collected_by="Meera")

    gateway.complete(order.order_id, "TXN-77")
    unapplied = online.confirm(order.order_id)
    assert unapplied.status == "unapplied"
    assert unapplied.transaction_id == "TXN-77"
    assert "not applied" in unapplied.failure_reason
    assert unapplied.receipt_number is None
    assert db.query(Receipt).count() == 1

    assert online.confirm(order.order_id).status == "unapplied"
    db.refresh(fee)
    assert fee.paid_amount == Decimal("5000.00")


def test_order_validation(db, online, tuition, make_fee):
    fee = make_fee(tuition)
    other = make_fee(tuition, student("S2", "Kiran Das"))

    with pytest.raises(ValidationError):
        online.create_order("S1", [], created_by="parent-1")
    with pytest.raises(ValidationError):
        online.create_order("S1", [fee.id, other.id], created_by="parent-1")
    with pytest.raises(NotFound):
        online.create_order("S1", ["missing"], created_by="parent-1")
    with pytest.raises(NotFound):
        online.confirm("ORDMISSING")


class BrokenGateway:
    name = "broken"

    def create_order(self, amount, reference, description):
        raise GatewayError("connection refused")


def test_gateway_errors_surface_as_unavailable(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    with pytest.raises(GatewayUnavailable):
        OnlinePaymentService(db, clock, BrokenGateway()).create_order("S1", [fee.id], created_by="parent-1")
