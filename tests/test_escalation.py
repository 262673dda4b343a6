from datetime import date

import pytest

from app.core.errors import ValidationError
from app.services.collection_service import CollectionService
from app.services.escalation_service import EscalationService
from factories import student


def test_default_ladder_installed_on_first_use(db, clock, channels):
    rules = EscalationService(db, clock, channels).ensure_default_rules()
    assert [(r.threshold_days, r.channel, r.recipient) for r in rules] == [
        (7, "sms", "parent"),
        (14, "email", "parent"),
        (30, "whatsapp", "parent"),
        (45, "email", "principal"),
    ]


def test_nothing_sent_below_first_threshold(db, clock, channels, tuition, make_fee):
    make_fee(tuition)
    assert EscalationService(db, clock, channels).run(clock.today()) == []


def test_most_aggressive_rule_wins_and_is_sent_once(db, clock, channels, tuition, make_fee):
    make_fee(tuition)
    service = EscalationService(db, clock, channels)
    clock.advance(days=10)

    [log] = service.run(clock.today())
    assert log.status == "sent"
    assert log.channel == "email"
    assert log.escalation_level == 2
    assert log.days_overdue == 15
    assert log.recipient == "s1@parents.example.com"
    assert channels["sms"].sent == []
    recipient, subject, body = channels["email"].sent[0]
    assert "Asha Rao" in body and "5000.00" in body

    assert service.run(clock.today()) == []
    assert len(channels["email"].sent) == 1

    clock.advance(days=20)
    [log] = service.run(clock.today())
    assert log.channel == "whatsapp"
    assert log.recipient == "+919800000001"


def test_principal_rule_without_address_logs_failure(db, clock, channels, tuition, make_fee):
    make_fee(tuition)
    clock.advance(days=40)

    [log] = EscalationService(db, clock, channels).run(clock.today())
    assert log.status == "failed"
    assert log.error == "no recipient on record"
    assert channels["email"].sent == []


def test_failed_delivery_is_retried(db, clock, channels, tuition, make_fee):
    make_fee(tuition)
    clock.advance(days=3)
    channels["sms"].ok = False
    service = EscalationService(db, clock, channels)

    [failed] = service.run(clock.today())
    assert failed.status == "failed"
    assert failed.error == "delivery failed"

    channels["sms"].ok = True
    [sent] = service.run(clock.today())
    assert sent.status == "sent"
    _, total = service.list_logs(1, 20, status="failed")
    assert total == 1


def test_paid_obligations_are_not_reminded(db, clock, channels, tuition, make_fee):
    fee = make_fee(tuition)
    CollectionService(db, clock).collect([(fee.id, 5000)], "cash", collected_by="Meera")
    clock.advance(days=30)
    assert EscalationService(db, clock, channels).run(clock.today()) == []


def test_run_limited_to_students(db, clock, channels, tuition, make_fee):
    make_fee(tuition)
    make_fee(tuition, student("S2", "Kiran Das"))
    clock.advance(days=3)

    logs = EscalationService(db, clock, channels).run(clock.today(), student_ids=["S2"])
    assert [log.student_id for log in logs] == ["S2"]


def test_manual_reminders_through_a_channel(db, clock, channels, tuition, transport, make_fee):
    make_fee(tuition)
    make_fee(transport, period_start=date(2025, 7, 1))
    service = EscalationService(db, clock, channels)

    sent = service.send_reminders(["S1"], channel="sms", message="{{ student }} owes {{ amount }}")
    assert sent == 2
    bodies = sorted(body for _, _, body in channels["sms"].sent)
    assert bodies == ["Asha Rao owes ₹1500.00", "Asha Rao owes ₹5000.00"]

    # Manual sends do not block the automatic ladder
    clock.advance(days=3)
    assert len(service.run(clock.today())) == 1


def test_manual_reminders_validate_input(db, clock, channels):
    service = EscalationService(db, clock, channels)
    with pytest.raises(ValidationError):
        service.send_reminders([])
    with pytest.raises(ValidationError):
        service.send_reminders(["S1"], channel="pigeon")
    with pytest.raises(ValidationError):
        service.send_reminders(["S1"], message="{{ broken")


def test_replace_rules_orders_by_threshold(db, clock, channels):
    service = EscalationService(db, clock, channels)
    rules = service.replace_rules([
        {"name": "Late", "threshold_days": 20, "channel": "email", "template": "late"},
        {"name": "Early", "threshold_days": 2, "channel": "sms", "template": "early"},
    ])
    assert [(r.name, r.position) for r in rules] == [("Early", 0), ("Late", 1)]

    with pytest.raises(ValidationError):
        service.replace_rules([{"name": "X", "threshold_days": 1, "channel": "fax", "template": "x"}])
    assert [r.name for r in service.rules()] == ["Early", "Late"]


UNSAFE = "{{ cycler.__init__.__globals__.os.getcwd() }}"


def test_manual_message_cannot_reach_python_internals(db, clock, channels, tuition, make_fee):
    make_fee(tuition)
    service = EscalationService(db, clock, channels)

    with pytest.raises(ValidationError):
        service.send_reminders(["S1"], channel="sms", message=UNSAFE)
    assert channels["sms"].sent == []
    assert service.list_logs(1, 20)[1] == 0


def test_student_data_is_never_template_source(db, clock, channels, tuition, make_fee):
    make_fee(tuition, student("S9", "{{ 7*7 }}"))
    service = EscalationService(db, clock, channels)

    assert service.send_reminders(["S9"], channel="sms") == 1
    [(_, _, body)] = channels["sms"].sent
    assert body == "Dear Parent, fee of ₹5000.00 for {{ 7*7 }} (Tuition Fee) is pending."


def test_unsafe_rule_template_logs_a_failure(db, clock, channels, tuition, make_fee):
    make_fee(tuition)
    service = EscalationService(db, clock, channels)
    service.replace_rules([{"name": "Sneaky", "threshold_days": 1, "channel": "sms", "template": UNSAFE}])
    clock.advance(days=3)

    [log] = service.run(clock.today())
    assert log.status == "failed"
    assert "failed to render" in log.error
    assert channels["sms"].sent == []
