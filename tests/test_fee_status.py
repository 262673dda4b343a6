from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from app.services.escalation_service import select_rule
from app.services.fee_status import compute_status, days_overdue, due_date_for, money
from app.services.installment_service import split_amount


TODAY = date(2025, 6, 15)


def test_status_paid_when_nothing_remains():
    assert compute_status(5000, 0, 5000, date(2025, 6, 10), TODAY) == "paid"
    assert compute_status(5000, 1000, 4000, date(2025, 6, 10), TODAY) == "paid"


def test_status_partial_beats_overdue():
    assert compute_status(5000, 0, 1, date(2025, 6, 1), TODAY) == "partial"


def test_status_overdue_only_after_due_date():
    assert compute_status(5000, 0, 0, date(2025, 6, 14), TODAY) == "overdue"
    assert compute_status(5000, 0, 0, TODAY, TODAY) == "pending"
    assert compute_status(5000, 0, 0, date(2025, 6, 30), TODAY) == "pending"


def test_full_discount_is_paid():
    assert compute_status(5000, 5000, 0, date(2025, 6, 1), TODAY) == "paid"


def test_days_overdue_never_negative():
    assert days_overdue(date(2025, 6, 14), TODAY) == 1
    assert days_overdue(date(2025, 7, 1), TODAY) == 0


def test_due_date_clamped_to_month_end():
    assert due_date_for(date(2025, 6, 1), 10) == date(2025, 6, 10)
    assert due_date_for(date(2025, 2, 1), 31) == date(2025, 2, 28)
    assert due_date_for(date(2024, 2, 1), 30) == date(2024, 2, 29)


def test_money_rounds_half_up():
    assert money("10.005") == Decimal("10.01")
    assert money(3) == Decimal("3.00")


def test_split_keeps_whole_units_with_remainder_last():
    assert split_amount(9999, 3) == [Decimal("3333.00")] * 3
    assert split_amount(10000, 3) == [Decimal("3333.00"), Decimal("3333.00"), Decimal("3334.00")]
    assert sum(split_amount(Decimal("1000.50"), 4)) == Decimal("1000.50")


def _rule(threshold, position, active=True):
    return SimpleNamespace(threshold_days=threshold, position=position, is_active=active)


def test_select_rule_picks_highest_threshold_reached():
    rules = [_rule(7, 0), _rule(14, 1), _rule(30, 2)]
    assert select_rule(rules, 3) is None
    assert select_rule(rules, 7) is rules[0]
    assert select_rule(rules, 20) is rules[1]
    assert select_rule(rules, 400) is rules[2]


def test_select_rule_skips_inactive_and_ties_go_to_first():
    rules = [_rule(7, 0), _rule(14, 1), _rule(14, 2), _rule(30, 3, active=False)]
    assert select_rule(rules, 45) is rules[1]
