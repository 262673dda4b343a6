from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import ValidationError
from app.services.collection_service import CollectionService
from app.services.dues_service import DuesService
from app.services.expense_service import ExpenseService
from app.services.report_service import ReportService
from factories import student


@pytest.fixture
def ledger_day(db, clock, tuition, transport, make_fee):
    asha = make_fee(tuition)
    kiran = make_fee(tuition, student("S2", "Kiran Das", class_name="6"))
    make_fee(transport, student("S2", "Kiran Das", class_name="6"))
    collections = CollectionService(db, clock)
    collections.collect([(asha.id, 5000)], "cash", collected_by="Meera")
    collections.collect([(kiran.id, 2000)], "upi", collected_by="Meera")
    ExpenseService(db, clock).create("utilities", "Electricity", "900", requested_by="Meera")


def test_collection_report_breakdowns(db, clock, ledger_day):
    report = ReportService(db, clock).collection_report(date(2025, 6, 1), date(2025, 6, 15))

    assert report["total_collected"] == Decimal("7000.00")
    assert report["receipt_count"] == 2
    assert report["by_payment_mode"][0] == {"key": "cash", "amount": Decimal("5000.00")}
    assert {row["key"] for row in report["by_class"]} == {"5", "6"}
    assert report["daily"] == [{"key": "2025-06-15", "amount": Decimal("7000.00")}]


def test_collection_report_range(db, clock, ledger_day):
    service = ReportService(db, clock)
    assert service.collection_report(date(2025, 5, 1), date(2025, 5, 31))["total_collected"] == Decimal("0.00")
    with pytest.raises(ValidationError):
        service.collection_report(date(2025, 6, 2), date(2025, 6, 1))


def test_due_report_aging_and_defaulters(db, clock, ledger_day):
    report = ReportService(db, clock).due_report(date(2025, 7, 25))

    # Kiran: tuition 3000 (45 days), transport 1500 (35 days)
    assert report["total_outstanding"] == Decimal("4500.00")
    assert report["students_with_dues"] == 1
    aging = {row["key"]: row["amount"] for row in report["aging"]}
    assert aging["31-60"] == Decimal("4500.00")
    assert aging["0-30"] == Decimal("0.00")
    [top] = report["top_defaulters"]
    assert top["student_id"] == "S2"
    assert top["max_days_overdue"] == 45


def test_dues_summary_ages_by_oldest_obligation(db, clock, ledger_day):
    summary = DuesService(db).summary(date(2025, 7, 25))
    assert summary["obligations"] == 2
    assert summary["students_with_dues"] == 1
    assert summary["average_days_overdue"] == 45.0


def test_dashboard_stats(db, clock, ledger_day):
    stats = ReportService(db, clock).stats()

    assert stats["total_collected"] == Decimal("7000.00")
    assert stats["this_month_collection"] == Decimal("7000.00")
    assert stats["total_pending"] == Decimal("4500.00")
    assert stats["collection_rate"] == round(7000 / 11500 * 100, 2)
    assert stats["pending_expense_approvals"] == 1
    assert stats["overdue_students"] == 1
    assert stats["pending_concession_value"] == Decimal("0.00")


def test_days_overdue_only_grows_as_time_passes(db, clock, tuition, make_fee):
    fee = make_fee(tuition)
    dues = DuesService(db)
    clock.advance(days=-10)

    seen = []
    for _ in range(30):
        [due] = dues.outstanding(clock.today())
        assert due.student_fee.id == fee.id
        seen.append(due.days_overdue)
        clock.advance(days=3)

    assert seen == sorted(seen)
    assert seen[0] == 0
    assert seen[-1] == 82
