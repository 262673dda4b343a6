from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import NotFound, ValidationError
from app.services.catalog_service import CatalogService
from app.services.installment_service import InstallmentService, split_amount


DATES = [date(2025, 4, 10), date(2025, 8, 10), date(2025, 12, 10)]


@pytest.fixture
def annual_fee(db):
    catalog = CatalogService(db)
    fee_type = catalog.create_fee_type("Development Fee", "development")
    return catalog.create_structure(
        fee_type_id=fee_type.id,
        academic_year="2025-26",
        applicable_classes=["5"],
        amount=Decimal("9999"),
        frequency="annual",
    )


def test_plan_splits_evenly_when_divisible(db, clock, annual_fee):
    plan = InstallmentService(db, clock).create_plan(annual_fee.id, 3, DATES)

    amounts = [i.amount for i in plan.installments]
    assert amounts == [Decimal("3333.00")] * 3
    assert sum(amounts) == plan.total_amount
    assert [i.installment_number for i in plan.installments] == [1, 2, 3]
    assert plan.name == "Development Fee in 3 installments"


def test_remainder_lands_on_last_installment(db, clock, annual_fee):
    catalog = CatalogService(db)
    catalog.update_structure(annual_fee.id, {"amount": Decimal("10000")})

    plan = InstallmentService(db, clock).create_plan(annual_fee.id, 3, DATES, name="Three terms")
    assert [i.amount for i in plan.installments] == [Decimal("3333.00"), Decimal("3333.00"), Decimal("3334.00")]


def test_installment_statuses_projected(db, clock, annual_fee):
    service = InstallmentService(db, clock)
    plan = service.create_plan(annual_fee.id, 3, DATES)

    plan = service.get(plan.id)
    assert [i.status for i in plan.installments] == ["overdue", "pending", "pending"]


@pytest.mark.parametrize("count, dates", [
    (0, []),
    (3, DATES[:2]),
    (3, [DATES[2], DATES[1], DATES[0]]),
])
def test_invalid_plans(db, clock, annual_fee, count, dates):
    with pytest.raises(ValidationError):
        InstallmentService(db, clock).create_plan(annual_fee.id, count, dates)


def test_unknown_structure(db, clock):
    with pytest.raises(NotFound):
        InstallmentService(db, clock).create_plan("nope", 1, [DATES[0]])


def test_toggle_list_and_delete(db, clock, annual_fee):
    service = InstallmentService(db, clock)
    plan = service.create_plan(annual_fee.id, 3, DATES)

    assert service.toggle(plan.id).is_active is False
    assert service.list(active_only=True) == []
    assert [p.id for p in service.list(academic_year="2025-26")] == [plan.id]

    service.delete(plan.id)
    with pytest.raises(NotFound):
        service.get(plan.id)


def test_split_refuses_zero_installments():
    assert split_amount(Decimal("3.00"), 3) == [Decimal("1.00")] * 3
    with pytest.raises(ValidationError):
        split_amount(Decimal("2.00"), 3)


def test_plan_smaller_than_installment_count_rejected(db, clock, annual_fee):
    CatalogService(db).update_structure(annual_fee.id, {"amount": Decimal("2")})
    with pytest.raises(ValidationError):
        InstallmentService(db, clock).create_plan(annual_fee.id, 3, DATES)
    assert InstallmentService(db, clock).list() == []
