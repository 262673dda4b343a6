# app/services/installment_service.py - Splitting a fee structure into dated installments
from datetime import date
from decimal import Decimal, ROUND_FLOOR
from typing import Optional, List
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.core.clock import Clock, system_clock
from app.core.db import atomic
from app.core.errors import NotFound, InvalidState, ValidationError
from app.models.fee import FeeStructure
from app.models.installment import InstallmentPlan, Installment
from app.services.fee_status import ZERO, money, compute_status

logger = logging.getLogger(__name__)


def split_amount(total, count: int) -> List[Decimal]:
    """
    Whole-unit installments; the remainder goes on the last one.

    9999 / 3 -> [3333, 3333, 3333]; 10000 / 3 -> [3333, 3333, 3334].

    Raises:
        ValidationError: the total cannot give every installment at least one unit
    """
    total = money(total)
    if total < count:
        raise ValidationError(
            f"{total} cannot be split into {count} non-zero installments",
            total=total, number_of_installments=count,
        )
    base = (total / count).quantize(Decimal("1"), rounding=ROUND_FLOOR)
    amounts = [money(base)] * count
    amounts[-1] = total - money(base) * (count - 1)
    return amounts


class InstallmentService:
    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    def create_plan(self, structure_id: str, number_of_installments: int, due_dates: List[date],
                    name: Optional[str] = None) -> InstallmentPlan:
        """
        Raises:
            NotFound: unknown structure
            ValidationError: bad count, wrong number of dates, dates out of order
        """
        structure = self.db.get(FeeStructure, structure_id)
        if structure is None:
            raise NotFound("FeeStructure", structure_id)
        if number_of_installments < 1:
            raise ValidationError("A plan needs at least one installment",
                                  number_of_installments=number_of_installments)
        if len(due_dates) != number_of_installments:
            raise ValidationError(
                f"Expected {number_of_installments} due dates, got {len(due_dates)}",
                number_of_installments=number_of_installments,
            )
        if any(later < earlier for earlier, later in zip(due_dates, due_dates[1:])):
            raise ValidationError("Installment due dates must not go backwards")

        amounts = split_amount(structure.amount, number_of_installments)
        with atomic(self.db):
            plan = InstallmentPlan(
                name=name or f"{structure.fee_type_name} in {number_of_installments} installments",
                fee_structure_id=structure.id,
                fee_type_name=structure.fee_type_name,
                academic_year=structure.academic_year,
                applicable_classes=list(structure.applicable_classes),
                total_amount=money(structure.amount),
                number_of_installments=number_of_installments,
                created_at=self.clock.now(),
            )
            for number, (amount, due) in enumerate(zip(amounts, due_dates), start=1):
                plan.installments.append(Installment(
                    installment_number=number,
                    amount=amount,
                    due_date=due,
                    status=compute_status(amount, ZERO, ZERO, due, self.clock.today()),
                    paid_amount=money(0),
                ))
            self.db.add(plan)

        logger.info(f"Installment plan created: {plan.name} ({', '.join(str(a) for a in amounts)})")
        return plan

    def get(self, plan_id: str) -> InstallmentPlan:
        plan = self.db.execute(
            select(InstallmentPlan)
            .where(InstallmentPlan.id == plan_id)
            .options(selectinload(InstallmentPlan.installments))
        ).scalar_one_or_none()
        if plan is None:
            raise NotFound("InstallmentPlan", plan_id)
        self._project(plan)
        return plan

    def list(self, academic_year: Optional[str] = None, active_only: bool = False) -> List[InstallmentPlan]:
        stmt = select(InstallmentPlan).options(selectinload(InstallmentPlan.installments))
        if academic_year:
            stmt = stmt.where(InstallmentPlan.academic_year == academic_year)
        if active_only:
            stmt = stmt.where(InstallmentPlan.is_active.is_(True))
        plans = list(self.db.execute(stmt.order_by(InstallmentPlan.created_at.desc())).scalars().all())
        for plan in plans:
            self._project(plan)
        return plans

    def toggle(self, plan_id: str) -> InstallmentPlan:
        plan = self.get(plan_id)
        with atomic(self.db):
            plan.is_active = not plan.is_active
        return plan

    def delete(self, plan_id: str) -> None:
        plan = self.get(plan_id)
        if any(money(i.paid_amount) > 0 for i in plan.installments):
            raise InvalidState("Cannot delete a plan with paid installments", plan_id=plan.id)
        with atomic(self.db):
            self.db.delete(plan)
        logger.info(f"Installment plan deleted: {plan_id}")

    def _project(self, plan: InstallmentPlan) -> None:
        today = self.clock.today()
        for installment in plan.installments:
            installment.status = compute_status(
                installment.amount, ZERO, installment.paid_amount, installment.due_date, today
            )

