# app/services/discount_service.py - Rule-driven discounts and the applied-discount ledger
from datetime import date
from decimal import Decimal
from typing import Optional, List, Dict, Any, Iterable
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.db import atomic
from app.core.errors import NotFound, InvalidState, InvalidDiscount, ValidationError
from app.core.locks import obligation_locks
from app.models.discount import DiscountRule, AppliedDiscount, ConcessionRequest
from app.models.fee import StudentFee
from app.repositories.base import paginate
from app.repositories.student_fee_repo import StudentFeeRepository
from app.services.fee_status import ZERO, money, refresh_status

logger = logging.getLogger(__name__)


def percentage_of(total, value) -> Decimal:
    return money(money(total) * Decimal(str(value)) / Decimal("100"))


def headroom(fee: StudentFee) -> Decimal:
    """How much more discount the obligation can absorb"""
    return max(ZERO, money(fee.total_amount) - money(fee.paid_amount) - money(fee.discount_amount))


def rule_matches(rule: DiscountRule, fee: StudentFee, eligibility: Iterable[str], on_date: date) -> bool:
    if not rule.is_active:
        return False
    if rule.applicability not in set(eligibility or ()):
        return False
    if rule.applicable_fee_type_ids and fee.fee_type_id not in rule.applicable_fee_type_ids:
        return False
    if rule.applicable_classes and fee.student_class not in rule.applicable_classes:
        return False
    if rule.academic_year and rule.academic_year != fee.academic_year:
        return False
    if rule.valid_from and on_date < rule.valid_from:
        return False
    if rule.valid_to and on_date > rule.valid_to:
        return False
    return True


def rule_amount(rule: DiscountRule, total) -> Decimal:
    if rule.kind == "percentage":
        amount = percentage_of(total, rule.value)
    else:
        amount = money(rule.value)
    if rule.max_discount is not None:
        amount = min(amount, money(rule.max_discount))
    return amount


class DiscountService:
    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    # ---------- rules ----------

    def create_rule(self, **fields) -> DiscountRule:
        self._check_rule(fields)
        with atomic(self.db):
            rule = DiscountRule(**fields)
            self.db.add(rule)
        logger.info(f"Discount rule created: {rule.name} ({rule.kind} {rule.value})")
        return rule

    def get_rule(self, rule_id: str) -> DiscountRule:
        rule = self.db.get(DiscountRule, rule_id)
        if not rule:
            raise NotFound("DiscountRule", rule_id)
        return rule

    def list_rules(self, active_only: bool = False, applicability: Optional[str] = None) -> List[DiscountRule]:
        stmt = select(DiscountRule)
        if active_only:
            stmt = stmt.where(DiscountRule.is_active.is_(True))
        if applicability:
            stmt = stmt.where(DiscountRule.applicability == applicability)
        return list(self.db.execute(stmt.order_by(DiscountRule.name)).scalars().all())

    def update_rule(self, rule_id: str, changes: Dict[str, Any]) -> DiscountRule:
        rule = self.get_rule(rule_id)
        merged = {
            "kind": rule.kind, "value": rule.value,
            "valid_from": rule.valid_from, "valid_to": rule.valid_to,
        }
        merged.update(changes)
        self._check_rule(merged)
        with atomic(self.db):
            for field, value in changes.items():
                setattr(rule, field, value)
        return rule

    def toggle_rule(self, rule_id: str) -> DiscountRule:
        rule = self.get_rule(rule_id)
        with atomic(self.db):
            rule.is_active = not rule.is_active
        logger.info(f"Discount rule {rule.name} {'activated' if rule.is_active else 'deactivated'}")
        return rule

    def delete_rule(self, rule_id: str) -> None:
        rule = self.get_rule(rule_id)
        used = self.db.execute(
            select(AppliedDiscount.id).where(AppliedDiscount.discount_rule_id == rule.id).limit(1)
        ).first()
        if used:
            raise InvalidState(
                f"Discount rule '{rule.name}' has been applied; deactivate it instead", rule_id=rule.id
            )
        with atomic(self.db):
            self.db.delete(rule)

    @staticmethod
    def _check_rule(fields: Dict[str, Any]) -> None:
        if fields.get("kind") == "percentage" and Decimal(str(fields.get("value", 0))) > 100:
            raise ValidationError("Percentage discount cannot exceed 100", value=fields.get("value"))
        valid_from, valid_to = fields.get("valid_from"), fields.get("valid_to")
        if valid_from and valid_to and valid_to < valid_from:
            raise ValidationError("valid_to is before valid_from")

    # ---------- applied discounts ----------

    def add_discount(
        self,
        fee: StudentFee,
        amount,
        source: str,
        applied_by: str,
        reason: Optional[str] = None,
        rule: Optional[DiscountRule] = None,
        concession: Optional[ConcessionRequest] = None,
    ) -> AppliedDiscount:
        """
        Record one reduction against a locked obligation, inside the caller's transaction.

        Raises:
            InvalidDiscount: if discount + paid would exceed the total
        """
        amount = money(amount)
        available = headroom(fee)
        if amount > available:
            raise InvalidDiscount(
                f"Discount of {amount} exceeds available headroom {available} on student fee {fee.id}",
                student_fee_id=fee.id,
                amount=amount,
                headroom=available,
            )
        applied = AppliedDiscount(
            student_fee_id=fee.id,
            student_id=fee.student_id,
            student_name=fee.student_name,
            student_class=fee.student_class,
            fee_type_name=fee.fee_type_name,
            source=source,
            discount_rule_id=rule.id if rule else None,
            discount_rule_name=rule.name if rule else None,
            concession_id=concession.id if concession else None,
            reason=reason,
            original_amount=money(fee.total_amount),
            discount_amount=amount,
            final_amount=money(fee.total_amount) - money(fee.discount_amount) - amount,
            applied_by=applied_by,
            applied_at=self.clock.now(),
        )
        fee.discount_amount = money(fee.discount_amount) + amount
        refresh_status(fee, self.clock.today())
        self.db.add(applied)
        return applied

    def apply_rules(self, fee: StudentFee, eligibility: Iterable[str], applied_by: str) -> List[AppliedDiscount]:
        """Evaluate every rule against ``fee``; amounts are clamped to the headroom"""
        on_date = fee.created_at.date() if fee.created_at else self.clock.today()
        applied = []
        for rule in self.list_rules(active_only=True):
            if not rule_matches(rule, fee, eligibility, on_date):
                continue
            amount = min(rule_amount(rule, fee.total_amount), headroom(fee))
            if amount <= 0:
                continue
            applied.append(self.add_discount(
                fee, amount, "rule", applied_by, reason=rule.description or rule.name, rule=rule
            ))
            logger.info(f"Discount rule {rule.name} applied to {fee.id}: {amount}")
        return applied

    def recompute(self, fee_id: str, eligibility: Iterable[str], applied_by: str) -> StudentFee:
        """Drop the obligation's rule discounts and evaluate the rules again"""
        with obligation_locks.hold([fee_id]):
            with atomic(self.db):
                fee = StudentFeeRepository(self.db).lock_many([fee_id]).get(fee_id)
                if fee is None:
                    raise NotFound("StudentFee", fee_id)

                previous = self.db.execute(
                    select(AppliedDiscount).where(
                        AppliedDiscount.student_fee_id == fee.id,
                        AppliedDiscount.source == "rule",
                    )
                ).scalars().all()
                fee.discount_amount = money(fee.discount_amount) - sum(
                    (money(a.discount_amount) for a in previous), ZERO
                )
                for applied in previous:
                    self.db.delete(applied)
                self.db.flush()
                self.apply_rules(fee, eligibility, applied_by)
                refresh_status(fee, self.clock.today())
        logger.info(f"Discounts recomputed for {fee_id}: discount now {fee.discount_amount}")
        return fee

    def list_applied(
        self,
        page: int,
        limit: int,
        student_id: Optional[str] = None,
        rule_id: Optional[str] = None,
        student_fee_id: Optional[str] = None,
        source: Optional[str] = None,
    ):
        stmt = select(AppliedDiscount)
        if student_id:
            stmt = stmt.where(AppliedDiscount.student_id == student_id)
        if rule_id:
            stmt = stmt.where(AppliedDiscount.discount_rule_id == rule_id)
        if student_fee_id:
            stmt = stmt.where(AppliedDiscount.student_fee_id == student_fee_id)
        if source:
            stmt = stmt.where(AppliedDiscount.source == source)
        stmt = stmt.order_by(AppliedDiscount.applied_at.desc(), AppliedDiscount.id)
        return paginate(self.db, stmt, page, limit)
