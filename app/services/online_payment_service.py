# app/services/online_payment_service.py - Gateway orders settled through the collection engine
from typing import Optional, List
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.db import atomic
from app.core.errors import NotFound, ValidationError, GatewayUnavailable, ExceedsDue, InvalidState
from app.models.online_payment import OnlinePaymentOrder
from app.repositories.base import paginate
from app.repositories.student_fee_repo import StudentFeeRepository
from app.services.collection_service import CollectionService
from app.services.fee_status import ZERO, money
from app.services.payment_gateway import PaymentGateway, GatewayError, get_gateway

logger = logging.getLogger(__name__)

# confirm() returns these unchanged; "unapplied" means paid at the gateway with no open dues left
TERMINAL_STATUSES = ("completed", "failed", "unapplied")


class OnlinePaymentService:
    """
    create_order -> gateway link; confirm -> collect() once the gateway says completed.

    The order id doubles as the collection idempotency key, so confirming
    twice never collects twice.
    """

    def __init__(self, db: Session, clock: Clock = system_clock, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.clock = clock
        self.gateway = gateway or get_gateway()

    def create_order(self, student_id: str, fee_ids: List[str], created_by: str) -> OnlinePaymentOrder:
        if not fee_ids:
            raise ValidationError("At least one student fee is required")
        fee_ids = list(dict.fromkeys(fee_ids))

        repo = StudentFeeRepository(self.db)
        amounts, student_name = {}, None
        for index, fee_id in enumerate(fee_ids, start=1):
            fee = repo.get(fee_id)
            if fee is None:
                raise NotFound("StudentFee", fee_id, line=index)
            if fee.student_id != student_id:
                raise ValidationError(f"Line {index}: student fee belongs to another student",
                                      line=index, student_fee_id=fee_id)
            remaining = money(fee.remaining_due)
            if remaining <= 0:
                raise ValidationError(f"Line {index}: nothing is due on this fee",
                                      line=index, student_fee_id=fee_id)
            amounts[fee_id] = str(remaining)
            student_name = fee.student_name

        total = sum((money(v) for v in amounts.values()), ZERO)
        try:
            gateway_order = self.gateway.create_order(total, student_id, f"School fees for {student_name}")
        except GatewayError as e:
            raise GatewayUnavailable(f"Payment gateway error: {e}")

        with atomic(self.db):
            order = OnlinePaymentOrder(
                order_id=gateway_order.order_id,
                student_id=student_id,
                student_name=student_name,
                fee_ids=fee_ids,
                fee_amounts=amounts,
                amount=total,
                gateway=self.gateway.name,
                status=gateway_order.status,
                payment_link=gateway_order.payment_link,
                created_by=created_by,
                created_at=self.clock.now(),
            )
            self.db.add(order)

        logger.info(f"Online order {order.order_id} created for {student_name}: {total}")
        return order

    def get(self, order_id: str) -> OnlinePaymentOrder:
        order = self.db.execute(
            select(OnlinePaymentOrder).where(OnlinePaymentOrder.order_id == order_id)
        ).scalar_one_or_none()
        if order is None:
            raise NotFound("OnlinePaymentOrder", order_id)
        return order

    def confirm(self, order_id: str, confirmed_by: str = "gateway") -> OnlinePaymentOrder:
        """
        Poll the gateway and settle the order.

        An order the gateway settled whose dues were cleared some other way
        meanwhile ends up ``unapplied``: the money is recorded against the
        order (transaction id, reason) but nothing is collected.

        Raises:
            NotFound: unknown order
            GatewayUnavailable: gateway error
        """
        order = self.get(order_id)
        if order.status in TERMINAL_STATUSES:
            return order

        try:
            status = self.gateway.order_status(order_id)
        except GatewayError as e:
            raise GatewayUnavailable(f"Payment gateway error: {e}", order_id=order_id)

        if status.status == "completed":
            try:
                receipt, _ = CollectionService(self.db, self.clock).collect(
                    [(fee_id, amount) for fee_id, amount in order.fee_amounts.items()],
                    "online",
                    collected_by=confirmed_by,
                    transaction_ref=status.transaction_id,
                    remarks=f"Online order {order.order_id}",
                    idempotency_key=order.order_id,
                )
            except (ExceedsDue, InvalidState) as e:
                with atomic(self.db):
                    order.status = "unapplied"
                    order.transaction_id = status.transaction_id
                    order.failure_reason = f"Paid at gateway but not applied: {e}"[:500]
                    order.completed_at = self.clock.now()
                logger.warning(
                    f"Online order {order_id} paid at gateway (txn {status.transaction_id}) "
                    f"but could not be applied: {e}"
                )
                return order
            with atomic(self.db):
                order.status = "completed"
                order.transaction_id = status.transaction_id
                order.receipt_number = receipt.receipt_number
                order.completed_at = self.clock.now()
            logger.info(f"Online order {order_id} completed, receipt {receipt.receipt_number}")
        elif status.status == "failed":
            with atomic(self.db):
                order.status = "failed"
                order.failure_reason = status.failure_reason
            logger.warning(f"Online order {order_id} failed: {status.failure_reason}")
        elif status.status != order.status:
            with atomic(self.db):
                order.status = status.status
        return order

    def list(self, page: int, limit: int, student_id: Optional[str] = None, status: Optional[str] = None):
        stmt = select(OnlinePaymentOrder)
        if student_id:
            stmt = stmt.where(OnlinePaymentOrder.student_id == student_id)
        if status:
            stmt = stmt.where(OnlinePaymentOrder.status == status)
        return paginate(self.db, stmt.order_by(OnlinePaymentOrder.created_at.desc()), page, limit)
