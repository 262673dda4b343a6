# app/services/payment_gateway.py - Opaque order/status handshake with a payment gateway
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional
import logging
import secrets

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class GatewayOrder:
    order_id: str
    payment_link: Optional[str]
    status: str  # created, processing, completed, failed
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None


class GatewayError(Exception):
    """Gateway unreachable or returned an unusable response"""
    pass


class PaymentGateway:
    name = "base"

    def create_order(self, amount: Decimal, reference: str, description: str) -> GatewayOrder:
        raise NotImplementedError

    def order_status(self, order_id: str) -> GatewayOrder:
        raise NotImplementedError


class SandboxGateway(PaymentGateway):
    """
    Deterministic in-process gateway for development and tests.

    Orders report ``processing`` until ``complete`` or ``fail`` is called.
    """

    name = "sandbox"

    def __init__(self):
        self.orders: Dict[str, GatewayOrder] = {}

    def create_order(self, amount: Decimal, reference: str, description: str) -> GatewayOrder:
        order_id = f"ORD{secrets.token_hex(6).upper()}"
        order = GatewayOrder(
            order_id=order_id,
            payment_link=f"https://sandbox.pay.local/checkout/{order_id}",
            status="created",
        )
        self.orders[order_id] = order
        logger.info(f"Sandbox order {order_id} created for {amount} ({reference})")
        return order

    def order_status(self, order_id: str) -> GatewayOrder:
        order = self.orders.get(order_id)
        if order is None:
            raise GatewayError(f"Unknown order {order_id}")
        if order.status == "created":
            order.status = "processing"
        return order

    def complete(self, order_id: str, transaction_id: Optional[str] = None) -> None:
        order = self.orders[order_id]
        order.status = "completed"
        order.transaction_id = transaction_id or f"TXN{secrets.token_hex(6).upper()}"

    def fail(self, order_id: str, reason: str = "declined") -> None:
        order = self.orders[order_id]
        order.status = "failed"
        order.failure_reason = reason


class HttpGateway(PaymentGateway):
    """Gateway reached over HTTP: POST /orders, GET /orders/{id}"""

    name = "http"

    def __init__(self, base_url: str = None, timeout: float = None, client: Optional[httpx.Client] = None):
        self.base_url = (base_url or settings.GATEWAY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.GATEWAY_TIMEOUT
        self._client = client

    def _request(self, method: str, path: str, **kwargs) -> dict:
        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            response = client.request(method, f"{self.base_url}{path}", **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.error(f"Gateway {method} {path} failed: {e}")
            raise GatewayError(str(e)) from e
        finally:
            if self._client is None:
                client.close()

    @staticmethod
    def _order(data: dict) -> GatewayOrder:
        return GatewayOrder(
            order_id=data["order_id"],
            payment_link=data.get("payment_link"),
            status=data.get("status", "created"),
            transaction_id=data.get("transaction_id"),
            failure_reason=data.get("failure_reason"),
        )

    def create_order(self, amount: Decimal, reference: str, description: str) -> GatewayOrder:
        return self._order(self._request(
            "POST", "/orders", json={"amount": str(amount), "reference": reference, "description": description}
        ))

    def order_status(self, order_id: str) -> GatewayOrder:
        return self._order(self._request("GET", f"/orders/{order_id}"))


_sandbox = SandboxGateway()


def get_gateway(name: Optional[str] = None) -> PaymentGateway:
    name = name or settings.PAYMENT_GATEWAY
    if name == "sandbox":
        return _sandbox
    if name == "http":
        return HttpGateway()
    raise ValueError(f"Unknown payment gateway '{name}'")
