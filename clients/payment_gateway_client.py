"""
Payment gateway client (Razorpay-style REST surface).

Used only by the billing ledger's payment-confirmation and refund paths.
Signature checks use HMAC-SHA256 over "<order_id>|<payment_id>" with the
key secret, and constant-time comparison.
"""

import hashlib
import hmac
import logging
from typing import Any

import requests
from pydantic import BaseModel

from core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

# Gateway statuses that mean money has actually moved
SETTLED_STATUSES = frozenset({"captured", "succeeded", "paid"})


class PaymentGatewayError(ExternalServiceError):
    """Raised when a gateway request fails or a payment cannot be verified."""

    service = "payment_gateway"


class GatewayOrder(BaseModel):
    id: str
    amount_cents: int
    currency: str


class GatewayPayment(BaseModel):
    id: str
    order_id: str | None = None
    amount_cents: int
    currency: str
    status: str
    method: str | None = None
    fee_cents: int = 0

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES


class GatewayRefund(BaseModel):
    id: str
    payment_id: str
    amount_cents: int
    status: str


class PaymentGatewayClient:
    """
    Gateway REST client authenticated with key id / key secret (HTTP basic).

    Usage:
        gateway = PaymentGatewayClient("razorpay", base_url, key_id, key_secret)
        order = gateway.create_order(amount_cents=3000, currency="USD", receipt="ORD-2024-000001")
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        key_id: str,
        key_secret: str,
        timeout: float = 30,
    ):
        """
        Raises:
            ValueError: If any credential is empty
        """
        if not base_url:
            raise ValueError("base_url is required")
        if not key_id:
            raise ValueError("key_id is required")
        if not key_secret:
            raise ValueError("key_secret is required")

        self.name = name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._auth = (key_id, key_secret)
        self._key_secret = key_secret

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(
                method, url, auth=self._auth, timeout=self.timeout, **kwargs
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"{self.name} connection failed on {method} {path}: {e}")
            raise PaymentGatewayError(f"Connection failed: {e}")

        try:
            data = response.json()
        except ValueError:
            logger.error(f"{self.name} returned invalid JSON: {response.text}")
            raise PaymentGatewayError("Invalid response from gateway")

        if not response.ok:
            error = data.get("error") or {}
            message = error.get("description") if isinstance(error, dict) else str(error)
            logger.error(f"{self.name} error {response.status_code}: {message}")
            raise PaymentGatewayError(
                f"Gateway error {response.status_code}: {message or 'Unknown error'}",
                retryable=response.status_code >= 500,
            )

        return data

    def create_order(self, amount_cents: int, currency: str, receipt: str, notes: dict | None = None) -> GatewayOrder:
        data = self._request(
            "POST",
            "/v1/orders",
            json={
                "amount": amount_cents,
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            },
        )
        logger.info(f"{self.name} order {data['id']} created for {receipt}")
        return GatewayOrder(id=data["id"], amount_cents=data["amount"], currency=data["currency"])

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check the checkout signature returned to the client by the gateway."""
        message = f"{order_id}|{payment_id}".encode("utf-8")
        expected = hmac.new(self._key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature or "")

    def get_payment(self, payment_id: str) -> GatewayPayment:
        data = self._request("GET", f"/v1/payments/{payment_id}")
        return GatewayPayment(
            id=data["id"],
            order_id=data.get("order_id"),
            amount_cents=data["amount"],
            currency=data["currency"],
            status=data["status"],
            method=data.get("method"),
            fee_cents=data.get("fee") or 0,
        )

    def verify_payment(self, payment_data: dict[str, Any]) -> GatewayPayment:
        """
        Verify a client-reported payment and return the gateway's record of it.

        Accepts either a signed checkout result (order_id, payment_id, signature)
        or a bare payment_id for server-side confirmations.

        Raises:
            PaymentGatewayError: Bad signature, unknown payment, or not settled
        """
        payment_id = payment_data.get("payment_id")
        if not payment_id:
            raise PaymentGatewayError("payment_id is required", retryable=False)

        signature = payment_data.get("signature")
        if signature is not None:
            order_id = payment_data.get("order_id") or ""
            if not self.verify_signature(order_id, payment_id, signature):
                logger.warning(f"Invalid {self.name} signature for payment {payment_id}")
                raise PaymentGatewayError("Payment signature verification failed", retryable=False)

        payment = self.get_payment(payment_id)
        if not payment.is_settled:
            raise PaymentGatewayError(
                f"Payment {payment_id} not completed (status: {payment.status})",
                retryable=False,
            )
        return payment

    def refund(self, payment_id: str, amount_cents: int, reason: str | None = None) -> GatewayRefund:
        data = self._request(
            "POST",
            f"/v1/payments/{payment_id}/refund",
            json={"amount": amount_cents, "notes": {"reason": reason or ""}},
        )
        logger.info(f"{self.name} refund {data['id']} issued for payment {payment_id}")
        return GatewayRefund(
            id=data["id"],
            payment_id=payment_id,
            amount_cents=data["amount"],
            status=data.get("status", "processed"),
        )
