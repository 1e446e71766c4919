"""Paystack payment verification.

Both the webhook and the manual verify call end in the same place: a
verified payment moves a Pending order to Processing. Neither deducts
stock; that happens when the order is confirmed or completed.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any

import requests

from .errors import InvalidSignatureError, PaymentGatewayError, ValidationError
from .models import Order, OrderStatus
from .order_store import OrderStore

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"
CHARGE_SUCCESS = "charge.success"

PROCESSING = "processing"
ALREADY_HANDLED = "already_handled"
VERIFICATION_FAILED = "verification_failed"
AMOUNT_MISMATCH = "amount_mismatch"
IGNORED = "ignored"


def compute_signature(body: bytes, secret_key: str) -> str:
    return hmac.new(secret_key.encode("utf-8"), body, hashlib.sha512).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret_key: str) -> None:
    """
    Check a webhook body against its HMAC-SHA512 signature.

    Raises:
        InvalidSignatureError: If the signature is missing or wrong.
    """
    if not secret_key or not signature:
        raise InvalidSignatureError()
    expected = compute_signature(body, secret_key)
    if not hmac.compare_digest(expected, signature):
        raise InvalidSignatureError()


class PaystackClient:
    """Minimal client for the Paystack transaction API."""

    def __init__(self, secret_key: str, base_url: str = "https://api.paystack.co", timeout: float = 10.0):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def verify_transaction(self, reference: str) -> dict[str, Any]:
        """
        Fetch a transaction's verification record.

        Raises:
            PaymentGatewayError: If Paystack cannot be reached or rejects the call.
        """
        url = f"{self.base_url}/transaction/verify/{reference}"
        try:
            response = requests.get(
                url,
                headers={"Authorization": f"Bearer {self.secret_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PaymentGatewayError(reference, str(e)) from e

        if response.status_code != 200:
            raise PaymentGatewayError(reference, f"HTTP {response.status_code}: {response.text[:200]}")
        try:
            payload = response.json()
        except ValueError as e:
            raise PaymentGatewayError(reference, "response is not JSON") from e
        if not payload.get("status") or not isinstance(payload.get("data"), dict):
            raise PaymentGatewayError(reference, payload.get("message") or "unexpected response")
        return payload["data"]


@dataclass
class PaymentOutcome:
    status: str
    message: str
    order: Order | None = None


class PaymentService:
    """Applies payment verification results to orders."""

    def __init__(self, orders: OrderStore, client: PaystackClient, secret_key: str):
        self.orders = orders
        self.client = client
        self.secret_key = secret_key

    def handle_webhook(self, body: bytes, signature: str | None) -> PaymentOutcome:
        """
        Process a Paystack webhook delivery.

        Raises:
            InvalidSignatureError: If the signature doesn't match.
            ValidationError: If the body is not a usable event.
            OrderNotFoundError: If the event names an unknown order reference.
        """
        verify_signature(body, signature, self.secret_key)
        try:
            event = json.loads(body)
        except ValueError:
            raise ValidationError("Webhook body is not valid JSON")
        if not isinstance(event, dict):
            raise ValidationError("Webhook body must be a JSON object")

        if event.get("event") != CHARGE_SUCCESS:
            logger.info("Ignoring Paystack event %s", event.get("event"))
            return PaymentOutcome(status=IGNORED, message=f"Event {event.get('event')} ignored")

        data = event.get("data") or {}
        reference = data.get("reference")
        if not reference:
            raise ValidationError("Webhook event has no transaction reference")
        return self.apply_verification(reference, data)

    def verify_payment(self, reference: str) -> PaymentOutcome:
        """
        Verify a payment with Paystack and apply the result.

        Raises:
            PaymentGatewayError: If Paystack cannot be reached.
            OrderNotFoundError: If no order has the reference.
        """
        data = self.client.verify_transaction(reference)
        return self.apply_verification(reference, data)

    def apply_verification(self, reference: str, data: dict[str, Any]) -> PaymentOutcome:
        order = self.orders.get_by_reference(reference)
        gateway_status = data.get("status")

        if gateway_status != "success":
            return self._flag(
                order,
                OrderStatus.VERIFICATION_FAILED,
                VERIFICATION_FAILED,
                f"Payment verification failed (gateway status: {gateway_status})",
            )

        paid = round((data.get("amount") or 0) / 100, 2)
        if abs(paid - order.total_amount) >= 0.01:
            return self._flag(
                order,
                OrderStatus.AMOUNT_MISMATCH,
                AMOUNT_MISMATCH,
                f"Amount mismatch: paid {paid:.2f}, expected {order.total_amount:.2f}",
            )

        transaction_id = str(data.get("id") or reference)
        mark = self.orders.mark_payment_verified(reference, transaction_id)
        if not mark.applied:
            return PaymentOutcome(
                status=ALREADY_HANDLED,
                message=f"Order already {mark.order.status}; payment not re-applied",
                order=mark.order,
            )
        logger.info("Payment verified for order %s (transaction %s)", reference, transaction_id)
        return PaymentOutcome(status=PROCESSING, message="Payment verified", order=mark.order)

    def _flag(self, order: Order, target: OrderStatus, outcome: str, note: str) -> PaymentOutcome:
        mark = self.orders.flag_payment(order.id, target, note)
        if not mark.applied:
            logger.warning("Order %s is %s; not flagging: %s", order.reference, mark.order.status, note)
            return PaymentOutcome(
                status=ALREADY_HANDLED,
                message=f"Order already {mark.order.status}; {note}",
                order=mark.order,
            )
        logger.warning("Order %s: %s", order.reference, note)
        return PaymentOutcome(status=outcome, message=note, order=mark.order)
