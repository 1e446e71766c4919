"""Order storage for storefront."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .database import Database
from .errors import InvalidTransitionError, OrderNotFoundError, StorageError
from .models import Order, OrderStatus, _utc_now
from .transitions import CLAIMABLE, DEDUCTED, check_transition, parse_status

logger = logging.getLogger(__name__)

ORDERS = "orders"

# Statuses a verified payment may (re-)mark as Processing.
PAYMENT_MARKABLE = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})


def format_note(text: str, now: str | None = None) -> str:
    return f"[{now or _utc_now()}] {text}"


def stamp_status(doc: dict[str, Any], status: OrderStatus, actor: str | None, now: str) -> None:
    """
    Write a new status onto an order document.

    Lifecycle timestamps are set only the first time their status is reached.
    """
    doc["status"] = status.value
    doc["updated_at"] = now
    if status in DEDUCTED:
        if doc.get("confirmed_at") is None:
            doc["confirmed_at"] = now
        if actor and doc.get("confirmed_by") is None:
            doc["confirmed_by"] = actor
        doc["claim"] = None
    elif status is OrderStatus.SHIPPED:
        if doc.get("shipped_at") is None:
            doc["shipped_at"] = now
    elif status is OrderStatus.DELIVERED:
        if doc.get("delivered_at") is None:
            doc["delivered_at"] = now
    elif status is OrderStatus.CANCELLED:
        if doc.get("cancelled_at") is None:
            doc["cancelled_at"] = now
        doc["claim"] = None


def _parse_time(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None


def claim_is_live(claim: dict[str, Any] | None, ttl_seconds: float, now: datetime | None = None) -> bool:
    """Return True if a confirm claim is held and younger than the TTL."""
    if not claim:
        return False
    claimed_at = _parse_time(claim.get("at", ""))
    if claimed_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return (now - claimed_at).total_seconds() < ttl_seconds


@dataclass
class ClaimResult:
    claimed: bool
    order: Order


@dataclass
class PaymentMark:
    applied: bool
    order: Order


class OrderStore:
    """Manages order documents."""

    def __init__(self, db: Database):
        self.db = db

    def create_order(self, order: Order) -> Order:
        """
        Persist a new order.

        Raises:
            StorageError: If the reference is already taken.
        """
        with self.db.transaction() as session:
            if session.find_one(ORDERS, lambda d: d.get("reference") == order.reference):
                raise StorageError(ORDERS, f"duplicate order reference {order.reference}")
            session.insert_one(ORDERS, order.to_dict())
        logger.info("Created order %s (%s) total=%.2f", order.reference, order.id, order.total_amount)
        return order

    def get_order(self, order_id: str) -> Order:
        """
        Get an order by ID.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """
        doc = self.db.get(ORDERS, order_id)
        if doc is None:
            raise OrderNotFoundError(order_id)
        return Order.from_dict(doc)

    def get_by_reference(self, reference: str) -> Order:
        """
        Get an order by its human-readable reference.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """
        doc = self.db.find_one(ORDERS, lambda d: d.get("reference") == reference)
        if doc is None:
            raise OrderNotFoundError(reference)
        return Order.from_dict(doc)

    def list_orders(self, status: str | None = None, user_id: str | None = None) -> list[Order]:
        """List orders, newest first."""

        def matches(doc: dict[str, Any]) -> bool:
            if status and doc.get("status") != status:
                return False
            if user_id and doc.get("user_id") != user_id:
                return False
            return True

        orders = [Order.from_dict(d) for d in self.db.find(ORDERS, matches)]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    def claim_for_confirmation(self, order_id: str, admin_id: str, ttl_seconds: float) -> ClaimResult:
        """
        Elect one request to run the inventory deduction for an order.

        Conditionally moves a claimable order to Processing with a claim
        marker. Fails (``claimed=False``) when the order is past the
        deduction or another request holds a live claim.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """
        now = _utc_now()

        def claim(doc: dict[str, Any]) -> bool:
            if doc.get("status") not in {s.value for s in CLAIMABLE}:
                return False
            if claim_is_live(doc.get("claim"), ttl_seconds):
                return False
            doc["status"] = OrderStatus.PROCESSING.value
            doc["claim"] = {"by": admin_id, "at": now}
            doc["updated_at"] = now
            return True

        with self.db.transaction() as session:
            if session.get(ORDERS, order_id) is None:
                raise OrderNotFoundError(order_id)
            claimed = session.update_one(ORDERS, order_id, claim) == 1
            order = Order.from_dict(session.get(ORDERS, order_id))

        if claimed:
            logger.info("Order %s claimed for confirmation by %s", order.reference, admin_id)
        else:
            logger.info(
                "Order %s not claimed by %s (status=%s, claim=%s)",
                order.reference, admin_id, order.status, order.claim,
            )
        return ClaimResult(claimed=claimed, order=order)

    def apply_status(
        self,
        order_id: str,
        status: str | OrderStatus,
        actor: str | None = None,
        note: str | None = None,
    ) -> Order:
        """
        Move an order along an edge of the status graph.

        Deducted statuses (Confirmed/Completed) are only written by the
        inventory engine and are rejected here.

        Raises:
            OrderNotFoundError: If order doesn't exist.
            InvalidTransitionError: If the edge doesn't exist.
        """
        target = parse_status(status)

        with self.db.transaction() as session:
            doc = session.get(ORDERS, order_id)
            if doc is None:
                raise OrderNotFoundError(order_id)
            if target in DEDUCTED:
                raise InvalidTransitionError(
                    doc["status"], target.value, "only inventory deduction can set this status"
                )
            check_transition(doc["status"], target)
            now = _utc_now()
            stamp_status(doc, target, actor, now)
            if note:
                doc.setdefault("notes", []).append(format_note(note, now))
            session.replace_one(ORDERS, doc)

        logger.info("Order %s moved to %s by %s", doc["reference"], target.value, actor or "system")
        return Order.from_dict(doc)

    def append_note(self, order_id: str, note: str) -> Order:
        """Append an audit note to an order."""

        def add(doc: dict[str, Any]) -> bool:
            now = _utc_now()
            doc.setdefault("notes", []).append(format_note(note, now))
            doc["updated_at"] = now
            return True

        with self.db.transaction() as session:
            if session.update_one(ORDERS, order_id, add) == 0:
                raise OrderNotFoundError(order_id)
            return Order.from_dict(session.get(ORDERS, order_id))

    def mark_payment_verified(self, reference: str, transaction_id: str) -> PaymentMark:
        """
        Record a verified payment: Pending -> Processing.

        Applies only while the order is Pending or Processing. A redelivered
        webhook for an order that has already moved on is reported with
        ``applied=False`` and leaves the order untouched.

        Raises:
            OrderNotFoundError: If no order has the reference.
        """
        allowed = {s.value for s in PAYMENT_MARKABLE}

        def mark(doc: dict[str, Any]) -> bool:
            if doc.get("status") not in allowed:
                return False
            now = _utc_now()
            first_time = doc.get("payment_reference") is None
            doc["status"] = OrderStatus.PROCESSING.value
            doc["payment_reference"] = transaction_id
            if doc.get("paid_at") is None:
                doc["paid_at"] = now
            if first_time:
                doc.setdefault("notes", []).append(
                    format_note(f"Payment verified (transaction {transaction_id})", now)
                )
            doc["updated_at"] = now
            return True

        with self.db.transaction() as session:
            doc = session.find_one(ORDERS, lambda d: d.get("reference") == reference)
            if doc is None:
                raise OrderNotFoundError(reference)
            applied = session.update_one(ORDERS, doc["id"], mark) == 1
            order = Order.from_dict(session.get(ORDERS, doc["id"]))

        if not applied:
            logger.warning(
                "Payment for order %s verified again while order is %s; left unchanged",
                reference, order.status,
            )
        return PaymentMark(applied=applied, order=order)

    def flag_payment(self, order_id: str, status: OrderStatus, note: str) -> PaymentMark:
        """
        Flag a failed or mismatched payment, but only while the order is Pending.

        An order a concurrent request has already moved on is left untouched
        and reported with ``applied=False``.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """

        def flag(doc: dict[str, Any]) -> bool:
            if doc.get("status") != OrderStatus.PENDING.value:
                return False
            now = _utc_now()
            stamp_status(doc, status, "paystack", now)
            doc.setdefault("notes", []).append(format_note(note, now))
            return True

        with self.db.transaction() as session:
            if session.get(ORDERS, order_id) is None:
                raise OrderNotFoundError(order_id)
            applied = session.update_one(ORDERS, order_id, flag) == 1
            order = Order.from_dict(session.get(ORDERS, order_id))

        if applied:
            logger.info("Order %s flagged %s", order.reference, status.value)
        return PaymentMark(applied=applied, order=order)
