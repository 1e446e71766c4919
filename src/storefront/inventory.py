"""Inventory deduction for confirmed orders.

Stock is decremented with conditional updates: a line only applies if its
variation (and size) still holds at least the ordered quantity when the
update runs. All lines of an order, and the order's status change, share
one transaction, so either everything lands or nothing does.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .cart_store import CartStore
from .catalog import DirectStockLine, ProductRegistry, SizedStockLine, StockLine
from .database import Database, Session
from .errors import InsufficientStockError, OrderNotFoundError
from .models import Order, OrderStatus, _utc_now
from .order_store import ORDERS, format_note, stamp_status
from .stock import recompute_document
from .transitions import AWAITING_DEDUCTION, DEDUCTED, PRE_DEDUCTION

logger = logging.getLogger(__name__)


class DeductionStatus(str, Enum):
    DEDUCTED = "deducted"
    RACE = "race"  # another actor already moved the order on


@dataclass
class DeductionResult:
    status: DeductionStatus
    order: Order

    @property
    def is_race(self) -> bool:
        return self.status is DeductionStatus.RACE


def _decrement_sized(line: SizedStockLine) -> Callable[[dict[str, Any]], bool]:
    """Mutation: take ``quantity`` off one size, only if that much is there."""

    def mutation(doc: dict[str, Any]) -> bool:
        for variation in doc.get("variations", []):
            if variation.get("variation_index") != line.variation_index:
                continue
            for entry in variation.get("sizes") or []:
                if entry.get("size") == line.size and (entry.get("stock") or 0) >= line.quantity:
                    entry["stock"] = entry["stock"] - line.quantity
                    recompute_document(doc)
                    return True
        return False

    return mutation


def _decrement_direct(line: DirectStockLine) -> Callable[[dict[str, Any]], bool]:
    """Mutation: take ``quantity`` off a variation's stock, only if that much is there."""

    def mutation(doc: dict[str, Any]) -> bool:
        for variation in doc.get("variations", []):
            if (
                variation.get("variation_index") == line.variation_index
                and (variation.get("stock") or 0) >= line.quantity
            ):
                variation["stock"] = variation["stock"] - line.quantity
                recompute_document(doc)
                return True
        return False

    return mutation


def _available(session: Session, line: StockLine) -> int | None:
    """Current leaf stock for a line, for error messages only."""
    doc = session.get(line.collection, line.product_id)
    if doc is None:
        return None
    for variation in doc.get("variations", []):
        if variation.get("variation_index") != line.variation_index:
            continue
        if isinstance(line, SizedStockLine):
            for entry in variation.get("sizes") or []:
                if entry.get("size") == line.size:
                    return entry.get("stock") or 0
            return None
        return variation.get("stock") or 0
    return None


class InventoryEngine:
    """Deducts stock for an order in a single transaction."""

    def __init__(self, db: Database, registry: ProductRegistry, carts: CartStore):
        self.db = db
        self.registry = registry
        self.carts = carts

    def _deduct_line(self, session: Session, item: dict[str, Any]) -> None:
        line = self.registry.stock_line(item)
        if isinstance(line, SizedStockLine):
            mutation = _decrement_sized(line)
        elif isinstance(line, DirectStockLine):
            mutation = _decrement_direct(line)
        else:
            raise TypeError(f"Unhandled stock line: {line!r}")

        if session.update_one(line.collection, line.product_id, mutation) == 0:
            raise InsufficientStockError(item, available=_available(session, line))

    def deduct_inventory_atomic(
        self,
        order_id: str,
        final_status: OrderStatus,
        actor: str,
    ) -> DeductionResult:
        """
        Decrement stock for every line of an order and move it to ``final_status``.

        Returns a race result without touching anything if the order is no
        longer awaiting deduction.

        Raises:
            OrderNotFoundError: If order doesn't exist.
            UnknownProductKindError: If a line names an unregistered product type.
            InsufficientStockError: If any line's stock is short. Nothing is written.
            StorageError: If the transaction cannot be committed.
        """
        if final_status not in DEDUCTED:
            raise ValueError(f"{final_status.value} is not a deducted status")

        with self.db.transaction() as session:
            doc = session.get(ORDERS, order_id)
            if doc is None:
                raise OrderNotFoundError(order_id)

            if doc.get("status") not in {s.value for s in AWAITING_DEDUCTION}:
                logger.info(
                    "Skipping deduction for order %s: already %s",
                    doc.get("reference"), doc.get("status"),
                )
                return DeductionResult(DeductionStatus.RACE, Order.from_dict(doc))

            logger.info(
                "Deducting stock for order %s (%d line(s))",
                doc.get("reference"), len(doc.get("items", [])),
            )
            for item in doc.get("items", []):
                self._deduct_line(session, item)

            now = _utc_now()
            stamp_status(doc, final_status, actor, now)
            doc.setdefault("notes", []).append(
                format_note(f"Stock deducted, order {final_status.value.lower()} by {actor}", now)
            )
            session.replace_one(ORDERS, doc)

        order = Order.from_dict(doc)
        logger.info("Order %s %s; stock committed", order.reference, order.status)

        if order.user_id:
            try:
                self.carts.clear_cart(order.user_id)
            except Exception:
                logger.exception("Failed to clear cart for user %s after order %s", order.user_id, order.reference)

        return DeductionResult(DeductionStatus.DEDUCTED, order)


class InventoryRollback:
    """Records failed deductions for manual review."""

    def __init__(self, db: Database):
        self.db = db

    def record_failure(self, order_id: str, reason: str) -> Order | None:
        """
        Mark an order ``Inventory Failure (Manual Review)`` and note why.

        Stock is not touched; the failed transaction already rolled it back.
        Never raises: errors are logged and None is returned.
        """
        try:
            with self.db.transaction() as session:
                doc = session.get(ORDERS, order_id)
                if doc is None:
                    raise OrderNotFoundError(order_id)
                now = _utc_now()
                # A concurrent cancel may have landed since the deduction aborted.
                if doc.get("status") in {s.value for s in PRE_DEDUCTION}:
                    doc["status"] = OrderStatus.INVENTORY_FAILURE.value
                    doc["claim"] = None
                doc["updated_at"] = now
                doc.setdefault("notes", []).append(
                    format_note(f"Inventory deduction failed: {reason}", now)
                )
                session.replace_one(ORDERS, doc)
        except Exception:
            logger.exception("Could not record inventory failure for order %s (%s)", order_id, reason)
            return None

        logger.warning("Order %s flagged for manual review: %s", doc.get("reference"), reason)
        return Order.from_dict(doc)
