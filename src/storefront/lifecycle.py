"""Order lifecycle operations: confirm, complete, cancel and status changes."""

import logging
from dataclasses import dataclass

from .errors import InsufficientStockError, InvalidTransitionError, OrderNotFoundError, StorefrontError
from .inventory import DeductionResult, InventoryEngine, InventoryRollback
from .models import Order, OrderStatus
from .notifications import LoggingNotifier, Notifier, notify_safely
from .order_store import OrderStore, claim_is_live
from .transitions import CLAIMABLE, PAST_DEDUCTION, check_admin_transition

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
COMPLETED = "completed"
ALREADY_HANDLED = "already_handled"


@dataclass
class ConfirmOutcome:
    status: str  # CONFIRMED, COMPLETED, ALREADY_HANDLED or the lowercased new status
    order: Order
    message: str


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, StorefrontError):
        return str(exc)
    return f"{type(exc).__name__}: {exc}"


class OrderLifecycle:
    """Drives orders through the status graph."""

    def __init__(
        self,
        orders: OrderStore,
        engine: InventoryEngine,
        rollback: InventoryRollback,
        notifier: Notifier | None = None,
        claim_ttl_seconds: float = 300.0,
    ):
        self.orders = orders
        self.engine = engine
        self.rollback = rollback
        self.notifier = notifier or LoggingNotifier()
        self.claim_ttl_seconds = claim_ttl_seconds

    def _already_handled(self, order: Order) -> ConfirmOutcome:
        return ConfirmOutcome(
            status=ALREADY_HANDLED,
            order=order,
            message=f"Order already handled by a concurrent request (status: {order.status})",
        )

    def _handled_or_conflict(self, order: Order, requested: OrderStatus) -> ConfirmOutcome:
        """
        Classify an order this request could not deduct.

        Already deducted, or claimed by another live request: already handled.
        Anything else (Cancelled, flagged payments) cannot be confirmed.
        """
        if order.status in {s.value for s in PAST_DEDUCTION}:
            return self._already_handled(order)
        if order.status in {s.value for s in CLAIMABLE} and claim_is_live(
            order.claim, self.claim_ttl_seconds
        ):
            return self._already_handled(order)
        raise InvalidTransitionError(order.status, requested.value)

    def _deduct(self, order_id: str, final_status: OrderStatus, actor: str) -> DeductionResult:
        """Run the deduction; record hard failures once, then re-raise."""
        try:
            return self.engine.deduct_inventory_atomic(order_id, final_status, actor)
        except OrderNotFoundError:
            raise
        except Exception as exc:
            reason = _failure_reason(exc)
            if isinstance(exc, InsufficientStockError):
                logger.warning("Deduction for order %s failed: %s", order_id, reason)
            else:
                logger.error("Deduction for order %s failed: %s", order_id, reason)
            self.rollback.record_failure(order_id, reason)
            raise

    def confirm_order(self, order_id: str, admin_id: str) -> ConfirmOutcome:
        """
        Confirm an order on behalf of an admin.

        Claims the order first so that only one concurrent request runs the
        deduction; losing the claim is reported as already handled.

        Raises:
            OrderNotFoundError: If order doesn't exist.
            InvalidTransitionError: If the order can no longer be confirmed.
            InsufficientStockError: If stock is short (order flagged for review).
            UnknownProductKindError: If a line's product type is unknown (order flagged).
        """
        claim = self.orders.claim_for_confirmation(order_id, admin_id, self.claim_ttl_seconds)
        if not claim.claimed:
            return self._handled_or_conflict(claim.order, OrderStatus.CONFIRMED)

        result = self._deduct(order_id, OrderStatus.CONFIRMED, admin_id)
        if result.is_race:
            return self._handled_or_conflict(result.order, OrderStatus.CONFIRMED)

        notify_safely(self.notifier.order_confirmed, result.order)
        return ConfirmOutcome(status=CONFIRMED, order=result.order, message="Order confirmed")

    def complete_order(self, order_id: str, actor: str = "system") -> ConfirmOutcome:
        """
        Deduct stock and mark an order Completed (automated path, no claim).

        Raises:
            OrderNotFoundError: If order doesn't exist.
            InvalidTransitionError: If the order can no longer be completed.
            InsufficientStockError: If stock is short (order flagged for review).
            UnknownProductKindError: If a line's product type is unknown (order flagged).
        """
        result = self._deduct(order_id, OrderStatus.COMPLETED, actor)
        if result.is_race:
            return self._handled_or_conflict(result.order, OrderStatus.COMPLETED)

        notify_safely(self.notifier.order_confirmed, result.order)
        return ConfirmOutcome(status=COMPLETED, order=result.order, message="Order completed")

    def cancel_order(self, order_id: str, admin_id: str, reason: str | None = None) -> Order:
        """
        Cancel an order. Deducted stock is not returned to the catalog.

        Raises:
            OrderNotFoundError: If order doesn't exist.
            InvalidTransitionError: If the order can no longer be cancelled.
        """
        note = f"Cancelled by {admin_id}"
        if reason:
            note = f"{note}: {reason}"
        order = self.orders.apply_status(order_id, OrderStatus.CANCELLED, admin_id, note)
        notify_safely(self.notifier.order_status_changed, order)
        return order

    def update_status(self, order_id: str, status: str, admin_id: str) -> ConfirmOutcome:
        """
        Apply an admin status change through the transition guard.

        ``Confirmed`` runs the confirm flow and ``Cancelled`` the cancel flow.

        Raises:
            OrderNotFoundError: If order doesn't exist.
            InvalidTransitionError: If the change is not allowed.
            InsufficientStockError: If confirming finds stock short.
        """
        order = self.orders.get_order(order_id)
        target = check_admin_transition(order.status, status)

        if target is OrderStatus.CONFIRMED:
            return self.confirm_order(order_id, admin_id)
        if target is OrderStatus.CANCELLED:
            order = self.cancel_order(order_id, admin_id)
            return ConfirmOutcome(status=target.value.lower(), order=order, message="Order cancelled")

        order = self.orders.apply_status(order_id, target, admin_id)
        notify_safely(self.notifier.order_status_changed, order)
        return ConfirmOutcome(
            status=target.value.lower(), order=order, message=f"Order marked {target.value}"
        )
