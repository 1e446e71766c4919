"""Checkout: turn requested line items into a Pending order."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .catalog import ProductRegistry, StockShape
from .errors import InsufficientStockError, InvalidOrderError, ProductNotFoundError
from .models import Order, OrderItem, OrderStatus, _generate_id, _utc_now
from .order_store import OrderStore
from .product_store import ProductStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineRequest:
    """One requested line at checkout."""

    product_id: str
    product_type: str
    variation_index: int
    quantity: int
    size: str | None = None


@dataclass(frozen=True)
class Pricing:
    shipping_fee: float
    free_shipping_threshold: float
    tax_rate: float


def generate_reference(now: datetime | None = None) -> str:
    """Return a reference like ORD-20240131-3FA9C2."""
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def compute_totals(items: list[OrderItem], pricing: Pricing) -> dict[str, float]:
    subtotal = round(sum(i.price * i.quantity for i in items), 2)
    shipping = 0.0 if subtotal >= pricing.free_shipping_threshold else pricing.shipping_fee
    tax = round(subtotal * pricing.tax_rate, 2)
    return {
        "subtotal": subtotal,
        "shipping_fee": round(shipping, 2),
        "tax": tax,
        "total_amount": round(subtotal + shipping + tax, 2),
    }


class CheckoutService:
    """Creates orders from line requests, snapshotting catalog data."""

    def __init__(
        self,
        products: ProductStore,
        orders: OrderStore,
        registry: ProductRegistry,
        pricing: Pricing,
    ):
        self.products = products
        self.orders = orders
        self.registry = registry
        self.pricing = pricing

    def _snapshot(self, line: LineRequest) -> OrderItem:
        if line.quantity < 1:
            raise InvalidOrderError(f"quantity for {line.product_id} must be at least 1")

        spec = self.registry.resolve(line.product_type)
        try:
            product = self.products.get_product(spec.kind, line.product_id)
        except ProductNotFoundError:
            raise InvalidOrderError(f"product {line.product_id} does not exist")
        if not product.is_active:
            raise InvalidOrderError(f"product {product.name} is not available")

        variation = product.find_variation(line.variation_index)
        if variation is None:
            raise InvalidOrderError(
                f"product {product.name} has no variation {line.variation_index}"
            )

        item = OrderItem(
            product_id=product.id,
            product_type=spec.kind.value,
            quantity=line.quantity,
            price=product.price,
            variation_index=line.variation_index,
            size=None,
            name=product.name,
            color=variation.color,
        )

        if spec.shape is StockShape.SIZED:
            if not line.size:
                raise InvalidOrderError(f"a size is required for {product.name}")
            entry = next((s for s in variation.sizes or [] if s.size == line.size), None)
            if entry is None:
                raise InvalidOrderError(
                    f"{product.name} variation {line.variation_index} has no size '{line.size}'"
                )
            item.size = line.size
            available = entry.stock
        else:
            available = variation.stock or 0

        # Advisory only; the deduction re-checks under its own transaction.
        if available < line.quantity:
            logger.info(
                "Checkout rejected: %s variation %d wants %d, %d available",
                product.id, line.variation_index, line.quantity, available,
            )
            raise InsufficientStockError(item.to_dict(), available=available)
        return item

    def place_order(
        self,
        lines: list[LineRequest],
        user_id: str | None = None,
        guest_email: str | None = None,
        shipping_address: dict[str, Any] | None = None,
    ) -> Order:
        """
        Create a Pending order.

        Raises:
            InvalidOrderError: If the request is malformed.
            UnknownProductKindError: If a line names an unknown product type.
            InsufficientStockError: If a line exceeds current stock.
        """
        if not lines:
            raise InvalidOrderError("an order needs at least one item")
        if not user_id and not guest_email:
            raise InvalidOrderError("guest checkout requires an email address")

        items = [self._snapshot(line) for line in lines]
        totals = compute_totals(items, self.pricing)
        now = _utc_now()
        order = Order(
            id=_generate_id(),
            reference=generate_reference(),
            items=items,
            status=OrderStatus.PENDING.value,
            user_id=user_id or None,
            is_guest=not user_id,
            guest_email=guest_email,
            shipping_address=shipping_address,
            created_at=now,
            updated_at=now,
            **totals,
        )
        return self.orders.create_order(order)
