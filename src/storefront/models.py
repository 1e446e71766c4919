"""Data models for storefront."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import uuid


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new document ID."""
    return str(uuid.uuid4())


class ProductKind(str, Enum):
    """Product type tags. Each kind is stored in its own collection."""

    CLOTH = "cloth"
    SHOE = "shoe"
    JERSEY = "jersey"
    CAP = "cap"


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    VERIFICATION_FAILED = "Verification Failed"
    AMOUNT_MISMATCH = "Amount Mismatch (Manual Review)"
    INVENTORY_FAILURE = "Inventory Failure (Manual Review)"


# Models for the catalog


@dataclass
class SizeStock:
    """Stock counter for one size label of a variation."""

    size: str
    stock: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"size": self.size, "stock": self.stock}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SizeStock":
        return cls(size=data["size"], stock=data.get("stock") or 0)


@dataclass
class Variation:
    """One color/style option of a product.

    Size-keyed kinds populate ``sizes``; the direct-stock kind populates
    ``stock``. Exactly one of the two is set.
    """

    variation_index: int  # 1-based, unique within the product
    color: str
    front_image: str | None = None
    back_image: str | None = None
    sizes: list[SizeStock] | None = None
    stock: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "variation_index": self.variation_index,
            "color": self.color,
            "front_image": self.front_image,
            "back_image": self.back_image,
        }
        if self.sizes is not None:
            result["sizes"] = [s.to_dict() for s in self.sizes]
        if self.stock is not None:
            result["stock"] = self.stock
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Variation":
        sizes = None
        if data.get("sizes") is not None:
            sizes = [SizeStock.from_dict(s) for s in data["sizes"]]
        return cls(
            variation_index=data["variation_index"],
            color=data.get("color", ""),
            front_image=data.get("front_image"),
            back_image=data.get("back_image"),
            sizes=sizes,
            stock=data.get("stock"),
        )


@dataclass
class Product:
    """A catalog product with nested variation stock."""

    id: str
    kind: str
    name: str
    price: float
    variations: list[Variation]
    total_stock: int = 0  # derived, see stock.recompute_total_stock
    is_active: bool = True
    description: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "price": self.price,
            "description": self.description,
            "variations": [v.to_dict() for v in self.variations],
            "total_stock": self.total_stock,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            kind=data["kind"],
            name=data["name"],
            price=data["price"],
            description=data.get("description"),
            variations=[Variation.from_dict(v) for v in data.get("variations", [])],
            total_stock=data.get("total_stock", 0),
            is_active=data.get("is_active", True),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    def find_variation(self, variation_index: int) -> Variation | None:
        for variation in self.variations:
            if variation.variation_index == variation_index:
                return variation
        return None


# Models for orders


@dataclass
class OrderItem:
    """Line item snapshot taken at checkout time."""

    product_id: str
    product_type: str
    quantity: int
    price: float  # unit price at purchase time
    variation_index: int
    size: str | None = None
    name: str | None = None
    color: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_type": self.product_type,
            "quantity": self.quantity,
            "price": self.price,
            "variation_index": self.variation_index,
            "size": self.size,
            "name": self.name,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=data["product_id"],
            product_type=data["product_type"],
            quantity=data["quantity"],
            price=data["price"],
            variation_index=data["variation_index"],
            size=data.get("size"),
            name=data.get("name"),
            color=data.get("color"),
        )


@dataclass
class Order:
    """A placed order. Items and totals are a snapshot; status drives the lifecycle."""

    id: str
    reference: str
    items: list[OrderItem]
    subtotal: float
    shipping_fee: float
    tax: float
    total_amount: float
    status: str = OrderStatus.PENDING.value
    user_id: str | None = None
    is_guest: bool = False
    guest_email: str | None = None
    shipping_address: dict[str, Any] | None = None
    payment_reference: str | None = None
    paid_at: str | None = None
    confirmed_at: str | None = None
    confirmed_by: str | None = None
    shipped_at: str | None = None
    delivered_at: str | None = None
    cancelled_at: str | None = None
    claim: dict[str, str] | None = None
    notes: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "reference": self.reference,
            "user_id": self.user_id,
            "is_guest": self.is_guest,
            "guest_email": self.guest_email,
            "items": [i.to_dict() for i in self.items],
            "subtotal": self.subtotal,
            "shipping_fee": self.shipping_fee,
            "tax": self.tax,
            "total_amount": self.total_amount,
            "status": self.status,
            "shipping_address": self.shipping_address,
            "payment_reference": self.payment_reference,
            "paid_at": self.paid_at,
            "confirmed_at": self.confirmed_at,
            "confirmed_by": self.confirmed_by,
            "shipped_at": self.shipped_at,
            "delivered_at": self.delivered_at,
            "cancelled_at": self.cancelled_at,
            "claim": self.claim,
            "notes": list(self.notes),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            reference=data["reference"],
            items=[OrderItem.from_dict(i) for i in data.get("items", [])],
            subtotal=data["subtotal"],
            shipping_fee=data["shipping_fee"],
            tax=data["tax"],
            total_amount=data["total_amount"],
            status=data.get("status", OrderStatus.PENDING.value),
            user_id=data.get("user_id"),
            is_guest=data.get("is_guest", False),
            guest_email=data.get("guest_email"),
            shipping_address=data.get("shipping_address"),
            payment_reference=data.get("payment_reference"),
            paid_at=data.get("paid_at"),
            confirmed_at=data.get("confirmed_at"),
            confirmed_by=data.get("confirmed_by"),
            shipped_at=data.get("shipped_at"),
            delivered_at=data.get("delivered_at"),
            cancelled_at=data.get("cancelled_at"),
            claim=data.get("claim"),
            notes=list(data.get("notes", [])),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


# Models for carts and admins


@dataclass
class CartItem:
    product_id: str
    product_type: str
    variation_index: int
    quantity: int = 1
    size: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_type": self.product_type,
            "variation_index": self.variation_index,
            "quantity": self.quantity,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        return cls(
            product_id=data["product_id"],
            product_type=data["product_type"],
            variation_index=data["variation_index"],
            quantity=data.get("quantity", 1),
            size=data.get("size"),
        )

    def same_line(self, other: "CartItem") -> bool:
        return (
            self.product_id == other.product_id
            and self.product_type == other.product_type
            and self.variation_index == other.variation_index
            and self.size == other.size
        )


@dataclass
class Cart:
    """A registered user's cart. Keyed by user ID."""

    user_id: str
    items: list[CartItem] = field(default_factory=list)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.user_id,
            "user_id": self.user_id,
            "items": [i.to_dict() for i in self.items],
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cart":
        return cls(
            user_id=data["user_id"],
            items=[CartItem.from_dict(i) for i in data.get("items", [])],
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class Admin:
    id: str
    email: str
    name: str
    password_hash: str
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "password_hash": self.password_hash,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Admin":
        return cls(
            id=data["id"],
            email=data["email"],
            name=data.get("name", ""),
            password_hash=data["password_hash"],
            created_at=data.get("created_at", ""),
        )

    def public_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name, "created_at": self.created_at}
