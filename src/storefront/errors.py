"""Custom exceptions for storefront."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class InvalidSchemaVersionError(StorefrontError):
    """Raised when the database file has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )


class StorageError(StorefrontError):
    """Raised when the database file cannot be read or written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Storage failure at {path}: {reason}")


class ValidationError(StorefrontError):
    """Raised when request input is malformed."""

    def __init__(self, message: str):
        super().__init__(message)


class InvalidProductError(ValidationError):
    """Raised when a product payload breaks the catalog rules."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid product: {reason}")


class InvalidOrderError(ValidationError):
    """Raised when a checkout payload is unusable."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid order: {reason}")


class UnknownProductKindError(StorefrontError):
    """Raised when a product type tag has no registered collection."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown product type: {kind}")


class OrderIntegrityError(StorefrontError):
    """Raised when a stored order references data the catalog cannot resolve."""

    def __init__(self, order_id: str, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Order {order_id} is inconsistent: {reason}")


class ProductNotFoundError(StorefrontError):
    """Raised when a product ID doesn't exist."""

    def __init__(self, product_id: str, kind: str | None = None):
        self.product_id = product_id
        self.kind = kind
        msg = f"Product not found: {product_id}"
        if kind:
            msg = f"{msg} ({kind})"
        super().__init__(msg)


class VariationNotFoundError(StorefrontError):
    """Raised when a variation index or size doesn't exist on a product."""

    def __init__(self, product_id: str, variation_index: int, size: str | None = None):
        self.product_id = product_id
        self.variation_index = variation_index
        self.size = size
        msg = f"Variation {variation_index} not found on product {product_id}"
        if size is not None:
            msg = f"Size '{size}' of variation {variation_index} not found on product {product_id}"
        super().__init__(msg)


class OrderNotFoundError(StorefrontError):
    """Raised when an order ID or reference doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InsufficientStockError(StorefrontError):
    """Raised when a line item cannot be covered by current stock."""

    def __init__(self, item: dict, available: int | None = None):
        self.item = item
        self.available = available
        label = f"{item.get('product_type')} {item.get('product_id')} variation {item.get('variation_index')}"
        if item.get("size"):
            label = f"{label} size {item['size']}"
        msg = f"Insufficient stock for {label} (requested {item.get('quantity')})"
        if available is not None:
            msg = f"{msg}, {available} available"
        super().__init__(msg)


class InvalidTransitionError(StorefrontError):
    """Raised when an order status change is not allowed from the current status."""

    def __init__(self, current: str, requested: str, reason: str | None = None):
        self.current = current
        self.requested = requested
        msg = f"Cannot move order from '{current}' to '{requested}'"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class CartNotFoundError(StorefrontError):
    """Raised when a user has no cart."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Cart not found for user: {user_id}")


class InvalidSignatureError(StorefrontError):
    """Raised when a payment webhook signature doesn't match the body."""

    def __init__(self):
        super().__init__("Invalid webhook signature")


class PaymentGatewayError(StorefrontError):
    """Raised when the payment provider cannot be reached or answers badly."""

    def __init__(self, reference: str, reason: str):
        self.reference = reference
        self.reason = reason
        super().__init__(f"Payment verification for {reference} failed: {reason}")


class AuthenticationError(StorefrontError):
    """Raised when admin credentials or identity are rejected."""

    def __init__(self, reason: str = "Invalid credentials"):
        super().__init__(reason)
