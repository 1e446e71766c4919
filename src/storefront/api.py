"""FastAPI REST API for storefront."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from starlette.concurrency import run_in_threadpool

from .catalog import build_product_registry
from .checkout import LineRequest
from .config import configure_logging, get_settings
from .errors import (
    AuthenticationError,
    CartNotFoundError,
    InsufficientStockError,
    InvalidSchemaVersionError,
    InvalidSignatureError,
    InvalidTransitionError,
    OrderIntegrityError,
    OrderNotFoundError,
    PaymentGatewayError,
    ProductNotFoundError,
    StorageError,
    StorefrontError,
    UnknownProductKindError,
    ValidationError,
    VariationNotFoundError,
)
from .lifecycle import ConfirmOutcome
from .models import CartItem, Order, Product, Variation
from .payments import SIGNATURE_HEADER, PaymentOutcome
from .services import Services, build_services

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class SizeStockSchema(BaseModel):
    size: str
    stock: int = Field(default=0, ge=0)


class VariationSchema(BaseModel):
    variation_index: int = Field(..., ge=1)
    color: str
    front_image: Optional[str] = None
    back_image: Optional[str] = None
    sizes: Optional[list[SizeStockSchema]] = None  # size-keyed kinds
    stock: Optional[int] = Field(default=None, ge=0)  # direct-stock kind


class ProductSchema(BaseModel):
    id: str
    kind: str
    name: str
    price: float
    description: Optional[str] = None
    variations: list[VariationSchema]
    total_stock: int
    is_active: bool
    created_at: str
    updated_at: str


class ProductCreateRequest(BaseModel):
    kind: str = Field(..., description="Product type: cloth, shoe, jersey or cap")
    name: str
    price: float = Field(..., ge=0)
    description: Optional[str] = None
    variations: list[VariationSchema] = Field(..., min_length=1, max_length=4)
    is_active: bool = True


class ProductUpdateRequest(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    variations: Optional[list[VariationSchema]] = Field(default=None, min_length=1, max_length=4)


class RestockRequest(BaseModel):
    variation_index: int = Field(..., ge=1)
    stock: int = Field(..., ge=0)
    size: Optional[str] = Field(None, description="Required for size-keyed kinds")


class ActiveRequest(BaseModel):
    is_active: bool


class ProductListResponse(BaseModel):
    products: list[ProductSchema]
    count: int


class LineItemSchema(BaseModel):
    product_id: str
    product_type: str
    variation_index: int = Field(..., ge=1)
    quantity: int = Field(default=1, ge=1)
    size: Optional[str] = None


class CartSchema(BaseModel):
    user_id: str
    items: list[LineItemSchema]
    updated_at: str


class CheckoutRequest(BaseModel):
    items: list[LineItemSchema] = Field(..., min_length=1)
    user_id: Optional[str] = None
    guest_email: Optional[EmailStr] = None
    shipping_address: Optional[dict[str, Any]] = None


class OrderItemSchema(BaseModel):
    product_id: str
    product_type: str
    quantity: int
    price: float
    variation_index: int
    size: Optional[str] = None
    name: Optional[str] = None
    color: Optional[str] = None


class OrderSchema(BaseModel):
    id: str
    reference: str
    user_id: Optional[str] = None
    is_guest: bool
    guest_email: Optional[str] = None
    items: list[OrderItemSchema]
    subtotal: float
    shipping_fee: float
    tax: float
    total_amount: float
    status: str
    shipping_address: Optional[dict[str, Any]] = None
    payment_reference: Optional[str] = None
    paid_at: Optional[str] = None
    confirmed_at: Optional[str] = None
    confirmed_by: Optional[str] = None
    shipped_at: Optional[str] = None
    delivered_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    notes: list[str]
    created_at: str
    updated_at: str


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    count: int


class OrderActionResponse(BaseModel):
    status: str
    message: str
    order: OrderSchema


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., description="Target status, e.g. 'Shipped'")


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class PaymentResponse(BaseModel):
    status: str
    message: str
    order: Optional[OrderSchema] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class AdminSchema(BaseModel):
    id: str
    email: str
    name: str
    created_at: str


# --- Helper Functions ---


def get_services() -> Services:
    """Build services for the current settings around the startup registry."""
    return build_services(get_settings(), registry=app.state.registry)


def require_admin(services: Services, admin_id: str | None) -> str:
    """
    Resolve the acting admin.

    Raises:
        AuthenticationError: If the header is missing or names no admin.
    """
    if not admin_id:
        raise AuthenticationError("Admin identity required")
    return services.admins.get_admin(admin_id).id


def product_to_schema(product: Product) -> ProductSchema:
    return ProductSchema(**product.to_dict())


def order_to_schema(order: Order) -> OrderSchema:
    return OrderSchema(**order.to_dict())


def outcome_to_response(outcome: ConfirmOutcome) -> OrderActionResponse:
    return OrderActionResponse(
        status=outcome.status,
        message=outcome.message,
        order=order_to_schema(outcome.order),
    )


def payment_to_response(outcome: PaymentOutcome) -> PaymentResponse:
    return PaymentResponse(
        status=outcome.status,
        message=outcome.message,
        order=order_to_schema(outcome.order) if outcome.order else None,
    )


def _variations(items: list[VariationSchema]) -> list[Variation]:
    return [Variation.from_dict(v.model_dump()) for v in items]


# --- App ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    app.state.registry = build_product_registry()
    services = build_services(settings, registry=app.state.registry)
    try:
        services.admins.populate_initial_data(
            settings.admin_email, settings.admin_password, settings.admin_name
        )
    except StorefrontError as e:
        logger.error("Initial data population failed: %s", e)
    yield


app = FastAPI(
    title="storefront API",
    description="Catalog, checkout, payment verification and order fulfilment",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes (most specific class wins)
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    UnknownProductKindError: 400,
    AuthenticationError: 401,
    InvalidSignatureError: 401,
    ProductNotFoundError: 404,
    VariationNotFoundError: 404,
    OrderNotFoundError: 404,
    CartNotFoundError: 404,
    InsufficientStockError: 409,
    InvalidTransitionError: 409,
    PaymentGatewayError: 502,
    OrderIntegrityError: 500,
    InvalidSchemaVersionError: 500,
    StorageError: 500,
}


def status_code_for(exc: StorefrontError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to appropriate HTTP responses."""
    content: dict[str, Any] = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, InsufficientStockError):
        content["item"] = exc.item
        content["available"] = exc.available
    if isinstance(exc, InvalidTransitionError):
        content["current_status"] = exc.current
        content["requested_status"] = exc.requested
    return JSONResponse(status_code=status_code_for(exc), content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and parameters as 400."""
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Invalid request",
            "error_type": "RequestValidationError",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    services = get_services()
    try:
        orders = services.db.count("orders")
        return {"status": "ok", "order_count": orders}
    except StorefrontError as e:
        return {"status": "error", "detail": str(e)}


# --- Catalog Endpoints ---


@app.get("/api/products", response_model=ProductListResponse)
def list_products(
    kind: Optional[str] = Query(default=None),
    include_inactive: bool = Query(default=False),
):
    """List products, optionally for one kind."""
    services = get_services()
    products = services.products.list_products(kind=kind, include_inactive=include_inactive)
    return ProductListResponse(
        products=[product_to_schema(p) for p in products],
        count=len(products),
    )


@app.get("/api/products/{kind}/{product_id}", response_model=ProductSchema)
def get_product(kind: str, product_id: str):
    services = get_services()
    return product_to_schema(services.products.get_product(kind, product_id))


@app.post("/api/admin/products", response_model=ProductSchema, status_code=201)
def create_product(request: ProductCreateRequest, x_admin_id: Optional[str] = Header(default=None)):
    """Create a product. ``total_stock`` is derived from the variations."""
    services = get_services()
    require_admin(services, x_admin_id)
    product = services.products.create_product(
        kind=request.kind,
        name=request.name,
        price=request.price,
        variations=_variations(request.variations),
        description=request.description,
        is_active=request.is_active,
    )
    return product_to_schema(product)


@app.put("/api/admin/products/{kind}/{product_id}", response_model=ProductSchema)
def update_product(
    kind: str,
    product_id: str,
    request: ProductUpdateRequest,
    x_admin_id: Optional[str] = Header(default=None),
):
    """Update a product. ``variations`` replaces the full list when given."""
    services = get_services()
    require_admin(services, x_admin_id)
    product = services.products.update_product(
        kind,
        product_id,
        name=request.name,
        price=request.price,
        description=request.description,
        variations=_variations(request.variations) if request.variations is not None else None,
    )
    return product_to_schema(product)


@app.patch("/api/admin/products/{kind}/{product_id}/restock", response_model=ProductSchema)
def restock_product(
    kind: str,
    product_id: str,
    request: RestockRequest,
    x_admin_id: Optional[str] = Header(default=None),
):
    """Set one variation (or size) stock counter."""
    services = get_services()
    require_admin(services, x_admin_id)
    product = services.products.quick_restock(
        kind, product_id, request.variation_index, request.stock, size=request.size
    )
    return product_to_schema(product)


@app.patch("/api/admin/products/{kind}/{product_id}/active", response_model=ProductSchema)
def set_product_active(
    kind: str,
    product_id: str,
    request: ActiveRequest,
    x_admin_id: Optional[str] = Header(default=None),
):
    services = get_services()
    require_admin(services, x_admin_id)
    return product_to_schema(services.products.set_active(kind, product_id, request.is_active))


@app.delete("/api/admin/products/{kind}/{product_id}", response_model=ProductSchema)
def delete_product(kind: str, product_id: str, x_admin_id: Optional[str] = Header(default=None)):
    services = get_services()
    require_admin(services, x_admin_id)
    return product_to_schema(services.products.delete_product(kind, product_id))


# --- Cart Endpoints ---


@app.get("/api/cart/{user_id}", response_model=CartSchema)
def get_cart(user_id: str):
    services = get_services()
    return CartSchema(**services.carts.get_cart(user_id).to_dict())


@app.post("/api/cart/{user_id}/items", response_model=CartSchema)
def add_cart_item(user_id: str, request: LineItemSchema):
    """Add an item; identical lines are merged."""
    services = get_services()
    services.products.get_product(request.product_type, request.product_id)
    cart = services.carts.add_item(user_id, CartItem.from_dict(request.model_dump()))
    return CartSchema(**cart.to_dict())


@app.delete("/api/cart/{user_id}/items/{index}", response_model=CartSchema)
def remove_cart_item(user_id: str, index: int):
    services = get_services()
    return CartSchema(**services.carts.remove_item(user_id, index).to_dict())


@app.delete("/api/cart/{user_id}")
def clear_cart(user_id: str):
    services = get_services()
    return {"cleared": services.carts.clear_cart(user_id)}


# --- Checkout Endpoints ---


@app.post("/api/checkout", response_model=OrderSchema, status_code=201)
def checkout(request: CheckoutRequest):
    """Place a Pending order from the requested items."""
    services = get_services()
    order = services.checkout.place_order(
        [LineRequest(**item.model_dump()) for item in request.items],
        user_id=request.user_id,
        guest_email=request.guest_email,
        shipping_address=request.shipping_address,
    )
    return order_to_schema(order)


@app.get("/api/orders/{reference}", response_model=OrderSchema)
def get_order_by_reference(reference: str):
    services = get_services()
    return order_to_schema(services.orders.get_by_reference(reference))


# --- Payment Endpoints ---


@app.post("/api/payments/paystack/webhook", response_model=PaymentResponse)
async def paystack_webhook(request: Request):
    """
    Receive a Paystack event.

    The raw body is needed to check the HMAC signature.
    """
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    services = get_services()
    outcome = await run_in_threadpool(services.payments.handle_webhook, body, signature)
    return payment_to_response(outcome)


@app.post("/api/payments/paystack/verify/{reference}", response_model=PaymentResponse)
def verify_payment(reference: str):
    """Ask Paystack for the transaction and apply the result."""
    services = get_services()
    return payment_to_response(services.payments.verify_payment(reference))


# --- Admin Endpoints ---


@app.post("/api/admin/login", response_model=AdminSchema)
def admin_login(request: LoginRequest):
    services = get_services()
    admin = services.admins.authenticate(request.email, request.password)
    return AdminSchema(**admin.public_dict())


@app.get("/api/admin/orders", response_model=OrderListResponse)
def list_orders(
    status: Optional[str] = Query(default=None),
    x_admin_id: Optional[str] = Header(default=None),
):
    services = get_services()
    require_admin(services, x_admin_id)
    orders = services.orders.list_orders(status=status)
    return OrderListResponse(orders=[order_to_schema(o) for o in orders], count=len(orders))


@app.get("/api/admin/orders/{order_id}", response_model=OrderSchema)
def get_order(order_id: str, x_admin_id: Optional[str] = Header(default=None)):
    services = get_services()
    require_admin(services, x_admin_id)
    return order_to_schema(services.orders.get_order(order_id))


def _run_deduction(action, order_id: str, actor: str) -> OrderActionResponse:
    """Run a deducting action; an unknown product type is a data error (500)."""
    try:
        return outcome_to_response(action(order_id, actor))
    except UnknownProductKindError as e:
        raise OrderIntegrityError(order_id, str(e)) from e


@app.post("/api/admin/orders/{order_id}/confirm", response_model=OrderActionResponse)
def confirm_order(order_id: str, x_admin_id: Optional[str] = Header(default=None)):
    """
    Confirm an order and deduct its stock.

    A request that loses the race to a concurrent confirm gets 200 with
    status ``already_handled``; an order that can no longer be confirmed
    gets 409.
    """
    services = get_services()
    admin_id = require_admin(services, x_admin_id)
    return _run_deduction(services.lifecycle.confirm_order, order_id, admin_id)


@app.post("/api/admin/orders/{order_id}/complete", response_model=OrderActionResponse)
def complete_order(order_id: str, x_admin_id: Optional[str] = Header(default=None)):
    """Deduct stock and mark the order Completed."""
    services = get_services()
    admin_id = require_admin(services, x_admin_id)
    return _run_deduction(services.lifecycle.complete_order, order_id, admin_id)


@app.post("/api/admin/orders/{order_id}/cancel", response_model=OrderActionResponse)
def cancel_order(
    order_id: str,
    request: Optional[CancelRequest] = None,
    x_admin_id: Optional[str] = Header(default=None),
):
    services = get_services()
    admin_id = require_admin(services, x_admin_id)
    order = services.lifecycle.cancel_order(order_id, admin_id, request.reason if request else None)
    return OrderActionResponse(status="cancelled", message="Order cancelled", order=order_to_schema(order))


@app.patch("/api/admin/orders/{order_id}/status", response_model=OrderActionResponse)
def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    x_admin_id: Optional[str] = Header(default=None),
):
    """Change an order's status through the transition guard."""
    services = get_services()
    admin_id = require_admin(services, x_admin_id)
    return _run_deduction(
        lambda oid, actor: services.lifecycle.update_status(oid, request.status, actor),
        order_id,
        admin_id,
    )
