"""Wiring of stores and services for one data directory."""

from dataclasses import dataclass

from .auth import AdminStore
from .cart_store import CartStore
from .catalog import ProductRegistry, build_product_registry
from .checkout import CheckoutService, Pricing
from .config import Settings, get_settings
from .database import Database
from .inventory import InventoryEngine, InventoryRollback
from .lifecycle import OrderLifecycle
from .notifications import Notifier
from .order_store import OrderStore
from .payments import PaymentService, PaystackClient
from .product_store import ProductStore


@dataclass
class Services:
    settings: Settings
    db: Database
    registry: ProductRegistry
    products: ProductStore
    orders: OrderStore
    carts: CartStore
    admins: AdminStore
    checkout: CheckoutService
    lifecycle: OrderLifecycle
    payments: PaymentService


def build_services(
    settings: Settings | None = None,
    notifier: Notifier | None = None,
    registry: ProductRegistry | None = None,
) -> Services:
    """
    Build the stores and services for the configured data directory.

    The product registry is built here once and handed by reference to
    every store and to the inventory engine.
    """
    settings = settings or get_settings()
    if registry is None:
        registry = build_product_registry()
    db = Database(settings.database_path)
    products = ProductStore(db, registry)
    orders = OrderStore(db)
    carts = CartStore(db)
    pricing = Pricing(
        shipping_fee=settings.shipping_fee,
        free_shipping_threshold=settings.free_shipping_threshold,
        tax_rate=settings.tax_rate,
    )
    client = PaystackClient(settings.paystack_secret_key, settings.paystack_base_url)
    lifecycle = OrderLifecycle(
        orders,
        InventoryEngine(db, registry, carts),
        InventoryRollback(db),
        notifier=notifier,
        claim_ttl_seconds=settings.claim_ttl_seconds,
    )
    return Services(
        settings=settings,
        db=db,
        registry=registry,
        products=products,
        orders=orders,
        carts=carts,
        admins=AdminStore(db),
        checkout=CheckoutService(products, orders, registry, pricing),
        lifecycle=lifecycle,
        payments=PaymentService(orders, client, settings.paystack_secret_key),
    )
