"""Command-line interface for storefront."""

import argparse
import json
import sys

from . import __version__
from .config import configure_logging, get_settings
from .errors import StorefrontError
from .models import Order, Product
from .services import Services, build_services


def get_services() -> Services:
    """Build services for the configured data directory."""
    settings = get_settings()
    configure_logging(settings.log_level)
    return build_services(settings)


def format_product(product: Product) -> str:
    status = "" if product.is_active else "  [inactive]"
    lines = [f"  {product.id[:8]}  {product.kind:<6} {product.name}  stock={product.total_stock}{status}"]
    for v in product.variations:
        if v.sizes is not None:
            sizes = ", ".join(f"{s.size}={s.stock}" for s in v.sizes)
            lines.append(f"           #{v.variation_index} {v.color}: {sizes}")
        else:
            lines.append(f"           #{v.variation_index} {v.color}: {v.stock or 0}")
    return "\n".join(lines)


def format_order(order: Order) -> str:
    return (
        f"  {order.id[:8]}  {order.reference}  {order.status:<34} "
        f"{order.total_amount:>10.2f}  items={len(order.items)}"
    )


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = get_settings()
        print("Starting storefront API server...")
        print(f"Data directory: {settings.data_dir}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "storefront.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level=settings.log_level.lower(),
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_seed_admin(args: argparse.Namespace) -> int:
    """Create the default admin account."""
    try:
        settings = get_settings()
        services = get_services()
        email = args.email or settings.admin_email
        password = args.password or settings.admin_password
        if not password:
            print("Error: no admin password (set ADMIN_PASSWORD or pass --password)", file=sys.stderr)
            return 1

        admin = services.admins.populate_initial_data(email, password, args.name or settings.admin_name)
        if admin is None:
            print(f"Admin {email} already exists.")
        else:
            print(f"Created admin: {admin.id}")
            print(f"  Email: {admin.email}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_list(args: argparse.Namespace) -> int:
    """List products."""
    try:
        services = get_services()
        products = services.products.list_products(kind=args.kind, include_inactive=args.all)

        if not products:
            print("No products found.")
            return 0

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2))
        else:
            print(f"Products ({len(products)}):")
            print()
            for p in products:
                print(format_product(p))

        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_restock(args: argparse.Namespace) -> int:
    """Set the stock of one variation or size."""
    try:
        services = get_services()
        product = services.products.quick_restock(
            args.kind, args.product_id, args.variation, args.stock, size=args.size
        )

        target = f"variation {args.variation}"
        if args.size:
            target += f" size {args.size}"
        print(f"Restocked {product.name} {target} to {args.stock}")
        print(f"  Total stock: {product.total_stock}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders."""
    try:
        services = get_services()
        orders = services.orders.list_orders(status=args.status)

        if not orders:
            print("No orders found.")
            return 0

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2))
        else:
            print(f"Orders ({len(orders)}):")
            print()
            for o in orders:
                print(format_order(o))

        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_confirm(args: argparse.Namespace) -> int:
    """Confirm an order and deduct its stock."""
    try:
        services = get_services()
        admin_id = services.admins.get_admin(args.admin).id
        outcome = services.lifecycle.confirm_order(args.order_id, admin_id)

        print(outcome.message)
        print(f"  Order: {outcome.order.reference}")
        print(f"  Status: {outcome.order.status}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Storefront catalog, checkout and order fulfilment service.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # seed-admin
    seed_parser = subparsers.add_parser("seed-admin", help="Create the default admin account")
    seed_parser.add_argument("--email", help="Admin email (default: ADMIN_EMAIL)")
    seed_parser.add_argument("--password", help="Admin password (default: ADMIN_PASSWORD)")
    seed_parser.add_argument("--name", help="Display name (default: ADMIN_NAME)")

    # products
    products_parser = subparsers.add_parser("products", help="Manage the catalog")
    products_subparsers = products_parser.add_subparsers(dest="products_command")

    products_list_parser = products_subparsers.add_parser("list", help="List products")
    products_list_parser.add_argument("--kind", "-k", help="Only this product type")
    products_list_parser.add_argument(
        "--all", "-a", action="store_true", help="Include inactive products"
    )
    products_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    products_restock_parser = products_subparsers.add_parser(
        "restock", help="Set stock for a variation"
    )
    products_restock_parser.add_argument("kind", help="Product type (cloth, shoe, jersey, cap)")
    products_restock_parser.add_argument("product_id", help="Product ID")
    products_restock_parser.add_argument("variation", type=int, help="Variation index (1-based)")
    products_restock_parser.add_argument("stock", type=int, help="New stock count")
    products_restock_parser.add_argument("--size", "-s", help="Size label (size-keyed kinds)")

    # orders
    orders_parser = subparsers.add_parser("orders", help="Manage orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument("--status", help="Only orders with this status")
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_confirm_parser = orders_subparsers.add_parser(
        "confirm", help="Confirm an order and deduct stock"
    )
    orders_confirm_parser.add_argument("order_id", help="Order ID")
    orders_confirm_parser.add_argument("--admin", required=True, help="Acting admin ID")

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    # Handle products subcommands
    if args.command == "products":
        if not getattr(args, "products_command", None):
            parser.parse_args(["products", "--help"])
            return 0
        if args.products_command == "list":
            return cmd_products_list(args)
        elif args.products_command == "restock":
            return cmd_products_restock(args)

    # Handle orders subcommands
    if args.command == "orders":
        if not getattr(args, "orders_command", None):
            parser.parse_args(["orders", "--help"])
            return 0
        if args.orders_command == "list":
            return cmd_orders_list(args)
        elif args.orders_command == "confirm":
            return cmd_orders_confirm(args)

    commands = {
        "serve": cmd_serve,
        "seed-admin": cmd_seed_admin,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
