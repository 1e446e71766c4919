"""Integration tests for CLI."""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from storefront.checkout import LineRequest
from storefront.config import Settings
from storefront.models import SizeStock, Variation
from storefront.services import build_services


def run_storefront(args: list[str], data_dir: Path) -> subprocess.CompletedProcess:
    """Run storefront CLI command against a data directory."""
    env = {**os.environ, "STOREFRONT_DATA_DIR": str(data_dir), "LOG_LEVEL": "WARNING"}
    return subprocess.run(
        [sys.executable, "-m", "storefront.cli"] + args,
        cwd=data_dir,
        env=env,
        capture_output=True,
        text=True,
    )


@pytest.fixture
def cli_services(temp_dir):
    return build_services(Settings(data_dir=temp_dir))


@pytest.fixture
def jersey(cli_services):
    return cli_services.products.create_product(
        "jersey",
        "Home Kit",
        20000.0,
        [Variation(1, "Blue", sizes=[SizeStock("M", 2), SizeStock("L", 1)])],
    )


class TestCLIIntegration:
    def test_no_command_prints_help(self, temp_dir):
        result = run_storefront([], temp_dir)

        assert result.returncode == 0
        assert "usage" in result.stdout.lower()

    def test_seed_admin_is_idempotent(self, temp_dir):
        first = run_storefront(["seed-admin", "--email", "ops@shop.test", "--password", "pw"], temp_dir)
        second = run_storefront(["seed-admin", "--email", "ops@shop.test", "--password", "pw"], temp_dir)

        assert first.returncode == 0
        assert "Created admin" in first.stdout
        assert second.returncode == 0
        assert "already exists" in second.stdout

    def test_products_list_empty(self, temp_dir):
        result = run_storefront(["products", "list"], temp_dir)

        assert result.returncode == 0
        assert "No products found" in result.stdout

    def test_products_list_json(self, temp_dir, jersey):
        result = run_storefront(["products", "list", "--kind", "jersey", "--json"], temp_dir)

        assert result.returncode == 0
        data = json.loads(result.stdout)
        assert data[0]["id"] == jersey.id
        assert data[0]["total_stock"] == 3

    def test_restock(self, temp_dir, jersey, cli_services):
        result = run_storefront(
            ["products", "restock", "jersey", jersey.id, "1", "7", "--size", "L"], temp_dir
        )

        assert result.returncode == 0
        assert "Total stock: 9" in result.stdout
        assert cli_services.products.get_product("jersey", jersey.id).total_stock == 9

    def test_restock_unknown_product_fails(self, temp_dir):
        result = run_storefront(["products", "restock", "cap", "nope", "1", "3"], temp_dir)

        assert result.returncode == 1
        assert "Product not found" in result.stderr

    def test_restock_unknown_kind_fails(self, temp_dir):
        result = run_storefront(["products", "restock", "hat", "nope", "1", "3"], temp_dir)

        assert result.returncode == 1
        assert "Unknown product type" in result.stderr

    def test_orders_confirm(self, temp_dir, jersey, cli_services):
        admin = cli_services.admins.create_admin("ops@shop.test", "pw")
        order = cli_services.checkout.place_order(
            [_line(jersey, 2, "M")], user_id="u1"
        )

        result = run_storefront(["orders", "confirm", order.id, "--admin", admin.id], temp_dir)

        assert result.returncode == 0
        assert "Status: Confirmed" in result.stdout
        assert cli_services.products.get_product("jersey", jersey.id).total_stock == 1

        listing = run_storefront(["orders", "list", "--status", "Confirmed", "--json"], temp_dir)
        assert json.loads(listing.stdout)[0]["id"] == order.id

    def test_orders_confirm_short_stock_fails(self, temp_dir, jersey, cli_services):
        admin = cli_services.admins.create_admin("ops@shop.test", "pw")
        order = cli_services.checkout.place_order([_line(jersey, 1, "L")], user_id="u1")
        cli_services.products.quick_restock("jersey", jersey.id, 1, 0, size="L")

        result = run_storefront(["orders", "confirm", order.id, "--admin", admin.id], temp_dir)

        assert result.returncode == 1
        assert "Insufficient stock" in result.stderr
        assert cli_services.orders.get_order(order.id).status == "Inventory Failure (Manual Review)"

    def test_orders_confirm_unknown_admin(self, temp_dir):
        result = run_storefront(["orders", "confirm", "some-order", "--admin", "ghost"], temp_dir)

        assert result.returncode == 1
        assert "Unknown admin" in result.stderr


def _line(product, quantity, size):
    return LineRequest(product.id, product.kind, 1, quantity, size)
