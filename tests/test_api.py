"""Tests for the FastAPI API."""

import json

import pytest

from storefront.models import CartItem, SizeStock, Variation
from storefront.payments import SIGNATURE_HEADER, compute_signature

from conftest import WEBHOOK_SECRET


@pytest.fixture
def tee(services):
    """Cloth product: Black size M has 5, size L has 1."""
    return services.products.create_product(
        "cloth",
        "Logo Tee",
        8000.0,
        [Variation(1, "Black", sizes=[SizeStock("M", 5), SizeStock("L", 1)])],
    )


@pytest.fixture
def place(api_client):
    def _place(product, quantity, size=None, user_id="u1"):
        response = api_client.post(
            "/api/checkout",
            json={
                "items": [
                    {
                        "product_id": product.id,
                        "product_type": product.kind,
                        "variation_index": 1,
                        "quantity": quantity,
                        "size": size,
                    }
                ],
                "user_id": user_id,
            },
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _place


def leaf(services, product, size):
    fresh = services.products.get_product(product.kind, product.id)
    return next(s.stock for s in fresh.variations[0].sizes if s.size == size)


class TestHealthCheck:
    def test_health(self, api_client):
        response = api_client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestCatalog:
    def test_create_and_list(self, api_client, admin_headers):
        response = api_client.post(
            "/api/admin/products",
            headers=admin_headers,
            json={
                "kind": "cap",
                "name": "Snapback",
                "price": 5000,
                "variations": [
                    {"variation_index": 1, "color": "Navy", "stock": 3},
                    {"variation_index": 2, "color": "Olive", "stock": 2},
                ],
            },
        )
        assert response.status_code == 201
        created = response.json()
        assert created["total_stock"] == 5

        listing = api_client.get("/api/products?kind=cap").json()
        assert listing["count"] == 1
        assert listing["products"][0]["id"] == created["id"]

    def test_create_requires_admin(self, api_client):
        response = api_client.post(
            "/api/admin/products",
            json={"kind": "cap", "name": "x", "price": 1, "variations": [{"variation_index": 1, "color": "a", "stock": 1}]},
        )
        assert response.status_code == 401

    def test_unknown_admin(self, api_client):
        response = api_client.get("/api/admin/orders", headers={"X-Admin-Id": "nobody"})
        assert response.status_code == 401

    def test_invalid_product(self, api_client, admin_headers):
        response = api_client.post(
            "/api/admin/products",
            headers=admin_headers,
            json={"kind": "shoe", "name": "Runner", "price": 1, "variations": [{"variation_index": 1, "color": "a", "stock": 1}]},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidProductError"

    def test_malformed_body(self, api_client, admin_headers):
        response = api_client.post("/api/admin/products", headers=admin_headers, json={"kind": "cap"})
        assert response.status_code == 400

    def test_unknown_kind(self, api_client):
        response = api_client.get("/api/products/hat/abc")
        assert response.status_code == 400
        assert response.json()["error_type"] == "UnknownProductKindError"

    def test_product_not_found(self, api_client):
        assert api_client.get("/api/products/cap/missing").status_code == 404

    def test_restock(self, api_client, admin_headers, tee):
        response = api_client.patch(
            f"/api/admin/products/cloth/{tee.id}/restock",
            headers=admin_headers,
            json={"variation_index": 1, "size": "L", "stock": 4},
        )
        assert response.status_code == 200
        assert response.json()["total_stock"] == 9

    def test_restock_unknown_size(self, api_client, admin_headers, tee):
        response = api_client.patch(
            f"/api/admin/products/cloth/{tee.id}/restock",
            headers=admin_headers,
            json={"variation_index": 1, "size": "XXL", "stock": 4},
        )
        assert response.status_code == 404

    def test_deactivate_and_delete(self, api_client, admin_headers, tee):
        response = api_client.patch(
            f"/api/admin/products/cloth/{tee.id}/active",
            headers=admin_headers,
            json={"is_active": False},
        )
        assert response.json()["total_stock"] == 0
        assert api_client.get("/api/products").json()["count"] == 0

        assert api_client.delete(f"/api/admin/products/cloth/{tee.id}", headers=admin_headers).status_code == 200
        assert api_client.get(f"/api/products/cloth/{tee.id}").status_code == 404

    def test_update_product(self, api_client, admin_headers, tee):
        response = api_client.put(
            f"/api/admin/products/cloth/{tee.id}",
            headers=admin_headers,
            json={"name": "Renamed Tee"},
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed Tee"


class TestCart:
    def test_add_and_clear(self, api_client, tee):
        response = api_client.post(
            "/api/cart/u1/items",
            json={"product_id": tee.id, "product_type": "cloth", "variation_index": 1, "quantity": 2, "size": "M"},
        )
        assert response.status_code == 200
        assert response.json()["items"][0]["quantity"] == 2

        assert api_client.delete("/api/cart/u1").json() == {"cleared": True}
        assert api_client.get("/api/cart/u1").json()["items"] == []

    def test_missing_cart(self, api_client):
        assert api_client.get("/api/cart/ghost").status_code == 404

    def test_add_unknown_product(self, api_client):
        response = api_client.post(
            "/api/cart/u1/items",
            json={"product_id": "nope", "product_type": "cap", "variation_index": 1, "quantity": 1},
        )
        assert response.status_code == 404


class TestCheckout:
    def test_place_order(self, api_client, tee, place):
        order = place(tee, 2, "M")

        assert order["status"] == "Pending"
        assert order["reference"].startswith("ORD-")
        assert order["total_amount"] == 16000.0

        tracked = api_client.get(f"/api/orders/{order['reference']}")
        assert tracked.json()["id"] == order["id"]

    def test_over_stock_is_conflict(self, api_client, tee):
        response = api_client.post(
            "/api/checkout",
            json={
                "items": [{"product_id": tee.id, "product_type": "cloth", "variation_index": 1, "quantity": 9, "size": "M"}],
                "user_id": "u1",
            },
        )
        assert response.status_code == 409
        assert response.json()["item"]["size"] == "M"

    def test_guest_email_validated(self, api_client, tee):
        response = api_client.post(
            "/api/checkout",
            json={
                "items": [{"product_id": tee.id, "product_type": "cloth", "variation_index": 1, "quantity": 1, "size": "M"}],
                "guest_email": "not-an-email",
            },
        )
        assert response.status_code == 400


class TestConfirmOrder:
    def test_confirm_deducts_stock(self, api_client, admin_headers, services, tee, place):
        order = place(tee, 2, "M")

        response = api_client.post(f"/api/admin/orders/{order['id']}/confirm", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "confirmed"
        assert body["order"]["status"] == "Confirmed"
        assert leaf(services, tee, "M") == 3

    def test_second_confirm_is_already_handled(self, api_client, admin_headers, services, tee, place):
        order = place(tee, 2, "M")
        api_client.post(f"/api/admin/orders/{order['id']}/confirm", headers=admin_headers)

        response = api_client.post(f"/api/admin/orders/{order['id']}/confirm", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "already_handled"
        assert leaf(services, tee, "M") == 3

    def test_confirm_cancelled_order_is_conflict(self, api_client, admin_headers, services, tee, place):
        order = place(tee, 2, "M")
        api_client.post(f"/api/admin/orders/{order['id']}/cancel", headers=admin_headers)

        response = api_client.post(f"/api/admin/orders/{order['id']}/confirm", headers=admin_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["current_status"] == "Cancelled"
        assert body["requested_status"] == "Confirmed"
        assert leaf(services, tee, "M") == 5

    def test_insufficient_stock(self, api_client, admin_headers, services, tee):
        # Checkout's advisory check passes; stock drops before confirmation.
        order = api_client.post(
            "/api/checkout",
            json={
                "items": [{"product_id": tee.id, "product_type": "cloth", "variation_index": 1, "quantity": 1, "size": "L"}],
                "user_id": "u1",
            },
        ).json()
        services.products.quick_restock("cloth", tee.id, 1, 0, size="L")

        response = api_client.post(f"/api/admin/orders/{order['id']}/confirm", headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["item"]["product_id"] == tee.id
        assert leaf(services, tee, "L") == 0
        stored = services.orders.get_order(order["id"])
        assert stored.status == "Inventory Failure (Manual Review)"
        assert any("Inventory deduction failed" in n for n in stored.notes)

    def test_quantity_two_with_one_in_stock(self, api_client, admin_headers, services, tee):
        services.products.quick_restock("cloth", tee.id, 1, 2, size="L")
        order = api_client.post(
            "/api/checkout",
            json={
                "items": [{"product_id": tee.id, "product_type": "cloth", "variation_index": 1, "quantity": 2, "size": "L"}],
                "user_id": "u1",
            },
        ).json()
        services.products.quick_restock("cloth", tee.id, 1, 1, size="L")

        response = api_client.post(f"/api/admin/orders/{order['id']}/confirm", headers=admin_headers)

        assert response.status_code == 409
        assert leaf(services, tee, "L") == 1

    def test_confirm_unknown_order(self, api_client, admin_headers):
        response = api_client.post("/api/admin/orders/nope/confirm", headers=admin_headers)
        assert response.status_code == 404

    def test_confirm_clears_cart(self, api_client, admin_headers, services, tee, place):
        services.carts.add_item("u1", CartItem(tee.id, "cloth", 1, 2, "M"))
        order = place(tee, 2, "M")

        api_client.post(f"/api/admin/orders/{order['id']}/confirm", headers=admin_headers)

        assert services.carts.get_cart("u1").items == []

    def test_unknown_kind_in_stored_order_is_server_error(self, api_client, admin_headers, services, tee, place):
        order = place(tee, 1, "M")

        def corrupt(doc):
            doc["items"][0]["product_type"] = "hat"
            return True

        services.db.update_one("orders", order["id"], corrupt)

        response = api_client.post(f"/api/admin/orders/{order['id']}/confirm", headers=admin_headers)

        assert response.status_code == 500
        body = response.json()
        assert body["error_type"] == "OrderIntegrityError"
        assert "Unknown product type: hat" in body["detail"]
        assert services.orders.get_order(order["id"]).status == "Inventory Failure (Manual Review)"


class TestOrderStatus:
    def test_pending_to_shipped_is_conflict(self, api_client, admin_headers, tee, place):
        order = place(tee, 1, "M")

        response = api_client.patch(
            f"/api/admin/orders/{order['id']}/status",
            headers=admin_headers,
            json={"status": "Shipped"},
        )

        assert response.status_code == 409
        assert response.json()["current_status"] == "Pending"

    def test_full_lifecycle(self, api_client, admin_headers, tee, place):
        order = place(tee, 1, "M")
        api_client.post(f"/api/admin/orders/{order['id']}/confirm", headers=admin_headers)

        for status in ("Shipped", "Delivered"):
            response = api_client.patch(
                f"/api/admin/orders/{order['id']}/status",
                headers=admin_headers,
                json={"status": status},
            )
            assert response.status_code == 200
            assert response.json()["order"]["status"] == status

        again = api_client.patch(
            f"/api/admin/orders/{order['id']}/status",
            headers=admin_headers,
            json={"status": "Shipped"},
        )
        assert again.status_code == 409

    def test_cancel(self, api_client, admin_headers, tee, place):
        order = place(tee, 1, "M")

        response = api_client.post(
            f"/api/admin/orders/{order['id']}/cancel",
            headers=admin_headers,
            json={"reason": "customer request"},
        )

        assert response.status_code == 200
        assert response.json()["order"]["status"] == "Cancelled"

    def test_complete(self, api_client, admin_headers, services, tee, place):
        order = place(tee, 2, "M")

        response = api_client.post(f"/api/admin/orders/{order['id']}/complete", headers=admin_headers)

        assert response.json()["status"] == "completed"
        assert leaf(services, tee, "M") == 3

    def test_list_orders(self, api_client, admin_headers, tee, place):
        place(tee, 1, "M")
        place(tee, 1, "M", user_id="u2")

        listing = api_client.get("/api/admin/orders?status=Pending", headers=admin_headers).json()
        assert listing["count"] == 2


class TestPayments:
    def _post(self, api_client, body, signature=None):
        return api_client.post(
            "/api/payments/paystack/webhook",
            content=body,
            headers={SIGNATURE_HEADER: signature or compute_signature(body, WEBHOOK_SECRET)},
        )

    def test_webhook_marks_processing(self, api_client, services, tee, place):
        order = place(tee, 1, "M")
        body = json.dumps(
            {"event": "charge.success", "data": {"id": 1, "reference": order["reference"], "status": "success", "amount": 800000}}
        ).encode()

        response = self._post(api_client, body)

        assert response.status_code == 200
        assert response.json()["status"] == "processing"
        assert response.json()["order"]["status"] == "Processing"
        assert leaf(services, tee, "M") == 5

    def test_webhook_bad_signature(self, api_client, tee, place):
        order = place(tee, 1, "M")
        body = json.dumps({"event": "charge.success", "data": {"reference": order["reference"]}}).encode()

        response = self._post(api_client, body, signature="deadbeef")

        assert response.status_code == 401

    def test_verify_gateway_down(self, api_client, monkeypatch, tee, place):
        import requests

        def boom(*args, **kwargs):
            raise requests.ConnectionError("down")

        monkeypatch.setattr(requests, "get", boom)
        order = place(tee, 1, "M")

        response = api_client.post(f"/api/payments/paystack/verify/{order['reference']}")

        assert response.status_code == 502
