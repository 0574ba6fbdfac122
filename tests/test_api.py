"""Tests for the FastAPI API."""

import pytest


@pytest.fixture
def customer_id(api_client):
    response = api_client.post("/api/customers", json={
        "name": "Alice Johnson",
        "email": "alice@example.com",
        "phone": "+1 (555) 123-4567",
        "address": "123 Main St",
    })
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def product_id(api_client):
    response = api_client.post("/api/products", json={
        "name": "Portable Bluetooth Speaker",
        "price": 50.0,
        "images": ["https://example.com/speaker.jpg"],
        "variants": [
            {"id": "red", "name": "Red", "stock": 3},
            {"id": "blue", "name": "Blue", "stock": 2},
        ],
    })
    assert response.status_code == 201
    return response.json()["id"]


class TestHealthCheck:
    def test_root(self, api_client):
        response = api_client.get("/")
        assert response.status_code == 200
        assert "message" in response.json()

    def test_database_report_without_database(self, api_client, monkeypatch):
        import database

        monkeypatch.setattr(database, "db", None)
        data = api_client.get("/test").json()
        assert data["backend"] == "✅ Running"
        assert data["connection_status"] == "Not Connected"

    def test_database_report_with_database(self, api_client, mongo_db, customer_id, monkeypatch):
        import database

        monkeypatch.setattr(database, "db", mongo_db)
        data = api_client.get("/test").json()
        assert data["connection_status"] == "Connected"
        assert "customer" in data["collections"]

    def test_unconfigured_database_returns_503(self, monkeypatch):
        import database
        from fastapi.testclient import TestClient
        from main import app

        monkeypatch.setattr(database, "db", None)
        response = TestClient(app).get("/api/products")
        assert response.status_code == 503
        assert response.json()["error_type"] == "DatabaseNotConfiguredError"


class TestCustomers:
    def test_create_and_list(self, api_client, customer_id):
        data = api_client.get("/api/customers").json()
        assert [c["id"] for c in data] == [customer_id]
        assert data[0]["created_at"]

    def test_missing_phone_is_422(self, api_client):
        response = api_client.post("/api/customers", json={"name": "Bob", "address": "x"})
        assert response.status_code == 422

    def test_get_update_delete(self, api_client, customer_id):
        assert api_client.get(f"/api/customers/{customer_id}").json()["name"] == "Alice Johnson"

        response = api_client.patch(f"/api/customers/{customer_id}", json={"address": "9 Elm St"})
        assert response.status_code == 200
        assert response.json()["address"] == "9 Elm St"

        response = api_client.delete(f"/api/customers/{customer_id}")
        assert response.json() == {"deleted": True, "orders_deleted": 0}
        assert api_client.get(f"/api/customers/{customer_id}").status_code == 404

    def test_invalid_id_is_400(self, api_client):
        response = api_client.get("/api/customers/xyz")
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidIdError"

    @pytest.mark.parametrize("field", ["name", "phone", "address"])
    def test_patch_null_required_field_is_422(self, api_client, mongo_db, customer_id, field):
        response = api_client.patch(f"/api/customers/{customer_id}", json={field: None})
        assert response.status_code == 422
        assert mongo_db["customer"].find_one()[field] is not None
        assert len(api_client.get("/api/customers", params={"refresh": True}).json()) == 1

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit_is_422(self, api_client, customer_id, limit):
        assert api_client.get("/api/customers", params={"limit": limit}).status_code == 422

    def test_limit(self, api_client, customer_id):
        api_client.post("/api/customers", json={"name": "Bob", "phone": "555", "address": "x"})
        assert [c["id"] for c in api_client.get("/api/customers", params={"limit": 1}).json()] == [customer_id]


class TestProducts:
    def test_create_derives_total_stock(self, api_client, product_id):
        data = api_client.get(f"/api/products/{product_id}").json()
        assert data["total_stock"] == 5
        assert [p["id"] for p in api_client.get("/api/products").json()] == [product_id]

    def test_mismatched_total_stock(self, api_client):
        response = api_client.post("/api/products", json={
            "name": "Cable", "price": 5, "total_stock": 10,
            "variants": [{"id": "v1", "name": "Black", "stock": 3}],
        })
        assert response.status_code == 422
        assert response.json()["error_type"] == "InvariantViolationError"

    def test_negative_price_is_422(self, api_client):
        assert api_client.post("/api/products", json={"name": "Cable", "price": -1}).status_code == 422

    def test_patch(self, api_client, product_id):
        response = api_client.patch(f"/api/products/{product_id}", json={"price": 55.0})
        assert response.json()["price"] == 55.0

    def test_patch_duplicate_variant_ids_is_422(self, api_client, mongo_db, context, product_id):
        response = api_client.patch(f"/api/products/{product_id}", json={"variants": [
            {"id": "v1", "name": "A", "stock": 1},
            {"id": "v1", "name": "B", "stock": 2},
        ]})
        assert response.status_code == 422
        assert [v["id"] for v in mongo_db["product"].find_one()["variants"]] == ["red", "blue"]
        assert len(context.refresh().products) == 1

    def test_patch_null_price_is_422(self, api_client, mongo_db, product_id):
        response = api_client.patch(f"/api/products/{product_id}", json={"price": None})
        assert response.status_code == 422
        assert mongo_db["product"].find_one()["price"] == 50.0

    def test_non_positive_limit_is_422(self, api_client):
        assert api_client.get("/api/products", params={"limit": -1}).status_code == 422
        assert api_client.get("/api/orders", params={"limit": 0}).status_code == 422


class TestOrders:
    def order_payload(self, customer_id, product_id, **extra):
        payload = {
            "customer_id": customer_id,
            "items": [{"product_id": product_id, "variant_id": "red", "quantity": 2, "price": 50.0}],
        }
        payload.update(extra)
        return payload

    def test_create_computes_total(self, api_client, customer_id, product_id):
        response = api_client.post("/api/orders", json=self.order_payload(customer_id, product_id))
        assert response.status_code == 201
        data = response.json()
        assert data["total"] == 100.0
        assert data["status"] == "processing"
        assert data["delivery_type"] == "delivery"

    def test_wrong_total_rejected(self, api_client, customer_id, product_id):
        response = api_client.post("/api/orders", json=self.order_payload(customer_id, product_id, total=1))
        assert response.status_code == 422

    def test_unknown_customer(self, api_client, product_id):
        response = api_client.post("/api/orders", json=self.order_payload("65f000000000000000000000", product_id))
        assert response.status_code == 404

    def test_empty_items_rejected(self, api_client, customer_id):
        response = api_client.post("/api/orders", json={"customer_id": customer_id, "items": []})
        assert response.status_code == 422

    def test_status_update_and_filter(self, api_client, customer_id, product_id):
        order_id = api_client.post("/api/orders", json=self.order_payload(customer_id, product_id)).json()["id"]
        api_client.post("/api/orders", json=self.order_payload(customer_id, product_id))

        response = api_client.patch(f"/api/orders/{order_id}/status", json={"status": "picked-up"})
        assert response.json()["status"] == "picked-up"

        picked_up = api_client.get("/api/orders", params={"status": "picked-up"}).json()
        assert [o["id"] for o in picked_up] == [order_id]
        assert len(api_client.get("/api/orders").json()) == 2

    def test_legacy_status_rejected(self, api_client, customer_id, product_id):
        order_id = api_client.post("/api/orders", json=self.order_payload(customer_id, product_id)).json()["id"]
        response = api_client.patch(f"/api/orders/{order_id}/status", json={"status": "shipped"})
        assert response.status_code == 422

    def test_delete_customer_cascades(self, api_client, customer_id, product_id):
        api_client.post("/api/orders", json=self.order_payload(customer_id, product_id))
        response = api_client.delete(f"/api/customers/{customer_id}")
        assert response.json()["orders_deleted"] == 1
        assert api_client.get("/api/orders").json() == []


class TestCart:
    def add(self, api_client, product_id, variant_id="red", quantity=1, session="s1"):
        return api_client.post(f"/api/cart/{session}/items", json={
            "product_id": product_id, "variant_id": variant_id, "quantity": quantity,
        })

    def test_empty_cart(self, api_client):
        assert api_client.get("/api/cart/s1").json() == {"items": [], "count": 0, "total": 0}

    def test_add_and_merge(self, api_client, product_id):
        self.add(api_client, product_id, quantity=1)
        data = self.add(api_client, product_id, quantity=2).json()
        assert data["count"] == 3
        assert data["total"] == 150.0
        assert data["items"][0]["product_name"] == "Portable Bluetooth Speaker"
        assert data["items"][0]["variant_name"] == "Red"

    def test_add_over_stock_refused(self, api_client, product_id):
        response = self.add(api_client, product_id, quantity=4)
        assert response.status_code == 400
        assert api_client.get("/api/cart/s1").json()["items"] == []

    def test_add_unknown_variant_refused(self, api_client, product_id):
        assert self.add(api_client, product_id, variant_id="green").status_code == 400

    def test_update_clamps_to_stock(self, api_client, product_id):
        self.add(api_client, product_id)
        response = api_client.patch(f"/api/cart/s1/items/{product_id}/red", json={"quantity": 10})
        assert response.json()["items"][0]["quantity"] == 3

    def test_update_to_zero_removes(self, api_client, product_id):
        self.add(api_client, product_id)
        response = api_client.patch(f"/api/cart/s1/items/{product_id}/red", json={"quantity": 0})
        assert response.json()["items"] == []

    def test_remove_and_clear(self, api_client, product_id):
        self.add(api_client, product_id, "red")
        self.add(api_client, product_id, "blue")
        data = api_client.delete(f"/api/cart/s1/items/{product_id}/red").json()
        assert [i["variant_id"] for i in data["items"]] == ["blue"]
        api_client.delete("/api/cart/s1")
        assert api_client.get("/api/cart/s1").json()["items"] == []

    def test_sessions_are_isolated(self, api_client, product_id):
        self.add(api_client, product_id, session="s1")
        assert api_client.get("/api/cart/s2").json()["items"] == []

    def test_checkout(self, api_client, customer_id, product_id):
        self.add(api_client, product_id, "red", 2)
        self.add(api_client, product_id, "blue", 1)
        response = api_client.post("/api/cart/s1/checkout", json={
            "customer_id": customer_id, "delivery_type": "pickup", "notes": "After 5pm",
        })
        assert response.status_code == 201
        order = response.json()
        assert order["total"] == 150.0
        assert order["delivery_type"] == "pickup"
        assert order["notes"] == "After 5pm"

        assert api_client.get("/api/cart/s1").json()["items"] == []
        product = api_client.get(f"/api/products/{product_id}").json()
        assert product["total_stock"] == 2
        assert [o["id"] for o in api_client.get("/api/orders").json()] == [order["id"]]

    def test_checkout_empty_cart(self, api_client, customer_id):
        response = api_client.post("/api/cart/s1/checkout", json={"customer_id": customer_id})
        assert response.status_code == 400
        assert response.json()["error_type"] == "EmptyCartError"

    def test_checkout_after_stock_sold_elsewhere(self, api_client, customer_id, product_id):
        self.add(api_client, product_id, "red", 3, session="s1")
        self.add(api_client, product_id, "red", 2, session="s2")
        assert api_client.post("/api/cart/s2/checkout", json={"customer_id": customer_id}).status_code == 201

        response = api_client.post("/api/cart/s1/checkout", json={"customer_id": customer_id})
        assert response.status_code == 409
        assert response.json()["error_type"] == "InsufficientStockError"
        assert api_client.get("/api/cart/s1").json()["count"] == 3


class TestAnalytics:
    def test_default_range(self, api_client):
        data = api_client.get("/api/analytics").json()
        assert data["range_days"] == 7
        assert len(data["trend"]) == 7
        assert data["visitors"] == 0

    def test_counts_orders_and_products(self, api_client, customer_id, product_id):
        api_client.post("/api/orders", json={
            "customer_id": customer_id,
            "items": [{"product_id": product_id, "variant_id": "red", "quantity": 1, "price": 50.0}],
        })
        data = api_client.get("/api/analytics", params={"range": "30days"}).json()
        assert data["range_days"] == 30
        assert len(data["trend"]) == 30
        assert data["visitors"] == 1
        assert data["page_views_estimate"] == 3 + 12
        assert data["new_customers"] == 1
        assert data["returning_customers"] == 0
        assert data["trend"][-1]["orders"] == 1

    def test_invalid_range(self, api_client):
        assert api_client.get("/api/analytics", params={"range": "14days"}).status_code == 422

    def test_refresh_reloads(self, api_client, context, mongo_db, customer_id):
        mongo_db["customer"].insert_one({"name": "Direct", "phone": "1", "address": "x"})
        assert api_client.get("/api/analytics").json()["new_customers"] == 1
        data = api_client.get("/api/analytics", params={"refresh": True}).json()
        assert data["new_customers"] == 1
        assert len(context.customers) == 2

    def test_sales(self, api_client, customer_id, product_id):
        api_client.post("/api/orders", json={
            "customer_id": customer_id,
            "items": [{"product_id": product_id, "variant_id": "red", "quantity": 2, "price": 50.0,
                       "product_name": "Speaker"}],
        })
        data = api_client.get("/api/analytics/sales", params={"range": "7days"}).json()
        assert data["revenue"] == 100.0
        assert data["orders"] == 1
        assert data["orders_by_status"] == {"processing": 1}
        assert data["top_products"][0]["name"] == "Speaker"
        assert len(data["timeseries"]) == 7


class TestSeed:
    def test_seed(self, api_client):
        data = api_client.post("/api/seed", params={"orders": 10}).json()
        assert data["counts"]["customers"] == 3
        assert data["counts"]["products"] == 4
        assert data["counts"]["orders"] == 10

        products = api_client.get("/api/products").json()
        assert products[0]["total_stock"] == 45

    def test_seed_twice_keeps_catalog(self, api_client):
        api_client.post("/api/seed", params={"orders": 0})
        data = api_client.post("/api/seed", params={"orders": 0}).json()
        assert data["counts"] == {"customers": 3, "products": 4, "orders": 0}
