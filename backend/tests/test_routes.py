"""
HTTP-level tests: request parsing, status codes and the error-to-status mapping.
"""


def _order_payload(customer, shop, **overrides):
    payload = {
        "customer_id": customer.id,
        "store_id": shop.id,
        "items": [{"product_id": 1, "quantity": 2, "price_cents": 500}],
        "subtotal_cents": 1000,
        "delivery_fee_cents": 200,
        "total_cents": 1200,
    }
    payload.update(overrides)
    return payload


class TestHealth:
    def test_health_reports_counts(self, client, customer):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["users"] == 1
        assert body["strict_transitions"] is True


class TestOrderRoutes:
    def test_create_and_fetch(self, client, customer, shop):
        response = client.post("/api/orders/", json=_order_payload(customer, shop))
        assert response.status_code == 201
        order = response.get_json()["order"]
        assert order["status"] == "pending"
        assert order["total_cents"] == 1200

        fetched = client.get(f"/api/orders/{order['id']}")
        assert fetched.status_code == 200
        assert fetched.get_json()["order"]["items"][0]["quantity"] == 2

    def test_bad_total_is_400(self, client, customer, shop):
        response = client.post("/api/orders/", json=_order_payload(customer, shop, total_cents=999))
        assert response.status_code == 400

    def test_missing_fields_is_400(self, client):
        response = client.post("/api/orders/", json={"customer_id": 1})
        assert response.status_code == 400
        assert "Missing required fields" in response.get_json()["error"]

    def test_unknown_order_is_404(self, client):
        assert client.get("/api/orders/999").status_code == 404
        assert client.post("/api/orders/999/status", json={"status": "accepted"}).status_code == 404

    def test_illegal_transition_is_409(self, client, make_order):
        order = make_order()
        assert client.post(f"/api/orders/{order.id}/cancel").status_code == 200
        response = client.post(f"/api/orders/{order.id}/status", json={"status": "accepted"})
        assert response.status_code == 409
        assert response.get_json()["details"] == {"from": "cancelled", "to": "accepted"}

    def test_assign_requires_driver_id(self, client, make_order, driver):
        order = make_order()
        assert client.post(f"/api/orders/{order.id}/assign", json={}).status_code == 400
        response = client.post(f"/api/orders/{order.id}/assign", json={"driver_id": driver.id})
        assert response.status_code == 200
        assert response.get_json()["order"]["assigned_at"].endswith("Z")

    def test_list_needs_a_filter(self, client, make_order, customer):
        make_order()
        assert client.get("/api/orders/").status_code == 400
        response = client.get(f"/api/orders/?customer_id={customer.id}")
        assert response.get_json()["count"] == 1


class TestInventoryRoutes:
    def test_create_rejects_unknown_fields(self, client):
        response = client.post("/api/inventory/products", json={"sku": "A", "name": "Oil", "colour": "gold"})
        assert response.status_code == 400

    def test_money_fields_are_integer_cents(self, client):
        for price in (-5, 2.5, "12.00"):
            response = client.post(
                "/api/inventory/products", json={"sku": "A", "name": "Oil", "selling_price_cents": price},
            )
            assert response.status_code == 400

    def test_supplier_products_must_be_a_list(self, client):
        payload = {"name": "Moulin", "contact_person": "Said", "phone": "021000000", "products_supplied": "flour"}
        assert client.post("/api/inventory/suppliers", json=payload).status_code == 400
        payload["products_supplied"] = ["flour", "semolina"]
        assert client.post("/api/inventory/suppliers", json=payload).status_code == 201

    def test_adjust_stock(self, client, make_inventory_product):
        product = make_inventory_product(stock=4)
        response = client.post(f"/api/inventory/products/{product.id}/adjust", json={"delta": -6})
        assert response.status_code == 200
        assert response.get_json()["product"]["stock"] == -2

    def test_adjust_unknown_product_is_404(self, client):
        response = client.post("/api/inventory/products/42/adjust", json={"delta": 1})
        assert response.status_code == 404

    def test_adjust_needs_integer_delta(self, client, make_inventory_product):
        product = make_inventory_product()
        response = client.post(f"/api/inventory/products/{product.id}/adjust", json={"delta": "3"})
        assert response.status_code == 400

    def test_duplicate_sku_is_409(self, client):
        payload = {"sku": "OIL-1", "name": "Oil"}
        assert client.post("/api/inventory/products", json=payload).status_code == 201
        assert client.post("/api/inventory/products", json=payload).status_code == 409

    def test_low_stock_and_value(self, client, make_inventory_product):
        make_inventory_product(stock=5, low_stock_threshold=5)
        make_inventory_product(stock=6, low_stock_threshold=5)
        assert client.get("/api/inventory/low-stock").get_json()["count"] == 1
        assert client.get("/api/inventory/value").get_json()["inventory_value_cents"] == 1100


class TestSalesRoutes:
    def test_sale_with_unknown_product_is_404_and_atomic(self, client, make_inventory_product):
        product = make_inventory_product(stock=10)
        response = client.post("/api/sales/", json={
            "items": [
                {"product_id": product.id, "quantity": 2, "price_cents": 250},
                {"product_id": 777, "quantity": 1, "price_cents": 100},
            ],
            "subtotal_cents": 600,
            "total_cents": 600,
        })
        assert response.status_code == 404
        stock = client.get(f"/api/inventory/products/{product.id}").get_json()["product"]["stock"]
        assert stock == 10

    def test_summary_shape(self, client, make_inventory_product):
        product = make_inventory_product(stock=10)
        client.post("/api/sales/", json={
            "items": [{"product_id": product.id, "quantity": 2, "price_cents": 250}],
            "subtotal_cents": 500,
            "total_cents": 500,
        })
        summary = client.get("/api/sales/summary").get_json()
        assert summary["today"] == {"count": 1, "total_cents": 500}
        assert set(summary) == {"today", "week", "month"}


class TestPaymentRoutes:
    def test_wallet_flow(self, client, customer):
        assert client.post("/api/payments/wallets", json={"customer_id": customer.id}).status_code == 201
        assert client.post("/api/payments/wallets", json={"customer_id": customer.id}).status_code == 409

        response = client.post(
            f"/api/payments/wallets/{customer.id}/transactions",
            json={"type": "credit", "amount_cents": 800, "description": "Top up"},
        )
        assert response.status_code == 201
        assert response.get_json()["wallet"]["balance_cents"] == 800

        wallet = client.get(f"/api/payments/wallets/{customer.id}").get_json()
        assert [t["signed_amount_cents"] for t in wallet["transactions"]] == [800]

    def test_missing_wallet_is_404(self, client, customer):
        response = client.post(f"/api/payments/wallets/{customer.id}/balance", json={"amount_cents": 100})
        assert response.status_code == 404


class TestReputationRoutes:
    def test_review_then_performance(self, client, vendor, customer, make_order):
        order = make_order()
        response = client.post(f"/api/vendors/{vendor.id}/reviews", json={
            "customer_id": customer.id, "order_id": order.id, "rating": 5,
            "food_quality": 5, "delivery_time": 4, "customer_service": 5,
        })
        assert response.status_code == 201
        assert response.get_json()["performance"]["total_reviews"] == 1

        leaderboard = client.get("/api/vendors/leaderboard").get_json()["vendors"]
        assert [v["vendor_id"] for v in leaderboard] == [vendor.id]


class TestDriverRoutes:
    def test_ping_then_nearby(self, client, driver):
        response = client.post(f"/api/drivers/{driver.id}/location", json={"latitude": 36.75, "longitude": 3.06})
        assert response.status_code == 200
        nearby = client.get("/api/drivers/nearby?lat=36.75&lng=3.07&radius_km=2").get_json()
        assert nearby["count"] == 1

    def test_nearby_needs_coordinates(self, client):
        assert client.get("/api/drivers/nearby?lat=36.75").status_code == 400

    def test_dispatch_without_drivers_is_404(self, client, make_order):
        order = make_order()
        response = client.post(f"/api/drivers/dispatch/{order.id}", json={"latitude": 36.75, "longitude": 3.06})
        assert response.status_code == 404

    def test_availability_toggle(self, client, driver):
        client.post(f"/api/drivers/{driver.id}/location", json={"latitude": 36.75, "longitude": 3.06})
        response = client.post(f"/api/drivers/{driver.id}/availability", json={"is_active": False})
        assert response.status_code == 200
        assert response.get_json() == {"driver_id": driver.id, "is_active": False, "status": "offline"}

        assert client.get(f"/api/drivers/{driver.id}/availability").get_json()["status"] == "offline"
        assert client.get("/api/drivers/nearby?lat=36.75&lng=3.06&radius_km=2").get_json()["count"] == 0

    def test_availability_needs_boolean(self, client, driver):
        assert client.post(f"/api/drivers/{driver.id}/availability", json={}).status_code == 400
        assert client.post(f"/api/drivers/{driver.id}/availability", json={"is_active": "no"}).status_code == 400

    def test_performance_upsert_and_leaderboard(self, client, driver):
        assert client.get(f"/api/drivers/{driver.id}/performance").status_code == 404

        response = client.post(f"/api/drivers/{driver.id}/performance", json={"rating": 4.7, "total_deliveries": 9})
        assert response.status_code == 200
        assert response.get_json()["performance"]["on_time_percentage"] == 100.0

        top = client.get("/api/drivers/performance?limit=5").get_json()["drivers"]
        assert [(d["driver_id"], d["rating"]) for d in top] == [(driver.id, 4.7)]

        assert client.post(f"/api/drivers/{driver.id}/performance", json={"rating": 9}).status_code == 400
        assert client.post(f"/api/drivers/{driver.id}/performance/refresh").get_json()["performance"]["rating"] == 4.7


class TestLoyaltyRoutes:
    def test_reward_expiry_must_be_a_timestamp_string(self, client):
        for bad in (1700000000, ["2030-01-01"], "next week"):
            response = client.post("/api/loyalty/rewards", json={
                "name": "Free delivery", "points_cost": 200, "expires_at": bad,
            })
            assert response.status_code == 400

        response = client.post("/api/loyalty/rewards", json={
            "name": "Free delivery", "points_cost": 200, "expires_at": "2030-01-01T00:00:00Z",
        })
        assert response.status_code == 201


class TestNotificationRoutes:
    def test_unread_count_follows_reads(self, client, customer):
        created = client.post("/api/communications/notifications", json={
            "recipient_id": customer.id, "recipient_role": "customer", "type": "promotion",
            "title": "Ramadan deals", "message": "20% off",
        })
        assert created.status_code == 201
        note_id = created.get_json()["notification"]["id"]

        assert client.get(f"/api/communications/notifications/{customer.id}").get_json()["unread_count"] == 1
        client.post(f"/api/communications/notifications/{note_id}/read")
        assert client.get(f"/api/communications/notifications/{customer.id}").get_json()["unread_count"] == 0
