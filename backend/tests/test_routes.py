"""
HTTP route tests for the stock, warehouse and direct pricing APIs.

Verifies:
- Requests without a valid X-User-Id return 401
- Roles outside the allowed set get a 403 envelope
- Service errors map onto 400 / 404 / 409
- The {message, data, error, success} envelope on every response
"""

import pytest

from catalog.models.records import STOCK_SOURCE_BATCHES
from catalog.services.stock_sync_service import force_sync_product


def _assert_envelope(resp, *, success):
    body = resp.get_json()
    assert set(body) >= {"message", "data", "error", "success"}
    assert body["success"] is success
    assert body["error"] is (not success)
    return body


# =============================================================================
# AUTHENTICATION (401)
# =============================================================================


class TestActorRequired:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/stock/batches"),
            ("POST", "/api/stock/batches"),
            ("PATCH", "/api/stock/batches/bulk"),
            ("GET", "/api/stock/expiring"),
            ("PUT", "/api/warehouse/update-stock"),
            ("POST", "/api/warehouse/reconcile-stock"),
            ("PUT", "/api/warehouse/bulk-update-stock"),
            ("GET", "/api/warehouse/activity-log"),
            ("POST", "/api/warehouse/sync-all-from-stock-model"),
            ("GET", "/api/warehouse/stock-summary"),
            ("GET", "/api/warehouse/low-stock-alerts"),
            ("POST", "/api/direct-pricing/create-update"),
            ("PUT", "/api/direct-pricing/update-single"),
            ("GET", "/api/direct-pricing/stats"),
        ],
    )
    def test_requires_actor(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        _assert_envelope(resp, success=False)

    def test_malformed_header(self, client, db_session):
        resp = client.get("/api/warehouse/stock-summary", headers={"X-User-Id": "abc"})
        assert resp.status_code == 401

    def test_deactivated_user(self, client, db_session, staff_user, headers_for):
        staff_user.is_active = False
        db_session.commit()

        resp = client.get("/api/warehouse/stock-summary", headers=headers_for(staff_user))
        assert resp.status_code == 401


# =============================================================================
# ROLES (403)
# =============================================================================


class TestRoleChecks:

    def test_staff_cannot_change_stock(self, client, staff_user, make_product, headers_for):
        product = make_product()

        resp = client.put(
            "/api/warehouse/update-stock",
            json={"productId": product.id, "final_stock": 5},
            headers=headers_for(staff_user),
        )

        assert resp.status_code == 403
        body = _assert_envelope(resp, success=False)
        assert "Insufficient permissions" in body["message"]

    def test_staff_can_read_reports(self, client, staff_user, headers_for):
        resp = client.get("/api/warehouse/low-stock-alerts", headers=headers_for(staff_user))
        assert resp.status_code == 200

    def test_warehouse_cannot_set_prices(self, client, warehouse_user, make_product, headers_for):
        product = make_product()

        resp = client.post(
            "/api/direct-pricing/create-update",
            json={"productId": product.id, "prices": {"salePrice": 10}},
            headers=headers_for(warehouse_user),
        )
        assert resp.status_code == 403

    def test_accountant_cannot_deactivate_pricing(self, client, accountant, make_product, headers_for):
        product = make_product()
        resp = client.delete(f"/api/direct-pricing/product/{product.id}", headers=headers_for(accountant))
        assert resp.status_code == 403

    def test_sync_all_is_director_or_it(self, client, warehouse_user, director, headers_for):
        denied = client.post("/api/warehouse/sync-all-from-stock-model", headers=headers_for(warehouse_user))
        allowed = client.post("/api/warehouse/sync-all-from-stock-model", headers=headers_for(director))

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.get_json()["data"] == {"totalProducts": 0, "syncedCount": 0, "errorCount": 0}


# =============================================================================
# STOCK BATCHES
# =============================================================================


class TestStockBatchRoutes:

    def test_create_batch_resyncs_product(self, client, db_session, warehouse_user, make_product, headers_for):
        product = make_product()

        resp = client.post(
            "/api/stock/batches",
            json={
                "product_id": product.id,
                "original_quantity": 12,
                "good_quantity": 10,
                "refurbished_quantity": 2,
                "status": "AVAILABLE",
                "expiry_date": "2030-01-01T00:00:00Z",
            },
            headers=headers_for(warehouse_user),
        )

        assert resp.status_code == 201
        body = _assert_envelope(resp, success=True)
        assert body["data"]["batch_number"].startswith("SB-")
        assert body["data"]["expiry_date"] == "2030-01-01T00:00:00Z"
        db_session.expire_all()
        assert product.stock == 12
        assert product.stock_source == STOCK_SOURCE_BATCHES

    def test_create_batch_validation_error(self, client, warehouse_user, make_product, headers_for):
        product = make_product()

        resp = client.post(
            "/api/stock/batches",
            json={"product_id": product.id, "original_quantity": 1.5},
            headers=headers_for(warehouse_user),
        )

        assert resp.status_code == 400
        assert "must be an integer" in resp.get_json()["message"]

    def test_create_batch_for_unknown_product(self, client, warehouse_user, headers_for):
        resp = client.post(
            "/api/stock/batches",
            json={"product_id": 999, "original_quantity": 1},
            headers=headers_for(warehouse_user),
        )
        assert resp.status_code == 404

    def test_duplicate_batch_number(self, client, warehouse_user, make_product, make_batch, headers_for):
        product = make_product()
        make_batch(product, good=1, batch_number="SB-DUP")

        resp = client.post(
            "/api/stock/batches",
            json={"product_id": product.id, "original_quantity": 1, "batch_number": "SB-DUP"},
            headers=headers_for(warehouse_user),
        )
        assert resp.status_code == 409

    def test_get_batch_includes_movements(self, client, staff_user, make_product, make_batch, headers_for):
        batch = make_batch(make_product(), good=3)

        resp = client.get(f"/api/stock/batches/{batch.id}", headers=headers_for(staff_user))

        assert resp.status_code == 200
        assert resp.get_json()["data"]["movements"] == []

    def test_list_rejects_unknown_status(self, client, staff_user, headers_for):
        resp = client.get("/api/stock/batches?status=LOST", headers=headers_for(staff_user))
        assert resp.status_code == 400

    def test_bulk_update_with_resync(self, client, db_session, warehouse_user, make_product, make_batch, headers_for):
        product = make_product()
        batches = [make_batch(product, good=4), make_batch(product, good=6)]
        force_sync_product(product.id)

        resp = client.patch(
            "/api/stock/batches/bulk",
            json={"batch_ids": [b.id for b in batches], "fields": {"status": "DAMAGED"}, "resync": True},
            headers=headers_for(warehouse_user),
        )

        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"modifiedCount": 2, "affectedProductIds": [product.id], "resynced": True}
        db_session.expire_all()
        assert product.stock == 0

    def test_allocate_more_than_available(self, client, warehouse_user, make_product, make_batch, headers_for):
        batch = make_batch(make_product(), good=2)

        resp = client.post(
            f"/api/stock/batches/{batch.id}/allocate",
            json={"quantity": 3},
            headers=headers_for(warehouse_user),
        )

        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Insufficient available stock"

    def test_delete_batch(self, client, warehouse_user, make_product, make_batch, headers_for):
        product = make_product()
        batch = make_batch(product, good=2)

        resp = client.delete(f"/api/stock/batches/{batch.id}", headers=headers_for(warehouse_user))

        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"batchId": batch.id, "productId": product.id}


# =============================================================================
# WAREHOUSE OVERRIDE
# =============================================================================


class TestWarehouseRoutes:

    def test_update_stock_reports_all_errors(self, client, warehouse_user, make_product, headers_for):
        product = make_product()

        resp = client.put(
            "/api/warehouse/update-stock",
            json={"productId": product.id, "final_stock": 10, "online_stock": 8, "offline_stock": 5, "damaged_qty": -2},
            headers=headers_for(warehouse_user),
        )

        assert resp.status_code == 400
        body = _assert_envelope(resp, success=False)
        assert body["message"] == "Stock validation failed"
        assert len(body["errors"]) == 2

    def test_update_stock_requires_product_id(self, client, warehouse_user, headers_for):
        resp = client.put("/api/warehouse/update-stock", json={"final_stock": 5}, headers=headers_for(warehouse_user))
        assert resp.status_code == 400

    def test_override_then_disable(self, client, warehouse_user, make_product, make_batch, headers_for):
        product = make_product()
        make_batch(product, good=10, refurbished=2)
        headers = headers_for(warehouse_user)

        resp = client.put(
            "/api/warehouse/update-stock",
            json={"productId": product.id, "stock_on_arrival": 50, "final_stock": 50},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["stock"] == 50

        resp = client.patch(f"/api/warehouse/products/{product.id}/disable-override", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["newStock"] == 12

    def test_reconcile_stock(self, client, warehouse_user, make_product, headers_for):
        product = make_product(stock=7)

        resp = client.post(
            "/api/warehouse/reconcile-stock",
            json={"productId": product.id, "actualCount": 5},
            headers=headers_for(warehouse_user),
        )

        assert resp.status_code == 200
        assert resp.get_json()["data"]["difference"] == -2

    def test_force_sync_unknown_product(self, client, warehouse_user, headers_for):
        resp = client.post("/api/warehouse/products/999/force-sync", headers=headers_for(warehouse_user))
        assert resp.status_code == 404

    def test_validate_stock(self, client, warehouse_user, make_product, make_batch, headers_for):
        product = make_product()
        make_batch(product, good=5)

        resp = client.post(
            "/api/warehouse/validate-stock",
            json={"productIds": [product.id]},
            headers=headers_for(warehouse_user),
        )

        data = resp.get_json()["data"]
        assert data["inconsistent"] == 1
        assert data["results"][0]["productId"] == product.id

    def test_validate_stock_requires_ids(self, client, warehouse_user, headers_for):
        resp = client.post("/api/warehouse/validate-stock", json={}, headers=headers_for(warehouse_user))
        assert resp.status_code == 400

    def test_stock_summary(self, client, staff_user, make_product, headers_for):
        make_product(stock=3)

        resp = client.get("/api/warehouse/stock-summary", headers=headers_for(staff_user))

        data = resp.get_json()["data"]
        assert data["totalProducts"] == 1
        assert data["totalStock"] == 3
        assert data["lowStockItems"] == 1

    def test_reconcile_rejects_blank_count(self, client, warehouse_user, make_product, headers_for):
        product = make_product(stock=7)

        resp = client.post(
            "/api/warehouse/reconcile-stock",
            json={"productId": product.id, "actualCount": ""},
            headers=headers_for(warehouse_user),
        )

        assert resp.status_code == 400
        _assert_envelope(resp, success=False)

    def test_bulk_update_stock(self, client, warehouse_user, make_product, headers_for):
        product = make_product()

        resp = client.put(
            "/api/warehouse/bulk-update-stock",
            json={"updates": [
                {"productId": product.id, "final_stock": 8},
                {"productId": 999, "final_stock": 1},
                {"productId": product.id, "final_stock": -2},
            ]},
            headers=headers_for(warehouse_user),
        )

        assert resp.status_code == 200
        data = _assert_envelope(resp, success=True)["data"]
        assert data["successful"] == 1
        assert data["failed"] == 2
        assert data["errors"][0] == "Product not found: 999"

    def test_bulk_update_requires_updates(self, client, warehouse_user, headers_for):
        resp = client.put("/api/warehouse/bulk-update-stock", json={}, headers=headers_for(warehouse_user))
        assert resp.status_code == 400

    def test_activity_log_lists_changes(self, client, warehouse_user, staff_user, make_product, headers_for):
        product = make_product(stock=7)
        client.post(
            "/api/warehouse/reconcile-stock",
            json={"productId": product.id, "actualCount": 5},
            headers=headers_for(warehouse_user),
        )

        resp = client.get(
            f"/api/warehouse/activity-log?productId={product.id}",
            headers=headers_for(staff_user),
        )

        assert resp.status_code == 200
        entries = _assert_envelope(resp, success=True)["data"]
        assert len(entries) == 1
        assert entries[0]["action"] == "STOCK_RECONCILIATION"
        assert entries[0]["user"]["id"] == warehouse_user.id
        assert entries[0]["target"]["sku"] == product.sku
        assert entries[0]["changes"] == {"finalStock": {"from": 7, "to": 5}}

    @pytest.mark.parametrize("query", ["action=NOPE", "limit=0", "limit=abc"])
    def test_activity_log_bad_filters(self, client, staff_user, headers_for, query):
        resp = client.get(f"/api/warehouse/activity-log?{query}", headers=headers_for(staff_user))
        assert resp.status_code == 400


# =============================================================================
# DIRECT PRICING
# =============================================================================


class TestDirectPricingRoutes:

    def test_create_update_then_read(self, client, accountant, make_product, headers_for):
        product = make_product()
        headers = headers_for(accountant)

        resp = client.post(
            "/api/direct-pricing/create-update",
            json={"productId": product.id, "prices": {"salePrice": 100, "btbPrice": 90, "unknownField": 5}},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["updatedPrices"] == {"salePrice": 100, "btbPrice": 90}

        resp = client.get(f"/api/direct-pricing/product/{product.id}", headers=headers)
        data = resp.get_json()["data"]
        assert data["direct_prices"]["salePrice"] == 100
        assert data["history_count"] == 1

    def test_update_single_invalid_tier(self, client, accountant, make_product, headers_for):
        product = make_product()

        resp = client.put(
            "/api/direct-pricing/update-single",
            json={"productId": product.id, "priceType": "wholesalePrice", "price": 10},
            headers=headers_for(accountant),
        )

        assert resp.status_code == 400
        assert "Invalid price type" in resp.get_json()["message"]

    def test_update_single_then_history(self, client, accountant, make_product, headers_for):
        product = make_product()
        headers = headers_for(accountant)
        client.put(
            "/api/direct-pricing/update-single",
            json={"productId": product.id, "priceType": "salePrice", "price": 1000},
            headers=headers,
        )

        resp = client.put(
            "/api/direct-pricing/update-single",
            json={"productId": product.id, "priceType": "salePrice", "price": 1500},
            headers=headers,
        )
        assert resp.get_json()["data"]["previousPrice"] == 1000

        resp = client.get(f"/api/direct-pricing/history/{product.id}?limit=1", headers=headers)
        data = resp.get_json()["data"]
        assert data["totalHistoryEntries"] == 2
        assert len(data["history"]) == 1
        assert data["history"][0]["new_value"] == 1500

    def test_missing_pricing_is_404(self, client, staff_user, make_product, headers_for):
        product = make_product()
        resp = client.get(f"/api/direct-pricing/product/{product.id}", headers=headers_for(staff_user))
        assert resp.status_code == 404

    def test_director_can_deactivate(self, client, accountant, director, make_product, headers_for):
        product = make_product()
        client.post(
            "/api/direct-pricing/create-update",
            json={"productId": product.id, "prices": {"salePrice": 10}},
            headers=headers_for(accountant),
        )

        resp = client.delete(f"/api/direct-pricing/product/{product.id}", headers=headers_for(director))

        assert resp.status_code == 200
        assert resp.get_json()["data"]["deletedBy"] == director.id
        resp = client.get(f"/api/direct-pricing/product/{product.id}", headers=headers_for(director))
        assert resp.status_code == 404

    def test_stats(self, client, staff_user, headers_for):
        resp = client.get("/api/direct-pricing/stats", headers=headers_for(staff_user))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["stats"]["totalProducts"] == 0


def test_health(client, db_session):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["details"]["products"] == 0
