import pytest

pytestmark = pytest.mark.usefixtures("db_session")


def _create_product(client, **overrides):
    payload = {"id": "P1", "name": "Soap", "price": 10, "stockQuantity": 5}
    payload.update(overrides)
    return client.post("/api/products", json=payload)


def _sale_payload(**overrides):
    payload = {
        "items": [{"productId": "P1", "name": "Soap", "quantity": 2, "unitPrice": 10}],
        "taxRatePercent": 10,
        "cashPaid": 25,
    }
    payload.update(overrides)
    return payload


class TestProductRoutes:
    def test_create_and_fetch(self, client):
        response = _create_product(client, barcode="600100")

        assert response.status_code == 201
        body = response.get_json()
        assert body["id"] == "P1"
        assert body["price"] == 10.0
        assert body["updatedAt"].endswith("Z")

        assert client.get("/api/products/P1").get_json()["barcode"] == "600100"
        assert client.get("/api/products/NOPE").status_code == 404

    def test_create_generates_id_when_missing(self, client):
        payload = {"name": "Rice", "price": "9.50", "stockQuantity": "3"}
        response = client.post("/api/products", json=payload)

        assert response.status_code == 201
        body = response.get_json()
        assert body["id"]
        assert body["price"] == 9.5
        assert body["stockQuantity"] == 3

    def test_duplicate_id_conflicts(self, client):
        _create_product(client)
        assert _create_product(client).status_code == 409

    @pytest.mark.parametrize(
        "payload, message",
        [
            ({"name": "Soap", "stockQuantity": 1}, "Missing required fields: price"),
            ({"name": "Soap", "price": -1, "stockQuantity": 1}, "price cannot be negative"),
            ({"name": "Soap", "price": 1, "stockQuantity": 1.5}, "stockQuantity must be an integer, not a decimal"),
            ({"name": "Soap", "price": 1, "stockQuantity": 1, "color": "red"}, "Unknown fields: color"),
            ({"name": "  ", "price": 1, "stockQuantity": 1}, "name cannot be empty"),
        ],
    )
    def test_create_validation(self, client, payload, message):
        response = client.post("/api/products", json=payload)
        assert response.status_code == 400
        assert response.get_json()["error"] == message

    def test_list_search_and_barcode_lookup(self, client):
        _create_product(client, id="P1", name="soap", barcode="600100")
        _create_product(client, id="P2", name="Apples", barcode="700200")

        body = client.get("/api/products").get_json()
        assert body["count"] == 2
        assert [p["id"] for p in body["items"]] == ["P2", "P1"]

        assert [p["id"] for p in client.get("/api/products?q=SOAP").get_json()["items"]] == ["P1"]
        assert [p["id"] for p in client.get("/api/products?barcode=700200").get_json()["items"]] == ["P2"]
        assert client.get("/api/products?barcode=000").get_json()["count"] == 0

    def test_update(self, client):
        created = _create_product(client).get_json()

        response = client.put("/api/products/P1", json={"price": 12.5, "description": None})

        assert response.status_code == 200
        body = response.get_json()
        assert body["price"] == 12.5
        assert body["name"] == "Soap"
        assert body["updatedAt"] >= created["updatedAt"]

        assert client.put("/api/products/NOPE", json={"price": 1}).status_code == 404
        assert client.put("/api/products/P1", json={"price": None}).status_code == 400

    def test_stock_adjustment(self, client):
        _create_product(client)

        response = client.post("/api/products/P1/adjustments", json={"delta": 10, "reason": "return"})

        assert response.status_code == 201
        body = response.get_json()
        assert body["product"]["stockQuantity"] == 15
        assert body["change"]["delta"] == 10
        assert body["change"]["reason"] == "return"

    def test_stock_adjustment_defaults_reason(self, client):
        _create_product(client)
        body = client.post("/api/products/P1/adjustments", json={"delta": -1}).get_json()
        assert body["change"]["reason"] == "adjustment"

    def test_stock_adjustment_errors(self, client):
        _create_product(client)
        assert client.post("/api/products/NOPE/adjustments", json={"delta": 1}).status_code == 404
        assert client.post("/api/products/P1/adjustments", json={"delta": 0}).status_code == 400
        assert client.post("/api/products/P1/adjustments", json={}).status_code == 400


class TestSaleRoutes:
    def test_create_sale(self, client):
        _create_product(client)

        response = client.post("/api/sales", json=_sale_payload())

        assert response.status_code == 201
        body = response.get_json()
        assert body["subtotal"] == pytest.approx(20.0)
        assert body["tax"] == pytest.approx(2.0)
        assert body["total"] == pytest.approx(22.0)
        assert body["paidTotal"] == pytest.approx(25.0)
        assert body["stockStatus"] == "applied"

        assert client.get("/api/products/P1").get_json()["stockQuantity"] == 3
        assert client.get(f"/api/sales/{body['id']}").get_json()["total"] == pytest.approx(22.0)

    def test_sale_uses_default_tax_rate(self, client):
        _create_product(client)
        payload = _sale_payload()
        del payload["taxRatePercent"]

        body = client.post("/api/sales", json=payload).get_json()

        assert body["taxRatePercent"] == 0.0
        assert body["total"] == pytest.approx(20.0)

    def test_sale_with_unknown_product_is_recorded(self, client):
        payload = _sale_payload(items=[{"productId": "GHOST", "name": "?", "quantity": 1, "unitPrice": 3}])

        response = client.post("/api/sales", json=payload)

        assert response.status_code == 201
        assert response.get_json()["items"][0]["productId"] == "GHOST"
        assert client.get("/api/sales/inventory-changes").get_json()["count"] == 0

    @pytest.mark.parametrize(
        "payload",
        [
            {"items": []},
            {"items": [{"productId": "P1", "name": "Soap", "quantity": 0, "unitPrice": 1}]},
            {"items": [{"productId": "P1", "name": "Soap", "quantity": 1}]},
            {"items": [{"productId": "P1", "name": "Soap", "quantity": 1, "unitPrice": 1}], "cashPaid": -5},
            ["not", "an", "object"],
        ],
    )
    def test_sale_validation(self, client, payload):
        assert client.post("/api/sales", json=payload).status_code == 400

    def test_list_sales_and_changes(self, client):
        _create_product(client)
        _create_product(client, id="P2", name="Rice")
        client.post("/api/sales", json=_sale_payload())
        client.post("/api/products/P2/adjustments", json={"delta": -1, "reason": "damage"})

        sales = client.get("/api/sales").get_json()
        assert sales["count"] == 1
        assert sales["items"][0]["total"] == pytest.approx(22.0)

        changes = client.get("/api/sales/inventory-changes").get_json()
        assert changes["count"] == 2
        only_p2 = client.get("/api/sales/inventory-changes?product_id=P2").get_json()
        assert [c["reason"] for c in only_p2["items"]] == ["damage"]

        assert client.get("/api/sales/NOPE").status_code == 404

    def test_reconcile_with_nothing_pending(self, client):
        body = client.post("/api/sales/reconcile").get_json()
        assert body == {"reconciled": [], "count": 0}


@pytest.mark.sync
class TestSyncRoutes:
    def test_status(self, client):
        _create_product(client)

        body = client.get("/api/sync/status").get_json()

        assert body["remote_configured"] is False
        assert body["unsynced_products"] == 1
        assert body["unsynced_text"] == "1 product"
        assert body["auto_sync"] is True

    def test_run_in_local_only_mode(self, client):
        _create_product(client)

        response = client.post("/api/sync/run")

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["started"] is True
        # Nothing is pushed without a remote store
        assert client.get("/api/sync/status").get_json()["unsynced_products"] == 1

    def test_auto_sync_setting(self, client):
        response = client.put("/api/sync/settings", json={"autoSync": False})
        assert response.status_code == 200
        assert response.get_json()["auto_sync"] is False

        assert client.put("/api/sync/settings", json={"autoSync": "no"}).status_code == 400

    def test_connectivity_reports(self, client):
        client.post("/api/sync/connectivity", json={"online": False})

        online = client.post("/api/sync/connectivity", json={"online": True}).get_json()
        assert online["changed"] is True
        assert online["is_online"] is True

        again = client.post("/api/sync/connectivity", json={"online": True}).get_json()
        assert again["changed"] is False

        offline = client.post("/api/sync/connectivity", json={"online": False}).get_json()
        assert offline["status_text"] == "Offline"

        assert client.post("/api/sync/connectivity", json={"online": "yes"}).status_code == 400

    def test_clear_error(self, client):
        response = client.delete("/api/sync/error")
        assert response.status_code == 200
        assert response.get_json()["last_sync_error"] is None
