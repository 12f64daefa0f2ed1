"""
Returns API tests.

Verifies:
- Any signed-in user can create and list returns
- Status changes, deletion and reports need manager or admin (403 otherwise)
- Pagination envelope of the list endpoint
"""

import pytest


def create_return(client, headers, sale, sale_item, quantity, **extra):
    body = {
        "saleId": sale.id,
        "returnItems": [{"saleItemId": sale_item.id, "quantity": quantity, "returnReason": "Changed mind"}],
    }
    body.update(extra)
    return client.post("/api/returns", json=body, headers=headers)


class TestReturnAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/returns"),
            ("POST", "/api/returns"),
            ("GET", "/api/returns/1"),
            ("PUT", "/api/returns/1"),
            ("DELETE", "/api/returns/1"),
            ("GET", "/api/returns/reports"),
            ("GET", "/api/returns/sales/1"),
        ],
    )
    def test_requires_auth(self, client, store, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_cashier_cannot_approve_delete_or_report(self, client, cashier_headers, sale, sale_items):
        return_id = create_return(client, cashier_headers, sale, sale_items["SKU-A"], 1).get_json()["return"]["id"]

        approve = client.put(f"/api/returns/{return_id}", json={"status": "approved"}, headers=cashier_headers)
        assert approve.status_code == 403
        assert approve.get_json()["error"] == "Permission denied"

        assert client.delete(f"/api/returns/{return_id}", headers=cashier_headers).status_code == 403
        assert client.get("/api/returns/reports", headers=cashier_headers).status_code == 403

    def test_cashier_can_edit_notes(self, client, cashier_headers, sale, sale_items):
        return_id = create_return(client, cashier_headers, sale, sale_items["SKU-A"], 1).get_json()["return"]["id"]

        resp = client.put(f"/api/returns/{return_id}", json={"notes": "Box missing"}, headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["return"]["notes"] == "Box missing"

    def test_update_rejects_non_string_notes(self, client, cashier_headers, sale, sale_items):
        return_id = create_return(client, cashier_headers, sale, sale_items["SKU-A"], 1).get_json()["return"]["id"]

        resp = client.put(f"/api/returns/{return_id}", json={"notes": {"x": 1}}, headers=cashier_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "notes must be a string"


class TestReturnEndpoints:

    def test_create(self, client, cashier, cashier_headers, sale, sale_items, store):
        resp = create_return(client, cashier_headers, sale, sale_items["SKU-A"], 5, userId=999)
        data = resp.get_json()

        assert resp.status_code == 201
        assert data["success"] is True
        ret = data["return"]
        assert ret["refund_amount_cents"] == 5500
        assert ret["store_id"] == store.id
        assert ret["user_id"] == cashier.id
        assert ret["items"][0]["quantity"] == 5
        assert ret["items"][0]["restocked_quantity"] == 5

    def test_create_rejects_excess_quantity(self, client, cashier_headers, sale, sale_items):
        resp = create_return(client, cashier_headers, sale, sale_items["SKU-A"], 6)
        assert resp.status_code == 400
        assert "cannot exceed original quantity" in resp.get_json()["error"]

    def test_create_unknown_sale(self, client, cashier_headers, sale, sale_items):
        resp = client.post(
            "/api/returns",
            json={"saleId": 999, "returnItems": [{"saleItemId": sale_items["SKU-A"].id, "quantity": 1}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 404

    def test_create_validates_input(self, client, cashier_headers, sale):
        missing = client.post("/api/returns", json={"saleId": sale.id}, headers=cashier_headers)
        assert missing.status_code == 400

        bad_items = client.post(
            "/api/returns", json={"saleId": sale.id, "returnItems": "all"}, headers=cashier_headers
        )
        assert bad_items.status_code == 400

    def test_list_pagination(self, client, cashier_headers, sale, sale_items):
        for _ in range(2):
            assert create_return(client, cashier_headers, sale, sale_items["SKU-B"], 1).status_code == 201
        # Both desk lamps are back; a third return is rejected and not listed
        assert create_return(client, cashier_headers, sale, sale_items["SKU-B"], 1).status_code == 400

        resp = client.get("/api/returns?limit=1&page=2", headers=cashier_headers)
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["pagination"] == {"page": 2, "limit": 1, "total": 2, "pages": 2}
        assert len(data["returns"]) == 1

        assert client.get("/api/returns?limit=abc", headers=cashier_headers).status_code == 400

    def test_get_and_history(self, client, cashier_headers, sale, sale_items):
        return_id = create_return(client, cashier_headers, sale, sale_items["SKU-A"], 2).get_json()["return"]["id"]

        resp = client.get(f"/api/returns/{return_id}", headers=cashier_headers)
        assert resp.status_code == 200
        assert len(resp.get_json()["return"]["items"]) == 1

        history = client.get(f"/api/returns/sales/{sale.id}", headers=cashier_headers).get_json()
        tote = next(i for i in history["items"] if i["sale_item_id"] == sale_items["SKU-A"].id)
        assert tote["returnable_quantity"] == 3

        assert client.get("/api/returns/999", headers=cashier_headers).status_code == 404
        assert client.get("/api/returns/sales/999", headers=cashier_headers).status_code == 404

    def test_manager_workflow(self, client, cashier_headers, manager, manager_headers, sale, sale_items):
        return_id = create_return(client, cashier_headers, sale, sale_items["SKU-A"], 1).get_json()["return"]["id"]

        approved = client.put(f"/api/returns/{return_id}", json={"status": "approved"}, headers=manager_headers)
        assert approved.status_code == 200
        assert approved.get_json()["return"]["approved_by_user_id"] == manager.id

        bad = client.put(f"/api/returns/{return_id}", json={"status": "pending"}, headers=manager_headers)
        assert bad.status_code == 400

        delete = client.delete(f"/api/returns/{return_id}", headers=manager_headers)
        assert delete.status_code == 400
        assert delete.get_json()["error"] == "Only pending returns can be deleted"

        completed = client.put(f"/api/returns/{return_id}", json={"status": "completed"}, headers=manager_headers)
        assert completed.get_json()["return"]["status"] == "completed"

    def test_delete_pending(self, client, cashier_headers, manager_headers, sale, sale_items):
        created = create_return(client, cashier_headers, sale, sale_items["SKU-A"], 1).get_json()["return"]

        resp = client.delete(f"/api/returns/{created['id']}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["message"] == f"Return {created['return_number']} deleted successfully"
        assert client.get(f"/api/returns/{created['id']}", headers=manager_headers).status_code == 404

    def test_reports(self, client, cashier_headers, manager_headers, sale, sale_items, store):
        create_return(client, cashier_headers, sale, sale_items["SKU-A"], 2)

        resp = client.get(f"/api/returns/reports?type=summary&storeId={store.id}", headers=manager_headers)
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["type"] == "summary"
        assert data["data"]["summary"]["total_returns"] == 1
        assert data["data"]["summary"]["total_refund_amount_cents"] == 2200

        assert client.get("/api/returns/reports?storeId=all", headers=manager_headers).status_code == 200
        assert client.get("/api/returns/reports?type=pie", headers=manager_headers).status_code == 400
        assert client.get("/api/returns/reports?storeId=999", headers=manager_headers).status_code == 400
