"""
Sales recording and inventory tests.

Verifies:
- Sale totals carry the flat tax; unpaid remainder goes to the customer's due balance
- Insufficient stock rejects the whole sale and leaves inventory untouched
- Every inventory change has a matching stock movement
- Document numbers come from a per-type counter and never repeat
"""

import pytest
from sqlalchemy.exc import IntegrityError

from retailhub.extensions import db
from retailhub.models import Customer, DocumentSequence, Inventory, Sale, StockMovement
from retailhub.services import inventory_service, sales_service
from retailhub.services.concurrency import run_in_transaction
from retailhub.services.document_service import next_document_number
from retailhub.services.inventory_service import REASON_RETURN_REVERSAL, InventoryError
from retailhub.services.sales_service import SaleError


class TestRecordSale:

    def test_totals_and_stock(self, sale, store, product_a, customer):
        assert sale.subtotal_cents == 10000
        assert sale.tax_cents == 1000
        assert sale.total_cents == 11000
        assert sale.paid_cents == 11000
        assert sale.document_number == "S-000001"

        inventory = db.session.query(Inventory).filter_by(store_id=store.id, product_id=product_a.id).one()
        assert inventory.quantity == 15

        stored = db.session.get(Customer, customer.id)
        assert stored.total_spent_cents == 11000
        assert stored.due_balance_cents == 0

    def test_list_price_default(self, stocked, cashier, product_b):
        sale = sales_service.record_sale(
            store_id=stocked.id, user_id=cashier.id, items=[{"product_id": product_b.id, "quantity": 1}]
        )
        assert sale.subtotal_cents == 2500

    def test_insufficient_stock_rolls_back(self, stocked, cashier, product_a, product_b):
        with pytest.raises(SaleError, match="Insufficient stock"):
            sales_service.record_sale(
                store_id=stocked.id,
                user_id=cashier.id,
                items=[
                    {"product_id": product_a.id, "quantity": 1},
                    {"product_id": product_b.id, "quantity": 21},
                ],
            )

        db.session.expire_all()
        assert db.session.query(Sale).count() == 0
        assert db.session.query(Inventory).filter_by(product_id=product_a.id).one().quantity == 20
        assert db.session.query(StockMovement).filter_by(reason="sale").count() == 0

    def test_credit_sale_needs_customer(self, stocked, cashier, product_a):
        with pytest.raises(SaleError, match="A customer is required for credit sales"):
            sales_service.record_sale(
                store_id=stocked.id,
                user_id=cashier.id,
                items=[{"product_id": product_a.id, "quantity": 1}],
                paid_cents=0,
            )

    def test_unknown_sale(self, app):
        with pytest.raises(SaleError):
            sales_service.get_sale(999)

    def test_sale_route(self, client, cashier_headers, stocked, product_a, customer):
        resp = client.post("/api/sales", json={
            "customerId": customer.id,
            "paidCents": 500,
            "items": [{"productId": product_a.id, "quantity": 2}],
        }, headers=cashier_headers)
        data = resp.get_json()

        assert resp.status_code == 201
        assert data["sale"]["total_cents"] == 2200
        assert data["sale"]["store_id"] == stocked.id
        assert len(data["items"]) == 1

        db.session.expire_all()
        assert db.session.get(Customer, customer.id).due_balance_cents == 1700

        assert client.get(f"/api/sales/{data['sale']['id']}", headers=cashier_headers).status_code == 200

    def test_sale_route_rejects_decimal_quantity(self, client, cashier_headers, stocked, product_a):
        resp = client.post("/api/sales", json={
            "items": [{"productId": product_a.id, "quantity": 1.5}],
        }, headers=cashier_headers)
        assert resp.status_code == 400


class TestInventory:

    def test_receive_stock_records_movement(self, store, product_a, manager):
        movement = inventory_service.receive_stock(
            store_id=store.id, product_id=product_a.id, quantity=7, unit_cost_cents=400, user_id=manager.id
        )

        assert (movement.type, movement.quantity, movement.reason) == ("in", 7, "purchase_receipt")
        inventory = db.session.query(Inventory).filter_by(store_id=store.id, product_id=product_a.id).one()
        assert inventory.quantity == 7
        assert inventory.cost_price_cents == 400

    def test_movement_ledger_direction(self, sale, store, product_a):
        movements = (
            db.session.query(StockMovement)
            .filter_by(store_id=store.id, product_id=product_a.id)
            .order_by(StockMovement.id)
            .all()
        )

        # Direction lives in the type; quantities are always positive
        assert [(m.type, m.quantity, m.reason) for m in movements] == [
            ("in", 20, "purchase_receipt"),
            ("out", 5, "sale"),
        ]
        assert movements[1].reference_type == "sale"
        assert movements[1].reference_id == sale.id

    def test_decrease_floor_at_zero(self, stocked, product_a):
        movement = inventory_service.decrease_stock(
            store_id=stocked.id,
            product_id=product_a.id,
            quantity=50,
            reason=REASON_RETURN_REVERSAL,
            floor_at_zero=True,
        )
        assert movement.quantity == 20
        assert inventory_service.decrease_stock(
            store_id=stocked.id,
            product_id=product_a.id,
            quantity=1,
            reason=REASON_RETURN_REVERSAL,
            floor_at_zero=True,
        ) is None
        db.session.commit()

    def test_decrease_rejects_insufficient(self, stocked, product_a):
        with pytest.raises(InventoryError, match="Insufficient stock"):
            inventory_service.decrease_stock(
                store_id=stocked.id, product_id=product_a.id, quantity=21, reason=REASON_RETURN_REVERSAL
            )
        db.session.rollback()

    def test_inventory_routes(self, client, cashier_headers, manager_headers, store, stocked, product_a):
        listing = client.get("/api/inventory", headers=cashier_headers)
        assert listing.status_code == 200
        assert {row["quantity"] for row in listing.get_json()["inventory"]} == {20}

        body = {"productId": product_a.id, "quantity": 5, "reference": "PO-1001"}
        assert client.post("/api/inventory/receive", json=body, headers=cashier_headers).status_code == 403

        received = client.post("/api/inventory/receive", json=body, headers=manager_headers)
        assert received.status_code == 201
        assert received.get_json()["inventory"]["quantity"] == 25

        movements = client.get(
            f"/api/inventory/movements?productId={product_a.id}&reason=purchase_receipt",
            headers=manager_headers,
        ).get_json()
        assert movements["pagination"]["total"] == 2
        assert movements["movements"][0]["notes"] == "PO-1001"

    def test_low_stock_filter(self, client, cashier_headers, stocked, product_a):
        inventory = db.session.query(Inventory).filter_by(product_id=product_a.id).one()
        inventory.reorder_point = 25
        db.session.commit()

        resp = client.get("/api/inventory?lowStock=true", headers=cashier_headers)
        rows = resp.get_json()["inventory"]
        assert [row["product_id"] for row in rows] == [product_a.id]
        assert rows[0]["is_low_stock"] is True


class TestDocumentNumbers:

    def test_sales_number_sequentially(self, sale, stocked, cashier, product_b):
        second = sales_service.record_sale(
            store_id=stocked.id, user_id=cashier.id, items=[{"product_id": product_b.id, "quantity": 1}]
        )
        assert second.document_number == "S-000002"

    def test_failed_sale_keeps_its_number_free(self, stocked, cashier, product_a, product_b):
        with pytest.raises(SaleError):
            sales_service.record_sale(
                store_id=stocked.id,
                user_id=cashier.id,
                items=[{"product_id": product_b.id, "quantity": 99}],
            )

        sale = sales_service.record_sale(
            store_id=stocked.id, user_id=cashier.id, items=[{"product_id": product_a.id, "quantity": 1}]
        )
        assert sale.document_number == "S-000001"

    def test_counters_are_per_document_type(self, app):
        assert next_document_number(document_type="sale", prefix="S") == "S-000001"
        assert next_document_number(document_type="sale", prefix="S") == "S-000002"
        assert next_document_number(document_type="transfer", prefix="T", pad=4) == "T-0001"
        db.session.commit()

        counters = {seq.document_type: seq.next_number for seq in db.session.query(DocumentSequence)}
        assert counters == {"sale": 3, "transfer": 2}

    def test_transaction_retries_listed_errors(self, app):
        calls = []

        def _op():
            calls.append(1)
            if len(calls) == 1:
                raise IntegrityError("INSERT INTO document_sequences", {}, Exception("UNIQUE constraint failed"))
            return "ok"

        assert run_in_transaction(_op, backoff_base=0, retry_on=(IntegrityError,)) == "ok"
        assert len(calls) == 2

    def test_transaction_does_not_retry_unlisted_errors(self, app):
        calls = []

        def _op():
            calls.append(1)
            raise IntegrityError("INSERT INTO sales", {}, Exception("UNIQUE constraint failed"))

        with pytest.raises(IntegrityError):
            run_in_transaction(_op, backoff_base=0)
        assert len(calls) == 1
