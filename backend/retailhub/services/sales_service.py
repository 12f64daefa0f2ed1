# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sales Recording Service

A sale is recorded in one step (cart handling lives in the POS client):
the document and its items are written, stock leaves inventory through
`sale` movements, and any unpaid remainder is added to the customer's
due balance.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Product, Sale, SaleItem, Store
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_document_number
from .inventory_service import REASON_SALE, InventoryError, decrease_stock


class SaleError(Exception):
    """Raised for sale operation errors."""
    status_code = 400


class SaleNotFoundError(SaleError):
    status_code = 404


def compute_tax_cents(amount_cents: int, rate_bps: int | None = None) -> int:
    """Flat tax on an amount, nearest cent with halves rounded up."""
    if rate_bps is None:
        rate_bps = current_app.config.get("TAX_RATE_BPS", 0)
    return (amount_cents * rate_bps + 5000) // 10000


def record_sale(
    *,
    store_id: int,
    user_id: int,
    items: list[dict],
    customer_id: int | None = None,
    paid_cents: int | None = None,
) -> Sale:
    """
    Record a completed sale.

    Args:
        store_id: Store where the sale happened
        user_id: Cashier
        items: [{"product_id": int, "quantity": int, "unit_price_cents": int | None}]
               unit_price_cents defaults to the product's list price
        customer_id: Optional customer
        paid_cents: Amount tendered; defaults to the full total

    Raises:
        SaleError: Unknown store/customer/product, bad quantities or insufficient stock
    """
    if not items:
        raise SaleError("At least one sale item is required")

    def _op():
        if not db.session.get(Store, store_id):
            raise SaleError(f"Store {store_id} not found")

        customer = None
        if customer_id is not None:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
            if not customer:
                raise SaleError(f"Customer {customer_id} not found")

        sale = Sale(
            store_id=store_id,
            customer_id=customer_id,
            user_id=user_id,
            document_number=next_document_number(document_type="sale", prefix="S"),
            status="completed",
        )
        db.session.add(sale)
        db.session.flush()

        subtotal = 0
        for raw in items:
            product = db.session.get(Product, raw["product_id"])
            if not product:
                raise SaleError(f"Product {raw['product_id']} not found")

            quantity = raw["quantity"]
            if quantity <= 0:
                raise SaleError("Sale quantity must be positive")

            unit_price = raw.get("unit_price_cents")
            if unit_price is None:
                unit_price = product.price_cents
            if unit_price is None:
                raise SaleError(f"Product {product.id} has no price")

            item = SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                quantity=quantity,
                unit_price_cents=unit_price,
                line_total_cents=quantity * unit_price,
            )
            db.session.add(item)
            db.session.flush()
            subtotal += item.line_total_cents

            try:
                decrease_stock(
                    store_id=store_id,
                    product_id=product.id,
                    quantity=quantity,
                    reason=REASON_SALE,
                    reference_type="sale",
                    reference_id=sale.id,
                    reference_line_id=item.id,
                    notes=f"Sale {sale.document_number}",
                    user_id=user_id,
                )
            except InventoryError as exc:
                raise SaleError(str(exc)) from exc

        sale.subtotal_cents = subtotal
        sale.tax_cents = compute_tax_cents(subtotal)
        sale.total_cents = subtotal + sale.tax_cents
        sale.paid_cents = sale.total_cents if paid_cents is None else paid_cents

        if sale.paid_cents < 0:
            raise SaleError("paid_cents must be >= 0")

        unpaid = sale.total_cents - sale.paid_cents
        if unpaid > 0 and customer is None:
            raise SaleError("A customer is required for credit sales")

        if customer is not None:
            customer.total_spent_cents += sale.total_cents
            if unpaid > 0:
                customer.due_balance_cents += unpaid

        return sale

    return run_in_transaction(_op, retry_on=(IntegrityError,))


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise SaleNotFoundError(f"Sale {sale_id} not found")
    return sale
