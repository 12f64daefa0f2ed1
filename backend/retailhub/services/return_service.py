# Overview: Service-layer operations for returns; encapsulates business logic and database work.

"""
Return Processing Service

WHY: A return gives money (or credit) back against an earlier sale and may
put goods back on the shelf. Both sides have to stay consistent with the
original sale and with inventory.

DESIGN PRINCIPLES:
- Returns reference the original Sale; every ReturnItem references one SaleItem
- Returned quantity is checked cumulatively: the sum over all non-cancelled
  returns of a SaleItem never exceeds its sold quantity
- Refund = total + flat tax (TAX_RATE_BPS), amounts in integer cents
- The sale row is locked for the whole create transaction

RESTOCK POLICY (single source):
  While a return is not cancelled, inventory holds exactly the units of its
  items with (return.restock_items AND item.restock). Restock happens at
  creation; toggling restock_items while pending applies or reverses it;
  approval and completion never restock; cancellation and deletion reverse
  it. Reversals are floored at zero on hand.

CUSTOMER ADJUSTMENT POLICY:
  For refund_type "adjustment" on a sale with a customer, the customer's
  due balance is reduced by refund_amount exactly once, at the transition
  to completed. balance_adjusted_at records that it happened.

LIFECYCLE:
  pending -> approved -> completed
  pending -> cancelled
  completed and cancelled are final; only pending returns can be deleted.
"""

from __future__ import annotations

import secrets
import time
from collections import defaultdict
from datetime import datetime

from ..extensions import db
from ..models import Customer, Product, ProductReturn, ReturnItem, Sale, SaleItem, Store
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import (
    REASON_RETURN,
    REASON_RETURN_REVERSAL,
    InventoryError,
    decrease_stock,
    increase_stock,
)
from .sales_service import compute_tax_cents


class ReturnError(Exception):
    """Raised for return operation errors."""
    status_code = 400


class ReturnNotFoundError(ReturnError):
    status_code = 404


# =============================================================================
# CONSTANTS
# =============================================================================

RETURN_STATUS_PENDING = "pending"
RETURN_STATUS_APPROVED = "approved"
RETURN_STATUS_COMPLETED = "completed"
RETURN_STATUS_CANCELLED = "cancelled"

RETURN_STATUSES = (
    RETURN_STATUS_PENDING,
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_COMPLETED,
    RETURN_STATUS_CANCELLED,
)

RETURN_TRANSITIONS = {
    RETURN_STATUS_PENDING: {RETURN_STATUS_APPROVED, RETURN_STATUS_CANCELLED},
    RETURN_STATUS_APPROVED: {RETURN_STATUS_COMPLETED},
    RETURN_STATUS_COMPLETED: set(),
    RETURN_STATUS_CANCELLED: set(),
}

REFUND_TYPE_REFUND = "refund"
REFUND_TYPE_STORE_CREDIT = "store_credit"
REFUND_TYPE_ADJUSTMENT = "adjustment"
REFUND_TYPES = (REFUND_TYPE_REFUND, REFUND_TYPE_STORE_CREDIT, REFUND_TYPE_ADJUSTMENT)

ITEM_CONDITIONS = ("good", "damaged", "defective", "opened")


# =============================================================================
# HELPERS
# =============================================================================

def _generate_return_number() -> str:
    """RET-<epoch-ms>-<3 random digits>"""
    return f"RET-{int(time.time() * 1000)}-{secrets.randbelow(1000):03d}"


def _unique_return_number() -> str:
    for _ in range(10):
        number = _generate_return_number()
        if not db.session.query(ProductReturn.id).filter_by(return_number=number).first():
            return number
    raise ReturnError("Could not generate a unique return number")


def returned_quantities(sale_item_ids, *, exclude_return_id: int | None = None) -> dict[int, int]:
    """Units already returned per SaleItem across non-cancelled returns."""
    if not sale_item_ids:
        return {}
    query = (
        db.session.query(ReturnItem.sale_item_id, db.func.coalesce(db.func.sum(ReturnItem.quantity), 0))
        .join(ProductReturn, ProductReturn.id == ReturnItem.return_id)
        .filter(
            ReturnItem.sale_item_id.in_(list(sale_item_ids)),
            ProductReturn.status != RETURN_STATUS_CANCELLED,
        )
    )
    if exclude_return_id is not None:
        query = query.filter(ProductReturn.id != exclude_return_id)
    rows = query.group_by(ReturnItem.sale_item_id).all()
    return {sale_item_id: int(quantity) for sale_item_id, quantity in rows}


def _apply_restock(product_return: ProductReturn, user_id: int | None) -> None:
    if not product_return.restock_items:
        return
    for item in product_return.items:
        if not item.restock or item.restocked_quantity:
            continue
        try:
            increase_stock(
                store_id=product_return.store_id,
                product_id=item.product_id,
                quantity=item.quantity,
                reason=REASON_RETURN,
                reference_type="return",
                reference_id=product_return.id,
                reference_line_id=item.id,
                notes=f"Return of {item.quantity} units - {item.return_reason or 'No reason provided'}",
                user_id=user_id,
            )
        except InventoryError as exc:
            raise ReturnError(str(exc)) from exc
        item.restocked_quantity = item.quantity


def _reverse_restock(product_return: ProductReturn, user_id: int | None) -> None:
    for item in product_return.items:
        if not item.restocked_quantity:
            continue
        decrease_stock(
            store_id=product_return.store_id,
            product_id=item.product_id,
            quantity=item.restocked_quantity,
            reason=REASON_RETURN_REVERSAL,
            floor_at_zero=True,
            reference_type="return",
            reference_id=product_return.id,
            reference_line_id=item.id,
            notes=f"Reversal of restock for return {product_return.return_number}",
            user_id=user_id,
        )
        item.restocked_quantity = 0


def _apply_customer_adjustment(product_return: ProductReturn) -> None:
    if product_return.refund_type != REFUND_TYPE_ADJUSTMENT:
        return
    if product_return.customer_id is None or product_return.balance_adjusted_at is not None:
        return

    customer = lock_for_update(db.session.query(Customer).filter_by(id=product_return.customer_id)).first()
    if not customer:
        raise ReturnError(f"Customer {product_return.customer_id} not found")

    customer.due_balance_cents -= product_return.refund_amount_cents
    product_return.balance_adjusted_at = utcnow()


def _get_locked_return(return_id: int) -> ProductReturn:
    product_return = lock_for_update(db.session.query(ProductReturn).filter_by(id=return_id)).first()
    if not product_return:
        raise ReturnNotFoundError("Return not found")
    return product_return


def _normalize_items(items: list[dict]) -> list[dict]:
    normalized = []
    for raw in items:
        sale_item_id = raw.get("sale_item_id")
        quantity = raw.get("quantity")
        if sale_item_id is None:
            raise ReturnError("Each return item needs a sale item id")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ReturnError("Return quantity must be a positive integer")
        condition = raw.get("condition") or "good"
        if condition not in ITEM_CONDITIONS:
            raise ReturnError(f"Invalid condition. Must be one of: {', '.join(ITEM_CONDITIONS)}")
        normalized.append({
            "sale_item_id": sale_item_id,
            "quantity": quantity,
            "return_reason": raw.get("return_reason"),
            "condition": condition,
            "restock": raw.get("restock") is not False,
            "notes": raw.get("notes"),
        })
    return normalized


# =============================================================================
# RETURN CREATION
# =============================================================================

def create_return(
    *,
    sale_id: int,
    items: list[dict],
    store_id: int,
    user_id: int,
    refund_type: str = REFUND_TYPE_REFUND,
    restock_items: bool = True,
    notes: str | None = None,
) -> ProductReturn:
    """
    Create a return (status: pending) against an original sale.

    Args:
        sale_id: Original sale
        items: [{"sale_item_id", "quantity", "return_reason"?, "condition"?,
                 "restock"? (default True), "notes"?}]
        store_id: Store processing the return (inventory goes back here)
        user_id: User creating the return
        refund_type: refund | store_credit | adjustment
        restock_items: Global restock switch, combined with each item's flag

    Raises:
        ReturnError: Missing fields, bad quantities or refund type, or a
            quantity above what is still returnable
        ReturnNotFoundError: Unknown sale or sale item
    """
    if not sale_id or not items or not store_id or not user_id:
        raise ReturnError("Sale ID, return items, store ID, and user ID are required")
    if refund_type not in REFUND_TYPES:
        raise ReturnError(f"Invalid refund type. Must be one of: {', '.join(REFUND_TYPES)}")

    lines = _normalize_items(items)

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise ReturnNotFoundError("Sale not found")
        if not db.session.get(Store, store_id):
            raise ReturnError(f"Store {store_id} not found")

        sale_items = {item.id: item for item in sale.items}

        requested: dict[int, int] = defaultdict(int)
        for line in lines:
            if line["sale_item_id"] not in sale_items:
                raise ReturnNotFoundError(f"Sale item {line['sale_item_id']} not found in original sale")
            requested[line["sale_item_id"]] += line["quantity"]

        already = returned_quantities(requested.keys())
        for sale_item_id, quantity in requested.items():
            sale_item = sale_items[sale_item_id]
            previously = already.get(sale_item_id, 0)
            if quantity + previously > sale_item.quantity:
                product = db.session.get(Product, sale_item.product_id)
                raise ReturnError(
                    f"Return quantity cannot exceed original quantity for item {product.name if product else sale_item_id} "
                    f"(sold {sale_item.quantity}, already returned {previously}, requested {quantity})"
                )

        total = sum(line["quantity"] * sale_items[line["sale_item_id"]].unit_price_cents for line in lines)
        tax = compute_tax_cents(total)

        product_return = ProductReturn(
            return_number=_unique_return_number(),
            sale_id=sale.id,
            customer_id=sale.customer_id,
            store_id=store_id,
            user_id=user_id,
            total_amount_cents=total,
            tax_amount_cents=tax,
            refund_amount_cents=total + tax,
            refund_type=refund_type,
            restock_items=restock_items is not False,
            status=RETURN_STATUS_PENDING,
            notes=notes,
            return_date=utcnow(),
        )
        db.session.add(product_return)
        db.session.flush()

        for line in lines:
            sale_item = sale_items[line["sale_item_id"]]
            product_return.items.append(ReturnItem(
                sale_item_id=sale_item.id,
                product_id=sale_item.product_id,
                quantity=line["quantity"],
                unit_price_cents=sale_item.unit_price_cents,
                total_price_cents=line["quantity"] * sale_item.unit_price_cents,
                return_reason=line["return_reason"],
                condition=line["condition"],
                restock=line["restock"],
                restocked_quantity=0,
                notes=line["notes"],
            ))
        db.session.flush()

        _apply_restock(product_return, user_id)
        return product_return

    return run_in_transaction(_op)


# =============================================================================
# RETURN UPDATES
# =============================================================================

def update_return(
    return_id: int,
    *,
    user_id: int,
    status: str | None = None,
    refund_type: str | None = None,
    restock_items: bool | None = None,
    notes: str | None = None,
) -> ProductReturn:
    """
    Patch a return and/or move it through its lifecycle.

    refund_type and restock_items may only change while pending (they are
    applied before any status change in the same call). notes may always
    change.

    Raises:
        ReturnNotFoundError: Unknown return
        ReturnError: Invalid status, refund type or transition
    """
    if status is not None and status not in RETURN_STATUSES:
        raise ReturnError(f"Invalid status. Must be one of: {', '.join(RETURN_STATUSES)}")
    if refund_type is not None and refund_type not in REFUND_TYPES:
        raise ReturnError(f"Invalid refund type. Must be one of: {', '.join(REFUND_TYPES)}")

    def _op():
        product_return = _get_locked_return(return_id)

        refund_changes = refund_type is not None and refund_type != product_return.refund_type
        restock_changes = restock_items is not None and restock_items != product_return.restock_items
        if (refund_changes or restock_changes) and product_return.status != RETURN_STATUS_PENDING:
            raise ReturnError("Refund type and restock settings can only be changed while the return is pending")

        if status is not None and status != product_return.status:
            if status not in RETURN_TRANSITIONS[product_return.status]:
                raise ReturnError(f"Cannot change return status from {product_return.status} to {status}")

        if refund_changes:
            product_return.refund_type = refund_type

        if restock_changes:
            product_return.restock_items = restock_items
            if restock_items:
                _apply_restock(product_return, user_id)
            else:
                _reverse_restock(product_return, user_id)

        if notes is not None:
            product_return.notes = notes

        if status is not None and status != product_return.status:
            now = utcnow()
            product_return.status = status
            if status == RETURN_STATUS_APPROVED:
                product_return.approved_by_user_id = user_id
                product_return.approved_at = now
            elif status == RETURN_STATUS_COMPLETED:
                product_return.processed_by_user_id = user_id
                product_return.processed_at = now
                _apply_customer_adjustment(product_return)
            elif status == RETURN_STATUS_CANCELLED:
                product_return.cancelled_at = now
                _reverse_restock(product_return, user_id)

        return product_return

    return run_in_transaction(_op)


def delete_return(return_id: int, *, user_id: int | None = None) -> str:
    """
    Hard-delete a pending return and its items, reversing any restock.

    Stock movements stay in the ledger. Returns the deleted return number.
    """
    def _op():
        product_return = _get_locked_return(return_id)
        if product_return.status != RETURN_STATUS_PENDING:
            raise ReturnError("Only pending returns can be deleted")

        _reverse_restock(product_return, user_id)
        return_number = product_return.return_number
        db.session.delete(product_return)
        return return_number

    return run_in_transaction(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_return(return_id: int) -> ProductReturn:
    product_return = db.session.get(ProductReturn, return_id)
    if not product_return:
        raise ReturnNotFoundError("Return not found")
    return product_return


def list_returns(
    *,
    status: str | None = None,
    store_id: int | None = None,
    customer_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[ProductReturn], int]:
    """Newest first. status "all" is the same as no status filter."""
    query = db.session.query(ProductReturn)

    if status and status != "all":
        query = query.filter(ProductReturn.status == status)
    if store_id:
        query = query.filter(ProductReturn.store_id == store_id)
    if customer_id:
        query = query.filter(ProductReturn.customer_id == customer_id)
    if start:
        query = query.filter(ProductReturn.return_date >= start)
    if end:
        query = query.filter(ProductReturn.return_date <= end)

    total = query.count()
    returns = query.order_by(ProductReturn.return_date.desc(), ProductReturn.id.desc()).offset(
        (page - 1) * limit
    ).limit(limit).all()
    return returns, total


def sale_return_history(sale_id: int) -> dict:
    """
    What has been and can still be returned from a sale.

    Returns:
        - sale: Sale details
        - items: per sale item sold / returned / returnable quantities
        - returns: Returns against the sale, newest first
    """
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise ReturnNotFoundError("Sale not found")

    sale_items: list[SaleItem] = list(sale.items)
    already = returned_quantities([item.id for item in sale_items])

    items = []
    for sale_item in sale_items:
        returned = already.get(sale_item.id, 0)
        items.append({
            "sale_item_id": sale_item.id,
            "product_id": sale_item.product_id,
            "product_name": sale_item.product.name if sale_item.product else None,
            "unit_price_cents": sale_item.unit_price_cents,
            "sold_quantity": sale_item.quantity,
            "returned_quantity": returned,
            "returnable_quantity": max(0, sale_item.quantity - returned),
        })

    returns = (
        db.session.query(ProductReturn)
        .filter_by(sale_id=sale_id)
        .order_by(ProductReturn.return_date.desc(), ProductReturn.id.desc())
        .all()
    )

    return {
        "sale": sale.to_dict(),
        "items": items,
        "returns": [r.to_dict() for r in returns],
    }
