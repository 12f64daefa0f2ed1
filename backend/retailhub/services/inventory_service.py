# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Inventory, Product, StockMovement, Store
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from .concurrency import lock_for_update, run_in_transaction
"""
Inventory Invariants (authoritative)

- Inventory.quantity is the on-hand balance for one product in one store.
- Every change to it appends exactly one StockMovement in the same DB
  transaction; movements are never updated or deleted.
- On-hand quantity never goes negative:
    - sales are rejected when stock is insufficient
    - reversals (e.g. undoing a return restock) are floored at zero and the
      movement records the quantity actually removed
- Inventory rows are read with SELECT ... FOR UPDATE before being changed.
- Helpers here do not commit; callers own the transaction.
"""

REASON_RETURN = "return"
REASON_RETURN_REVERSAL = "return_reversal"
REASON_SALE = "sale"
REASON_PURCHASE_RECEIPT = "purchase_receipt"


class InventoryError(Exception):
    """Raised for inventory operation errors."""
    status_code = 400


def get_inventory(product_id: int, store_id: int, *, lock: bool = True) -> Inventory | None:
    query = db.session.query(Inventory).filter_by(product_id=product_id, store_id=store_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_or_create_inventory(product_id: int, store_id: int) -> Inventory:
    """
    Locked inventory row for product x store, created at zero if missing.

    A product that was never stocked in this store can still come back
    through a return; the row is created so the movement has a balance to explain.
    """
    inventory = get_inventory(product_id, store_id)
    if inventory:
        return inventory

    if not db.session.get(Product, product_id):
        raise InventoryError(f"Product {product_id} not found")
    if not db.session.get(Store, store_id):
        raise InventoryError(f"Store {store_id} not found")

    inventory = Inventory(product_id=product_id, store_id=store_id, quantity=0, min_stock=0)
    db.session.add(inventory)
    db.session.flush()
    return inventory


def _append_movement(
    inventory: Inventory,
    *,
    movement_type: str,
    quantity: int,
    reason: str,
    reference_type: str | None,
    reference_id: int | None,
    reference_line_id: int | None,
    notes: str | None,
    user_id: int | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=inventory.product_id,
        store_id=inventory.store_id,
        inventory_id=inventory.id,
        type=movement_type,
        quantity=quantity,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_line_id=reference_line_id,
        notes=notes[:255] if notes else None,
        created_by_user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def increase_stock(
    *,
    store_id: int,
    product_id: int,
    quantity: int,
    reason: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reference_line_id: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    if quantity <= 0:
        raise InventoryError("quantity must be > 0")

    inventory = get_or_create_inventory(product_id, store_id)
    inventory.quantity += quantity

    return _append_movement(
        inventory,
        movement_type=MOVEMENT_IN,
        quantity=quantity,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_line_id=reference_line_id,
        notes=notes,
        user_id=user_id,
    )


def decrease_stock(
    *,
    store_id: int,
    product_id: int,
    quantity: int,
    reason: str,
    floor_at_zero: bool = False,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reference_line_id: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> StockMovement | None:
    """
    Remove stock.

    floor_at_zero=False: insufficient stock raises InventoryError.
    floor_at_zero=True: removes what is on hand (possibly nothing) and the
    movement records the amount actually removed. Returns None when
    nothing could be removed.
    """
    if quantity <= 0:
        raise InventoryError("quantity must be > 0")

    inventory = get_inventory(product_id, store_id)
    on_hand = inventory.quantity if inventory else 0

    if not floor_at_zero and on_hand < quantity:
        raise InventoryError(
            f"Insufficient stock for product {product_id}: on hand {on_hand}, requested {quantity}"
        )

    removed = min(quantity, on_hand)
    if removed == 0:
        return None

    inventory.quantity -= removed
    return _append_movement(
        inventory,
        movement_type=MOVEMENT_OUT,
        quantity=removed,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_line_id=reference_line_id,
        notes=notes,
        user_id=user_id,
    )


def receive_stock(
    *,
    store_id: int,
    product_id: int,
    quantity: int,
    unit_cost_cents: int | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """Purchase receipt: adds stock and records the latest cost price."""
    def _op():
        movement = increase_stock(
            store_id=store_id,
            product_id=product_id,
            quantity=quantity,
            reason=REASON_PURCHASE_RECEIPT,
            reference_type="purchase_receipt",
            notes=reference,
            user_id=user_id,
        )
        if unit_cost_cents is not None:
            movement.inventory.cost_price_cents = unit_cost_cents
        return movement

    return run_in_transaction(_op)


def list_inventory(store_id: int, *, low_stock_only: bool = False) -> list[Inventory]:
    rows = db.session.query(Inventory).filter_by(store_id=store_id).join(Product).order_by(Product.name.asc()).all()
    if low_stock_only:
        rows = [row for row in rows if row.is_low_stock]
    return rows


def list_stock_movements(
    *,
    product_id: int | None = None,
    store_id: int | None = None,
    movement_type: str | None = None,
    reason: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[StockMovement], int]:
    query = db.session.query(StockMovement)

    if product_id:
        query = query.filter(StockMovement.product_id == product_id)
    if store_id:
        query = query.filter(StockMovement.store_id == store_id)
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    if reason:
        query = query.filter(StockMovement.reason == reason)
    if reference_type:
        query = query.filter(StockMovement.reference_type == reference_type)
    if reference_id:
        query = query.filter(StockMovement.reference_id == reference_id)
    if start:
        query = query.filter(StockMovement.created_at >= start)
    if end:
        query = query.filter(StockMovement.created_at <= end)

    total = query.count()
    movements = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).offset(
        (page - 1) * limit
    ).limit(limit).all()
    return movements, total
