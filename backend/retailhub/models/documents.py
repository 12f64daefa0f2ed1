from __future__ import annotations

from ..extensions import db
from retailhub.time_utils import to_utc_z


class ProductReturn(db.Model):
    """
    Product return document.

    LIFECYCLE:
    1. pending: Return created, items restocked if requested
    2. approved: Manager approved
    3. completed: Refund issued; adjustment refunds reduce the customer's due balance here
    4. cancelled: Abandoned while pending; any restock is reversed

    Only pending returns may be deleted. completed and cancelled are final.

    DESIGN PRINCIPLES:
    - Returns reference the original Sale for traceability
    - ReturnItems reference original SaleItems; the summed returned quantity
      per SaleItem across non-cancelled returns never exceeds the sold quantity
    - customer_id/store_id/user_id are denormalized for reporting
    """
    __tablename__ = "product_returns"
    __table_args__ = (
        db.Index("ix_product_returns_store_status_date", "store_id", "status", "return_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "RET-1718000000000-042")
    return_number = db.Column(db.String(64), nullable=False, unique=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # All amounts in cents
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # refund | store_credit | adjustment
    refund_type = db.Column(db.String(16), nullable=False, default="refund")
    restock_items = db.Column(db.Boolean, nullable=False, default=True)

    # pending | approved | completed | cancelled
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)

    return_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Set when the customer's due balance was reduced (adjustment refunds)
    balance_adjusted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("returns", lazy=True))
    store = db.relationship("Store", backref=db.backref("returns", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])
    processed_by = db.relationship("User", foreign_keys=[processed_by_user_id])
    items = db.relationship(
        "ReturnItem",
        back_populates="product_return",
        cascade="all, delete-orphan",
        order_by="ReturnItem.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "return_number": self.return_number,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "store_id": self.store_id,
            "user_id": self.user_id,
            "total_amount_cents": self.total_amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "refund_amount_cents": self.refund_amount_cents,
            "refund_type": self.refund_type,
            "restock_items": self.restock_items,
            "status": self.status,
            "notes": self.notes,
            "return_date": to_utc_z(self.return_date),
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "processed_by_user_id": self.processed_by_user_id,
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "balance_adjusted_at": to_utc_z(self.balance_adjusted_at) if self.balance_adjusted_at else None,
            "item_count": len(self.items),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReturnItem(db.Model):
    """
    Individual line on a return, tied to one original SaleItem.

    unit_price_cents is a snapshot of the sale price. restocked_quantity is
    how many units of this line are currently back in inventory (0 or quantity).
    """
    __tablename__ = "return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("product_returns.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    return_reason = db.Column(db.String(255), nullable=True)
    condition = db.Column(db.String(32), nullable=False, default="good")
    restock = db.Column(db.Boolean, nullable=False, default=True)
    restocked_quantity = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product_return = db.relationship("ProductReturn", back_populates="items")
    sale_item = db.relationship("SaleItem", backref=db.backref("return_items", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "return_reason": self.return_reason,
            "condition": self.condition,
            "restock": self.restock,
            "restocked_quantity": self.restocked_quantity,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Counter behind sequential document numbers (S-000001, ...).

    WHY: Prevent race conditions when numbering sales. The counter row is
    bumped with a single UPDATE, which holds its row lock until the
    surrounding transaction ends.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
