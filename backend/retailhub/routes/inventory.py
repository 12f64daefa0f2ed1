# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import inventory_service
from ..services.inventory_service import InventoryError
from ..validation import (
    ValidationError,
    coerce_bool,
    coerce_datetime,
    coerce_int,
    coerce_price_cents,
    coerce_str,
    field,
    require_json_object,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _store_id(value) -> int:
    store_id = coerce_int(value, "storeId", allow_none=True) or g.current_user.store_id
    if not store_id:
        raise ValidationError("storeId is required")
    return store_id


@inventory_bp.get("")
@require_auth
def list_inventory_route():
    """
    On-hand stock for a store.

    Query params:
    - storeId: defaults to the user's store
    - lowStock: true to list rows at or below their reorder threshold
    """
    try:
        store_id = _store_id(request.args.get("storeId") or request.args.get("store_id"))
        low_stock_only = coerce_bool(request.args.get("lowStock"), "lowStock", default=False)
        rows = inventory_service.list_inventory(store_id, low_stock_only=low_stock_only)
        return jsonify({"store_id": store_id, "inventory": [row.to_dict() for row in rows]}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), e.status_code


@inventory_bp.post("/receive")
@require_auth
@require_role("admin", "manager")
def receive_stock_route():
    """
    Receive stock (purchase receipt).

    Request body:
    {
        "storeId": 1,
        "productId": 1,
        "quantity": 10,
        "unitCostCents": 2500,     (optional)
        "reference": "PO-1001"     (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        movement = inventory_service.receive_stock(
            store_id=_store_id(field(data, "storeId", "store_id")),
            product_id=coerce_int(field(data, "productId", "product_id"), "productId"),
            quantity=coerce_int(field(data, "quantity"), "quantity", minimum=1),
            unit_cost_cents=coerce_price_cents(
                field(data, "unitCostCents", "unit_cost_cents"), "unitCostCents", allow_none=True
            ),
            reference=coerce_str(field(data, "reference"), "reference", max_length=255),
            user_id=g.current_user.id,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "inventory": movement.inventory.to_dict(),
        }), 201

    except (InventoryError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Failed to receive stock", "details": str(e)}), 500


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    """
    Stock movement ledger, newest first.

    Query params: productId, storeId, type (in|out), reason, referenceType,
    referenceId, startDate, endDate, page, limit
    """
    try:
        args = request.args
        page = coerce_int(args.get("page", "1"), "page", minimum=1)
        limit = min(coerce_int(args.get("limit", "20"), "limit", minimum=1), 100)

        movements, total = inventory_service.list_stock_movements(
            product_id=coerce_int(args.get("productId"), "productId", allow_none=True),
            store_id=coerce_int(args.get("storeId"), "storeId", allow_none=True),
            movement_type=args.get("type"),
            reason=args.get("reason"),
            reference_type=args.get("referenceType"),
            reference_id=coerce_int(args.get("referenceId"), "referenceId", allow_none=True),
            start=coerce_datetime(args.get("startDate") or None, "startDate"),
            end=coerce_datetime(args.get("endDate") or None, "endDate"),
            page=page,
            limit=limit,
        )

        return jsonify({
            "movements": [m.to_dict() for m in movements],
            "pagination": {"page": page, "limit": limit, "total": total},
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), e.status_code
