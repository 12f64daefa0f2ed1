# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import sales_service
from ..services.sales_service import SaleError
from ..validation import (
    ValidationError,
    coerce_int,
    coerce_price_cents,
    field,
    require_json_object,
)


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def record_sale_route():
    """
    Record a completed sale.

    Request body:
    {
        "storeId": 1,                 (optional, defaults to the user's store)
        "customerId": 5,              (optional; required when paidCents < total)
        "paidCents": 11000,           (optional, default: full total)
        "items": [{"productId": 1, "quantity": 2, "unitPriceCents": 5000}]
    }

    Returns:
        201: Sale with items
        400: Invalid input or insufficient stock
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        raw_items = field(data, "items", default=[])
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")

        items = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise ValidationError("Each sale item must be an object")
            items.append({
                "product_id": coerce_int(field(raw, "productId", "product_id"), "productId"),
                "quantity": coerce_int(field(raw, "quantity"), "quantity", minimum=1),
                "unit_price_cents": coerce_price_cents(
                    field(raw, "unitPriceCents", "unit_price_cents"), "unitPriceCents", allow_none=True
                ),
            })

        store_id = coerce_int(field(data, "storeId", "store_id"), "storeId", allow_none=True) or g.current_user.store_id
        if not store_id:
            raise ValidationError("storeId is required")

        sale = sales_service.record_sale(
            store_id=store_id,
            user_id=g.current_user.id,
            items=items,
            customer_id=coerce_int(field(data, "customerId", "customer_id"), "customerId", allow_none=True),
            paid_cents=coerce_int(field(data, "paidCents", "paid_cents"), "paidCents", minimum=0, allow_none=True),
        )

        return jsonify({
            "sale": sale.to_dict(),
            "items": [item.to_dict() for item in sale.items],
        }), 201

    except (SaleError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Failed to record sale", "details": str(e)}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({
            "sale": sale.to_dict(),
            "items": [item.to_dict() for item in sale.items],
        }), 200
    except SaleError as e:
        return jsonify({"error": str(e)}), e.status_code
