# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/retailhub/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- Create returns against an original sale (items restocked on creation)
- Approve / complete / cancel through PUT with a status field
- Delete pending returns (restock reversed)
- Return history per sale and aggregated reports

SECURITY:
- Any signed-in user may create, list and view returns
- manager or admin required for status changes, deletion and reports
- The acting user is always the authenticated user (body userId is ignored)
"""

import math

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import reporting_service, return_service
from ..services.reporting_service import ReportError
from ..services.return_service import ReturnError
from ..validation import (
    ValidationError,
    coerce_bool,
    coerce_datetime,
    coerce_int,
    coerce_str,
    field,
    require_json_object,
)


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")

APPROVER_ROLES = ("admin", "manager")
MAX_PAGE_SIZE = 100


def _return_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, list):
        raise ValidationError("returnItems must be a list")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Each return item must be an object")
        items.append({
            "sale_item_id": coerce_int(field(raw, "saleItemId", "sale_item_id"), "saleItemId"),
            "quantity": coerce_int(field(raw, "quantity"), "quantity"),
            "return_reason": coerce_str(field(raw, "returnReason", "return_reason"), "returnReason", max_length=255),
            "condition": coerce_str(field(raw, "condition"), "condition", max_length=32),
            "restock": coerce_bool(field(raw, "restock"), "restock", default=True),
            "notes": coerce_str(field(raw, "notes"), "notes"),
        })
    return items


# =============================================================================
# RETURN CREATION
# =============================================================================

@returns_bp.post("")
@require_auth
def create_return_route():
    """
    Create a new return (status: pending).

    Request body:
    {
        "saleId": 123,
        "storeId": 1,                        (optional, defaults to the user's store)
        "refundType": "refund" | "store_credit" | "adjustment",
        "restockItems": true,                (optional, default: true)
        "notes": "...",                      (optional)
        "returnItems": [
            {"saleItemId": 456, "quantity": 2, "returnReason": "Wrong size",
             "condition": "good", "restock": true}
        ]
    }

    Returns:
        201: Return created
        400: Invalid input or quantity above what is still returnable
        404: Sale or sale item not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        sale_id = coerce_int(field(data, "saleId", "sale_id"), "saleId", allow_none=True)
        store_id = coerce_int(field(data, "storeId", "store_id"), "storeId", allow_none=True)
        raw_items = field(data, "returnItems", "return_items", "items")

        product_return = return_service.create_return(
            sale_id=sale_id,
            items=_return_items(raw_items) if raw_items is not None else [],
            store_id=store_id or g.current_user.store_id,
            user_id=g.current_user.id,
            refund_type=field(data, "refundType", "refund_type", default="refund"),
            restock_items=coerce_bool(field(data, "restockItems", "restock_items"), "restockItems", default=True),
            notes=coerce_str(field(data, "notes"), "notes"),
        )

        return jsonify({
            "success": True,
            "return": product_return.to_dict(include_items=True),
            "message": "Return created successfully",
        }), 201

    except (ReturnError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Failed to create return", "details": str(e)}), 500


# =============================================================================
# RETURN QUERIES
# =============================================================================

@returns_bp.get("")
@require_auth
def list_returns_route():
    """
    List returns, newest first.

    Query params:
    - status: pending | approved | completed | cancelled | all
    - storeId, customerId
    - startDate, endDate: ISO-8601
    - page (default 1), limit (default 10, max 100)
    """
    try:
        args = request.args
        page = coerce_int(args.get("page", "1"), "page", minimum=1)
        limit = min(coerce_int(args.get("limit", "10"), "limit", minimum=1), MAX_PAGE_SIZE)

        returns, total = return_service.list_returns(
            status=args.get("status"),
            store_id=coerce_int(args.get("storeId") or args.get("store_id"), "storeId", allow_none=True),
            customer_id=coerce_int(args.get("customerId") or args.get("customer_id"), "customerId", allow_none=True),
            start=coerce_datetime(args.get("startDate") or None, "startDate"),
            end=coerce_datetime(args.get("endDate") or None, "endDate"),
            page=page,
            limit=limit,
        )

        return jsonify({
            "returns": [r.to_dict(include_items=True) for r in returns],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Failed to fetch returns", "details": str(e)}), 500


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    try:
        product_return = return_service.get_return(return_id)
        return jsonify({"return": product_return.to_dict(include_items=True)}), 200
    except ReturnError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to fetch return")
        return jsonify({"error": "Failed to fetch return", "details": str(e)}), 500


@returns_bp.get("/sales/<int:sale_id>")
@require_auth
def sale_return_history_route(sale_id: int):
    """
    What has been and can still be returned from a sale.

    WHY: The return screen needs per-line returnable quantities before
    the cashier builds a request.
    """
    try:
        return jsonify(return_service.sale_return_history(sale_id)), 200
    except ReturnError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to fetch sale return history")
        return jsonify({"error": "Failed to fetch sale return history", "details": str(e)}), 500


# =============================================================================
# RETURN UPDATES
# =============================================================================

@returns_bp.put("/<int:return_id>")
@require_auth
def update_return_route(return_id: int):
    """
    Patch a return and/or change its status.

    Request body (all optional):
    {
        "status": "approved" | "completed" | "cancelled",   (manager/admin)
        "refundType": "...",                               (pending only)
        "restockItems": false,                             (pending only)
        "notes": "..."
    }

    Returns:
        200: Updated return
        400: Invalid transition or field change outside pending
        403: Status change without manager/admin role
        404: Return not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        status = coerce_str(field(data, "status"), "status")

        if status is not None and g.current_user.role not in APPROVER_ROLES:
            return jsonify({
                "error": "Permission denied",
                "required_roles": list(APPROVER_ROLES),
            }), 403

        product_return = return_service.update_return(
            return_id,
            user_id=g.current_user.id,
            status=status,
            refund_type=coerce_str(field(data, "refundType", "refund_type"), "refundType"),
            restock_items=coerce_bool(field(data, "restockItems", "restock_items"), "restockItems"),
            notes=coerce_str(field(data, "notes"), "notes"),
        )

        return jsonify({
            "success": True,
            "return": product_return.to_dict(include_items=True),
            "message": "Return updated successfully",
        }), 200

    except (ReturnError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to update return")
        return jsonify({"error": "Failed to update return", "details": str(e)}), 500


@returns_bp.delete("/<int:return_id>")
@require_auth
@require_role(*APPROVER_ROLES)
def delete_return_route(return_id: int):
    """
    Delete a pending return.

    Restocked units are taken back out of inventory (never below zero);
    the stock movements stay in the ledger.
    """
    try:
        return_number = return_service.delete_return(return_id, user_id=g.current_user.id)
        return jsonify({
            "success": True,
            "message": f"Return {return_number} deleted successfully",
        }), 200

    except ReturnError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to delete return")
        return jsonify({"error": "Failed to delete return", "details": str(e)}), 500


# =============================================================================
# REPORTS
# =============================================================================

@returns_bp.get("/reports")
@require_auth
@require_role(*APPROVER_ROLES)
def return_reports_route():
    """
    Aggregated reports over returns.

    Query params:
    - type: summary (default) | detailed | analytics
    - storeId: optional ("all" = every store)
    - startDate, endDate: ISO-8601, optional
    """
    try:
        args = request.args
        raw_store = args.get("storeId") or args.get("store_id")
        store_id = None if raw_store in (None, "", "all") else coerce_int(raw_store, "storeId")

        report = reporting_service.return_reports(
            report_type=args.get("type", "summary"),
            store_id=store_id,
            start=args.get("startDate"),
            end=args.get("endDate"),
        )
        return jsonify(report), 200

    except (ReportError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to generate return reports")
        return jsonify({"error": "Failed to generate return reports", "details": str(e)}), 500
