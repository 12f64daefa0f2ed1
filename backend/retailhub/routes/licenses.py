# Overview: Flask API routes for license administration; parses input and returns JSON responses.

"""
License Administration API Routes

DESIGN:
- Issue licenses one at a time or in batches of up to 100
- Administrative status changes (suspend, cancel, reinstate, expire)
- Inspect activations
- Edit the hardware binding policy of a license
- Monitoring overview with per-license metrics and alerts
- License templates (named terms) and issuing from them

SECURITY:
- admin role required for every route in this blueprint
- Bodies accept camelCase (clientName) and snake_case (client_name) keys
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import license_service, license_template_service
from ..services.license_service import LicenseError
from ..validation import (
    ValidationError,
    coerce_bool,
    coerce_int,
    coerce_price_cents,
    coerce_str,
    coerce_string_list,
    field,
    require_json_object,
)


licenses_bp = Blueprint("licenses", __name__, url_prefix="/api/licenses")


def _license_fields(data: dict) -> dict:
    hardware_binding = field(data, "hardwareBinding", "hardware_binding")
    if hardware_binding is not None and not isinstance(hardware_binding, dict):
        raise ValidationError("hardwareBinding must be an object")

    return {
        "license_type": coerce_str(field(data, "type", "license_type"), "type"),
        "client_name": coerce_str(field(data, "clientName", "client_name"), "clientName", max_length=255),
        "client_email": coerce_str(field(data, "clientEmail", "client_email"), "clientEmail", max_length=255),
        "max_users": coerce_int(field(data, "maxUsers", "max_users", default=1), "maxUsers", minimum=1),
        "max_stores": coerce_int(field(data, "maxStores", "max_stores", default=1), "maxStores", minimum=1),
        "max_activations": coerce_int(
            field(data, "maxActivations", "max_activations"), "maxActivations", minimum=1, allow_none=True
        ),
        "allowed_domains": coerce_string_list(field(data, "allowedDomains", "allowed_domains"), "allowedDomains"),
        "hardware_binding": hardware_binding,
        "notes": coerce_str(field(data, "notes"), "notes"),
        "created_by": coerce_str(field(data, "createdBy", "created_by"), "createdBy") or g.current_user.username,
    }


# =============================================================================
# ISSUING
# =============================================================================

@licenses_bp.get("")
@require_auth
@require_role("admin")
def list_licenses_route():
    """
    List licenses, newest first.

    Query params:
    - status: active | expired | suspended | cancelled
    - email: client email (case-insensitive)
    """
    try:
        licenses = license_service.list_licenses(
            status=request.args.get("status"),
            client_email=request.args.get("email"),
        )
        return jsonify({"licenses": [lic.to_dict() for lic in licenses]}), 200

    except Exception as e:
        current_app.logger.exception("Failed to list licenses")
        return jsonify({"error": "Failed to fetch licenses", "details": str(e)}), 500


@licenses_bp.post("")
@require_auth
@require_role("admin")
def create_license_route():
    """
    Issue one license.

    Request body:
    {
        "type": "lifetime" | "monthly" | "yearly",
        "clientName": "Acme Corner Shop",
        "clientEmail": "owner@acme.example",
        "maxUsers": 1,           (optional)
        "maxStores": 1,          (optional)
        "maxActivations": 1,     (optional, default LICENSE_MAX_ACTIVATIONS_DEFAULT)
        "allowedDomains": [...], (optional)
        "hardwareBinding": {...},(optional)
        "notes": "..."           (optional)
    }

    Returns:
        201: License created
        400: Missing fields or invalid type
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        license = license_service.create_license(**_license_fields(data))
        return jsonify({"license": license.to_dict()}), 201

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to create license")
        return jsonify({"error": "Failed to create license", "details": str(e)}), 500


@licenses_bp.post("/generate")
@require_auth
@require_role("admin")
def generate_licenses_route():
    """
    Issue a batch of licenses with the same terms.

    Request body: same fields as POST /api/licenses plus "count" (1..100).
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        count = coerce_int(field(data, "count", default=1), "count", minimum=1)
        licenses = license_service.generate_batch(count, **_license_fields(data))

        return jsonify({
            "licenses": [lic.to_dict() for lic in licenses],
            "licenseKeys": [lic.license_key for lic in licenses],
            "count": len(licenses),
            "message": f"Generated {len(licenses)} licenses successfully",
        }), 201

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to generate licenses")
        return jsonify({"error": "Failed to generate licenses", "details": str(e)}), 500


# =============================================================================
# SINGLE LICENSE
# =============================================================================

@licenses_bp.get("/<int:license_id>")
@require_auth
@require_role("admin")
def get_license_route(license_id: int):
    try:
        license = license_service.get_license(license_id)
        return jsonify({"license": license.to_dict()}), 200
    except LicenseError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to fetch license")
        return jsonify({"error": "Failed to fetch license", "details": str(e)}), 500


@licenses_bp.put("/<int:license_id>/status")
@require_auth
@require_role("admin")
def update_license_status_route(license_id: int):
    """
    Administrative status change.

    Request body: {"status": "suspended"}

    Returns:
        200: Updated license
        400: Unknown status or transition out of expired/cancelled
        404: License not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        status = coerce_str(field(data, "status"), "status", allow_none=False)
        license = license_service.update_license_status(license_id, status)
        return jsonify({"license": license.to_dict()}), 200

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to update license status")
        return jsonify({"error": "Failed to update license status", "details": str(e)}), 500


@licenses_bp.get("/<int:license_id>/activations")
@require_auth
@require_role("admin")
def list_activations_route(license_id: int):
    """
    Activations of a license, newest first.

    Query params:
    - active: true to list live activations only
    """
    try:
        active_only = coerce_bool(request.args.get("active"), "active", default=False)
        activations = license_service.list_activations(license_id, active_only=active_only)
        return jsonify({
            "license_id": license_id,
            "activations": [a.to_dict() for a in activations],
        }), 200

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to list activations")
        return jsonify({"error": "Failed to fetch activations", "details": str(e)}), 500


# =============================================================================
# HARDWARE BINDING
# =============================================================================

@licenses_bp.post("/hardware-binding")
@require_auth
@require_role("admin")
def update_hardware_binding_route():
    """
    Edit a license's hardware binding policy.

    Request body:
    {
        "licenseId": 1,
        "action": "add" | "remove" | "update-settings",   (default: add)
        "domain": "shop.example",                          (optional)
        "hardwareId": "H1",                                (optional)
        "maxHardwareBindings": 2,                          (update-settings)
        "strictMode": true                                 (update-settings)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        license_id = field(data, "licenseId", "license_id")
        if license_id is None:
            return jsonify({"error": "License ID is required"}), 400

        license = license_service.update_hardware_binding(
            coerce_int(license_id, "licenseId"),
            action=field(data, "action", default="add"),
            domain=coerce_str(field(data, "domain"), "domain", max_length=255),
            hardware_id=coerce_str(field(data, "hardwareId", "hardware_id"), "hardwareId", max_length=255),
            max_hardware_bindings=field(data, "maxHardwareBindings", "max_hardware_bindings"),
            strict_mode=field(data, "strictMode", "strict_mode"),
        )

        return jsonify({
            "success": True,
            "hardwareBinding": license.hardware_binding.to_dict(),
            "license": license.to_dict(),
        }), 200

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to update hardware binding")
        return jsonify({"error": "Failed to update hardware binding", "details": str(e)}), 500


@licenses_bp.get("/hardware-binding")
@require_auth
@require_role("admin")
def hardware_binding_status_route():
    """
    Binding policy of a license and whether the calling host passes it.

    Query params:
    - licenseId: required
    """
    license_id = request.args.get("licenseId", type=int) or request.args.get("license_id", type=int)
    if not license_id:
        return jsonify({"error": "License ID is required"}), 400

    try:
        status = license_service.hardware_binding_status(
            license_id,
            host=request.host.split(":")[0],
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.headers.get("X-Forwarded-For") or request.remote_addr,
        )
        return jsonify(status), 200

    except LicenseError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to fetch hardware binding status")
        return jsonify({"error": "Failed to fetch hardware binding status", "details": str(e)}), 500


# =============================================================================
# MONITORING
# =============================================================================

@licenses_bp.get("/monitoring")
@require_auth
@require_role("admin")
def license_monitoring_route():
    """
    License health overview.

    Query params:
    - licenseId: optional; metrics and alerts for one license

    Without licenseId:
        {"statusOverview": {total, active, expired, suspended, cancelled, expiringSoon},
         "licenses": [...]}
    With licenseId:
        {"license": {...}, "activations": [...], "metrics": {...}, "alerts": [...]}
    """
    try:
        license_id = coerce_int(
            field(request.args, "licenseId", "license_id"), "licenseId", minimum=1, allow_none=True
        )
        return jsonify(license_service.license_monitoring(license_id)), 200

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to get license monitoring data")
        return jsonify({"error": "Failed to get license monitoring data", "details": str(e)}), 500


# =============================================================================
# TEMPLATES
# =============================================================================

def _template_fields(data: dict, *, partial: bool) -> dict:
    """Template body -> service kwargs. With partial=True absent keys are left out."""
    raw = {
        "name": coerce_str(field(data, "name"), "name", max_length=120),
        "description": coerce_str(field(data, "description"), "description"),
        "license_type": coerce_str(field(data, "type", "license_type"), "type"),
        "max_users": coerce_int(field(data, "maxUsers", "max_users"), "maxUsers", allow_none=True),
        "max_stores": coerce_int(field(data, "maxStores", "max_stores"), "maxStores", allow_none=True),
        "max_activations": coerce_int(
            field(data, "maxActivations", "max_activations"), "maxActivations", allow_none=True
        ),
        "price_cents": coerce_price_cents(field(data, "priceCents", "price_cents"), "priceCents", allow_none=True),
        "features": coerce_string_list(field(data, "features"), "features"),
        "is_active": coerce_bool(field(data, "isActive", "is_active"), "isActive"),
    }
    if partial:
        raw["type"] = raw.pop("license_type")
    return {k: v for k, v in raw.items() if v is not None}


@licenses_bp.get("/templates")
@require_auth
@require_role("admin")
def list_templates_route():
    """
    License templates by name.

    Query params:
    - all: true to include inactive templates
    """
    try:
        include_inactive = coerce_bool(request.args.get("all"), "all", default=False)
        templates = license_template_service.list_templates(include_inactive=include_inactive)
        return jsonify({"templates": [t.to_dict() for t in templates]}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to list license templates")
        return jsonify({"error": "Failed to get license templates", "details": str(e)}), 500


@licenses_bp.post("/templates")
@require_auth
@require_role("admin")
def create_template_route():
    """
    Create a license template.

    Request body:
    {
        "name": "Professional POS",
        "type": "yearly",
        "description": "...",        (optional)
        "maxUsers": 5,               (optional, default 1)
        "maxStores": 3,              (optional, default 1)
        "maxActivations": 5,         (optional, default 1)
        "priceCents": 99900,         (optional, default 0)
        "features": ["POS", ...],    (optional)
        "isActive": true             (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        fields = _template_fields(data, partial=False)
        if "name" not in fields or "license_type" not in fields:
            return jsonify({"error": "Name and type are required"}), 400

        template = license_template_service.create_template(**fields)
        return jsonify({"template": template.to_dict(), "message": "Template created successfully"}), 201

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to create license template")
        return jsonify({"error": "Failed to create template", "details": str(e)}), 500


@licenses_bp.get("/templates/<int:template_id>")
@require_auth
@require_role("admin")
def get_template_route(template_id: int):
    try:
        template = license_template_service.get_template(template_id)
        return jsonify({"template": template.to_dict()}), 200
    except LicenseError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to fetch license template")
        return jsonify({"error": "Failed to get license template", "details": str(e)}), 500


@licenses_bp.put("/templates/<int:template_id>")
@require_auth
@require_role("admin")
def update_template_route(template_id: int):
    """Patch a template; body takes the same keys as create, all optional."""
    try:
        data = require_json_object(request.get_json(silent=True))
        template = license_template_service.update_template(template_id, **_template_fields(data, partial=True))
        return jsonify({"template": template.to_dict(), "message": "Template updated successfully"}), 200

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to update license template")
        return jsonify({"error": "Failed to update template", "details": str(e)}), 500


@licenses_bp.delete("/templates/<int:template_id>")
@require_auth
@require_role("admin")
def delete_template_route(template_id: int):
    """Delete a template. Licenses already issued from it are unaffected."""
    try:
        license_template_service.delete_template(template_id)
        return jsonify({"message": "Template deleted successfully"}), 200

    except LicenseError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to delete license template")
        return jsonify({"error": "Failed to delete template", "details": str(e)}), 500


@licenses_bp.post("/templates/<int:template_id>/generate")
@require_auth
@require_role("admin")
def generate_from_template_route(template_id: int):
    """
    Issue licenses with a template's terms.

    Request body:
    {
        "clientEmail": "owner@acme.example",
        "clientName": "Acme Corner Shop",   (optional, default "<template> License")
        "count": 1                          (optional, 1..50)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        template, licenses = license_template_service.generate_from_template(
            template_id,
            client_email=coerce_str(field(data, "clientEmail", "client_email"), "clientEmail", max_length=255),
            client_name=coerce_str(field(data, "clientName", "client_name"), "clientName", max_length=255),
            count=coerce_int(field(data, "count", default=1), "count"),
            created_by=g.current_user.username,
        )

        return jsonify({
            "licenses": [lic.to_dict() for lic in licenses],
            "count": len(licenses),
            "template": template.name,
            "message": f"Generated {len(licenses)} licenses from template",
        }), 201

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to generate licenses from template")
        return jsonify({"error": "Failed to process template request", "details": str(e)}), 500
