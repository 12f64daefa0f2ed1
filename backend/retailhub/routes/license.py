# Overview: Flask API routes for client license activation; parses input and returns JSON responses.

"""
Client License API Routes

Called by POS installations, not by signed-in users: the license key and
activation key are the credentials, so these routes are unauthenticated.

- POST /api/license/activate     licenseKey + clientEmail (+ systemInfo) -> activationKey
- GET  /api/license/check        X-License-Key / X-Activation-Key headers
- POST /api/license/check        body with optional systemInfo fingerprint
- POST /api/license/deactivate   releases the activation's seat

SECURITY:
- Verification fails closed: a fingerprint mismatch revokes the activation
- Responses carry License.summary() only (no domains or hardware ids)
"""

from flask import Blueprint, current_app, jsonify, request

from ..services import license_service
from ..services.license_service import LicenseError
from ..time_utils import to_utc_z
from ..validation import ValidationError, field, require_json_object


license_bp = Blueprint("license", __name__, url_prefix="/api/license")


def _client_ip() -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or request.remote_addr


def _system_info(data: dict) -> dict | None:
    system_info = field(data, "systemInfo", "system_info")
    if system_info is not None and not isinstance(system_info, dict):
        raise ValidationError("systemInfo must be an object")
    return system_info


@license_bp.post("/activate")
def activate_route():
    """
    Activate a license on this installation.

    Request body:
    {
        "licenseKey": "ABCD-1234-EFGH-5678",
        "clientEmail": "owner@acme.example",
        "systemInfo": {"hardwareId": "H1", "domain": "shop.example"}   (optional)
    }

    Returns:
        200: {"success": true, "activationKey": "...", "license": {...}}
        400: Missing fields or malformed key
        403: Status, expiry, email, limit, domain or hardware rejection
        404: License key not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        system_info = _system_info(data) or {}

        activation = license_service.activate_license(
            license_key=field(data, "licenseKey", "license_key"),
            email=field(data, "clientEmail", "client_email", "email"),
            domain=system_info.get("domain"),
            hardware_id=field(system_info, "hardwareId", "hardware_id"),
            ip_address=_client_ip(),
        )

        return jsonify({
            "success": True,
            "activationKey": activation.activation_key,
            "activation": activation.to_dict(),
            "license": activation.license.summary(),
        }), 200

    except (LicenseError, ValidationError) as e:
        current_app.logger.info("License activation rejected: %s", e)
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to activate license")
        return jsonify({"error": "Failed to activate license", "details": str(e)}), 500


@license_bp.get("/check")
def check_route():
    """
    Lightweight verification for app start-up.

    Headers: X-License-Key, X-Activation-Key

    Always 200 for a rejected check: {"activated": false, "message": "..."}.
    """
    activation_key = request.headers.get("X-Activation-Key")
    license_key = request.headers.get("X-License-Key")

    if not activation_key or not license_key:
        return jsonify({"activated": False, "message": "No activation information provided"}), 200

    try:
        license = license_service.verify_activation(
            activation_key=activation_key,
            license_key=license_key,
        )
        return jsonify({"activated": True, "license": license.summary()}), 200

    except LicenseError as e:
        return jsonify({"activated": False, "message": str(e)}), 200
    except Exception as e:
        current_app.logger.exception("Failed to check license")
        return jsonify({
            "activated": False,
            "error": "Failed to verify license",
            "details": str(e),
        }), 500


@license_bp.post("/check")
def verify_route():
    """
    Full verification with fingerprint.

    Request body:
    {
        "activationKey": "...",
        "licenseKey": "...",
        "systemInfo": {"hardwareId": "H1", "domain": "shop.example"}   (optional)
    }

    Returns:
        200: {"valid": true, "message": "...", "license": {...}}
        403: Key mismatch, inactive/expired license, or security violation
        404: Activation not found or inactive
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        license = license_service.verify_activation(
            activation_key=field(data, "activationKey", "activation_key"),
            license_key=field(data, "licenseKey", "license_key"),
            system_info=_system_info(data),
        )
        return jsonify({
            "valid": True,
            "message": "License verified successfully",
            "license": license.summary(),
        }), 200

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to verify license")
        return jsonify({"valid": False, "error": "Failed to verify license", "details": str(e)}), 500


@license_bp.post("/deactivate")
def deactivate_route():
    """
    Release this installation's activation.

    Request body: {"activationKey": "...", "licenseKey": "...", "reason": "..." (optional)}
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        activation = license_service.deactivate_activation(
            activation_key=field(data, "activationKey", "activation_key"),
            license_key=field(data, "licenseKey", "license_key"),
            reason=field(data, "reason"),
        )
        return jsonify({
            "success": True,
            "message": "License deactivated successfully",
            "deactivatedAt": to_utc_z(activation.deactivated_at),
        }), 200

    except (LicenseError, ValidationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to deactivate license")
        return jsonify({"error": "Failed to deactivate license", "details": str(e)}), 500
