# Overview: Service-layer operations for licensing; encapsulates business logic and database work.

"""
License Activation & Verification Service

WHY: Each POS installation proves it is entitled to run by holding a
(license key, activation key) pair. The license row carries the commercial
limits; activation rows record which machines currently hold a seat.

DESIGN PRINCIPLES:
- Licenses are never deleted, only status-flipped
- Activations are soft-deactivated with a recorded reason
- A hardware id carries at most one live activation at a time (supersede, not reject)
- Activate is one transaction with the license row locked, so the
  activation-count check and the insert cannot race
- Verification fails closed: a fingerprint mismatch deactivates the activation

LIFECYCLE (License.status):
  active -> expired                   (lazily on any read or use past expires_at, or by the sweep)
  active -> suspended | cancelled     (administrative)
  suspended -> active | cancelled | expired
  expired, cancelled                  (final)
"""

from __future__ import annotations

import math
import re
import secrets
import string

from flask import current_app

from ..extensions import db
from ..license_policy import HardwareBindingPolicy, domain_allowed
from ..models import License, LicenseActivation
from ..models.licensing import LICENSE_STATUSES, LICENSE_TYPES
from ..time_utils import add_months, as_utc_naive, to_utc_z, utcnow
from .concurrency import lock_for_update, run_in_transaction


class LicenseError(Exception):
    """Business-rule rejection on a license operation."""
    status_code = 403


class LicenseValidationError(LicenseError):
    status_code = 400


class LicenseNotFoundError(LicenseError):
    status_code = 404


class LicenseExpiredError(LicenseError):
    status_code = 403


class ActivationLimitError(LicenseError):
    status_code = 403


class SecurityViolationError(LicenseError):
    """Verification fingerprint did not match; the activation was revoked."""
    status_code = 403


KEY_ALPHABET = string.ascii_uppercase + string.digits
LICENSE_KEY_PATTERN = re.compile(r"^[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$")

MAX_BATCH_SIZE = 100
KEY_GENERATION_ATTEMPTS = 10

REASON_SUPERSEDED = "New activation on same hardware"
REASON_SECURITY_VIOLATION = "Security violation - system mismatch"
REASON_MANUAL = "Manual deactivation"

BINDING_ACTIONS = ("add", "remove", "update-settings")

# Statuses that flip to expired once expires_at has passed
EXPIRABLE_STATUSES = ("active", "suspended")

# Administrative transitions; expiry past expires_at is handled separately.
ALLOWED_STATUS_TRANSITIONS = {
    "active": {"suspended", "cancelled", "expired"},
    "suspended": {"active", "cancelled", "expired"},
    "expired": set(),
    "cancelled": set(),
}


# =============================================================================
# KEYS
# =============================================================================

def _random_key(length: int, group: int) -> str:
    chars = "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))
    return "-".join(chars[i:i + group] for i in range(0, length, group))


def generate_license_key() -> str:
    """XXXX-XXXX-XXXX-XXXX"""
    return _random_key(16, 4)


def generate_activation_key() -> str:
    """XXXXXXXX-XXXXXXXX-XXXXXXXX-XXXXXXXX"""
    return _random_key(32, 8)


def normalize_key(key) -> str:
    if not isinstance(key, str):
        return ""
    return key.strip().upper()


def is_valid_license_key(key: str) -> bool:
    return bool(LICENSE_KEY_PATTERN.match(key))


def _unique_key(generator, column, reserved: set[str] | None = None) -> str:
    reserved = reserved or set()
    for _ in range(KEY_GENERATION_ATTEMPTS):
        key = generator()
        if key in reserved:
            continue
        if not db.session.query(column).filter(column == key).first():
            return key
    raise LicenseError("Could not generate a unique key")


# =============================================================================
# ISSUING
# =============================================================================

def _expiry_for(license_type: str):
    if license_type == "monthly":
        return add_months(utcnow(), 1)
    if license_type == "yearly":
        return add_months(utcnow(), 12)
    return None


def _coerce_policy(hardware_binding) -> HardwareBindingPolicy | None:
    if hardware_binding is None or isinstance(hardware_binding, HardwareBindingPolicy):
        return hardware_binding
    return HardwareBindingPolicy.from_dict(hardware_binding)


def _build_license(
    *,
    license_type: str,
    client_name: str,
    client_email: str,
    max_users: int = 1,
    max_stores: int = 1,
    max_activations: int | None = None,
    allowed_domains: list[str] | None = None,
    hardware_binding=None,
    notes: str | None = None,
    created_by: str | None = None,
    reserved_keys: set[str] | None = None,
) -> License:
    if not license_type or not client_name or not client_email:
        raise LicenseValidationError("Type, client name, and client email are required")
    if license_type not in LICENSE_TYPES:
        raise LicenseValidationError("Invalid license type. Must be lifetime, monthly, or yearly")

    if max_activations is None:
        max_activations = current_app.config.get("LICENSE_MAX_ACTIVATIONS_DEFAULT", 1)
    for name, value in (("maxUsers", max_users), ("maxStores", max_stores), ("maxActivations", max_activations)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise LicenseValidationError(f"{name} must be a positive integer")

    if allowed_domains is not None and (
        not isinstance(allowed_domains, list) or not all(isinstance(d, str) for d in allowed_domains)
    ):
        raise LicenseValidationError("allowedDomains must be a list of strings")

    license = License(
        license_key=_unique_key(generate_license_key, License.license_key, reserved_keys),
        type=license_type,
        status="active",
        client_name=client_name,
        client_email=client_email,
        max_users=max_users,
        max_stores=max_stores,
        max_activations=max_activations,
        activation_count=0,
        expires_at=_expiry_for(license_type),
        notes=notes,
        created_by=created_by or "system",
    )
    license.allowed_domains = allowed_domains
    license.hardware_binding = _coerce_policy(hardware_binding)
    return license


def create_license(**fields) -> License:
    """
    Issue one license.

    Keyword args: license_type, client_name, client_email, max_users,
    max_stores, max_activations, allowed_domains, hardware_binding
    (dict or HardwareBindingPolicy), notes, created_by.

    Raises:
        LicenseValidationError: Missing fields, unknown type or bad limits
        ValidationError: Malformed hardware binding policy
    """
    def _op():
        license = _build_license(**fields)
        db.session.add(license)
        db.session.flush()
        return license

    license = run_in_transaction(_op)
    current_app.logger.info("Issued %s license %s for %s", license.type, license.license_key, license.client_email)
    return license


def generate_batch(count: int, **fields) -> list[License]:
    """
    Issue `count` licenses (1..100) with the same terms in one transaction.

    Client names get a " #n" suffix so the rows stay distinguishable.
    """
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise LicenseValidationError("count must be a positive integer")
    if count > MAX_BATCH_SIZE:
        raise LicenseValidationError(f"Maximum {MAX_BATCH_SIZE} licenses can be generated at once")

    base_name = fields.pop("client_name", None)

    def _op():
        licenses = []
        reserved: set[str] = set()
        for index in range(count):
            name = f"{base_name} #{index + 1}" if base_name and count > 1 else base_name
            license = _build_license(client_name=name, reserved_keys=reserved, **fields)
            reserved.add(license.license_key)
            db.session.add(license)
            licenses.append(license)
        db.session.flush()
        return licenses

    return run_in_transaction(_op)


# =============================================================================
# ADMINISTRATION
# =============================================================================

def _flag_if_overdue(license: License, now=None) -> bool:
    """
    Lazy expiry: an active or suspended license past expires_at reads as
    expired. Sets the status without committing; returns True if it changed.
    """
    if license.status not in EXPIRABLE_STATUSES or not license.is_overdue(now):
        return False
    license.status = "expired"
    current_app.logger.info("License %s expired on read", license.license_key)
    return True


def get_license(license_id: int, *, lock: bool = False) -> License:
    """
    Fetch one license, applying lazy expiry.

    With lock=True the caller owns the transaction and the flip is committed
    with it; otherwise the flip is committed here.
    """
    query = db.session.query(License).filter_by(id=license_id)
    if lock:
        query = lock_for_update(query)
    license = query.first()
    if not license:
        raise LicenseNotFoundError("License not found")
    if _flag_if_overdue(license) and not lock:
        db.session.commit()
    return license


def list_licenses(*, status: str | None = None, client_email: str | None = None) -> list[License]:
    expire_overdue_licenses()

    query = db.session.query(License)
    if status:
        query = query.filter(License.status == status)
    if client_email:
        query = query.filter(db.func.lower(License.client_email) == client_email.strip().lower())
    return query.order_by(License.created_at.desc(), License.id.desc()).all()


def list_activations(license_id: int, *, active_only: bool = False) -> list[LicenseActivation]:
    get_license(license_id)
    query = db.session.query(LicenseActivation).filter_by(license_id=license_id)
    if active_only:
        query = query.filter(LicenseActivation.is_active.is_(True))
    return query.order_by(LicenseActivation.activated_at.desc(), LicenseActivation.id.desc()).all()


def update_license_status(license_id: int, status: str) -> License:
    """
    Administrative status change.

    Raises:
        LicenseValidationError: Unknown status or a transition out of expired/cancelled
        LicenseNotFoundError: Unknown license
    """
    if status not in LICENSE_STATUSES:
        raise LicenseValidationError(f"Invalid status. Must be one of: {', '.join(LICENSE_STATUSES)}")

    def _op():
        license = get_license(license_id, lock=True)
        if license.status == status:
            return license
        if status not in ALLOWED_STATUS_TRANSITIONS.get(license.status, set()):
            raise LicenseValidationError(f"Cannot change license status from {license.status} to {status}")
        license.status = status
        return license

    license = run_in_transaction(_op)
    current_app.logger.info("License %s status set to %s", license.license_key, license.status)
    return license


def expire_overdue_licenses(now=None) -> int:
    """Flip every active or suspended license past expires_at to expired."""
    now = now or utcnow()

    def _op():
        overdue = lock_for_update(
            db.session.query(License).filter(
                License.status.in_(EXPIRABLE_STATUSES),
                License.expires_at.isnot(None),
                License.expires_at < now,
            )
        ).all()
        for license in overdue:
            license.status = "expired"
        return len(overdue)

    expired = run_in_transaction(_op)
    if expired:
        current_app.logger.info("Expired %d overdue license(s)", expired)
    return expired


# =============================================================================
# CLIENT CHECKS
# =============================================================================

def _expire_if_overdue(license: License) -> None:
    """
    Lazy expiry: persist the flip, then reject.

    The commit happens before raising so the rollback in
    run_in_transaction does not undo it.
    """
    if license.is_overdue():
        license.status = "expired"
        db.session.commit()
        current_app.logger.info("License %s expired on use", license.license_key)
        raise LicenseExpiredError("License has expired")


def _ensure_usable(license: License) -> None:
    if license.status != "active":
        raise LicenseError(f"License is {license.status}")
    _expire_if_overdue(license)


def activate_license(
    *,
    license_key: str,
    email: str,
    domain: str | None = None,
    hardware_id: str | None = None,
    ip_address: str | None = None,
) -> LicenseActivation:
    """
    Bind a new installation to a license.

    Checks run in order and each rejects with its own reason:
    existence, status, expiry, owner email, activation limit, allowed
    domains, hardware binding policy.

    Live activations on the same hardware id are superseded (soft
    deactivated), and do not count against the limit.

    Raises:
        LicenseValidationError: Missing fields or malformed key
        LicenseNotFoundError: Unknown license key
        LicenseExpiredError: License past expires_at (status persisted as expired)
        ActivationLimitError: maxActivations live activations already exist
        LicenseError: Status, email, domain or hardware rejection
    """
    license_key = normalize_key(license_key)
    if not license_key or not isinstance(email, str) or not email.strip():
        raise LicenseValidationError("License key and client email are required")
    if not is_valid_license_key(license_key):
        raise LicenseValidationError("Invalid license key format")
    hardware_id = str(hardware_id).strip() or None if hardware_id else None
    domain = str(domain).strip() or None if domain else None

    def _op():
        license = lock_for_update(db.session.query(License).filter_by(license_key=license_key)).first()
        if not license:
            raise LicenseNotFoundError("License key not found")

        _ensure_usable(license)

        if license.client_email.strip().lower() != email.strip().lower():
            raise LicenseError("Client email does not match license record")

        live = [
            a for a in license.active_activations
            if not (hardware_id and a.hardware_id == hardware_id)
        ]
        if len(live) >= license.max_activations:
            raise ActivationLimitError("Maximum number of activations reached")

        if not domain_allowed(license.allowed_domains, domain):
            raise LicenseError("Domain not allowed for this license")

        policy = license.hardware_binding
        if policy is not None:
            if not policy.allows_hardware(hardware_id):
                raise LicenseError("Hardware binding mismatch")
            if not policy.allows_domain(domain):
                raise LicenseError("Domain not allowed by hardware binding policy")

        now = utcnow()
        if hardware_id:
            superseded = db.session.query(LicenseActivation).filter(
                LicenseActivation.hardware_id == hardware_id,
                LicenseActivation.is_active.is_(True),
            ).all()
            for previous in superseded:
                previous.is_active = False
                previous.deactivated_at = now
                previous.deactivation_reason = REASON_SUPERSEDED

        activation = LicenseActivation(
            license_id=license.id,
            activation_key=_unique_key(generate_activation_key, LicenseActivation.activation_key),
            domain=domain,
            hardware_id=hardware_id,
            ip_address=ip_address,
            is_active=True,
            activated_at=now,
        )
        db.session.add(activation)

        license.activation_count = (license.activation_count or 0) + 1
        license.last_activated_at = now
        db.session.flush()
        return activation

    activation = run_in_transaction(_op)
    current_app.logger.info(
        "License %s activated (activation id=%s, hardware=%s)",
        license_key, activation.id, activation.hardware_id,
    )
    return activation


def _fingerprint_mismatch(activation: LicenseActivation, system_info: dict | None) -> dict | None:
    """Only a value that is both supplied and on record can mismatch."""
    if not system_info:
        return None
    hardware_id = system_info.get("hardwareId") or system_info.get("hardware_id")
    hardware_id = str(hardware_id) if hardware_id else None
    domain = str(system_info["domain"]) if system_info.get("domain") else None

    hardware_mismatch = bool(hardware_id and activation.hardware_id and hardware_id != activation.hardware_id)
    domain_mismatch = bool(
        domain and activation.domain and domain.strip().lower() != activation.domain.strip().lower()
    )
    if hardware_mismatch or domain_mismatch:
        return {"hardwareMismatch": hardware_mismatch, "domainMismatch": domain_mismatch}
    return None


def verify_activation(
    *,
    activation_key: str,
    license_key: str,
    system_info: dict | None = None,
) -> License:
    """
    Confirm that an activation is still entitled to run.

    Returns the license; callers expose only License.summary().

    Raises:
        LicenseValidationError: Missing keys or malformed systemInfo
        LicenseNotFoundError: "Activation not found or inactive"
        LicenseError: License key mismatch or license not active
        LicenseExpiredError: License past expires_at (status persisted as expired)
        SecurityViolationError: Fingerprint mismatch; the activation is deactivated
    """
    activation_key = normalize_key(activation_key)
    license_key = normalize_key(license_key)
    if not activation_key or not license_key:
        raise LicenseValidationError("Activation key and license key are required")
    if system_info is not None and not isinstance(system_info, dict):
        raise LicenseValidationError("systemInfo must be an object")

    def _op():
        activation = lock_for_update(
            db.session.query(LicenseActivation).filter_by(activation_key=activation_key)
        ).first()
        if not activation or not activation.is_active:
            raise LicenseNotFoundError("Activation not found or inactive")

        license = activation.license
        if license.license_key != license_key:
            raise LicenseError("License key mismatch")

        _ensure_usable(license)

        mismatch = _fingerprint_mismatch(activation, system_info)
        if mismatch:
            current_app.logger.warning(
                "Security violation on activation %s: %s (recorded hardware=%s domain=%s)",
                activation.id, mismatch, activation.hardware_id, activation.domain,
            )
            activation.is_active = False
            activation.deactivated_at = utcnow()
            activation.deactivation_reason = REASON_SECURITY_VIOLATION
            db.session.commit()
            raise SecurityViolationError("System configuration changed. Please reactivate your license.")

        now = utcnow()
        license.last_verified_at = now
        activation.last_verified_at = now
        return license

    return run_in_transaction(_op)


def deactivate_activation(
    *,
    activation_key: str,
    license_key: str,
    reason: str | None = None,
) -> LicenseActivation:
    """
    Release a seat on request of the installation.

    Deactivating an already inactive activation is a no-op and does not
    touch the license counter again.
    """
    activation_key = normalize_key(activation_key)
    license_key = normalize_key(license_key)
    if not activation_key or not license_key:
        raise LicenseValidationError("Activation key and license key are required")

    def _op():
        license_id = (
            db.session.query(LicenseActivation.license_id)
            .filter_by(activation_key=activation_key)
            .scalar()
        )
        if license_id is None:
            raise LicenseNotFoundError("Activation not found")

        # Lock order: license, then activation (as in activate_license)
        license = lock_for_update(db.session.query(License).filter_by(id=license_id)).populate_existing().first()
        activation = (
            lock_for_update(db.session.query(LicenseActivation).filter_by(activation_key=activation_key))
            .populate_existing()
            .first()
        )
        if license.license_key != license_key:
            raise LicenseError("License key mismatch")

        if not activation.is_active:
            return activation

        activation.is_active = False
        activation.deactivated_at = utcnow()
        activation.deactivation_reason = reason or REASON_MANUAL
        license.activation_count = max(0, (license.activation_count or 0) - 1)
        return activation

    return run_in_transaction(_op)


# =============================================================================
# HARDWARE BINDING
# =============================================================================

def update_hardware_binding(
    license_id: int,
    *,
    action: str = "add",
    domain: str | None = None,
    hardware_id: str | None = None,
    max_hardware_bindings=None,
    strict_mode=None,
) -> License:
    """
    Edit the license's hardware binding policy.

    add: append domain / hardware id (hardware list capped at maxHardwareBindings)
    remove: filter domain / hardware id out
    update-settings: patch maxHardwareBindings / strictMode
    """
    if action not in BINDING_ACTIONS:
        raise LicenseValidationError(f"Invalid action. Must be one of: {', '.join(BINDING_ACTIONS)}")

    if max_hardware_bindings is not None and (
        isinstance(max_hardware_bindings, bool)
        or not isinstance(max_hardware_bindings, int)
        or max_hardware_bindings < 1
    ):
        raise LicenseValidationError("maxHardwareBindings must be a positive integer")
    if strict_mode is not None and not isinstance(strict_mode, bool):
        raise LicenseValidationError("strictMode must be a boolean")

    def _op():
        license = get_license(license_id, lock=True)
        policy = license.hardware_binding or HardwareBindingPolicy()

        if action == "add":
            if domain and domain not in policy.allowed_domains:
                policy.allowed_domains.append(domain)
            if hardware_id and hardware_id not in policy.allowed_hardware_ids:
                if len(policy.allowed_hardware_ids) >= policy.max_hardware_bindings:
                    raise LicenseValidationError("Maximum hardware binding limit reached")
                policy.allowed_hardware_ids.append(hardware_id)
        elif action == "remove":
            if domain:
                policy.allowed_domains = [d for d in policy.allowed_domains if d != domain]
            if hardware_id:
                policy.allowed_hardware_ids = [h for h in policy.allowed_hardware_ids if h != hardware_id]
        else:
            if max_hardware_bindings is not None:
                policy.max_hardware_bindings = max_hardware_bindings
            if strict_mode is not None:
                policy.strict_mode = strict_mode

        license.hardware_binding = policy
        return license

    return run_in_transaction(_op)


def hardware_binding_status(
    license_id: int,
    *,
    host: str | None = None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> dict:
    """Binding policy of a license and whether the calling host passes it."""
    license = get_license(license_id)
    policy = license.hardware_binding or HardwareBindingPolicy()

    return {
        "isAllowed": domain_allowed(policy.allowed_domains, host),
        "currentSystem": {
            "domain": host or "unknown",
            "userAgent": user_agent or "unknown",
            "ipAddress": ip_address or "unknown",
        },
        "hardwareBinding": policy.to_dict(),
        "activeActivations": [a.to_dict() for a in license.active_activations],
        "activationCount": license.activation_count,
        "maxActivations": license.max_activations,
    }


# =============================================================================
# MONITORING
# =============================================================================

EXPIRING_SOON_DAYS = 30
EXPIRY_HIGH_DAYS = 7
RECENT_ACTIVATION_DAYS = 7
# Activation usage alert threshold, in percent of maxActivations
USAGE_ALERT_PERCENT = 80
# More activations than this within one day is reported as suspicious
BURST_ACTIVATIONS_PER_DAY = 3
SUSPICIOUS_REASON_MARKERS = ("Security", "violation")


def _days_until(dt, now) -> int:
    """Whole days from now to dt, rounded up (negative once passed)."""
    return math.ceil((as_utc_naive(dt) - now).total_seconds() / 86400)


def _days_since(dt, now) -> int:
    return math.ceil((now - as_utc_naive(dt)).total_seconds() / 86400)


def _license_alerts(license: License, now) -> list[dict]:
    alerts = []
    timestamp = to_utc_z(now)

    if license.expires_at is not None:
        days = _days_until(license.expires_at, now)
        if days <= 0:
            alerts.append({"type": "expiration", "severity": "critical", "message": "License has expired"})
        elif days <= EXPIRY_HIGH_DAYS:
            alerts.append({"type": "expiration", "severity": "high", "message": f"License expires in {days} days"})
        elif days <= EXPIRING_SOON_DAYS:
            alerts.append({"type": "expiration", "severity": "medium", "message": f"License expires in {days} days"})

    in_use = len(license.active_activations)
    if in_use * 100 >= license.max_activations * USAGE_ALERT_PERCENT:
        alerts.append({
            "type": "activation_limit",
            "severity": "high" if in_use >= license.max_activations else "medium",
            "message": f"License activation limit: {in_use}/{license.max_activations}",
        })

    last_day = [a for a in license.activations if _days_since(a.activated_at, now) <= 1]
    if len(last_day) > BURST_ACTIVATIONS_PER_DAY:
        alerts.append({
            "type": "suspicious_activity",
            "severity": "medium",
            "message": f"Multiple recent activations detected ({len(last_day)} in 24 hours)",
        })

    for alert in alerts:
        alert["timestamp"] = timestamp
    return alerts


def license_monitoring(license_id: int | None = None) -> dict:
    """
    Health view for license administration.

    Without license_id: status counts over all licenses (overdue ones are
    expired first) plus the list. With license_id: activation metrics and
    alerts for that license.

    Raises:
        LicenseNotFoundError: Unknown license_id
    """
    now = utcnow()

    if license_id is None:
        licenses = list_licenses()
        overview = {"total": len(licenses)}
        for status in LICENSE_STATUSES:
            overview[status] = sum(1 for lic in licenses if lic.status == status)
        overview["expiringSoon"] = sum(
            1 for lic in licenses
            if lic.expires_at is not None and 0 < _days_until(lic.expires_at, now) <= EXPIRING_SOON_DAYS
        )
        return {
            "statusOverview": overview,
            "licenses": [lic.to_dict() for lic in licenses],
        }

    license = get_license(license_id)
    activations = sorted(
        license.activations,
        key=lambda a: (as_utc_naive(a.activated_at), a.id),
        reverse=True,
    )

    return {
        "license": license.to_dict(),
        "activations": [a.to_dict() for a in activations],
        "metrics": {
            "totalActivations": len(activations),
            "activeActivations": sum(1 for a in activations if a.is_active),
            "recentActivations": sum(
                1 for a in activations if _days_since(a.activated_at, now) <= RECENT_ACTIVATION_DAYS
            ),
            "suspiciousActivity": sum(
                1 for a in activations
                if a.deactivation_reason and any(m in a.deactivation_reason for m in SUSPICIOUS_REASON_MARKERS)
            ),
            "lastActivity": to_utc_z(activations[0].activated_at) if activations else None,
        },
        "alerts": _license_alerts(license, now),
    }
