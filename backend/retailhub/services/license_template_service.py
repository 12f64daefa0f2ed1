# Overview: Service-layer operations for license templates; encapsulates business logic and database work.

"""
License Template Service

A template is a named set of license terms (type, seat limits, list price,
feature list) that administrators issue batches from. Issued licenses copy
the terms; they keep no link to the template.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import LicenseTemplate
from ..models.licensing import LICENSE_TYPES
from .concurrency import lock_for_update, run_in_transaction
from .license_service import LicenseNotFoundError, LicenseValidationError, generate_batch


MAX_TEMPLATE_BATCH_SIZE = 50

# Fields update_template may change
_LIMIT_FIELDS = ("max_users", "max_stores", "max_activations")
EDITABLE_FIELDS = (
    "name", "description", "type", *_LIMIT_FIELDS, "price_cents", "features", "is_active",
)


def _validate(fields: dict) -> None:
    if "name" in fields and not fields["name"]:
        raise LicenseValidationError("Template name is required")
    if "type" in fields and fields["type"] not in LICENSE_TYPES:
        raise LicenseValidationError("Invalid license type. Must be lifetime, monthly, or yearly")
    for name in _LIMIT_FIELDS:
        value = fields.get(name)
        if name in fields and (isinstance(value, bool) or not isinstance(value, int) or value < 1):
            raise LicenseValidationError("Max users, stores, and activations must be at least 1")
    price = fields.get("price_cents")
    if "price_cents" in fields and (isinstance(price, bool) or not isinstance(price, int) or price < 0):
        raise LicenseValidationError("Price cannot be negative")
    features = fields.get("features")
    if features is not None and (
        not isinstance(features, list) or not all(isinstance(f, str) for f in features)
    ):
        raise LicenseValidationError("features must be a list of strings")


def _ensure_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(LicenseTemplate.id).filter(db.func.lower(LicenseTemplate.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(LicenseTemplate.id != exclude_id)
    if query.first():
        raise LicenseValidationError(f"Template '{name}' already exists")


def list_templates(*, include_inactive: bool = False) -> list[LicenseTemplate]:
    query = db.session.query(LicenseTemplate)
    if not include_inactive:
        query = query.filter(LicenseTemplate.is_active.is_(True))
    return query.order_by(LicenseTemplate.name.asc()).all()


def get_template(template_id: int) -> LicenseTemplate:
    template = db.session.get(LicenseTemplate, template_id)
    if not template:
        raise LicenseNotFoundError("Template not found")
    return template


def create_template(
    *,
    name: str,
    license_type: str,
    description: str | None = None,
    max_users: int = 1,
    max_stores: int = 1,
    max_activations: int = 1,
    price_cents: int = 0,
    features: list[str] | None = None,
    is_active: bool = True,
) -> LicenseTemplate:
    """
    Raises:
        LicenseValidationError: Missing name/type, bad limits or price, duplicate name
    """
    fields = {
        "name": name,
        "type": license_type,
        "max_users": max_users,
        "max_stores": max_stores,
        "max_activations": max_activations,
        "price_cents": price_cents,
        "features": features,
    }
    _validate(fields)

    def _op():
        _ensure_unique_name(name)
        template = LicenseTemplate(
            name=name,
            description=description,
            type=license_type,
            max_users=max_users,
            max_stores=max_stores,
            max_activations=max_activations,
            price_cents=price_cents,
            is_active=is_active,
        )
        template.features = features
        db.session.add(template)
        db.session.flush()
        return template

    template = run_in_transaction(_op)
    current_app.logger.info("Created license template %s", template.name)
    return template


def update_template(template_id: int, **changes) -> LicenseTemplate:
    """
    Patch a template. Keys not in EDITABLE_FIELDS are rejected; None values
    are ignored.
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise LicenseValidationError(f"Unknown template fields: {', '.join(sorted(unknown))}")
    changes = {k: v for k, v in changes.items() if v is not None}
    _validate(changes)

    def _op():
        template = lock_for_update(db.session.query(LicenseTemplate).filter_by(id=template_id)).first()
        if not template:
            raise LicenseNotFoundError("Template not found")
        if "name" in changes:
            _ensure_unique_name(changes["name"], exclude_id=template.id)
        for key, value in changes.items():
            setattr(template, key, value)
        return template

    return run_in_transaction(_op)


def delete_template(template_id: int) -> str:
    def _op():
        template = get_template(template_id)
        name = template.name
        db.session.delete(template)
        return name

    name = run_in_transaction(_op)
    current_app.logger.info("Deleted license template %s", name)
    return name


def generate_from_template(
    template_id: int,
    *,
    client_email: str,
    count: int = 1,
    client_name: str | None = None,
    created_by: str | None = None,
):
    """
    Issue `count` licenses (1..50) with the template's terms.

    The client name defaults to "<template name> License"; batches get the
    usual " #n" suffix from generate_batch.

    Raises:
        LicenseValidationError: Bad count, missing email or inactive template
        LicenseNotFoundError: Unknown template
    """
    if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= MAX_TEMPLATE_BATCH_SIZE:
        raise LicenseValidationError(f"Count must be between 1 and {MAX_TEMPLATE_BATCH_SIZE}")

    template = get_template(template_id)
    if not template.is_active:
        raise LicenseValidationError("Template is inactive")

    licenses = generate_batch(
        count,
        license_type=template.type,
        client_name=client_name or f"{template.name} License",
        client_email=client_email,
        max_users=template.max_users,
        max_stores=template.max_stores,
        max_activations=template.max_activations,
        notes=f"Generated from template: {template.name}",
        created_by=created_by,
    )
    current_app.logger.info("Generated %d license(s) from template %s", len(licenses), template.name)
    return template, licenses
