from __future__ import annotations

from ..extensions import db
from retailhub.license_policy import HardwareBindingPolicy, decode_string_list, encode_string_list
from retailhub.time_utils import as_utc_naive, to_utc_z, utcnow

LICENSE_TYPES = ("lifetime", "monthly", "yearly")
LICENSE_STATUSES = ("active", "expired", "suspended", "cancelled")


class License(db.Model):
    """
    Software license issued to a client.

    Licenses are never deleted; they move between statuses:
    - active/suspended -> expired (when read or used past expires_at, or by the expiry sweep)
    - active/suspended -> suspended/cancelled/active (administrative)
    - expired and cancelled are final

    allowed_domains and hardware_binding are JSON columns. Access them
    through the typed properties below, never by parsing the raw text.
    """
    __tablename__ = "licenses"
    __table_args__ = (
        db.Index("ix_licenses_status_expires", "status", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # XXXX-XXXX-XXXX-XXXX
    license_key = db.Column(db.String(19), nullable=False, unique=True, index=True)
    type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    client_name = db.Column(db.String(255), nullable=False)
    client_email = db.Column(db.String(255), nullable=False, index=True)

    max_users = db.Column(db.Integer, nullable=False, default=1)
    max_stores = db.Column(db.Integer, nullable=False, default=1)
    max_activations = db.Column(db.Integer, nullable=False, default=1)

    # Incremented on every successful activation, decremented on explicit deactivation
    activation_count = db.Column(db.Integer, nullable=False, default=0)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    allowed_domains_json = db.Column("allowed_domains", db.Text, nullable=True)
    hardware_binding_json = db.Column("hardware_binding", db.Text, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(255), nullable=False, default="system")

    last_activated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    activations = db.relationship(
        "LicenseActivation",
        back_populates="license",
        order_by="LicenseActivation.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def allowed_domains(self) -> list[str] | None:
        return decode_string_list(self.allowed_domains_json)

    @allowed_domains.setter
    def allowed_domains(self, domains: list[str] | None) -> None:
        self.allowed_domains_json = encode_string_list(domains)

    @property
    def hardware_binding(self) -> HardwareBindingPolicy | None:
        return HardwareBindingPolicy.from_json(self.hardware_binding_json)

    @hardware_binding.setter
    def hardware_binding(self, policy: HardwareBindingPolicy | None) -> None:
        self.hardware_binding_json = policy.to_json() if policy else None

    def is_overdue(self, now=None) -> bool:
        if self.expires_at is None:
            return False
        return as_utc_naive(self.expires_at) < (now or utcnow())

    @property
    def active_activations(self) -> list["LicenseActivation"]:
        return [a for a in self.activations if a.is_active]

    def summary(self) -> dict:
        """Client-facing view: no binding policy, domains or hardware ids."""
        return {
            "id": self.id,
            "licenseKey": self.license_key,
            "type": self.type,
            "status": self.status,
            "clientName": self.client_name,
            "clientEmail": self.client_email,
            "maxUsers": self.max_users,
            "maxStores": self.max_stores,
            "expiresAt": to_utc_z(self.expires_at) if self.expires_at else None,
            "lastVerifiedAt": to_utc_z(self.last_verified_at) if self.last_verified_at else None,
        }

    def to_dict(self) -> dict:
        binding = self.hardware_binding
        return {
            "id": self.id,
            "license_key": self.license_key,
            "type": self.type,
            "status": self.status,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "max_users": self.max_users,
            "max_stores": self.max_stores,
            "max_activations": self.max_activations,
            "activation_count": self.activation_count,
            "active_activation_count": len(self.active_activations),
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "allowed_domains": self.allowed_domains,
            "hardware_binding": binding.to_dict() if binding else None,
            "notes": self.notes,
            "created_by": self.created_by,
            "last_activated_at": to_utc_z(self.last_activated_at) if self.last_activated_at else None,
            "last_verified_at": to_utc_z(self.last_verified_at) if self.last_verified_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class LicenseActivation(db.Model):
    """
    One installation bound to a license.

    Rows are soft-deactivated (is_active=False plus a reason), never deleted.
    A hardware id carries at most one live activation at a time.
    """
    __tablename__ = "license_activations"
    __table_args__ = (
        db.Index("ix_license_activations_license_active", "license_id", "is_active"),
        db.Index("ix_license_activations_hardware_active", "hardware_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    license_id = db.Column(db.Integer, db.ForeignKey("licenses.id"), nullable=False, index=True)

    # XXXXXXXX-XXXXXXXX-XXXXXXXX-XXXXXXXX
    activation_key = db.Column(db.String(35), nullable=False, unique=True, index=True)

    domain = db.Column(db.String(255), nullable=True)
    hardware_id = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    activated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deactivation_reason = db.Column(db.String(255), nullable=True)

    license = db.relationship("License", back_populates="activations")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "license_id": self.license_id,
            "activation_key": self.activation_key,
            "domain": self.domain,
            "hardware_id": self.hardware_id,
            "ip_address": self.ip_address,
            "is_active": self.is_active,
            "activated_at": to_utc_z(self.activated_at),
            "last_verified_at": to_utc_z(self.last_verified_at) if self.last_verified_at else None,
            "deactivated_at": to_utc_z(self.deactivated_at) if self.deactivated_at else None,
            "deactivation_reason": self.deactivation_reason,
        }


class LicenseTemplate(db.Model):
    """
    Reusable license terms (a product tier) that batches are issued from.

    Only active templates are offered for generation. Licenses copy the
    terms at issue time and keep no reference back, so editing or deleting
    a template never changes licenses already issued.
    """
    __tablename__ = "license_templates"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    type = db.Column(db.String(16), nullable=False)
    max_users = db.Column(db.Integer, nullable=False, default=1)
    max_stores = db.Column(db.Integer, nullable=False, default=1)
    max_activations = db.Column(db.Integer, nullable=False, default=1)

    # List price in cents (catalog information only)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    features_json = db.Column("features", db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def features(self) -> list[str]:
        return decode_string_list(self.features_json) or []

    @features.setter
    def features(self, features: list[str] | None) -> None:
        self.features_json = encode_string_list(features or [])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "max_users": self.max_users,
            "max_stores": self.max_stores,
            "max_activations": self.max_activations,
            "price_cents": self.price_cents,
            "features": self.features,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
