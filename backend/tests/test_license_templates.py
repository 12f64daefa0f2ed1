"""
License template service tests.

Verifies:
- Template terms are validated and names are unique (case-insensitive)
- Updates patch only the given fields
- Issuing from a template copies its terms; inactive templates cannot issue
"""

import pytest

from retailhub.extensions import db
from retailhub.models import License, LicenseTemplate
from retailhub.services import license_template_service
from retailhub.services.license_service import LicenseNotFoundError, LicenseValidationError


OWNER = "owner@acme.example"


@pytest.fixture()
def template(app):
    return license_template_service.create_template(
        name="Starter POS",
        license_type="monthly",
        description="Single till",
        max_users=2,
        max_activations=1,
        price_cents=2900,
        features=["POS", "Returns"],
    )


class TestTemplateTerms:

    def test_create(self, template):
        stored = db.session.get(LicenseTemplate, template.id)
        assert stored.type == "monthly"
        assert stored.features == ["POS", "Returns"]
        assert stored.max_stores == 1
        assert stored.is_active is True

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"name": ""}, "Template name is required"),
            ({"license_type": "trial"}, "Invalid license type"),
            ({"max_users": 0}, "Max users, stores, and activations must be at least 1"),
            ({"max_activations": True}, "Max users, stores, and activations must be at least 1"),
            ({"price_cents": -1}, "Price cannot be negative"),
            ({"features": ["POS", 3]}, "features must be a list of strings"),
        ],
    )
    def test_invalid_terms(self, app, overrides, message):
        fields = {"name": "Pro", "license_type": "yearly"}
        fields.update(overrides)
        with pytest.raises(LicenseValidationError, match=message):
            license_template_service.create_template(**fields)
        assert db.session.query(LicenseTemplate).count() == 0

    def test_duplicate_name_ignores_case(self, template):
        with pytest.raises(LicenseValidationError, match="already exists"):
            license_template_service.create_template(name="starter pos", license_type="yearly")

    def test_list_hides_inactive(self, template):
        license_template_service.create_template(name="Legacy", license_type="lifetime", is_active=False)

        assert [t.name for t in license_template_service.list_templates()] == ["Starter POS"]
        assert [t.name for t in license_template_service.list_templates(include_inactive=True)] == [
            "Legacy",
            "Starter POS",
        ]


class TestTemplateUpdates:

    def test_patch(self, template):
        license_template_service.update_template(template.id, price_cents=3900, description=None)

        db.session.expire_all()
        stored = db.session.get(LicenseTemplate, template.id)
        assert stored.price_cents == 3900
        assert stored.description == "Single till"

    def test_rename_to_existing(self, template):
        other = license_template_service.create_template(name="Pro POS", license_type="yearly")
        with pytest.raises(LicenseValidationError, match="already exists"):
            license_template_service.update_template(other.id, name="Starter POS")

        # Keeping its own name is fine
        license_template_service.update_template(other.id, name="Pro POS", max_users=4)

    def test_unknown_field(self, template):
        with pytest.raises(LicenseValidationError, match="Unknown template fields: license_key"):
            license_template_service.update_template(template.id, license_key="X")

    def test_unknown_template(self, app):
        with pytest.raises(LicenseNotFoundError, match="Template not found"):
            license_template_service.update_template(999, max_users=2)
        with pytest.raises(LicenseNotFoundError):
            license_template_service.delete_template(999)

    def test_delete_keeps_issued_licenses(self, template):
        license_template_service.generate_from_template(template.id, client_email=OWNER)

        assert license_template_service.delete_template(template.id) == "Starter POS"
        assert db.session.query(LicenseTemplate).count() == 0
        assert db.session.query(License).count() == 1


class TestGenerateFromTemplate:

    def test_copies_terms(self, template):
        _, licenses = license_template_service.generate_from_template(
            template.id, client_email=OWNER, client_name="Acme", count=3, created_by="admin"
        )

        assert [lic.client_name for lic in licenses] == ["Acme #1", "Acme #2", "Acme #3"]
        for lic in licenses:
            assert lic.type == "monthly"
            assert lic.max_users == 2
            assert lic.max_activations == 1
            assert lic.expires_at is not None
            assert lic.notes == "Generated from template: Starter POS"
            assert lic.created_by == "admin"

    def test_default_client_name(self, template):
        _, (lic,) = license_template_service.generate_from_template(template.id, client_email=OWNER)
        assert lic.client_name == "Starter POS License"

    @pytest.mark.parametrize("count", [0, 51, True])
    def test_count_bounds(self, template, count):
        with pytest.raises(LicenseValidationError, match="Count must be between 1 and 50"):
            license_template_service.generate_from_template(template.id, client_email=OWNER, count=count)
        assert db.session.query(License).count() == 0

    def test_inactive_template(self, template):
        license_template_service.update_template(template.id, is_active=False)
        with pytest.raises(LicenseValidationError, match="Template is inactive"):
            license_template_service.generate_from_template(template.id, client_email=OWNER)

    def test_client_email_required(self, template):
        with pytest.raises(LicenseValidationError, match="client email"):
            license_template_service.generate_from_template(template.id, client_email=None)
