"""
License API tests.

Verifies:
- License administration is admin-only
- Client activation / check / deactivation round trip over HTTP
- GET /api/license/check always answers 200 with activated=false on rejection
- Monitoring and license templates over HTTP
"""

from datetime import timedelta

import pytest

from retailhub.extensions import db
from retailhub.models import License
from retailhub.time_utils import utcnow


CLIENT_EMAIL = "owner@acme.example"


def issue(client, headers, **overrides):
    body = {"type": "yearly", "clientName": "Acme Corner Shop", "clientEmail": CLIENT_EMAIL}
    body.update(overrides)
    resp = client.post("/api/licenses", json=body, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["license"]


def activate(client, license_key, hardware_id="H1", domain=None):
    system_info = {"hardwareId": hardware_id}
    if domain:
        system_info["domain"] = domain
    return client.post("/api/license/activate", json={
        "licenseKey": license_key,
        "clientEmail": CLIENT_EMAIL,
        "systemInfo": system_info,
    })


# =============================================================================
# ADMINISTRATION
# =============================================================================


class TestLicenseAdministration:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/licenses"),
            ("POST", "/api/licenses"),
            ("POST", "/api/licenses/generate"),
            ("GET", "/api/licenses/1"),
            ("PUT", "/api/licenses/1/status"),
            ("GET", "/api/licenses/1/activations"),
            ("POST", "/api/licenses/hardware-binding"),
            ("GET", "/api/licenses/hardware-binding?licenseId=1"),
            ("GET", "/api/licenses/monitoring"),
            ("GET", "/api/licenses/templates"),
            ("POST", "/api/licenses/templates"),
            ("GET", "/api/licenses/templates/1"),
            ("PUT", "/api/licenses/templates/1"),
            ("DELETE", "/api/licenses/templates/1"),
            ("POST", "/api/licenses/templates/1/generate"),
        ],
    )
    def test_requires_admin(self, client, cashier_headers, manager_headers, method, path):
        for headers in (cashier_headers, manager_headers):
            resp = getattr(client, method.lower())(path, json={}, headers=headers)
            assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"

    def test_requires_auth(self, client, store):
        assert client.get("/api/licenses").status_code == 401

    def test_create_and_get(self, client, admin_headers):
        lic = issue(client, admin_headers, maxActivations=2, allowedDomains=["shop.example"])

        assert lic["status"] == "active"
        assert lic["max_activations"] == 2
        assert lic["allowed_domains"] == ["shop.example"]
        assert lic["created_by"] == "admin"

        resp = client.get(f"/api/licenses/{lic['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["license"]["license_key"] == lic["license_key"]

    def test_create_rejects_bad_type(self, client, admin_headers):
        resp = client.post(
            "/api/licenses",
            json={"type": "weekly", "clientName": "Acme", "clientEmail": CLIENT_EMAIL},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "Invalid license type" in resp.get_json()["error"]

    def test_generate(self, client, admin_headers):
        resp = client.post(
            "/api/licenses/generate",
            json={"type": "monthly", "clientName": "Acme", "clientEmail": CLIENT_EMAIL, "count": 3},
            headers=admin_headers,
        )
        data = resp.get_json()
        assert resp.status_code == 201
        assert data["count"] == 3
        assert len(set(data["licenseKeys"])) == 3

        too_many = client.post(
            "/api/licenses/generate",
            json={"type": "monthly", "clientName": "Acme", "clientEmail": CLIENT_EMAIL, "count": 101},
            headers=admin_headers,
        )
        assert too_many.status_code == 400
        assert too_many.get_json()["error"] == "Maximum 100 licenses can be generated at once"

    def test_status_change(self, client, admin_headers):
        lic = issue(client, admin_headers)

        resp = client.put(f"/api/licenses/{lic['id']}/status", json={"status": "cancelled"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["license"]["status"] == "cancelled"

        resp = client.put(f"/api/licenses/{lic['id']}/status", json={"status": "active"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_license(self, client, admin_headers):
        resp = client.get("/api/licenses/999", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "License not found"

    def test_overdue_license_reads_as_expired(self, client, admin_headers):
        lic = issue(client, admin_headers, type="monthly")
        stored = db.session.get(License, lic["id"])
        stored.expires_at = utcnow() - timedelta(days=1)
        db.session.commit()

        resp = client.get(f"/api/licenses/{lic['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["license"]["status"] == "expired"

        listed = client.get("/api/licenses?status=active", headers=admin_headers).get_json()
        assert listed["licenses"] == []

    def test_hardware_binding(self, client, admin_headers):
        lic = issue(client, admin_headers)

        missing = client.post("/api/licenses/hardware-binding", json={"hardwareId": "H1"}, headers=admin_headers)
        assert missing.status_code == 400
        assert missing.get_json()["error"] == "License ID is required"

        resp = client.post(
            "/api/licenses/hardware-binding",
            json={"licenseId": lic["id"], "action": "add", "hardwareId": "H1", "domain": "localhost"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["hardwareBinding"]["allowedHardwareIds"] == ["H1"]

        status = client.get(f"/api/licenses/hardware-binding?licenseId={lic['id']}", headers=admin_headers)
        data = status.get_json()
        assert status.status_code == 200
        assert data["isAllowed"] is True
        assert data["currentSystem"]["domain"] == "localhost"


# =============================================================================
# CLIENT ACTIVATION
# =============================================================================


class TestClientActivation:

    def test_activate_check_deactivate(self, client, admin_headers):
        lic = issue(client, admin_headers)
        key = lic["license_key"]

        resp = activate(client, key)
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["success"] is True
        activation_key = data["activationKey"]
        assert data["license"]["licenseKey"] == key
        assert "hardwareBinding" not in data["license"]

        check = client.get(
            "/api/license/check",
            headers={"X-License-Key": key, "X-Activation-Key": activation_key},
        )
        assert check.status_code == 200
        assert check.get_json()["activated"] is True

        verify = client.post("/api/license/check", json={
            "licenseKey": key,
            "activationKey": activation_key,
            "systemInfo": {"hardwareId": "H1"},
        })
        assert verify.status_code == 200
        assert verify.get_json()["message"] == "License verified successfully"

        deactivate = client.post("/api/license/deactivate", json={"licenseKey": key, "activationKey": activation_key})
        assert deactivate.status_code == 200
        assert deactivate.get_json()["success"] is True

        after = client.get(
            "/api/license/check",
            headers={"X-License-Key": key, "X-Activation-Key": activation_key},
        )
        assert after.status_code == 200
        assert after.get_json() == {"activated": False, "message": "Activation not found or inactive"}

    def test_check_without_headers(self, client, store):
        resp = client.get("/api/license/check")
        assert resp.status_code == 200
        assert resp.get_json() == {"activated": False, "message": "No activation information provided"}

    def test_activation_rejections(self, client, admin_headers):
        lic = issue(client, admin_headers)

        wrong_email = client.post("/api/license/activate", json={
            "licenseKey": lic["license_key"],
            "clientEmail": "someone@else.example",
        })
        assert wrong_email.status_code == 403
        assert wrong_email.get_json()["error"] == "Client email does not match license record"

        unknown = client.post("/api/license/activate", json={
            "licenseKey": "AAAA-BBBB-CCCC-DDDD",
            "clientEmail": CLIENT_EMAIL,
        })
        assert unknown.status_code == 404

        missing = client.post("/api/license/activate", json={"licenseKey": lic["license_key"]})
        assert missing.status_code == 400

        assert activate(client, lic["license_key"], hardware_id="H1").status_code == 200
        limit = activate(client, lic["license_key"], hardware_id="H2")
        assert limit.status_code == 403
        assert limit.get_json()["error"] == "Maximum number of activations reached"

    def test_security_violation(self, client, admin_headers):
        lic = issue(client, admin_headers)
        activation_key = activate(client, lic["license_key"], hardware_id="H1").get_json()["activationKey"]

        resp = client.post("/api/license/check", json={
            "licenseKey": lic["license_key"],
            "activationKey": activation_key,
            "systemInfo": {"hardwareId": "H2"},
        })
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "System configuration changed. Please reactivate your license."

        again = client.post("/api/license/check", json={
            "licenseKey": lic["license_key"],
            "activationKey": activation_key,
        })
        assert again.status_code == 404

        activations = client.get(f"/api/licenses/{lic['id']}/activations", headers=admin_headers).get_json()
        assert activations["activations"][0]["deactivation_reason"] == "Security violation - system mismatch"

    def test_system_info_must_be_object(self, client, store):
        resp = client.post("/api/license/activate", json={
            "licenseKey": "AAAA-BBBB-CCCC-DDDD",
            "clientEmail": CLIENT_EMAIL,
            "systemInfo": "H1",
        })
        assert resp.status_code == 400


# =============================================================================
# MONITORING AND TEMPLATES
# =============================================================================


class TestMonitoringRoute:

    def test_overview(self, client, admin_headers):
        issue(client, admin_headers)
        suspended = issue(client, admin_headers)
        client.put(f"/api/licenses/{suspended['id']}/status", json={"status": "suspended"}, headers=admin_headers)

        resp = client.get("/api/licenses/monitoring", headers=admin_headers)
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["statusOverview"]["total"] == 2
        assert data["statusOverview"]["active"] == 1
        assert data["statusOverview"]["suspended"] == 1
        assert len(data["licenses"]) == 2

    def test_single_license(self, client, admin_headers):
        lic = issue(client, admin_headers)
        activate(client, lic["license_key"], hardware_id="H1")

        resp = client.get(f"/api/licenses/monitoring?licenseId={lic['id']}", headers=admin_headers)
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["license"]["id"] == lic["id"]
        assert data["metrics"]["activeActivations"] == 1
        # The only seat is taken
        assert data["alerts"][0]["type"] == "activation_limit"
        assert data["alerts"][0]["severity"] == "high"

    def test_bad_license_id(self, client, admin_headers):
        assert client.get("/api/licenses/monitoring?licenseId=abc", headers=admin_headers).status_code == 400
        assert client.get("/api/licenses/monitoring?licenseId=999", headers=admin_headers).status_code == 404


class TestTemplateRoutes:

    def _create(self, client, headers, **overrides):
        body = {
            "name": "Professional POS",
            "type": "yearly",
            "maxUsers": 5,
            "maxStores": 3,
            "maxActivations": 2,
            "priceCents": 99900,
            "features": ["POS", "Inventory"],
        }
        body.update(overrides)
        return client.post("/api/licenses/templates", json=body, headers=headers)

    def test_crud(self, client, admin_headers):
        created = self._create(client, admin_headers)
        assert created.status_code == 201
        template = created.get_json()["template"]
        assert template["features"] == ["POS", "Inventory"]
        assert template["price_cents"] == 99900

        listed = client.get("/api/licenses/templates", headers=admin_headers).get_json()
        assert [t["name"] for t in listed["templates"]] == ["Professional POS"]

        updated = client.put(
            f"/api/licenses/templates/{template['id']}",
            json={"maxUsers": 10, "isActive": False},
            headers=admin_headers,
        )
        assert updated.status_code == 200
        assert updated.get_json()["template"]["max_users"] == 10
        assert updated.get_json()["template"]["max_stores"] == 3

        assert client.get("/api/licenses/templates", headers=admin_headers).get_json()["templates"] == []
        everything = client.get("/api/licenses/templates?all=true", headers=admin_headers).get_json()
        assert len(everything["templates"]) == 1

        deleted = client.delete(f"/api/licenses/templates/{template['id']}", headers=admin_headers)
        assert deleted.status_code == 200
        assert client.get(f"/api/licenses/templates/{template['id']}", headers=admin_headers).status_code == 404

    def test_create_validation(self, client, admin_headers):
        missing = client.post("/api/licenses/templates", json={"name": "Basic"}, headers=admin_headers)
        assert missing.status_code == 400
        assert missing.get_json()["error"] == "Name and type are required"

        assert self._create(client, admin_headers).status_code == 201
        duplicate = self._create(client, admin_headers)
        assert duplicate.status_code == 400
        assert duplicate.get_json()["error"] == "Template 'Professional POS' already exists"

        assert self._create(client, admin_headers, name="Other", maxUsers=0).status_code == 400
        assert self._create(client, admin_headers, name="Other", features="POS").status_code == 400

    def test_generate(self, client, admin_headers):
        template = self._create(client, admin_headers).get_json()["template"]

        resp = client.post(
            f"/api/licenses/templates/{template['id']}/generate",
            json={"clientEmail": CLIENT_EMAIL, "count": 2},
            headers=admin_headers,
        )
        data = resp.get_json()
        assert resp.status_code == 201
        assert data["count"] == 2
        assert data["template"] == "Professional POS"
        assert data["message"] == "Generated 2 licenses from template"
        first = data["licenses"][0]
        assert first["client_name"] == "Professional POS License #1"
        assert first["max_activations"] == 2
        assert first["type"] == "yearly"
        assert first["notes"] == "Generated from template: Professional POS"
        assert first["created_by"] == "admin"

        # Issued licenses activate like any other
        assert activate(client, first["license_key"]).status_code == 200

        too_many = client.post(
            f"/api/licenses/templates/{template['id']}/generate",
            json={"clientEmail": CLIENT_EMAIL, "count": 51},
            headers=admin_headers,
        )
        assert too_many.status_code == 400
        assert too_many.get_json()["error"] == "Count must be between 1 and 50"
