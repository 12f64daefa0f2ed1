"""
CLI command tests (flask system / users / licenses).
"""

from datetime import timedelta

from retailhub.extensions import db
from retailhub.models import License, Store, User
from retailhub.time_utils import utcnow


class TestSystemCommands:

    def test_init_is_idempotent(self, app):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init"])
        assert first.exit_code == 0, first.output
        assert "PASS Created default store: Main Store" in first.output

        second = runner.invoke(args=["system", "init"])
        assert second.exit_code == 0, second.output
        assert "already exists" in second.output

        db.session.expire_all()
        assert db.session.query(Store).count() == 1
        assert sorted(u.role for u in db.session.query(User)) == ["admin", "cashier", "manager"]

    def test_reset_db(self, app, store):
        result = app.test_cli_runner().invoke(args=["system", "reset-db", "--yes"])
        assert result.exit_code == 0, result.output
        db.session.expire_all()
        assert db.session.query(Store).count() == 0


class TestUserCommands:

    def test_create_and_list(self, app, store):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--username", "sam",
            "--email", "sam@retailhub.local",
            "--password", "Password123!",
            "--role", "manager",
        ])
        assert result.exit_code == 0, result.output
        assert "PASS Created user: sam" in result.output

        listing = runner.invoke(args=["users", "list"])
        assert "sam@retailhub.local" in listing.output

    def test_weak_password_reported(self, app, store):
        result = app.test_cli_runner().invoke(args=[
            "users", "create",
            "--username", "weak",
            "--email", "weak@retailhub.local",
            "--password", "password",
            "--role", "cashier",
        ])
        assert "FAIL Password validation failed" in result.output
        assert db.session.query(User).filter_by(username="weak").count() == 0


class TestLicenseCommands:

    def test_issue_list_expire(self, app):
        runner = app.test_cli_runner()

        issued = runner.invoke(args=[
            "licenses", "issue",
            "--type", "monthly",
            "--client-name", "Acme",
            "--client-email", "owner@acme.example",
            "--count", "2",
        ])
        assert issued.exit_code == 0, issued.output
        assert issued.output.count("PASS ") == 2

        db.session.expire_all()
        licenses = db.session.query(License).order_by(License.id).all()
        assert [lic.client_name for lic in licenses] == ["Acme #1", "Acme #2"]
        assert all(lic.created_by == "cli" for lic in licenses)

        licenses[0].expires_at = utcnow() - timedelta(days=1)
        db.session.commit()

        expired = runner.invoke(args=["licenses", "expire"])
        assert "Expired 1 overdue license(s)." in expired.output

        listing = runner.invoke(args=["licenses", "list", "--status", "expired"])
        assert licenses[0].license_key in listing.output

    def test_issue_rejects_oversized_batch(self, app):
        result = app.test_cli_runner().invoke(args=[
            "licenses", "issue",
            "--type", "yearly",
            "--client-name", "Acme",
            "--client-email", "owner@acme.example",
            "--count", "101",
        ])
        assert "FAIL Maximum 100 licenses can be generated at once" in result.output
