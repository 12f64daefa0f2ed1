"""
Application-level error handling tests.

Verifies:
- Unknown paths and wrong methods answer with the JSON error envelope
- Unhandled exceptions become a JSON 500 instead of an HTML page
"""

import pytest


class TestErrorEnvelope:

    def test_unknown_path(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.is_json
        assert resp.get_json()["error"] == "Not Found"

    @pytest.mark.parametrize("path", ["/api/returns", "/api/license/activate"])
    def test_method_not_allowed(self, client, path):
        resp = client.patch(path)
        assert resp.status_code == 405
        assert resp.is_json
        assert resp.get_json()["error"] == "Method Not Allowed"

    def test_unhandled_exception(self, app):
        @app.get("/api/boom")
        def boom():
            raise RuntimeError("kaboom")

        app.config["PROPAGATE_EXCEPTIONS"] = False
        resp = app.test_client().get("/api/boom")

        assert resp.status_code == 500
        assert resp.is_json
        assert resp.get_json() == {"error": "Internal server error", "details": "kaboom"}
