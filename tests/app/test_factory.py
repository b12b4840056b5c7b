"""Tests for the Flask application factory, probes and error handlers."""

from __future__ import annotations

import logging

import pytest
from werkzeug.exceptions import Forbidden

from devkeyring import __version__
from devkeyring.app import create_app
from devkeyring.app.context import Container, get_container
from devkeyring.app.errors import (
    LEDGER_UNAVAILABLE,
    MALFORMED,
    SERVER_INTERNAL,
    KeyringProblem,
)
from devkeyring.config import KeyringConfig
from devkeyring.core.errors import KeyringError, LedgerUnavailable


@pytest.fixture()
def make_app(settings, fake_ledger, role_check, ca_material):
    def _make(authority=ca_material.authority, settings_override=None):
        container = Container(
            settings_override or settings,
            ledger=fake_ledger,
            privileged_check=role_check,
            authority=authority,
        )
        return create_app(container=container)

    return _make


@pytest.fixture()
def app(make_app):
    return make_app()


class TestCreateApp:
    def test_container_registered(self, app):
        assert isinstance(app.extensions["container"], Container)
        assert app.config["KEYRING_SETTINGS"] is app.extensions["container"].settings
        assert app.config["MAX_CONTENT_LENGTH"] == 25 * 1024 * 1024

    def test_get_container(self, app):
        with app.app_context():
            assert get_container() is app.extensions["container"]

    def test_get_container_missing(self, app):
        app.extensions.pop("container")
        with app.app_context(), pytest.raises(RuntimeError, match="not available"):
            get_container()

    def test_routes_registered(self, app):
        rules = {r.rule for r in app.url_map.iter_rules()}
        assert {"/webhook", "/crl.json", "/livez", "/healthz"} <= rules

    def test_built_from_config(self, minimal_config_data, tmp_path):
        minimal_config_data["crl"] = {"output_path": str(tmp_path / "crl.json")}
        config = KeyringConfig(data=minimal_config_data)
        app = create_app(config=config)
        assert app.extensions["container"].settings is config.settings

    def test_missing_secret_warns(self, make_app, minimal_config_data, caplog):
        settings = KeyringConfig(data=minimal_config_data).settings
        with caplog.at_level(logging.WARNING, logger="devkeyring.app.factory"):
            make_app(settings_override=settings)
        assert "webhook.secret is not set" in caplog.text

    def test_access_log(self, app, caplog):
        with caplog.at_level(logging.INFO, logger="devkeyring.access"):
            app.test_client().get("/livez")
        assert "GET /livez 200" in caplog.text


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------


class TestProbes:
    def test_livez(self, app):
        resp = app.test_client().get("/livez")
        assert resp.status_code == 200
        assert resp.get_json() == {"alive": True, "version": __version__}

    def test_healthz_ok(self, app, ca_material):
        resp = app.test_client().get("/healthz")
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["status"] == "ok"
        assert data["checks"]["authority"] == ca_material.cert.subject.rfc4514_string()
        assert data["checks"]["webhook_secret"] == "set"
        assert data["checks"]["crl"] == "missing"

    def test_healthz_crl_present(self, app, settings):
        with open(settings.crl.output_path, "w", encoding="utf-8") as fh:
            fh.write("{}")
        data = app.test_client().get("/healthz").get_json()
        assert data["checks"]["crl"] == "present"

    def test_healthz_degraded_without_authority(self, make_app):
        resp = make_app(authority=None).test_client().get("/healthz")
        assert resp.status_code == 503
        data = resp.get_json()
        assert data["status"] == "degraded"
        assert data["checks"]["authority"] == "unavailable"


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


class TestErrorHandlers:
    @pytest.fixture()
    def client(self, app):
        @app.route("/_problem")
        def _problem():
            raise KeyringProblem(MALFORMED, "bad input", title="Malformed")

        @app.route("/_forbidden")
        def _forbidden():
            raise Forbidden("no entry")

        @app.route("/_retryable")
        def _retryable():
            msg = "GitHub returned HTTP 502"
            raise LedgerUnavailable(msg, retryable=True, status=502)

        @app.route("/_permanent")
        def _permanent():
            msg = "broken"
            raise KeyringError(msg)

        @app.route("/_crash")
        def _crash():
            msg = "unexpected"
            raise ZeroDivisionError(msg)

        return app.test_client()

    def test_problem(self, client):
        resp = client.get("/_problem")
        assert resp.status_code == 400
        assert resp.content_type == "application/problem+json"
        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.get_json() == {
            "type": MALFORMED,
            "detail": "bad input",
            "status": 400,
            "title": "Malformed",
        }

    def test_http_exception(self, client):
        resp = client.get("/_forbidden")
        assert resp.status_code == 403
        body = resp.get_json()
        assert body["type"] == "about:blank"
        assert body["title"] == "Forbidden"
        assert body["detail"] == "no entry"

    def test_not_found(self, client):
        resp = client.get("/nowhere")
        assert resp.status_code == 404
        assert resp.content_type == "application/problem+json"

    def test_retryable_error_is_503(self, client):
        resp = client.get("/_retryable")
        assert resp.status_code == 503
        assert resp.get_json()["type"] == LEDGER_UNAVAILABLE

    def test_permanent_error_is_500(self, client):
        resp = client.get("/_permanent")
        assert resp.status_code == 500
        assert resp.get_json()["detail"] == "broken"

    def test_unhandled_error_hidden(self, client, caplog):
        resp = client.get("/_crash")
        assert resp.status_code == 500
        body = resp.get_json()
        assert body["type"] == SERVER_INTERNAL
        assert "unexpected" not in body["detail"]
        assert "Unhandled exception" in caplog.text
