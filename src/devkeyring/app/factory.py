"""Flask application factory for the webhook receiver.

Usage::

    from devkeyring.app import create_app
    from devkeyring.config import get_config

    app = create_app(config=get_config())
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from flask import Flask, g, jsonify, request

if TYPE_CHECKING:
    from flask.typing import ResponseReturnValue

    from devkeyring.app.context import Container
    from devkeyring.config.keyring_config import KeyringConfig

log = logging.getLogger(__name__)
access_log = logging.getLogger("devkeyring.access")

# GitHub caps webhook payloads at 25 MB
MAX_PAYLOAD_BYTES = 25 * 1024 * 1024


def create_app(
    config: KeyringConfig | None = None,
    container: Container | None = None,
) -> Flask:
    """Create and configure the webhook receiver.

    Parameters
    ----------
    config:
        Loaded :class:`KeyringConfig`.  Falls back to :func:`get_config`
        when neither argument is given.
    container:
        Pre-built dependency container (tests inject one wired to a
        fake ledger).  Built from *config* when ``None``.

    Returns
    -------
    Flask
        Fully configured WSGI application.

    """
    if container is None:
        if config is None:
            from devkeyring.config import get_config  # noqa: PLC0415

            config = get_config()
        from devkeyring.app.context import Container  # noqa: PLC0415

        container = Container(config.settings)

    app = Flask("devkeyring")
    app.config["KEYRING_SETTINGS"] = container.settings
    app.config["MAX_CONTENT_LENGTH"] = MAX_PAYLOAD_BYTES
    app.extensions["container"] = container

    # -- Error handlers (RFC 7807) ------------------------------------------
    from devkeyring.app.errors import register_error_handlers  # noqa: PLC0415

    register_error_handlers(app)

    # -- Request lifecycle hooks --------------------------------------------
    _register_request_hooks(app)

    # -- Infrastructure endpoints -------------------------------------------
    _register_health(app)

    # -- Routes -------------------------------------------------------------
    from devkeyring.api import register_blueprints  # noqa: PLC0415

    register_blueprints(app)

    if not container.settings.webhook.secret:
        log.warning("webhook.secret is not set; every delivery will be rejected")

    log.info("Flask application created")
    return app


# ---------------------------------------------------------------------------
# Request hooks
# ---------------------------------------------------------------------------


def _register_request_hooks(app: Flask) -> None:
    @app.before_request
    def _start() -> None:
        g.request_start = time.monotonic()
        g.delivery_id = request.headers.get("X-GitHub-Delivery")
        g.event_name = request.headers.get("X-GitHub-Event")

    @app.after_request
    def _access_log(response):
        elapsed = time.monotonic() - getattr(g, "request_start", time.monotonic())
        access_log.info(
            "%s %s %d %.1fms",
            request.method,
            request.path,
            response.status_code,
            elapsed * 1000,
            extra={"remote_addr": request.remote_addr},
        )
        return response


# ---------------------------------------------------------------------------
# Infrastructure endpoints
# ---------------------------------------------------------------------------


def _register_health(app: Flask) -> None:
    """Register ``/livez`` and ``/healthz`` probes."""
    from devkeyring import __version__  # noqa: PLC0415

    @app.route("/livez")
    def livez() -> ResponseReturnValue:
        return jsonify({"alive": True, "version": __version__}), 200

    @app.route("/healthz")
    def healthz() -> ResponseReturnValue:
        """Report whether issuance and CRL publication can work."""
        from pathlib import Path  # noqa: PLC0415

        from devkeyring.core.errors import AuthorityUnavailable  # noqa: PLC0415

        container = app.extensions["container"]
        result: dict = {"status": "ok", "version": __version__}
        checks: dict = {}

        try:
            authority = container.authority
            checks["authority"] = authority.signer.subject.rfc4514_string()
        except AuthorityUnavailable as exc:
            log.warning("Health check: authority unavailable: %s", exc.detail)
            checks["authority"] = "unavailable"
            result["status"] = "degraded"

        crl_path = container.settings.crl.output_path
        checks["crl"] = "present" if crl_path and Path(crl_path).is_file() else "missing"

        checks["webhook_secret"] = "set" if container.settings.webhook.secret else "missing"
        if not container.settings.webhook.secret:
            result["status"] = "degraded"

        result["checks"] = checks
        code = 200 if result["status"] == "ok" else 503
        return jsonify(result), code
