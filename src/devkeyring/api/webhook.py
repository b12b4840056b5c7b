"""GitHub webhook receiver and CRL distribution endpoint.

``POST /webhook``
    Verifies ``X-Hub-Signature-256`` against ``webhook.secret`` and
    hands ``issues`` events to :class:`~devkeyring.services.KeyringService`.
``GET /crl.json``
    Builds the CRL from the ledger and returns it.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

from flask import Blueprint, Response, g, jsonify, request

from devkeyring.app.context import get_container
from devkeyring.app.errors import (
    BAD_SIGNATURE,
    MALFORMED,
    NOT_CONFIGURED,
    KeyringProblem,
)
from devkeyring.logging import security_events
from devkeyring.services.crl import render_crl_json

log = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"


def compute_signature(secret: str, body: bytes) -> str:
    """Return the ``sha256=<hex>`` signature GitHub sends for *body*."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str | None, body: bytes, signature: str | None) -> bool:
    """Constant-time check of *signature* against *body*."""
    if not secret or not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, body), signature)


@webhook_bp.route("/webhook", methods=["POST"])
def receive_event():
    """Verify and dispatch one webhook delivery."""
    container = get_container()
    secret = container.settings.webhook.secret
    if not secret:
        raise KeyringProblem(NOT_CONFIGURED, "Webhook secret is not configured", 503)

    body = request.get_data(cache=True)
    if not verify_signature(secret, body, request.headers.get(SIGNATURE_HEADER)):
        security_events.webhook_signature_invalid(g.delivery_id, request.remote_addr)
        raise KeyringProblem(BAD_SIGNATURE, "Webhook signature mismatch", 401)

    event_name = g.event_name
    if not event_name:
        raise KeyringProblem(MALFORMED, "Missing X-GitHub-Event header")
    if event_name == "ping":
        return jsonify({"outcome": "pong"}), 200

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise KeyringProblem(MALFORMED, "Webhook body is not a JSON object")

    g.entry_number = (payload.get("issue") or {}).get("number")
    outcome = container.keyring.handle_event(event_name, payload, delivery_id=g.delivery_id)
    log.info("Handled %s.%s: %s", event_name, payload.get("action"), outcome)
    return jsonify({"outcome": outcome.value}), 200


@webhook_bp.route("/crl.json", methods=["GET"])
def get_crl():
    """Return a freshly built CRL in the published JSON format."""
    container = get_container()
    crl = container.crl_builder.build()
    response = Response(render_crl_json(crl), mimetype="application/json")
    response.headers["Cache-Control"] = "no-cache"
    return response
