"""RFC 7807 Problem Details for the webhook receiver.

Provides :class:`KeyringProblem`, an exception that renders itself as
an ``application/problem+json`` response, and the Flask error-handler
registration function.

Usage::

    raise KeyringProblem(BAD_SIGNATURE, "Signature mismatch", 401)
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from devkeyring.core.errors import KeyringError

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Problem types
# ---------------------------------------------------------------------------
_P = "urn:devkeyring:error:"

BAD_SIGNATURE = _P + "badSignature"
MALFORMED = _P + "malformed"
NOT_CONFIGURED = _P + "notConfigured"
LEDGER_UNAVAILABLE = _P + "ledgerUnavailable"
SERVER_INTERNAL = _P + "serverInternal"

PROBLEM_CONTENT_TYPE = "application/problem+json"


class KeyringProblem(Exception):
    """A *problem details* object that doubles as an exception.

    Parameters
    ----------
    error_type:
        One of the URN constants above, or ``"about:blank"``.
    detail:
        Human-readable explanation of the problem.
    status:
        HTTP status code (default 400).
    title:
        Optional short summary.

    """

    def __init__(
        self,
        error_type: str,
        detail: str,
        status: int = 400,
        *,
        title: str | None = None,
    ) -> None:
        self.error_type = error_type
        self.detail = detail
        self.status = status
        self.title = title
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "type": self.error_type,
            "detail": self.detail,
            "status": self.status,
        }
        if self.title is not None:
            body["title"] = self.title
        return body

    def to_response(self):
        """Build a Flask :class:`~flask.Response`."""
        resp = jsonify(self.to_dict())
        resp.status_code = self.status
        resp.headers["Content-Type"] = PROBLEM_CONTENT_TYPE
        resp.headers["Cache-Control"] = "no-store"
        return resp


# ---------------------------------------------------------------------------
# Flask error handler registration
# ---------------------------------------------------------------------------


def register_error_handlers(app: Flask) -> None:
    """Attach handlers that produce problem+json responses for all errors."""

    @app.errorhandler(KeyringProblem)
    def _handle_problem(exc: KeyringProblem):
        return exc.to_response()

    @app.errorhandler(HTTPException)
    def _handle_http_exception(exc: HTTPException):
        problem = KeyringProblem(
            "about:blank",
            exc.description or "An error occurred",
            exc.code or 500,
            title=exc.name,
        )
        return problem.to_response()

    @app.errorhandler(KeyringError)
    def _handle_keyring_error(exc: KeyringError):
        # Retryable failures answer 503; GitHub does not retry on its own, so the
        # delivery is redelivered by hand or replayed with "devkeyring handle-event"
        status = 503 if exc.retryable else 500
        error_type = LEDGER_UNAVAILABLE if exc.retryable else SERVER_INTERNAL
        log.error("Event handling failed: %s", exc.detail)
        return KeyringProblem(error_type, exc.detail, status).to_response()

    @app.errorhandler(Exception)
    def _handle_unhandled(exc: Exception):
        log.exception("Unhandled exception during request")
        problem = KeyringProblem(
            SERVER_INTERNAL,
            "An unexpected internal error occurred",
            500,
        )
        return problem.to_response()
