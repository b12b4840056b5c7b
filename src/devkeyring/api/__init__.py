"""HTTP surface: webhook receiver and CRL distribution.

Call :func:`register_blueprints` during application startup.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flask import Flask

log = logging.getLogger(__name__)


def register_blueprints(app: Flask) -> None:
    """Register the keyring blueprints on the Flask application."""
    from devkeyring.api.webhook import webhook_bp  # noqa: PLC0415

    app.register_blueprint(webhook_bp)

    log.info(
        "Registered keyring blueprints (%d URL rules)",
        len(list(app.url_map.iter_rules())),
    )
