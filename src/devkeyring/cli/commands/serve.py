"""Serve subcommand: run the webhook receiver."""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


def run_serve(config, args) -> int:  # noqa: ARG001
    """Start the webhook receiver on ``webhook.bind:webhook.port``."""
    from devkeyring.app import create_app

    app = create_app(config=config)
    settings = config.settings.webhook
    log.info("Starting webhook receiver on %s:%d", settings.bind, settings.port)
    app.run(host=settings.bind, port=settings.port, debug=False, use_reloader=False)
    return 0
