"""handle-event subcommand: the GitHub Actions entry point."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _load_payload(path: str) -> dict | None:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"devkeyring: error: cannot read event payload {path}: {exc}", file=sys.stderr)
        return None
    if not isinstance(payload, dict):
        print(f"devkeyring: error: event payload {path} is not a JSON object", file=sys.stderr)
        return None
    return payload


def run_handle_event(config, args) -> int:
    """Handle the event described by ``--event-name`` / ``--event-path``."""
    if not args.event_name or not args.event_path:
        print(
            "devkeyring: error: --event-name and --event-path are required "
            "outside GitHub Actions",
            file=sys.stderr,
        )
        return 2

    payload = _load_payload(args.event_path)
    if payload is None:
        return 1

    from devkeyring.app.context import Container

    container = Container(config.settings)
    outcome = container.keyring.handle_event(
        args.event_name,
        payload,
        delivery_id=os.environ.get("GITHUB_RUN_ID"),
    )
    print(outcome.value)
    return 0
