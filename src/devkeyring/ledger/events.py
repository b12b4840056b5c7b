"""Structured ledger events.

Every comment the engine posts for an issuance or a revocation carries
a machine-readable marker alongside the human-readable text::

    <!-- devkeyring:event {"kind": "certificate_issued", ...} -->

The marker is an HTML comment, so it is invisible when the issue thread
is rendered.  Readers prefer these typed fields over the free-text
patterns handled by :mod:`devkeyring.ledger.parser`.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from devkeyring.core.errors import MalformedLedgerEntry

CERTIFICATE_ISSUED = "certificate_issued"
CERTIFICATE_REVOKED = "certificate_revoked"

SCHEMA_VERSION = 1

_MARKER_RE = re.compile(
    r"<!--\s*devkeyring:event\s+(\{.*?\})\s*-->",
    re.DOTALL,
)


@dataclass(frozen=True)
class LedgerEvent:
    kind: str
    fields: dict[str, Any]

    def get(self, key: str, default: Any = None) -> Any:  # noqa: ANN401
        return self.fields.get(key, default)


def render_event(kind: str, **fields: Any) -> str:  # noqa: ANN401
    """Return the marker line for an event of *kind* with *fields*."""
    payload = {"kind": kind, "v": SCHEMA_VERSION, **fields}
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return f"<!-- devkeyring:event {encoded} -->"


def parse_events(body: str, *, record_id: int | None = None) -> list[LedgerEvent]:
    """Return every event marker in *body*, in order of appearance.

    Raises
    ------
    MalformedLedgerEntry
        When a marker is present but its payload is not a JSON object
        with a ``kind``.

    """
    events: list[LedgerEvent] = []
    for match in _MARKER_RE.finditer(body or ""):
        try:
            payload = json.loads(match.group(1))
        except json.JSONDecodeError as exc:
            msg = f"Event marker is not valid JSON: {exc}"
            raise MalformedLedgerEntry(msg, record_id=record_id) from exc
        if not isinstance(payload, dict) or not payload.get("kind"):
            msg = "Event marker payload has no 'kind'"
            raise MalformedLedgerEntry(msg, record_id=record_id)
        kind = payload.pop("kind")
        payload.pop("v", None)
        events.append(LedgerEvent(kind=kind, fields=payload))
    return events
