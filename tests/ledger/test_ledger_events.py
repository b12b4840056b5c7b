"""Tests for devkeyring.ledger.events."""

from __future__ import annotations

import json

import pytest

from devkeyring.core.errors import MalformedLedgerEntry
from devkeyring.ledger.events import (
    CERTIFICATE_ISSUED,
    CERTIFICATE_REVOKED,
    parse_events,
    render_event,
)


class TestRenderEvent:
    def test_marker_is_html_comment(self):
        marker = render_event(CERTIFICATE_ISSUED, serial_number="abc")
        assert marker.startswith("<!-- devkeyring:event {")
        assert marker.endswith("} -->")

    def test_payload_carries_kind_and_version(self):
        marker = render_event(CERTIFICATE_REVOKED, serial_number="abc")
        payload = json.loads(marker[len("<!-- devkeyring:event ") : -len(" -->")])
        assert payload == {"kind": CERTIFICATE_REVOKED, "v": 1, "serial_number": "abc"}

    def test_keys_are_sorted(self):
        assert render_event("k", b=1, a=2) == render_event("k", a=2, b=1)


class TestParseEvents:
    def test_round_trip_fields(self):
        body = "Done!\n\n" + render_event(CERTIFICATE_ISSUED, serial_number="abc", fingerprint="AA")
        (event,) = parse_events(body)
        assert event.kind == CERTIFICATE_ISSUED
        assert event.get("serial_number") == "abc"
        assert event.get("fingerprint") == "AA"
        assert event.get("missing", "x") == "x"
        assert "v" not in event.fields

    def test_multiple_markers_in_order(self):
        body = render_event("first") + "\ntext\n" + render_event("second")
        assert [e.kind for e in parse_events(body)] == ["first", "second"]

    def test_no_marker(self):
        assert parse_events("plain comment") == []
        assert parse_events("") == []

    def test_invalid_json_is_malformed(self):
        with pytest.raises(MalformedLedgerEntry) as exc_info:
            parse_events("<!-- devkeyring:event {not json} -->", record_id=7)
        assert exc_info.value.record_id == 7

    def test_missing_kind_is_malformed(self):
        with pytest.raises(MalformedLedgerEntry, match="kind"):
            parse_events('<!-- devkeyring:event {"serial_number": "a"} -->')
