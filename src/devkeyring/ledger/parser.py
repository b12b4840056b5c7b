"""Extract certificate history from ledger entries.

Two formats are understood, newest first:

1. **Structured events** (:mod:`devkeyring.ledger.events`) written by
   this engine.
2. **Legacy free text** posted by earlier versions of the keyring bot,
   e.g.::

       ✅ Certificate successfully issued!

       - **Serial Number**: `1a2b3c...`
       - **Fingerprint (SHA-256)**: `AB:CD:...`

   Revocation requests are user-authored issue bodies; the serial number
   and reason are recovered with a cascade of patterns.

Within one entry the *last* matching comment wins, so a correction
posted later in the same thread supersedes the original.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection
from typing import TYPE_CHECKING

from devkeyring.core.clock import parse_timestamp
from devkeyring.core.errors import MalformedLedgerEntry
from devkeyring.core.types import RevocationReason, TitleTag
from devkeyring.ledger.events import (
    CERTIFICATE_ISSUED,
    CERTIFICATE_REVOKED,
    LedgerEvent,
    parse_events,
)
from devkeyring.models.certificate import CertificateRecord
from devkeyring.models.revocation import RevocationRecord

if TYPE_CHECKING:
    from datetime import datetime

    from devkeyring.models.ledger import LedgerComment, LedgerEntry

log = logging.getLogger(__name__)

ISSUANCE_SENTINEL = "✅ Certificate successfully issued"
REVOCATION_SENTINEL = "Certificate Revoked Successfully"

_SERIAL_FIELD_RE = re.compile(r"Serial Number.*?`([^`]+)`", re.IGNORECASE)
_FINGERPRINT_FIELD_RE = re.compile(
    r"Fingerprint \(SHA-256\).*?`([^`]+)`",
    re.IGNORECASE,
)
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

# Revocation request bodies, most specific first
_REQUEST_SERIAL_PATTERNS = (
    re.compile(r"Serial.*?Number.*?`([0-9a-fA-F]+)`", re.IGNORECASE),
    re.compile(r"serial[_\s]*number[:：]\s*([0-9a-fA-F]+)", re.IGNORECASE),
    re.compile(r"\b([0-9a-fA-F]{32,})\b"),
)

_REASON_HEADING_RE = re.compile(r"###\s*Revocation\s*Reason\s*\n+(\w+)", re.IGNORECASE)
_REASON_FIELD_RE = re.compile(r"reason[:：]\s*(\w+)", re.IGNORECASE)

_REASON_MAP = {
    "compromised": RevocationReason.KEY_COMPROMISE,
    "lost": RevocationReason.KEY_COMPROMISE,
    "keycompromise": RevocationReason.KEY_COMPROMISE,
    "superseded": RevocationReason.SUPERSEDED,
    "other": RevocationReason.UNSPECIFIED,
}

_TITLE_RE = re.compile(r"^\[([^\]]+)]\s*(.*?)\s*$")

_CSR_BLOCK_RE = re.compile(
    r"-----BEGIN CERTIFICATE REQUEST-----[\s\S]*?-----END CERTIFICATE REQUEST-----",
)
_PUBLIC_KEY_BLOCK_RE = re.compile(
    r"-----BEGIN PUBLIC KEY-----[\s\S]*?-----END PUBLIC KEY-----",
)


# ---------------------------------------------------------------------------
# Titles and request bodies
# ---------------------------------------------------------------------------


def recognize_title(title: str) -> tuple[TitleTag | None, str]:
    """Split ``"[tag] rest"`` into ``(TitleTag, rest)``.

    Unknown or missing tags yield ``(None, title)``.
    """
    match = _TITLE_RE.match(title or "")
    if match:
        tag = match.group(1).lower()
        if tag in TitleTag._value2member_map_:
            return TitleTag(tag), match.group(2)
    return None, title


def normalize_serial(value: str) -> str:
    """Return *value* as a lowercase hex serial, stripping separators."""
    return value.strip().replace(":", "").lower()


def extract_request_serial(body: str | None) -> str | None:
    """Recover the serial number a revocation request refers to."""
    if not body:
        return None
    for pattern in _REQUEST_SERIAL_PATTERNS:
        match = pattern.search(body)
        if match:
            return normalize_serial(match.group(1))
    return None


def extract_revocation_reason(body: str | None) -> RevocationReason:
    """Map the free-text reason in a revocation request to a CRL reason."""
    if not body:
        return RevocationReason.UNSPECIFIED
    for pattern in (_REASON_HEADING_RE, _REASON_FIELD_RE):
        match = pattern.search(body)
        if match:
            return _REASON_MAP.get(match.group(1).lower(), RevocationReason.UNSPECIFIED)
    return RevocationReason.UNSPECIFIED


def extract_key_material(body: str | None) -> str | None:
    """Return the first CSR block in *body*, else the first public key block."""
    if not body:
        return None
    for pattern in (_CSR_BLOCK_RE, _PUBLIC_KEY_BLOCK_RE):
        match = pattern.search(body)
        if match:
            return match.group(0)
    return None


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------


def _is_trusted(comment: LedgerComment, trusted_authors: Collection[str]) -> bool:
    if not trusted_authors:
        return True
    author = (comment.author or "").casefold()
    if author in {a.casefold() for a in trusted_authors}:
        return True
    if ISSUANCE_SENTINEL in comment.body or "devkeyring:event" in comment.body:
        log.warning(
            "Ignoring certificate marker posted by untrusted author %r",
            comment.author,
        )
    return False


def _last_event(
    comment: LedgerComment,
    kind: str,
    record_id: int,
) -> LedgerEvent | None:
    events = [e for e in parse_events(comment.body, record_id=record_id) if e.kind == kind]
    return events[-1] if events else None


def _event_time(event: LedgerEvent, key: str, fallback: datetime, record_id: int) -> datetime:
    value = event.get(key)
    if not value:
        return fallback
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError) as exc:
        msg = f"Event field '{key}' is not a timestamp: {value!r}"
        raise MalformedLedgerEntry(msg, record_id=record_id) from exc


def _checked_serial(value: object, record_id: int) -> str:
    if not isinstance(value, str) or not _HEX_RE.match(normalize_serial(value) or "-"):
        msg = f"Serial number {value!r} is not hexadecimal"
        raise MalformedLedgerEntry(msg, record_id=record_id)
    return normalize_serial(value)


def _issuance_from_event(
    entry: LedgerEntry,
    comment: LedgerComment,
    event: LedgerEvent,
) -> CertificateRecord:
    return CertificateRecord(
        serial_number=_checked_serial(event.get("serial_number"), entry.number),
        fingerprint=event.get("fingerprint"),
        owner=entry.author,
        issued_at=_event_time(event, "issued_at", comment.created_at, entry.number),
        source_record_id=entry.number,
    )


def _issuance_from_text(entry: LedgerEntry, comment: LedgerComment) -> CertificateRecord:
    serial_match = _SERIAL_FIELD_RE.search(comment.body)
    if serial_match is None:
        msg = "Issuance comment has no 'Serial Number' field"
        raise MalformedLedgerEntry(msg, record_id=entry.number)
    fingerprint_match = _FINGERPRINT_FIELD_RE.search(comment.body)
    return CertificateRecord(
        serial_number=_checked_serial(serial_match.group(1), entry.number),
        fingerprint=fingerprint_match.group(1) if fingerprint_match else None,
        owner=entry.author,
        issued_at=comment.created_at,
        source_record_id=entry.number,
    )


def extract_issuance(
    entry: LedgerEntry,
    trusted_authors: Collection[str] = (),
) -> CertificateRecord | None:
    """Return the certificate recorded in *entry*, or ``None``.

    The thread is scanned from the newest comment backwards; the first
    comment carrying an issuance marker decides.  Only comments by
    *trusted_authors* (casefolded logins) count when the collection is
    non-empty.

    Raises
    ------
    MalformedLedgerEntry
        When the deciding comment carries a marker but no usable serial.

    """
    for comment in reversed(entry.comments):
        if not comment.body or not _is_trusted(comment, trusted_authors):
            continue
        event = _last_event(comment, CERTIFICATE_ISSUED, entry.number)
        if event is not None:
            return _issuance_from_event(entry, comment, event)
        if ISSUANCE_SENTINEL in comment.body:
            return _issuance_from_text(entry, comment)
    return None


# ---------------------------------------------------------------------------
# Revocation
# ---------------------------------------------------------------------------


def _revocation_confirmation(
    entry: LedgerEntry,
    trusted_authors: Collection[str],
) -> tuple[LedgerComment, LedgerEvent | None] | None:
    for comment in reversed(entry.comments):
        if not comment.body or not _is_trusted(comment, trusted_authors):
            continue
        event = _last_event(comment, CERTIFICATE_REVOKED, entry.number)
        if event is not None:
            return comment, event
        if "✅" in comment.body and REVOCATION_SENTINEL in comment.body:
            return comment, None
    return None


def extract_revocation(
    entry: LedgerEntry,
    trusted_authors: Collection[str] = (),
) -> RevocationRecord:
    """Return the revocation recorded in *entry*.

    ``revoked_at`` comes from the confirmation comment when there is one,
    else from the entry's closing (or, failing that, creation) time.

    Raises
    ------
    MalformedLedgerEntry
        When no serial number can be recovered.

    """
    confirmation = _revocation_confirmation(entry, trusted_authors)
    event = confirmation[1] if confirmation else None

    serial = None
    if event is not None and event.get("serial_number"):
        serial = _checked_serial(event.get("serial_number"), entry.number)
    if serial is None:
        serial = extract_request_serial(entry.body)
    if serial is None:
        msg = "Revocation request has no recognizable serial number"
        raise MalformedLedgerEntry(msg, record_id=entry.number)

    fallback = entry.closed_at or entry.created_at
    if confirmation is not None:
        fallback = confirmation[0].created_at

    if event is not None:
        revoked_at = _event_time(event, "revoked_at", fallback, entry.number)
        try:
            reason = RevocationReason(event.get("reason", RevocationReason.UNSPECIFIED))
        except ValueError:
            reason = extract_revocation_reason(entry.body)
    else:
        revoked_at = fallback
        reason = extract_revocation_reason(entry.body)

    return RevocationRecord(
        serial_number=serial,
        requested_by=entry.author,
        reason=reason,
        revoked_at=revoked_at,
        source_record_id=entry.number,
    )
