"""Structured security event logger.

Emits standardized security events for SIEM integration.  All events
are logged to the ``devkeyring.security`` logger with a consistent
``event_id`` field for filtering and alerting.

Sensitive material (PEM bodies, ledger tokens) is redacted via
:func:`~devkeyring.logging.sanitize.sanitize_for_logs` before emission.
"""

from __future__ import annotations

import logging
from typing import Any

from devkeyring.logging.sanitize import sanitize_for_logs

security_log = logging.getLogger("devkeyring.security")


def _emit(
    event_id: str,
    message: str,
    *args: Any,  # noqa: ANN401
    identity: str | None = None,
    severity: str = "INFO",
    **extra: Any,  # noqa: ANN401
) -> None:
    """Emit a structured security event.

    All *extra* keyword arguments are sanitized to redact
    cryptographic material before logging.
    """
    sanitized_extra = sanitize_for_logs(extra)
    data: dict[str, object] = {
        "event_id": event_id,
        "severity": severity,
    }
    if identity is not None:
        data["identity"] = identity
    data.update(sanitized_extra)
    level = getattr(logging, severity.upper(), logging.INFO)
    security_log.log(level, message, *args, extra=data)


def certificate_issued(
    identity: str,
    serial_number: str,
    fingerprint: str,
    record_id: int | None,
    *,
    proof_of_possession: bool,
) -> None:
    """Log issuance of a new developer certificate."""
    _emit(
        "devkeyring.security.certificate_issued",
        "Certificate issued: serial=%s identity=%s",
        serial_number,
        identity,
        identity=identity,
        serial_number=serial_number,
        fingerprint=fingerprint,
        record_id=record_id,
        proof_of_possession=proof_of_possession,
    )


def issuance_rejected(identity: str, record_id: int | None, reason: str) -> None:
    """Log an issuance request that was refused."""
    _emit(
        "devkeyring.security.issuance_rejected",
        "Issuance rejected for %s: %s",
        identity,
        reason,
        identity=identity,
        record_id=record_id,
        reason=reason,
        severity="WARNING",
    )


def certificate_revoked(
    serial_number: str,
    requester: str,
    owner: str | None,
    reason: str,
    record_id: int | None,
) -> None:
    """Log a successful revocation."""
    _emit(
        "devkeyring.security.certificate_revoked",
        "Certificate revoked: serial=%s by %s",
        serial_number,
        requester,
        identity=requester,
        serial_number=serial_number,
        owner=owner,
        reason=reason,
        record_id=record_id,
    )


def revocation_denied(
    serial_number: str,
    requester: str,
    denial: str,
    owner: str | None,
) -> None:
    """Log a revocation request that failed authorization."""
    _emit(
        "devkeyring.security.revocation_denied",
        "Revocation of %s denied for %s: %s",
        serial_number,
        requester,
        denial,
        identity=requester,
        serial_number=serial_number,
        denial=denial,
        owner=owner,
        severity="WARNING",
    )


def admin_override(serial_number: str, requester: str, owner: str | None) -> None:
    """Log a privileged identity revoking a certificate it does not own."""
    _emit(
        "devkeyring.security.admin_override",
        "Privileged revocation of %s by %s (owner %s)",
        serial_number,
        requester,
        owner or "unknown",
        identity=requester,
        serial_number=serial_number,
        owner=owner,
        severity="WARNING",
    )


def ledger_unavailable(operation: str, detail: str, status: int | None = None) -> None:
    """Log a ledger read failure that forced a fail-open or fail-closed path."""
    _emit(
        "devkeyring.security.ledger_unavailable",
        "Ledger unavailable during %s: %s",
        operation,
        detail,
        operation=operation,
        status=status,
        severity="WARNING",
    )


def serial_collision(serial_number: str, identity: str) -> None:
    """Log a generated serial that already exists in the ledger."""
    _emit(
        "devkeyring.security.serial_collision",
        "Serial number collision while issuing for %s: %s",
        identity,
        serial_number,
        identity=identity,
        serial_number=serial_number,
        severity="CRITICAL",
    )


def malformed_entry(record_id: int | None, detail: str) -> None:
    """Log a ledger entry that carries a marker but cannot be parsed."""
    _emit(
        "devkeyring.security.malformed_entry",
        "Malformed ledger entry #%s: %s",
        record_id,
        detail,
        record_id=record_id,
        detail=detail,
        severity="WARNING",
    )


def spam_closed(identity: str, record_id: int, *, blocked: bool) -> None:
    """Log a ledger entry closed as spam."""
    _emit(
        "devkeyring.security.spam_closed",
        "Entry #%s by %s closed as spam",
        record_id,
        identity,
        identity=identity,
        record_id=record_id,
        blocked=blocked,
    )


def webhook_signature_invalid(delivery_id: str | None, remote_addr: str | None) -> None:
    """Log a webhook delivery whose HMAC signature did not verify."""
    _emit(
        "devkeyring.security.webhook_signature_invalid",
        "Rejected webhook delivery %s from %s: bad signature",
        delivery_id,
        remote_addr,
        delivery_id=delivery_id,
        remote_addr=remote_addr,
        severity="WARNING",
    )
