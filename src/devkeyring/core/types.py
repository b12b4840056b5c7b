"""Enumerated types for the devkeyring lifecycle engine.

All enums inherit from ``StrEnum`` so their ``.value`` is a plain
string that JSON round-trips naturally and that matches the wire
format of the published CRL artifact.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class LedgerCategory(StrEnum):
    ISSUANCE = "issuance"
    REVOCATION = "revocation"


class TitleTag(StrEnum):
    APPEAL = "appeal"
    ISSUE = "issue"
    SUGGESTION = "suggestion"
    KEYRING = "keyring"
    REVOKE = "revoke"


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


class CertificateStatus(StrEnum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


# ---------------------------------------------------------------------------
# Revocation reasons -- the subset of RFC 5280 §5.3.1 the keyring uses,
# spelled the way the CRL artifact publishes them.
# ---------------------------------------------------------------------------


class RevocationReason(StrEnum):
    KEY_COMPROMISE = "keyCompromise"
    SUPERSEDED = "superseded"
    UNSPECIFIED = "unspecified"


class DenialReason(StrEnum):
    NOT_OWNER = "not_owner"
    UNKNOWN_CERTIFICATE = "unknown_certificate"


# ---------------------------------------------------------------------------
# Reputation
# ---------------------------------------------------------------------------


class ReputationPolicy(StrEnum):
    INFORMATIONAL = "informational"
    GATED = "gated"


class ApprovalAction(StrEnum):
    AUTO_APPROVE = "auto_approve"
    AUTO_REJECT = "auto_reject"
    MANUAL_REVIEW = "manual_review"


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


class LedgerMessage(StrEnum):
    """Comment templates posted back to ledger entries."""

    ISSUED = "issued"
    ISSUE_FAILED = "issue_failed"
    AUTHORITY_UNAVAILABLE = "authority_unavailable"
    ALREADY_ACTIVE = "already_active"
    KEY_MISSING = "key_missing"
    REVOKED = "revoked"
    REVOKE_DENIED = "revoke_denied"
    REVOKE_UNKNOWN = "revoke_unknown"
    ALREADY_REVOKED = "already_revoked"
    SERIAL_MISSING = "serial_missing"
    SYSTEM_ERROR = "system_error"
    REPUTATION_REPORT = "reputation_report"
    MANUAL_REVIEW = "manual_review"
    REJECTED = "rejected"


class Outcome(StrEnum):
    """What handling one ledger event resulted in."""

    IGNORED = "ignored"
    SPAM_CLOSED = "spam_closed"
    PENDING_REVIEW = "pending_review"
    ISSUED = "issued"
    ISSUANCE_REJECTED = "issuance_rejected"
    REVOKED = "revoked"
    REVOCATION_REJECTED = "revocation_rejected"
