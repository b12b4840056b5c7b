"""Error taxonomy for the certificate lifecycle engine.

Every failure the engine can report derives from :class:`KeyringError`,
which carries a human-readable ``detail`` and a ``retryable`` flag in
the same shape as a CA backend error.  Callers pick a fail-open or
fail-closed policy by catching the specific subclass.

==========================  ==========================================
Error                       Meaning
==========================  ==========================================
``LedgerUnavailable``       ledger rate-limited or unreachable
``MalformedLedgerEntry``    one historical entry cannot be parsed
``InvalidKeyMaterial``      unparseable key or unapproved algorithm
``CSRSignatureInvalid``     CSR self-signature does not verify
``AuthorityUnavailable``    intermediate CA material missing/broken
``AuthorizationDenied``     requester may not revoke the serial
``SerialCollision``         freshly drawn serial already in the ledger
==========================  ==========================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from devkeyring.services.authorizer import AuthorizationDecision


class KeyringError(Exception):
    """Base class for all lifecycle engine failures.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the operation may be retried.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


class LedgerUnavailable(KeyringError):
    """The ledger service could not be read (timeouts, rate limits, 5xx).

    Raised instead of returning an empty result so that callers can tell
    "no entries" apart from "could not look".
    """

    def __init__(
        self,
        detail: str,
        *,
        retryable: bool = True,
        status: int | None = None,
    ) -> None:
        self.status = status
        super().__init__(detail, retryable=retryable)


class MalformedLedgerEntry(KeyringError):
    """A single ledger entry carries a marker but not the fields it promises."""

    def __init__(self, detail: str, *, record_id: int | None = None) -> None:
        self.record_id = record_id
        super().__init__(detail)


class InvalidKeyMaterial(KeyringError):
    """Submitted key material is unparseable or uses an unapproved algorithm."""


class CSRSignatureInvalid(KeyringError):
    """The CSR self-signature does not verify (no proof of possession)."""


class AuthorityUnavailable(KeyringError):
    """The intermediate CA certificate chain or key is not configured/loadable."""


class SerialCollision(KeyringError):
    """A freshly generated serial number already exists in the ledger."""

    def __init__(self, serial_number: str) -> None:
        self.serial_number = serial_number
        super().__init__(
            f"Generated serial number {serial_number} collides with an "
            "existing certificate; refusing to issue",
        )


class AuthorizationDenied(KeyringError):
    """A revocation request was refused; carries the full decision."""

    def __init__(self, decision: AuthorizationDecision) -> None:
        self.decision = decision
        super().__init__(decision.message)
