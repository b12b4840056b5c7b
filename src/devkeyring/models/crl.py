"""Certificate revocation list artifact.

The CRL is regenerated from the full ledger on every build and is never
patched.  :meth:`CRL.to_dict` produces the published wire shape
(camelCase keys, fixed key order) so that two builds over an unchanged
ledger serialize identically apart from ``generatedAt``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from devkeyring.core.clock import format_timestamp
from devkeyring.core.types import RevocationReason


@dataclass(frozen=True)
class CRLEntry:
    serial_number: str
    fingerprint: str | None
    owner: str
    revoked_at: datetime
    reason: RevocationReason
    revocation_record_id: int
    origin_record_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "serialNumber": self.serial_number,
            "fingerprint": self.fingerprint,
            "owner": self.owner,
            "revokedAt": format_timestamp(self.revoked_at),
            "reason": self.reason.value,
            "revokeIssueNumber": self.revocation_record_id,
            "originalIssueNumber": self.origin_record_id,
        }


@dataclass(frozen=True)
class CRL:
    version: str
    generated_at: datetime
    issuer: str
    total_issued: int
    revoked_certificates: tuple[CRLEntry, ...] = field(default_factory=tuple)

    @property
    def total_revoked(self) -> int:
        return len(self.revoked_certificates)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "generatedAt": format_timestamp(self.generated_at),
            "issuer": self.issuer,
            "totalIssued": self.total_issued,
            "totalRevoked": self.total_revoked,
            "revokedCertificates": [e.to_dict() for e in self.revoked_certificates],
        }
