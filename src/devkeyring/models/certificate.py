"""Certificate entities reconstructed from the ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from devkeyring.core.types import CertificateStatus

if TYPE_CHECKING:
    from devkeyring.core.errors import LedgerUnavailable

VALIDITY_PERIOD = timedelta(days=365)


@dataclass(frozen=True)
class CertificateRecord:
    """One issuance event.  Immutable; the signed certificate never changes."""

    serial_number: str
    fingerprint: str | None
    owner: str
    issued_at: datetime
    source_record_id: int

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + VALIDITY_PERIOD

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def status_at(self, now: datetime) -> CertificateStatus:
        """Time-only status; revocation is layered on by the resolver."""
        if self.is_expired(now):
            return CertificateStatus.EXPIRED
        return CertificateStatus.ACTIVE


@dataclass(frozen=True)
class CertificateState:
    """Derived partition of one identity's certificates at a point in time.

    ``error`` is set when the ledger could not be read; in that case
    ``active`` is ``None`` by the fail-open default and the lists are
    empty.
    """

    identity: str
    active: CertificateRecord | None = None
    expired: tuple[CertificateRecord, ...] = field(default_factory=tuple)
    revoked: tuple[CertificateRecord, ...] = field(default_factory=tuple)
    error: LedgerUnavailable | None = None

    @property
    def degraded(self) -> bool:
        return self.error is not None

    @property
    def origin_record_id(self) -> int | None:
        return self.active.source_record_id if self.active else None


@dataclass(frozen=True)
class CertificateStatistics:
    total: int = 0
    active: int = 0
    expired: int = 0
    revoked: int = 0
