"""Certificate State Resolver.

Partitions one identity's certificates into active / expired / revoked
at a point in time.  Records are walked newest first and the first one
that is neither expired nor revoked is the active certificate; older
records are superseded and not classified.

When the ledger cannot be read the resolver fails *open*: it returns a
state with no active certificate and the error attached, so issuance
can proceed while the failure stays visible to the caller and in the
logs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from devkeyring.core.clock import Clock, utc_now
from devkeyring.core.errors import LedgerUnavailable
from devkeyring.core.types import CertificateStatus
from devkeyring.logging import security_events
from devkeyring.models.certificate import CertificateState, CertificateStatistics
from devkeyring.services.authorizer import index_issuance

if TYPE_CHECKING:
    from datetime import datetime

    from devkeyring.ledger.reader import LedgerReader
    from devkeyring.models.certificate import CertificateRecord
    from devkeyring.models.revocation import RevocationRecord
    from devkeyring.services.authorizer import RevocationAuthorizer

log = logging.getLogger(__name__)


class CertificateStateResolver:
    def __init__(
        self,
        reader: LedgerReader,
        authorizer: RevocationAuthorizer,
        clock: Clock | None = None,
    ) -> None:
        self._reader = reader
        self._authorizer = authorizer
        self._clock = clock or utc_now

    def _history(
        self,
        identity: str,
    ) -> tuple[list[CertificateRecord], dict[str, RevocationRecord]]:
        snapshot = self._reader.snapshot(identity)
        records = list(index_issuance(self._reader.issuance_records(snapshot.issuance)).values())
        revocations = self._authorizer.revocation_index(snapshot.revocation)
        return records, revocations

    def resolve(self, identity: str, now: datetime | None = None) -> CertificateState:
        """Return the certificate state of *identity* at *now*."""
        now = now or self._clock()
        try:
            records, revocations = self._history(identity)
        except LedgerUnavailable as exc:
            log.warning(
                "Ledger unavailable while resolving %s; assuming no active certificate: %s",
                identity,
                exc.detail,
            )
            security_events.ledger_unavailable("resolve", exc.detail, exc.status)
            return CertificateState(identity=identity, error=exc)

        expired: list[CertificateRecord] = []
        revoked: list[CertificateRecord] = []
        active = None
        for record in records:
            if record.status_at(now) is CertificateStatus.EXPIRED:
                expired.append(record)
                continue
            if record.serial_number in revocations:
                revoked.append(record)
                continue
            active = record
            break

        log.debug(
            "Resolved %s: active=%s, expired=%d, revoked=%d",
            identity,
            active.serial_number if active else None,
            len(expired),
            len(revoked),
        )
        return CertificateState(
            identity=identity,
            active=active,
            expired=tuple(expired),
            revoked=tuple(revoked),
        )

    def statistics(self, identity: str, now: datetime | None = None) -> CertificateStatistics:
        """Count every certificate of *identity*; revocation outranks expiry.

        Raises
        ------
        LedgerUnavailable
            When the ledger cannot be read.

        """
        now = now or self._clock()
        records, revocations = self._history(identity)
        revoked = sum(1 for r in records if r.serial_number in revocations)
        expired = sum(
            1
            for r in records
            if r.serial_number not in revocations
            and r.status_at(now) is CertificateStatus.EXPIRED
        )
        return CertificateStatistics(
            total=len(records),
            active=len(records) - revoked - expired,
            expired=expired,
            revoked=revoked,
        )
