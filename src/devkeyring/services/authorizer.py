"""Revocation Authorizer.

Decides whether a requester may revoke a serial, and owns the
read path over the global issuance and revocation history that other
components consult:

- owner (case-insensitive) -> permitted
- privileged identity      -> permitted with ``admin_override``
- anyone else              -> denied ``not_owner``
- serial never issued      -> denied ``unknown_certificate``, unless
  the requester is privileged

Ledger failures propagate as
:class:`~devkeyring.core.errors.LedgerUnavailable`; authorization
never fails open.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from devkeyring.core.errors import AuthorizationDenied
from devkeyring.core.types import DenialReason, LedgerCategory
from devkeyring.ledger.parser import normalize_serial
from devkeyring.logging import security_events

if TYPE_CHECKING:
    from devkeyring.ledger.base import PrivilegedRoleCheck
    from devkeyring.ledger.reader import LedgerReader
    from devkeyring.models.certificate import CertificateRecord
    from devkeyring.models.ledger import LedgerEntry
    from devkeyring.models.revocation import RevocationRecord

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationDecision:
    permitted: bool
    serial_number: str
    requester: str
    owner: str | None = None
    origin_record_id: int | None = None
    admin_override: bool = False
    denial: DenialReason | None = None

    @property
    def message(self) -> str:
        if self.denial is DenialReason.NOT_OWNER:
            return f"certificate does not belong to you, owner is {self.owner}"
        if self.denial is DenialReason.UNKNOWN_CERTIFICATE:
            return f"certificate {self.serial_number} was not issued by this keyring"
        if self.admin_override:
            return f"revocation of {self.serial_number} permitted by privileged role"
        return f"revocation of {self.serial_number} permitted for owner {self.owner}"


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------


def index_issuance(records: Iterable[CertificateRecord]) -> dict[str, CertificateRecord]:
    """Map serial -> record, given records newest first.

    Duplicate serials are a data anomaly: the newest record is kept
    unless it lacks a fingerprint and an older duplicate has one.
    Records are never merged.
    """
    index: dict[str, CertificateRecord] = {}
    for record in records:
        kept = index.get(record.serial_number)
        if kept is None:
            index[record.serial_number] = record
            continue
        log.warning(
            "Duplicate issuance of serial %s in entries #%d and #%d",
            record.serial_number,
            kept.source_record_id,
            record.source_record_id,
        )
        if kept.fingerprint is None and record.fingerprint is not None:
            index[record.serial_number] = record
    return index


def index_revocations(records: Iterable[RevocationRecord]) -> dict[str, RevocationRecord]:
    """Map serial -> revocation, given records newest first; the newest wins."""
    index: dict[str, RevocationRecord] = {}
    for record in records:
        kept = index.get(record.serial_number)
        if kept is not None:
            log.info(
                "Serial %s already revoked by entry #%d; skipping entry #%d",
                record.serial_number,
                kept.source_record_id,
                record.source_record_id,
            )
            continue
        index[record.serial_number] = record
    return index


# ---------------------------------------------------------------------------
# Authorizer
# ---------------------------------------------------------------------------


class RevocationAuthorizer:
    """Ownership and privilege checks for revocation requests."""

    def __init__(self, reader: LedgerReader, privileged_check: PrivilegedRoleCheck) -> None:
        self._reader = reader
        self._privileged = privileged_check

    # -- read path ----------------------------------------------------------

    def issuance_index(
        self,
        entries: Iterable[LedgerEntry] | None = None,
    ) -> dict[str, CertificateRecord]:
        """Every issued serial in the ledger, deduplicated."""
        if entries is None:
            entries = self._reader.fetch(LedgerCategory.ISSUANCE)
        return index_issuance(self._reader.issuance_records(entries))

    def revocation_index(
        self,
        entries: Iterable[LedgerEntry] | None = None,
    ) -> dict[str, RevocationRecord]:
        """Every revoked serial in the ledger, deduplicated."""
        if entries is None:
            entries = self._reader.fetch(LedgerCategory.REVOCATION)
        return index_revocations(self._reader.revocation_records(entries))

    def is_revoked(self, serial_number: str) -> bool:
        return normalize_serial(serial_number) in self.revocation_index()

    # -- decisions ----------------------------------------------------------

    def authorize(self, serial_number: str, requester: str) -> AuthorizationDecision:
        """Decide whether *requester* may revoke *serial_number*.

        Raises
        ------
        LedgerUnavailable
            When the issuance history cannot be read.

        """
        serial = normalize_serial(serial_number)
        record = self.issuance_index().get(serial)

        if record is not None and record.owner.casefold() == requester.casefold():
            return AuthorizationDecision(
                permitted=True,
                serial_number=serial,
                requester=requester,
                owner=record.owner,
                origin_record_id=record.source_record_id,
            )

        owner = record.owner if record is not None else None
        origin = record.source_record_id if record is not None else None

        if self._privileged.is_privileged(requester):
            security_events.admin_override(serial, requester, owner)
            return AuthorizationDecision(
                permitted=True,
                serial_number=serial,
                requester=requester,
                owner=owner,
                origin_record_id=origin,
                admin_override=True,
            )

        denial = DenialReason.NOT_OWNER if record is not None else DenialReason.UNKNOWN_CERTIFICATE
        security_events.revocation_denied(serial, requester, denial.value, owner)
        return AuthorizationDecision(
            permitted=False,
            serial_number=serial,
            requester=requester,
            owner=owner,
            origin_record_id=origin,
            denial=denial,
        )

    def require(self, serial_number: str, requester: str) -> AuthorizationDecision:
        """Like :meth:`authorize` but raise on denial."""
        decision = self.authorize(serial_number, requester)
        if not decision.permitted:
            raise AuthorizationDenied(decision)
        return decision
