"""Read certificate history out of the ledger.

:class:`LedgerReader` is the only component that talks to the ledger
for reads.  It turns closed, labelled entries into
:class:`~devkeyring.models.CertificateRecord` and
:class:`~devkeyring.models.RevocationRecord` values; everything above
it works on records, never on raw entries.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from devkeyring.core.errors import MalformedLedgerEntry
from devkeyring.core.types import LedgerCategory, TitleTag
from devkeyring.ledger.parser import extract_issuance, extract_revocation
from devkeyring.logging import security_events
from devkeyring.models.ledger import LedgerSnapshot

if TYPE_CHECKING:
    from collections.abc import Iterable

    from devkeyring.config.settings import LedgerSettings
    from devkeyring.ledger.base import Ledger
    from devkeyring.models.certificate import CertificateRecord
    from devkeyring.models.ledger import LedgerEntry
    from devkeyring.models.revocation import RevocationRecord

log = logging.getLogger(__name__)

_CATEGORY_TAGS = {
    LedgerCategory.ISSUANCE: TitleTag.KEYRING,
    LedgerCategory.REVOCATION: TitleTag.REVOKE,
}


class LedgerReader:
    """Fetches and extracts issuance and revocation history.

    Parameters
    ----------
    ledger:
        The ledger service.
    settings:
        Ledger settings; supplies the category labels and the set of
        identities whose comments may carry certificate markers.

    """

    def __init__(self, ledger: Ledger, settings: LedgerSettings) -> None:
        self._ledger = ledger
        self._settings = settings
        self._labels = {
            LedgerCategory.ISSUANCE: settings.issuance_label,
            LedgerCategory.REVOCATION: settings.revocation_label,
        }

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    def fetch(
        self,
        category: LedgerCategory,
        identity: str | None = None,
    ) -> list[LedgerEntry]:
        """Return closed entries of *category*, newest first.

        Raises
        ------
        LedgerUnavailable
            When the ledger cannot be read.  An empty list always means
            "no entries", never "could not look".

        """
        entries = self._ledger.list_closed_entries(
            label=self._labels[category],
            author=identity,
        )
        tag = _CATEGORY_TAGS[category]
        matching = [e for e in entries if e.has_tag(tag)]
        if identity is not None:
            wanted = identity.casefold()
            matching = [e for e in matching if e.author.casefold() == wanted]
        matching.sort(key=lambda e: (e.created_at, e.number), reverse=True)
        log.debug(
            "Fetched %d %s entries (identity=%s, %d before filtering)",
            len(matching),
            category,
            identity or "*",
            len(entries),
        )
        return matching

    def snapshot(self, identity: str | None = None) -> LedgerSnapshot:
        """Fetch issuance (for *identity*, or all) and all revocations concurrently."""
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="ledger") as pool:
            issuance = pool.submit(self.fetch, LedgerCategory.ISSUANCE, identity)
            revocation = pool.submit(self.fetch, LedgerCategory.REVOCATION)
            return LedgerSnapshot(
                issuance=tuple(issuance.result()),
                revocation=tuple(revocation.result()),
            )

    # -- extraction ---------------------------------------------------------

    def issuance_records(self, entries: Iterable[LedgerEntry]) -> list[CertificateRecord]:
        """Extract one record per entry that carries an issuance marker.

        Order follows *entries*.  Malformed entries are logged and
        skipped.
        """
        records = []
        trusted = self._settings.trusted_comment_authors
        for entry in entries:
            try:
                record = extract_issuance(entry, trusted)
            except MalformedLedgerEntry as exc:
                self._skip(entry, exc)
                continue
            if record is None:
                log.warning("Skipping entry #%d: no issuance marker found", entry.number)
                continue
            records.append(record)
        return records

    def revocation_records(self, entries: Iterable[LedgerEntry]) -> list[RevocationRecord]:
        """Extract one record per revocation entry; malformed ones are skipped."""
        records = []
        trusted = self._settings.trusted_comment_authors
        for entry in entries:
            try:
                records.append(extract_revocation(entry, trusted))
            except MalformedLedgerEntry as exc:
                self._skip(entry, exc)
        return records

    @staticmethod
    def _skip(entry: LedgerEntry, exc: MalformedLedgerEntry) -> None:
        log.warning("Skipping malformed ledger entry #%d: %s", entry.number, exc.detail)
        security_events.malformed_entry(entry.number, exc.detail)
